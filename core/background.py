"""
Background definitions.

A background names the three abilities its origin bonus may raise, two skill
proficiencies, a tool proficiency, an origin feat and starting equipment.
All backgrounds share a single data file (data/backgrounds.json).
"""

from dataclasses import dataclass, field
from typing import Dict, List, Any
import json
from pathlib import Path

from dnd_constants import Ability, Skill


@dataclass
class BackgroundDefinition:
    id: str
    name: str
    description: str
    abilities: List[Ability]
    skills: List[Skill]
    tool: str
    feat: str
    equipment: List[str] = field(default_factory=list)
    gold: int = 0

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "BackgroundDefinition":
        return cls(
            id=data["id"],
            name=data.get("name", data["id"].title()),
            description=data.get("description", ""),
            abilities=[Ability(a) for a in data.get("abilities", [])],
            skills=[Skill(s) for s in data.get("skills", [])],
            tool=data.get("tool", ""),
            feat=data.get("feat", ""),
            equipment=data.get("equipment", []),
            gold=data.get("gold", 0),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "abilities": [a.value for a in self.abilities],
            "skills": [s.value for s in self.skills],
            "tool": self.tool,
            "feat": self.feat,
            "equipment": self.equipment,
            "gold": self.gold,
        }


def load_all_backgrounds(filepath: str) -> Dict[str, BackgroundDefinition]:
    """Load every background from the shared JSON file, keyed by id."""
    path = Path(filepath)
    if not path.exists():
        return {}
    with open(path, "r", encoding="utf-8") as f:
        data = json.load(f)
    backgrounds = [BackgroundDefinition.from_dict(b) for b in data.get("backgrounds", [])]
    return {b.id: b for b in backgrounds}
