"""
Spell list entries. Only what the engine needs to offer and validate spell
choices: name, level, school and which class lists include the spell.
"""

from dataclasses import dataclass, field
from typing import Dict, List, Any
import json
from pathlib import Path


@dataclass
class SpellDefinition:
    name: str
    level: int
    school: str = ""
    classes: List[str] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SpellDefinition":
        return cls(
            name=data["name"],
            level=data.get("level", 0),
            school=data.get("school", ""),
            classes=data.get("classes", []),
        )

    @property
    def is_cantrip(self) -> bool:
        return self.level == 0


def load_all_spells(filepath: str) -> Dict[str, SpellDefinition]:
    """Load every spell from the shared JSON file, keyed by name."""
    path = Path(filepath)
    if not path.exists():
        return {}
    with open(path, "r", encoding="utf-8") as f:
        data = json.load(f)
    spells = [SpellDefinition.from_dict(s) for s in data.get("spells", [])]
    return {s.name: s for s in spells}
