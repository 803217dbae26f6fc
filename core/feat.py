"""
Feat definitions.

Categories:
- origin: granted by a background (or the human Versatile trait)
- general: taken in place of an Ability Score Improvement from level 4
- epic_boon: level 19+
"""

from dataclasses import dataclass, field
from typing import Dict, List, Any
import json
from pathlib import Path

from dnd_constants import Ability
from .common import ChoiceDefinition, Grants, choices_from_list


@dataclass
class FeatDefinition:
    id: str
    name: str
    category: str
    description: str = ""
    repeatable: bool = False
    min_level: int = 1
    # ability -> minimum score
    prerequisites: Dict[Ability, int] = field(default_factory=dict)
    # The feat may raise one of these abilities by ``ability_amount``
    ability_options: List[Ability] = field(default_factory=list)
    ability_amount: int = 1
    # Resilient: proficiency in the saving throw of the chosen ability
    save_for_ability: bool = False
    grants: Grants = field(default_factory=Grants)
    choices: List[ChoiceDefinition] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "FeatDefinition":
        return cls(
            id=data["id"],
            name=data.get("name", data["id"]),
            category=data.get("category", "general"),
            description=data.get("description", ""),
            repeatable=data.get("repeatable", False),
            min_level=data.get("min_level", 1),
            prerequisites={Ability(k): v for k, v in data.get("prerequisites", {}).items()},
            ability_options=[Ability(a) for a in data.get("ability_options", [])],
            ability_amount=data.get("ability_amount", 1),
            save_for_ability=data.get("save_for_ability", False),
            grants=Grants.from_dict(data),
            choices=choices_from_list(data.get("choices", [])),
        )

    @property
    def is_origin(self) -> bool:
        return self.category == "origin"

    def meets_prerequisites(self, scores: Dict[Ability, int], level: int) -> bool:
        if level < self.min_level:
            return False
        if not self.prerequisites:
            return True
        # Any listed ability meeting its minimum qualifies (e.g. STR or DEX 13)
        return any(scores.get(ability, 0) >= minimum for ability, minimum in self.prerequisites.items())


def load_all_feats(filepath: str) -> Dict[str, FeatDefinition]:
    """Load every feat from the shared JSON file, keyed by id."""
    path = Path(filepath)
    if not path.exists():
        return {}
    with open(path, "r", encoding="utf-8") as f:
        data = json.load(f)
    feats = [FeatDefinition.from_dict(entry) for entry in data.get("feats", [])]
    return {feat.id: feat for feat in feats}
