"""
Armor and weapon tables (data/equipment.json).
"""

from dataclasses import dataclass, field
from typing import Dict, List, Any, Optional, Tuple
import json
from pathlib import Path

from dnd_constants import ArmorType, WeaponCategory


@dataclass
class ArmorDefinition:
    name: str
    armor_type: ArmorType
    base_ac: int
    strength: int = 0
    stealth_disadvantage: bool = False

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ArmorDefinition":
        return cls(
            name=data["name"],
            armor_type=ArmorType(data["type"]),
            base_ac=data.get("base_ac", 10),
            strength=data.get("strength", 0),
            stealth_disadvantage=data.get("stealth_disadvantage", False),
        )


@dataclass
class WeaponDefinition:
    name: str
    category: WeaponCategory
    ranged: bool
    damage: str
    damage_type: str
    properties: List[str] = field(default_factory=list)
    mastery: str = ""
    range: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "WeaponDefinition":
        return cls(
            name=data["name"],
            category=WeaponCategory(data["category"]),
            ranged=data.get("ranged", False),
            damage=data["damage"],
            damage_type=data.get("damage_type", ""),
            properties=data.get("properties", []),
            mastery=data.get("mastery", ""),
            range=data.get("range"),
        )

    @property
    def is_finesse(self) -> bool:
        return "finesse" in self.properties

    @property
    def is_thrown(self) -> bool:
        return "thrown" in self.properties

    @property
    def is_two_handed(self) -> bool:
        return "two_handed" in self.properties

    @property
    def is_melee(self) -> bool:
        return not self.ranged


def load_equipment(filepath: str) -> Tuple[Dict[str, ArmorDefinition], Dict[str, WeaponDefinition]]:
    """Load the armor and weapon tables, each keyed by item name."""
    path = Path(filepath)
    if not path.exists():
        return {}, {}
    with open(path, "r", encoding="utf-8") as f:
        data = json.load(f)
    armor = {a["name"]: ArmorDefinition.from_dict(a) for a in data.get("armor", [])}
    weapons = {w["name"]: WeaponDefinition.from_dict(w) for w in data.get("weapons", [])}
    return armor, weapons
