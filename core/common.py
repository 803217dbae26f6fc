"""
Common dataclasses used across all rule table layers.
"""

import re
from dataclasses import dataclass, field
from typing import Dict, List, Any, Optional

from dnd_constants import Ability, RestType


def slugify(name: str) -> str:
    """Stable identifier for a display name ("Second Wind" -> "second_wind")."""
    return re.sub(r"[^a-z0-9]+", "_", name.lower()).strip("_")


def level_keys(data: Dict[str, Any]) -> Dict[int, Any]:
    """JSON objects keyed by level strings -> dict keyed by int."""
    return {int(k): v for k, v in (data or {}).items()}


def level_table_value(table: Dict[int, Any], level: int, default: Any = 0) -> Any:
    """
    Look up a stepwise "value from level N onward" table.

    The entry with the highest key not above ``level`` wins.
    """
    value = default
    for threshold in sorted(table):
        if threshold <= level:
            value = table[threshold]
        else:
            break
    return value


@dataclass
class Feature:
    """A narrative ability with name and description text."""
    name: str
    description: str
    level: int = 1
    # Species traits that stand in for a lineage until one is chosen
    placeholder: bool = False

    @property
    def id(self) -> str:
        return slugify(self.name)

    @classmethod
    def from_dict(cls, data: Dict[str, Any], level: int = 1) -> "Feature":
        return cls(
            name=data.get("name", ""),
            description=data.get("description", ""),
            level=data.get("level", level),
            placeholder=data.get("placeholder", False),
        )

    def to_dict(self) -> Dict[str, Any]:
        data = {"name": self.name, "description": self.description, "level": self.level}
        if self.placeholder:
            data["placeholder"] = True
        return data


def features_by_level(data: Dict[str, Any]) -> Dict[int, List[Feature]]:
    return {
        level: [Feature.from_dict(f, level) for f in entries]
        for level, entries in level_keys(data).items()
    }


@dataclass
class AcBonus:
    """Flat AC bonus that applies while ``condition`` holds."""
    amount: int
    # "always", "armored", "unarmored", "light_armor", "medium_armor", "heavy_armor"
    condition: str = "always"

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "AcBonus":
        return cls(amount=data.get("amount", 0), condition=data.get("condition", "always"))

    def to_dict(self) -> Dict[str, Any]:
        return {"amount": self.amount, "condition": self.condition}


@dataclass
class WeaponBonus:
    """Attack/damage bonus for a category of weapon attack."""
    # "ranged", "melee", "one_handed_melee", "thrown"
    applies_to: str
    attack: int = 0
    damage: int = 0

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "WeaponBonus":
        return cls(
            applies_to=data.get("applies_to", "melee"),
            attack=data.get("attack", 0),
            damage=data.get("damage", 0),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {"applies_to": self.applies_to, "attack": self.attack, "damage": self.damage}


@dataclass
class UnarmoredDefense:
    """Alternate unarmored AC: 10 + DEX + the listed abilities."""
    abilities: List[Ability] = field(default_factory=list)
    allows_shield: bool = True

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> Optional["UnarmoredDefense"]:
        if not data:
            return None
        return cls(
            abilities=[Ability(a) for a in data.get("abilities", [])],
            allows_shield=data.get("allows_shield", True),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "abilities": [a.value for a in self.abilities],
            "allows_shield": self.allows_shield,
        }


@dataclass
class ResourceFormula:
    """
    Declarative formula for a limited-use resource pool.

    kind:
        fixed        -> value
        table        -> stepwise level table
        ability      -> ability modifier (at least ``minimum``)
        level        -> level * multiplier
        proficiency  -> proficiency bonus
    """
    id: str
    name: str
    restore: RestType = RestType.LONG
    kind: str = "fixed"
    value: int = 0
    table: Dict[int, int] = field(default_factory=dict)
    ability: Optional[Ability] = None
    minimum: int = 0
    multiplier: int = 1
    min_level: int = 1
    restore_by_level: Dict[int, RestType] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ResourceFormula":
        return cls(
            id=data["id"],
            name=data.get("name", data["id"]),
            restore=RestType(data.get("restore", "long")),
            kind=data.get("kind", "fixed"),
            value=data.get("value", 0),
            table=level_keys(data.get("table", {})),
            ability=Ability(data["ability"]) if data.get("ability") else None,
            minimum=data.get("minimum", 0),
            multiplier=data.get("multiplier", 1),
            min_level=data.get("min_level", 1),
            restore_by_level={
                lvl: RestType(r) for lvl, r in level_keys(data.get("restore_by_level", {})).items()
            },
        )

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "id": self.id,
            "name": self.name,
            "restore": self.restore.value,
            "kind": self.kind,
            "min_level": self.min_level,
        }
        if self.kind == "fixed":
            data["value"] = self.value
        if self.table:
            data["table"] = {str(k): v for k, v in self.table.items()}
        if self.ability:
            data["ability"] = self.ability.value
        if self.minimum:
            data["minimum"] = self.minimum
        if self.kind == "level":
            data["multiplier"] = self.multiplier
        if self.restore_by_level:
            data["restore_by_level"] = {str(k): v.value for k, v in self.restore_by_level.items()}
        return data


@dataclass
class Grants:
    """
    Everything a rules element (species, lineage, feat, subclass, option...)
    hands to a character. Read from the element's own JSON object.
    """
    features: List[Feature] = field(default_factory=list)
    armor_proficiencies: List[str] = field(default_factory=list)
    weapon_proficiencies: List[str] = field(default_factory=list)
    tool_proficiencies: List[str] = field(default_factory=list)
    skill_proficiencies: List[str] = field(default_factory=list)
    languages: List[str] = field(default_factory=list)
    saving_throws: List[str] = field(default_factory=list)
    cantrips: List[str] = field(default_factory=list)
    # threshold level -> spells gained at that level
    spells: Dict[int, List[str]] = field(default_factory=dict)
    bonus_cantrips: int = 0
    hp_per_level: int = 0
    speed_bonus: int = 0
    initiative_proficiency: bool = False
    ac_bonuses: List[AcBonus] = field(default_factory=list)
    weapon_bonuses: List[WeaponBonus] = field(default_factory=list)
    resources: List[ResourceFormula] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "Grants":
        data = data or {}
        return cls(
            features=[Feature.from_dict(f) for f in data.get("features", [])],
            armor_proficiencies=data.get("armor_proficiencies", []),
            weapon_proficiencies=data.get("weapon_proficiencies", []),
            tool_proficiencies=data.get("tool_proficiencies", []),
            skill_proficiencies=data.get("skill_proficiencies", []),
            languages=data.get("languages", []),
            saving_throws=data.get("saving_throws", []),
            cantrips=data.get("cantrips", []),
            spells=level_keys(data.get("spells", {})),
            bonus_cantrips=data.get("bonus_cantrips", 0),
            hp_per_level=data.get("hp_per_level", 0),
            speed_bonus=data.get("speed_bonus", 0),
            initiative_proficiency=data.get("initiative_proficiency", False),
            ac_bonuses=[AcBonus.from_dict(b) for b in data.get("ac_bonuses", [])],
            weapon_bonuses=[WeaponBonus.from_dict(b) for b in data.get("weapon_bonuses", [])],
            resources=[ResourceFormula.from_dict(r) for r in data.get("resources", [])],
        )

    def spells_through(self, level: int) -> List[str]:
        """Granted spells whose threshold has been reached."""
        spells: List[str] = []
        for threshold in sorted(self.spells):
            if threshold <= level:
                spells.extend(self.spells[threshold])
        return spells


@dataclass
class ChoiceDefinition:
    """
    A nested choice offered by a rules element.

    ``kind`` tells the rule tables how to resolve the option list:
    "option" (explicit ``options``), "skill", "language", "tool",
    "spell" (``spell_list`` + ``spell_level``) or "origin_feat".
    """
    id: str
    name: str
    count: int = 1
    kind: str = "option"
    options: List[str] = field(default_factory=list)
    spell_list: Optional[str] = None
    spell_level: Optional[int] = None
    min_level: int = 1
    # Fixed grant this choice swaps out (e.g. a lineage cantrip)
    replaces: Optional[str] = None
    # option -> extra grants for picking it
    option_grants: Dict[str, Grants] = field(default_factory=dict)
    description: str = ""

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ChoiceDefinition":
        return cls(
            id=data["id"],
            name=data.get("name", data["id"]),
            count=data.get("count", 1),
            kind=data.get("kind", "option"),
            options=data.get("options", []),
            spell_list=data.get("spell_list"),
            spell_level=data.get("spell_level"),
            min_level=data.get("min_level", 1),
            replaces=data.get("replaces"),
            option_grants={
                option: Grants.from_dict(grants)
                for option, grants in data.get("option_grants", {}).items()
            },
            description=data.get("description", ""),
        )

    @property
    def is_spell_choice(self) -> bool:
        return self.kind == "spell"


def choices_from_list(data: List[Dict[str, Any]]) -> List[ChoiceDefinition]:
    return [ChoiceDefinition.from_dict(c) for c in data or []]
