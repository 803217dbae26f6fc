"""
Class and subclass definitions.

Each class lives in its own JSON file (data/classes/<id>.json) holding its
proficiencies, progression gates, spellcasting tables, resource formulas,
features by level and subclasses.
"""

from dataclasses import dataclass, field
from typing import Dict, List, Any, Optional
import json
import logging
from pathlib import Path

from dnd_constants import Ability, CasterType, CharacterClass
from .common import (
    ChoiceDefinition,
    Feature,
    Grants,
    ResourceFormula,
    UnarmoredDefense,
    choices_from_list,
    features_by_level,
    level_keys,
    level_table_value,
)

logger = logging.getLogger(__name__)


@dataclass
class ClassProgression:
    """Levels at which class-specific decisions unlock, plus count tables."""
    subclass_level: int = 3
    fighting_style_level: Optional[int] = None
    divine_order_level: Optional[int] = None
    primal_order_level: Optional[int] = None
    pact_boon_level: Optional[int] = None
    primal_knowledge_level: Optional[int] = None
    asi_levels: List[int] = field(default_factory=lambda: [4, 8, 12, 16, 19])
    # "count known at level N" tables
    weapon_mastery: Dict[int, int] = field(default_factory=dict)
    expertise: Dict[int, int] = field(default_factory=dict)
    metamagic: Dict[int, int] = field(default_factory=dict)
    invocations: Dict[int, int] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ClassProgression":
        return cls(
            subclass_level=data.get("subclass_level", 3),
            fighting_style_level=data.get("fighting_style_level"),
            divine_order_level=data.get("divine_order_level"),
            primal_order_level=data.get("primal_order_level"),
            pact_boon_level=data.get("pact_boon_level"),
            primal_knowledge_level=data.get("primal_knowledge_level"),
            asi_levels=data.get("asi_levels", [4, 8, 12, 16, 19]),
            weapon_mastery=level_keys(data.get("weapon_mastery", {})),
            expertise=level_keys(data.get("expertise", {})),
            metamagic=level_keys(data.get("metamagic", {})),
            invocations=level_keys(data.get("invocations", {})),
        )

    def weapon_masteries_at(self, level: int) -> int:
        return level_table_value(self.weapon_mastery, level)

    def expertise_at(self, level: int) -> int:
        return level_table_value(self.expertise, level)

    def metamagic_at(self, level: int) -> int:
        return level_table_value(self.metamagic, level)

    def invocations_at(self, level: int) -> int:
        return level_table_value(self.invocations, level)


@dataclass
class SpellcastingDefinition:
    """How a class casts spells."""
    ability: Ability
    caster: CasterType
    cantrips: Dict[int, int] = field(default_factory=dict)
    # Prepared/known spells for class levels 1..20
    prepared: List[int] = field(default_factory=list)
    spellbook: bool = False
    spellbook_start: int = 6
    spellbook_per_level: int = 2

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> Optional["SpellcastingDefinition"]:
        if not data:
            return None
        return cls(
            ability=Ability(data["ability"]),
            caster=CasterType(data["caster"]),
            cantrips=level_keys(data.get("cantrips", {})),
            prepared=data.get("prepared", []),
            spellbook=data.get("spellbook", False),
            spellbook_start=data.get("spellbook_start", 6),
            spellbook_per_level=data.get("spellbook_per_level", 2),
        )

    def cantrips_known(self, level: int) -> int:
        return level_table_value(self.cantrips, level)

    def spells_known(self, level: int) -> int:
        """Spells learned by ``level``: spellbook size, or the prepared count."""
        if self.spellbook:
            return self.spellbook_start + self.spellbook_per_level * (level - 1)
        if not self.prepared:
            return 0
        return self.prepared[min(level, len(self.prepared)) - 1]


@dataclass
class SubclassDefinition:
    """A subclass with its features, nested choices and grants."""
    id: str
    name: str
    description: str = ""
    features: Dict[int, List[Feature]] = field(default_factory=dict)
    choices: List[ChoiceDefinition] = field(default_factory=list)
    grants: Grants = field(default_factory=Grants)
    unarmored_defense: Optional[UnarmoredDefense] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SubclassDefinition":
        return cls(
            id=data["id"],
            name=data.get("name", data["id"]),
            description=data.get("description", ""),
            features=features_by_level(data.get("features", {})),
            choices=choices_from_list(data.get("choices", [])),
            grants=Grants.from_dict(data.get("grants")),
            unarmored_defense=UnarmoredDefense.from_dict(data.get("unarmored_defense")),
        )

    def features_through(self, level: int) -> List[Feature]:
        return [f for lvl in sorted(self.features) if lvl <= level for f in self.features[lvl]]

    def choices_through(self, level: int) -> List[ChoiceDefinition]:
        return [c for c in self.choices if c.min_level <= level]


@dataclass
class StartingEquipment:
    armor: Optional[str] = None
    shield: bool = False
    weapons: List[str] = field(default_factory=list)
    items: List[str] = field(default_factory=list)
    gold: int = 0

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "StartingEquipment":
        data = data or {}
        return cls(
            armor=data.get("armor"),
            shield=data.get("shield", False),
            weapons=data.get("weapons", []),
            items=data.get("items", []),
            gold=data.get("gold", 0),
        )


@dataclass
class ClassDefinition:
    """
    A character class.

    Loaded from JSON with structure:
    {
        "id": "fighter",
        "name": "Fighter",
        "hit_die": 10,
        "saving_throws": ["strength", "constitution"],
        "skill_choices": {"count": 2, "options": [...]},
        "progression": {...},
        "spellcasting": null,
        "features": {"1": [{"name": ..., "description": ...}]},
        "subclasses": [...]
    }
    """
    id: CharacterClass
    name: str
    description: str
    hit_die: int
    primary_ability: Ability
    saving_throws: List[Ability]
    armor_proficiencies: List[str]
    weapon_proficiencies: List[str]
    tool_proficiencies: List[str]
    skill_choices: ChoiceDefinition
    progression: ClassProgression
    spellcasting: Optional[SpellcastingDefinition] = None
    unarmored_defense: Optional[UnarmoredDefense] = None
    scaling: Dict[str, Dict[int, Any]] = field(default_factory=dict)
    resources: List[ResourceFormula] = field(default_factory=list)
    features: Dict[int, List[Feature]] = field(default_factory=dict)
    subclasses: Dict[str, SubclassDefinition] = field(default_factory=dict)
    starting_equipment: StartingEquipment = field(default_factory=StartingEquipment)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ClassDefinition":
        skills = data.get("skill_choices", {})
        subclasses = [SubclassDefinition.from_dict(s) for s in data.get("subclasses", [])]
        return cls(
            id=CharacterClass(data["id"]),
            name=data.get("name", data["id"].title()),
            description=data.get("description", ""),
            hit_die=data["hit_die"],
            primary_ability=Ability(data["primary_ability"]),
            saving_throws=[Ability(a) for a in data.get("saving_throws", [])],
            armor_proficiencies=data.get("armor_proficiencies", []),
            weapon_proficiencies=data.get("weapon_proficiencies", []),
            tool_proficiencies=data.get("tool_proficiencies", []),
            skill_choices=ChoiceDefinition(
                id="class_skills",
                name=f"{data.get('name', data['id'])} Skills",
                count=skills.get("count", 2),
                kind="skill",
                options=skills.get("options", []),
            ),
            progression=ClassProgression.from_dict(data.get("progression", {})),
            spellcasting=SpellcastingDefinition.from_dict(data.get("spellcasting")),
            unarmored_defense=UnarmoredDefense.from_dict(data.get("unarmored_defense")),
            scaling={name: level_keys(table) for name, table in data.get("scaling", {}).items()},
            resources=[ResourceFormula.from_dict(r) for r in data.get("resources", [])],
            features=features_by_level(data.get("features", {})),
            subclasses={s.id: s for s in subclasses},
            starting_equipment=StartingEquipment.from_dict(data.get("starting_equipment")),
        )

    @property
    def is_spellcaster(self) -> bool:
        return self.spellcasting is not None

    def features_at(self, level: int) -> List[Feature]:
        return list(self.features.get(level, []))

    def features_through(self, level: int) -> List[Feature]:
        return [f for lvl in sorted(self.features) if lvl <= level for f in self.features[lvl]]

    def scaling_at(self, level: int) -> Dict[str, Any]:
        """Named scaling values (rage damage, martial arts die...) at ``level``."""
        return {name: level_table_value(table, level, None) for name, table in self.scaling.items()}

    def get_subclass(self, subclass_id: str) -> Optional[SubclassDefinition]:
        return self.subclasses.get(subclass_id)

    def grants_asi(self, level: int) -> bool:
        return level in self.progression.asi_levels


def load_class(filepath: str) -> ClassDefinition:
    """Load a class from a JSON file."""
    with open(filepath, "r", encoding="utf-8") as f:
        data = json.load(f)
    return ClassDefinition.from_dict(data)


def load_all_classes(directory: str) -> Dict[CharacterClass, ClassDefinition]:
    """
    Load all classes from a directory.

    Returns dict mapping CharacterClass to ClassDefinition.
    """
    classes = {}
    dir_path = Path(directory)

    if not dir_path.exists():
        return classes

    for filepath in sorted(dir_path.glob("*.json")):
        definition = load_class(str(filepath))
        classes[definition.id] = definition
        logger.debug("Loaded class %s from %s", definition.id.value, filepath.name)

    return classes
