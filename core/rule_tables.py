"""
Rule Tables - the immutable reference data every computation reads.

Usage:
    from core import load_rule_tables

    tables = load_rule_tables()                 # packaged data
    tables = load_rule_tables("my/data")        # custom data directory

    fighter = tables.get_class(CharacterClass.FIGHTER)
    tables.choice_options(fighter.skill_choices)

The data directory defaults to the packaged ``core/data`` and can be
overridden with the DND_RULES_DATA_DIR environment variable. Loaded tables are
cached per directory; they are never mutated after loading.
"""

from dataclasses import dataclass, field
from functools import lru_cache
from typing import Dict, List, Optional, Tuple, Union
import json
import logging
import os
from pathlib import Path

from dnd_constants import (
    CasterType,
    CharacterClass,
    DAMAGE_TYPES,
    STANDARD_LANGUAGES,
    Skill,
    Species,
)
from exceptions import RuleDataError, UnknownRuleKeyError
from .background import BackgroundDefinition, load_all_backgrounds
from .character_class import ClassDefinition, load_all_classes
from .class_options import ClassOptions, load_class_options
from .common import ChoiceDefinition
from .equipment import ArmorDefinition, WeaponDefinition, load_equipment
from .feat import FeatDefinition, load_all_feats
from .species import SpeciesDefinition, load_all_species
from .spell import SpellDefinition, load_all_spells

logger = logging.getLogger(__name__)

DATA_DIR_ENV = "DND_RULES_DATA_DIR"
DEFAULT_DATA_DIR = Path(__file__).resolve().parent / "data"


# =============================================================================
# SPELL SLOT TABLES
# =============================================================================

# Slots per spell level 1-9, indexed by class level
FULL_CASTER_SLOTS: Dict[int, List[int]] = {
    1: [2, 0, 0, 0, 0, 0, 0, 0, 0],
    2: [3, 0, 0, 0, 0, 0, 0, 0, 0],
    3: [4, 2, 0, 0, 0, 0, 0, 0, 0],
    4: [4, 3, 0, 0, 0, 0, 0, 0, 0],
    5: [4, 3, 2, 0, 0, 0, 0, 0, 0],
    6: [4, 3, 3, 0, 0, 0, 0, 0, 0],
    7: [4, 3, 3, 1, 0, 0, 0, 0, 0],
    8: [4, 3, 3, 2, 0, 0, 0, 0, 0],
    9: [4, 3, 3, 3, 1, 0, 0, 0, 0],
    10: [4, 3, 3, 3, 2, 0, 0, 0, 0],
    11: [4, 3, 3, 3, 2, 1, 0, 0, 0],
    12: [4, 3, 3, 3, 2, 1, 0, 0, 0],
    13: [4, 3, 3, 3, 2, 1, 1, 0, 0],
    14: [4, 3, 3, 3, 2, 1, 1, 0, 0],
    15: [4, 3, 3, 3, 2, 1, 1, 1, 0],
    16: [4, 3, 3, 3, 2, 1, 1, 1, 0],
    17: [4, 3, 3, 3, 2, 1, 1, 1, 1],
    18: [4, 3, 3, 3, 3, 1, 1, 1, 1],
    19: [4, 3, 3, 3, 3, 2, 1, 1, 1],
    20: [4, 3, 3, 3, 3, 2, 2, 1, 1],
}

HALF_CASTER_SLOTS: Dict[int, List[int]] = {
    1: [2, 0, 0, 0, 0, 0, 0, 0, 0],
    2: [2, 0, 0, 0, 0, 0, 0, 0, 0],
    3: [3, 0, 0, 0, 0, 0, 0, 0, 0],
    4: [3, 0, 0, 0, 0, 0, 0, 0, 0],
    5: [4, 2, 0, 0, 0, 0, 0, 0, 0],
    6: [4, 2, 0, 0, 0, 0, 0, 0, 0],
    7: [4, 3, 0, 0, 0, 0, 0, 0, 0],
    8: [4, 3, 0, 0, 0, 0, 0, 0, 0],
    9: [4, 3, 2, 0, 0, 0, 0, 0, 0],
    10: [4, 3, 2, 0, 0, 0, 0, 0, 0],
    11: [4, 3, 3, 0, 0, 0, 0, 0, 0],
    12: [4, 3, 3, 0, 0, 0, 0, 0, 0],
    13: [4, 3, 3, 1, 0, 0, 0, 0, 0],
    14: [4, 3, 3, 1, 0, 0, 0, 0, 0],
    15: [4, 3, 3, 2, 0, 0, 0, 0, 0],
    16: [4, 3, 3, 2, 0, 0, 0, 0, 0],
    17: [4, 3, 3, 3, 1, 0, 0, 0, 0],
    18: [4, 3, 3, 3, 1, 0, 0, 0, 0],
    19: [4, 3, 3, 3, 2, 0, 0, 0, 0],
    20: [4, 3, 3, 3, 2, 0, 0, 0, 0],
}

# (slot count, slot level) for Pact Magic
PACT_MAGIC_SLOTS: Dict[int, Tuple[int, int]] = {
    1: (1, 1),
    2: (2, 1),
    3: (2, 2),
    4: (2, 2),
    5: (2, 3),
    6: (2, 3),
    7: (2, 4),
    8: (2, 4),
    9: (2, 5),
    10: (2, 5),
    11: (3, 5),
    12: (3, 5),
    13: (3, 5),
    14: (3, 5),
    15: (3, 5),
    16: (3, 5),
    17: (4, 5),
    18: (4, 5),
    19: (4, 5),
    20: (4, 5),
}


def spell_slots(caster: CasterType, level: int) -> Tuple[List[int], Optional[int]]:
    """
    Slots per spell level (1-9) for a caster type at ``level``.

    Returns (slots, pact_slot_level); pact_slot_level is None except for Pact Magic.
    """
    level = max(1, min(20, level))
    if caster is CasterType.FULL:
        return list(FULL_CASTER_SLOTS[level]), None
    if caster is CasterType.HALF:
        return list(HALF_CASTER_SLOTS[level]), None
    count, slot_level = PACT_MAGIC_SLOTS[level]
    slots = [0] * 9
    slots[slot_level - 1] = count
    return slots, slot_level


def max_spell_level(caster: CasterType, level: int) -> int:
    slots, pact_level = spell_slots(caster, level)
    if pact_level:
        return pact_level
    highest = 0
    for index, count in enumerate(slots):
        if count:
            highest = index + 1
    return highest


# =============================================================================
# RULE TABLES
# =============================================================================

@dataclass
class RuleTables:
    """Read-only aggregate of every reference table."""
    classes: Dict[CharacterClass, ClassDefinition] = field(default_factory=dict)
    species: Dict[Species, SpeciesDefinition] = field(default_factory=dict)
    backgrounds: Dict[str, BackgroundDefinition] = field(default_factory=dict)
    feats: Dict[str, FeatDefinition] = field(default_factory=dict)
    spells: Dict[str, SpellDefinition] = field(default_factory=dict)
    armor: Dict[str, ArmorDefinition] = field(default_factory=dict)
    weapons: Dict[str, WeaponDefinition] = field(default_factory=dict)
    options: ClassOptions = field(default_factory=ClassOptions)
    source: str = ""

    # -------------------------------------------------------------------------
    # Lookups
    # -------------------------------------------------------------------------

    def get_class(self, class_id: Union[CharacterClass, str]) -> ClassDefinition:
        try:
            return self.classes[CharacterClass(class_id)]
        except (KeyError, ValueError):
            raise UnknownRuleKeyError("class", str(class_id)) from None

    def get_species(self, species_id: Union[Species, str]) -> SpeciesDefinition:
        try:
            return self.species[Species(species_id)]
        except (KeyError, ValueError):
            raise UnknownRuleKeyError("species", str(species_id)) from None

    def get_background(self, background_id: str) -> BackgroundDefinition:
        if background_id not in self.backgrounds:
            raise UnknownRuleKeyError("background", background_id)
        return self.backgrounds[background_id]

    def get_feat(self, feat_id: str) -> FeatDefinition:
        if feat_id not in self.feats:
            raise UnknownRuleKeyError("feat", feat_id)
        return self.feats[feat_id]

    def get_spell(self, name: str) -> SpellDefinition:
        if name not in self.spells:
            raise UnknownRuleKeyError("spell", name)
        return self.spells[name]

    def get_weapon(self, name: str) -> WeaponDefinition:
        if name not in self.weapons:
            raise UnknownRuleKeyError("weapon", name)
        return self.weapons[name]

    def get_armor(self, name: str) -> ArmorDefinition:
        if name not in self.armor:
            raise UnknownRuleKeyError("armor", name)
        return self.armor[name]

    def has_class(self, class_id: str) -> bool:
        return class_id in {c.value for c in self.classes}

    def has_species(self, species_id: str) -> bool:
        return species_id in {s.value for s in self.species}

    # -------------------------------------------------------------------------
    # Derived option lists
    # -------------------------------------------------------------------------

    def spells_for(self, spell_list: str, level: int) -> List[str]:
        """Names of spells of exactly ``level`` on a class spell list."""
        return sorted(
            s.name for s in self.spells.values()
            if s.level == level and (spell_list == "any" or spell_list in s.classes)
        )

    def spells_up_to(self, spell_list: str, max_level: int) -> List[str]:
        """Leveled spells (1..max_level) on a class spell list."""
        return sorted(
            s.name for s in self.spells.values()
            if 1 <= s.level <= max_level and spell_list in s.classes
        )

    def origin_feats(self) -> List[str]:
        return sorted(f.id for f in self.feats.values() if f.is_origin)

    def general_feats(self) -> List[str]:
        return sorted(f.id for f in self.feats.values() if f.category == "general")

    def choice_options(self, choice: ChoiceDefinition) -> List[str]:
        """Resolve the concrete option list for a nested choice."""
        if choice.kind == "spell":
            if choice.options:
                return list(choice.options)
            return self.spells_for(choice.spell_list or "", choice.spell_level or 0)
        if choice.options:
            return list(choice.options)
        if choice.kind == "skill":
            return [s.value for s in Skill]
        if choice.kind == "language":
            return list(STANDARD_LANGUAGES)
        if choice.kind == "origin_feat":
            return self.origin_feats()
        if choice.kind == "damage_type":
            return list(DAMAGE_TYPES)
        return []

    # -------------------------------------------------------------------------
    # Integrity
    # -------------------------------------------------------------------------

    def check_integrity(self) -> None:
        """
        Verify every enumerated class and species is present and that
        cross-references resolve. Raises RuleDataError on the first problem set.
        """
        problems: List[str] = []

        missing_classes = [c.value for c in CharacterClass if c not in self.classes]
        if missing_classes:
            problems.append(f"missing classes: {', '.join(missing_classes)}")

        missing_species = [s.value for s in Species if s not in self.species]
        if missing_species:
            problems.append(f"missing species: {', '.join(missing_species)}")

        for background in self.backgrounds.values():
            if background.feat not in self.feats:
                problems.append(f"background {background.id} names unknown feat {background.feat}")
            if len(background.abilities) != 3:
                problems.append(f"background {background.id} must list three abilities")

        for definition in self.classes.values():
            casting = definition.spellcasting
            if casting and not casting.spellbook and len(casting.prepared) != 20:
                problems.append(f"class {definition.id.value} needs 20 prepared-spell entries")
            for subclass in definition.subclasses.values():
                for spell in subclass.grants.cantrips:
                    if spell not in self.spells:
                        problems.append(f"subclass {subclass.id} grants unknown cantrip {spell}")
            for weapon in definition.starting_equipment.weapons:
                if weapon not in self.weapons:
                    problems.append(f"class {definition.id.value} starts with unknown weapon {weapon}")

        for species in self.species.values():
            for lineage in species.lineages.values():
                granted = list(lineage.grants.cantrips) + lineage.grants.spells_through(20)
                for spell in granted:
                    if spell not in self.spells:
                        problems.append(f"lineage {lineage.id} grants unknown spell {spell}")

        if problems:
            raise RuleDataError("Rule tables are incomplete", {"problems": "; ".join(problems)})


def resolve_data_dir(data_dir: Optional[Union[str, Path]] = None) -> Path:
    """Explicit argument, then the environment override, then the packaged data."""
    if data_dir:
        return Path(data_dir)
    env_dir = os.environ.get(DATA_DIR_ENV)
    if env_dir:
        return Path(env_dir)
    return DEFAULT_DATA_DIR


def load_rule_tables(data_dir: Optional[Union[str, Path]] = None) -> RuleTables:
    """Load (or fetch from cache) the rule tables for a data directory."""
    return _load_rule_tables(str(resolve_data_dir(data_dir).resolve()))


@lru_cache(maxsize=8)
def _load_rule_tables(directory: str) -> RuleTables:
    data_path = Path(directory)
    if not data_path.is_dir():
        raise RuleDataError("Rule data directory not found", {"path": directory})

    try:
        armor, weapons = load_equipment(str(data_path / "equipment.json"))
        tables = RuleTables(
            classes=load_all_classes(str(data_path / "classes")),
            species=load_all_species(str(data_path / "species")),
            backgrounds=load_all_backgrounds(str(data_path / "backgrounds.json")),
            feats=load_all_feats(str(data_path / "feats.json")),
            spells=load_all_spells(str(data_path / "spells.json")),
            armor=armor,
            weapons=weapons,
            options=load_class_options(str(data_path / "class_options.json")),
            source=directory,
        )
    except (json.JSONDecodeError, KeyError, ValueError, TypeError) as e:
        raise RuleDataError("Malformed rule data", {"path": directory, "error": e}) from e

    tables.check_integrity()
    logger.info(
        "Loaded rule tables from %s: %d classes, %d species, %d feats, %d spells",
        directory, len(tables.classes), len(tables.species), len(tables.feats), len(tables.spells),
    )
    return tables
