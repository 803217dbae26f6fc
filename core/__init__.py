"""
Rules Core - rule table data classes and loaders.

Usage:
    from core import load_rule_tables, RuleTables
    from core import ClassDefinition, SpeciesDefinition, FeatDefinition
"""

from .common import (
    AcBonus,
    ChoiceDefinition,
    Feature,
    Grants,
    ResourceFormula,
    UnarmoredDefense,
    WeaponBonus,
    level_table_value,
    slugify,
)
from .character_class import (
    ClassDefinition,
    ClassProgression,
    SpellcastingDefinition,
    StartingEquipment,
    SubclassDefinition,
    load_class,
    load_all_classes,
)
from .species import LineageDefinition, SpeciesDefinition, load_species, load_all_species
from .background import BackgroundDefinition, load_all_backgrounds
from .feat import FeatDefinition, load_all_feats
from .spell import SpellDefinition, load_all_spells
from .equipment import ArmorDefinition, WeaponDefinition, load_equipment
from .class_options import (
    ClassOptions,
    FightingStyleDefinition,
    InvocationDefinition,
    MetamagicDefinition,
    OrderDefinition,
    PactBoonDefinition,
    WeaponMasteryDefinition,
    load_class_options,
)
from .rule_tables import (
    DATA_DIR_ENV,
    DEFAULT_DATA_DIR,
    RuleTables,
    load_rule_tables,
    max_spell_level,
    resolve_data_dir,
    spell_slots,
)

__all__ = [
    # Common
    "AcBonus",
    "ChoiceDefinition",
    "Feature",
    "Grants",
    "ResourceFormula",
    "UnarmoredDefense",
    "WeaponBonus",
    "level_table_value",
    "slugify",
    # Classes
    "ClassDefinition",
    "ClassProgression",
    "SpellcastingDefinition",
    "StartingEquipment",
    "SubclassDefinition",
    "load_class",
    "load_all_classes",
    # Species
    "LineageDefinition",
    "SpeciesDefinition",
    "load_species",
    "load_all_species",
    # Backgrounds, feats, spells, equipment
    "BackgroundDefinition",
    "load_all_backgrounds",
    "FeatDefinition",
    "load_all_feats",
    "SpellDefinition",
    "load_all_spells",
    "ArmorDefinition",
    "WeaponDefinition",
    "load_equipment",
    # Class options
    "ClassOptions",
    "FightingStyleDefinition",
    "InvocationDefinition",
    "MetamagicDefinition",
    "OrderDefinition",
    "PactBoonDefinition",
    "WeaponMasteryDefinition",
    "load_class_options",
    # Tables
    "DATA_DIR_ENV",
    "DEFAULT_DATA_DIR",
    "RuleTables",
    "load_rule_tables",
    "max_spell_level",
    "resolve_data_dir",
    "spell_slots",
]
