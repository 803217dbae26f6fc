#Constants for the character rules engine

from enum import Enum
from typing import Dict, List


ABILITY_SCORE_CAP = 20          # ceiling for bonuses applied during play
IMPORT_ABILITY_MAX = 30         # widest score accepted from an imported record
IMPORT_ABILITY_MIN = 1
MIN_LEVEL = 1
MAX_LEVEL = 20

STANDARD_ARRAY = [15, 14, 13, 12, 10, 8]

POINT_BUY_COSTS = {8: 0, 9: 1, 10: 2, 11: 3, 12: 4, 13: 5, 14: 7, 15: 9}
POINT_BUY_BUDGET = 27
POINT_BUY_MIN = 8
POINT_BUY_MAX = 15

UNARMORED_BASE_AC = 10
SHIELD_AC_BONUS = 2

# Cumulative XP needed to reach each level
XP_TABLE = {
    1: 0,
    2: 300,
    3: 900,
    4: 2700,
    5: 6500,
    6: 14000,
    7: 23000,
    8: 34000,
    9: 48000,
    10: 64000,
    11: 85000,
    12: 100000,
    13: 120000,
    14: 140000,
    15: 165000,
    16: 195000,
    17: 225000,
    18: 265000,
    19: 305000,
    20: 355000,
}


class Ability(str, Enum):
    STRENGTH = "strength"
    DEXTERITY = "dexterity"
    CONSTITUTION = "constitution"
    INTELLIGENCE = "intelligence"
    WISDOM = "wisdom"
    CHARISMA = "charisma"

    @property
    def abbreviation(self) -> str:
        return self.value[:3].upper()


class Skill(str, Enum):
    ACROBATICS = "acrobatics"
    ANIMAL_HANDLING = "animal_handling"
    ARCANA = "arcana"
    ATHLETICS = "athletics"
    DECEPTION = "deception"
    HISTORY = "history"
    INSIGHT = "insight"
    INTIMIDATION = "intimidation"
    INVESTIGATION = "investigation"
    MEDICINE = "medicine"
    NATURE = "nature"
    PERCEPTION = "perception"
    PERFORMANCE = "performance"
    PERSUASION = "persuasion"
    RELIGION = "religion"
    SLEIGHT_OF_HAND = "sleight_of_hand"
    STEALTH = "stealth"
    SURVIVAL = "survival"

    @property
    def ability(self) -> Ability:
        return SKILL_ABILITIES[self]

    @property
    def label(self) -> str:
        return self.value.replace("_", " ").title()


SKILL_ABILITIES: Dict[Skill, Ability] = {
    Skill.ACROBATICS: Ability.DEXTERITY,
    Skill.ANIMAL_HANDLING: Ability.WISDOM,
    Skill.ARCANA: Ability.INTELLIGENCE,
    Skill.ATHLETICS: Ability.STRENGTH,
    Skill.DECEPTION: Ability.CHARISMA,
    Skill.HISTORY: Ability.INTELLIGENCE,
    Skill.INSIGHT: Ability.WISDOM,
    Skill.INTIMIDATION: Ability.CHARISMA,
    Skill.INVESTIGATION: Ability.INTELLIGENCE,
    Skill.MEDICINE: Ability.WISDOM,
    Skill.NATURE: Ability.INTELLIGENCE,
    Skill.PERCEPTION: Ability.WISDOM,
    Skill.PERFORMANCE: Ability.CHARISMA,
    Skill.PERSUASION: Ability.CHARISMA,
    Skill.RELIGION: Ability.INTELLIGENCE,
    Skill.SLEIGHT_OF_HAND: Ability.DEXTERITY,
    Skill.STEALTH: Ability.DEXTERITY,
    Skill.SURVIVAL: Ability.WISDOM,
}


class CharacterClass(str, Enum):
    BARBARIAN = "barbarian"
    BARD = "bard"
    CLERIC = "cleric"
    DRUID = "druid"
    FIGHTER = "fighter"
    MONK = "monk"
    PALADIN = "paladin"
    RANGER = "ranger"
    ROGUE = "rogue"
    SORCERER = "sorcerer"
    WARLOCK = "warlock"
    WIZARD = "wizard"


class Species(str, Enum):
    AASIMAR = "aasimar"
    DRAGONBORN = "dragonborn"
    DWARF = "dwarf"
    ELF = "elf"
    GNOME = "gnome"
    GOLIATH = "goliath"
    HALFLING = "halfling"
    HUMAN = "human"
    ORC = "orc"
    TIEFLING = "tiefling"


class ProficiencyLevel(str, Enum):
    NONE = "none"
    PROFICIENT = "proficient"
    EXPERTISE = "expertise"

    @property
    def multiplier(self) -> int:
        return {
            ProficiencyLevel.NONE: 0,
            ProficiencyLevel.PROFICIENT: 1,
            ProficiencyLevel.EXPERTISE: 2,
        }[self]


class RestType(str, Enum):
    SHORT = "short"
    LONG = "long"
    DAWN = "dawn"


class ArmorType(str, Enum):
    LIGHT = "light"
    MEDIUM = "medium"
    HEAVY = "heavy"
    SHIELD = "shield"

    @property
    def dex_cap(self):
        """Largest DEX modifier the armor lets through (None means uncapped)."""
        return {
            ArmorType.LIGHT: None,
            ArmorType.MEDIUM: 2,
            ArmorType.HEAVY: 0,
            ArmorType.SHIELD: 0,
        }[self]

    @property
    def proficiency(self) -> str:
        return "Shields" if self is ArmorType.SHIELD else self.value.title()


class WeaponCategory(str, Enum):
    SIMPLE = "simple"
    MARTIAL = "martial"


class CasterType(str, Enum):
    FULL = "full"
    HALF = "half"
    PACT = "pact"


class AbilityMethod(str, Enum):
    STANDARD_ARRAY = "standard_array"
    POINT_BUY = "point_buy"
    ROLLED = "rolled"


class HitPointMethod(str, Enum):
    AVERAGE = "average"
    ROLL = "roll"


class Condition(str, Enum):
    BLINDED = "blinded"
    CHARMED = "charmed"
    DEAFENED = "deafened"
    EXHAUSTED = "exhausted"
    FRIGHTENED = "frightened"
    GRAPPLED = "grappled"
    INCAPACITATED = "incapacitated"
    INVISIBLE = "invisible"
    PARALYZED = "paralyzed"
    PETRIFIED = "petrified"
    POISONED = "poisoned"
    PRONE = "prone"
    RESTRAINED = "restrained"
    STUNNED = "stunned"
    UNCONSCIOUS = "unconscious"
    CONCENTRATING = "concentrating"


STANDARD_LANGUAGES: List[str] = [
    "Common", "Common Sign Language", "Draconic", "Dwarvish", "Elvish",
    "Giant", "Gnomish", "Goblin", "Halfling", "Orc",
]

ALIGNMENTS: List[str] = [
    "Lawful Good", "Neutral Good", "Chaotic Good",
    "Lawful Neutral", "Neutral", "Chaotic Neutral",
    "Lawful Evil", "Neutral Evil", "Chaotic Evil",
]

DAMAGE_TYPES: List[str] = [
    "acid", "bludgeoning", "cold", "fire", "force", "lightning", "necrotic",
    "piercing", "poison", "psychic", "radiant", "slashing", "thunder",
]
