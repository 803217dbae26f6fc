import copy

import pytest

from character_model import SubclassSelection
from dnd_constants import Ability, AbilityMethod
from validation import CharacterValidator, ValidationResult, validate_selection

from conftest import CASTER_ARRAY, MARTIAL_ARRAY


@pytest.fixture
def validator(tables):
    return CharacterValidator(tables)


def _scores(**overrides):
    scores = {ability: 10 for ability in Ability}
    scores.update({Ability(name): value for name, value in overrides.items()})
    return scores


# =============================================================================
# VALIDATION RESULT
# =============================================================================

def test_validation_result_merge():
    result = ValidationResult()
    assert result
    result.add_warning("careful")
    assert result.valid

    other = ValidationResult()
    other.add_error("broken")
    result.merge(other)
    assert not result
    assert result.errors == ["broken"]
    assert result.warnings == ["careful"]


def test_validate_selection_reports_each_problem():
    result = validate_selection(["a", "a", "z"], ["a", "b", "c"], 2, "Skills", already={"b"})
    assert not result
    assert "Skills: choose exactly 2, got 3" in result.errors
    assert "Skills: cannot choose the same option twice" in result.errors
    assert "Skills: 'z' is not a valid option" in result.errors

    result = validate_selection(["b", "c"], ["a", "b", "c"], 2, "Skills", already={"b"})
    assert result.errors == ["Skills: 'b' is already known"]


# =============================================================================
# ABILITY SCORES
# =============================================================================

def test_standard_array(validator):
    assert validator.validate_ability_scores(MARTIAL_ARRAY)
    result = validator.validate_ability_scores({**MARTIAL_ARRAY, Ability.CHARISMA: 15})
    assert not result
    assert result.errors[0].startswith("Standard array values must be")


def test_missing_and_non_integer_scores(validator):
    partial = dict(CASTER_ARRAY)
    del partial[Ability.WISDOM]
    assert validator.validate_ability_scores(partial).errors == ["Missing ability scores: wisdom"]

    result = validator.validate_ability_scores({**CASTER_ARRAY, Ability.WISDOM: "12"})
    assert result.errors == ["wisdom must be an integer, got str"]


def test_point_buy(validator):
    full = _scores(strength=15, dexterity=15, constitution=15, intelligence=8, wisdom=8, charisma=8)
    assert validator.validate_ability_scores(full, AbilityMethod.POINT_BUY).warnings == []

    under = _scores(strength=8, dexterity=8, constitution=8, intelligence=8, wisdom=8, charisma=8)
    result = validator.validate_ability_scores(under, AbilityMethod.POINT_BUY)
    assert result.valid
    assert result.warnings == ["Point buy: only spent 0 of 27 points"]

    over = _scores(strength=15, dexterity=15, constitution=15, intelligence=9, wisdom=8, charisma=8)
    assert "Point buy: spent 28 points (max 27)" in validator.validate_ability_scores(
        over, AbilityMethod.POINT_BUY,
    ).errors

    assert not validator.validate_ability_scores(_scores(strength=16), AbilityMethod.POINT_BUY)
    assert not validator.validate_ability_scores(_scores(strength=7), AbilityMethod.POINT_BUY)


def test_rolled_scores(validator):
    assert validator.validate_ability_scores(_scores(strength=18, charisma=3), AbilityMethod.ROLLED)
    assert not validator.validate_ability_scores(_scores(strength=19), AbilityMethod.ROLLED)


# =============================================================================
# BONUSES AND FEATS
# =============================================================================

def test_origin_bonus_limited_to_background(validator):
    assert validator.validate_origin_bonus({Ability.STRENGTH: 2, Ability.CONSTITUTION: 1}, "soldier")
    result = validator.validate_origin_bonus({Ability.WISDOM: 2, Ability.CONSTITUTION: 1}, "soldier")
    assert result.errors == ["Soldier cannot raise wisdom"]
    assert not validator.validate_origin_bonus({Ability.STRENGTH: 3}, "soldier")


def test_asi_warns_at_cap(validator):
    result = validator.validate_asi("+2", [Ability.STRENGTH], _scores(strength=20))
    assert result.valid
    assert result.warnings == ["strength is already 20; the increase is lost"]
    assert not validator.validate_asi("+1/+1", [Ability.STRENGTH], _scores())
    assert not validator.validate_asi("+4", [Ability.STRENGTH], _scores())


def test_feat_rules(validator):
    scores = _scores(strength=14)
    assert validator.validate_feat("great_weapon_master", Ability.STRENGTH, {}, scores, 4, [])

    too_early = validator.validate_feat("great_weapon_master", Ability.STRENGTH, {}, scores, 3, [])
    assert "Great Weapon Master prerequisites are not met" in too_early.errors

    weak = validator.validate_feat("great_weapon_master", Ability.STRENGTH, {}, _scores(), 4, [])
    assert not weak

    wrong_ability = validator.validate_feat("great_weapon_master", Ability.DEXTERITY, {}, scores, 4, [])
    assert "Great Weapon Master cannot increase dexterity" in wrong_ability.errors

    no_ability = validator.validate_feat("alert", Ability.DEXTERITY, {}, scores, 1, [])
    assert "Alert does not increase an ability" in no_ability.errors

    assert not validator.validate_feat("great_weapon_master", Ability.STRENGTH, {}, scores, 4, [], origin_only=True)
    assert validator.validate_feat("no_such_feat", None, {}, scores, 4, []).errors == ["Unknown feat: no_such_feat"]


def test_feat_repeatability(validator):
    skills = {"skills": ["arcana", "history", "nature"]}
    assert validator.validate_feat("skilled", None, skills, _scores(), 4, ["skilled"])
    repeat = validator.validate_feat("alert", None, {}, _scores(), 4, ["alert"])
    assert repeat.errors == ["Alert has already been taken"]


def test_feat_nested_choices(validator):
    result = validator.validate_feat("skilled", None, {"skills": ["arcana"], "tools": ["x"]}, _scores(), 1, [])
    assert "Skilled: unexpected choice 'tools'" in result.errors
    assert "Skilled / Skilled Proficiencies: choose exactly 3, got 1" in result.errors


# =============================================================================
# FINISHED CHARACTERS
# =============================================================================

def test_built_characters_validate(validator, fighter, wizard):
    assert validator.validate_character(fighter).errors == []
    assert validator.validate_character(wizard).errors == []


def test_character_invariants(validator, fighter):
    broken = copy.deepcopy(fighter)
    broken.name = ""
    broken.hit_dice.total = 3
    broken.background = "pirate"
    broken.resources["second_wind"].used = 5
    broken.cantrips.append("Wish Upon A Star")
    result = validator.validate_character(broken)
    assert "Missing required field: name" in result.errors
    assert "Hit dice total (3) must equal level (1)" in result.errors
    assert "Unknown background: pirate" in result.errors
    assert "Unknown spell: Wish Upon A Star" in result.errors
    assert "Resource second_wind has 5 used of 2" in result.warnings


def test_subclass_before_its_level_is_an_error(validator, wizard):
    early = copy.deepcopy(wizard)
    early.subclass = SubclassSelection("abjurer")
    result = validator.validate_character(early)
    assert "Wizard subclasses unlock at level 2" in result.errors
