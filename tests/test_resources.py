import logging

import pytest

from character_model import ResourceUse
from core import ResourceFormula
from dnd_constants import Ability, CharacterClass, RestType, Species
from exceptions import RuleDataError
from resources import (
    ResourceMax,
    compute_resources,
    evaluate_formula,
    merge_resource_usage,
    restore_trigger,
)

from conftest import CASTER_ARRAY

SCORES = {Ability.WISDOM: 16, Ability.CHARISMA: 8}


# =============================================================================
# FORMULAS
# =============================================================================

def test_formula_kinds():
    assert evaluate_formula(ResourceFormula("a", "A", kind="fixed", value=3), 1, SCORES) == 3
    assert evaluate_formula(ResourceFormula("b", "B", kind="table", table={1: 2, 4: 3}), 5, SCORES) == 3
    assert evaluate_formula(ResourceFormula("c", "C", kind="level", multiplier=5), 3, SCORES) == 15
    assert evaluate_formula(ResourceFormula("d", "D", kind="proficiency"), 9, SCORES) == 4


def test_ability_formula_respects_minimum():
    wisdom = ResourceFormula("e", "E", kind="ability", ability=Ability.WISDOM, minimum=1)
    charisma = ResourceFormula("f", "F", kind="ability", ability=Ability.CHARISMA, minimum=1)
    assert evaluate_formula(wisdom, 1, SCORES) == 3
    assert evaluate_formula(charisma, 1, SCORES) == 1


def test_formula_locked_below_min_level():
    formula = ResourceFormula("g", "G", kind="fixed", value=1, min_level=2)
    assert evaluate_formula(formula, 1, SCORES) == 0
    assert evaluate_formula(formula, 2, SCORES) == 1


def test_unknown_formula_kind_raises():
    with pytest.raises(RuleDataError) as excinfo:
        evaluate_formula(ResourceFormula("h", "H", kind="dice"), 1, SCORES)
    assert excinfo.value.details == {"resource": "h", "kind": "dice"}


def test_restore_trigger_changes_with_level():
    formula = ResourceFormula("i", "I", restore=RestType.LONG, restore_by_level={6: RestType.SHORT})
    assert restore_trigger(formula, 5) is RestType.LONG
    assert restore_trigger(formula, 6) is RestType.SHORT


# =============================================================================
# CHARACTER POOLS
# =============================================================================

def test_light_domain_warding_flare(tables):
    def pools(level):
        return compute_resources(
            CharacterClass.CLERIC, Species.DWARF, level, SCORES, [], tables, subclass="light_domain",
        )

    assert "warding_flare" not in pools(2)
    assert pools(3)["warding_flare"] == ResourceMax(max=3, restore=RestType.LONG, name="Warding Flare")
    assert pools(6)["warding_flare"].restore is RestType.SHORT


def test_repeated_feat_pool_does_not_stack(tables):
    pools = compute_resources(
        CharacterClass.WIZARD, Species.DWARF, 5, CASTER_ARRAY, ["lucky", "lucky"], tables,
    )
    assert pools["luck_points"].max == 3
    assert pools["stonecunning"].max == 3


def test_fighter_pools_follow_level(tables):
    level_one = compute_resources(CharacterClass.FIGHTER, Species.HUMAN, 1, CASTER_ARRAY, [], tables)
    level_four = compute_resources(CharacterClass.FIGHTER, Species.HUMAN, 4, CASTER_ARRAY, [], tables)
    assert level_one["second_wind"].max == 2
    assert "action_surge" not in level_one
    assert level_four["second_wind"].max == 3
    assert level_four["action_surge"].max == 1


# =============================================================================
# USAGE MERGE
# =============================================================================

def test_merge_keeps_used_counts_and_adds_new_pools():
    previous = {"second_wind": ResourceUse(used=1, max=2)}
    maxima = {
        "second_wind": ResourceMax(3, RestType.SHORT),
        "action_surge": ResourceMax(1, RestType.SHORT),
    }
    merged = merge_resource_usage(previous, maxima)
    assert merged["second_wind"] == ResourceUse(used=1, max=3, restore=RestType.SHORT)
    assert merged["action_surge"].used == 0
    assert merged["action_surge"].remaining == 1


def test_merge_clamps_used_to_new_maximum(caplog):
    previous = {"luck_points": ResourceUse(used=3, max=3)}
    with caplog.at_level(logging.WARNING, logger="resources"):
        merged = merge_resource_usage(previous, {"luck_points": ResourceMax(2, RestType.LONG)})
    assert merged["luck_points"].used == 2
    assert merged["luck_points"].remaining == 0
    assert "Clamping used count of luck_points" in caplog.text


def test_merge_drops_pools_no_longer_granted():
    previous = {"fey_step": ResourceUse(used=1, max=1)}
    assert merge_resource_usage(previous, {}) == {}
