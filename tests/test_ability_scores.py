import random

import pytest

from ability_scores import (
    PointBuyAllocator,
    ability_modifier,
    apply_bonuses,
    asi_increases,
    is_standard_array,
    origin_bonus_pattern_ok,
    point_buy_cost,
    proficiency_bonus,
    roll_ability_scores,
)
from dnd_constants import Ability

from conftest import CASTER_ARRAY, MARTIAL_ARRAY


@pytest.mark.parametrize("score, modifier", [(1, -5), (8, -1), (9, -1), (10, 0), (11, 0), (15, 2), (20, 5), (30, 10)])
def test_ability_modifier(score, modifier):
    assert ability_modifier(score) == modifier


@pytest.mark.parametrize("level, bonus", [(1, 2), (4, 2), (5, 3), (8, 3), (9, 4), (13, 5), (17, 6), (20, 6)])
def test_proficiency_bonus(level, bonus):
    assert proficiency_bonus(level) == bonus


def test_standard_array_detection():
    assert is_standard_array(MARTIAL_ARRAY)
    assert is_standard_array(CASTER_ARRAY)
    assert not is_standard_array({**MARTIAL_ARRAY, Ability.STRENGTH: 14})
    assert not is_standard_array({Ability.STRENGTH: 15})


def test_rolled_scores_stay_in_range():
    scores = roll_ability_scores(random.Random(7))
    assert list(scores) == list(Ability)
    assert all(3 <= score <= 18 for score in scores.values())
    assert roll_ability_scores(random.Random(7)) == scores


# =============================================================================
# POINT BUY
# =============================================================================

def test_point_buy_starts_at_eight_with_full_budget():
    allocator = PointBuyAllocator()
    assert all(score == 8 for score in allocator.scores.values())
    assert allocator.remaining == 27


def test_point_buy_costs_grow_above_thirteen():
    allocator = PointBuyAllocator()
    assert allocator.set_score(Ability.STRENGTH, 13)
    assert allocator.cost_to_increase(Ability.STRENGTH) == 2
    assert allocator.increase(Ability.STRENGTH)
    assert allocator.increase(Ability.STRENGTH)
    assert allocator.scores[Ability.STRENGTH] == 15
    assert allocator.cost_to_increase(Ability.STRENGTH) is None
    assert not allocator.increase(Ability.STRENGTH)
    assert allocator.remaining == 18


def test_point_buy_never_overspends():
    allocator = PointBuyAllocator()
    for ability in (Ability.STRENGTH, Ability.DEXTERITY, Ability.CONSTITUTION):
        assert allocator.set_score(ability, 15)
    assert allocator.remaining == 0
    assert not allocator.increase(Ability.WISDOM)
    assert not allocator.set_score(Ability.WISDOM, 9)
    assert allocator.remaining == 0


def test_point_buy_bounds():
    allocator = PointBuyAllocator()
    assert not allocator.decrease(Ability.CHARISMA)
    assert not allocator.set_score(Ability.CHARISMA, 7)
    assert not allocator.set_score(Ability.CHARISMA, 16)
    allocator.increase(Ability.CHARISMA)
    assert allocator.decrease(Ability.CHARISMA)
    allocator.set_score(Ability.WISDOM, 12)
    allocator.reset()
    assert allocator.spent == 0


def test_point_buy_cost_rejects_scores_outside_table():
    assert point_buy_cost({Ability.STRENGTH: 15, Ability.DEXTERITY: 8}) == 9
    with pytest.raises(KeyError):
        point_buy_cost({Ability.STRENGTH: 16})


# =============================================================================
# BONUSES
# =============================================================================

def test_origin_bonus_patterns():
    assert origin_bonus_pattern_ok({Ability.STRENGTH: 2, Ability.CONSTITUTION: 1})
    assert origin_bonus_pattern_ok({Ability.STRENGTH: 1, Ability.DEXTERITY: 1, Ability.CONSTITUTION: 1})
    assert not origin_bonus_pattern_ok({Ability.STRENGTH: 3})
    assert not origin_bonus_pattern_ok({Ability.STRENGTH: 2, Ability.DEXTERITY: 2})
    assert not origin_bonus_pattern_ok({Ability.STRENGTH: 2})


def test_apply_bonuses_clamps_at_twenty():
    scores = apply_bonuses(
        {Ability.STRENGTH: 19, Ability.DEXTERITY: 12},
        {Ability.STRENGTH: 2},
        {Ability.DEXTERITY: 1},
    )
    assert scores[Ability.STRENGTH] == 20
    assert scores[Ability.DEXTERITY] == 13
    assert scores[Ability.WISDOM] == 10


def test_apply_bonuses_custom_ceiling():
    scores = apply_bonuses({Ability.STRENGTH: 20}, {Ability.STRENGTH: 4}, ceiling=24)
    assert scores[Ability.STRENGTH] == 24


def test_asi_increases():
    assert asi_increases([Ability.WISDOM]) == {Ability.WISDOM: 2}
    assert asi_increases([Ability.WISDOM, Ability.CHARISMA]) == {Ability.WISDOM: 1, Ability.CHARISMA: 1}
