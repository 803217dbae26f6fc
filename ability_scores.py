"""
Ability score generation and arithmetic.

Covers the three generation methods (standard array, 4d6-drop-lowest rolls and
the 27-point buy), the background origin bonus and the two level-derived
numbers every other module needs: the ability modifier and the proficiency bonus.

Usage:
    from ability_scores import PointBuyAllocator, ability_modifier, proficiency_bonus

    allocator = PointBuyAllocator()
    allocator.increase(Ability.STRENGTH)      # 8 -> 9, one point spent
    allocator.remaining                        # 26

    ability_modifier(15)   # 2
    proficiency_bonus(5)   # 3
"""

import random
from typing import Dict, List, Optional

from dnd_constants import (
    ABILITY_SCORE_CAP,
    MAX_LEVEL,
    MIN_LEVEL,
    POINT_BUY_BUDGET,
    POINT_BUY_COSTS,
    POINT_BUY_MAX,
    POINT_BUY_MIN,
    STANDARD_ARRAY,
    Ability,
)


def ability_modifier(score: int) -> int:
    """floor((score - 10) / 2)"""
    return (score - 10) // 2


def proficiency_bonus(level: int) -> int:
    """+2 at levels 1-4, rising by one every four levels to +6 at 17-20."""
    level = max(MIN_LEVEL, min(MAX_LEVEL, level))
    return 2 + (level - 1) // 4


def clamp_score(score: int, ceiling: int = ABILITY_SCORE_CAP) -> int:
    return min(score, ceiling)


# =============================================================================
# GENERATION METHODS
# =============================================================================

def is_standard_array(scores: Dict[Ability, int]) -> bool:
    """True when the six scores are a permutation of the standard array."""
    return sorted(scores.values()) == sorted(STANDARD_ARRAY) and len(scores) == len(Ability)


def roll_ability_score(rng: random.Random) -> int:
    """Roll 4d6 and keep the highest three."""
    dice = sorted(rng.randint(1, 6) for _ in range(4))
    return sum(dice[1:])


def roll_ability_scores(rng: Optional[random.Random] = None) -> Dict[Ability, int]:
    """One independent 4d6-drop-lowest draw per ability, in ability order (unsorted)."""
    rng = rng or random.Random()
    return {ability: roll_ability_score(rng) for ability in Ability}


def point_buy_cost(scores: Dict[Ability, int]) -> int:
    """Total points spent; raises KeyError for a score outside the cost table."""
    return sum(POINT_BUY_COSTS[score] for score in scores.values())


class PointBuyAllocator:
    """
    Interactive point-buy state.

    Every ability starts at 8. A change that would break the [8, 15] bounds or
    overspend the 27-point budget is refused and leaves the state untouched, so
    ``remaining`` never drops below zero.
    """

    def __init__(self, budget: int = POINT_BUY_BUDGET):
        self.budget = budget
        self.scores: Dict[Ability, int] = {ability: POINT_BUY_MIN for ability in Ability}

    @property
    def spent(self) -> int:
        return point_buy_cost(self.scores)

    @property
    def remaining(self) -> int:
        return self.budget - self.spent

    def cost_to_increase(self, ability: Ability) -> Optional[int]:
        current = self.scores[ability]
        if current >= POINT_BUY_MAX:
            return None
        return POINT_BUY_COSTS[current + 1] - POINT_BUY_COSTS[current]

    def can_increase(self, ability: Ability) -> bool:
        cost = self.cost_to_increase(ability)
        return cost is not None and cost <= self.remaining

    def increase(self, ability: Ability) -> bool:
        if not self.can_increase(ability):
            return False
        self.scores[ability] += 1
        return True

    def decrease(self, ability: Ability) -> bool:
        if self.scores[ability] <= POINT_BUY_MIN:
            return False
        self.scores[ability] -= 1
        return True

    def set_score(self, ability: Ability, score: int) -> bool:
        """Jump straight to ``score`` if it is in bounds and affordable."""
        if score < POINT_BUY_MIN or score > POINT_BUY_MAX:
            return False
        candidate = dict(self.scores)
        candidate[ability] = score
        if point_buy_cost(candidate) > self.budget:
            return False
        self.scores = candidate
        return True

    def reset(self):
        self.scores = {ability: POINT_BUY_MIN for ability in Ability}


# =============================================================================
# BONUSES
# =============================================================================

def origin_bonus_pattern_ok(increases: Dict[Ability, int]) -> bool:
    """+2/+1 to two different abilities, or +1 to each of three."""
    values = sorted(v for v in increases.values() if v)
    return values in ([1, 2], [1, 1, 1])


def apply_bonuses(
    base: Dict[Ability, int],
    *bonuses: Dict[Ability, int],
    ceiling: int = ABILITY_SCORE_CAP,
) -> Dict[Ability, int]:
    """Add every bonus map to the base scores, then clamp each to the ceiling."""
    scores = {ability: base.get(ability, 10) for ability in Ability}
    for bonus in bonuses:
        for ability, amount in bonus.items():
            scores[ability] += amount
    return {ability: clamp_score(score, ceiling) for ability, score in scores.items()}


def asi_increases(abilities: List[Ability]) -> Dict[Ability, int]:
    """
    Ability Score Improvement: one ability listed once gets +2, two different
    abilities get +1 each.
    """
    if len(abilities) == 1:
        return {abilities[0]: 2}
    return {ability: 1 for ability in abilities}
