"""
Choice value types.

One small dataclass per kind of decision the player makes, plus
``CharacterSelections``: the complete, validated input the calculator turns
into a level 1 Character. The session layer stages these values per step;
only their effect on the Character is ever persisted.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, List, Any, Optional

from character_model import Biography, SubclassSelection
from dnd_constants import (
    Ability,
    AbilityMethod,
    CharacterClass,
    HitPointMethod,
    Skill,
    Species,
)


# Nested choice answers: choice id -> selected options
NestedChoices = Dict[str, List[str]]


@dataclass
class FeatSelection:
    """A feat plus its ability increase (when the feat offers one) and nested choices."""
    feat_id: str
    ability: Optional[Ability] = None
    choices: NestedChoices = field(default_factory=dict)

    def summary(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"feat": self.feat_id}
        if self.ability:
            data["ability"] = self.ability.value
        if self.choices:
            data["choices"] = {k: list(v) for k, v in self.choices.items()}
        return data


@dataclass
class SpeciesSelection:
    species: Species
    lineage: Optional[str] = None
    choices: NestedChoices = field(default_factory=dict)
    # Human Versatile origin feat
    feat: Optional[FeatSelection] = None


@dataclass
class OriginBonus:
    """Background ability increases: +2/+1 or +1/+1/+1."""
    increases: Dict[Ability, int] = field(default_factory=dict)


@dataclass
class BackgroundSelection:
    background: str
    origin_bonus: Optional[OriginBonus] = None
    # Nested choices of the background's origin feat
    feat_choices: NestedChoices = field(default_factory=dict)


@dataclass
class AbilityScoreSelection:
    method: AbilityMethod
    scores: Dict[Ability, int] = field(default_factory=dict)


@dataclass
class AsiChoice:
    """
    Ability Score Improvement or feat.

    mode "+2": ``abilities`` holds one ability.
    mode "+1/+1": ``abilities`` holds two different abilities.
    mode "feat": ``feat`` is set.
    """
    mode: str
    abilities: List[Ability] = field(default_factory=list)
    feat: Optional[FeatSelection] = None

    def summary(self) -> Dict[str, Any]:
        if self.mode == "feat" and self.feat:
            return self.feat.summary()
        return {"mode": self.mode, "abilities": [a.value for a in self.abilities]}


@dataclass
class HitPointChoice:
    method: HitPointMethod = HitPointMethod.AVERAGE
    roll: Optional[int] = None


@dataclass
class FightingStyleChoice:
    style: str
    choices: NestedChoices = field(default_factory=dict)


@dataclass
class PactBoonChoice:
    boon: str
    choices: NestedChoices = field(default_factory=dict)


@dataclass
class InvocationChoice:
    """Invocations learned in this step, with nested answers keyed by invocation id."""
    invocations: List[str] = field(default_factory=list)
    choices: Dict[str, NestedChoices] = field(default_factory=dict)


@dataclass
class EquipmentSelection:
    armor: Optional[str] = None
    shield: bool = False
    weapons: List[str] = field(default_factory=list)
    items: List[str] = field(default_factory=list)
    gold: int = 0


@dataclass
class DetailsChoice:
    name: str
    alignment: str = ""
    biography: Biography = field(default_factory=Biography)


@dataclass
class CharacterSelections:
    """
    Everything needed to compute a level 1 character.

    Optional parts are ``None`` when the class does not offer them at level 1
    (a fighter has no subclass yet, a wizard has no fighting style).
    """
    id: str
    player_id: str
    character_class: CharacterClass
    species: SpeciesSelection
    background: BackgroundSelection
    ability_scores: AbilityScoreSelection
    details: DetailsChoice
    skills: List[Skill] = field(default_factory=list)
    languages: List[str] = field(default_factory=list)
    subclass: Optional[SubclassSelection] = None
    fighting_style: Optional[FightingStyleChoice] = None
    divine_order: Optional[str] = None
    primal_order: Optional[str] = None
    weapon_masteries: List[str] = field(default_factory=list)
    expertise: List[Skill] = field(default_factory=list)
    invocations: Optional[InvocationChoice] = None
    cantrips: List[str] = field(default_factory=list)
    spells: List[str] = field(default_factory=list)
    equipment: EquipmentSelection = field(default_factory=EquipmentSelection)
    created_at: str = ""
