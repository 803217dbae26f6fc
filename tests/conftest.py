import sys
from pathlib import Path
from typing import Any, Dict, Optional

import pytest

ROOT_DIR = Path(__file__).resolve().parent.parent
if str(ROOT_DIR) not in sys.path:
    sys.path.insert(0, str(ROOT_DIR))

from character_builder import CharacterBuilder
from character_model import SubclassSelection
from core import load_rule_tables
from dnd_constants import Ability, AbilityMethod, CharacterClass, Skill, Species
from levelup_manager import apply_level_up
from selections import (
    AbilityScoreSelection,
    BackgroundSelection,
    DetailsChoice,
    EquipmentSelection,
    FightingStyleChoice,
    HitPointChoice,
    InvocationChoice,
    OriginBonus,
    SpeciesSelection,
)
from step_planner import ProgressState, Step, StepKind, plan_steps

TIMESTAMP = "2024-01-01T00:00:00+00:00"

# STR 15, DEX 14, CON 13, INT 12, WIS 10, CHA 8
MARTIAL_ARRAY = {
    Ability.STRENGTH: 15, Ability.DEXTERITY: 14, Ability.CONSTITUTION: 13,
    Ability.INTELLIGENCE: 12, Ability.WISDOM: 10, Ability.CHARISMA: 8,
}
# INT 15, CON 14, DEX 13, WIS 12, CHA 10, STR 8
CASTER_ARRAY = {
    Ability.STRENGTH: 8, Ability.DEXTERITY: 13, Ability.CONSTITUTION: 14,
    Ability.INTELLIGENCE: 15, Ability.WISDOM: 12, Ability.CHARISMA: 10,
}


@pytest.fixture(scope="session")
def tables():
    return load_rule_tables()


def default_choice(step: Step, builder: Optional[CharacterBuilder] = None) -> Any:
    """A valid choice for a step built from the step's own options."""
    kind = step.kind
    picked = list(step.options[: step.count])
    if kind in (StepKind.SKILLS, StepKind.EXPERTISE):
        return [Skill(s) for s in picked]
    if kind is StepKind.PRIMAL_KNOWLEDGE:
        return Skill(step.options[0])
    if kind in (StepKind.LANGUAGES, StepKind.WEAPON_MASTERY, StepKind.METAMAGIC,
                StepKind.CANTRIPS, StepKind.SPELLS):
        return picked
    if kind is StepKind.HIT_POINTS:
        return HitPointChoice()
    if kind is StepKind.SUBCLASS:
        return SubclassSelection(id=step.options[0])
    if kind is StepKind.FIGHTING_STYLE:
        return FightingStyleChoice(style=step.options[0])
    if kind in (StepKind.DIVINE_ORDER, StepKind.PRIMAL_ORDER):
        return step.options[0]
    if kind is StepKind.INVOCATIONS:
        simple = [o for o in step.options if not o.startswith("pact_of_")]
        return InvocationChoice(invocations=simple[: step.count])
    if kind is StepKind.EQUIPMENT:
        return builder.starting_equipment()
    if kind is StepKind.DETAILS:
        return DetailsChoice(name="Test Hero", alignment="Neutral Good")
    raise AssertionError(f"No default for {kind.value}")


def stage(builder: CharacterBuilder, kind: StepKind, choice: Any) -> None:
    result = builder.stage(kind, choice)
    assert result.valid, f"{kind.value}: {result.errors}"


def fill_remaining(builder: CharacterBuilder, overrides: Optional[Dict[StepKind, Any]] = None) -> None:
    overrides = overrides or {}
    for _ in range(len(StepKind)):
        missing = builder.missing_steps()
        if not missing:
            return
        step = missing[0]
        choice = overrides[step.kind] if step.kind in overrides else default_choice(step, builder)
        stage(builder, step.kind, choice)
    raise AssertionError(f"Steps left unfilled: {[s.kind.value for s in builder.missing_steps()]}")


def start_builder(
    tables,
    character_class: CharacterClass,
    species: SpeciesSelection,
    background: BackgroundSelection,
    scores: Dict[Ability, int],
    increases: Dict[Ability, int],
) -> CharacterBuilder:
    builder = CharacterBuilder(tables)
    stage(builder, StepKind.CLASS, character_class)
    stage(builder, StepKind.BACKGROUND, background)
    stage(builder, StepKind.SPECIES, species)
    stage(builder, StepKind.ABILITY_SCORES, AbilityScoreSelection(AbilityMethod.STANDARD_ARRAY, dict(scores)))
    stage(builder, StepKind.ORIGIN_BONUS, OriginBonus(dict(increases)))
    return builder


def build_character(
    tables,
    character_class: CharacterClass,
    species: SpeciesSelection,
    background: BackgroundSelection,
    scores: Dict[Ability, int],
    increases: Dict[Ability, int],
    overrides: Optional[Dict[StepKind, Any]] = None,
):
    builder = start_builder(tables, character_class, species, background, scores, increases)
    for kind, choice in (overrides or {}).items():
        if builder.find_step(kind) is not None and kind not in builder.staged:
            stage(builder, kind, choice)
    fill_remaining(builder, overrides)
    return builder.build("char-1", "player-1", TIMESTAMP)


def level_up(character, tables, overrides: Optional[Dict[StepKind, Any]] = None):
    """Advance one level, answering every step not overridden with its default."""
    overrides = overrides or {}
    known = ProgressState.from_character(character)
    choices: Dict[StepKind, Any] = {}
    for _ in range(len(StepKind)):
        steps = plan_steps(character.character_class, character.level + 1, known, tables, staged=choices)
        pending = [s for s in steps if not s.informational and s.kind not in choices]
        if not pending:
            break
        step = pending[0]
        choices[step.kind] = overrides[step.kind] if step.kind in overrides else default_choice(step)
    result = apply_level_up(character, choices, tables, TIMESTAMP)
    assert result, result.validation.errors
    return result.character


@pytest.fixture
def fighter(tables):
    """Level 1 dwarf soldier fighter with Dueling and a longsword."""
    return build_character(
        tables,
        CharacterClass.FIGHTER,
        SpeciesSelection(Species.DWARF),
        BackgroundSelection("soldier"),
        MARTIAL_ARRAY,
        {Ability.STRENGTH: 2, Ability.CONSTITUTION: 1},
        overrides={
            StepKind.SKILLS: [Skill.PERCEPTION, Skill.SURVIVAL],
            StepKind.FIGHTING_STYLE: FightingStyleChoice("dueling"),
            StepKind.WEAPON_MASTERY: ["Longsword", "Greatsword", "Javelin"],
            StepKind.EQUIPMENT: EquipmentSelection(
                armor="Chain Mail", weapons=["Longsword", "Javelin", "Javelin"], items=["Dungeoneer's Pack"], gold=18,
            ),
        },
    )


@pytest.fixture
def wizard(tables):
    """Level 1 dwarf hermit wizard: INT 15, CON 15, WIS 14."""
    return build_character(
        tables,
        CharacterClass.WIZARD,
        SpeciesSelection(Species.DWARF),
        BackgroundSelection("hermit"),
        CASTER_ARRAY,
        {Ability.WISDOM: 2, Ability.CONSTITUTION: 1},
        overrides={StepKind.SKILLS: [Skill.ARCANA, Skill.HISTORY]},
    )
