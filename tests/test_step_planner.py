import pytest

from character_builder import CharacterBuilder
from character_model import SubclassSelection
from dnd_constants import Ability, CharacterClass, HitPointMethod, Skill
from exceptions import UnknownRuleKeyError
from selections import AsiChoice, HitPointChoice, InvocationChoice
from step_planner import (
    PlanContext,
    ProgressState,
    StepKind,
    dependents_of,
    invocation_options,
    plan_creation_steps,
    plan_steps,
    validate_choice,
)


def _kinds(steps):
    return [step.kind for step in steps]


# =============================================================================
# PLANS
# =============================================================================

def test_empty_creation_plan_has_only_class_independent_steps(tables):
    assert _kinds(plan_creation_steps({}, tables)) == [
        StepKind.CLASS, StepKind.SPECIES, StepKind.BACKGROUND, StepKind.ABILITY_SCORES,
        StepKind.ORIGIN_BONUS, StepKind.LANGUAGES, StepKind.DETAILS, StepKind.REVIEW,
    ]


def test_fighter_creation_plan(tables):
    steps = plan_creation_steps({StepKind.CLASS: CharacterClass.FIGHTER}, tables)
    assert _kinds(steps) == [
        StepKind.CLASS, StepKind.SPECIES, StepKind.BACKGROUND, StepKind.ABILITY_SCORES,
        StepKind.ORIGIN_BONUS, StepKind.SKILLS, StepKind.LANGUAGES, StepKind.FIGHTING_STYLE,
        StepKind.WEAPON_MASTERY, StepKind.CLASS_FEATURES, StepKind.EQUIPMENT, StepKind.DETAILS,
        StepKind.REVIEW,
    ]
    mastery = next(s for s in steps if s.kind is StepKind.WEAPON_MASTERY)
    assert mastery.count == 3
    assert "Longsword" in mastery.options


def test_plan_follows_step_kind_order(tables):
    order = list(StepKind)
    for character_class in CharacterClass:
        steps = plan_creation_steps({StepKind.CLASS: character_class}, tables)
        positions = [order.index(kind) for kind in _kinds(steps)]
        assert positions == sorted(positions)
        assert len(set(positions)) == len(positions)


def test_plan_is_deterministic(wizard, tables):
    known = ProgressState.from_character(wizard)
    first = plan_steps(CharacterClass.WIZARD, 2, known, tables)
    second = plan_steps(CharacterClass.WIZARD, 2, known, tables)
    assert first == second


def test_wizard_level_two_plan(wizard, tables):
    steps = plan_steps(CharacterClass.WIZARD, 2, ProgressState.from_character(wizard), tables)
    assert _kinds(steps) == [
        StepKind.HIT_POINTS, StepKind.SUBCLASS, StepKind.CLASS_FEATURES, StepKind.SPELLS,
        StepKind.SPELL_SLOTS, StepKind.REVIEW,
    ]
    spells = steps[3]
    assert spells.count == 2
    assert spells.title == "Add Spells to Spellbook"
    assert not set(spells.options) & set(wizard.spells)
    assert steps[1].options == ("abjurer", "evoker")
    assert steps[4].informational


def test_ability_score_improvement_planned_at_level_four(wizard, tables):
    known = ProgressState.from_character(wizard)
    steps = plan_steps(CharacterClass.WIZARD, 4, known, tables)
    asi = next(s for s in steps if s.kind is StepKind.ASI_OR_FEAT)
    assert "resilient" in asi.options
    assert "alert" not in asi.options
    cantrips = next(s for s in steps if s.kind is StepKind.CANTRIPS)
    assert cantrips.count == 1


def test_unknown_class_raises(tables):
    with pytest.raises(UnknownRuleKeyError):
        plan_steps("artificer", 1, ProgressState(), tables)


# =============================================================================
# DIVINE ORDER AND CANTRIPS
# =============================================================================

def test_thaumaturge_adds_a_cantrip(tables):
    builder = CharacterBuilder(tables)
    builder.stage(StepKind.CLASS, CharacterClass.CLERIC)
    assert builder.find_step(StepKind.DIVINE_ORDER) is not None
    assert builder.find_step(StepKind.CANTRIPS).count == 3

    assert builder.stage(StepKind.DIVINE_ORDER, "thaumaturge").valid
    cantrips = builder.find_step(StepKind.CANTRIPS)
    assert cantrips.count == 4

    assert builder.stage(StepKind.CANTRIPS, list(cantrips.options[:4])).valid
    assert builder.stage(StepKind.DIVINE_ORDER, "protector").valid
    assert StepKind.CANTRIPS not in builder.staged
    assert builder.find_step(StepKind.CANTRIPS).count == 3


def test_staged_subclass_cantrip_is_not_offered_again(tables):
    builder = CharacterBuilder(tables)
    builder.stage(StepKind.CLASS, CharacterClass.CLERIC)
    assert "Light" in builder.find_step(StepKind.CANTRIPS).options

    assert builder.stage(StepKind.SUBCLASS, SubclassSelection("light_domain")).valid
    assert "Light" not in builder.find_step(StepKind.CANTRIPS).options
    result = builder.validate(StepKind.CANTRIPS, ["Light", "Guidance", "Mending"])
    assert not result.valid
    assert any("'Light' is already known" in error for error in result.errors)


# =============================================================================
# DEPENDENCIES
# =============================================================================

def test_dependents_are_transitive_and_ordered():
    assert dependents_of(StepKind.SKILLS) == [StepKind.PRIMAL_KNOWLEDGE, StepKind.EXPERTISE]
    dependents = dependents_of(StepKind.CLASS)
    assert StepKind.EXPERTISE in dependents
    assert StepKind.CANTRIPS in dependents
    assert StepKind.CLASS not in dependents
    assert dependents == [k for k in StepKind if k in dependents]


def test_steps_without_dependents():
    assert dependents_of(StepKind.DETAILS) == []
    assert dependents_of(StepKind.REVIEW) == []


# =============================================================================
# PACTS AND INVOCATIONS
# =============================================================================

def _warlock_context(tables, target_level, **known):
    return PlanContext(
        character_class=CharacterClass.WARLOCK,
        target_level=target_level,
        known=ProgressState(level=target_level - 1, **known),
        tables=tables,
    )


def test_pact_invocations_offered_until_a_boon_is_held(tables):
    options = invocation_options(_warlock_context(tables, 2))
    assert "pact_of_the_tome" in options
    assert "armor_of_shadows" in options
    assert "gift_of_the_protectors" not in options

    options = invocation_options(_warlock_context(tables, 9, invocations=("pact_of_the_tome",)))
    assert "pact_of_the_blade" not in options
    assert "gift_of_the_protectors" in options


def test_directly_chosen_boon_unlocks_its_invocations(tables):
    options = invocation_options(_warlock_context(tables, 9, pact_boon="tome"))
    assert "gift_of_the_protectors" in options
    assert not any(option.startswith("pact_of_") for option in options)


def test_pact_boon_step_skipped_when_invocation_provides_one(tables):
    without = plan_steps(CharacterClass.WARLOCK, 3, ProgressState(level=2), tables)
    assert StepKind.PACT_BOON in _kinds(without)

    with_pact = plan_steps(
        CharacterClass.WARLOCK, 3, ProgressState(level=2, invocations=("pact_of_the_blade",)), tables,
    )
    assert StepKind.PACT_BOON not in _kinds(with_pact)


# =============================================================================
# VALIDATION
# =============================================================================

def _level_up_step(tables, character, kind):
    known = ProgressState.from_character(character)
    ctx = PlanContext(character.character_class, character.level + 1, known, tables)
    steps = plan_steps(character.character_class, character.level + 1, known, tables)
    return next(s for s in steps if s.kind is kind), ctx


def test_missing_choice_is_an_error(fighter, tables):
    step, ctx = _level_up_step(tables, fighter, StepKind.HIT_POINTS)
    result = validate_choice(step, None, ctx)
    assert not result.valid


def test_rolled_hit_points_need_a_roll(fighter, tables):
    step, ctx = _level_up_step(tables, fighter, StepKind.HIT_POINTS)
    assert not validate_choice(step, HitPointChoice(HitPointMethod.ROLL), ctx).valid
    assert validate_choice(step, HitPointChoice(HitPointMethod.ROLL, 10), ctx).valid
    average = validate_choice(step, HitPointChoice(HitPointMethod.AVERAGE, 4), ctx)
    assert average.valid
    assert average.warnings


def test_informational_steps_accept_anything(fighter, tables):
    step, ctx = _level_up_step(tables, fighter, StepKind.CLASS_FEATURES)
    assert validate_choice(step, None, ctx).valid


def test_wrong_choice_type_is_rejected(fighter, tables):
    step, ctx = _level_up_step(tables, fighter, StepKind.HIT_POINTS)
    result = validate_choice(step, 8, ctx)
    assert not result.valid
    assert "expected HitPointChoice" in result.errors[0]


def test_asi_modes(wizard, tables):
    known = ProgressState.from_character(wizard)
    ctx = PlanContext(CharacterClass.WIZARD, 4, known, tables)
    step = next(s for s in plan_steps(CharacterClass.WIZARD, 4, known, tables) if s.kind is StepKind.ASI_OR_FEAT)

    assert validate_choice(step, AsiChoice("+2", [Ability.INTELLIGENCE]), ctx).valid
    assert validate_choice(step, AsiChoice("+1/+1", [Ability.INTELLIGENCE, Ability.WISDOM]), ctx).valid
    assert not validate_choice(step, AsiChoice("+1/+1", [Ability.WISDOM, Ability.WISDOM]), ctx).valid
    assert not validate_choice(step, AsiChoice("+3", [Ability.WISDOM]), ctx).valid
    assert not validate_choice(step, AsiChoice("feat"), ctx).valid


def test_skill_choice_counts(tables):
    builder = CharacterBuilder(tables)
    builder.stage(StepKind.CLASS, CharacterClass.FIGHTER)
    assert not builder.validate(StepKind.SKILLS, [Skill.ATHLETICS]).valid
    assert not builder.validate(StepKind.SKILLS, [Skill.ATHLETICS, Skill.ATHLETICS]).valid
    assert not builder.validate(StepKind.SKILLS, [Skill.ATHLETICS, Skill.ARCANA]).valid
    assert builder.validate(StepKind.SKILLS, [Skill.ATHLETICS, Skill.PERCEPTION]).valid


def test_invocation_answers_for_unselected_invocation_are_pruned(tables):
    builder = CharacterBuilder(tables)
    builder.stage(StepKind.CLASS, CharacterClass.WARLOCK)
    choice = InvocationChoice(
        invocations=["armor_of_shadows"],
        choices={"pact_of_the_tome": {"tome_cantrips": ["Fire Bolt", "Guidance", "Druidcraft"]}},
    )
    assert builder.stage(StepKind.INVOCATIONS, choice).valid
    assert builder.staged[StepKind.INVOCATIONS].choices == {}
