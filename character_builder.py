"""
Character Builder - Orchestrates the character creation process.

A creation session walks the planner's level 1 steps:
1. Choose class, species and background
2. Determine ability scores and assign the background's increases
3. Choose skills and languages
4. Make the class decisions that exist at level 1 (subclass, fighting style,
   divine or primal order, weapon masteries, expertise, invocations, spells)
5. Choose equipment and details

Session state is an immutable SessionState value. Every change goes through
the pure ``apply_change`` transition, which also clears the choices that
depended on the changed step.

Usage:
    builder = CharacterBuilder(tables)

    builder.stage(StepKind.CLASS, CharacterClass.FIGHTER)
    builder.stage(StepKind.SPECIES, SpeciesSelection(Species.HUMAN, ...))
    ...
    builder.missing_steps()           # steps still waiting for a valid choice

    character = builder.build("char-1", "player-1", "2024-01-01T00:00:00")
"""

from dataclasses import dataclass, field, replace
from typing import Dict, List, Any, Optional
import logging

from character_calculator import compute_character
from character_model import Character, SubclassSelection
from core import RuleTables, load_rule_tables
from dnd_constants import CharacterClass
from exceptions import SessionStateError
from selections import (
    BackgroundSelection,
    CharacterSelections,
    EquipmentSelection,
    FightingStyleChoice,
    InvocationChoice,
    PactBoonChoice,
    SpeciesSelection,
)
from step_planner import (
    PlanContext,
    ProgressState,
    Step,
    StepKind,
    creation_context,
    dependents_of,
    plan_steps,
    validate_choice,
)
from validation import ValidationResult

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Change:
    """Stage ``value`` for a step; ``None`` clears the step's choice."""
    kind: StepKind
    value: Any = None


@dataclass(frozen=True)
class SessionState:
    """One point in a creation or level-up session."""
    tables: RuleTables = field(compare=False, repr=False)
    known: ProgressState = field(default_factory=ProgressState)
    target_level: int = 1
    character_class: Optional[CharacterClass] = None
    creation: bool = False
    staged: Dict[StepKind, Any] = field(default_factory=dict)
    position: int = 0

    def context(self) -> PlanContext:
        if self.creation:
            return creation_context(self.staged, self.tables)
        return PlanContext(
            character_class=self.character_class,
            target_level=self.target_level,
            known=self.known,
            tables=self.tables,
            staged=dict(self.staged),
        )

    def steps(self) -> List[Step]:
        ctx = self.context()
        return plan_steps(
            ctx.character_class, ctx.target_level, ctx.known, self.tables,
            staged=self.staged, creation=self.creation,
        )


# =============================================================================
# PURE TRANSITIONS
# =============================================================================

def _keep(answers: Dict[str, List[str]], definitions) -> Dict[str, List[str]]:
    allowed = {d.id for d in definitions}
    return {key: list(values) for key, values in answers.items() if key in allowed}


def prune_choice(kind: StepKind, value: Any, tables: RuleTables,
                 character_class: Optional[CharacterClass]) -> Any:
    """Drop nested answers that belong to options the choice no longer selects."""
    if value is None:
        return None
    options = tables.options
    if kind is StepKind.INVOCATIONS and isinstance(value, InvocationChoice):
        choices = {}
        for invocation_id in value.invocations:
            if invocation_id in value.choices and invocation_id in options.invocations:
                answers = _keep(value.choices[invocation_id], options.invocations[invocation_id].choices)
                if answers:
                    choices[invocation_id] = answers
        return InvocationChoice(invocations=list(value.invocations), choices=choices)
    if kind is StepKind.PACT_BOON and isinstance(value, PactBoonChoice) and value.boon in options.pact_boons:
        return PactBoonChoice(boon=value.boon, choices=_keep(value.choices, options.pact_boons[value.boon].choices))
    if (kind is StepKind.FIGHTING_STYLE and isinstance(value, FightingStyleChoice)
            and value.style in options.fighting_styles):
        style = options.fighting_styles[value.style]
        return FightingStyleChoice(style=value.style, choices=_keep(value.choices, style.choices))
    if kind is StepKind.SUBCLASS and isinstance(value, SubclassSelection) and character_class:
        subclass_def = tables.get_class(character_class).get_subclass(value.id)
        if subclass_def:
            return SubclassSelection(id=value.id, choices=_keep(value.choices, subclass_def.choices))
    if kind is StepKind.SPECIES and isinstance(value, SpeciesSelection):
        species_def = tables.get_species(value.species)
        lineage = species_def.get_lineage(value.lineage)
        definitions = list(species_def.choices) + (list(lineage.choices) if lineage else [])
        return replace(value, choices=_keep(value.choices, definitions))
    return value


def _class_of(state: SessionState, staged: Dict[StepKind, Any]) -> Optional[CharacterClass]:
    return staged.get(StepKind.CLASS) if state.creation else state.character_class


def apply_change(state: SessionState, change: Change) -> SessionState:
    """
    New session state with ``change`` applied.

    Staged choices that depend on the changed step are cleared (following
    STEP_DEPENDENCIES transitively), and choices for steps the new plan no
    longer contains are dropped.
    """
    staged = dict(state.staged)
    previous = staged.get(change.kind)
    value = prune_choice(change.kind, change.value, state.tables, _class_of(state, staged))

    if value is None:
        staged.pop(change.kind, None)
    else:
        staged[change.kind] = value

    if previous is not None and previous != value:
        cleared = [k for k in dependents_of(change.kind) if staged.pop(k, None) is not None]
        if cleared:
            logger.debug("Changing %s cleared %s", change.kind.value, ", ".join(k.value for k in cleared))

    candidate = replace(state, staged=staged)
    for _ in range(len(StepKind)):
        planned = {step.kind for step in candidate.steps()}
        stale = [k for k in candidate.staged if k not in planned]
        if not stale:
            break
        logger.debug("Dropping choices for steps no longer planned: %s", ", ".join(k.value for k in stale))
        candidate = replace(candidate, staged={k: v for k, v in candidate.staged.items() if k not in stale})

    steps = candidate.steps()
    position = min(candidate.position, max(0, len(steps) - 1))
    return replace(candidate, position=position)


# =============================================================================
# SESSIONS
# =============================================================================

class PlanningSession:
    """
    Navigation and staging over a SessionState.

    ``stage`` validates first and only then transitions, so a rejected choice
    leaves the session untouched.
    """

    def __init__(self, state: SessionState):
        self.state = state

    @property
    def tables(self) -> RuleTables:
        return self.state.tables

    @property
    def steps(self) -> List[Step]:
        return self.state.steps()

    @property
    def staged(self) -> Dict[StepKind, Any]:
        return dict(self.state.staged)

    @property
    def current_step(self) -> Optional[Step]:
        steps = self.steps
        if not steps:
            return None
        return steps[self.state.position]

    def find_step(self, kind: StepKind) -> Optional[Step]:
        for step in self.steps:
            if step.kind is kind:
                return step
        return None

    # -------------------------------------------------------------------------
    # Navigation
    # -------------------------------------------------------------------------

    def advance(self) -> bool:
        """Move to the next step; False when the current step is not complete yet."""
        steps = self.steps
        if self.state.position >= len(steps) - 1:
            raise SessionStateError("Already at the last step", {"position": self.state.position})
        if not self.is_step_complete(steps[self.state.position]):
            return False
        self.state = replace(self.state, position=self.state.position + 1)
        return True

    def retreat(self) -> None:
        if self.state.position == 0:
            raise SessionStateError("Already at the first step")
        self.state = replace(self.state, position=self.state.position - 1)

    def go_to(self, kind: StepKind) -> None:
        for index, step in enumerate(self.steps):
            if step.kind is kind:
                self.state = replace(self.state, position=index)
                return
        raise SessionStateError("Step is not part of this plan", {"step": kind.value})

    # -------------------------------------------------------------------------
    # Choices
    # -------------------------------------------------------------------------

    def validate(self, kind: StepKind, choice: Any) -> ValidationResult:
        step = self.find_step(kind)
        if step is None:
            raise SessionStateError("Step is not part of this plan", {"step": kind.value})
        pruned = prune_choice(kind, choice, self.tables, _class_of(self.state, self.state.staged))
        return validate_choice(step, pruned, self.state.context())

    def stage(self, kind: StepKind, choice: Any) -> ValidationResult:
        """Validate ``choice`` for the step and, when valid, apply it."""
        result = self.validate(kind, choice)
        if result.valid:
            self.state = apply_change(self.state, Change(kind, choice))
        else:
            logger.debug("Rejected %s choice: %s", kind.value, "; ".join(result.errors))
        return result

    def clear(self, kind: StepKind) -> None:
        self.state = apply_change(self.state, Change(kind, None))

    def is_step_complete(self, step: Step) -> bool:
        if step.informational:
            return True
        if step.kind not in self.state.staged:
            return False
        return validate_choice(step, self.state.staged[step.kind], self.state.context()).valid

    def missing_steps(self) -> List[Step]:
        return [step for step in self.steps if not self.is_step_complete(step)]

    def is_complete(self) -> bool:
        steps = self.steps
        planned = {step.kind for step in steps}
        if any(kind not in planned for kind in self.state.staged):
            return False
        return all(self.is_step_complete(step) for step in steps)


class CharacterBuilder(PlanningSession):
    """
    Manages the character creation process.

    Usage:
        builder = CharacterBuilder(data_dir="core/data")
        builder.stage(StepKind.CLASS, CharacterClass.CLERIC)
        builder.stage(StepKind.DIVINE_ORDER, "thaumaturge")
        builder.find_step(StepKind.CANTRIPS).count    # 4
    """

    def __init__(self, tables: Optional[RuleTables] = None, data_dir: Optional[str] = None):
        tables = tables or load_rule_tables(data_dir)
        super().__init__(SessionState(tables=tables, creation=True))

    @property
    def character_class(self) -> Optional[CharacterClass]:
        return self.state.staged.get(StepKind.CLASS)

    def starting_equipment(self) -> EquipmentSelection:
        """The staged class's starting kit plus the staged background's equipment and gold."""
        if self.character_class is None:
            raise SessionStateError("Choose a class before equipment")
        kit = self.tables.get_class(self.character_class).starting_equipment
        items = list(kit.items)
        gold = kit.gold
        background: Optional[BackgroundSelection] = self.state.staged.get(StepKind.BACKGROUND)
        if background:
            definition = self.tables.get_background(background.background)
            items.extend(definition.equipment)
            gold += definition.gold
        return EquipmentSelection(
            armor=kit.armor, shield=kit.shield, weapons=list(kit.weapons), items=items, gold=gold,
        )

    def selections(self, character_id: str, player_id: str, timestamp: str = "") -> CharacterSelections:
        """Assemble the complete selection set from the staged choices."""
        if not self.is_complete():
            missing = ", ".join(step.kind.value for step in self.missing_steps())
            raise SessionStateError("Character creation is not complete", {"missing": missing})

        staged = self.state.staged
        background: BackgroundSelection = staged[StepKind.BACKGROUND]
        fighting_style = staged.get(StepKind.FIGHTING_STYLE)
        return CharacterSelections(
            id=character_id,
            player_id=player_id,
            character_class=staged[StepKind.CLASS],
            species=staged[StepKind.SPECIES],
            background=replace(background, origin_bonus=staged.get(StepKind.ORIGIN_BONUS)),
            ability_scores=staged[StepKind.ABILITY_SCORES],
            details=staged[StepKind.DETAILS],
            skills=list(staged.get(StepKind.SKILLS, [])),
            languages=list(staged.get(StepKind.LANGUAGES, [])),
            subclass=staged.get(StepKind.SUBCLASS),
            fighting_style=fighting_style,
            divine_order=staged.get(StepKind.DIVINE_ORDER),
            primal_order=staged.get(StepKind.PRIMAL_ORDER),
            weapon_masteries=list(staged.get(StepKind.WEAPON_MASTERY, [])),
            expertise=list(staged.get(StepKind.EXPERTISE, [])),
            invocations=staged.get(StepKind.INVOCATIONS),
            cantrips=list(staged.get(StepKind.CANTRIPS, [])),
            spells=list(staged.get(StepKind.SPELLS, [])),
            equipment=staged.get(StepKind.EQUIPMENT, EquipmentSelection()),
            created_at=timestamp,
        )

    def build(self, character_id: str, player_id: str, timestamp: str = "") -> Character:
        """Compute the finished level 1 character. Raises SessionStateError when incomplete."""
        return compute_character(self.selections(character_id, player_id, timestamp), self.tables)
