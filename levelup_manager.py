"""
Level Up Manager - Core logic for character advancement.

``apply_level_up(character, choices, tables, timestamp)`` is the Level-Up
Applier: it validates the choices for the N -> N+1 transition against the
planner and returns a new Character. The input Character is never modified.
Recomputation is incremental: only what the new level and the new choices
touch is replaced, plus the retroactive hit point terms.

LevelUpManager wraps this for callers that work with character files.

Usage:
    from levelup_manager import LevelUpManager

    manager = LevelUpManager()
    manager.load_character("character.json")

    # Get what's required at next level
    options = manager.get_level_up_options()

    # Apply level up with choices
    manager.level_up({
        StepKind.HIT_POINTS: HitPointChoice(),
        StepKind.ASI_OR_FEAT: AsiChoice("+2", [Ability.CONSTITUTION]),
    })

    # Save
    manager.save_character("character.json")
"""

import copy
import json
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Dict, List, Any, Optional, Tuple
import logging

from ability_scores import apply_bonuses
from character_builder import PlanningSession, SessionState, prune_choice
from character_calculator import (
    add_spell,
    apply_expertise,
    apply_granted_spells,
    apply_proficiencies,
    average_hit_die,
    character_resources,
    feature_catalog,
    feature_context,
    grant_sources,
    hit_point_gain,
    merge_feat_choices,
    per_level_hp_bonus,
    refresh_derived,
)
from character_io import export_character, import_character
from character_model import AbilityScores, Character, FeatureEntry, LevelUpRecord, SubclassSelection
from core import RuleTables, load_rule_tables
from dnd_constants import MAX_LEVEL, XP_TABLE, Ability, HitPointMethod, Skill
from exceptions import SessionStateError
from feature_text import render_description
from resources import merge_resource_usage
from selections import (
    AsiChoice,
    FightingStyleChoice,
    HitPointChoice,
    InvocationChoice,
    PactBoonChoice,
)
from step_planner import (
    PlanContext,
    ProgressState,
    Step,
    StepKind,
    asi_ability_bonus,
    plan_steps,
    validate_choice,
)
from validation import CharacterValidator, ValidationResult

logger = logging.getLogger(__name__)


@dataclass
class LevelUpResult:
    """The new Character, or None with the reasons the choices were rejected."""
    character: Optional[Character]
    validation: ValidationResult = field(default_factory=ValidationResult)

    def __bool__(self) -> bool:
        return self.character is not None


@dataclass
class LevelUpOptions:
    """What the next level requires."""
    current_level: int
    new_level: int
    hit_die: int
    average_hit_points: int
    grants_ability_increase: bool
    steps: List[Step] = field(default_factory=list)
    new_features: List[str] = field(default_factory=list)


# =============================================================================
# HIT POINTS
# =============================================================================

def hit_point_increase(
    hit_die: int,
    old_con_modifier: int,
    new_con_modifier: int,
    previous_level: int,
    old_per_level_bonus: int = 0,
    new_per_level_bonus: int = 0,
    method: HitPointMethod = HitPointMethod.AVERAGE,
    roll: Optional[int] = None,
) -> int:
    """
    Hit points gained on reaching ``previous_level + 1``.

    The new level's die with the CON modifier held before the level (at least
    1) and the new per-level bonus, plus the retroactive terms: a CON modifier
    change applies to every level attained including this one, a per-level
    bonus change to every level already held.
    """
    new_level = previous_level + 1
    gain = hit_point_gain(hit_die, old_con_modifier, method, roll) + new_per_level_bonus
    gain += (new_con_modifier - old_con_modifier) * new_level
    gain += (new_per_level_bonus - old_per_level_bonus) * previous_level
    return gain


# =============================================================================
# APPLIER
# =============================================================================

def level_up_context(character: Character, choices: Dict[StepKind, Any], tables: RuleTables) -> PlanContext:
    return PlanContext(
        character_class=character.character_class,
        target_level=character.level + 1,
        known=ProgressState.from_character(character),
        tables=tables,
        staged=dict(choices),
    )


def validate_level_up(character: Character, choices: Dict[StepKind, Any], tables: RuleTables) -> ValidationResult:
    """Every required step answered and valid, and nothing answered that is not required."""
    result = ValidationResult()
    if character.level >= MAX_LEVEL:
        result.add_error(f"{character.name} is already level {MAX_LEVEL}")
        return result

    ctx = level_up_context(character, choices, tables)
    steps = plan_steps(ctx.character_class, ctx.target_level, ctx.known, tables, staged=choices)
    planned = {step.kind for step in steps}
    for kind in choices:
        if kind not in planned:
            result.add_error(f"{kind.value} is not part of this level-up")
    for step in steps:
        result.merge(validate_choice(step, choices.get(step.kind), ctx))
    return result


def _summarize(value: Any) -> Any:
    """JSON-friendly form of a step choice for the level history."""
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, list):
        return [_summarize(v) for v in value]
    if isinstance(value, AsiChoice):
        return value.summary()
    if isinstance(value, HitPointChoice):
        return {"method": value.method.value, "roll": value.roll}
    if isinstance(value, SubclassSelection):
        return value.to_dict()
    if isinstance(value, FightingStyleChoice):
        return {"style": value.style, "choices": dict(value.choices)}
    if isinstance(value, PactBoonChoice):
        return {"boon": value.boon, "choices": dict(value.choices)}
    if isinstance(value, InvocationChoice):
        return {"invocations": list(value.invocations), "choices": dict(value.choices)}
    return value


def _apply_class_options(character: Character, choices: Dict[StepKind, Any]) -> None:
    if StepKind.SUBCLASS in choices:
        selection: SubclassSelection = choices[StepKind.SUBCLASS]
        merged = {}
        if character.subclass and character.subclass.id == selection.id:
            merged = {k: list(v) for k, v in character.subclass.choices.items()}
        merged.update({k: list(v) for k, v in selection.choices.items() if k not in merged})
        character.subclass = SubclassSelection(id=selection.id, choices=merged)
    if StepKind.FIGHTING_STYLE in choices:
        style: FightingStyleChoice = choices[StepKind.FIGHTING_STYLE]
        character.fighting_style = style.style
        character.fighting_style_choices = {k: list(v) for k, v in style.choices.items()}
    if StepKind.DIVINE_ORDER in choices:
        character.divine_order = choices[StepKind.DIVINE_ORDER]
    if StepKind.PRIMAL_ORDER in choices:
        character.primal_order = choices[StepKind.PRIMAL_ORDER]
    if StepKind.PACT_BOON in choices:
        boon: PactBoonChoice = choices[StepKind.PACT_BOON]
        character.pact_boon = boon.boon
        character.pact_boon_choices = {k: list(v) for k, v in boon.choices.items()}
    if StepKind.WEAPON_MASTERY in choices:
        character.weapon_masteries.extend(choices[StepKind.WEAPON_MASTERY])
    if StepKind.PRIMAL_KNOWLEDGE in choices:
        character.primal_knowledge_skill = choices[StepKind.PRIMAL_KNOWLEDGE]
    if StepKind.METAMAGIC in choices:
        character.metamagic.extend(choices[StepKind.METAMAGIC])
    if StepKind.INVOCATIONS in choices:
        invocations: InvocationChoice = choices[StepKind.INVOCATIONS]
        character.invocations.extend(invocations.invocations)
        for invocation_id, answers in invocations.choices.items():
            character.invocation_choices[invocation_id] = {k: list(v) for k, v in answers.items()}


def _merge_features(character: Character, tables: RuleTables, sources) -> List[str]:
    """Re-render the existing feature entries and append the new ones; returns the new names."""
    context = feature_context(character, tables)
    catalog: Dict[Tuple[str, str], List[FeatureEntry]] = {}
    for entry in feature_catalog(character, tables, sources):
        catalog.setdefault((entry.source, entry.id), []).append(entry)

    merged: List[FeatureEntry] = []
    for entry in character.features:
        templates = catalog.get((entry.source, entry.id))
        if templates:
            template = templates.pop(0)
            entry = FeatureEntry(
                id=entry.id, name=entry.name, source=entry.source,
                description=render_description(template.description, context), level=entry.level,
            )
        merged.append(entry)

    gained = []
    for entries in catalog.values():
        for entry in entries:
            entry.description = render_description(entry.description, context)
            merged.append(entry)
            gained.append(entry.name)
    character.features = merged
    return gained


def apply_level_up(
    character: Character,
    choices: Dict[StepKind, Any],
    tables: RuleTables,
    timestamp: str = "",
) -> LevelUpResult:
    """
    Advance ``character`` one level with the step choices of the transition.

    Returns LevelUpResult(None, errors) when the choices do not match the
    planner's required steps; the input Character is untouched either way.
    """
    choices = {
        kind: prune_choice(kind, value, tables, character.character_class)
        for kind, value in choices.items()
    }
    validation = validate_level_up(character, choices, tables)
    if not validation.valid:
        logger.debug("Level-up of %s rejected: %s", character.name, "; ".join(validation.errors))
        return LevelUpResult(character=None, validation=validation)

    class_def = tables.get_class(character.character_class)
    previous_level = character.level
    old_con = character.modifier(Ability.CONSTITUTION)
    old_bonus = per_level_hp_bonus(grant_sources(character, tables))

    updated = copy.deepcopy(character)
    updated.level = previous_level + 1
    updated.hit_dice.total += 1
    updated.hit_dice.remaining += 1

    asi: Optional[AsiChoice] = choices.get(StepKind.ASI_OR_FEAT)
    if asi is not None:
        scores = apply_bonuses(updated.ability_scores.as_dict(), asi_ability_bonus(asi, tables))
        updated.ability_scores = AbilityScores.from_scores(scores)
        if asi.mode == "feat" and asi.feat:
            updated.feats.append(asi.feat.feat_id)
            merge_feat_choices(updated.feat_choices, asi.feat)

    _apply_class_options(updated, choices)
    sources = grant_sources(updated, tables)
    apply_proficiencies(updated, sources)
    apply_expertise(updated, [Skill(s) for s in choices.get(StepKind.EXPERTISE, [])])

    for name in list(choices.get(StepKind.CANTRIPS, [])) + list(choices.get(StepKind.SPELLS, [])):
        add_spell(updated, name, "class", tables)
    apply_granted_spells(updated, sources, tables)

    hp_choice: HitPointChoice = choices.get(StepKind.HIT_POINTS, HitPointChoice())
    gain = hit_point_increase(
        class_def.hit_die,
        old_con,
        updated.modifier(Ability.CONSTITUTION),
        previous_level,
        old_bonus,
        per_level_hp_bonus(sources),
        hp_choice.method,
        hp_choice.roll,
    )
    updated.hit_points.max = max(1, updated.hit_points.max + gain)
    updated.hit_points.current = min(updated.hit_points.max, updated.hit_points.current + gain)

    updated.resources = merge_resource_usage(character.resources, character_resources(updated, tables))
    refresh_derived(updated, tables, sources)
    gained = _merge_features(updated, tables, sources)

    updated.level_history.append(LevelUpRecord(
        level=updated.level,
        hp_gained=gain,
        hit_point_method=hp_choice.method,
        roll=hp_choice.roll,
        choices={kind.value: _summarize(value) for kind, value in choices.items()},
        features=gained,
        timestamp=timestamp,
    ))
    updated.updated_at = timestamp

    logger.info(
        "%s advanced to %s level %d (+%d HP, %d new features)",
        updated.name, class_def.name, updated.level, gain, len(gained),
    )
    return LevelUpResult(character=updated, validation=validation)


# =============================================================================
# SESSION
# =============================================================================

class LevelUpSession(PlanningSession):
    """Walks the steps of one N -> N+1 transition, then commits through apply_level_up."""

    def __init__(self, character: Character, tables: RuleTables):
        self.character = character
        super().__init__(SessionState(
            tables=tables,
            known=ProgressState.from_character(character),
            target_level=character.level + 1,
            character_class=character.character_class,
        ))

    def commit(self, timestamp: str = "") -> LevelUpResult:
        if not self.is_complete():
            missing = ", ".join(step.kind.value for step in self.missing_steps())
            raise SessionStateError("Level-up is not complete", {"missing": missing})
        return apply_level_up(self.character, self.staged, self.tables, timestamp)


# =============================================================================
# MANAGER
# =============================================================================

class LevelUpManager:
    """
    Manages character level advancement.

    This class is designed to be interface-agnostic - it handles all the
    logic and calculations, while the actual UI is handled elsewhere.
    """

    def __init__(self, data_dir: Optional[str] = None, tables: Optional[RuleTables] = None):
        """
        Initialize the level up manager.

        Args:
            data_dir: Rule data directory (defaults to the packaged rule data)
            tables: Already loaded rule tables, used instead of data_dir
        """
        self.tables = tables or load_rule_tables(data_dir)
        self.character: Optional[Character] = None
        self.validator = CharacterValidator(self.tables)
        self.last_validation: Optional[ValidationResult] = None

    def load_character(self, filepath: str) -> bool:
        """
        Load a character from a JSON file.

        Args:
            filepath: Path to the character JSON file

        Returns:
            True if successful, False otherwise
        """
        try:
            with open(filepath, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            logger.warning("Could not read character file %s: %s", filepath, e)
            self.last_validation = ValidationResult(valid=False, errors=[str(e)])
            return False
        return self.load_character_from_dict(data)

    def load_character_from_dict(self, data: Dict[str, Any]) -> bool:
        """
        Load a character from a dictionary.

        Args:
            data: Exported character record

        Returns:
            True if successful, False otherwise
        """
        result = import_character(data, self.tables)
        if not result:
            self.last_validation = ValidationResult(
                valid=False, errors=[f"{e.field}: {e.reason}" for e in result.errors],
            )
            return False
        self.character = result.character
        self.last_validation = self.validator.validate_character(self.character)
        return True

    def save_character(self, filepath: str, timestamp: Optional[str] = None) -> bool:
        """
        Save the character to a JSON file.

        Args:
            filepath: Path to save the character JSON file

        Returns:
            True if successful, False otherwise
        """
        if not self.character:
            return False
        try:
            with open(filepath, "w", encoding="utf-8") as f:
                json.dump(export_character(self.character, timestamp or _now()), f, indent=2)
        except OSError as e:
            logger.warning("Could not write character file %s: %s", filepath, e)
            return False
        return True

    def get_character_dict(self) -> Optional[Dict[str, Any]]:
        """Get the character as a dictionary."""
        if not self.character:
            return None
        return self.character.to_dict()

    @property
    def current_level(self) -> int:
        """Get the character's current level."""
        if not self.character:
            return 0
        return self.character.level

    @property
    def current_xp(self) -> int:
        """Get the character's current XP."""
        if not self.character:
            return 0
        return self.character.experience_points

    def get_xp_for_level(self, level: int) -> int:
        """Get the cumulative XP required for a given level."""
        if level <= 1:
            return 0
        return XP_TABLE[min(level, MAX_LEVEL)]

    def get_xp_to_next_level(self, level: int) -> int:
        """Get the XP needed to advance from level to level+1 (0 at the cap)."""
        if level >= MAX_LEVEL:
            return 0
        return self.get_xp_for_level(level + 1) - self.get_xp_for_level(level)

    def get_level_for_xp(self, xp: int) -> int:
        """Calculate what level a character should be at given XP."""
        level = 1
        for lvl in range(1, MAX_LEVEL + 1):
            if xp >= XP_TABLE[lvl]:
                level = lvl
            else:
                break
        return level

    def start_session(self) -> LevelUpSession:
        if not self.character:
            raise SessionStateError("No character loaded")
        return LevelUpSession(self.character, self.tables)

    def get_level_up_options(self) -> Optional[LevelUpOptions]:
        """Steps and headline numbers for the next level, or None at the level cap."""
        if not self.character or self.character.level >= MAX_LEVEL:
            return None
        class_def = self.tables.get_class(self.character.character_class)
        new_level = self.character.level + 1
        ctx = level_up_context(self.character, {}, self.tables)
        return LevelUpOptions(
            current_level=self.character.level,
            new_level=new_level,
            hit_die=class_def.hit_die,
            average_hit_points=average_hit_die(class_def.hit_die),
            grants_ability_increase=class_def.grants_asi(new_level),
            steps=plan_steps(ctx.character_class, new_level, ctx.known, self.tables),
            new_features=[f.name for f in class_def.features_at(new_level)],
        )

    def level_up(self, choices: Dict[StepKind, Any], timestamp: Optional[str] = None) -> bool:
        """
        Apply a level up to the character.

        Args:
            choices: One choice per required step of the transition
            timestamp: ISO-8601 time recorded in the level history

        Returns:
            True if successful; the reasons for a refusal are in last_validation
        """
        if not self.character:
            return False
        result = apply_level_up(self.character, choices, self.tables, timestamp or _now())
        self.last_validation = result.validation
        if not result:
            return False
        self.character = result.character
        return True

    def get_level_summary(self) -> Dict[str, Any]:
        """Get a summary of the character's current level state."""
        if not self.character:
            return {}

        current = self.current_level
        xp = self.current_xp
        xp_for_current = self.get_xp_for_level(current)
        xp_for_next = self.get_xp_for_level(current + 1)

        return {
            "level": current,
            "xp": xp,
            "xp_for_current_level": xp_for_current,
            "xp_for_next_level": xp_for_next,
            "xp_needed": max(0, xp_for_next - xp),
            "xp_progress": xp - xp_for_current,
            "xp_required": xp_for_next - xp_for_current,
            "proficiency_bonus": self.character.proficiency_bonus,
            "hit_points": self.character.hit_points.max,
            "hit_dice": f"{self.character.hit_dice.total}d{self.character.hit_dice.die}",
            "subclass": self.character.subclass_id,
            "levels_recorded": len(self.character.level_history),
        }


def _now() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="seconds")
