"""
Validation for character creation and level-up inputs.

Validators never raise for bad player input: each returns a ValidationResult
with its errors and warnings. Unknown rule keys are data errors and still
raise from the rule tables.

Usage:
    from validation import CharacterValidator, ValidationResult

    validator = CharacterValidator(tables)

    # Validate ability scores
    result = validator.validate_ability_scores(scores, AbilityMethod.POINT_BUY)
    if not result.valid:
        print(result.errors)

    # Validate a complete character
    result = validator.validate_character(character)
"""

from dataclasses import dataclass, field
from typing import Dict, List, Optional, Set

from ability_scores import origin_bonus_pattern_ok, point_buy_cost
from dnd_constants import (
    ABILITY_SCORE_CAP,
    MAX_LEVEL,
    MIN_LEVEL,
    POINT_BUY_BUDGET,
    POINT_BUY_MAX,
    POINT_BUY_MIN,
    STANDARD_ARRAY,
    Ability,
    AbilityMethod,
)


@dataclass
class ValidationResult:
    """Result of a validation check."""
    valid: bool = True
    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)

    def add_error(self, message: str):
        """Add an error and mark as invalid."""
        self.errors.append(message)
        self.valid = False

    def add_warning(self, message: str):
        """Add a warning (doesn't affect validity)."""
        self.warnings.append(message)

    def merge(self, other: "ValidationResult"):
        """Merge another result into this one."""
        if not other.valid:
            self.valid = False
        self.errors.extend(other.errors)
        self.warnings.extend(other.warnings)

    def __bool__(self) -> bool:
        return self.valid


# =============================================================================
# SELECTION HELPERS
# =============================================================================

def validate_selection(
    chosen: List[str],
    options: List[str],
    count: int,
    label: str,
    already: Optional[Set[str]] = None,
) -> ValidationResult:
    """Exactly ``count`` distinct picks, all from ``options``, none already acquired."""
    result = ValidationResult()
    already = already or set()

    if len(chosen) != count:
        result.add_error(f"{label}: choose exactly {count}, got {len(chosen)}")
    if len(set(chosen)) != len(chosen):
        result.add_error(f"{label}: cannot choose the same option twice")
    for option in chosen:
        if option not in options:
            result.add_error(f"{label}: '{option}' is not a valid option")
        elif option in already:
            result.add_error(f"{label}: '{option}' is already known")
    return result


def validate_nested_choices(
    definitions,
    answers: Dict[str, List[str]],
    tables,
    label: str,
    already: Optional[Set[str]] = None,
) -> ValidationResult:
    """
    Check the answers to a rules element's nested choices.

    Every definition must be answered with exactly its count; answers to
    choices the element does not offer are rejected.
    """
    result = ValidationResult()
    offered = {definition.id for definition in definitions}
    for unknown in sorted(set(answers) - offered):
        result.add_error(f"{label}: unexpected choice '{unknown}'")
    for definition in definitions:
        result.merge(validate_selection(
            list(answers.get(definition.id, [])),
            tables.choice_options(definition),
            definition.count,
            f"{label} / {definition.name}",
            already,
        ))
    return result


class CharacterValidator:
    """
    Validates ability scores, origin bonuses, ASIs and finished characters
    against the loaded rule tables.
    """

    def __init__(self, tables):
        self.tables = tables

    # =========================================================================
    # ABILITY SCORE VALIDATION
    # =========================================================================

    def validate_ability_scores(
        self,
        scores: Dict[Ability, int],
        method: AbilityMethod = AbilityMethod.STANDARD_ARRAY,
    ) -> ValidationResult:
        """
        Validate base ability scores for a generation method.

        Args:
            scores: Dict mapping Ability to base score
            method: standard_array, point_buy or rolled

        Returns:
            ValidationResult
        """
        result = ValidationResult()

        missing = [a.value for a in Ability if a not in scores]
        if missing:
            result.add_error(f"Missing ability scores: {', '.join(missing)}")
            return result

        for ability, value in scores.items():
            if not isinstance(value, int) or isinstance(value, bool):
                result.add_error(f"{ability.value} must be an integer, got {type(value).__name__}")
        if not result.valid:
            return result

        if method is AbilityMethod.POINT_BUY:
            result.merge(self._validate_point_buy(scores))
        elif method is AbilityMethod.STANDARD_ARRAY:
            if sorted(scores.values()) != sorted(STANDARD_ARRAY):
                result.add_error(
                    f"Standard array values must be {STANDARD_ARRAY} used once each; "
                    f"got {[scores[a] for a in Ability]}"
                )
        elif method is AbilityMethod.ROLLED:
            for ability, value in scores.items():
                if not 3 <= value <= 18:
                    result.add_error(f"Rolled {ability.value} must be between 3 and 18 (got {value})")
        return result

    def _validate_point_buy(self, scores: Dict[Ability, int]) -> ValidationResult:
        result = ValidationResult()
        for ability, value in scores.items():
            if value < POINT_BUY_MIN:
                result.add_error(f"Point buy: {ability.value} cannot be below {POINT_BUY_MIN} (got {value})")
            elif value > POINT_BUY_MAX:
                result.add_error(f"Point buy: {ability.value} cannot exceed {POINT_BUY_MAX} (got {value})")
        if not result.valid:
            return result

        total_cost = point_buy_cost(scores)
        if total_cost > POINT_BUY_BUDGET:
            result.add_error(f"Point buy: spent {total_cost} points (max {POINT_BUY_BUDGET})")
        elif total_cost < POINT_BUY_BUDGET:
            result.add_warning(f"Point buy: only spent {total_cost} of {POINT_BUY_BUDGET} points")
        return result

    def validate_origin_bonus(self, increases: Dict[Ability, int], background_id: str) -> ValidationResult:
        """+2/+1 or +1/+1/+1, drawn only from the background's three abilities."""
        result = ValidationResult()
        background = self.tables.get_background(background_id)
        if not origin_bonus_pattern_ok(increases):
            result.add_error("Origin bonus must be +2 and +1 to different abilities, or +1 to three abilities")
        for ability, amount in increases.items():
            if amount and ability not in background.abilities:
                result.add_error(f"{background.name} cannot raise {ability.value}")
        return result

    # =========================================================================
    # ABILITY SCORE IMPROVEMENT
    # =========================================================================

    def validate_asi(self, mode: str, abilities: List[Ability], scores: Dict[Ability, int]) -> ValidationResult:
        """+2 to one ability or +1 to two different ones; warns when the cap wastes points."""
        result = ValidationResult()
        if mode == "+2":
            if len(abilities) != 1:
                result.add_error("A +2 increase names exactly one ability")
        elif mode == "+1/+1":
            if len(abilities) != 2:
                result.add_error("A +1/+1 increase names exactly two abilities")
            elif abilities[0] == abilities[1]:
                result.add_error("The two +1 increases must go to different abilities")
        else:
            result.add_error(f"Unknown improvement mode: {mode}")
            return result

        for ability in abilities:
            if scores.get(ability, 0) >= ABILITY_SCORE_CAP:
                result.add_warning(f"{ability.value} is already {ABILITY_SCORE_CAP}; the increase is lost")
        return result

    def validate_feat(
        self,
        feat_id: str,
        ability: Optional[Ability],
        answers: Dict[str, List[str]],
        scores: Dict[Ability, int],
        level: int,
        known_feats: List[str],
        origin_only: bool = False,
    ) -> ValidationResult:
        """Availability, prerequisites, repeatability, ability option and nested choices."""
        result = ValidationResult()
        if feat_id not in self.tables.feats:
            result.add_error(f"Unknown feat: {feat_id}")
            return result
        feat = self.tables.get_feat(feat_id)

        if origin_only and not feat.is_origin:
            result.add_error(f"{feat.name} is not an origin feat")
        if not feat.meets_prerequisites(scores, level):
            result.add_error(f"{feat.name} prerequisites are not met")
        if feat_id in known_feats and not feat.repeatable:
            result.add_error(f"{feat.name} has already been taken")

        if feat.ability_options:
            if ability is None:
                result.add_error(f"{feat.name}: choose an ability to increase")
            elif ability not in feat.ability_options:
                result.add_error(f"{feat.name} cannot increase {ability.value}")
        elif ability is not None:
            result.add_error(f"{feat.name} does not increase an ability")

        result.merge(validate_nested_choices(feat.choices, answers, self.tables, feat.name))
        return result

    # =========================================================================
    # COMPLETE CHARACTER VALIDATION
    # =========================================================================

    def validate_character(self, character) -> ValidationResult:
        """Check the record-level invariants of a finished Character."""
        result = ValidationResult()

        if not character.name:
            result.add_error("Missing required field: name")
        if not MIN_LEVEL <= character.level <= MAX_LEVEL:
            result.add_error(f"Invalid level: {character.level}")

        class_def = self.tables.get_class(character.character_class)
        species_def = self.tables.get_species(character.species)
        if character.background not in self.tables.backgrounds:
            result.add_error(f"Unknown background: {character.background}")
        if character.lineage and not species_def.get_lineage(character.lineage):
            result.add_error(f"{species_def.name} has no lineage '{character.lineage}'")
        if species_def.has_lineages and not character.lineage:
            result.add_error(f"{species_def.name} requires a {species_def.lineage_label.lower()}")

        if character.subclass:
            if not class_def.get_subclass(character.subclass.id):
                result.add_error(f"{class_def.name} has no subclass '{character.subclass.id}'")
            elif character.level < class_def.progression.subclass_level:
                result.add_error(
                    f"{class_def.name} subclasses unlock at level {class_def.progression.subclass_level}"
                )

        for ability, score in character.ability_scores.as_dict().items():
            if score > ABILITY_SCORE_CAP:
                result.add_warning(f"{ability.value} is above {ABILITY_SCORE_CAP} ({score})")
            if score < 1:
                result.add_error(f"{ability.value} cannot be less than 1 (got {score})")

        if character.hit_points.max < 1:
            result.add_error(f"Max HP must be at least 1 (got {character.hit_points.max})")
        if character.hit_dice.total != character.level:
            result.add_error(
                f"Hit dice total ({character.hit_dice.total}) must equal level ({character.level})"
            )

        for resource_id, pool in character.resources.items():
            if pool.used > pool.max:
                result.add_warning(f"Resource {resource_id} has {pool.used} used of {pool.max}")

        for name in list(character.cantrips) + list(character.spells):
            if name not in self.tables.spells:
                result.add_error(f"Unknown spell: {name}")
            elif name not in character.spell_sources:
                result.add_warning(f"Spell {name} has no recorded source")

        for feat_id in character.feats:
            if feat_id not in self.tables.feats:
                result.add_error(f"Unknown feat: {feat_id}")
        return result
