"""
Resource Formula Engine.

Classes, subclasses, species, lineages and feats declare limited-use pools as
``ResourceFormula`` entries in the rule data. ``compute_resources`` evaluates
every formula that applies to a character and returns the maxima with their
restore triggers. ``merge_resource_usage`` carries spent uses across a
recomputation (used counters are clamped to the new maximum).
"""

from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional
import logging

from ability_scores import ability_modifier, proficiency_bonus
from character_model import ResourceUse
from core import ResourceFormula, RuleTables, level_table_value
from dnd_constants import Ability, CharacterClass, RestType, Species
from exceptions import RuleDataError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ResourceMax:
    max: int
    restore: RestType
    name: str = ""


def evaluate_formula(formula: ResourceFormula, level: int, scores: Dict[Ability, int]) -> int:
    """Maximum uses granted by one formula at ``level`` (0 when not yet unlocked)."""
    if level < formula.min_level:
        return 0
    if formula.kind == "fixed":
        return formula.value
    if formula.kind == "table":
        return level_table_value(formula.table, level)
    if formula.kind == "ability":
        modifier = ability_modifier(scores.get(formula.ability, 10)) if formula.ability else 0
        return max(formula.minimum, modifier)
    if formula.kind == "level":
        return level * formula.multiplier
    if formula.kind == "proficiency":
        return proficiency_bonus(level)
    raise RuleDataError(
        f"Unknown resource formula kind: {formula.kind}", {"resource": formula.id, "kind": formula.kind},
    )


def restore_trigger(formula: ResourceFormula, level: int) -> RestType:
    return level_table_value(formula.restore_by_level, level, formula.restore)


def applicable_formulas(
    character_class: CharacterClass,
    species: Species,
    feat_names: Iterable[str],
    tables: RuleTables,
    subclass: Optional[str] = None,
    lineage: Optional[str] = None,
) -> List[ResourceFormula]:
    definition = tables.get_class(character_class)
    formulas = list(definition.resources)
    if subclass:
        subclass_def = definition.get_subclass(subclass)
        if subclass_def:
            formulas.extend(subclass_def.grants.resources)
    species_def = tables.get_species(species)
    formulas.extend(species_def.grants.resources)
    lineage_def = species_def.get_lineage(lineage)
    if lineage_def:
        formulas.extend(lineage_def.grants.resources)
    for feat_id in feat_names:
        formulas.extend(tables.get_feat(feat_id).grants.resources)
    return formulas


def compute_resources(
    character_class: CharacterClass,
    species: Species,
    level: int,
    ability_scores: Dict[Ability, int],
    feat_names: Iterable[str],
    tables: RuleTables,
    subclass: Optional[str] = None,
    lineage: Optional[str] = None,
) -> Dict[str, ResourceMax]:
    """
    Resource id -> ResourceMax for every pool the character has at ``level``.

    Pools that evaluate to zero are omitted. A repeated feat does not stack its pool.
    """
    pools: Dict[str, ResourceMax] = {}
    unique_feats = list(dict.fromkeys(feat_names))
    for formula in applicable_formulas(
        character_class, species, unique_feats, tables, subclass=subclass, lineage=lineage
    ):
        maximum = evaluate_formula(formula, level, ability_scores)
        if maximum <= 0:
            continue
        pools[formula.id] = ResourceMax(
            max=maximum,
            restore=restore_trigger(formula, level),
            name=formula.name,
        )
    return pools


def merge_resource_usage(
    previous: Dict[str, ResourceUse],
    maxima: Dict[str, ResourceMax],
) -> Dict[str, ResourceUse]:
    """
    New resource map for recomputed maxima.

    Existing pools keep their ``used`` count, clamped to the new maximum; new
    pools start unused; pools absent from ``maxima`` are dropped.
    """
    merged: Dict[str, ResourceUse] = {}
    for resource_id, pool in maxima.items():
        used = previous[resource_id].used if resource_id in previous else 0
        if used > pool.max:
            logger.warning(
                "Clamping used count of %s from %d to new maximum %d", resource_id, used, pool.max
            )
            used = pool.max
        merged[resource_id] = ResourceUse(used=used, max=pool.max, restore=pool.restore)
    return merged
