"""
Character import and export.

A Character is exported as its ``to_dict()`` record plus a format version and
export time. Import checks the required fields and the ranges the record may
hold before building the Character; a record with any problem is rejected as a
whole with one FieldError per problem found.

Usage:
    from character_io import dumps_character, loads_character

    text = dumps_character(character)
    result = loads_character(text, tables)
    if not result:
        for error in result.errors:
            print(error.field, error.reason)
"""

import json
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from character_model import Character
from core import RuleTables
from dnd_constants import (
    IMPORT_ABILITY_MAX,
    IMPORT_ABILITY_MIN,
    MAX_LEVEL,
    MIN_LEVEL,
    Ability,
    CharacterClass,
    Species,
)

logger = logging.getLogger(__name__)

EXPORT_VERSION = 1
REQUIRED_FIELDS = ("name", "character_class", "species", "level")


@dataclass
class FieldError:
    field: str
    reason: str


@dataclass
class ImportResult:
    character: Optional[Character] = None
    errors: List[FieldError] = field(default_factory=list)

    def __bool__(self) -> bool:
        return self.character is not None and not self.errors


def export_character(character: Character, exported_at: str = "") -> Dict[str, Any]:
    """The Character record with the export envelope fields."""
    data = character.to_dict()
    data["version"] = EXPORT_VERSION
    data["exported_at"] = exported_at
    return data


def _is_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def _check_record(data: Dict[str, Any], tables: Optional[RuleTables]) -> List[FieldError]:
    errors: List[FieldError] = []

    for name in REQUIRED_FIELDS:
        if data.get(name) in (None, ""):
            errors.append(FieldError(name, "required field is missing"))

    level = data.get("level")
    if level is not None:
        if not _is_int(level):
            errors.append(FieldError("level", f"must be an integer, got {level!r}"))
        elif not MIN_LEVEL <= level <= MAX_LEVEL:
            errors.append(FieldError("level", f"must be between {MIN_LEVEL} and {MAX_LEVEL}, got {level}"))

    class_id = data.get("character_class")
    if class_id:
        if class_id not in {c.value for c in CharacterClass}:
            errors.append(FieldError("character_class", f"unknown class '{class_id}'"))
        elif tables is not None and CharacterClass(class_id) not in tables.classes:
            errors.append(FieldError("character_class", f"class '{class_id}' has no rule data"))

    species_id = data.get("species")
    if species_id:
        if species_id not in {s.value for s in Species}:
            errors.append(FieldError("species", f"unknown species '{species_id}'"))
        elif tables is not None and Species(species_id) not in tables.species:
            errors.append(FieldError("species", f"species '{species_id}' has no rule data"))

    scores = data.get("ability_scores")
    if not isinstance(scores, dict):
        errors.append(FieldError("ability_scores", "required field is missing"))
        return errors
    # Every score is checked on its own so each bad one is reported
    for ability in Ability:
        key = f"ability_scores.{ability.value}"
        value = scores.get(ability.value)
        if value is None:
            errors.append(FieldError(key, "required field is missing"))
        elif not _is_int(value):
            errors.append(FieldError(key, f"must be an integer, got {value!r}"))
        elif not IMPORT_ABILITY_MIN <= value <= IMPORT_ABILITY_MAX:
            errors.append(FieldError(
                key, f"must be between {IMPORT_ABILITY_MIN} and {IMPORT_ABILITY_MAX}, got {value}",
            ))
    return errors


def import_character(data: Any, tables: Optional[RuleTables] = None) -> ImportResult:
    """
    Restore a Character from an exported record.

    Args:
        data: The record, as produced by export_character
        tables: When given, class and species must also exist in the rule data

    Returns:
        ImportResult with the Character, or with the field errors and no Character
    """
    if not isinstance(data, dict):
        errors = [FieldError("record", f"expected an object, got {type(data).__name__}")]
    else:
        errors = _check_record(data, tables)

    if not errors:
        try:
            return ImportResult(character=Character.from_dict(data))
        except (KeyError, ValueError, TypeError, AttributeError) as e:
            errors = [FieldError("record", f"malformed record: {e}")]

    logger.warning(
        "Rejected character import: %s",
        "; ".join(f"{error.field}: {error.reason}" for error in errors),
    )
    return ImportResult(errors=errors)


def dumps_character(character: Character, exported_at: str = "") -> str:
    return json.dumps(export_character(character, exported_at), indent=2)


def loads_character(text: str, tables: Optional[RuleTables] = None) -> ImportResult:
    try:
        data = json.loads(text)
    except json.JSONDecodeError as e:
        logger.warning("Rejected character import: not valid JSON (%s)", e)
        return ImportResult(errors=[FieldError("record", f"not valid JSON: {e}")])
    return import_character(data, tables)
