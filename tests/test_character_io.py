import json

import pytest

from character_io import (
    EXPORT_VERSION,
    FieldError,
    dumps_character,
    export_character,
    import_character,
    loads_character,
)

from conftest import TIMESTAMP, level_up


def _record(character, **changes):
    data = export_character(character, TIMESTAMP)
    data.update(changes)
    return data


# =============================================================================
# EXPORT / IMPORT
# =============================================================================

def test_export_adds_envelope(fighter):
    data = export_character(fighter, TIMESTAMP)
    assert data["version"] == EXPORT_VERSION
    assert data["exported_at"] == TIMESTAMP
    assert data["character_class"] == "fighter"


def test_round_trip_preserves_character(wizard, tables):
    advanced = level_up(wizard, tables)
    result = loads_character(dumps_character(advanced, TIMESTAMP), tables)
    assert result
    assert result.errors == []
    assert result.character.to_dict() == advanced.to_dict()
    assert result.character.level_history[0].hp_gained == 7


def test_import_without_tables_skips_rule_data_check(fighter):
    result = import_character(_record(fighter))
    assert result
    assert result.character.name == fighter.name


# =============================================================================
# REJECTIONS
# =============================================================================

@pytest.mark.parametrize("field_name", ["name", "character_class", "species", "level"])
def test_missing_required_field(fighter, field_name):
    data = _record(fighter)
    del data[field_name]
    result = import_character(data)
    assert not result
    assert result.character is None
    assert FieldError(field_name, "required field is missing") in result.errors


@pytest.mark.parametrize("level, reason", [
    (0, "must be between 1 and 20, got 0"),
    (21, "must be between 1 and 20, got 21"),
    ("3", "must be an integer, got '3'"),
    (True, "must be an integer, got True"),
])
def test_level_out_of_range(fighter, level, reason):
    result = import_character(_record(fighter, level=level))
    assert result.errors == [FieldError("level", reason)]


def test_unknown_class_and_species(fighter):
    result = import_character(_record(fighter, character_class="artificer", species="kender"))
    assert FieldError("character_class", "unknown class 'artificer'") in result.errors
    assert FieldError("species", "unknown species 'kender'") in result.errors


def test_every_bad_score_is_reported(fighter):
    scores = dict(fighter.ability_scores.to_dict())
    scores["strength"] = 31
    scores["wisdom"] = 0
    scores["charisma"] = "high"
    del scores["dexterity"]
    result = import_character(_record(fighter, ability_scores=scores))
    fields = [error.field for error in result.errors]
    assert fields == [
        "ability_scores.strength",
        "ability_scores.dexterity",
        "ability_scores.wisdom",
        "ability_scores.charisma",
    ]
    assert result.errors[0].reason == "must be between 1 and 30, got 31"


def test_scores_up_to_thirty_are_accepted(fighter):
    scores = dict(fighter.ability_scores.to_dict())
    scores["strength"] = 30
    assert import_character(_record(fighter, ability_scores=scores))


def test_missing_ability_block(fighter):
    data = _record(fighter)
    del data["ability_scores"]
    result = import_character(data)
    assert result.errors == [FieldError("ability_scores", "required field is missing")]


def test_non_object_record():
    result = import_character(["not", "a", "record"])
    assert not result
    assert result.errors[0].field == "record"
    assert "got list" in result.errors[0].reason


def test_invalid_json_text(caplog):
    result = loads_character("{\"name\": ")
    assert not result
    assert result.errors[0].field == "record"
    assert result.errors[0].reason.startswith("not valid JSON")
    assert "Rejected character import" in caplog.text


def test_malformed_nested_value_is_rejected(fighter):
    data = _record(fighter)
    data["resources"] = {"second_wind": {"used": 0, "max": 2, "restore": "sometimes"}}
    result = import_character(data)
    assert not result
    assert result.errors[0].reason.startswith("malformed record")


def test_dumps_is_indented_json(fighter):
    text = dumps_character(fighter, TIMESTAMP)
    assert text.startswith("{\n  ")
    assert json.loads(text)["name"] == fighter.name
