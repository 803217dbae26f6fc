import shutil

import pytest

from core import DATA_DIR_ENV, DEFAULT_DATA_DIR, load_rule_tables, max_spell_level, resolve_data_dir, spell_slots
from core.common import level_table_value, slugify
from dnd_constants import CasterType, CharacterClass, Species
from exceptions import RuleDataError, UnknownRuleKeyError


@pytest.fixture
def data_copy(tmp_path):
    target = tmp_path / "rules"
    shutil.copytree(DEFAULT_DATA_DIR, target)
    return target


# =============================================================================
# LOADING
# =============================================================================

def test_packaged_tables_cover_every_class_and_species(tables):
    assert set(tables.classes) == set(CharacterClass)
    assert set(tables.species) == set(Species)
    tables.check_integrity()


def test_loaded_tables_are_cached(tables):
    assert load_rule_tables() is tables


def test_resolve_data_dir_prefers_argument(monkeypatch, tmp_path):
    monkeypatch.setenv(DATA_DIR_ENV, str(tmp_path / "from_env"))
    assert resolve_data_dir(tmp_path / "explicit") == tmp_path / "explicit"
    assert resolve_data_dir() == tmp_path / "from_env"
    monkeypatch.delenv(DATA_DIR_ENV)
    assert resolve_data_dir() == DEFAULT_DATA_DIR


def test_environment_override_loads_other_directory(monkeypatch, data_copy):
    monkeypatch.setenv(DATA_DIR_ENV, str(data_copy))
    tables = load_rule_tables()
    assert tables.source == str(data_copy.resolve())
    assert tables.get_class(CharacterClass.WIZARD).hit_die == 6


def test_missing_directory_is_fatal(tmp_path):
    with pytest.raises(RuleDataError) as excinfo:
        load_rule_tables(tmp_path / "nowhere")
    assert "not found" in str(excinfo.value)


def test_missing_species_file_fails_integrity(data_copy):
    (data_copy / "species" / "elf.json").unlink()
    with pytest.raises(RuleDataError) as excinfo:
        load_rule_tables(data_copy)
    assert "missing species: elf" in str(excinfo.value)


def test_malformed_json_is_fatal(data_copy):
    (data_copy / "feats.json").write_text("{not json", encoding="utf-8")
    with pytest.raises(RuleDataError) as excinfo:
        load_rule_tables(data_copy)
    assert "Malformed" in str(excinfo.value)


# =============================================================================
# LOOKUPS
# =============================================================================

def test_unknown_keys_raise(tables):
    with pytest.raises(UnknownRuleKeyError) as excinfo:
        tables.get_feat("telekinetic_master")
    assert excinfo.value.table == "feat"
    assert excinfo.value.key == "telekinetic_master"
    with pytest.raises(UnknownRuleKeyError):
        tables.get_class("artificer")
    with pytest.raises(UnknownRuleKeyError):
        tables.get_weapon("Lightsaber")
    with pytest.raises(RuleDataError):
        tables.get_species("kender")


def test_lookup_accepts_enum_or_string(tables):
    assert tables.get_class("fighter") is tables.get_class(CharacterClass.FIGHTER)
    assert tables.has_class("wizard")
    assert not tables.has_species("kender")


def test_spell_lists(tables):
    assert "Fire Bolt" in tables.spells_for("wizard", 0)
    assert "Druidcraft" not in tables.spells_for("wizard", 0)
    assert "Druidcraft" in tables.spells_for("any", 0)
    assert all(tables.get_spell(name).level <= 2 for name in tables.spells_up_to("wizard", 2))
    assert not set(tables.spells_up_to("wizard", 2)) & set(tables.spells_for("wizard", 0))


def test_feat_categories(tables):
    assert "alert" in tables.origin_feats()
    assert "resilient" in tables.general_feats()
    assert "alert" not in tables.general_feats()


# =============================================================================
# SPELL SLOTS AND LEVEL TABLES
# =============================================================================

def test_full_caster_slots():
    slots, pact_level = spell_slots(CasterType.FULL, 5)
    assert slots[:3] == [4, 3, 2]
    assert pact_level is None
    assert max_spell_level(CasterType.FULL, 5) == 3
    assert max_spell_level(CasterType.FULL, 20) == 9


def test_half_caster_slots():
    assert spell_slots(CasterType.HALF, 1)[0][0] == 2
    assert max_spell_level(CasterType.HALF, 4) == 1
    assert max_spell_level(CasterType.HALF, 17) == 5


def test_pact_magic_slots():
    slots, pact_level = spell_slots(CasterType.PACT, 5)
    assert pact_level == 3
    assert slots[2] == 2
    assert sum(slots) == 2
    assert max_spell_level(CasterType.PACT, 11) == 5
    assert spell_slots(CasterType.PACT, 11)[0][4] == 3


def test_level_table_value_is_stepwise():
    table = {1: 2, 4: 3, 10: 4}
    assert level_table_value(table, 1) == 2
    assert level_table_value(table, 9) == 3
    assert level_table_value(table, 20) == 4
    assert level_table_value({2: 1}, 1) == 0


def test_slugify():
    assert slugify("Second Wind") == "second_wind"
    assert slugify("Dungeoneer's Pack") == "dungeoneer_s_pack"
