import pytest

from character_calculator import (
    add_spell,
    equipment_items,
    hit_point_gain,
    is_weapon_proficient,
    max_hit_points,
    merge_feat_choices,
)
from character_model import ProficiencyLevel, SubclassSelection
from dnd_constants import Ability, CharacterClass, HitPointMethod, Skill, Species
from selections import BackgroundSelection, FeatSelection, SpeciesSelection
from step_planner import StepKind
from validation import CharacterValidator

from conftest import CASTER_ARRAY, build_character


# =============================================================================
# HIT POINTS
# =============================================================================

def test_hit_point_gain_uses_average_or_roll():
    assert hit_point_gain(10, 2) == 8
    assert hit_point_gain(6, 0) == 4
    assert hit_point_gain(8, 1, HitPointMethod.ROLL, 3) == 4


def test_hit_point_gain_is_at_least_one():
    assert hit_point_gain(6, -5) == 1
    assert hit_point_gain(12, -4, HitPointMethod.ROLL, 1) == 1


def test_max_hit_points_level_one_never_below_one():
    assert max_hit_points(6, -5, 1) == 1
    assert max_hit_points(10, 2, 1) == 12


def test_max_hit_points_adds_per_level_bonus_each_level():
    # d8, CON +1, dwarf toughness: 9 + 2 * 6 + 3
    assert max_hit_points(8, 1, 3, per_level_bonus=1) == 24
    assert max_hit_points(8, 1, 3, per_level_bonus=1, rolls=[8, 1]) == 9 + 9 + 2 + 3


# =============================================================================
# FIGHTER AT LEVEL 1
# =============================================================================

def test_fighter_scores_and_hit_points(fighter):
    scores = fighter.ability_scores
    assert scores.strength == 17
    assert scores.constitution == 14
    assert fighter.proficiency_bonus == 2
    # d10 + CON 2 + Dwarven Toughness 1
    assert fighter.hit_points.max == 13
    assert fighter.hit_points.current == 13
    assert fighter.hit_dice.die == 10
    assert fighter.hit_dice.total == 1


def test_fighter_armor_class_ignores_dex_in_heavy_armor(fighter):
    assert fighter.armor == "Chain Mail"
    assert fighter.armor_class == 16
    assert fighter.initiative == 2
    assert fighter.speed == 30


def test_fighter_longsword_attack_includes_dueling(fighter):
    longswords = [w for w in fighter.weapons if w.name == "Longsword"]
    assert len(longswords) == 1
    longsword = longswords[0]
    assert longsword.attack_bonus == 5
    assert longsword.damage == "1d8+5"
    assert longsword.damage_type == "slashing"
    assert longsword.mastery == "sap"


def test_thrown_weapons_collapse_into_one_line(fighter):
    javelins = [w for w in fighter.weapons if w.name == "Javelin"]
    assert len(javelins) == 1
    assert javelins[0].quantity == 2
    assert javelins[0].range == "30/120"
    assert len(fighter.weapons) == 2


def test_fighter_proficiencies(fighter):
    assert set(fighter.saving_throws) == {Ability.STRENGTH, Ability.CONSTITUTION}
    assert "Martial" in fighter.weapon_proficiencies
    for skill in (Skill.ATHLETICS, Skill.INTIMIDATION, Skill.PERCEPTION, Skill.SURVIVAL):
        assert fighter.skill_level(skill) is ProficiencyLevel.PROFICIENT
    assert fighter.skill_bonus(Skill.ATHLETICS) == 5
    assert fighter.languages[0] == "Common"
    assert len(fighter.languages) == len(set(fighter.languages))


def test_fighter_origin_feat_and_features(fighter):
    assert fighter.feats == ["savage_attacker"]
    names = [f.name for f in fighter.features]
    assert "Second Wind" in names
    assert "Dueling" in names
    assert "Savage Attacker" in names
    toughness = next(f for f in fighter.features if f.name == "Dwarven Toughness")
    assert "(1 total)" in toughness.description
    assert "{{" not in toughness.description


def test_fighter_resources(fighter):
    assert fighter.resources["second_wind"].max == 2
    assert fighter.resources["stonecunning"].max == 2
    assert "action_surge" not in fighter.resources
    assert all(pool.used == 0 for pool in fighter.resources.values())


def test_fighter_equipment_inventory(fighter):
    inventory = {item.name: item for item in fighter.equipment}
    assert inventory["Javelin"].quantity == 2
    assert inventory["Chain Mail"].equipped
    assert not inventory["Dungeoneer's Pack"].equipped
    assert fighter.currency.gp == 18
    assert fighter.spellcasting is None


# =============================================================================
# SPELLS
# =============================================================================

def test_wizard_spells_record_their_source(wizard, tables):
    assert len(wizard.cantrips) == 3
    assert len(wizard.spells) == 6
    for name in wizard.cantrips + wizard.spells:
        assert wizard.spell_sources[name] == "class"
    block = wizard.spellcasting
    assert block.ability is Ability.INTELLIGENCE
    assert block.save_dc == 8 + 2 + 2
    assert block.attack_bonus == 4
    assert block.slots[0] == 2


def test_add_spell_keeps_first_source(wizard, tables):
    name = wizard.cantrips[0]
    add_spell(wizard, name, "feat", tables)
    assert wizard.spell_sources[name] == "class"
    assert wizard.cantrips.count(name) == 1


def test_subclass_cantrip_is_tagged_subclass(tables):
    cleric = build_character(
        tables,
        CharacterClass.CLERIC,
        SpeciesSelection(Species.DWARF),
        BackgroundSelection("hermit"),
        CASTER_ARRAY,
        {Ability.WISDOM: 2, Ability.CONSTITUTION: 1},
        overrides={
            StepKind.SUBCLASS: SubclassSelection("light_domain"),
            StepKind.DIVINE_ORDER: "protector",
        },
    )
    subclass_def = tables.get_class(CharacterClass.CLERIC).get_subclass(cleric.subclass_id)
    for name in subclass_def.grants.cantrips:
        assert cleric.spell_sources[name] == "subclass"
    assert "Heavy" in cleric.armor_proficiencies
    assert "Martial" in cleric.weapon_proficiencies


@pytest.mark.parametrize("character_class", list(CharacterClass))
def test_every_class_builds_at_level_one(tables, character_class):
    character = build_character(
        tables,
        character_class,
        SpeciesSelection(Species.DWARF),
        BackgroundSelection("hermit"),
        CASTER_ARRAY,
        {Ability.WISDOM: 2, Ability.CONSTITUTION: 1},
    )
    assert character.level == 1
    assert character.hit_points.max >= 1
    assert character.hit_dice.die == tables.get_class(character_class).hit_die
    assert all("{{" not in feature.description for feature in character.features)
    assert CharacterValidator(tables).validate_character(character).errors == []


# =============================================================================
# HELPERS
# =============================================================================

def test_is_weapon_proficient_by_category_and_name(tables):
    longsword = tables.get_weapon("Longsword")
    dagger = tables.get_weapon("Dagger")
    assert is_weapon_proficient(["Martial"], longsword)
    assert not is_weapon_proficient(["Simple"], longsword)
    assert is_weapon_proficient(["Longsword"], longsword)
    assert is_weapon_proficient(["Simple"], dagger)


def test_equipment_items_counts_duplicates():
    items = equipment_items("Leather Armor", True, ["Dagger", "Dagger"], ["Rope"])
    by_name = {item.name: item for item in items}
    assert by_name["Dagger"].quantity == 2
    assert by_name["Shield"].equipped
    assert not by_name["Rope"].equipped
    assert len(items) == 4


def test_merge_feat_choices_extends_repeated_feat():
    existing = {}
    merge_feat_choices(existing, FeatSelection("skilled", choices={"skills": ["arcana", "history", "nature"]}))
    merge_feat_choices(existing, FeatSelection("skilled", choices={"skills": ["religion", "arcana"]}))
    assert existing["skilled"]["skills"] == ["arcana", "history", "nature", "religion"]
