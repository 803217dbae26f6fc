"""
Derived Stat Calculator.

``compute_character(selections, tables)`` turns a complete, validated
``CharacterSelections`` into a level 1 ``Character``. It is a pure function:
identity and timestamps come from the selections and nothing outside the two
arguments is read or changed.

The helpers below are shared with the level-up applier, which recomputes the
same derived values (armor class, attacks, spellcasting, features) for the new
level after applying its incremental changes.

Usage:
    from character_calculator import compute_character

    character = compute_character(selections, load_rule_tables())
    character.armor_class, character.weapons[0].attack_bonus
"""

from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple
import logging
import re

from ability_scores import apply_bonuses
from character_model import (
    AbilityScores,
    Character,
    Currency,
    EquipmentItem,
    FeatureEntry,
    HitDice,
    HitPoints,
    SpellcastingBlock,
    SubclassSelection,
    WeaponAttack,
)
from core import ChoiceDefinition, Feature, Grants, RuleTables, spell_slots
from core.equipment import WeaponDefinition
from dnd_constants import (
    SHIELD_AC_BONUS,
    UNARMORED_BASE_AC,
    Ability,
    ArmorType,
    HitPointMethod,
    ProficiencyLevel,
    Skill,
)
from feature_text import build_context, render_description
from resources import compute_resources, merge_resource_usage
from selections import CharacterSelections, FeatSelection

logger = logging.getLogger(__name__)

# Keys under Character.feat_choices that are not nested rule choices
FEAT_ABILITY_KEY = "ability"

_RESTRICTED_WEAPON_PROFICIENCY = re.compile(r"^(Simple|Martial) \((.+)\)$")


# =============================================================================
# GRANT SOURCES
# =============================================================================

@dataclass
class GrantSource:
    """One rules element contributing grants to a character, tagged by origin."""
    tag: str
    label: str
    grants: List[Grants] = field(default_factory=list)
    # Fixed grants swapped out by a choice (high elf cantrip)
    replaced: List[str] = field(default_factory=list)


def answered_grants(
    choices: List[ChoiceDefinition],
    answers: Dict[str, List[str]],
    tables: RuleTables,
) -> Tuple[List[Grants], List[str]]:
    """Turn nested choice answers into Grants, plus the fixed grants they replace."""
    grants: List[Grants] = []
    replaced: List[str] = []
    for choice in choices:
        picked = answers.get(choice.id, [])
        if not picked:
            continue
        if choice.kind == "skill":
            grants.append(Grants(skill_proficiencies=list(picked)))
        elif choice.kind == "language":
            grants.append(Grants(languages=list(picked)))
        elif choice.kind == "tool":
            grants.append(Grants(tool_proficiencies=list(picked)))
        elif choice.is_spell_choice:
            cantrips = [name for name in picked if tables.get_spell(name).is_cantrip]
            leveled = [name for name in picked if name not in cantrips]
            grants.append(Grants(cantrips=cantrips, spells={1: leveled} if leveled else {}))
            if choice.replaces:
                replaced.append(choice.replaces)
        for option in picked:
            if option in choice.option_grants:
                grants.append(choice.option_grants[option])
    return grants, replaced


def _source(tag: str, label: str, base: Grants, choices: List[ChoiceDefinition],
            answers: Dict[str, List[str]], tables: RuleTables) -> GrantSource:
    extra, replaced = answered_grants(choices, answers, tables)
    return GrantSource(tag=tag, label=label, grants=[base] + extra, replaced=replaced)


def grant_sources(character: Character, tables: RuleTables) -> List[GrantSource]:
    """Every grant-bearing element the character has at its current level, in a fixed order."""
    class_def = tables.get_class(character.character_class)
    species_def = tables.get_species(character.species)
    options = tables.options
    sources: List[GrantSource] = []

    sources.append(GrantSource(
        tag="class",
        label=class_def.name,
        grants=[Grants(
            armor_proficiencies=class_def.armor_proficiencies,
            weapon_proficiencies=class_def.weapon_proficiencies,
            tool_proficiencies=class_def.tool_proficiencies,
            saving_throws=[a.value for a in class_def.saving_throws],
            skill_proficiencies=(
                [character.primal_knowledge_skill.value] if character.primal_knowledge_skill else []
            ),
        )],
    ))

    sources.append(_source(
        "species", species_def.name, species_def.grants, species_def.choices,
        character.species_choices, tables,
    ))
    lineage_def = species_def.get_lineage(character.lineage)
    if lineage_def:
        sources.append(_source(
            "lineage", lineage_def.name, lineage_def.grants, lineage_def.choices,
            character.species_choices, tables,
        ))

    background = tables.get_background(character.background)
    sources.append(GrantSource(
        tag="background",
        label=background.name,
        grants=[Grants(
            skill_proficiencies=[s.value for s in background.skills],
            tool_proficiencies=[background.tool] if background.tool else [],
        )],
    ))

    if character.subclass and character.level >= class_def.progression.subclass_level:
        subclass_def = class_def.get_subclass(character.subclass.id)
        if subclass_def:
            sources.append(_source(
                "subclass", subclass_def.name, subclass_def.grants,
                subclass_def.choices_through(character.level), character.subclass.choices, tables,
            ))

    for feat_id in dict.fromkeys(character.feats):
        feat = tables.get_feat(feat_id)
        answers = character.feat_choices.get(feat_id, {})
        source = _source("feat", feat.name, feat.grants, feat.choices, answers, tables)
        if feat.save_for_ability and answers.get(FEAT_ABILITY_KEY):
            source.grants.append(Grants(saving_throws=list(answers[FEAT_ABILITY_KEY])))
        sources.append(source)

    if character.fighting_style:
        style = options.fighting_styles[character.fighting_style]
        sources.append(_source(
            "fighting_style", style.name, style.grants, style.choices,
            character.fighting_style_choices, tables,
        ))
    if character.divine_order:
        order = options.divine_orders[character.divine_order]
        sources.append(GrantSource(tag="divine_order", label=order.name, grants=[order.grants]))
    if character.primal_order:
        order = options.primal_orders[character.primal_order]
        sources.append(GrantSource(tag="primal_order", label=order.name, grants=[order.grants]))
    if character.pact_boon:
        boon = options.pact_boons[character.pact_boon]
        sources.append(_source(
            "pact_boon", boon.name, boon.grants, boon.choices, character.pact_boon_choices, tables,
        ))
    for invocation_id in character.invocations:
        invocation = options.invocations[invocation_id]
        sources.append(_source(
            "invocation", invocation.name, invocation.grants, invocation.choices,
            character.invocation_choices.get(invocation_id, {}), tables,
        ))
    return sources


def _all_grants(sources: List[GrantSource]):
    for source in sources:
        for grants in source.grants:
            yield source, grants


# =============================================================================
# ABILITY SCORES AND HIT POINTS
# =============================================================================

def feat_ability_bonus(feat_selection: FeatSelection, tables: RuleTables) -> Dict[Ability, int]:
    if not feat_selection.ability:
        return {}
    feat = tables.get_feat(feat_selection.feat_id)
    return {feat_selection.ability: feat.ability_amount}


def average_hit_die(hit_die: int) -> int:
    """Fixed hit point value per level: half the die plus one."""
    return hit_die // 2 + 1


def hit_point_gain(hit_die: int, con_modifier: int, method: HitPointMethod = HitPointMethod.AVERAGE,
                   roll: Optional[int] = None) -> int:
    """Hit points for one level after the first: average or roll, plus CON, at least 1."""
    base = roll if method is HitPointMethod.ROLL and roll is not None else average_hit_die(hit_die)
    return max(1, base + con_modifier)


def max_hit_points(hit_die: int, con_modifier: int, level: int, per_level_bonus: int = 0,
                   rolls: Optional[List[int]] = None) -> int:
    """
    Hit point maximum for a character that has reached ``level``.

    Level 1 is ``max(1, hit die + CON)``; each later level uses the matching
    entry of ``rolls`` when given, else the fixed average. Per-level bonuses
    (Tough, Dwarven Toughness, Draconic Resilience) are added for every level.
    """
    total = max(1, hit_die + con_modifier)
    for index in range(level - 1):
        roll = rolls[index] if rolls and index < len(rolls) else None
        method = HitPointMethod.ROLL if roll is not None else HitPointMethod.AVERAGE
        total += hit_point_gain(hit_die, con_modifier, method, roll)
    return max(1, total + per_level_bonus * level)


def per_level_hp_bonus(sources: List[GrantSource]) -> int:
    return sum(grants.hp_per_level for _, grants in _all_grants(sources))


# =============================================================================
# PROFICIENCIES, LANGUAGES, SPELLS
# =============================================================================

def _extend_unique(target: List[str], values) -> None:
    for value in values:
        if value not in target:
            target.append(value)


def apply_proficiencies(character: Character, sources: List[GrantSource]) -> None:
    """Union every granted proficiency into the character. Idempotent."""
    for _, grants in _all_grants(sources):
        for ability in grants.saving_throws:
            if Ability(ability) not in character.saving_throws:
                character.saving_throws.append(Ability(ability))
        for skill in grants.skill_proficiencies:
            skill = Skill(skill)
            if character.skills.get(skill, ProficiencyLevel.NONE) is ProficiencyLevel.NONE:
                character.skills[skill] = ProficiencyLevel.PROFICIENT
        _extend_unique(character.armor_proficiencies, grants.armor_proficiencies)
        _extend_unique(character.weapon_proficiencies, grants.weapon_proficiencies)
        _extend_unique(character.tool_proficiencies, grants.tool_proficiencies)
        _extend_unique(character.languages, grants.languages)


def apply_expertise(character: Character, skills: List[Skill]) -> None:
    for skill in skills:
        character.skills[skill] = ProficiencyLevel.EXPERTISE


def granted_spells(sources: List[GrantSource], level: int) -> List[Tuple[str, str]]:
    """(spell name, source tag) for every spell or cantrip granted by ``level``."""
    granted: List[Tuple[str, str]] = []
    for source in sources:
        for grants in source.grants:
            for name in list(grants.cantrips) + grants.spells_through(level):
                if name in source.replaced:
                    continue
                granted.append((name, source.tag))
    return granted


def add_spell(character: Character, name: str, source: str, tables: RuleTables) -> None:
    """Record a spell once; the first source to grant it is kept."""
    if name in character.spell_sources:
        return
    character.spell_sources[name] = source
    if tables.get_spell(name).is_cantrip:
        character.cantrips.append(name)
    else:
        character.spells.append(name)


def apply_granted_spells(character: Character, sources: List[GrantSource], tables: RuleTables) -> List[str]:
    """Add granted spells reaching their threshold; returns the names newly added."""
    added = []
    for name, tag in granted_spells(sources, character.level):
        if name not in character.spell_sources:
            add_spell(character, name, tag, tables)
            added.append(name)
    return added


# =============================================================================
# COMBAT NUMBERS
# =============================================================================

def _ac_bonus_applies(condition: str, armor_type: Optional[ArmorType]) -> bool:
    if condition == "always":
        return True
    if condition == "armored":
        return armor_type is not None
    if condition == "unarmored":
        return armor_type is None
    if condition.endswith("_armor"):
        return armor_type is not None and armor_type.value == condition[: -len("_armor")]
    return False


def armor_class_for(character: Character, tables: RuleTables, sources: List[GrantSource]) -> int:
    """
    Base or armor, then shield, then conditional style and subclass bonuses.

    Unarmored characters use the best of 10 + DEX and any unarmored defense
    their class or subclass offers (a monk's is lost when carrying a shield).
    """
    dex = character.modifier(Ability.DEXTERITY)
    armor_type: Optional[ArmorType] = None

    if character.armor:
        armor = tables.get_armor(character.armor)
        armor_type = armor.armor_type
        cap = armor_type.dex_cap
        ac = armor.base_ac + (dex if cap is None else min(dex, cap))
    else:
        ac = UNARMORED_BASE_AC + dex
        class_def = tables.get_class(character.character_class)
        defenses = [class_def.unarmored_defense]
        if any(s.tag == "subclass" for s in sources) and character.subclass:
            defenses.append(class_def.get_subclass(character.subclass.id).unarmored_defense)
        for defense in defenses:
            if defense is None or (character.shield and not defense.allows_shield):
                continue
            alternative = UNARMORED_BASE_AC + dex + sum(character.modifier(a) for a in defense.abilities)
            ac = max(ac, alternative)

    if character.shield:
        ac += SHIELD_AC_BONUS

    for _, grants in _all_grants(sources):
        for bonus in grants.ac_bonuses:
            if _ac_bonus_applies(bonus.condition, armor_type):
                ac += bonus.amount
    return ac


def initiative_for(character: Character, sources: List[GrantSource]) -> int:
    initiative = character.modifier(Ability.DEXTERITY)
    if any(grants.initiative_proficiency for _, grants in _all_grants(sources)):
        initiative += character.proficiency_bonus
    return initiative


def speed_for(character: Character, tables: RuleTables, sources: List[GrantSource]) -> int:
    species_def = tables.get_species(character.species)
    lineage_def = species_def.get_lineage(character.lineage)
    speed = lineage_def.speed if lineage_def and lineage_def.speed else species_def.speed
    return speed + sum(grants.speed_bonus for _, grants in _all_grants(sources))


def is_weapon_proficient(proficiencies: List[str], weapon: WeaponDefinition) -> bool:
    category = weapon.category.value
    for proficiency in proficiencies:
        if proficiency == weapon.name or proficiency.lower() == category:
            return True
        restricted = _RESTRICTED_WEAPON_PROFICIENCY.match(proficiency)
        if restricted and restricted.group(1).lower() == category:
            required = [p.strip().lower() for p in restricted.group(2).split(" or ")]
            if any(p in weapon.properties for p in required):
                return True
    return False


def _weapon_bonus_applies(applies_to: str, weapon: WeaponDefinition) -> bool:
    if applies_to == "ranged":
        return weapon.ranged
    if applies_to == "melee":
        return weapon.is_melee
    if applies_to == "one_handed_melee":
        return weapon.is_melee and not weapon.is_two_handed
    if applies_to == "thrown":
        return weapon.is_thrown
    return False


def _format_damage(die: str, bonus: int) -> str:
    if bonus > 0:
        return f"{die}+{bonus}"
    if bonus < 0:
        return f"{die}{bonus}"
    return die


def weapon_attack(character: Character, weapon: WeaponDefinition, sources: List[GrantSource],
                  quantity: int = 1) -> WeaponAttack:
    """One attack line: ability by weapon kind, proficiency when proficient, style bonuses."""
    strength = character.modifier(Ability.STRENGTH)
    dexterity = character.modifier(Ability.DEXTERITY)
    if weapon.ranged:
        modifier = dexterity
    elif weapon.is_finesse:
        modifier = max(strength, dexterity)
    else:
        modifier = strength

    attack = modifier
    if is_weapon_proficient(character.weapon_proficiencies, weapon):
        attack += character.proficiency_bonus
    damage = modifier
    for _, grants in _all_grants(sources):
        for bonus in grants.weapon_bonuses:
            if _weapon_bonus_applies(bonus.applies_to, weapon):
                attack += bonus.attack
                damage += bonus.damage

    return WeaponAttack(
        name=weapon.name,
        attack_bonus=attack,
        damage=_format_damage(weapon.damage, damage),
        damage_type=weapon.damage_type,
        quantity=quantity,
        properties=list(weapon.properties),
        mastery=weapon.mastery if weapon.name in character.weapon_masteries else None,
        range=weapon.range,
    )


def weapon_attacks_for(character: Character, tables: RuleTables, sources: List[GrantSource]) -> List[WeaponAttack]:
    """
    Attack lines for every carried weapon. Thrown weapons carried in numbers
    collapse into one line with a quantity; other duplicates get a line each.
    """
    attacks: List[WeaponAttack] = []
    for item in character.equipment:
        if item.name not in tables.weapons:
            continue
        weapon = tables.get_weapon(item.name)
        if weapon.is_thrown:
            attacks.append(weapon_attack(character, weapon, sources, quantity=item.quantity))
        else:
            attacks.extend(weapon_attack(character, weapon, sources) for _ in range(item.quantity))
    return attacks


def spellcasting_block_for(character: Character, tables: RuleTables) -> Optional[SpellcastingBlock]:
    """Save DC, attack bonus and slots; used slots carry over, clamped to the new table."""
    casting = tables.get_class(character.character_class).spellcasting
    if casting is None:
        return None
    modifier = character.modifier(casting.ability)
    slots, pact_level = spell_slots(casting.caster, character.level)
    previous = character.spellcasting.slots_used if character.spellcasting else [0] * 9
    return SpellcastingBlock(
        ability=casting.ability,
        save_dc=8 + character.proficiency_bonus + modifier,
        attack_bonus=character.proficiency_bonus + modifier,
        slots=slots,
        slots_used=[min(used, total) for used, total in zip(previous, slots)],
        pact_slot_level=pact_level,
    )


# =============================================================================
# FEATURES
# =============================================================================

def _entry(feature: Feature, source: str, level: int, suffix_level: bool) -> FeatureEntry:
    feature_id = f"{feature.id}_{level}" if suffix_level else feature.id
    return FeatureEntry(id=feature_id, name=feature.name, source=source,
                        description=feature.description, level=level)


def feature_catalog(character: Character, tables: RuleTables, sources: List[GrantSource]) -> List[FeatureEntry]:
    """
    Every feature the character has at its level, descriptions not yet rendered.

    Order: class, subclass, species, lineage, feats, then class options.
    """
    class_def = tables.get_class(character.character_class)
    species_def = tables.get_species(character.species)
    options = tables.options
    entries: List[FeatureEntry] = []

    for level in sorted(class_def.features):
        if level <= character.level:
            entries.extend(_entry(f, "class", level, True) for f in class_def.features[level])

    for source in sources:
        if source.tag != "subclass":
            continue
        subclass_def = class_def.get_subclass(character.subclass.id)
        for level in sorted(subclass_def.features):
            if level <= character.level:
                entries.extend(_entry(f, "subclass", level, True) for f in subclass_def.features[level])
        for grants in source.grants:
            entries.extend(_entry(f, "subclass", f.level, False) for f in grants.features)

    lineage_def = species_def.get_lineage(character.lineage)
    for trait in species_def.traits_through(character.level, lineage_def is not None):
        entries.append(_entry(trait, "species", trait.level, False))
    if lineage_def:
        entries.extend(_entry(f, "lineage", 1, False) for f in lineage_def.grants.features)

    for feat_id in dict.fromkeys(character.feats):
        feat = tables.get_feat(feat_id)
        entries.append(FeatureEntry(id=feat.id, name=feat.name, source="feat", description=feat.description))
        entries.extend(_entry(f, "feat", 1, False) for f in feat.grants.features)

    if character.fighting_style:
        style = options.fighting_styles[character.fighting_style]
        entries.append(FeatureEntry(id=style.id, name=style.name, source="fighting_style",
                                    description=style.description))
    if character.divine_order:
        order = options.divine_orders[character.divine_order]
        entries.append(FeatureEntry(id=order.id, name=order.name, source="divine_order",
                                    description=order.description))
    if character.primal_order:
        order = options.primal_orders[character.primal_order]
        entries.append(FeatureEntry(id=order.id, name=order.name, source="primal_order",
                                    description=order.description))
    if character.pact_boon:
        boon = options.pact_boons[character.pact_boon]
        entries.append(FeatureEntry(id=boon.id, name=boon.name, source="pact_boon",
                                    description=boon.description, level=character.level))
    for invocation_id in character.invocations:
        invocation = options.invocations[invocation_id]
        entries.append(FeatureEntry(id=invocation.id, name=invocation.name, source="invocation",
                                    description=invocation.description, level=invocation.min_level))
    for metamagic_id in character.metamagic:
        option = options.metamagic[metamagic_id]
        entries.append(FeatureEntry(id=option.id, name=option.name, source="metamagic",
                                    description=option.description))
    return entries


def feature_context(character: Character, tables: RuleTables) -> Dict:
    class_def = tables.get_class(character.character_class)
    return build_context(
        character.level,
        character.ability_scores.as_dict(),
        resources={k: v.max for k, v in character.resources.items()},
        scaling=class_def.scaling_at(character.level),
    )


def rendered_features(character: Character, tables: RuleTables, sources: List[GrantSource]) -> List[FeatureEntry]:
    context = feature_context(character, tables)
    entries = feature_catalog(character, tables, sources)
    for entry in entries:
        entry.description = render_description(entry.description, context)
    return entries


def refresh_derived(character: Character, tables: RuleTables, sources: List[GrantSource]) -> None:
    """Recompute the numbers that follow from scores, level and equipment."""
    character.armor_class = armor_class_for(character, tables, sources)
    character.initiative = initiative_for(character, sources)
    character.speed = speed_for(character, tables, sources)
    character.weapons = weapon_attacks_for(character, tables, sources)
    character.spellcasting = spellcasting_block_for(character, tables)


def character_resources(character: Character, tables: RuleTables):
    return compute_resources(
        character.character_class,
        character.species,
        character.level,
        character.ability_scores.as_dict(),
        character.feats,
        tables,
        subclass=character.subclass_id if character.level >= tables.get_class(
            character.character_class).progression.subclass_level else None,
        lineage=character.lineage,
    )


# =============================================================================
# EQUIPMENT
# =============================================================================

def equipment_items(armor: Optional[str], shield: bool, weapons: List[str], items: List[str]) -> List[EquipmentItem]:
    """Inventory entries, one per distinct item name with a quantity."""
    inventory: Dict[str, EquipmentItem] = {}
    worn: List[Tuple[str, bool]] = []
    if armor:
        worn.append((armor, True))
    if shield:
        worn.append(("Shield", True))
    worn.extend((name, True) for name in weapons)
    worn.extend((name, False) for name in items)
    for name, equipped in worn:
        if name in inventory:
            inventory[name].quantity += 1
        else:
            inventory[name] = EquipmentItem(name=name, quantity=1, equipped=equipped)
    return list(inventory.values())


# =============================================================================
# ENTRY POINT
# =============================================================================

def _feat_choices(feat: FeatSelection) -> Dict[str, List[str]]:
    answers = {key: list(values) for key, values in feat.choices.items()}
    if feat.ability:
        answers[FEAT_ABILITY_KEY] = [feat.ability.value]
    return answers


def merge_feat_choices(existing: Dict[str, Dict[str, List[str]]], feat: FeatSelection) -> None:
    """Record a feat's answers; a repeated feat extends its earlier answers."""
    current = existing.setdefault(feat.feat_id, {})
    for key, values in _feat_choices(feat).items():
        bucket = current.setdefault(key, [])
        _extend_unique(bucket, values)


def compute_character(selections: CharacterSelections, tables: RuleTables) -> Character:
    """Build the level 1 character described by a complete selection set."""
    class_def = tables.get_class(selections.character_class)
    species_def = tables.get_species(selections.species.species)
    background = tables.get_background(selections.background.background)

    origin_feats = [FeatSelection(background.feat, choices=dict(selections.background.feat_choices))]
    if selections.species.feat:
        origin_feats.append(selections.species.feat)

    origin_bonus = selections.background.origin_bonus.increases if selections.background.origin_bonus else {}
    scores = apply_bonuses(
        selections.ability_scores.scores,
        *[feat_ability_bonus(f, tables) for f in origin_feats],
        origin_bonus,
    )

    details = selections.details
    character = Character(
        id=selections.id,
        player_id=selections.player_id,
        name=details.name,
        species=species_def.id,
        background=background.id,
        character_class=class_def.id,
        level=1,
        lineage=selections.species.lineage,
        species_choices={k: list(v) for k, v in selections.species.choices.items()},
        subclass=_copy_subclass(selections.subclass),
        alignment=details.alignment,
        ability_scores=AbilityScores.from_scores(scores),
        hit_dice=HitDice(die=class_def.hit_die, total=1, remaining=1),
        armor=selections.equipment.armor,
        shield=selections.equipment.shield,
        skills={skill: ProficiencyLevel.PROFICIENT for skill in selections.skills},
        languages=_merge_languages(species_def.languages, selections.languages),
        equipment=equipment_items(
            selections.equipment.armor, selections.equipment.shield,
            selections.equipment.weapons, selections.equipment.items,
        ),
        currency=Currency(gp=selections.equipment.gold),
        fighting_style=selections.fighting_style.style if selections.fighting_style else None,
        fighting_style_choices=(
            {k: list(v) for k, v in selections.fighting_style.choices.items()}
            if selections.fighting_style else {}
        ),
        divine_order=selections.divine_order,
        primal_order=selections.primal_order,
        weapon_masteries=list(selections.weapon_masteries),
        invocations=list(selections.invocations.invocations) if selections.invocations else [],
        invocation_choices=(
            {k: {ck: list(cv) for ck, cv in v.items()} for k, v in selections.invocations.choices.items()}
            if selections.invocations else {}
        ),
        biography=details.biography,
        created_at=selections.created_at,
        updated_at=selections.created_at,
    )
    for feat in origin_feats:
        if feat.feat_id not in character.feats:
            character.feats.append(feat.feat_id)
        merge_feat_choices(character.feat_choices, feat)

    sources = grant_sources(character, tables)
    apply_proficiencies(character, sources)
    apply_expertise(character, selections.expertise)

    for name in list(selections.cantrips) + list(selections.spells):
        add_spell(character, name, "class", tables)
    apply_granted_spells(character, sources, tables)

    con = character.modifier(Ability.CONSTITUTION)
    maximum = max_hit_points(class_def.hit_die, con, 1, per_level_hp_bonus(sources))
    character.hit_points = HitPoints(max=maximum, current=maximum, temporary=0)

    character.resources = merge_resource_usage({}, character_resources(character, tables))
    refresh_derived(character, tables, sources)
    character.features = rendered_features(character, tables, sources)

    logger.info(
        "Computed %s: level 1 %s %s, %d HP, AC %d",
        character.name, species_def.name, class_def.name,
        character.hit_points.max, character.armor_class,
    )
    return character


def _copy_subclass(selection: Optional[SubclassSelection]) -> Optional[SubclassSelection]:
    if selection is None:
        return None
    return SubclassSelection(selection.id, {k: list(v) for k, v in selection.choices.items()})


def _merge_languages(species_languages: List[str], chosen: List[str]) -> List[str]:
    languages: List[str] = ["Common"]
    _extend_unique(languages, species_languages)
    _extend_unique(languages, chosen)
    return languages
