"""
Progression Step Planner.

For a transition (character creation at level 1, or level N to N+1) the
planner decides which decisions are still outstanding and returns them in a
fixed order. Each StepKind has one rule that returns a Step or None, and one
validator that checks a staged choice for that step.

Usage:
    from step_planner import ProgressState, StepKind, plan_steps

    known = ProgressState.from_character(character)
    steps = plan_steps(character.character_class, character.level + 1, known, tables)
    [step.kind for step in steps]
    # [StepKind.HIT_POINTS, StepKind.ASI_OR_FEAT, StepKind.CLASS_FEATURES, ...]

    result = validate_choice(steps[0], HitPointChoice(), context)
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Dict, List, Any, Optional, Set, Tuple
import logging

from ability_scores import asi_increases
from character_calculator import is_weapon_proficient
from character_model import Character, SubclassSelection
from core import RuleTables, max_spell_level, spell_slots
from dnd_constants import (
    ALIGNMENTS,
    STANDARD_LANGUAGES,
    Ability,
    AbilityMethod,
    ArmorType,
    CharacterClass,
    HitPointMethod,
    Skill,
    Species,
)
from exceptions import RulesEngineError
from selections import (
    AbilityScoreSelection,
    AsiChoice,
    BackgroundSelection,
    DetailsChoice,
    EquipmentSelection,
    FightingStyleChoice,
    HitPointChoice,
    InvocationChoice,
    OriginBonus,
    PactBoonChoice,
    SpeciesSelection,
)
from validation import (
    CharacterValidator,
    ValidationResult,
    validate_nested_choices,
    validate_selection,
)

logger = logging.getLogger(__name__)


class StepKind(str, Enum):
    """Decision points, declared in emission order."""
    CLASS = "class"
    SPECIES = "species"
    BACKGROUND = "background"
    ABILITY_SCORES = "ability_scores"
    ORIGIN_BONUS = "origin_bonus"
    SKILLS = "skills"
    LANGUAGES = "languages"
    HIT_POINTS = "hit_points"
    SUBCLASS = "subclass"
    PACT_BOON = "pact_boon"
    FIGHTING_STYLE = "fighting_style"
    DIVINE_ORDER = "divine_order"
    PRIMAL_ORDER = "primal_order"
    WEAPON_MASTERY = "weapon_mastery"
    PRIMAL_KNOWLEDGE = "primal_knowledge"
    ASI_OR_FEAT = "asi_or_feat"
    CLASS_FEATURES = "class_features"
    EXPERTISE = "expertise"
    METAMAGIC = "metamagic"
    INVOCATIONS = "invocations"
    CANTRIPS = "cantrips"
    SPELLS = "spells"
    SPELL_SLOTS = "spell_slots"
    EQUIPMENT = "equipment"
    DETAILS = "details"
    REVIEW = "review"


# Changing a step's choice clears every staged choice that depends on it (transitively)
STEP_DEPENDENCIES: Dict[StepKind, Tuple[StepKind, ...]] = {
    StepKind.CLASS: (
        StepKind.SKILLS, StepKind.SUBCLASS, StepKind.PACT_BOON, StepKind.FIGHTING_STYLE,
        StepKind.DIVINE_ORDER, StepKind.PRIMAL_ORDER, StepKind.WEAPON_MASTERY,
        StepKind.PRIMAL_KNOWLEDGE, StepKind.EXPERTISE, StepKind.METAMAGIC,
        StepKind.INVOCATIONS, StepKind.CANTRIPS, StepKind.SPELLS, StepKind.EQUIPMENT,
    ),
    StepKind.SPECIES: (StepKind.SKILLS, StepKind.CANTRIPS),
    StepKind.BACKGROUND: (StepKind.ORIGIN_BONUS, StepKind.SKILLS, StepKind.CANTRIPS),
    StepKind.SKILLS: (StepKind.EXPERTISE, StepKind.PRIMAL_KNOWLEDGE),
    StepKind.DIVINE_ORDER: (StepKind.CANTRIPS,),
    StepKind.PRIMAL_ORDER: (StepKind.CANTRIPS,),
    StepKind.SUBCLASS: (StepKind.CANTRIPS, StepKind.SPELLS),
    StepKind.PACT_BOON: (StepKind.CANTRIPS, StepKind.SPELLS),
    StepKind.FIGHTING_STYLE: (StepKind.CANTRIPS, StepKind.SPELLS),
    StepKind.INVOCATIONS: (StepKind.CANTRIPS, StepKind.SPELLS),
}


def dependents_of(kind: StepKind) -> List[StepKind]:
    """Every step reachable from ``kind`` in the dependency graph, in step order."""
    seen: Set[StepKind] = set()
    pending = list(STEP_DEPENDENCIES.get(kind, ()))
    while pending:
        current = pending.pop()
        if current in seen:
            continue
        seen.add(current)
        pending.extend(STEP_DEPENDENCIES.get(current, ()))
    return [k for k in StepKind if k in seen]


@dataclass(frozen=True)
class Step:
    kind: StepKind
    title: str
    count: int = 1
    options: Tuple[str, ...] = ()
    source: str = ""
    informational: bool = False


# =============================================================================
# KNOWN STATE
# =============================================================================

@dataclass(frozen=True)
class ProgressState:
    """
    What a character already has, as far as planning is concerned.

    Built from an existing Character for a level-up, or from the staged
    creation choices (level 0) while a character is being built.
    """
    level: int = 0
    species: Optional[Species] = None
    background: Optional[str] = None
    subclass: Optional[str] = None
    subclass_choices: Tuple[str, ...] = ()
    fighting_style: Optional[str] = None
    divine_order: Optional[str] = None
    primal_order: Optional[str] = None
    pact_boon: Optional[str] = None
    weapon_masteries: Tuple[str, ...] = ()
    primal_knowledge_skill: Optional[Skill] = None
    proficient_skills: Tuple[Skill, ...] = ()
    expertise: Tuple[Skill, ...] = ()
    metamagic: Tuple[str, ...] = ()
    invocations: Tuple[str, ...] = ()
    feats: Tuple[str, ...] = ()
    class_cantrips: Tuple[str, ...] = ()
    class_spells: Tuple[str, ...] = ()
    # Every cantrip and spell known from any source
    cantrips: Tuple[str, ...] = ()
    spells: Tuple[str, ...] = ()
    languages: Tuple[str, ...] = ()
    ability_scores: Dict[Ability, int] = field(default_factory=dict)

    @classmethod
    def from_character(cls, character: Character) -> "ProgressState":
        class_spells = set(character.spells_from("class"))
        return cls(
            level=character.level,
            species=character.species,
            background=character.background,
            subclass=character.subclass_id,
            subclass_choices=tuple(character.subclass.choices) if character.subclass else (),
            fighting_style=character.fighting_style,
            divine_order=character.divine_order,
            primal_order=character.primal_order,
            pact_boon=character.pact_boon,
            weapon_masteries=tuple(character.weapon_masteries),
            primal_knowledge_skill=character.primal_knowledge_skill,
            proficient_skills=tuple(character.proficient_skills),
            expertise=tuple(character.expertise_skills),
            metamagic=tuple(character.metamagic),
            invocations=tuple(character.invocations),
            feats=tuple(character.feats),
            class_cantrips=tuple(c for c in character.cantrips if c in class_spells),
            class_spells=tuple(s for s in character.spells if s in class_spells),
            cantrips=tuple(character.cantrips),
            spells=tuple(character.spells),
            languages=tuple(character.languages),
            ability_scores=character.ability_scores.as_dict(),
        )

    @classmethod
    def from_staged(cls, staged: Dict["StepKind", Any], tables: RuleTables) -> "ProgressState":
        """Level-0 state for a creation session: what the origin choices already provide."""
        skills: List[Skill] = []
        cantrips: List[str] = []
        languages: List[str] = ["Common"]
        species: Optional[SpeciesSelection] = staged.get(StepKind.SPECIES)
        background: Optional[BackgroundSelection] = staged.get(StepKind.BACKGROUND)

        if background:
            definition = tables.get_background(background.background)
            skills.extend(definition.skills)
            cantrips.extend(_spell_answers(tables.get_feat(definition.feat).choices, background.feat_choices))
        if species and species.feat:
            feat = tables.get_feat(species.feat.feat_id)
            cantrips.extend(_spell_answers(feat.choices, species.feat.choices))
        if species:
            species_def = tables.get_species(species.species)
            languages.extend(species_def.languages)
            lineage = species_def.get_lineage(species.lineage)
            definitions = list(species_def.choices) + (list(lineage.choices) if lineage else [])
            for definition in definitions:
                answers = species.choices.get(definition.id, [])
                if definition.kind == "skill":
                    skills.extend(Skill(s) for s in answers)
                elif definition.is_spell_choice:
                    cantrips.extend(answers)
            cantrips.extend(species_def.grants.cantrips)
            if lineage:
                cantrips.extend(c for c in lineage.grants.cantrips if c not in _replaced(definitions))

        return cls(
            level=0,
            species=species.species if species else None,
            background=background.background if background else None,
            proficient_skills=tuple(dict.fromkeys(skills)),
            cantrips=tuple(dict.fromkeys(cantrips)),
            languages=tuple(dict.fromkeys(languages)),
        )


def _spell_answers(definitions, answers: Dict[str, List[str]]) -> List[str]:
    picked: List[str] = []
    for definition in definitions:
        if definition.is_spell_choice:
            picked.extend(answers.get(definition.id, []))
    return picked


def _replaced(definitions) -> Set[str]:
    return {d.replaces for d in definitions if d.replaces}


@dataclass(frozen=True)
class PlanContext:
    """Everything a step rule or validator reads."""
    character_class: Optional[CharacterClass]
    target_level: int
    known: ProgressState
    tables: RuleTables
    staged: Dict[StepKind, Any] = field(default_factory=dict)
    creation: bool = False

    @property
    def class_def(self):
        return self.tables.get_class(self.character_class) if self.character_class else None

    def staged_value(self, kind: StepKind, default: Any = None) -> Any:
        return self.staged.get(kind, default)


# =============================================================================
# SHARED OPTION HELPERS
# =============================================================================

def pact_boons_held(pact_boon: Optional[str], invocations, tables: RuleTables) -> Set[str]:
    """Boon ids the character has, either chosen directly or through a pact invocation."""
    held = {pact_boon} if pact_boon else set()
    for boon in tables.options.pact_boons.values():
        if boon.invocation and boon.invocation in invocations:
            held.add(boon.id)
    return held


def _staged_invocations(ctx: PlanContext) -> List[str]:
    choice: Optional[InvocationChoice] = ctx.staged_value(StepKind.INVOCATIONS)
    return list(choice.invocations) if choice else []


def _staged_pact_boon(ctx: PlanContext) -> Optional[str]:
    choice: Optional[PactBoonChoice] = ctx.staged_value(StepKind.PACT_BOON)
    return choice.boon if choice else None


def staged_spell_grants(ctx: PlanContext) -> Set[str]:
    """Spells the staged subclass, style, boon and invocations hand out, answers included."""
    names: Set[str] = set()
    options = ctx.tables.options

    subclass: Optional[SubclassSelection] = ctx.staged_value(StepKind.SUBCLASS)
    subclass_def = ctx.class_def.get_subclass(subclass.id) if subclass and ctx.class_def else None
    if subclass_def:
        names.update(subclass_def.grants.cantrips)
        names.update(subclass_def.grants.spells_through(ctx.target_level))
        names.update(_spell_answers(subclass_def.choices_through(ctx.target_level), subclass.choices))

    style: Optional[FightingStyleChoice] = ctx.staged_value(StepKind.FIGHTING_STYLE)
    if style and style.style in options.fighting_styles:
        names.update(_spell_answers(options.fighting_styles[style.style].choices, style.choices))

    boon: Optional[PactBoonChoice] = ctx.staged_value(StepKind.PACT_BOON)
    if boon and boon.boon in options.pact_boons:
        names.update(_spell_answers(options.pact_boons[boon.boon].choices, boon.choices))

    invocations: Optional[InvocationChoice] = ctx.staged_value(StepKind.INVOCATIONS)
    for invocation_id in invocations.invocations if invocations else []:
        invocation = options.invocations.get(invocation_id)
        if invocation:
            names.update(invocation.grants.cantrips)
            names.update(_spell_answers(invocation.choices, invocations.choices.get(invocation_id, {})))
    return names


def _order_bonus_cantrips(ctx: PlanContext) -> int:
    options = ctx.tables.options
    bonus = 0
    divine = ctx.known.divine_order or ctx.staged_value(StepKind.DIVINE_ORDER)
    primal = ctx.known.primal_order or ctx.staged_value(StepKind.PRIMAL_ORDER)
    if divine:
        bonus += options.divine_orders[divine].grants.bonus_cantrips
    if primal:
        bonus += options.primal_orders[primal].grants.bonus_cantrips
    return bonus


def _proficient_skills(ctx: PlanContext) -> List[Skill]:
    skills = list(ctx.known.proficient_skills)
    for skill in ctx.staged_value(StepKind.SKILLS) or []:
        if skill not in skills:
            skills.append(skill)
    return skills


def class_skill_options(ctx: PlanContext) -> List[str]:
    configured = ctx.class_def.skill_choices.options
    options = configured or [s.value for s in Skill]
    taken = {s.value for s in ctx.known.proficient_skills}
    return [s for s in options if s not in taken]


def mastery_weapon_options(ctx: PlanContext) -> List[str]:
    proficiencies = ctx.class_def.weapon_proficiencies
    return sorted(
        name for name, weapon in ctx.tables.weapons.items()
        if is_weapon_proficient(proficiencies, weapon) and name not in ctx.known.weapon_masteries
    )


def invocation_options(ctx: PlanContext) -> List[str]:
    pact_boon = ctx.known.pact_boon or _staged_pact_boon(ctx)
    held = pact_boons_held(pact_boon, ctx.known.invocations, ctx.tables)
    options = []
    for invocation in ctx.tables.options.invocations.values():
        if invocation.min_level > ctx.target_level:
            continue
        if invocation.id in ctx.known.invocations and not invocation.repeatable:
            continue
        if invocation.requires_pact and invocation.requires_pact not in held:
            continue
        if invocation.is_pact and held:
            continue
        options.append(invocation.id)
    return options


def _count(table_value: int, known: int) -> int:
    return max(0, table_value - known)


# =============================================================================
# STEP RULES
# =============================================================================

def _creation_only(rule: Callable[[PlanContext], Optional[Step]]) -> Callable[[PlanContext], Optional[Step]]:
    def wrapper(ctx: PlanContext) -> Optional[Step]:
        return rule(ctx) if ctx.creation else None
    wrapper.__name__ = rule.__name__
    return wrapper


def _class_gated(rule: Callable[[PlanContext], Optional[Step]]) -> Callable[[PlanContext], Optional[Step]]:
    def wrapper(ctx: PlanContext) -> Optional[Step]:
        return rule(ctx) if ctx.character_class else None
    wrapper.__name__ = rule.__name__
    return wrapper


@_creation_only
def _class_step(ctx: PlanContext) -> Optional[Step]:
    return Step(StepKind.CLASS, "Choose a Class", options=tuple(c.value for c in CharacterClass))


@_creation_only
def _species_step(ctx: PlanContext) -> Optional[Step]:
    return Step(StepKind.SPECIES, "Choose a Species", options=tuple(s.value for s in Species))


@_creation_only
def _background_step(ctx: PlanContext) -> Optional[Step]:
    return Step(StepKind.BACKGROUND, "Choose a Background", options=tuple(sorted(ctx.tables.backgrounds)))


@_creation_only
def _ability_scores_step(ctx: PlanContext) -> Optional[Step]:
    return Step(StepKind.ABILITY_SCORES, "Determine Ability Scores", count=len(Ability),
                options=tuple(m.value for m in AbilityMethod))


@_creation_only
def _origin_bonus_step(ctx: PlanContext) -> Optional[Step]:
    background: Optional[BackgroundSelection] = ctx.staged_value(StepKind.BACKGROUND)
    if background:
        definition = ctx.tables.get_background(background.background)
        options = tuple(a.value for a in definition.abilities)
        source = definition.name
    else:
        options = tuple(a.value for a in Ability)
        source = ""
    return Step(StepKind.ORIGIN_BONUS, "Background Ability Increases", count=3, options=options, source=source)


@_creation_only
@_class_gated
def _skills_step(ctx: PlanContext) -> Optional[Step]:
    class_def = ctx.class_def
    return Step(StepKind.SKILLS, f"{class_def.name} Skills", count=class_def.skill_choices.count,
                options=tuple(class_skill_options(ctx)), source=class_def.name)


@_creation_only
def _languages_step(ctx: PlanContext) -> Optional[Step]:
    known = set(ctx.known.languages)
    return Step(StepKind.LANGUAGES, "Choose Languages", count=2,
                options=tuple(l for l in STANDARD_LANGUAGES if l not in known))


def _hit_points_step(ctx: PlanContext) -> Optional[Step]:
    if ctx.creation or not ctx.character_class:
        return None
    return Step(StepKind.HIT_POINTS, "Hit Points", options=tuple(m.value for m in HitPointMethod),
                source=f"d{ctx.class_def.hit_die}")


@_class_gated
def _subclass_step(ctx: PlanContext) -> Optional[Step]:
    class_def = ctx.class_def
    if ctx.target_level < class_def.progression.subclass_level:
        return None
    if ctx.known.subclass:
        subclass_def = class_def.get_subclass(ctx.known.subclass)
        unanswered = [
            c for c in subclass_def.choices_through(ctx.target_level)
            if c.id not in ctx.known.subclass_choices
        ]
        if not unanswered:
            return None
        return Step(StepKind.SUBCLASS, f"{subclass_def.name}: {', '.join(c.name for c in unanswered)}",
                    options=(subclass_def.id,), source=class_def.name)
    return Step(StepKind.SUBCLASS, f"Choose a {class_def.name} Subclass",
                options=tuple(sorted(class_def.subclasses)), source=class_def.name)


@_class_gated
def _pact_boon_step(ctx: PlanContext) -> Optional[Step]:
    level = ctx.class_def.progression.pact_boon_level
    if level is None or ctx.target_level < level or ctx.known.pact_boon:
        return None
    invocations = list(ctx.known.invocations) + _staged_invocations(ctx)
    if pact_boons_held(None, invocations, ctx.tables):
        return None
    return Step(StepKind.PACT_BOON, "Choose a Pact Boon",
                options=tuple(sorted(ctx.tables.options.pact_boons)), source=ctx.class_def.name)


@_class_gated
def _fighting_style_step(ctx: PlanContext) -> Optional[Step]:
    level = ctx.class_def.progression.fighting_style_level
    if level is None or ctx.target_level < level or ctx.known.fighting_style:
        return None
    styles = ctx.tables.options.fighting_styles_for(ctx.character_class.value)
    return Step(StepKind.FIGHTING_STYLE, "Choose a Fighting Style",
                options=tuple(s.id for s in styles), source=ctx.class_def.name)


@_class_gated
def _divine_order_step(ctx: PlanContext) -> Optional[Step]:
    level = ctx.class_def.progression.divine_order_level
    if level is None or ctx.target_level < level or ctx.known.divine_order:
        return None
    return Step(StepKind.DIVINE_ORDER, "Choose a Divine Order",
                options=tuple(sorted(ctx.tables.options.divine_orders)), source=ctx.class_def.name)


@_class_gated
def _primal_order_step(ctx: PlanContext) -> Optional[Step]:
    level = ctx.class_def.progression.primal_order_level
    if level is None or ctx.target_level < level or ctx.known.primal_order:
        return None
    return Step(StepKind.PRIMAL_ORDER, "Choose a Primal Order",
                options=tuple(sorted(ctx.tables.options.primal_orders)), source=ctx.class_def.name)


@_class_gated
def _weapon_mastery_step(ctx: PlanContext) -> Optional[Step]:
    count = _count(ctx.class_def.progression.weapon_masteries_at(ctx.target_level),
                   len(ctx.known.weapon_masteries))
    if not count:
        return None
    return Step(StepKind.WEAPON_MASTERY, "Weapon Mastery", count=count,
                options=tuple(mastery_weapon_options(ctx)), source=ctx.class_def.name)


@_class_gated
def _primal_knowledge_step(ctx: PlanContext) -> Optional[Step]:
    level = ctx.class_def.progression.primal_knowledge_level
    if level is None or ctx.target_level < level or ctx.known.primal_knowledge_skill:
        return None
    proficient = {s.value for s in _proficient_skills(ctx)}
    configured = ctx.class_def.skill_choices.options or [s.value for s in Skill]
    return Step(StepKind.PRIMAL_KNOWLEDGE, "Primal Knowledge",
                options=tuple(s for s in configured if s not in proficient), source=ctx.class_def.name)


@_class_gated
def _asi_step(ctx: PlanContext) -> Optional[Step]:
    if not ctx.class_def.grants_asi(ctx.target_level):
        return None
    feats = [
        f.id for f in ctx.tables.feats.values()
        if f.category in ("general", "epic_boon") and f.min_level <= ctx.target_level
    ]
    return Step(StepKind.ASI_OR_FEAT, "Ability Score Improvement or Feat",
                options=tuple(sorted(feats)), source=ctx.class_def.name)


@_class_gated
def _class_features_step(ctx: PlanContext) -> Optional[Step]:
    features = ctx.class_def.features_at(ctx.target_level)
    if not features:
        return None
    return Step(StepKind.CLASS_FEATURES, f"New {ctx.class_def.name} Features", count=0,
                options=tuple(f.name for f in features), source=ctx.class_def.name, informational=True)


@_class_gated
def _expertise_step(ctx: PlanContext) -> Optional[Step]:
    count = _count(ctx.class_def.progression.expertise_at(ctx.target_level), len(ctx.known.expertise))
    if not count:
        return None
    options = [s.value for s in _proficient_skills(ctx) if s not in ctx.known.expertise]
    return Step(StepKind.EXPERTISE, "Expertise", count=count, options=tuple(options),
                source=ctx.class_def.name)


@_class_gated
def _metamagic_step(ctx: PlanContext) -> Optional[Step]:
    count = _count(ctx.class_def.progression.metamagic_at(ctx.target_level), len(ctx.known.metamagic))
    if not count:
        return None
    options = [m for m in sorted(ctx.tables.options.metamagic) if m not in ctx.known.metamagic]
    return Step(StepKind.METAMAGIC, "Metamagic", count=count, options=tuple(options),
                source=ctx.class_def.name)


@_class_gated
def _invocations_step(ctx: PlanContext) -> Optional[Step]:
    count = _count(ctx.class_def.progression.invocations_at(ctx.target_level), len(ctx.known.invocations))
    if not count:
        return None
    return Step(StepKind.INVOCATIONS, "Eldritch Invocations", count=count,
                options=tuple(invocation_options(ctx)), source=ctx.class_def.name)


@_class_gated
def _cantrips_step(ctx: PlanContext) -> Optional[Step]:
    casting = ctx.class_def.spellcasting
    if casting is None:
        return None
    target = casting.cantrips_known(ctx.target_level) + _order_bonus_cantrips(ctx)
    count = _count(target, len(ctx.known.class_cantrips))
    if not count:
        return None
    known = set(ctx.known.cantrips) | staged_spell_grants(ctx)
    options = [s for s in ctx.tables.spells_for(ctx.character_class.value, 0) if s not in known]
    return Step(StepKind.CANTRIPS, "Learn Cantrips", count=count, options=tuple(options),
                source=ctx.class_def.name)


@_class_gated
def _spells_step(ctx: PlanContext) -> Optional[Step]:
    casting = ctx.class_def.spellcasting
    if casting is None:
        return None
    count = _count(casting.spells_known(ctx.target_level), len(ctx.known.class_spells))
    if not count:
        return None
    known = set(ctx.known.spells) | staged_spell_grants(ctx)
    highest = max_spell_level(casting.caster, ctx.target_level)
    options = [s for s in ctx.tables.spells_up_to(ctx.character_class.value, highest) if s not in known]
    title = "Add Spells to Spellbook" if casting.spellbook else "Prepare Spells"
    return Step(StepKind.SPELLS, title, count=count, options=tuple(options), source=ctx.class_def.name)


@_class_gated
def _spell_slots_step(ctx: PlanContext) -> Optional[Step]:
    casting = ctx.class_def.spellcasting
    if casting is None:
        return None
    slots, pact_level = spell_slots(casting.caster, ctx.target_level)
    previous, _ = spell_slots(casting.caster, ctx.target_level - 1) if ctx.target_level > 1 else ([0] * 9, None)
    if slots == previous and not ctx.creation:
        return None
    if pact_level:
        lines = (f"{sum(slots)} level {pact_level} pact slots",)
    else:
        lines = tuple(f"level {index + 1}: {count}" for index, count in enumerate(slots) if count)
    return Step(StepKind.SPELL_SLOTS, "Spell Slots", count=0, options=lines,
                source=ctx.class_def.name, informational=True)


@_creation_only
@_class_gated
def _equipment_step(ctx: PlanContext) -> Optional[Step]:
    return Step(StepKind.EQUIPMENT, "Starting Equipment", options=tuple(sorted(ctx.tables.weapons)),
                source=ctx.class_def.name)


@_creation_only
def _details_step(ctx: PlanContext) -> Optional[Step]:
    return Step(StepKind.DETAILS, "Name and Details", options=tuple(ALIGNMENTS))


def _review_step(ctx: PlanContext) -> Optional[Step]:
    return Step(StepKind.REVIEW, "Review", count=0, informational=True)


STEP_RULES: Dict[StepKind, Callable[[PlanContext], Optional[Step]]] = {
    StepKind.CLASS: _class_step,
    StepKind.SPECIES: _species_step,
    StepKind.BACKGROUND: _background_step,
    StepKind.ABILITY_SCORES: _ability_scores_step,
    StepKind.ORIGIN_BONUS: _origin_bonus_step,
    StepKind.SKILLS: _skills_step,
    StepKind.LANGUAGES: _languages_step,
    StepKind.HIT_POINTS: _hit_points_step,
    StepKind.SUBCLASS: _subclass_step,
    StepKind.PACT_BOON: _pact_boon_step,
    StepKind.FIGHTING_STYLE: _fighting_style_step,
    StepKind.DIVINE_ORDER: _divine_order_step,
    StepKind.PRIMAL_ORDER: _primal_order_step,
    StepKind.WEAPON_MASTERY: _weapon_mastery_step,
    StepKind.PRIMAL_KNOWLEDGE: _primal_knowledge_step,
    StepKind.ASI_OR_FEAT: _asi_step,
    StepKind.CLASS_FEATURES: _class_features_step,
    StepKind.EXPERTISE: _expertise_step,
    StepKind.METAMAGIC: _metamagic_step,
    StepKind.INVOCATIONS: _invocations_step,
    StepKind.CANTRIPS: _cantrips_step,
    StepKind.SPELLS: _spells_step,
    StepKind.SPELL_SLOTS: _spell_slots_step,
    StepKind.EQUIPMENT: _equipment_step,
    StepKind.DETAILS: _details_step,
    StepKind.REVIEW: _review_step,
}


def plan_steps(
    character_class: Optional[CharacterClass],
    target_level: int,
    known: ProgressState,
    tables: RuleTables,
    staged: Optional[Dict[StepKind, Any]] = None,
    creation: bool = False,
) -> List[Step]:
    """
    Ordered outstanding steps for reaching ``target_level``.

    The order is the StepKind declaration order, whichever rules fire, so the
    result is deterministic for identical inputs.
    """
    if character_class is not None:
        tables.get_class(character_class)
    ctx = PlanContext(
        character_class=character_class,
        target_level=target_level,
        known=known,
        tables=tables,
        staged=dict(staged or {}),
        creation=creation,
    )
    steps = []
    for kind in StepKind:
        step = STEP_RULES[kind](ctx)
        if step is not None:
            steps.append(step)
    logger.debug(
        "Planned %d steps for %s level %d: %s",
        len(steps), character_class.value if character_class else "unset", target_level,
        ", ".join(s.kind.value for s in steps),
    )
    return steps


def creation_context(staged: Dict[StepKind, Any], tables: RuleTables) -> PlanContext:
    return PlanContext(
        character_class=staged.get(StepKind.CLASS),
        target_level=1,
        known=ProgressState.from_staged(staged, tables),
        tables=tables,
        staged=dict(staged),
        creation=True,
    )


def plan_creation_steps(staged: Dict[StepKind, Any], tables: RuleTables) -> List[Step]:
    """Level 1 plan; class-gated steps appear once a class is staged."""
    ctx = creation_context(staged, tables)
    return plan_steps(ctx.character_class, 1, ctx.known, tables, staged=staged, creation=True)


# =============================================================================
# VALIDATORS
# =============================================================================

def _expect(choice: Any, expected_type, label: str) -> ValidationResult:
    result = ValidationResult()
    if not isinstance(choice, expected_type):
        result.add_error(f"{label}: expected {expected_type.__name__}, got {type(choice).__name__}")
    return result


def _validate_informational(step: Step, choice: Any, ctx: PlanContext) -> ValidationResult:
    return ValidationResult()


def _validate_class(step: Step, choice: Any, ctx: PlanContext) -> ValidationResult:
    result = _expect(choice, CharacterClass, "Class")
    if result and choice.value not in step.options:
        result.add_error(f"Unknown class: {choice.value}")
    return result


def _validate_species(step: Step, choice: Any, ctx: PlanContext) -> ValidationResult:
    result = _expect(choice, SpeciesSelection, "Species")
    if not result:
        return result
    species_def = ctx.tables.get_species(choice.species)
    lineage = species_def.get_lineage(choice.lineage)
    if species_def.has_lineages and lineage is None:
        result.add_error(f"{species_def.name}: choose a {species_def.lineage_label.lower()}")
        return result
    if choice.lineage and not species_def.has_lineages:
        result.add_error(f"{species_def.name} has no {species_def.lineage_label.lower()} options")

    definitions = list(species_def.choices) + (list(lineage.choices) if lineage else [])
    result.merge(validate_nested_choices(definitions, choice.choices, ctx.tables, species_def.name))

    validator = CharacterValidator(ctx.tables)
    if species_def.origin_feat:
        if choice.feat is None:
            result.add_error(f"{species_def.name}: choose an origin feat")
        else:
            background: Optional[BackgroundSelection] = ctx.staged_value(StepKind.BACKGROUND)
            taken = [ctx.tables.get_background(background.background).feat] if background else []
            result.merge(validator.validate_feat(
                choice.feat.feat_id, choice.feat.ability, choice.feat.choices,
                {}, 1, taken, origin_only=True,
            ))
    elif choice.feat is not None:
        result.add_error(f"{species_def.name} does not grant an origin feat")
    return result


def _validate_background(step: Step, choice: Any, ctx: PlanContext) -> ValidationResult:
    result = _expect(choice, BackgroundSelection, "Background")
    if not result:
        return result
    if choice.background not in step.options:
        result.add_error(f"Unknown background: {choice.background}")
        return result
    feat = ctx.tables.get_feat(ctx.tables.get_background(choice.background).feat)
    result.merge(validate_nested_choices(feat.choices, choice.feat_choices, ctx.tables, feat.name))
    return result


def _validate_ability_scores(step: Step, choice: Any, ctx: PlanContext) -> ValidationResult:
    result = _expect(choice, AbilityScoreSelection, "Ability scores")
    if result:
        result.merge(CharacterValidator(ctx.tables).validate_ability_scores(choice.scores, choice.method))
    return result


def _validate_origin_bonus(step: Step, choice: Any, ctx: PlanContext) -> ValidationResult:
    result = _expect(choice, OriginBonus, "Origin bonus")
    if not result:
        return result
    background: Optional[BackgroundSelection] = ctx.staged_value(StepKind.BACKGROUND)
    if background is None:
        result.add_error("Choose a background before assigning its ability increases")
        return result
    result.merge(CharacterValidator(ctx.tables).validate_origin_bonus(choice.increases, background.background))
    return result


def _validate_skill_list(step: Step, choice: Any, ctx: PlanContext) -> ValidationResult:
    result = _expect(choice, list, step.title)
    if result:
        values = [s.value if isinstance(s, Skill) else s for s in choice]
        result.merge(validate_selection(values, list(step.options), step.count, step.title))
    return result


def _validate_string_list(step: Step, choice: Any, ctx: PlanContext) -> ValidationResult:
    result = _expect(choice, list, step.title)
    if result:
        result.merge(validate_selection(list(choice), list(step.options), step.count, step.title))
    return result


def _validate_spell_list(step: Step, choice: Any, ctx: PlanContext) -> ValidationResult:
    """Spells and cantrips; anything already acquired from another source is refused."""
    result = _expect(choice, list, step.title)
    if result:
        already = set(ctx.known.cantrips) | set(ctx.known.spells) | staged_spell_grants(ctx)
        options = list(step.options) + sorted(already)
        result.merge(validate_selection(list(choice), options, step.count, step.title, already))
    return result


def _validate_hit_points(step: Step, choice: Any, ctx: PlanContext) -> ValidationResult:
    result = _expect(choice, HitPointChoice, "Hit points")
    if not result:
        return result
    hit_die = ctx.class_def.hit_die
    if choice.method is HitPointMethod.ROLL:
        if choice.roll is None:
            result.add_error("Hit points: a roll is required")
        elif not 1 <= choice.roll <= hit_die:
            result.add_error(f"Hit points: roll must be between 1 and {hit_die} (got {choice.roll})")
    elif choice.roll is not None:
        result.add_warning("Hit points: roll ignored for the fixed average")
    return result


def _validate_subclass(step: Step, choice: Any, ctx: PlanContext) -> ValidationResult:
    result = _expect(choice, SubclassSelection, "Subclass")
    if not result:
        return result
    if choice.id not in step.options:
        result.add_error(f"Unknown subclass: {choice.id}")
        return result
    subclass_def = ctx.class_def.get_subclass(choice.id)
    answered = set(ctx.known.subclass_choices) if ctx.known.subclass == choice.id else set()
    for key in sorted(answered & set(choice.choices)):
        result.add_error(f"{subclass_def.name}: '{key}' was already chosen")
    definitions = [c for c in subclass_def.choices_through(ctx.target_level) if c.id not in answered]
    pending = {k: v for k, v in choice.choices.items() if k not in answered}
    result.merge(validate_nested_choices(definitions, pending, ctx.tables, subclass_def.name))
    return result


def _validate_pact_boon(step: Step, choice: Any, ctx: PlanContext) -> ValidationResult:
    result = _expect(choice, PactBoonChoice, "Pact boon")
    if not result:
        return result
    if choice.boon not in step.options:
        result.add_error(f"Unknown pact boon: {choice.boon}")
        return result
    boon = ctx.tables.options.pact_boons[choice.boon]
    already = set(ctx.known.cantrips) | set(ctx.known.spells)
    result.merge(validate_nested_choices(boon.choices, choice.choices, ctx.tables, boon.name, already))
    return result


def _validate_fighting_style(step: Step, choice: Any, ctx: PlanContext) -> ValidationResult:
    result = _expect(choice, FightingStyleChoice, "Fighting style")
    if not result:
        return result
    if choice.style not in step.options:
        result.add_error(f"{choice.style} is not available to this class")
        return result
    style = ctx.tables.options.fighting_styles[choice.style]
    already = set(ctx.known.cantrips)
    result.merge(validate_nested_choices(style.choices, choice.choices, ctx.tables, style.name, already))
    return result


def _validate_single_option(step: Step, choice: Any, ctx: PlanContext) -> ValidationResult:
    result = _expect(choice, str, step.title)
    if result and choice not in step.options:
        result.add_error(f"{step.title}: '{choice}' is not a valid option")
    return result


def _validate_primal_knowledge(step: Step, choice: Any, ctx: PlanContext) -> ValidationResult:
    result = _expect(choice, Skill, "Primal Knowledge")
    if result and choice.value not in step.options:
        result.add_error(f"Primal Knowledge: '{choice.value}' is not a valid option")
    return result


def _validate_asi(step: Step, choice: Any, ctx: PlanContext) -> ValidationResult:
    result = _expect(choice, AsiChoice, "Ability Score Improvement")
    if not result:
        return result
    validator = CharacterValidator(ctx.tables)
    scores = dict(ctx.known.ability_scores)
    if choice.mode == "feat":
        if choice.feat is None:
            result.add_error("Ability Score Improvement: choose a feat")
            return result
        if choice.feat.feat_id not in step.options:
            result.add_error(f"{choice.feat.feat_id} cannot be taken at this level")
            return result
        result.merge(validator.validate_feat(
            choice.feat.feat_id, choice.feat.ability, choice.feat.choices,
            scores, ctx.target_level, list(ctx.known.feats),
        ))
    else:
        result.merge(validator.validate_asi(choice.mode, choice.abilities, scores))
    return result


def _validate_invocations(step: Step, choice: Any, ctx: PlanContext) -> ValidationResult:
    result = _expect(choice, InvocationChoice, "Invocations")
    if not result:
        return result
    result.merge(validate_selection(list(choice.invocations), list(step.options), step.count, step.title))

    invocations = ctx.tables.options.invocations
    for unexpected in sorted(set(choice.choices) - set(choice.invocations)):
        result.add_error(f"Invocations: answers given for unselected invocation '{unexpected}'")
    pacts = [i for i in choice.invocations if i in invocations and invocations[i].is_pact]
    if len(pacts) > 1:
        result.add_error("Invocations: only one pact invocation can be chosen")

    already = set(ctx.known.cantrips) | set(ctx.known.spells)
    for invocation_id in choice.invocations:
        if invocation_id not in invocations:
            continue
        invocation = invocations[invocation_id]
        result.merge(validate_nested_choices(
            invocation.choices, choice.choices.get(invocation_id, {}), ctx.tables, invocation.name, already,
        ))
    return result


def _validate_equipment(step: Step, choice: Any, ctx: PlanContext) -> ValidationResult:
    result = _expect(choice, EquipmentSelection, "Equipment")
    if not result:
        return result
    if choice.armor:
        if choice.armor not in ctx.tables.armor:
            result.add_error(f"Unknown armor: {choice.armor}")
        elif ctx.tables.get_armor(choice.armor).armor_type is ArmorType.SHIELD:
            result.add_error("A shield is not body armor; set the shield flag instead")
    for weapon in choice.weapons:
        if weapon not in ctx.tables.weapons:
            result.add_error(f"Unknown weapon: {weapon}")
    if choice.gold < 0:
        result.add_error("Starting gold cannot be negative")
    return result


def _validate_details(step: Step, choice: Any, ctx: PlanContext) -> ValidationResult:
    result = _expect(choice, DetailsChoice, "Details")
    if not result:
        return result
    if not choice.name.strip():
        result.add_error("Character name is required")
    if choice.alignment and choice.alignment not in step.options:
        result.add_error(f"Unknown alignment: {choice.alignment}")
    return result


STEP_VALIDATORS: Dict[StepKind, Callable[[Step, Any, PlanContext], ValidationResult]] = {
    StepKind.CLASS: _validate_class,
    StepKind.SPECIES: _validate_species,
    StepKind.BACKGROUND: _validate_background,
    StepKind.ABILITY_SCORES: _validate_ability_scores,
    StepKind.ORIGIN_BONUS: _validate_origin_bonus,
    StepKind.SKILLS: _validate_skill_list,
    StepKind.LANGUAGES: _validate_string_list,
    StepKind.HIT_POINTS: _validate_hit_points,
    StepKind.SUBCLASS: _validate_subclass,
    StepKind.PACT_BOON: _validate_pact_boon,
    StepKind.FIGHTING_STYLE: _validate_fighting_style,
    StepKind.DIVINE_ORDER: _validate_single_option,
    StepKind.PRIMAL_ORDER: _validate_single_option,
    StepKind.WEAPON_MASTERY: _validate_string_list,
    StepKind.PRIMAL_KNOWLEDGE: _validate_primal_knowledge,
    StepKind.ASI_OR_FEAT: _validate_asi,
    StepKind.CLASS_FEATURES: _validate_informational,
    StepKind.EXPERTISE: _validate_skill_list,
    StepKind.METAMAGIC: _validate_string_list,
    StepKind.INVOCATIONS: _validate_invocations,
    StepKind.CANTRIPS: _validate_spell_list,
    StepKind.SPELLS: _validate_spell_list,
    StepKind.SPELL_SLOTS: _validate_informational,
    StepKind.EQUIPMENT: _validate_equipment,
    StepKind.DETAILS: _validate_details,
    StepKind.REVIEW: _validate_informational,
}


def validate_choice(step: Step, choice: Any, ctx: PlanContext) -> ValidationResult:
    """Check a staged choice against its step. Informational steps accept anything."""
    if step.informational:
        return ValidationResult()
    if choice is None:
        return ValidationResult(valid=False, errors=[f"{step.title}: no choice made"])
    return STEP_VALIDATORS[step.kind](step, choice, ctx)


def asi_ability_bonus(choice: AsiChoice, tables: RuleTables) -> Dict[Ability, int]:
    """Ability increases from an ASI step: the two increase modes, or the feat's own increase."""
    if choice.mode == "feat":
        if choice.feat and choice.feat.ability:
            return {choice.feat.ability: tables.get_feat(choice.feat.feat_id).ability_amount}
        return {}
    return asi_increases(choice.abilities)


for _table_name, _table in (("STEP_RULES", STEP_RULES), ("STEP_VALIDATORS", STEP_VALIDATORS)):
    _missing = [kind.value for kind in StepKind if kind not in _table]
    if _missing:
        raise RulesEngineError(f"{_table_name} does not cover every step kind", {"missing": ", ".join(_missing)})
