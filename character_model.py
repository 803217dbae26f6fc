"""
The Character record.

A Character is created once by the calculator and afterwards replaced field by
field by the level-up applier. Every dataclass here round-trips through
``to_dict``/``from_dict`` so the record can be exported and imported unchanged.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, List, Any, Optional

from ability_scores import ability_modifier, proficiency_bonus
from dnd_constants import (
    Ability,
    CharacterClass,
    Condition,
    HitPointMethod,
    ProficiencyLevel,
    RestType,
    Skill,
    Species,
)


def _copy_nested(data: Dict[str, List[str]]) -> Dict[str, List[str]]:
    return {key: list(values) for key, values in (data or {}).items()}


# --- Leaf models ---

@dataclass
class AbilityScores:
    strength: int = 10
    dexterity: int = 10
    constitution: int = 10
    intelligence: int = 10
    wisdom: int = 10
    charisma: int = 10

    def get(self, ability: Ability) -> int:
        return getattr(self, ability.value)

    def modifier(self, ability: Ability) -> int:
        return ability_modifier(self.get(ability))

    def as_dict(self) -> Dict[Ability, int]:
        return {ability: self.get(ability) for ability in Ability}

    @classmethod
    def from_scores(cls, scores: Dict[Ability, int]) -> "AbilityScores":
        return cls(**{ability.value: scores.get(ability, 10) for ability in Ability})

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "AbilityScores":
        return cls(**{ability.value: data.get(ability.value, 10) for ability in Ability})

    def to_dict(self) -> Dict[str, Any]:
        return {ability.value: self.get(ability) for ability in Ability}


@dataclass
class HitPoints:
    max: int = 1
    current: int = 1
    temporary: int = 0

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "HitPoints":
        return cls(
            max=data.get("max", 1),
            current=data.get("current", 1),
            temporary=data.get("temporary", 0),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {"max": self.max, "current": self.current, "temporary": self.temporary}


@dataclass
class HitDice:
    die: int = 8
    total: int = 1
    remaining: int = 1

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "HitDice":
        return cls(
            die=data.get("die", 8),
            total=data.get("total", 1),
            remaining=data.get("remaining", 1),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {"die": self.die, "total": self.total, "remaining": self.remaining}


@dataclass
class FeatureEntry:
    id: str
    name: str
    source: str
    description: str = ""
    level: int = 1

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "FeatureEntry":
        return cls(
            id=data["id"],
            name=data.get("name", data["id"]),
            source=data.get("source", ""),
            description=data.get("description", ""),
            level=data.get("level", 1),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "source": self.source,
            "description": self.description,
            "level": self.level,
        }


@dataclass
class EquipmentItem:
    name: str
    quantity: int = 1
    equipped: bool = False

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "EquipmentItem":
        return cls(
            name=data["name"],
            quantity=data.get("quantity", 1),
            equipped=data.get("equipped", False),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {"name": self.name, "quantity": self.quantity, "equipped": self.equipped}


@dataclass
class WeaponAttack:
    name: str
    attack_bonus: int
    damage: str
    damage_type: str = ""
    quantity: int = 1
    properties: List[str] = field(default_factory=list)
    mastery: Optional[str] = None
    range: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "WeaponAttack":
        return cls(
            name=data["name"],
            attack_bonus=data.get("attack_bonus", 0),
            damage=data.get("damage", ""),
            damage_type=data.get("damage_type", ""),
            quantity=data.get("quantity", 1),
            properties=list(data.get("properties", [])),
            mastery=data.get("mastery"),
            range=data.get("range"),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "attack_bonus": self.attack_bonus,
            "damage": self.damage,
            "damage_type": self.damage_type,
            "quantity": self.quantity,
            "properties": list(self.properties),
            "mastery": self.mastery,
            "range": self.range,
        }


@dataclass
class Currency:
    cp: int = 0
    sp: int = 0
    ep: int = 0
    gp: int = 0
    pp: int = 0

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Currency":
        return cls(
            cp=data.get("cp", 0),
            sp=data.get("sp", 0),
            ep=data.get("ep", 0),
            gp=data.get("gp", 0),
            pp=data.get("pp", 0),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {"cp": self.cp, "sp": self.sp, "ep": self.ep, "gp": self.gp, "pp": self.pp}


@dataclass
class SpellcastingBlock:
    ability: Ability
    save_dc: int
    attack_bonus: int
    # Slot counts for spell levels 1-9
    slots: List[int] = field(default_factory=lambda: [0] * 9)
    slots_used: List[int] = field(default_factory=lambda: [0] * 9)
    # Pact Magic: every slot is this level
    pact_slot_level: Optional[int] = None

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> Optional["SpellcastingBlock"]:
        if not data:
            return None
        return cls(
            ability=Ability(data["ability"]),
            save_dc=data.get("save_dc", 8),
            attack_bonus=data.get("attack_bonus", 0),
            slots=list(data.get("slots", [0] * 9)),
            slots_used=list(data.get("slots_used", [0] * 9)),
            pact_slot_level=data.get("pact_slot_level"),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "ability": self.ability.value,
            "save_dc": self.save_dc,
            "attack_bonus": self.attack_bonus,
            "slots": list(self.slots),
            "slots_used": list(self.slots_used),
            "pact_slot_level": self.pact_slot_level,
        }


@dataclass
class ResourceUse:
    used: int = 0
    max: int = 0
    restore: RestType = RestType.LONG

    @property
    def remaining(self) -> int:
        return max(0, self.max - self.used)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ResourceUse":
        return cls(
            used=data.get("used", 0),
            max=data.get("max", 0),
            restore=RestType(data.get("restore", "long")),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {"used": self.used, "max": self.max, "restore": self.restore.value}


@dataclass
class DeathSaves:
    successes: int = 0
    failures: int = 0

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "DeathSaves":
        return cls(successes=data.get("successes", 0), failures=data.get("failures", 0))

    def to_dict(self) -> Dict[str, Any]:
        return {"successes": self.successes, "failures": self.failures}


@dataclass
class Biography:
    personality_traits: str = ""
    ideals: str = ""
    bonds: str = ""
    flaws: str = ""
    backstory: str = ""
    appearance: str = ""

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Biography":
        return cls(
            personality_traits=data.get("personality_traits", ""),
            ideals=data.get("ideals", ""),
            bonds=data.get("bonds", ""),
            flaws=data.get("flaws", ""),
            backstory=data.get("backstory", ""),
            appearance=data.get("appearance", ""),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "personality_traits": self.personality_traits,
            "ideals": self.ideals,
            "bonds": self.bonds,
            "flaws": self.flaws,
            "backstory": self.backstory,
            "appearance": self.appearance,
        }


@dataclass
class SubclassSelection:
    """A chosen subclass and the answers to its nested choices (choice id -> options)."""
    id: str
    choices: Dict[str, List[str]] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> Optional["SubclassSelection"]:
        if not data:
            return None
        return cls(id=data["id"], choices=_copy_nested(data.get("choices", {})))

    def to_dict(self) -> Dict[str, Any]:
        return {"id": self.id, "choices": _copy_nested(self.choices)}


@dataclass
class LevelUpRecord:
    level: int
    hp_gained: int
    hit_point_method: HitPointMethod = HitPointMethod.AVERAGE
    roll: Optional[int] = None
    # Step kind -> JSON-friendly summary of the choice made
    choices: Dict[str, Any] = field(default_factory=dict)
    features: List[str] = field(default_factory=list)
    timestamp: str = ""

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "LevelUpRecord":
        return cls(
            level=data["level"],
            hp_gained=data.get("hp_gained", 0),
            hit_point_method=HitPointMethod(data.get("hit_point_method", "average")),
            roll=data.get("roll"),
            choices=dict(data.get("choices", {})),
            features=list(data.get("features", [])),
            timestamp=data.get("timestamp", ""),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "level": self.level,
            "hp_gained": self.hp_gained,
            "hit_point_method": self.hit_point_method.value,
            "roll": self.roll,
            "choices": dict(self.choices),
            "features": list(self.features),
            "timestamp": self.timestamp,
        }


# --- Root model ---

@dataclass
class Character:
    id: str
    player_id: str
    name: str
    species: Species
    background: str
    character_class: CharacterClass
    level: int = 1
    lineage: Optional[str] = None
    # Species and lineage choice id -> selected options
    species_choices: Dict[str, List[str]] = field(default_factory=dict)
    subclass: Optional[SubclassSelection] = None
    experience_points: int = 0
    alignment: str = ""

    ability_scores: AbilityScores = field(default_factory=AbilityScores)
    hit_points: HitPoints = field(default_factory=HitPoints)
    hit_dice: HitDice = field(default_factory=HitDice)
    armor_class: int = 10
    initiative: int = 0
    speed: int = 30
    armor: Optional[str] = None
    shield: bool = False

    saving_throws: List[Ability] = field(default_factory=list)
    skills: Dict[Skill, ProficiencyLevel] = field(default_factory=dict)
    armor_proficiencies: List[str] = field(default_factory=list)
    weapon_proficiencies: List[str] = field(default_factory=list)
    tool_proficiencies: List[str] = field(default_factory=list)
    languages: List[str] = field(default_factory=list)

    features: List[FeatureEntry] = field(default_factory=list)
    feats: List[str] = field(default_factory=list)
    # Feat id -> nested choice id -> selected options
    feat_choices: Dict[str, Dict[str, List[str]]] = field(default_factory=dict)

    equipment: List[EquipmentItem] = field(default_factory=list)
    weapons: List[WeaponAttack] = field(default_factory=list)
    currency: Currency = field(default_factory=Currency)

    spellcasting: Optional[SpellcastingBlock] = None
    cantrips: List[str] = field(default_factory=list)
    spells: List[str] = field(default_factory=list)
    # Spell name -> source tag ("class", "species", "lineage", "subclass", "feat", ...)
    spell_sources: Dict[str, str] = field(default_factory=dict)

    fighting_style: Optional[str] = None
    fighting_style_choices: Dict[str, List[str]] = field(default_factory=dict)
    divine_order: Optional[str] = None
    primal_order: Optional[str] = None
    pact_boon: Optional[str] = None
    pact_boon_choices: Dict[str, List[str]] = field(default_factory=dict)
    weapon_masteries: List[str] = field(default_factory=list)
    metamagic: List[str] = field(default_factory=list)
    invocations: List[str] = field(default_factory=list)
    invocation_choices: Dict[str, Dict[str, List[str]]] = field(default_factory=dict)
    primal_knowledge_skill: Optional[Skill] = None

    resources: Dict[str, ResourceUse] = field(default_factory=dict)
    conditions: List[Condition] = field(default_factory=list)
    exhaustion_level: int = 0
    inspiration: bool = False
    death_saves: DeathSaves = field(default_factory=DeathSaves)
    concentrating_on: Optional[str] = None

    biography: Biography = field(default_factory=Biography)
    level_history: List[LevelUpRecord] = field(default_factory=list)
    created_at: str = ""
    updated_at: str = ""

    @property
    def proficiency_bonus(self) -> int:
        return proficiency_bonus(self.level)

    @property
    def subclass_id(self) -> Optional[str]:
        return self.subclass.id if self.subclass else None

    def modifier(self, ability: Ability) -> int:
        return self.ability_scores.modifier(ability)

    def skill_level(self, skill: Skill) -> ProficiencyLevel:
        return self.skills.get(skill, ProficiencyLevel.NONE)

    def skill_bonus(self, skill: Skill) -> int:
        return self.modifier(skill.ability) + self.skill_level(skill).multiplier * self.proficiency_bonus

    def saving_throw_bonus(self, ability: Ability) -> int:
        bonus = self.modifier(ability)
        if ability in self.saving_throws:
            bonus += self.proficiency_bonus
        return bonus

    @property
    def proficient_skills(self) -> List[Skill]:
        return [skill for skill, level in self.skills.items() if level is not ProficiencyLevel.NONE]

    @property
    def expertise_skills(self) -> List[Skill]:
        return [skill for skill, level in self.skills.items() if level is ProficiencyLevel.EXPERTISE]

    def spells_from(self, source: str) -> List[str]:
        return [name for name, tag in self.spell_sources.items() if tag == source]

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Character":
        return cls(
            id=data.get("id", ""),
            player_id=data.get("player_id", ""),
            name=data["name"],
            species=Species(data["species"]),
            background=data.get("background", ""),
            character_class=CharacterClass(data["character_class"]),
            level=data["level"],
            lineage=data.get("lineage"),
            species_choices=_copy_nested(data.get("species_choices", {})),
            subclass=SubclassSelection.from_dict(data.get("subclass")),
            experience_points=data.get("experience_points", 0),
            alignment=data.get("alignment", ""),
            ability_scores=AbilityScores.from_dict(data.get("ability_scores", {})),
            hit_points=HitPoints.from_dict(data.get("hit_points", {})),
            hit_dice=HitDice.from_dict(data.get("hit_dice", {})),
            armor_class=data.get("armor_class", 10),
            initiative=data.get("initiative", 0),
            speed=data.get("speed", 30),
            armor=data.get("armor"),
            shield=data.get("shield", False),
            saving_throws=[Ability(a) for a in data.get("saving_throws", [])],
            skills={Skill(k): ProficiencyLevel(v) for k, v in data.get("skills", {}).items()},
            armor_proficiencies=list(data.get("armor_proficiencies", [])),
            weapon_proficiencies=list(data.get("weapon_proficiencies", [])),
            tool_proficiencies=list(data.get("tool_proficiencies", [])),
            languages=list(data.get("languages", [])),
            features=[FeatureEntry.from_dict(f) for f in data.get("features", [])],
            feats=list(data.get("feats", [])),
            feat_choices={k: _copy_nested(v) for k, v in data.get("feat_choices", {}).items()},
            equipment=[EquipmentItem.from_dict(e) for e in data.get("equipment", [])],
            weapons=[WeaponAttack.from_dict(w) for w in data.get("weapons", [])],
            currency=Currency.from_dict(data.get("currency", {})),
            spellcasting=SpellcastingBlock.from_dict(data.get("spellcasting")),
            cantrips=list(data.get("cantrips", [])),
            spells=list(data.get("spells", [])),
            spell_sources=dict(data.get("spell_sources", {})),
            fighting_style=data.get("fighting_style"),
            fighting_style_choices=_copy_nested(data.get("fighting_style_choices", {})),
            divine_order=data.get("divine_order"),
            primal_order=data.get("primal_order"),
            pact_boon=data.get("pact_boon"),
            pact_boon_choices=_copy_nested(data.get("pact_boon_choices", {})),
            weapon_masteries=list(data.get("weapon_masteries", [])),
            metamagic=list(data.get("metamagic", [])),
            invocations=list(data.get("invocations", [])),
            invocation_choices={k: _copy_nested(v) for k, v in data.get("invocation_choices", {}).items()},
            primal_knowledge_skill=(
                Skill(data["primal_knowledge_skill"]) if data.get("primal_knowledge_skill") else None
            ),
            resources={k: ResourceUse.from_dict(v) for k, v in data.get("resources", {}).items()},
            conditions=[Condition(c) for c in data.get("conditions", [])],
            exhaustion_level=data.get("exhaustion_level", 0),
            inspiration=data.get("inspiration", False),
            death_saves=DeathSaves.from_dict(data.get("death_saves", {})),
            concentrating_on=data.get("concentrating_on"),
            biography=Biography.from_dict(data.get("biography", {})),
            level_history=[LevelUpRecord.from_dict(r) for r in data.get("level_history", [])],
            created_at=data.get("created_at", ""),
            updated_at=data.get("updated_at", ""),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "player_id": self.player_id,
            "name": self.name,
            "species": self.species.value,
            "lineage": self.lineage,
            "species_choices": _copy_nested(self.species_choices),
            "background": self.background,
            "character_class": self.character_class.value,
            "subclass": self.subclass.to_dict() if self.subclass else None,
            "level": self.level,
            "experience_points": self.experience_points,
            "alignment": self.alignment,
            "ability_scores": self.ability_scores.to_dict(),
            "hit_points": self.hit_points.to_dict(),
            "hit_dice": self.hit_dice.to_dict(),
            "armor_class": self.armor_class,
            "initiative": self.initiative,
            "speed": self.speed,
            "armor": self.armor,
            "shield": self.shield,
            "proficiency_bonus": self.proficiency_bonus,
            "saving_throws": [a.value for a in self.saving_throws],
            "skills": {skill.value: level.value for skill, level in self.skills.items()},
            "armor_proficiencies": list(self.armor_proficiencies),
            "weapon_proficiencies": list(self.weapon_proficiencies),
            "tool_proficiencies": list(self.tool_proficiencies),
            "languages": list(self.languages),
            "features": [f.to_dict() for f in self.features],
            "feats": list(self.feats),
            "feat_choices": {k: _copy_nested(v) for k, v in self.feat_choices.items()},
            "equipment": [e.to_dict() for e in self.equipment],
            "weapons": [w.to_dict() for w in self.weapons],
            "currency": self.currency.to_dict(),
            "spellcasting": self.spellcasting.to_dict() if self.spellcasting else None,
            "cantrips": list(self.cantrips),
            "spells": list(self.spells),
            "spell_sources": dict(self.spell_sources),
            "fighting_style": self.fighting_style,
            "fighting_style_choices": _copy_nested(self.fighting_style_choices),
            "divine_order": self.divine_order,
            "primal_order": self.primal_order,
            "pact_boon": self.pact_boon,
            "pact_boon_choices": _copy_nested(self.pact_boon_choices),
            "weapon_masteries": list(self.weapon_masteries),
            "metamagic": list(self.metamagic),
            "invocations": list(self.invocations),
            "invocation_choices": {k: _copy_nested(v) for k, v in self.invocation_choices.items()},
            "primal_knowledge_skill": (
                self.primal_knowledge_skill.value if self.primal_knowledge_skill else None
            ),
            "resources": {k: v.to_dict() for k, v in self.resources.items()},
            "conditions": [c.value for c in self.conditions],
            "exhaustion_level": self.exhaustion_level,
            "inspiration": self.inspiration,
            "death_saves": self.death_saves.to_dict(),
            "concentrating_on": self.concentrating_on,
            "biography": self.biography.to_dict(),
            "level_history": [r.to_dict() for r in self.level_history],
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }
