"""
Class option catalogs (data/class_options.json):
fighting styles, divine/primal orders, pact boons, eldritch invocations,
metamagic options and weapon mastery properties.
"""

from dataclasses import dataclass, field
from typing import Dict, List, Any, Optional
import json
from pathlib import Path

from .common import ChoiceDefinition, Grants, choices_from_list


@dataclass
class FightingStyleDefinition:
    id: str
    name: str
    description: str = ""
    classes: List[str] = field(default_factory=list)
    grants: Grants = field(default_factory=Grants)
    choices: List[ChoiceDefinition] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "FightingStyleDefinition":
        return cls(
            id=data["id"],
            name=data.get("name", data["id"]),
            description=data.get("description", ""),
            classes=data.get("classes", []),
            grants=Grants.from_dict(data),
            choices=choices_from_list(data.get("choices", [])),
        )


@dataclass
class OrderDefinition:
    """Divine Order (cleric) or Primal Order (druid)."""
    id: str
    name: str
    order_type: str
    description: str = ""
    grants: Grants = field(default_factory=Grants)

    @classmethod
    def from_dict(cls, data: Dict[str, Any], order_type: str) -> "OrderDefinition":
        return cls(
            id=data["id"],
            name=data.get("name", data["id"]),
            order_type=order_type,
            description=data.get("description", ""),
            grants=Grants.from_dict(data),
        )


@dataclass
class PactBoonDefinition:
    id: str
    name: str
    description: str = ""
    # Invocation that already provides this boon
    invocation: Optional[str] = None
    grants: Grants = field(default_factory=Grants)
    choices: List[ChoiceDefinition] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PactBoonDefinition":
        return cls(
            id=data["id"],
            name=data.get("name", data["id"]),
            description=data.get("description", ""),
            invocation=data.get("invocation"),
            grants=Grants.from_dict(data),
            choices=choices_from_list(data.get("choices", [])),
        )


@dataclass
class InvocationDefinition:
    id: str
    name: str
    description: str = ""
    min_level: int = 1
    # Pact boon required to take this invocation
    requires_pact: Optional[str] = None
    # True for the Pact of the Blade/Chain/Tome invocations
    is_pact: bool = False
    repeatable: bool = False
    grants: Grants = field(default_factory=Grants)
    choices: List[ChoiceDefinition] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "InvocationDefinition":
        return cls(
            id=data["id"],
            name=data.get("name", data["id"]),
            description=data.get("description", ""),
            min_level=data.get("min_level", 1),
            requires_pact=data.get("requires_pact"),
            is_pact=data.get("is_pact", False),
            repeatable=data.get("repeatable", False),
            grants=Grants.from_dict(data),
            choices=choices_from_list(data.get("choices", [])),
        )


@dataclass
class MetamagicDefinition:
    id: str
    name: str
    cost: int = 1
    description: str = ""

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "MetamagicDefinition":
        return cls(
            id=data["id"],
            name=data.get("name", data["id"]),
            cost=data.get("cost", 1),
            description=data.get("description", ""),
        )


@dataclass
class WeaponMasteryDefinition:
    id: str
    name: str
    description: str = ""

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "WeaponMasteryDefinition":
        return cls(id=data["id"], name=data.get("name", data["id"]), description=data.get("description", ""))


@dataclass
class ClassOptions:
    fighting_styles: Dict[str, FightingStyleDefinition] = field(default_factory=dict)
    divine_orders: Dict[str, OrderDefinition] = field(default_factory=dict)
    primal_orders: Dict[str, OrderDefinition] = field(default_factory=dict)
    pact_boons: Dict[str, PactBoonDefinition] = field(default_factory=dict)
    invocations: Dict[str, InvocationDefinition] = field(default_factory=dict)
    metamagic: Dict[str, MetamagicDefinition] = field(default_factory=dict)
    weapon_masteries: Dict[str, WeaponMasteryDefinition] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ClassOptions":
        def index(entries):
            return {e.id: e for e in entries}

        return cls(
            fighting_styles=index(FightingStyleDefinition.from_dict(d) for d in data.get("fighting_styles", [])),
            divine_orders=index(OrderDefinition.from_dict(d, "divine") for d in data.get("divine_orders", [])),
            primal_orders=index(OrderDefinition.from_dict(d, "primal") for d in data.get("primal_orders", [])),
            pact_boons=index(PactBoonDefinition.from_dict(d) for d in data.get("pact_boons", [])),
            invocations=index(InvocationDefinition.from_dict(d) for d in data.get("invocations", [])),
            metamagic=index(MetamagicDefinition.from_dict(d) for d in data.get("metamagic", [])),
            weapon_masteries=index(WeaponMasteryDefinition.from_dict(d) for d in data.get("weapon_masteries", [])),
        )

    def fighting_styles_for(self, class_id: str) -> List[FightingStyleDefinition]:
        return [s for s in self.fighting_styles.values() if not s.classes or class_id in s.classes]

    def pact_invocations(self) -> Dict[str, InvocationDefinition]:
        return {k: v for k, v in self.invocations.items() if v.is_pact}


def load_class_options(filepath: str) -> ClassOptions:
    path = Path(filepath)
    if not path.exists():
        return ClassOptions()
    with open(path, "r", encoding="utf-8") as f:
        data = json.load(f)
    return ClassOptions.from_dict(data)
