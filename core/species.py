"""
Species and lineage definitions.

Species represent the character's ancestry: size, speed, innate traits.
Some species have lineages (elf, gnome) or legacies (tiefling) that replace a
placeholder trait and add level-gated spells.
"""

from dataclasses import dataclass, field
from typing import Dict, List, Any, Optional
import json
import logging
from pathlib import Path

from dnd_constants import Species
from .common import ChoiceDefinition, Feature, Grants, choices_from_list

logger = logging.getLogger(__name__)


@dataclass
class LineageDefinition:
    """A species lineage/legacy/ancestry option."""
    id: str
    name: str
    description: str = ""
    speed: Optional[int] = None
    darkvision: Optional[int] = None
    grants: Grants = field(default_factory=Grants)
    choices: List[ChoiceDefinition] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "LineageDefinition":
        return cls(
            id=data["id"],
            name=data.get("name", data["id"]),
            description=data.get("description", ""),
            speed=data.get("speed"),
            darkvision=data.get("darkvision"),
            grants=Grants.from_dict(data),
            choices=choices_from_list(data.get("choices", [])),
        )


@dataclass
class SpeciesDefinition:
    """
    A playable species.

    Loaded from JSON with structure:
    {
        "id": "elf",
        "name": "Elf",
        "size": "Medium",
        "speed": 30,
        "darkvision": 60,
        "languages": ["Common", "Elvish"],
        "traits": [{"name": ..., "description": ..., "level": 1}],
        "lineages": [...],
        "choices": [...]
    }
    """
    id: Species
    name: str
    description: str = ""
    size: str = "Medium"
    speed: int = 30
    creature_type: str = "Humanoid"
    darkvision: int = 0
    languages: List[str] = field(default_factory=lambda: ["Common"])
    traits: List[Feature] = field(default_factory=list)
    grants: Grants = field(default_factory=Grants)
    lineage_label: str = "Lineage"
    lineages: Dict[str, LineageDefinition] = field(default_factory=dict)
    choices: List[ChoiceDefinition] = field(default_factory=list)
    # Human Versatile: an origin feat of the player's choice
    origin_feat: bool = False

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SpeciesDefinition":
        lineages = [LineageDefinition.from_dict(l) for l in data.get("lineages", [])]
        return cls(
            id=Species(data["id"]),
            name=data.get("name", data["id"].title()),
            description=data.get("description", ""),
            size=data.get("size", "Medium"),
            speed=data.get("speed", 30),
            creature_type=data.get("creature_type", "Humanoid"),
            darkvision=data.get("darkvision", 0),
            languages=data.get("languages", ["Common"]),
            traits=[Feature.from_dict(t) for t in data.get("traits", [])],
            grants=Grants.from_dict(data),
            lineage_label=data.get("lineage_label", "Lineage"),
            lineages={l.id: l for l in lineages},
            choices=choices_from_list(data.get("choices", [])),
            origin_feat=data.get("origin_feat", False),
        )

    @property
    def has_lineages(self) -> bool:
        return bool(self.lineages)

    def get_lineage(self, lineage_id: Optional[str]) -> Optional[LineageDefinition]:
        if not lineage_id:
            return None
        return self.lineages.get(lineage_id)

    def traits_through(self, level: int, lineage_chosen: bool) -> List[Feature]:
        """Traits unlocked by ``level``; placeholder traits drop out once a lineage is set."""
        return [
            t for t in self.traits
            if t.level <= level and not (t.placeholder and lineage_chosen)
        ]


def load_species(filepath: str) -> SpeciesDefinition:
    """Load a species from a JSON file."""
    with open(filepath, "r", encoding="utf-8") as f:
        data = json.load(f)
    return SpeciesDefinition.from_dict(data)


def load_all_species(directory: str) -> Dict[Species, SpeciesDefinition]:
    """
    Load all species from a directory.

    Returns dict mapping Species to SpeciesDefinition.
    """
    species = {}
    dir_path = Path(directory)

    if not dir_path.exists():
        return species

    for filepath in sorted(dir_path.glob("*.json")):
        definition = load_species(str(filepath))
        species[definition.id] = definition
        logger.debug("Loaded species %s from %s", definition.id.value, filepath.name)

    return species
