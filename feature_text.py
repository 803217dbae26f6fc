"""
Feature description templating.

Rule data writes level-dependent numbers as Jinja2 expressions, for example
``"regain 1d10 + {{ level }} Hit Points"`` or ``"{{ resources.rage }} times"``.
Descriptions are rendered against a small context built from the character:

    level, proficiency_bonus
    scores.<ability>, modifiers.<ability>
    resources.<resource id>       (maximum uses)
    <scaling name>                (class scaling values, None below their first level)

A reference to anything else is a rule-data defect and raises TemplateRenderError.
"""

from functools import lru_cache
from typing import Dict, Any, Optional

from jinja2 import BaseLoader, Environment, StrictUndefined, Template
from jinja2.exceptions import TemplateError

from ability_scores import ability_modifier, proficiency_bonus
from dnd_constants import Ability
from exceptions import TemplateRenderError

_ENV = Environment(loader=BaseLoader(), undefined=StrictUndefined, autoescape=False)


@lru_cache(maxsize=1024)
def _compile(text: str) -> Template:
    return _ENV.from_string(text)


def build_context(
    level: int,
    scores: Dict[Ability, int],
    resources: Optional[Dict[str, int]] = None,
    scaling: Optional[Dict[str, Any]] = None,
) -> Dict[str, Any]:
    context: Dict[str, Any] = dict(scaling or {})
    context.update({
        "level": level,
        "proficiency_bonus": proficiency_bonus(level),
        "scores": {ability.value: score for ability, score in scores.items()},
        "modifiers": {ability.value: ability_modifier(score) for ability, score in scores.items()},
        "resources": dict(resources or {}),
    })
    return context


def render_description(text: str, context: Dict[str, Any]) -> str:
    """Render one description; plain text without template markers passes through."""
    if "{{" not in text and "{%" not in text:
        return text
    try:
        return _compile(text).render(**context)
    except TemplateError as e:
        raise TemplateRenderError(
            "Feature description failed to render", {"text": text[:60], "error": e}
        ) from e
