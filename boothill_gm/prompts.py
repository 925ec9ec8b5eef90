"""Handlebars prompt rendering for decision generation."""

from collections.abc import Callable
from typing import Any

import pybars

from .models import Character, NarrativeState

_compiler = pybars.Compiler()
_cache: dict[str, Callable] = {}


class PromptError(Exception):
    """Raised when a Handlebars template fails to compile or render."""


# ── Custom Handlebars helpers ────────────────────────────


def _helper_take(this, options, items, count):
    """{{#take array N}}...{{/take}}: iterate over the first N items."""
    result = []
    for item in list(items)[:int(count)]:
        result.extend(options["fn"](item))
    return result


_HELPERS: dict[str, Callable] = {
    "take": _helper_take,
}


def render_prompt(template_str: str, context: dict[str, Any]) -> str:
    """Compile and render a Handlebars template with the given context.

    Templates are cached by source string to avoid recompilation.
    """
    try:
        compiled = _cache.get(template_str)
        if compiled is None:
            compiled = _compiler.compile(template_str)
            _cache[template_str] = compiled
        return str(compiled(context, helpers=_HELPERS))
    except Exception as e:
        raise PromptError(f"Template error: {e}") from e


DECISION_PROMPT = """\
You are the game master of a Western frontier role-playing game in the spirit of Boot Hill.
Create one meaningful decision point for the player character {{{char.name}}}.
{{#if char.attributes}}
Character attributes:
{{#take char.attributes 8}}
- {{{name}}}: {{value}}
{{/take}}
{{/if}}
{{#if location}}
Current location: {{{location}}}
{{/if}}
{{#if themes}}
Themes: {{{themes}}}
{{/if}}

{{{context}}}

Respond with only a JSON object in this shape:
{"prompt": "...", "options": [{"text": "...", "impact": "...", "tags": ["..."]}], "importance": "critical|significant|moderate|minor", "context": "...", "characters": ["..."]}
Offer between 2 and {{max_options}} distinct options covering different approaches.
"""


def build_decision_context(
    state: NarrativeState,
    character: Character,
    context_text: str,
    max_options: int = 4,
) -> dict[str, Any]:
    """Assemble template variables for DECISION_PROMPT."""
    ctx = state.narrative_context
    location = ""
    if ctx.location is not None:
        location = ctx.location.name or ctx.location.description or ctx.location.type
    return {
        "char": {
            "name": character.name,
            "attributes": [
                {"name": name, "value": value}
                for name, value in character.attributes.items()
            ],
        },
        "location": location,
        "themes": ", ".join(ctx.themes),
        "context": context_text,
        "max_options": max_options,
    }
