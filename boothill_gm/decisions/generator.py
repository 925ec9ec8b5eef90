"""Decision content: prompt rendering, response parsing, fallback templates."""

from __future__ import annotations

import json
import logging
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from ..models import (
    Character,
    DecisionOption,
    NarrativeState,
    PlayerDecision,
    new_id,
)
from ..prompts import DECISION_PROMPT, build_decision_context, render_prompt
from .detector import detect_story_signals

logger = logging.getLogger(__name__)

FallbackTheme = Literal["combat", "exploration", "social"]

VALID_IMPORTANCE = ("critical", "significant", "moderate", "minor")
CONTINUE_OPTION_TEXT = "Continue forward"


class DecisionParseError(ValueError):
    """Raised when LLM output cannot be turned into a usable decision."""


# ---------------------------------------------------------------------------
# Wire shape: every field optional, unknown fields ignored
# ---------------------------------------------------------------------------

class RawDecisionOption(BaseModel):
    id: str | None = None
    text: str | None = None
    impact: str | None = None
    tags: list[str] | None = None


class DecisionResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    decision_id: str | None = Field(default=None, alias="decisionId")
    prompt: str | None = None
    options: list[RawDecisionOption] | None = None
    context: str | None = None
    importance: str | None = None
    characters: list[str] | None = None


def _parse_json_output(text: str) -> dict | None:
    """Parse JSON from LLM output, stripping markdown fences."""
    cleaned = text.strip()
    if cleaned.startswith("```"):
        lines = cleaned.split("\n")
        lines = [l for l in lines[1:] if not l.strip().startswith("```")]
        cleaned = "\n".join(lines)
    elif not cleaned.startswith("{") and "{" in cleaned and "}" in cleaned:
        # prose around the object
        cleaned = cleaned[cleaned.index("{"):cleaned.rindex("}") + 1]
    try:
        data = json.loads(cleaned)
        return data if isinstance(data, dict) else None
    except json.JSONDecodeError as e:
        logger.warning("Decision output is not valid JSON: %s", e)
        return None


def parse_decision_response(
    text: str,
    state: NarrativeState | None = None,
    max_options: int = 4,
) -> PlayerDecision:
    """Build a PlayerDecision from raw LLM output.

    Ids are assigned where missing, unknown importance becomes "moderate",
    and a single option is padded with "Continue forward". Raises
    DecisionParseError when there is no JSON object, no prompt, or no
    usable option.
    """
    data = _parse_json_output(text)
    if data is None:
        raise DecisionParseError("LLM response is not a JSON object")
    try:
        raw = DecisionResponse.model_validate(data)
    except ValidationError as e:
        raise DecisionParseError(f"LLM response has an invalid shape: {e}") from e
    return decision_from_response(raw, state, max_options)


def decision_from_response(
    raw: DecisionResponse,
    state: NarrativeState | None = None,
    max_options: int = 4,
) -> PlayerDecision:
    """Validate and default a wire-shaped response into a PlayerDecision."""
    prompt = (raw.prompt or "").strip()
    if not prompt:
        raise DecisionParseError("LLM response has no prompt")

    options = [
        DecisionOption(
            id=option.id or new_id(),
            text=option.text.strip(),
            impact=(option.impact or "").strip(),
            tags=option.tags or [],
        )
        for option in raw.options or []
        if option.text and option.text.strip()
    ][:max_options]
    if not options:
        raise DecisionParseError("LLM response has no options")
    if len(options) == 1:
        options.append(DecisionOption(
            text=CONTINUE_OPTION_TEXT,
            impact="The story moves on.",
            tags=["default"],
        ))

    importance = raw.importance if raw.importance in VALID_IMPORTANCE else "moderate"
    location = None
    if state is not None:
        location = state.narrative_context.location
        if location is None and state.current_story_point is not None:
            location = state.current_story_point.location_change

    return PlayerDecision(
        id=raw.decision_id or new_id(),
        prompt=prompt,
        options=options,
        context=raw.context or "",
        importance=importance,
        characters=raw.characters or [],
        location=location,
        ai_generated=True,
    )


def render_decision_prompt(
    state: NarrativeState,
    character: Character,
    context_text: str,
    max_options: int = 4,
) -> str:
    return render_prompt(
        DECISION_PROMPT,
        build_decision_context(state, character, context_text, max_options),
    )


# ---------------------------------------------------------------------------
# Fallback templates
# ---------------------------------------------------------------------------

_GENERIC_TEMPLATE: dict[str, Any] = {
    "prompt": "What would you like to do?",
    "options": [
        ("Proceed cautiously", "A careful approach may turn up more information.", ["cautious"]),
        ("Take immediate action", "Bold moves get results quickly but carry more risk.", ["brave"]),
        ("Look for another approach", "A less obvious path might offer an advantage.", ["resourceful"]),
    ],
}

_THEMED_TEMPLATES: dict[str, dict[str, Any]] = {
    "combat": {
        "prompt": "How do you want to approach this confrontation?",
        "options": [
            ("Take a defensive stance", "You'll be better protected but may miss a chance to strike.",
             ["defensive", "cautious"]),
            ("Look for a tactical advantage", "The right position could give you the edge.",
             ["tactical", "smart"]),
            ("Prepare to strike decisively", "Attacking hard could end this quickly but leaves you exposed.",
             ["aggressive", "brave"]),
        ],
    },
    "social": {
        "prompt": "How do you want to handle this conversation?",
        "options": [
            ("Be diplomatic and measured", "Careful words may build trust but could look weak.",
             ["diplomatic", "cautious"]),
            ("Be direct and to the point", "Plain talk is refreshing but might give offence.",
             ["direct", "honest"]),
            ("Use charm and persuasion", "A silver tongue may win the day if nobody doubts your sincerity.",
             ["charming", "persuasive"]),
        ],
    },
    "exploration": {
        "prompt": "How do you want to explore this area?",
        "options": [
            ("Take your time and be thorough", "You might find hidden details but it will take longer.",
             ["thorough", "cautious"]),
            ("Focus on what stands out", "You'll cover more ground but might miss subtle signs.",
             ["efficient", "practical"]),
            ("Look for an unusual approach", "Thinking differently might reveal a unique opportunity.",
             ["creative", "resourceful"]),
        ],
    },
}


def infer_fallback_theme(state: NarrativeState) -> FallbackTheme | None:
    """Pick a fallback theme from the latest narrative text, if any fits."""
    parts = list(state.narrative_history[-1:])
    if state.current_story_point is not None:
        parts.append(state.current_story_point.content)
    signals = detect_story_signals("\n".join(parts))
    if "action" in signals and "action_concluded" not in signals:
        return "combat"
    if "dialogue" in signals:
        return "social"
    point = state.current_story_point
    if point is not None and point.location_change is not None:
        return "exploration"
    return None


def generate_fallback_decision(
    state: NarrativeState,
    theme: FallbackTheme | None = None,
    infer_theme: bool = True,
) -> PlayerDecision:
    """Templated decision used whenever generation is unavailable or fails.

    Always has a non-empty prompt and three options.
    """
    if theme is None and infer_theme:
        theme = infer_fallback_theme(state)
    template = _THEMED_TEMPLATES.get(theme or "", _GENERIC_TEMPLATE)
    location = state.narrative_context.location
    if location is None and state.current_story_point is not None:
        location = state.current_story_point.location_change
    return PlayerDecision(
        id=f"fallback-{new_id()}",
        prompt=template["prompt"],
        options=[
            DecisionOption(text=text, impact=impact, tags=list(tags))
            for text, impact, tags in template["options"]
        ],
        context="Based on the current situation",
        importance="moderate",
        characters=list(state.narrative_context.character_focus),
        location=location,
        ai_generated=False,
    )
