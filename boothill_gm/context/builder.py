"""Assembles the narrative context block sent with every decision prompt.

Sections, highest priority first:

    Current Scene        story point content and world context
    Recent Events        the last few narrative history entries
    Active Decision      prompt and options of the pending decision
    Relevant Decisions   top past decisions from the relevance scorer
    World State          significant impact state values

When the result exceeds the token budget, compression escalates level by
level; past `high`, trailing sections are dropped, and finally the first
section is cut to fit. Missing parts of the state simply yield fewer
sections.
"""

from __future__ import annotations

import logging
import math

from pydantic import BaseModel

from ..impact_state import format_impacts_for_context
from ..models import (
    BuiltNarrativeContext,
    CompressionLevel,
    IncludedElements,
    NarrativeState,
    PlayerDecision,
    now_ms,
)
from ..relevance import (
    filter_most_relevant_decisions,
    format_decisions_for_context,
    generate_context_tags,
)
from ..text import clean_metadata_markers
from .compression import LEVELS, compress_narrative_text, estimate_token_count

logger = logging.getLogger(__name__)


class ContextOptions(BaseModel):
    max_tokens: int = 2000
    compression_level: CompressionLevel = "none"
    max_history_entries: int = 8
    max_relevant_decisions: int = 3
    include_world_state: bool = True
    words_per_token: float = 0.75


class _Section(BaseModel):
    key: str
    header: str
    lines: list[str]
    compressible: bool = True


def _active_decision(state: NarrativeState) -> PlayerDecision | None:
    return state.current_decision or state.narrative_context.active_decision


def _collect_sections(state: NarrativeState, options: ContextOptions, now: int) -> list[_Section]:
    ctx = state.narrative_context
    sections: list[_Section] = []

    scene: list[str] = []
    point = state.current_story_point
    if point is not None:
        if point.title:
            scene.append(point.title)
        if point.content:
            scene.append(clean_metadata_markers(point.content))
    if ctx.world_context:
        scene.append(ctx.world_context)
    if scene:
        sections.append(_Section(key="story_point", header="Current Scene:", lines=scene))

    history = [
        clean_metadata_markers(entry)
        for entry in state.narrative_history[-options.max_history_entries:]
    ]
    history = [entry for entry in history if entry]
    if history:
        sections.append(_Section(key="history", header="Recent Events:", lines=history))

    decision = _active_decision(state)
    if decision is not None:
        lines = [decision.prompt] + [f"- {option.text}" for option in decision.options]
        sections.append(_Section(
            key="active_decision", header="Active Decision:", lines=lines, compressible=False,
        ))

    if ctx.decision_history:
        tags = generate_context_tags(ctx.location, ctx.character_focus, ctx.themes)
        relevant = filter_most_relevant_decisions(
            ctx.decision_history, tags, options.max_relevant_decisions, now=now,
        )
        formatted = format_decisions_for_context(relevant)
        if formatted:
            sections.append(_Section(
                key="decisions", header="Relevant Decisions:",
                lines=formatted.split("\n")[1:] or [formatted], compressible=False,
            ))

    if options.include_world_state:
        world = format_impacts_for_context(ctx.impact_state)
        if world:
            sections.append(_Section(
                key="world_state", header="World State:",
                lines=[line for line in world.split("\n") if line], compressible=False,
            ))
    return sections


def _render(sections: list[_Section], level: CompressionLevel) -> str:
    blocks = []
    for section in sections:
        lines = section.lines
        if section.compressible and level != "none":
            lines = [compress_narrative_text(line, level) for line in lines]
        bullet = "- " if section.key == "history" else ""
        body = "\n".join(f"{bullet}{line}" for line in lines if line)
        blocks.append(f"{section.header}\n{body}")
    return "\n\n".join(blocks)


def _included(sections: list[_Section]) -> IncludedElements:
    included = IncludedElements()
    for section in sections:
        if section.key == "story_point":
            included.story_point = True
        elif section.key == "history":
            included.history_entries = len(section.lines)
        elif section.key == "active_decision":
            included.active_decision = True
        elif section.key == "decisions":
            included.decisions = sum(1 for line in section.lines if line.startswith("Decision "))
        elif section.key == "world_state":
            included.world_state = True
    return included


def _fit_words(text: str, max_tokens: int, words_per_token: float) -> str:
    words = text.split(" ")
    limit = max(1, math.floor(max_tokens * words_per_token))
    if len(text.split()) <= limit:
        return text
    kept: list[str] = []
    count = 0
    for word in words:
        count += len(word.split())
        if count > limit:
            break
        kept.append(word)
    return " ".join(kept).rstrip() + "..."


def build_narrative_context(
    state: NarrativeState,
    options: ContextOptions | None = None,
    now: int | None = None,
) -> BuiltNarrativeContext:
    """Format the state into a context block within `options.max_tokens`."""
    options = options or ContextOptions()
    now = now_ms() if now is None else now
    sections = _collect_sections(state, options, now)
    if not sections:
        return BuiltNarrativeContext(formatted_context="", token_estimate=0)

    def tokens(text: str) -> int:
        return estimate_token_count(text, options.words_per_token)

    uncompressed = _render(sections, "none")
    level = options.compression_level
    text = _render(sections, level)
    while tokens(text) > options.max_tokens and level != "high":
        level = LEVELS[LEVELS.index(level) + 1]
        text = _render(sections, level)

    while tokens(text) > options.max_tokens and len(sections) > 1:
        dropped = sections.pop()
        logger.debug("context over budget; dropped section %s", dropped.key)
        text = _render(sections, level)

    if tokens(text) > options.max_tokens:
        text = _fit_words(text, options.max_tokens, options.words_per_token)

    token_estimate = tokens(text)
    logger.debug(
        "built narrative context tokens=%d/%d level=%s sections=%d",
        token_estimate, options.max_tokens, level, len(sections),
    )
    return BuiltNarrativeContext(
        formatted_context=text,
        token_estimate=token_estimate,
        included_elements=_included(sections),
        compression_ratio=round(len(text) / len(uncompressed), 2) if uncompressed else 0.0,
        compression_level=level,
    )


def refresh_narrative_context(
    state: NarrativeState,
    options: ContextOptions | None = None,
    now: int | None = None,
) -> BuiltNarrativeContext:
    return build_narrative_context(state, options, now)


def extract_comprehensive_context(
    state: NarrativeState,
    options: ContextOptions | None = None,
    now: int | None = None,
) -> str:
    """Just the formatted context text."""
    return build_narrative_context(state, options, now).formatted_context
