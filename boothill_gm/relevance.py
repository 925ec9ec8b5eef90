"""Relevance scoring for past decisions.

Ranks how pertinent a resolved decision is to the current narrative moment so
that only the most useful history reaches the LLM context. All functions are
pure; `now` is an epoch-millisecond timestamp and defaults to the wall clock.
"""

from __future__ import annotations

from collections.abc import Sequence

from .config import RelevanceConfig
from .models import (
    Location,
    PlayerDecisionRecord,
    PlayerDecisionRecordWithImpact,
    now_ms,
)

DEFAULT_RELEVANCE_CONFIG = RelevanceConfig()

# Rough per-record token cost when formatting history for a prompt
_TOKENS_PER_DECISION = 100
_NARRATIVE_PREVIEW = 150


def has_decision_expired(record: PlayerDecisionRecord, now: int | None = None) -> bool:
    """True once a record's explicit expiry has passed, or once every one of
    its impacts carries a duration that has fully elapsed."""
    now = now_ms() if now is None else now
    if record.expiration_timestamp is not None and record.expiration_timestamp < now:
        return True
    if isinstance(record, PlayerDecisionRecordWithImpact) and record.impacts:
        return all(
            impact.duration is not None and now - record.timestamp > impact.duration
            for impact in record.impacts
        )
    return False


def _tag_match_score(decision_tags: Sequence[str], current_tags: Sequence[str]) -> float:
    if not decision_tags or not current_tags:
        return 0.0
    current = {tag.lower() for tag in current_tags}
    matching = 0
    for tag in decision_tags:
        lower = tag.lower()
        if any(c == lower or c in lower or lower in c for c in current):
            matching += 1
    ratio = matching / len(decision_tags)
    # records that carry more tags are better described, up to five tags
    tag_count_factor = min(len(decision_tags) / 5, 1.0)
    return ratio * (0.7 + 0.3 * tag_count_factor)


def _impact_score(record: PlayerDecisionRecord) -> float:
    if not isinstance(record, PlayerDecisionRecordWithImpact):
        return 0.5
    if not record.impacts:
        return 0.0
    total = sum(abs(impact.value) for impact in record.impacts)
    return min(total / 20, 1.0)


def calculate_relevance_score(
    record: PlayerDecisionRecord,
    current_tags: Sequence[str] = (),
    now: int | None = None,
    config: RelevanceConfig = DEFAULT_RELEVANCE_CONFIG,
) -> float:
    """Score a record from 0 to 10, rounded to one decimal. Expired records
    score exactly 0."""
    now = now_ms() if now is None else now
    if has_decision_expired(record, now):
        return 0.0

    age = now - record.timestamp
    if config.max_age <= 0 or age > config.max_age:
        recency = 0.0
    else:
        recency = min(1.0, 1 - age / config.max_age)
    tag_match = _tag_match_score(record.tags, current_tags)
    importance = min(max(record.relevance_score / 10, 0.0), 1.0)
    impact = _impact_score(record)

    weighted = (
        recency * config.recency_weight
        + tag_match * config.tag_match_weight
        + importance * config.importance_weight
        + impact * config.impact_weight
    )
    return round(min(max(weighted * 10, 0.0), 10.0), 1)


def generate_context_tags(
    location: Location | None = None,
    characters: Sequence[str] = (),
    themes: Sequence[str] = (),
) -> list[str]:
    """Describe the current scene as a flat tag list."""
    tags: list[str] = []
    if location is not None:
        tags.append(f"location:{location.type}")
        if location.type in ("town", "landmark") and location.name:
            tags.append(f"place:{location.name}")
    tags.extend(f"character:{name}" for name in characters)
    tags.extend(f"theme:{theme}" for theme in themes)
    return tags


def filter_most_relevant_decisions(
    records: Sequence[PlayerDecisionRecord],
    current_tags: Sequence[str] = (),
    max_count: int = 5,
    min_score: float = 3,
    now: int | None = None,
    config: RelevanceConfig = DEFAULT_RELEVANCE_CONFIG,
) -> list[PlayerDecisionRecord]:
    """Highest-scoring records first, at most `max_count`, none below `min_score`."""
    if not records:
        return []
    now = now_ms() if now is None else now
    scored = [
        (calculate_relevance_score(record, current_tags, now, config), record)
        for record in records
    ]
    scored = [item for item in scored if item[0] >= min_score]
    scored.sort(key=lambda item: item[0], reverse=True)
    return [record for _, record in scored[:max_count]]


def format_decisions_for_context(
    records: Sequence[PlayerDecisionRecord],
    max_tokens: int = 800,
) -> str:
    """Compact text block describing past decisions for an LLM prompt."""
    if not records:
        return ""
    limit = max(1, max_tokens // _TOKENS_PER_DECISION)
    lines = ["Player's past relevant decisions:"]
    for index, record in enumerate(records[:limit], start=1):
        narrative = record.narrative
        if len(narrative) > _NARRATIVE_PREVIEW:
            narrative = narrative[:_NARRATIVE_PREVIEW] + "..."
        lines.append(f"Decision {index}: {record.impact_description}")
        lines.append(f"Context: {narrative}")
    return "\n".join(lines)


def create_decision_history_context(
    records: Sequence[PlayerDecisionRecord],
    location: Location | None = None,
    characters: Sequence[str] = (),
    themes: Sequence[str] = (),
    max_decisions: int = 5,
    now: int | None = None,
) -> str:
    tags = generate_context_tags(location, characters, themes)
    relevant = filter_most_relevant_decisions(records, tags, max_decisions, now=now)
    return format_decisions_for_context(relevant)
