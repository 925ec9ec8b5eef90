"""Impact state reducer.

Applies decision impacts to the aggregate ImpactState, decays time-bounded
impacts, and reconciles impacts that hit the same target. Every function
returns a new state and leaves its input state untouched (copy-on-write); the
caller installs the returned value.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence

from .models import (
    DecisionImpact,
    ImpactState,
    ImpactType,
    PlayerDecisionRecordWithImpact,
    new_id,
    now_ms,
)

logger = logging.getLogger(__name__)

DEFAULT_RELATIONSHIP_SUBJECT = "player"

_BOUNDS: dict[str, tuple[float, float]] = {
    "reputation": (-10, 10),
    "relationship": (-10, 10),
    "world-state": (-10, 10),
    "story-arc": (0, 100),
}

_SEVERITY_RANK = {"major": 3, "moderate": 2, "minor": 1}


def new_impact_state() -> ImpactState:
    return ImpactState(last_updated=now_ms())


def _clamp(impact_type: ImpactType, value: float) -> float:
    low, high = _BOUNDS[impact_type]
    return max(low, min(high, value))


def _split_relationship_target(target: str) -> tuple[str, str]:
    if ":" in target:
        subject, _, other = target.partition(":")
        return subject, other
    return DEFAULT_RELATIONSHIP_SUBJECT, target


def _copy_state(state: ImpactState) -> ImpactState:
    return ImpactState(
        reputation_impacts=dict(state.reputation_impacts),
        relationship_impacts={k: dict(v) for k, v in state.relationship_impacts.items()},
        world_state_impacts=dict(state.world_state_impacts),
        story_arc_impacts=dict(state.story_arc_impacts),
        last_updated=state.last_updated,
    )


def _flat_map(state: ImpactState, impact_type: ImpactType) -> dict[str, float] | None:
    if impact_type == "reputation":
        return state.reputation_impacts
    if impact_type == "world-state":
        return state.world_state_impacts
    if impact_type == "story-arc":
        return state.story_arc_impacts
    return None


def get_impact_value(state: ImpactState, impact_type: ImpactType, target: str) -> float:
    """Current aggregate value for a (type, target) pair, 0 when absent."""
    if impact_type == "relationship":
        subject, other = _split_relationship_target(target)
        return state.relationship_impacts.get(subject, {}).get(other, 0)
    values = _flat_map(state, impact_type)
    return 0 if values is None else values.get(target, 0)


def _set_value(state: ImpactState, impact: DecisionImpact, value: float) -> None:
    if impact.type == "relationship":
        subject, other = _split_relationship_target(impact.target)
        state.relationship_impacts.setdefault(subject, {})[other] = value
        return
    values = _flat_map(state, impact.type)
    if values is not None:
        values[impact.target] = value


def process_decision_impacts(
    state: ImpactState,
    record: PlayerDecisionRecordWithImpact,
    now: int | None = None,
) -> ImpactState:
    """Add a record's impacts into the state.

    Returns `state` itself when the record was already processed. Otherwise
    marks the record processed and stamps its `last_impact_update`.
    `character` and `inventory` impacts have no aggregate map.
    """
    if record.processed_for_impact:
        return state

    now = now_ms() if now is None else now
    updated = _copy_state(state)
    for impact in record.impacts:
        if impact.type not in _BOUNDS:
            continue
        current = get_impact_value(updated, impact.type, impact.target)
        _set_value(updated, impact, _clamp(impact.type, current + impact.value))
    updated.last_updated = max(state.last_updated, now)

    record.processed_for_impact = True
    record.last_impact_update = now
    logger.info(
        "applied %d impact(s) from decision %s", len(record.impacts), record.decision_id
    )
    return updated


def _decayed_fraction(elapsed: int, duration: int) -> float:
    """Fraction of an impact removed once `elapsed` exceeds `duration`.

    Half is removed on expiry, the rest linearly over one further duration.
    """
    if elapsed <= duration:
        return 0.0
    overdue = min(1.0, (elapsed - duration) / duration)
    return 0.5 + 0.5 * overdue


def _toward_zero(current: float, delta: float) -> float:
    result = current - delta
    if current > 0 and result < 0 or current < 0 and result > 0:
        return 0.0
    return result


def evolve_impacts_over_time(
    state: ImpactState,
    records: Sequence[PlayerDecisionRecordWithImpact],
    now: int | None = None,
) -> ImpactState:
    """Decay expired, time-bounded impacts of processed records.

    Permanent impacts and unprocessed records never change the state.
    Returns `state` itself when nothing decays. Each record remembers in
    `applied_decay` how much of each impact has already been removed, so
    repeated calls never decay the same contribution twice.
    """
    now = now_ms() if now is None else now
    updated: ImpactState | None = None

    for record in records:
        if not record.processed_for_impact:
            continue
        elapsed = now - record.last_impact_update
        for impact in record.impacts:
            if not impact.duration or impact.type not in _BOUNDS:
                continue
            target_fraction = _decayed_fraction(elapsed, impact.duration)
            applied = record.applied_decay.get(impact.id, 0.0)
            if target_fraction <= applied:
                continue
            if updated is None:
                updated = _copy_state(state)
            current = get_impact_value(updated, impact.type, impact.target)
            delta = impact.value * (target_fraction - applied)
            _set_value(updated, impact, _toward_zero(current, delta))
            record.applied_decay[impact.id] = target_fraction

    if updated is None:
        return state
    updated.last_updated = max(state.last_updated, now)
    logger.debug("impact state evolved at %d", now)
    return updated


def reconcile_conflicting_impacts(impacts: Sequence[DecisionImpact]) -> list[DecisionImpact]:
    """Merge impacts sharing a (type, target) pair.

    The strongest impact (by magnitude, then severity) is the base; each
    further impact i contributes value * 0.5 / i. Values 5 and 2 merge to 6,
    -5 and -2 to -6. The merged value is not bounded here; state bounds are
    applied when the impact is processed. Groups of one pass through unchanged. Output keeps first-seen group order.
    """
    groups: dict[tuple[str, str], list[DecisionImpact]] = {}
    for impact in impacts:
        groups.setdefault((impact.type, impact.target), []).append(impact)

    reconciled: list[DecisionImpact] = []
    for group in groups.values():
        if len(group) == 1:
            reconciled.append(group[0])
            continue
        ordered = sorted(
            group,
            key=lambda i: (abs(i.value), _SEVERITY_RANK[i.severity]),
            reverse=True,
        )
        base = ordered[0]
        value = base.value
        for index, other in enumerate(ordered[1:], start=1):
            value += other.value * (0.5 / index)

        related: list[str] = []
        for impact in ordered:
            for decision_id in impact.related_decision_ids:
                if decision_id not in related:
                    related.append(decision_id)

        reconciled.append(base.model_copy(update={
            "id": new_id(),
            "value": value,
            "related_decision_ids": related,
        }))
    return reconciled


# ---------------------------------------------------------------------------
# Prompt formatting
# ---------------------------------------------------------------------------

def _num(value: float) -> str:
    return f"{value:g}"


def format_impacts_for_context(state: ImpactState, max_entries: int = 5) -> str:
    """Human-readable summary of the significant parts of an impact state."""
    parts: list[str] = []

    reputation = sorted(
        ((t, v) for t, v in state.reputation_impacts.items() if abs(v) > 2),
        key=lambda item: abs(item[1]),
        reverse=True,
    )[:max_entries]
    if reputation:
        parts.append("Character Reputation:")
        for target, value in reputation:
            sentiment = "positive" if value > 0 else "negative"
            intensity = "strong" if abs(value) >= 8 else "moderate" if abs(value) >= 4 else "mild"
            parts.append(f"- {target}: {intensity} {sentiment} reputation ({_num(value)})")

    relationships = sorted(
        (
            (subject, target, value)
            for subject, targets in state.relationship_impacts.items()
            for target, value in targets.items()
            if abs(value) > 2
        ),
        key=lambda item: abs(item[2]),
        reverse=True,
    )[:max_entries]
    if relationships:
        parts.append("\nRelationships:")
        for subject, target, value in relationships:
            relation = "friendly" if value > 0 else "hostile"
            intensity = "very" if abs(value) >= 8 else "somewhat" if abs(value) >= 4 else "slightly"
            parts.append(f"- {subject} is {intensity} {relation} toward {target} ({_num(value)})")

    world = [(t, v) for t, v in state.world_state_impacts.items() if v != 0][:max_entries]
    if world:
        parts.append("\nWorld State:")
        for target, value in world:
            change = "improved" if value > 0 else "worsened"
            parts.append(f"- {target} has {change} ({_num(value)})")

    arcs = sorted(state.story_arc_impacts.items(), key=lambda item: item[1], reverse=True)
    if arcs[:max_entries]:
        parts.append("\nStory Progression:")
        for arc, value in arcs[:max_entries]:
            if value >= 75:
                progress = "nearing completion"
            elif value >= 50:
                progress = "well underway"
            elif value >= 25:
                progress = "making progress"
            else:
                progress = "just beginning"
            parts.append(f"- {arc}: {progress} ({_num(value)}%)")

    return "\n".join(parts)
