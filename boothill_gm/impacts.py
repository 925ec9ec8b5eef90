"""Decision construction and impact generation.

Turns a presented decision plus the player's chosen option into a durable
record and the typed, signed impacts that record carries.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Sequence

from .models import (
    DAY_MS,
    DecisionImpact,
    DecisionImportance,
    DecisionOption,
    ImpactSeverity,
    ImpactType,
    Location,
    PlayerDecision,
    PlayerDecisionRecord,
    PlayerDecisionRecordWithImpact,
    now_ms,
)

logger = logging.getLogger(__name__)

MINOR_IMPACT_DURATION = 7 * DAY_MS
MINOR_DECISION_EXPIRY = 7 * DAY_MS

_IMPORTANCE_RELEVANCE: dict[str, float] = {
    "critical": 10,
    "significant": 8,
    "moderate": 5,
    "minor": 2,
}

_SEVERITY_BY_IMPORTANCE: dict[str, ImpactSeverity] = {
    "critical": "major",
    "significant": "moderate",
}

_MAGNITUDE: dict[ImpactSeverity, float] = {"major": 8, "moderate": 5, "minor": 2}

# Checked in order; an impact text may yield several types
_TYPE_KEYWORDS: list[tuple[ImpactType, tuple[str, ...]]] = [
    ("reputation", ("reputation", "opinion")),
    ("relationship", ("relationship", "friendship", "alliance")),
    ("story-arc", ("story", "quest", "mission")),
    ("world-state", ("town", "location", "world")),
    ("character", ("skill", "ability", "character")),
    ("inventory", ("item", "weapon", "inventory")),
]

ImpactClassifier = Callable[[str], list[ImpactType]]

_IMPACT_FIELDS = {"impacts", "processed_for_impact", "last_impact_update", "applied_decay"}


class OptionNotFoundError(ValueError):
    """Raised when a selected option id is not part of the decision."""

    def __init__(self, decision_id: str, option_id: str) -> None:
        super().__init__(f"Option with ID {option_id} not found in decision {decision_id}")
        self.decision_id = decision_id
        self.option_id = option_id


def classify_impact_types(text: str) -> list[ImpactType]:
    """Impact types named by an impact description; world-state when none match."""
    lower = text.lower()
    types = [
        impact_type
        for impact_type, keywords in _TYPE_KEYWORDS
        if any(keyword in lower for keyword in keywords)
    ]
    return types or ["world-state"]


def _require_option(decision: PlayerDecision, option_id: str) -> DecisionOption:
    option = decision.find_option(option_id)
    if option is None:
        raise OptionNotFoundError(decision.id, option_id)
    return option


def _location_tags(location: Location | None) -> list[str]:
    if location is None:
        return []
    tags = [f"location:{location.type}"]
    if location.type in ("town", "landmark") and location.name:
        tags.append(f"place:{location.name}")
    return tags


# ---------------------------------------------------------------------------
# Decisions and records
# ---------------------------------------------------------------------------

def create_decision_option(text: str, impact: str, tags: Sequence[str] = ()) -> DecisionOption:
    return DecisionOption(text=text, impact=impact, tags=list(tags))


def create_decision(
    prompt: str,
    options: Sequence[DecisionOption],
    context: str = "",
    importance: DecisionImportance = "moderate",
    location: Location | None = None,
    characters: Sequence[str] = (),
    ai_generated: bool = True,
) -> PlayerDecision:
    return PlayerDecision(
        prompt=prompt,
        options=list(options),
        context=context,
        importance=importance,
        location=location,
        characters=list(characters),
        ai_generated=ai_generated,
    )


def create_decision_record(
    decision: PlayerDecision,
    selected_option_id: str,
    narrative: str,
    now: int | None = None,
) -> PlayerDecisionRecord:
    """Record the player's choice.

    Relevance is fixed from importance. Minor decisions expire after a week.
    """
    option = _require_option(decision, selected_option_id)
    now = now_ms() if now is None else now
    importance = decision.importance or "moderate"

    tags = list(option.tags)
    tags.extend(f"character:{name}" for name in decision.characters)
    tags.append(f"importance:{importance}")
    tags.extend(_location_tags(decision.location))

    return PlayerDecisionRecord(
        decision_id=decision.id,
        selected_option_id=selected_option_id,
        timestamp=now,
        narrative=narrative,
        impact_description=option.impact,
        tags=tags,
        relevance_score=_IMPORTANCE_RELEVANCE.get(importance, 5),
        expiration_timestamp=now + MINOR_DECISION_EXPIRY if importance == "minor" else None,
    )


def attach_impacts(
    record: PlayerDecisionRecord,
    impacts: Sequence[DecisionImpact],
) -> PlayerDecisionRecordWithImpact:
    """Extend a record with its impacts, unprocessed.

    Each impact is copied and linked back to the record's decision.
    """
    linked = []
    for impact in impacts:
        related = list(impact.related_decision_ids)
        if record.decision_id not in related:
            related.append(record.decision_id)
        linked.append(impact.model_copy(update={"related_decision_ids": related}))
    return PlayerDecisionRecordWithImpact(
        **record.model_dump(exclude=_IMPACT_FIELDS),
        impacts=linked,
        processed_for_impact=False,
        last_impact_update=record.timestamp,
    )


# ---------------------------------------------------------------------------
# Impact generation
# ---------------------------------------------------------------------------

def _resolve_target(impact_type: ImpactType, decision: PlayerDecision) -> str:
    location = decision.location
    if impact_type == "reputation":
        if location is not None and location.name:
            return location.name
        if decision.characters:
            return decision.characters[0]
    elif impact_type == "relationship":
        if decision.characters:
            return decision.characters[0]
    elif impact_type == "world-state" and location is not None:
        return location.name or location.type
    return "general"


def create_decision_impacts(
    decision: PlayerDecision,
    selected_option_id: str,
    classify: ImpactClassifier = classify_impact_types,
) -> list[DecisionImpact]:
    """Derive impacts from the selected option's impact description.

    Raises OptionNotFoundError for an option id not on the decision.
    """
    option = _require_option(decision, selected_option_id)
    severity = _SEVERITY_BY_IMPORTANCE.get(decision.importance or "", "minor")
    negative = "negative" in option.impact.lower() or "negative" in option.text.lower()
    value = -_MAGNITUDE[severity] if negative else _MAGNITUDE[severity]
    duration = MINOR_IMPACT_DURATION if severity == "minor" else None

    impacts = [
        DecisionImpact(
            type=impact_type,
            target=_resolve_target(impact_type, decision),
            severity=severity,
            description=option.impact,
            value=value,
            duration=duration,
            conditions=list(option.tags),
            related_decision_ids=[],
        )
        for impact_type in classify(option.impact)
    ]
    logger.debug(
        "decision %s option %s -> %d impact(s) severity=%s value=%s",
        decision.id, selected_option_id, len(impacts), severity, value,
    )
    return impacts
