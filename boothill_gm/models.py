"""Core domain models.

Every engine component operates on these types. Pydantic is used for
validation and serialisation at every data boundary, so each model survives a
JSON round-trip (`model_dump_json` / `model_validate_json`) unchanged.

Timestamps and durations are integer milliseconds since the epoch.
"""

from __future__ import annotations

import time
import uuid
from typing import Any, Literal

from pydantic import BaseModel, Field

DecisionImportance = Literal["critical", "significant", "moderate", "minor"]

ImpactType = Literal[
    "reputation",
    "relationship",
    "world-state",
    "story-arc",
    "character",
    "inventory",
]

ImpactSeverity = Literal["major", "moderate", "minor"]

CompressionLevel = Literal["none", "low", "medium", "high"]

LocationKind = Literal["town", "wilderness", "landmark", "unknown"]

DAY_MS = 24 * 60 * 60 * 1000


def now_ms() -> int:
    """Current wall-clock time in epoch milliseconds."""
    return int(time.time() * 1000)


def new_id() -> str:
    return str(uuid.uuid4())


# ---------------------------------------------------------------------------
# Decisions
# ---------------------------------------------------------------------------

class Location(BaseModel):
    """Where the player currently is."""

    type: LocationKind = "unknown"
    name: str | None = None  # towns and landmarks
    description: str | None = None  # wilderness


class DecisionOption(BaseModel):
    id: str = Field(default_factory=new_id)
    text: str
    impact: str = ""
    tags: list[str] = Field(default_factory=list)


class PlayerDecision(BaseModel):
    """A decision point offered to the player. Immutable once presented."""

    id: str = Field(default_factory=new_id)
    prompt: str
    options: list[DecisionOption] = Field(default_factory=list)
    timestamp: int = Field(default_factory=now_ms)
    context: str = ""
    importance: DecisionImportance | None = "moderate"
    characters: list[str] = Field(default_factory=list)
    location: Location | None = None
    ai_generated: bool = True

    def find_option(self, option_id: str) -> DecisionOption | None:
        for option in self.options:
            if option.id == option_id:
                return option
        return None


class PlayerDecisionRecord(BaseModel):
    """The durable record of a resolved decision."""

    decision_id: str
    selected_option_id: str
    timestamp: int = Field(default_factory=now_ms)
    narrative: str = ""
    impact_description: str = ""
    tags: list[str] = Field(default_factory=list)
    relevance_score: float = 5  # 0-10, fixed at creation
    expiration_timestamp: int | None = None


class DecisionImpact(BaseModel):
    """A single typed, signed effect of a resolved decision."""

    id: str = Field(default_factory=new_id)
    type: ImpactType
    target: str = "general"
    severity: ImpactSeverity
    description: str = ""
    value: float
    duration: int | None = None  # ms; None means permanent
    conditions: list[str] = Field(default_factory=list)
    related_decision_ids: list[str] = Field(default_factory=list)


class PlayerDecisionRecordWithImpact(PlayerDecisionRecord):
    """A decision record carrying the impacts derived from it.

    `impacts` is required so that plain records never validate as this type.
    `applied_decay` maps impact id -> fraction of that impact's contribution
    already removed from the ImpactState by time-based evolution.
    """

    impacts: list[DecisionImpact]
    processed_for_impact: bool = False
    last_impact_update: int = Field(default_factory=now_ms)
    applied_decay: dict[str, float] = Field(default_factory=dict)


class ImpactState(BaseModel):
    """Aggregate of all applied impacts, per type and target."""

    reputation_impacts: dict[str, float] = Field(default_factory=dict)
    # subject -> target -> value; the player is the subject unless the
    # impact target is written as "subject:target"
    relationship_impacts: dict[str, dict[str, float]] = Field(default_factory=dict)
    world_state_impacts: dict[str, float] = Field(default_factory=dict)
    story_arc_impacts: dict[str, float] = Field(default_factory=dict)
    last_updated: int = 0


# ---------------------------------------------------------------------------
# Narrative
# ---------------------------------------------------------------------------

class StoryPoint(BaseModel):
    id: str = Field(default_factory=new_id)
    type: str = "exposition"  # exposition | decision | action | revelation | ...
    title: str = ""
    content: str = ""
    location_change: Location | None = None
    tags: list[str] = Field(default_factory=list)


class NarrativeArc(BaseModel):
    id: str
    title: str = ""
    description: str = ""


class NarrativeContext(BaseModel):
    """Ambient narrative context shared between the engine and its host."""

    tone: str | None = None
    world_context: str = ""
    character_focus: list[str] = Field(default_factory=list)
    themes: list[str] = Field(default_factory=list)
    important_events: list[str] = Field(default_factory=list)
    story_points: dict[str, StoryPoint] = Field(default_factory=dict)
    narrative_arcs: dict[str, NarrativeArc] = Field(default_factory=dict)
    narrative_branches: dict[str, dict[str, Any]] = Field(default_factory=dict)
    current_arc_id: str | None = None
    location: Location | None = None
    impact_state: ImpactState = Field(default_factory=ImpactState)
    active_decision: PlayerDecision | None = None
    pending_decisions: list[PlayerDecision] = Field(default_factory=list)
    decision_history: list[PlayerDecisionRecordWithImpact | PlayerDecisionRecord] = Field(
        default_factory=list
    )


_LEGACY_KEYS = {
    "context": "narrative_context",
    "narrativeContext": "narrative_context",
    "currentScene": "current_story_point",
    "currentStoryPoint": "current_story_point",
    "history": "narrative_history",
    "narrativeHistory": "narrative_history",
    "currentDecision": "current_decision",
}


class NarrativeState(BaseModel):
    """Snapshot of the story the engine reasons about."""

    current_story_point: StoryPoint | None = None
    narrative_history: list[str] = Field(default_factory=list)
    narrative_context: NarrativeContext = Field(default_factory=NarrativeContext)
    current_decision: PlayerDecision | None = None

    @classmethod
    def from_legacy(cls, data: dict[str, Any]) -> NarrativeState:
        """Build a state from an older payload shape.

        Older hosts sent `context` / `currentScene` / `history` (or camelCase
        names) instead of the canonical fields. A bare string scene is
        treated as story point content.
        """
        mapped: dict[str, Any] = {}
        for key, value in data.items():
            mapped[_LEGACY_KEYS.get(key, key)] = value
        scene = mapped.get("current_story_point")
        if isinstance(scene, str):
            mapped["current_story_point"] = {"content": scene}
        ctx = mapped.get("narrative_context")
        if isinstance(ctx, str):
            mapped["narrative_context"] = {"world_context": ctx}
        return cls.model_validate(mapped)

    def has_pending_decision(self) -> bool:
        ctx = self.narrative_context
        return bool(self.current_decision or ctx.active_decision or ctx.pending_decisions)


# ---------------------------------------------------------------------------
# Inputs from excluded subsystems
# ---------------------------------------------------------------------------

class Character(BaseModel):
    """The player character, reduced to what the engine reads."""

    name: str = "Stranger"
    attributes: dict[str, int] = Field(default_factory=dict)
    is_npc: bool = False


class GameState(BaseModel):
    location: Location | None = None
    combat_active: bool = False  # passed through; never gates detection


# ---------------------------------------------------------------------------
# Results
# ---------------------------------------------------------------------------

class DetectionResult(BaseModel):
    should_present: bool
    score: float
    reason: str


class QualityResult(BaseModel):
    score: float
    suggestions: list[str] = Field(default_factory=list)
    acceptable: bool


class NarrativeSummary(BaseModel):
    section: str
    summary: str
    original_tokens: int
    summary_tokens: int
    compression_ratio: float


class IncludedElements(BaseModel):
    story_point: bool = False
    history_entries: int = 0
    active_decision: bool = False
    decisions: int = 0
    world_state: bool = False


class BuiltNarrativeContext(BaseModel):
    formatted_context: str
    token_estimate: int
    included_elements: IncludedElements = Field(default_factory=IncludedElements)
    compression_ratio: float = 0.0
    compression_level: CompressionLevel = "none"


class DecisionHistoryEntry(BaseModel):
    """One resolved decision in a DecisionService's bounded history."""

    decision_id: str
    option_id: str
    outcome: str
    timestamp: int = Field(default_factory=now_ms)
    prompt: str = ""
    choice: str = ""
