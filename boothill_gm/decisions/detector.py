"""Decides whether the current narrative moment warrants a decision point.

A decision is never offered while another is pending, nor sooner than the
minimum interval after the previous one. Otherwise narrative signals adjust
a base score and the decision is presented once the score reaches the
configured threshold.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Callable
from typing import Literal

from ..config import DecisionServiceConfig
from ..models import Character, DetectionResult, GameState, NarrativeState, now_ms

logger = logging.getLogger(__name__)

StorySignal = Literal[
    "explicit_marker",
    "story_advancement",
    "dialogue",
    "question",
    "action",
    "action_concluded",
]

StorySignalClassifier = Callable[[str], set[StorySignal]]

BASE_SCORE = 0.4
SIGNAL_WEIGHTS: dict[str, float] = {
    "dialogue": 0.15,
    "question": 0.05,
    "action": -0.2,
    "action_concluded": 0.1,
    "explicit_marker": 0.25,
    "story_advancement": 0.2,
    "decision_point": 0.3,
    "new_location": 0.2,
}
TIME_FACTOR_WEIGHT = 0.25
TIME_FACTOR_INTERVALS = 5

_EXPLICIT_MARKERS = (
    "decision_point", "[decision]", "what will you do", "what do you do",
    "you must decide", "you must choose", "the choice is yours", "make a choice",
)
_ADVANCEMENT_WORDS = (
    "revealed", "discover", "learned", "found out", "realized", "completed",
    "accomplished", "succeeded", "milestone", "turning point", "critical",
    "crucial", "vital", "essential", "significant", "mission", "quest",
    "secret", "betrayal", "finally",
)
_SPEECH_RE = re.compile(r"\b(?:says|said|asks|asked|replies|replied|shouts|shouted|whispers|whispered)\b")
_ACTION_RE = re.compile(
    r"\b(?:attack\w*|shoot\w*|shot|punch\w*|fight\w*|fires?|firing|draws? (?:his|her|your|a) \w+|"
    r"swing\w*|charg\w+|duck\w*|dodg\w+|brawl\w*)\b"
)
_CONCLUDED_RE = re.compile(
    r"\b(?:falls?|fell|collapses?|collapsed|defeated|flees|fled|escaped|surrenders?|"
    r"is over|ends|ended|settles|dead|lies still)\b"
)
_QUOTED_RE = re.compile(r'"([^"]*)"')


def detect_story_signals(text: str) -> set[StorySignal]:
    """Keyword classification of a narrative passage."""
    signals: set[StorySignal] = set()
    lower = text.lower()
    if any(marker in lower for marker in _EXPLICIT_MARKERS):
        signals.add("explicit_marker")
    if any(word in lower for word in _ADVANCEMENT_WORDS):
        signals.add("story_advancement")

    quoted = _QUOTED_RE.findall(text)
    if quoted or _SPEECH_RE.search(lower):
        signals.add("dialogue")
        if any("?" in q for q in quoted) or (not quoted and "?" in text):
            signals.add("question")
    if _ACTION_RE.search(lower):
        signals.add("action")
        if _CONCLUDED_RE.search(lower):
            signals.add("action_concluded")
    return signals


class DecisionDetector:
    """Scores narrative moments against DecisionServiceConfig thresholds."""

    def __init__(
        self,
        config: DecisionServiceConfig | None = None,
        classify: StorySignalClassifier = detect_story_signals,
    ) -> None:
        self.config = config or DecisionServiceConfig()
        self._classify = classify

    def _moved(self, state: NarrativeState, game_state: GameState | None) -> bool:
        point = state.current_story_point
        if point is not None and point.location_change is not None:
            return True
        known = state.narrative_context.location
        current = game_state.location if game_state else None
        if known is None or current is None:
            return False
        return (known.type, known.name) != (current.type, current.name)

    def detect_decision_point(
        self,
        state: NarrativeState,
        character: Character | None = None,
        game_state: GameState | None = None,
        last_decision_time: int | None = None,
        now: int | None = None,
    ) -> DetectionResult:
        now = now_ms() if now is None else now
        interval = self.config.min_decision_interval

        if state.has_pending_decision():
            return DetectionResult(should_present=False, score=0.0, reason="decision already pending")

        elapsed = None if last_decision_time is None else now - last_decision_time
        if elapsed is not None and elapsed < interval:
            return DetectionResult(should_present=False, score=0.0, reason="too soon since last decision")

        parts: list[str] = []
        if state.narrative_history:
            parts.append(state.narrative_history[-1])
        point = state.current_story_point
        if point is not None and point.content:
            parts.append(point.content)
        signals = self._classify("\n".join(parts))

        score = BASE_SCORE
        reasons: list[str] = []
        for signal in sorted(signals):
            score += SIGNAL_WEIGHTS[signal]
            reasons.append(signal)
        if point is not None and point.type == "decision":
            score += SIGNAL_WEIGHTS["decision_point"]
            reasons.append("decision_point")
        if self._moved(state, game_state):
            score += SIGNAL_WEIGHTS["new_location"]
            reasons.append("new_location")
        if elapsed is None:
            time_factor = 1.0
        else:
            time_factor = min(elapsed / (TIME_FACTOR_INTERVALS * interval), 1.0) if interval > 0 else 1.0
        score += TIME_FACTOR_WEIGHT * time_factor

        score = round(min(max(score, 0.0), 1.0), 3)
        should_present = score >= self.config.relevance_threshold
        reason = ", ".join(reasons) if reasons else "no narrative signals"
        logger.debug(
            "decision detection score=%.3f present=%s reasons=%s", score, should_present, reason
        )
        return DetectionResult(should_present=should_present, score=score, reason=reason)
