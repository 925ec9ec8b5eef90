"""Decision detection, generation and lifecycle."""

from .detector import DecisionDetector, detect_story_signals
from .generator import (
    DecisionParseError,
    generate_fallback_decision,
    parse_decision_response,
)
from .service import DecisionService

__all__ = [
    "DecisionDetector",
    "DecisionParseError",
    "DecisionService",
    "detect_story_signals",
    "generate_fallback_decision",
    "parse_decision_response",
]
