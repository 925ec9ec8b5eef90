"""Quality assessment for freshly generated decisions.

Scores completeness, option diversity and (when narrative context is given)
narrative relevance, and explains every penalty as a suggestion. Assessment
never blocks presentation; callers log the result.
"""

from __future__ import annotations

import re
from itertools import combinations

from .models import NarrativeContext, PlayerDecision, QualityResult

ACCEPTABLE_SCORE = 0.7
SIMILARITY_LIMIT = 0.7
RECENT_EVENTS = 5

APPROACH_KEYWORDS: dict[str, tuple[str, ...]] = {
    "aggressive": (
        "attack", "fight", "shoot", "draw", "confront", "threaten", "punch",
        "charge", "ambush", "force", "kill",
    ),
    "cautious": (
        "wait", "hide", "observe", "careful", "sneak", "retreat", "watch",
        "avoid", "cautious", "scout", "slow",
    ),
    "diplomatic": (
        "talk", "negotiate", "persuade", "reason", "convince", "bargain",
        "apologize", "parley", "discuss", "offer", "ask",
    ),
}

_WORD_RE = re.compile(r"[a-z0-9']+")


def _words(text: str) -> set[str]:
    return set(_WORD_RE.findall(text.lower()))


def jaccard_similarity(a: str, b: str) -> float:
    """Word-set overlap of two texts, 0 when both are empty."""
    wa, wb = _words(a), _words(b)
    if not wa and not wb:
        return 0.0
    return len(wa & wb) / len(wa | wb)


def _completeness(decision: PlayerDecision, suggestions: list[str]) -> float:
    score = 1.0
    if len(decision.prompt.strip()) < 10:
        score -= 0.3
        suggestions.append("Make the decision prompt longer and more descriptive.")

    count = len(decision.options)
    if count < 2:
        score -= 0.5
        suggestions.append(f"Offer at least two options (found {count}).")
    elif count < 3:
        score -= 0.1
        suggestions.append("Consider offering a third option for more player choice.")

    if count:
        missing_text = sum(1 for o in decision.options if not o.text.strip())
        missing_impact = sum(1 for o in decision.options if not o.impact.strip())
        if missing_text:
            score -= 0.2 * missing_text / count
            suggestions.append(f"{missing_text} option(s) have no text.")
        if missing_impact:
            score -= 0.2 * missing_impact / count
            suggestions.append(f"{missing_impact} option(s) have no impact description.")

    if decision.importance is None:
        score -= 0.1
        suggestions.append("Set an importance level for the decision.")
    return score


def _diversity(decision: PlayerDecision, suggestions: list[str]) -> float:
    score = 1.0
    for first, second in combinations(decision.options, 2):
        if jaccard_similarity(first.text, second.text) > SIMILARITY_LIMIT:
            score -= 0.2
            suggestions.append(
                f'Options "{first.text}" and "{second.text}" are too similar.'
            )

    option_words = set()
    for option in decision.options:
        option_words |= _words(option.text)
    approaches = [
        name
        for name, keywords in APPROACH_KEYWORDS.items()
        if any(word.startswith(keyword) for word in option_words for keyword in keywords)
    ]
    if len(approaches) < 2:
        score -= 0.2
        suggestions.append(
            "Offer a wider range of approaches (aggressive, cautious, diplomatic)."
        )
    return score


def _relevance(
    decision: PlayerDecision,
    context: NarrativeContext,
    suggestions: list[str],
) -> float:
    score = 1.0
    prompt = decision.prompt.lower()

    if context.character_focus and not any(
        name.lower() in prompt for name in context.character_focus
    ):
        score -= 0.2
        suggestions.append("Mention a character currently in focus in the prompt.")

    if context.themes:
        option_text = " ".join(f"{o.text} {o.impact}" for o in decision.options).lower()
        if not any(theme.lower() in option_text for theme in context.themes):
            score -= 0.2
            suggestions.append("Tie at least one option to a current story theme.")

    recent = context.important_events[-RECENT_EVENTS:]
    if recent:
        event_words = {w for e in recent for w in _words(e) if len(w) > 3}
        prompt_words = {w for w in _words(decision.prompt) if len(w) > 3}
        overlap = len(prompt_words & event_words) / len(prompt_words) if prompt_words else 0.0
        if overlap < 0.1:
            score -= 0.3
            suggestions.append("Connect the decision to recent important events.")
    return score


def evaluate_decision_quality(
    decision: PlayerDecision,
    context: NarrativeContext | None = None,
) -> QualityResult:
    """Score a decision from 0 to 1, rounded to two decimals.

    Weights are completeness 0.3, diversity 0.3, relevance 0.4; without
    context, relevance is skipped and the others weigh 0.5 each.
    """
    suggestions: list[str] = []
    completeness = _completeness(decision, suggestions)
    diversity = _diversity(decision, suggestions)
    if context is not None:
        relevance = _relevance(decision, context, suggestions)
        score = 0.3 * completeness + 0.3 * diversity + 0.4 * relevance
    else:
        score = 0.5 * completeness + 0.5 * diversity

    score = round(min(max(score, 0.0), 1.0), 2)
    return QualityResult(
        score=score,
        suggestions=suggestions,
        acceptable=score >= ACCEPTABLE_SCORE,
    )
