"""Token estimation and narrative text compression.

Compression levels shorten text progressively (roughly 90% / 80% / 70% of the
original length for low / medium / high) with rule passes first, then by
dropping the least significant whole sentences, and only as a last resort by
cutting at a word boundary. Named entities and sentence boundaries survive
the earlier stages.
"""

from __future__ import annotations

import math
import re
from collections import Counter

from ..config import CompressionConfig
from ..models import CompressionLevel, NarrativeSummary
from ..text import to_sentence_case

DEFAULT_COMPRESSION_CONFIG = CompressionConfig()

LEVELS: tuple[CompressionLevel, ...] = ("none", "low", "medium", "high")

_SENTENCE_SPLIT_RE = re.compile(r"(?<=[.!?])\s+")
_ENTITY_RE = re.compile(r"\b[A-Z][a-z]+(?:\s+[A-Z][a-z]+)*\b")
_NOT_ENTITIES = {"I", "The", "A", "An", "This", "That", "These", "Those", "He", "She",
                 "It", "They", "We", "You", "His", "Her", "Their", "But", "And", "Then"}

_FILLER_RE = re.compile(
    r"\b(?:I think|perhaps|maybe|in my opinion|very|really|extremely|quite)\b,?\s*",
    re.I,
)
_VERBOSE_PHRASES: list[tuple[re.Pattern[str], str]] = [
    (re.compile(p, re.I), r)
    for p, r in [
        (r"\bin order to\b", "to"),
        (r"\bdue to the fact that\b", "because"),
        (r"\bin spite of the fact that\b", "although"),
        (r"\bat this point in time\b", "now"),
        (r"\bin the event that\b", "if"),
        (r"\bfor the purpose of\b", "for"),
        (r"\bwith regard to\b", "about"),
        (r"\ba large number of\b", "many"),
        (r"\bit is clear that\s*", ""),
    ]
]
_DESCRIPTIVE_RE = re.compile(
    r"\b(?:beautiful|gorgeous|magnificent|tremendous|enormous|tiny|huge|slowly|quickly|"
    r"suddenly|carefully|quietly|gently|loudly|softly|completely|absolutely|truly|"
    r"simply|actually|basically)\b\s*",
    re.I,
)
_ARTICLE_RE = re.compile(r"\b(?:the|a|an)\s+", re.I)
_LONG_SENTENCE_WORDS = 12

_ACTION_WORDS = ("shoot", "shot", "draw", "fight", "kill", "attack", "fire", "run", "escape",
                 "discover", "found", "find", "steal", "stole", "grab", "ride", "rode",
                 "arrive", "leave", "left", "die", "reveal", "betray", "rob", "chase")
_SPEECH_WORDS = ("said", "says", "asked", "asks", "shouted", "whispered", "told", "replied",
                 "tells", "yelled")
_EMOTION_WORDS = ("angry", "afraid", "fear", "happy", "sad", "furious", "nervous", "tense",
                  "worried", "relieved", "scared", "grief", "hate", "love")


def estimate_token_count(text: str, words_per_token: float = 0.75) -> int:
    """Approximate LLM tokens for a text: word count / 0.75, rounded up."""
    words = text.split()
    if not words:
        return 0
    return math.ceil(len(words) / words_per_token)


def split_sentences(text: str) -> list[str]:
    return [s for s in _SENTENCE_SPLIT_RE.split(text.strip()) if s]


def extract_entities(text: str) -> list[str]:
    """Capitalised names in the text, most frequent first."""
    counts = Counter(
        match for match in _ENTITY_RE.findall(text) if match not in _NOT_ENTITIES
    )
    return [name for name, _ in counts.most_common()]


def sentence_significance(sentence: str) -> int:
    lower = sentence.lower()
    words = lower.split()
    score = 0
    if any(w.startswith(a) for w in words for a in _ACTION_WORDS):
        score += 3
    if '"' in sentence or any(w.strip(",.!?") in _SPEECH_WORDS for w in words):
        score += 2
    if any(w.strip(",.!?") in _EMOTION_WORDS for w in words):
        score += 2
    score += min(3, len(extract_entities(sentence)))
    score += min(2, len(words) // 5)
    return score


def _apply_rules(text: str, level: CompressionLevel) -> str:
    result = _FILLER_RE.sub("", text)
    if level in ("medium", "high"):
        for pattern, replacement in _VERBOSE_PHRASES:
            result = pattern.sub(replacement, result)
        result = _DESCRIPTIVE_RE.sub("", result)
    if level == "high":
        result = " ".join(
            _ARTICLE_RE.sub("", s) if len(s.split()) > _LONG_SENTENCE_WORDS else s
            for s in split_sentences(result)
        )
    result = " ".join(result.split())
    result = re.sub(r"\s+([,.!?;:])", r"\1", result)
    return to_sentence_case(result)


def _cut_at_word(text: str, limit: int) -> str:
    if len(text) <= limit:
        return text
    cut = text[:limit]
    if " " in cut and not text[limit:limit + 1].isspace():
        cut = cut.rsplit(" ", 1)[0]
    cut = cut.rstrip(" ,;:")
    return cut or text[:limit]


def _shrink(text: str, level: CompressionLevel, limit: int) -> str:
    result = _apply_rules(text, level)
    if len(result) <= limit:
        return result

    sentences = split_sentences(result)
    if len(sentences) > 1:
        ranked = sorted(range(len(sentences)), key=lambda i: (sentence_significance(sentences[i]), -i))
        keep = set(range(len(sentences)))
        for index in ranked:
            if len(keep) == 1 or len(" ".join(sentences[i] for i in sorted(keep))) <= limit:
                break
            keep.discard(index)
        result = " ".join(sentences[i] for i in sorted(keep))

    return _cut_at_word(result, limit)


def compress_narrative_text(
    text: str,
    level: CompressionLevel = "medium",
    config: CompressionConfig = DEFAULT_COMPRESSION_CONFIG,
) -> str:
    """Shorten text according to the compression level.

    ``none`` returns the text unchanged. Each stronger level is strictly
    shorter than the one before it for any non-trivial text. Empty or
    whitespace-only text always compresses to "".
    """
    if not text or not text.strip():
        return ""
    if level == "none":
        return text

    ratios = {"low": config.low_ratio, "medium": config.medium_ratio, "high": config.high_ratio}
    original = len(text)
    previous = original
    result = text
    for current in LEVELS[1:LEVELS.index(level) + 1]:
        limit = max(0, min(math.floor(original * ratios[current]), previous - 1))
        result = _shrink(text, current, limit)
        previous = len(result)
    return result


def create_concise_summary(text: str, max_length: int = 200) -> str:
    """Bounded summary that leads with the text's most frequent names."""
    text = " ".join(text.split())
    if len(text) <= max_length:
        return text

    entities = extract_entities(text)[:5]
    prefix = ""
    while entities:
        prefix = "Key names: " + ", ".join(entities) + ". "
        if len(prefix) <= max_length // 2:
            break
        entities.pop()
        prefix = ""

    budget = max_length - len(prefix)
    sentences = split_sentences(text)
    ranked = sorted(range(len(sentences)), key=lambda i: (-sentence_significance(sentences[i]), i))
    chosen: list[int] = []
    used = 0
    for index in ranked:
        cost = len(sentences[index]) + (1 if chosen else 0)
        if used + cost <= budget:
            chosen.append(index)
            used += cost
    if chosen:
        body = " ".join(sentences[i] for i in sorted(chosen))
    else:
        body = _cut_at_word(sentences[ranked[0]], max(0, budget - 3)) + "..."
    return (prefix + body)[:max_length]


def create_narrative_summaries(
    text: str,
    section_count: int = 3,
    summary_length: int = 150,
    words_per_token: float = 0.75,
) -> list[NarrativeSummary]:
    """Split text into sentence-aligned sections of roughly equal length and
    summarise each one."""
    sentences = split_sentences(text)
    if not sentences or section_count < 1:
        return []

    target = len(text) / section_count
    sections: list[list[str]] = [[]]
    size = 0
    for sentence in sentences:
        if size >= target and len(sections) < section_count:
            sections.append([])
            size = 0
        sections[-1].append(sentence)
        size += len(sentence) + 1

    summaries: list[NarrativeSummary] = []
    for number, parts in enumerate(sections, start=1):
        section = " ".join(parts)
        summary = create_concise_summary(section, summary_length)
        original_tokens = estimate_token_count(section, words_per_token)
        summary_tokens = estimate_token_count(summary, words_per_token)
        summaries.append(NarrativeSummary(
            section=f"section-{number}",
            summary=summary,
            original_tokens=original_tokens,
            summary_tokens=summary_tokens,
            compression_ratio=round(summary_tokens / original_tokens, 2) if original_tokens else 0.0,
        ))
    return summaries
