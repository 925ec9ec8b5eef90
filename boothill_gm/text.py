"""Text cleanup and item-mention extraction for LLM narrative output.

The game master model embeds machine-readable markers in its prose, e.g.

    You pocket the coin. ACQUIRED_ITEMS: [Silver Dollar]
    SUGGESTED_ACTIONS: [{"text": "Leave", "type": "basic"}]

These helpers strip such markers for display and extract structured signals
from them, falling back to natural-language patterns when no markers exist.
"""

from __future__ import annotations

import re

_MARKER_NAMES = ("SUGGESTED_ACTIONS", "ACQUIRED_ITEMS", "REMOVED_ITEMS", "STORY_POINT")
_MARKER_RE = re.compile(r"\b(?:" + "|".join(_MARKER_NAMES) + r"):[ \t]*")

_HSPACE_RE = re.compile(r"[ \t]+")
_BLANK_LINES_RE = re.compile(r"\n\s*\n+")

_ITEM_MARKER_RE = {
    "acquired": re.compile(r"ACQUIRED_ITEMS:[ \t]*(?:\[([^\]]*)\]|(.+?)[ \t]*$)", re.M),
    "removed": re.compile(r"REMOVED_ITEMS:[ \t]*(?:\[([^\]]*)\]|(.+?)[ \t]*$)", re.M),
}

_PLAYER_TAKE_RE = re.compile(r"^\s*Player:\s*take\s+(.+?)\s*$", re.I | re.M)
_PLAYER_USE_RE = re.compile(r"^\s*Player:\s*use\s+(.+?)\s*$", re.I | re.M)
_GM_ACQUIRE_RE = re.compile(
    r"^\s*GM:\s*You (?:manage to scoop|scoop|reach out and pocket|pick up|take|uncork)"
    r" (.+?)(?:\s+(?:into|onto|with|from)\b.*|[.,!?]|$)",
    re.I | re.M,
)
_GM_REMOVE_RE = re.compile(
    r"^\s*GM:\s*You (?:use|consume|drink|eat|discard|throw away|drop|lose|give away|sell)"
    r" (.+?)(?:\s+(?:to|into|onto|with|from|at)\b.*|[.,!?]|$)",
    re.I | re.M,
)
_LEADING_ARTICLE_RE = re.compile(r"^(?:the|a|an|your|my)\s+", re.I)

_NARRATIVE_VERBS = "has|is|was|were|will|had|have"
_CHARACTER_VERBS = (
    "draws|rushes|attacks|fires|shoots|moves|runs|walks|stands|sits|lies|goes|comes|"
    "tries|attempts|begins|starts|looks|seems|appears|is|was|were|has|had|have"
)


def _payload_end(text: str, start: int) -> int:
    """Index just past a marker payload beginning at `start`.

    Bracketed payloads ([...] or {...}) end at their balancing bracket, with
    brackets inside JSON strings ignored. Anything else runs to end of line.
    """
    if start < len(text) and text[start] in "[{":
        depth = 0
        in_string = False
        escaped = False
        for i in range(start, len(text)):
            ch = text[i]
            if in_string:
                if escaped:
                    escaped = False
                elif ch == "\\":
                    escaped = True
                elif ch == '"':
                    in_string = False
                continue
            if ch == '"':
                in_string = True
            elif ch in "[{":
                depth += 1
            elif ch in "]}":
                depth -= 1
                if depth == 0:
                    return i + 1
        return len(text)  # unterminated payload
    end = text.find("\n", start)
    return len(text) if end == -1 else end


def _strip_markers(text: str) -> str:
    parts: list[str] = []
    pos = 0
    while True:
        match = _MARKER_RE.search(text, pos)
        if match is None:
            parts.append(text[pos:])
            break
        parts.append(text[pos:match.start()])
        pos = _payload_end(text, match.end())
    return "".join(parts)


def clean_metadata_markers(text: str | None) -> str:
    """Remove embedded metadata markers and their payloads.

    Paragraph breaks survive; runs of spaces collapse to one.
    """
    if not text or not text.strip():
        return ""
    cleaned = _strip_markers(text)
    cleaned = _HSPACE_RE.sub(" ", cleaned)
    cleaned = "\n".join(line.strip() for line in cleaned.split("\n"))
    cleaned = _BLANK_LINES_RE.sub("\n\n", cleaned)
    return cleaned.strip()


def clean_combat_log_entry(text: str | None) -> str:
    """Single-line combat log text with markers removed.

    Dice annotations such as ``[Roll: 15/20]`` and ``(Roll: 3)`` are kept.
    """
    if not text or not text.strip():
        return ""
    return " ".join(_strip_markers(text).split())


def to_sentence_case(text: str | None) -> str:
    """Capitalise the first letter of every sentence; leave other words alone."""
    if not text or not text.strip():
        return ""
    return re.sub(
        r"(^\s*|[.!?]\s+)([a-z])",
        lambda m: m.group(1) + m.group(2).upper(),
        text.strip(),
    )


def _clean_item(raw: str) -> str:
    item = _LEADING_ARTICLE_RE.sub("", raw.strip())
    return clean_metadata_markers(item).rstrip(".,!?;:").strip()


def _add_items(items: list[str], found: list[str]) -> None:
    for raw in found:
        item = _clean_item(raw)
        if item and item not in items:
            items.append(item)


def extract_item_updates(text: str | None) -> dict[str, list[str]]:
    """Items acquired and removed, as ``{"acquired": [...], "removed": [...]}``.

    Explicit ACQUIRED_ITEMS / REMOVED_ITEMS markers win: when any marker is
    present, natural-language inference is skipped. Otherwise player commands
    ("Player: Take the rope") and GM narration ("GM: You drop the pistol.")
    are read. Plain narrative mentions of items are never treated as changes.
    """
    updates: dict[str, list[str]] = {"acquired": [], "removed": []}
    if not text or not text.strip():
        return updates

    marker_found = False
    for key, pattern in _ITEM_MARKER_RE.items():
        for match in pattern.finditer(text):
            marker_found = True
            payload = match.group(1) if match.group(1) is not None else match.group(2)
            _add_items(updates[key], [part for part in payload.split(",")])
    if marker_found:
        return updates

    _add_items(updates["acquired"], _PLAYER_TAKE_RE.findall(text))
    _add_items(updates["acquired"], _GM_ACQUIRE_RE.findall(text))
    _add_items(updates["removed"], _PLAYER_USE_RE.findall(text))
    _add_items(updates["removed"], _GM_REMOVE_RE.findall(text))
    return updates


def clean_location_text(text: str | None) -> str:
    """Location name with any LOCATION: prefix and trailing narrative removed."""
    if not text or not text.strip():
        return ""
    cleaned = re.sub(r"^\s*LOCATION:\s*", "", text, flags=re.I)
    cleaned = re.split(
        rf"[.!?\n]|\s+(?=[A-Z][a-z]+\s+(?:{_NARRATIVE_VERBS})\b)", cleaned
    )[0]
    cleaned = clean_metadata_markers(cleaned)
    cleaned = re.sub(rf"\s*\b(?:{_NARRATIVE_VERBS})\s+.*$", "", cleaned)
    return cleaned.strip()


def clean_character_name(name: str | None) -> str:
    """Bare character name from text that may carry notes or narrative."""
    if not name or not name.strip():
        return ""
    cleaned = re.sub(r"(?:important|note|metadata):.*?(?=\n|$)", "", name, flags=re.I)
    cleaned = re.split(r"[.!?\n]|\s+(?:The|the|A|a|An|an)\s+", cleaned)[0]
    cleaned = re.sub(r"^(?:The|the|A|a|An|an)\s+", "", cleaned.strip())
    cleaned = re.split(rf"\s+(?=[A-Z][a-z]+\s+(?:{_CHARACTER_VERBS})\b)", cleaned)[0]
    cleaned = re.sub(rf"\s+(?:{_CHARACTER_VERBS})\b.*$", "", cleaned)
    cleaned = re.sub(r"\([^)]*\)|\[[^\]]*\]|\{[^}]*\}", "", cleaned)
    cleaned = re.sub(r"[:,].*$", "", cleaned)
    return " ".join(cleaned.split())
