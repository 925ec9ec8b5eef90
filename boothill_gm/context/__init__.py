"""Narrative context assembly and compression."""

from .builder import (
    ContextOptions,
    build_narrative_context,
    extract_comprehensive_context,
    refresh_narrative_context,
)
from .compression import (
    compress_narrative_text,
    create_concise_summary,
    create_narrative_summaries,
    estimate_token_count,
)

__all__ = [
    "ContextOptions",
    "build_narrative_context",
    "compress_narrative_text",
    "create_concise_summary",
    "create_narrative_summaries",
    "estimate_token_count",
    "extract_comprehensive_context",
    "refresh_narrative_context",
]
