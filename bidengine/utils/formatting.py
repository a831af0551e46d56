# =============================================
# File: bidengine/utils/formatting.py
# Purpose: Render ranked evidence as a text block for answer-generation prompts
# =============================================
from __future__ import annotations

import os
from typing import List, Optional, Sequence

from bidengine.utils.models import RankedResult

BLOCK_SEPARATOR = "\n\n---\n\n"
DEFAULT_EVIDENCE_MAX_CHARS = 80000


def _or_na(text: Optional[str]) -> str:
    return text if text else "N/A"


def format_block(res: RankedResult) -> str:
    ev = res.evidence
    lines: List[str] = [
        f"[{ev.category}] {ev.client_name or 'Unknown Client'}",
        f"ID: {ev.id}",
        f"Title: {_or_na(ev.title)}",
        f"Value: {_or_na(ev.value)}",
        f"Details: {_or_na(ev.source_text)}",
    ]
    if ev.sector:
        lines.append(f"Sector: {ev.sector}")
    lines.append(f"Relevance: {res.similarity * 100:.1f}%")
    return "\n".join(lines)


def format_for_prompt(results: Sequence[RankedResult]) -> str:
    """
    One block per result, in ranking order. Field values are copied
    verbatim; budget enforcement is up to the caller (see truncate_for_prompt).
    """
    return BLOCK_SEPARATOR.join(format_block(r) for r in results)


def truncate_for_prompt(text: str, max_chars: Optional[int] = None) -> str:
    if max_chars is None:
        try:
            max_chars = int(os.getenv("EVIDENCE_MAX_CHARS", str(DEFAULT_EVIDENCE_MAX_CHARS)))
        except ValueError:
            max_chars = DEFAULT_EVIDENCE_MAX_CHARS
    if len(text) <= max_chars:
        return text
    return text[:max_chars]
