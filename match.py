"""
match.py - Catalog matching for report line items.

One candidate text is compared against every catalog name:
- exact string equality wins immediately
- otherwise each name is scored by character-set overlap
  |set(a) & set(b)| / min(|set(a)|, |set(b)|)

The best name is accepted at or above the fuzzy threshold. The top-3 names
with scores travel with the result either way, so a reviewer can see what
else was considered.
"""

from __future__ import annotations

from typing import Optional, Sequence

from logging_config import get_logger
from models import MatchMode, StandardItem, StandardMatch

logger = get_logger(__name__)

FUZZY_THRESHOLD = 0.6
MAX_CANDIDATES = 3


def overlap_score(a: str, b: str) -> float:
    """Share of unique characters the two strings have in common."""
    set_a = set(a)
    set_b = set(b)
    shared = len(set_a & set_b)
    return shared / max(1, min(len(set_a), len(set_b)))


def _format_candidate(name: str, score: float) -> str:
    return f"{name}({score:.2f})"


def match_standard(
    raw_item: str,
    catalog: Sequence[StandardItem],
    threshold: float = FUZZY_THRESHOLD,
) -> Optional[StandardMatch]:
    """Match one candidate text to a catalog name. Returns None for blank text."""
    text = (raw_item or "").strip()
    if not text:
        return None

    for item in catalog:
        if item.name == text:
            logger.debug("match_standard | mode=exact | text=%r | name=%r", text, item.name)
            return StandardMatch(name=item.name, mode=MatchMode.EXACT, score=1.0)

    # sorted() is stable, so equal scores keep catalog order.
    ranked = sorted(
        ((item.name, overlap_score(text, item.name)) for item in catalog),
        key=lambda pair: pair[1],
        reverse=True,
    )
    top = ranked[:MAX_CANDIDATES]
    candidates = [_format_candidate(name, score) for name, score in top]

    if top and top[0][1] >= threshold:
        best_name, best_score = top[0]
        logger.debug(
            "match_standard | mode=fuzzy | text=%r | name=%r | score=%.2f | candidates=%s",
            text,
            best_name,
            best_score,
            candidates,
        )
        return StandardMatch(
            name=best_name,
            mode=MatchMode.FUZZY,
            score=round(best_score, 4),
            op_note=f"字符重合度≈{best_score:.2f}",
            candidates=candidates,
        )

    best_score = top[0][1] if top else 0.0
    logger.debug(
        "match_standard | mode=unmatched | text=%r | best_score=%.2f | candidates=%s",
        text,
        best_score,
        candidates,
    )
    return StandardMatch(
        name="",
        mode=MatchMode.UNMATCHED,
        score=round(best_score, 4),
        op_note="相似度不足",
        candidates=candidates,
    )


def find_standard(catalog: Sequence[StandardItem], name: str) -> Optional[StandardItem]:
    """Look up a catalog entry by exact name; a later duplicate shadows an earlier one."""
    found: Optional[StandardItem] = None
    for item in catalog:
        if item.name == name:
            found = item
    return found
