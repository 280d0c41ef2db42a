"""
Ranking helpers for merging dense and keyword retrieval result sets.
"""

from __future__ import annotations

import logging
import math
from dataclasses import replace
from typing import Literal, TypeAlias

from ..models import KeywordHit, ScoredCandidate

logger = logging.getLogger(__name__)

GroupingMode: TypeAlias = Literal["tight", "loose"]

GAP_STD_MULTIPLIER = 1.5


def normalize_keyword_scores(hits: list[KeywordHit]) -> dict[str, float]:
    """Scale raw keyword scores into [0, 1] by the best score in the set."""
    max_score = max((hit.score for hit in hits), default=0.0)
    normalized: dict[str, float] = {}
    for hit in hits:
        normalized[hit.key] = hit.score / max_score if max_score > 0 else 0.0
    return normalized


def rank(
    dense: list[ScoredCandidate],
    keyword: list[KeywordHit] | None = None,
    *,
    weight: float,
    limit: int,
) -> list[ScoredCandidate]:
    """
    Re-rank dense candidates with keyword relevance and apply limit.

    Each distance is divided by ``1 + normalized_keyword_score * weight``, so
    a perfect keyword match at weight 1 halves the distance and candidates
    without a keyword match keep theirs. Ordering is stable for ties.
    """
    if not 0.0 <= weight <= 1.0:
        raise ValueError(f"weight must be within [0, 1], got {weight}")
    if limit < 1:
        raise ValueError(f"limit must be >= 1, got {limit}")

    if not keyword or weight == 0:
        ordered = sorted(dense, key=lambda candidate: candidate.distance)
        return ordered[:limit]

    scores = normalize_keyword_scores(keyword)
    boosted: list[ScoredCandidate] = []
    for candidate in dense:
        score = scores.get(candidate.key, 0.0)
        boosted.append(
            replace(
                candidate,
                distance=candidate.distance / (1 + score * weight),
                keyword_score=score,
            )
        )

    ordered = sorted(boosted, key=lambda candidate: candidate.distance)
    return ordered[:limit]


def truncate_by_gap(
    candidates: list[ScoredCandidate], mode: GroupingMode
) -> list[ScoredCandidate]:
    """
    Cut a ranked list at its relevance cliff.

    A boundary sits before any result whose distance gap to the previous one
    exceeds ``mean + 1.5 * std`` of all gaps. ``tight`` keeps the first group,
    ``loose`` keeps the first two.
    """
    if mode not in ("tight", "loose"):
        raise ValueError(f"Unsupported grouping mode: {mode!r}")
    if len(candidates) <= 1:
        return candidates

    gaps = [
        candidates[i + 1].distance - candidates[i].distance
        for i in range(len(candidates) - 1)
    ]
    mean = sum(gaps) / len(gaps)
    variance = sum((gap - mean) ** 2 for gap in gaps) / len(gaps)
    threshold = mean + GAP_STD_MULTIPLIER * math.sqrt(variance)

    boundaries = [i + 1 for i, gap in enumerate(gaps) if gap > threshold]
    if not boundaries:
        return candidates

    if mode == "tight":
        cut = boundaries[0]
    elif len(boundaries) >= 2:
        cut = boundaries[1]
    else:
        return candidates

    logger.debug(
        "Relevance cliff (%s): %d -> %d results", mode, len(candidates), cut
    )
    return candidates[:cut]
