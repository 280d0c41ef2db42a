"""Search helpers for indexed corpora."""

from .query import HybridQueryEngine
from .ranker import (
    GroupingMode,
    normalize_keyword_scores,
    rank,
    truncate_by_gap,
)
from .semantic import SemanticSearchEngine

__all__ = [
    "HybridQueryEngine",
    "GroupingMode",
    "normalize_keyword_scores",
    "rank",
    "truncate_by_gap",
    "SemanticSearchEngine",
]
