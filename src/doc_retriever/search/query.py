"""
Hybrid query engine combining dense search with keyword re-ranking.
"""

from __future__ import annotations

import logging

from ..config import HybridSearchConfig
from ..embeddings import EmbeddingProvider
from ..models import KeywordHit, ScoredCandidate
from ..storage import StorageBackend
from .ranker import GroupingMode, rank, truncate_by_gap
from .semantic import SemanticSearchEngine

logger = logging.getLogger(__name__)

MIN_LIMIT = 1
MAX_LIMIT = 20


class HybridQueryEngine:
    """Dense retrieval boosted by keyword relevance over the same candidates."""

    def __init__(
        self,
        storage: StorageBackend,
        embedding_provider: EmbeddingProvider,
        config: HybridSearchConfig | None = None,
    ) -> None:
        self.storage = storage
        self.config = config or HybridSearchConfig()
        self.semantic = SemanticSearchEngine(storage, embedding_provider)

    def search(
        self,
        *,
        corpus_id: str,
        query: str,
        limit: int = 10,
        grouping: GroupingMode | None = None,
    ) -> list[ScoredCandidate]:
        """
        Return ranked chunks for *query*.

        Keyword search failures degrade to dense-only ordering. When
        *grouping* is set the list is also cut at its relevance cliff.
        """
        if not MIN_LIMIT <= limit <= MAX_LIMIT:
            raise ValueError(
                f"Invalid limit: expected {MIN_LIMIT}-{MAX_LIMIT}, got {limit}"
            )

        dense = self.semantic.search(
            corpus_id=corpus_id,
            query=query,
            limit=limit * self.config.candidate_multiplier,
        )
        keyword = self._keyword_hits(corpus_id=corpus_id, query=query, dense=dense)

        ranked = rank(dense, keyword, weight=self.config.weight, limit=limit)
        if grouping is not None:
            ranked = truncate_by_gap(ranked, grouping)

        logger.info(
            "Search %r: %d dense candidates, %d keyword hits, %d results",
            query,
            len(dense),
            len(keyword),
            len(ranked),
        )
        return ranked

    def _keyword_hits(
        self,
        *,
        corpus_id: str,
        query: str,
        dense: list[ScoredCandidate],
    ) -> list[KeywordHit]:
        if not self.config.keyword_enabled or self.config.weight == 0:
            return []
        if not query.strip() or not dense:
            return []

        file_paths = list(dict.fromkeys(candidate.file_path for candidate in dense))
        try:
            return self.storage.search_chunks_keyword(
                corpus_id=corpus_id,
                query=query,
                file_paths=file_paths,
                limit=len(dense) * 2,
            )
        except Exception:
            logger.warning(
                "Keyword search failed, using dense-only ranking", exc_info=True
            )
            return []
