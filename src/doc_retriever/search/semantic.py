"""
Vector-based semantic search engine.

Embeds a query and searches stored chunk embeddings by cosine distance.
"""

from __future__ import annotations

from ..embeddings import EmbeddingProvider
from ..models import ScoredCandidate
from ..storage import StorageBackend


class SemanticSearchEngine:
    """Embed a query and search stored chunk embeddings."""

    def __init__(
        self,
        storage: StorageBackend,
        embedding_provider: EmbeddingProvider,
    ) -> None:
        self.storage = storage
        self.embedding_provider = embedding_provider

    def search(
        self,
        *,
        corpus_id: str,
        query: str,
        limit: int = 10,
    ) -> list[ScoredCandidate]:
        """Return dense candidates ordered by ascending distance."""
        query_embedding = self.embedding_provider.embed_query(query)
        return self.storage.search_chunks_semantic(
            corpus_id=corpus_id,
            query_embedding=query_embedding,
            limit=limit,
        )
