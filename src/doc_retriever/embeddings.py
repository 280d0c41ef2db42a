"""
Google GenAI embeddings for chunk boundaries, stored chunks and queries.

Sentence vectors only decide where chunks split, so they are requested with
the ``SEMANTIC_SIMILARITY`` task type. Stored chunk vectors and query vectors
use the asymmetric retrieval task types so they share one search space.
"""

from __future__ import annotations

import logging
import os
from typing import Any

from google.genai import Client as GenAIClient

from .config import EmbeddingConfig

logger = logging.getLogger(__name__)

SENTENCE_TASK_TYPE = "SEMANTIC_SIMILARITY"
DOCUMENT_TASK_TYPE = "RETRIEVAL_DOCUMENT"
QUERY_TASK_TYPE = "RETRIEVAL_QUERY"


class EmbeddingProvider:
    """Embed sentences, chunks and queries with one configured model."""

    def __init__(
        self,
        config: EmbeddingConfig | None = None,
        *,
        api_key: str | None = None,
        client: Any | None = None,
    ) -> None:
        self.config = config or EmbeddingConfig.from_env()
        self._client = client if client is not None else self._connect(api_key)

    @staticmethod
    def _connect(api_key: str | None) -> GenAIClient:
        resolved_key = api_key or os.getenv("GOOGLE_API_KEY")
        if not resolved_key:
            raise ValueError(
                "GOOGLE_API_KEY not found. Provide api_key or set the environment variable."
            )
        return GenAIClient(api_key=resolved_key)

    def embed_batch(
        self,
        texts: list[str],
        *,
        task_type: str = DOCUMENT_TASK_TYPE,
    ) -> list[list[float]]:
        """Embed *texts* in order, splitting them into API-sized batches."""
        vectors: list[list[float]] = []
        size = self.config.batch_size
        for start in range(0, len(texts), size):
            vectors.extend(self._embed(texts[start : start + size], task_type))
        if texts:
            logger.debug(
                "Embedded %d texts (%s) with %s", len(texts), task_type, self.config.model
            )
        return vectors

    def embed_query(self, query: str) -> list[float]:
        return self._embed([query], QUERY_TASK_TYPE)[0]

    def _embed(self, texts: list[str], task_type: str) -> list[list[float]]:
        response = self._client.models.embed_content(
            model=self.config.model,
            contents=texts,
            config={
                "task_type": task_type,
                "output_dimensionality": self.config.dim,
            },
        )
        embeddings = response.embeddings or []
        if len(embeddings) != len(texts):
            raise ValueError(
                f"Embedding API returned {len(embeddings)} vectors for {len(texts)} texts"
            )
        return [list(embedding.values or []) for embedding in embeddings]
