"""
doc-retriever - semantic chunking and hybrid search for documentation.

Documents are split into sentences, grouped into semantically coherent
chunks with the Max-Min algorithm, embedded and stored in DuckDB. Queries
are answered with dense vector search re-ranked by keyword relevance.

Example usage:
    >>> from doc_retriever import EmbeddingProvider, chunk
    >>> provider = EmbeddingProvider()
    >>> chunks = chunk(open("guide.md").read(), provider)
"""

from .config import AppConfig, ChunkerConfig, HybridSearchConfig, load_config
from .embeddings import EmbeddingProvider
from .indexing import (
    IndexingPipeline,
    IndexingResult,
    SemanticChunker,
    TextChunk,
    chunk,
    is_garbage_chunk,
    split_into_sentences,
)
from .models import KeywordHit, ScoredCandidate
from .search import HybridQueryEngine, rank, truncate_by_gap
from .similarity import cosine_similarity

__all__ = [
    # Config
    "AppConfig",
    "ChunkerConfig",
    "HybridSearchConfig",
    "load_config",
    # Embeddings
    "EmbeddingProvider",
    # Indexing
    "IndexingPipeline",
    "IndexingResult",
    "SemanticChunker",
    "TextChunk",
    "chunk",
    "is_garbage_chunk",
    "split_into_sentences",
    # Search
    "HybridQueryEngine",
    "KeywordHit",
    "ScoredCandidate",
    "rank",
    "truncate_by_gap",
    "cosine_similarity",
]
