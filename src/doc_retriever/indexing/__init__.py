"""Indexing components for doc-retriever."""

from .chunker import SemanticChunker, TextChunk, chunk, is_garbage_chunk
from .pipeline import IndexingPipeline, IndexingResult, parse_front_matter
from .sentences import split_into_sentences

__all__ = [
    "SemanticChunker",
    "TextChunk",
    "chunk",
    "is_garbage_chunk",
    "IndexingPipeline",
    "IndexingResult",
    "parse_front_matter",
    "split_into_sentences",
]
