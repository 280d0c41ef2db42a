"""Storage backends for doc-retriever indexing."""

from .base import ChunkRecord, DocumentRecord, StorageBackend
from .duckdb import DuckDBStorage

__all__ = [
    "ChunkRecord",
    "DocumentRecord",
    "StorageBackend",
    "DuckDBStorage",
]
