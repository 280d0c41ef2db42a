"""
Storage interfaces and data models for index persistence.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Protocol

from ..models import KeywordHit, ScoredCandidate


@dataclass(frozen=True)
class ChunkRecord:
    """A semantic chunk stored for a document."""

    id: str
    doc_id: str
    file_path: str
    chunk_index: int
    text: str
    embedding: list[float]
    category: str = "unknown"
    headers: tuple[str, ...] = field(default_factory=tuple)


@dataclass(frozen=True)
class DocumentRecord:
    """A normalized document record for indexing."""

    id: str
    corpus_id: str
    relative_path: str
    absolute_path: str
    file_name: str
    category: str
    content: str
    file_mtime: float
    file_size: int
    content_sha256: str
    title: str | None = None
    description: str | None = None


class StorageBackend(Protocol):
    """Protocol for persistence and retrieval operations used by indexing and search."""

    def get_or_create_corpus(self, root_path: str) -> str:
        """Return corpus id for a root path, creating if needed."""

    def get_corpus_id(self, root_path: str) -> str | None:
        """Return corpus id for a root path if present."""

    def get_document_sha(self, *, corpus_id: str, relative_path: str) -> str | None:
        """Return the stored content hash of an active document."""

    def get_document(
        self, *, corpus_id: str, relative_path: str
    ) -> dict[str, Any] | None:
        """Return an active document's text and front-matter fields."""

    def upsert_document(
        self, document: DocumentRecord, chunks: list[ChunkRecord]
    ) -> None:
        """Insert or update a document and replace its chunks."""

    def mark_deleted_missing_documents(
        self,
        *,
        corpus_id: str,
        active_relative_paths: set[str],
        category: str | None = None,
    ) -> int:
        """Mark documents missing from the latest run deleted; return how many."""

    def list_documents(
        self,
        *,
        corpus_id: str,
        include_deleted: bool = False,
    ) -> list[dict[str, Any]]:
        """List documents for a corpus with their chunk counts."""

    def count_chunks(self, *, corpus_id: str) -> int:
        """Count chunks for active documents in a corpus."""

    def get_stats(self, *, corpus_id: str) -> dict[str, Any]:
        """Return document count, chunk count and chunks per category."""

    def search_chunks_semantic(
        self,
        *,
        corpus_id: str,
        query_embedding: list[float],
        limit: int = 10,
    ) -> list[ScoredCandidate]:
        """Return chunks ordered by ascending cosine distance to the query."""

    def search_chunks_keyword(
        self,
        *,
        corpus_id: str,
        query: str,
        file_paths: list[str],
        limit: int = 20,
    ) -> list[KeywordHit]:
        """Return keyword matches restricted to the given file paths."""
