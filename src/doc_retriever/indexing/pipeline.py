"""
Indexing pipeline orchestration.
"""

from __future__ import annotations

import hashlib
import logging
import os
import re
from dataclasses import dataclass
from pathlib import Path

import yaml

from ..embeddings import DOCUMENT_TASK_TYPE
from ..storage import ChunkRecord, DocumentRecord, DuckDBStorage, StorageBackend
from .chunker import Embedder, SemanticChunker, TextChunk

logger = logging.getLogger(__name__)

SUPPORTED_EXTENSIONS: frozenset[str] = frozenset({".md", ".mdx", ".markdown", ".txt"})

_FRONT_MATTER_RE = re.compile(
    r"\A---[ \t]*\r?\n(.*?)\r?\n---[ \t]*(?:\r?\n|\Z)", re.DOTALL
)
_HEADER_RE = re.compile(r"^#{1,6}\s+(.+?)\s*#*\s*$")


@dataclass(frozen=True)
class IndexingResult:
    """Summary output for an indexing run."""

    corpus_id: str
    indexed_files: int
    skipped_files: int
    failed_files: int
    deleted_files: int
    chunks_written: int
    active_documents: int


@dataclass(frozen=True)
class FrontMatter:
    """Title and description from a YAML header, plus the remaining body."""

    title: str | None
    description: str | None
    body: str


class IndexingPipeline:
    """Build and update corpus indexes from documentation files."""

    def __init__(
        self,
        storage: StorageBackend,
        embedding_provider: Embedder,
        chunker: SemanticChunker | None = None,
    ) -> None:
        self.storage = storage
        self.embedding_provider = embedding_provider
        self.chunker = chunker or SemanticChunker()

    def index_folder(
        self,
        folder: str,
        *,
        force: bool = False,
        category: str | None = None,
    ) -> IndexingResult:
        """
        Chunk, embed and store every supported file under *folder*.

        Unchanged documents are skipped unless *force* is set. With *category*
        only files under that top-level directory are indexed, and only that
        category's missing documents are marked deleted. A document whose
        chunking, embedding or write fails is counted in ``failed_files`` and
        keeps whatever chunks were stored for it before.
        """
        root = str(Path(folder).resolve())
        if not os.path.exists(root) or not os.path.isdir(root):
            raise ValueError(f"No such directory: {root}")

        corpus_id = self.storage.get_or_create_corpus(root)

        indexed_files = 0
        skipped_files = 0
        failed_files = 0
        chunks_written = 0
        active_paths: set[str] = set()

        files = self._iter_supported_files(root)
        if category is not None:
            files = [
                path
                for path in files
                if category_from_path(self._relative_path(path, root)) == category
            ]
            if not files:
                logger.warning("No files found in category %r", category)

        for file_path in files:
            relative_path = self._relative_path(file_path, root)
            active_paths.add(relative_path)

            try:
                raw = Path(file_path).read_text(encoding="utf-8")
            except (OSError, UnicodeDecodeError) as exc:
                logger.error("Failed to read %s: %s", relative_path, exc)
                failed_files += 1
                continue

            # Hash the raw text so front-matter edits also trigger re-indexing.
            content_sha256 = self._sha256(raw)
            stored_sha = self.storage.get_document_sha(
                corpus_id=corpus_id, relative_path=relative_path
            )
            if not force and stored_sha == content_sha256:
                skipped_files += 1
                continue

            front_matter = parse_front_matter(raw)
            try:
                chunk_records = self._build_chunks(
                    corpus_id=corpus_id,
                    relative_path=relative_path,
                    content=front_matter.body,
                )
                stat = os.stat(file_path)
                doc_record = DocumentRecord(
                    id=DuckDBStorage.make_document_id(corpus_id, relative_path),
                    corpus_id=corpus_id,
                    relative_path=relative_path,
                    absolute_path=str(Path(file_path).resolve()),
                    file_name=Path(file_path).name,
                    category=category_from_path(relative_path),
                    content=front_matter.body,
                    file_mtime=float(stat.st_mtime),
                    file_size=int(stat.st_size),
                    content_sha256=content_sha256,
                    title=front_matter.title,
                    description=front_matter.description,
                )
                self.storage.upsert_document(doc_record, chunk_records)
            except Exception:
                logger.exception("Failed to index %s", relative_path)
                failed_files += 1
                continue

            indexed_files += 1
            chunks_written += len(chunk_records)
            logger.info("Indexed %s (%d chunks)", relative_path, len(chunk_records))

        deleted_files = self.storage.mark_deleted_missing_documents(
            corpus_id=corpus_id,
            active_relative_paths=active_paths,
            category=category,
        )
        active_documents = len(
            self.storage.list_documents(corpus_id=corpus_id, include_deleted=False)
        )

        return IndexingResult(
            corpus_id=corpus_id,
            indexed_files=indexed_files,
            skipped_files=skipped_files,
            failed_files=failed_files,
            deleted_files=deleted_files,
            chunks_written=chunks_written,
            active_documents=active_documents,
        )

    def _build_chunks(
        self,
        *,
        corpus_id: str,
        relative_path: str,
        content: str,
    ) -> list[ChunkRecord]:
        chunks = self.chunker.chunk_text(content, self.embedding_provider)
        if not chunks:
            return []

        embeddings = self.embedding_provider.embed_batch(
            [c.text for c in chunks], task_type=DOCUMENT_TASK_TYPE
        )
        if len(embeddings) != len(chunks):
            raise ValueError(
                f"Embedder returned {len(embeddings)} vectors for {len(chunks)} chunks"
            )

        doc_id = DuckDBStorage.make_document_id(corpus_id, relative_path)
        category = category_from_path(relative_path)
        return [
            ChunkRecord(
                id=DuckDBStorage.make_chunk_id(doc_id, chunk.index),
                doc_id=doc_id,
                file_path=relative_path,
                chunk_index=chunk.index,
                text=chunk.text,
                embedding=embedding,
                category=category,
                headers=extract_headers(chunk),
            )
            for chunk, embedding in zip(chunks, embeddings)
        ]

    @staticmethod
    def _iter_supported_files(root: str) -> list[str]:
        files: list[str] = []
        for current_root, _, filenames in os.walk(root):
            for filename in filenames:
                ext = Path(filename).suffix.lower()
                if ext in SUPPORTED_EXTENSIONS:
                    files.append(str(Path(current_root) / filename))
        files.sort()
        return files

    @staticmethod
    def _relative_path(file_path: str, root: str) -> str:
        return Path(os.path.relpath(file_path, root)).as_posix()

    @staticmethod
    def _sha256(content: str) -> str:
        return hashlib.sha256(content.encode("utf-8")).hexdigest()


def parse_front_matter(content: str) -> FrontMatter:
    """
    Split a leading YAML front-matter block from the document body.

    Only string ``title`` and ``description`` values are kept. A block that
    is not valid YAML is still removed from the body.
    """
    match = _FRONT_MATTER_RE.match(content)
    if match is None:
        return FrontMatter(title=None, description=None, body=content)

    body = content[match.end() :]
    try:
        attrs = yaml.safe_load(match.group(1))
    except yaml.YAMLError as exc:
        logger.debug("Ignoring malformed front matter: %s", exc)
        return FrontMatter(title=None, description=None, body=body)
    if not isinstance(attrs, dict):
        return FrontMatter(title=None, description=None, body=body)

    def _text(key: str) -> str | None:
        value = attrs.get(key)
        if not isinstance(value, str):
            return None
        return value.strip() or None

    return FrontMatter(title=_text("title"), description=_text("description"), body=body)


def strip_front_matter(content: str) -> str:
    """Drop a leading YAML front-matter block, if any."""
    return parse_front_matter(content).body


def category_from_path(relative_path: str) -> str:
    """First path segment, e.g. ``core/event-store.md`` -> ``core``."""
    parts = relative_path.replace("\\", "/").split("/")
    return parts[0] if len(parts) > 1 else "unknown"


def extract_headers(chunk: TextChunk) -> tuple[str, ...]:
    """Markdown headings that open a line inside the chunk's sentences."""
    headers: list[str] = []
    for sentence in chunk.sentences:
        for line in sentence.splitlines():
            match = _HEADER_RE.match(line.strip())
            if match:
                headers.append(match.group(1))
    return tuple(headers)
