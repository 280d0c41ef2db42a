"""
DuckDB storage backend for index persistence.
"""

from __future__ import annotations

import hashlib
import json
import re
from pathlib import Path
from typing import Any

import duckdb

from ..models import KeywordHit, ScoredCandidate
from .base import ChunkRecord, DocumentRecord


def _stable_id(prefix: str, value: str) -> str:
    digest = hashlib.sha1(value.encode("utf-8")).hexdigest()
    return f"{prefix}_{digest}"


def _query_terms(query: str, max_terms: int = 8) -> list[str]:
    terms = re.findall(r"[a-zA-Z0-9_]{3,}", query.lower())
    unique_terms: list[str] = []
    for term in terms:
        if term not in unique_terms:
            unique_terms.append(term)
        if len(unique_terms) >= max_terms:
            break
    if unique_terms:
        return unique_terms
    fallback = query.strip().lower()
    return [fallback] if fallback else []


class DuckDBStorage:
    """DuckDB-backed persistence for corpora, documents and embedded chunks."""

    def __init__(self, db_path: str) -> None:
        self.db_path = str(Path(db_path).expanduser().resolve())
        Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)
        self._conn = duckdb.connect(self.db_path)
        self._create_tables()

    def close(self) -> None:
        """Close the underlying DuckDB connection."""
        self._conn.close()

    def _create_tables(self) -> None:
        self._conn.execute(
            """
            CREATE TABLE IF NOT EXISTS corpora (
                id VARCHAR PRIMARY KEY,
                root_path VARCHAR NOT NULL UNIQUE,
                created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
            );
            """
        )
        self._conn.execute(
            """
            CREATE TABLE IF NOT EXISTS documents (
                id VARCHAR PRIMARY KEY,
                corpus_id VARCHAR NOT NULL REFERENCES corpora(id),
                relative_path VARCHAR NOT NULL,
                absolute_path VARCHAR NOT NULL,
                file_name VARCHAR NOT NULL,
                category VARCHAR NOT NULL,
                title VARCHAR,
                description VARCHAR,
                content VARCHAR NOT NULL,
                file_mtime DOUBLE NOT NULL,
                file_size BIGINT NOT NULL,
                content_sha256 VARCHAR NOT NULL,
                last_indexed_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                is_deleted BOOLEAN DEFAULT FALSE
            );
            """
        )
        # Chunks are always replaced per document inside one transaction, so
        # the table carries no key constraints for DuckDB to check eagerly.
        self._conn.execute(
            """
            CREATE TABLE IF NOT EXISTS chunks (
                id VARCHAR NOT NULL,
                doc_id VARCHAR NOT NULL,
                file_path VARCHAR NOT NULL,
                chunk_index INTEGER NOT NULL,
                text VARCHAR NOT NULL,
                category VARCHAR NOT NULL,
                headers_json VARCHAR NOT NULL DEFAULT '[]',
                embedding DOUBLE[] NOT NULL,
                indexed_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
            );
            """
        )

    def get_or_create_corpus(self, root_path: str) -> str:
        normalized = str(Path(root_path).resolve())
        corpus_id = _stable_id("corpus", normalized)
        self._conn.execute(
            """
            INSERT INTO corpora (id, root_path)
            VALUES (?, ?)
            ON CONFLICT(root_path) DO NOTHING
            """,
            [corpus_id, normalized],
        )
        row = self._conn.execute(
            "SELECT id FROM corpora WHERE root_path = ?",
            [normalized],
        ).fetchone()
        if row is None:
            raise RuntimeError(f"Failed to create corpus for path: {normalized}")
        return str(row[0])

    def get_corpus_id(self, root_path: str) -> str | None:
        normalized = str(Path(root_path).resolve())
        row = self._conn.execute(
            "SELECT id FROM corpora WHERE root_path = ?",
            [normalized],
        ).fetchone()
        if row is None:
            return None
        return str(row[0])

    def get_document_sha(self, *, corpus_id: str, relative_path: str) -> str | None:
        row = self._conn.execute(
            """
            SELECT content_sha256
            FROM documents
            WHERE corpus_id = ? AND relative_path = ? AND is_deleted = FALSE
            """,
            [corpus_id, relative_path],
        ).fetchone()
        if row is None:
            return None
        return str(row[0])

    def get_document(
        self, *, corpus_id: str, relative_path: str
    ) -> dict[str, Any] | None:
        row = self._conn.execute(
            """
            SELECT relative_path, category, title, description, content
            FROM documents
            WHERE corpus_id = ? AND relative_path = ? AND is_deleted = FALSE
            """,
            [corpus_id, relative_path],
        ).fetchone()
        if row is None:
            return None
        return {
            "relative_path": str(row[0]),
            "category": str(row[1]),
            "title": row[2],
            "description": row[3],
            "content": str(row[4]),
        }

    def upsert_document(self, document: DocumentRecord, chunks: list[ChunkRecord]) -> None:
        """Write a document and replace its chunks atomically."""
        self._conn.begin()
        try:
            self._conn.execute("DELETE FROM chunks WHERE doc_id = ?", [document.id])
            self._conn.execute(
                """
                INSERT INTO documents (
                    id, corpus_id, relative_path, absolute_path, file_name, category,
                    title, description, content, file_mtime, file_size,
                    content_sha256, is_deleted
                )
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, FALSE)
                ON CONFLICT(id) DO UPDATE SET
                    absolute_path = excluded.absolute_path,
                    file_name = excluded.file_name,
                    category = excluded.category,
                    title = excluded.title,
                    description = excluded.description,
                    content = excluded.content,
                    file_mtime = excluded.file_mtime,
                    file_size = excluded.file_size,
                    content_sha256 = excluded.content_sha256,
                    last_indexed_at = now(),
                    is_deleted = FALSE
                """,
                [
                    document.id,
                    document.corpus_id,
                    document.relative_path,
                    document.absolute_path,
                    document.file_name,
                    document.category,
                    document.title,
                    document.description,
                    document.content,
                    document.file_mtime,
                    document.file_size,
                    document.content_sha256,
                ],
            )
            if chunks:
                self._conn.executemany(
                    """
                    INSERT INTO chunks (
                        id, doc_id, file_path, chunk_index, text, category,
                        headers_json, embedding
                    )
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                    """,
                    [
                        (
                            chunk.id,
                            chunk.doc_id,
                            chunk.file_path,
                            chunk.chunk_index,
                            chunk.text,
                            chunk.category,
                            json.dumps(list(chunk.headers)),
                            [float(value) for value in chunk.embedding],
                        )
                        for chunk in chunks
                    ],
                )
        except Exception:
            self._conn.rollback()
            raise
        self._conn.commit()

    def mark_deleted_missing_documents(
        self,
        *,
        corpus_id: str,
        active_relative_paths: set[str],
        category: str | None = None,
    ) -> int:
        """
        Soft-delete documents absent from the latest run.

        With *category* set only that category's documents are considered.
        Returns the number of documents deleted by this call.
        """
        sql = """
            UPDATE documents
            SET is_deleted = TRUE
            WHERE corpus_id = ?
              AND is_deleted = FALSE
        """
        params: list[Any] = [corpus_id]
        if category is not None:
            sql += " AND category = ?"
            params.append(category)
        if active_relative_paths:
            placeholders = ", ".join(["?"] * len(active_relative_paths))
            sql += f" AND relative_path NOT IN ({placeholders})"
            params.extend(sorted(active_relative_paths))
        sql += " RETURNING id"

        return len(self._conn.execute(sql, params).fetchall())

    def list_documents(
        self,
        *,
        corpus_id: str,
        include_deleted: bool = False,
    ) -> list[dict[str, Any]]:
        sql = """
            SELECT
                d.id,
                d.relative_path,
                d.absolute_path,
                d.category,
                d.title,
                d.description,
                d.file_size,
                d.is_deleted,
                COUNT(c.id) AS chunk_count
            FROM documents d
            LEFT JOIN chunks c ON c.doc_id = d.id
            WHERE d.corpus_id = ?
        """
        params: list[Any] = [corpus_id]
        if not include_deleted:
            sql += " AND d.is_deleted = FALSE"
        sql += """
            GROUP BY d.id, d.relative_path, d.absolute_path, d.category,
                     d.title, d.description, d.file_size, d.is_deleted
            ORDER BY d.relative_path
        """

        rows = self._conn.execute(sql, params).fetchall()
        return [
            {
                "id": str(row[0]),
                "relative_path": str(row[1]),
                "absolute_path": str(row[2]),
                "category": str(row[3]),
                "title": row[4],
                "description": row[5],
                "file_size": int(row[6]),
                "is_deleted": bool(row[7]),
                "chunk_count": int(row[8]),
            }
            for row in rows
        ]

    def count_chunks(self, *, corpus_id: str) -> int:
        row = self._conn.execute(
            """
            SELECT COUNT(*)
            FROM chunks c
            JOIN documents d ON d.id = c.doc_id
            WHERE d.corpus_id = ? AND d.is_deleted = FALSE
            """,
            [corpus_id],
        ).fetchone()
        return int(row[0]) if row else 0

    def get_stats(self, *, corpus_id: str) -> dict[str, Any]:
        doc_row = self._conn.execute(
            """
            SELECT COUNT(*)
            FROM documents
            WHERE corpus_id = ? AND is_deleted = FALSE
            """,
            [corpus_id],
        ).fetchone()
        category_rows = self._conn.execute(
            """
            SELECT c.category, COUNT(*)
            FROM chunks c
            JOIN documents d ON d.id = c.doc_id
            WHERE d.corpus_id = ? AND d.is_deleted = FALSE
            GROUP BY c.category
            ORDER BY c.category
            """,
            [corpus_id],
        ).fetchall()
        categories = {str(row[0]): int(row[1]) for row in category_rows}
        return {
            "doc_count": int(doc_row[0]) if doc_row else 0,
            "chunk_count": sum(categories.values()),
            "categories": categories,
        }

    def search_chunks_semantic(
        self,
        *,
        corpus_id: str,
        query_embedding: list[float],
        limit: int = 10,
    ) -> list[ScoredCandidate]:
        """
        Nearest chunks by cosine distance, ties broken by path and index.

        Stored vectors whose length differs from the query, and zero vectors,
        score a similarity of 0.
        """
        if limit < 1:
            raise ValueError(f"limit must be >= 1, got {limit}")

        query_vector = [float(value) for value in query_embedding]
        usable_query = any(value != 0.0 for value in query_vector)
        rows = self._conn.execute(
            """
            SELECT file_path, chunk_index, text, category, headers_json,
                   greatest(0.0, 1.0 - similarity) AS distance
            FROM (
                SELECT
                    c.file_path,
                    c.chunk_index,
                    c.text,
                    c.category,
                    c.headers_json,
                    CASE
                        WHEN ?
                         AND len(c.embedding) = ?
                         AND list_dot_product(c.embedding, c.embedding) > 0
                        THEN list_cosine_similarity(c.embedding, ?::DOUBLE[])
                        ELSE 0.0
                    END AS similarity
                FROM chunks c
                JOIN documents d ON d.id = c.doc_id
                WHERE d.corpus_id = ? AND d.is_deleted = FALSE
            ) scored
            ORDER BY distance ASC, file_path ASC, chunk_index ASC
            LIMIT ?
            """,
            [usable_query, len(query_vector), query_vector, corpus_id, limit],
        ).fetchall()

        return [
            ScoredCandidate(
                file_path=str(row[0]),
                chunk_index=int(row[1]),
                text=str(row[2]),
                category=str(row[3]),
                headers=tuple(json.loads(str(row[4]))),
                distance=float(row[5]),
            )
            for row in rows
        ]

    def search_chunks_keyword(
        self,
        *,
        corpus_id: str,
        query: str,
        file_paths: list[str],
        limit: int = 20,
    ) -> list[KeywordHit]:
        """Score chunks by how many distinct query terms their text contains."""
        terms = _query_terms(query)
        if not terms or not file_paths:
            return []

        score_expr = " + ".join(
            ["CASE WHEN contains(lower(c.text), ?) THEN 1 ELSE 0 END"] * len(terms)
        )
        path_placeholders = ", ".join(["?"] * len(file_paths))
        sql = f"""
            SELECT * FROM (
                SELECT
                    c.file_path,
                    c.chunk_index,
                    ({score_expr}) AS score
                FROM chunks c
                JOIN documents d ON d.id = c.doc_id
                WHERE d.corpus_id = ?
                  AND d.is_deleted = FALSE
                  AND c.file_path IN ({path_placeholders})
            ) ranked
            WHERE score > 0
            ORDER BY score DESC, file_path ASC, chunk_index ASC
            LIMIT ?
        """
        params: list[Any] = []
        params.extend(terms)
        params.append(corpus_id)
        params.extend(file_paths)
        params.append(limit)
        rows = self._conn.execute(sql, params).fetchall()

        return [
            KeywordHit(
                file_path=str(row[0]),
                chunk_index=int(row[1]),
                score=float(row[2]),
            )
            for row in rows
        ]

    @staticmethod
    def make_document_id(corpus_id: str, relative_path: str) -> str:
        return _stable_id("doc", f"{corpus_id}:{relative_path}")

    @staticmethod
    def make_chunk_id(doc_id: str, chunk_index: int) -> str:
        return _stable_id("chunk", f"{doc_id}:{chunk_index}")
