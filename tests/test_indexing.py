"""Tests for the indexing pipeline and its DuckDB persistence."""

from __future__ import annotations

from pathlib import Path

import pytest

from doc_retriever.config import ChunkerConfig
from doc_retriever.embeddings import DOCUMENT_TASK_TYPE, SENTENCE_TASK_TYPE
from doc_retriever.indexing.chunker import SemanticChunker, TextChunk
from doc_retriever.indexing.pipeline import (
    IndexingPipeline,
    category_from_path,
    extract_headers,
    parse_front_matter,
    strip_front_matter,
)
from doc_retriever.storage import ChunkRecord, DocumentRecord, DuckDBStorage

from .conftest import TopicEmbedder

RELAY_QUERY = [1.0, 0.0, 0.0, 0.0, 0.0]


def _storage(tmp_path: Path) -> DuckDBStorage:
    return DuckDBStorage(str(tmp_path / "index.duckdb"))


def test_strip_front_matter() -> None:
    text = "---\ntitle: Relays\ntags: [a, b]\n---\n# Relays\nBody."

    assert strip_front_matter(text) == "# Relays\nBody."
    assert strip_front_matter("# No front matter\n---\n") == "# No front matter\n---\n"


def test_parse_front_matter_reads_title_and_description() -> None:
    parsed = parse_front_matter(
        "---\ntitle: Relay Pool\ndescription: '  How relays reconnect. '\n---\nBody."
    )

    assert parsed.title == "Relay Pool"
    assert parsed.description == "How relays reconnect."
    assert parsed.body == "Body."


@pytest.mark.parametrize(
    "header",
    [
        "title: [unclosed\n",
        "- just\n- a list\n",
        "title: 42\ndescription: ''\n",
    ],
)
def test_parse_front_matter_ignores_unusable_values(header: str) -> None:
    parsed = parse_front_matter(f"---\n{header}---\nBody.")

    assert parsed.title is None
    assert parsed.description is None
    assert parsed.body == "Body."


@pytest.mark.parametrize(
    ("relative_path", "category"),
    [
        ("core/event-store.md", "core"),
        ("guides/deep/cache.md", "guides"),
        ("README.md", "unknown"),
    ],
)
def test_category_from_path(relative_path: str, category: str) -> None:
    assert category_from_path(relative_path) == category


def test_extract_headers_reads_heading_lines() -> None:
    chunk = TextChunk(
        text="",
        index=0,
        sentences=("# Relays\n\nRelays connect.", "## Pool ##\nThe pool.", "Not # a header."),
    )

    assert extract_headers(chunk) == ("Relays", "Pool")


def test_indexing_pipeline_indexes_chunks_with_metadata(
    tmp_path: Path,
    docs_corpus: Path,
    topic_embedder: TopicEmbedder,
) -> None:
    storage = _storage(tmp_path)
    pipeline = IndexingPipeline(storage, topic_embedder)

    result = pipeline.index_folder(str(docs_corpus))

    assert result.indexed_files == 2
    assert result.skipped_files == 0
    assert result.failed_files == 0
    assert result.active_documents == 2
    assert result.chunks_written == storage.count_chunks(corpus_id=result.corpus_id)
    assert result.chunks_written >= 2

    hits = storage.search_chunks_semantic(
        corpus_id=result.corpus_id,
        query_embedding=RELAY_QUERY,
        limit=10,
    )
    top = hits[0]
    assert top.file_path == "core/relays.md"
    assert top.chunk_index == 0
    assert top.category == "core"
    assert top.headers == ("Relays",)
    assert top.distance == pytest.approx(0.0, abs=1e-9)
    assert "title:" not in top.text

    by_path = {hit.file_path: hit for hit in hits}
    assert by_path["guides/cache.md"].category == "guides"
    assert by_path["guides/cache.md"].distance == pytest.approx(1.0)


def test_indexing_pipeline_embeds_sentences_then_chunks(
    tmp_path: Path,
    docs_corpus: Path,
    topic_embedder: TopicEmbedder,
) -> None:
    (docs_corpus / "guides" / "cache.md").unlink()
    storage = _storage(tmp_path)

    IndexingPipeline(storage, topic_embedder).index_folder(str(docs_corpus))

    sentence_batch, chunk_batch = topic_embedder.batch_calls
    assert len(sentence_batch) == 3
    assert chunk_batch == [" ".join(sentence_batch)]
    assert topic_embedder.task_types == [SENTENCE_TASK_TYPE, DOCUMENT_TASK_TYPE]


def test_indexing_pipeline_skips_unchanged_documents(
    tmp_path: Path,
    docs_corpus: Path,
    topic_embedder: TopicEmbedder,
) -> None:
    storage = _storage(tmp_path)
    pipeline = IndexingPipeline(storage, topic_embedder)
    first = pipeline.index_folder(str(docs_corpus))
    calls_after_first = len(topic_embedder.batch_calls)

    second = pipeline.index_folder(str(docs_corpus))

    assert second.corpus_id == first.corpus_id
    assert second.indexed_files == 0
    assert second.skipped_files == 2
    assert len(topic_embedder.batch_calls) == calls_after_first
    assert storage.count_chunks(corpus_id=first.corpus_id) == first.chunks_written

    forced = pipeline.index_folder(str(docs_corpus), force=True)

    assert forced.indexed_files == 2
    assert forced.skipped_files == 0
    assert storage.count_chunks(corpus_id=first.corpus_id) == first.chunks_written


def test_indexing_pipeline_replaces_chunks_of_changed_documents(
    tmp_path: Path,
    docs_corpus: Path,
    topic_embedder: TopicEmbedder,
) -> None:
    storage = _storage(tmp_path)
    pipeline = IndexingPipeline(storage, topic_embedder)
    first = pipeline.index_folder(str(docs_corpus))

    (docs_corpus / "guides" / "cache.md").write_text(
        "The signer holds private keys for every account in the wallet. "
        "A signer never shares keys with remote services or relays.\n"
    )
    second = pipeline.index_folder(str(docs_corpus))

    assert second.indexed_files == 1
    assert second.skipped_files == 1
    hits = storage.search_chunks_semantic(
        corpus_id=first.corpus_id,
        query_embedding=[0.0, 0.0, 0.0, 1.0, 0.0],
        limit=10,
    )
    cache_chunks = [hit for hit in hits if hit.file_path == "guides/cache.md"]
    assert cache_chunks
    assert all("signer" in hit.text for hit in cache_chunks)


def test_indexing_pipeline_marks_removed_documents_deleted(
    tmp_path: Path,
    docs_corpus: Path,
    topic_embedder: TopicEmbedder,
) -> None:
    storage = _storage(tmp_path)
    pipeline = IndexingPipeline(storage, topic_embedder)
    first = pipeline.index_folder(str(docs_corpus))

    (docs_corpus / "guides" / "cache.md").unlink()
    second = pipeline.index_folder(str(docs_corpus))

    assert second.deleted_files == 1
    assert second.active_documents == 1
    hits = storage.search_chunks_semantic(
        corpus_id=first.corpus_id,
        query_embedding=RELAY_QUERY,
        limit=10,
    )
    assert {hit.file_path for hit in hits} == {"core/relays.md"}

    all_docs = storage.list_documents(corpus_id=first.corpus_id, include_deleted=True)
    deleted = {doc["relative_path"] for doc in all_docs if doc["is_deleted"]}
    assert deleted == {"guides/cache.md"}

    third = pipeline.index_folder(str(docs_corpus))

    assert third.deleted_files == 0
    assert third.active_documents == 1


def test_indexing_pipeline_restores_re_added_documents(
    tmp_path: Path,
    docs_corpus: Path,
    topic_embedder: TopicEmbedder,
) -> None:
    cache_doc = docs_corpus / "guides" / "cache.md"
    original = cache_doc.read_text()
    storage = _storage(tmp_path)
    pipeline = IndexingPipeline(storage, topic_embedder)
    pipeline.index_folder(str(docs_corpus))

    cache_doc.unlink()
    pipeline.index_folder(str(docs_corpus))
    cache_doc.write_text(original)
    restored = pipeline.index_folder(str(docs_corpus))

    assert restored.deleted_files == 0
    assert restored.active_documents == 2


def test_indexing_pipeline_limits_run_to_category(
    tmp_path: Path,
    docs_corpus: Path,
    topic_embedder: TopicEmbedder,
) -> None:
    storage = _storage(tmp_path)
    pipeline = IndexingPipeline(storage, topic_embedder)
    pipeline.index_folder(str(docs_corpus))

    (docs_corpus / "core" / "relays.md").write_text(
        "Relays are rewritten here so the core category changes on disk. "
        "The relay pool still reconnects every relay it knows about.\n"
    )
    result = pipeline.index_folder(str(docs_corpus), category="guides")

    assert result.indexed_files == 0
    assert result.skipped_files == 1
    assert result.deleted_files == 0
    assert result.active_documents == 2
    relays = storage.get_document(corpus_id=result.corpus_id, relative_path="core/relays.md")
    assert relays is not None
    assert relays["title"] == "Relays"


def test_indexing_pipeline_category_only_deletes_its_own_documents(
    tmp_path: Path,
    docs_corpus: Path,
    topic_embedder: TopicEmbedder,
    caplog,
) -> None:
    storage = _storage(tmp_path)
    pipeline = IndexingPipeline(storage, topic_embedder)
    pipeline.index_folder(str(docs_corpus))

    (docs_corpus / "guides" / "cache.md").unlink()
    with caplog.at_level("WARNING"):
        result = pipeline.index_folder(str(docs_corpus), category="guides")

    assert "No files found in category 'guides'" in caplog.text
    assert result.deleted_files == 1
    assert result.active_documents == 1
    docs = storage.list_documents(corpus_id=result.corpus_id)
    assert [doc["relative_path"] for doc in docs] == ["core/relays.md"]


def test_indexing_pipeline_stores_front_matter_fields(
    tmp_path: Path,
    docs_corpus: Path,
    topic_embedder: TopicEmbedder,
) -> None:
    storage = _storage(tmp_path)
    result = IndexingPipeline(storage, topic_embedder).index_folder(str(docs_corpus))

    relays = storage.get_document(corpus_id=result.corpus_id, relative_path="core/relays.md")
    assert relays is not None
    assert relays["title"] == "Relays"
    assert relays["description"] == "Managing relay connections"
    assert relays["category"] == "core"
    assert relays["content"].startswith("# Relays")

    cache = storage.get_document(corpus_id=result.corpus_id, relative_path="guides/cache.md")
    assert cache is not None
    assert cache["title"] is None
    assert storage.get_document(corpus_id=result.corpus_id, relative_path="nope.md") is None


def test_front_matter_edit_triggers_re_indexing(
    tmp_path: Path,
    docs_corpus: Path,
    topic_embedder: TopicEmbedder,
) -> None:
    storage = _storage(tmp_path)
    pipeline = IndexingPipeline(storage, topic_embedder)
    pipeline.index_folder(str(docs_corpus))

    relays = docs_corpus / "core" / "relays.md"
    relays.write_text(relays.read_text().replace("title: Relays", "title: Relay Pool"))
    result = pipeline.index_folder(str(docs_corpus))

    assert result.indexed_files == 1
    doc = storage.get_document(corpus_id=result.corpus_id, relative_path="core/relays.md")
    assert doc is not None
    assert doc["title"] == "Relay Pool"


def test_failed_chunk_write_keeps_previous_document(
    tmp_path: Path,
    docs_corpus: Path,
    topic_embedder: TopicEmbedder,
) -> None:
    storage = _storage(tmp_path)
    result = IndexingPipeline(storage, topic_embedder).index_folder(str(docs_corpus))
    corpus_id = result.corpus_id
    relative_path = "core/relays.md"
    doc_id = DuckDBStorage.make_document_id(corpus_id, relative_path)
    sha_before = storage.get_document_sha(corpus_id=corpus_id, relative_path=relative_path)
    chunks_before = storage.count_chunks(corpus_id=corpus_id)

    document = DocumentRecord(
        id=doc_id,
        corpus_id=corpus_id,
        relative_path=relative_path,
        absolute_path=str(docs_corpus / relative_path),
        file_name="relays.md",
        category="core",
        content="Replacement text that never lands.",
        file_mtime=0.0,
        file_size=0,
        content_sha256="0" * 64,
    )
    chunks = [
        ChunkRecord(
            id=DuckDBStorage.make_chunk_id(doc_id, 0),
            doc_id=doc_id,
            file_path=relative_path,
            chunk_index=0,
            text="Replacement text that never lands.",
            embedding=[1.0, 0.0, 0.0, 0.0, 0.0],
        ),
        ChunkRecord(
            id=DuckDBStorage.make_chunk_id(doc_id, 1),
            doc_id=doc_id,
            file_path=relative_path,
            chunk_index=1,
            text="A chunk with a broken vector.",
            embedding=["not-a-number"],  # type: ignore[list-item]
        ),
    ]

    with pytest.raises(ValueError):
        storage.upsert_document(document, chunks)

    assert storage.get_document_sha(corpus_id=corpus_id, relative_path=relative_path) == sha_before
    assert storage.count_chunks(corpus_id=corpus_id) == chunks_before
    stored = storage.get_document(corpus_id=corpus_id, relative_path=relative_path)
    assert stored is not None
    assert stored["content"].startswith("# Relays")
    hits = storage.search_chunks_semantic(
        corpus_id=corpus_id, query_embedding=RELAY_QUERY, limit=1
    )
    assert hits[0].file_path == relative_path
    assert "never lands" not in hits[0].text


def test_indexing_pipeline_isolates_failing_documents(
    tmp_path: Path,
    docs_corpus: Path,
    caplog,
) -> None:
    class CacheAllergicEmbedder(TopicEmbedder):
        def embed_batch(self, texts: list[str], *, task_type: str = "") -> list[list[float]]:
            if any("cache" in text for text in texts):
                raise RuntimeError("embedding quota exceeded")
            return super().embed_batch(texts, task_type=task_type)

    (docs_corpus / "broken.md").write_bytes(b"\xff\xfe\x00 not utf-8 \xc3\x28")
    storage = _storage(tmp_path)

    with caplog.at_level("ERROR"):
        result = IndexingPipeline(storage, CacheAllergicEmbedder()).index_folder(
            str(docs_corpus)
        )

    assert result.indexed_files == 1
    assert result.failed_files == 2
    assert "guides/cache.md" in caplog.text
    assert "broken.md" in caplog.text
    docs = storage.list_documents(corpus_id=result.corpus_id)
    assert [doc["relative_path"] for doc in docs] == ["core/relays.md"]


def test_indexing_pipeline_ignores_unsupported_files(
    tmp_path: Path,
    docs_corpus: Path,
    topic_embedder: TopicEmbedder,
) -> None:
    (docs_corpus / "core" / "relay.py").write_text("print('relay relay relay')\n")
    (docs_corpus / "core" / "notes.TXT").write_text(
        "Relay notes live in a plain text file next to the markdown pages.\n"
    )

    result = IndexingPipeline(_storage(tmp_path), topic_embedder).index_folder(
        str(docs_corpus)
    )

    assert result.indexed_files == 3


def test_indexing_pipeline_honours_chunker_config(
    tmp_path: Path,
    docs_corpus: Path,
    topic_embedder: TopicEmbedder,
) -> None:
    chunker = SemanticChunker(ChunkerConfig(min_chunk_length=10_000))

    result = IndexingPipeline(_storage(tmp_path), topic_embedder, chunker).index_folder(
        str(docs_corpus)
    )

    assert result.indexed_files == 2
    assert result.chunks_written == 0


def test_indexing_pipeline_rejects_missing_folder(
    tmp_path: Path,
    topic_embedder: TopicEmbedder,
) -> None:
    pipeline = IndexingPipeline(_storage(tmp_path), topic_embedder)

    with pytest.raises(ValueError, match="No such directory"):
        pipeline.index_folder(str(tmp_path / "missing"))


def test_storage_stats_and_document_listing(
    tmp_path: Path,
    docs_corpus: Path,
    topic_embedder: TopicEmbedder,
) -> None:
    storage = _storage(tmp_path)
    result = IndexingPipeline(storage, topic_embedder).index_folder(str(docs_corpus))

    stats = storage.get_stats(corpus_id=result.corpus_id)
    docs = storage.list_documents(corpus_id=result.corpus_id)

    assert stats["doc_count"] == 2
    assert stats["chunk_count"] == result.chunks_written
    assert set(stats["categories"]) == {"core", "guides"}
    assert [doc["relative_path"] for doc in docs] == ["core/relays.md", "guides/cache.md"]
    assert [doc["category"] for doc in docs] == ["core", "guides"]
    assert all(doc["chunk_count"] >= 1 for doc in docs)
    assert storage.get_corpus_id(str(docs_corpus)) == result.corpus_id
    assert storage.get_corpus_id(str(tmp_path / "elsewhere")) is None
