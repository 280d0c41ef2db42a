from __future__ import annotations

import pytest

TOPICS: tuple[str, ...] = ("relay", "event", "cache", "signer")


class TopicEmbedder:
    """
    Deterministic embedder: one dimension per topic word plus an "other"
    dimension, so texts about unrelated topics are orthogonal.
    """

    def __init__(self) -> None:
        self.batch_calls: list[list[str]] = []
        self.query_calls: list[str] = []
        self.task_types: list[str] = []

    def embed_batch(self, texts: list[str], *, task_type: str = "") -> list[list[float]]:
        self.batch_calls.append(list(texts))
        self.task_types.append(task_type)
        return [self._vector(text) for text in texts]

    def embed_query(self, query: str) -> list[float]:
        self.query_calls.append(query)
        return self._vector(query)

    @staticmethod
    def _vector(text: str) -> list[float]:
        lowered = text.lower()
        vector = [float(lowered.count(topic)) for topic in TOPICS]
        vector.append(0.0 if any(vector) else 1.0)
        return vector


class ScriptedEmbedder:
    """Returns pre-set vectors in order, one per input text."""

    def __init__(self, vectors: list[list[float]]) -> None:
        self.vectors = vectors
        self.calls: list[list[str]] = []
        self.task_types: list[str] = []

    def embed_batch(self, texts: list[str], *, task_type: str = "") -> list[list[float]]:
        self.calls.append(list(texts))
        self.task_types.append(task_type)
        return self.vectors[: len(texts)]


@pytest.fixture
def topic_embedder() -> TopicEmbedder:
    return TopicEmbedder()


@pytest.fixture
def docs_corpus(tmp_path):
    corpus = tmp_path / "docs"
    (corpus / "core").mkdir(parents=True)
    (corpus / "guides").mkdir()
    (corpus / "core" / "relays.md").write_text(
        "---\ntitle: Relays\ndescription: Managing relay connections\n---\n"
        "# Relays\n\n"
        "Relay connections are managed by the relay pool. "
        "Each relay keeps a websocket open to the relay server. "
        "The relay pool reconnects a relay when it drops.\n"
    )
    (corpus / "guides" / "cache.md").write_text(
        "The cache layer stores events locally. "
        "A cache hit avoids network requests for the same event. "
        "Cached events are served from the cache before the network is asked.\n"
    )
    return corpus
