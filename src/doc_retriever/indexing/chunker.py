"""
Semantic chunking for indexing document content.

Implements Max-Min grouping: consecutive sentences join the current chunk
while their best similarity to a chunk member beats a threshold derived from
the weakest similarity inside the chunk.
"""

from __future__ import annotations

import re
from collections import Counter
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Protocol

from ..config import ChunkerConfig
from ..embeddings import DOCUMENT_TASK_TYPE, SENTENCE_TASK_TYPE
from ..similarity import cosine_similarity, sigmoid
from .sentences import split_into_sentences

# min_sim only compares the trailing members of a group.
WINDOW_SIZE = 5
MAX_SENTENCES_PER_CHUNK = 15

_ALNUM_RE = re.compile(r"[a-zA-Z0-9]")
_DECORATION_RE = re.compile(r"^[\-=_.*#|~`@!%^&*()\[\]{}\\/<>:+\s]+$")


class Embedder(Protocol):
    """Anything that embeds a batch of texts, preserving order."""

    def embed_batch(
        self, texts: list[str], *, task_type: str = DOCUMENT_TASK_TYPE
    ) -> list[list[float]]:
        """Return one vector per input text."""


@dataclass(frozen=True)
class TextChunk:
    """A semantically grouped run of sentences."""

    text: str
    index: int
    sentences: tuple[str, ...]


def is_garbage_chunk(text: str) -> bool:
    """
    Return True for chunks with no retrievable content.

    Text containing any letter or digit is always kept. Otherwise decoration
    lines (``----``, ``====``) and runs dominated by one character are garbage.
    """
    trimmed = text.strip()
    if not trimmed:
        return True
    if _ALNUM_RE.search(trimmed):
        return False
    if _DECORATION_RE.match(trimmed):
        return True

    _, max_count = Counter(trimmed).most_common(1)[0]
    return max_count / len(trimmed) > 0.8


class SemanticChunker:
    """Split text into semantically coherent chunks."""

    def __init__(self, config: ChunkerConfig | None = None) -> None:
        self.config = config or ChunkerConfig()

    def chunk_text(self, text: str, embedder: Embedder) -> list[TextChunk]:
        """
        Split text into sentences, embed them in one batch and group them.

        Embedder failures propagate to the caller.
        """
        if not text or not text.strip():
            return []

        sentences = split_into_sentences(text)
        if not sentences:
            return []

        embeddings = embedder.embed_batch(sentences, task_type=SENTENCE_TASK_TYPE)
        if len(embeddings) != len(sentences):
            raise ValueError(
                f"Embedder returned {len(embeddings)} vectors "
                f"for {len(sentences)} sentences"
            )

        chunks: list[TextChunk] = []
        for group in group_sentences(embeddings, self.config):
            members = tuple(sentences[i] for i in group)
            chunk_text = " ".join(members)
            if len(chunk_text) < self.config.min_chunk_length:
                continue
            if is_garbage_chunk(chunk_text):
                continue
            chunks.append(
                TextChunk(text=chunk_text, index=len(chunks), sentences=members)
            )
        return chunks


def chunk(
    text: str,
    embedder: Embedder,
    config: ChunkerConfig | None = None,
) -> list[TextChunk]:
    """Functional entry point for :class:`SemanticChunker`."""
    return SemanticChunker(config).chunk_text(text, embedder)


def group_sentences(
    embeddings: Sequence[Sequence[float]],
    config: ChunkerConfig,
) -> list[list[int]]:
    """
    Group sentence positions into chunks.

    Returns lists of sentence indexes; every index appears in exactly one
    group and groups are in source order.
    """
    groups: list[list[int]] = []
    current: list[int] = []
    current_embeddings: list[Sequence[float]] = []

    for position, embedding in enumerate(embeddings):
        if not current:
            accept = True
        elif len(current) == 1:
            similarity = cosine_similarity(current_embeddings[0], embedding)
            accept = config.init_const * similarity > config.hard_threshold
        elif len(current) >= MAX_SENTENCES_PER_CHUNK:
            accept = False
        else:
            accept = _should_join(embedding, current_embeddings, config)

        if accept:
            current.append(position)
            current_embeddings.append(embedding)
        else:
            groups.append(current)
            current = [position]
            current_embeddings = [embedding]

    if current:
        groups.append(current)
    return groups


def _should_join(
    embedding: Sequence[float],
    group_embeddings: Sequence[Sequence[float]],
    config: ChunkerConfig,
) -> bool:
    min_sim = _min_pairwise_similarity(group_embeddings[-WINDOW_SIZE:])
    max_sim = max(cosine_similarity(embedding, member) for member in group_embeddings)
    dynamic = config.c * min_sim * sigmoid(len(group_embeddings))
    threshold = max(dynamic, config.hard_threshold)
    return max_sim > threshold


def _min_pairwise_similarity(window: Sequence[Sequence[float]]) -> float:
    if len(window) < 2:
        return 1.0
    min_sim = 1.0
    for i in range(len(window)):
        for j in range(i + 1, len(window)):
            min_sim = min(min_sim, cosine_similarity(window[i], window[j]))
    return min_sim
