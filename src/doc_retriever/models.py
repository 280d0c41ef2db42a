"""
Typed retrieval records shared by storage, ranking and the CLI.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field


def candidate_key(file_path: str, chunk_index: int) -> str:
    return f"{file_path}:{chunk_index}"


@dataclass(frozen=True)
class ScoredCandidate:
    """A retrieved chunk with its dense distance (lower is better)."""

    file_path: str
    chunk_index: int
    text: str
    distance: float
    keyword_score: float | None = None
    category: str = "unknown"
    headers: tuple[str, ...] = field(default_factory=tuple)

    def __post_init__(self) -> None:
        if self.chunk_index < 0:
            raise ValueError(f"chunk_index must be >= 0, got {self.chunk_index}")
        if math.isnan(self.distance) or math.isinf(self.distance) or self.distance < 0:
            raise ValueError(
                f"distance must be a finite non-negative number, got {self.distance}"
            )

    @property
    def key(self) -> str:
        return candidate_key(self.file_path, self.chunk_index)


@dataclass(frozen=True)
class KeywordHit:
    """A keyword search match with its raw relevance (higher is better)."""

    file_path: str
    chunk_index: int
    score: float

    def __post_init__(self) -> None:
        if math.isnan(self.score) or self.score < 0:
            raise ValueError(f"keyword score must be >= 0, got {self.score}")

    @property
    def key(self) -> str:
        return candidate_key(self.file_path, self.chunk_index)
