"""
Vector similarity helpers shared by chunking and retrieval.
"""

from __future__ import annotations

import math
from collections.abc import Sequence


def cosine_similarity(vec1: Sequence[float], vec2: Sequence[float]) -> float:
    """
    Cosine similarity between two vectors.

    Vectors of different length, empty vectors and zero vectors all compare
    as 0.0 so one malformed embedding never aborts a batch comparison.
    """
    if len(vec1) != len(vec2) or not vec1:
        return 0.0

    dot = 0.0
    norm1 = 0.0
    norm2 = 0.0
    for a, b in zip(vec1, vec2):
        dot += a * b
        norm1 += a * a
        norm2 += b * b

    denominator = math.sqrt(norm1) * math.sqrt(norm2)
    if denominator == 0:
        return 0.0
    return dot / denominator


def sigmoid(x: float) -> float:
    return 1.0 / (1.0 + math.exp(-x))
