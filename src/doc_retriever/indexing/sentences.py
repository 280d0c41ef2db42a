"""
Sentence splitting for semantic chunking.

Code spans are masked before boundary detection so punctuation inside code
never ends a sentence, and over-long sentences are re-split so every output
stays within the embedding model's input budget.
"""

from __future__ import annotations

import re
from collections.abc import Collection

DEFAULT_MAX_SENTENCE_LENGTH = 2000

DEFAULT_ABBREVIATIONS: frozenset[str] = frozenset(
    {
        "Dr",
        "Mr",
        "Mrs",
        "Ms",
        "Jr",
        "Sr",
        "Prof",
        "Ph.D",
        "M.D",
        "B.A",
        "M.A",
        "D.D.S",
        "etc",
        "i.e",
        "e.g",
        "vs",
        "v",
    }
)

_CODE_SPAN_RE = re.compile(r"```[\s\S]*?```|`[^`]+`")
_PLACEHOLDER_RE = re.compile(r"\x00CODE_BLOCK_(\d+)\x00")
_BOUNDARY_RE = re.compile(r"[.!?]+(?=\s+[A-Z]|\s*$)")
_TRAILING_WORD_RE = re.compile(r"(\S+)$")
_WORD_OPENERS = "([{\"'"


def split_into_sentences(
    text: str,
    *,
    max_length: int = DEFAULT_MAX_SENTENCE_LENGTH,
    abbreviations: Collection[str] = DEFAULT_ABBREVIATIONS,
) -> list[str]:
    """
    Split text into an ordered list of sentences.

    Fenced and inline code spans are kept intact, decimal numbers and known
    abbreviations do not end a sentence, and no returned sentence is longer
    than *max_length* characters.
    """
    if max_length <= 0:
        raise ValueError("max_length must be > 0")
    if not text or not text.strip():
        return []

    code_blocks: list[str] = []

    def _mask(match: re.Match[str]) -> str:
        code_blocks.append(match.group(0))
        return f"\x00CODE_BLOCK_{len(code_blocks) - 1}\x00"

    masked = _CODE_SPAN_RE.sub(_mask, text)

    raw_sentences: list[str] = []
    start = 0
    for match in _BOUNDARY_RE.finditer(masked):
        if _is_protected_boundary(masked, match.start(), abbreviations):
            continue
        sentence = masked[start : match.end()].strip()
        if sentence:
            raw_sentences.append(sentence)
        start = match.end()
    tail = masked[start:].strip()
    if tail:
        raw_sentences.append(tail)

    def _restore(match: re.Match[str]) -> str:
        index = int(match.group(1))
        if index < len(code_blocks):
            return code_blocks[index]
        return match.group(0)

    result: list[str] = []
    for sentence in raw_sentences:
        restored = _PLACEHOLDER_RE.sub(_restore, sentence)
        if not restored.strip():
            continue
        result.extend(_enforce_max_length(restored, max_length))
    return result


def _is_protected_boundary(
    text: str, position: int, abbreviations: Collection[str]
) -> bool:
    if position == 0:
        return False
    if text[position - 1].isdigit():
        return True
    if text[position] != ".":
        return False

    match = _TRAILING_WORD_RE.search(text, max(0, position - 32), position)
    if match is None:
        return False
    word = match.group(1).lstrip(_WORD_OPENERS)
    if word in abbreviations:
        return True
    # Single-letter initials such as "J. Smith".
    return len(word) == 1 and word.isupper()


def _enforce_max_length(sentence: str, max_length: int) -> list[str]:
    if len(sentence) <= max_length:
        return [sentence]

    pieces: list[str] = []
    for line in sentence.split("\n"):
        line = line.strip()
        if not line:
            continue
        if len(line) <= max_length:
            pieces.append(line)
            continue

        buffer = ""
        for part in line.split(","):
            if buffer and len(buffer) + 1 + len(part) > max_length:
                pieces.extend(_hard_wrap(buffer.strip(), max_length))
                buffer = part
            else:
                buffer = f"{buffer},{part}" if buffer else part
        if buffer.strip():
            pieces.extend(_hard_wrap(buffer.strip(), max_length))

    return [piece for piece in pieces if piece]


def _hard_wrap(text: str, max_length: int) -> list[str]:
    """Cut text without commas into windows, preferring whitespace breaks."""
    pieces: list[str] = []
    while len(text) > max_length:
        cut = text.rfind(" ", 0, max_length + 1)
        if cut <= 0:
            cut = max_length
        pieces.append(text[:cut].rstrip())
        text = text[cut:].lstrip()
    if text:
        pieces.append(text)
    return pieces
