"""
Semantic text chunking.

Splits long text into provider-sized pieces, preferring sentence
boundaries and falling back to word boundaries.
"""

import re
from dataclasses import dataclass
from typing import List, Sequence


SENTENCE_ENDINGS = (". ", "! ", "? ", ".\n", "!\n", "?\n")

# A word together with its trailing whitespace, or a run of leading whitespace.
_WORD_PATTERN = re.compile(r"\S+\s*|\s+")


@dataclass(frozen=True)
class TextChunk:
    """Contiguous slice of the original input sized for one request."""
    index: int
    start: int
    text: str

    def __len__(self) -> int:
        return len(self.text)


def split_text(
    text: str,
    max_chunk_size: int,
    delimiters: Sequence[str] = SENTENCE_ENDINGS
) -> List[TextChunk]:
    """Split text into ordered chunks no longer than max_chunk_size.

    Sentences (text up to and including the nearest delimiter) are packed
    into chunks. A sentence that alone exceeds the limit is packed word by
    word, and a word that alone exceeds the limit is cut at the limit.
    Whitespace is kept with the preceding word, so joining the chunk texts
    reproduces the input exactly.

    Args:
        text: Text to split
        max_chunk_size: Maximum characters per chunk (must be > 0)
        delimiters: Sentence-ending markers

    Returns:
        List of TextChunk in input order (empty for empty input)

    Raises:
        ValueError: If max_chunk_size is not positive
    """
    if max_chunk_size <= 0:
        raise ValueError("max_chunk_size must be > 0")

    boundary = _compile_boundary(delimiters)
    pieces: List[str] = []
    current = ""

    def add(piece: str) -> None:
        nonlocal current
        if current and len(current) + len(piece) > max_chunk_size:
            pieces.append(current)
            current = ""
        current += piece

    position = 0
    while position < len(text):
        match = boundary.search(text, position)
        end = match.end() if match else len(text)
        sentence = text[position:end]
        position = end

        if len(sentence) <= max_chunk_size:
            add(sentence)
            continue

        if current:
            pieces.append(current)
            current = ""
        for word in _WORD_PATTERN.findall(sentence):
            for offset in range(0, len(word), max_chunk_size):
                add(word[offset:offset + max_chunk_size])

    if current:
        pieces.append(current)

    chunks = []
    start = 0
    for index, piece in enumerate(pieces):
        chunks.append(TextChunk(index=index, start=start, text=piece))
        start += len(piece)
    return chunks


def _compile_boundary(delimiters: Sequence[str]) -> "re.Pattern[str]":
    if not delimiters:
        raise ValueError("at least one sentence delimiter is required")
    # Longest first so overlapping markers resolve to the full delimiter.
    ordered = sorted(set(delimiters), key=len, reverse=True)
    return re.compile("|".join(re.escape(d) for d in ordered))
