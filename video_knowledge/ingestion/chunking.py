"""Boundary-aware chunking of transcript segments."""

from __future__ import annotations

import re

from video_knowledge.ingestion.models import Chunk, TranscriptSegment

TARGET_CHUNK_SIZE = 2000  # characters
CHUNK_OVERLAP = 100  # characters

_SENTENCE_END_RE = re.compile(r"[.!?]\s")
_WHITESPACE_RE = re.compile(r"\s")


def _tail(text: str, overlap: int) -> str:
    """Return the trailing *overlap* characters of *text* ("" when overlap is 0)."""
    if overlap <= 0:
        return ""
    return text[-overlap:]


def _join(prefix: str, text: str) -> str:
    return f"{prefix} {text}" if prefix else text


def chunk_transcript(
    segments: list[TranscriptSegment],
    chunk_size: int = TARGET_CHUNK_SIZE,
    overlap: int = CHUNK_OVERLAP,
) -> list[Chunk]:
    """Group transcript segments into overlapping chunks of roughly *chunk_size* characters.

    Segments are trimmed and joined with a single space. When the next segment
    would push the current chunk past *chunk_size*, the chunk is closed and the
    next one is seeded with the last *overlap* characters of the closed chunk.
    A segment that is longer than *chunk_size* on its own is split at sentence
    or word boundaries by :func:`_split_long_text`.

    Empty and whitespace-only segments are skipped and never appear in
    ``source_segment_indices``.

    Args:
        segments: Parsed transcript segments, in playback order.
        chunk_size: Target number of characters per chunk.
        overlap: Number of characters carried from one chunk into the next.

    Returns:
        List of :class:`Chunk` instances (empty when no segment has text).

    Raises:
        ValueError: If *chunk_size* leaves no room beyond the overlap.
    """
    if overlap < 0 or chunk_size <= overlap + 1:
        msg = f"chunk_size ({chunk_size}) must exceed overlap + 1 ({overlap + 1})"
        raise ValueError(msg)

    valid = [
        (index, segment.text.strip(), segment.offset_ms)
        for index, segment in enumerate(segments)
        if segment.text.strip()
    ]
    if not valid:
        return []

    chunks: list[Chunk] = []
    buffer = ""
    carry = ""  # overlap text seeding the next chunk
    start_ms = end_ms = valid[0][2]
    indices: list[int] = []

    for index, text, offset_ms in valid:
        if len(text) > chunk_size:
            # Close whatever has accumulated before splitting the long segment
            if indices:
                chunks.append(Chunk(buffer, start_ms, end_ms, indices))
                carry = _tail(buffer, overlap)
                buffer = ""
                indices = []

            pieces = _split_long_text(_join(carry, text), chunk_size, overlap)
            for piece in pieces:
                chunks.append(Chunk(piece, offset_ms, offset_ms, [index]))
            if pieces:
                carry = _tail(pieces[-1], overlap)
            continue

        if not indices:
            buffer = _join(carry, text)
            start_ms = offset_ms
        elif len(buffer) + 1 + len(text) > chunk_size:
            chunks.append(Chunk(buffer, start_ms, end_ms, indices))
            carry = _tail(buffer, overlap)
            buffer = _join(carry, text)
            start_ms = offset_ms
            indices = []
        else:
            buffer = f"{buffer} {text}"

        end_ms = offset_ms
        indices.append(index)

    if indices:
        chunks.append(Chunk(buffer, start_ms, end_ms, indices))

    return chunks


def _split_long_text(text: str, chunk_size: int, overlap: int) -> list[str]:
    """Split *text* into pieces of at most *chunk_size* characters.

    Each cut prefers the last sentence terminator that fits, then the last
    whitespace that fits, and only cuts mid-word when the window has no
    whitespace at all. Every piece after the first starts with the last
    *overlap* characters of the previous piece.
    """
    pieces: list[str] = []
    remaining = text.rstrip()
    # A cut at or below this position would make no progress once the overlap is re-added
    min_cut = overlap + 2

    while remaining:
        if len(remaining) <= chunk_size:
            pieces.append(remaining)
            break

        cut = _sentence_boundary(remaining, chunk_size, min_cut)
        if cut is None:
            cut = _word_boundary(remaining, chunk_size, min_cut)

        piece = remaining[:cut].rstrip()
        rest = remaining[cut:].strip()
        if piece:
            pieces.append(piece)
        remaining = _join(_tail(piece, overlap), rest) if rest else ""

    return pieces


def _sentence_boundary(text: str, chunk_size: int, min_cut: int) -> int | None:
    """Position just past the last ``[.!?]`` + whitespace that fits in *chunk_size*."""
    best: int | None = None
    for match in _SENTENCE_END_RE.finditer(text, 0, chunk_size + 1):
        if match.end() >= min_cut:
            best = match.end()
    return best


def _word_boundary(text: str, chunk_size: int, min_cut: int) -> int:
    """Position just past the last whitespace at or before *chunk_size*.

    Falls back to a hard cut at *chunk_size* when no usable whitespace exists.
    """
    for pos in range(chunk_size, min_cut - 2, -1):
        if _WHITESPACE_RE.match(text, pos):
            return pos + 1
    return chunk_size
