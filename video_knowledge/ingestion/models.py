"""Data models for the embedding pipeline."""

from __future__ import annotations

from dataclasses import dataclass, field


@dataclass(frozen=True)
class TranscriptSegment:
    """One caption cue: its text and offset from the start of the video."""

    text: str
    offset_ms: int = 0


@dataclass
class Chunk:
    """A bounded transcript span ready for embedding."""

    content: str
    start_ms: int
    end_ms: int
    source_segment_indices: list[int] = field(default_factory=list)


@dataclass
class EmbeddedChunk(Chunk):
    """A chunk after an embedding attempt.

    ``embedding`` is empty and ``error`` is set when the attempt failed.
    """

    embedding: list[float] = field(default_factory=list)
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None and len(self.embedding) > 0


@dataclass
class EmbedChunksResult:
    """Outcome of a batch embedding run.

    ``relationships_created`` stays ``None`` unless the chunks were stored for
    a video. ``graph_error`` records why relationship computation failed after
    a successful store.
    """

    chunks: list[EmbeddedChunk]
    total_chunks: int
    success_count: int
    error_count: int
    duration_ms: float
    relationships_created: int | None = None
    graph_error: str | None = None
