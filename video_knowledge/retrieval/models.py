"""Query-time result types."""

from __future__ import annotations

from dataclasses import dataclass, field


@dataclass
class SearchResult:
    """A stored chunk joined with its video's display metadata.

    ``score`` is the value results are ordered by (cosine similarity in vector
    mode, RRF score in hybrid mode). ``raw_score`` is the best score the chunk
    received from an individual ranking signal.
    """

    chunk_id: int
    video_id: int
    content: str
    start_time: int | None = None
    end_time: int | None = None
    score: float = 0.0
    raw_score: float = 0.0
    video_title: str = ""
    channel: str | None = None
    youtube_id: str | None = None
    thumbnail: str | None = None
    published_at: str | None = None


@dataclass
class SearchOutcome:
    results: list[SearchResult] = field(default_factory=list)
    degraded: bool = False
    has_embeddings: bool = True


@dataclass
class BestChunk:
    content: str
    start_time: int | None
    score: float


@dataclass
class VideoResult:
    """Chunk hits grouped by video."""

    video_id: int
    title: str
    channel: str | None
    youtube_id: str | None
    thumbnail: str | None
    published_at: str | None
    score: float
    matched_chunks: int
    best_chunk: BestChunk
