"""Pydantic response schemas for the Video Knowledge API.

Field names are snake_case in Python and camelCase on the wire.
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from video_knowledge.pipeline_config import SearchMode


class ApiModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)


class ChunkHit(ApiModel):
    """A single retrieved chunk with its video's display metadata."""

    chunk_id: int
    video_id: int
    content: str
    start_time: int | None = None
    end_time: int | None = None
    score: float
    raw_score: float
    video_title: str = ""
    channel: str | None = None
    youtube_id: str | None = None
    thumbnail: str | None = None
    published_at: str | None = None


class BestChunkResponse(ApiModel):
    content: str
    start_time: int | None = None
    score: float


class VideoHit(ApiModel):
    """Chunk hits grouped per video."""

    video_id: int
    title: str
    channel: str | None = None
    youtube_id: str | None = None
    thumbnail: str | None = None
    published_at: str | None = None
    score: float
    matched_chunks: int
    best_chunk: BestChunkResponse


class SearchResponse(ApiModel):
    """Response body for the /api/search endpoint."""

    chunks: list[ChunkHit]
    videos: list[VideoHit]
    query: str
    mode: SearchMode
    timing: float
    has_embeddings: bool
    degraded: bool = False


class EmbedResponse(ApiModel):
    """Response body for the /api/videos/{video_id}/embed endpoint."""

    success: bool
    already_embedded: bool = False
    chunk_count: int = 0
    duration_ms: float | None = None
    relationships_created: int | None = None
    error: str | None = None


class RelatedVideoResponse(ApiModel):
    id: int
    title: str
    channel: str | None = None
    youtube_id: str | None = None


class RelatedChunkResponse(ApiModel):
    chunk_id: int
    content: str
    start_time: int
    end_time: int
    similarity: float
    video: RelatedVideoResponse


class RelatedResponse(ApiModel):
    related: list[RelatedChunkResponse]


class BackfillResponse(ApiModel):
    """Response body for the /api/graph/backfill endpoint."""

    videos_processed: int
    relationships_created: int
    duration_ms: float
