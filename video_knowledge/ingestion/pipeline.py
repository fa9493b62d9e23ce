"""Per-video embedding pipeline: load -> parse -> chunk -> embed -> store -> graph."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass

from video_knowledge.config import settings
from video_knowledge.ingestion.chunking import chunk_transcript
from video_knowledge.ingestion.embeddings import EmbeddingEngine
from video_knowledge.ingestion.models import EmbedChunksResult
from video_knowledge.ingestion.parsers import parse_transcript
from video_knowledge.ingestion.service import ProgressCallback, embed_chunks
from video_knowledge.ingestion.storage import count_embedded_chunks, fetch_video, get_supabase_client

logger = logging.getLogger(__name__)


@dataclass
class EmbedVideoOutcome:
    """What :func:`embed_video` did for one video."""

    video_id: int
    already_embedded: bool
    chunk_count: int
    result: EmbedChunksResult | None = None


async def embed_video(
    video_id: int,
    force: bool = False,
    transcript_format: str = "timestamped",
    on_progress: ProgressCallback | None = None,
    engine: EmbeddingEngine | None = None,
) -> EmbedVideoOutcome:
    """Embed the stored transcript of *video_id*.

    Videos that already have embedded chunks are left alone unless *force*
    is set, in which case every chunk is re-derived from the transcript.

    Raises:
        LookupError: If the video does not exist.
        ValueError: If the video has no transcript or it yields no chunks.
    """
    client = get_supabase_client()

    video = await asyncio.to_thread(fetch_video, client, video_id)
    if video is None:
        raise LookupError(f"Video {video_id} not found")
    if not video.get("transcript"):
        raise ValueError(f"Video {video_id} has no transcript")

    if not force:
        existing = await asyncio.to_thread(count_embedded_chunks, client, video_id)
        if existing > 0:
            return EmbedVideoOutcome(video_id=video_id, already_embedded=True, chunk_count=existing)

    segments = parse_transcript(video["transcript"], transcript_format)
    chunks = chunk_transcript(segments, settings.chunk_size, settings.chunk_overlap)
    if not chunks:
        raise ValueError(f"No chunks generated from transcript of video {video_id}")

    logger.info("Video %s: %d segments -> %d chunks", video_id, len(segments), len(chunks))
    result = await embed_chunks(chunks, on_progress=on_progress, video_id=video_id, engine=engine)

    return EmbedVideoOutcome(
        video_id=video_id,
        already_embedded=False,
        chunk_count=result.success_count,
        result=result,
    )
