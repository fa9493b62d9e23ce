"""Per-video endpoints: embedding generation and related-moment lookups."""

from __future__ import annotations

import asyncio
import logging
from typing import Annotated

from fastapi import APIRouter, HTTPException, Query

from video_knowledge.api.models import EmbedResponse, RelatedChunkResponse, RelatedResponse
from video_knowledge.config import settings
from video_knowledge.graph.traverse import get_related_chunks
from video_knowledge.ingestion.pipeline import embed_video

logger = logging.getLogger(__name__)

router = APIRouter()


def _check_video_id(video_id: int) -> None:
    if video_id <= 0:
        raise HTTPException(status_code=400, detail="Invalid video ID")


@router.post("/api/videos/{video_id}/embed", response_model=EmbedResponse)
async def embed(video_id: int, force: bool = False) -> EmbedResponse:
    """Chunk, embed and store the transcript of a video, then link its chunks.

    Already-embedded videos are reported as such unless ``force`` is set.
    """
    _check_video_id(video_id)

    try:
        outcome = await embed_video(video_id, force=force)
    except LookupError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc

    if outcome.already_embedded or outcome.result is None:
        return EmbedResponse(success=True, already_embedded=True, chunk_count=outcome.chunk_count)

    result = outcome.result
    if result.error_count > 0:
        logger.error(
            "Video %s: %d of %d chunks failed to embed",
            video_id,
            result.error_count,
            result.total_chunks,
        )
        raise HTTPException(
            status_code=500,
            detail=f"Failed to generate embeddings for {result.error_count} of {result.total_chunks} chunks",
        )

    return EmbedResponse(
        success=True,
        chunk_count=result.success_count,
        duration_ms=result.duration_ms,
        relationships_created=result.relationships_created,
        error=result.graph_error,
    )


@router.get("/api/videos/{video_id}/related", response_model=RelatedResponse)
async def related(
    video_id: int,
    limit: Annotated[int, Query(ge=1, le=50)] = 10,
    min_similarity: Annotated[float | None, Query(alias="minSimilarity", ge=0, le=1)] = None,
) -> RelatedResponse:
    """Chunks from the similarity graph that are close to this video's chunks."""
    _check_video_id(video_id)
    if min_similarity is None:
        min_similarity = settings.relationship_threshold

    chunks = await asyncio.to_thread(
        get_related_chunks, video_id, limit=limit, min_similarity=min_similarity
    )
    return RelatedResponse(related=[RelatedChunkResponse.model_validate(c) for c in chunks])
