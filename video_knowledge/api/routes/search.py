"""Search endpoint: keyword, vector or hybrid retrieval over stored chunks."""

from __future__ import annotations

import time
from typing import Annotated

from fastapi import APIRouter, HTTPException, Query

from video_knowledge.api.models import ChunkHit, SearchResponse, VideoHit
from video_knowledge.config import settings
from video_knowledge.pipeline_config import SearchMode, SearchOptions
from video_knowledge.retrieval.aggregate import aggregate_by_video
from video_knowledge.retrieval.search import search

router = APIRouter()


@router.get("/api/search", response_model=SearchResponse)
async def search_chunks(
    q: str = "",
    limit: Annotated[int, Query(ge=1, le=100)] = 10,
    mode: str = SearchMode.HYBRID.value,
    focus_area_id: Annotated[int | None, Query(alias="focusAreaId")] = None,
    temporal_decay: Annotated[bool, Query(alias="temporalDecay")] = False,
    half_life_days: Annotated[float, Query(alias="halfLifeDays", gt=0)] = 365.0,
) -> SearchResponse:
    """Search transcript chunks and group the hits by video.

    Three times ``limit`` chunks are retrieved so the per-video grouping has
    enough material; both lists are then cut back to ``limit``.
    """
    started = time.perf_counter()
    try:
        search_mode = SearchMode(mode)
    except ValueError:
        search_mode = SearchMode.HYBRID

    query = q.strip()
    if not query:
        return SearchResponse(
            chunks=[], videos=[], query="", mode=search_mode, timing=0.0, has_embeddings=True
        )
    if len(query) > settings.search_max_query_length:
        raise HTTPException(
            status_code=400,
            detail=f"Query too long (max {settings.search_max_query_length} characters)",
        )

    outcome = await search(
        query,
        SearchOptions(
            mode=search_mode,
            limit=limit * 3,
            focus_area_id=focus_area_id,
            temporal_decay=temporal_decay,
            half_life_days=half_life_days,
        ),
    )
    videos = aggregate_by_video(outcome.results)

    return SearchResponse(
        chunks=[ChunkHit.model_validate(r) for r in outcome.results[:limit]],
        videos=[VideoHit.model_validate(v) for v in videos[:limit]],
        query=query,
        mode=search_mode,
        timing=round((time.perf_counter() - started) * 1000, 2),
        has_embeddings=outcome.has_embeddings,
        degraded=outcome.degraded,
    )
