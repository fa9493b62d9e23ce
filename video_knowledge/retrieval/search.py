"""Search implementations: keyword, vector, and hybrid (RRF) retrieval."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import replace
from typing import Any, cast

from supabase import Client

from video_knowledge.config import settings
from video_knowledge.ingestion.embeddings import EmbeddingEngine, get_embedding_engine
from video_knowledge.ingestion.storage import (
    count_embedded_chunks,
    fetch_focus_area_video_ids,
    fetch_videos_metadata,
    get_supabase_client,
)
from video_knowledge.pipeline_config import SearchMode, SearchOptions
from video_knowledge.retrieval.decay import temporal_decay
from video_knowledge.retrieval.models import SearchOutcome, SearchResult

logger = logging.getLogger(__name__)

CHUNK_COLUMNS = "id,video_id,content,start_time,end_time,created_at"
KEYWORD_SCORE = 1.0


def _like_pattern(query: str) -> str:
    escaped = query.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    return f"%{escaped}%"


def _row_to_result(row: dict[str, Any], score: float) -> SearchResult:
    return SearchResult(
        chunk_id=int(row["id"]),
        video_id=int(row["video_id"]),
        content=row["content"],
        start_time=row.get("start_time"),
        end_time=row.get("end_time"),
        score=score,
        raw_score=score,
    )


def keyword_search(client: Client, query: str, limit: int = 20) -> list[SearchResult]:
    """Case-insensitive substring match on chunk content.

    The newest matching chunks are fetched, then ordered by how early the
    query appears in each chunk (ties keep the newest first). Every match
    scores 1.0.
    """
    result = (
        client.table("chunks")
        .select(CHUNK_COLUMNS)
        .ilike("content", _like_pattern(query))
        .order("created_at", desc=True)
        .limit(limit)
        .execute()
    )
    rows = cast(list[dict[str, Any]], result.data)
    needle = query.lower()

    def match_position(row: dict[str, Any]) -> int:
        content = row["content"].lower()
        position = content.find(needle)
        return position if position >= 0 else len(content)

    return [_row_to_result(row, KEYWORD_SCORE) for row in sorted(rows, key=match_position)]


def vector_search(
    client: Client,
    query_embedding: list[float],
    limit: int = 10,
    min_similarity: float | None = None,
) -> list[SearchResult]:
    """Rank embedded chunks by cosine similarity to *query_embedding* (highest first).

    Raises:
        TypeError: If the embedding does not have the configured dimensionality.
    """
    if len(query_embedding) != settings.embedding_dimensions:
        raise TypeError(
            f"Expected a {settings.embedding_dimensions}-dimensional query embedding, "
            f"got {len(query_embedding)}"
        )
    if min_similarity is None:
        min_similarity = settings.vector_min_similarity

    result = client.rpc(
        "match_chunks",
        {
            "query_embedding": query_embedding,
            "match_count": limit,
            "min_similarity": min_similarity,
        },
    ).execute()
    rows = cast(list[dict[str, Any]], result.data)
    return [_row_to_result(row, float(row["similarity"])) for row in rows]


def reciprocal_rank_fusion(*ranked_lists: list[SearchResult], k: int = 60) -> list[SearchResult]:
    """Merge ranked lists with Reciprocal Rank Fusion.

    Each chunk scores ``sum(1 / (k + rank))`` over the lists it appears in,
    with 1-based ranks. The output is ordered by that score, ties broken by
    the higher raw score. ``score`` on the returned copies is the RRF score.
    """
    fused: dict[int, SearchResult] = {}
    scores: dict[int, float] = {}

    for results in ranked_lists:
        for rank, item in enumerate(results, start=1):
            scores[item.chunk_id] = scores.get(item.chunk_id, 0.0) + 1.0 / (k + rank)
            existing = fused.get(item.chunk_id)
            if existing is None:
                fused[item.chunk_id] = replace(item)
            elif item.raw_score > existing.raw_score:
                existing.raw_score = item.raw_score

    for chunk_id, item in fused.items():
        item.score = scores[chunk_id]

    return sorted(fused.values(), key=lambda r: (r.score, r.raw_score), reverse=True)


def _enrich_with_video_metadata(client: Client, results: list[SearchResult]) -> list[SearchResult]:
    """Fill in title, channel and other display fields from the videos table."""
    if not results:
        return results
    videos = fetch_videos_metadata(client, (r.video_id for r in results))
    for r in results:
        meta = videos.get(r.video_id)
        if meta is None:
            continue
        r.video_title = meta.get("title") or ""
        r.channel = meta.get("channel")
        r.youtube_id = meta.get("youtube_id")
        r.thumbnail = meta.get("thumbnail")
        r.published_at = meta.get("published_at")
    return results


async def _embed_query(engine: EmbeddingEngine, query: str) -> list[float] | None:
    """Embed *query*, or return None when the engine cannot produce an embedding."""
    try:
        return await engine.embed(query)
    except Exception as exc:
        logger.warning("Embedding engine unavailable, falling back to keyword search: %s", exc)
        return None


async def search(
    query: str,
    options: SearchOptions | None = None,
    engine: EmbeddingEngine | None = None,
    client: Client | None = None,
) -> SearchOutcome:
    """Search stored chunks.

    Modes:
    - ``keyword``: substring match only.
    - ``vector``: cosine similarity to the embedded query.
    - ``hybrid``: vector and keyword lists (each ``2 * limit`` long) fused
      with :func:`reciprocal_rank_fusion`.

    If the query cannot be embedded, ``vector`` and ``hybrid`` return the
    keyword results instead and set ``degraded``.

    With ``focus_area_id`` set, three times as many candidates are fetched
    and only chunks of videos in that focus area are kept.

    Args:
        query: The user's search text.
        options: Mode, limit, focus area and temporal decay settings.
        engine: Embedding engine; defaults to the process-wide one.
        client: Supabase client; a new one is created when omitted.

    Returns:
        :class:`SearchOutcome` with at most ``options.limit`` results.
    """
    options = options or SearchOptions()
    query = query.strip()
    if not query:
        return SearchOutcome()

    mode = SearchMode(options.mode)
    client = client or get_supabase_client()
    fetch_count = options.limit * 3 if options.focus_area_id is not None else options.limit

    degraded = False
    vector_results: list[SearchResult] = []

    if mode is SearchMode.KEYWORD:
        results = await asyncio.to_thread(keyword_search, client, query, fetch_count)
    else:
        embedding = await _embed_query(engine or get_embedding_engine(), query)
        if embedding is None:
            degraded = True
            results = await asyncio.to_thread(keyword_search, client, query, fetch_count)
        elif mode is SearchMode.VECTOR:
            vector_results = await asyncio.to_thread(vector_search, client, embedding, fetch_count)
            results = vector_results
        else:
            vector_results, keyword_results = await asyncio.gather(
                asyncio.to_thread(vector_search, client, embedding, fetch_count * 2),
                asyncio.to_thread(keyword_search, client, query, fetch_count * 2),
            )
            results = reciprocal_rank_fusion(vector_results, keyword_results, k=settings.rrf_k)

    if options.focus_area_id is not None:
        allowed = await asyncio.to_thread(fetch_focus_area_video_ids, client, options.focus_area_id)
        results = [r for r in results if r.video_id in allowed]

    results = await asyncio.to_thread(_enrich_with_video_metadata, client, results)

    if options.temporal_decay:
        for r in results:
            r.score *= temporal_decay(r.published_at, options.half_life_days)
        results = sorted(results, key=lambda r: (r.score, r.raw_score), reverse=True)

    if mode is SearchMode.KEYWORD:
        has_embeddings = True
    elif degraded:
        has_embeddings = await asyncio.to_thread(count_embedded_chunks, client) > 0
    else:
        has_embeddings = len(vector_results) > 0

    return SearchOutcome(
        results=results[: options.limit],
        degraded=degraded,
        has_embeddings=has_embeddings,
    )
