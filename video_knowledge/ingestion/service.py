"""Batch embedding of chunks, with optional storage and graph computation."""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable

from video_knowledge.config import settings
from video_knowledge.graph.relationships import compute_relationships
from video_knowledge.ingestion.embeddings import EmbeddingEngine, get_embedding_engine
from video_knowledge.ingestion.models import Chunk, EmbedChunksResult, EmbeddedChunk
from video_knowledge.ingestion.storage import get_supabase_client, replace_video_chunks

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[int, int], None]


async def _embed_one(engine: EmbeddingEngine, chunk: Chunk) -> EmbeddedChunk:
    base = EmbeddedChunk(
        content=chunk.content,
        start_ms=chunk.start_ms,
        end_ms=chunk.end_ms,
        source_segment_indices=list(chunk.source_segment_indices),
    )
    try:
        base.embedding = await engine.embed(chunk.content)
    except Exception as exc:
        base.embedding = []
        base.error = str(exc) or type(exc).__name__
    return base


async def embed_chunks(
    chunks: list[Chunk],
    on_progress: ProgressCallback | None = None,
    video_id: int | None = None,
    engine: EmbeddingEngine | None = None,
    batch_size: int | None = None,
) -> EmbedChunksResult:
    """Embed *chunks* in batches, optionally replacing the stored chunks of a video.

    Chunks are embedded concurrently within a batch and batches run one after
    another. A failing chunk is returned with an empty embedding and an
    ``error`` message; it never aborts its batch.

    When *video_id* is given, the successfully embedded chunks replace the
    video's stored chunks in one transaction (a storage failure propagates),
    and the similarity graph is then rebuilt. A graph failure only sets
    ``relationships_created = 0`` and ``graph_error`` on the result.

    Args:
        chunks: Chunks to embed.
        on_progress: Called with ``(processed, total)`` after each batch.
        video_id: Owning video whose stored chunks should be replaced.
        engine: Embedding engine; defaults to the process-wide one.
        batch_size: Chunks per batch; defaults to ``settings.embed_batch_size``.

    Returns:
        :class:`EmbedChunksResult` with per-chunk outcomes in input order.
    """
    started = time.perf_counter()
    total = len(chunks)

    if total == 0:
        return EmbedChunksResult(
            chunks=[], total_chunks=0, success_count=0, error_count=0, duration_ms=0.0
        )

    engine = engine or get_embedding_engine()
    size = batch_size or settings.embed_batch_size

    results: list[EmbeddedChunk] = []
    for start in range(0, total, size):
        batch = chunks[start : start + size]
        results.extend(await asyncio.gather(*(_embed_one(engine, chunk) for chunk in batch)))
        if on_progress is not None:
            on_progress(min(start + size, total), total)

    success_count = sum(1 for r in results if r.ok)
    result = EmbedChunksResult(
        chunks=results,
        total_chunks=total,
        success_count=success_count,
        error_count=total - success_count,
        duration_ms=(time.perf_counter() - started) * 1000,
    )
    if result.error_count:
        logger.warning("%d of %d chunks failed to embed", result.error_count, total)

    if video_id is None:
        return result

    # Phase 1: store. Failures here are fatal.
    client = get_supabase_client()
    stored = await asyncio.to_thread(replace_video_chunks, client, video_id, results)
    logger.info("Stored %d chunks for video %s", stored, video_id)

    # Phase 2: graph. Failures are recorded on the result.
    try:
        stats = await asyncio.to_thread(compute_relationships, video_id, client=client)
    except Exception as exc:
        logger.warning("Relationship computation failed for video %s: %s", video_id, exc)
        result.relationships_created = 0
        result.graph_error = str(exc) or type(exc).__name__
    else:
        result.relationships_created = stats.created

    return result
