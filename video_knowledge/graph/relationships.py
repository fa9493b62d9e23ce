"""Similarity graph between the chunks of a video.

Edges are stored in both directions so traversal can start from either end.
Only pairs whose cosine similarity is strictly above the threshold become
edges; re-running for an unchanged video inserts nothing new because the
``(source_chunk_id, target_chunk_id)`` pair is unique.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from typing import Any

import numpy as np
from supabase import Client

from video_knowledge.config import settings
from video_knowledge.ingestion.storage import (
    delete_all_relationships,
    fetch_chunk_vectors,
    get_supabase_client,
    insert_relationships,
    list_embedded_video_ids,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RelationshipStats:
    """Outcome of one relationship computation.

    ``skipped`` counts candidate edges that already existed.
    """

    created: int
    skipped: int


@dataclass(frozen=True)
class BackfillStats:
    videos_processed: int
    relationships_created: int


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """Cosine similarity in [-1, 1]; 0.0 when either vector is all zeros.

    Raises:
        ValueError: If the vectors differ in length.
    """
    va = np.asarray(a, dtype=np.float64)
    vb = np.asarray(b, dtype=np.float64)
    if va.shape != vb.shape:
        raise ValueError(f"Vector dimension mismatch: {va.shape[0]} vs {vb.shape[0]}")

    denominator = float(np.linalg.norm(va) * np.linalg.norm(vb))
    if denominator == 0.0:
        return 0.0
    return float(np.dot(va, vb) / denominator)


def find_similar_pairs(
    vectors: list[tuple[int, list[float]]],
    threshold: float,
    on_progress: Callable[[int, int], None] | None = None,
) -> list[tuple[int, int, float]]:
    """Return ``(id_a, id_b, similarity)`` for each unordered pair above *threshold*."""
    pairs: list[tuple[int, int, float]] = []
    total = len(vectors) * (len(vectors) - 1) // 2
    processed = 0

    for i, (source_id, source_vector) in enumerate(vectors):
        for target_id, target_vector in vectors[i + 1 :]:
            similarity = cosine_similarity(source_vector, target_vector)
            if similarity > threshold:
                pairs.append((source_id, target_id, similarity))
            processed += 1
            if on_progress is not None and processed % 100 == 0:
                on_progress(processed, total)

    if on_progress is not None:
        on_progress(total, total)
    return pairs


def compute_relationships(
    video_id: int,
    threshold: float | None = None,
    on_progress: Callable[[int, int], None] | None = None,
    client: Client | None = None,
) -> RelationshipStats:
    """Store similarity edges between the embedded chunks of *video_id*.

    Args:
        video_id: Video whose chunks are compared pairwise.
        threshold: Minimum similarity (exclusive); defaults to
            ``settings.relationship_threshold``.
        on_progress: Called with ``(processed_pairs, total_pairs)``.
        client: Supabase client; a new one is created when omitted.

    Returns:
        :class:`RelationshipStats` with inserted and already-present edge counts.
    """
    if threshold is None:
        threshold = settings.relationship_threshold
    client = client or get_supabase_client()

    vectors = fetch_chunk_vectors(client, video_id)
    if len(vectors) < 2:
        return RelationshipStats(created=0, skipped=0)

    rows: list[dict[str, Any]] = []
    for id_a, id_b, similarity in find_similar_pairs(vectors, threshold, on_progress):
        rows.append({"source_chunk_id": id_a, "target_chunk_id": id_b, "similarity": similarity})
        rows.append({"source_chunk_id": id_b, "target_chunk_id": id_a, "similarity": similarity})

    if not rows:
        return RelationshipStats(created=0, skipped=0)

    created = insert_relationships(client, rows)
    stats = RelationshipStats(created=created, skipped=len(rows) - created)
    logger.info(
        "Video %s: %d chunks, %d relationships created, %d already present",
        video_id,
        len(vectors),
        stats.created,
        stats.skipped,
    )
    return stats


def backfill_relationships(client: Client | None = None) -> BackfillStats:
    """Drop every relationship and recompute the graph for all embedded videos."""
    client = client or get_supabase_client()

    removed = delete_all_relationships(client)
    logger.info("Cleared %d existing relationships", removed)

    video_ids = list_embedded_video_ids(client)
    total_created = 0
    for video_id in video_ids:
        total_created += compute_relationships(video_id, client=client).created

    return BackfillStats(videos_processed=len(video_ids), relationships_created=total_created)
