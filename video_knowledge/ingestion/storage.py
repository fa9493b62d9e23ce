"""Supabase storage helpers for videos, chunks, and relationships."""

from __future__ import annotations

import json
from collections.abc import Iterable
from typing import Any, cast

from postgrest import CountMethod
from supabase import Client, create_client

from video_knowledge.config import settings
from video_knowledge.ingestion.models import EmbeddedChunk

VIDEO_METADATA_COLUMNS = "id,youtube_id,title,channel,thumbnail,published_at"


def get_supabase_client() -> Client:
    """Create and return a Supabase client from settings."""
    return create_client(settings.supabase_url, settings.supabase_key)


def parse_vector(value: Any) -> list[float] | None:
    """Decode a pgvector column value.

    PostgREST returns ``vector`` columns as their text form (``"[0.1,0.2]"``).
    """
    if value is None:
        return None
    if isinstance(value, str):
        value = json.loads(value)
    return [float(v) for v in value]


def replace_video_chunks(client: Client, video_id: int, chunks: list[EmbeddedChunk]) -> int:
    """Atomically replace every stored chunk of *video_id* with *chunks*.

    The delete and the insert run inside the ``replace_video_chunks`` SQL
    function, i.e. a single transaction. Chunks without an embedding are
    never written. Times are stored as whole seconds.

    Returns:
        The number of rows inserted.
    """
    rows = [
        {
            "content": chunk.content,
            "start_time": chunk.start_ms // 1000,
            "end_time": chunk.end_ms // 1000,
            "embedding": chunk.embedding,
        }
        for chunk in chunks
        if chunk.ok
    ]
    result = client.rpc(
        "replace_video_chunks",
        {"p_video_id": video_id, "p_chunks": rows},
    ).execute()
    if isinstance(result.data, int):
        return result.data
    return len(rows)


def fetch_chunk_vectors(client: Client, video_id: int) -> list[tuple[int, list[float]]]:
    """Return ``(chunk_id, embedding)`` for every embedded chunk of *video_id*, by id."""
    result = (
        client.table("chunks")
        .select("id,embedding")
        .eq("video_id", video_id)
        .not_.is_("embedding", "null")
        .order("id")
        .execute()
    )
    rows = cast(list[dict[str, Any]], result.data)
    vectors: list[tuple[int, list[float]]] = []
    for row in rows:
        vector = parse_vector(row.get("embedding"))
        if vector:
            vectors.append((int(row["id"]), vector))
    return vectors


def insert_relationships(client: Client, rows: list[dict[str, Any]]) -> int:
    """Insert relationship rows, ignoring pairs that already exist (batched by 500).

    Returns:
        The number of rows actually inserted.
    """
    created = 0
    batch_size = 500
    for i in range(0, len(rows), batch_size):
        result = (
            client.table("relationships")
            .upsert(
                rows[i : i + batch_size],
                on_conflict="source_chunk_id,target_chunk_id",
                ignore_duplicates=True,
            )
            .execute()
        )
        created += len(result.data or [])
    return created


def delete_all_relationships(client: Client) -> int:
    """Delete every relationship row and return how many were removed."""
    result = client.table("relationships").delete().gte("id", 0).execute()
    return len(result.data or [])


def list_embedded_video_ids(client: Client) -> list[int]:
    """Return the ids of videos that have at least one embedded chunk, ascending."""
    result = client.rpc("embedded_video_ids", {}).execute()
    rows = cast(list[dict[str, Any]], result.data or [])
    return sorted(int(row["video_id"]) for row in rows)


def list_transcribed_video_ids(client: Client) -> list[int]:
    """Return the ids of videos that have a stored transcript, ascending."""
    result = (
        client.table("videos")
        .select("id")
        .not_.is_("transcript", "null")
        .order("id")
        .execute()
    )
    return [int(row["id"]) for row in cast(list[dict[str, Any]], result.data)]


def count_embedded_chunks(client: Client, video_id: int | None = None) -> int:
    """Count chunks with an embedding, for one video or across the library."""
    query = (
        client.table("chunks")
        .select("id", count=CountMethod.exact)
        .not_.is_("embedding", "null")
    )
    if video_id is not None:
        query = query.eq("video_id", video_id)
    result = query.limit(1).execute()
    return result.count or 0


def fetch_video(client: Client, video_id: int) -> dict[str, Any] | None:
    """Return ``{"id", "title", "transcript"}`` for *video_id*, or None."""
    result = (
        client.table("videos")
        .select("id,title,transcript")
        .eq("id", video_id)
        .limit(1)
        .execute()
    )
    rows = cast(list[dict[str, Any]], result.data)
    return rows[0] if rows else None


def fetch_videos_metadata(client: Client, video_ids: Iterable[int]) -> dict[int, dict[str, Any]]:
    """Return display metadata keyed by video id."""
    ids = sorted(set(video_ids))
    if not ids:
        return {}
    result = client.table("videos").select(VIDEO_METADATA_COLUMNS).in_("id", ids).execute()
    return {int(row["id"]): row for row in cast(list[dict[str, Any]], result.data)}


def fetch_focus_area_video_ids(client: Client, focus_area_id: int) -> set[int]:
    """Return the ids of videos assigned to *focus_area_id*."""
    result = (
        client.table("video_focus_areas")
        .select("video_id")
        .eq("focus_area_id", focus_area_id)
        .execute()
    )
    return {int(row["video_id"]) for row in cast(list[dict[str, Any]], result.data)}
