"""Related-moment lookups over the stored similarity graph."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, cast

from supabase import Client

from video_knowledge.ingestion.storage import fetch_videos_metadata, get_supabase_client


@dataclass
class RelatedVideo:
    id: int
    title: str
    channel: str | None = None
    youtube_id: str | None = None


@dataclass
class RelatedChunk:
    """A chunk reachable through one graph edge, with its owning video."""

    chunk_id: int
    content: str
    start_time: int
    end_time: int
    similarity: float
    video: RelatedVideo


def get_related_chunks(
    video_id: int,
    limit: int = 10,
    min_similarity: float = 0.75,
    include_within_video: bool = True,
    client: Client | None = None,
) -> list[RelatedChunk]:
    """Follow edges out of the chunks of *video_id*, strongest first.

    Each target chunk appears once, with the best similarity of any edge
    leading to it. With ``include_within_video=False`` targets belonging to
    *video_id* itself are dropped.
    """
    client = client or get_supabase_client()

    id_rows = client.table("chunks").select("id").eq("video_id", video_id).execute()
    chunk_ids = [int(row["id"]) for row in cast(list[dict[str, Any]], id_rows.data)]
    if not chunk_ids:
        return []

    edge_rows = (
        client.table("relationships")
        .select("target_chunk_id,similarity")
        .in_("source_chunk_id", chunk_ids)
        .gte("similarity", min_similarity)
        .order("similarity", desc=True)
        .execute()
    )

    best: dict[int, float] = {}
    for edge in cast(list[dict[str, Any]], edge_rows.data):
        target = int(edge["target_chunk_id"])
        if target not in best:
            best[target] = float(edge["similarity"])
    if not best:
        return []

    target_rows = (
        client.table("chunks")
        .select("id,video_id,content,start_time,end_time")
        .in_("id", list(best))
        .execute()
    )
    targets = {int(row["id"]): row for row in cast(list[dict[str, Any]], target_rows.data)}
    videos = fetch_videos_metadata(client, (int(row["video_id"]) for row in targets.values()))

    related: list[RelatedChunk] = []
    for chunk_id, similarity in best.items():
        row = targets.get(chunk_id)
        if row is None:
            continue
        owner = int(row["video_id"])
        if not include_within_video and owner == video_id:
            continue
        meta = videos.get(owner, {})
        related.append(
            RelatedChunk(
                chunk_id=chunk_id,
                content=row["content"],
                start_time=row.get("start_time") or 0,
                end_time=row.get("end_time") or 0,
                similarity=similarity,
                video=RelatedVideo(
                    id=owner,
                    title=meta.get("title", ""),
                    channel=meta.get("channel"),
                    youtube_id=meta.get("youtube_id"),
                ),
            )
        )
        if len(related) >= limit:
            break

    return related
