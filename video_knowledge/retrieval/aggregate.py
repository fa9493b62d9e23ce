"""Group chunk-level search hits by video."""

from __future__ import annotations

from video_knowledge.retrieval.models import BestChunk, SearchResult, VideoResult


def aggregate_by_video(results: list[SearchResult]) -> list[VideoResult]:
    """Collapse chunk hits into one entry per video.

    A video's score is the best score among its chunks, and that chunk is kept
    as ``best_chunk``. Videos are ordered by score, highest first.
    """
    videos: dict[int, VideoResult] = {}

    for result in results:
        existing = videos.get(result.video_id)
        if existing is None:
            videos[result.video_id] = VideoResult(
                video_id=result.video_id,
                title=result.video_title,
                channel=result.channel,
                youtube_id=result.youtube_id,
                thumbnail=result.thumbnail,
                published_at=result.published_at,
                score=result.score,
                matched_chunks=1,
                best_chunk=BestChunk(result.content, result.start_time, result.score),
            )
            continue

        existing.matched_chunks += 1
        if result.score > existing.score:
            existing.score = result.score
            existing.best_chunk = BestChunk(result.content, result.start_time, result.score)

    return sorted(videos.values(), key=lambda v: v.score, reverse=True)
