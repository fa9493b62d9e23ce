"""Embed every transcribed video that has no embedded chunks yet.

Usage:
    python scripts/backfill_embeddings.py                 # missing videos only
    python scripts/backfill_embeddings.py --force         # re-embed everything
    python scripts/backfill_embeddings.py --video-id 42   # a single video
    python scripts/backfill_embeddings.py --relationships # rebuild the graph only
"""

import argparse
import asyncio
import logging
import sys
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from video_knowledge.graph.relationships import backfill_relationships
from video_knowledge.ingestion.pipeline import embed_video
from video_knowledge.ingestion.storage import (
    get_supabase_client,
    list_embedded_video_ids,
    list_transcribed_video_ids,
)

logger = logging.getLogger("backfill_embeddings")


def select_video_ids(force: bool, video_id: int | None) -> list[int]:
    if video_id is not None:
        return [video_id]
    client = get_supabase_client()
    transcribed = list_transcribed_video_ids(client)
    if force:
        return transcribed
    embedded = set(list_embedded_video_ids(client))
    return [vid for vid in transcribed if vid not in embedded]


async def backfill_embeddings(force: bool = False, video_id: int | None = None) -> tuple[int, int]:
    """Embed the selected videos one after another. Returns (embedded, errors)."""
    video_ids = select_video_ids(force, video_id)
    print(f"{len(video_ids)} videos to embed")

    embedded = 0
    errors = 0
    for i, vid in enumerate(video_ids):
        try:
            outcome = await embed_video(vid, force=force or video_id is not None)
        except (LookupError, ValueError) as e:
            errors += 1
            print(f"  [{i + 1}/{len(video_ids)}] SKIP video {vid}: {e}")
            continue
        except Exception:
            errors += 1
            logger.exception("Embedding failed for video %s", vid)
            continue

        result = outcome.result
        if outcome.already_embedded or result is None:
            print(f"  [{i + 1}/{len(video_ids)}] video {vid} already embedded")
            continue
        if result.error_count:
            errors += 1
        embedded += 1
        print(
            f"  [{i + 1}/{len(video_ids)}] video {vid}: {result.success_count}/{result.total_chunks} "
            f"chunks, {result.relationships_created or 0} relationships, "
            f"{result.duration_ms:.0f} ms"
        )

    return embedded, errors


def main() -> None:
    parser = argparse.ArgumentParser(description=__doc__, formatter_class=argparse.RawDescriptionHelpFormatter)
    parser.add_argument("--force", action="store_true", help="Re-embed videos that already have chunks")
    parser.add_argument("--video-id", type=int, default=None, help="Embed a single video")
    parser.add_argument(
        "--relationships",
        action="store_true",
        help="Only rebuild the relationship graph from stored embeddings",
    )
    parser.add_argument("-v", "--verbose", action="store_true")
    args = parser.parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    if args.relationships:
        stats = backfill_relationships()
        print(
            f"\nDone! Rebuilt graph for {stats.videos_processed} videos, "
            f"{stats.relationships_created} relationships."
        )
        return

    embedded, errors = asyncio.run(backfill_embeddings(args.force, args.video_id))
    print(f"\nDone! Embedded {embedded} videos, {errors} errors.")


if __name__ == "__main__":
    main()
