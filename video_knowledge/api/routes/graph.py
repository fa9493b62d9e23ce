"""Graph maintenance endpoint: rebuild every video's chunk relationships."""

from __future__ import annotations

import asyncio
import hmac
import logging
import time
from typing import Annotated

from fastapi import APIRouter, Header, HTTPException

from video_knowledge.api.models import BackfillResponse
from video_knowledge.config import settings
from video_knowledge.graph.relationships import backfill_relationships

logger = logging.getLogger(__name__)

router = APIRouter()


def _verify_cron_secret(authorization: str | None) -> None:
    """Reject the request unless it carries ``Bearer <cron_secret>``.

    No check is made when ``cron_secret`` is not configured.
    """
    if not settings.cron_secret:
        return
    expected = f"Bearer {settings.cron_secret}"
    if authorization is None or not hmac.compare_digest(authorization.encode(), expected.encode()):
        raise HTTPException(status_code=401, detail="Unauthorized")


@router.post("/api/graph/backfill", response_model=BackfillResponse)
async def backfill(
    authorization: Annotated[str | None, Header()] = None,
) -> BackfillResponse:
    """Clear the relationships table and recompute edges for all embedded videos."""
    _verify_cron_secret(authorization)

    started = time.perf_counter()
    stats = await asyncio.to_thread(backfill_relationships)
    duration_ms = round((time.perf_counter() - started) * 1000, 2)
    logger.info(
        "Graph backfill: %d videos, %d relationships in %.0f ms",
        stats.videos_processed,
        stats.relationships_created,
        duration_ms,
    )

    return BackfillResponse(
        videos_processed=stats.videos_processed,
        relationships_created=stats.relationships_created,
        duration_ms=duration_ms,
    )
