"""Exponential recency decay for search scores."""

from __future__ import annotations

import math
from datetime import datetime, timezone


def temporal_decay(
    published_at: datetime | str | None,
    half_life_days: float = 365.0,
    now: datetime | None = None,
) -> float:
    """Return ``exp(-ln2 * age_days / half_life_days)``.

    Unknown publication dates and dates in the future get no decay (1.0).
    """
    if not published_at or half_life_days <= 0:
        return 1.0
    if isinstance(published_at, str):
        published_at = datetime.fromisoformat(published_at)
    if published_at.tzinfo is None:
        published_at = published_at.replace(tzinfo=timezone.utc)

    now = now or datetime.now(timezone.utc)
    age_days = max(0.0, (now - published_at).total_seconds() / 86400)
    return math.exp(-math.log(2) / half_life_days * age_days)
