"""Search configuration: mode enum and SearchOptions dataclass."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class SearchMode(str, Enum):
    """Available ranking modes for querying stored chunks."""

    VECTOR = "vector"
    KEYWORD = "keyword"
    HYBRID = "hybrid"


@dataclass(frozen=True)
class SearchOptions:
    """Immutable options for a single search call.

    Defaults mirror the search endpoint's behaviour (hybrid ranking, ten
    results, no focus-area filter, no temporal decay).
    """

    mode: SearchMode = SearchMode.HYBRID
    limit: int = 10
    focus_area_id: int | None = None
    temporal_decay: bool = False
    half_life_days: float = 365.0
