"""Tests for keyword, vector and hybrid search, plus ranking helpers."""

from __future__ import annotations

import asyncio
from datetime import datetime, timedelta, timezone
from typing import Any
from unittest.mock import MagicMock, patch

import pytest

from video_knowledge.pipeline_config import SearchMode, SearchOptions
from video_knowledge.retrieval.aggregate import aggregate_by_video
from video_knowledge.retrieval.decay import temporal_decay
from video_knowledge.retrieval.models import SearchResult
from video_knowledge.retrieval.search import (
    keyword_search,
    reciprocal_rank_fusion,
    search,
    vector_search,
)

SEARCH = "video_knowledge.retrieval.search"


def _hit(chunk_id: int, video_id: int = 1, score: float = 1.0, **kwargs: Any) -> SearchResult:
    return SearchResult(
        chunk_id=chunk_id,
        video_id=video_id,
        content=f"chunk {chunk_id}",
        score=score,
        raw_score=score,
        **kwargs,
    )


class WorkingEngine:
    async def embed(self, text: str) -> list[float]:
        return [0.1] * 384


class BrokenEngine:
    async def embed(self, text: str) -> list[float]:
        raise RuntimeError("model failed to load")


class TestReciprocalRankFusion:
    def test_scores_and_order(self) -> None:
        vector = [_hit(1, score=0.9), _hit(2, score=0.8), _hit(3, score=0.7)]
        keyword = [_hit(3), _hit(1)]

        fused = reciprocal_rank_fusion(vector, keyword, k=60)

        assert [r.chunk_id for r in fused] == [1, 3, 2]
        assert fused[0].score == pytest.approx(1 / 61 + 1 / 62)
        assert fused[1].score == pytest.approx(1 / 63 + 1 / 61)
        assert fused[2].score == pytest.approx(1 / 62)

    def test_keeps_best_raw_score(self) -> None:
        fused = reciprocal_rank_fusion([_hit(1, score=0.4)], [_hit(1, score=1.0)])
        assert fused[0].raw_score == 1.0

    def test_inputs_are_not_mutated(self) -> None:
        vector = [_hit(1, score=0.9)]
        reciprocal_rank_fusion(vector, [_hit(1)])
        assert vector[0].score == 0.9

    def test_empty(self) -> None:
        assert reciprocal_rank_fusion([], []) == []


class TestKeywordSearch:
    def test_orders_by_match_position(self) -> None:
        client = MagicMock()
        rows = [
            {"id": 1, "video_id": 1, "content": "later we talk about RAG", "start_time": 0},
            {"id": 2, "video_id": 2, "content": "RAG first", "start_time": 5},
        ]
        query = client.table.return_value.select.return_value.ilike.return_value
        query.order.return_value.limit.return_value.execute.return_value = MagicMock(data=rows)

        results = keyword_search(client, "rag", limit=5)

        assert [r.chunk_id for r in results] == [2, 1]
        assert all(r.score == 1.0 for r in results)
        client.table.return_value.select.return_value.ilike.assert_called_once_with("content", "%rag%")

    def test_like_wildcards_are_escaped(self) -> None:
        client = MagicMock()
        query = client.table.return_value.select.return_value.ilike.return_value
        query.order.return_value.limit.return_value.execute.return_value = MagicMock(data=[])

        keyword_search(client, "100%_done")

        client.table.return_value.select.return_value.ilike.assert_called_once_with(
            "content", "%100\\%\\_done%"
        )


class TestVectorSearch:
    def test_rejects_wrong_dimensions(self) -> None:
        with pytest.raises(TypeError):
            vector_search(MagicMock(), [0.1, 0.2])

    def test_calls_match_chunks(self) -> None:
        client = MagicMock()
        client.rpc.return_value.execute.return_value = MagicMock(
            data=[{"id": 4, "video_id": 2, "content": "x", "start_time": 1, "end_time": 2, "similarity": 0.8}]
        )

        results = vector_search(client, [0.0] * 384, limit=7, min_similarity=0.3)

        client.rpc.assert_called_once_with(
            "match_chunks",
            {"query_embedding": [0.0] * 384, "match_count": 7, "min_similarity": 0.3},
        )
        assert results[0].chunk_id == 4
        assert results[0].score == 0.8


class TestSearch:
    def test_empty_query(self) -> None:
        outcome = asyncio.run(search("   ", engine=BrokenEngine(), client=MagicMock()))  # type: ignore[arg-type]
        assert outcome.results == []
        assert outcome.degraded is False

    @patch(f"{SEARCH}.fetch_videos_metadata", return_value={})
    @patch(f"{SEARCH}.keyword_search")
    @patch(f"{SEARCH}.vector_search")
    def test_hybrid_fuses_both_lists(
        self, mock_vector: MagicMock, mock_keyword: MagicMock, _meta: MagicMock
    ) -> None:
        mock_vector.return_value = [_hit(1, score=0.9), _hit(2, score=0.5)]
        mock_keyword.return_value = [_hit(2), _hit(3)]

        outcome = asyncio.run(
            search("rag", SearchOptions(limit=5), engine=WorkingEngine(), client=MagicMock())  # type: ignore[arg-type]
        )

        assert [r.chunk_id for r in outcome.results] == [2, 1, 3]
        assert outcome.degraded is False
        assert outcome.has_embeddings is True
        assert mock_vector.call_args.args[2] == 10
        assert mock_keyword.call_args.args[2] == 10

    @patch(f"{SEARCH}.count_embedded_chunks", return_value=12)
    @patch(f"{SEARCH}.fetch_videos_metadata", return_value={})
    @patch(f"{SEARCH}.keyword_search")
    @patch(f"{SEARCH}.vector_search")
    def test_broken_engine_degrades_to_keyword(
        self,
        mock_vector: MagicMock,
        mock_keyword: MagicMock,
        _meta: MagicMock,
        _count: MagicMock,
    ) -> None:
        mock_keyword.side_effect = lambda client, query, limit: [_hit(5), _hit(6)]
        client = MagicMock()

        keyword_only = asyncio.run(
            search("rag", SearchOptions(mode=SearchMode.KEYWORD), engine=BrokenEngine(), client=client)  # type: ignore[arg-type]
        )
        degraded = asyncio.run(search("rag", engine=BrokenEngine(), client=client))  # type: ignore[arg-type]

        assert degraded.degraded is True
        assert degraded.results
        assert [r.chunk_id for r in degraded.results] == [r.chunk_id for r in keyword_only.results]
        assert degraded.has_embeddings is True
        mock_vector.assert_not_called()

    @patch(f"{SEARCH}.fetch_videos_metadata", return_value={})
    @patch(f"{SEARCH}.vector_search", return_value=[])
    def test_vector_mode_without_embeddings(self, _vector: MagicMock, _meta: MagicMock) -> None:
        outcome = asyncio.run(
            search("rag", SearchOptions(mode=SearchMode.VECTOR), engine=WorkingEngine(), client=MagicMock())  # type: ignore[arg-type]
        )
        assert outcome.results == []
        assert outcome.has_embeddings is False

    @patch(f"{SEARCH}.fetch_videos_metadata", return_value={})
    @patch(f"{SEARCH}.fetch_focus_area_video_ids", return_value={2})
    @patch(f"{SEARCH}.keyword_search")
    def test_focus_area_filter(self, mock_keyword: MagicMock, _focus: MagicMock, _meta: MagicMock) -> None:
        mock_keyword.return_value = [_hit(1, video_id=1), _hit(2, video_id=2), _hit(3, video_id=2)]

        outcome = asyncio.run(
            search(
                "rag",
                SearchOptions(mode=SearchMode.KEYWORD, limit=4, focus_area_id=9),
                client=MagicMock(),
            )
        )

        assert [r.chunk_id for r in outcome.results] == [2, 3]
        assert mock_keyword.call_args.args[2] == 12

    @patch(f"{SEARCH}.keyword_search")
    def test_results_enriched_with_video_metadata(self, mock_keyword: MagicMock) -> None:
        mock_keyword.return_value = [_hit(1, video_id=3)]
        meta = {3: {"id": 3, "title": "Talk", "channel": "Chan", "youtube_id": "yt3", "thumbnail": None, "published_at": None}}

        with patch(f"{SEARCH}.fetch_videos_metadata", return_value=meta):
            outcome = asyncio.run(search("rag", SearchOptions(mode=SearchMode.KEYWORD), client=MagicMock()))

        assert outcome.results[0].video_title == "Talk"
        assert outcome.results[0].youtube_id == "yt3"

    @patch(f"{SEARCH}.keyword_search")
    def test_temporal_decay_reorders(self, mock_keyword: MagicMock) -> None:
        now = datetime.now(timezone.utc)
        mock_keyword.return_value = [_hit(1, video_id=1), _hit(2, video_id=2)]
        meta = {
            1: {"title": "Old", "published_at": (now - timedelta(days=730)).isoformat()},
            2: {"title": "New", "published_at": (now - timedelta(days=1)).isoformat()},
        }

        with patch(f"{SEARCH}.fetch_videos_metadata", return_value=meta):
            outcome = asyncio.run(
                search(
                    "rag",
                    SearchOptions(mode=SearchMode.KEYWORD, temporal_decay=True, half_life_days=365),
                    client=MagicMock(),
                )
            )

        assert [r.chunk_id for r in outcome.results] == [2, 1]
        assert outcome.results[1].score == pytest.approx(0.25, rel=1e-3)

    @patch(f"{SEARCH}.fetch_videos_metadata", return_value={})
    @patch(f"{SEARCH}.keyword_search")
    def test_limit(self, mock_keyword: MagicMock, _meta: MagicMock) -> None:
        mock_keyword.return_value = [_hit(i) for i in range(10)]
        outcome = asyncio.run(search("rag", SearchOptions(mode=SearchMode.KEYWORD, limit=3), client=MagicMock()))
        assert len(outcome.results) == 3


class TestTemporalDecay:
    def test_half_life(self) -> None:
        now = datetime(2025, 1, 1, tzinfo=timezone.utc)
        assert temporal_decay(now - timedelta(days=365), 365, now=now) == pytest.approx(0.5)

    def test_unknown_date(self) -> None:
        assert temporal_decay(None) == 1.0

    def test_future_date(self) -> None:
        now = datetime(2025, 1, 1, tzinfo=timezone.utc)
        assert temporal_decay(now + timedelta(days=10), now=now) == 1.0

    def test_naive_iso_string_is_utc(self) -> None:
        now = datetime(2025, 1, 1, tzinfo=timezone.utc)
        assert temporal_decay("2024-01-02T00:00:00", 365, now=now) == pytest.approx(0.5)


class TestAggregateByVideo:
    def test_groups_and_orders(self) -> None:
        results = [
            _hit(1, video_id=1, score=0.5, video_title="A"),
            _hit(2, video_id=2, score=0.9, video_title="B"),
            _hit(3, video_id=1, score=0.7, video_title="A"),
        ]

        videos = aggregate_by_video(results)

        assert [v.video_id for v in videos] == [2, 1]
        assert videos[1].matched_chunks == 2
        assert videos[1].score == 0.7
        assert videos[1].best_chunk.content == "chunk 3"

    def test_empty(self) -> None:
        assert aggregate_by_video([]) == []
