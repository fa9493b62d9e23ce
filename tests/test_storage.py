"""Tests for Supabase storage helpers (client mocked)."""

from __future__ import annotations

from unittest.mock import MagicMock

from video_knowledge.ingestion.models import EmbeddedChunk
from video_knowledge.ingestion.storage import (
    count_embedded_chunks,
    fetch_chunk_vectors,
    fetch_video,
    list_embedded_video_ids,
    replace_video_chunks,
)


class TestReplaceVideoChunks:
    def test_only_embedded_chunks_are_sent(self) -> None:
        client = MagicMock()
        client.rpc.return_value.execute.return_value = MagicMock(data=1)
        chunks = [
            EmbeddedChunk(content="ok", start_ms=1500, end_ms=9999, embedding=[0.1, 0.2]),
            EmbeddedChunk(content="failed", start_ms=10_000, end_ms=12_000, error="boom"),
        ]

        inserted = replace_video_chunks(client, 4, chunks)

        assert inserted == 1
        name, params = client.rpc.call_args.args
        assert name == "replace_video_chunks"
        assert params["p_video_id"] == 4
        assert params["p_chunks"] == [
            {"content": "ok", "start_time": 1, "end_time": 9, "embedding": [0.1, 0.2]}
        ]

    def test_falls_back_to_row_count(self) -> None:
        client = MagicMock()
        client.rpc.return_value.execute.return_value = MagicMock(data=None)
        chunks = [EmbeddedChunk(content="a", start_ms=0, end_ms=0, embedding=[1.0])]
        assert replace_video_chunks(client, 4, chunks) == 1


class TestReads:
    def test_fetch_chunk_vectors_parses_text_vectors(self) -> None:
        client = MagicMock()
        query = client.table.return_value.select.return_value.eq.return_value
        query.not_.is_.return_value.order.return_value.execute.return_value = MagicMock(
            data=[{"id": 3, "embedding": "[1,0]"}, {"id": 5, "embedding": [0.5, 0.5]}, {"id": 6, "embedding": None}]
        )

        assert fetch_chunk_vectors(client, 1) == [(3, [1.0, 0.0]), (5, [0.5, 0.5])]

    def test_list_embedded_video_ids(self) -> None:
        client = MagicMock()
        client.rpc.return_value.execute.return_value = MagicMock(data=[{"video_id": 9}, {"video_id": 2}])
        assert list_embedded_video_ids(client) == [2, 9]

    def test_count_embedded_chunks_for_video(self) -> None:
        client = MagicMock()
        query = client.table.return_value.select.return_value.not_.is_.return_value
        query.eq.return_value.limit.return_value.execute.return_value = MagicMock(count=7)

        assert count_embedded_chunks(client, video_id=3) == 7
        query.eq.assert_called_once_with("video_id", 3)

    def test_fetch_video_missing(self) -> None:
        client = MagicMock()
        query = client.table.return_value.select.return_value.eq.return_value
        query.limit.return_value.execute.return_value = MagicMock(data=[])
        assert fetch_video(client, 1) is None
