"""Integration tests against the real embedding model.

# MANUAL RUN REQUIRED: the first run downloads the model (~90 MB).
# Run with: pytest -m expensive tests/test_pipeline_integration.py -v
#
# These tests are NOT run in CI (marked @pytest.mark.expensive).
"""

from __future__ import annotations

import asyncio
from pathlib import Path

import numpy as np
import pytest

from video_knowledge.graph.relationships import cosine_similarity, find_similar_pairs
from video_knowledge.ingestion.chunking import chunk_transcript
from video_knowledge.ingestion.embeddings import EmbeddingEngine, EngineState
from video_knowledge.ingestion.parsers import parse_transcript
from video_knowledge.ingestion.service import embed_chunks

TRANSCRIPT = """\
0:00
Vector databases store embeddings so you can search by meaning.
0:20
An embedding is a list of numbers that captures what a sentence is about.
0:45
Vector databases let you search embeddings by meaning instead of keywords.
1:10
Now let's bake sourdough bread with a long cold fermentation.
"""


@pytest.mark.expensive
def test_real_model_embeds_unit_vectors(tmp_path: Path) -> None:
    engine = EmbeddingEngine(cache_root=tmp_path)

    async def run() -> list[list[float]]:
        return [await engine.embed("hello world"), await engine.embed("")]

    vectors = asyncio.run(run())

    assert engine.state is EngineState.READY
    for vector in vectors:
        assert len(vector) == 384
        assert np.linalg.norm(vector) == pytest.approx(1.0, abs=1e-4)
    assert engine.version_marker_path.exists()


@pytest.mark.expensive
def test_transcript_to_graph_pairs(tmp_path: Path) -> None:
    """Parse, chunk, embed and link a small transcript without a database."""
    engine = EmbeddingEngine(cache_root=tmp_path)
    segments = parse_transcript(TRANSCRIPT)
    chunks = chunk_transcript(segments, chunk_size=90, overlap=10)

    result = asyncio.run(embed_chunks(chunks, engine=engine))

    assert result.error_count == 0
    assert result.success_count == len(chunks) >= 3

    vectors = [(i, c.embedding) for i, c in enumerate(result.chunks)]
    pairs = find_similar_pairs(vectors, threshold=0.5)
    first, last = result.chunks[0].embedding, result.chunks[-1].embedding
    assert pairs
    assert cosine_similarity(first, last) < 0.5
