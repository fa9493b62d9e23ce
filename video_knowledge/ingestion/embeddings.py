"""Local sentence-embedding engine backed by sentence-transformers.

The engine is a process-wide resource manager. The model is loaded lazily on
first use into a cache directory namespaced by the installed torch version, so
a runtime upgrade never reads model files written by an older build. Concurrent
first callers share one initialisation future, and a load that fails with a
known corruption signature wipes the cached model files and retries once.
"""

from __future__ import annotations

import asyncio
import logging
import shutil
from collections.abc import Callable
from enum import Enum
from functools import lru_cache
from importlib import metadata
from pathlib import Path
from typing import Any, Protocol

from video_knowledge.config import settings

logger = logging.getLogger(__name__)

EMBEDDING_DIMENSIONS = 384
VERSION_MARKER_NAME = ".runtime-version"

# Lower-cased substrings seen in load errors caused by truncated or malformed
# model files. Best effort: anything not listed here is treated as transient.
CORRUPTION_SIGNATURES: tuple[str, ...] = (
    "protobuf",
    "failed to load model",
    "invalid model",
    "error while deserializing header",
    "header too large",
    "safetensors_rust.safetensorerror",
    "unexpected eof",
    "invalid load key",
    "pytorchstreamreader failed",
    "unable to load weights",
)


class EngineState(str, Enum):
    """Lifecycle of the embedding engine."""

    UNINITIALIZED = "uninitialized"
    INITIALIZING = "initializing"
    READY = "ready"
    FAILED = "failed"


class SentenceModel(Protocol):
    """The part of ``SentenceTransformer`` the engine relies on."""

    def encode(self, sentences: str, **kwargs: Any) -> Any: ...


# (model_name, cache_dir, device) -> model
ModelLoader = Callable[..., SentenceModel]


def is_corruption_error(exc: BaseException) -> bool:
    """Return True when *exc* looks like a corrupted model cache."""
    message = str(exc).lower()
    return any(signature in message for signature in CORRUPTION_SIGNATURES)


def get_runtime_version() -> str:
    """Version of the installed inference runtime (torch), or ``"unknown"``."""
    try:
        return metadata.version("torch")
    except metadata.PackageNotFoundError:
        return "unknown"


def load_sentence_transformer(model_name: str, cache_dir: Path, device: str | None) -> SentenceModel:
    """Build a mean-pooling, L2-normalising sentence-transformers model."""
    from sentence_transformers import SentenceTransformer, models

    word_embedding = models.Transformer(model_name, cache_dir=str(cache_dir))
    pooling = models.Pooling(
        word_embedding.get_word_embedding_dimension(),
        pooling_mode="mean",
    )
    return SentenceTransformer(
        modules=[word_embedding, pooling, models.Normalize()],
        device=device,
    )


class EmbeddingEngine:
    """Lazily initialised embedding model with versioned cache handling.

    Args:
        model_name: Hugging Face model identifier.
        cache_root: Directory under which the versioned cache is created.
        dimensions: Expected length of every embedding.
        device: Torch device, ``None`` for automatic selection.
        loader: Callable building the model; defaults to
            :func:`load_sentence_transformer`.
        runtime_version: Overrides :func:`get_runtime_version`.
    """

    def __init__(
        self,
        model_name: str = "sentence-transformers/all-MiniLM-L6-v2",
        cache_root: Path | str = "/tmp/.cache",
        dimensions: int = EMBEDDING_DIMENSIONS,
        device: str | None = None,
        loader: ModelLoader | None = None,
        runtime_version: str | None = None,
    ) -> None:
        self.model_name = model_name
        self.dimensions = dimensions
        self.device = device
        self.runtime_version = runtime_version or get_runtime_version()
        self.cache_dir = Path(cache_root) / f"torch-{self.runtime_version}"
        self._loader: ModelLoader = loader or load_sentence_transformer
        self._state = EngineState.UNINITIALIZED
        self._model: SentenceModel | None = None
        self._init_future: asyncio.Future[SentenceModel] | None = None

    @property
    def state(self) -> EngineState:
        return self._state

    @property
    def version_marker_path(self) -> Path:
        return self.cache_dir / VERSION_MARKER_NAME

    @property
    def model_cache_paths(self) -> list[Path]:
        """Locations the model files may occupy inside the cache directory."""
        slug = self.model_name.replace("/", "--")
        return [
            self.cache_dir / f"models--{slug}",
            self.cache_dir / self.model_name.replace("/", "_"),
        ]

    async def acquire(self) -> SentenceModel:
        """Return the loaded model, initialising it on first use.

        Callers arriving while initialisation is in flight await the same
        future. After a failure the next call starts a fresh initialisation.
        """
        if self._model is not None:
            return self._model

        if self._init_future is None:
            self._state = EngineState.INITIALIZING
            self._init_future = asyncio.ensure_future(self._initialize())

        # shield: a cancelled caller must not cancel the shared initialisation
        return await asyncio.shield(self._init_future)

    async def embed(self, text: str) -> list[float]:
        """Embed *text* into a unit-length vector of ``dimensions`` floats.

        Raises:
            TypeError: If *text* is not a string.
            ValueError: If the model returns a vector of the wrong length.
        """
        if not isinstance(text, str):
            raise TypeError(f"Expected text to be a string, got {type(text).__name__}")

        model = await self.acquire()
        vector = await asyncio.to_thread(model.encode, text, convert_to_numpy=True)
        values = [float(v) for v in vector]
        if len(values) != self.dimensions:
            msg = f"Expected {self.dimensions}-dimensional embedding, got {len(values)}"
            raise ValueError(msg)
        return values

    async def _initialize(self) -> SentenceModel:
        try:
            model = await asyncio.to_thread(self._load_with_recovery)
        except Exception:
            self._state = EngineState.FAILED
            self._init_future = None
            raise

        self._model = model
        self._state = EngineState.READY
        return model

    def _load_with_recovery(self) -> SentenceModel:
        self._prepare_cache_dir()
        try:
            model = self._load()
        except Exception as exc:
            if not is_corruption_error(exc):
                raise
            logger.warning(
                "Model load failed with a corruption signature (%s); clearing cached files and retrying once",
                exc,
            )
            self._clear_model_files()
            model = self._load()

        self._write_version_marker()
        return model

    def _load(self) -> SentenceModel:
        logger.info("Loading embedding model %s into %s", self.model_name, self.cache_dir)
        return self._loader(self.model_name, self.cache_dir, self.device)

    def _prepare_cache_dir(self) -> None:
        """Wipe the cache directory when its version marker disagrees, then ensure it exists."""
        marker = self.version_marker_path
        if marker.exists():
            cached = marker.read_text(encoding="utf-8").strip()
            if cached != self.runtime_version:
                logger.warning(
                    "Runtime version changed (%s -> %s), clearing model cache",
                    cached,
                    self.runtime_version,
                )
                shutil.rmtree(self.cache_dir, ignore_errors=True)
        self.cache_dir.mkdir(parents=True, exist_ok=True)

    def _clear_model_files(self) -> None:
        for path in self.model_cache_paths:
            shutil.rmtree(path, ignore_errors=True)

    def _write_version_marker(self) -> None:
        try:
            self.version_marker_path.write_text(self.runtime_version, encoding="utf-8")
        except OSError as exc:
            logger.warning("Failed to write version marker %s: %s", self.version_marker_path, exc)


@lru_cache(maxsize=1)
def get_embedding_engine() -> EmbeddingEngine:
    """Return the process-wide embedding engine."""
    return EmbeddingEngine(
        model_name=settings.embedding_model,
        cache_root=settings.model_cache_dir,
        dimensions=settings.embedding_dimensions,
        device=settings.embedding_device,
    )


async def generate_embedding(text: str) -> list[float]:
    """Embed *text* with the process-wide engine.

    Raises:
        TypeError: If *text* is not a string.
    """
    if not isinstance(text, str):
        raise TypeError(f"Expected text to be a string, got {type(text).__name__}")
    return await get_embedding_engine().embed(text)
