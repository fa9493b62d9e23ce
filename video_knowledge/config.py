from __future__ import annotations

from functools import lru_cache

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings validated via Pydantic.

    Values are loaded from environment variables and/or a .env file.
    """

    # Supabase
    supabase_url: str = ""
    supabase_key: str = ""

    # App config
    api_host: str = "0.0.0.0"
    api_port: int = 8000
    cron_secret: str = ""  # Optional; guards the graph backfill endpoint when set

    # Embedding model
    embedding_model: str = "sentence-transformers/all-MiniLM-L6-v2"
    embedding_dimensions: int = 384
    embedding_device: str | None = None
    model_cache_dir: str = "/tmp/.cache"

    # Chunking and batching
    chunk_size: int = 2000  # characters
    chunk_overlap: int = 100  # characters
    embed_batch_size: int = 32

    # Graph and search
    relationship_threshold: float = 0.75
    rrf_k: int = 60
    vector_min_similarity: float = 0.0
    search_max_query_length: int = 500

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8", "protected_namespaces": ("settings_",)}


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return a cached Settings instance.

    Gracefully handles missing .env files (e.g. in CI/testing) by falling
    back to environment variables and defaults.
    """
    try:
        return Settings()
    except Exception:
        # If .env is missing or unreadable, build settings from env vars only.
        return Settings(_env_file=None)  # type: ignore[call-arg]


settings = get_settings()
