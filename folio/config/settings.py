"""
Folio - Centralized Configuration
==================================
Uses ``pydantic-settings`` (``BaseSettings``) to load *all* configuration
from environment variables and the project-level ``.env`` file.

Security
--------
- ``GOOGLE_API_KEY`` and ``LANCEDB_API_KEY`` are typed as ``SecretStr``.
  They are optional at startup so the API can boot and report a clear
  ``ConfigurationError`` from the sync pipeline instead of refusing to
  start.  The raw values are never exposed in repr, logs, or tracebacks.

Paths
-----
All filesystem paths are ``Path.resolve()``-d at class level so they
work identically on Windows, WSL, and Linux.  ``WATCHED_FILES`` are
relative to ``DATA_DIR``.

Tuning
------
The retrieval constants (``SIMILARITY_THRESHOLD``,
``SEARCH_CANDIDATE_COUNT``, ``SEARCH_RESULTS_LIMIT``) and the sync
throttling knobs are plain settings so they can be tuned per deployment.
"""

from __future__ import annotations

from pathlib import Path
from typing import Literal

from pydantic import SecretStr, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application-wide settings.

    Every field is loaded from environment variables (or ``.env``).

    Attributes
    ----------
    GOOGLE_API_KEY : SecretStr | None
        API key for Google AI Studio (Gemini embeddings + chat).
        Required for any sync or retrieval work.
    LANCEDB_URI : str
        Local directory or LanceDB Cloud URI (``db://...``).
    LANCEDB_API_KEY : SecretStr | None
        Required only when ``LANCEDB_URI`` points at LanceDB Cloud.
    PORTFOLIO_OWNER : str
        Name the chat assistant speaks about.
    EMBEDDING_DIMENSIONS : int
        Fixed vector length of the embedding model; the LanceDB schema
        is built from it.
    SYNC_MAX_CHUNKS : int
        Upper bound on chunks embedded per sync (cost guard).
    SYNC_EMBED_BATCH_SIZE : int
        Chunks embedded concurrently per batch during sync.
    UPSERT_BATCH_SIZE : int
        Rows per LanceDB merge-insert request.
    """

    # ── Resolved Absolute Paths ────────────────────────────────────────
    BASE_DIR: Path = Path(__file__).resolve().parent.parent
    DATA_DIR: Path = BASE_DIR / "data"
    SYNC_METADATA_PATH: Path = BASE_DIR / "data" / ".sync-metadata.json"
    EXTRACT_OUTPUT_PATH: Path = BASE_DIR / "output" / "extracted-content.json"
    FALLBACK_RESUME_PATH: Path = BASE_DIR / "data" / "resume.json"

    # ── Environment Mode ───────────────────────────────────────────────
    ENV: Literal["dev", "prod"] = "dev"
    LOG_LEVEL: str | None = None

    # ── API Keys ───────────────────────────────────────────────────────
    GOOGLE_API_KEY: SecretStr | None = None

    # ── LanceDB ────────────────────────────────────────────────────────
    LANCEDB_URI: str = str(BASE_DIR / "data" / "lancedb")
    LANCEDB_API_KEY: SecretStr | None = None
    LANCEDB_TABLE_NAME: str = "content_embeddings"

    # ── Content Sources ────────────────────────────────────────────────
    WATCHED_FILES: list[str] = ["site.json", "resume.json", "career.json", "education.json", "projects.json"]
    PORTFOLIO_OWNER: str = "the site owner"

    # ── Model Configuration ────────────────────────────────────────────
    EMBEDDING_MODEL: str = "models/gemini-embedding-001"
    EMBEDDING_DIMENSIONS: int = 3072
    LLM_MODEL: str = "gemini-2.0-flash"
    LLM_TEMPERATURE: float = 0.0
    ENHANCER_TEMPERATURE: float = 0.7

    # ── Retrieval ──────────────────────────────────────────────────────
    SIMILARITY_THRESHOLD: float = 0.25
    SEARCH_CANDIDATE_COUNT: int = 10
    SEARCH_RESULTS_LIMIT: int = 5

    # ── Sync Throttling ────────────────────────────────────────────────
    SYNC_MAX_CHUNKS: int = 50
    SYNC_EMBED_BATCH_SIZE: int = 5
    SYNC_BATCH_DELAY_SECONDS: float = 0.5
    UPSERT_BATCH_SIZE: int = 100
    ENHANCE_DELAY_SECONDS: float = 0.5
    PUSH_EMBED_BATCH_SIZE: int = 10
    PUSH_BATCH_DELAY_SECONDS: float = 1.0

    # ── HTTP ───────────────────────────────────────────────────────────
    CORS_ORIGINS: str = "*"

    # ── Validators ─────────────────────────────────────────────────────

    @field_validator("SIMILARITY_THRESHOLD")
    @classmethod
    def _threshold_range(cls, v: float) -> float:
        if not -1.0 <= v <= 1.0:
            raise ValueError(f"SIMILARITY_THRESHOLD must be within [-1, 1], got {v}")
        return v


    @field_validator("LOG_LEVEL")
    @classmethod
    def _known_log_level(cls, v: str | None) -> str | None:
        if v is not None and v.upper() not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            raise ValueError(f"LOG_LEVEL must be one of DEBUG, INFO, WARNING, ERROR, CRITICAL, got {v!r}")
        return v


    @field_validator("EMBEDDING_DIMENSIONS", "SEARCH_CANDIDATE_COUNT", "SEARCH_RESULTS_LIMIT", "SYNC_MAX_CHUNKS", "SYNC_EMBED_BATCH_SIZE", "UPSERT_BATCH_SIZE", "PUSH_EMBED_BATCH_SIZE")
    @classmethod
    def _positive(cls, v: int) -> int:
        if v < 1:
            raise ValueError(f"must be ≥ 1, got {v}")
        return v


    @field_validator("SYNC_BATCH_DELAY_SECONDS", "ENHANCE_DELAY_SECONDS", "PUSH_BATCH_DELAY_SECONDS")
    @classmethod
    def _non_negative(cls, v: float) -> float:
        if v < 0:
            raise ValueError(f"delay must be ≥ 0, got {v}")
        return v


    @model_validator(mode="after")
    def _results_within_candidates(self) -> "Settings":
        if self.SEARCH_RESULTS_LIMIT > self.SEARCH_CANDIDATE_COUNT:
            raise ValueError(f"SEARCH_RESULTS_LIMIT ({self.SEARCH_RESULTS_LIMIT}) cannot exceed SEARCH_CANDIDATE_COUNT ({self.SEARCH_CANDIDATE_COUNT})")
        return self

    # ── Derived Helpers ────────────────────────────────────────────────

    @property
    def uses_lancedb_cloud(self) -> bool:
        return self.LANCEDB_URI.startswith("db://")


    def watched_paths(self) -> dict[str, Path]:
        """Map each watched-file key to its absolute path."""
        return {name: self.DATA_DIR / name for name in self.WATCHED_FILES}

    # ── Pydantic Settings Configuration ────────────────────────────────
    model_config = SettingsConfigDict(env_file=Path(__file__).resolve().parent.parent / ".env", env_file_encoding="utf-8", extra="ignore")


# ── Singleton Instance ─────────────────────────────────────────────────
# Import this throughout the project:
#     from folio.config.settings import settings
settings = Settings()
