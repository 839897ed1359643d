"""
Bot Bu - Centralized Configuration
===================================
Uses ``pydantic-settings`` (``BaseSettings``) to load *all* configuration
from environment variables and the project-level ``.env`` file.

Security
--------
- ``GOOGLE_API_KEY`` is typed as ``SecretStr`` and has **no default value**.
  If the key is missing at startup, Pydantic will raise a ``ValidationError``
  with a clear error message.  The raw value is never exposed in repr,
  logs, or tracebacks.

Paths
-----
All filesystem paths are ``Path.resolve()``-d at class level so they
work identically on Windows, WSL, and Linux.  On serverless hosts
(``VERCEL=1``) the usage-state directory moves to ``/tmp`` because it is
the only writable location.

Typed sub-configs
-----------------
The flat env-driven fields are regrouped into small frozen structs
(``RetrievalConfig``, ``RateLimitConfig``) by ``retrieval_config()`` and
``rate_limit_config()``.  Components receive those structs through their
constructors instead of reading ``settings`` directly, so tests can build
isolated instances.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Literal

from pydantic import SecretStr, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


# ── Typed sub-configs ──────────────────────────────────────────────────

@dataclass(frozen=True)
class RetrievalConfig:
    """Options recognised by the similarity ranker."""

    top_k: int = 5
    min_score: float = 0.3
    category: str | None = None


@dataclass(frozen=True)
class RateLimitConfig:
    """Shared request ceilings for the whole process."""

    rpm: int = 1000
    rpd: int = 10000
    min_request_interval_ms: int = 1000


class Settings(BaseSettings):
    """
    Application-wide settings.

    Every field is loaded from environment variables (or ``.env``).
    Fields *without* a default are **required**; the app will refuse
    to start until they are provided.

    Attributes
    ----------
    GOOGLE_API_KEY : SecretStr
        API key for Google AI Studio (Gemini).  **Required.**
    ENV : Literal["dev", "prod"]
        Environment mode controlling logging verbosity.
    KNOWLEDGE_BASE_FILE : Path
        Embedded knowledge-base JSON loaded once at startup.
    DOCUMENTS_DIR : Path
        Directory of ``.txt`` / ``.pdf`` / ``.docx`` files searched by tier 1.
    EMBEDDING_MODEL, LLM_MODEL : str
        Gemini model identifiers.
    RAG_TOP_K, RAG_MIN_SCORE : int, float
        Vector-search parameters used by the RAG endpoint.
    CACHE_TTL_SECONDS : int
        Lifetime of a cached RAG answer.
    RATE_LIMIT_RPM, RATE_LIMIT_RPD, MIN_REQUEST_INTERVAL_MS : int
        Global request ceilings shared by every caller of the process.
    """

    # ── Resolved Absolute Paths ────────────────────────────────────────
    BASE_DIR: Path = Path(__file__).resolve().parent.parent
    PROJECT_ROOT: Path = BASE_DIR.parent
    KNOWLEDGE_BASE_DIR: Path = PROJECT_ROOT / "knowledge-base"
    KNOWLEDGE_BASE_FILE: Path = KNOWLEDGE_BASE_DIR / "unified-knowledge-embedded.json"
    DOCUMENTS_DIR: Path = KNOWLEDGE_BASE_DIR
    USAGE_DATA_DIR: Path | None = None

    # ── Environment Mode ───────────────────────────────────────────────
    ENV: Literal["dev", "prod"] = "dev"
    VERCEL: str = ""

    # ── API Keys (REQUIRED, no default) ───────────────────────────────
    GOOGLE_API_KEY: SecretStr

    # ── Model Configuration ────────────────────────────────────────────
    EMBEDDING_MODEL: str = "models/gemini-embedding-001"
    LLM_MODEL: str = "gemini-2.5-flash"
    LLM_TEMPERATURE: float = 0.7
    LLM_TOP_K: int = 40
    LLM_TOP_P: float = 0.95
    RAG_MAX_OUTPUT_TOKENS: int = 1024
    TIER_MAX_OUTPUT_TOKENS: int = 2048
    SEARCH_TEMPERATURE: float = 0.8

    # ── Retry ──────────────────────────────────────────────────────────
    LLM_MAX_RETRIES: int = 3
    LLM_RETRY_BASE_DELAY: float = 1.0

    # ── Retrieval ──────────────────────────────────────────────────────
    RAG_TOP_K: int = 10
    RAG_MIN_SCORE: float = 0.25
    RAG_HISTORY_WINDOW: int = 6
    SEARCH_HISTORY_WINDOW: int = 4
    DOCUMENT_SEARCH_LIMIT: int = 5
    DOCUMENT_CHUNK_SIZE: int = 1000
    DOCUMENT_CHUNK_OVERLAP: int = 200
    DOCUMENT_CACHE_SECONDS: int = 300

    # ── Response Cache ─────────────────────────────────────────────────
    CACHE_TTL_SECONDS: int = 7200

    # ── Rate Limiting ──────────────────────────────────────────────────
    RATE_LIMIT_RPM: int = 1000
    RATE_LIMIT_RPD: int = 10000
    MIN_REQUEST_INTERVAL_MS: int = 1000

    # ── Client-side API router ─────────────────────────────────────────
    ROUTER_MAX_FAILURES: int = 3
    ROUTER_COOLDOWN_SECONDS: float = 60.0

    # ── Validators ─────────────────────────────────────────────────────

    @field_validator("RAG_TOP_K", "DOCUMENT_SEARCH_LIMIT")
    @classmethod
    def _top_k_positive(cls, v: int) -> int:
        if v < 1:
            raise ValueError(f"top-k values must be ≥ 1, got {v}")
        return v


    @field_validator("CACHE_TTL_SECONDS", "RATE_LIMIT_RPM", "RATE_LIMIT_RPD")
    @classmethod
    def _positive(cls, v: int) -> int:
        if v <= 0:
            raise ValueError(f"value must be > 0, got {v}")
        return v


    @field_validator("LLM_MAX_RETRIES")
    @classmethod
    def _retries_range(cls, v: int) -> int:
        if not 1 <= v <= 5:
            raise ValueError(f"LLM_MAX_RETRIES must be 1–5, got {v}")
        return v

    # ── Derived values ─────────────────────────────────────────────────

    @property
    def is_serverless(self) -> bool:
        return self.VERCEL == "1"


    @property
    def usage_state_file(self) -> Path:
        """Location of the persisted rate-limit state."""
        if self.USAGE_DATA_DIR is not None:
            data_dir = self.USAGE_DATA_DIR
        elif self.is_serverless:
            data_dir = Path("/tmp/.usage-data")
        else:
            data_dir = self.PROJECT_ROOT / ".usage-data"
        return data_dir / "usage-state.json"


    def retrieval_config(self) -> RetrievalConfig:
        return RetrievalConfig(top_k=self.RAG_TOP_K, min_score=self.RAG_MIN_SCORE)


    def rate_limit_config(self) -> RateLimitConfig:
        return RateLimitConfig(rpm=self.RATE_LIMIT_RPM, rpd=self.RATE_LIMIT_RPD, min_request_interval_ms=self.MIN_REQUEST_INTERVAL_MS)

    # ── Pydantic Settings Configuration ────────────────────────────────
    model_config = SettingsConfigDict(env_file=Path(__file__).resolve().parent.parent.parent / ".env", env_file_encoding="utf-8", extra="ignore")


# ── Singleton Instance ─────────────────────────────────────────────────
# Import this throughout the project:
#     from botbu.config.settings import settings
settings = Settings()
