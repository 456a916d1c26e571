"""
Cosmic Works - Centralized Configuration
=========================================
Uses ``pydantic-settings`` (``BaseSettings``) to load *all* configuration
from environment variables and the project-level ``.env`` file.

Security
--------
- ``GOOGLE_API_KEY`` is typed as ``SecretStr`` and has **no default value**.
  If the key is missing at startup, Pydantic will raise a ``ValidationError``
  with a clear error message.  The raw value is never exposed in repr,
  logs, or tracebacks.
- ``MONGO_URI`` is also ``SecretStr`` — the Cosmos DB connection string
  contains credentials and must never leak into logs.

Clients
-------
Settings are plain data.  The store, embedding and chat clients are built
once from a ``Settings`` instance in ``cosmic_works.src.core.factory`` and
passed into the components that need them.
"""

from __future__ import annotations

from pathlib import Path
from typing import Literal

from pydantic import SecretStr, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application-wide settings.

    Every field is loaded from environment variables (or ``.env``).
    Fields *without* a default are **required** — the app will refuse
    to start until they are provided.

    Attributes
    ----------
    GOOGLE_API_KEY : SecretStr
        API key for Google AI Studio (Gemini chat + embeddings).  **Required.**
    MONGO_URI : SecretStr
        Cosmos DB for MongoDB vCore connection string.  **Required.**
    MONGO_DB_NAME : str
        Database holding the catalog collections.
    ENV : Literal["dev", "prod"]
        Environment mode controlling logging verbosity.
    VECTOR_DIMENSIONS : int
        Embedding length; must match the vector index configuration.
    EMBEDDING_MIN_INTERVAL_SECONDS : float
        Minimum spacing between embedding calls during ingestion.
    AGENT_MAX_TOOL_ROUNDS : int
        Upper bound on tool-calling rounds per agent turn.
    SESSION_CACHE_CAPACITY : int
        Maximum number of live agent sessions kept in memory.
    SESSION_TTL_SECONDS : float | None
        Idle time after which a session is dropped.  ``None`` disables expiry.
    """

    # ── Environment Mode ───────────────────────────────────────────────
    ENV: Literal["dev", "prod"] = "dev"

    # ── API Keys (REQUIRED — no default) ───────────────────────────────
    GOOGLE_API_KEY: SecretStr

    # ── MongoDB / Cosmos DB (REQUIRED — no default) ────────────────────
    MONGO_URI: SecretStr
    MONGO_DB_NAME: str = "cosmic_works"
    MONGO_MAX_POOL_SIZE: int = 10
    MONGO_TIMEOUT_MS: int = 10_000

    # ── Collections ────────────────────────────────────────────────────
    PRODUCTS_COLLECTION: str = "products"
    CUSTOMERS_COLLECTION: str = "customers"
    SALES_COLLECTION: str = "sales"
    PRODUCT_KEY_FIELD: str = "sku"

    # ── Source Feeds (URL or local JSON path) ──────────────────────────
    PRODUCT_FEED_URL: str = "https://cosmosdbcosmicworks.blob.core.windows.net/cosmic-works-small/product.json"
    CUSTOMER_FEED_URL: str = "https://cosmosdbcosmicworks.blob.core.windows.net/cosmic-works-small/customer.json"
    FEED_TIMEOUT_SECONDS: float = 60.0

    # ── Vector Index ───────────────────────────────────────────────────
    VECTOR_FIELD: str = "contentVector"
    VECTOR_INDEX_NAME: str = "VectorSearchIndex"
    VECTOR_DIMENSIONS: int = 1536
    VECTOR_INDEX_NUM_LISTS: int = 1
    VECTOR_SEARCH_K: int = 3

    # ── Model Configuration ────────────────────────────────────────────
    EMBEDDING_MODEL: str = "models/gemini-embedding-001"
    LLM_MODEL: str = "gemini-2.0-flash"
    LLM_TEMPERATURE: float = 0.0
    COMPLETION_TIMEOUT_SECONDS: float = 60.0
    EMBEDDING_TIMEOUT_SECONDS: float = 30.0
    EMBEDDING_MIN_INTERVAL_SECONDS: float = 0.5

    # ── Agent / Sessions ───────────────────────────────────────────────
    AGENT_MAX_TOOL_ROUNDS: int = 10
    SESSION_CACHE_CAPACITY: int = 1024
    SESSION_TTL_SECONDS: float | None = 3600.0
    LOG_INTERMEDIATE_STEPS: bool = False

    # ── Validators ─────────────────────────────────────────────────────

    @field_validator("VECTOR_DIMENSIONS")
    @classmethod
    def _dimensions_range(cls, v: int) -> int:
        if not 1 <= v <= 2000:
            raise ValueError(f"VECTOR_DIMENSIONS must be 1–2000, got {v}")
        return v


    @field_validator("AGENT_MAX_TOOL_ROUNDS", "SESSION_CACHE_CAPACITY", "VECTOR_SEARCH_K", "VECTOR_INDEX_NUM_LISTS")
    @classmethod
    def _positive(cls, v: int) -> int:
        if v < 1:
            raise ValueError(f"value must be ≥ 1, got {v}")
        return v


    @field_validator("EMBEDDING_MIN_INTERVAL_SECONDS")
    @classmethod
    def _interval_non_negative(cls, v: float) -> float:
        if v < 0:
            raise ValueError(f"EMBEDDING_MIN_INTERVAL_SECONDS must be ≥ 0, got {v}")
        return v

    # ── Pydantic Settings Configuration ────────────────────────────────
    model_config = SettingsConfigDict(env_file=Path(__file__).resolve().parent.parent / ".env", env_file_encoding="utf-8", extra="ignore")


# ── Singleton Instance ─────────────────────────────────────────────────
# Import this in entry points only:
#     from cosmic_works.config.settings import settings
settings = Settings()
