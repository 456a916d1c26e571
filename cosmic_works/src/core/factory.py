"""
Cosmic Works - Component Factory
=================================
Builds every long-lived client exactly once from an explicit ``Settings``
object and wires them together.  Nothing here is cached at module level;
callers own what they build and pass it on.

Usage:
    from cosmic_works.config.settings import settings
    store = build_store(settings)
    service = build_agent_service(settings, store)
    response = await service.handle(AgentRequest(prompt="Do you sell bicycles?", session_id="s1"))

    pipeline = build_ingestion_pipeline(settings, store)
    summary = await pipeline.run()
    store.close()
"""

from __future__ import annotations

import httpx
from langchain_core.language_models import BaseChatModel
from langchain_google_genai import ChatGoogleGenerativeAI, GoogleGenerativeAIEmbeddings

from cosmic_works.config.settings import Settings
from cosmic_works.src.core.agent import AgentSession
from cosmic_works.src.core.embeddings import Embedder, EmbeddingService
from cosmic_works.src.core.ingestor import FeedSource, IngestionPipeline
from cosmic_works.src.core.rate_limiter import TokenBucketLimiter
from cosmic_works.src.core.service import AgentService
from cosmic_works.src.core.session_registry import SessionRegistry
from cosmic_works.src.core.tools import ExactLookupTool, RetrievalTool, SemanticSearchTool, build_toolset
from cosmic_works.src.database.document_store import CosmicWorksStore
from cosmic_works.src.utils.logger import get_logger

logger = get_logger(__name__)


def build_store(cfg: Settings) -> CosmicWorksStore:
    """Create the process-wide pooled document store."""
    return CosmicWorksStore.from_uri(cfg.MONGO_URI.get_secret_value(), cfg.MONGO_DB_NAME, max_pool_size=cfg.MONGO_MAX_POOL_SIZE, timeout_ms=cfg.MONGO_TIMEOUT_MS)


def build_embedder(cfg: Settings) -> Embedder:
    """Initialise the Gemini embedding model via LangChain."""
    embedder = GoogleGenerativeAIEmbeddings(model=cfg.EMBEDDING_MODEL, google_api_key=cfg.GOOGLE_API_KEY.get_secret_value())
    logger.info("Embedding model initialised: %s (%d dims)", cfg.EMBEDDING_MODEL, cfg.VECTOR_DIMENSIONS)
    return embedder


def build_embedding_service(cfg: Settings, embedder: Embedder | None = None) -> EmbeddingService:
    return EmbeddingService(embedder or build_embedder(cfg), dimensions=cfg.VECTOR_DIMENSIONS, timeout=cfg.EMBEDDING_TIMEOUT_SECONDS)


def build_chat_model(cfg: Settings) -> BaseChatModel:
    """Initialise the Gemini chat model via LangChain."""
    llm = ChatGoogleGenerativeAI(model=cfg.LLM_MODEL, temperature=cfg.LLM_TEMPERATURE, google_api_key=cfg.GOOGLE_API_KEY.get_secret_value())
    logger.info("LLM initialised: %s (temperature=%.1f)", cfg.LLM_MODEL, cfg.LLM_TEMPERATURE)
    return llm


def build_tools(cfg: Settings, store: CosmicWorksStore, embeddings: EmbeddingService) -> dict[str, RetrievalTool]:
    """The closed Cosmo toolset: semantic product search + SKU lookup."""
    return build_toolset(
        SemanticSearchTool(store, embeddings, collection=cfg.PRODUCTS_COLLECTION, vector_field=cfg.VECTOR_FIELD, index_name=cfg.VECTOR_INDEX_NAME, k=cfg.VECTOR_SEARCH_K),
        ExactLookupTool(store, collection=cfg.PRODUCTS_COLLECTION, key_field=cfg.PRODUCT_KEY_FIELD, vector_field=cfg.VECTOR_FIELD),
    )


def build_agent_service(cfg: Settings, store: CosmicWorksStore, embeddings: EmbeddingService | None = None, llm: BaseChatModel | None = None) -> AgentService:
    """
    Wire the agent stack around a shared *store*.

    The chat model and the toolset are shared by every session; each
    session gets its own history, lock and tool binding.
    """
    embeddings = embeddings or build_embedding_service(cfg)
    llm = llm or build_chat_model(cfg)
    tools = build_tools(cfg, store, embeddings)

    def _new_session(session_id: str) -> AgentSession:
        return AgentSession(session_id, llm, tools, max_rounds=cfg.AGENT_MAX_TOOL_ROUNDS, timeout=cfg.COMPLETION_TIMEOUT_SECONDS, log_intermediate_steps=cfg.LOG_INTERMEDIATE_STEPS)

    registry = SessionRegistry(_new_session, capacity=cfg.SESSION_CACHE_CAPACITY, ttl_seconds=cfg.SESSION_TTL_SECONDS)
    return AgentService(registry)


def build_feeds(cfg: Settings) -> tuple[FeedSource, ...]:
    """Product feed → products; mixed customer feed → customers + sales by ``type``."""
    return (
        FeedSource(cfg.PRODUCT_FEED_URL, collection=cfg.PRODUCTS_COLLECTION),
        FeedSource(cfg.CUSTOMER_FEED_URL, routes=(("customer", cfg.CUSTOMERS_COLLECTION), ("salesOrder", cfg.SALES_COLLECTION))),
    )


def build_ingestion_pipeline(cfg: Settings, store: CosmicWorksStore, embeddings: EmbeddingService | None = None, http_client: httpx.AsyncClient | None = None) -> IngestionPipeline:
    """Wire the offline ingestion pipeline; vectors are generated for products by default."""
    return IngestionPipeline(
        store,
        embeddings or build_embedding_service(cfg),
        feeds=build_feeds(cfg),
        vector_collections=(cfg.PRODUCTS_COLLECTION,),
        vector_field=cfg.VECTOR_FIELD,
        index_name=cfg.VECTOR_INDEX_NAME,
        num_lists=cfg.VECTOR_INDEX_NUM_LISTS,
        limiter=TokenBucketLimiter.fixed_interval(cfg.EMBEDDING_MIN_INTERVAL_SECONDS),
        http_client=http_client,
        feed_timeout=cfg.FEED_TIMEOUT_SECONDS,
    )
