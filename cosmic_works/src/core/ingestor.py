"""
Cosmic Works - IngestionPipeline
=================================
Offline pipeline that prepares the document store for the agent:
fetch raw feeds → normalise → reload collections → embed → bulk update
→ ensure vector index.

Key design decisions:
    • **Dependency Injection** – receives the ``CosmicWorksStore``, the
      ``EmbeddingService`` and the rate limiter; nothing is global.
    • **Destructive reload** – each target collection is emptied and
      bulk-inserted.  Offline use only.
    • **Rate-limited, sequential embedding** – one embedding call per
      document, spaced by the limiter (500 ms by default).  Vectors are
      queued and flushed in a single ``bulk_write``.
    • **No self-reference** – the vector field is removed from the text
      handed to the embedding model.
    • **Exactly-once index** – the vector index is created only if an
      index of that name does not already exist.
    • **Re-runnable** – any failure aborts the run; running again from the
      top is safe.

Usage:
    from cosmic_works.src.core.ingestor import FeedSource, IngestionPipeline
    pipeline = IngestionPipeline(store, embeddings, feeds=[FeedSource(url, collection="products")], vector_collections=["products"])
    summary  = await pipeline.run()
"""

from __future__ import annotations

import json
import time
from collections.abc import Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import httpx

from cosmic_works.src.core.embeddings import EmbeddingService
from cosmic_works.src.core.errors import FeedError
from cosmic_works.src.core.rate_limiter import NoopLimiter, TokenBucketLimiter
from cosmic_works.src.database.document_store import CosmicWorksStore
from cosmic_works.src.utils.logger import get_logger
from cosmic_works.src.utils.text_utils import Document, clean_document, embedding_text, split_by_type

logger = get_logger(__name__)

# Progress is logged every N embedded documents
_PROGRESS_EVERY = 25


@dataclass(frozen=True, slots=True)
class FeedSource:
    """
    One raw JSON feed and where its records go.

    Attributes
    ----------
    location
        ``http(s)://`` URL or local file path of a JSON array.
    collection
        Target collection for every record.  Mutually exclusive with ``routes``.
    routes
        ``(type value, collection)`` pairs for feeds mixing record types.
    type_field
        Record field holding the type value used by ``routes``.
    """

    location: str
    collection: str | None = None
    routes: tuple[tuple[str, str], ...] = ()
    type_field: str = "type"

    def __post_init__(self) -> None:
        if (self.collection is None) == (not self.routes):
            raise ValueError("FeedSource needs exactly one of 'collection' or 'routes'")


class IngestionPipeline:
    """
    End-to-end catalog ingestion: fetch → clean → reload → embed → index.

    Parameters
    ----------
    store
        Shared ``CosmicWorksStore``.
    embeddings
        ``EmbeddingService``; its ``dimensions`` size the vector index.
    feeds
        Raw feeds to load.
    vector_collections
        Collections whose documents get embedding vectors + a vector index.
    vector_field, index_name, num_lists
        Vector field and index configuration.
    limiter
        Spacing policy for embedding calls.  Defaults to no limit.
    http_client
        Client used for URL feeds; one is created per run when omitted.
    feed_timeout
        Seconds allowed per feed download.
    """

    __slots__ = ("_store", "_embeddings", "_feeds", "_vector_collections", "_vector_field", "_index_name", "_num_lists", "_limiter", "_http_client", "_feed_timeout")

    def __init__(self, store: CosmicWorksStore, embeddings: EmbeddingService, feeds: Sequence[FeedSource] = (), vector_collections: Sequence[str] = (), vector_field: str = "contentVector", index_name: str = "VectorSearchIndex", num_lists: int = 1, limiter: TokenBucketLimiter | NoopLimiter | None = None, http_client: httpx.AsyncClient | None = None, feed_timeout: float = 60.0) -> None:
        self._store = store
        self._embeddings = embeddings
        self._feeds = tuple(feeds)
        self._vector_collections = tuple(vector_collections)
        self._vector_field = vector_field
        self._index_name = index_name
        self._num_lists = num_lists
        self._limiter = limiter or NoopLimiter()
        self._http_client = http_client
        self._feed_timeout = feed_timeout

    # ══════════════════════════════════════════════════════════════════
    #  PUBLIC ENTRY POINT
    # ══════════════════════════════════════════════════════════════════

    async def run(self, skip_load: bool = False, refresh: bool = False, collections: Sequence[str] | None = None) -> dict[str, Any]:
        """
        Execute the full pipeline.

        Parameters
        ----------
        skip_load
            Keep the current collection contents; only embed and index.
        refresh
            Re-embed every document, not only those missing a vector.
        collections
            Collections to vectorize; defaults to ``vector_collections``.

        Returns
        -------
        dict
            Execution summary with keys ``documents_loaded``,
            ``vectors_generated``, ``indexes_created``, ``elapsed_seconds``.
        """
        t_start = time.perf_counter()
        targets = tuple(collections) if collections is not None else self._vector_collections
        logger.info("[INGEST] Starting ingestion — %d feed(s), vector collections=%s.", len(self._feeds), list(targets))

        loaded: dict[str, int] = {}
        if not skip_load:
            loaded = await self.load_feeds()

        vectors: dict[str, int] = {}
        created: list[str] = []
        for name in targets:
            vectors[name] = await self.vectorize_collection(name, refresh=refresh)
            if await self.ensure_vector_index(name):
                created.append(name)

        elapsed = time.perf_counter() - t_start
        summary = {"documents_loaded": loaded, "vectors_generated": vectors, "indexes_created": created, "elapsed_seconds": round(elapsed, 2)}
        logger.info("[INGEST] Ingestion complete in %.2fs — loaded=%s vectors=%s indexes_created=%s.", elapsed, loaded, vectors, created)
        return summary

    # ══════════════════════════════════════════════════════════════════
    #  STEP 1–2: FETCH, CLEAN, RELOAD
    # ══════════════════════════════════════════════════════════════════

    async def load_feeds(self) -> dict[str, int]:
        """Fetch every feed and reload its target collection(s).  Returns inserted counts."""
        loaded: dict[str, int] = {}
        for feed in self._feeds:
            raw = await self.fetch_feed(feed.location)
            docs = [clean_document(record) for record in raw]
            logger.info("[INGEST] Feed %s → %d document(s).", feed.location, len(docs))

            for collection, batch in self._route(feed, docs).items():
                loaded[collection] = await self._store.replace_collection(collection, batch)
        return loaded


    async def fetch_feed(self, location: str) -> list[dict[str, Any]]:
        """Download (or read) a JSON array of raw records."""
        try:
            if location.startswith(("http://", "https://")):
                payload = await self._download(location)
            else:
                payload = json.loads(Path(location).read_text(encoding="utf-8"))
        except (httpx.HTTPError, OSError, ValueError) as exc:
            logger.error("[INGEST] Could not load feed %s: %s", location, exc)
            raise FeedError(f"Could not load feed {location}: {exc}") from exc

        if not isinstance(payload, list):
            raise FeedError(f"Feed {location} is not a JSON array")
        return payload


    async def _download(self, url: str) -> Any:
        if self._http_client is not None:
            response = await self._http_client.get(url)
            response.raise_for_status()
            return response.json()
        async with httpx.AsyncClient(timeout=self._feed_timeout) as client:
            response = await client.get(url)
            response.raise_for_status()
            return response.json()


    @staticmethod
    def _route(feed: FeedSource, docs: list[Document]) -> dict[str, list[Document]]:
        if feed.collection is not None:
            return {feed.collection: docs}

        groups = split_by_type(docs, feed.type_field)
        routed: dict[str, list[Document]] = {}
        for type_value, collection in feed.routes:
            routed[collection] = groups.pop(type_value, [])
        for type_value, leftover in groups.items():
            logger.warning("[INGEST] %d record(s) of unrouted type %r skipped.", len(leftover), type_value)
        return routed

    # ══════════════════════════════════════════════════════════════════
    #  STEP 3–4: EMBED + BULK UPDATE
    # ══════════════════════════════════════════════════════════════════

    async def vectorize_collection(self, collection: str, refresh: bool = False) -> int:
        """
        Embed documents of *collection* and persist the vectors in one bulk write.

        Only documents lacking a vector are embedded unless *refresh* is set.

        Returns
        -------
        int
            Number of vectors generated.
        """
        query = {} if refresh else {self._vector_field: {"$exists": False}}
        docs = await self._store.find_many(collection, query)
        total = len(docs)
        logger.info("[INGEST] Generating content vectors for %d document(s) in '%s'.", total, collection)

        updates: list[tuple[Any, list[float]]] = []
        for i, doc in enumerate(docs, 1):
            await self._limiter.acquire()
            vector = await self._embeddings.embed(embedding_text(doc, self._vector_field))
            updates.append((doc["_id"], vector))

            if i % _PROGRESS_EVERY == 0 or i == total:
                logger.info("[INGEST] Generated %d content vector(s) of %d in '%s'.", i, total, collection)

        if updates:
            logger.info("[INGEST] Persisting %d content vector(s) to '%s' with one bulk write.", len(updates), collection)
            await self._store.bulk_set_field(collection, self._vector_field, updates)
        return len(updates)

    # ══════════════════════════════════════════════════════════════════
    #  STEP 5: VECTOR INDEX
    # ══════════════════════════════════════════════════════════════════

    async def ensure_vector_index(self, collection: str) -> bool:
        """Create the vector index on *collection* unless it exists.  Returns True if created."""
        logger.info("[INGEST] Checking if vector index '%s' exists on '%s'.", self._index_name, collection)
        if await self._store.index_exists(collection, self._index_name):
            logger.info("[INGEST] Vector index '%s' already exists on '%s' — skipping.", self._index_name, collection)
            return False

        await self._store.create_vector_index(collection, self._index_name, path=self._vector_field, dimensions=self._embeddings.dimensions, num_lists=self._num_lists)
        return True
