"""
Cosmic Works - CosmicWorksStore
================================
OOP wrapper around an async MongoDB client (``motor``) pointed at Azure
Cosmos DB for MongoDB vCore, providing a clean interface for:
  • Exact-match reads (single document and cursors)
  • Destructive collection reload (delete all + bulk insert)
  • Bulk upsert-by-``_id`` of a single field (embedding vectors)
  • Vector similarity search (``$search`` / ``cosmosSearch``)
  • Vector index existence check and creation

Design decisions:
  • **One pooled client per process** — the ``AsyncIOMotorClient`` is
    created once (``from_uri``) and the store is injected into every
    component; nothing opens or closes connections per request.
  • **Error translation** — every ``PyMongoError`` leaves this module as
    ``StoreConnectionError`` with the failing operation named.
  • **Read-only for the agent** — tools only call ``find_one`` and
    ``vector_search``; writes are reserved for ingestion.

Usage:
    store = CosmicWorksStore.from_uri(uri, "cosmic_works")
    await store.ping()
    product = await store.find_one("products", {"sku": "BK-R50B-44"})
    hits = await store.vector_search("products", query_vector, k=3, path="contentVector")
    store.close()
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from typing import Any

import motor.motor_asyncio
from pymongo import InsertOne, UpdateOne
from pymongo.errors import ConnectionFailure, PyMongoError

from cosmic_works.src.core.errors import StoreConnectionError
from cosmic_works.src.utils.logger import get_logger

logger = get_logger(__name__)

# ── Type Aliases ──────────────────────────────────────────────────────
Document = dict[str, Any]
SearchResult = dict[str, Any]

# ── Constants ──────────────────────────────────────────────────────────
SIMILARITY_SCORE_FIELD = "similarityScore"
_VECTOR_INDEX_KIND = "vector-ivf"
_VECTOR_SIMILARITY = "COS"


def _store_error(operation: str, exc: PyMongoError) -> StoreConnectionError:
    """Log and wrap a driver error for *operation*."""
    if isinstance(exc, ConnectionFailure):
        logger.error("[STORE] %s failed — document store unreachable: %s", operation, exc)
        return StoreConnectionError(f"Document store unreachable during {operation}: {exc}")
    logger.error("[STORE] %s failed: %s", operation, exc)
    return StoreConnectionError(f"Document store error during {operation}: {exc}")


class CosmicWorksStore:
    """
    High-level abstraction over the Cosmic Works MongoDB database.

    Parameters
    ----------
    client
        A shared ``AsyncIOMotorClient`` (owned by the store once passed in).
    db_name
        Database holding the catalog collections.
    """

    __slots__ = ("_client", "_db_name", "db")

    def __init__(self, client: motor.motor_asyncio.AsyncIOMotorClient, db_name: str) -> None:
        self._client = client
        self._db_name = db_name
        self.db = client[db_name]


    @classmethod
    def from_uri(cls, uri: str, db_name: str, max_pool_size: int = 10, timeout_ms: int = 10_000) -> CosmicWorksStore:
        """Create the process-wide pooled client and wrap it."""
        client = motor.motor_asyncio.AsyncIOMotorClient(uri, maxPoolSize=max_pool_size, serverSelectionTimeoutMS=timeout_ms, connectTimeoutMS=timeout_ms, socketTimeoutMS=timeout_ms)
        logger.info("[STORE] MongoDB async client created (db=%s, maxPoolSize=%d).", db_name, max_pool_size)
        return cls(client, db_name)


    def collection(self, name: str) -> motor.motor_asyncio.AsyncIOMotorCollection:
        return self.db[name]


    async def ping(self) -> None:
        """Round-trip to the server; raises ``StoreConnectionError`` if unreachable."""
        try:
            await self._client.admin.command("ping")
        except PyMongoError as exc:
            raise _store_error("ping", exc) from exc
        logger.info("[STORE] Connected to database '%s'.", self._db_name)

    # ══════════════════════════════════════════════════════════════════
    #  READS
    # ══════════════════════════════════════════════════════════════════

    async def find_one(self, collection: str, query: Mapping[str, Any], projection: Mapping[str, Any] | None = None) -> Document | None:
        """Return the first document matching *query*, or ``None``."""
        try:
            return await self.collection(collection).find_one(dict(query), projection)
        except PyMongoError as exc:
            raise _store_error(f"find_one on '{collection}'", exc) from exc


    async def find_many(self, collection: str, query: Mapping[str, Any] | None = None, projection: Mapping[str, Any] | None = None) -> list[Document]:
        """Return every document matching *query* (all documents by default)."""
        try:
            cursor = self.collection(collection).find(dict(query or {}), projection)
            return await cursor.to_list(length=None)
        except PyMongoError as exc:
            raise _store_error(f"find on '{collection}'", exc) from exc


    async def count(self, collection: str, query: Mapping[str, Any] | None = None) -> int:
        try:
            return await self.collection(collection).count_documents(dict(query or {}))
        except PyMongoError as exc:
            raise _store_error(f"count on '{collection}'", exc) from exc


    async def vector_search(self, collection: str, vector: list[float], k: int, path: str) -> list[SearchResult]:
        """
        Top-*k* cosine similarity search over the *path* vector field.

        Returns
        -------
        list[SearchResult]
            Matched documents (stored source) each carrying a
            ``similarityScore`` key, best match first.
        """
        pipeline = [
            {"$search": {"cosmosSearch": {"vector": vector, "path": path, "k": k}, "returnStoredSource": True}},
            {"$project": {SIMILARITY_SCORE_FIELD: {"$meta": "searchScore"}, "document": "$$ROOT"}},
        ]
        try:
            cursor = self.collection(collection).aggregate(pipeline)
            rows = await cursor.to_list(length=None)
        except PyMongoError as exc:
            raise _store_error(f"vector search on '{collection}'", exc) from exc

        results: list[SearchResult] = [{**row.get("document", {}), SIMILARITY_SCORE_FIELD: row.get(SIMILARITY_SCORE_FIELD)} for row in rows]
        logger.debug("[STORE] Vector search on '%s' returned %d result(s) (k=%d).", collection, len(results), k)
        return results

    # ══════════════════════════════════════════════════════════════════
    #  WRITES (ingestion only)
    # ══════════════════════════════════════════════════════════════════

    async def replace_collection(self, collection: str, documents: Iterable[Document]) -> int:
        """
        Delete every document in *collection* and bulk-insert *documents*.

        Destructive and not safe against concurrent readers — offline
        batch use only.

        Returns
        -------
        int
            Number of documents inserted.
        """
        operations = [InsertOne(doc) for doc in documents]
        coll = self.collection(collection)
        try:
            deleted = await coll.delete_many({})
            inserted = 0
            if operations:
                result = await coll.bulk_write(operations)
                inserted = result.inserted_count
        except PyMongoError as exc:
            raise _store_error(f"reload of '{collection}'", exc) from exc

        logger.info("[STORE] Collection '%s' reloaded: %d removed, %d inserted.", collection, deleted.deleted_count, inserted)
        return inserted


    async def bulk_set_field(self, collection: str, field: str, values: Iterable[tuple[Any, Any]]) -> int:
        """
        Upsert ``{field: value}`` onto each ``_id`` in one ``bulk_write``.

        Parameters
        ----------
        values
            ``(document_id, value)`` pairs.

        Returns
        -------
        int
            Number of update operations sent.
        """
        operations = [UpdateOne({"_id": doc_id}, {"$set": {field: value}}, upsert=True) for doc_id, value in values]
        if not operations:
            return 0
        try:
            result = await self.collection(collection).bulk_write(operations, ordered=False)
        except PyMongoError as exc:
            raise _store_error(f"bulk update of '{collection}'", exc) from exc

        logger.info("[STORE] Bulk update on '%s': %d op(s), %d matched, %d upserted.", collection, len(operations), result.matched_count, result.upserted_count)
        return len(operations)

    # ══════════════════════════════════════════════════════════════════
    #  INDEXES
    # ══════════════════════════════════════════════════════════════════

    async def index_exists(self, collection: str, index_name: str) -> bool:
        try:
            info = await self.collection(collection).index_information()
        except PyMongoError as exc:
            raise _store_error(f"index lookup on '{collection}'", exc) from exc
        return index_name in info


    async def create_vector_index(self, collection: str, index_name: str, path: str, dimensions: int, num_lists: int = 1) -> None:
        """Create an IVF cosine vector index named *index_name* over *path*."""
        command = {
            "createIndexes": collection,
            "indexes": [
                {
                    "name": index_name,
                    "key": {path: "cosmosSearch"},
                    "cosmosSearchOptions": {"kind": _VECTOR_INDEX_KIND, "numLists": num_lists, "similarity": _VECTOR_SIMILARITY, "dimensions": dimensions},
                }
            ],
        }
        try:
            await self.db.command(command)
        except PyMongoError as exc:
            raise _store_error(f"vector index creation on '{collection}'", exc) from exc
        logger.info("[STORE] Created vector index '%s' on %s.%s (dims=%d, numLists=%d).", index_name, collection, path, dimensions, num_lists)


    def close(self) -> None:
        """Release the pooled client.  Call once at process shutdown."""
        self._client.close()
        logger.info("[STORE] MongoDB client closed.")


    def __repr__(self) -> str:
        return f"CosmicWorksStore(db='{self._db_name}')"
