"""
Tests for the IngestionPipeline.

Feeds are local JSON files (``tmp_path``) or an ``httpx.MockTransport``;
the store is in memory and the limiter runs on a fake clock.
"""

import json
from pathlib import Path

import httpx
import pytest

from cosmic_works.src.core.errors import EmbeddingServiceError, FeedError
from cosmic_works.src.core.factory import build_feeds, build_ingestion_pipeline
from cosmic_works.src.core.ingestor import FeedSource, IngestionPipeline
from cosmic_works.src.core.rate_limiter import TokenBucketLimiter

RAW_PRODUCTS = [
    {"id": "027D0B9A-F9D9-4C96-8213-C8546C4AAE71", "categoryId": "26C74104", "categoryName": "Bikes, Road Bikes", "sku": "BK-R50B-44", "name": "Road-150 Red, 44", "price": 3578.27, "tags": [{"id": "1", "name": "Bikes"}], "_rid": "abc==", "_etag": "\"00\"", "_ts": 1681412800},
    {"id": "1B4B6A46-9E56-4C3A-9E10-6F9B4E9A1C2D", "categoryId": "56400CF3", "categoryName": "Accessories, Helmets", "sku": "HL-U509-R", "name": "Sport-100 Helmet, Red", "price": 34.99, "tags": [], "_rid": "def==", "_ts": 1681412801},
]

RAW_CUSTOMERS = [
    {"id": "C-1", "type": "customer", "customerId": "C-1", "firstName": "Franklin", "lastName": "Ye", "_ts": 1},
    {"id": "SO-1", "type": "salesOrder", "customerId": "C-1", "details": [{"sku": "BK-R50B-44", "quantity": 1}], "_ts": 2},
    {"id": "SO-2", "type": "salesOrder", "customerId": "C-1", "details": [], "_ts": 3},
]


def _write_json(path: Path, payload) -> str:
    path.write_text(json.dumps(payload), encoding="utf-8")
    return str(path)


@pytest.fixture
def feeds(tmp_path) -> tuple[FeedSource, ...]:
    return (
        FeedSource(_write_json(tmp_path / "product.json", RAW_PRODUCTS), collection="products"),
        FeedSource(_write_json(tmp_path / "customer.json", RAW_CUSTOMERS), routes=(("customer", "customers"), ("salesOrder", "sales"))),
    )


@pytest.fixture
def pipeline(store, embedding_service, feeds) -> IngestionPipeline:
    return IngestionPipeline(store, embedding_service, feeds=feeds, vector_collections=["products"])


# ============================================================================
# Full runs
# ============================================================================


class TestRun:

    @pytest.mark.asyncio
    async def test_loads_cleans_and_splits_feeds(self, pipeline, store) -> None:
        summary = await pipeline.run()

        assert summary["documents_loaded"] == {"products": 2, "customers": 1, "sales": 2}
        product = store.collections["products"]["027D0B9A-F9D9-4C96-8213-C8546C4AAE71"]
        assert "id" not in product
        assert not any(k.startswith("_") and k != "_id" for k in product)
        assert {d["_id"] for d in store.docs("sales")} == {"SO-1", "SO-2"}

    @pytest.mark.asyncio
    async def test_vectorizes_products_and_creates_index(self, pipeline, store) -> None:
        summary = await pipeline.run()

        assert summary["vectors_generated"] == {"products": 2}
        assert summary["indexes_created"] == ["products"]
        assert all(len(d["contentVector"]) == 1536 for d in store.docs("products"))
        assert all("contentVector" not in d for d in store.docs("customers"))
        assert store.index_creations == [{"collection": "products", "name": "VectorSearchIndex", "path": "contentVector", "dimensions": 1536, "num_lists": 1}]
        assert store.bulk_writes == [("products", "contentVector", 2)]

    @pytest.mark.asyncio
    async def test_second_run_is_idempotent(self, pipeline, store) -> None:
        """Same feed twice: same document count, index created exactly once."""
        await pipeline.run()
        summary = await pipeline.run()

        assert await store.count("products") == 2
        assert await store.count("sales") == 2
        assert summary["indexes_created"] == []
        assert len(store.index_creations) == 1
        assert all(len(d["contentVector"]) == 1536 for d in store.docs("products"))

    @pytest.mark.asyncio
    async def test_embedding_text_excludes_vector_and_system_fields(self, pipeline, fake_embedder) -> None:
        await pipeline.run()
        await pipeline.run(skip_load=True, refresh=True)

        assert len(fake_embedder.texts) == 4
        for text in fake_embedder.texts:
            doc = json.loads(text)
            assert "contentVector" not in doc
            assert "_rid" not in doc and "_ts" not in doc

    @pytest.mark.asyncio
    async def test_summary_shape(self, pipeline) -> None:
        summary = await pipeline.run()
        assert set(summary) == {"documents_loaded", "vectors_generated", "indexes_created", "elapsed_seconds"}
        assert summary["elapsed_seconds"] >= 0


# ============================================================================
# Options
# ============================================================================


class TestOptions:

    @pytest.mark.asyncio
    async def test_skip_load_only_embeds_missing_vectors(self, store, embedding_service, fake_embedder) -> None:
        store.seed("products", [{"_id": "a", "name": "A", "contentVector": [0.5] * 1536}, {"_id": "b", "name": "B"}])
        pipeline = IngestionPipeline(store, embedding_service, feeds=(), vector_collections=["products"])

        summary = await pipeline.run(skip_load=True)

        assert summary["documents_loaded"] == {}
        assert summary["vectors_generated"] == {"products": 1}
        assert store.collections["products"]["a"]["contentVector"] == [0.5] * 1536
        assert json.loads(fake_embedder.texts[0])["_id"] == "b"

    @pytest.mark.asyncio
    async def test_refresh_reembeds_everything(self, store, embedding_service) -> None:
        store.seed("products", [{"_id": "a", "name": "A", "contentVector": [0.5] * 1536}, {"_id": "b", "name": "B"}])
        pipeline = IngestionPipeline(store, embedding_service, vector_collections=["products"])

        summary = await pipeline.run(skip_load=True, refresh=True)

        assert summary["vectors_generated"] == {"products": 2}
        assert store.collections["products"]["a"]["contentVector"] != [0.5] * 1536

    @pytest.mark.asyncio
    async def test_explicit_collections_override_default(self, pipeline, store) -> None:
        summary = await pipeline.run(collections=["products", "customers"])

        assert summary["vectors_generated"] == {"products": 2, "customers": 1}
        assert summary["indexes_created"] == ["products", "customers"]

    @pytest.mark.asyncio
    async def test_nothing_to_embed_skips_bulk_write(self, store, embedding_service) -> None:
        pipeline = IngestionPipeline(store, embedding_service, vector_collections=["products"])

        summary = await pipeline.run(skip_load=True)

        assert summary["vectors_generated"] == {"products": 0}
        assert store.bulk_writes == []
        assert summary["indexes_created"] == ["products"]


# ============================================================================
# Rate limiting at scale
# ============================================================================


class TestRateLimitedEmbedding:

    @pytest.mark.asyncio
    async def test_thousand_documents_spaced_500ms(self, store, embedding_service, fake_clock) -> None:
        store.seed("products", [{"_id": f"p-{i:04d}", "name": f"Product {i}", "price": i} for i in range(1000)])
        limiter = TokenBucketLimiter.fixed_interval(0.5, clock=fake_clock, sleep=fake_clock.sleep)
        pipeline = IngestionPipeline(store, embedding_service, vector_collections=["products"], limiter=limiter)

        summary = await pipeline.run(skip_load=True)

        assert summary["vectors_generated"] == {"products": 1000}
        assert all(len(d["contentVector"]) == 1536 for d in store.docs("products"))
        assert len(fake_clock.sleeps) == 999
        assert fake_clock.now == pytest.approx(499.5)
        assert store.bulk_writes == [("products", "contentVector", 1000)]


# ============================================================================
# Feeds & failures
# ============================================================================


class TestFeeds:

    @pytest.mark.asyncio
    async def test_http_feed(self, store, embedding_service) -> None:
        requested = []

        def _handler(request: httpx.Request) -> httpx.Response:
            requested.append(str(request.url))
            return httpx.Response(200, json=RAW_PRODUCTS)

        async with httpx.AsyncClient(transport=httpx.MockTransport(_handler)) as client:
            pipeline = IngestionPipeline(store, embedding_service, feeds=[FeedSource("https://feeds.example/product.json", collection="products")], http_client=client)
            loaded = await pipeline.load_feeds()

        assert loaded == {"products": 2}
        assert requested == ["https://feeds.example/product.json"]

    @pytest.mark.asyncio
    async def test_http_error_is_feed_error(self, store, embedding_service) -> None:
        transport = httpx.MockTransport(lambda request: httpx.Response(404, text="missing"))

        async with httpx.AsyncClient(transport=transport) as client:
            pipeline = IngestionPipeline(store, embedding_service, http_client=client)
            with pytest.raises(FeedError, match="product.json"):
                await pipeline.fetch_feed("https://feeds.example/product.json")

    @pytest.mark.asyncio
    async def test_missing_file_is_feed_error(self, store, embedding_service, tmp_path) -> None:
        pipeline = IngestionPipeline(store, embedding_service)
        with pytest.raises(FeedError):
            await pipeline.fetch_feed(str(tmp_path / "nope.json"))

    @pytest.mark.asyncio
    async def test_undecodable_file_is_feed_error(self, store, embedding_service, tmp_path) -> None:
        """Should raise FeedError, not UnicodeDecodeError, for a feed that is not UTF-8."""
        path = tmp_path / "latin.json"
        path.write_bytes(b'[{"id": "\xff\xfe"}]')
        pipeline = IngestionPipeline(store, embedding_service)

        with pytest.raises(FeedError, match="latin.json"):
            await pipeline.fetch_feed(str(path))

    @pytest.mark.asyncio
    async def test_malformed_json_is_feed_error(self, store, embedding_service, tmp_path) -> None:
        path = tmp_path / "broken.json"
        path.write_text("[{\"id\": ", encoding="utf-8")
        pipeline = IngestionPipeline(store, embedding_service)

        with pytest.raises(FeedError):
            await pipeline.fetch_feed(str(path))

    @pytest.mark.asyncio
    async def test_non_array_feed_is_feed_error(self, store, embedding_service, tmp_path) -> None:
        pipeline = IngestionPipeline(store, embedding_service)
        with pytest.raises(FeedError, match="not a JSON array"):
            await pipeline.fetch_feed(_write_json(tmp_path / "obj.json", {"items": []}))

    @pytest.mark.asyncio
    async def test_unrouted_types_are_skipped(self, store, embedding_service, tmp_path) -> None:
        feed = FeedSource(_write_json(tmp_path / "customer.json", RAW_CUSTOMERS + [{"id": "X", "type": "audit"}]), routes=(("customer", "customers"),))
        pipeline = IngestionPipeline(store, embedding_service, feeds=[feed])

        assert await pipeline.load_feeds() == {"customers": 1}
        assert "sales" not in store.collections

    @pytest.mark.asyncio
    async def test_embedding_failure_aborts_before_writing(self, store, embedding_service, fake_embedder) -> None:
        store.seed("products", [{"_id": "a", "name": "A"}, {"_id": "b", "name": "B"}])
        pipeline = IngestionPipeline(store, embedding_service, vector_collections=["products"])

        calls = {"n": 0}
        original = fake_embedder.aembed_query

        async def _flaky(text, **kwargs):
            calls["n"] += 1
            if calls["n"] == 2:
                raise RuntimeError("rate limited")
            return await original(text, **kwargs)

        fake_embedder.aembed_query = _flaky

        with pytest.raises(EmbeddingServiceError):
            await pipeline.run(skip_load=True)
        assert store.bulk_writes == []
        assert store.index_creations == []

    @pytest.mark.parametrize("kwargs", [{}, {"collection": "products", "routes": (("customer", "customers"),)}])
    def test_feed_source_needs_exactly_one_target(self, kwargs) -> None:
        with pytest.raises(ValueError):
            FeedSource("feed.json", **kwargs)


# ============================================================================
# Factory wiring
# ============================================================================


class TestFactoryWiring:

    def test_default_feeds(self, make_settings) -> None:
        product_feed, customer_feed = build_feeds(make_settings())

        assert product_feed.location.endswith("/cosmic-works-small/product.json")
        assert product_feed.collection == "products"
        assert customer_feed.location.endswith("/cosmic-works-small/customer.json")
        assert dict(customer_feed.routes) == {"customer": "customers", "salesOrder": "sales"}

    @pytest.mark.asyncio
    async def test_configured_pipeline_end_to_end(self, make_settings, store, embedding_service, tmp_path) -> None:
        cfg = make_settings(
            PRODUCT_FEED_URL=_write_json(tmp_path / "product.json", RAW_PRODUCTS),
            CUSTOMER_FEED_URL=_write_json(tmp_path / "customer.json", RAW_CUSTOMERS),
            EMBEDDING_MIN_INTERVAL_SECONDS=0,
        )

        summary = await build_ingestion_pipeline(cfg, store, embedding_service).run()

        assert summary["documents_loaded"] == {"products": 2, "customers": 1, "sales": 2}
        assert summary["vectors_generated"] == {"products": 2}
        assert summary["indexes_created"] == ["products"]
