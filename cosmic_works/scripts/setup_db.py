"""
Cosmic Works - Database Setup & Ingestion Script
=================================================
CLI entry point that orchestrates:
    1. Validate that ``GOOGLE_API_KEY`` and ``MONGO_URI`` are set (fail-fast).
    2. Connect the pooled ``CosmicWorksStore`` and ping the server.
    3. Run the ``IngestionPipeline`` (load feeds → embed → vector index).
    4. Print a structured execution summary with timing breakdown.

Flags:
    --skip-load     Keep the current collections; only embed and index.
    --refresh       Re-embed every document, not only those missing a vector.
    --vectorize     Collection(s) to vectorize (repeatable, default: products).

Observability:
    The script times every initialization phase independently —
    settings load, embedder init, store connection — so the final
    summary separates **Startup Time** from **Processing Time**.

Usage:
    python -m cosmic_works.scripts.setup_db                        # Full load + vectorize products
    python -m cosmic_works.scripts.setup_db --skip-load            # Vectorize existing data only
    python -m cosmic_works.scripts.setup_db --skip-load --refresh  # Re-embed everything
    python -m cosmic_works.scripts.setup_db --vectorize products --vectorize customers
"""

from __future__ import annotations

import argparse
import asyncio
import sys
import time
from pathlib import Path
from typing import Any

# ── Ensure project root is importable when run directly ────────────────
_PROJECT_ROOT = Path(__file__).resolve().parent.parent.parent
if str(_PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(_PROJECT_ROOT))


# ── CLI Argument Parsing ───────────────────────────────────────────────

def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog="setup_db", description="Cosmic Works — Load the catalog feeds, generate content vectors and create the vector index.")
    parser.add_argument("--skip-load", action="store_true", default=False, help="Do not reload the collections from the feeds; only embed and index existing documents.")
    parser.add_argument("--refresh", action="store_true", default=False, help="Re-embed every document, including those that already carry a vector.")
    parser.add_argument("--vectorize", action="append", default=None, metavar="COLLECTION", help="Collection to vectorize (repeatable). Defaults to the products collection.")
    return parser.parse_args(argv)


# ── Main Orchestration ─────────────────────────────────────────────────

async def _run(args: argparse.Namespace) -> int:
    t_start = time.perf_counter()

    # ── 0. Load settings + .env (timed) ────────────────────────────────
    t_settings = time.perf_counter()
    try:
        from cosmic_works.config.settings import settings
    except Exception as exc:
        print("\n[FATAL] Configuration error — check your .env file:\n")
        print(f"  {exc}")
        print()
        return 1
    settings_ms = (time.perf_counter() - t_settings) * 1000

    # Now that settings is loaded, we can safely import the logger
    from cosmic_works.src.core.errors import CosmicWorksError
    from cosmic_works.src.core.factory import build_embedding_service, build_ingestion_pipeline, build_store
    from cosmic_works.src.utils.logger import get_logger
    logger = get_logger(__name__)

    logger.info("Settings loaded in %.1fms", settings_ms)

    collections = args.vectorize or [settings.PRODUCTS_COLLECTION]
    _print_header(settings, args, collections)

    # ── 1. Initialise embedder (timed) ─────────────────────────────────
    t_embedder = time.perf_counter()
    logger.info("Initialising embedding model: %s", settings.EMBEDDING_MODEL)
    try:
        embeddings = build_embedding_service(settings)
    except Exception:
        logger.exception("Failed to initialise embedding model.")
        return 1
    embedder_ms = (time.perf_counter() - t_embedder) * 1000
    logger.info("Embedder initialised in %.1fms", embedder_ms)

    # ── 2. Connect the document store (timed) ──────────────────────────
    t_store = time.perf_counter()
    store = build_store(settings)
    try:
        try:
            await store.ping()
        except CosmicWorksError as exc:
            logger.error("Could not reach the document store: %s", exc.message)
            return 1
        store_ms = (time.perf_counter() - t_store) * 1000
        logger.info("Document store connection established in %.1fms", store_ms)

        # ── Startup timing complete ────────────────────────────────────
        startup_ms = settings_ms + embedder_ms + store_ms
        logger.info("Total startup time: %.1fms (settings: %.1fms, embedder: %.1fms, store: %.1fms)", startup_ms, settings_ms, embedder_ms, store_ms)

        # ── 3. Run IngestionPipeline ───────────────────────────────────
        pipeline = build_ingestion_pipeline(settings, store, embeddings)
        try:
            summary = await pipeline.run(skip_load=args.skip_load, refresh=args.refresh, collections=collections)
        except CosmicWorksError as exc:
            logger.error("Ingestion aborted: %s", exc.message)
            logger.error("Fix the cause and re-run; the pipeline is safe to repeat from the top.")
            return 1
    finally:
        store.close()

    # ── 4. Print execution summary ─────────────────────────────────────
    elapsed = time.perf_counter() - t_start
    _print_footer(summary, elapsed, settings_ms, embedder_ms, store_ms, startup_ms)
    return 0


def main(argv: list[str] | None = None) -> None:
    args = _parse_args(argv)
    sys.exit(asyncio.run(_run(args)))


# ── Pretty-print helpers ──────────────────────────────────────────────

def _print_header(settings: Any, args: argparse.Namespace, collections: list[str]) -> None:
    from cosmic_works.src.utils.logger import mask_connection_string

    api_key_val = settings.GOOGLE_API_KEY.get_secret_value()
    masked = f"****{api_key_val[-4:]}" if len(api_key_val) > 4 else "****"

    print()
    print("=" * 60)
    print("  COSMIC WORKS — Database Setup & Ingestion")
    print("=" * 60)
    print(f"  Environment  : {settings.ENV}")
    print(f"  Embedding    : {settings.EMBEDDING_MODEL} ({settings.VECTOR_DIMENSIONS} dims)")
    print(f"  MongoDB      : {mask_connection_string(settings.MONGO_URI.get_secret_value())} (db: {settings.MONGO_DB_NAME})")
    print(f"  Product feed : {settings.PRODUCT_FEED_URL}")
    print(f"  Customer feed: {settings.CUSTOMER_FEED_URL}")
    print(f"  Load feeds   : {'no (--skip-load)' if args.skip_load else 'yes'}")
    print(f"  Vectorize    : {', '.join(collections)}{' (refresh)' if args.refresh else ''}")
    print(f"  Spacing      : {settings.EMBEDDING_MIN_INTERVAL_SECONDS * 1000:.0f}ms between embeddings")
    print(f"  API Key      : {masked}")
    print("=" * 60)
    print()


def _print_footer(summary: dict[str, Any], elapsed: float, settings_ms: float, embedder_ms: float, store_ms: float, startup_ms: float) -> None:
    processing_s = elapsed - (startup_ms / 1000)

    print()
    print("=" * 60)
    print("  EXECUTION SUMMARY")
    print("-" * 60)
    loaded = summary["documents_loaded"]
    if loaded:
        for name, count in loaded.items():
            print(f"  Loaded {name:<14}: {count}")
    else:
        print("  Loaded               : (skipped)")
    for name, count in summary["vectors_generated"].items():
        print(f"  Vectors {name:<13}: {count}")
    created = summary["indexes_created"]
    print(f"  Indexes created      : {', '.join(created) if created else 'none (already present)'}")
    print("-" * 60)
    print("  TIMING BREAKDOWN")
    print("-" * 60)
    print(f"  Settings + .env load : {settings_ms:>8.1f}ms")
    print(f"  Embedder init        : {embedder_ms:>8.1f}ms")
    print(f"  Store connection     : {store_ms:>8.1f}ms")
    print(f"  Startup time (total) : {startup_ms:>8.1f}ms")
    print(f"  Processing time      : {processing_s:>8.2f}s")
    print(f"  Total elapsed        : {elapsed:>8.2f}s")
    print("=" * 60)
    print()


# ── Entry point ────────────────────────────────────────────────────────

if __name__ == "__main__":
    main()
