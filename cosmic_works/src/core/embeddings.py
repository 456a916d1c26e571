"""
Cosmic Works - Embedding Service
=================================
Thin async wrapper around a LangChain embedding model that guarantees
the contract the rest of the system relies on:

  • every call is bounded by a timeout,
  • every vector has exactly ``dimensions`` entries (the vector index is
    created with that size and rejects anything else),
  • every failure surfaces as ``EmbeddingServiceError``.

The wrapped model is injected — ``GoogleGenerativeAIEmbeddings`` in
production, a deterministic fake in tests.
"""

from __future__ import annotations

import asyncio
from typing import Protocol, runtime_checkable

from cosmic_works.src.core.errors import EmbeddingServiceError
from cosmic_works.src.utils.logger import get_logger

logger = get_logger(__name__)


# ── Embedder Protocol ─────────────────────────────────────────────────

@runtime_checkable
class Embedder(Protocol):
    """Structural type for any LangChain-compatible embedding model."""

    async def aembed_query(self, text: str, **kwargs: object) -> list[float]: ...


class EmbeddingService:
    """
    Produces fixed-length embedding vectors.

    Parameters
    ----------
    embedder
        Object satisfying ``Embedder``.
    dimensions
        Required vector length; also requested from the model as
        ``output_dimensionality``.
    timeout
        Seconds allowed per call.
    """

    __slots__ = ("_embedder", "_dimensions", "_timeout")

    def __init__(self, embedder: Embedder, dimensions: int, timeout: float = 30.0) -> None:
        self._embedder = embedder
        self._dimensions = dimensions
        self._timeout = timeout


    @property
    def dimensions(self) -> int:
        return self._dimensions


    async def embed(self, text: str) -> list[float]:
        """
        Embed *text* and return a vector of ``dimensions`` floats.

        Raises
        ------
        EmbeddingServiceError
            On timeout, provider error, or a vector of the wrong length.
        """
        try:
            vector = await asyncio.wait_for(self._embedder.aembed_query(text, output_dimensionality=self._dimensions), timeout=self._timeout)
        except asyncio.TimeoutError as exc:
            logger.error("[EMBED] Embedding call timed out after %.1fs.", self._timeout)
            raise EmbeddingServiceError(f"Embedding call timed out after {self._timeout}s") from exc
        except Exception as exc:
            logger.error("[EMBED] Embedding call failed: %s", exc)
            raise EmbeddingServiceError(f"Embedding call failed: {exc}") from exc

        if len(vector) != self._dimensions:
            raise EmbeddingServiceError(f"Expected a {self._dimensions}-dimension vector, got {len(vector)}")

        return [float(x) for x in vector]
