"""
Cosmic Works - Retrieval Tools
===============================
The closed set of tools the Cosmo agent may call.  Each tool exposes the
same capability shape:

    name          – identifier the model uses in its tool call
    description   – text the model selects tools by (kept disjoint)
    args_schema   – pydantic model validating the call arguments
    input_field   – the single argument handed to ``run``
    run(input)    – async; returns rendered text, or ``None`` for "not found"

``SemanticSearchTool``
    Embeds the question and runs a cosine top-k vector query over the
    products collection.

``ExactLookupTool``
    Finds exactly one product by its SKU.  Never touches vectors.

Both are read-only against the document store.  A failure in the store
or the embedding service is raised as ``ToolExecutionError``; a missing
document is a normal ``None``/empty result.
"""

from __future__ import annotations

from typing import ClassVar

from langchain_core.tools import StructuredTool
from pydantic import BaseModel, Field

from cosmic_works.config.prompt_templates import SKU_LOOKUP_DESCRIPTION, VECTOR_SEARCH_DESCRIPTION
from cosmic_works.src.core.embeddings import EmbeddingService
from cosmic_works.src.core.errors import CosmicWorksError, ToolExecutionError
from cosmic_works.src.database.document_store import CosmicWorksStore
from cosmic_works.src.utils.logger import get_logger
from cosmic_works.src.utils.text_utils import render_document, render_documents

logger = get_logger(__name__)

# High-cardinality field dropped from search renderings
_TAGS_FIELD = "tags"


# ── Argument Schemas ──────────────────────────────────────────────────

class VectorSearchArgs(BaseModel):
    query: str = Field(..., min_length=1, description="The customer's question or a short description of the products to find.")


class SkuLookupArgs(BaseModel):
    sku: str = Field(..., min_length=1, description="The exact product SKU, e.g. 'BK-R50B-44'.")


# ══════════════════════════════════════════════════════════════════════
#  BASE
# ══════════════════════════════════════════════════════════════════════


class RetrievalTool:
    """Common capability shape for every agent tool."""

    name: ClassVar[str]
    description: ClassVar[str]
    args_schema: ClassVar[type[BaseModel]]
    input_field: ClassVar[str]

    __slots__ = ()

    async def run(self, tool_input: str) -> str | None:
        raise NotImplementedError


    def parse_input(self, arguments: dict[str, object]) -> str:
        """Validate the model's raw call arguments and return the single input value."""
        try:
            parsed = self.args_schema.model_validate(arguments or {})
        except ValueError as exc:
            raise ToolExecutionError(self.name, f"invalid arguments {arguments!r}: {exc}") from exc
        return getattr(parsed, self.input_field)


    def as_langchain_tool(self) -> StructuredTool:
        """Schema-only ``StructuredTool`` for ``bind_tools``; dispatch stays in the agent loop."""

        async def _invoke(**kwargs: object) -> str | None:
            return await self.run(self.parse_input(kwargs))

        return StructuredTool.from_function(coroutine=_invoke, name=self.name, description=self.description, args_schema=self.args_schema)


    def __repr__(self) -> str:
        return f"{type(self).__name__}(name='{self.name}')"


# ══════════════════════════════════════════════════════════════════════
#  SEMANTIC SEARCH
# ══════════════════════════════════════════════════════════════════════


class SemanticSearchTool(RetrievalTool):
    """
    Vector similarity search over product documents.

    Parameters
    ----------
    store
        Shared ``CosmicWorksStore``.
    embeddings
        ``EmbeddingService`` producing query vectors.
    collection
        Collection to search (products).
    vector_field
        Field holding the document vectors.
    index_name
        Vector index that must exist before a search is attempted.
    k
        Number of neighbours to return.
    """

    name = "vector_search"
    description = VECTOR_SEARCH_DESCRIPTION
    args_schema = VectorSearchArgs
    input_field = "query"

    __slots__ = ("_store", "_embeddings", "_collection", "_vector_field", "_index_name", "_k")

    def __init__(self, store: CosmicWorksStore, embeddings: EmbeddingService, collection: str, vector_field: str, index_name: str, k: int = 3) -> None:
        self._store = store
        self._embeddings = embeddings
        self._collection = collection
        self._vector_field = vector_field
        self._index_name = index_name
        self._k = k


    async def run(self, tool_input: str) -> str:
        """
        Return matching products as newline-joined JSON, or ``""`` when
        nothing is indexed yet / nothing matched.
        """
        logger.info("[TOOLS] vector_search query=%r k=%d", tool_input, self._k)
        try:
            if not await self._store.index_exists(self._collection, self._index_name):
                logger.warning("[TOOLS] Vector index '%s' missing on '%s' — returning no results.", self._index_name, self._collection)
                return ""
            query_vector = await self._embeddings.embed(tool_input)
            results = await self._store.vector_search(self._collection, query_vector, k=self._k, path=self._vector_field)
        except CosmicWorksError as exc:
            raise ToolExecutionError(self.name, exc.message) from exc

        logger.info("[TOOLS] vector_search returned %d product(s).", len(results))
        return render_documents(results, excluded=(self._vector_field, _TAGS_FIELD))


# ══════════════════════════════════════════════════════════════════════
#  EXACT LOOKUP
# ══════════════════════════════════════════════════════════════════════


class ExactLookupTool(RetrievalTool):
    """
    Single-product lookup by business key.

    Parameters
    ----------
    store
        Shared ``CosmicWorksStore``.
    collection
        Collection to read (products).
    key_field
        Unique business-key field (``sku``).
    vector_field
        Field stripped from the rendering.
    """

    name = "product_sku_lookup"
    description = SKU_LOOKUP_DESCRIPTION
    args_schema = SkuLookupArgs
    input_field = "sku"

    __slots__ = ("_store", "_collection", "_key_field", "_vector_field")

    def __init__(self, store: CosmicWorksStore, collection: str, key_field: str, vector_field: str) -> None:
        self._store = store
        self._collection = collection
        self._key_field = key_field
        self._vector_field = vector_field


    async def run(self, tool_input: str) -> str | None:
        """Return the product as JSON, or ``None`` when no product has that key."""
        key = tool_input.strip()
        logger.info("[TOOLS] product_sku_lookup %s=%r", self._key_field, key)
        try:
            doc = await self._store.find_one(self._collection, {self._key_field: key}, {self._vector_field: 0})
        except CosmicWorksError as exc:
            raise ToolExecutionError(self.name, exc.message) from exc

        if doc is None:
            logger.info("[TOOLS] product_sku_lookup: no product with %s=%r.", self._key_field, key)
            return None
        return render_document(doc, excluded=(self._vector_field,))


def build_toolset(*tools: RetrievalTool) -> dict[str, RetrievalTool]:
    """Index tools by name; duplicate names are a configuration error."""
    toolset: dict[str, RetrievalTool] = {}
    for tool in tools:
        if tool.name in toolset:
            raise ValueError(f"Duplicate tool name: {tool.name}")
        toolset[tool.name] = tool
    return toolset
