"""
Cosmic Works - Document Utilities
==================================
Helper functions for normalising raw feed documents and rendering
catalog documents as text for the embedding model and the agent.

These utilities are consumed by the ``IngestionPipeline`` and the
retrieval tools and should remain stateless and side-effect-free.
"""

from __future__ import annotations

import json
from collections.abc import Iterable, Mapping
from typing import Any

# ── Type Aliases ──────────────────────────────────────────────────────
Document = dict[str, Any]

# Fields prefixed with this marker are feed/system metadata (``_rid``, ``_ts`` …)
_SYSTEM_PREFIX = "_"


# ── Public API ─────────────────────────────────────────────────────────

def clean_document(raw: Mapping[str, Any], id_field: str = "id") -> Document:
    """
    Normalise one raw feed record for insertion.

    Steps:
        1. Drop every field whose name starts with ``_`` (Cosmos DB
           system properties such as ``_rid``, ``_etag``, ``_ts``).
        2. Rename ``id_field`` to ``_id`` so the feed identifier becomes
           the MongoDB primary key.

    Examples::

        {"id": "A1", "name": "Bike", "_ts": 17}  →  {"name": "Bike", "_id": "A1"}
        {"name": "Bike"}                         →  {"name": "Bike"}

    Args:
        raw:      One record from the source feed.
        id_field: Name of the identifier field in the feed.

    Returns:
        A new dict; ``raw`` is not modified.
    """
    cleaned: Document = {k: v for k, v in raw.items() if not k.startswith(_SYSTEM_PREFIX)}
    if id_field in cleaned:
        cleaned["_id"] = cleaned.pop(id_field)
    return cleaned


def strip_fields(doc: Mapping[str, Any], fields: Iterable[str]) -> Document:
    """Return a shallow copy of *doc* without *fields* (missing ones are ignored)."""
    excluded = set(fields)
    return {k: v for k, v in doc.items() if k not in excluded}


def embedding_text(doc: Mapping[str, Any], vector_field: str) -> str:
    """
    JSON text handed to the embedding model for *doc*.

    The vector field is always excluded so a document's vector never
    depends on a previous copy of itself.
    """
    return json.dumps(strip_fields(doc, [vector_field]), default=str, ensure_ascii=False)


def render_document(doc: Mapping[str, Any], excluded: Iterable[str] = ()) -> str:
    """Render *doc* as a single-line JSON string for the agent, minus *excluded* fields."""
    return json.dumps(strip_fields(doc, excluded), default=str, ensure_ascii=False)


def render_documents(docs: Iterable[Mapping[str, Any]], excluded: Iterable[str] = ()) -> str:
    """Newline-joined ``render_document`` output; empty string for no documents."""
    excluded = tuple(excluded)
    return "\n".join(render_document(d, excluded) for d in docs)


def split_by_type(docs: Iterable[Document], type_field: str = "type") -> dict[str, list[Document]]:
    """
    Group documents by the value of *type_field*.

    The Cosmic Works customer feed mixes ``customer`` and ``salesOrder``
    records in one file; this separates them.  Documents without the
    field are grouped under ``""``.
    """
    groups: dict[str, list[Document]] = {}
    for doc in docs:
        groups.setdefault(str(doc.get(type_field, "")), []).append(doc)
    return groups
