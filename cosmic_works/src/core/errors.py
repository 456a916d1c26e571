"""
Cosmic Works - Error Taxonomy
==============================
Every failure the core can surface derives from ``CosmicWorksError`` so
callers can catch the whole family at one seam.  Low-level exceptions
(``pymongo``, ``httpx``, provider SDKs, timeouts) are translated into
these at the component boundary with ``raise ... from exc``.
"""

from __future__ import annotations


class CosmicWorksError(Exception):
    """Base class for all Cosmic Works errors."""

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)


class CompletionServiceError(CosmicWorksError):
    """The chat model call failed or timed out.  Not retried by the agent loop."""


class EmbeddingServiceError(CosmicWorksError):
    """The embedding call failed, timed out, or returned a vector of the wrong length."""


class StoreConnectionError(CosmicWorksError):
    """The document store is unreachable or rejected an operation."""


class FeedError(CosmicWorksError):
    """A raw ingestion feed could not be fetched or parsed."""


class ToolExecutionError(CosmicWorksError):
    """A retrieval tool failed; the current agent turn is aborted."""

    def __init__(self, tool_name: str, message: str) -> None:
        self.tool_name = tool_name
        super().__init__(f"Tool '{tool_name}' failed: {message}")


class AgentExhausted(CosmicWorksError):
    """The model kept requesting tools past the configured round limit."""

    def __init__(self, rounds: int) -> None:
        self.rounds = rounds
        super().__init__(f"Agent did not produce an answer within {rounds} tool-call round(s).")
