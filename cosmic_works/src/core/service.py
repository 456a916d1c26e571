"""
Cosmic Works - Agent Service
=============================
The invocation surface of the agent: ``{prompt, session_id}`` in,
``{message}`` out.  Routes each request through the ``SessionRegistry``
to its ``AgentSession``.

A request without a ``session_id`` is a normal request on the shared
``ANONYMOUS_SESSION_ID`` session; that key is rejected when sent
explicitly.  ``AgentExhausted`` becomes a polite
"unable to complete" message; every other core error propagates to the
caller (the HTTP layer maps them to error responses).
"""

from __future__ import annotations

from pydantic import BaseModel, Field, field_validator

from cosmic_works.config.prompt_templates import EXHAUSTED_RESPONSE
from cosmic_works.src.core.errors import AgentExhausted
from cosmic_works.src.core.session_registry import SessionRegistry
from cosmic_works.src.utils.logger import get_logger

logger = get_logger(__name__)

ANONYMOUS_SESSION_ID = "__anonymous__"


class AgentRequest(BaseModel):
    """Agent invocation request."""

    prompt: str = Field(..., min_length=1, description="The customer's question.")
    session_id: str | None = Field(None, description="Conversation key; history is kept server-side per key.")

    @field_validator("session_id")
    @classmethod
    def _not_reserved(cls, v: str | None) -> str | None:
        if v == ANONYMOUS_SESSION_ID:
            raise ValueError(f"session_id '{ANONYMOUS_SESSION_ID}' is reserved for requests without a session id")
        return v


class AgentResponse(BaseModel):
    """Agent invocation response."""

    message: str = Field(..., description="Cosmo's answer.")


class AgentService:
    """
    Parameters
    ----------
    registry
        Registry resolving session ids to agent sessions.
    """

    __slots__ = ("_registry",)

    def __init__(self, registry: SessionRegistry) -> None:
        self._registry = registry


    @property
    def registry(self) -> SessionRegistry:
        return self._registry


    async def handle(self, request: AgentRequest) -> AgentResponse:
        session_id = request.session_id if request.session_id is not None else ANONYMOUS_SESSION_ID
        session = self._registry.get_or_create(session_id)
        try:
            answer = await session.run(request.prompt)
        except AgentExhausted as exc:
            logger.warning("[SERVICE] Session '%s': %s", session_id, exc.message)
            return AgentResponse(message=EXHAUSTED_RESPONSE)
        return AgentResponse(message=answer)
