"""
Cosmic Works - Session Registry
================================
Maps an opaque session id to exactly one ``AgentSession``, created on
first use and kept in process memory.

The registry is bounded:
  • **Capacity** — least-recently-used sessions are evicted once
    ``capacity`` live sessions exist.
  • **TTL** — a session idle for longer than ``ttl_seconds`` is dropped
    on the next access to the registry (``None`` disables expiry).

``get_or_create`` is atomic: the check and the insert happen under one
lock with a re-check, so concurrent requests carrying the same unseen
id always share a single session.
"""

from __future__ import annotations

import threading
import time
from collections import OrderedDict
from collections.abc import Callable
from dataclasses import dataclass

from cosmic_works.src.core.agent import AgentSession
from cosmic_works.src.utils.logger import get_logger

logger = get_logger(__name__)

SessionFactory = Callable[[str], AgentSession]


@dataclass(slots=True)
class _Entry:
    session: AgentSession
    last_used: float


class SessionRegistry:
    """
    Bounded, concurrency-safe session cache.

    Parameters
    ----------
    factory
        Builds a new ``AgentSession`` for a session id.
    capacity
        Maximum number of sessions held.
    ttl_seconds
        Idle expiry in seconds, or ``None``.
    clock
        Monotonic time source.  Defaults to ``time.monotonic``.
    """

    __slots__ = ("_factory", "_capacity", "_ttl", "_clock", "_entries", "_lock")

    def __init__(self, factory: SessionFactory, capacity: int = 1024, ttl_seconds: float | None = None, clock: Callable[[], float] | None = None) -> None:
        if capacity < 1:
            raise ValueError(f"capacity must be ≥ 1, got {capacity}")
        self._factory = factory
        self._capacity = capacity
        self._ttl = ttl_seconds
        self._clock = clock or time.monotonic
        self._entries: OrderedDict[str, _Entry] = OrderedDict()
        self._lock = threading.Lock()


    def get_or_create(self, session_id: str) -> AgentSession:
        """Return the session for *session_id*, creating it if unseen (or expired)."""
        with self._lock:
            now = self._clock()
            self._expire(now)

            entry = self._entries.get(session_id)
            if entry is not None:
                entry.last_used = now
                self._entries.move_to_end(session_id)
                return entry.session

            session = self._factory(session_id)
            self._entries[session_id] = _Entry(session=session, last_used=now)
            logger.info("[SESSIONS] Created session '%s' (%d live).", session_id, len(self._entries))

            while len(self._entries) > self._capacity:
                evicted_id, _ = self._entries.popitem(last=False)
                logger.info("[SESSIONS] Evicted least-recently-used session '%s'.", evicted_id)

            return session


    def get(self, session_id: str) -> AgentSession | None:
        """Return the live session for *session_id* without creating or touching it."""
        with self._lock:
            self._expire(self._clock())
            entry = self._entries.get(session_id)
            return entry.session if entry is not None else None


    def discard(self, session_id: str) -> bool:
        """Drop a session.  Returns True if it existed."""
        with self._lock:
            removed = self._entries.pop(session_id, None) is not None
        if removed:
            logger.info("[SESSIONS] Discarded session '%s'.", session_id)
        return removed


    def _expire(self, now: float) -> None:
        """Remove idle sessions.  Caller holds the lock."""
        if self._ttl is None:
            return
        # Entries are kept in last-used order, so expired ones sit at the front
        while self._entries:
            session_id, entry = next(iter(self._entries.items()))
            if now - entry.last_used <= self._ttl:
                break
            del self._entries[session_id]
            logger.info("[SESSIONS] Expired idle session '%s'.", session_id)


    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


    def __contains__(self, session_id: object) -> bool:
        with self._lock:
            return session_id in self._entries


    def __repr__(self) -> str:
        return f"SessionRegistry(live={len(self)}, capacity={self._capacity}, ttl={self._ttl})"
