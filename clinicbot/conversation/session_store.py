"""
Process-local store of in-flight booking sessions, keyed by customer.

Sessions are not persisted: a restart drops every half-finished dialogue
and customers start again from the greeting.
"""

import asyncio
import logging
import time
import weakref
from typing import Optional

from clinicbot.schemas.session_schema import Session

logger = logging.getLogger(__name__)


class SessionStore:
    """
    Keyed session map plus one lock per customer.

    The lock serialises the steps of a single customer; different
    customers never contend with each other. A lock only lives while a
    step holds or awaits it, so customers who come and go leave nothing
    behind.
    """

    def __init__(self, idle_timeout_sec: float = 0.0) -> None:
        self._sessions: dict[str, Session] = {}
        self._locks: weakref.WeakValueDictionary[str, asyncio.Lock] = (
            weakref.WeakValueDictionary()
        )
        self._idle_timeout = idle_timeout_sec

    def get(self, customer_id: str) -> Optional[Session]:
        return self._sessions.get(customer_id)

    def set(self, customer_id: str, session: Session) -> None:
        session.touch()
        self._sessions[customer_id] = session

    def clear(self, customer_id: str) -> None:
        """Remove a session. Clearing an absent session is a no-op."""
        if self._sessions.pop(customer_id, None) is not None:
            logger.debug("Session cleared for %s", customer_id)

    def lock(self, customer_id: str) -> asyncio.Lock:
        lock = self._locks.get(customer_id)
        if lock is None:
            lock = self._locks[customer_id] = asyncio.Lock()
        return lock

    def evict_idle(self, now: Optional[float] = None) -> list[str]:
        """Drop sessions idle for longer than the timeout. Disabled when the timeout is 0."""
        if self._idle_timeout <= 0:
            return []
        now = time.monotonic() if now is None else now
        stale = [
            cid for cid, session in self._sessions.items()
            if now - session.updated_at > self._idle_timeout
        ]
        for cid in stale:
            del self._sessions[cid]
        if stale:
            logger.info("Evicted %d idle session(s)", len(stale))
        return stale

    @property
    def lock_count(self) -> int:
        """Locks currently held or awaited."""
        return len(self._locks)

    def __contains__(self, customer_id: str) -> bool:
        return customer_id in self._sessions

    def __len__(self) -> int:
        return len(self._sessions)
