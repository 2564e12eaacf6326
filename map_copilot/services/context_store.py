import asyncio
import time
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Callable

from cachetools import TTLCache

from map_copilot.config import SESSION_CONTEXT_MAX, SESSION_CONTEXT_TTL_SEC


@dataclass(frozen=True)
class NearbySearchContext:
    """Parameters of the last completed nearby search of one session."""

    keyword: str | None
    place_type: str | None
    radius: int
    min_rating: float | None
    lat: float
    lng: float
    label: str


class ConversationContextStore:
    """
    One slot per session, not a history.

    A follow-up like "only 4 stars and up" makes sense right after a nearby
    search, so every other tool clears the session's slot when it runs.
    Session ids come from the client: slots expire after `ttl_sec` and at most
    `max_sessions` are kept. A session's lock only exists while someone holds
    or waits for it.
    """

    def __init__(
        self,
        max_sessions: int = SESSION_CONTEXT_MAX,
        ttl_sec: float = SESSION_CONTEXT_TTL_SEC,
        timer: Callable[[], float] = time.monotonic,
    ):
        self._contexts: TTLCache = TTLCache(maxsize=max_sessions, ttl=ttl_sec, timer=timer)
        self._locks: dict[str, asyncio.Lock] = {}
        self._lock_users: dict[str, int] = {}

    def get(self, session_id: str) -> NearbySearchContext | None:
        return self._contexts.get(session_id)

    def set(self, session_id: str, context: NearbySearchContext) -> None:
        self._contexts[session_id] = context

    def clear(self, session_id: str) -> None:
        self._contexts.pop(session_id, None)

    @asynccontextmanager
    async def session_lock(self, session_id: str):
        # nearby searches of one session run one at a time so the stored
        # context always belongs to the search that finished last
        lock = self._locks.get(session_id)
        if lock is None:
            lock = self._locks[session_id] = asyncio.Lock()
        self._lock_users[session_id] = self._lock_users.get(session_id, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._lock_users[session_id] -= 1
            if not self._lock_users[session_id]:
                del self._lock_users[session_id]
                del self._locks[session_id]

    def __len__(self) -> int:
        return len(self._contexts)
