"""
In-memory TTL cache for routing (LLM) responses, with inflight deduplication.

- lookup/store: TTL entries keyed by a content hash of the exact LLM input
- begin_inflight/await_inflight: concurrent identical requests share one call

Eviction is FIFO by creation time, not LRU: reading an entry does not
protect it. Failures are never cached.
"""

import asyncio
import hashlib
import json
import logging
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable

from map_copilot.config import CACHE_ENABLED, CACHE_MAX_ENTRIES, CACHE_TTL_SEC

logger = logging.getLogger("uvicorn.error")


@dataclass(frozen=True)
class CacheEntry:
    value: Any
    created_at: float
    expires_at: float


def build_cache_key(model: str, prompt_version: str, messages: list[dict]) -> str:
    payload = json.dumps(
        {"model": model, "promptVersion": prompt_version, "messages": messages},
        sort_keys=True,
        ensure_ascii=False,
        separators=(",", ":"),
    )
    return hashlib.sha256(payload.encode("utf-8")).hexdigest()


class RequestCache:
    def __init__(
        self,
        ttl_sec: float = CACHE_TTL_SEC,
        max_entries: int = CACHE_MAX_ENTRIES,
        enabled: bool = CACHE_ENABLED,
        clock: Callable[[], float] = time.time,
    ):
        self.ttl_sec = ttl_sec
        self.max_entries = max_entries
        self._enabled = enabled
        self._clock = clock
        self._entries: dict[str, CacheEntry] = {}
        self._inflight: dict[str, asyncio.Task] = {}

    @property
    def enabled(self) -> bool:
        return self._enabled and self.ttl_sec > 0

    def __len__(self) -> int:
        return len(self._entries)

    # =========================
    # TTL entries
    # =========================
    def lookup(self, key: str):
        if not self.enabled:
            return None

        entry = self._entries.get(key)
        if entry is None:
            return None

        if entry.expires_at <= self._clock():
            self._entries.pop(key, None)
            return None

        return entry.value

    def store(self, key: str, value) -> None:
        if not self.enabled:
            return

        now = self._clock()
        self._prune(now, incoming=key)
        self._entries[key] = CacheEntry(value=value, created_at=now, expires_at=now + self.ttl_sec)

    def _prune(self, now: float, incoming: str | None = None) -> None:
        expired = [k for k, e in self._entries.items() if e.expires_at <= now]
        for k in expired:
            del self._entries[k]

        if incoming in self._entries:
            del self._entries[incoming]

        overflow = len(self._entries) + 1 - self.max_entries
        if overflow <= 0:
            return

        by_age = sorted(self._entries.items(), key=lambda kv: kv[1].created_at)
        for k, _ in by_age[:overflow]:
            del self._entries[k]
        logger.debug("request cache evicted %s entries", overflow)

    # =========================
    # Inflight deduplication
    # =========================
    def get_inflight(self, key: str) -> asyncio.Task | None:
        return self._inflight.get(key)

    def begin_inflight(self, key: str, call: Callable[[], Awaitable]) -> tuple[asyncio.Task, bool]:
        """
        Join the live call for `key`, or start `call()` as the one live call.

        Returns (task, is_owner). There is no await between the check and the
        registration, so only one caller can ever become the owner.
        """
        task = self.get_inflight(key)
        if task is not None:
            return task, False

        task = asyncio.ensure_future(self._run(key, call))
        self._inflight[key] = task
        return task, True

    async def await_inflight(self, key: str):
        task = self.get_inflight(key)
        if task is None:
            raise KeyError(key)
        # shield: a caller that goes away must not cancel the shared call
        return await asyncio.shield(task)

    async def _run(self, key: str, call: Callable[[], Awaitable]):
        # the entry is stored before the slot is dropped, with no await in between
        try:
            value = await call()
        except Exception as e:
            logger.warning("routing call failed, not cached: %s", e)
            raise
        else:
            self.store(key, value)
            return value
        finally:
            if self._inflight.get(key) is asyncio.current_task():
                del self._inflight[key]

    async def fetch(self, key: str, call: Callable[[], Awaitable]) -> tuple[Any, str]:
        """
        Cached value, shared inflight value, or a fresh upstream call.

        Returns (value, source) with source one of memory / inflight / upstream.
        """
        cached = self.lookup(key)
        if cached is not None:
            logger.debug("request cache hit %s", key[:12])
            return cached, "memory"

        task, is_owner = self.begin_inflight(key, call)
        value = await asyncio.shield(task)
        return value, "upstream" if is_owner else "inflight"
