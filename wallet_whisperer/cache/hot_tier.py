"""
Hot tier: latest profile per wallet in Redis, or in process memory.

The hot tier may lose data at any time. Connection and command errors surface
as CacheUnavailable so the orchestrator can treat them as a miss.
"""

from __future__ import annotations

import json
import math
import time
from collections import OrderedDict
from typing import Callable, Protocol

from redis.asyncio import Redis
from redis.exceptions import RedisError

from wallet_whisperer.analysis_engine.models import WalletProfile
from wallet_whisperer.cache.entry import CacheEntry
from wallet_whisperer.core.exceptions import CacheUnavailable
from wallet_whisperer.whisperer_logging import get_logger

logger = get_logger(__name__)

DEFAULT_KEY_PREFIX = "whisperer:profile:"
DEFAULT_MAX_ENTRIES = 10_000


class HotTier(Protocol):
    async def get(self, key: str) -> CacheEntry[WalletProfile] | None: ...

    async def set(self, key: str, entry: CacheEntry[WalletProfile]) -> None: ...

    async def delete(self, key: str) -> None: ...


def _encode(entry: CacheEntry[WalletProfile]) -> str:
    return json.dumps(entry.to_dict(lambda p: p.to_dict()), separators=(",", ":"))


def _decode(raw: str | bytes) -> CacheEntry[WalletProfile]:
    if isinstance(raw, bytes):
        raw = raw.decode("utf-8")
    return CacheEntry.from_dict(json.loads(raw), WalletProfile.from_dict)


class RedisHotTier:
    """
    Redis-backed hot tier. Values are JSON; Redis expiry is set from the entry TTL
    so expired entries are evicted server-side.
    """

    def __init__(self, client: Redis, prefix: str = DEFAULT_KEY_PREFIX) -> None:
        self._client = client
        self._prefix = prefix

    @classmethod
    def from_url(cls, url: str, prefix: str = DEFAULT_KEY_PREFIX) -> "RedisHotTier":
        client = Redis.from_url(url, socket_connect_timeout=2, socket_timeout=2)
        return cls(client, prefix=prefix)

    def _key(self, key: str) -> str:
        return f"{self._prefix}{key}"

    async def get(self, key: str) -> CacheEntry[WalletProfile] | None:
        try:
            raw = await self._client.get(self._key(key))
        except RedisError as e:
            raise CacheUnavailable(f"redis get failed: {e}", key=key) from e
        if raw is None:
            return None
        try:
            return _decode(raw)
        except (ValueError, KeyError, TypeError) as e:
            logger.warning("hot_tier_corrupt_entry", key=key, error=str(e))
            return None

    async def set(self, key: str, entry: CacheEntry[WalletProfile]) -> None:
        ex = max(1, math.ceil(entry.ttl))
        try:
            await self._client.set(self._key(key), _encode(entry), ex=ex)
        except RedisError as e:
            raise CacheUnavailable(f"redis set failed: {e}", key=key) from e

    async def delete(self, key: str) -> None:
        try:
            await self._client.delete(self._key(key))
        except RedisError as e:
            raise CacheUnavailable(f"redis delete failed: {e}", key=key) from e

    async def ping(self) -> bool:
        try:
            return bool(await self._client.ping())
        except RedisError:
            return False

    async def close(self) -> None:
        await self._client.aclose()


class InMemoryHotTier:
    """
    Process-local hot tier used when Redis is disabled and in tests.

    LRU-bounded; expired entries are evicted on read.
    """

    def __init__(self, max_entries: int = DEFAULT_MAX_ENTRIES, clock: Callable[[], float] = time.time) -> None:
        self._entries: OrderedDict[str, CacheEntry[WalletProfile]] = OrderedDict()
        self._max_entries = max(1, max_entries)
        self._clock = clock

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: object) -> bool:
        return key in self._entries

    async def get(self, key: str) -> CacheEntry[WalletProfile] | None:
        entry = self._entries.get(key)
        if entry is None:
            return None
        if not entry.is_live(self._clock()):
            del self._entries[key]
            return None
        self._entries.move_to_end(key)
        return entry

    async def set(self, key: str, entry: CacheEntry[WalletProfile]) -> None:
        self._entries[key] = entry
        self._entries.move_to_end(key)
        while len(self._entries) > self._max_entries:
            self._entries.popitem(last=False)

    async def delete(self, key: str) -> None:
        self._entries.pop(key, None)

    async def ping(self) -> bool:
        return True

    async def close(self) -> None:
        self._entries.clear()
