"""
Durable store adapter for the compute queue.

The queue only needs a narrow slice of a key/value server: hashes for job
records and daily statistics, lists for the pending/processing/completed/failed
sets, counters, expiry, and one atomic blocking move used to claim work.
"""

import asyncio
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Protocol

import redis.asyncio as redis
from redis.exceptions import RedisError

from manpower_api.config.logging import get_logger
from manpower_api.config.settings import Settings, StoreBackend
from manpower_api.v1.core.exceptions import StoreUnavailableError

logger = get_logger(__name__)


class Store(Protocol):
    """Protocol for queue store backends."""

    async def ping(self) -> bool: ...

    async def close(self) -> None: ...

    async def hset_many(self, key: str, mapping: dict[str, str]) -> None: ...

    async def hgetall(self, key: str) -> dict[str, str]: ...

    async def hset(self, key: str, field: str, value: str) -> None: ...

    async def hincrby(self, key: str, field: str, amount: int = 1) -> int: ...

    async def rpush(self, key: str, value: str) -> int: ...

    async def lpush(self, key: str, value: str) -> int: ...

    async def lrem(self, key: str, value: str, count: int = 0) -> int: ...

    async def lrange(self, key: str, start: int, stop: int) -> list[str]: ...

    async def llen(self, key: str) -> int: ...

    async def blocking_move(
        self, source: str, destination: str, timeout: float
    ) -> str | None:
        """Pop the head of ``source`` and push it to the tail of ``destination``."""
        ...

    async def expire(self, key: str, seconds: int) -> bool: ...

    async def persist(self, key: str) -> bool: ...

    async def delete(self, *keys: str) -> int: ...

    async def set_if_absent(self, key: str, value: str, ttl_s: int) -> bool: ...

    async def delete_if_equals(self, key: str, value: str) -> bool: ...


class MemoryStore:
    """
    In-process store for development and tests.

    Mirrors the Redis semantics the queue depends on (FIFO lists, hash
    counters, per-key expiry). State does not survive a restart.
    """

    def __init__(self) -> None:
        self._hashes: dict[str, dict[str, str]] = {}
        self._lists: dict[str, list[str]] = {}
        self._strings: dict[str, str] = {}
        self._expires_at: dict[str, float] = {}
        self._list_changed = asyncio.Condition()

    def _evict_if_expired(self, key: str) -> None:
        expires_at = self._expires_at.get(key)
        if expires_at is not None and time.monotonic() >= expires_at:
            self._drop(key)

    def _drop(self, key: str) -> bool:
        existed = False
        for space in (self._hashes, self._lists, self._strings):
            if space.pop(key, None) is not None:
                existed = True
        self._expires_at.pop(key, None)
        return existed

    def _exists(self, key: str) -> bool:
        self._evict_if_expired(key)
        return key in self._hashes or key in self._lists or key in self._strings

    async def _notify(self) -> None:
        async with self._list_changed:
            self._list_changed.notify_all()

    async def ping(self) -> bool:
        return True

    async def close(self) -> None:
        return None

    async def hset_many(self, key: str, mapping: dict[str, str]) -> None:
        self._evict_if_expired(key)
        self._hashes.setdefault(key, {}).update(mapping)

    async def hgetall(self, key: str) -> dict[str, str]:
        self._evict_if_expired(key)
        return dict(self._hashes.get(key, {}))

    async def hset(self, key: str, field: str, value: str) -> None:
        await self.hset_many(key, {field: value})

    async def hincrby(self, key: str, field: str, amount: int = 1) -> int:
        self._evict_if_expired(key)
        bucket = self._hashes.setdefault(key, {})
        value = int(bucket.get(field, "0")) + amount
        bucket[field] = str(value)
        return value

    async def rpush(self, key: str, value: str) -> int:
        self._evict_if_expired(key)
        items = self._lists.setdefault(key, [])
        items.append(value)
        await self._notify()
        return len(items)

    async def lpush(self, key: str, value: str) -> int:
        self._evict_if_expired(key)
        items = self._lists.setdefault(key, [])
        items.insert(0, value)
        await self._notify()
        return len(items)

    async def lrem(self, key: str, value: str, count: int = 0) -> int:
        self._evict_if_expired(key)
        items = self._lists.get(key)
        if not items:
            return 0

        removed = 0
        kept: list[str] = []
        for item in items:
            if item == value and (count == 0 or removed < count):
                removed += 1
                continue
            kept.append(item)

        if kept:
            self._lists[key] = kept
        else:
            self._drop(key)
        return removed

    async def lrange(self, key: str, start: int, stop: int) -> list[str]:
        self._evict_if_expired(key)
        items = self._lists.get(key, [])
        # Redis ranges are inclusive and accept -1 for the last element
        end = len(items) if stop == -1 else stop + 1
        return list(items[start:end])

    async def llen(self, key: str) -> int:
        self._evict_if_expired(key)
        return len(self._lists.get(key, []))

    def _move_head(self, source: str, destination: str) -> str | None:
        self._evict_if_expired(source)
        items = self._lists.get(source)
        if not items:
            return None

        value = items.pop(0)
        if not items:
            self._drop(source)
        self._evict_if_expired(destination)
        self._lists.setdefault(destination, []).append(value)
        return value

    async def blocking_move(
        self, source: str, destination: str, timeout: float
    ) -> str | None:
        deadline = time.monotonic() + timeout
        async with self._list_changed:
            while True:
                value = self._move_head(source, destination)
                if value is not None:
                    return value

                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    return None
                try:
                    await asyncio.wait_for(self._list_changed.wait(), remaining)
                except TimeoutError:
                    return None

    async def expire(self, key: str, seconds: int) -> bool:
        if not self._exists(key):
            return False
        self._expires_at[key] = time.monotonic() + seconds
        return True

    async def persist(self, key: str) -> bool:
        if not self._exists(key):
            return False
        return self._expires_at.pop(key, None) is not None

    async def delete(self, *keys: str) -> int:
        return sum(1 for key in keys if self._exists(key) and self._drop(key))

    async def set_if_absent(self, key: str, value: str, ttl_s: int) -> bool:
        if self._exists(key):
            return False
        self._strings[key] = value
        self._expires_at[key] = time.monotonic() + ttl_s
        return True

    async def delete_if_equals(self, key: str, value: str) -> bool:
        if self._exists(key) and self._strings.get(key) == value:
            self._drop(key)
            return True
        return False


_DELETE_IF_EQUALS = """
if redis.call('get', KEYS[1]) == ARGV[1] then
    return redis.call('del', KEYS[1])
end
return 0
"""


class RedisStore:
    """Redis-backed store used in production."""

    def __init__(self, url: str):
        self.url = url
        self.client = redis.from_url(url, decode_responses=True)
        self._delete_if_equals = self.client.register_script(_DELETE_IF_EQUALS)

    @asynccontextmanager
    async def _guard(self, operation: str) -> AsyncIterator[None]:
        try:
            yield
        except RedisError as e:
            raise StoreUnavailableError(
                f"Store operation {operation} failed: {e}",
                {"operation": operation},
            ) from e

    async def ping(self) -> bool:
        async with self._guard("ping"):
            return bool(await self.client.ping())

    async def close(self) -> None:
        await self.client.aclose()

    async def hset_many(self, key: str, mapping: dict[str, str]) -> None:
        async with self._guard("hset"):
            await self.client.hset(key, mapping=mapping)

    async def hgetall(self, key: str) -> dict[str, str]:
        async with self._guard("hgetall"):
            return await self.client.hgetall(key)

    async def hset(self, key: str, field: str, value: str) -> None:
        async with self._guard("hset"):
            await self.client.hset(key, field, value)

    async def hincrby(self, key: str, field: str, amount: int = 1) -> int:
        async with self._guard("hincrby"):
            return await self.client.hincrby(key, field, amount)

    async def rpush(self, key: str, value: str) -> int:
        async with self._guard("rpush"):
            return await self.client.rpush(key, value)

    async def lpush(self, key: str, value: str) -> int:
        async with self._guard("lpush"):
            return await self.client.lpush(key, value)

    async def lrem(self, key: str, value: str, count: int = 0) -> int:
        async with self._guard("lrem"):
            return await self.client.lrem(key, count, value)

    async def lrange(self, key: str, start: int, stop: int) -> list[str]:
        async with self._guard("lrange"):
            return await self.client.lrange(key, start, stop)

    async def llen(self, key: str) -> int:
        async with self._guard("llen"):
            return await self.client.llen(key)

    async def blocking_move(
        self, source: str, destination: str, timeout: float
    ) -> str | None:
        async with self._guard("blmove"):
            return await self.client.blmove(
                source, destination, timeout, src="LEFT", dest="RIGHT"
            )

    async def expire(self, key: str, seconds: int) -> bool:
        async with self._guard("expire"):
            return bool(await self.client.expire(key, seconds))

    async def persist(self, key: str) -> bool:
        async with self._guard("persist"):
            return bool(await self.client.persist(key))

    async def delete(self, *keys: str) -> int:
        if not keys:
            return 0
        async with self._guard("delete"):
            return await self.client.delete(*keys)

    async def set_if_absent(self, key: str, value: str, ttl_s: int) -> bool:
        async with self._guard("set"):
            return bool(await self.client.set(key, value, nx=True, ex=ttl_s))

    async def delete_if_equals(self, key: str, value: str) -> bool:
        async with self._guard("eval"):
            return bool(await self._delete_if_equals(keys=[key], args=[value]))


def create_store(settings: Settings) -> Store:
    """Build the store backend selected by settings."""
    if settings.store_backend == StoreBackend.REDIS:
        logger.info("Using redis queue store", url=settings.redis_url)
        return RedisStore(settings.redis_url)

    logger.info("Using in-memory queue store")
    return MemoryStore()

