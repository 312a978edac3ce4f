"""Key-value cache backends.

`RedisCache` is used in production, `InMemoryCache` for local development
and tests. Both raise `CacheUnavailableError` when they cannot answer; every
consumer in this service decides for itself how to fail open.
"""

import time
import asyncio

import logfire

import redis.asyncio as aioredis
from redis.exceptions import RedisError

from typing import Awaitable, Callable, Dict, Optional, Protocol, Tuple, TypeVar

T = TypeVar("T")


class CacheUnavailableError(Exception):
    """Raised when the cache backend errors or does not answer in time."""


class KeyValueCache(Protocol):
    """Minimal cache interface required by the authentication core."""

    async def get(self, key: str) -> Optional[str]: ...

    async def set(self, key: str, value: str, ttl: int, nx: bool = False, xx: bool = False) -> bool: ...

    async def delete(self, key: str) -> None: ...

    async def incr(self, key: str, ttl: int) -> int: ...

    async def ttl(self, key: str) -> Optional[int]: ...

    async def close(self) -> None: ...


class RedisCache:
    """Redis backed cache with a hard timeout on every operation."""

    def __init__(self, client: aioredis.Redis, operation_timeout: float = 0.5):
        self.client = client
        self.operation_timeout = operation_timeout

    @classmethod
    def from_url(cls, redis_url: str, operation_timeout: float = 0.5) -> "RedisCache":
        client = aioredis.from_url(
            redis_url,
            decode_responses=True,
            socket_timeout=operation_timeout,
            socket_connect_timeout=operation_timeout,
        )
        return cls(client, operation_timeout)

    async def _run(self, operation: str, call: Callable[[], Awaitable[T]]) -> T:
        try:
            return await asyncio.wait_for(call(), timeout=self.operation_timeout)
        except asyncio.TimeoutError as e:
            raise CacheUnavailableError(f"Redis {operation} timed out") from e
        except (RedisError, OSError) as e:
            raise CacheUnavailableError(f"Redis {operation} failed: {e}") from e

    async def get(self, key: str) -> Optional[str]:
        return await self._run("get", lambda: self.client.get(key))

    async def set(self, key: str, value: str, ttl: int, nx: bool = False, xx: bool = False) -> bool:
        result = await self._run(
            "set", lambda: self.client.set(key, value, ex=max(1, ttl), nx=nx, xx=xx)
        )
        return bool(result)

    async def delete(self, key: str) -> None:
        await self._run("delete", lambda: self.client.delete(key))

    async def incr(self, key: str, ttl: int) -> int:
        async def _incr() -> int:
            # * INCR and EXPIRE commit together; NX keeps the window opened by the first hit
            async with self.client.pipeline(transaction=True) as pipe:
                pipe.incr(key)
                pipe.expire(key, max(1, ttl), nx=True)
                count, _ = await pipe.execute()
            return count

        return await self._run("incr", _incr)

    async def ttl(self, key: str) -> Optional[int]:
        remaining = await self._run("ttl", lambda: self.client.ttl(key))
        # -2: no such key, -1: key without expiry
        return remaining if remaining is not None and remaining >= 0 else None

    async def ping(self) -> bool:
        return await self._run("ping", lambda: self.client.ping())

    async def close(self) -> None:
        try:
            await self.client.aclose()
        except (RedisError, OSError) as e:
            logfire.warning(f"Error closing Redis connection: {str(e)}")


class InMemoryCache:
    """Process-local cache with the same semantics as `RedisCache`.

    Every operation runs without awaiting, so each one is atomic with respect
    to other tasks on the event loop.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self.clock = clock
        self._entries: Dict[str, Tuple[str, float]] = {}

    def _live(self, key: str) -> Optional[Tuple[str, float]]:
        entry = self._entries.get(key)
        if entry is None:
            return None
        if entry[1] <= self.clock():
            del self._entries[key]
            return None
        return entry

    async def get(self, key: str) -> Optional[str]:
        entry = self._live(key)
        return entry[0] if entry else None

    async def set(self, key: str, value: str, ttl: int, nx: bool = False, xx: bool = False) -> bool:
        live = self._live(key) is not None
        if (nx and live) or (xx and not live):
            return False
        self._entries[key] = (value, self.clock() + max(1, ttl))
        return True

    async def delete(self, key: str) -> None:
        self._entries.pop(key, None)

    async def incr(self, key: str, ttl: int) -> int:
        entry = self._live(key)
        if entry is None:
            self._entries[key] = ("1", self.clock() + max(1, ttl))
            return 1
        count = int(entry[0]) + 1
        self._entries[key] = (str(count), entry[1])
        return count

    async def ttl(self, key: str) -> Optional[int]:
        entry = self._live(key)
        if entry is None:
            return None
        return max(0, int(round(entry[1] - self.clock())))

    async def close(self) -> None:
        self._entries.clear()
