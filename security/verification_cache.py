"""
In-process cache of verified access tokens.

Signature verification runs once per token per short window; repeat requests
with the same token reuse the decoded claims. The cache is bounded (least
recently used entries are evicted first) and time-boxed (entries expire with
the token or after `ttl_seconds`, whichever is sooner, and idle entries are
swept periodically).
"""

import time
import asyncio

import logfire

from collections import OrderedDict
from dataclasses import dataclass
from threading import Lock
from typing import Callable, Optional

from schema.security import TokenClaims


@dataclass
class _Entry:
    claims: TokenClaims
    expires: float
    last_accessed: float


class VerificationCache:
    """Thread-safe LRU map from raw token to verified claims."""

    def __init__(
        self,
        ttl_seconds: int = 300,
        max_entries: int = 1000,
        evict_batch: int = 100,
        idle_seconds: int = 1800,
        clock: Callable[[], float] = time.time,
    ):
        """
        Args:
            ttl_seconds: Maximum lifetime of an entry
            max_entries: Size above which the least recently used entries are evicted
            evict_batch: Number of entries evicted at once on overflow
            idle_seconds: Entries not read for this long are dropped by `sweep`
            clock: Wall clock in seconds, comparable with token `exp` claims
        """
        self.ttl_seconds = ttl_seconds
        self.max_entries = max_entries
        self.evict_batch = max(1, evict_batch)
        self.idle_seconds = idle_seconds
        self.clock = clock

        self._entries: "OrderedDict[str, _Entry]" = OrderedDict()
        self._lock = Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def get(self, token: str) -> Optional[TokenClaims]:
        now = self.clock()
        with self._lock:
            entry = self._entries.get(token)
            if entry is None:
                return None
            if now >= entry.expires:
                del self._entries[token]
                return None
            entry.last_accessed = now
            self._entries.move_to_end(token)
            return entry.claims

    def put(self, token: str, claims: TokenClaims) -> None:
        now = self.clock()
        expires = min(now + self.ttl_seconds, float(claims.exp))
        if expires <= now:
            return

        with self._lock:
            self._entries[token] = _Entry(claims=claims, expires=expires, last_accessed=now)
            self._entries.move_to_end(token)

            if len(self._entries) > self.max_entries:
                for _ in range(min(self.evict_batch, len(self._entries))):
                    self._entries.popitem(last=False)

    def discard(self, token: str) -> None:
        with self._lock:
            self._entries.pop(token, None)

    def sweep(self) -> int:
        """Drop expired and idle entries.

        Returns:
            int: Number of entries removed.
        """
        now = self.clock()
        with self._lock:
            stale = [
                token
                for token, entry in self._entries.items()
                if now >= entry.expires or now - entry.last_accessed > self.idle_seconds
            ]
            for token in stale:
                del self._entries[token]

        if stale:
            logfire.debug(f"Swept {len(stale)} entries from the token verification cache")
        return len(stale)

    async def run_sweeper(self, interval_seconds: float) -> None:
        """Sweep forever every `interval_seconds`; cancel the task to stop."""
        while True:
            await asyncio.sleep(interval_seconds)
            self.sweep()
