"""
General request throttle.

Every client address gets a token bucket: `requests_per_minute` tokens are
added per minute up to `bucket_capacity`, and each request spends one. A
request that finds the bucket empty gets a 429 error envelope with a
`Retry-After` header. This runs in front of every route and is independent
of the failed-login limiter.
"""

import time

import logfire

from threading import Lock
from typing import Callable, Dict, Iterable, Optional

from fastapi import FastAPI, Request, Response, status
from starlette.middleware.base import BaseHTTPMiddleware

from middleware.error_handler import error_response


class TokenBucket:
    """Refills continuously at `refill_rate` tokens per second, up to `capacity`."""

    def __init__(self, capacity: int, refill_rate: float, clock: Callable[[], float] = time.monotonic):
        self.capacity = capacity
        self.refill_rate = refill_rate
        self.clock = clock
        self.tokens = float(capacity)
        self.last_refill = clock()
        self.lock = Lock()

    def _refill(self) -> None:
        now = self.clock()
        self.tokens = min(self.capacity, self.tokens + (now - self.last_refill) * self.refill_rate)
        self.last_refill = now

    def consume(self, tokens: int = 1) -> bool:
        """Spend `tokens` if available.

        Returns:
            bool: True if the tokens were spent, False if the bucket is short.
        """
        with self.lock:
            self._refill()
            if self.tokens >= tokens:
                self.tokens -= tokens
                return True
            return False

    def available(self) -> float:
        with self.lock:
            self._refill()
            return self.tokens

    def is_idle(self, idle_seconds: float) -> bool:
        """Full and untouched for `idle_seconds`."""
        with self.lock:
            return self.tokens >= self.capacity and self.clock() - self.last_refill > idle_seconds


class RateLimitMiddleware(BaseHTTPMiddleware):
    """Per-client token bucket throttle."""

    def __init__(
        self,
        app: FastAPI,
        requests_per_minute: int = 100,
        bucket_capacity: Optional[int] = None,
        cleanup_interval: int = 3600,
        exclude_paths: Optional[Iterable[str]] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        Args:
            app: FastAPI application instance
            requests_per_minute: Sustained requests allowed per client
            bucket_capacity: Burst size (default: same as requests_per_minute)
            cleanup_interval: Seconds between sweeps of idle buckets
            exclude_paths: Paths that are never throttled
            clock: Monotonic clock in seconds
        """
        super().__init__(app)

        self.requests_per_minute = requests_per_minute
        self.bucket_capacity = bucket_capacity or requests_per_minute
        self.refill_rate = requests_per_minute / 60.0
        self.cleanup_interval = cleanup_interval
        self.exclude_paths = set(exclude_paths or ())
        self.clock = clock

        self.buckets: Dict[str, TokenBucket] = {}
        self.bucket_lock = Lock()
        self.last_cleanup = clock()

        logfire.info(
            f"Request throttle initialized: {requests_per_minute} req/min, "
            f"capacity: {self.bucket_capacity}"
        )

    @staticmethod
    def _client_id(request: Request) -> str:
        # Forwarded addresses are resolved by ProxyHeadersMiddleware for trusted proxies only
        return request.client.host if request.client else "unknown"

    def _bucket(self, client_id: str) -> TokenBucket:
        with self.bucket_lock:
            bucket = self.buckets.get(client_id)
            if bucket is None:
                bucket = TokenBucket(self.bucket_capacity, self.refill_rate, clock=self.clock)
                self.buckets[client_id] = bucket
            return bucket

    def _cleanup(self) -> None:
        now = self.clock()
        if now - self.last_cleanup < self.cleanup_interval:
            return

        with self.bucket_lock:
            idle = [client_id for client_id, bucket in self.buckets.items() if bucket.is_idle(self.cleanup_interval)]
            for client_id in idle:
                del self.buckets[client_id]
            self.last_cleanup = now

        if idle:
            logfire.debug(f"Removed {len(idle)} idle request throttle buckets")

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        if request.url.path in self.exclude_paths:
            return await call_next(request)

        self._cleanup()

        client_id = self._client_id(request)
        bucket = self._bucket(client_id)

        if not bucket.consume():
            logfire.warning(f"Request throttle exceeded for {client_id} on {request.url.path}")
            retry_after = int(1 / self.refill_rate) + 1
            return error_response(
                status_code=status.HTTP_429_TOO_MANY_REQUESTS,
                message=f"Too many requests. Maximum {self.requests_per_minute} requests per minute allowed.",
                retry_after=retry_after,
                headers={
                    "Retry-After": str(retry_after),
                    "X-RateLimit-Limit": str(self.requests_per_minute),
                    "X-RateLimit-Remaining": "0",
                },
            )

        response = await call_next(request)
        response.headers["X-RateLimit-Limit"] = str(self.requests_per_minute)
        response.headers["X-RateLimit-Remaining"] = str(int(bucket.available()))
        return response
