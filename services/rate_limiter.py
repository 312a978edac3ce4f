"""
Failed-login rate limiting.

Two fixed-window counters are kept per login attempt:

- `login:attempts:<client>:<email>` caps failures from one client against one
  account (default 5 per 15 minutes).
- `login:lockout:<email>` caps failures against one account from anywhere
  (default 10 per hour), slowing down distributed credential stuffing.

A successful login clears both. Every cache failure lets the attempt through.
"""

import logfire

from typing import List, Optional, Tuple

from config.settings import Settings
from security.errors import AuthError, AuthErrorKind
from services.cache import CacheUnavailableError, KeyValueCache


class LoginRateLimiter:
    """Counts failed logins and blocks further attempts once a cap is reached."""

    def __init__(
        self,
        cache: KeyValueCache,
        window_seconds: int = 900,
        max_attempts: int = 5,
        lockout_window_seconds: int = 3600,
        lockout_max_attempts: int = 10,
    ):
        self.cache = cache
        self.window_seconds = window_seconds
        self.max_attempts = max_attempts
        self.lockout_window_seconds = lockout_window_seconds
        self.lockout_max_attempts = lockout_max_attempts

    @classmethod
    def from_settings(cls, cache: KeyValueCache, settings: Settings) -> "LoginRateLimiter":
        return cls(
            cache,
            window_seconds=settings.login_rate_limit_window,
            max_attempts=settings.login_rate_limit_max,
            lockout_window_seconds=settings.login_lockout_window,
            lockout_max_attempts=settings.login_lockout_max,
        )

    def _counters(self, email: str, client_address: Optional[str]) -> List[Tuple[str, int, int]]:
        """(key, cap, window) for every counter that applies to this attempt."""
        counters = [
            (f"login:attempts:{client_address or 'unknown'}:{email}", self.max_attempts, self.window_seconds)
        ]
        if self.lockout_max_attempts > 0:
            counters.append(
                (f"login:lockout:{email}", self.lockout_max_attempts, self.lockout_window_seconds)
            )
        return counters

    async def check(self, email: str, client_address: Optional[str] = None) -> None:
        """Raise if any counter for this attempt has reached its cap.

        Args:
            email (str): Normalised email of the target identity.
            client_address (Optional[str], optional): Address of the caller.

        Raises:
            AuthError: RATE_LIMITED with `retry_after` set to the seconds left in the window.
        """
        for key, cap, window in self._counters(email, client_address):
            try:
                raw = await self.cache.get(key)
                if raw is None or int(raw) < cap:
                    continue
                retry_after = await self.cache.ttl(key) or window
            except CacheUnavailableError as e:
                logfire.warning(f"Rate limiter unavailable, allowing login attempt: {str(e)}")
                return

            logfire.warning(f"Login attempts blocked for {email} ({key.split(':')[1]} limit reached)")
            raise AuthError(AuthErrorKind.RATE_LIMITED, retry_after=retry_after)

    async def record_failure(self, email: str, client_address: Optional[str] = None) -> None:
        for key, _, window in self._counters(email, client_address):
            try:
                await self.cache.incr(key, window)
            except CacheUnavailableError as e:
                logfire.warning(f"Could not record failed login attempt: {str(e)}")
                return

    async def clear(self, email: str, client_address: Optional[str] = None) -> None:
        for key, _, _ in self._counters(email, client_address):
            try:
                await self.cache.delete(key)
            except CacheUnavailableError as e:
                logfire.warning(f"Could not clear failed login counter: {str(e)}")
                return
