"""
Token revocation ledger.

Revoked access and refresh tokens are kept in the key-value cache until they
would have expired anyway. The ledger fails open: while the cache is down a
token reads as "not revoked" so that an outage does not lock every user out.
"""

import hashlib

import logfire

from services.cache import CacheUnavailableError, KeyValueCache


class TokenRevocationLedger:
    """Blacklist of tokens invalidated before their natural expiry."""

    def __init__(self, cache: KeyValueCache, prefix: str = "revoked"):
        self.cache = cache
        self.prefix = prefix

    def _key(self, token: str) -> str:
        # Raw tokens never become cache keys
        digest = hashlib.sha256(token.encode("utf-8")).hexdigest()
        return f"{self.prefix}:{digest}"

    async def revoke(self, token: str, ttl_seconds: int) -> None:
        """Blacklist `token` for `ttl_seconds`.

        Args:
            token (str): The raw token.
            ttl_seconds (int): Remaining validity of the token.
        """
        try:
            await self.cache.set(self._key(token), "1", max(1, ttl_seconds))
        except CacheUnavailableError as e:
            logfire.error(f"Could not record token revocation: {str(e)}")

    async def claim(self, token: str, ttl_seconds: int) -> bool:
        """Atomically blacklist `token` unless it is already blacklisted.

        Used for refresh rotation: only the caller that gets `True` may mint a
        replacement pair.

        Args:
            token (str): The raw token.
            ttl_seconds (int): Remaining validity of the token.

        Returns:
            bool: True if this call revoked the token, False if it was already revoked.
        """
        try:
            return await self.cache.set(self._key(token), "1", max(1, ttl_seconds), nx=True)
        except CacheUnavailableError as e:
            logfire.error(f"Could not claim token for rotation, allowing it: {str(e)}")
            return True

    async def is_revoked(self, token: str) -> bool:
        try:
            return await self.cache.get(self._key(token)) is not None
        except CacheUnavailableError as e:
            logfire.warning(f"Revocation ledger unavailable, treating token as valid: {str(e)}")
            return False
