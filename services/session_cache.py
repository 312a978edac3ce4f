"""Short-lived identity projections kept in the key-value cache."""

import logfire

from datetime import datetime, timezone

from pydantic import ValidationError

from typing import Optional

from schema.users import IdentityRecord, SessionEntry
from services.cache import CacheUnavailableError, KeyValueCache
from services.user_repository import UserRepository


class SessionCache:
    """Caches `SessionEntry` objects by identity id.

    A miss, a corrupt entry and an unavailable cache all look the same to
    callers: `get` returns None and they fall back to the credential store.
    """

    def __init__(self, cache: KeyValueCache, ttl_seconds: int = 300, prefix: str = "session:user"):
        self.cache = cache
        self.ttl_seconds = ttl_seconds
        self.prefix = prefix

    def _key(self, identity_id: str) -> str:
        return f"{self.prefix}:{identity_id}"

    async def get(self, identity_id: str) -> Optional[SessionEntry]:
        try:
            raw = await self.cache.get(self._key(identity_id))
        except CacheUnavailableError as e:
            logfire.warning(f"Session cache unavailable, falling back to store: {str(e)}")
            return None

        if raw is None:
            return None

        try:
            return SessionEntry.model_validate_json(raw)
        except ValidationError:
            logfire.warning(f"Discarding corrupt session cache entry for user {identity_id}")
            await self.invalidate(identity_id)
            return None

    async def put(self, entry: SessionEntry) -> None:
        try:
            await self.cache.set(self._key(entry.id), entry.model_dump_json(), self.ttl_seconds)
        except CacheUnavailableError as e:
            logfire.warning(f"Could not populate session cache: {str(e)}")

    async def store_identity(self, identity: IdentityRecord) -> SessionEntry:
        entry = SessionEntry.from_identity(identity, datetime.now(timezone.utc))
        await self.put(entry)
        return entry

    async def resolve(self, identity_id: str, repository: UserRepository) -> Optional[SessionEntry]:
        """Cached entry for `identity_id`, loading it from `repository` on a miss.

        Args:
            identity_id (str): Id of the identity to resolve.
            repository (UserRepository): Credential store used on a cache miss.

        Returns:
            Optional[SessionEntry]: The entry, or None if the identity does not exist.
        """
        entry = await self.get(identity_id)
        if entry is not None:
            return entry

        identity = await repository.find_by_id(identity_id)
        if identity is None:
            return None
        return await self.store_identity(identity)

    async def touch(self, entry: SessionEntry) -> SessionEntry:
        """Renew the cached entry of `entry.id` once it is past half its TTL.

        Only what is in the cache right now is renewed, and only while the key
        still exists. An entry invalidated after `entry` was read stays gone,
        so the next request reloads the identity from the store.
        """
        now = datetime.now(timezone.utc)
        if (now - entry.last_activity).total_seconds() < self.ttl_seconds / 2:
            return entry

        current = await self.get(entry.id)
        if current is None:
            return entry

        refreshed = current.model_copy(update={"last_activity": now})
        try:
            await self.cache.set(self._key(entry.id), refreshed.model_dump_json(), self.ttl_seconds, xx=True)
        except CacheUnavailableError as e:
            logfire.warning(f"Could not renew session cache entry: {str(e)}")
        return refreshed

    async def invalidate(self, identity_id: str) -> None:
        try:
            await self.cache.delete(self._key(identity_id))
        except CacheUnavailableError as e:
            logfire.warning(f"Could not invalidate session cache entry: {str(e)}")
