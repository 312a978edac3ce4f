"""Credential store.

`UserRepository` is what the authentication core depends on;
`BeanieUserRepository` implements it on MongoDB through Beanie. Uniqueness
of emails is enforced by the unique index on `User.email`, so `create`
raises `pymongo.errors.DuplicateKeyError` on a conflicting insert.
"""

import logfire

from datetime import datetime, timezone

from bson.errors import InvalidId
from beanie import PydanticObjectId

from typing import Any, Dict, Optional, Protocol

from models.users import User
from schema.users import IdentityRecord, NewIdentity


class UserRepository(Protocol):
    """Persistence operations the authentication core needs."""

    async def find_by_email(self, email: str) -> Optional[IdentityRecord]: ...

    async def find_by_id(self, identity_id: str) -> Optional[IdentityRecord]: ...

    async def create(self, new_identity: NewIdentity) -> IdentityRecord: ...

    async def update_password(self, identity_id: str, password_hash: str, changed_at: datetime) -> None: ...

    async def update_last_login(self, identity_id: str, when: datetime) -> None: ...

    async def set_password_reset(self, identity_id: str, token_digest: str, expires: datetime) -> None: ...

    async def find_by_reset_token(self, token_digest: str, now: datetime) -> Optional[IdentityRecord]: ...

    async def set_email_verification(self, identity_id: str, token_digest: str, expires: datetime) -> None: ...

    async def find_by_verification_token(self, token_digest: str, now: datetime) -> Optional[IdentityRecord]: ...

    async def mark_email_verified(self, identity_id: str) -> None: ...

    async def set_active(self, identity_id: str, is_active: bool) -> Optional[IdentityRecord]: ...


def to_identity(user: User) -> IdentityRecord:
    """Convert a `User` document into the service-layer record."""
    return IdentityRecord.model_validate(user.model_dump(exclude={"revision_id"}))


class BeanieUserRepository:
    """`UserRepository` backed by the `User` Beanie document."""

    @staticmethod
    def _object_id(identity_id: str) -> Optional[PydanticObjectId]:
        try:
            return PydanticObjectId(identity_id)
        except (InvalidId, TypeError):
            return None

    async def _get(self, identity_id: str) -> Optional[User]:
        object_id = self._object_id(identity_id)
        if object_id is None:
            return None
        return await User.get(object_id)

    async def _update(self, identity_id: str, changes: Dict[str, Any]) -> Optional[User]:
        user = await self._get(identity_id)
        if user is None:
            logfire.warning(f"Update of unknown user {identity_id} skipped")
            return None
        changes["updated_at"] = datetime.now(timezone.utc)
        await user.set(changes)
        return user

    async def find_by_email(self, email: str) -> Optional[IdentityRecord]:
        user = await User.find_one(User.email == email.strip().lower())
        return to_identity(user) if user else None

    async def find_by_id(self, identity_id: str) -> Optional[IdentityRecord]:
        user = await self._get(identity_id)
        return to_identity(user) if user else None

    async def create(self, new_identity: NewIdentity) -> IdentityRecord:
        user = User(**new_identity.model_dump())
        await user.insert()
        return to_identity(user)

    async def update_password(self, identity_id: str, password_hash: str, changed_at: datetime) -> None:
        await self._update(
            identity_id,
            {
                "password": password_hash,
                "password_changed_at": changed_at,
                "password_reset_token": None,
                "password_reset_expires": None,
            },
        )

    async def update_last_login(self, identity_id: str, when: datetime) -> None:
        await self._update(identity_id, {"last_login": when})

    async def set_password_reset(self, identity_id: str, token_digest: str, expires: datetime) -> None:
        await self._update(
            identity_id,
            {"password_reset_token": token_digest, "password_reset_expires": expires},
        )

    async def find_by_reset_token(self, token_digest: str, now: datetime) -> Optional[IdentityRecord]:
        user = await User.find_one(
            User.password_reset_token == token_digest,
            User.password_reset_expires > now,
        )
        return to_identity(user) if user else None

    async def set_email_verification(self, identity_id: str, token_digest: str, expires: datetime) -> None:
        await self._update(
            identity_id,
            {"email_verification_token": token_digest, "email_verification_expires": expires},
        )

    async def find_by_verification_token(self, token_digest: str, now: datetime) -> Optional[IdentityRecord]:
        user = await User.find_one(
            User.email_verification_token == token_digest,
            User.email_verification_expires > now,
        )
        return to_identity(user) if user else None

    async def mark_email_verified(self, identity_id: str) -> None:
        await self._update(
            identity_id,
            {
                "is_email_verified": True,
                "email_verification_token": None,
                "email_verification_expires": None,
            },
        )

    async def set_active(self, identity_id: str, is_active: bool) -> Optional[IdentityRecord]:
        user = await self._update(identity_id, {"is_active": is_active})
        return to_identity(user) if user else None
