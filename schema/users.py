"""Contains the schema definition for identities and user-facing requests and responses
"""

import re

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field, EmailStr, field_validator

from typing import Annotated, Optional

from config.settings import get_settings
from models.helpers import UserRole
from security.passwords import password_policy_violations

PHONE_REGEX = re.compile(r"^\+?[1-9]\d{1,14}$")


def validate_new_password(value: str) -> str:
    """Shared validator for every field that sets a password."""
    violations = password_policy_violations(value, get_settings().password_policy)
    if violations:
        raise ValueError("; ".join(violations))
    return value


class IdentityRecord(BaseModel):
    """A stored identity as seen by the service layer.

    Independent of the persistence layer; the Beanie repository converts its
    documents into this shape.
    """

    id: str
    first_name: str
    last_name: str
    email: str
    password: str  # bcrypt hash
    phone: Optional[str] = None
    role: UserRole = UserRole.CUSTOMER
    is_active: bool = True
    is_email_verified: bool = False
    last_login: Optional[datetime] = None
    password_reset_token: Optional[str] = None  # sha256 digest
    password_reset_expires: Optional[datetime] = None
    email_verification_token: Optional[str] = None  # sha256 digest
    email_verification_expires: Optional[datetime] = None
    password_changed_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class NewIdentity(BaseModel):
    """Fields needed to persist a freshly registered identity."""

    first_name: str
    last_name: str
    email: str
    password: str  # bcrypt hash
    phone: Optional[str] = None
    role: UserRole = UserRole.CUSTOMER
    email_verification_token: Optional[str] = None
    email_verification_expires: Optional[datetime] = None


class UserPublic(BaseModel):
    """Identity as returned to clients. Never carries the password or token digests."""

    id: Annotated[str, Field(description="Unique identifier for the user")]
    first_name: Annotated[str, Field(serialization_alias="firstName")]
    last_name: Annotated[str, Field(serialization_alias="lastName")]
    email: Annotated[str, Field()]
    phone: Annotated[Optional[str], Field(default=None)]
    role: Annotated[UserRole, Field()]
    is_active: Annotated[bool, Field(serialization_alias="isActive")]
    is_email_verified: Annotated[bool, Field(serialization_alias="isEmailVerified")]
    last_login: Annotated[Optional[datetime], Field(default=None, serialization_alias="lastLogin")]
    created_at: Annotated[Optional[datetime], Field(default=None, serialization_alias="createdAt")]

    @classmethod
    def from_identity(cls, identity: IdentityRecord) -> "UserPublic":
        return cls(
            **identity.model_dump(
                include={
                    "id",
                    "first_name",
                    "last_name",
                    "email",
                    "phone",
                    "role",
                    "is_active",
                    "is_email_verified",
                    "last_login",
                    "created_at",
                }
            )
        )


class SessionEntry(BaseModel):
    """Short-lived projection of an identity kept in the key-value cache."""

    id: str
    email: str
    role: UserRole
    is_active: Annotated[bool, Field(serialization_alias="isActive")]
    first_name: Annotated[str, Field(serialization_alias="firstName")]
    last_name: Annotated[str, Field(serialization_alias="lastName")]
    password_changed_at: Annotated[Optional[datetime], Field(default=None)]
    last_activity: Annotated[datetime, Field(serialization_alias="lastActivity")]

    @classmethod
    def from_identity(cls, identity: IdentityRecord, now: datetime) -> "SessionEntry":
        return cls(
            id=identity.id,
            email=identity.email,
            role=identity.role,
            is_active=identity.is_active,
            first_name=identity.first_name,
            last_name=identity.last_name,
            password_changed_at=identity.password_changed_at,
            last_activity=now,
        )


class RegisterRequest(BaseModel):
    """Describes the structure of the register request."""

    model_config = ConfigDict(populate_by_name=True)

    first_name: Annotated[str, Field(alias="firstName", min_length=2, max_length=50)]
    last_name: Annotated[str, Field(alias="lastName", min_length=2, max_length=50)]
    email: Annotated[EmailStr, Field(max_length=254)]
    password: Annotated[str, Field()]
    phone: Annotated[Optional[str], Field(default=None)]

    @field_validator("first_name", "last_name", mode="before")
    @classmethod
    def strip_names(cls, v):
        return v.strip() if isinstance(v, str) else v

    # * Emails are stored lower-cased so that lookups are case-insensitive
    @field_validator("email")
    @classmethod
    def normalise_email(cls, v: str) -> str:
        return v.strip().lower()

    @field_validator("password")
    @classmethod
    def validate_password(cls, v: str) -> str:
        return validate_new_password(v)

    @field_validator("phone")
    @classmethod
    def validate_phone(cls, v: Optional[str]) -> Optional[str]:
        if v is not None and not PHONE_REGEX.match(v):
            raise ValueError("Invalid phone number format")
        return v


class UpdateUserStatusRequest(BaseModel):
    """Body of the admin activate/deactivate request."""

    model_config = ConfigDict(populate_by_name=True)

    is_active: Annotated[bool, Field(alias="isActive")]


class SessionUser(BaseModel):
    """Identity summary exposed by the authentication status check."""

    id: str
    email: str
    role: UserRole
    first_name: Annotated[str, Field(serialization_alias="firstName")]
    last_name: Annotated[str, Field(serialization_alias="lastName")]

    @classmethod
    def from_session(cls, entry: SessionEntry) -> "SessionUser":
        return cls(
            id=entry.id,
            email=entry.email,
            role=entry.role,
            first_name=entry.first_name,
            last_name=entry.last_name,
        )
