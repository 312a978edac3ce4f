import pytz

from datetime import datetime

from pydantic import Field, field_serializer

from typing import Annotated, Optional

import pymongo
from beanie import Document, Indexed, PydanticObjectId

from .helpers import UserRole


class User(Document):
    """A registered account of the store.
    """
    first_name: Annotated[str, Field(max_length=50, min_length=2)]
    last_name: Annotated[str, Field(max_length=50, min_length=2)]
    email: Annotated[str, Indexed(index_type=pymongo.ASCENDING, unique=True), Field(max_length=254)]  # always lower-cased
    password: Annotated[str, Field()]  # bcrypt hash
    phone: Annotated[Optional[str], Field(default=None)]
    role: Annotated[UserRole, Field(default=UserRole.CUSTOMER)]
    is_active: Annotated[bool, Field(default=True)]
    is_email_verified: Annotated[bool, Field(default=False)]
    last_login: Annotated[Optional[datetime], Field(default=None)]
    password_reset_token: Annotated[Optional[str], Indexed(sparse=True), Field(default=None)]  # sha256 digest
    password_reset_expires: Annotated[Optional[datetime], Field(default=None)]
    email_verification_token: Annotated[Optional[str], Indexed(sparse=True), Field(default=None)]  # sha256 digest
    email_verification_expires: Annotated[Optional[datetime], Field(default=None)]
    password_changed_at: Annotated[Optional[datetime], Field(default=None)]
    created_at: Annotated[datetime, Field(default_factory=lambda: datetime.now(pytz.utc))]
    updated_at: Annotated[datetime, Field(default_factory=lambda: datetime.now(pytz.utc))]

    @field_serializer("id")
    def convert_pydantic_object_id_to_string(self, id: PydanticObjectId):
        return str(id)

    class Settings:
        """Beanie document settings."""
        name = "users"
