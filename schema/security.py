"""Defines schema of requests and responses related to security"""

from enum import Enum

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator

from typing import Annotated, Optional

from schema.users import UserPublic, validate_new_password


class TokenKind(str, Enum):
    """The two kinds of signed tokens the service issues."""

    ACCESS = "access"
    REFRESH = "refresh"


class TokenClaims(BaseModel):
    """Model representing data contained in a verified token."""

    sub: str  # identity id
    type: TokenKind
    jti: str  # unique token identifier
    iat: int  # unix timestamp
    exp: int  # unix timestamp


class TokenPair(BaseModel):
    """Model representing both access and refresh tokens."""

    access_token: Annotated[str, Field(serialization_alias="token")]
    refresh_token: Annotated[str, Field(serialization_alias="refreshToken")]
    token_type: Annotated[str, Field(default="Bearer", serialization_alias="tokenType")]
    expires_in: Annotated[int, Field(serialization_alias="expiresIn")]  # Access token expiry in seconds


class AuthResult(TokenPair):
    """Token pair plus the identity it was issued for."""

    user: UserPublic


class LoginRequest(BaseModel):
    """Describes the structure of the login request."""

    email: EmailStr
    password: Annotated[str, Field(min_length=1)]

    @field_validator("email")
    @classmethod
    def normalise_email(cls, v: str) -> str:
        return v.strip().lower()


class RefreshTokenRequest(BaseModel):
    """Model for refresh token request."""

    model_config = ConfigDict(populate_by_name=True)

    refresh_token: Annotated[str, Field(alias="refreshToken", min_length=1)]


class LogoutRequest(BaseModel):
    """Optional body of the logout request."""

    model_config = ConfigDict(populate_by_name=True)

    refresh_token: Annotated[Optional[str], Field(default=None, alias="refreshToken")]


class ChangePasswordRequest(BaseModel):
    """Describes the structure of the change password request."""

    model_config = ConfigDict(populate_by_name=True)

    current_password: Annotated[str, Field(alias="currentPassword", min_length=1)]
    new_password: Annotated[str, Field(alias="newPassword")]

    @field_validator("new_password")
    @classmethod
    def check_new_password(cls, v: str) -> str:
        return validate_new_password(v)


class ResetPasswordRequest(BaseModel):
    """Describes the structure of the reset password request."""

    password: str

    @field_validator("password")
    @classmethod
    def validate_password(cls, v: str) -> str:
        return validate_new_password(v)


class EmailRequest(BaseModel):
    """Body of the forgot-password and resend-verification requests."""

    email: EmailStr

    @field_validator("email")
    @classmethod
    def normalise_email(cls, v: str) -> str:
        return v.strip().lower()
