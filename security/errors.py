"""Error taxonomy of the authentication core.

Every failure the core reports is an `AuthError` tagged with one
`AuthErrorKind`. The HTTP layer maps kinds to status codes through
`STATUS_CODES`; nothing downstream inspects exception subclasses.
"""

from enum import Enum

from fastapi import status

from typing import Any, Dict, List, Optional


class AuthErrorKind(str, Enum):
    """Closed set of failure kinds."""

    VALIDATION_FAILED = "validation_failed"
    DUPLICATE_IDENTITY = "duplicate_identity"
    INVALID_CREDENTIALS = "invalid_credentials"
    ACCOUNT_DEACTIVATED = "account_deactivated"
    RATE_LIMITED = "rate_limited"
    UNAUTHENTICATED = "unauthenticated"
    INVALID_TOKEN = "invalid_token"
    TOKEN_EXPIRED = "token_expired"
    TOKEN_REVOKED = "token_revoked"
    INVALID_REFRESH_TOKEN = "invalid_refresh_token"
    FORBIDDEN = "forbidden"
    IDENTITY_NOT_FOUND = "identity_not_found"
    INVALID_OR_EXPIRED_TOKEN = "invalid_or_expired_token"
    ALREADY_VERIFIED = "already_verified"
    SERVICE_UNAVAILABLE = "service_unavailable"


STATUS_CODES: Dict[AuthErrorKind, int] = {
    AuthErrorKind.VALIDATION_FAILED: status.HTTP_400_BAD_REQUEST,
    AuthErrorKind.DUPLICATE_IDENTITY: status.HTTP_400_BAD_REQUEST,
    AuthErrorKind.INVALID_CREDENTIALS: status.HTTP_401_UNAUTHORIZED,
    AuthErrorKind.ACCOUNT_DEACTIVATED: status.HTTP_401_UNAUTHORIZED,
    AuthErrorKind.RATE_LIMITED: status.HTTP_429_TOO_MANY_REQUESTS,
    AuthErrorKind.UNAUTHENTICATED: status.HTTP_401_UNAUTHORIZED,
    AuthErrorKind.INVALID_TOKEN: status.HTTP_401_UNAUTHORIZED,
    AuthErrorKind.TOKEN_EXPIRED: status.HTTP_401_UNAUTHORIZED,
    AuthErrorKind.TOKEN_REVOKED: status.HTTP_401_UNAUTHORIZED,
    AuthErrorKind.INVALID_REFRESH_TOKEN: status.HTTP_401_UNAUTHORIZED,
    AuthErrorKind.FORBIDDEN: status.HTTP_403_FORBIDDEN,
    AuthErrorKind.IDENTITY_NOT_FOUND: status.HTTP_404_NOT_FOUND,
    AuthErrorKind.INVALID_OR_EXPIRED_TOKEN: status.HTTP_400_BAD_REQUEST,
    AuthErrorKind.ALREADY_VERIFIED: status.HTTP_400_BAD_REQUEST,
    AuthErrorKind.SERVICE_UNAVAILABLE: status.HTTP_503_SERVICE_UNAVAILABLE,
}

DEFAULT_MESSAGES: Dict[AuthErrorKind, str] = {
    AuthErrorKind.VALIDATION_FAILED: "Validation failed",
    AuthErrorKind.DUPLICATE_IDENTITY: "User already exists with this email",
    AuthErrorKind.INVALID_CREDENTIALS: "Invalid credentials",
    AuthErrorKind.ACCOUNT_DEACTIVATED: "Account is deactivated",
    AuthErrorKind.RATE_LIMITED: "Too many authentication attempts, please try again later",
    AuthErrorKind.UNAUTHENTICATED: "Not authorized to access this route",
    AuthErrorKind.INVALID_TOKEN: "Invalid token",
    AuthErrorKind.TOKEN_EXPIRED: "Token expired",
    AuthErrorKind.TOKEN_REVOKED: "Token has been revoked",
    AuthErrorKind.INVALID_REFRESH_TOKEN: "Invalid refresh token",
    AuthErrorKind.FORBIDDEN: "You are not allowed to access this route",
    AuthErrorKind.IDENTITY_NOT_FOUND: "User not found",
    AuthErrorKind.INVALID_OR_EXPIRED_TOKEN: "Invalid or expired token",
    AuthErrorKind.ALREADY_VERIFIED: "Email is already verified",
    AuthErrorKind.SERVICE_UNAVAILABLE: "Service temporarily unavailable",
}

# Bearer-token failures are told apart internally but look the same to clients
UNIFORM_PUBLIC_MESSAGES: Dict[AuthErrorKind, str] = {
    AuthErrorKind.UNAUTHENTICATED: "Not authorized to access this route",
    AuthErrorKind.INVALID_TOKEN: "Not authorized to access this route",
    AuthErrorKind.TOKEN_EXPIRED: "Not authorized to access this route",
    AuthErrorKind.TOKEN_REVOKED: "Not authorized to access this route",
}


class AuthError(Exception):
    """A tagged failure raised by the authentication core."""

    def __init__(
        self,
        kind: AuthErrorKind,
        message: Optional[str] = None,
        *,
        status_code: Optional[int] = None,
        retry_after: Optional[int] = None,
        errors: Optional[List[Dict[str, Any]]] = None,
    ):
        self.kind = kind
        self.message = message or DEFAULT_MESSAGES[kind]
        self._status_code = status_code
        self.retry_after = retry_after
        self.errors = errors
        super().__init__(self.message)

    @property
    def status_code(self) -> int:
        if self._status_code is not None:
            return self._status_code
        return STATUS_CODES[self.kind]

    @property
    def public_message(self) -> str:
        return UNIFORM_PUBLIC_MESSAGES.get(self.kind, self.message)

    def __repr__(self) -> str:
        return f"AuthError(kind={self.kind.value!r}, message={self.message!r})"
