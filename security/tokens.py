"""Signing and verification of access and refresh tokens."""

import math
import secrets

from datetime import datetime, timedelta, timezone

from jose import JWTError, jwt
from jose.exceptions import ExpiredSignatureError

from pydantic import ValidationError

from typing import Optional

from config.settings import Settings
from schema.security import TokenClaims, TokenKind
from security.errors import AuthError, AuthErrorKind


class TokenCodec:
    """Issues and verifies HS256 JWTs.

    Access and refresh tokens are signed with different secrets and carry a
    `type` claim, so one kind can never be presented as the other.
    """

    def __init__(
        self,
        access_secret: str,
        refresh_secret: str,
        access_lifetime: timedelta,
        refresh_lifetime: timedelta,
        algorithm: str = "HS256",
    ):
        self.secrets = {TokenKind.ACCESS: access_secret, TokenKind.REFRESH: refresh_secret}
        self.lifetimes = {TokenKind.ACCESS: access_lifetime, TokenKind.REFRESH: refresh_lifetime}
        self.algorithm = algorithm

    @classmethod
    def from_settings(cls, settings: Settings) -> "TokenCodec":
        return cls(
            access_secret=settings.jwt_secret,
            refresh_secret=settings.jwt_refresh_secret,
            access_lifetime=settings.access_token_lifetime,
            refresh_lifetime=settings.refresh_token_lifetime,
            algorithm=settings.jwt_algorithm,
        )

    @property
    def access_lifetime_seconds(self) -> int:
        return int(self.lifetimes[TokenKind.ACCESS].total_seconds())

    def issue(self, subject: str, kind: TokenKind, now: Optional[datetime] = None) -> str:
        """Creates a new signed token.

        Args:
            subject (str): The identity id the token is bound to.
            kind (TokenKind): Access or refresh.
            now (Optional[datetime], optional): Issue time. Defaults to the current time.

        Returns:
            str: The encoded JWT.
        """
        issued_at = now or datetime.now(timezone.utc)
        expire = issued_at + self.lifetimes[kind]

        to_encode = {
            "sub": subject,
            "type": kind.value,
            "jti": secrets.token_urlsafe(16),  # * Unique per token, even within the same second
            "iat": int(issued_at.timestamp()),
            "exp": int(expire.timestamp()),
        }

        return jwt.encode(to_encode, self.secrets[kind], algorithm=self.algorithm)

    def issue_access(self, subject: str) -> str:
        return self.issue(subject, TokenKind.ACCESS)

    def issue_refresh(self, subject: str) -> str:
        return self.issue(subject, TokenKind.REFRESH)

    def decode(self, token: str, kind: TokenKind, verify_exp: bool = True) -> TokenClaims:
        """Verify `token` and return its claims.

        Args:
            token (str): The encoded JWT.
            kind (TokenKind): The kind the token must be.
            verify_exp (bool, optional): Reject expired tokens. Defaults to True.

        Raises:
            AuthError: TOKEN_EXPIRED when the signature is valid but the token expired,
                INVALID_TOKEN for every other failure.

        Returns:
            TokenClaims: The verified claims.
        """
        try:
            payload = jwt.decode(
                token,
                self.secrets[kind],
                algorithms=[self.algorithm],
                options={"verify_exp": verify_exp},
            )
            claims = TokenClaims(**payload)
        except ExpiredSignatureError:
            raise AuthError(AuthErrorKind.TOKEN_EXPIRED)
        except (JWTError, ValidationError, TypeError):
            raise AuthError(AuthErrorKind.INVALID_TOKEN)

        if claims.type != kind:
            raise AuthError(AuthErrorKind.INVALID_TOKEN)

        return claims


def remaining_lifetime(claims: TokenClaims, now: Optional[datetime] = None) -> int:
    """Seconds the token is still accepted for, never negative.

    Expiry is checked against whole-second time, so a token stays valid
    through the whole of its `exp` second.
    """
    current = (now or datetime.now(timezone.utc)).timestamp()
    return max(0, math.ceil(claims.exp + 1 - current))


def issued_before(claims: TokenClaims, moment: Optional[datetime]) -> bool:
    """Whether the token was issued before `moment` (compared at second precision)."""
    if moment is None:
        return False
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return claims.iat < int(moment.timestamp())
