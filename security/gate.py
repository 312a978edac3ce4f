"""
Access-control gate for protected routes.

Turns a bearer token into the `SessionEntry` of the identity it belongs to,
checking, in order: presence, revocation, signature and expiry, identity
lookup, the active flag and the last password change. The first failing
check ends the request.
"""

import logfire

from typing import Iterable, Optional

from models.helpers import UserRole
from schema.security import TokenClaims, TokenKind
from schema.users import SessionEntry
from security.errors import AuthError, AuthErrorKind
from security.revocation import TokenRevocationLedger
from security.tokens import TokenCodec, issued_before
from security.verification_cache import VerificationCache
from services.session_cache import SessionCache
from services.user_repository import UserRepository


class AccessGate:
    """Authenticates and authorizes requests carrying an access token."""

    def __init__(
        self,
        codec: TokenCodec,
        ledger: TokenRevocationLedger,
        sessions: SessionCache,
        repository: UserRepository,
        verification_cache: VerificationCache,
    ):
        self.codec = codec
        self.ledger = ledger
        self.sessions = sessions
        self.repository = repository
        self.verification_cache = verification_cache

    def _verify(self, token: str) -> TokenClaims:
        claims = self.verification_cache.get(token)
        if claims is not None:
            return claims

        claims = self.codec.decode(token, TokenKind.ACCESS)
        self.verification_cache.put(token, claims)
        return claims

    async def authenticate(self, token: Optional[str]) -> SessionEntry:
        """Resolve the identity behind an access token.

        Args:
            token (Optional[str]): The raw bearer token, or None if absent.

        Raises:
            AuthError: UNAUTHENTICATED, TOKEN_REVOKED, INVALID_TOKEN, TOKEN_EXPIRED
                or ACCOUNT_DEACTIVATED.

        Returns:
            SessionEntry: The cached projection of the authenticated identity.
        """
        if not token:
            raise AuthError(AuthErrorKind.UNAUTHENTICATED)

        if await self.ledger.is_revoked(token):
            self.verification_cache.discard(token)
            raise AuthError(AuthErrorKind.TOKEN_REVOKED)

        claims = self._verify(token)

        entry = await self.sessions.resolve(claims.sub, self.repository)
        if entry is None:
            logfire.warning(f"Valid token presented for unknown user {claims.sub}")
            raise AuthError(AuthErrorKind.UNAUTHENTICATED)

        if not entry.is_active:
            raise AuthError(AuthErrorKind.ACCOUNT_DEACTIVATED)

        if issued_before(claims, entry.password_changed_at):
            self.verification_cache.discard(token)
            raise AuthError(AuthErrorKind.TOKEN_REVOKED)

        return await self.sessions.touch(entry)

    async def authenticate_optional(self, token: Optional[str]) -> Optional[SessionEntry]:
        """Like `authenticate`, but any failure leaves the caller anonymous."""
        if not token:
            return None
        try:
            return await self.authenticate(token)
        except AuthError as e:
            logfire.debug(f"Optional authentication ignored a {e.kind.value} token")
            return None

    @staticmethod
    def authorize(entry: SessionEntry, roles: Iterable[UserRole]) -> SessionEntry:
        """Check that `entry` holds one of `roles`.

        Raises:
            AuthError: FORBIDDEN when the role is not allowed.
        """
        allowed = set(roles)
        if entry.role not in allowed:
            logfire.warning(f"User {entry.email} with role {entry.role.value} denied access")
            raise AuthError(
                AuthErrorKind.FORBIDDEN,
                f"User role {entry.role.value} is not authorized to access this route",
            )
        return entry
