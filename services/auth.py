"""
Authentication service.

Orchestrates the credential store, the session cache, the token codec, the
failed-login rate limiter, the revocation ledger and the notifier to
implement registration, login, token refresh, logout and the password and
email-verification flows. Every failure is raised as a tagged `AuthError`.
"""

import logfire

from datetime import datetime, timedelta, timezone

from pymongo.errors import DuplicateKeyError

from typing import Optional

from config.settings import Settings
from models.helpers import EmailType
from schema.security import (
    AuthResult,
    ChangePasswordRequest,
    LoginRequest,
    ResetPasswordRequest,
    TokenKind,
    TokenPair,
)
from schema.users import IdentityRecord, NewIdentity, RegisterRequest, UserPublic
from security.errors import AuthError, AuthErrorKind
from security.passwords import PasswordHasher, generate_opaque_token, token_digest
from security.revocation import TokenRevocationLedger
from security.tokens import TokenCodec, issued_before, remaining_lifetime
from services.notifier import Notification, Notifier
from services.rate_limiter import LoginRateLimiter
from services.session_cache import SessionCache
from services.user_repository import UserRepository
from utils.background import spawn


class AuthService:
    """Implements every account and token operation of the store."""

    def __init__(
        self,
        repository: UserRepository,
        sessions: SessionCache,
        codec: TokenCodec,
        hasher: PasswordHasher,
        rate_limiter: LoginRateLimiter,
        ledger: TokenRevocationLedger,
        notifier: Notifier,
        settings: Settings,
    ):
        self.repository = repository
        self.sessions = sessions
        self.codec = codec
        self.hasher = hasher
        self.rate_limiter = rate_limiter
        self.ledger = ledger
        self.notifier = notifier
        self.settings = settings
        self._dummy_hash: Optional[str] = None

    # ------------------------------------------------------------------ helpers

    def _issue_pair(self, identity_id: str) -> TokenPair:
        return TokenPair(
            access_token=self.codec.issue_access(identity_id),
            refresh_token=self.codec.issue_refresh(identity_id),
            expires_in=self.codec.access_lifetime_seconds,
        )

    def _auth_result(self, identity: IdentityRecord) -> AuthResult:
        pair = self._issue_pair(identity.id)
        return AuthResult(user=UserPublic.from_identity(identity), **pair.model_dump())

    def _notify(self, kind: EmailType, identity: IdentityRecord, token: str) -> None:
        try:
            self.notifier.notify(
                Notification(kind=kind, to=identity.email, name=identity.first_name, token=token)
            )
        except Exception as e:
            # Notifications never decide the outcome of the operation that triggered them
            logfire.error(f"Could not hand {kind.value} notification to notifier: {e!r}")

    async def _verify_password_or_dummy(self, password: str, identity: Optional[IdentityRecord]) -> bool:
        """Check `password`, spending the same bcrypt work when there is no identity."""
        if identity is None:
            if self._dummy_hash is None:
                self._dummy_hash = await self.hasher.hash_async(generate_opaque_token())
            await self.hasher.verify_async(password, self._dummy_hash)
            return False
        return await self.hasher.verify_async(password, identity.password)

    # ------------------------------------------------------------- operations

    async def register(self, payload: RegisterRequest) -> AuthResult:
        """Create an identity and sign it in.

        Args:
            payload (RegisterRequest): Validated registration details.

        Raises:
            AuthError: DUPLICATE_IDENTITY if the email is already registered.

        Returns:
            AuthResult: The public identity and a fresh token pair.
        """
        with logfire.span(f"Registering new user: {payload.email}"):
            if await self.repository.find_by_email(payload.email) is not None:
                logfire.warning(f"Attempt to register duplicate user: {payload.email}")
                raise AuthError(AuthErrorKind.DUPLICATE_IDENTITY)

            verification_token = generate_opaque_token()
            new_identity = NewIdentity(
                first_name=payload.first_name,
                last_name=payload.last_name,
                email=payload.email,
                password=await self.hasher.hash_async(payload.password),
                phone=payload.phone,
                email_verification_token=token_digest(verification_token),
                email_verification_expires=datetime.now(timezone.utc)
                + timedelta(hours=self.settings.email_verification_expire_hours),
            )

            try:
                identity = await self.repository.create(new_identity)
            except DuplicateKeyError:
                # Lost a race with a concurrent registration of the same email
                logfire.warning(f"Duplicate key on insert for user: {payload.email}")
                raise AuthError(AuthErrorKind.DUPLICATE_IDENTITY)

            logfire.info(f"Saved new user to database: {identity.email} ({identity.id})")

            self._notify(EmailType.VERIFICATION, identity, verification_token)

            return self._auth_result(identity)

    async def login(self, payload: LoginRequest, client_address: Optional[str] = None) -> AuthResult:
        """Verify credentials and issue a token pair.

        Args:
            payload (LoginRequest): Email and password.
            client_address (Optional[str], optional): Caller address, part of the rate-limit key.

        Raises:
            AuthError: RATE_LIMITED, INVALID_CREDENTIALS or ACCOUNT_DEACTIVATED.

        Returns:
            AuthResult: The public identity and a fresh token pair.
        """
        email = payload.email

        await self.rate_limiter.check(email, client_address)

        identity = await self.repository.find_by_email(email)
        if not await self._verify_password_or_dummy(payload.password, identity):
            await self.rate_limiter.record_failure(email, client_address)
            logfire.warning(f"Failed login attempt for {email}")
            raise AuthError(AuthErrorKind.INVALID_CREDENTIALS)

        if not identity.is_active:
            logfire.warning(f"Login attempt on deactivated account {email}")
            raise AuthError(AuthErrorKind.ACCOUNT_DEACTIVATED)

        await self.rate_limiter.clear(email, client_address)

        now = datetime.now(timezone.utc)
        spawn(self.repository.update_last_login(identity.id, now), name="last-login")
        identity = identity.model_copy(update={"last_login": now})

        await self.sessions.store_identity(identity)

        logfire.info(f"User {email} logged in successfully")
        return self._auth_result(identity)

    async def refresh_token(self, refresh_token: str) -> TokenPair:
        """Exchange a refresh token for a new pair. Each refresh token works once.

        Args:
            refresh_token (str): The presented refresh token.

        Raises:
            AuthError: TOKEN_REVOKED if the token was already exchanged or logged out,
                INVALID_REFRESH_TOKEN for any other problem.

        Returns:
            TokenPair: The replacement pair.
        """
        if await self.ledger.is_revoked(refresh_token):
            raise AuthError(AuthErrorKind.TOKEN_REVOKED)

        try:
            claims = self.codec.decode(refresh_token, TokenKind.REFRESH)
        except AuthError:
            raise AuthError(AuthErrorKind.INVALID_REFRESH_TOKEN)

        entry = await self.sessions.resolve(claims.sub, self.repository)
        if entry is None or not entry.is_active:
            raise AuthError(AuthErrorKind.INVALID_REFRESH_TOKEN)
        if issued_before(claims, entry.password_changed_at):
            raise AuthError(AuthErrorKind.INVALID_REFRESH_TOKEN)

        # * The old token is blacklisted before the new pair exists; of two
        # * concurrent exchanges only the one that inserts the entry proceeds
        if not await self.ledger.claim(refresh_token, remaining_lifetime(claims)):
            logfire.warning(f"Refresh token reuse detected for user {claims.sub}")
            raise AuthError(AuthErrorKind.TOKEN_REVOKED)

        logfire.info(f"Tokens refreshed for user {entry.email}")
        return self._issue_pair(entry.id)

    async def logout(self, access_token: Optional[str] = None, refresh_token: Optional[str] = None) -> None:
        """Blacklist the presented tokens for the rest of their lifetime.

        Tokens that fail signature verification or have already expired are
        ignored, which makes logout idempotent.
        """
        for token, kind in ((access_token, TokenKind.ACCESS), (refresh_token, TokenKind.REFRESH)):
            if not token:
                continue
            try:
                claims = self.codec.decode(token, kind, verify_exp=False)
            except AuthError:
                logfire.info(f"Ignoring unverifiable {kind.value} token on logout")
                continue
            await self.ledger.revoke(token, remaining_lifetime(claims))
            logfire.info(f"Revoked {kind.value} token of user {claims.sub}")

    async def get_profile(self, identity_id: str) -> UserPublic:
        identity = await self.repository.find_by_id(identity_id)
        if identity is None:
            raise AuthError(AuthErrorKind.IDENTITY_NOT_FOUND)
        return UserPublic.from_identity(identity)

    async def change_password(self, identity_id: str, payload: ChangePasswordRequest) -> None:
        """Replace the password of a signed-in identity.

        Tokens issued before the change stop being accepted.

        Raises:
            AuthError: IDENTITY_NOT_FOUND, or INVALID_CREDENTIALS (HTTP 400) when the
                current password is wrong.
        """
        identity = await self.repository.find_by_id(identity_id)
        if identity is None:
            raise AuthError(AuthErrorKind.IDENTITY_NOT_FOUND)

        if not await self.hasher.verify_async(payload.current_password, identity.password):
            raise AuthError(
                AuthErrorKind.INVALID_CREDENTIALS,
                "Current password is incorrect",
                status_code=400,
            )

        password_hash = await self.hasher.hash_async(payload.new_password)
        await self.repository.update_password(identity.id, password_hash, datetime.now(timezone.utc))
        await self.sessions.invalidate(identity.id)

        logfire.info(f"Password changed for user: {identity.email}")

    async def forgot_password(self, email: str) -> str:
        """Start a password reset.

        Raises:
            AuthError: IDENTITY_NOT_FOUND if no identity has this email.

        Returns:
            str: The raw reset token; only its digest is stored.
        """
        identity = await self.repository.find_by_email(email)
        if identity is None:
            raise AuthError(AuthErrorKind.IDENTITY_NOT_FOUND)

        reset_token = generate_opaque_token()
        expires = datetime.now(timezone.utc) + timedelta(minutes=self.settings.password_reset_expire_minutes)
        await self.repository.set_password_reset(identity.id, token_digest(reset_token), expires)

        self._notify(EmailType.PASSWORD_RESET, identity, reset_token)

        logfire.info(f"Password reset requested for: {identity.email}")
        return reset_token

    async def reset_password(self, token: str, payload: ResetPasswordRequest) -> AuthResult:
        """Finish a password reset and sign the identity in.

        Raises:
            AuthError: INVALID_OR_EXPIRED_TOKEN if no identity holds a live matching token.
        """
        now = datetime.now(timezone.utc)
        identity = await self.repository.find_by_reset_token(token_digest(token), now)
        if identity is None:
            raise AuthError(AuthErrorKind.INVALID_OR_EXPIRED_TOKEN, "Invalid or expired reset token")

        password_hash = await self.hasher.hash_async(payload.password)
        await self.repository.update_password(identity.id, password_hash, now)
        await self.sessions.invalidate(identity.id)

        identity = identity.model_copy(
            update={
                "password": password_hash,
                "password_changed_at": now,
                "password_reset_token": None,
                "password_reset_expires": None,
            }
        )

        logfire.info(f"Password reset successful for user: {identity.email}")
        return self._auth_result(identity)

    async def verify_email(self, token: str) -> None:
        identity = await self.repository.find_by_verification_token(
            token_digest(token), datetime.now(timezone.utc)
        )
        if identity is None:
            raise AuthError(AuthErrorKind.INVALID_OR_EXPIRED_TOKEN, "Invalid verification token")

        await self.repository.mark_email_verified(identity.id)
        logfire.info(f"Email verified for user: {identity.email}")

    async def resend_verification(self, email: str) -> str:
        """Issue a new email-verification token.

        Raises:
            AuthError: IDENTITY_NOT_FOUND or ALREADY_VERIFIED.

        Returns:
            str: The raw verification token.
        """
        identity = await self.repository.find_by_email(email)
        if identity is None:
            raise AuthError(AuthErrorKind.IDENTITY_NOT_FOUND)
        if identity.is_email_verified:
            raise AuthError(AuthErrorKind.ALREADY_VERIFIED)

        verification_token = generate_opaque_token()
        expires = datetime.now(timezone.utc) + timedelta(hours=self.settings.email_verification_expire_hours)
        await self.repository.set_email_verification(identity.id, token_digest(verification_token), expires)

        self._notify(EmailType.VERIFICATION, identity, verification_token)

        logfire.info(f"Verification email resent to: {identity.email}")
        return verification_token

    async def set_active(self, identity_id: str, is_active: bool) -> UserPublic:
        """Activate or deactivate an identity. Takes effect on the next request."""
        identity = await self.repository.set_active(identity_id, is_active)
        if identity is None:
            raise AuthError(AuthErrorKind.IDENTITY_NOT_FOUND)

        await self.sessions.invalidate(identity.id)

        logfire.info(f"User {identity.email} {'activated' if is_active else 'deactivated'}")
        return UserPublic.from_identity(identity)
