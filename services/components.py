"""Wiring of the authentication core.

Everything the routers need is built once per application and stored on
`app.state.auth`. Tests build the same graph around in-memory collaborators.
"""

from dataclasses import dataclass

from config.settings import Settings
from security.gate import AccessGate
from security.passwords import PasswordHasher
from security.revocation import TokenRevocationLedger
from security.tokens import TokenCodec
from security.verification_cache import VerificationCache
from services.auth import AuthService
from services.cache import KeyValueCache
from services.notifier import Notifier
from services.rate_limiter import LoginRateLimiter
from services.session_cache import SessionCache
from services.user_repository import UserRepository


@dataclass
class AuthComponents:
    settings: Settings
    cache: KeyValueCache
    repository: UserRepository
    service: AuthService
    gate: AccessGate
    verification_cache: VerificationCache


def build_auth_components(
    settings: Settings,
    repository: UserRepository,
    cache: KeyValueCache,
    notifier: Notifier,
) -> AuthComponents:
    """Build the service and the gate over the given collaborators.

    Args:
        settings (Settings): Application settings.
        repository (UserRepository): Credential store.
        cache (KeyValueCache): Shared key-value cache.
        notifier (Notifier): Outbound notification channel.

    Returns:
        AuthComponents: The wired components.
    """
    codec = TokenCodec.from_settings(settings)
    ledger = TokenRevocationLedger(cache)
    sessions = SessionCache(cache, ttl_seconds=settings.session_cache_ttl)
    verification_cache = VerificationCache(
        ttl_seconds=settings.verification_cache_ttl,
        max_entries=settings.verification_cache_max_entries,
        idle_seconds=settings.verification_cache_idle_seconds,
    )

    service = AuthService(
        repository=repository,
        sessions=sessions,
        codec=codec,
        hasher=PasswordHasher(rounds=settings.bcrypt_rounds),
        rate_limiter=LoginRateLimiter.from_settings(cache, settings),
        ledger=ledger,
        notifier=notifier,
        settings=settings,
    )
    gate = AccessGate(
        codec=codec,
        ledger=ledger,
        sessions=sessions,
        repository=repository,
        verification_cache=verification_cache,
    )

    return AuthComponents(
        settings=settings,
        cache=cache,
        repository=repository,
        service=service,
        gate=gate,
        verification_cache=verification_cache,
    )
