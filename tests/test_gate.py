"""Tests for the access-control gate."""

from datetime import datetime, timedelta, timezone

import pytest

from models.helpers import UserRole
from schema.security import ChangePasswordRequest, TokenKind
from schema.users import RegisterRequest
from security.errors import AuthError, AuthErrorKind
from services.components import build_auth_components

from tests.fakes import PASSWORD, UnavailableCache


async def _register(auth_service):
    return await auth_service.register(
        RegisterRequest(firstName="Ada", lastName="Lovelace", email="ada@shopdev.com", password=PASSWORD)
    )


async def test_valid_token_resolves_identity(components):
    registered = await _register(components.service)

    entry = await components.gate.authenticate(registered.access_token)
    assert entry.id == registered.user.id
    assert entry.role == UserRole.CUSTOMER


async def test_missing_token(components):
    with pytest.raises(AuthError) as exc_info:
        await components.gate.authenticate(None)
    assert exc_info.value.kind == AuthErrorKind.UNAUTHENTICATED


async def test_invalid_and_expired_tokens_are_distinguished(components):
    registered = await _register(components.service)
    expired = components.service.codec.issue(
        registered.user.id, TokenKind.ACCESS, now=datetime.now(timezone.utc) - timedelta(hours=1)
    )

    with pytest.raises(AuthError) as invalid:
        await components.gate.authenticate("not-a-token")
    with pytest.raises(AuthError) as expired_error:
        await components.gate.authenticate(expired)

    assert invalid.value.kind == AuthErrorKind.INVALID_TOKEN
    assert expired_error.value.kind == AuthErrorKind.TOKEN_EXPIRED
    assert invalid.value.public_message == expired_error.value.public_message


async def test_refresh_token_is_not_accepted_as_access_token(components):
    registered = await _register(components.service)

    with pytest.raises(AuthError) as exc_info:
        await components.gate.authenticate(registered.refresh_token)
    assert exc_info.value.kind == AuthErrorKind.INVALID_TOKEN


async def test_revoked_token_is_rejected_even_when_cached(components):
    registered = await _register(components.service)
    await components.gate.authenticate(registered.access_token)
    assert components.verification_cache.get(registered.access_token) is not None

    await components.service.logout(access_token=registered.access_token)

    with pytest.raises(AuthError) as exc_info:
        await components.gate.authenticate(registered.access_token)
    assert exc_info.value.kind == AuthErrorKind.TOKEN_REVOKED


async def test_token_logged_out_in_its_last_second_is_rejected(components, settings):
    registered = await _register(components.service)
    # exp lands on the next whole second
    issued = datetime.now(timezone.utc).replace(microsecond=0) - settings.access_token_lifetime + timedelta(seconds=1)
    token = components.service.codec.issue(registered.user.id, TokenKind.ACCESS, now=issued)

    await components.service.logout(access_token=token)

    with pytest.raises(AuthError) as exc_info:
        await components.gate.authenticate(token)
    assert exc_info.value.kind == AuthErrorKind.TOKEN_REVOKED


async def test_deactivation_takes_effect_immediately(components):
    registered = await _register(components.service)
    await components.gate.authenticate(registered.access_token)

    await components.service.set_active(registered.user.id, False)

    with pytest.raises(AuthError) as exc_info:
        await components.gate.authenticate(registered.access_token)
    assert exc_info.value.kind == AuthErrorKind.ACCOUNT_DEACTIVATED


async def test_deactivation_during_a_request_is_not_undone(components, repository):
    registered = await _register(components.service)
    sessions = components.service.sessions
    entry = await sessions.resolve(registered.user.id, repository)
    in_flight = entry.model_copy(
        update={"last_activity": entry.last_activity - timedelta(seconds=sessions.ttl_seconds)}
    )

    await components.service.set_active(registered.user.id, False)
    await sessions.touch(in_flight)

    with pytest.raises(AuthError) as exc_info:
        await components.gate.authenticate(registered.access_token)
    assert exc_info.value.kind == AuthErrorKind.ACCOUNT_DEACTIVATED


async def test_tokens_issued_before_password_change_are_rejected(components):
    registered = await _register(components.service)
    old_token = components.service.codec.issue(
        registered.user.id, TokenKind.ACCESS, now=datetime.now(timezone.utc) - timedelta(minutes=1)
    )
    await components.gate.authenticate(old_token)

    await components.service.change_password(
        registered.user.id, ChangePasswordRequest(currentPassword=PASSWORD, newPassword="N3wPassword1")
    )

    with pytest.raises(AuthError) as exc_info:
        await components.gate.authenticate(old_token)
    assert exc_info.value.kind == AuthErrorKind.TOKEN_REVOKED


async def test_unknown_subject(components):
    token = components.service.codec.issue_access("ghost")

    with pytest.raises(AuthError) as exc_info:
        await components.gate.authenticate(token)
    assert exc_info.value.kind == AuthErrorKind.UNAUTHENTICATED


async def test_second_request_is_served_from_session_cache(components, repository):
    registered = await _register(components.service)
    repository.find_by_id_calls = 0

    await components.gate.authenticate(registered.access_token)
    await components.gate.authenticate(registered.access_token)

    assert repository.find_by_id_calls == 1


async def test_gate_fails_open_without_cache(settings, repository, notifier):
    components = build_auth_components(settings, repository=repository, cache=UnavailableCache(), notifier=notifier)
    registered = await _register(components.service)

    entry = await components.gate.authenticate(registered.access_token)
    assert entry.id == registered.user.id


async def test_optional_authentication(components):
    registered = await _register(components.service)

    assert await components.gate.authenticate_optional(None) is None
    assert await components.gate.authenticate_optional("garbage") is None
    entry = await components.gate.authenticate_optional(registered.access_token)
    assert entry.email == "ada@shopdev.com"


async def test_role_gate(components):
    registered = await _register(components.service)
    entry = await components.gate.authenticate(registered.access_token)

    assert components.gate.authorize(entry, [UserRole.CUSTOMER, UserRole.ADMIN]) is entry
    with pytest.raises(AuthError) as exc_info:
        components.gate.authorize(entry, [UserRole.ADMIN])
    assert exc_info.value.kind == AuthErrorKind.FORBIDDEN
    assert exc_info.value.status_code == 403
