"""FastAPI dependencies that put the access-control gate in front of routes."""

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from typing import Annotated, Callable, Optional

from models.helpers import UserRole
from schema.users import SessionEntry
from security.gate import AccessGate
from services.auth import AuthService
from services.components import AuthComponents

# auto_error is off so that a missing header goes through the gate like any other failure
bearer_scheme = HTTPBearer(auto_error=False)

BearerCredentials = Annotated[Optional[HTTPAuthorizationCredentials], Depends(bearer_scheme)]


def get_components(request: Request) -> AuthComponents:
    return request.app.state.auth


def get_auth_service(request: Request) -> AuthService:
    return get_components(request).service


def get_gate(request: Request) -> AccessGate:
    return get_components(request).gate


def get_bearer_token(credentials: BearerCredentials) -> Optional[str]:
    """Raw bearer token from the `Authorization` header, if any."""
    if credentials is None:
        return None
    return credentials.credentials


async def get_current_user(
    request: Request,
    gate: Annotated[AccessGate, Depends(get_gate)],
    token: Annotated[Optional[str], Depends(get_bearer_token)],
) -> SessionEntry:
    """Authenticate the request and attach the identity to `request.state.user`.

    Raises:
        AuthError: Whatever the gate rejects the token with.

    Returns:
        SessionEntry: The authenticated identity.
    """
    user = await gate.authenticate(token)
    request.state.user = user
    return user


async def get_optional_user(
    request: Request,
    gate: Annotated[AccessGate, Depends(get_gate)],
    token: Annotated[Optional[str], Depends(get_bearer_token)],
) -> Optional[SessionEntry]:
    user = await gate.authenticate_optional(token)
    request.state.user = user
    return user


def require_roles(*roles: UserRole) -> Callable:
    """Dependency factory that admits only identities holding one of `roles`.

    Example:
        ```python
        @router.patch("/{user_id}/status")
        async def update_status(admin: Annotated[SessionEntry, Depends(require_roles(UserRole.ADMIN))]):
            ...
        ```
    """

    async def role_checker(user: Annotated[SessionEntry, Depends(get_current_user)]) -> SessionEntry:
        return AccessGate.authorize(user, roles)

    return role_checker


CurrentUser = Annotated[SessionEntry, Depends(get_current_user)]
OptionalUser = Annotated[Optional[SessionEntry], Depends(get_optional_user)]
AuthServiceDep = Annotated[AuthService, Depends(get_auth_service)]
