"""
Auth router for handling user authentication and authorization related endpoints.
"""

import logfire

from fastapi import APIRouter, Depends, Request, status

from typing import Annotated, Optional

from schema.responses import ApiResponse, AuthStatus
from schema.security import (
    AuthResult,
    ChangePasswordRequest,
    EmailRequest,
    LoginRequest,
    LogoutRequest,
    RefreshTokenRequest,
    ResetPasswordRequest,
    TokenPair,
)
from schema.users import RegisterRequest, SessionUser, UserPublic
from security.dependencies import (
    AuthServiceDep,
    CurrentUser,
    OptionalUser,
    get_bearer_token,
)
from security.errors import AuthError, AuthErrorKind

router = APIRouter(
    prefix="/api/v1/auth",
    tags=["Auth"],
)

FORGOT_PASSWORD_MESSAGE = "If an account exists for this email, a password reset link has been sent"


def client_address(request: Request) -> Optional[str]:
    # ProxyHeadersMiddleware has already replaced the peer with the forwarded client
    return request.client.host if request.client else None


@router.post(
    "/register",
    status_code=status.HTTP_201_CREATED,
    response_model=ApiResponse[AuthResult],
)
async def register(payload: RegisterRequest, auth_service: AuthServiceDep):
    """Creates a customer account and signs it in.
    A verification link is emailed to the new user in the background.

    ## Responses
    ### Email already registered
    - status code: 400
    - body: ```{"success": false, "message": "User already exists with this email"}```

    ### Validation failed
    - status code: 400
    - body: ```{"success": false, "message": "Validation failed", "errors": [{"field": "password", "message": "..."}]}```
    """
    result = await auth_service.register(payload)
    return ApiResponse(message="User registered successfully", data=result)


@router.post("/login", response_model=ApiResponse[AuthResult])
async def login(payload: LoginRequest, request: Request, auth_service: AuthServiceDep):
    """Login endpoint that returns the user together with an access and a refresh token.

    ## Responses
    ### Wrong email or password
    - status code: 401
    - body: ```{"success": false, "message": "Invalid credentials"}```

    ### Too many failed attempts
    - status code: 429
    - headers: ```Retry-After: <seconds>```
    - body: ```{"success": false, "message": "...", "retryAfter": 840}```
    """
    result = await auth_service.login(payload, client_address=client_address(request))
    return ApiResponse(message="Login successful", data=result)


@router.post("/logout", response_model=ApiResponse[None])
async def logout(
    auth_service: AuthServiceDep,
    token: Annotated[Optional[str], Depends(get_bearer_token)],
    payload: Optional[LogoutRequest] = None,
):
    """Revokes the bearer access token and, if given, the refresh token.
    Always succeeds, so calling it twice is harmless.
    """
    await auth_service.logout(
        access_token=token,
        refresh_token=payload.refresh_token if payload else None,
    )
    return ApiResponse(message="Logout successful")


@router.post("/refresh-token", response_model=ApiResponse[TokenPair])
async def refresh_token(payload: RefreshTokenRequest, auth_service: AuthServiceDep):
    """Exchanges a refresh token for a new token pair.
    The presented refresh token can not be used again.

    ## Responses
    ### Token already used or logged out
    - status code: 401
    - body: ```{"success": false, "message": "Not authorized to access this route"}```

    ### Token invalid or expired
    - status code: 401
    - body: ```{"success": false, "message": "Invalid refresh token"}```
    """
    pair = await auth_service.refresh_token(payload.refresh_token)
    return ApiResponse(message="Token refreshed successfully", data=pair)


@router.get("/me", response_model=ApiResponse[UserPublic])
async def get_me(current_user: CurrentUser, auth_service: AuthServiceDep):
    """Returns the profile of the authenticated user."""
    user = await auth_service.get_profile(current_user.id)
    return ApiResponse(message="User profile retrieved successfully", data=user)


@router.get("/status", response_model=ApiResponse[AuthStatus])
async def auth_status(current_user: OptionalUser):
    """Reports whether the request carries a valid access token. Never fails with 401."""
    if current_user is None:
        return ApiResponse(message="Not authenticated", data=AuthStatus(authenticated=False))
    return ApiResponse(
        message="Authenticated",
        data=AuthStatus(authenticated=True, user=SessionUser.from_session(current_user)),
    )


@router.put("/change-password", response_model=ApiResponse[None])
async def change_password(
    payload: ChangePasswordRequest, current_user: CurrentUser, auth_service: AuthServiceDep
):
    """Changes the password of the authenticated user.
    Tokens issued before the change stop working.

    ## Responses
    ### Current password is wrong
    - status code: 400
    - body: ```{"success": false, "message": "Current password is incorrect"}```
    """
    await auth_service.change_password(current_user.id, payload)
    return ApiResponse(message="Password changed successfully")


@router.post("/forgot-password", response_model=ApiResponse[None])
async def forgot_password(payload: EmailRequest, auth_service: AuthServiceDep):
    """Emails a password reset link.
    The response is the same whether or not the email is registered.
    """
    try:
        await auth_service.forgot_password(payload.email)
    except AuthError as e:
        if e.kind != AuthErrorKind.IDENTITY_NOT_FOUND:
            raise
        logfire.info(f"Password reset requested for unknown email: {payload.email}")

    return ApiResponse(message=FORGOT_PASSWORD_MESSAGE)


@router.put("/reset-password/{token}", response_model=ApiResponse[AuthResult])
async def reset_password(token: str, payload: ResetPasswordRequest, auth_service: AuthServiceDep):
    """Sets a new password using the token from the reset email and signs the user in.

    ## Responses
    ### Token unknown or expired
    - status code: 400
    - body: ```{"success": false, "message": "Invalid or expired reset token"}```
    """
    result = await auth_service.reset_password(token, payload)
    return ApiResponse(message="Password reset successful", data=result)


@router.get("/verify-email/{token}", response_model=ApiResponse[None])
async def verify_email(token: str, auth_service: AuthServiceDep):
    """Marks the email address of the token holder as verified.

    ## Responses
    ### Token unknown or expired
    - status code: 400
    - body: ```{"success": false, "message": "Invalid verification token"}```
    """
    await auth_service.verify_email(token)
    return ApiResponse(message="Email verified successfully")


@router.post("/resend-verification", response_model=ApiResponse[None])
async def resend_verification(payload: EmailRequest, auth_service: AuthServiceDep):
    """Sends a fresh verification link.

    ## Responses
    ### User not found
    - status code: 404
    - body: ```{"success": false, "message": "User not found"}```

    ### Already verified
    - status code: 400
    - body: ```{"success": false, "message": "Email is already verified"}```
    """
    await auth_service.resend_verification(payload.email)
    return ApiResponse(message="Verification email sent")
