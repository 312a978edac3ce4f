""" User router for handling administrative user endpoints.
"""

import logfire

from fastapi import APIRouter, Depends

from typing import Annotated

from models.helpers import UserRole
from schema.responses import ApiResponse
from schema.users import SessionEntry, UpdateUserStatusRequest, UserPublic
from security.dependencies import AuthServiceDep, require_roles

router = APIRouter(
    prefix="/api/v1/users",
    tags=["Users"],
)


@router.patch("/{user_id}/status", response_model=ApiResponse[UserPublic])
async def update_user_status(
    user_id: str,
    payload: UpdateUserStatusRequest,
    admin: Annotated[SessionEntry, Depends(require_roles(UserRole.ADMIN))],
    auth_service: AuthServiceDep,
):
    """Activates or deactivates a user account. Admins only.
    A deactivated user is rejected on their next request, even with a valid token.

    ## Responses
    ### Caller is not an admin
    - status code: 403
    - body: ```{"success": false, "message": "User role customer is not authorized to access this route"}```

    ### User not found
    - status code: 404
    - body: ```{"success": false, "message": "User not found"}```
    """
    with logfire.span(f"Admin {admin.email} setting active={payload.is_active} on user {user_id}"):
        user = await auth_service.set_active(user_id, payload.is_active)

    state = "activated" if payload.is_active else "deactivated"
    return ApiResponse(message=f"User {state} successfully", data=user)
