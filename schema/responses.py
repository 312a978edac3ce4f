"""Response envelopes shared by every endpoint."""

from pydantic import BaseModel, Field

from typing import Annotated, Any, Dict, Generic, List, Optional, TypeVar

from schema.users import SessionUser

T = TypeVar("T")


class ApiResponse(BaseModel, Generic[T]):
    """Body of every successful response."""

    success: Annotated[bool, Field(default=True)]
    message: Annotated[str, Field()]
    data: Annotated[Optional[T], Field(default=None)]


class ErrorResponse(BaseModel):
    """Body of every failed response."""

    success: Annotated[bool, Field(default=False)]
    message: Annotated[str, Field()]
    errors: Annotated[Optional[List[Dict[str, Any]]], Field(default=None)]
    retry_after: Annotated[Optional[int], Field(default=None, serialization_alias="retryAfter")]
    stack: Annotated[Optional[str], Field(default=None)]


class AuthStatus(BaseModel):
    """Body of the optional-authentication status check."""

    authenticated: bool
    user: Optional[SessionUser] = None
