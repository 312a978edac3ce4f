"""
Exception handlers that turn failures into the error envelope.

Error response format:
    {
        "success": false,
        "message": "Human-readable error message",
        "errors": [{"field": "password", "message": "..."}],   # validation only
        "retryAfter": 840,                                    # rate limiting only
        "stack": "..."                                        # outside production only
    }
"""

import traceback

import logfire

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from pymongo.errors import ConnectionFailure

from typing import Any, Dict, List, Optional

from config.settings import Settings
from schema.responses import ErrorResponse
from security.errors import UNIFORM_PUBLIC_MESSAGES, AuthError, AuthErrorKind

# Locations FastAPI prefixes to validation error paths
_LOCATION_PREFIXES = {"body", "query", "path", "header", "cookie"}


def error_response(
    status_code: int,
    message: str,
    errors: Optional[List[Dict[str, Any]]] = None,
    retry_after: Optional[int] = None,
    stack: Optional[str] = None,
    headers: Optional[Dict[str, str]] = None,
) -> JSONResponse:
    """Build a JSON response carrying the error envelope."""
    body = ErrorResponse(message=message, errors=errors, retry_after=retry_after, stack=stack)
    return JSONResponse(
        status_code=status_code,
        content=body.model_dump(by_alias=True, exclude_none=True),
        headers=headers,
    )


def validation_errors(exc: RequestValidationError) -> List[Dict[str, Any]]:
    """Flatten FastAPI validation errors into `{field, message}` pairs."""
    errors = []
    for error in exc.errors():
        location = [str(part) for part in error.get("loc", ()) if part not in _LOCATION_PREFIXES]
        message = str(error.get("msg", "Invalid value"))
        # Messages from custom validators come prefixed by pydantic
        message = message.removeprefix("Value error, ")
        errors.append({"field": ".".join(location) or "body", "message": message})
    return errors


def setup_exception_handlers(app: FastAPI, settings: Settings) -> None:
    """Register the error-envelope handlers on `app`.

    Args:
        app (FastAPI): The application.
        settings (Settings): Decides whether stack traces are exposed.
    """

    @app.exception_handler(AuthError)
    async def auth_error_handler(request: Request, exc: AuthError) -> JSONResponse:
        logfire.warning(
            f"{request.method} {request.url.path} failed: {exc.kind.value} ({exc.message})"
        )

        headers = {}
        if exc.retry_after is not None:
            headers["Retry-After"] = str(exc.retry_after)
        if exc.kind in UNIFORM_PUBLIC_MESSAGES:
            headers["WWW-Authenticate"] = "Bearer"

        return error_response(
            status_code=exc.status_code,
            message=exc.public_message,
            errors=exc.errors,
            retry_after=exc.retry_after,
            headers=headers or None,
        )

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
        error = AuthError(AuthErrorKind.VALIDATION_FAILED, errors=validation_errors(exc))
        return await auth_error_handler(request, error)

    @app.exception_handler(ConnectionFailure)
    async def database_error_handler(request: Request, exc: ConnectionFailure) -> JSONResponse:
        logfire.error(f"Database connection error on {request.method} {request.url.path}: {str(exc)}")
        return error_response(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            message=AuthError(AuthErrorKind.SERVICE_UNAVAILABLE).message,
        )

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
        logfire.exception(f"Unhandled error on {request.method} {request.url.path}: {exc!r}")
        stack = None
        if not settings.is_production:
            stack = "".join(traceback.format_exception(exc))
        return error_response(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            message="Internal server error",
            stack=stack,
        )
