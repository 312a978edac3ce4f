"""Logfire setup for the application."""

import logfire

from fastapi import FastAPI

from config.settings import Settings

SERVICE_NAME = "shopdev-auth"


def configure_logging(settings: Settings) -> None:
    """Configure logfire once per process.

    Records are only shipped when a write token is present; otherwise they
    go to the console.
    """
    logfire.configure(
        token=settings.logfire_write_token,
        send_to_logfire="if-token-present",
        service_name=SERVICE_NAME,
        environment=settings.environment,
    )


def instrument_app(app: FastAPI, settings: Settings) -> None:
    """Instrument FastAPI and the database and cache clients when enabled."""
    if not settings.logfire_instrument:
        return

    logfire.instrument_fastapi(app)
    logfire.instrument_pymongo()
    if settings.cache_backend == "redis":
        logfire.instrument_redis()
    logfire.info("FastAPI application instrumented with logfire")
