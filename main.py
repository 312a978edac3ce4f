import asyncio
import logfire

from pathlib import Path

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from uvicorn.middleware.proxy_headers import ProxyHeadersMiddleware

from contextlib import asynccontextmanager

from typing import Optional

from motor.motor_asyncio import AsyncIOMotorClient
from beanie import init_beanie

from config.settings import Settings, get_settings
from middleware.error_handler import setup_exception_handlers
from middleware.rate_limiting import RateLimitMiddleware
from models.users import User
from routers import auth, users
from schema.responses import ApiResponse
from services.cache import CacheUnavailableError, InMemoryCache, KeyValueCache, RedisCache
from services.components import AuthComponents, build_auth_components
from services.email import EmailService
from services.notifier import EmailNotifier, LoggingNotifier, Notifier
from services.template import TemplateService
from services.user_repository import BeanieUserRepository
from utils import background
from utils.logger import configure_logging, instrument_app

HEALTH_PATH = "/health"


async def create_cache(settings: Settings) -> KeyValueCache:
    if settings.cache_backend == "memory":
        logfire.info("Using in-process cache")
        return InMemoryCache()

    cache = RedisCache.from_url(settings.redis_url, settings.cache_operation_timeout)
    try:
        await cache.ping()
        logfire.info("Redis connection established")
    except CacheUnavailableError as e:
        # Cache consumers fail open, so startup goes on without Redis
        logfire.error(f"Redis unavailable at startup: {str(e)}")
    return cache


def create_notifier(settings: Settings) -> Notifier:
    if not settings.smtp_server or not settings.from_email:
        logfire.warning("SMTP_SERVER or FROM_EMAIL not set, emails will only be logged")
        return LoggingNotifier()

    email_service = EmailService(
        smtp_server=settings.smtp_server,
        smtp_port=settings.smtp_port,
        username=settings.smtp_username,
        password=settings.smtp_password,
        from_email=settings.from_email,
    )
    template_service = TemplateService(templates_dir=Path(settings.templates_dir))
    return EmailNotifier(email_service, template_service, settings.frontend_url)


def create_app(settings: Optional[Settings] = None, components: Optional[AuthComponents] = None) -> FastAPI:
    """Build the application.

    Args:
        settings (Optional[Settings], optional): Defaults to the environment settings.
        components (Optional[AuthComponents], optional): Prebuilt core components. When
            given, the lifespan does not connect to MongoDB or Redis.

    Returns:
        FastAPI: The application.
    """
    settings = settings or get_settings()
    configure_logging(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logfire.info("Starting ShopDev auth service...")

        client = None
        if components is None:
            client = AsyncIOMotorClient(
                settings.database_connection_string,
                tz_aware=True,
                serverSelectionTimeoutMS=settings.database_timeout_ms,
                socketTimeoutMS=settings.database_timeout_ms,
            )  # * Connect to MongoDB

            await init_beanie(database=client[settings.database_name], document_models=[User])
            logfire.info("Database initialized successfully")

            app.state.auth = build_auth_components(
                settings,
                repository=BeanieUserRepository(),
                cache=await create_cache(settings),
                notifier=create_notifier(settings),
            )
        else:
            app.state.auth = components

        sweeper = asyncio.create_task(
            app.state.auth.verification_cache.run_sweeper(settings.verification_cache_sweep_seconds),
            name="verification-cache-sweeper",
        )

        yield

        logfire.info("Shutting down ShopDev auth service...")
        sweeper.cancel()
        await background.drain()
        if client is not None:
            await app.state.auth.cache.close()
            client.close()
        logfire.info("Application shutdown complete")

    app = FastAPI(
        title="ShopDev Auth API",
        description="Registration, login and session management for the ShopDev store.",
        lifespan=lifespan,
    )

    if components is not None:
        app.state.auth = components

    instrument_app(app, settings)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(GZipMiddleware, minimum_size=500)
    app.add_middleware(
        RateLimitMiddleware,
        requests_per_minute=settings.requests_per_minute,
        bucket_capacity=settings.request_burst_capacity,
        exclude_paths=[HEALTH_PATH],
    )
    # Added last so it runs first and the throttle sees the real client address
    app.add_middleware(ProxyHeadersMiddleware, trusted_hosts=settings.trusted_proxies)

    setup_exception_handlers(app, settings)

    app.include_router(auth.router)
    app.include_router(users.router)

    @app.get(HEALTH_PATH, response_model=ApiResponse[dict], tags=["Health"])
    async def health():
        """Liveness probe."""
        return ApiResponse(message="OK", data={"status": "ok", "environment": settings.environment})

    return app


app = create_app()
