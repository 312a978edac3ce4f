"""Application settings loaded from the environment (and a local `.env` file)."""

import os

from functools import lru_cache
from datetime import timedelta

from dotenv import load_dotenv

from pydantic import BaseModel, Field, model_validator

from typing import Annotated, List, Literal, Optional, Self

load_dotenv()

# Fallback secrets only ever used outside production
DEV_JWT_SECRET = "shopdev-dev-access-secret"
DEV_JWT_REFRESH_SECRET = "shopdev-dev-refresh-secret"


class PasswordPolicy(BaseModel):
    """Complexity rules applied to every new password."""

    min_length: Annotated[int, Field(default=8, ge=1)]
    max_length: Annotated[int, Field(default=128)]
    require_lowercase: Annotated[bool, Field(default=True)]
    require_uppercase: Annotated[bool, Field(default=True)]
    require_digit: Annotated[bool, Field(default=True)]


class Settings(BaseModel):
    """All tunables of the authentication service."""

    environment: Annotated[str, Field(default="development")]

    jwt_secret: Annotated[str, Field(default=DEV_JWT_SECRET)]
    jwt_refresh_secret: Annotated[str, Field(default=DEV_JWT_REFRESH_SECRET)]
    jwt_algorithm: Annotated[str, Field(default="HS256")]
    access_token_expire_minutes: Annotated[int, Field(default=15)]
    refresh_token_expire_days: Annotated[int, Field(default=7)]

    database_connection_string: Annotated[str, Field(default="mongodb://localhost:27017")]
    database_name: Annotated[str, Field(default="shopdev")]
    database_timeout_ms: Annotated[int, Field(default=3000)]

    cache_backend: Annotated[Literal["redis", "memory"], Field(default="redis")]
    redis_url: Annotated[str, Field(default="redis://localhost:6379/0")]
    cache_operation_timeout: Annotated[float, Field(default=0.5, gt=0)]
    session_cache_ttl: Annotated[int, Field(default=300)]

    verification_cache_ttl: Annotated[int, Field(default=300)]
    verification_cache_max_entries: Annotated[int, Field(default=1000)]
    verification_cache_idle_seconds: Annotated[int, Field(default=1800)]
    verification_cache_sweep_seconds: Annotated[int, Field(default=300)]

    login_rate_limit_window: Annotated[int, Field(default=900)]
    login_rate_limit_max: Annotated[int, Field(default=5)]
    login_lockout_window: Annotated[int, Field(default=3600)]
    login_lockout_max: Annotated[int, Field(default=10)]

    password_policy: Annotated[PasswordPolicy, Field(default_factory=PasswordPolicy)]
    bcrypt_rounds: Annotated[int, Field(default=12, ge=4, le=31)]
    password_reset_expire_minutes: Annotated[int, Field(default=10)]
    email_verification_expire_hours: Annotated[int, Field(default=24)]

    requests_per_minute: Annotated[int, Field(default=100)]
    request_burst_capacity: Annotated[int, Field(default=120)]

    smtp_server: Annotated[Optional[str], Field(default=None)]
    smtp_port: Annotated[int, Field(default=587)]
    smtp_username: Annotated[Optional[str], Field(default=None)]
    smtp_password: Annotated[Optional[str], Field(default=None)]
    from_email: Annotated[Optional[str], Field(default=None)]
    frontend_url: Annotated[str, Field(default="http://localhost:3000")]
    templates_dir: Annotated[str, Field(default="templates")]

    cors_origins: Annotated[List[str], Field(default=["*"])]
    trusted_proxies: Annotated[List[str], Field(default=["127.0.0.1"])]

    logfire_write_token: Annotated[Optional[str], Field(default=None)]
    logfire_instrument: Annotated[bool, Field(default=False)]

    @property
    def is_production(self) -> bool:
        return self.environment.lower() == "production"

    @property
    def access_token_lifetime(self) -> timedelta:
        return timedelta(minutes=self.access_token_expire_minutes)

    @property
    def refresh_token_lifetime(self) -> timedelta:
        return timedelta(days=self.refresh_token_expire_days)

    # * Never run production with the development signing secrets
    @model_validator(mode="after")
    def check_production_secrets(self) -> Self:
        if self.is_production and (
            self.jwt_secret == DEV_JWT_SECRET
            or self.jwt_refresh_secret == DEV_JWT_REFRESH_SECRET
        ):
            raise ValueError(
                "JWT_SECRET and JWT_REFRESH_SECRET must be set in production"
            )
        return self

    @classmethod
    def from_env(cls) -> "Settings":
        """Build settings from environment variables.

        Unset variables fall back to the field defaults.

        Returns:
            Settings: The populated settings.
        """
        env = {
            "environment": os.getenv("ENVIRONMENT"),
            "jwt_secret": os.getenv("JWT_SECRET"),
            "jwt_refresh_secret": os.getenv("JWT_REFRESH_SECRET"),
            "access_token_expire_minutes": os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES"),
            "refresh_token_expire_days": os.getenv("REFRESH_TOKEN_EXPIRE_DAYS"),
            "database_connection_string": os.getenv("DATABASE_CONNECTION_STRING"),
            "database_name": os.getenv("DATABASE_NAME"),
            "database_timeout_ms": os.getenv("DATABASE_TIMEOUT_MS"),
            "cache_backend": os.getenv("CACHE_BACKEND"),
            "redis_url": os.getenv("REDIS_URL"),
            "cache_operation_timeout": os.getenv("CACHE_OPERATION_TIMEOUT"),
            "session_cache_ttl": os.getenv("SESSION_CACHE_TTL"),
            "verification_cache_ttl": os.getenv("VERIFICATION_CACHE_TTL"),
            "verification_cache_max_entries": os.getenv("VERIFICATION_CACHE_MAX_ENTRIES"),
            "verification_cache_idle_seconds": os.getenv("VERIFICATION_CACHE_IDLE_SECONDS"),
            "verification_cache_sweep_seconds": os.getenv("VERIFICATION_CACHE_SWEEP_SECONDS"),
            "login_rate_limit_window": os.getenv("LOGIN_RATE_LIMIT_WINDOW"),
            "login_rate_limit_max": os.getenv("LOGIN_RATE_LIMIT_MAX"),
            "login_lockout_window": os.getenv("LOGIN_LOCKOUT_WINDOW"),
            "login_lockout_max": os.getenv("LOGIN_LOCKOUT_MAX"),
            "bcrypt_rounds": os.getenv("BCRYPT_ROUNDS"),
            "password_reset_expire_minutes": os.getenv("PASSWORD_RESET_EXPIRE_MINUTES"),
            "email_verification_expire_hours": os.getenv("EMAIL_VERIFICATION_EXPIRE_HOURS"),
            "requests_per_minute": os.getenv("REQUESTS_PER_MINUTE"),
            "request_burst_capacity": os.getenv("REQUEST_BURST_CAPACITY"),
            "smtp_server": os.getenv("SMTP_SERVER"),
            "smtp_port": os.getenv("SMTP_PORT"),
            "smtp_username": os.getenv("SMTP_USERNAME"),
            "smtp_password": os.getenv("SMTP_PASSWORD"),
            "from_email": os.getenv("FROM_EMAIL"),
            "frontend_url": os.getenv("FRONTEND_URL"),
            "templates_dir": os.getenv("TEMPLATES_DIR"),
            "cors_origins": _split(os.getenv("CORS_ORIGINS")),
            "trusted_proxies": _split(os.getenv("TRUSTED_PROXIES")),
            "logfire_write_token": os.getenv("LOGFIRE_WRITE_TOKEN"),
            "logfire_instrument": os.getenv("LOGFIRE_INSTRUMENT"),
        }

        policy = {
            "min_length": os.getenv("PASSWORD_MIN_LENGTH"),
            "max_length": os.getenv("PASSWORD_MAX_LENGTH"),
        }
        env["password_policy"] = PasswordPolicy(
            **{key: value for key, value in policy.items() if value is not None}
        )

        return cls(**{key: value for key, value in env.items() if value is not None})


def _split(value: Optional[str]) -> Optional[List[str]]:
    if value is None:
        return None
    return [item.strip() for item in value.split(",") if item.strip()]


@lru_cache
def get_settings() -> Settings:
    """Process-wide settings instance."""
    return Settings.from_env()
