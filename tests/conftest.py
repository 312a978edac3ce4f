import asyncio
import inspect
import os

# Settings are read from the environment at import time
os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("CACHE_BACKEND", "memory")
os.environ.setdefault("BCRYPT_ROUNDS", "4")
os.environ.setdefault("LOGFIRE_INSTRUMENT", "false")

import logfire  # noqa: E402
import pytest  # noqa: E402

from fastapi.testclient import TestClient  # noqa: E402

from config.settings import Settings  # noqa: E402
from models.helpers import UserRole  # noqa: E402
from security.passwords import PasswordHasher  # noqa: E402
from services.cache import InMemoryCache  # noqa: E402
from services.components import build_auth_components  # noqa: E402

from tests.fakes import ADMIN_PASSWORD, MemoryUserRepository, RecordingNotifier  # noqa: E402

logfire.configure(send_to_logfire=False, console=False)


def pytest_pyfunc_call(pyfuncitem):
    if inspect.iscoroutinefunction(pyfuncitem.obj):
        call_kwargs = {
            name: pyfuncitem.funcargs[name]
            for name in pyfuncitem._fixtureinfo.argnames
            if name in pyfuncitem.funcargs
        }
        asyncio.run(pyfuncitem.obj(**call_kwargs))
        return True
    return None


@pytest.fixture
def settings():
    return Settings(environment="test", cache_backend="memory", bcrypt_rounds=4)


@pytest.fixture
def repository():
    return MemoryUserRepository()


@pytest.fixture
def cache():
    return InMemoryCache()


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def components(settings, repository, cache, notifier):
    return build_auth_components(settings, repository=repository, cache=cache, notifier=notifier)


@pytest.fixture
def auth_service(components):
    return components.service


@pytest.fixture
def hasher():
    return PasswordHasher(rounds=4)


@pytest.fixture
def admin(repository, hasher):
    return repository.add(
        email="admin@shopdev.com",
        password=hasher.hash(ADMIN_PASSWORD),
        role=UserRole.ADMIN,
        is_email_verified=True,
    )


@pytest.fixture
def client(settings, components):
    from main import create_app

    with TestClient(create_app(settings=settings, components=components)) as test_client:
        yield test_client
