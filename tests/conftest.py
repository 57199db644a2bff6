import asyncio
import inspect
import os
import sys
from pathlib import Path

# Settings are read at import time; seed the environment first.
os.environ.setdefault("ENVIRONMENT", "development")
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("USE_MEMORY_STORE", "true")
os.environ.setdefault("JWT_ACCESS_SECRET", "test-access-secret-do-not-use-in-production")
os.environ.setdefault("JWT_REFRESH_SECRET", "test-refresh-secret-do-not-use-in-production")
# Minimum bcrypt cost keeps the suite fast.
os.environ.setdefault("BCRYPT_ROUNDS", "4")

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402

ROOT = Path(__file__).resolve().parent.parent
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from app.core.database import get_store  # noqa: E402
from app.main import app  # noqa: E402
from app.stores.memory import MemoryStore  # noqa: E402


@pytest.fixture
def store():
    return MemoryStore()


@pytest.fixture
def client(store):
    app.dependency_overrides[get_store] = lambda: store
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


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


def pytest_configure(config):
    config.addinivalue_line("markers", "asyncio: mark test as async")
