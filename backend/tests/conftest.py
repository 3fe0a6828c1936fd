import asyncio
import os
import sys
from pathlib import Path

import pytest

# the app module builds its engine at import time
os.environ["DATABASE_URL"] = "sqlite+aiosqlite://"

sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

from fastapi.testclient import TestClient  # noqa: E402
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine  # noqa: E402
from sqlalchemy.pool import NullPool  # noqa: E402

from village_monitor import db as db_module  # noqa: E402
from village_monitor.main import app  # noqa: E402
from village_monitor.seed import seed_database  # noqa: E402


@pytest.fixture
def session_factory(tmp_path):
    # file-backed so every connection (and every event loop) sees the same data
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'monitor.db'}", poolclass=NullPool)
    asyncio.run(seed_database(engine))
    return async_sessionmaker(engine, expire_on_commit=False)


@pytest.fixture
def client(session_factory, monkeypatch):
    async def override_get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[db_module.get_db] = override_get_db
    monkeypatch.setattr(db_module, "AsyncSessionLocal", session_factory)
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def run_db(session_factory):
    """Run ``fn(session)`` against the test database and return its result."""

    def runner(fn):
        async def go():
            async with session_factory() as session:
                return await fn(session)

        return asyncio.run(go())

    return runner


def device_headers(name: str, key: str | None = None) -> dict[str, str]:
    return {"x-device-id": name, "x-device-key": key or f"device_{name}_key_2024"}
