"""
Shared fixtures.

The settings singleton reads the environment at import time, so the test
database URL is set before anything from orderflow is imported.
"""

from __future__ import annotations

import os
import tempfile
from pathlib import Path

_TMP_DIR = tempfile.mkdtemp(prefix="orderflow-tests-")
os.environ["DATABASE_URL"] = f"sqlite+aiosqlite:///{Path(_TMP_DIR) / 'orderflow.db'}"
os.environ["APP_ENV"] = "test"
os.environ.setdefault("LOG_LEVEL", "WARNING")

import httpx  # noqa: E402
import pytest  # noqa: E402

from orderflow import database  # noqa: E402
from orderflow.main import app  # noqa: E402
from orderflow.models import Base  # noqa: E402
from orderflow.services import reporting, system  # noqa: E402


@pytest.fixture(autouse=True)
async def _schema():
    """Fresh tables for every test."""
    reporting.clear_cache()
    system.clear_cache()
    async with database.engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield
    async with database.engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await database.engine.dispose()


@pytest.fixture
async def session():
    async with database.AsyncSessionLocal() as s:
        yield s


@pytest.fixture
async def client():
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as c:
        yield c
