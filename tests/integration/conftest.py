"""API test fixtures: the real app over an in-memory database."""

from collections.abc import AsyncGenerator

import pytest
import pytest_asyncio
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient

from huminex_payroll.api.app import create_app
from huminex_payroll.config import Settings
from huminex_payroll.database import create_schema
from tests.conftest import ACTOR_ID, TENANT_A, TEST_DATABASE_URL


@pytest.fixture
def settings(tmp_path) -> Settings:
    return Settings(
        database_url=TEST_DATABASE_URL,
        host="127.0.0.1",
        port=8000,
        debug=False,
        log_level="INFO",
        idempotency_ttl_hours=24,
        idempotency_key_max_length=128,
        payroll_documents_dir=str(tmp_path / "documents"),
        outbox_batch_size=100,
        create_schema_on_startup=False,
    )


@pytest_asyncio.fixture
async def app(settings: Settings) -> AsyncGenerator[FastAPI, None]:
    app = create_app(settings)
    # ASGITransport does not run the lifespan
    await create_schema(app.state.engine)
    yield app
    await app.state.engine.dispose()


@pytest_asyncio.fixture
async def client(app: FastAPI) -> AsyncGenerator[AsyncClient, None]:
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client


@pytest_asyncio.fixture
async def db_session(app: FastAPI):
    async with app.state.session_factory() as session:
        yield session


def manager_headers(**extra: str) -> dict[str, str]:
    """Headers of a payroll manager in tenant A."""
    headers = {
        "X-Tenant-ID": str(TENANT_A),
        "X-User-Id": str(ACTOR_ID),
        "X-User-Email": "payroll.manager@example.com",
        "X-User-Role": "payroll_manager",
    }
    headers.update(extra)
    return headers
