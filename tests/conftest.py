"""Pytest fixtures for payroll service tests."""

from __future__ import annotations

from collections.abc import AsyncGenerator
from decimal import Decimal
from typing import Any
from uuid import UUID, uuid4

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession

from huminex_payroll.context import RequestContext
from huminex_payroll.database import create_schema, create_session_factory, get_engine
from huminex_payroll.errors import DocumentStorageError
from huminex_payroll.events import PublishedEvent
from huminex_payroll.services.payroll_repository import PayrollRepository, RunTotals
from huminex_payroll.services.period import PayrollPeriod

# In-memory SQLite shared across sessions through a StaticPool
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

TENANT_A = UUID("11111111-1111-1111-1111-111111111111")
TENANT_B = UUID("22222222-2222-2222-2222-222222222222")
ACTOR_ID = UUID("33333333-3333-3333-3333-333333333333")


@pytest_asyncio.fixture
async def engine() -> AsyncGenerator[AsyncEngine, None]:
    """Fresh database per test."""
    engine = get_engine(TEST_DATABASE_URL)
    await create_schema(engine)
    yield engine
    await engine.dispose()


@pytest_asyncio.fixture
async def file_engine(tmp_path) -> AsyncGenerator[AsyncEngine, None]:
    """File database where every session gets its own connection."""
    engine = get_engine(f"sqlite+aiosqlite:///{tmp_path / 'payroll.db'}")
    await create_schema(engine)
    yield engine
    await engine.dispose()


@pytest_asyncio.fixture
async def session(engine: AsyncEngine) -> AsyncGenerator[AsyncSession, None]:
    async with create_session_factory(engine)() as session:
        yield session
        await session.rollback()


@pytest.fixture
def ctx() -> RequestContext:
    return RequestContext(
        tenant_id=TENANT_A,
        user_id=ACTOR_ID,
        user_email="payroll.manager@example.com",
        role="payroll_manager",
        permissions=frozenset({"payroll.read", "payroll.write"}),
        trace_id="trace-test-1",
    )


@pytest.fixture
def other_tenant_ctx() -> RequestContext:
    return RequestContext(
        tenant_id=TENANT_B,
        user_id=uuid4(),
        user_email="someone@other.example.com",
        role="admin",
        permissions=frozenset({"payroll.read", "payroll.write"}),
        trace_id="trace-test-2",
    )


async def seed_payslip(
    session: AsyncSession,
    tenant_id: UUID,
    period: str = "2026-02",
    gross: str = "5000.00",
    deductions: str = "1250.00",
    email: str = "jane.doe@example.com",
) -> UUID:
    """Add an employee with one payslip and commit. Returns the employee id."""
    repo = PayrollRepository(session)
    employee = await repo.add_employee(
        tenant_id, f"EMP-{uuid4().hex[:6]}", "Jane Doe", email
    )
    await repo.add_payslip(
        tenant_id,
        employee.id,
        PayrollPeriod.parse(period),
        Decimal(gross),
        Decimal(deductions),
    )
    await session.commit()
    return employee.id


class RecordingPublisher:
    """Publisher that remembers what it was asked to deliver."""

    def __init__(self) -> None:
        self.published: list[tuple[str, dict[str, Any]]] = []

    async def publish(self, event_type: str, payload: dict[str, Any]) -> None:
        self.published.append((event_type, payload))


class FailingPublisher:
    """Publisher whose transport is always down."""

    def __init__(self) -> None:
        self.calls = 0

    async def publish(self, event_type: str, payload: dict[str, Any]) -> None:
        self.calls += 1
        raise ConnectionError("event bus unreachable")


class RecordingDocumentStorage:
    """Document storage double that counts calls."""

    def __init__(self, fail: bool = False) -> None:
        self.calls: list[tuple[UUID, UUID, str]] = []
        self.fail = fail

    async def ensure_payslip_document(
        self, tenant_id: UUID, employee_id: UUID, period: PayrollPeriod
    ) -> str:
        self.calls.append((tenant_id, employee_id, str(period)))
        if self.fail:
            raise DocumentStorageError("Payslip document storage is unavailable.")
        return f"{tenant_id}/{employee_id}/{period}/payslip.txt"


@pytest.fixture
def publisher() -> RecordingPublisher:
    return RecordingPublisher()


@pytest.fixture
def documents() -> RecordingDocumentStorage:
    return RecordingDocumentStorage()


def collect_events(sink: list[PublishedEvent]):
    async def handler(event: PublishedEvent) -> None:
        sink.append(event)

    return handler


class CompetingRunCalculator:
    """Totals calculator that lets another connection create the run first."""

    def __init__(self, engine: AsyncEngine) -> None:
        self.session_factory = create_session_factory(engine)

    async def calculate(
        self, session: AsyncSession, tenant_id: UUID, period: PayrollPeriod
    ) -> RunTotals:
        async with self.session_factory() as other:
            await PayrollRepository(other).create_run(tenant_id, period)
            await other.commit()
        return RunTotals(
            employees_count=0, gross_amount=Decimal("0.00"), net_amount=Decimal("0.00")
        )
