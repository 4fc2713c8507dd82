"""Tests for the payroll repository."""

from decimal import Decimal
from uuid import uuid4

import pytest

from huminex_payroll.database import create_session_factory
from huminex_payroll.services.payroll_repository import (
    DuplicatePeriodError,
    PayrollRepository,
    RunTotals,
)
from huminex_payroll.services.period import PayrollPeriod
from huminex_payroll.services.state_machine import InvalidTransitionError
from tests.conftest import (
    ACTOR_ID,
    TENANT_A,
    TENANT_B,
    CompetingRunCalculator,
    seed_payslip,
)

FEB = PayrollPeriod(2026, 2)


class TestCreateRun:
    async def test_creates_draft_with_payslip_totals(self, session):
        await seed_payslip(session, TENANT_A, gross="5000.00", deductions="1250.00")
        await seed_payslip(session, TENANT_A, gross="3000.00", deductions="500.50")
        # Other tenant and other period are not counted
        await seed_payslip(session, TENANT_B, gross="9999.00", deductions="0")
        await seed_payslip(session, TENANT_A, period="2026-01", gross="100.00", deductions="0")

        run = await PayrollRepository(session).create_run(TENANT_A, FEB)

        assert run.status == "draft"
        assert run.period == "2026-02"
        assert run.employees_count == 2
        assert Decimal(str(run.gross_amount)) == Decimal("8000.00")
        assert Decimal(str(run.net_amount)) == Decimal("6249.50")

    async def test_empty_period_has_zero_totals(self, session):
        run = await PayrollRepository(session).create_run(TENANT_A, FEB)

        assert run.employees_count == 0
        assert Decimal(str(run.gross_amount)) == Decimal("0.00")

    async def test_duplicate_period_rejected(self, session):
        repo = PayrollRepository(session)
        await repo.create_run(TENANT_A, FEB)
        await session.commit()

        with pytest.raises(DuplicatePeriodError) as exc_info:
            await repo.create_run(TENANT_A, FEB)

        assert exc_info.value.status_code == 409
        assert exc_info.value.code == "duplicate_period"

    async def test_same_period_allowed_for_other_tenant(self, session):
        repo = PayrollRepository(session)
        await repo.create_run(TENANT_A, FEB)
        await repo.create_run(TENANT_B, FEB)
        await session.commit()

        assert len(await repo.list_runs(TENANT_A)) == 1
        assert len(await repo.list_runs(TENANT_B)) == 1

    async def test_custom_totals_calculator(self, session):
        class FixedTotals:
            async def calculate(self, session, tenant_id, period):
                return RunTotals(3, Decimal("300.00"), Decimal("270.00"))

        run = await PayrollRepository(session, FixedTotals()).create_run(TENANT_A, FEB)

        assert run.employees_count == 3
        assert Decimal(str(run.net_amount)) == Decimal("270.00")

    async def test_run_inserted_concurrently_is_duplicate(self, file_engine):
        async with create_session_factory(file_engine)() as session:
            repo = PayrollRepository(session, CompetingRunCalculator(file_engine))

            # The pre-check passes; the unique constraint catches the race at flush
            with pytest.raises(DuplicatePeriodError) as exc_info:
                await repo.create_run(TENANT_A, FEB)

            assert exc_info.value.status_code == 409
            runs = await repo.list_runs(TENANT_A)
            assert len(runs) == 1
            assert runs[0].status == "draft"


class TestTransitions:
    async def test_approve_then_disburse(self, session):
        repo = PayrollRepository(session)
        run = await repo.create_run(TENANT_A, FEB)
        await session.commit()

        approved = await repo.approve_run(TENANT_A, run.id, ACTOR_ID)
        await session.commit()
        assert approved.status == "approved"
        assert approved.approved_by == ACTOR_ID
        assert approved.approved_at is not None

        disbursed = await repo.disburse_run(TENANT_A, run.id, ACTOR_ID)
        await session.commit()
        assert disbursed.status == "disbursed"
        assert disbursed.disbursed_by == ACTOR_ID

    async def test_disburse_draft_rejected(self, session):
        repo = PayrollRepository(session)
        run = await repo.create_run(TENANT_A, FEB)
        await session.commit()

        with pytest.raises(InvalidTransitionError):
            await repo.disburse_run(TENANT_A, run.id)

        assert (await repo.get_run(TENANT_A, run.id)).status == "draft"

    async def test_approve_twice_rejected(self, session):
        repo = PayrollRepository(session)
        run = await repo.create_run(TENANT_A, FEB)
        await repo.approve_run(TENANT_A, run.id)
        await session.commit()

        with pytest.raises(InvalidTransitionError):
            await repo.approve_run(TENANT_A, run.id)

    async def test_unknown_run_returns_none(self, session):
        repo = PayrollRepository(session)
        assert await repo.approve_run(TENANT_A, uuid4()) is None
        assert await repo.disburse_run(TENANT_A, uuid4()) is None

    async def test_other_tenant_cannot_see_run(self, session):
        repo = PayrollRepository(session)
        run = await repo.create_run(TENANT_A, FEB)
        await session.commit()

        assert await repo.get_run(TENANT_B, run.id) is None
        assert await repo.approve_run(TENANT_B, run.id) is None
        assert (await repo.get_run(TENANT_A, run.id)).status == "draft"


class TestListRuns:
    async def test_newest_period_first(self, session):
        repo = PayrollRepository(session)
        for period in ("2025-12", "2026-02", "2026-01"):
            await repo.create_run(TENANT_A, PayrollPeriod.parse(period))
        await session.commit()

        runs = await repo.list_runs(TENANT_A)

        assert [r.period for r in runs] == ["2026-02", "2026-01", "2025-12"]


class TestPayslips:
    async def test_add_payslip_computes_net(self, session):
        repo = PayrollRepository(session)
        employee = await repo.add_employee(TENANT_A, "E-1", "Ana", "Ana@Example.com ")
        payslip = await repo.add_payslip(
            TENANT_A, employee.id, FEB, Decimal("1000"), Decimal("125.5")
        )

        assert payslip.net_amount == Decimal("874.50")
        assert employee.email == "ana@example.com"

    async def test_add_payslip_rejects_unbalanced_net(self, session):
        repo = PayrollRepository(session)
        employee = await repo.add_employee(TENANT_A, "E-1", "Ana", "ana@example.com")

        with pytest.raises(ValueError):
            await repo.add_payslip(
                TENANT_A,
                employee.id,
                FEB,
                Decimal("1000.00"),
                Decimal("100.00"),
                net_amount=Decimal("950.00"),
            )

    async def test_add_payslip_rejects_negative_amounts(self, session):
        repo = PayrollRepository(session)
        employee = await repo.add_employee(TENANT_A, "E-1", "Ana", "ana@example.com")

        with pytest.raises(ValueError):
            await repo.add_payslip(TENANT_A, employee.id, FEB, Decimal("100"), Decimal("200"))

    async def test_list_and_get(self, session):
        employee_id = await seed_payslip(session, TENANT_A, period="2026-01")
        repo = PayrollRepository(session)
        await repo.add_payslip(TENANT_A, employee_id, FEB, Decimal("10"), Decimal("1"))
        await session.commit()

        payslips = await repo.list_payslips(TENANT_A, employee_id)
        assert [p.period for p in payslips] == ["2026-02", "2026-01"]

        assert (await repo.get_payslip(TENANT_A, employee_id, FEB)) is not None
        assert (await repo.get_payslip(TENANT_B, employee_id, FEB)) is None
        assert await repo.list_payslips(TENANT_B, employee_id) == []

    async def test_attach_document_and_mark_emailed(self, session):
        employee_id = await seed_payslip(session, TENANT_A)
        repo = PayrollRepository(session)

        assert await repo.attach_payslip_document(TENANT_A, employee_id, FEB, "a/b/payslip.txt")
        assert await repo.mark_payslip_emailed(TENANT_A, employee_id, FEB)
        await session.commit()

        payslip = await repo.get_payslip(TENANT_A, employee_id, FEB)
        await session.refresh(payslip)
        assert payslip.document_blob_name == "a/b/payslip.txt"
        assert payslip.last_emailed_at is not None

    async def test_updates_report_missing_payslip(self, session):
        repo = PayrollRepository(session)
        assert not await repo.attach_payslip_document(TENANT_A, uuid4(), FEB, "x")
        assert not await repo.mark_payslip_emailed(TENANT_A, uuid4(), FEB)

    async def test_get_employee_is_tenant_scoped(self, session):
        repo = PayrollRepository(session)
        employee = await repo.add_employee(TENANT_A, "E-1", "Ana", "ana@example.com")
        await session.commit()

        assert (await repo.get_employee(TENANT_A, employee.id)).name == "Ana"
        assert await repo.get_employee(TENANT_B, employee.id) is None
