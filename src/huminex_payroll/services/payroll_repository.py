"""Payroll run and payslip persistence.

Every method takes the tenant id explicitly and filters on it in the query
itself. The repository flushes but never commits; the caller owns the
transaction so the domain change and its outbox event commit together.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Protocol
from uuid import UUID

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from huminex_payroll.errors import ConflictError
from huminex_payroll.models import Employee, PayrollRun, Payslip, utcnow
from huminex_payroll.services.period import PayrollPeriod
from huminex_payroll.services.state_machine import (
    InvalidTransitionError,
    PayrollRunStateMachine,
    PayrollRunStatus,
)

logger = logging.getLogger(__name__)

CENTS = Decimal("0.01")


class DuplicatePeriodError(ConflictError):
    """Raised when a run already exists for the tenant and period."""

    code = "duplicate_period"

    def __init__(self, period: PayrollPeriod):
        self.period = period
        super().__init__(
            f"A payroll run already exists for period '{period}'.",
            {"period": str(period)},
        )


@dataclass(frozen=True)
class RunTotals:
    """Headcount and amounts stamped on a new run."""

    employees_count: int
    gross_amount: Decimal
    net_amount: Decimal


class RunTotalsCalculator(Protocol):
    """Computes the totals of a run at creation time."""

    async def calculate(
        self, session: AsyncSession, tenant_id: UUID, period: PayrollPeriod
    ) -> RunTotals:
        ...


class PayslipTotalsCalculator:
    """Sums the tenant's payslips already processed for the period."""

    async def calculate(
        self, session: AsyncSession, tenant_id: UUID, period: PayrollPeriod
    ) -> RunTotals:
        result = await session.execute(
            select(
                func.count(Payslip.id),
                func.coalesce(func.sum(Payslip.gross_amount), 0),
                func.coalesce(func.sum(Payslip.net_amount), 0),
            ).where(
                Payslip.tenant_id == tenant_id,
                Payslip.period_year == period.year,
                Payslip.period_month == period.month,
            )
        )
        count, gross, net = result.one()
        return RunTotals(
            employees_count=int(count or 0),
            gross_amount=_money(gross),
            net_amount=_money(net),
        )


def _money(value: object) -> Decimal:
    return Decimal(str(value or 0)).quantize(CENTS)


class PayrollRepository:
    """Single writer path for payroll runs and payslips."""

    def __init__(
        self,
        session: AsyncSession,
        totals_calculator: RunTotalsCalculator | None = None,
    ):
        self.session = session
        self.totals_calculator = totals_calculator or PayslipTotalsCalculator()

    # =========================================================================
    # Payroll runs
    # =========================================================================

    async def list_runs(self, tenant_id: UUID) -> list[PayrollRun]:
        """Runs for a tenant, newest period first."""
        result = await self.session.execute(
            select(PayrollRun)
            .where(PayrollRun.tenant_id == tenant_id)
            .order_by(PayrollRun.period_year.desc(), PayrollRun.period_month.desc())
        )
        return list(result.scalars().all())

    async def get_run(self, tenant_id: UUID, run_id: UUID) -> PayrollRun | None:
        """Load a run by id within the tenant."""
        result = await self.session.execute(
            select(PayrollRun).where(
                PayrollRun.id == run_id,
                PayrollRun.tenant_id == tenant_id,
            )
        )
        return result.scalar_one_or_none()

    async def get_run_for_period(
        self, tenant_id: UUID, period: PayrollPeriod
    ) -> PayrollRun | None:
        """Load the run for a period, if one exists."""
        result = await self.session.execute(
            select(PayrollRun).where(
                PayrollRun.tenant_id == tenant_id,
                PayrollRun.period_year == period.year,
                PayrollRun.period_month == period.month,
            )
        )
        return result.scalar_one_or_none()

    async def create_run(self, tenant_id: UUID, period: PayrollPeriod) -> PayrollRun:
        """Create a draft run for the period.

        Raises:
            DuplicatePeriodError: If the tenant already has a run for the
                period, including one inserted concurrently.
        """
        if await self.get_run_for_period(tenant_id, period) is not None:
            raise DuplicatePeriodError(period)

        totals = await self.totals_calculator.calculate(self.session, tenant_id, period)
        run = PayrollRun(
            tenant_id=tenant_id,
            period_year=period.year,
            period_month=period.month,
            status=PayrollRunStatus.DRAFT.value,
            employees_count=totals.employees_count,
            gross_amount=totals.gross_amount,
            net_amount=totals.net_amount,
            created_at=utcnow(),
        )
        self.session.add(run)
        try:
            await self.session.flush()
        except IntegrityError as exc:
            # Lost the race on the (tenant, year, month) constraint
            await self.session.rollback()
            raise DuplicatePeriodError(period) from exc

        logger.info("Created payroll run %s for %s (tenant %s)", run.id, period, tenant_id)
        return run

    async def approve_run(
        self, tenant_id: UUID, run_id: UUID, actor_id: UUID | None = None
    ) -> PayrollRun | None:
        """Move a draft run to approved. Returns None if the run is absent."""
        return await self._transition(
            tenant_id, run_id, PayrollRunStatus.APPROVED, actor_id, "approved"
        )

    async def disburse_run(
        self, tenant_id: UUID, run_id: UUID, actor_id: UUID | None = None
    ) -> PayrollRun | None:
        """Move an approved run to disbursed. Returns None if the run is absent."""
        return await self._transition(
            tenant_id, run_id, PayrollRunStatus.DISBURSED, actor_id, "disbursed"
        )

    async def _transition(
        self,
        tenant_id: UUID,
        run_id: UUID,
        to_status: PayrollRunStatus,
        actor_id: UUID | None,
        stamp: str,
    ) -> PayrollRun | None:
        run = await self.get_run(tenant_id, run_id)
        if run is None:
            return None

        from_status = run.status
        PayrollRunStateMachine.validate_transition(from_status, to_status)

        # Compare-and-set on the current status; no row lock is held
        result = await self.session.execute(
            update(PayrollRun)
            .where(
                PayrollRun.id == run_id,
                PayrollRun.tenant_id == tenant_id,
                PayrollRun.status == from_status,
            )
            .values(
                {
                    "status": to_status.value,
                    f"{stamp}_at": utcnow(),
                    f"{stamp}_by": actor_id,
                }
            )
            .execution_options(synchronize_session=False)
        )
        await self.session.refresh(run)
        if result.rowcount != 1:
            raise InvalidTransitionError(
                run.status, to_status.value, "run was modified concurrently"
            )

        logger.info("Payroll run %s moved %s -> %s", run_id, from_status, run.status)
        return run

    # =========================================================================
    # Employees
    # =========================================================================

    async def add_employee(
        self,
        tenant_id: UUID,
        employee_code: str,
        name: str,
        email: str,
        employee_id: UUID | None = None,
    ) -> Employee:
        """Register an employee in the tenant's directory."""
        employee = Employee(
            tenant_id=tenant_id,
            employee_code=employee_code.strip(),
            name=name.strip(),
            email=email.strip().lower(),
            created_at=utcnow(),
        )
        if employee_id is not None:
            employee.id = employee_id
        self.session.add(employee)
        await self.session.flush()
        return employee

    async def get_employee(self, tenant_id: UUID, employee_id: UUID) -> Employee | None:
        """Load an employee within the tenant."""
        result = await self.session.execute(
            select(Employee).where(
                Employee.id == employee_id,
                Employee.tenant_id == tenant_id,
            )
        )
        return result.scalar_one_or_none()

    # =========================================================================
    # Payslips
    # =========================================================================

    async def add_payslip(
        self,
        tenant_id: UUID,
        employee_id: UUID,
        period: PayrollPeriod,
        gross_amount: Decimal,
        deductions_amount: Decimal,
        net_amount: Decimal | None = None,
        status: str = "processed",
        payroll_run_id: UUID | None = None,
    ) -> Payslip:
        """Store a processed payslip.

        Net defaults to gross minus deductions; an explicit net must agree.

        Raises:
            ValueError: If an amount is negative or net does not reconcile.
        """
        gross = _money(gross_amount)
        deductions = _money(deductions_amount)
        net = _money(net_amount) if net_amount is not None else gross - deductions

        if gross < 0 or deductions < 0 or net < 0:
            raise ValueError("Payslip amounts must be non-negative")
        if net != gross - deductions:
            raise ValueError(
                f"Net {net} does not equal gross {gross} minus deductions {deductions}"
            )

        payslip = Payslip(
            tenant_id=tenant_id,
            employee_id=employee_id,
            payroll_run_id=payroll_run_id,
            period_year=period.year,
            period_month=period.month,
            gross_amount=gross,
            deductions_amount=deductions,
            net_amount=net,
            status=status,
            created_at=utcnow(),
        )
        self.session.add(payslip)
        await self.session.flush()
        return payslip

    async def list_payslips(self, tenant_id: UUID, employee_id: UUID) -> list[Payslip]:
        """Payslips for an employee, newest period first."""
        result = await self.session.execute(
            select(Payslip)
            .where(
                Payslip.tenant_id == tenant_id,
                Payslip.employee_id == employee_id,
            )
            .order_by(Payslip.period_year.desc(), Payslip.period_month.desc())
        )
        return list(result.scalars().all())

    async def get_payslip(
        self, tenant_id: UUID, employee_id: UUID, period: PayrollPeriod
    ) -> Payslip | None:
        """Load the payslip for an employee and period."""
        result = await self.session.execute(
            select(Payslip).where(*self._payslip_scope(tenant_id, employee_id, period))
        )
        return result.scalar_one_or_none()

    async def attach_payslip_document(
        self,
        tenant_id: UUID,
        employee_id: UUID,
        period: PayrollPeriod,
        blob_name: str,
    ) -> bool:
        """Set the payslip's document reference. Returns False if absent."""
        result = await self.session.execute(
            update(Payslip)
            .where(*self._payslip_scope(tenant_id, employee_id, period))
            .values(document_blob_name=blob_name)
            .execution_options(synchronize_session=False)
        )
        return bool(result.rowcount)

    async def mark_payslip_emailed(
        self, tenant_id: UUID, employee_id: UUID, period: PayrollPeriod
    ) -> bool:
        """Stamp the payslip as emailed now. Returns False if absent."""
        result = await self.session.execute(
            update(Payslip)
            .where(*self._payslip_scope(tenant_id, employee_id, period))
            .values(last_emailed_at=utcnow())
            .execution_options(synchronize_session=False)
        )
        return bool(result.rowcount)

    @staticmethod
    def _payslip_scope(tenant_id: UUID, employee_id: UUID, period: PayrollPeriod) -> list:
        return [
            Payslip.tenant_id == tenant_id,
            Payslip.employee_id == employee_id,
            Payslip.period_year == period.year,
            Payslip.period_month == period.month,
        ]
