"""Employee, payroll run, and payslip models."""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from uuid import UUID, uuid4

from sqlalchemy import (
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from huminex_payroll.models.base import Base, TimestampMixin

MONEY = Numeric(18, 2)


class Employee(Base, TimestampMixin):
    """Employee directory entry, scoped to a tenant."""

    __tablename__ = "employee"

    id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    tenant_id: Mapped[UUID] = mapped_column(nullable=False, index=True)
    employee_code: Mapped[str] = mapped_column(String(64), nullable=False)
    name: Mapped[str] = mapped_column(String(180), nullable=False)
    email: Mapped[str] = mapped_column(String(320), nullable=False)

    __table_args__ = (
        UniqueConstraint("tenant_id", "employee_code", name="employee_tenant_code_unique"),
    )


class PayrollRun(Base, TimestampMixin):
    """Monthly payroll run for a tenant: draft -> approved -> disbursed."""

    __tablename__ = "payroll_run"

    id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    tenant_id: Mapped[UUID] = mapped_column(nullable=False)
    period_year: Mapped[int] = mapped_column(Integer, nullable=False)
    period_month: Mapped[int] = mapped_column(Integer, nullable=False)
    status: Mapped[str] = mapped_column(String(32), nullable=False, default="draft")
    employees_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    gross_amount: Mapped[Decimal] = mapped_column(MONEY, nullable=False, default=Decimal("0"))
    net_amount: Mapped[Decimal] = mapped_column(MONEY, nullable=False, default=Decimal("0"))

    approved_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    approved_by: Mapped[UUID | None] = mapped_column(nullable=True)
    disbursed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    disbursed_by: Mapped[UUID | None] = mapped_column(nullable=True)

    __table_args__ = (
        UniqueConstraint(
            "tenant_id",
            "period_year",
            "period_month",
            name="payroll_run_tenant_period_unique",
        ),
        CheckConstraint(
            "status IN ('draft', 'approved', 'disbursed')",
            name="payroll_run_status_check",
        ),
        CheckConstraint("period_month BETWEEN 1 AND 12", name="payroll_run_month_check"),
        CheckConstraint("employees_count >= 0", name="payroll_run_employees_check"),
        CheckConstraint(
            "gross_amount >= 0 AND net_amount >= 0",
            name="payroll_run_amounts_check",
        ),
    )

    # Relationships
    payslips: Mapped[list[Payslip]] = relationship(back_populates="payroll_run")

    @property
    def period(self) -> str:
        """Period in yyyy-MM form."""
        return f"{self.period_year:04d}-{self.period_month:02d}"


class Payslip(Base, TimestampMixin):
    """Per-employee, per-period compensation record."""

    __tablename__ = "payslip"

    id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    tenant_id: Mapped[UUID] = mapped_column(nullable=False)
    employee_id: Mapped[UUID] = mapped_column(
        ForeignKey("employee.id", ondelete="CASCADE"),
        nullable=False,
    )
    payroll_run_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("payroll_run.id"),
        nullable=True,
    )
    period_year: Mapped[int] = mapped_column(Integer, nullable=False)
    period_month: Mapped[int] = mapped_column(Integer, nullable=False)
    gross_amount: Mapped[Decimal] = mapped_column(MONEY, nullable=False)
    deductions_amount: Mapped[Decimal] = mapped_column(MONEY, nullable=False)
    net_amount: Mapped[Decimal] = mapped_column(MONEY, nullable=False)
    status: Mapped[str] = mapped_column(String(32), nullable=False, default="processed")
    document_blob_name: Mapped[str | None] = mapped_column(String(600), nullable=True)
    last_emailed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    __table_args__ = (
        UniqueConstraint(
            "tenant_id",
            "employee_id",
            "period_year",
            "period_month",
            name="payslip_tenant_employee_period_unique",
        ),
        Index("ix_payslip_tenant_period", "tenant_id", "period_year", "period_month"),
    )

    # Relationships
    employee: Mapped[Employee] = relationship()
    payroll_run: Mapped[PayrollRun | None] = relationship(back_populates="payslips")

    @property
    def period(self) -> str:
        """Period in yyyy-MM form."""
        return f"{self.period_year:04d}-{self.period_month:02d}"
