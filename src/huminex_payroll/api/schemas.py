"""Pydantic schemas for API request/response models.

Payloads are camelCase on the wire and snake_case in Python.
"""

from datetime import datetime
from decimal import Decimal
from typing import Generic, TypeVar
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from huminex_payroll.models import PayrollRun, Payslip

T = TypeVar("T")


class CamelModel(BaseModel):
    """Base schema with camelCase aliases."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )

    def to_json(self) -> str:
        return self.model_dump_json(by_alias=True, exclude_none=True)


# ============================================================================
# Envelopes
# ============================================================================


class ApiEnvelope(CamelModel, Generic[T]):
    """Success envelope wrapping every response payload."""

    data: T
    trace_id: str


class ErrorEnvelope(CamelModel):
    """Error envelope returned for every failed request."""

    code: str
    message: str
    trace_id: str
    validation_errors: dict[str, list[str]] | None = None


# ============================================================================
# Payroll run schemas
# ============================================================================


class CreatePayrollRunRequest(CamelModel):
    """Schema for creating a payroll run."""

    period: str = Field(..., min_length=1, examples=["2026-02"])


class PayrollRunDto(CamelModel):
    """Schema for payroll run response."""

    id: UUID
    period: str
    status: str
    employees_count: int
    gross_amount: Decimal
    net_amount: Decimal
    created_at: datetime
    approved_at: datetime | None = None
    disbursed_at: datetime | None = None

    @classmethod
    def from_model(cls, run: PayrollRun) -> "PayrollRunDto":
        return cls(
            id=run.id,
            period=str(run.period),
            status=run.status,
            employees_count=run.employees_count,
            gross_amount=run.gross_amount,
            net_amount=run.net_amount,
            created_at=run.created_at,
            approved_at=run.approved_at,
            disbursed_at=run.disbursed_at,
        )


class PayrollActionResponse(CamelModel):
    """Schema for approve/disburse responses."""

    run_id: UUID
    action: str
    status: str


# ============================================================================
# Payslip schemas
# ============================================================================


class PayslipDto(CamelModel):
    """Schema for payslip response."""

    id: UUID
    employee_id: UUID
    period: str
    gross_amount: Decimal
    deductions_amount: Decimal
    net_amount: Decimal
    status: str
    document_blob_name: str | None = None
    last_emailed_at: datetime | None = None

    @classmethod
    def from_model(cls, payslip: Payslip) -> "PayslipDto":
        return cls(
            id=payslip.id,
            employee_id=payslip.employee_id,
            period=str(payslip.period),
            gross_amount=payslip.gross_amount,
            deductions_amount=payslip.deductions_amount,
            net_amount=payslip.net_amount,
            status=payslip.status,
            document_blob_name=payslip.document_blob_name,
            last_emailed_at=payslip.last_emailed_at,
        )


class EmailPayslipResponse(CamelModel):
    """Schema for the email payslip response."""

    employee_id: UUID
    period: str
    email: str
    dispatch_status: str = "queued"


# ============================================================================
# Health schemas
# ============================================================================


class HealthResponse(BaseModel):
    """Health check response."""

    status: str
    timestamp: datetime
    database: str


class ReadinessResponse(BaseModel):
    """Readiness of the tables every command depends on."""

    status: str
    idempotency_store: str
    outbox: str
    pending_events: int | None = None
