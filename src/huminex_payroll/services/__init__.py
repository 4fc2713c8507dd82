"""Payroll services."""

from huminex_payroll.services.audit import AuditAction, AuditOutcome, AuditTrailRecorder
from huminex_payroll.services.commands import (
    CommandResponse,
    IdempotentRequest,
    PayrollCommandHandler,
)
from huminex_payroll.services.documents import DocumentStorage, LocalDocumentStorage
from huminex_payroll.services.idempotency_store import (
    DuplicateIdempotencyKeyError,
    IdempotencyKeyInProgressError,
    IdempotencyStore,
    StoredResponse,
)
from huminex_payroll.services.payroll_repository import (
    DuplicatePeriodError,
    PayrollRepository,
    PayslipTotalsCalculator,
)
from huminex_payroll.services.period import InvalidPeriodError, PayrollPeriod
from huminex_payroll.services.state_machine import (
    InvalidTransitionError,
    PayrollRunStateMachine,
    PayrollRunStatus,
)

__all__ = [
    "AuditAction",
    "AuditOutcome",
    "AuditTrailRecorder",
    "CommandResponse",
    "DocumentStorage",
    "DuplicateIdempotencyKeyError",
    "DuplicatePeriodError",
    "IdempotencyKeyInProgressError",
    "IdempotencyStore",
    "IdempotentRequest",
    "InvalidPeriodError",
    "InvalidTransitionError",
    "LocalDocumentStorage",
    "PayrollCommandHandler",
    "PayrollPeriod",
    "PayrollRepository",
    "PayrollRunStateMachine",
    "PayrollRunStatus",
    "PayslipTotalsCalculator",
    "StoredResponse",
]
