"""ORM models."""

from huminex_payroll.models.audit import AuditTrail
from huminex_payroll.models.base import Base, TimestampMixin, utcnow
from huminex_payroll.models.idempotency import IdempotencyRecord
from huminex_payroll.models.outbox import OutboxEvent
from huminex_payroll.models.payroll import Employee, PayrollRun, Payslip

__all__ = [
    "AuditTrail",
    "Base",
    "Employee",
    "IdempotencyRecord",
    "OutboxEvent",
    "PayrollRun",
    "Payslip",
    "TimestampMixin",
    "utcnow",
]
