"""Error hierarchy shared by services and the HTTP layer.

Every error knows the HTTP status it maps to, a stable machine-readable code,
and the audit outcome recorded when it ends a command.
"""

from __future__ import annotations

from typing import Any


class HuminexError(Exception):
    """Base class for errors surfaced to API callers."""

    status_code: int = 400
    code: str = "bad_request"
    outcome: str = "failure"

    def __init__(self, message: str, context: dict[str, Any] | None = None):
        self.message = message
        self.context = context or {}
        super().__init__(message)


class TenantContextMissingError(HuminexError):
    """Raised when a request does not carry a usable tenant id."""

    code = "tenant_context_missing"


class PermissionDeniedError(HuminexError):
    """Raised when the caller lacks the permission an endpoint requires."""

    status_code = 403
    code = "permission_denied"

    def __init__(self, permission: str):
        self.permission = permission
        super().__init__(
            f"Permission '{permission}' is required for this operation.",
            {"permission": permission},
        )


class MissingIdempotencyKeyError(HuminexError):
    """Raised when a mutating request arrives without Idempotency-Key."""

    code = "idempotency_key_required"

    def __init__(self, header_name: str = "Idempotency-Key"):
        super().__init__(f"{header_name} header is required for this operation.")


class InvalidIdempotencyKeyError(HuminexError):
    """Raised when the idempotency key exceeds the allowed length."""

    code = "idempotency_key_invalid"

    def __init__(self, max_length: int):
        super().__init__(f"Idempotency key must be {max_length} characters or less.")


class NotFoundError(HuminexError):
    """Base class for missing resources."""

    status_code = 404
    code = "not_found"
    outcome = "not_found"


class RunNotFoundError(NotFoundError):
    """No payroll run with that id in the caller's tenant."""

    code = "payroll_run_not_found"

    def __init__(self, run_id: Any):
        self.run_id = run_id
        super().__init__(
            f"No payroll run '{run_id}' in current tenant scope.",
            {"run_id": str(run_id)},
        )


class PayslipNotFoundError(NotFoundError):
    """No payslip for that employee and period in the caller's tenant."""

    code = "payslip_not_found"

    def __init__(self, employee_id: Any, period: str):
        self.employee_id = employee_id
        self.period = period
        super().__init__(
            f"No payslip found for employee '{employee_id}' and period '{period}' "
            "in current tenant scope.",
            {"employee_id": str(employee_id), "period": period},
        )


class ConflictError(HuminexError):
    """Base class for requests that contradict stored state."""

    status_code = 409
    code = "conflict"


class DocumentStorageError(HuminexError):
    """Raised when the payslip document cannot be generated or stored."""

    status_code = 503
    code = "document_storage_unavailable"
