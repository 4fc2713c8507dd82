"""Business event types for payroll operations.

All events are:
- Immutable (frozen dataclasses)
- Typed with explicit payloads
- Traceable via metadata

Events are written to the outbox in the same transaction as the state
change they describe, then published to subscribers.
"""

from __future__ import annotations

import json
from dataclasses import asdict, dataclass
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID, uuid4

from huminex_payroll.context import RequestContext
from huminex_payroll.models import utcnow


class EventCategory(str, Enum):
    """Event categories for routing and filtering."""

    PAYROLL_RUN = "payroll_run"
    PAYSLIP = "payslip"


@dataclass(frozen=True)
class EventMetadata:
    """Metadata attached to every business event."""

    event_id: UUID
    timestamp: datetime
    tenant_id: UUID
    correlation_id: str  # Trace id of the request that caused the event
    actor_id: UUID | None
    actor_type: str  # 'user' or 'system'
    actor_email: str
    source_service: str
    version: int = 1

    @classmethod
    def create(
        cls,
        tenant_id: UUID,
        correlation_id: str | None = None,
        actor_id: UUID | None = None,
        actor_type: str = "system",
        actor_email: str = "",
        source_service: str = "payroll-api",
    ) -> EventMetadata:
        """Create metadata with auto-generated fields."""
        return cls(
            event_id=uuid4(),
            timestamp=utcnow(),
            tenant_id=tenant_id,
            correlation_id=correlation_id or uuid4().hex,
            actor_id=actor_id,
            actor_type=actor_type,
            actor_email=actor_email,
            source_service=source_service,
        )

    @classmethod
    def for_request(cls, ctx: RequestContext) -> EventMetadata:
        """Metadata for an event triggered by an API caller."""
        return cls.create(
            tenant_id=ctx.tenant_id,
            correlation_id=ctx.trace_id,
            actor_id=ctx.user_id,
            actor_type="user",
            actor_email=ctx.user_email,
        )


@dataclass(frozen=True)
class BusinessEvent:
    """Base class for all business events."""

    metadata: EventMetadata

    @property
    def event_type(self) -> str:
        """Event type name for routing."""
        return self.__class__.__name__

    @property
    def category(self) -> EventCategory:
        """Event category for filtering."""
        raise NotImplementedError("Subclasses must define category")

    def to_dict(self) -> dict[str, Any]:
        """Serialize event to a JSON-compatible dictionary."""
        data = _serialize(asdict(self))
        data["event_type"] = self.event_type
        data["category"] = self.category.value
        return data

    def to_json(self) -> str:
        """Serialize event to JSON string."""
        return json.dumps(self.to_dict())


def _serialize(obj: Any) -> Any:
    if isinstance(obj, dict):
        return {k: _serialize(v) for k, v in obj.items()}
    if isinstance(obj, list):
        return [_serialize(v) for v in obj]
    if isinstance(obj, UUID):
        return str(obj)
    if isinstance(obj, (datetime, date)):
        return obj.isoformat()
    if isinstance(obj, Decimal):
        return str(obj)
    if isinstance(obj, Enum):
        return obj.value
    return obj


@dataclass(frozen=True)
class PublishedEvent:
    """An event as delivered to subscribers, read back from the outbox."""

    event_id: UUID
    event_type: str
    category: str
    tenant_id: UUID
    payload: dict[str, Any]

    @classmethod
    def from_payload(cls, event_type: str, payload: dict[str, Any]) -> PublishedEvent:
        metadata = payload.get("metadata", {})
        return cls(
            event_id=UUID(metadata["event_id"]),
            event_type=event_type,
            category=payload.get("category", ""),
            tenant_id=UUID(metadata["tenant_id"]),
            payload=payload,
        )


# =============================================================================
# Payroll Run Events
# =============================================================================


@dataclass(frozen=True)
class PayrollRunCreated(BusinessEvent):
    """A draft payroll run was created for a period."""

    run_id: UUID
    period: str
    status: str
    employees_count: int
    gross_amount: Decimal
    net_amount: Decimal

    @property
    def category(self) -> EventCategory:
        return EventCategory.PAYROLL_RUN


@dataclass(frozen=True)
class PayrollRunApproved(BusinessEvent):
    """A draft payroll run was approved."""

    run_id: UUID
    period: str
    status: str

    @property
    def category(self) -> EventCategory:
        return EventCategory.PAYROLL_RUN


@dataclass(frozen=True)
class PayrollRunDisbursed(BusinessEvent):
    """An approved payroll run was disbursed."""

    run_id: UUID
    period: str
    status: str

    @property
    def category(self) -> EventCategory:
        return EventCategory.PAYROLL_RUN


# =============================================================================
# Payslip Events
# =============================================================================


@dataclass(frozen=True)
class PayslipEmailQueued(BusinessEvent):
    """A payslip document was stored and queued for email delivery."""

    employee_id: UUID
    period: str
    email: str
    document_blob_name: str

    @property
    def category(self) -> EventCategory:
        return EventCategory.PAYSLIP
