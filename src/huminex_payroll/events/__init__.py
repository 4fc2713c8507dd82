"""Payroll business events.

This package provides:
- Typed business events for payroll runs and payslips
- An in-process async emitter for subscribers
- The transactional outbox that carries events from commit to delivery
"""

from huminex_payroll.events.emitter import AsyncEventEmitter, log_event
from huminex_payroll.events.outbox import (
    BusinessEventPublisher,
    DispatchResult,
    EmitterEventPublisher,
    EventPublishError,
    OutboxDispatcher,
    OutboxWriter,
)
from huminex_payroll.events.types import (
    BusinessEvent,
    EventCategory,
    EventMetadata,
    PayrollRunApproved,
    PayrollRunCreated,
    PayrollRunDisbursed,
    PayslipEmailQueued,
    PublishedEvent,
)

__all__ = [
    "AsyncEventEmitter",
    "BusinessEvent",
    "BusinessEventPublisher",
    "DispatchResult",
    "EmitterEventPublisher",
    "EventCategory",
    "EventMetadata",
    "EventPublishError",
    "OutboxDispatcher",
    "OutboxWriter",
    "PayrollRunApproved",
    "PayrollRunCreated",
    "PayrollRunDisbursed",
    "PayslipEmailQueued",
    "PublishedEvent",
    "log_event",
]
