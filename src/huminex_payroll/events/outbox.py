"""Transactional outbox: write events with the state change, deliver later.

OutboxWriter adds the event row inside the caller's transaction. The
OutboxDispatcher delivers committed rows to a BusinessEventPublisher, once
right after the command commits and again from the dispatch-outbox sweep
for anything that failed. A row is marked dispatched only after the
publisher accepts it, so delivery is at-least-once.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Protocol
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from huminex_payroll.events.emitter import AsyncEventEmitter
from huminex_payroll.events.types import BusinessEvent, PublishedEvent
from huminex_payroll.models import OutboxEvent, utcnow

logger = logging.getLogger(__name__)

MAX_ERROR_LENGTH = 2000


class EventPublishError(Exception):
    """Raised by a publisher that could not deliver an event."""


class BusinessEventPublisher(Protocol):
    """Delivers a named event payload to downstream consumers."""

    async def publish(self, event_type: str, payload: dict[str, Any]) -> None:
        ...


class EmitterEventPublisher:
    """Publishes events to in-process subscribers of an AsyncEventEmitter."""

    def __init__(self, emitter: AsyncEventEmitter):
        self.emitter = emitter

    async def publish(self, event_type: str, payload: dict[str, Any]) -> None:
        event = PublishedEvent.from_payload(event_type, payload)
        errors = await self.emitter.emit(event)
        if errors:
            raise EventPublishError(
                f"{len(errors)} subscriber(s) failed for {event_type}: {errors[0]!r}"
            )


class OutboxWriter:
    """Adds events to the outbox in the current transaction."""

    def __init__(self, session: AsyncSession):
        self.session = session

    def add(self, event: BusinessEvent) -> OutboxEvent:
        row = OutboxEvent(
            id=event.metadata.event_id,
            tenant_id=event.metadata.tenant_id,
            event_type=event.event_type,
            payload_json=event.to_dict(),
            attempts=0,
            created_at=utcnow(),
        )
        self.session.add(row)
        return row


@dataclass(frozen=True)
class DispatchResult:
    """Counts from one outbox sweep."""

    delivered: int
    failed: int


class OutboxDispatcher:
    """Delivers pending outbox rows and records the outcome on each row."""

    def __init__(self, session: AsyncSession, publisher: BusinessEventPublisher):
        self.session = session
        self.publisher = publisher

    async def dispatch(self, event_id: UUID) -> bool:
        """Deliver one committed event. Returns True if it was delivered now."""
        row = await self.session.get(OutboxEvent, event_id)
        if row is None or row.dispatched_at is not None:
            return False
        return await self._deliver(row)

    async def dispatch_pending(self, limit: int = 100) -> DispatchResult:
        """Deliver up to `limit` undelivered events, oldest first."""
        result = await self.session.execute(
            select(OutboxEvent)
            .where(OutboxEvent.dispatched_at.is_(None))
            .order_by(OutboxEvent.created_at)
            .limit(limit)
        )
        rows = list(result.scalars().all())

        delivered = 0
        for row in rows:
            if await self._deliver(row):
                delivered += 1

        outcome = DispatchResult(delivered=delivered, failed=len(rows) - delivered)
        logger.info(
            "Outbox sweep delivered %d event(s), %d failed",
            outcome.delivered,
            outcome.failed,
        )
        return outcome

    async def _deliver(self, row: OutboxEvent) -> bool:
        row.attempts = (row.attempts or 0) + 1
        try:
            await self.publisher.publish(row.event_type, row.payload_json)
        except Exception as exc:
            logger.warning(
                "Delivery of %s %s failed (attempt %d): %s",
                row.event_type,
                row.id,
                row.attempts,
                exc,
            )
            row.last_error = str(exc)[:MAX_ERROR_LENGTH]
            await self._commit()
            return False

        row.dispatched_at = utcnow()
        row.last_error = None
        return await self._commit()

    async def _commit(self) -> bool:
        try:
            await self.session.commit()
        except SQLAlchemyError:
            logger.exception("Could not record outbox delivery state")
            await self.session.rollback()
            return False
        return True
