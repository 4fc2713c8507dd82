"""In-process event emitter for published business events.

The emitter provides:
- Handler registration by event type, by category, or for all events
- Async and sync handlers
- Error isolation (handler failures don't break other handlers)
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Protocol, runtime_checkable

from huminex_payroll.events.types import BusinessEvent, EventCategory, PublishedEvent

logger = logging.getLogger(__name__)

EventTypeSpec = type[BusinessEvent] | str


@runtime_checkable
class EventHandler(Protocol):
    """Protocol for synchronous event handlers."""

    def __call__(self, event: PublishedEvent) -> None:
        ...


@runtime_checkable
class AsyncEventHandler(Protocol):
    """Protocol for asynchronous event handlers."""

    async def __call__(self, event: PublishedEvent) -> None:
        ...


@dataclass
class HandlerRegistration:
    """Registration of an event handler."""

    handler: EventHandler | AsyncEventHandler
    event_types: set[str] | None  # None = all events
    categories: set[str] | None  # None = all categories
    is_async: bool


def _type_names(event_type: EventTypeSpec | list[EventTypeSpec]) -> set[str]:
    specs = event_type if isinstance(event_type, list) else [event_type]
    return {s if isinstance(s, str) else s.__name__ for s in specs}


class AsyncEventEmitter:
    """Asynchronous event emitter.

    Usage:
        emitter = AsyncEventEmitter()

        async def notify_finance(event: PublishedEvent) -> None:
            ...

        emitter.on(PayrollRunApproved, notify_finance)
        await emitter.emit(published_event)
    """

    def __init__(self) -> None:
        self._handlers: list[HandlerRegistration] = []

    def on(
        self,
        event_type: EventTypeSpec | list[EventTypeSpec],
        handler: AsyncEventHandler,
    ) -> None:
        """Register async handler for specific event type(s)."""
        self._handlers.append(
            HandlerRegistration(
                handler=handler,
                event_types=_type_names(event_type),
                categories=None,
                is_async=True,
            )
        )

    def on_sync(
        self,
        event_type: EventTypeSpec | list[EventTypeSpec],
        handler: EventHandler,
    ) -> None:
        """Register sync handler for specific event type(s)."""
        self._handlers.append(
            HandlerRegistration(
                handler=handler,
                event_types=_type_names(event_type),
                categories=None,
                is_async=False,
            )
        )

    def on_category(
        self,
        category: EventCategory | list[EventCategory],
        handler: AsyncEventHandler,
    ) -> None:
        """Register async handler for event category(ies)."""
        cats = category if isinstance(category, list) else [category]
        self._handlers.append(
            HandlerRegistration(
                handler=handler,
                event_types=None,
                categories={c.value for c in cats},
                is_async=True,
            )
        )

    def on_all(self, handler: AsyncEventHandler) -> None:
        """Register async handler for all events."""
        self._handlers.append(
            HandlerRegistration(
                handler=handler,
                event_types=None,
                categories=None,
                is_async=True,
            )
        )

    def off(self, handler: AsyncEventHandler | EventHandler) -> None:
        """Unregister a handler."""
        self._handlers = [reg for reg in self._handlers if reg.handler is not handler]

    async def emit(self, event: PublishedEvent) -> list[Exception]:
        """Emit an event to all matching handlers.

        Returns list of any exceptions raised by handlers.
        """
        errors: list[Exception] = []
        tasks: list[asyncio.Task[None]] = []

        for reg in self._handlers:
            if reg.event_types and event.event_type not in reg.event_types:
                continue
            if reg.categories and event.category not in reg.categories:
                continue

            if reg.is_async:
                tasks.append(
                    asyncio.create_task(self._call_async_handler(reg.handler, event))  # type: ignore[arg-type]
                )
            else:
                try:
                    reg.handler(event)  # type: ignore[call-arg]
                except Exception as e:
                    logger.exception(
                        "Handler %s failed for event %s",
                        reg.handler,
                        event.event_type,
                    )
                    errors.append(e)

        if tasks:
            results = await asyncio.gather(*tasks, return_exceptions=True)
            for result in results:
                if isinstance(result, Exception):
                    errors.append(result)

        return errors

    async def _call_async_handler(
        self,
        handler: AsyncEventHandler,
        event: PublishedEvent,
    ) -> None:
        try:
            await handler(event)
        except Exception:
            logger.exception(
                "Async handler %s failed for event %s",
                handler,
                event.event_type,
            )
            raise


async def log_event(event: PublishedEvent) -> None:
    """Default subscriber: write every published event to the log."""
    logger.info(
        "Published %s %s for tenant %s",
        event.event_type,
        event.event_id,
        event.tenant_id,
    )
