"""Idempotent payroll commands.

Every mutating request goes through PayrollCommandHandler._execute:

1. Validate the Idempotency-Key
2. Replay a captured response if one exists, otherwise reserve the key so
   a concurrent retry cannot run the operation a second time
3. Run the operation; it commits the state change and its outbox event
   together, or rolls back on a domain error
4. Record an audit entry for the outcome
5. Deliver the outbox event (best effort)
6. Complete the reservation with the response if its status is below 500,
   otherwise release it

Steps 4 to 6 run to completion even if the caller is cancelled, since the
domain change is already committed by then.

Response bodies are rendered to a JSON string once, and that exact string is
both stored and returned, so a replay is byte-identical to the first answer.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import timedelta
from typing import Any
from uuid import UUID

from pydantic import BaseModel
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from huminex_payroll.api.schemas import (
    ApiEnvelope,
    EmailPayslipResponse,
    ErrorEnvelope,
    PayrollActionResponse,
    PayrollRunDto,
)
from huminex_payroll.context import RequestContext
from huminex_payroll.errors import (
    HuminexError,
    InvalidIdempotencyKeyError,
    MissingIdempotencyKeyError,
    PayslipNotFoundError,
    RunNotFoundError,
)
from huminex_payroll.events import (
    BusinessEventPublisher,
    EventMetadata,
    OutboxDispatcher,
    OutboxWriter,
    PayrollRunApproved,
    PayrollRunCreated,
    PayrollRunDisbursed,
    PayslipEmailQueued,
)
from huminex_payroll.models import PayrollRun
from huminex_payroll.services.audit import AuditAction, AuditOutcome, AuditTrailRecorder
from huminex_payroll.services.documents import DocumentStorage
from huminex_payroll.services.idempotency_store import (
    DuplicateIdempotencyKeyError,
    IdempotencyKeyInProgressError,
    IdempotencyStore,
)
from huminex_payroll.services.payroll_repository import (
    PayrollRepository,
    RunTotalsCalculator,
)
from huminex_payroll.services.period import PayrollPeriod

logger = logging.getLogger(__name__)

IDEMPOTENCY_HEADER = "Idempotency-Key"


@dataclass(frozen=True)
class IdempotentRequest:
    """The parts of an HTTP request that scope an idempotency key."""

    key: str | None
    method: str
    path: str


@dataclass(frozen=True)
class CommandResponse:
    """Status and rendered JSON body of a command."""

    status_code: int
    body: str
    replayed: bool = False


@dataclass
class _Outcome:
    status_code: int
    data: BaseModel
    resource_id: str
    event_id: UUID | None = None
    audit_metadata: dict[str, Any] = field(default_factory=dict)


def render_success(data: BaseModel, trace_id: str) -> str:
    return ApiEnvelope[type(data)](data=data, trace_id=trace_id).to_json()


def render_error(exc: HuminexError, trace_id: str) -> str:
    return ErrorEnvelope(code=exc.code, message=exc.message, trace_id=trace_id).to_json()


class PayrollCommandHandler:
    """Runs payroll mutations with replay protection, audit, and events."""

    def __init__(
        self,
        session: AsyncSession,
        documents: DocumentStorage,
        publisher: BusinessEventPublisher,
        ttl: timedelta = timedelta(hours=24),
        lease: timedelta = timedelta(minutes=5),
        key_max_length: int = 128,
        totals_calculator: RunTotalsCalculator | None = None,
    ):
        self.session = session
        self.documents = documents
        self.ttl = ttl
        self.lease = lease
        self.key_max_length = key_max_length
        self.repository = PayrollRepository(session, totals_calculator)
        self.idempotency = IdempotencyStore(session)
        self.audit = AuditTrailRecorder(session)
        self.outbox = OutboxWriter(session)
        self.dispatcher = OutboxDispatcher(session, publisher)

    # =========================================================================
    # Commands
    # =========================================================================

    async def create_run(
        self, ctx: RequestContext, request: IdempotentRequest, period: str
    ) -> CommandResponse:
        """Create a draft payroll run for a yyyy-MM period."""

        async def operation() -> _Outcome:
            parsed = PayrollPeriod.parse(period)
            run = await self.repository.create_run(ctx.tenant_id, parsed)
            event = PayrollRunCreated(
                metadata=EventMetadata.for_request(ctx),
                run_id=run.id,
                period=str(parsed),
                status=run.status,
                employees_count=run.employees_count,
                gross_amount=run.gross_amount,
                net_amount=run.net_amount,
            )
            self.outbox.add(event)
            await self.session.commit()
            return _Outcome(
                status_code=201,
                data=PayrollRunDto.from_model(run),
                resource_id=str(run.id),
                event_id=event.metadata.event_id,
                audit_metadata={"period": str(parsed)},
            )

        return await self._execute(
            ctx, request, AuditAction.CREATE_RUN, "payroll_run", period, operation
        )

    async def approve_run(
        self, ctx: RequestContext, request: IdempotentRequest, run_id: UUID
    ) -> CommandResponse:
        """Approve a draft run."""

        async def operation() -> _Outcome:
            run = await self.repository.approve_run(ctx.tenant_id, run_id, ctx.user_id)
            return await self._transitioned(ctx, run_id, run, "approve", PayrollRunApproved)

        return await self._execute(
            ctx, request, AuditAction.APPROVE_RUN, "payroll_run", str(run_id), operation
        )

    async def disburse_run(
        self, ctx: RequestContext, request: IdempotentRequest, run_id: UUID
    ) -> CommandResponse:
        """Disburse an approved run."""

        async def operation() -> _Outcome:
            run = await self.repository.disburse_run(ctx.tenant_id, run_id, ctx.user_id)
            return await self._transitioned(ctx, run_id, run, "disburse", PayrollRunDisbursed)

        return await self._execute(
            ctx, request, AuditAction.DISBURSE_RUN, "payroll_run", str(run_id), operation
        )

    async def email_payslip(
        self,
        ctx: RequestContext,
        request: IdempotentRequest,
        employee_id: UUID,
        period: str,
    ) -> CommandResponse:
        """Store the payslip document and queue it for email delivery.

        An unparseable period reads as a missing payslip. Nothing is written
        to document storage unless the payslip exists.
        """

        async def operation() -> _Outcome:
            parsed = PayrollPeriod.try_parse(period)
            if parsed is None:
                raise PayslipNotFoundError(employee_id, period)
            payslip = await self.repository.get_payslip(ctx.tenant_id, employee_id, parsed)
            if payslip is None:
                raise PayslipNotFoundError(employee_id, str(parsed))

            employee = await self.repository.get_employee(ctx.tenant_id, employee_id)
            email = employee.email if employee is not None else ""

            blob_name = await self.documents.ensure_payslip_document(
                ctx.tenant_id, employee_id, parsed
            )
            await self.repository.attach_payslip_document(
                ctx.tenant_id, employee_id, parsed, blob_name
            )
            await self.repository.mark_payslip_emailed(ctx.tenant_id, employee_id, parsed)

            event = PayslipEmailQueued(
                metadata=EventMetadata.for_request(ctx),
                employee_id=employee_id,
                period=str(parsed),
                email=email,
                document_blob_name=blob_name,
            )
            self.outbox.add(event)
            await self.session.commit()
            return _Outcome(
                status_code=200,
                data=EmailPayslipResponse(
                    employee_id=employee_id, period=str(parsed), email=email
                ),
                resource_id=f"{employee_id}:{parsed}",
                event_id=event.metadata.event_id,
                audit_metadata={"blob_name": blob_name},
            )

        return await self._execute(
            ctx,
            request,
            AuditAction.EMAIL_PAYSLIP,
            "payslip",
            f"{employee_id}:{period}",
            operation,
        )

    async def _transitioned(
        self,
        ctx: RequestContext,
        run_id: UUID,
        run: PayrollRun | None,
        action: str,
        event_cls: type[PayrollRunApproved] | type[PayrollRunDisbursed],
    ) -> _Outcome:
        if run is None:
            raise RunNotFoundError(run_id)
        event = event_cls(
            metadata=EventMetadata.for_request(ctx),
            run_id=run.id,
            period=str(run.period),
            status=run.status,
        )
        self.outbox.add(event)
        await self.session.commit()
        return _Outcome(
            status_code=200,
            data=PayrollActionResponse(run_id=run.id, action=action, status=run.status),
            resource_id=str(run.id),
            event_id=event.metadata.event_id,
            audit_metadata={"status": run.status},
        )

    # =========================================================================
    # Pipeline
    # =========================================================================

    def _validate_key(self, key: str | None) -> str:
        key = (key or "").strip()
        if not key:
            raise MissingIdempotencyKeyError(IDEMPOTENCY_HEADER)
        if len(key) > self.key_max_length:
            raise InvalidIdempotencyKeyError(self.key_max_length)
        return key

    async def _execute(
        self,
        ctx: RequestContext,
        request: IdempotentRequest,
        action: AuditAction,
        resource_type: str,
        resource_id: str,
        operation: Callable[[], Awaitable[_Outcome]],
    ) -> CommandResponse:
        key = self._validate_key(request.key)
        scope = (ctx.tenant_id, key, request.method, request.path)

        cached = await self.idempotency.try_get(*scope)
        if cached is None:
            try:
                cached = await self.idempotency.reserve(*scope, self.lease)
            except IdempotencyKeyInProgressError as exc:
                logger.info(
                    "Key %s for %s %s is held by another request (trace %s)",
                    key,
                    request.method,
                    request.path,
                    ctx.trace_id,
                )
                return CommandResponse(exc.status_code, render_error(exc, ctx.trace_id))
        if cached is not None:
            logger.info(
                "Replaying %s %s for key %s (trace %s)",
                request.method,
                request.path,
                key,
                ctx.trace_id,
            )
            return CommandResponse(cached.status_code, cached.body or "", replayed=True)

        result: _Outcome | HuminexError
        try:
            result = await operation()
        except HuminexError as exc:
            await self.session.rollback()
            result = exc
        except Exception:
            await self.session.rollback()
            await self._release(ctx, key, request)
            raise

        return await self._shielded(
            self._conclude(ctx, key, request, action, resource_type, resource_id, result)
        )

    @staticmethod
    async def _shielded(coro: Awaitable[CommandResponse]) -> CommandResponse:
        """Run steps that follow the domain commit to completion.

        A cancelled caller still waits for them, so the session is not torn
        down while the response is being captured.
        """
        task = asyncio.ensure_future(coro)
        try:
            return await asyncio.shield(task)
        except asyncio.CancelledError:
            while not task.done():
                try:
                    await asyncio.wait({task})
                except asyncio.CancelledError:
                    continue
            raise

    async def _conclude(
        self,
        ctx: RequestContext,
        key: str,
        request: IdempotentRequest,
        action: AuditAction,
        resource_type: str,
        resource_id: str,
        result: _Outcome | HuminexError,
    ) -> CommandResponse:
        if isinstance(result, HuminexError):
            failure = result
            logger.info(
                "%s on %s %s failed with %s: %s",
                action.value,
                resource_type,
                resource_id,
                failure.code,
                failure.message,
            )
            await self.audit.record(
                ctx, action, resource_type, resource_id, failure.outcome, {"code": failure.code}
            )
            response = CommandResponse(failure.status_code, render_error(failure, ctx.trace_id))
        else:
            outcome = result
            await self.audit.record(
                ctx,
                action,
                resource_type,
                outcome.resource_id,
                AuditOutcome.SUCCESS,
                outcome.audit_metadata,
            )
            if outcome.event_id is not None:
                await self.dispatcher.dispatch(outcome.event_id)
            response = CommandResponse(
                outcome.status_code, render_success(outcome.data, ctx.trace_id)
            )

        if response.status_code >= 500:
            await self._release(ctx, key, request)
            return response
        return await self._capture(ctx, key, request, response)

    async def _release(self, ctx: RequestContext, key: str, request: IdempotentRequest) -> None:
        try:
            await self.idempotency.release(ctx.tenant_id, key, request.method, request.path)
        except SQLAlchemyError:
            # The reservation lapses when its lease runs out
            logger.exception(
                "Could not release key %s on %s %s", key, request.method, request.path
            )
            await self.session.rollback()

    async def _capture(
        self,
        ctx: RequestContext,
        key: str,
        request: IdempotentRequest,
        response: CommandResponse,
    ) -> CommandResponse:
        scope = (ctx.tenant_id, key, request.method, request.path)
        try:
            if await self.idempotency.complete(
                *scope, response.status_code, response.body, self.ttl
            ):
                return response
            # The reservation lapsed while the operation ran
            await self.idempotency.put(
                *scope, response.status_code, response.body, self.ttl
            )
        except DuplicateIdempotencyKeyError:
            winner = await self.idempotency.try_get(*scope)
            logger.warning(
                "Idempotency key %s was captured concurrently for %s %s",
                key,
                request.method,
                request.path,
            )
            if winner is not None:
                return CommandResponse(winner.status_code, winner.body or "", replayed=True)
        except IdempotencyKeyInProgressError:
            logger.warning(
                "Idempotency key %s was reserved again before %s %s finished",
                key,
                request.method,
                request.path,
            )
        except SQLAlchemyError:
            logger.exception(
                "Could not capture response for key %s on %s %s",
                key,
                request.method,
                request.path,
            )
            await self.session.rollback()
        return response
