"""Payroll API endpoints."""

from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Header, Path, Request, Response, status

from huminex_payroll.api.dependencies import CommandHandler, DbSession, ReadContext, WriteContext
from huminex_payroll.api.schemas import (
    ApiEnvelope,
    CreatePayrollRunRequest,
    EmailPayslipResponse,
    ErrorEnvelope,
    PayrollActionResponse,
    PayrollRunDto,
    PayslipDto,
)
from huminex_payroll.errors import PayslipNotFoundError
from huminex_payroll.services.audit import AuditAction, AuditOutcome, AuditTrailRecorder
from huminex_payroll.services.commands import IDEMPOTENCY_HEADER, CommandResponse, IdempotentRequest
from huminex_payroll.services.payroll_repository import PayrollRepository
from huminex_payroll.services.period import PayrollPeriod

router = APIRouter(prefix="/payroll", tags=["payroll"])

IdempotencyKey = Annotated[str | None, Header(alias=IDEMPOTENCY_HEADER)]

_ERRORS = {
    400: {"model": ErrorEnvelope},
    403: {"model": ErrorEnvelope},
    404: {"model": ErrorEnvelope},
    409: {"model": ErrorEnvelope},
}


def _idempotent_request(request: Request, key: str | None) -> IdempotentRequest:
    return IdempotentRequest(key=key, method=request.method, path=request.url.path)


def _to_response(result: CommandResponse) -> Response:
    """Return the rendered body unchanged so replays match byte for byte."""
    headers = {"Idempotency-Replayed": "true"} if result.replayed else None
    return Response(
        content=result.body,
        status_code=result.status_code,
        media_type="application/json",
        headers=headers,
    )


# ============================================================================
# Payroll runs
# ============================================================================


@router.get("/runs", response_model=ApiEnvelope[list[PayrollRunDto]], responses=_ERRORS)
async def list_runs(ctx: ReadContext, db: DbSession) -> ApiEnvelope[list[PayrollRunDto]]:
    """List the tenant's payroll runs, newest period first."""
    runs = await PayrollRepository(db).list_runs(ctx.tenant_id)
    await AuditTrailRecorder(db).record(
        ctx,
        AuditAction.READ_RUNS,
        "payroll_run",
        "bulk",
        AuditOutcome.SUCCESS,
        {"count": len(runs)},
    )
    return ApiEnvelope[list[PayrollRunDto]](
        data=[PayrollRunDto.from_model(run) for run in runs],
        trace_id=ctx.trace_id,
    )


@router.post(
    "/runs",
    status_code=status.HTTP_201_CREATED,
    response_model=ApiEnvelope[PayrollRunDto],
    responses=_ERRORS,
)
async def create_run(
    request: Request,
    ctx: WriteContext,
    handler: CommandHandler,
    payload: CreatePayrollRunRequest,
    idempotency_key: IdempotencyKey = None,
) -> Response:
    """Create a draft payroll run for a yyyy-MM period."""
    result = await handler.create_run(
        ctx, _idempotent_request(request, idempotency_key), payload.period
    )
    return _to_response(result)


@router.post(
    "/runs/{run_id}/approve",
    response_model=ApiEnvelope[PayrollActionResponse],
    responses=_ERRORS,
)
async def approve_run(
    request: Request,
    ctx: WriteContext,
    handler: CommandHandler,
    run_id: Annotated[UUID, Path()],
    idempotency_key: IdempotencyKey = None,
) -> Response:
    """Approve a draft payroll run."""
    result = await handler.approve_run(ctx, _idempotent_request(request, idempotency_key), run_id)
    return _to_response(result)


@router.post(
    "/runs/{run_id}/disburse",
    response_model=ApiEnvelope[PayrollActionResponse],
    responses=_ERRORS,
)
async def disburse_run(
    request: Request,
    ctx: WriteContext,
    handler: CommandHandler,
    run_id: Annotated[UUID, Path()],
    idempotency_key: IdempotencyKey = None,
) -> Response:
    """Disburse an approved payroll run."""
    result = await handler.disburse_run(ctx, _idempotent_request(request, idempotency_key), run_id)
    return _to_response(result)


# ============================================================================
# Payslips
# ============================================================================


@router.get(
    "/employees/{employee_id}/payslips",
    response_model=ApiEnvelope[list[PayslipDto]],
    responses=_ERRORS,
)
async def list_payslips(
    ctx: ReadContext,
    db: DbSession,
    employee_id: Annotated[UUID, Path()],
) -> ApiEnvelope[list[PayslipDto]]:
    """List an employee's payslips, newest period first."""
    payslips = await PayrollRepository(db).list_payslips(ctx.tenant_id, employee_id)
    await AuditTrailRecorder(db).record(
        ctx,
        AuditAction.READ_PAYSLIPS,
        "payslip",
        str(employee_id),
        AuditOutcome.SUCCESS,
        {"count": len(payslips)},
    )
    return ApiEnvelope[list[PayslipDto]](
        data=[PayslipDto.from_model(p) for p in payslips],
        trace_id=ctx.trace_id,
    )


@router.get(
    "/employees/{employee_id}/payslips/{period}",
    response_model=ApiEnvelope[PayslipDto],
    responses=_ERRORS,
)
async def get_payslip(
    ctx: ReadContext,
    db: DbSession,
    employee_id: Annotated[UUID, Path()],
    period: Annotated[str, Path()],
) -> ApiEnvelope[PayslipDto]:
    """Get an employee's payslip for one period."""
    audit = AuditTrailRecorder(db)
    resource_id = f"{employee_id}:{period}"

    parsed = PayrollPeriod.try_parse(period)
    payslip = None
    if parsed is not None:
        payslip = await PayrollRepository(db).get_payslip(ctx.tenant_id, employee_id, parsed)

    if payslip is None:
        await audit.record(
            ctx, AuditAction.READ_PAYSLIP_PERIOD, "payslip", resource_id, AuditOutcome.NOT_FOUND
        )
        raise PayslipNotFoundError(employee_id, period)

    await audit.record(
        ctx, AuditAction.READ_PAYSLIP_PERIOD, "payslip", resource_id, AuditOutcome.SUCCESS
    )
    return ApiEnvelope[PayslipDto](data=PayslipDto.from_model(payslip), trace_id=ctx.trace_id)


@router.post(
    "/employees/{employee_id}/payslips/{period}/email",
    response_model=ApiEnvelope[EmailPayslipResponse],
    responses=_ERRORS,
)
async def email_payslip(
    request: Request,
    ctx: WriteContext,
    handler: CommandHandler,
    employee_id: Annotated[UUID, Path()],
    period: Annotated[str, Path()],
    idempotency_key: IdempotencyKey = None,
) -> Response:
    """Queue a payslip for email delivery."""
    result = await handler.email_payslip(
        ctx, _idempotent_request(request, idempotency_key), employee_id, period
    )
    return _to_response(result)
