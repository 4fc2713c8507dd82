"""Health check endpoints."""

import logging
from datetime import datetime, timezone

from fastapi import APIRouter, Response, status
from sqlalchemy import func, select, text
from sqlalchemy.exc import SQLAlchemyError

from huminex_payroll.api.dependencies import DbSession
from huminex_payroll.api.schemas import HealthResponse, ReadinessResponse
from huminex_payroll.models import IdempotencyRecord, OutboxEvent

logger = logging.getLogger(__name__)

router = APIRouter(tags=["health"])


@router.get(
    "/health",
    response_model=HealthResponse,
    status_code=status.HTTP_200_OK,
)
async def health_check(db: DbSession) -> HealthResponse:
    """Check API and database health."""
    db_status = "unhealthy"
    try:
        await db.execute(text("SELECT 1"))
        db_status = "healthy"
    except SQLAlchemyError as exc:
        logger.warning("Database health check failed: %s", exc)

    return HealthResponse(
        status="healthy" if db_status == "healthy" else "degraded",
        timestamp=datetime.now(timezone.utc),
        database=db_status,
    )


@router.get(
    "/ready",
    response_model=ReadinessResponse,
    responses={503: {"model": ReadinessResponse}},
)
async def readiness_check(db: DbSession, response: Response) -> ReadinessResponse:
    """Ready once the idempotency store and the outbox can be queried.

    Reports how many business events still wait for delivery.
    """
    idempotency_status = "unavailable"
    outbox_status = "unavailable"
    pending: int | None = None

    try:
        await db.execute(select(IdempotencyRecord.key).limit(1))
        idempotency_status = "ok"
    except SQLAlchemyError as exc:
        logger.warning("Idempotency store is not ready: %s", exc)
        await db.rollback()

    try:
        pending = await db.scalar(
            select(func.count())
            .select_from(OutboxEvent)
            .where(OutboxEvent.dispatched_at.is_(None))
        )
        outbox_status = "ok"
    except SQLAlchemyError as exc:
        logger.warning("Outbox is not ready: %s", exc)
        await db.rollback()

    ready = idempotency_status == "ok" and outbox_status == "ok"
    if not ready:
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    return ReadinessResponse(
        status="ready" if ready else "not_ready",
        idempotency_store=idempotency_status,
        outbox=outbox_status,
        pending_events=pending,
    )


@router.get("/live", status_code=status.HTTP_200_OK)
async def liveness_check() -> dict[str, str]:
    """Liveness check for container orchestration."""
    return {"status": "alive"}
