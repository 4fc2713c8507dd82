"""Audit trail recorder.

Audit rows are diagnostic. The business state change is the source of
truth, so a failed audit write is logged and swallowed rather than
propagated to the operation that triggered it.
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import Any
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from huminex_payroll.context import RequestContext
from huminex_payroll.models import AuditTrail

logger = logging.getLogger(__name__)


class AuditAction(str, Enum):
    """Actions recorded by the payroll API."""

    CREATE_RUN = "create_run"
    APPROVE_RUN = "approve_run"
    DISBURSE_RUN = "disburse_run"
    EMAIL_PAYSLIP = "email_payslip"
    READ_RUNS = "read_runs"
    READ_PAYSLIPS = "read_payslips"
    READ_PAYSLIP_PERIOD = "read_payslip_period"


class AuditOutcome(str, Enum):
    """How an audited action ended."""

    SUCCESS = "success"
    NOT_FOUND = "not_found"
    FAILURE = "failure"


class AuditTrailRecorder:
    """Appends audit entries for the caller's tenant."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def record(
        self,
        ctx: RequestContext,
        action: str,
        resource_type: str,
        resource_id: str,
        outcome: str,
        metadata: dict[str, Any] | None = None,
    ) -> bool:
        """Append and commit one audit entry.

        Returns True if the entry was stored, False if the write failed.
        """
        entry = AuditTrail(
            tenant_id=ctx.tenant_id,
            actor_user_id=ctx.user_id,
            actor_email=ctx.user_email,
            action=_normalize(action),
            resource_type=_normalize(resource_type),
            resource_id=str(resource_id),
            outcome=_normalize(outcome),
            metadata_json=metadata or {},
        )
        try:
            self.session.add(entry)
            await self.session.commit()
        except SQLAlchemyError:
            logger.exception(
                "Audit write failed for %s %s/%s (trace %s)",
                entry.action,
                entry.resource_type,
                entry.resource_id,
                ctx.trace_id,
            )
            await self.session.rollback()
            return False
        return True

    async def list_for_resource(
        self,
        tenant_id: UUID,
        resource_type: str,
        resource_id: str,
    ) -> list[AuditTrail]:
        """Audit entries for one resource, oldest first."""
        result = await self.session.execute(
            select(AuditTrail)
            .where(
                AuditTrail.tenant_id == tenant_id,
                AuditTrail.resource_type == _normalize(resource_type),
                AuditTrail.resource_id == str(resource_id),
            )
            .order_by(AuditTrail.occurred_at)
        )
        return list(result.scalars().all())


def _normalize(value: str) -> str:
    if isinstance(value, Enum):
        value = value.value
    return value.strip().lower()
