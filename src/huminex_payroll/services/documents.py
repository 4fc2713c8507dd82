"""Payslip document storage."""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Protocol
from uuid import UUID

from huminex_payroll.errors import DocumentStorageError
from huminex_payroll.models import utcnow
from huminex_payroll.services.period import PayrollPeriod

logger = logging.getLogger(__name__)


def payslip_blob_name(tenant_id: UUID, employee_id: UUID, period: PayrollPeriod) -> str:
    """Storage path of a payslip document, relative to the storage root."""
    return f"{tenant_id}/{employee_id}/{period}/payslip.txt"


class DocumentStorage(Protocol):
    """Where payslip documents live."""

    async def ensure_payslip_document(
        self, tenant_id: UUID, employee_id: UUID, period: PayrollPeriod
    ) -> str:
        """Make sure the document exists and return its blob name."""
        ...


class LocalDocumentStorage:
    """Stores payslip documents as files under a root directory.

    Documents are created once; later calls for the same payslip return the
    existing blob name without rewriting it.
    """

    def __init__(self, root: str | Path):
        self.root = Path(root)

    async def ensure_payslip_document(
        self, tenant_id: UUID, employee_id: UUID, period: PayrollPeriod
    ) -> str:
        blob_name = payslip_blob_name(tenant_id, employee_id, period)
        try:
            created = await asyncio.to_thread(self._write_if_absent, blob_name, employee_id, period)
        except OSError as exc:
            logger.error("Payslip document write failed for %s: %s", blob_name, exc)
            raise DocumentStorageError(
                "Payslip document storage is unavailable.",
                {"blob_name": blob_name},
            ) from exc

        if created:
            logger.info("Created payslip document %s", blob_name)
        return blob_name

    def _write_if_absent(self, blob_name: str, employee_id: UUID, period: PayrollPeriod) -> bool:
        path = self.root / blob_name
        if path.exists():
            return False
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(
            f"HUMINEX payslip placeholder for employee {employee_id} period {period} "
            f"generated at {utcnow().isoformat()}.",
            encoding="utf-8",
        )
        return True
