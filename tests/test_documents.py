"""Tests for payslip document storage."""

from uuid import uuid4

import pytest

from huminex_payroll.errors import DocumentStorageError
from huminex_payroll.services.documents import LocalDocumentStorage, payslip_blob_name
from huminex_payroll.services.period import PayrollPeriod
from tests.conftest import TENANT_A

FEB = PayrollPeriod(2026, 2)


def test_blob_name_layout():
    employee_id = uuid4()
    assert payslip_blob_name(TENANT_A, employee_id, FEB) == (
        f"{TENANT_A}/{employee_id}/2026-02/payslip.txt"
    )


async def test_creates_document_once(tmp_path):
    storage = LocalDocumentStorage(tmp_path)
    employee_id = uuid4()

    blob_name = await storage.ensure_payslip_document(TENANT_A, employee_id, FEB)

    path = tmp_path / blob_name
    assert path.is_file()
    first = path.read_text(encoding="utf-8")
    assert f"employee {employee_id} period 2026-02" in first

    again = await storage.ensure_payslip_document(TENANT_A, employee_id, FEB)
    assert again == blob_name
    assert path.read_text(encoding="utf-8") == first


async def test_io_failure_raises_storage_error(tmp_path):
    # A file where the tenant directory should be makes mkdir fail
    (tmp_path / str(TENANT_A)).write_text("not a directory")
    storage = LocalDocumentStorage(tmp_path)

    with pytest.raises(DocumentStorageError) as exc_info:
        await storage.ensure_payslip_document(TENANT_A, uuid4(), FEB)

    assert exc_info.value.status_code == 503
