"""Tests for role to permission resolution."""

from huminex_payroll.api.security import parse_csv, resolve_permissions
from huminex_payroll.context import RequestContext
from tests.conftest import TENANT_A


def test_payroll_manager_can_read_and_write():
    permissions = resolve_permissions(["payroll_manager"])
    assert {"payroll.read", "payroll.write"} <= permissions


def test_finance_manager_and_employee_read_only():
    for role in ("finance_manager", "employee"):
        permissions = resolve_permissions([role])
        assert "payroll.read" in permissions
        assert "payroll.write" not in permissions


def test_viewer_has_no_payroll_access():
    assert "payroll.read" not in resolve_permissions(["viewer"])


def test_roles_are_case_insensitive_and_unioned():
    permissions = resolve_permissions([" Viewer ", "ADMIN"])
    assert "internal.admin" in permissions
    assert "payroll.write" in permissions


def test_unknown_role_grants_nothing():
    assert resolve_permissions(["contractor"]) == frozenset()


def test_parse_csv():
    assert parse_csv(" payroll.read, ,payroll.write ") == ["payroll.read", "payroll.write"]
    assert parse_csv(None) == []


def test_context_permission_check_is_case_insensitive():
    ctx = RequestContext(tenant_id=TENANT_A, permissions=frozenset({"Payroll.Write"}))
    assert ctx.has_permission("payroll.write")
    assert not ctx.has_permission("payroll.read")
