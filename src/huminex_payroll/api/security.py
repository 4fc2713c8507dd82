"""Role to permission mapping.

Used when a caller does not send explicit permissions; the role header is
then resolved through ROLE_PERMISSIONS.
"""

from collections.abc import Iterable

PAYROLL_READ = "payroll.read"
PAYROLL_WRITE = "payroll.write"

ADMIN_PERMISSIONS = frozenset(
    {
        "org.read",
        "org.write",
        "workforce.portal-access.write",
        PAYROLL_READ,
        PAYROLL_WRITE,
        "rbac.read",
        "rbac.write",
        "user.read.self",
        "user.roles.write",
        "internal.admin",
    }
)

ROLE_PERMISSIONS: dict[str, frozenset[str]] = {
    "admin": ADMIN_PERMISSIONS,
    "super_admin": ADMIN_PERMISSIONS,
    "internal_admin": frozenset({"internal.admin"}),
    "hr_manager": frozenset(
        {"org.read", "org.write", "workforce.portal-access.write", "user.read.self"}
    ),
    "finance_manager": frozenset({"org.read", PAYROLL_READ, "user.read.self"}),
    "payroll_manager": frozenset({"org.read", PAYROLL_READ, PAYROLL_WRITE, "user.read.self"}),
    "manager": frozenset({"org.read", "user.read.self"}),
    "viewer": frozenset({"org.read", "user.read.self"}),
    "employee": frozenset({"user.read.self", "org.read", PAYROLL_READ}),
}


def parse_csv(value: str | None) -> list[str]:
    """Split a comma separated header into trimmed, non-empty items."""
    if not value:
        return []
    return [item.strip() for item in value.split(",") if item.strip()]


def resolve_permissions(roles: Iterable[str]) -> frozenset[str]:
    """Union of the permissions granted by each known role (case-insensitive)."""
    resolved: set[str] = set()
    for role in roles:
        resolved |= ROLE_PERMISSIONS.get(role.strip().lower(), frozenset())
    return frozenset(resolved)
