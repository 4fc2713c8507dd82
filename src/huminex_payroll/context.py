"""Per-request identity passed explicitly into every service call."""

from __future__ import annotations

from dataclasses import dataclass, field
from uuid import UUID, uuid4


@dataclass(frozen=True)
class RequestContext:
    """Tenant and actor for one request.

    Services never look up the tenant on their own; whatever they read or
    write is scoped by the tenant_id carried here.
    """

    tenant_id: UUID
    user_id: UUID | None = None
    user_email: str = ""
    role: str = ""
    permissions: frozenset[str] = field(default_factory=frozenset)
    trace_id: str = field(default_factory=lambda: uuid4().hex)

    def has_permission(self, permission: str) -> bool:
        """Check a permission, case-insensitively."""
        wanted = permission.lower()
        return any(p.lower() == wanted for p in self.permissions)
