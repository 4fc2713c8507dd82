"""FastAPI dependencies for dependency injection."""

from collections.abc import AsyncGenerator, Callable, Coroutine
from typing import Annotated, Any
from uuid import UUID, uuid4

from fastapi import Depends, Header, Request
from sqlalchemy.ext.asyncio import AsyncSession

from huminex_payroll.api.security import PAYROLL_READ, PAYROLL_WRITE, parse_csv, resolve_permissions
from huminex_payroll.config import Settings
from huminex_payroll.context import RequestContext
from huminex_payroll.errors import PermissionDeniedError, TenantContextMissingError
from huminex_payroll.services.commands import PayrollCommandHandler


async def get_db_session(request: Request) -> AsyncGenerator[AsyncSession, None]:
    """Get database session dependency."""
    async with request.app.state.session_factory() as session:
        try:
            yield session
        except Exception:
            await session.rollback()
            raise


def get_trace_id(request: Request) -> str:
    """Trace id assigned by the tracing middleware."""
    return getattr(request.state, "trace_id", None) or uuid4().hex


def _parse_uuid(value: str | None) -> UUID | None:
    if not value:
        return None
    try:
        return UUID(value.strip())
    except ValueError:
        return None


async def get_request_context(
    request: Request,
    x_tenant_id: Annotated[str | None, Header()] = None,
    x_user_id: Annotated[str | None, Header()] = None,
    x_user_email: Annotated[str | None, Header()] = None,
    x_user_role: Annotated[str | None, Header()] = None,
    x_user_permissions: Annotated[str | None, Header()] = None,
) -> RequestContext:
    """Build the caller's tenant and identity from request headers.

    Explicit X-User-Permissions win; otherwise permissions come from the
    role(s) in X-User-Role.
    """
    tenant_id = _parse_uuid(x_tenant_id)
    if tenant_id is None or tenant_id.int == 0:
        raise TenantContextMissingError("X-Tenant-ID header with a valid tenant id is required.")

    roles = parse_csv(x_user_role)
    permissions = parse_csv(x_user_permissions)

    return RequestContext(
        tenant_id=tenant_id,
        user_id=_parse_uuid(x_user_id),
        user_email=(x_user_email or "").strip(),
        role=roles[0] if roles else "",
        permissions=frozenset(permissions) if permissions else resolve_permissions(roles),
        trace_id=get_trace_id(request),
    )


def require_permission(
    permission: str,
) -> Callable[..., Coroutine[Any, Any, RequestContext]]:
    """Dependency that rejects callers lacking `permission`."""

    async def dependency(
        ctx: Annotated[RequestContext, Depends(get_request_context)],
    ) -> RequestContext:
        if not ctx.has_permission(permission):
            raise PermissionDeniedError(permission)
        return ctx

    return dependency


async def get_command_handler(
    request: Request,
    db: Annotated[AsyncSession, Depends(get_db_session)],
) -> PayrollCommandHandler:
    """Command handler bound to this request's session."""
    settings: Settings = request.app.state.settings
    return PayrollCommandHandler(
        session=db,
        documents=request.app.state.documents,
        publisher=request.app.state.publisher,
        ttl=settings.idempotency_ttl,
        lease=settings.idempotency_lease,
        key_max_length=settings.idempotency_key_max_length,
    )


# Type aliases for cleaner dependency injection
DbSession = Annotated[AsyncSession, Depends(get_db_session)]
ReadContext = Annotated[RequestContext, Depends(require_permission(PAYROLL_READ))]
WriteContext = Annotated[RequestContext, Depends(require_permission(PAYROLL_WRITE))]
CommandHandler = Annotated[PayrollCommandHandler, Depends(get_command_handler)]
