"""Idempotency store for replaying retried mutating requests."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from uuid import UUID

from sqlalchemy import delete, insert, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from huminex_payroll.errors import ConflictError
from huminex_payroll.models import IdempotencyRecord, utcnow

logger = logging.getLogger(__name__)


class DuplicateIdempotencyKeyError(ConflictError):
    """Raised when a key already holds a different captured response."""

    code = "idempotency_key_conflict"

    def __init__(self, key: str, method: str, path: str):
        self.key = key
        self.method = method
        self.path = path
        super().__init__(
            f"Idempotency key '{key}' was already used for {method} {path} "
            "with a different response.",
            {"key": key, "method": method, "path": path},
        )


class IdempotencyKeyInProgressError(ConflictError):
    """Raised when another request holding the same key has not finished."""

    code = "idempotency_key_in_progress"

    def __init__(self, key: str, method: str, path: str):
        self.key = key
        super().__init__(
            f"A request with idempotency key '{key}' for {method} {path} "
            "is still being processed. Retry later.",
            {"key": key, "method": method, "path": path},
        )


@dataclass(frozen=True)
class StoredResponse:
    """A captured response, replayed verbatim."""

    status_code: int
    body: str | None


class IdempotencyStore:
    """Write-once response cache keyed by (tenant, key, method, path).

    Key invariants:
    1. At most one record per composite key (the primary key)
    2. A record is never overwritten while it is unexpired
    3. Expired records read as absent and are removed by purge_expired()

    A command first reserve()s its key, so at most one request runs the
    operation, then complete()s the reservation with the response it
    rendered, or release()s it when the response must not be replayed.
    """

    def __init__(self, session: AsyncSession):
        self.session = session

    @staticmethod
    def _scope(tenant_id: UUID, key: str, method: str, path: str) -> list:
        return [
            IdempotencyRecord.tenant_id == tenant_id,
            IdempotencyRecord.key == key,
            IdempotencyRecord.http_method == method.upper(),
            IdempotencyRecord.request_path == path.lower(),
        ]

    async def try_get(
        self,
        tenant_id: UUID,
        key: str,
        method: str,
        path: str,
    ) -> StoredResponse | None:
        """Return the captured response if an unexpired record exists.

        A reservation without a response reads as absent.
        """
        result = await self.session.execute(
            select(IdempotencyRecord.status_code, IdempotencyRecord.response_body).where(
                *self._scope(tenant_id, key, method, path),
                IdempotencyRecord.status_code.is_not(None),
                IdempotencyRecord.expires_at > utcnow(),
            )
        )
        row = result.first()
        if row is None:
            return None
        return StoredResponse(status_code=row.status_code, body=row.response_body)

    async def put(
        self,
        tenant_id: UUID,
        key: str,
        method: str,
        path: str,
        status_code: int,
        body: str | None,
        ttl: timedelta,
    ) -> StoredResponse:
        """Capture a response for the composite key and commit.

        Storing the same response twice is a no-op.

        Raises:
            DuplicateIdempotencyKeyError: If the key already holds a
                different response.
            IdempotencyKeyInProgressError: If the key is reserved by a
                request that has not finished.
        """
        candidate = StoredResponse(status_code=status_code, body=body)
        try:
            await self._insert(tenant_id, key, method, path, status_code, body, ttl)
        except IntegrityError:
            await self.session.rollback()
            existing = await self.try_get(tenant_id, key, method, path)
            if existing is None:
                raise IdempotencyKeyInProgressError(key, method.upper(), path.lower())
            if existing == candidate:
                return existing
            raise DuplicateIdempotencyKeyError(key, method.upper(), path.lower())

        return candidate

    async def reserve(
        self,
        tenant_id: UUID,
        key: str,
        method: str,
        path: str,
        lease: timedelta,
    ) -> StoredResponse | None:
        """Claim the key for a request about to run its operation.

        The reservation is committed on its own so concurrent requests see
        it. Returns None when the caller now holds the key, or the captured
        response when another request already finished with it.

        Raises:
            IdempotencyKeyInProgressError: If another request holds the key.
        """
        try:
            await self._insert(tenant_id, key, method, path, None, None, lease)
        except IntegrityError:
            await self.session.rollback()
            existing = await self.try_get(tenant_id, key, method, path)
            if existing is None:
                raise IdempotencyKeyInProgressError(key, method.upper(), path.lower())
            return existing
        return None

    async def complete(
        self,
        tenant_id: UUID,
        key: str,
        method: str,
        path: str,
        status_code: int,
        body: str | None,
        ttl: timedelta,
    ) -> bool:
        """Store the response on a held reservation and commit.

        Returns False if the reservation no longer exists.
        """
        result = await self.session.execute(
            update(IdempotencyRecord)
            .where(
                *self._scope(tenant_id, key, method, path),
                IdempotencyRecord.status_code.is_(None),
            )
            .values(status_code=status_code, response_body=body, expires_at=utcnow() + ttl)
            .execution_options(synchronize_session=False)
        )
        await self.session.commit()
        return (result.rowcount or 0) == 1

    async def release(self, tenant_id: UUID, key: str, method: str, path: str) -> None:
        """Drop a held reservation so the key can be retried."""
        await self.session.execute(
            delete(IdempotencyRecord)
            .where(
                *self._scope(tenant_id, key, method, path),
                IdempotencyRecord.status_code.is_(None),
            )
            .execution_options(synchronize_session=False)
        )
        await self.session.commit()

    async def _insert(
        self,
        tenant_id: UUID,
        key: str,
        method: str,
        path: str,
        status_code: int | None,
        body: str | None,
        lifetime: timedelta,
    ) -> None:
        now = utcnow()
        # An expired record or stale reservation would otherwise block the insert
        await self.session.execute(
            delete(IdempotencyRecord)
            .where(
                *self._scope(tenant_id, key, method, path),
                IdempotencyRecord.expires_at <= now,
            )
            .execution_options(synchronize_session=False)
        )
        await self.session.execute(
            insert(IdempotencyRecord).values(
                tenant_id=tenant_id,
                key=key,
                http_method=method.upper(),
                request_path=path.lower(),
                status_code=status_code,
                response_body=body,
                created_at=now,
                expires_at=now + lifetime,
            )
        )
        await self.session.commit()

    async def purge_expired(self, now: datetime | None = None) -> int:
        """Delete expired records. Returns the number removed."""
        cutoff = now or utcnow()
        result = await self.session.execute(
            delete(IdempotencyRecord)
            .where(IdempotencyRecord.expires_at <= cutoff)
            .execution_options(synchronize_session=False)
        )
        await self.session.commit()
        removed = result.rowcount or 0
        logger.info("Purged %d expired idempotency records", removed)
        return removed
