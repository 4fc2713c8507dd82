"""Captured responses for idempotent request replay."""

from __future__ import annotations

from datetime import datetime
from uuid import UUID

from sqlalchemy import DateTime, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from huminex_payroll.models.base import Base, TimestampMixin


class IdempotencyRecord(Base, TimestampMixin):
    """One captured response per (tenant, key, method, path).

    The composite primary key is the atomic guard for concurrent retries. A
    row without a status code is a reservation held by the request still
    running; it expires after a short lease.
    """

    __tablename__ = "idempotency_record"

    tenant_id: Mapped[UUID] = mapped_column(primary_key=True)
    key: Mapped[str] = mapped_column(String(128), primary_key=True)
    http_method: Mapped[str] = mapped_column(String(16), primary_key=True)
    request_path: Mapped[str] = mapped_column(String(512), primary_key=True)
    status_code: Mapped[int | None] = mapped_column(Integer, nullable=True)
    response_body: Mapped[str | None] = mapped_column(Text, nullable=True)
    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    __table_args__ = (Index("ix_idempotency_record_expires_at", "expires_at"),)
