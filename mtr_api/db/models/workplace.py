"""Tenant and patient models."""

from __future__ import annotations

import uuid
from datetime import datetime

from sqlalchemy import BigInteger, Boolean, ForeignKey, Index, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from mtr_api.db.base import Base
from mtr_api.db.types import utcnow


class Workplace(Base):
    """
    A pharmacy (tenant).

    All MTR records belong to a workplace and are scoped by workplace_id
    in every query.
    """

    __tablename__ = "workplaces"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    created_at: Mapped[datetime] = mapped_column(default=utcnow, nullable=False)


class Patient(Base):
    """Patient record referenced by MTR sessions. Managed elsewhere; read-only here."""

    __tablename__ = "patients"
    __table_args__ = (Index("idx_patients_workplace", "workplace_id"),)

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    workplace_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("workplaces.id", ondelete="CASCADE"), nullable=False
    )
    mrn: Mapped[str | None] = mapped_column(String(50), nullable=True)
    full_name: Mapped[str] = mapped_column(String(255), nullable=False)
    is_deleted: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    created_at: Mapped[datetime] = mapped_column(default=utcnow, nullable=False)


class WorkplaceCounter(Base):
    """
    Atomic counter for sequential numbers (e.g., MTR review numbers).

    Uses INSERT...ON CONFLICT for atomic increment without race conditions.
    counter_type carries the scope, e.g. "mtr_review_number:202412".
    """

    __tablename__ = "workplace_counters"

    workplace_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("workplaces.id", ondelete="CASCADE"),
        primary_key=True,
    )
    counter_type: Mapped[str] = mapped_column(String(50), primary_key=True)
    current_value: Mapped[int] = mapped_column(BigInteger, default=0, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        default=utcnow, onupdate=utcnow, nullable=False
    )
