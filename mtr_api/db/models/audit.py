"""Audit log model."""

from __future__ import annotations

import uuid
from datetime import datetime

from sqlalchemy import ForeignKey, Index, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from mtr_api.db.base import Base
from mtr_api.db.types import JSONType, utcnow


class AuditLog(Base):
    """
    Append-only MTR audit trail.

    Security:
    - details carry identifiers and coded values only, never free-text
      clinical notes or patient names
    - IP captured from X-Forwarded-For or client IP
    - Hash chain per workplace makes tampering detectable
    """

    __tablename__ = "audit_logs"
    __table_args__ = (
        Index("idx_audit_workplace_created", "workplace_id", "created_at"),
        Index("idx_audit_workplace_event_created", "workplace_id", "event_type", "created_at"),
        Index("idx_audit_workplace_actor_created", "workplace_id", "actor_user_id", "created_at"),
        Index("idx_audit_target", "target_type", "target_id"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    workplace_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("workplaces.id", ondelete="CASCADE"),
        nullable=False,
    )
    actor_user_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, nullable=True  # System events have no actor
    )

    # Event classification
    event_type: Mapped[str] = mapped_column(String(50), nullable=False)  # AuditEventType

    # Target entity
    target_type: Mapped[str | None] = mapped_column(
        String(50), nullable=True
    )  # 'mtr_session', 'dtp', 'mtr_intervention', 'mtr_follow_up'
    target_id: Mapped[uuid.UUID | None] = mapped_column(Uuid, nullable=True)

    details: Mapped[dict | None] = mapped_column(JSONType, nullable=True)

    # Request metadata
    ip_address: Mapped[str | None] = mapped_column(String(45), nullable=True)
    user_agent: Mapped[str | None] = mapped_column(String(500), nullable=True)
    request_id: Mapped[str | None] = mapped_column(String(64), nullable=True)

    # Hash chain
    prev_hash: Mapped[str | None] = mapped_column(String(64), nullable=True)
    entry_hash: Mapped[str | None] = mapped_column(String(64), nullable=True)

    created_at: Mapped[datetime] = mapped_column(default=utcnow, nullable=False)
