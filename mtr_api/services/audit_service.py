"""Audit logging service - durable MTR audit trail with a hash chain.

Every clinical mutation writes one row to audit_logs in the same transaction
as the change, so the trail survives restarts and cannot drift from the data.

Security guidelines:
- NEVER put patient names, free-text notes or medication lists in details
- Use IDs and coded values (step names, severities, counts)
- IP: Trust X-Forwarded-For only when TRUST_PROXY_HEADERS is set
"""

import hashlib
import json
import logging
from datetime import datetime, timedelta
from typing import Any
from uuid import UUID

from fastapi import Request
from sqlalchemy import select
from sqlalchemy.orm import Session

from mtr_api.core.config import settings
from mtr_api.db.enums import AuditEventType
from mtr_api.db.models import AuditLog
from mtr_api.db.types import utcnow

logger = logging.getLogger(__name__)

GENESIS_HASH = "0" * 64  # All zeros for first entry

DEFAULT_AUDIT_LIMIT = 100
MAX_AUDIT_LIMIT = 500


def get_client_ip(request: Request | None) -> str | None:
    """
    Extract client IP from request.

    Only trusts X-Forwarded-For when TRUST_PROXY_HEADERS=True (behind reverse proxy).
    """
    if not request:
        return None

    if settings.TRUST_PROXY_HEADERS:
        forwarded = request.headers.get("x-forwarded-for")
        if forwarded:
            # X-Forwarded-For: client, proxy1, proxy2 - take first
            return forwarded.split(",")[0].strip()

    if request.client:
        return request.client.host

    return None


def get_user_agent(request: Request | None) -> str | None:
    """Extract user agent from request."""
    if not request:
        return None
    ua = request.headers.get("user-agent", "")
    # Truncate to 500 chars (DB limit)
    return ua[:500] if ua else None


def get_request_id(request: Request | None) -> str | None:
    if not request:
        return None
    request_id = request.headers.get("x-request-id")
    return request_id[:64] if request_id else None


def canonical_json(obj: dict | None) -> str:
    """
    Serialize object to canonical JSON for consistent hashing.

    Uses sorted keys, compact separators, and str() for non-JSON types.
    """
    return json.dumps(obj or {}, sort_keys=True, separators=(",", ":"), default=str)


def compute_audit_hash(
    prev_hash: str,
    entry_id: str,
    workplace_id: str,
    event_type: str,
    created_at: str,
    details_json: str,
    actor_user_id: str = "",
    target_type: str = "",
    target_id: str = "",
    ip_address: str = "",
    user_agent: str = "",
    request_id: str = "",
) -> str:
    """Hash = SHA256(all immutable fields joined with |)."""
    payload = "|".join(
        [
            prev_hash,
            entry_id,
            workplace_id,
            event_type,
            created_at,
            details_json,
            actor_user_id,
            target_type,
            target_id,
            ip_address,
            user_agent,
            request_id,
        ]
    )
    return hashlib.sha256(payload.encode("utf-8")).hexdigest()


def _entry_hash(entry: AuditLog, prev_hash: str) -> str:
    return compute_audit_hash(
        prev_hash=prev_hash,
        entry_id=str(entry.id),
        workplace_id=str(entry.workplace_id),
        event_type=entry.event_type,
        created_at=entry.created_at.isoformat(),
        details_json=canonical_json(entry.details),
        actor_user_id=str(entry.actor_user_id) if entry.actor_user_id else "",
        target_type=entry.target_type or "",
        target_id=str(entry.target_id) if entry.target_id else "",
        ip_address=entry.ip_address or "",
        user_agent=entry.user_agent or "",
        request_id=entry.request_id or "",
    )


def _last_entry(db: Session, workplace_id: UUID) -> tuple[str, datetime | None]:
    row = db.execute(
        select(AuditLog.entry_hash, AuditLog.created_at)
        .where(AuditLog.workplace_id == workplace_id)
        .where(AuditLog.entry_hash.isnot(None))
        .order_by(AuditLog.created_at.desc(), AuditLog.id.desc())
        .limit(1)
    ).first()
    if row is None:
        return GENESIS_HASH, None
    return row.entry_hash, row.created_at


def get_last_audit_hash(db: Session, workplace_id: UUID) -> str:
    """Hash of the most recent entry for a workplace (created_at + id ordering)."""
    return _last_entry(db, workplace_id)[0]


def log_event(
    db: Session,
    workplace_id: UUID,
    event_type: AuditEventType,
    actor_user_id: UUID | None = None,
    target_type: str | None = None,
    target_id: UUID | None = None,
    details: dict[str, Any] | None = None,
    request: Request | None = None,
) -> AuditLog:
    """
    Append an audit event to the workplace hash chain.

    Flushes but does not commit; the caller commits with its own change.
    """
    prev_hash, prev_created_at = _last_entry(db, workplace_id)

    # created_at orders the chain, so it must be strictly increasing
    created_at = utcnow()
    if prev_created_at is not None and created_at <= prev_created_at:
        created_at = prev_created_at + timedelta(microseconds=1)

    entry = AuditLog(
        workplace_id=workplace_id,
        actor_user_id=actor_user_id,
        event_type=event_type.value,
        target_type=target_type,
        target_id=target_id,
        details=json.loads(canonical_json(details)) if details is not None else None,
        ip_address=get_client_ip(request),
        user_agent=get_user_agent(request),
        request_id=get_request_id(request),
        prev_hash=prev_hash,
        created_at=created_at,
    )
    db.add(entry)
    db.flush()  # Get ID

    entry.entry_hash = _entry_hash(entry, prev_hash)
    db.flush()

    logger.info(
        f"Audit event {event_type.value} target={target_type}:{target_id}",
        extra={"workplace_id": str(workplace_id), "actor_user_id": str(actor_user_id)},
    )
    return entry


def list_audit_events(
    db: Session,
    workplace_id: UUID,
    user_id: UUID | None = None,
    target_type: str | None = None,
    target_id: UUID | None = None,
    event_type: str | None = None,
    start: datetime | None = None,
    end: datetime | None = None,
    limit: int = DEFAULT_AUDIT_LIMIT,
) -> list[AuditLog]:
    """Audit events for a workplace, newest first."""
    query = select(AuditLog).where(AuditLog.workplace_id == workplace_id)
    if user_id:
        query = query.where(AuditLog.actor_user_id == user_id)
    if target_type:
        query = query.where(AuditLog.target_type == target_type)
    if target_id:
        query = query.where(AuditLog.target_id == target_id)
    if event_type:
        query = query.where(AuditLog.event_type == event_type)
    if start:
        query = query.where(AuditLog.created_at >= start)
    if end:
        query = query.where(AuditLog.created_at <= end)
    limit = max(1, min(limit, MAX_AUDIT_LIMIT))
    query = query.order_by(AuditLog.created_at.desc(), AuditLog.id.desc()).limit(limit)
    return list(db.execute(query).scalars().all())


def verify_chain(db: Session, workplace_id: UUID) -> tuple[bool, int, UUID | None]:
    """
    Recompute the workplace hash chain from the genesis entry.

    Returns (valid, entries_checked, first_invalid_entry_id).
    """
    entries = db.execute(
        select(AuditLog)
        .where(AuditLog.workplace_id == workplace_id)
        .order_by(AuditLog.created_at.asc(), AuditLog.id.asc())
    ).scalars().all()

    prev_hash = GENESIS_HASH
    for checked, entry in enumerate(entries, start=1):
        if entry.prev_hash != prev_hash or entry.entry_hash != _entry_hash(entry, prev_hash):
            logger.warning(f"Audit chain broken at entry {entry.id}")
            return False, checked, entry.id
        prev_hash = entry.entry_hash
    return True, len(entries), None
