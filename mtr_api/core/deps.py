"""FastAPI dependencies for request context and database access."""

from dataclasses import dataclass
from typing import Generator
from uuid import UUID

from fastapi import Header, HTTPException
from sqlalchemy.orm import Session

from mtr_api.db.session import SessionLocal


# Identity headers set by the upstream gateway after authentication
USER_ID_HEADER = "X-User-Id"
WORKPLACE_ID_HEADER = "X-Workplace-Id"
ADMIN_HEADER = "X-Admin"


def get_db() -> Generator[Session, None, None]:
    """
    Database session dependency.

    Yields a database session and ensures it's closed after the request.
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@dataclass(frozen=True)
class RequestContext:
    """Authenticated caller as resolved by the gateway."""
    user_id: UUID
    workplace_id: UUID
    is_admin: bool = False


def _parse_uuid(value: str | None, header: str) -> UUID:
    if not value:
        raise HTTPException(status_code=401, detail=f"Missing {header} header")
    try:
        return UUID(value)
    except ValueError:
        raise HTTPException(status_code=401, detail=f"Invalid {header} header")


def get_request_context(
    x_user_id: str | None = Header(None, alias=USER_ID_HEADER),
    x_workplace_id: str | None = Header(None, alias=WORKPLACE_ID_HEADER),
    x_admin: str | None = Header(None, alias=ADMIN_HEADER),
) -> RequestContext:
    """
    Resolve the request context from gateway headers.

    Raises:
        HTTPException 401: identity headers missing or malformed
    """
    return RequestContext(
        user_id=_parse_uuid(x_user_id, USER_ID_HEADER),
        workplace_id=_parse_uuid(x_workplace_id, WORKPLACE_ID_HEADER),
        is_admin=(x_admin or "").strip().lower() in ("1", "true", "yes"),
    )
