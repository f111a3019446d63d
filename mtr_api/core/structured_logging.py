"""Structured logging helpers (PHI-safe)."""

import logging
from typing import Any
from uuid import UUID


def build_log_context(
    *,
    user_id: UUID | str | None = None,
    workplace_id: UUID | str | None = None,
    session_id: UUID | str | None = None,
    request_id: str | None = None,
    route: str | None = None,
    method: str | None = None,
) -> dict[str, Any]:
    """Return a PHI-safe log context dict.

    Only identifiers go in here. Patient names, medication lists and free-text
    clinical notes must never be logged.
    """
    context: dict[str, Any] = {}
    if user_id:
        context["user_id"] = str(user_id)
    if workplace_id:
        context["workplace_id"] = str(workplace_id)
    if session_id:
        context["session_id"] = str(session_id)
    if request_id:
        context["request_id"] = request_id
    if route:
        context["route"] = route
    if method:
        context["method"] = method
    return context


def configure_logging(level: str) -> None:
    """Configure root logging once at app startup."""
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )
