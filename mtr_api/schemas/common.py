"""Shared schema types."""

from datetime import datetime, timezone
from typing import Annotated

from pydantic import AfterValidator, Field


def _to_utc(value: datetime) -> datetime:
    """Treat naive datetimes as UTC; convert aware ones to UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


UTCDatetime = Annotated[datetime, AfterValidator(_to_utc)]

# Short clinical list entries (affected medications, conditions, risk factors)
ShortText = Annotated[str, Field(min_length=1, max_length=200)]
