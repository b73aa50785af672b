"""Shared Pydantic schema utilities for gateway responses."""

from datetime import UTC, datetime

from pydantic import field_serializer


def utc_isoformat(value: datetime) -> str:
    """ISO 8601 in UTC with a ``Z`` suffix; naive values are taken as UTC."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=UTC)
    return value.astimezone(UTC).isoformat().replace("+00:00", "Z")


class TimestampSerializerMixin:
    """
    Mixin serializing a ``timestamp`` field as ``2024-10-17T16:30:00Z``.

    Usage:
        class HealthResponse(TimestampSerializerMixin, BaseModel):
            timestamp: datetime

    Note: Mixin must be listed BEFORE BaseModel in inheritance order.
    """

    @field_serializer("timestamp")
    def serialize_timestamp(self, value: datetime) -> str:
        return utc_isoformat(value)
