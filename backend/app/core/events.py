"""StandardizedEvent: the vendor-agnostic event record consumed by the pipeline.

Constructed once by a connector-specific standardizer, immutable afterwards.
"""
from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from core.definitions import EventCategory, EventSubtype, EventType

logger = logging.getLogger("fusion.events")


class StandardizedEvent(BaseModel):
    model_config = ConfigDict(frozen=True)

    event_id: str
    timestamp: datetime
    connector_id: str
    device_id: str                      # connector-scoped external id, not the internal UUID
    category: EventCategory
    type: EventType
    subtype: EventSubtype | None = None
    payload: dict[str, Any] = Field(default_factory=dict)
    original_event: Any = None          # vendor-native payload, kept for audit

    @field_validator("timestamp")
    @classmethod
    def _to_utc(cls, value: datetime) -> datetime:
        # naive timestamps are taken as UTC
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)

    @property
    def display_state(self) -> str | None:
        value = self.payload.get("displayState")
        return value if isinstance(value, str) else None


class EventThumbnailData(BaseModel):
    """Transient image attached to real-time messages and automation context."""

    data: str                           # base64
    content_type: str = "image/jpeg"
    size: int


# ---------------------------------------------------------------------------
# Raw event type extraction
# ---------------------------------------------------------------------------

# (vendor shape, key holding the vendor's own event type name)
RAW_EVENT_TYPE_SHAPES: tuple[tuple[str, str], ...] = (
    ("yolink", "event"),        # {"event": "DoorSensor.Alert", ...}
    ("netbox", "Descname"),     # {"Descname": "Access denied", ...}
    ("piko", "eventType"),      # {"eventType": "analyticsSdkEvent", ...}
    ("genea", "event_type"),    # {"event_type": "door_forced_open", ...}
)


def extract_raw_event_type(original_event: Any) -> str | None:
    """Return the vendor's event type name from a raw payload, if recognisable.

    Shapes are tried in order and the first string value wins. Anything else
    (non-dict payloads, non-string values) yields None; nothing is coerced.
    """
    if not isinstance(original_event, dict):
        return None
    for _shape, key in RAW_EVENT_TYPE_SHAPES:
        value = original_event.get(key)
        if isinstance(value, str):
            return value
    logger.debug("No known raw event type shape in payload keys %s", sorted(original_event)[:10])
    return None
