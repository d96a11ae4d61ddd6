"""Redis channel naming and real-time message documents.

Messages are JSON documents with camelCase keys; the browser consumes them
as-is from the WebSocket stream.
"""
from __future__ import annotations

from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any

from redis.asyncio import Redis

from core.definitions import (
    ARMED_STATE_DISPLAY_MAP,
    EVENT_CATEGORY_DISPLAY_MAP,
    EVENT_SUBTYPE_DISPLAY_MAP,
    EVENT_TYPE_DISPLAY_MAP,
    ArmedState,
    display_label,
)
from core.events import EventThumbnailData, StandardizedEvent

if TYPE_CHECKING:
    from models import Area, Connector, Device, Location


def event_channel(organization_id: str) -> str:
    return f"events:{organization_id}"


def event_thumbnail_channel(organization_id: str) -> str:
    return f"events:{organization_id}:with-thumbnails"


async def subscriber_count(redis: Redis, channel: str) -> int:
    """Number of live subscribers on a channel (PUBSUB NUMSUB)."""
    result = await redis.pubsub_numsub(channel)
    for _name, count in result:
        return int(count)
    return 0


def build_event_message(
    event: StandardizedEvent,
    connector: Connector,
    device: Device | None = None,
    area: Area | None = None,
    location: Location | None = None,
    *,
    include_thumbnail: bool = False,
    thumbnail: EventThumbnailData | None = None,
) -> dict[str, Any]:
    """Build the message published for one event.

    Device/area/location enrichment is optional; an event from an unknown
    device is still published, just without names.
    """
    message: dict[str, Any] = {
        "eventUuid": event.event_id,
        "timestamp": event.timestamp.isoformat(),
        "organizationId": connector.organization_id,
        "deviceId": event.device_id,
        "deviceName": device.name if device else None,
        "connectorId": event.connector_id,
        "connectorName": connector.name,
        "locationId": location.id if location else None,
        "locationName": location.name if location else None,
        "areaId": area.id if area else None,
        "areaName": area.name if area else None,
        "event": {
            **event.payload,
            "categoryId": event.category.value,
            "category": display_label(EVENT_CATEGORY_DISPLAY_MAP, event.category),
            "typeId": event.type.value,
            "type": display_label(EVENT_TYPE_DISPLAY_MAP, event.type),
            "subTypeId": event.subtype.value if event.subtype else None,
            "subType": display_label(EVENT_SUBTYPE_DISPLAY_MAP, event.subtype),
        },
        "rawEvent": event.original_event,
    }
    if include_thumbnail:
        # Thumbnail channel always carries the key; null when no image was fetched
        message["thumbnailData"] = None
        if thumbnail:
            message["thumbnailData"] = {
                "data": thumbnail.data,
                "contentType": thumbnail.content_type,
                "size": thumbnail.size,
            }
    return message


def build_arming_message(
    organization_id: str,
    area: Area,
    location: Location | None,
    previous_state: ArmedState,
    current_state: ArmedState,
) -> dict[str, Any]:
    return {
        "type": "arming",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "organizationId": organization_id,
        "area": {
            "id": area.id,
            "name": area.name,
            "locationId": location.id if location else None,
            "locationName": location.name if location else None,
            "previousState": previous_state.value,
            "previousStateDisplayName": ARMED_STATE_DISPLAY_MAP[previous_state],
            "currentState": current_state.value,
            "currentStateDisplayName": ARMED_STATE_DISPLAY_MAP[current_state],
        },
    }
