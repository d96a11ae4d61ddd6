"""EventProcessor: persists a standardized event and runs its side effects.

Order per event:
  1. raw event type from the vendor payload
  2. INSERT into events (unique event_uuid)          -- failure aborts, propagates
  3. connector / device / area / location lookup     -- one read
  4. area cameras for thumbnails
  5. thumbnail gate + fetch
  6. publish to events:{org} (+ :with-thumbnails when it has subscribers)
  7. device status / battery update
  8. alarm evaluation for armed zones
  9. hand-off to the automation engine

Steps 3-9 are best-effort: a failure is logged with the event id and the
next step still runs. The persisted row is never rolled back.
"""
from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Awaitable, TypeVar

from redis.asyncio import Redis
from sqlalchemy import and_, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from core.channels import (
    build_arming_message,
    build_event_message,
    event_channel,
    event_thumbnail_channel,
    subscriber_count,
)
from core.definitions import ARMED_STATES, ArmedState, EventType
from core.events import EventThumbnailData, StandardizedEvent, extract_raw_event_type
from models import Area, AreaDevice, Connector, Device, Event, Location
from services.alarm_logic import AlarmEvaluator, AlarmTransition
from services.automation_dispatch import AutomationTriggerService
from services.thumbnail_fetcher import PikoThumbnailClient
from services.thumbnail_gate import (
    AreaCamera,
    ThumbnailGate,
    find_area_cameras,
    should_fetch_thumbnail,
)

logger = logging.getLogger("fusion.event_processor")

T = TypeVar("T")


async def best_effort(step: str, event_id: str, awaitable: Awaitable[T], default: T | None = None) -> T | None:
    """Await an optional pipeline step; log and return `default` on failure."""
    try:
        return await awaitable
    except Exception as exc:
        logger.error("Event %s: %s failed: %s", event_id, step, exc)
        return default


@dataclass
class EventContext:
    connector: Connector | None = None
    device: Device | None = None
    area: Area | None = None
    location: Location | None = None

    @property
    def organization_id(self) -> str | None:
        return self.connector.organization_id if self.connector else None


class EventProcessor:

    def __init__(
        self,
        redis: Redis,
        session_factory: async_sessionmaker[AsyncSession],
        automation_service: AutomationTriggerService,
        *,
        thumbnail_gate: ThumbnailGate | None = None,
        thumbnail_client: PikoThumbnailClient | None = None,
        alarm_evaluator: AlarmEvaluator | None = None,
    ):
        self.redis = redis
        self.session_factory = session_factory
        self.automation_service = automation_service
        self.thumbnail_gate = thumbnail_gate or ThumbnailGate(redis, session_factory)
        self.thumbnail_client = thumbnail_client
        self.alarm_evaluator = alarm_evaluator or AlarmEvaluator(session_factory)

    async def process_and_persist_event(self, event: StandardizedEvent) -> None:
        event_id = event.event_id
        logger.info(
            "Received event %s type=%s device=%s connector=%s",
            event_id, event.type.value, event.device_id, event.connector_id,
        )

        raw_event_type = extract_raw_event_type(event.original_event)
        await self._persist(event, raw_event_type)

        ctx = await best_effort("context lookup", event_id, self._resolve_context(event))
        ctx = ctx or EventContext()
        org_id = ctx.organization_id

        cameras: list[AreaCamera] = []
        if ctx.area is not None:
            cameras = await best_effort(
                "area camera lookup", event_id, self._area_cameras(ctx.area.id), default=[],
            )

        thumbnail: EventThumbnailData | None = None
        if org_id and self.thumbnail_client and should_fetch_thumbnail(event, cameras):
            thumbnail = await best_effort(
                "thumbnail fetch", event_id, self._fetch_thumbnail(event, org_id, cameras),
            )

        if org_id:
            await best_effort("publish", event_id, self._publish(event, ctx, thumbnail))
        else:
            logger.warning("Event %s not published: connector has no organization", event_id)

        if ctx.device is None:
            logger.warning(
                "Event %s: no device for connector=%s device=%s, skipping status and alarm",
                event_id, event.connector_id, event.device_id,
            )
        else:
            await best_effort("device update", event_id, self._update_device(event, ctx.device))

            if ctx.area is not None and ctx.area.armed_state in {s.value for s in ARMED_STATES}:
                transition = await best_effort(
                    "alarm evaluation", event_id,
                    self.alarm_evaluator.evaluate(event, ctx.device, ctx.area),
                )
                if transition is not None and org_id:
                    await best_effort(
                        "arming publish", event_id, self._publish_arming(org_id, ctx, transition),
                    )

        await best_effort(
            "automation dispatch", event_id,
            self.automation_service.process_event(event, thumbnail),
        )
        logger.info("Event %s fully processed", event_id)

    # ------------------------------------------------------------------
    async def _persist(self, event: StandardizedEvent, raw_event_type: str | None) -> None:
        async with self.session_factory() as session:
            session.add(Event(
                event_uuid=event.event_id,
                timestamp=event.timestamp,
                connector_id=event.connector_id,
                device_id=event.device_id,
                standardized_event_category=event.category.value,
                standardized_event_type=event.type.value,
                standardized_event_subtype=event.subtype.value if event.subtype else None,
                raw_event_type=raw_event_type,
                standardized_payload=event.payload,
                raw_payload=event.original_event,
            ))
            await session.commit()
        logger.debug("Event %s persisted (raw type %s)", event.event_id, raw_event_type)

    async def _resolve_context(self, event: StandardizedEvent) -> EventContext:
        stmt = (
            select(Connector, Device, Area, Location)
            .outerjoin(
                Device,
                and_(
                    Device.connector_id == Connector.id,
                    Device.device_id == event.device_id,
                ),
            )
            .outerjoin(AreaDevice, AreaDevice.device_id == Device.id)
            .outerjoin(Area, Area.id == AreaDevice.area_id)
            .outerjoin(Location, Location.id == Area.location_id)
            .where(Connector.id == event.connector_id)
            .limit(1)
        )
        async with self.session_factory() as session:
            row = (await session.execute(stmt)).first()
        if row is None:
            logger.warning("Event %s: connector %s not found", event.event_id, event.connector_id)
            return EventContext()
        connector, device, area, location = row
        return EventContext(connector=connector, device=device, area=area, location=location)

    async def _area_cameras(self, area_id: str) -> list[AreaCamera]:
        async with self.session_factory() as session:
            return await find_area_cameras(session, area_id)

    async def _fetch_thumbnail(
        self,
        event: StandardizedEvent,
        organization_id: str,
        cameras: list[AreaCamera],
    ) -> EventThumbnailData | None:
        if not await self.thumbnail_gate.is_visual_context_wanted(organization_id):
            return None
        thumbnail = await self.thumbnail_client.fetch(event, cameras)
        if thumbnail:
            logger.info("Event %s: thumbnail fetched (%d bytes)", event.event_id, thumbnail.size)
        return thumbnail

    async def _publish(
        self,
        event: StandardizedEvent,
        ctx: EventContext,
        thumbnail: EventThumbnailData | None,
    ) -> None:
        org_id = ctx.organization_id
        base_channel = event_channel(org_id)
        thumb_channel = event_thumbnail_channel(org_id)

        message = build_event_message(event, ctx.connector, ctx.device, ctx.area, ctx.location)
        await self.redis.publish(base_channel, json.dumps(message, default=str))

        # Enriched copy only when someone is listening for it
        thumb_subscribers = await subscriber_count(self.redis, thumb_channel)
        if thumb_subscribers > 0:
            enriched = build_event_message(
                event, ctx.connector, ctx.device, ctx.area, ctx.location,
                include_thumbnail=True, thumbnail=thumbnail,
            )
            await self.redis.publish(thumb_channel, json.dumps(enriched, default=str))

        logger.info(
            "Event %s published to %s%s (area: %s, location: %s)",
            event.event_id,
            base_channel,
            f" and {thumb_channel} ({'with' if thumbnail else 'no'} thumbnail)" if thumb_subscribers > 0 else "",
            ctx.area.name if ctx.area else "none",
            ctx.location.name if ctx.location else "none",
        )

    async def _update_device(self, event: StandardizedEvent, device: Device) -> None:
        changes: dict = {}

        if event.type == EventType.STATE_CHANGED and event.display_state:
            changes["status"] = event.display_state

        battery = event.payload.get("batteryPercentage")
        if battery is not None:
            if isinstance(battery, (int, float)) and not isinstance(battery, bool) and 0 <= battery <= 100:
                changes["battery_percentage"] = round(battery)
            else:
                logger.warning(
                    "Event %s: invalid battery percentage %r for device %s, expected 0-100",
                    event.event_id, battery, event.device_id,
                )

        if not changes:
            return

        async with self.session_factory() as session:
            await session.execute(
                update(Device)
                .where(Device.id == device.id)
                .values(**changes, updated_at=func.now())
            )
            await session.commit()
        logger.info("Device %s updated: %s", device.id, changes)

    async def _publish_arming(
        self,
        organization_id: str,
        ctx: EventContext,
        transition: AlarmTransition,
    ) -> None:
        message = build_arming_message(
            organization_id,
            ctx.area,
            ctx.location,
            transition.previous_state,
            ArmedState.TRIGGERED,
        )
        payload = json.dumps(message, default=str)
        await self.redis.publish(event_channel(organization_id), payload)

        thumb_channel = event_thumbnail_channel(organization_id)
        if await subscriber_count(self.redis, thumb_channel) > 0:
            await self.redis.publish(thumb_channel, payload)
        logger.info(
            "Area %s %s -> %s published for org %s",
            ctx.area.id, transition.previous_state.value, ArmedState.TRIGGERED.value, organization_id,
        )
