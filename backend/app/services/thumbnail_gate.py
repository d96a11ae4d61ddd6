"""Thumbnail gate: decides whether an event needs a visual snapshot.

Two independent signals, either one is enough:
  1. live subscribers on the organization's thumbnail channel (PUBSUB NUMSUB)
  2. an enabled automation that references the event thumbnail

The fetch itself additionally needs a resolvable image source for the event
(see get_thumbnail_source).
"""
from __future__ import annotations

import asyncio
import json
import logging
import re
import time
from dataclasses import dataclass, field

from redis.asyncio import Redis
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from core.channels import event_thumbnail_channel, subscriber_count
from core.definitions import DeviceType, EventCategory
from core.events import StandardizedEvent
from models import AreaDevice, Automation, Connector, Device

logger = logging.getLogger("fusion.thumbnails")

# Categories where a camera image adds context. Plain device state changes
# (battery, switch toggles, check-ins) never pull a snapshot.
VISUAL_EVENT_CATEGORIES = frozenset({EventCategory.ANALYTICS, EventCategory.ACCESS_CONTROL})

THUMBNAIL_CAPABLE_CONNECTORS = frozenset({"piko"})


# ---------------------------------------------------------------------------
# Image source resolution
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class AreaCamera:
    id: str
    device_id: str
    connector_id: str
    connector_category: str
    name: str
    device_type: str | None = DeviceType.CAMERA.value


@dataclass(frozen=True)
class ThumbnailSource:
    kind: str                       # "best-shot" | "area-camera"
    connector_id: str
    camera_id: str
    timestamp_ms: int
    object_track_id: str | None = None


def get_thumbnail_source(
    event: StandardizedEvent,
    area_cameras: list[AreaCamera] | None = None,
) -> ThumbnailSource | None:
    """Best image source for an event, or None."""
    timestamp_ms = int(event.timestamp.timestamp() * 1000)

    # Analytics events with a tracked object: the vendor's best shot from the event's own camera
    track_id = event.payload.get("objectTrackId")
    if event.category == EventCategory.ANALYTICS and isinstance(track_id, str) and track_id:
        return ThumbnailSource(
            kind="best-shot",
            connector_id=event.connector_id,
            camera_id=event.device_id,
            timestamp_ms=timestamp_ms,
            object_track_id=track_id,
        )

    if event.category not in VISUAL_EVENT_CATEGORIES:
        return None

    for cam in area_cameras or []:
        if (
            cam.device_type == DeviceType.CAMERA.value
            and cam.connector_category in THUMBNAIL_CAPABLE_CONNECTORS
            and cam.connector_id
            and cam.device_id
        ):
            return ThumbnailSource(
                kind="area-camera",
                connector_id=cam.connector_id,
                camera_id=cam.device_id,
                timestamp_ms=timestamp_ms,
            )
    return None


def should_fetch_thumbnail(
    event: StandardizedEvent,
    area_cameras: list[AreaCamera] | None = None,
) -> bool:
    return get_thumbnail_source(event, area_cameras) is not None


async def find_area_cameras(session: AsyncSession, area_id: str) -> list[AreaCamera]:
    """Thumbnail-capable cameras assigned to an area."""
    stmt = (
        select(Device, Connector.category)
        .join(AreaDevice, AreaDevice.device_id == Device.id)
        .join(Connector, Connector.id == Device.connector_id)
        .where(
            AreaDevice.area_id == area_id,
            Device.device_type == DeviceType.CAMERA.value,
            Connector.category.in_(THUMBNAIL_CAPABLE_CONNECTORS),
        )
        .order_by(Device.name)
    )
    result = await session.execute(stmt)
    return [
        AreaCamera(
            id=dev.id,
            device_id=dev.device_id,
            connector_id=dev.connector_id,
            connector_category=category,
            name=dev.name,
            device_type=dev.device_type,
        )
        for dev, category in result.all()
    ]


# ---------------------------------------------------------------------------
# Automation analysis
# ---------------------------------------------------------------------------

THUMBNAIL_TOKEN_PATTERNS = (
    re.compile(r"\{\{\s*event\.thumbnail\s*\}\}"),
)
THUMBNAIL_FACT_PATTERN = re.compile(r'"event\.thumbnail(?:\.[A-Za-z_]+)?"')


@dataclass
class ThumbnailRequirement:
    automation_id: str
    requires_thumbnail: bool
    used_tokens: list[str] = field(default_factory=list)


@dataclass
class OrganizationThumbnailRequirements:
    organization_id: str
    automations: list[ThumbnailRequirement]
    requires_thumbnail: bool


class AutomationThumbnailAnalyzer:
    """Static analysis of automation configs for thumbnail usage.

    Results are cached per organization for `ttl` seconds; call clear_cache()
    when an organization's automations change.
    """

    def __init__(self, ttl: float = 300.0):
        self.ttl = ttl
        self._cache: dict[str, tuple[float, OrganizationThumbnailRequirements]] = {}

    @staticmethod
    def analyze_automation_config(automation_id: str, config: dict | None) -> ThumbnailRequirement:
        config = config or {}
        tokens: list[str] = []

        for action in config.get("actions") or []:
            params = json.dumps(action.get("params", {}) if isinstance(action, dict) else action)
            for pattern in THUMBNAIL_TOKEN_PATTERNS:
                tokens.extend(pattern.findall(params))

        # Trigger conditions reference facts by path, e.g. {"fact": "event.thumbnail"}
        trigger = json.dumps(config.get("trigger") or {})
        tokens.extend(m.strip('"') for m in THUMBNAIL_FACT_PATTERN.findall(trigger))

        unique = list(dict.fromkeys(tokens))
        return ThumbnailRequirement(
            automation_id=automation_id,
            requires_thumbnail=bool(unique),
            used_tokens=unique,
        )

    def analyze_organization(
        self,
        organization_id: str,
        automations: list[Automation],
    ) -> OrganizationThumbnailRequirements:
        reqs = [self.analyze_automation_config(a.id, a.config) for a in automations]
        result = OrganizationThumbnailRequirements(
            organization_id=organization_id,
            automations=reqs,
            requires_thumbnail=any(r.requires_thumbnail for r in reqs),
        )
        self._cache[organization_id] = (time.monotonic() + self.ttl, result)
        return result

    def get_cached(self, organization_id: str) -> OrganizationThumbnailRequirements | None:
        entry = self._cache.get(organization_id)
        if entry is None:
            return None
        expires_at, result = entry
        if time.monotonic() > expires_at:
            del self._cache[organization_id]
            return None
        return result

    def clear_cache(self, organization_id: str) -> None:
        self._cache.pop(organization_id, None)

    def clear_all_cache(self) -> None:
        self._cache.clear()

    async def organization_requires_thumbnails(
        self,
        session: AsyncSession,
        organization_id: str,
    ) -> bool:
        cached = self.get_cached(organization_id)
        if cached is not None:
            return cached.requires_thumbnail

        result = await session.execute(
            select(Automation).where(
                Automation.organization_id == organization_id,
                Automation.enabled == True,  # noqa: E712
            )
        )
        automations = list(result.scalars().all())
        return self.analyze_organization(organization_id, automations).requires_thumbnail


# ---------------------------------------------------------------------------
# Gate
# ---------------------------------------------------------------------------

class ThumbnailGate:

    def __init__(
        self,
        redis: Redis,
        session_factory: async_sessionmaker[AsyncSession],
        analyzer: AutomationThumbnailAnalyzer | None = None,
    ):
        self.redis = redis
        self.session_factory = session_factory
        self.analyzer = analyzer or AutomationThumbnailAnalyzer()

    async def live_subscribers(self, organization_id: str) -> int:
        return await subscriber_count(self.redis, event_thumbnail_channel(organization_id))

    async def automations_require_thumbnail(self, organization_id: str) -> bool:
        async with self.session_factory() as session:
            return await self.analyzer.organization_requires_thumbnails(session, organization_id)

    async def is_visual_context_wanted(self, organization_id: str) -> bool:
        subscribers, automations = await asyncio.gather(
            self.live_subscribers(organization_id),
            self.automations_require_thumbnail(organization_id),
        )
        wanted = subscribers > 0 or automations
        logger.debug(
            "Thumbnail gate org=%s: subscribers=%d automations=%s -> %s",
            organization_id, subscribers, automations, wanted,
        )
        return wanted
