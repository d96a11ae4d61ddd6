"""Hand-off of processed events to the automation engine.

The engine runs as a separate worker; this side only enqueues. Each event is
pushed exactly once per process_event call, after it has been persisted.
"""
from __future__ import annotations

import json
import logging
from typing import Protocol

from redis.asyncio import Redis

from core.events import EventThumbnailData, StandardizedEvent

logger = logging.getLogger("fusion.automations")


class AutomationTriggerService(Protocol):

    async def process_event(
        self,
        event: StandardizedEvent,
        thumbnail_context: EventThumbnailData | None = None,
    ) -> None: ...


class RedisAutomationQueue:
    """Pushes events onto a Redis list consumed by the automation worker."""

    def __init__(self, redis: Redis, queue_key: str = "automations:events"):
        self.redis = redis
        self.queue_key = queue_key

    async def process_event(
        self,
        event: StandardizedEvent,
        thumbnail_context: EventThumbnailData | None = None,
    ) -> None:
        envelope = {
            "event": event.model_dump(mode="json"),
            "thumbnail": thumbnail_context.model_dump(mode="json") if thumbnail_context else None,
        }
        depth = await self.redis.rpush(self.queue_key, json.dumps(envelope, default=str))
        logger.debug("Event %s queued for automations (queue depth %s)", event.event_id, depth)
