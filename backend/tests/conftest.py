"""Pytest fixtures and factories for the event pipeline test suite.

This module provides:
1. An isolated in-memory SQLite store per test (`session_factory`)
2. A Redis double with settable PUBSUB NUMSUB counts (`make_redis`)
3. Factory functions for connectors, locations, areas, devices,
   automations and standardized events

Store factories take the session factory first and persist immediately;
`make_event` only builds the immutable StandardizedEvent.
"""
import uuid
from datetime import datetime, timezone
from unittest.mock import AsyncMock

import pytest_asyncio
from sqlalchemy.pool import StaticPool

from core.definitions import ArmedState, DeviceType, EventCategory, EventType, TriggerBehavior
from core.events import StandardizedEvent
from models.base import create_db_engine, create_session_factory
from models import (
    Area,
    AreaDevice,
    AreaTriggerOverride,
    Automation,
    Base,
    Connector,
    Device,
    Location,
)

ORG_ID = "org-1"
T0 = datetime(2026, 3, 1, 12, 0, 0, tzinfo=timezone.utc)


# =============================================================================
# Store
# =============================================================================

@pytest_asyncio.fixture
async def session_factory():
    engine = create_db_engine("sqlite+aiosqlite://", poolclass=StaticPool)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield create_session_factory(engine)

    await engine.dispose()


# =============================================================================
# Redis double
# =============================================================================

def make_redis(subscribers: dict[str, int] | None = None) -> AsyncMock:
    """AsyncMock Redis whose NUMSUB answers come from `redis.subscribers`."""
    redis = AsyncMock()
    redis.subscribers = dict(subscribers or {})

    async def _numsub(*channels):
        return [(ch.encode(), redis.subscribers.get(ch, 0)) for ch in channels]

    redis.pubsub_numsub = AsyncMock(side_effect=_numsub)
    redis.publish = AsyncMock(return_value=1)
    redis.rpush = AsyncMock(return_value=1)
    return redis


def published(redis: AsyncMock) -> list[tuple[str, str]]:
    """(channel, payload) pairs passed to redis.publish, in order."""
    return [(c.args[0], c.args[1]) for c in redis.publish.await_args_list]


# =============================================================================
# Factory Functions
# =============================================================================

async def _save(session_factory, obj):
    async with session_factory() as session:
        session.add(obj)
        await session.commit()
    return obj


async def make_connector(
    session_factory,
    id: str = "c1",
    organization_id: str = ORG_ID,
    name: str = "Front Office Piko",
    category: str = "piko",
    config: dict | None = None,
    **overrides,
) -> Connector:
    if config is None:
        config = {"url": "https://piko.local:7001", "username": "admin", "password": "secret"}
    return await _save(session_factory, Connector(
        id=id,
        organization_id=organization_id,
        name=name,
        category=category,
        config=config,
        **overrides,
    ))


async def make_location(
    session_factory,
    name: str = "HQ",
    organization_id: str = ORG_ID,
    **overrides,
) -> Location:
    return await _save(session_factory, Location(
        id=str(uuid.uuid4()), name=name, organization_id=organization_id, **overrides,
    ))


async def make_area(
    session_factory,
    location: Location | None = None,
    name: str = "Lobby",
    armed_state: ArmedState = ArmedState.DISARMED,
    trigger_behavior: TriggerBehavior = TriggerBehavior.STANDARD,
    overrides: dict[EventType, bool] | None = None,
    **fields,
) -> Area:
    area = await _save(session_factory, Area(
        id=fields.pop("id", str(uuid.uuid4())),
        location_id=location.id if location else None,
        name=name,
        armed_state=armed_state.value,
        trigger_behavior=trigger_behavior.value,
        **fields,
    ))
    for event_type, should_trigger in (overrides or {}).items():
        await _save(session_factory, AreaTriggerOverride(
            area_id=area.id, event_type=event_type.value, should_trigger=should_trigger,
        ))
    return area


async def make_device(
    session_factory,
    connector: Connector,
    device_id: str = "d1",
    name: str = "Front Door",
    device_type: DeviceType | None = DeviceType.DOOR,
    area: Area | None = None,
    **overrides,
) -> Device:
    device = await _save(session_factory, Device(
        id=str(uuid.uuid4()),
        connector_id=connector.id,
        device_id=device_id,
        name=name,
        device_type=device_type.value if device_type else None,
        **overrides,
    ))
    if area is not None:
        await _save(session_factory, AreaDevice(area_id=area.id, device_id=device.id))
    return device


async def make_automation(
    session_factory,
    organization_id: str = ORG_ID,
    name: str = "Notify on access denied",
    enabled: bool = True,
    config: dict | None = None,
) -> Automation:
    if config is None:
        config = {
            "trigger": {"conditions": {"all": [{"fact": "event.type", "operator": "equal", "value": "ACCESS_DENIED"}]}},
            "actions": [{"type": "sendPushNotification", "params": {"title": "Access denied"}}],
        }
    return await _save(session_factory, Automation(
        id=str(uuid.uuid4()),
        organization_id=organization_id,
        name=name,
        enabled=enabled,
        config=config,
    ))


def make_event(
    event_id: str = "e1",
    timestamp: datetime = T0,
    connector_id: str = "c1",
    device_id: str = "d1",
    category: EventCategory = EventCategory.ACCESS_CONTROL,
    type: EventType = EventType.ACCESS_DENIED,
    subtype=None,
    payload: dict | None = None,
    original_event=None,
) -> StandardizedEvent:
    return StandardizedEvent(
        event_id=event_id,
        timestamp=timestamp,
        connector_id=connector_id,
        device_id=device_id,
        category=category,
        type=type,
        subtype=subtype,
        payload=payload or {},
        original_event=original_event,
    )
