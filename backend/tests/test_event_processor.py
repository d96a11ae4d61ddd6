"""Tests for EventProcessor: persistence, fan-out, device updates, alarms, dispatch."""
import json
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock

import pytest
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from conftest import (
    ORG_ID,
    make_area,
    make_automation,
    make_connector,
    make_device,
    make_event,
    make_location,
    make_redis,
    published,
)
from core.definitions import (
    OPEN,
    ArmedState,
    DeviceType,
    EventCategory,
    EventSubtype,
    EventType,
)
from core.events import EventThumbnailData
from models import Area, AreaAuditLog, Device, Event
from services.event_processor import EventProcessor, best_effort
from services.thumbnail_fetcher import PikoThumbnailClient
from services.thumbnail_gate import ThumbnailGate

BASE = f"events:{ORG_ID}"
THUMBS = f"events:{ORG_ID}:with-thumbnails"

THUMB = EventThumbnailData(data="aGVsbG8=", content_type="image/jpeg", size=5)

ACCESS_DENIED = dict(type=EventType.ACCESS_DENIED, subtype=EventSubtype.INVALID_CREDENTIAL)


def make_processor(session_factory, redis, thumbnail_client=None):
    automations = AsyncMock()
    processor = EventProcessor(
        redis,
        session_factory,
        automations,
        thumbnail_gate=ThumbnailGate(redis, session_factory),
        thumbnail_client=thumbnail_client,
    )
    return processor, automations


def make_thumbnail_client(result=THUMB):
    client = AsyncMock(spec=PikoThumbnailClient)
    client.fetch.return_value = result
    return client


async def zone_with_door(session_factory, armed_state=ArmedState.DISARMED, connector_category="genea"):
    connector = await make_connector(session_factory, category=connector_category)
    location = await make_location(session_factory)
    area = await make_area(session_factory, location, armed_state=armed_state)
    device = await make_device(session_factory, connector, area=area)
    return connector, area, device


async def load(session_factory, model, pk):
    async with session_factory() as session:
        return await session.get(model, pk)


async def event_rows(session_factory):
    async with session_factory() as session:
        return list((await session.execute(select(Event))).scalars().all())


# ---------------------------------------------------------------------------
# Best-effort policy
# ---------------------------------------------------------------------------

class TestBestEffort:

    async def test_returns_result(self):
        async def ok():
            return 42

        assert await best_effort("step", "e1", ok()) == 42

    async def test_failure_returns_default_and_logs(self, caplog):
        async def boom():
            raise RuntimeError("nope")

        result = await best_effort("publish", "e1", boom(), default=[])

        assert result == []
        assert "Event e1: publish failed: nope" in caplog.text


# ---------------------------------------------------------------------------
# End-to-end scenarios
# ---------------------------------------------------------------------------

class TestScenarios:

    async def test_armed_zone_is_triggered(self, session_factory):
        _, area, _ = await zone_with_door(session_factory, ArmedState.ARMED_AWAY)
        redis = make_redis()
        processor, automations = make_processor(session_factory, redis)
        event = make_event(**ACCESS_DENIED)

        await processor.process_and_persist_event(event)

        rows = await event_rows(session_factory)
        assert [r.event_uuid for r in rows] == ["e1"]
        assert (await load(session_factory, Area, area.id)).armed_state == "triggered"
        automations.process_event.assert_awaited_once_with(event, None)

        async with session_factory() as session:
            logs = (await session.execute(select(AreaAuditLog))).scalars().all()
        assert [(l.action, l.trigger_event_id) for l in logs] == [("triggered", "e1")]

        arming = [json.loads(p) for c, p in published(redis) if json.loads(p).get("type") == "arming"]
        assert arming and arming[0]["area"]["currentState"] == "triggered"
        assert arming[0]["area"]["previousState"] == "armed_away"

    async def test_arming_message_skips_thumbnail_channel_without_viewers(self, session_factory):
        await zone_with_door(session_factory, ArmedState.ARMED_AWAY)
        redis = make_redis()
        processor, _ = make_processor(session_factory, redis)

        await processor.process_and_persist_event(make_event(**ACCESS_DENIED))

        arming_channels = [c for c, p in published(redis) if json.loads(p).get("type") == "arming"]
        assert arming_channels == [BASE]

    async def test_arming_message_reaches_thumbnail_viewers(self, session_factory):
        await zone_with_door(session_factory, ArmedState.ARMED_AWAY)
        redis = make_redis({THUMBS: 2})
        processor, _ = make_processor(session_factory, redis)

        await processor.process_and_persist_event(make_event(**ACCESS_DENIED))

        arming_channels = [c for c, p in published(redis) if json.loads(p).get("type") == "arming"]
        assert arming_channels == [BASE, THUMBS]

    async def test_disarmed_zone_stays_disarmed(self, session_factory):
        _, area, _ = await zone_with_door(session_factory, ArmedState.DISARMED)
        redis = make_redis()
        processor, automations = make_processor(session_factory, redis)
        event = make_event(**ACCESS_DENIED)

        await processor.process_and_persist_event(event)

        assert len(await event_rows(session_factory)) == 1
        assert (await load(session_factory, Area, area.id)).armed_state == "disarmed"
        automations.process_event.assert_awaited_once_with(event, None)
        assert all(json.loads(p).get("type") != "arming" for _, p in published(redis))

    async def test_gate_closed_skips_fetch_and_publishes_once(self, session_factory):
        connector = await make_connector(session_factory, category="piko")
        area = await make_area(session_factory)
        await make_device(session_factory, connector, device_id="cam-1", device_type=DeviceType.CAMERA, area=area)
        await make_device(session_factory, connector, device_id="d1", device_type=DeviceType.SENSOR, area=area)
        redis = make_redis()
        thumbs = make_thumbnail_client()
        processor, automations = make_processor(session_factory, redis, thumbs)
        event = make_event(category=EventCategory.ANALYTICS, type=EventType.LOITERING)

        await processor.process_and_persist_event(event)

        thumbs.fetch.assert_not_awaited()
        assert [c for c, _ in published(redis)] == [BASE]
        automations.process_event.assert_awaited_once_with(event, None)

    async def test_live_viewer_gets_thumbnail_message(self, session_factory):
        connector = await make_connector(session_factory, category="piko")
        area = await make_area(session_factory)
        await make_device(session_factory, connector, device_id="cam-1", device_type=DeviceType.CAMERA, area=area)
        redis = make_redis({THUMBS: 1})
        thumbs = make_thumbnail_client()
        processor, automations = make_processor(session_factory, redis, thumbs)
        event = make_event(
            device_id="cam-1",
            category=EventCategory.ANALYTICS,
            type=EventType.OBJECT_DETECTED,
            payload={"objectTrackId": "track-1"},
        )

        await processor.process_and_persist_event(event)

        thumbs.fetch.assert_awaited_once()
        sent = published(redis)
        assert [c for c, _ in sent] == [BASE, THUMBS]
        assert "thumbnailData" not in json.loads(sent[0][1])
        assert json.loads(sent[1][1])["thumbnailData"]["data"] == THUMB.data
        automations.process_event.assert_awaited_once_with(event, THUMB)

    async def test_thumbnail_automation_opens_gate(self, session_factory):
        connector = await make_connector(session_factory, category="piko")
        area = await make_area(session_factory)
        await make_device(session_factory, connector, device_id="cam-1", device_type=DeviceType.CAMERA, area=area)
        await make_device(session_factory, connector, device_id="d1", area=area)
        await make_automation(session_factory, config={
            "actions": [{"type": "sendPushNotification", "params": {"image": "{{event.thumbnail}}"}}],
        })
        redis = make_redis()
        thumbs = make_thumbnail_client()
        processor, automations = make_processor(session_factory, redis, thumbs)
        event = make_event(**ACCESS_DENIED)

        await processor.process_and_persist_event(event)

        thumbs.fetch.assert_awaited_once()
        # No live viewers: only the base channel
        assert [c for c, _ in published(redis)] == [BASE]
        automations.process_event.assert_awaited_once_with(event, THUMB)


# ---------------------------------------------------------------------------
# Device updates
# ---------------------------------------------------------------------------

class TestDeviceUpdates:

    async def test_state_change_updates_status(self, session_factory):
        _, _, device = await zone_with_door(session_factory)
        processor, _ = make_processor(session_factory, make_redis())

        await processor.process_and_persist_event(make_event(
            category=EventCategory.DEVICE_STATE,
            type=EventType.STATE_CHANGED,
            payload={"displayState": OPEN},
        ))

        assert (await load(session_factory, Device, device.id)).status == OPEN

    async def test_valid_battery_is_stored(self, session_factory):
        _, _, device = await zone_with_door(session_factory)
        processor, _ = make_processor(session_factory, make_redis())

        await processor.process_and_persist_event(make_event(
            category=EventCategory.DEVICE_STATE,
            type=EventType.BATTERY_LEVEL_CHANGED,
            payload={"batteryPercentage": 42},
        ))

        assert (await load(session_factory, Device, device.id)).battery_percentage == 42

    @pytest.mark.parametrize("bad", [150, -1, "42", True])
    async def test_invalid_battery_is_ignored(self, session_factory, bad):
        connector, _, _ = await zone_with_door(session_factory)
        device = await make_device(session_factory, connector, device_id="d2", battery_percentage=80)
        processor, _ = make_processor(session_factory, make_redis())

        await processor.process_and_persist_event(make_event(
            device_id="d2",
            category=EventCategory.DEVICE_STATE,
            type=EventType.BATTERY_LEVEL_CHANGED,
            payload={"batteryPercentage": bad},
        ))

        assert (await load(session_factory, Device, device.id)).battery_percentage == 80


# ---------------------------------------------------------------------------
# Failures and edge cases
# ---------------------------------------------------------------------------

class TestFailureIsolation:

    async def test_duplicate_event_id_raises_and_keeps_first_row(self, session_factory):
        await zone_with_door(session_factory)
        processor, automations = make_processor(session_factory, make_redis())
        first = make_event(payload={"cardNumber": "1"})
        second = make_event(type=EventType.ACCESS_GRANTED, payload={"cardNumber": "2"})

        await processor.process_and_persist_event(first)
        with pytest.raises(IntegrityError):
            await processor.process_and_persist_event(second)

        rows = await event_rows(session_factory)
        assert len(rows) == 1
        assert rows[0].standardized_event_type == EventType.ACCESS_DENIED.value
        assert rows[0].standardized_payload == {"cardNumber": "1"}
        automations.process_event.assert_awaited_once_with(first, None)

    async def test_publish_failure_does_not_stop_pipeline(self, session_factory):
        _, area, _ = await zone_with_door(session_factory, ArmedState.ARMED_STAY)
        redis = make_redis()
        redis.publish.side_effect = ConnectionError("redis down")
        processor, automations = make_processor(session_factory, redis)

        await processor.process_and_persist_event(make_event(**ACCESS_DENIED))

        assert (await load(session_factory, Area, area.id)).armed_state == "triggered"
        automations.process_event.assert_awaited_once()

    async def test_thumbnail_failure_still_publishes(self, session_factory):
        connector = await make_connector(session_factory, category="piko")
        area = await make_area(session_factory)
        await make_device(session_factory, connector, device_id="cam-1", device_type=DeviceType.CAMERA, area=area)
        redis = make_redis({THUMBS: 1})
        thumbs = make_thumbnail_client()
        thumbs.fetch.side_effect = RuntimeError("vendor exploded")
        processor, automations = make_processor(session_factory, redis, thumbs)
        event = make_event(
            device_id="cam-1",
            category=EventCategory.ANALYTICS,
            type=EventType.OBJECT_DETECTED,
            payload={"objectTrackId": "track-1"},
        )

        await processor.process_and_persist_event(event)

        sent = published(redis)
        assert [c for c, _ in sent] == [BASE, THUMBS]
        assert json.loads(sent[1][1])["thumbnailData"] is None
        automations.process_event.assert_awaited_once_with(event, None)

    async def test_automation_failure_is_contained(self, session_factory):
        await zone_with_door(session_factory)
        processor, automations = make_processor(session_factory, make_redis())
        automations.process_event.side_effect = RuntimeError("engine offline")

        await processor.process_and_persist_event(make_event())

        assert len(await event_rows(session_factory)) == 1

    async def test_unknown_device_is_persisted_published_and_dispatched(self, session_factory):
        await make_connector(session_factory)
        redis = make_redis()
        processor, automations = make_processor(session_factory, redis)
        event = make_event(device_id="ghost")

        await processor.process_and_persist_event(event)

        assert len(await event_rows(session_factory)) == 1
        sent = published(redis)
        assert [c for c, _ in sent] == [BASE]
        assert json.loads(sent[0][1])["deviceName"] is None
        automations.process_event.assert_awaited_once_with(event, None)

    async def test_raw_event_type_is_extracted(self, session_factory):
        await zone_with_door(session_factory)
        processor, _ = make_processor(session_factory, make_redis())

        await processor.process_and_persist_event(
            make_event(original_event={"Descname": "Access denied", "Detail": {}}),
        )

        (row,) = await event_rows(session_factory)
        assert row.raw_event_type == "Access denied"
        assert row.raw_payload == {"Descname": "Access denied", "Detail": {}}

    async def test_offset_timestamp_persisted_as_same_instant(self, session_factory):
        await zone_with_door(session_factory)
        processor, _ = make_processor(session_factory, make_redis())
        plus_two = timezone(timedelta(hours=2))

        await processor.process_and_persist_event(
            make_event(timestamp=datetime(2026, 3, 1, 14, 0, 5, tzinfo=plus_two)),
        )

        (row,) = await event_rows(session_factory)
        assert row.timestamp == datetime(2026, 3, 1, 12, 0, 5, tzinfo=timezone.utc)
        assert row.timestamp.tzinfo is not None
