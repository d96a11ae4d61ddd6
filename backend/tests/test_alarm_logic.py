"""Tests for alarm zone risk rules and the alarm evaluator."""
import pytest
from sqlalchemy import select

from conftest import make_area, make_connector, make_device, make_event, make_location
from core.definitions import (
    CLOSED,
    MOTION_DETECTED,
    OPEN,
    ArmedState,
    DeviceType,
    EventCategory,
    EventSubtype,
    EventType,
    TriggerBehavior,
)
from models import Area, AreaAuditLog, AreaTriggerOverride, Device
from services.alarm_logic import (
    AlarmEvaluator,
    is_security_risk_event,
    next_armed_state,
    should_trigger_in_zone,
)


def state_event(display_state, **kw):
    return make_event(
        category=EventCategory.DEVICE_STATE,
        type=EventType.STATE_CHANGED,
        payload={"displayState": display_state},
        **kw,
    )


# ---------------------------------------------------------------------------
# Rule table
# ---------------------------------------------------------------------------

class TestIsSecurityRiskEvent:

    @pytest.mark.parametrize("event_type", [
        EventType.DOOR_FORCED_OPEN,
        EventType.INTRUSION,
        EventType.ARMED_PERSON,
        EventType.TAILGATING,
    ])
    def test_always_risky_types(self, event_type):
        assert is_security_risk_event(make_event(type=event_type)) is True

    def test_access_denied_with_credential_failure(self):
        event = make_event(type=EventType.ACCESS_DENIED, subtype=EventSubtype.INVALID_CREDENTIAL)
        assert is_security_risk_event(event) is True

    def test_access_denied_for_schedule_is_not_risk(self):
        event = make_event(type=EventType.ACCESS_DENIED, subtype=EventSubtype.NOT_IN_SCHEDULE)
        assert is_security_risk_event(event) is False

    def test_access_granted_is_not_risk(self):
        assert is_security_risk_event(make_event(type=EventType.ACCESS_GRANTED)) is False

    def test_door_opened_is_risk(self):
        assert is_security_risk_event(state_event(OPEN), Device(device_type=DeviceType.DOOR.value)) is True

    def test_door_closed_is_not_risk(self):
        assert is_security_risk_event(state_event(CLOSED), Device(device_type=DeviceType.DOOR.value)) is False

    def test_switch_motion_state_is_not_risk(self):
        device = Device(device_type=DeviceType.SWITCH.value)
        assert is_security_risk_event(state_event(MOTION_DETECTED), device) is False

    def test_unknown_device_judged_by_state(self):
        assert is_security_risk_event(state_event(OPEN), None) is True


class TestShouldTriggerInZone:

    def test_standard_zone_ignores_overrides(self):
        overrides = [AreaTriggerOverride(event_type=EventType.INTRUSION.value, should_trigger=False)]
        event = make_event(type=EventType.INTRUSION)

        assert should_trigger_in_zone(event, None, TriggerBehavior.STANDARD.value, overrides) is True

    def test_custom_zone_override_suppresses(self):
        overrides = [AreaTriggerOverride(event_type=EventType.INTRUSION.value, should_trigger=False)]
        event = make_event(type=EventType.INTRUSION)

        assert should_trigger_in_zone(event, None, TriggerBehavior.CUSTOM.value, overrides) is False

    def test_custom_zone_override_enables(self):
        overrides = [AreaTriggerOverride(event_type=EventType.ACCESS_GRANTED.value, should_trigger=True)]
        event = make_event(type=EventType.ACCESS_GRANTED)

        assert should_trigger_in_zone(event, None, TriggerBehavior.CUSTOM.value, overrides) is True

    def test_custom_zone_falls_back_to_rule_table(self):
        event = make_event(type=EventType.DOOR_FORCED_OPEN)
        assert should_trigger_in_zone(event, None, TriggerBehavior.CUSTOM.value, []) is True


class TestNextArmedState:

    @pytest.mark.parametrize("current", [ArmedState.ARMED_AWAY, ArmedState.ARMED_STAY])
    def test_armed_plus_risk_triggers(self, current):
        assert next_armed_state(current, True) == ArmedState.TRIGGERED

    @pytest.mark.parametrize("current", list(ArmedState))
    def test_no_risk_never_changes(self, current):
        assert next_armed_state(current, False) == current

    def test_disarmed_ignores_risk(self):
        assert next_armed_state(ArmedState.DISARMED, True) == ArmedState.DISARMED

    def test_triggered_stays_triggered(self):
        assert next_armed_state(ArmedState.TRIGGERED, True) == ArmedState.TRIGGERED


# ---------------------------------------------------------------------------
# Evaluator
# ---------------------------------------------------------------------------

async def _zone(session_factory, armed_state, **area_kw):
    connector = await make_connector(session_factory, category="genea")
    location = await make_location(session_factory)
    area = await make_area(session_factory, location, armed_state=armed_state, **area_kw)
    device = await make_device(session_factory, connector, area=area)
    return area, device


async def _reload(session_factory, area_id):
    async with session_factory() as session:
        area = await session.get(Area, area_id)
        logs = (await session.execute(
            select(AreaAuditLog).where(AreaAuditLog.area_id == area_id)
        )).scalars().all()
    return area, list(logs)


RISK = dict(type=EventType.ACCESS_DENIED, subtype=EventSubtype.INVALID_CREDENTIAL)


class TestAlarmEvaluator:

    async def test_armed_zone_triggers_and_audits(self, session_factory):
        area, device = await _zone(session_factory, ArmedState.ARMED_AWAY)

        transition = await AlarmEvaluator(session_factory).evaluate(make_event(**RISK), device, area)

        assert transition is not None
        assert transition.previous_state == ArmedState.ARMED_AWAY
        assert transition.new_state == ArmedState.TRIGGERED
        stored, logs = await _reload(session_factory, area.id)
        assert stored.armed_state == ArmedState.TRIGGERED.value
        assert len(logs) == 1
        assert logs[0].action == "triggered"
        assert logs[0].previous_state == "armed_away"
        assert logs[0].trigger_event_id == "e1"

    async def test_disarmed_zone_unchanged(self, session_factory):
        area, device = await _zone(session_factory, ArmedState.DISARMED)

        transition = await AlarmEvaluator(session_factory).evaluate(make_event(**RISK), device, area)

        assert transition is None
        stored, logs = await _reload(session_factory, area.id)
        assert stored.armed_state == "disarmed"
        assert logs == []

    async def test_triggered_zone_is_noop(self, session_factory):
        area, device = await _zone(session_factory, ArmedState.TRIGGERED)

        transition = await AlarmEvaluator(session_factory).evaluate(
            make_event(event_id="e2", **RISK), device, area,
        )

        assert transition is None
        stored, logs = await _reload(session_factory, area.id)
        assert stored.armed_state == "triggered"
        assert logs == []

    async def test_second_risk_event_after_trigger(self, session_factory):
        area, device = await _zone(session_factory, ArmedState.ARMED_STAY)
        evaluator = AlarmEvaluator(session_factory)

        await evaluator.evaluate(make_event(event_id="e1", **RISK), device, area)
        # Stale in-memory area still says armed_stay; the store says triggered
        second = await evaluator.evaluate(make_event(event_id="e2", **RISK), device, area)

        assert second is None
        stored, logs = await _reload(session_factory, area.id)
        assert stored.armed_state == "triggered"
        assert len(logs) == 1

    async def test_non_risk_event_keeps_armed(self, session_factory):
        area, device = await _zone(session_factory, ArmedState.ARMED_AWAY)

        transition = await AlarmEvaluator(session_factory).evaluate(
            make_event(type=EventType.ACCESS_GRANTED), device, area,
        )

        assert transition is None
        stored, _ = await _reload(session_factory, area.id)
        assert stored.armed_state == "armed_away"

    async def test_disarm_between_read_and_update_wins(self, session_factory):
        area, device = await _zone(session_factory, ArmedState.ARMED_AWAY)
        async with session_factory() as session:
            fresh = await session.get(Area, area.id)
            fresh.armed_state = ArmedState.DISARMED.value
            await session.commit()

        transition = await AlarmEvaluator(session_factory).evaluate(make_event(**RISK), device, area)

        assert transition is None
        stored, logs = await _reload(session_factory, area.id)
        assert stored.armed_state == "disarmed"
        assert logs == []

    async def test_custom_zone_override_blocks_trigger(self, session_factory):
        area, device = await _zone(
            session_factory,
            ArmedState.ARMED_AWAY,
            trigger_behavior=TriggerBehavior.CUSTOM,
            overrides={EventType.ACCESS_DENIED: False},
        )

        transition = await AlarmEvaluator(session_factory).evaluate(make_event(**RISK), device, area)

        assert transition is None
        stored, _ = await _reload(session_factory, area.id)
        assert stored.armed_state == "armed_away"
