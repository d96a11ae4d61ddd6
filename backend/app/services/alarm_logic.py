"""Alarm zone evaluation: decides whether an event triggers an armed zone.

armed_away / armed_stay + risk event -> triggered.
disarmed zones are never evaluated; triggered zones stay triggered (no-op).
Nothing here clears 'triggered'; disarm is an operator action.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass

from sqlalchemy import select, update, func
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from core.definitions import (
    ARMED_STATES,
    MOTION_DETECTED,
    OPEN,
    VIBRATION_DETECTED,
    ArmedState,
    DeviceType,
    EventSubtype,
    EventType,
    TriggerBehavior,
)
from core.events import StandardizedEvent
from models.area import Area, AreaAuditLog, AreaTriggerOverride
from models.device import Device

logger = logging.getLogger("fusion.alarm")


# ---------------------------------------------------------------------------
# Standard risk rule table
# ---------------------------------------------------------------------------

# Always a risk, whatever the subtype
RISK_EVENT_TYPES = frozenset({
    EventType.DOOR_FORCED_OPEN,
    EventType.INTRUSION,
    EventType.ARMED_PERSON,
    EventType.TAILGATING,
})

# ACCESS_DENIED counts only when the credential itself failed
RISK_ACCESS_DENIED_SUBTYPES = frozenset({
    EventSubtype.INVALID_CREDENTIAL,
    EventSubtype.EXPIRED_CREDENTIAL,
    EventSubtype.ANTIPASSBACK_VIOLATION,
    EventSubtype.DURESS_PIN,
})

# STATE_CHANGED display states that mean something moved or opened
RISK_DISPLAY_STATES = frozenset({OPEN, MOTION_DETECTED, VIBRATION_DETECTED})

# Device classes whose state changes are security relevant
RISK_STATE_DEVICE_TYPES = frozenset({
    DeviceType.DOOR.value,
    DeviceType.GARAGE_DOOR.value,
    DeviceType.SENSOR.value,
})


def is_security_risk_event(event: StandardizedEvent, device: Device | None = None) -> bool:
    """Classify an event as a security risk for alarm purposes. Side-effect free."""
    if event.type in RISK_EVENT_TYPES:
        return True

    if event.type == EventType.ACCESS_DENIED:
        return event.subtype in RISK_ACCESS_DENIED_SUBTYPES

    if event.type == EventType.STATE_CHANGED:
        if event.display_state not in RISK_DISPLAY_STATES:
            return False
        device_type = device.device_type if device is not None else None
        # Unknown device class: judge by the state alone
        return device_type is None or device_type in RISK_STATE_DEVICE_TYPES

    return False


def should_trigger_in_zone(
    event: StandardizedEvent,
    device: Device | None,
    trigger_behavior: str,
    overrides: list[AreaTriggerOverride] | None = None,
) -> bool:
    """Zone-aware risk decision.

    Custom zones consult their per-event-type overrides first and fall back
    to the standard rule table.
    """
    if trigger_behavior == TriggerBehavior.CUSTOM.value:
        for override in overrides or []:
            if override.event_type == event.type.value:
                return override.should_trigger
    return is_security_risk_event(event, device)


def next_armed_state(current: ArmedState, is_risk: bool) -> ArmedState:
    if current in ARMED_STATES and is_risk:
        return ArmedState.TRIGGERED
    return current


@dataclass(frozen=True)
class AlarmTransition:
    area_id: str
    previous_state: ArmedState
    new_state: ArmedState
    event_id: str


# ---------------------------------------------------------------------------
# Evaluator
# ---------------------------------------------------------------------------

class AlarmEvaluator:

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory

    async def evaluate(
        self,
        event: StandardizedEvent,
        device: Device | None,
        area: Area,
    ) -> AlarmTransition | None:
        """Apply the event to the area's arming state.

        Returns the transition when the area moved to triggered, None otherwise.
        """
        try:
            current = ArmedState(area.armed_state)
        except ValueError:
            logger.warning("Area %s has unknown armed_state %r", area.id, area.armed_state)
            return None

        if current not in ARMED_STATES:
            return None

        async with self.session_factory() as session:
            overrides: list[AreaTriggerOverride] = []
            if area.trigger_behavior == TriggerBehavior.CUSTOM.value:
                result = await session.execute(
                    select(AreaTriggerOverride).where(AreaTriggerOverride.area_id == area.id)
                )
                overrides = list(result.scalars().all())

            is_risk = should_trigger_in_zone(event, device, area.trigger_behavior, overrides)
            new_state = next_armed_state(current, is_risk)
            if new_state == current:
                return None

            # Conditional update: only from an armed state, so a concurrent
            # disarm is never overwritten
            result = await session.execute(
                update(Area)
                .where(
                    Area.id == area.id,
                    Area.armed_state.in_([s.value for s in ARMED_STATES]),
                )
                .values(armed_state=new_state.value, updated_at=func.now())
            )
            if result.rowcount == 0:
                await session.rollback()
                logger.info(
                    "Area %s no longer armed, event %s did not trigger it", area.id, event.event_id,
                )
                return None

            session.add(AreaAuditLog(
                area_id=area.id,
                action="triggered",
                previous_state=current.value,
                new_state=new_state.value,
                reason="security_event",
                trigger_event_id=event.event_id,
            ))
            await session.commit()

        logger.warning(
            "ALARM TRIGGERED: area=%s (%s -> %s) event=%s device=%s",
            area.id, current.value, new_state.value, event.event_id,
            device.id if device else event.device_id,
        )
        return AlarmTransition(
            area_id=area.id,
            previous_state=current,
            new_state=new_state,
            event_id=event.event_id,
        )
