"""Timeline grouping: clusters events by area and temporal proximity.

Pure functions, no state between calls. A group is seeded by the newest
unassigned event; its area is fixed to the seed's area. Candidates join when
they are in that area and within a window of the group's latest timestamp
(a tighter window if the group already contains the same device). Passes
repeat until one adds nothing, so the latest boundary can move as members
join.
"""
from __future__ import annotations

import enum
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Sequence

from core.definitions import (
    ERROR,
    LEAK_DETECTED,
    MOTION_DETECTED,
    VIBRATION_DETECTED,
    EventType,
)


@dataclass(frozen=True)
class TimelineEvent:
    event_uuid: str
    timestamp: datetime
    device_id: str                      # external device id
    area_id: str | None = None
    area_name: str | None = None
    event_type: str | None = None
    event_subtype: str | None = None
    display_state: str | None = None
    device_name: str | None = None


@dataclass
class EventGroup:
    group_key: str
    start_time: datetime
    end_time: datetime
    area_id: str | None
    area_name: str
    events: list[TimelineEvent] = field(default_factory=list)


def _same_area(required_area_id: str | None, candidate: TimelineEvent) -> bool:
    if required_area_id is None:
        return candidate.area_id is None
    return candidate.area_id == required_area_id


def cluster_events_by_proximity(
    events: Sequence[TimelineEvent],
    *,
    default_window: timedelta = timedelta(seconds=60),
    same_device_window: timedelta = timedelta(seconds=15),
) -> list[EventGroup]:
    """Partition events into groups, most recent activity first.

    Every input event ends up in exactly one group.
    """
    if not events:
        return []

    # Newest first; sort is stable so ties keep input order
    ordered = sorted(events, key=lambda e: e.timestamp, reverse=True)
    assigned = [False] * len(ordered)
    groups: list[EventGroup] = []

    for seed_idx, seed in enumerate(ordered):
        if assigned[seed_idx]:
            continue
        assigned[seed_idx] = True

        members = [seed]
        member_devices = {seed.device_id}
        required_area_id = seed.area_id
        latest = seed.timestamp
        earliest = seed.timestamp

        added = True
        while added:
            added = False
            for idx, candidate in enumerate(ordered):
                if assigned[idx]:
                    continue
                if not _same_area(required_area_id, candidate):
                    continue

                window = (
                    same_device_window
                    if candidate.device_id in member_devices
                    else default_window
                )
                if abs(candidate.timestamp - latest) > window:
                    continue

                members.append(candidate)
                member_devices.add(candidate.device_id)
                assigned[idx] = True
                added = True
                if candidate.timestamp > latest:
                    latest = candidate.timestamp
                if candidate.timestamp < earliest:
                    earliest = candidate.timestamp

        members.sort(key=lambda e: e.timestamp)
        if seed.area_name:
            area_name = seed.area_name
        elif required_area_id:
            area_name = f"Area {required_area_id[:6]}..."
        else:
            area_name = "Unassigned Area"

        groups.append(EventGroup(
            group_key=f"group-{members[0].event_uuid}",
            start_time=earliest,
            end_time=latest,
            area_id=required_area_id,
            area_name=area_name,
            events=members,
        ))

    groups.sort(key=lambda g: g.end_time, reverse=True)
    return groups


# ---------------------------------------------------------------------------
# Severity
# ---------------------------------------------------------------------------

class Severity(enum.IntEnum):
    DEFAULT = 0
    WARNING = 1
    CRITICAL = 2


_TYPE_SEVERITY = {
    EventType.ACCESS_DENIED.value: Severity.CRITICAL,
    EventType.DOOR_FORCED_OPEN.value: Severity.CRITICAL,
    EventType.INTRUSION.value: Severity.CRITICAL,
    EventType.ARMED_PERSON.value: Severity.CRITICAL,
    EventType.DOOR_HELD_OPEN.value: Severity.WARNING,
    EventType.LOITERING.value: Severity.WARNING,
    EventType.TAILGATING.value: Severity.WARNING,
}

_WARNING_STATES = {LEAK_DETECTED, MOTION_DETECTED, VIBRATION_DETECTED, ERROR}


def event_severity(event: TimelineEvent) -> Severity:
    severity = _TYPE_SEVERITY.get(event.event_type, Severity.DEFAULT)
    if severity > Severity.DEFAULT:
        return severity
    if event.event_type == EventType.STATE_CHANGED.value and event.display_state in _WARNING_STATES:
        return Severity.WARNING
    return Severity.DEFAULT


def group_severity(group: EventGroup) -> Severity:
    return max((event_severity(e) for e in group.events), default=Severity.DEFAULT)
