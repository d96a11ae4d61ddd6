"""Standardized event taxonomy, arming states and display labels.

Category -> Type -> Subtype hierarchy shared by every connector
(YoLink, Piko, NetBox, Genea). Standardizers emit these values; the event
pipeline and the timeline only ever compare against them.
"""
import enum


class EventCategory(str, enum.Enum):
    DEVICE_STATE = "DEVICE_STATE"
    DEVICE_CONNECTIVITY = "DEVICE_CONNECTIVITY"
    ACCESS_CONTROL = "ACCESS_CONTROL"
    ANALYTICS = "ANALYTICS"
    DIAGNOSTICS = "DIAGNOSTICS"
    UNKNOWN = "UNKNOWN"


class EventType(str, enum.Enum):
    # Device state
    STATE_CHANGED = "STATE_CHANGED"
    BATTERY_LEVEL_CHANGED = "BATTERY_LEVEL_CHANGED"
    BUTTON_PRESSED = "BUTTON_PRESSED"
    BUTTON_LONG_PRESSED = "BUTTON_LONG_PRESSED"

    # Connectivity
    DEVICE_ONLINE = "DEVICE_ONLINE"
    DEVICE_OFFLINE = "DEVICE_OFFLINE"

    # Access control
    ACCESS_GRANTED = "ACCESS_GRANTED"
    ACCESS_DENIED = "ACCESS_DENIED"
    DOOR_HELD_OPEN = "DOOR_HELD_OPEN"
    DOOR_FORCED_OPEN = "DOOR_FORCED_OPEN"
    DOOR_SECURED = "DOOR_SECURED"
    EXIT_REQUEST = "EXIT_REQUEST"

    # Analytics
    ANALYTICS_EVENT = "ANALYTICS_EVENT"
    OBJECT_DETECTED = "OBJECT_DETECTED"
    OBJECT_REMOVED = "OBJECT_REMOVED"
    MOTION_DETECTED = "MOTION_DETECTED"
    SOUND_DETECTED = "SOUND_DETECTED"
    LICENSE_PLATE_DETECTED = "LICENSE_PLATE_DETECTED"
    LOITERING = "LOITERING"
    LINE_CROSSING = "LINE_CROSSING"
    ARMED_PERSON = "ARMED_PERSON"
    TAILGATING = "TAILGATING"
    INTRUSION = "INTRUSION"

    # Diagnostics
    DEVICE_CHECK_IN = "DEVICE_CHECK_IN"
    POWER_CHECK_IN = "POWER_CHECK_IN"

    UNKNOWN_EXTERNAL_EVENT = "UNKNOWN_EXTERNAL_EVENT"
    SYSTEM_NOTIFICATION = "SYSTEM_NOTIFICATION"


class EventSubtype(str, enum.Enum):
    # ACCESS_GRANTED
    NORMAL = "NORMAL"
    REMOTE_OVERRIDE = "REMOTE_OVERRIDE"
    PASSBACK_RETURN = "PASSBACK_RETURN"
    # ACCESS_DENIED
    ANTIPASSBACK_VIOLATION = "ANTIPASSBACK_VIOLATION"
    DOOR_LOCKED = "DOOR_LOCKED"
    DURESS_PIN = "DURESS_PIN"
    EXPIRED_CREDENTIAL = "EXPIRED_CREDENTIAL"
    INVALID_CREDENTIAL = "INVALID_CREDENTIAL"
    NOT_IN_SCHEDULE = "NOT_IN_SCHEDULE"
    OCCUPANCY_LIMIT = "OCCUPANCY_LIMIT"
    PIN_REQUIRED = "PIN_REQUIRED"
    # DOOR_SECURED
    FORCED_OPEN_RESOLVED = "FORCED_OPEN_RESOLVED"
    HELD_OPEN_RESOLVED = "HELD_OPEN_RESOLVED"
    # EXIT_REQUEST
    PRESSED = "PRESSED"
    HELD = "HELD"
    MOTION = "MOTION"
    # OBJECT_DETECTED / INTRUSION
    PERSON = "PERSON"
    VEHICLE = "VEHICLE"


class ArmedState(str, enum.Enum):
    DISARMED = "disarmed"
    ARMED_AWAY = "armed_away"
    ARMED_STAY = "armed_stay"
    TRIGGERED = "triggered"


ARMED_STATES = frozenset({ArmedState.ARMED_AWAY, ArmedState.ARMED_STAY})


class TriggerBehavior(str, enum.Enum):
    STANDARD = "standard"
    CUSTOM = "custom"


class DeviceType(str, enum.Enum):
    ALARM = "Alarm"
    CAMERA = "Camera"
    DOOR = "Door"
    GARAGE_DOOR = "Garage Door"
    ENCODER = "Encoder"
    HUB = "Hub"
    IO_MODULE = "I/O Module"
    LOCK = "Lock"
    OUTLET = "Outlet"
    SENSOR = "Sensor"
    SPRINKLER = "Sprinkler"
    SWITCH = "Switch"
    THERMOSTAT = "Thermostat"
    UNMAPPED = "Unmapped"


# ---------------------------------------------------------------------------
# Hierarchy
# ---------------------------------------------------------------------------

EVENT_HIERARCHY: dict[EventCategory, dict[EventType, tuple[EventSubtype, ...]]] = {
    EventCategory.DEVICE_STATE: {
        EventType.STATE_CHANGED: (),
        EventType.BATTERY_LEVEL_CHANGED: (),
        EventType.BUTTON_PRESSED: (),
        EventType.BUTTON_LONG_PRESSED: (),
    },
    EventCategory.DEVICE_CONNECTIVITY: {
        EventType.DEVICE_ONLINE: (),
        EventType.DEVICE_OFFLINE: (),
    },
    EventCategory.ACCESS_CONTROL: {
        EventType.ACCESS_GRANTED: (
            EventSubtype.NORMAL,
            EventSubtype.REMOTE_OVERRIDE,
            EventSubtype.PASSBACK_RETURN,
        ),
        EventType.ACCESS_DENIED: (
            EventSubtype.ANTIPASSBACK_VIOLATION,
            EventSubtype.DOOR_LOCKED,
            EventSubtype.DURESS_PIN,
            EventSubtype.EXPIRED_CREDENTIAL,
            EventSubtype.INVALID_CREDENTIAL,
            EventSubtype.NOT_IN_SCHEDULE,
            EventSubtype.OCCUPANCY_LIMIT,
            EventSubtype.PIN_REQUIRED,
            EventSubtype.NORMAL,
        ),
        EventType.DOOR_HELD_OPEN: (),
        EventType.DOOR_FORCED_OPEN: (),
        EventType.DOOR_SECURED: (
            EventSubtype.FORCED_OPEN_RESOLVED,
            EventSubtype.HELD_OPEN_RESOLVED,
        ),
        EventType.EXIT_REQUEST: (
            EventSubtype.PRESSED,
            EventSubtype.HELD,
            EventSubtype.MOTION,
        ),
    },
    EventCategory.ANALYTICS: {
        EventType.ANALYTICS_EVENT: (),
        EventType.OBJECT_DETECTED: (EventSubtype.PERSON, EventSubtype.VEHICLE),
        EventType.OBJECT_REMOVED: (),
        EventType.MOTION_DETECTED: (),
        EventType.SOUND_DETECTED: (),
        EventType.LICENSE_PLATE_DETECTED: (),
        EventType.LOITERING: (),
        EventType.LINE_CROSSING: (),
        EventType.ARMED_PERSON: (),
        EventType.TAILGATING: (),
        EventType.INTRUSION: (EventSubtype.PERSON, EventSubtype.VEHICLE),
    },
    EventCategory.DIAGNOSTICS: {
        EventType.DEVICE_CHECK_IN: (),
        EventType.POWER_CHECK_IN: (),
    },
    EventCategory.UNKNOWN: {
        EventType.UNKNOWN_EXTERNAL_EVENT: (),
        EventType.SYSTEM_NOTIFICATION: (),
    },
}


def category_for_type(event_type: EventType) -> EventCategory:
    """Return the category an event type belongs to."""
    for category, types in EVENT_HIERARCHY.items():
        if event_type in types:
            return category
    raise ValueError(f"EventType '{event_type}' not found in EVENT_HIERARCHY")


# ---------------------------------------------------------------------------
# Display states reported in payload["displayState"]
# ---------------------------------------------------------------------------

LOCKED = "Locked"
UNLOCKED = "Unlocked"
ON = "On"
OFF = "Off"
OPEN = "Open"
CLOSED = "Closed"
DRY = "Dry"
LEAK_DETECTED = "Leak Detected"
NO_MOTION = "No Motion"
MOTION_DETECTED = "Motion Detected"
NO_VIBRATION = "No Vibration"
VIBRATION_DETECTED = "Vibration Detected"
ERROR = "Error"


# ---------------------------------------------------------------------------
# Human-readable labels
# ---------------------------------------------------------------------------

EVENT_CATEGORY_DISPLAY_MAP = {
    EventCategory.DEVICE_STATE: "Device State",
    EventCategory.DEVICE_CONNECTIVITY: "Connectivity",
    EventCategory.ACCESS_CONTROL: "Access Control",
    EventCategory.ANALYTICS: "Analytics",
    EventCategory.DIAGNOSTICS: "Diagnostics",
    EventCategory.UNKNOWN: "Unknown",
}

EVENT_TYPE_DISPLAY_MAP = {
    EventType.STATE_CHANGED: "State Changed",
    EventType.BATTERY_LEVEL_CHANGED: "Battery Level Changed",
    EventType.BUTTON_PRESSED: "Button Pressed",
    EventType.BUTTON_LONG_PRESSED: "Button Long Pressed",
    EventType.DEVICE_ONLINE: "Device Online",
    EventType.DEVICE_OFFLINE: "Device Offline",
    EventType.ACCESS_GRANTED: "Access Granted",
    EventType.ACCESS_DENIED: "Access Denied",
    EventType.DOOR_HELD_OPEN: "Door Held Open",
    EventType.DOOR_FORCED_OPEN: "Door Forced Open",
    EventType.DOOR_SECURED: "Door Secured",
    EventType.EXIT_REQUEST: "Exit Request",
    EventType.ANALYTICS_EVENT: "Generic Analytics",
    EventType.OBJECT_DETECTED: "Object Detected",
    EventType.OBJECT_REMOVED: "Object Removed",
    EventType.MOTION_DETECTED: "Motion Detected",
    EventType.SOUND_DETECTED: "Sound Detected",
    EventType.LICENSE_PLATE_DETECTED: "License Plate Detected",
    EventType.LOITERING: "Loitering",
    EventType.LINE_CROSSING: "Line Crossing",
    EventType.ARMED_PERSON: "Armed Person Detected",
    EventType.TAILGATING: "Tailgating Detected",
    EventType.INTRUSION: "Intrusion Detected",
    EventType.DEVICE_CHECK_IN: "Device Check-In",
    EventType.POWER_CHECK_IN: "Power Check-In",
    EventType.UNKNOWN_EXTERNAL_EVENT: "Unknown Event",
    EventType.SYSTEM_NOTIFICATION: "System Notification",
}

EVENT_SUBTYPE_DISPLAY_MAP = {
    EventSubtype.NORMAL: "Normal",
    EventSubtype.REMOTE_OVERRIDE: "Remote Override",
    EventSubtype.PASSBACK_RETURN: "Passback Return",
    EventSubtype.ANTIPASSBACK_VIOLATION: "Anti-passback Violation",
    EventSubtype.DOOR_LOCKED: "Door Locked",
    EventSubtype.DURESS_PIN: "Duress PIN",
    EventSubtype.EXPIRED_CREDENTIAL: "Expired Credential",
    EventSubtype.INVALID_CREDENTIAL: "Invalid Credential",
    EventSubtype.NOT_IN_SCHEDULE: "Not In Schedule",
    EventSubtype.OCCUPANCY_LIMIT: "Occupancy Limit",
    EventSubtype.PIN_REQUIRED: "PIN Required",
    EventSubtype.FORCED_OPEN_RESOLVED: "Forced Open Resolved",
    EventSubtype.HELD_OPEN_RESOLVED: "Held Open Resolved",
    EventSubtype.PRESSED: "Pressed",
    EventSubtype.HELD: "Held",
    EventSubtype.MOTION: "Motion",
    EventSubtype.PERSON: "Person",
    EventSubtype.VEHICLE: "Vehicle",
}

ARMED_STATE_DISPLAY_MAP = {
    ArmedState.DISARMED: "Disarmed",
    ArmedState.ARMED_AWAY: "Armed Away",
    ArmedState.ARMED_STAY: "Armed Stay",
    ArmedState.TRIGGERED: "Triggered",
}


def display_label(mapping: dict, value) -> str | None:
    """Look up a label, falling back to the raw value for unmapped entries."""
    if value is None:
        return None
    try:
        return mapping[value]
    except KeyError:
        return value.value if isinstance(value, enum.Enum) else str(value)
