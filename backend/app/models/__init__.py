from models.base import Base, async_session, engine, get_session
from models.connector import Connector
from models.device import Device
from models.area import Area, AreaAuditLog, AreaDevice, AreaTriggerOverride, Location
from models.event import Event
from models.automation import Automation

__all__ = [
    "Base",
    "async_session",
    "engine",
    "get_session",
    "Connector",
    "Device",
    "Location",
    "Area",
    "AreaDevice",
    "AreaTriggerOverride",
    "AreaAuditLog",
    "Event",
    "Automation",
]
