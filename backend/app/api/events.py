"""REST API for event ingestion, the event journal and the grouped timeline."""
from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from pydantic import BaseModel
from sqlalchemy import and_, desc, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from config import settings
from core.events import StandardizedEvent
from models.area import Area, AreaDevice
from models.base import get_session
from models.connector import Connector
from models.device import Device
from models.event import Event
from services.event_grouper import (
    TimelineEvent,
    cluster_events_by_proximity,
    group_severity,
)

router = APIRouter(prefix="/api/events", tags=["events"])


# ---------------------------------------------------------------------------
# Schemas
# ---------------------------------------------------------------------------

class EventAccepted(BaseModel):
    event_id: str
    status: str = "accepted"


class EventOut(BaseModel):
    id: int
    event_uuid: str
    timestamp: datetime
    connector_id: str
    device_id: str
    device_name: str | None = None
    category: str
    type: str
    subtype: str | None = None
    raw_event_type: str | None = None
    payload: dict[str, Any] | None = None


class TimelineEventOut(BaseModel):
    event_uuid: str
    timestamp: datetime
    device_id: str
    device_name: str | None = None
    type: str | None = None
    subtype: str | None = None
    display_state: str | None = None


class EventGroupOut(BaseModel):
    group_key: str
    start_time: datetime
    end_time: datetime
    area_id: str | None = None
    area_name: str
    severity: str
    events: list[TimelineEventOut]


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------

@router.post("", response_model=EventAccepted, status_code=status.HTTP_201_CREATED)
async def ingest_event(event: StandardizedEvent, request: Request) -> EventAccepted:
    """Persist one standardized event and run its side effects."""
    processor = request.app.state.event_processor
    try:
        await processor.process_and_persist_event(event)
    except IntegrityError:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=f"Event {event.event_id} already exists",
        )
    return EventAccepted(event_id=event.event_id)


@router.get("", response_model=list[EventOut])
async def get_events(
    organization_id: Optional[str] = Query(None),
    connector_id: Optional[str] = Query(None),
    device_id: Optional[str] = Query(None, description="External device id"),
    category: Optional[str] = Query(None, description="Comma-separated categories: ACCESS_CONTROL,ANALYTICS,..."),
    last_hours: Optional[float] = Query(None),
    limit: int = Query(50, le=500),
    offset: int = Query(0),
    session: AsyncSession = Depends(get_session),
) -> list[EventOut]:
    """Return journal events with filtering and pagination, newest first."""
    stmt = (
        select(Event, Device.name)
        .outerjoin(
            Device,
            and_(Device.connector_id == Event.connector_id, Device.device_id == Event.device_id),
        )
    )
    conditions = []

    if organization_id is not None:
        stmt = stmt.join(Connector, Connector.id == Event.connector_id)
        conditions.append(Connector.organization_id == organization_id)
    if connector_id is not None:
        conditions.append(Event.connector_id == connector_id)
    if device_id is not None:
        conditions.append(Event.device_id == device_id)

    if category is not None:
        cats = [c.strip() for c in category.split(",") if c.strip()]
        if cats:
            conditions.append(Event.standardized_event_category.in_(cats))

    if last_hours is not None:
        cutoff = datetime.now(timezone.utc) - timedelta(hours=last_hours)
        conditions.append(Event.timestamp >= cutoff)

    if conditions:
        stmt = stmt.where(and_(*conditions))

    stmt = stmt.order_by(desc(Event.timestamp), desc(Event.id)).offset(offset).limit(limit)
    result = await session.execute(stmt)

    return [
        EventOut(
            id=ev.id,
            event_uuid=ev.event_uuid,
            timestamp=ev.timestamp,
            connector_id=ev.connector_id,
            device_id=ev.device_id,
            device_name=device_name,
            category=ev.standardized_event_category,
            type=ev.standardized_event_type,
            subtype=ev.standardized_event_subtype,
            raw_event_type=ev.raw_event_type,
            payload=ev.standardized_payload,
        )
        for ev, device_name in result.all()
    ]


@router.get("/timeline", response_model=list[EventGroupOut])
async def get_timeline(
    organization_id: Optional[str] = Query(None),
    area_id: Optional[str] = Query(None),
    limit: int = Query(settings.TIMELINE_MAX_EVENTS, le=2000),
    session: AsyncSession = Depends(get_session),
) -> list[EventGroupOut]:
    """Latest events clustered into per-area groups, most recent activity first."""
    stmt = (
        select(Event, Device.name, Area.id, Area.name)
        .outerjoin(
            Device,
            and_(Device.connector_id == Event.connector_id, Device.device_id == Event.device_id),
        )
        .outerjoin(AreaDevice, AreaDevice.device_id == Device.id)
        .outerjoin(Area, Area.id == AreaDevice.area_id)
    )
    if organization_id is not None:
        stmt = stmt.join(Connector, Connector.id == Event.connector_id).where(
            Connector.organization_id == organization_id
        )
    if area_id is not None:
        stmt = stmt.where(Area.id == area_id)

    stmt = stmt.order_by(desc(Event.timestamp)).limit(limit)
    result = await session.execute(stmt)

    timeline = [
        TimelineEvent(
            event_uuid=ev.event_uuid,
            timestamp=ev.timestamp,
            device_id=ev.device_id,
            area_id=ev_area_id,
            area_name=ev_area_name,
            event_type=ev.standardized_event_type,
            event_subtype=ev.standardized_event_subtype,
            display_state=(ev.standardized_payload or {}).get("displayState"),
            device_name=device_name,
        )
        for ev, device_name, ev_area_id, ev_area_name in result.all()
    ]

    groups = cluster_events_by_proximity(
        timeline,
        default_window=timedelta(seconds=settings.EVENT_GROUP_WINDOW_SECONDS),
        same_device_window=timedelta(seconds=settings.EVENT_GROUP_SAME_DEVICE_WINDOW_SECONDS),
    )

    return [
        EventGroupOut(
            group_key=g.group_key,
            start_time=g.start_time,
            end_time=g.end_time,
            area_id=g.area_id,
            area_name=g.area_name,
            severity=group_severity(g).name,
            events=[
                TimelineEventOut(
                    event_uuid=e.event_uuid,
                    timestamp=e.timestamp,
                    device_id=e.device_id,
                    device_name=e.device_name,
                    type=e.event_type,
                    subtype=e.event_subtype,
                    display_state=e.display_state,
                )
                for e in g.events
            ],
        )
        for g in groups
    ]
