"""Event journal: one append-only row per standardized event.

event_uuid is unique: replaying the same event id fails the insert.
"""
from __future__ import annotations

from datetime import datetime

from sqlalchemy import JSON, ForeignKey, Index, String, func
from sqlalchemy.orm import Mapped, mapped_column

from models.base import Base, UTCDateTime


class Event(Base):
    __tablename__ = "events"

    __table_args__ = (
        Index("ix_events_timestamp", "timestamp"),
        Index("ix_events_connector_device", "connector_id", "device_id"),
        Index("ix_events_category", "standardized_event_category"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    event_uuid: Mapped[str] = mapped_column(String(64), unique=True)
    timestamp: Mapped[datetime] = mapped_column(UTCDateTime())
    connector_id: Mapped[str] = mapped_column(ForeignKey("connectors.id", ondelete="CASCADE"))
    device_id: Mapped[str] = mapped_column(String(100))    # external id, not devices.id
    standardized_event_category: Mapped[str] = mapped_column(String(40))
    standardized_event_type: Mapped[str] = mapped_column(String(40))
    standardized_event_subtype: Mapped[str | None] = mapped_column(String(40), default=None)
    raw_event_type: Mapped[str | None] = mapped_column(String(100), default=None)
    standardized_payload: Mapped[dict | None] = mapped_column(JSON, default=None)
    raw_payload: Mapped[dict | None] = mapped_column(JSON, default=None, nullable=True)
    created_at: Mapped[datetime] = mapped_column(server_default=func.now())
