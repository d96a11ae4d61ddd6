"""Locations, areas (alarm zones) and device membership.

An area's armed_state moves to 'triggered' only from an armed state and only
through the alarm evaluator; disarming is an operator action elsewhere.
"""
from __future__ import annotations

import uuid
from datetime import datetime

from sqlalchemy import ForeignKey, Index, String, UniqueConstraint, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from core.definitions import ArmedState, TriggerBehavior
from models.base import Base, TimestampMixin


def _uuid() -> str:
    return str(uuid.uuid4())


class Location(TimestampMixin, Base):
    __tablename__ = "locations"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    organization_id: Mapped[str | None] = mapped_column(String(36), index=True, default=None)
    name: Mapped[str] = mapped_column(String(200))
    time_zone: Mapped[str | None] = mapped_column(String(60), default=None)

    areas = relationship("Area", back_populates="location", cascade="all, delete-orphan")


class Area(TimestampMixin, Base):
    __tablename__ = "areas"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    location_id: Mapped[str | None] = mapped_column(
        ForeignKey("locations.id", ondelete="CASCADE"), default=None
    )
    name: Mapped[str] = mapped_column(String(200))
    armed_state: Mapped[str] = mapped_column(String(20), default=ArmedState.DISARMED.value)
    trigger_behavior: Mapped[str] = mapped_column(
        String(20), default=TriggerBehavior.STANDARD.value
    )

    location = relationship("Location", back_populates="areas")
    device_links = relationship("AreaDevice", back_populates="area", cascade="all, delete-orphan")
    trigger_overrides = relationship(
        "AreaTriggerOverride", back_populates="area", cascade="all, delete-orphan"
    )

    def __repr__(self) -> str:
        return f"<Area {self.name} [{self.armed_state}]>"


class AreaDevice(Base):
    __tablename__ = "area_devices"

    area_id: Mapped[str] = mapped_column(
        ForeignKey("areas.id", ondelete="CASCADE"), primary_key=True
    )
    device_id: Mapped[str] = mapped_column(
        ForeignKey("devices.id", ondelete="CASCADE"), primary_key=True, unique=True
    )

    area = relationship("Area", back_populates="device_links")
    device = relationship("Device", back_populates="area_link")


class AreaTriggerOverride(Base):
    """Per-zone override of whether an event type triggers the alarm (custom zones)."""

    __tablename__ = "area_trigger_overrides"

    __table_args__ = (
        UniqueConstraint("area_id", "event_type", name="uq_area_trigger_overrides_area_type"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    area_id: Mapped[str] = mapped_column(ForeignKey("areas.id", ondelete="CASCADE"))
    event_type: Mapped[str] = mapped_column(String(40))
    should_trigger: Mapped[bool] = mapped_column()

    area = relationship("Area", back_populates="trigger_overrides")


class AreaAuditLog(Base):
    __tablename__ = "area_audit_logs"

    __table_args__ = (
        Index("ix_area_audit_logs_area_created", "area_id", "created_at"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    area_id: Mapped[str] = mapped_column(ForeignKey("areas.id", ondelete="CASCADE"))
    action: Mapped[str] = mapped_column(String(20))          # armed, disarmed, triggered
    previous_state: Mapped[str] = mapped_column(String(20))
    new_state: Mapped[str] = mapped_column(String(20))
    reason: Mapped[str | None] = mapped_column(String(60), default=None)
    trigger_event_id: Mapped[str | None] = mapped_column(String(64), default=None)
    created_at: Mapped[datetime] = mapped_column(server_default=func.now())
