import uuid

from sqlalchemy import ForeignKey, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from models.base import Base, TimestampMixin


class Device(TimestampMixin, Base):
    __tablename__ = "devices"

    __table_args__ = (
        UniqueConstraint("connector_id", "device_id", name="uq_devices_connector_device"),
    )

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    connector_id: Mapped[str] = mapped_column(ForeignKey("connectors.id", ondelete="CASCADE"))
    device_id: Mapped[str] = mapped_column(String(100))  # external id from the connector
    name: Mapped[str] = mapped_column(String(200))
    device_type: Mapped[str | None] = mapped_column(String(40), default=None)  # DeviceType value
    vendor_type: Mapped[str | None] = mapped_column(String(100), default=None)
    status: Mapped[str | None] = mapped_column(String(60), default=None)
    battery_percentage: Mapped[int | None] = mapped_column(default=None)

    connector = relationship("Connector", back_populates="devices")
    area_link = relationship(
        "AreaDevice",
        back_populates="device",
        uselist=False,
        cascade="all, delete-orphan",
    )

    def __repr__(self) -> str:
        return f"<Device {self.name} ({self.device_type}) ext={self.device_id}>"
