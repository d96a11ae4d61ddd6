from sqlalchemy import JSON, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from models.base import Base, TimestampMixin


class Connector(TimestampMixin, Base):
    __tablename__ = "connectors"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    organization_id: Mapped[str | None] = mapped_column(String(36), index=True, default=None)
    name: Mapped[str] = mapped_column(String(100))
    category: Mapped[str] = mapped_column(String(20))  # "yolink", "piko", "netbox", "genea"
    config: Mapped[dict | None] = mapped_column(JSON, default=None)  # url / credentials
    is_enabled: Mapped[bool] = mapped_column(default=True)

    devices = relationship("Device", back_populates="connector", cascade="all, delete-orphan")

    def __repr__(self) -> str:
        return f"<Connector {self.name} ({self.category})>"
