import uuid
from datetime import datetime, timezone

from sqlalchemy import Boolean, DateTime, Float, ForeignKey, Index, Integer, String, Uuid
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship

SENSOR_TYPES = (
    "electricity",
    "water_level",
    "motion",
    "temperature_humidity",
    "smoke",
    "rain",
)
ALERT_TYPES = ("info", "warning", "danger")
RAIN_INTENSITIES = ("light", "moderate", "heavy")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Base(DeclarativeBase):
    pass


class Device(Base):
    __tablename__ = "devices"
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    device_name: Mapped[str] = mapped_column(String(120), unique=True, index=True, nullable=False)
    device_type: Mapped[str] = mapped_column(String(40), index=True, nullable=False)
    location: Mapped[str] = mapped_column(String(120), nullable=False, default="Unknown")
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    last_seen: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)
    key_hash: Mapped[str | None] = mapped_column(String(64), nullable=True)  # sha256 hex of the issued key
    readings = relationship("SensorReading", back_populates="device", cascade="all, delete-orphan", passive_deletes=True)


class SensorReading(Base):
    __tablename__ = "sensor_readings"
    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    device_name: Mapped[str] = mapped_column(
        String(120), ForeignKey("devices.device_name", ondelete="CASCADE"), index=True, nullable=False
    )
    sensor_type: Mapped[str] = mapped_column(String(40), index=True, nullable=False)
    timestamp: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, index=True, nullable=False)
    # electricity
    voltage: Mapped[float | None] = mapped_column(Float, nullable=True)
    current: Mapped[float | None] = mapped_column(Float, nullable=True)
    power: Mapped[float | None] = mapped_column(Float, nullable=True)
    energy: Mapped[float | None] = mapped_column(Float, nullable=True)
    frequency: Mapped[float | None] = mapped_column(Float, nullable=True)
    power_factor: Mapped[float | None] = mapped_column(Float, nullable=True)
    tariff: Mapped[float | None] = mapped_column(Float, nullable=True)
    cost: Mapped[float | None] = mapped_column(Float, nullable=True)
    # water_level
    water_level: Mapped[float | None] = mapped_column(Float, nullable=True)
    # motion
    detected: Mapped[bool | None] = mapped_column(Boolean, nullable=True)
    room: Mapped[str | None] = mapped_column(String(120), nullable=True)
    # temperature_humidity
    temperature: Mapped[float | None] = mapped_column(Float, nullable=True)
    humidity: Mapped[float | None] = mapped_column(Float, nullable=True)
    # smoke
    smoke_level: Mapped[float | None] = mapped_column(Float, nullable=True)
    # rain
    rainfall: Mapped[float | None] = mapped_column(Float, nullable=True)
    rain_intensity: Mapped[str | None] = mapped_column(String(16), nullable=True)
    is_raining: Mapped[bool | None] = mapped_column(Boolean, nullable=True)
    device = relationship("Device", back_populates="readings")


Index("ix_readings_device_ts_desc", SensorReading.device_name, SensorReading.timestamp.desc())


class Alert(Base):
    __tablename__ = "alerts"
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    message: Mapped[str] = mapped_column(String(500), nullable=False)
    alert_type: Mapped[str] = mapped_column(String(16), index=True, nullable=False)
    sensor_type: Mapped[str] = mapped_column(String(40), index=True, nullable=False)
    device_name: Mapped[str | None] = mapped_column(String(120), index=True, nullable=True)
    is_read: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, index=True, nullable=False)
