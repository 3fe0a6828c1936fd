import uuid
from datetime import datetime
from typing import Any, Literal, Optional

from pydantic import AliasChoices, AliasGenerator, BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


class CamelOut(BaseModel):
    """Base for rows sent to devices and dashboards; keys are camelCase on the wire."""

    model_config = ConfigDict(
        from_attributes=True,
        alias_generator=to_camel,
        populate_by_name=True,
    )


class ReadingIn(BaseModel):
    """Variant fields of an inbound reading.

    Only type checks live here; required fields and the device identity are
    checked by the ingestion pipeline so that it can report them with the
    device-facing error messages.
    """

    model_config = ConfigDict(
        extra="ignore",
        alias_generator=AliasGenerator(validation_alias=to_camel),
        populate_by_name=True,
    )

    voltage: Optional[float] = None
    current: Optional[float] = None
    power: Optional[float] = None
    energy: Optional[float] = None
    frequency: Optional[float] = None
    power_factor: Optional[float] = None
    tariff: Optional[float] = None
    cost: Optional[float] = None
    water_level: Optional[float] = None
    detected: Optional[bool] = None
    room: Optional[str] = Field(default=None, validation_alias=AliasChoices("room", "roomName"))
    temperature: Optional[float] = None
    humidity: Optional[float] = None
    smoke_level: Optional[float] = None
    rainfall: Optional[float] = None
    rain_intensity: Optional[Literal["light", "moderate", "heavy"]] = None
    is_raining: Optional[bool] = None

    @field_validator("rain_intensity", mode="before")
    @classmethod
    def _lower_intensity(cls, value: Any) -> Any:
        if isinstance(value, str):
            return value.strip().lower() or None
        return value


# Variant fields persisted for each sensor type; everything else is stored as NULL.
VARIANT_FIELDS: dict[str, tuple[str, ...]] = {
    "electricity": ("voltage", "current", "power", "energy", "frequency", "power_factor", "tariff", "cost"),
    "water_level": ("water_level",),
    "motion": ("detected", "room"),
    "temperature_humidity": ("temperature", "humidity"),
    "smoke": ("smoke_level",),
    "rain": ("rainfall", "rain_intensity", "is_raining"),
}


class ReadingOut(CamelOut):
    id: uuid.UUID
    device_name: str
    sensor_type: str
    timestamp: datetime
    voltage: Optional[float] = None
    current: Optional[float] = None
    power: Optional[float] = None
    energy: Optional[float] = None
    frequency: Optional[float] = None
    power_factor: Optional[float] = None
    tariff: Optional[float] = None
    cost: Optional[float] = None
    water_level: Optional[float] = None
    detected: Optional[bool] = None
    room: Optional[str] = None
    temperature: Optional[float] = None
    humidity: Optional[float] = None
    smoke_level: Optional[float] = None
    rainfall: Optional[float] = None
    rain_intensity: Optional[str] = None
    is_raining: Optional[bool] = None


class DeviceOut(CamelOut):
    id: int
    device_name: str
    device_type: str
    location: str
    is_active: bool
    last_seen: Optional[datetime] = None
    created_at: datetime


class DeviceWithLatest(DeviceOut):
    latest_data: Optional[ReadingOut] = None
    data_count: int = 0


class AlertOut(CamelOut):
    id: int
    title: str
    message: str
    alert_type: str
    sensor_type: str
    device_name: Optional[str] = None
    is_read: bool
    created_at: datetime


class AlertUpdate(BaseModel):
    alert_id: int = Field(validation_alias=AliasChoices("alertId", "alert_id", "id"))
    is_read: bool = Field(default=True, validation_alias=AliasChoices("isRead", "is_read"))


class IngestAck(BaseModel):
    success: bool = True
    dataId: str
    message: str = "Sensor data received successfully"


def dump(model: BaseModel) -> dict[str, Any]:
    """JSON-ready dict with wire (camelCase) keys."""

    return model.model_dump(mode="json", by_alias=True)
