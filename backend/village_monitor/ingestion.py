"""Sensor ingestion pipeline.

One call handles one reading from an authenticated device:

1. validate the payload (no writes on failure)
2. persist the reading; the only step whose failure fails the request
3. update the device's ``last_seen``
4. evaluate alert rules and persist the alerts
5. publish the reading, then the new alerts, to dashboard listeners

Steps 3 to 5 are best-effort. Their failures are logged and recorded on the
returned :class:`IngestResult`; the stored reading is never rolled back.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Mapping
from zoneinfo import ZoneInfo

import pydantic
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from . import stores
from .alerting import evaluate_rules
from .config import Settings, get_settings
from .errors import DeviceIdentityMismatch, PersistenceError, ValidationError
from .models import SENSOR_TYPES, Device
from .schemas import VARIANT_FIELDS, AlertOut, ReadingIn, ReadingOut, dump
from .ws import Broadcaster, broadcaster as default_broadcaster

logger = logging.getLogger(__name__)

REQUIRED_FIELDS = ("sensorType", "deviceName")
# firmware matches on this exact text; the missing names ride on the exception
MISSING_FIELDS_MESSAGE = "Missing required fields: sensorType, deviceName"
SENSOR_TYPE_ALIASES = {"ir_detector": "motion"}


@dataclass
class ValidReading:
    sensor_type: str
    device_name: str
    timestamp: datetime | None
    values: dict[str, Any]


@dataclass
class IngestResult:
    reading_id: str
    reading: dict[str, Any]
    alerts: list[dict[str, Any]] = field(default_factory=list)
    liveness_updated: bool = False
    alert_error: str | None = None
    published: bool = False


def _is_blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def parse_timestamp(value: Any) -> datetime | None:
    """Parse an ISO-8601 string or epoch milliseconds; ``None`` when unusable."""

    if value is None or isinstance(value, bool):
        return None
    try:
        if isinstance(value, (int, float)):
            return datetime.fromtimestamp(value / 1000.0, tz=timezone.utc)
        if isinstance(value, str):
            normalized = value.strip()
            if not normalized:
                return None
            if normalized.endswith("Z"):
                normalized = normalized[:-1] + "+00:00"
            parsed = datetime.fromisoformat(normalized)
            if parsed.tzinfo is None:
                parsed = parsed.replace(tzinfo=timezone.utc)
            return parsed
    except (ValueError, OverflowError, OSError):
        return None
    return None


def normalize_sensor_type(value: str) -> str:
    key = value.strip().lower()
    return SENSOR_TYPE_ALIASES.get(key, key)


def validate_payload(device_name: str, payload: Any) -> ValidReading:
    """Check a raw payload against the authenticated *device_name*."""

    if not isinstance(payload, Mapping):
        raise ValidationError("Request body must be a JSON object")

    missing = [name for name in REQUIRED_FIELDS if _is_blank(payload.get(name))]
    if missing:
        raise ValidationError(MISSING_FIELDS_MESSAGE, fields=missing)

    raw_type = payload["sensorType"]
    if not isinstance(raw_type, str) or normalize_sensor_type(raw_type) not in SENSOR_TYPES:
        raise ValidationError(f"Invalid sensorType: {raw_type}", fields=["sensorType"])
    sensor_type = normalize_sensor_type(raw_type)

    if str(payload["deviceName"]).strip() != device_name:
        raise DeviceIdentityMismatch(fields=["deviceName"])

    try:
        variant = ReadingIn.model_validate(dict(payload))
    except pydantic.ValidationError as exc:
        fields = sorted({str(err["loc"][0]) for err in exc.errors() if err.get("loc")})
        raise ValidationError(f"Invalid fields: {', '.join(fields)}", fields=fields) from exc

    allowed = VARIANT_FIELDS[sensor_type]
    values = {name: getattr(variant, name) for name in allowed}
    return ValidReading(
        sensor_type=sensor_type,
        device_name=device_name,
        timestamp=parse_timestamp(payload.get("timestamp")),
        values=values,
    )


def _site_time(now: datetime, settings: Settings) -> datetime:
    return now.astimezone(ZoneInfo(settings.site_timezone))


async def ingest_reading(
    db: AsyncSession,
    device: Device,
    payload: Any,
    *,
    settings: Settings | None = None,
    broadcaster: Broadcaster | None = None,
    now: datetime | None = None,
) -> IngestResult:
    settings = settings or get_settings()
    broadcaster = broadcaster or default_broadcaster
    now = now or datetime.now(timezone.utc)
    device_name = device.device_name

    # 1. validate
    reading_in = validate_payload(device_name, payload)

    # 2. persist the reading
    row = dict(reading_in.values)
    row.update(
        device_name=device_name,
        sensor_type=reading_in.sensor_type,
        timestamp=reading_in.timestamp or now,
    )
    try:
        reading = await stores.insert_reading(db, row)
        # serialize now: a later rollback expires the instance
        reading_json = dump(ReadingOut.model_validate(reading))
    except SQLAlchemyError as exc:
        logger.exception("Failed to store reading from '%s'", device_name)
        raise PersistenceError() from exc

    result = IngestResult(reading_id=str(reading_json["id"]), reading=reading_json)
    logger.info("Stored %s reading %s from '%s'", reading_in.sensor_type, result.reading_id, device_name)

    # 3. liveness
    try:
        await stores.touch_device(db, device_name, now)
        result.liveness_updated = True
    except SQLAlchemyError:
        logger.exception("Failed to update last_seen for '%s'", device_name)
        await _safe_rollback(db)

    # 4. rules and alerts
    try:
        drafts = evaluate_rules(
            reading_in.sensor_type,
            reading_in.values,
            _site_time(now, settings),
            watch_rooms=settings.motion_watch_rooms,
            business_hours=(settings.business_hours_start, settings.business_hours_end),
        )
        alerts = await stores.insert_alerts(db, drafts, device_name=device_name, created_at=now)
        result.alerts = [dump(AlertOut.model_validate(a)) for a in alerts]
        if alerts:
            logger.info("Raised %d alert(s) for reading %s", len(alerts), result.reading_id)
    except Exception as exc:
        logger.exception("Alerting failed for reading %s", result.reading_id)
        result.alert_error = str(exc) or exc.__class__.__name__
        await _safe_rollback(db)

    # 5. fan-out
    try:
        broadcaster.publish("sensor_update", result.reading)
        for alert in result.alerts:
            broadcaster.publish("alert_updated", alert)
        result.published = True
    except Exception:
        logger.exception("Failed to publish reading %s", result.reading_id)

    return result


async def _safe_rollback(db: AsyncSession) -> None:
    try:
        await db.rollback()
    except SQLAlchemyError:
        logger.exception("Rollback failed")
