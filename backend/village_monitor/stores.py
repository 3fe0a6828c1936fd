"""Queries over the device registry, reading store and alert store.

Each write commits on its own; callers decide what a failure means.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Sequence

from sqlalchemy import delete, desc, func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from .alerting import AlertDraft
from .models import Alert, Device, SensorReading


class DeviceAlreadyExists(Exception):
    """Raised when a device name is registered twice."""


async def get_device_by_name(db: AsyncSession, device_name: str) -> Device | None:
    res = await db.execute(select(Device).where(Device.device_name == device_name))
    return res.scalar_one_or_none()


async def create_device(
    db: AsyncSession,
    *,
    device_name: str,
    device_type: str,
    location: str,
    key_hash: str | None = None,
) -> Device:
    if await get_device_by_name(db, device_name) is not None:
        raise DeviceAlreadyExists(device_name)
    obj = Device(
        device_name=device_name,
        device_type=device_type,
        location=location,
        is_active=True,
        key_hash=key_hash,
    )
    db.add(obj)
    try:
        await db.commit()
    except IntegrityError as exc:
        # lost a race with a concurrent registration of the same name
        await db.rollback()
        raise DeviceAlreadyExists(device_name) from exc
    return obj


async def update_device(db: AsyncSession, device: Device, changes: dict[str, Any]) -> Device:
    for key, value in changes.items():
        setattr(device, key, value)
    await db.commit()
    return device


async def delete_device(db: AsyncSession, device: Device) -> None:
    """Remove *device* together with its readings."""

    await db.execute(delete(SensorReading).where(SensorReading.device_name == device.device_name))
    await db.delete(device)
    await db.commit()


async def touch_device(db: AsyncSession, device_name: str, seen_at: datetime) -> None:
    await db.execute(update(Device).where(Device.device_name == device_name).values(last_seen=seen_at))
    await db.commit()


async def insert_reading(db: AsyncSession, values: dict[str, Any]) -> SensorReading:
    obj = SensorReading(**values)
    db.add(obj)
    await db.commit()
    return obj


async def insert_alerts(
    db: AsyncSession, drafts: Sequence[AlertDraft], *, device_name: str | None, created_at: datetime
) -> list[Alert]:
    if not drafts:
        return []
    rows = [
        Alert(
            title=d.title,
            message=d.message,
            alert_type=d.alert_type,
            sensor_type=d.sensor_type,
            device_name=device_name,
            is_read=False,
            created_at=created_at,
        )
        for d in drafts
    ]
    db.add_all(rows)
    await db.commit()
    return rows


async def latest_reading(db: AsyncSession, device_name: str) -> SensorReading | None:
    stmt = (
        select(SensorReading)
        .where(SensorReading.device_name == device_name)
        .order_by(desc(SensorReading.timestamp))
        .limit(1)
    )
    res = await db.execute(stmt)
    return res.scalars().first()


async def list_devices_with_stats(db: AsyncSession) -> list[tuple[Device, SensorReading | None, int]]:
    devices = (await db.execute(select(Device).order_by(desc(Device.created_at)))).scalars().all()
    counts_stmt = select(SensorReading.device_name, func.count(SensorReading.id)).group_by(SensorReading.device_name)
    counts = {name: n for name, n in (await db.execute(counts_stmt)).all()}
    result = []
    for device in devices:
        latest = await latest_reading(db, device.device_name)
        result.append((device, latest, counts.get(device.device_name, 0)))
    return result


async def list_readings(
    db: AsyncSession,
    *,
    limit: int,
    device_name: str | None = None,
    sensor_type: str | None = None,
    start_dt: datetime | None = None,
    end_dt: datetime | None = None,
) -> Sequence[SensorReading]:
    stmt = select(SensorReading)
    if device_name:
        stmt = stmt.where(SensorReading.device_name == device_name)
    if sensor_type:
        stmt = stmt.where(SensorReading.sensor_type == sensor_type)
    if start_dt:
        stmt = stmt.where(SensorReading.timestamp >= start_dt)
    if end_dt:
        stmt = stmt.where(SensorReading.timestamp <= end_dt)
    stmt = stmt.order_by(desc(SensorReading.timestamp)).limit(limit)
    return (await db.execute(stmt)).scalars().all()


async def list_alerts(db: AsyncSession, *, limit: int, unread_only: bool = False) -> Sequence[Alert]:
    stmt = select(Alert)
    if unread_only:
        stmt = stmt.where(Alert.is_read.is_(False))
    stmt = stmt.order_by(desc(Alert.created_at), desc(Alert.id)).limit(limit)
    return (await db.execute(stmt)).scalars().all()


async def set_alert_read(db: AsyncSession, alert_id: int, is_read: bool = True) -> Alert | None:
    alert = await db.get(Alert, alert_id)
    if alert is None:
        return None
    alert.is_read = is_read
    await db.commit()
    return alert
