import logging
from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from ..db import get_db
from ..device_auth import generate_device_key, hash_device_key
from ..models import SENSOR_TYPES
from ..schemas import DeviceOut, DeviceWithLatest, ReadingOut, dump
from ..stores import (
    DeviceAlreadyExists,
    create_device,
    delete_device,
    get_device_by_name,
    list_devices_with_stats,
    update_device,
)
from ..ws import broadcaster

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/devices", tags=["devices"])

REQUIRED_FIELDS = ("deviceName", "deviceType", "location")


def _clean(value: Any) -> str:
    return value.strip() if isinstance(value, str) else ""


@router.post("")
async def register_device(payload: dict[str, Any], db: AsyncSession = Depends(get_db)):
    data = {name: _clean(payload.get(name)) for name in REQUIRED_FIELDS}
    if not all(data.values()):
        raise HTTPException(
            status_code=400, detail="Missing required fields: deviceName, deviceType, location"
        )
    if data["deviceType"] not in SENSOR_TYPES:
        raise HTTPException(status_code=400, detail=f"Invalid deviceType: {data['deviceType']}")

    device_key = generate_device_key(data["deviceName"])
    try:
        device = await create_device(
            db,
            device_name=data["deviceName"],
            device_type=data["deviceType"],
            location=data["location"],
            key_hash=hash_device_key(device_key),
        )
    except DeviceAlreadyExists:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Device already exists")

    logger.info("Registered device '%s' (%s)", device.device_name, device.device_type)
    device_json = dump(DeviceOut.model_validate(device))
    broadcaster.publish("device_status", device_json)
    return {
        "success": True,
        "device": device_json,
        # shown once; only the hash is kept
        "deviceKey": device_key,
        "message": "Device registered successfully",
    }


@router.get("", response_model=list[DeviceWithLatest])
async def list_devices(db: AsyncSession = Depends(get_db)):
    rows = await list_devices_with_stats(db)
    out = []
    for device, latest, count in rows:
        item = DeviceWithLatest.model_validate(device)
        item.latest_data = ReadingOut.model_validate(latest) if latest else None
        item.data_count = count
        out.append(item)
    return out


@router.patch("")
async def patch_device(payload: dict[str, Any], db: AsyncSession = Depends(get_db)):
    device_id = _clean(payload.get("deviceId"))
    if not device_id:
        raise HTTPException(status_code=400, detail="Missing deviceId")

    device = await get_device_by_name(db, device_id)
    if device is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Device not found")

    changes: dict[str, Any] = {}
    if payload.get("isActive") is not None:
        if not isinstance(payload["isActive"], bool):
            raise HTTPException(status_code=400, detail="isActive must be a boolean")
        changes["is_active"] = payload["isActive"]
    if payload.get("location") is not None:
        changes["location"] = str(payload["location"])
    if payload.get("deviceType") is not None:
        if payload["deviceType"] not in SENSOR_TYPES:
            raise HTTPException(status_code=400, detail=f"Invalid deviceType: {payload['deviceType']}")
        changes["device_type"] = payload["deviceType"]

    device = await update_device(db, device, changes)
    device_json = dump(DeviceOut.model_validate(device))
    broadcaster.publish("device_status", device_json)
    return {"success": True, "device": device_json, "message": "Device updated successfully"}


@router.delete("")
async def remove_device(device_id: str = Query(..., alias="deviceId"), db: AsyncSession = Depends(get_db)):
    device = await get_device_by_name(db, device_id)
    if device is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Device not found")
    await delete_device(db, device)
    logger.info("Deleted device '%s' and its readings", device_id)
    return {"success": True, "message": "Device deleted successfully"}
