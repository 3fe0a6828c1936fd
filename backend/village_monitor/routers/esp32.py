from datetime import datetime, timezone

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from ..db import get_db
from ..device_auth import require_device
from ..errors import ValidationError
from ..ingestion import ingest_reading
from ..models import Device
from ..schemas import IngestAck, ReadingOut, dump
from ..stores import get_device_by_name, latest_reading

router = APIRouter(prefix="/api/esp32", tags=["esp32"])


@router.post("", response_model=IngestAck)
async def submit_reading(
    request: Request,
    device: Device = Depends(require_device),
    db: AsyncSession = Depends(get_db),
):
    try:
        payload = await request.json()
    except ValueError as exc:
        raise ValidationError("Request body must be valid JSON") from exc

    result = await ingest_reading(db, device, payload)
    return IngestAck(dataId=result.reading_id)


@router.get("")
async def device_config(
    device_id: str | None = Query(None, alias="deviceId"),
    _device: Device = Depends(require_device),
    db: AsyncSession = Depends(get_db),
):
    if not device_id:
        return JSONResponse({"error": "Missing deviceId parameter"}, status_code=400)

    target = await get_device_by_name(db, device_id)
    if target is None:
        return JSONResponse({"error": "Device not found"}, status_code=404)

    latest = await latest_reading(db, device_id)
    return {
        "device": {
            "name": target.device_name,
            "type": target.device_type,
            "location": target.location,
            "isActive": target.is_active,
            "lastSeen": target.last_seen.isoformat() if target.last_seen else None,
        },
        "latestData": dump(ReadingOut.model_validate(latest)) if latest else None,
        "serverTime": datetime.now(timezone.utc).isoformat(),
    }
