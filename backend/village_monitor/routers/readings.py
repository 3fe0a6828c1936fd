import csv
from datetime import datetime
from io import StringIO
from typing import Iterable

from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import StreamingResponse
from sqlalchemy.ext.asyncio import AsyncSession

from ..db import get_db
from ..models import SensorReading
from ..schemas import VARIANT_FIELDS, ReadingOut
from ..stores import list_readings

router = APIRouter(prefix="/api/sensors", tags=["readings"])

# every variant column, in a stable order for CSV headers
_VARIANT_COLUMNS = [name for fields in VARIANT_FIELDS.values() for name in fields]


def _parse_iso_datetime(value: str | None, field_name: str) -> datetime | None:
    if not value:
        return None
    try:
        normalized = value.strip()
        if not normalized:
            return None
        if normalized.endswith("Z"):
            normalized = normalized[:-1] + "+00:00"
        return datetime.fromisoformat(normalized)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=f"Invalid {field_name}. Use ISO-8601 format.") from exc


@router.get("", response_model=list[ReadingOut])
async def get_readings(
    limit: int = Query(50, gt=0, le=10000),
    device_name: str | None = Query(None, alias="deviceName"),
    sensor_type: str | None = Query(None, alias="sensorType"),
    db: AsyncSession = Depends(get_db),
):
    rows = await list_readings(db, limit=limit, device_name=device_name, sensor_type=sensor_type)
    return [ReadingOut.model_validate(r) for r in rows]


def _render_csv(rows: Iterable[SensorReading]) -> str:
    buffer = StringIO()
    writer = csv.writer(buffer)
    writer.writerow(["id", "device_name", "sensor_type", "timestamp", *_VARIANT_COLUMNS])
    for r in rows:
        writer.writerow(
            [
                str(r.id),
                r.device_name,
                r.sensor_type,
                r.timestamp.isoformat(),
                *("" if getattr(r, name) is None else getattr(r, name) for name in _VARIANT_COLUMNS),
            ]
        )
    buffer.seek(0)
    return buffer.getvalue()


@router.get("/export")
async def export_readings(
    device_name: str = Query(..., alias="deviceName"),
    start_ts: str | None = None,
    end_ts: str | None = None,
    limit: int = Query(500, gt=0, le=10000),
    db: AsyncSession = Depends(get_db),
):
    start_dt = _parse_iso_datetime(start_ts, "start_ts")
    end_dt = _parse_iso_datetime(end_ts, "end_ts")

    rows = await list_readings(db, limit=limit, device_name=device_name, start_dt=start_dt, end_dt=end_dt)
    # oldest first reads better in a spreadsheet
    csv_content = _render_csv(list(rows)[::-1])
    filename = f"{device_name}_readings.csv"
    response = StreamingResponse(iter([csv_content]), media_type="text/csv")
    response.headers["Content-Disposition"] = f'attachment; filename="{filename}"'
    return response
