from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from ..alerting import get_metric_unit, iter_thresholds
from ..db import get_db
from ..schemas import AlertOut, AlertUpdate, dump
from ..stores import list_alerts, set_alert_read
from ..ws import broadcaster

router = APIRouter(prefix="/api/alerts", tags=["alerts"])


@router.get("", response_model=list[AlertOut])
async def get_alerts(
    limit: int = Query(20, ge=1, le=500),
    unread: bool = Query(False, description="Only unread alerts"),
    db: AsyncSession = Depends(get_db),
):
    rows = await list_alerts(db, limit=limit, unread_only=unread)
    return [AlertOut.model_validate(r) for r in rows]


@router.patch("", response_model=AlertOut)
async def mark_alert(payload: AlertUpdate, db: AsyncSession = Depends(get_db)):
    alert = await set_alert_read(db, payload.alert_id, payload.is_read)
    if alert is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Alert not found")
    out = AlertOut.model_validate(alert)
    broadcaster.publish("alert_updated", dump(out))
    return out


@router.get("/thresholds")
async def get_thresholds():
    """Numeric alert thresholds per sensor type, for dashboard legends."""

    return {
        sensor_type: {
            "field": cfg["field"],
            "unit": get_metric_unit(sensor_type),
            "lines": [
                {k: v for k, v in line.items() if k not in ("title", "message")}
                for line in cfg["lines"]
            ],
        }
        for sensor_type, cfg in iter_thresholds()
    }
