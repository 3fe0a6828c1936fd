"""Threshold rules that turn a reading into alert drafts."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Iterable, Mapping, Sequence

logger = logging.getLogger(__name__)


# Numeric thresholds per sensor type. Line kinds:
#   lower   -> value < threshold
#   upper   -> value > threshold
#   between -> low < value < high (high inclusive when "high_inclusive" is set)
THRESHOLDS: dict[str, dict] = {
    "water_level": {
        "field": "water_level",
        "unit": "%",
        "lines": [
            {
                "kind": "lower",
                "value": 30.0,
                "alert_type": "danger",
                "title": "Ketinggian Air Kritis",
                "message": "Tandon air mencapai {value}%, segera isi ulang!",
            },
            {
                # 30 itself falls in neither bracket
                "kind": "between",
                "low": 30.0,
                "high": 50.0,
                "alert_type": "warning",
                "title": "Ketinggian Air Rendah",
                "message": "Tandon air mencapai {value}%, pertimbangkan untuk mengisi",
            },
        ],
    },
    "electricity": {
        "field": "power",
        "unit": "W",
        "lines": [
            {
                "kind": "upper",
                "value": 5000.0,
                "alert_type": "warning",
                "title": "Daya Listrik Tinggi",
                "message": "Penggunaan daya mencapai {value}W, perhatikan beban",
            },
        ],
    },
    "smoke": {
        "field": "smoke_level",
        "unit": "ppm",
        "lines": [
            {
                "kind": "upper",
                "value": 50.0,
                "alert_type": "danger",
                "title": "Terdeteksi Asap Tinggi",
                "message": "Level asap mencapai {value}, waspadai bahaya kebakaran!",
            },
            {
                "kind": "between",
                "low": 30.0,
                "high": 50.0,
                "high_inclusive": True,
                "alert_type": "warning",
                "title": "Terdeteksi Asap",
                "message": "Level asap mencapai {value}, periksa area sekitar",
            },
        ],
    },
    "temperature_humidity": {
        "field": "temperature",
        "unit": "°C",
        "lines": [
            {
                "kind": "upper",
                "value": 35.0,
                "alert_type": "warning",
                "title": "Suhu Tinggi",
                "message": "Suhu mencapai {value}°C, pastikan ventilasi baik",
            },
        ],
    },
}

DEFAULT_WATCH_ROOMS: tuple[str, ...] = ("Ruang Arsip",)
DEFAULT_BUSINESS_HOURS: tuple[int, int] = (6, 17)


@dataclass(frozen=True)
class AlertDraft:
    """An alert produced by a rule, not yet persisted."""

    title: str
    message: str
    alert_type: str
    sensor_type: str


def get_metric_unit(sensor_type: str) -> str:
    """Return the display unit of the thresholded field for *sensor_type*."""

    return THRESHOLDS.get(sensor_type, {}).get("unit", "")


def _fmt(value: float) -> str:
    return f"{value:g}"


def _line_matches(line: Mapping[str, Any], value: float) -> bool:
    kind = str(line.get("kind", "")).lower()
    if kind == "lower":
        return value < float(line["value"])
    if kind == "upper":
        return value > float(line["value"])
    if kind == "between":
        low, high = float(line["low"]), float(line["high"])
        if line.get("high_inclusive"):
            return low < value <= high
        return low < value < high
    raise ValueError(f"unknown threshold kind {kind!r}")


def evaluate_thresholds(sensor_type: str, value: float) -> list[dict]:
    """Return the threshold lines breached by *value* for *sensor_type*."""

    cfg = THRESHOLDS.get(sensor_type)
    if not cfg:
        return []

    triggered: list[dict] = []
    for line in cfg.get("lines", []):
        try:
            matched = _line_matches(line, value)
        except (KeyError, TypeError, ValueError):
            logger.warning("Invalid threshold configuration for '%s': %s", sensor_type, line)
            continue
        if matched:
            triggered.append(line)
    return triggered


def _normalize_room(room: str | None) -> str:
    return " ".join((room or "").split()).casefold()


def is_after_hours(now: datetime, business_hours: Sequence[int] = DEFAULT_BUSINESS_HOURS) -> bool:
    start, end = business_hours
    return now.hour >= end or now.hour <= start


def evaluate_rules(
    sensor_type: str,
    values: Mapping[str, Any],
    now: datetime,
    *,
    watch_rooms: Iterable[str] = DEFAULT_WATCH_ROOMS,
    business_hours: Sequence[int] = DEFAULT_BUSINESS_HOURS,
) -> list[AlertDraft]:
    """Map one reading to zero or more alert drafts.

    *values* holds the reading's variant fields by their snake_case names and
    *now* is the site-local ingestion time, used by the after-hours rule.
    Every matching rule contributes its own draft. Absent fields never match.
    """

    drafts: list[AlertDraft] = []

    cfg = THRESHOLDS.get(sensor_type)
    if cfg:
        value = values.get(cfg["field"])
        if value is not None:
            for line in evaluate_thresholds(sensor_type, float(value)):
                drafts.append(
                    AlertDraft(
                        title=line["title"],
                        message=line["message"].format(value=_fmt(float(value))),
                        alert_type=line["alert_type"],
                        sensor_type=sensor_type,
                    )
                )

    if sensor_type == "motion" and values.get("detected") is True:
        room = values.get("room")
        watched = {_normalize_room(r) for r in watch_rooms}
        if room and _normalize_room(room) in watched:
            drafts.append(
                AlertDraft(
                    title=f"Aktivitas di {room}",
                    message=f"Sensor IR mendeteksi gerakan di {room}",
                    alert_type="info",
                    sensor_type="motion",
                )
            )
        if is_after_hours(now, business_hours):
            drafts.append(
                AlertDraft(
                    title="Aktivitas di Luar Jam Kerja",
                    message="Terdeteksi aktivitas pada jam off kantor",
                    alert_type="info",
                    sensor_type="motion",
                )
            )

    if sensor_type == "rain" and values.get("is_raining") is True and values.get("rain_intensity") == "heavy":
        drafts.append(
            AlertDraft(
                title="Hujan Lebat",
                message="Terdeteksi hujan lebat, waspada potensi banjir",
                alert_type="warning",
                sensor_type="rain",
            )
        )

    return drafts


def iter_thresholds() -> Iterable[tuple[str, dict]]:
    """Utility for iterating thresholds; used by API endpoints."""

    return THRESHOLDS.items()
