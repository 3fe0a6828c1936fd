from datetime import datetime, timedelta, timezone

from sqlalchemy import func, select
from sqlalchemy.exc import OperationalError

from conftest import device_headers
from village_monitor import ingestion
from village_monitor.models import Alert, Device, SensorReading


def _count(run_db, model, *where):
    async def go(session):
        stmt = select(func.count()).select_from(model)
        for clause in where:
            stmt = stmt.where(clause)
        return (await session.execute(stmt)).scalar_one()

    return run_db(go)


def _device(run_db, name):
    async def go(session):
        return (await session.execute(select(Device).where(Device.device_name == name))).scalar_one()

    return run_db(go)


def _as_utc(value: datetime) -> datetime:
    # SQLite hands back naive UTC
    return value if value.tzinfo else value.replace(tzinfo=timezone.utc)


def test_water_tank_end_to_end(client, run_db):
    before = datetime.now(timezone.utc) - timedelta(seconds=1)
    resp = client.post(
        "/api/esp32",
        json={"sensorType": "water_level", "deviceName": "WaterTank01", "waterLevel": 22},
        headers=device_headers("WaterTank01"),
    )
    after = datetime.now(timezone.utc) + timedelta(seconds=1)

    assert resp.status_code == 200
    body = resp.json()
    assert body["success"] is True
    assert body["message"] == "Sensor data received successfully"
    data_id = body["dataId"]
    assert isinstance(data_id, str) and data_id

    async def fetch(session):
        return (await session.execute(select(SensorReading))).scalars().all()

    readings = run_db(fetch)
    assert [str(r.id) for r in readings] == [data_id]
    assert readings[0].water_level == 22.0
    assert readings[0].power is None

    async def alerts(session):
        return (await session.execute(select(Alert))).scalars().all()

    (alert,) = run_db(alerts)
    assert alert.alert_type == "danger"
    assert alert.sensor_type == "water_level"
    assert alert.device_name == "WaterTank01"
    assert alert.is_read is False

    last_seen = _device(run_db, "WaterTank01").last_seen
    assert last_seen is not None
    assert before <= _as_utc(last_seen) <= after


def test_missing_sensor_type_writes_nothing(client, run_db):
    resp = client.post(
        "/api/esp32",
        json={"deviceName": "WaterTank01", "waterLevel": 22},
        headers=device_headers("WaterTank01"),
    )
    assert resp.status_code == 400
    assert resp.json() == {"error": "Missing required fields: sensorType, deviceName"}
    assert _count(run_db, SensorReading) == 0
    assert _count(run_db, Alert) == 0
    assert _device(run_db, "WaterTank01").last_seen is None


def test_device_cannot_write_as_another(client, run_db):
    resp = client.post(
        "/api/esp32",
        json={"sensorType": "smoke", "deviceName": "Smoke01", "smokeLevel": 90},
        headers=device_headers("WaterTank01"),
    )
    assert resp.status_code == 400
    assert "error" in resp.json()
    assert _count(run_db, SensorReading) == 0
    assert _count(run_db, Alert) == 0


def test_invalid_json_body(client):
    resp = client.post(
        "/api/esp32",
        content=b"{not json",
        headers={**device_headers("WaterTank01"), "content-type": "application/json"},
    )
    assert resp.status_code == 400


def test_auth_failures(client):
    payload = {"sensorType": "water_level", "deviceName": "WaterTank01", "waterLevel": 60}

    resp = client.post("/api/esp32", json=payload)
    assert resp.status_code == 401
    assert resp.json() == {"error": "Missing device credentials"}

    resp = client.post("/api/esp32", json=payload, headers=device_headers("WaterTank01", "   "))
    assert resp.status_code == 401
    assert resp.json() == {"error": "Missing device credentials"}

    resp = client.post("/api/esp32", json=payload, headers=device_headers("WaterTank01", "nope"))
    assert resp.status_code == 401
    assert resp.json() == {"error": "Invalid device key"}

    resp = client.post("/api/esp32", json=payload, headers=device_headers("Ghost"))
    assert resp.status_code == 403
    assert resp.json() == {"error": "Device not found or inactive"}


def test_inactive_device_is_refused(client, run_db):
    resp = client.patch("/api/devices", json={"deviceId": "Smoke01", "isActive": False})
    assert resp.status_code == 200
    assert resp.json()["device"]["isActive"] is False

    resp = client.post(
        "/api/esp32",
        json={"sensorType": "smoke", "deviceName": "Smoke01", "smokeLevel": 10},
        headers=device_headers("Smoke01"),
    )
    assert resp.status_code == 403
    assert _count(run_db, SensorReading) == 0


def test_reading_store_failure_is_500(client, monkeypatch, run_db):
    async def broken(db, values):
        raise OperationalError("INSERT", {}, Exception("disk I/O error"))

    monkeypatch.setattr(ingestion.stores, "insert_reading", broken)
    resp = client.post(
        "/api/esp32",
        json={"sensorType": "water_level", "deviceName": "WaterTank01", "waterLevel": 5},
        headers=device_headers("WaterTank01"),
    )
    assert resp.status_code == 500
    assert resp.json() == {"error": "Failed to process sensor data"}
    assert _count(run_db, Alert) == 0


def test_alert_store_failure_still_accepts_reading(client, monkeypatch, run_db):
    async def broken(db, drafts, **kwargs):
        raise OperationalError("INSERT", {}, Exception("disk I/O error"))

    monkeypatch.setattr(ingestion.stores, "insert_alerts", broken)
    resp = client.post(
        "/api/esp32",
        json={"sensorType": "water_level", "deviceName": "WaterTank01", "waterLevel": 5},
        headers=device_headers("WaterTank01"),
    )
    assert resp.status_code == 200
    assert _count(run_db, SensorReading) == 1
    assert _count(run_db, Alert) == 0


def test_device_config_returns_latest_reading(client):
    headers = device_headers("DHT22")
    client.post(
        "/api/esp32",
        json={"sensorType": "temperature_humidity", "deviceName": "DHT22", "temperature": 27.5,
              "humidity": 61, "timestamp": "2024-01-01T00:00:00Z"},
        headers=headers,
    )
    client.post(
        "/api/esp32",
        json={"sensorType": "temperature_humidity", "deviceName": "DHT22", "temperature": 29.0, "humidity": 58},
        headers=headers,
    )

    resp = client.get("/api/esp32", params={"deviceId": "DHT22"}, headers=headers)
    assert resp.status_code == 200
    body = resp.json()
    assert body["device"]["name"] == "DHT22"
    assert body["device"]["type"] == "temperature_humidity"
    assert body["device"]["lastSeen"] is not None
    assert body["latestData"]["temperature"] == 29.0
    assert body["serverTime"]

    assert client.get("/api/esp32", headers=headers).status_code == 400
    assert client.get("/api/esp32", params={"deviceId": "Nope"}, headers=headers).status_code == 404


def test_registration_is_not_repeatable(client, run_db):
    body = {"deviceName": "Pump02", "deviceType": "electricity", "location": "Ruang Genset"}
    first = client.post("/api/devices", json=body)
    assert first.status_code == 200
    issued_key = first.json()["deviceKey"]
    assert first.json()["device"]["deviceName"] == "Pump02"

    second = client.post("/api/devices", json=body)
    assert second.status_code == 409
    assert _count(run_db, Device, Device.device_name == "Pump02") == 1

    ok = client.post(
        "/api/esp32",
        json={"sensorType": "electricity", "deviceName": "Pump02", "power": 6200},
        headers=device_headers("Pump02", issued_key),
    )
    assert ok.status_code == 200

    legacy = client.post(
        "/api/esp32",
        json={"sensorType": "electricity", "deviceName": "Pump02", "power": 100},
        headers=device_headers("Pump02"),
    )
    assert legacy.status_code == 401


def test_registration_validates_fields(client):
    assert client.post("/api/devices", json={"deviceName": "X"}).status_code == 400
    resp = client.post("/api/devices", json={"deviceName": "X", "deviceType": "laser", "location": "Lab"})
    assert resp.status_code == 400


def test_patch_rejects_non_boolean_active_flag(client, run_db):
    client.patch("/api/devices", json={"deviceId": "IR01", "isActive": False})

    resp = client.patch("/api/devices", json={"deviceId": "IR01", "isActive": "false"})
    assert resp.status_code == 400
    assert _device(run_db, "IR01").is_active is False


def test_list_and_delete_devices(client, run_db):
    client.post(
        "/api/esp32",
        json={"sensorType": "rain", "deviceName": "RainSensor01", "isRaining": True, "rainIntensity": "heavy"},
        headers=device_headers("RainSensor01"),
    )
    devices = {d["deviceName"]: d for d in client.get("/api/devices").json()}
    assert len(devices) == 8
    assert devices["RainSensor01"]["dataCount"] == 1
    assert devices["RainSensor01"]["latestData"]["rainIntensity"] == "heavy"
    assert devices["IR01"]["latestData"] is None

    resp = client.delete("/api/devices", params={"deviceId": "RainSensor01"})
    assert resp.status_code == 200
    assert _count(run_db, SensorReading) == 0
    assert _count(run_db, Device, Device.device_name == "RainSensor01") == 0
    assert client.delete("/api/devices", params={"deviceId": "RainSensor01"}).status_code == 404


def test_alerts_list_and_mark_read(client):
    client.post(
        "/api/esp32",
        json={"sensorType": "smoke", "deviceName": "Smoke01", "smokeLevel": 75},
        headers=device_headers("Smoke01"),
    )
    alerts = client.get("/api/alerts").json()
    assert [a["alertType"] for a in alerts] == ["danger"]
    alert_id = alerts[0]["id"]

    resp = client.patch("/api/alerts", json={"alertId": alert_id, "isRead": True})
    assert resp.status_code == 200
    assert resp.json()["isRead"] is True
    assert client.get("/api/alerts", params={"unread": True}).json() == []
    assert client.patch("/api/alerts", json={"alertId": 9999, "isRead": True}).status_code == 404


def test_readings_listing_filters(client):
    client.post(
        "/api/esp32",
        json={"sensorType": "water_level", "deviceName": "WaterTank01", "waterLevel": 70},
        headers=device_headers("WaterTank01"),
    )
    client.post(
        "/api/esp32",
        json={"sensorType": "electricity", "deviceName": "PZEM-004T", "voltage": 221.5, "power": 800},
        headers=device_headers("PZEM-004T"),
    )
    assert len(client.get("/api/sensors").json()) == 2
    only_tank = client.get("/api/sensors", params={"deviceName": "WaterTank01"}).json()
    assert [r["deviceName"] for r in only_tank] == ["WaterTank01"]
    assert len(client.get("/api/sensors", params={"limit": 1}).json()) == 1

    export = client.get("/api/sensors/export", params={"deviceName": "PZEM-004T"})
    assert export.status_code == 200
    lines = export.text.strip().splitlines()
    assert lines[0].startswith("id,device_name,sensor_type,timestamp")
    assert len(lines) == 2
    assert client.get(
        "/api/sensors/export", params={"deviceName": "PZEM-004T", "start_ts": "soon"}
    ).status_code == 400


def test_thresholds_endpoint(client):
    body = client.get("/api/alerts/thresholds").json()
    assert body["water_level"]["unit"] == "%"
    assert body["smoke"]["lines"][0]["alert_type"] == "danger"


def test_dashboard_receives_reading_then_alert(client):
    with client.websocket_connect("/ws") as ws:
        resp = client.post(
            "/api/esp32",
            json={"sensorType": "water_level", "deviceName": "WaterTank01", "waterLevel": 45},
            headers=device_headers("WaterTank01"),
        )
        data_id = resp.json()["dataId"]

        update = ws.receive_json()
        assert update["event"] == "sensor_update"
        assert update["data"]["id"] == data_id
        alert = ws.receive_json()
        assert alert["event"] == "alert_updated"
        assert alert["data"]["alertType"] == "warning"
        assert alert["data"]["isRead"] is False

        ws.send_json({"event": "get_latest_data"})
        latest = ws.receive_json()
        assert latest["event"] == "latest_data"
        assert [r["id"] for r in latest["data"]] == [data_id]

        ws.send_json({"event": "mark_alert_read", "alertId": alert["data"]["id"]})
        updated = ws.receive_json()
        assert updated["event"] == "alert_updated"
        assert updated["data"]["isRead"] is True

        ws.send_json({"event": "dance"})
        assert ws.receive_json()["event"] == "error"


def test_health(client):
    assert client.get("/health").json() == {"ok": True}
