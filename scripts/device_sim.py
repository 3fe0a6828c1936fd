import os, random, time

import httpx

API = os.getenv("API", "http://localhost:8000")
KEY_PATTERN = os.getenv("DEVICE_KEY_PATTERN", "device_{device_id}_key_2024")
INTERVAL = float(os.getenv("SIM_INTERVAL", "5"))


def fake_payload(device: str, sensor_type: str) -> dict:
    if sensor_type == "electricity":
        voltage = round(random.uniform(215, 230), 1)
        current = round(random.uniform(1, 30), 2)
        return {"voltage": voltage, "current": current, "power": round(voltage * current, 1),
                "energy": round(random.uniform(100, 200), 2), "frequency": 50.0,
                "powerFactor": round(random.uniform(0.85, 0.99), 2)}
    if sensor_type == "water_level":
        return {"waterLevel": round(random.uniform(10, 100), 1)}
    if sensor_type == "motion":
        return {"detected": random.random() < 0.3}
    if sensor_type == "temperature_humidity":
        return {"temperature": round(random.uniform(24, 38), 1), "humidity": round(random.uniform(50, 90), 1)}
    if sensor_type == "smoke":
        return {"smokeLevel": round(random.uniform(0, 60), 1)}
    raining = random.random() < 0.4
    return {"isRaining": raining, "rainfall": round(random.uniform(0, 40), 1) if raining else 0.0,
            "rainIntensity": random.choice(["light", "moderate", "heavy"]) if raining else None}


def main():
    with httpx.Client(base_url=API, timeout=5) as client:
        devices = client.get("/api/devices").json()
        print(f"Simulating {len(devices)} device(s)")
        while True:
            for d in devices:
                name, sensor_type = d["deviceName"], d["deviceType"]
                body = {"sensorType": sensor_type, "deviceName": name, **fake_payload(name, sensor_type)}
                if sensor_type == "motion":
                    body["room"] = d["location"]
                headers = {"x-device-id": name, "x-device-key": KEY_PATTERN.format(device_id=name)}
                try:
                    r = client.post("/api/esp32", json=body, headers=headers)
                    print(name, r.status_code, r.json())
                except httpx.RequestError as e:
                    print(f"[ERROR] HTTP error posting reading: {e}")
            time.sleep(INTERVAL)


if __name__ == "__main__":
    main()
