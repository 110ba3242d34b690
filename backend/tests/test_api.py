from __future__ import annotations

import asyncio

import pytest
from fastapi.testclient import TestClient

from rtls.deps import get_service
from rtls.feed import UpdateFeed, feed_position, push_update, read_since
from rtls import main
from rtls.main import app
from rtls.routes import admin, health
from rtls.routes.stream import sse
from rtls.service import RTLSService


@pytest.fixture()
def client(service: RTLSService, fake_redis, monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setattr(admin, "get_redis", lambda: fake_redis)
    monkeypatch.setattr(health, "get_redis", lambda: fake_redis)
    app.dependency_overrides[get_service] = lambda: service
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


DEVICE_BODY = {
    "name": "Dock Sensor",
    "macAddress": "00:1B:44:11:3A:D1",
    "latitude": 52.52,
    "longitude": 13.405,
    "temperature": 22.5,
    "temperatureThreshold": 25.0,
}


def test_device_crud(client: TestClient) -> None:
    res = client.post("/api/devices", json=DEVICE_BODY)
    assert res.status_code == 201
    device = res.json()
    assert device["status"] == "online"
    assert device["batteryLevel"] == 100
    assert device["macAddress"] == DEVICE_BODY["macAddress"]

    res = client.get(f"/api/devices/{device['id']}")
    assert res.status_code == 200
    assert res.json()["name"] == "Dock Sensor"

    res = client.patch(f"/api/devices/{device['id']}", json={"temperatureThreshold": 20.0})
    assert res.json()["status"] == "critical"

    items = client.get("/api/devices", params={"status": "critical"}).json()["items"]
    assert [d["id"] for d in items] == [device["id"]]

    assert client.delete(f"/api/devices/{device['id']}").json() == {"ok": True}
    assert client.delete(f"/api/devices/{device['id']}").status_code == 404


def test_unknown_device_is_404(client: TestClient) -> None:
    res = client.get("/api/devices/dev_missing")
    assert res.status_code == 404
    assert res.json()["kind"] == "device"


def test_validation_errors_are_422(client: TestClient) -> None:
    assert client.post("/api/devices", json={**DEVICE_BODY, "latitude": 123}).status_code == 422

    device = client.post("/api/devices", json=DEVICE_BODY).json()
    res = client.patch(f"/api/devices/{device['id']}", json={"temperature": 99})
    assert res.status_code == 422

    res = client.post("/api/geofences", json={
        "name": "Bad", "center": {"latitude": 0, "longitude": 0}, "radius": 0,
    })
    assert res.status_code == 422


def test_telemetry_and_alert_lifecycle(client: TestClient) -> None:
    device = client.post("/api/devices", json=DEVICE_BODY).json()

    res = client.post(f"/api/devices/{device['id']}/telemetry", json={"temperature": 28.3})
    assert res.json()["status"] == "critical"

    alerts = client.get("/api/alerts", params={"severity": "critical"}).json()["items"]
    assert len(alerts) == 1
    alert = alerts[0]
    assert "28.3" in alert["message"]
    assert alert["status"] == "active"
    assert alert["isRead"] is False

    res = client.post(f"/api/alerts/{alert['id']}/read")
    assert res.json()["state"] == "read_active"

    first = client.post(f"/api/alerts/{alert['id']}/resolve")
    second = client.post(f"/api/alerts/{alert['id']}/resolve")
    assert first.status_code == second.status_code == 200
    assert second.json()["status"] == "resolved"
    assert second.json()["isResolved"] is True

    assert client.get("/api/alerts", params={"status": "active"}).json()["items"] == []
    assert client.delete(f"/api/alerts/{alert['id']}").json() == {"ok": True}
    assert client.post(f"/api/alerts/{alert['id']}/resolve").status_code == 404


def test_offline_toggle_endpoints(client: TestClient) -> None:
    device = client.post("/api/devices", json=DEVICE_BODY).json()

    assert client.post(f"/api/devices/{device['id']}/offline").json()["status"] == "offline"
    assert client.get("/api/alerts/recent").json()["items"][0]["type"] == "offline"
    assert client.post(f"/api/devices/{device['id']}/online").json()["status"] == "online"


def test_geofence_endpoints(client: TestClient) -> None:
    body = {
        "name": "Secure Zone A",
        "center": {"latitude": 52.52, "longitude": 13.405},
        "radius": 500,
        "alertOnExit": True,
    }
    zone = client.post("/api/geofences", json=body).json()
    assert zone["isActive"] is True

    device = client.post("/api/devices", json=DEVICE_BODY).json()
    assert device["isInGeofence"] is True

    res = client.post(f"/api/geofences/{zone['id']}/active", json={"active": False})
    assert res.json()["isActive"] is False
    assert client.get("/api/geofences", params={"active_only": True}).json()["items"] == []
    assert client.get(f"/api/devices/{device['id']}").json()["isInGeofence"] is False

    res = client.patch(f"/api/geofences/{zone['id']}", json={"radius": 50})
    assert res.json()["radius"] == 50
    assert client.delete(f"/api/geofences/{zone['id']}").status_code == 200
    assert client.get(f"/api/geofences/{zone['id']}").status_code == 404


def test_settings_and_stats(client: TestClient) -> None:
    stats = client.get("/api/stats").json()
    assert stats["totalDevices"] == 0
    assert stats["averageTemperature"] == 0

    res = client.patch("/api/settings", json={"temperatureUnit": "fahrenheit", "alertRetention": 7})
    assert res.status_code == 200
    assert res.json()["temperatureUnit"] == "fahrenheit"
    assert client.get("/api/settings").json()["alertRetention"] == 7

    assert client.patch("/api/settings", json={"language": "de"}).status_code == 422

    client.post("/api/devices", json=DEVICE_BODY)
    analytics = client.get("/api/analytics").json()
    assert analytics["devicesByStatus"]["online"] == 1
    assert len(analytics["temperatureHistory"]) == 1


def test_admin_export_import(client: TestClient, fake_redis) -> None:
    client.post("/api/devices", json=DEVICE_BODY)
    exported = client.get("/api/admin/export").json()
    assert len(exported["devices"]) == 1

    client.post("/api/devices", json={**DEVICE_BODY, "name": "Extra"})
    res = client.post("/api/admin/import", json=exported)
    assert res.json() == {"ok": True, "imported": {"devices": 1, "geofences": 0}}
    assert len(client.get("/api/devices").json()["items"]) == 1

    notices, _ = read_since(fake_redis, 0)
    assert notices[-1]["type"] == "admin_notice"
    assert notices[-1]["data"]["kind"] == "configuration_imported"


def test_admin_lock_conflict(client: TestClient, fake_redis) -> None:
    fake_redis.set(admin.K_ADMIN_LOCK, "1")
    assert client.post("/api/admin/reset").status_code == 409


def test_admin_reset_and_report(client: TestClient) -> None:
    res = client.post("/api/admin/reset")
    assert res.status_code == 200
    assert len(client.get("/api/devices").json()["items"]) == 5

    report = client.get("/api/admin/report").json()
    assert report["statistics"]["totalDevices"] == 5
    assert report["alerts"]


def test_health(client: TestClient) -> None:
    body = client.get("/api/health").json()
    assert body["ok"] is True
    assert body["redis"]["ok"] is True
    assert body["counts"]["devices"] == 0


# -------------------------------
# SSE feed
# -------------------------------
def test_sse_format() -> None:
    assert sse("hello", {"ok": True}) == 'event: hello\ndata: {"ok": true}\n\n'


def test_feed_survives_trimming(fake_redis) -> None:
    for i in range(10):
        push_update(fake_redis, {"type": "n", "data": {"i": i}}, backlog=3)

    items, seq = read_since(fake_redis, 5)
    assert seq == 10
    assert [m["data"]["i"] for m in items] == [7, 8, 9]

    push_update(fake_redis, {"type": "n", "data": {"i": 10}}, backlog=3)
    items, seq = read_since(fake_redis, seq)
    assert [m["data"]["i"] for m in items] == [10]
    assert feed_position(fake_redis) == 11


def test_update_feed_flushes_alerts_before_snapshot(service: RTLSService, sensor_spec: dict, fake_redis) -> None:
    feed = UpdateFeed(fake_redis)
    service.alerts.on_alert_raised(feed.on_alert)
    service.on_data_updated(feed)

    service.create_device({**sensor_spec, "temperature": 30.0})
    service.publish(service.snapshot())

    items, _ = read_since(fake_redis, 0)
    assert [m["type"] for m in items] == ["alert_raised", "data_updated"]
    assert items[0]["data"]["type"] == "temperature"
    assert len(items[1]["data"]["devices"]) == 1


def test_update_feed_caps_buffered_alerts(service: RTLSService, sensor_spec: dict, fake_redis) -> None:
    feed = UpdateFeed(fake_redis, backlog=3)
    device = service.create_device(sensor_spec)
    for i in range(5):
        feed.on_alert(service.alerts.raise_alert(device, "battery", "medium", f"n{i}"))

    feed({"devices": [], "alerts": []})

    items, seq = read_since(fake_redis, 0)
    assert seq == 4
    assert [m["data"]["message"] for m in items if m["type"] == "alert_raised"] == ["n3", "n4"]


# -------------------------------
# Lifecycle
# -------------------------------
def test_startup_without_generators_runs_maintenance(
    service: RTLSService, sensor_spec: dict, clock, fake_redis, monkeypatch: pytest.MonkeyPatch
) -> None:
    monkeypatch.setattr(main, "get_service", lambda: service)
    monkeypatch.setattr(main, "get_redis", lambda: fake_redis)
    monkeypatch.setattr(main.settings, "generators_enabled", False)
    monkeypatch.setattr(main.settings, "seed_demo_fleet", False)

    async def scenario():
        await main.startup()
        sim = main.simulator
        try:
            assert sim.running
            assert sim.generate is False

            device = service.create_device({**sensor_spec, "temperature": 30.0})
            hot = service.list_alerts(device_id=device.id)[0]
            service.resolve_alert(hot.id)

            clock.advance(40 * 24 * 3600)
            await sim.run_once()
            return device
        finally:
            await main.shutdown()

    device = asyncio.run(scenario())

    after = service.get_device(device.id)
    assert after.status == "offline"
    assert after.temperature == 30.0
    assert [a.type for a in service.list_alerts()] == ["offline"]
    assert main.simulator is None

    items, _ = read_since(fake_redis, 0)
    raised = [m["data"]["type"] for m in items if m["type"] == "alert_raised"]
    assert raised == ["temperature", "offline"]
    assert items[-1]["type"] == "data_updated"
