from __future__ import annotations

import datetime as dt

import pytest

from rtls.alerts import AlertEngine, format_temperature
from rtls.errors import NotFoundError
from rtls.evaluator import Evaluation
from rtls.models import Device, Geofence, GeoPoint

T0 = dt.datetime(2026, 3, 2, 8, 0, tzinfo=dt.timezone.utc)


def _device(**kw) -> Device:
    base = dict(
        id="dev_1",
        name="North Warehouse Sensor",
        zone="Zone B",
        latitude=52.53,
        longitude=13.39,
        temperature=28.3,
        temperature_threshold=25.0,
        last_update=T0,
    )
    base.update(kw)
    return Device(**base)


def _critical() -> Evaluation:
    return Evaluation(status="critical", is_in_geofence=False, transitioned=("online", "critical"))


def test_raise_keeps_newest_first() -> None:
    engine = AlertEngine()
    d = _device()
    first = engine.raise_alert(d, "battery", "medium", "low", now=T0)
    second = engine.raise_alert(d, "battery", "medium", "low", now=T0 + dt.timedelta(seconds=1))

    assert [a.id for a in engine.list()] == [second.id, first.id]
    assert first.state == "unread_active"
    assert first.zone == "Zone B"


def test_critical_entry_raises_once() -> None:
    engine = AlertEngine()
    d = _device()

    raised = engine.apply(d, _critical(), geofences={}, now=T0)
    assert len(raised) == 1
    alert = raised[0]
    assert (alert.type, alert.severity) == ("temperature", "critical")
    assert "28.3" in alert.message

    # a second entry while the first is still active is suppressed
    assert engine.apply(d, _critical(), geofences={}, now=T0) == []
    assert len(engine) == 1


def test_resolved_alert_allows_a_new_one() -> None:
    engine = AlertEngine()
    d = _device()
    first = engine.apply(d, _critical(), geofences={}, now=T0)[0]
    engine.resolve(first.id, now=T0)

    again = engine.apply(d, _critical(), geofences={}, now=T0)
    assert len(again) == 1
    assert again[0].id != first.id


def test_offline_entry_alert() -> None:
    engine = AlertEngine()
    d = _device(status="offline", last_update=T0 - dt.timedelta(minutes=5))
    ev = Evaluation(status="offline", is_in_geofence=False, transitioned=("online", "offline"), stale=True)

    alert = engine.apply(d, ev, geofences={}, now=T0)[0]
    assert (alert.type, alert.severity) == ("offline", "high")
    assert "5 min" in alert.message


def test_marked_offline_alert_does_not_report_silence() -> None:
    engine = AlertEngine()
    d = _device(status="offline", last_update=T0)
    ev = Evaluation(status="offline", is_in_geofence=False, transitioned=("online", "offline"))

    alert = engine.apply(d, ev, geofences={}, now=T0)[0]
    assert alert.type == "offline"
    assert alert.message == "Device marked offline"


@pytest.mark.parametrize(
    "prior, level, expected",
    [(21, 19, 1), (20, 19, 1), (19, 18, 0), (30, 25, 0), (None, 5, 0)],
)
def test_battery_alert_only_on_crossing(prior, level, expected) -> None:
    engine = AlertEngine(low_battery_threshold=20)
    d = _device(temperature=20.0, battery_level=level)
    ev = Evaluation(status="online", is_in_geofence=False)

    raised = engine.apply(d, ev, geofences={}, prior_battery=prior, now=T0)
    assert len(raised) == expected
    if expected:
        assert (raised[0].type, raised[0].severity) == ("battery", "medium")


def test_geofence_exit_respects_flags() -> None:
    engine = AlertEngine()
    watched = Geofence(name="Dock", center=GeoPoint(latitude=0, longitude=0), radius=10, alert_on_exit=True)
    ignored = Geofence(name="Yard", center=GeoPoint(latitude=0, longitude=0), radius=10, alert_on_exit=False)
    zones = {watched.id: watched, ignored.id: ignored}
    d = _device(temperature=20.0, zone=None)

    ev = Evaluation(status="online", is_in_geofence=False, exited=frozenset({ignored.id}))
    assert engine.apply(d, ev, geofences=zones, now=T0) == []

    ev = Evaluation(status="online", is_in_geofence=False, exited=frozenset(zones))
    raised = engine.apply(d, ev, geofences=zones, now=T0)
    assert len(raised) == 1
    assert raised[0].type == "geofence"
    assert raised[0].severity == "high"
    assert "Dock" in raised[0].message and "Yard" not in raised[0].message
    assert raised[0].zone == "Dock"


def test_geofence_entry_alert() -> None:
    engine = AlertEngine()
    zone = Geofence(name="Server room", center=GeoPoint(latitude=0, longitude=0), radius=10, alert_on_entry=True)
    ev = Evaluation(status="online", is_in_geofence=True, entered=frozenset({zone.id}))

    raised = engine.apply(_device(temperature=20.0), ev, geofences={zone.id: zone}, now=T0)
    assert "entered" in raised[0].message


def test_resolve_is_idempotent() -> None:
    engine = AlertEngine()
    alert = engine.raise_alert(_device(), "temperature", "critical", "hot", now=T0)

    first = engine.resolve(alert.id, now=T0)
    second = engine.resolve(alert.id, now=T0 + dt.timedelta(hours=1))

    assert first.state == second.state == "resolved"
    assert second.resolved_at == T0
    assert len(engine) == 1


def test_read_lifecycle() -> None:
    engine = AlertEngine()
    a = engine.raise_alert(_device(), "battery", "medium", "low", now=T0)
    b = engine.raise_alert(_device(id="dev_2"), "battery", "medium", "low", now=T0)

    assert engine.mark_read(a.id).state == "read_active"
    assert engine.mark_all_read() == 1
    assert engine.get(b.id).is_read is True

    resolved = engine.resolve(a.id)
    assert resolved.status == "resolved"
    assert resolved.is_resolved is True
    # reading a resolved alert does not reopen it
    assert engine.mark_read(a.id).state == "resolved"


def test_list_filters() -> None:
    engine = AlertEngine()
    d1, d2 = _device(), _device(id="dev_2")
    t = engine.raise_alert(d1, "temperature", "critical", "hot", now=T0)
    engine.raise_alert(d2, "battery", "medium", "low", now=T0 + dt.timedelta(seconds=5))
    engine.resolve(t.id)

    assert [a.type for a in engine.list(status="active")] == ["battery"]
    assert [a.id for a in engine.list(severity="critical")] == [t.id]
    assert [a.device_id for a in engine.list(device_id="dev_2")] == ["dev_2"]
    assert len(engine.list(limit=1)) == 1


def test_delete_and_unknown_ids() -> None:
    engine = AlertEngine()
    alert = engine.raise_alert(_device(), "battery", "medium", "low")

    assert engine.delete(alert.id) is True
    assert engine.delete(alert.id) is False
    with pytest.raises(NotFoundError):
        engine.resolve(alert.id)


def test_purge_only_drops_old_resolved() -> None:
    engine = AlertEngine()
    d = _device()
    old_resolved = engine.raise_alert(d, "battery", "medium", "x", now=T0 - dt.timedelta(days=40))
    old_active = engine.raise_alert(d, "temperature", "critical", "x", now=T0 - dt.timedelta(days=40))
    fresh_resolved = engine.raise_alert(d, "offline", "high", "x", now=T0 - dt.timedelta(days=2))
    engine.resolve(old_resolved.id)
    engine.resolve(fresh_resolved.id)

    assert engine.purge_resolved_older_than(30, now=T0) == 1
    remaining = {a.id for a in engine.list()}
    assert remaining == {old_active.id, fresh_resolved.id}


def test_listener_failure_does_not_block_alerting() -> None:
    engine = AlertEngine()
    seen = []

    def broken(alert):
        raise RuntimeError("notifier down")

    engine.on_alert_raised(broken)
    engine.on_alert_raised(seen.append)

    alert = engine.raise_alert(_device(), "battery", "medium", "low")
    assert seen == [alert]


def test_localized_fahrenheit_message() -> None:
    engine = AlertEngine(language="fr", temperature_unit="fahrenheit")
    alert = engine.apply(_device(temperature=30.0), _critical(), geofences={}, now=T0)[0]

    assert alert.message.startswith("Température critique")
    assert "86.0°F" in alert.message
    assert format_temperature(28.3) == "28.3°C"
