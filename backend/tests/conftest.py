from __future__ import annotations

import datetime as dt
import random

import fakeredis
import pytest

from rtls.config import Settings
from rtls.service import RTLSService


class FakeClock:
    def __init__(self, start: dt.datetime) -> None:
        self.now = start

    def __call__(self) -> dt.datetime:
        return self.now

    def advance(self, seconds: float) -> dt.datetime:
        self.now = self.now + dt.timedelta(seconds=seconds)
        return self.now


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock(dt.datetime(2026, 3, 2, 8, 0, tzinfo=dt.timezone.utc))


@pytest.fixture()
def config() -> Settings:
    return Settings(
        generators_enabled=False,
        seed_demo_fleet=False,
        offline_after_sec=300,
        warning_margin_c=2.0,
        low_battery_threshold=20,
        alert_retention_days=30,
        position_jitter_deg=0.0,
        language="en",
        temperature_unit="celsius",
    )


@pytest.fixture()
def service(config: Settings, clock: FakeClock) -> RTLSService:
    return RTLSService(config, clock=clock)


@pytest.fixture()
def rng() -> random.Random:
    return random.Random(1234)


@pytest.fixture()
def fake_redis():
    return fakeredis.FakeRedis(decode_responses=True)


@pytest.fixture()
def berlin_zone() -> dict:
    return {
        "name": "Secure Zone A",
        "center": {"latitude": 52.52, "longitude": 13.405},
        "radius": 500,
        "alert_on_exit": True,
        "alert_on_entry": False,
    }


@pytest.fixture()
def sensor_spec() -> dict:
    return {
        "name": "Main Office Sensor",
        "mac_address": "00:1B:44:11:3A:B7",
        "zone": "Zone A",
        "latitude": 52.52,
        "longitude": 13.405,
        "temperature": 22.5,
        "temperature_threshold": 25.0,
    }
