from __future__ import annotations

import datetime as dt
import math
import random

import pytest

from errors import GenerationError
from models import PARAMETERS, NormalRange, ParameterBand, Range
from readings import (ANOMALY_PROFILES, ReadingGenerator, daily_factor,
                      seasonal_factor)
from thresholds import DEFAULT_BANDS

pytestmark = pytest.mark.generator


def _assert_rounding(values: dict) -> None:
    for name, value in values.items():
        if name in ("ecoli", "tds"):
            assert isinstance(value, int), name
        else:
            assert round(value, 2) == value, name


@pytest.mark.parametrize("month, expected", [
    (1, -0.2), (2, -0.2), (3, 0.1), (5, 0.1), (6, 0.8), (9, 0.8),
    (10, 0.6), (11, 0.6), (12, -0.2),
])
def test_seasonal_factor(month: int, expected: float) -> None:
    assert seasonal_factor(month) == expected


@pytest.mark.parametrize("hour, expected", [
    (0, 0.0), (5, -0.1), (8, -0.1), (9, 0.0), (12, 0.2), (16, 0.2),
    (17, 0.0), (20, -0.05), (23, -0.05),
])
def test_daily_factor(hour: int, expected: float) -> None:
    assert daily_factor(hour) == expected


def test_values_stay_within_clamp_bounds(sensor) -> None:
    generator = ReadingGenerator(rng=random.Random(7), anomaly_probability=0,
                                 offline_probability=0)
    start = dt.datetime(2025, 1, 1)
    for i in range(500):
        now = start + dt.timedelta(hours=i * 7)
        reading = generator.generate(sensor, now)
        assert reading.anomaly is None
        for name in PARAMETERS:
            normal = DEFAULT_BANDS[name].normal
            value = reading.values[name]
            assert normal.min * 0.8 - 1e-9 <= value <= normal.max * 1.2 + 1e-9


def test_rounding_holds_for_every_reading(sensor) -> None:
    generator = ReadingGenerator(rng=random.Random(99), anomaly_probability=0.5,
                                 offline_probability=0.2)
    for _ in range(300):
        reading = generator.generate(sensor, dt.datetime(2025, 7, 1, 14))
        _assert_rounding(reading.values)


def test_same_seed_reproduces_readings(sensor) -> None:
    now = dt.datetime(2025, 8, 3, 13)
    first = ReadingGenerator(rng=random.Random(42))
    second = ReadingGenerator(rng=random.Random(42))
    for _ in range(50):
        assert first.generate(sensor, now) == second.generate(sensor, now)


def test_reading_snapshots_sensor(sensor) -> None:
    generator = ReadingGenerator(rng=random.Random(3), anomaly_probability=0,
                                 offline_probability=0)
    reading = generator.generate(sensor, dt.datetime(2025, 4, 2, 9))
    assert reading.sensor_id == "S1"
    assert reading.location == sensor.location
    assert reading.status == "online"
    assert 95 <= reading.battery_level <= 100
    assert 60 <= reading.signal_strength <= 100


def test_previously_offline_sensor_comes_back_online(sensor) -> None:
    sensor.status = "offline"
    sensor.battery_level = 0
    generator = ReadingGenerator(rng=random.Random(5), anomaly_probability=0,
                                 offline_probability=0)
    reading = generator.generate(sensor, dt.datetime(2025, 4, 2, 9))
    assert reading.status == "online"
    assert 95 <= reading.battery_level <= 100


def test_integer_parameters_round_inside_clamp_window(sensor) -> None:
    bands = dict(DEFAULT_BANDS)
    # optimal far outside normal so every value hits the clamp
    bands["tds"] = ParameterBand(
        normal=NormalRange(min=201, max=499, optimal=10),
        warning=Range(min=150, max=600),
        critical=Range(min=100, max=900),
    )
    bands["ecoli"] = ParameterBand(
        normal=NormalRange(min=0, max=4.3, optimal=100),
        warning=Range(min=0, max=5),
        critical=Range(min=0, max=10),
    )
    generator = ReadingGenerator(bands, rng=random.Random(8), anomaly_probability=0,
                                 offline_probability=0)
    for _ in range(50):
        reading = generator.generate(sensor, dt.datetime(2025, 7, 1, 14))
        assert reading.values["tds"] == 161
        assert reading.values["ecoli"] == 5
        assert 201 * 0.8 <= reading.values["tds"]
        assert reading.values["ecoli"] <= 4.3 * 1.2


def test_forced_offline_injection(sensor) -> None:
    generator = ReadingGenerator(rng=random.Random(5), anomaly_probability=0,
                                 offline_probability=1)
    reading = generator.generate(sensor, dt.datetime(2025, 4, 2, 9))
    assert reading.status == "offline"
    assert reading.battery_level == 0
    # the generator never mutates the sensor itself
    assert sensor.status == "online"


def test_anomaly_is_tagged_with_profile(sensor) -> None:
    generator = ReadingGenerator(rng=random.Random(11), anomaly_probability=1,
                                 offline_probability=0)
    seen = set()
    for _ in range(60):
        reading = generator.generate(sensor, dt.datetime(2025, 4, 2, 9))
        assert reading.anomaly in ANOMALY_PROFILES
        seen.add(reading.anomaly)
    assert seen == set(ANOMALY_PROFILES)


@pytest.mark.parametrize("profile", ANOMALY_PROFILES)
def test_anomaly_profiles(profile: str) -> None:
    generator = ReadingGenerator(rng=random.Random(0))
    values = {"ph": 7.2, "ecoli": 0, "turbidity": 2.0, "temperature": 25.0,
              "tds": 300}
    battery, signal = generator.inject(profile, values, 97.0, 80.0)

    if profile == "contamination":
        assert 10 <= values["ecoli"] <= 29
        assert values["turbidity"] >= 15
        assert 5.8 <= values["ph"] <= 6.3
        assert (battery, signal) == (97.0, 80.0)
    elif profile == "equipment_malfunction":
        assert values["ph"] in (4.0, 10.5)
        assert battery < 20
        assert signal < 30
    else:
        assert values["temperature"] >= 38
        assert 700 <= values["tds"] <= 900
        assert isinstance(values["tds"], int)


def test_unknown_anomaly_profile_raises() -> None:
    generator = ReadingGenerator(rng=random.Random(0))
    with pytest.raises(GenerationError):
        generator.inject("meteor_strike", {}, 90.0, 80.0)


def test_non_finite_band_raises(sensor) -> None:
    bands = dict(DEFAULT_BANDS)
    bands["ph"] = ParameterBand(
        normal=NormalRange(min=6.5, max=math.inf, optimal=7.2),
        warning=Range(min=6.0),
        critical=Range(min=5.5),
    )
    generator = ReadingGenerator(bands, rng=random.Random(0))
    with pytest.raises(GenerationError, match="ph"):
        generator.generate(sensor, dt.datetime(2025, 4, 2, 9))
