from __future__ import annotations

import asyncio
import datetime as dt
import random

import pytest

from dispatcher import NotificationDispatcher
from models import Location, Reading, Recipient, RecipientQuery, Sensor
from readings import ReadingGenerator
from recipients import RecipientResolver
from store import AlertStore
from thresholds import DEFAULT_BANDS, ThresholdEvaluator

FIXED_NOW = dt.datetime(2025, 3, 14, 10, 30)

NORMAL_VALUES = {
    "ph": 7.2,
    "turbidity": 2.0,
    "tds": 300,
    "ecoli": 0,
    "temperature": 25.0,
    "flow_rate": 2.5,
    "dissolved_oxygen": 8.0,
}

FALLBACK = [
    Recipient(id="fallback_0", name="Emergency Contact",
              email="emergency@assam.gov.in", district="All",
              verification_status="approved"),
]


def make_reading(sensor_id: str = "S1", battery_level: float = 90.0,
                 status: str = "online", district: str = "Jorhat",
                 **values) -> Reading:
    merged = dict(NORMAL_VALUES)
    merged.update(values)
    return Reading(
        sensor_id=sensor_id,
        timestamp=FIXED_NOW,
        location=Location(village="Majuli Village 1", district=district),
        values=merged,
        battery_level=battery_level,
        signal_strength=80.0,
        status=status,
    )


class FakeSink:
    """In-memory persistence sink with a recipient directory."""

    def __init__(self, recipients: list[Recipient] | None = None):
        self.recipients = recipients or []
        self.readings: list[Reading] = []
        self.sensor_states: dict[str, Sensor] = {}
        self.alert_records = []
        self.queries: list[RecipientQuery] = []
        self.fail_writes = False
        self.fail_queries = False

    async def put_reading(self, reading):
        if self.fail_writes:
            raise ConnectionError("store unavailable")
        self.readings.append(reading)

    async def upsert_sensor_state(self, sensor):
        if self.fail_writes:
            raise ConnectionError("store unavailable")
        self.sensor_states[sensor.id] = sensor.model_copy()

    async def put_alert_record(self, record):
        if self.fail_writes:
            raise ConnectionError("store unavailable")
        self.alert_records.append(record)

    async def query_recipients(self, query):
        self.queries.append(query)
        if self.fail_queries:
            raise ConnectionError("directory unavailable")
        return [r for r in self.recipients if query.matches(r)]


class FakeChannel:
    """Notification channel that records sends and can fail or hang."""

    def __init__(self, fail: set[str] | None = None, raise_for: set[str] | None = None,
                 hang: set[str] | None = None):
        self.fail = fail or set()
        self.raise_for = raise_for or set()
        self.hang = hang or set()
        self.sent: list[tuple[str, str, str]] = []
        self.cancelled: list[str] = []

    async def send(self, address, subject, body):
        if address in self.hang:
            try:
                await asyncio.sleep(3600)
            except asyncio.CancelledError:
                self.cancelled.append(address)
                raise
        if address in self.raise_for:
            raise ConnectionError(f"cannot reach {address}")
        self.sent.append((address, subject, body))
        return address not in self.fail


class StaticGenerator:
    """Generator stand-in that replays fixed value sets per sensor."""

    def __init__(self, script: dict[str, list[Reading]]):
        self.bands = DEFAULT_BANDS
        self.script = {k: list(v) for k, v in script.items()}
        self.calls: list[str] = []

    def generate(self, sensor, now):
        self.calls.append(sensor.id)
        queue = self.script[sensor.id]
        return queue.pop(0) if len(queue) > 1 else queue[0]


@pytest.fixture()
def sensor() -> Sensor:
    return Sensor(id="S1", name="Station 1",
                  location=Location(village="Majuli Village 1", district="Jorhat"),
                  battery_level=90, signal_strength=80)


@pytest.fixture()
def generator() -> ReadingGenerator:
    return ReadingGenerator(rng=random.Random(1234))


@pytest.fixture()
def evaluator() -> ThresholdEvaluator:
    return ThresholdEvaluator()


@pytest.fixture()
def sink() -> FakeSink:
    return FakeSink()


@pytest.fixture()
def channel() -> FakeChannel:
    return FakeChannel()


@pytest.fixture()
def store(sink: FakeSink) -> AlertStore:
    return AlertStore(sink)


@pytest.fixture()
def resolver(sink: FakeSink) -> RecipientResolver:
    return RecipientResolver(sink, FALLBACK, lookup_timeout=1.0)


@pytest.fixture()
def dispatcher(channel: FakeChannel) -> NotificationDispatcher:
    return NotificationDispatcher(channel, send_timeout=0.2, batch_timeout=0.5)
