# Synthetic water-quality readings with seasonal and diurnal drift plus
# occasional injected anomalies. All randomness comes from the generator's own
# random.Random so a seed reproduces a run.

import logging
import math
import random
from datetime import datetime
from typing import Optional

from errors import GenerationError
from models import PARAMETERS, BandTable, Reading, Sensor
from thresholds import DEFAULT_BANDS

logger = logging.getLogger(__name__)

ANOMALY_PROBABILITY = 0.05
OFFLINE_PROBABILITY = 0.02
ANOMALY_PROFILES = ("contamination", "equipment_malfunction", "seasonal_extreme")
INTEGER_PARAMETERS = ("ecoli", "tds")


def seasonal_factor(month: int) -> float:
    """Contamination bias for a calendar month (1-12)."""
    if 6 <= month <= 9:  # monsoon
        return 0.8
    if 10 <= month <= 11:  # post-monsoon
        return 0.6
    if month == 12 or month <= 2:  # winter
        return -0.2
    return 0.1


def daily_factor(hour: int) -> float:
    """Quality bias for an hour of the day (0-23)."""
    if 5 <= hour <= 8:
        return -0.1
    if 12 <= hour <= 16:
        return 0.2
    if 20 <= hour <= 23:
        return -0.05
    return 0.0


def round_parameter(name: str, value: float):
    if name in INTEGER_PARAMETERS:
        return int(round(value))
    return round(value, 2)


class ReadingGenerator:
    def __init__(self, bands: Optional[BandTable] = None,
                 rng: Optional[random.Random] = None,
                 anomaly_probability: float = ANOMALY_PROBABILITY,
                 offline_probability: float = OFFLINE_PROBABILITY):
        self.bands = bands if bands is not None else DEFAULT_BANDS
        self.rng = rng if rng is not None else random.Random()
        self.anomaly_probability = anomaly_probability
        self.offline_probability = offline_probability

    def parameter(self, name: str, seasonal: float, daily: float):
        normal = self.bands[name].normal
        value = normal.optimal
        value += normal.optimal * seasonal * 0.1
        value += normal.optimal * daily * 0.05
        value += (self.rng.random() - 0.5) * (normal.max - normal.min) * 0.1

        if not math.isfinite(value):
            raise GenerationError(f"Non-finite value generated for {name}: {value}")

        low, high = normal.min * 0.8, normal.max * 1.2
        if name in INTEGER_PARAMETERS:
            # whole-number parameters must round inside the clamp window too
            low, high = math.ceil(low), math.floor(high)
        value = max(low, min(high, value))
        return round_parameter(name, value)

    def generate(self, sensor: Sensor, now: datetime) -> Reading:
        seasonal = seasonal_factor(now.month)
        daily = daily_factor(now.hour)

        values = {name: self.parameter(name, seasonal, daily)
                  for name in PARAMETERS if name in self.bands}
        battery_level = round(max(20.0, 100 - self.rng.random() * 5), 2)
        signal_strength = float(self.rng.randint(60, 100))
        status = "online"
        anomaly = None

        if self.rng.random() < self.anomaly_probability:
            anomaly = self.rng.choice(ANOMALY_PROFILES)
            battery_level, signal_strength = self.inject(
                anomaly, values, battery_level, signal_strength)
            logger.debug("Injected %s anomaly for %s", anomaly, sensor.id)

        # offline is rolled fresh every tick; the sensor's previous status
        # does not carry over
        if self.rng.random() < self.offline_probability:
            status = "offline"
            battery_level = 0.0

        return Reading(
            sensor_id=sensor.id,
            timestamp=now,
            location=sensor.location,
            values=values,
            battery_level=battery_level,
            signal_strength=signal_strength,
            status=status,
            anomaly=anomaly,
        )

    def inject(self, profile: str, values: dict, battery_level: float,
               signal_strength: float) -> tuple[float, float]:
        """Overwrite values in place with an anomaly profile.

        Returns the (possibly collapsed) battery level and signal strength.
        """
        rng = self.rng
        if profile == "contamination":
            values["ecoli"] = rng.randint(10, 29)
            values["turbidity"] = round(rng.random() * 25 + 15, 2)
            values["ph"] = round(5.8 + rng.random() * 0.5, 2)
        elif profile == "equipment_malfunction":
            values["ph"] = 4.0 if rng.random() < 0.5 else 10.5
            battery_level = round(rng.random() * 20, 2)
            signal_strength = round(rng.random() * 30, 2)
        elif profile == "seasonal_extreme":
            values["temperature"] = round(38 + rng.random() * 5, 2)
            values["tds"] = int(round(700 + rng.random() * 200))
        else:
            raise GenerationError(f"Unknown anomaly profile: {profile}")
        return battery_level, signal_strength
