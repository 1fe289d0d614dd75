"""Runtime settings for the simulator."""

import logging
import pathlib
from typing import Optional

import pydantic

from dispatcher import DEFAULT_EMERGENCY_CONTACTS
from models import BandTable, Location, Recipient, Sensor
from store import ALERT_BUFFER_SIZE, READING_BUFFER_SIZE
from thresholds import DEFAULT_BANDS

logger = logging.getLogger(__name__)

DEFAULT_SENSORS = [
    Sensor(
        id="SENSOR_001_MAJULI_V1",
        name="Majuli Village 1 Water Station",
        location=Location(village="Majuli Village 1", district="Jorhat",
                          lat=26.97, lng=94.17),
    ),
    Sensor(
        id="SENSOR_002_MAJULI_V2",
        name="Majuli Village 2 Water Station",
        location=Location(village="Majuli Village 2", district="Jorhat",
                          lat=26.95, lng=94.15),
    ),
    Sensor(
        id="SENSOR_003_MAJULI_V3",
        name="Majuli Village 3 Water Station",
        location=Location(village="Majuli Village 3", district="Jorhat",
                          lat=26.93, lng=94.13),
    ),
]

DEFAULT_FALLBACK = [
    Recipient(
        id="fallback_0",
        name="Emergency Contact",
        email="emergency@assam.gov.in",
        position="Emergency Response",
        district="All",
        alert_types=["critical_alerts", "water_quality"],
        verification_status="approved",
    ),
]


class Settings(pydantic.BaseModel):
    nats_server: str = "nats://localhost:4222"
    subject_prefix: str = "aquawatch"
    memory_only: bool = False

    tick_period: float = pydantic.Field(default=30.0, gt=0)
    summary_interval: float = pydantic.Field(default=86400.0, ge=0)
    seed: Optional[int] = None

    sensors: list[Sensor] = pydantic.Field(
        default_factory=lambda: [s.model_copy(deep=True) for s in DEFAULT_SENSORS])
    bands: BandTable = pydantic.Field(default_factory=lambda: dict(DEFAULT_BANDS))

    emergency_contacts: list[str] = list(DEFAULT_EMERGENCY_CONTACTS)
    fallback_recipients: list[Recipient] = pydantic.Field(
        default_factory=lambda: list(DEFAULT_FALLBACK), min_length=1)

    send_timeout: float = pydantic.Field(default=10.0, gt=0)
    batch_timeout: float = pydantic.Field(default=30.0, gt=0)
    lookup_timeout: float = pydantic.Field(default=5.0, gt=0)
    reading_buffer: int = pydantic.Field(default=READING_BUFFER_SIZE, gt=0)
    alert_buffer: int = pydantic.Field(default=ALERT_BUFFER_SIZE, gt=0)


class ConfigError(RuntimeError):
    """Raised when the settings file cannot be loaded."""


def load_settings(path: Optional[str] = None, **overrides) -> Settings:
    """Load settings from an optional JSON file, then apply overrides.

    Overrides that are None are ignored, so argparse results can be passed
    straight through.
    """
    data: dict = {}
    if path:
        path_obj = pathlib.Path(path)
        if not path_obj.exists():
            raise ConfigError(f"Config path does not exist: {path_obj}")
        try:
            data = Settings.model_validate_json(
                path_obj.read_text(encoding="utf-8")).model_dump(exclude_unset=True)
        except pydantic.ValidationError as e:
            raise ConfigError(f"Invalid config {path_obj}: {e}") from e
        logger.debug("Loaded settings from %s", path_obj)

    data.update({k: v for k, v in overrides.items() if v is not None})
    try:
        return Settings.model_validate(data)
    except pydantic.ValidationError as e:
        raise ConfigError(f"Invalid settings: {e}") from e
