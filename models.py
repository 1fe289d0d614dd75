from datetime import datetime
from typing import Literal, Optional, Union
import uuid

import pydantic

PARAMETERS = ("ph", "turbidity", "tds", "ecoli", "temperature", "flow_rate",
              "dissolved_oxygen")

Severity = Literal["warning", "critical", "maintenance", "technical"]
SensorStatusValue = Literal["online", "offline"]


class Location(pydantic.BaseModel):
    village: str
    district: str
    lat: Optional[float] = None
    lng: Optional[float] = None


class Sensor(pydantic.BaseModel):
    id: str
    name: str
    location: Location
    status: SensorStatusValue = "online"
    battery_level: float = pydantic.Field(default=100.0, ge=0, le=100)
    signal_strength: float = pydantic.Field(default=100.0, ge=0, le=100)

    def apply_reading(self, reading: "Reading") -> None:
        """Carry the device state captured by a reading back onto the sensor."""
        self.status = reading.status
        self.battery_level = reading.battery_level
        self.signal_strength = reading.signal_strength


class Reading(pydantic.BaseModel):
    model_config = pydantic.ConfigDict(frozen=True)

    sensor_id: str
    timestamp: datetime
    location: Location
    values: dict[str, Union[int, float]]
    battery_level: float
    signal_strength: float
    status: SensorStatusValue
    anomaly: Optional[str] = None


class Range(pydantic.BaseModel):
    min: Optional[float] = None
    max: Optional[float] = None

    def violated_by(self, value: float) -> bool:
        if self.min is not None and value < self.min:
            return True
        if self.max is not None and value > self.max:
            return True
        return False


class NormalRange(pydantic.BaseModel):
    min: float
    max: float
    optimal: float


class ParameterBand(pydantic.BaseModel):
    normal: NormalRange
    warning: Range
    critical: Range


BandTable = dict[str, ParameterBand]


class Alert(pydantic.BaseModel):
    severity: Severity
    parameter: str
    value: Union[float, str]
    message: str
    action: str


class AlertRecord(pydantic.BaseModel):
    id: str = pydantic.Field(default_factory=lambda: uuid.uuid4().hex)
    sensor_id: str
    location: Location
    severity: Literal["warning", "critical"]
    status: Literal["active", "acknowledged"] = "active"
    alerts: list[Alert]
    reading: dict[str, Union[int, float]]
    anomaly: Optional[str] = None
    created_at: datetime
    acknowledged_by: Optional[str] = None
    acknowledged_at: Optional[datetime] = None

    @classmethod
    def from_reading(cls, reading: Reading, alerts: list[Alert]) -> "AlertRecord":
        return cls(
            sensor_id=reading.sensor_id,
            location=reading.location,
            severity=aggregate_severity(alerts),
            alerts=alerts,
            reading=dict(reading.values),
            anomaly=reading.anomaly,
            created_at=reading.timestamp,
        )


def aggregate_severity(alerts: list[Alert]) -> Literal["warning", "critical"]:
    if any(alert.severity == "critical" for alert in alerts):
        return "critical"
    return "warning"


class Recipient(pydantic.BaseModel):
    id: Optional[str] = None
    name: str
    email: str
    role: Optional[str] = None
    position: Optional[str] = None
    department: Optional[str] = None
    phone: Optional[str] = None
    district: Optional[str] = None
    alert_types: list[str] = ["water_quality", "critical_alerts"]
    is_active: bool = True
    verification_status: Optional[str] = None


class RecipientQuery(pydantic.BaseModel):
    role: Optional[str] = None
    verification_status: Optional[str] = None
    is_active: Optional[bool] = None

    def matches(self, recipient: Recipient) -> bool:
        if self.role is not None and recipient.role != self.role:
            return False
        if (self.verification_status is not None
                and recipient.verification_status != self.verification_status):
            return False
        if self.is_active is not None and recipient.is_active != self.is_active:
            return False
        return True


class SensorRuntimeStats(pydantic.BaseModel):
    total_readings: int = 0
    alerts_sent: int = 0
    consecutive_abnormal_readings: int = 0
    failed_ticks: int = 0

    def record_tick(self, alert_count: int) -> None:
        self.total_readings += 1
        if alert_count:
            self.alerts_sent += alert_count
            self.consecutive_abnormal_readings += 1
        else:
            self.consecutive_abnormal_readings = 0


class Notification(pydantic.BaseModel):
    recipient: str
    title: str
    message: str
    severity: str = "warning"
    timestamp: datetime = pydantic.Field(default_factory=datetime.now)


class DispatchReport(pydantic.BaseModel):
    attempted: int = 0
    succeeded: int = 0
    failed: int = 0
    failed_addresses: list[str] = []
    tiers: list[str] = []

    def record(self, address: str, ok: bool) -> None:
        self.attempted += 1
        if ok:
            self.succeeded += 1
        else:
            self.failed += 1
            self.failed_addresses.append(address)


class SensorStatus(pydantic.BaseModel):
    id: str
    name: str
    location: Location
    status: SensorStatusValue
    battery_level: float
    signal_strength: float
    stats: SensorRuntimeStats
    last_reading: Optional[dict[str, Union[int, float]]] = None


class SchedulerStatus(pydantic.BaseModel):
    state: Literal["stopped", "running"]
    tick_count: int
    tick_period: float
    sensors: list[SensorStatus]
