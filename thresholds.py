# Tiered water-quality thresholds and the evaluator that turns a reading into
# alerts. Water-quality parameters are checked in PARAMETERS order, then
# battery, then connectivity.

import logging
import math
from typing import Optional

from errors import SchedulerFatalError
from models import (PARAMETERS, Alert, BandTable, NormalRange, ParameterBand,
                    Range, Reading)

logger = logging.getLogger(__name__)

LOW_BATTERY_LEVEL = 20

DEFAULT_BANDS: BandTable = {
    "ph": ParameterBand(
        normal=NormalRange(min=6.5, max=8.5, optimal=7.2),
        warning=Range(min=6.0, max=8.8),
        critical=Range(min=5.5, max=9.0),
    ),
    "turbidity": ParameterBand(
        normal=NormalRange(min=0, max=10, optimal=2),
        warning=Range(max=12),
        critical=Range(max=15),
    ),
    "tds": ParameterBand(
        normal=NormalRange(min=200, max=500, optimal=300),
        warning=Range(min=150, max=550),
        critical=Range(min=100, max=600),
    ),
    "ecoli": ParameterBand(
        normal=NormalRange(min=0, max=5, optimal=0),
        warning=Range(max=5),
        critical=Range(max=10),
    ),
    "temperature": ParameterBand(
        normal=NormalRange(min=15, max=35, optimal=25),
        warning=Range(min=10, max=38),
        critical=Range(min=5, max=42),
    ),
    "flow_rate": ParameterBand(
        normal=NormalRange(min=1.0, max=5.0, optimal=2.5),
        warning=Range(min=0.8, max=5.5),
        critical=Range(min=0.5, max=6.0),
    ),
    "dissolved_oxygen": ParameterBand(
        normal=NormalRange(min=5.0, max=12.0, optimal=8.0),
        warning=Range(min=4.0, max=14.0),
        critical=Range(min=3.0, max=16.0),
    ),
}

# label, unit, critical action, warning action
PARAMETER_INFO = {
    "ph": ("pH", "",
           "Immediate water treatment required",
           "Monitor closely, consider water treatment"),
    "turbidity": ("Turbidity", " NTU",
                  "Check water filtration systems",
                  "Inspect filters and sedimentation"),
    "tds": ("TDS", " ppm",
            "Monitor mineral content and treatment systems",
            "Monitor mineral content"),
    "ecoli": ("E.coli", " CFU/100ml",
              "Stop water consumption immediately, alert health authorities",
              "Immediate water disinfection required"),
    "temperature": ("Temperature", " C",
                    "Check for thermal pollution sources",
                    "Monitor temperature trend"),
    "flow_rate": ("Flow Rate", " L/min",
                  "Inspect pumps and pipeline for blockage or leaks",
                  "Check supply line pressure"),
    "dissolved_oxygen": ("Dissolved Oxygen", " mg/L",
                         "Check aeration and pollution sources",
                         "Monitor aeration"),
}


def _lower(band: Range) -> float:
    return -math.inf if band.min is None else band.min


def _upper(band: Range) -> float:
    return math.inf if band.max is None else band.max


def validate_bands(bands: BandTable) -> None:
    """Check every band nests as critical >= warning >= normal.

    Raises SchedulerFatalError naming the first offending parameter.
    """
    for name in PARAMETERS:
        if name not in bands:
            raise SchedulerFatalError(f"Missing band for parameter: {name}")

    for name, band in bands.items():
        normal = band.normal
        values = [normal.min, normal.max, normal.optimal]
        values += [v for v in (band.warning.min, band.warning.max,
                               band.critical.min, band.critical.max)
                   if v is not None]
        if not all(math.isfinite(v) for v in values):
            raise SchedulerFatalError(f"Non-finite band value for {name}")
        if not normal.min < normal.max:
            raise SchedulerFatalError(
                f"Normal band for {name} is empty: {normal.min}..{normal.max}")
        if not normal.min <= normal.optimal <= normal.max:
            raise SchedulerFatalError(
                f"Optimal value for {name} lies outside the normal band")
        if not (_lower(band.warning) <= normal.min
                and normal.max <= _upper(band.warning)):
            raise SchedulerFatalError(
                f"Warning band for {name} does not contain the normal band")
        if not (_lower(band.critical) <= _lower(band.warning)
                and _upper(band.warning) <= _upper(band.critical)):
            raise SchedulerFatalError(
                f"Critical band for {name} does not contain the warning band")


def _describe(label: str, value: float, unit: str, band: Range,
              severity: str) -> str:
    if band.min is not None and value < band.min:
        direction = "Low"
    else:
        direction = "High"
    if severity == "critical":
        return f"Critical {label} level detected: {direction.lower()} {value}{unit}"
    return f"{direction} {label} outside normal range: {value}{unit}"


class ThresholdEvaluator:
    def __init__(self, bands: Optional[BandTable] = None):
        self.bands = bands if bands is not None else DEFAULT_BANDS

    def classify(self, name: str, value: float) -> Optional[Alert]:
        band = self.bands[name]
        label, unit, critical_action, warning_action = PARAMETER_INFO.get(
            name, (name, "", "Investigate immediately", "Monitor closely"))

        if band.critical.violated_by(value):
            return Alert(
                severity="critical",
                parameter=label,
                value=value,
                message=_describe(label, value, unit, band.critical, "critical"),
                action=critical_action,
            )
        if band.warning.violated_by(value):
            return Alert(
                severity="warning",
                parameter=label,
                value=value,
                message=_describe(label, value, unit, band.warning, "warning"),
                action=warning_action,
            )
        return None

    def evaluate(self, reading: Reading) -> list[Alert]:
        alerts: list[Alert] = []

        for name in PARAMETERS:
            if name not in reading.values or name not in self.bands:
                continue
            alert = self.classify(name, reading.values[name])
            if alert:
                alerts.append(alert)

        if reading.battery_level < LOW_BATTERY_LEVEL:
            alerts.append(Alert(
                severity="maintenance",
                parameter="Battery",
                value=reading.battery_level,
                message=f"Low battery level: {reading.battery_level}%",
                action="Schedule battery replacement",
            ))

        if reading.status == "offline":
            alerts.append(Alert(
                severity="technical",
                parameter="Connectivity",
                value="offline",
                message="Sensor gone offline",
                action="Check sensor connectivity and power",
            ))

        if alerts:
            logger.debug("Reading from %s raised %d alerts", reading.sensor_id,
                         len(alerts))
        return alerts
