"""Daily water-quality summary built from the in-memory alert history."""

from datetime import datetime, timedelta
from typing import Optional

import pydantic

from models import AlertRecord, SchedulerStatus, SensorStatus
from store import AlertStore

SUMMARY_WINDOW = timedelta(hours=24)
RECENT_ALERT_COUNT = 5


class DailySummary(pydantic.BaseModel):
    generated_at: datetime
    period_start: datetime
    total_sensors: int
    online_sensors: int
    total_readings: int
    total_alerts: int
    critical_alerts: int
    warning_alerts: int
    recent_alerts: list[AlertRecord]
    sensors: list[SensorStatus]


def build_daily_summary(store: AlertStore, status: SchedulerStatus,
                        now: Optional[datetime] = None) -> DailySummary:
    now = now or datetime.now()
    since = now - SUMMARY_WINDOW

    readings = [r for r in store.readings if r.timestamp >= since]
    alerts = [a for a in store.alerts if a.created_at >= since]

    return DailySummary(
        generated_at=now,
        period_start=since,
        total_sensors=len(status.sensors),
        online_sensors=sum(1 for s in status.sensors if s.status == "online"),
        total_readings=len(readings),
        total_alerts=len(alerts),
        critical_alerts=sum(1 for a in alerts if a.severity == "critical"),
        warning_alerts=sum(1 for a in alerts if a.severity == "warning"),
        recent_alerts=alerts[:RECENT_ALERT_COUNT],
        sensors=status.sensors,
    )


def render_summary(summary: DailySummary) -> tuple[str, str]:
    day = summary.generated_at.strftime("%a %b %d %Y")
    subject = f"AquaWatch Daily Summary - {day} | {summary.total_alerts} Alerts"

    lines = [
        "AquaWatch Daily Water Quality Summary Report",
        "",
        f"Period: {summary.period_start:%Y-%m-%d %H:%M} - "
        f"{summary.generated_at:%Y-%m-%d %H:%M}",
        "",
        f"Total sensors: {summary.total_sensors}",
        f"Online sensors: {summary.online_sensors}",
        f"Data points collected: {summary.total_readings}",
        f"Total alerts: {summary.total_alerts}",
        f"Critical alerts: {summary.critical_alerts}",
        f"Warning alerts: {summary.warning_alerts}",
        "",
        "Recent alerts:",
    ]
    if summary.recent_alerts:
        for alert in summary.recent_alerts:
            lines.append(f"  {alert.severity.upper()}: {alert.location.village} "
                         f"({alert.created_at:%Y-%m-%d %H:%M}) - "
                         f"{len(alert.alerts)} issues detected")
    else:
        lines.append("  No alerts in the last 24 hours")

    lines += ["", "Sensor status:"]
    for sensor in summary.sensors:
        lines.append(f"  {sensor.name}: {sensor.status} | "
                     f"readings {sensor.stats.total_readings} | "
                     f"alerts {sensor.stats.alerts_sent}")

    lines += ["", "Recommended actions:"]
    if summary.critical_alerts:
        lines.append("  Immediate attention required for critical water quality issues")
    else:
        lines.append("  No immediate action required")
    if summary.warning_alerts:
        lines.append("  Monitor warning-level water quality indicators")
    lines.append("  Continue regular monitoring and maintenance schedule")

    return subject, "\n".join(lines)
