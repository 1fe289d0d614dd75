# Render alert notifications and fan them out to recipients. Critical and
# non-critical alerts from one record go out as separate messages. A failed,
# erroring or hung send only counts against that recipient.

import asyncio
import logging
from typing import Optional, Protocol

from errors import DispatchError
from models import (PARAMETERS, Alert, AlertRecord, BandTable, DispatchReport,
                    Recipient)
from thresholds import DEFAULT_BANDS, PARAMETER_INFO

logger = logging.getLogger(__name__)

DEFAULT_EMERGENCY_CONTACTS = ("emergency@assam.gov.in",
                              "water.monitoring@assam.gov.in")

BASE_ACTIONS = (
    "Alert local ASHA workers immediately",
    "Notify village health committee",
    "Consider alternative water sources",
    "Increase monitoring frequency",
)


class NotificationChannel(Protocol):
    async def send(self, address: str, subject: str, body: str) -> bool: ...


def split_tiers(alerts: list[Alert]) -> list[tuple[str, list[Alert]]]:
    """Group alerts into the critical tier and everything else."""
    critical = [a for a in alerts if a.severity == "critical"]
    other = [a for a in alerts if a.severity != "critical"]
    tiers = []
    if critical:
        tiers.append(("critical", critical))
    if other:
        tiers.append(("warning", other))
    return tiers


def render_alert(record: AlertRecord, severity: str, alerts: list[Alert],
                 bands: BandTable) -> tuple[str, str]:
    location = record.location
    subject = (f"{severity.upper()} Water Quality Alert - "
               f"{location.village}, {location.district}")

    lines = [
        f"AquaWatch - {severity.upper()} Water Quality Alert",
        "",
        f"Location: {location.village}, {location.district}",
        f"Sensor ID: {record.sensor_id}",
        f"Timestamp: {record.created_at.strftime('%Y-%m-%d %H:%M:%S')}",
        "",
        "Alert details:",
    ]
    for alert in alerts:
        lines.append(f"  - {alert.parameter}: {alert.value} ({alert.message})")
        lines.append(f"    Action required: {alert.action}")

    lines += ["", "Current readings:"]
    for name in PARAMETERS:
        if name not in record.reading:
            continue
        label = PARAMETER_INFO.get(name, (name,))[0]
        normal = bands[name].normal if name in bands else None
        expected = f" (normal {normal.min:g} - {normal.max:g})" if normal else ""
        lines.append(f"  {label}: {record.reading[name]}{expected}")

    actions = list(BASE_ACTIONS)
    if severity == "critical":
        actions.append("Stop water consumption from this source")
    lines += ["", "Immediate actions:"]
    lines += [f"  {i}. {action}" for i, action in enumerate(actions, 1)]

    return subject, "\n".join(lines)


class NotificationDispatcher:
    def __init__(self, channel: NotificationChannel,
                 emergency_contacts: tuple[str, ...] = DEFAULT_EMERGENCY_CONTACTS,
                 bands: Optional[BandTable] = None,
                 send_timeout: float = 10.0,
                 batch_timeout: float = 30.0):
        self.channel = channel
        self.emergency_contacts = tuple(emergency_contacts)
        self.bands = bands if bands is not None else DEFAULT_BANDS
        self.send_timeout = send_timeout
        self.batch_timeout = batch_timeout

    async def _send_one(self, address: str, subject: str, body: str) -> bool:
        try:
            ok = await asyncio.wait_for(self.channel.send(address, subject, body),
                                        timeout=self.send_timeout)
        except asyncio.TimeoutError:
            logger.warning("Timed out sending to %s", address)
            return False
        except Exception as e:
            logger.warning("Failed to send to %s: %s", address, e)
            return False
        if not ok:
            logger.warning("Channel refused message to %s", address)
        return bool(ok)

    async def _fan_out(self, addresses: list[str], subject: str, body: str,
                       report: DispatchReport) -> None:
        tasks = [asyncio.create_task(self._send_one(address, subject, body))
                 for address in addresses]
        if not tasks:
            return

        done, pending = await asyncio.wait(tasks, timeout=self.batch_timeout)
        if pending:
            logger.warning("%d sends still pending after %.1fs, abandoning them",
                           len(pending), self.batch_timeout)
            for task in pending:
                task.cancel()
            await asyncio.gather(*pending, return_exceptions=True)

        for address, task in zip(addresses, tasks):
            report.record(address, task in done and task.result())

    async def dispatch(self, record: AlertRecord,
                       recipients: list[Recipient]) -> DispatchReport:
        if not recipients:
            raise DispatchError(f"No recipients for alert {record.id}")

        report = DispatchReport()
        for severity, alerts in split_tiers(record.alerts):
            subject, body = render_alert(record, severity, alerts, self.bands)
            addresses = [recipient.email for recipient in recipients]
            if severity == "critical":
                # Emergency contacts are copied even if already resolved.
                addresses += list(self.emergency_contacts)
            await self._fan_out(addresses, subject, body, report)
            report.tiers.append(severity)
            logger.info("%s alert for %s sent to %d addresses",
                        severity.upper(), record.sensor_id, len(addresses))

        if report.failed:
            logger.warning("Alert %s: %d of %d sends failed: %s", record.id,
                           report.failed, report.attempted,
                           ", ".join(report.failed_addresses))
        return report

    async def dispatch_summary(self, subject: str, body: str,
                               recipients: list[Recipient]) -> DispatchReport:
        if not recipients:
            raise DispatchError("No recipients for daily summary")

        report = DispatchReport()
        addresses = [recipient.email for recipient in recipients]
        addresses += list(self.emergency_contacts)
        await self._fan_out(addresses, subject, body, report)
        report.tiers.append("summary")
        logger.info("Daily summary sent to %d of %d addresses", report.succeeded,
                    report.attempted)
        return report
