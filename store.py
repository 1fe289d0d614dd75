# Alert and reading history. Writes go to an external persistence sink when
# one is configured; the bounded in-memory buffers always hold the most recent
# history, newest first, and absorb anything the sink fails to take.

from collections import deque
from datetime import datetime
import logging
from typing import Optional, Protocol

from errors import PersistenceError
from models import AlertRecord, Reading, Recipient, RecipientQuery, Sensor

logger = logging.getLogger(__name__)

READING_BUFFER_SIZE = 100
ALERT_BUFFER_SIZE = 50


class PersistenceSink(Protocol):
    async def put_reading(self, reading: Reading) -> None: ...

    async def upsert_sensor_state(self, sensor: Sensor) -> None: ...

    async def put_alert_record(self, record: AlertRecord) -> None: ...

    async def query_recipients(self, query: RecipientQuery) -> list[Recipient]: ...


class AlertStore:
    def __init__(self, sink: Optional[PersistenceSink] = None,
                 reading_capacity: int = READING_BUFFER_SIZE,
                 alert_capacity: int = ALERT_BUFFER_SIZE):
        self.sink = sink
        self.readings: deque[Reading] = deque(maxlen=reading_capacity)
        self.alerts: deque[AlertRecord] = deque(maxlen=alert_capacity)
        self.unsynced_readings = 0
        self.unsynced_alerts = 0

    async def _write(self, what: str, coro) -> bool:
        try:
            await coro
        except Exception as e:
            error = e if isinstance(e, PersistenceError) else PersistenceError(str(e))
            logger.warning("Failed to store %s, keeping it in memory: %s", what, error)
            return False
        return True

    async def register_sensors(self, sensors: list[Sensor]) -> None:
        if self.sink is None:
            return
        for sensor in sensors:
            await self._write(f"sensor config {sensor.id}",
                              self.sink.upsert_sensor_state(sensor))
        logger.info("Registered %d sensors", len(sensors))

    async def record_reading(self, reading: Reading, sensor: Sensor) -> bool:
        self.readings.appendleft(reading)
        if self.sink is None:
            return False

        ok = await self._write(f"reading from {reading.sensor_id}",
                               self.sink.put_reading(reading))
        if not ok:
            self.unsynced_readings += 1
        # Sensor state is derived from the reading, so a failed upsert is
        # recovered by the next tick.
        await self._write(f"sensor state {sensor.id}",
                          self.sink.upsert_sensor_state(sensor))
        return ok

    async def record_alert(self, record: AlertRecord) -> bool:
        self.alerts.appendleft(record)
        if self.sink is None:
            return False

        ok = await self._write(f"alert {record.id}",
                               self.sink.put_alert_record(record))
        if not ok:
            self.unsynced_alerts += 1
        return ok

    def recent_readings(self, sensor_id: Optional[str] = None,
                        limit: int = 20) -> list[Reading]:
        readings = [r for r in self.readings
                    if sensor_id is None or r.sensor_id == sensor_id]
        return readings[:limit]

    def recent_alerts(self, limit: int = 20, severity: Optional[str] = None,
                      sensor_id: Optional[str] = None) -> list[AlertRecord]:
        alerts = [a for a in self.alerts
                  if (severity is None or a.severity == severity)
                  and (sensor_id is None or a.sensor_id == sensor_id)]
        return alerts[:limit]

    async def acknowledge(self, alert_id: str, acknowledged_by: str,
                          now: Optional[datetime] = None) -> Optional[AlertRecord]:
        for i, record in enumerate(self.alerts):
            if record.id != alert_id:
                continue
            updated = record.model_copy(update={
                "status": "acknowledged",
                "acknowledged_by": acknowledged_by,
                "acknowledged_at": now or datetime.now(),
            })
            self.alerts[i] = updated
            if self.sink is not None:
                await self._write(f"alert {alert_id}",
                                  self.sink.put_alert_record(updated))
            logger.info("Alert %s acknowledged by %s", alert_id, acknowledged_by)
            return updated

        logger.warning("Cannot acknowledge unknown alert %s", alert_id)
        return None
