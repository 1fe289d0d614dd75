# NATS-backed implementations of the persistence sink and notification
# channel, plus a logging channel for running without a broker.

import logging

import nats
import pydantic

from errors import DispatchError, PersistenceError, RecipientResolutionError
from models import AlertRecord, Notification, Reading, Recipient, RecipientQuery, Sensor
from stream import Stream

logger = logging.getLogger(__name__)

RECIPIENT_LIST = pydantic.TypeAdapter(list[Recipient])


class NatsPersistenceSink:
    def __init__(self, connection: nats.NATS, prefix: str = "aquawatch",
                 request_timeout: float = 2):
        self.connection = connection
        self.prefix = prefix
        self.request_timeout = request_timeout

    async def _publish(self, subject: str, data: pydantic.BaseModel) -> None:
        try:
            await Stream(self.connection, subject=subject).publish(data)
        except Exception as e:
            raise PersistenceError(f"Publish to {subject} failed: {e}") from e

    async def put_reading(self, reading: Reading) -> None:
        await self._publish(f"{self.prefix}.readings.{reading.sensor_id}", reading)

    async def upsert_sensor_state(self, sensor: Sensor) -> None:
        await self._publish(f"{self.prefix}.sensors.{sensor.id}", sensor)

    async def put_alert_record(self, record: AlertRecord) -> None:
        await self._publish(f"{self.prefix}.alerts.{record.severity}", record)

    async def query_recipients(self, query: RecipientQuery) -> list[Recipient]:
        directory = Stream(self.connection,
                           subject=f"{self.prefix}.directory.recipients",
                           model=RECIPIENT_LIST,
                           timeout=self.request_timeout)
        try:
            return await directory.request(query)
        except pydantic.ValidationError as e:
            raise RecipientResolutionError(f"Invalid directory reply: {e}") from e
        except Exception as e:
            raise RecipientResolutionError(f"Directory query failed: {e}") from e


class NatsNotificationChannel:
    def __init__(self, connection: nats.NATS, prefix: str = "aquawatch"):
        self.stream = Stream(connection, subject=f"{prefix}.notifications",
                             model=Notification)

    async def send(self, address: str, subject: str, body: str) -> bool:
        severity = subject.split(" ", 1)[0].lower()
        if severity not in ("critical", "warning"):
            severity = "info"
        notification = Notification(recipient=address, title=subject,
                                    message=body, severity=severity)
        try:
            await self.stream.publish(notification)
        except Exception as e:
            raise DispatchError(f"Notification to {address} failed: {e}") from e
        return True


class LoggingNotificationChannel:
    """Channel that only logs, for running without a message broker."""

    async def send(self, address: str, subject: str, body: str) -> bool:
        logger.info("Notification to %s: %s", address, subject)
        logger.debug("Notification body:\n%s", body)
        return True
