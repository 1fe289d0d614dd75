# Helper module to publish to and query NATS subjects

import logging
import nats
import pydantic
import sys
from typing import Any, Optional

logger = logging.getLogger(__name__)


class Stream:
    @classmethod
    async def connect(cls, url: str, abort_on_error: bool = False) -> nats.NATS:
        async def error_cb(e):
            logger.error("NATS error: %s", e)
            if abort_on_error:
                sys.exit(1)

        async def disconnected_cb():
            logger.warning("Disconnected from NATS server at %s", url)

        logger.debug("Connecting to NATS server at %s", url)
        connection = await nats.connect(url, error_cb=error_cb,
                                        disconnected_cb=disconnected_cb)
        return connection

    def __init__(self,
                 connection: nats.NATS,
                 subject: str,
                 model: Any = None,
                 timeout: float = 2):
        self.connection = connection
        self.subject = subject
        self.model = model
        self.timeout = timeout

    def encode(self, data: Any) -> bytes:
        if isinstance(data, pydantic.BaseModel):
            return data.model_dump_json().encode("utf-8")
        return str(data).encode("utf-8")

    async def publish(self, data: Any) -> None:
        raw_data = self.encode(data)
        logger.debug("Publishing message to subject %s: %s", self.subject, raw_data)
        await self.connection.publish(self.subject, raw_data)

    async def request(self, data: Any) -> Any:
        """Send a request and decode the reply with the stream's model.

        The model may be a pydantic model class or a TypeAdapter.
        """
        raw_data = self.encode(data)
        logger.debug("Requesting on subject %s: %s", self.subject, raw_data)
        msg = await self.connection.request(self.subject, raw_data,
                                            timeout=self.timeout)
        reply = msg.data.decode()
        if self.model is None:
            return reply
        if isinstance(self.model, pydantic.TypeAdapter):
            return self.model.validate_json(reply)
        return self.model.model_validate_json(reply)
