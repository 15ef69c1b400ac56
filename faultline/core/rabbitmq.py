"""
RabbitMQ connection and publisher.

The ingestion service publishes process-event jobs; the processing worker
publishes alert intents. Both use one robust connection per process and
the default exchange with the queue name as routing key.
"""

import json
import logging
from typing import Any, Dict, Optional

import aio_pika
from aio_pika import DeliveryMode, Message
from aio_pika.abc import AbstractChannel, AbstractConnection

from faultline.core.config import settings

logger = logging.getLogger(__name__)


class RabbitPublisher:
    """Publishes JSON messages to durable queues."""

    def __init__(self, url: Optional[str] = None):
        self.url = url or settings.rabbitmq_url
        self._connection: Optional[AbstractConnection] = None
        self._channel: Optional[AbstractChannel] = None

    @property
    def connected(self) -> bool:
        return self._channel is not None

    async def connect(self, *queues: str) -> None:
        """
        Establish connection to RabbitMQ and declare `queues`.

        Called at application startup.
        """
        logger.info("📡 Connecting to RabbitMQ at %s...", self.url)

        self._connection = await aio_pika.connect_robust(self.url)
        self._channel = await self._connection.channel()

        for queue in queues:
            # Queue survives broker restart
            await self._channel.declare_queue(queue, durable=True)

        logger.info("✅ Connected to RabbitMQ, queues %s ready", ", ".join(queues))

    async def disconnect(self) -> None:
        if self._channel:
            await self._channel.close()
            self._channel = None

        if self._connection:
            await self._connection.close()
            self._connection = None

        logger.info("👋 Disconnected from RabbitMQ")

    async def publish(self, queue: str, data: Dict[str, Any]) -> None:
        if self._channel is None:
            raise RuntimeError("RabbitMQ not connected")

        message = Message(
            body=json.dumps(data, default=str).encode(),
            delivery_mode=DeliveryMode.PERSISTENT,
            content_type="application/json",
        )

        await self._channel.default_exchange.publish(message, routing_key=queue)
