"""
RabbitMQ consumer for the processing worker.

Consumes process-event jobs published by the ingestion service and runs
them through the pipeline. Up to `worker_concurrency` jobs are in flight
at once (the channel prefetch). A job that fails is rejected without
requeue; dead-lettering is broker configuration.
"""

import asyncio
import json
import logging
from typing import Optional

import aio_pika
from aio_pika.abc import AbstractIncomingMessage

from faultline.core.config import settings
from faultline.processing.pipeline import ErrorProcessingService

logger = logging.getLogger(__name__)


class EventConsumer:
    def __init__(
        self,
        service: ErrorProcessingService,
        url: Optional[str] = None,
        queue: Optional[str] = None,
        prefetch: Optional[int] = None,
    ):
        self.service = service
        self.url = url or settings.rabbitmq_url
        self.queue = queue or settings.events_queue
        self.prefetch = prefetch or settings.worker_concurrency

    async def handle(self, message: AbstractIncomingMessage) -> None:
        """
        Process a single job message.

        1. Parse {"eventId", "projectId"}
        2. Run the pipeline
        3. Ack, or reject without requeue on failure
        """
        async with message.process(ignore_processed=True):
            try:
                job = json.loads(message.body.decode())
                await self.service.process_event(job["eventId"], job.get("projectId"))
            except Exception:
                logger.exception("❌ Error processing message %s", message.message_id)
                await message.reject(requeue=False)

    async def start(self) -> None:
        """
        Start consuming jobs from RabbitMQ.

        This runs as a background task and processes jobs indefinitely.
        """
        logger.info("📡 Connecting to RabbitMQ at %s...", self.url)

        connection = await aio_pika.connect_robust(self.url)
        channel = await connection.channel()
        await channel.set_qos(prefetch_count=self.prefetch)

        # Declare queue (must match the ingestion service)
        queue = await channel.declare_queue(self.queue, durable=True)

        logger.info("✅ Connected! Consuming from queue '%s'...", self.queue)

        await queue.consume(self.handle)

        try:
            await asyncio.Future()  # Run forever
        finally:
            await connection.close()
