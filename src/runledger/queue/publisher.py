"""
AMQP publisher handing runs to a queue consumer.

Each publish opens its own blocking connection: pika connections are not
thread-safe, and the HTTP front end publishes from worker threads.
"""

import logging
from collections.abc import Callable

import pika

from runledger.schema import QueueEnvelope

logger = logging.getLogger(__name__)

ConnectionFactory = Callable[[], pika.BlockingConnection]


class QueuePublisher:
    """
    Publishes QueueEnvelopes to a durable queue.

    Attributes:
        url: AMQP URL of the broker
        queue_name: Durable queue the envelopes are sent to
    """

    def __init__(
        self,
        url: str,
        queue_name: str,
        connection_factory: ConnectionFactory | None = None,
    ) -> None:
        self.url = url
        self.queue_name = queue_name
        self._connection_factory = connection_factory or self._connect

    def _connect(self) -> pika.BlockingConnection:
        return pika.BlockingConnection(pika.URLParameters(self.url))

    def publish(self, envelope: QueueEnvelope) -> None:
        """Send one envelope as a persistent JSON message."""
        connection = self._connection_factory()
        try:
            channel = connection.channel()
            channel.queue_declare(queue=self.queue_name, durable=True)
            channel.basic_publish(
                exchange="",
                routing_key=self.queue_name,
                body=envelope.model_dump_json(by_alias=True),
                properties=pika.BasicProperties(
                    content_type="application/json",
                    delivery_mode=pika.DeliveryMode.Persistent,
                ),
            )
        finally:
            connection.close()
        logger.info("Published run %s to %s", envelope.run_id, self.queue_name)
