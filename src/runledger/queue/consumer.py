"""
AMQP consumer processing runs published to a durable queue.

Deliveries are processed one at a time and always acknowledged, never
requeued: a run that cannot be processed is marked failed instead of being
redelivered forever.
"""

import json
import logging
from collections.abc import Callable
from typing import Any

import pika
from pydantic import ValidationError as PydanticValidationError

from runledger.engine import FAILED_REASON, ProcessResult, RunProcessor
from runledger.schema import QueueEnvelope

ConnectionFactory = Callable[[], pika.BlockingConnection]


def envelope_run_id(body: bytes | str) -> str | None:
    """Best-effort run id of a delivery whose envelope does not validate."""
    try:
        data = json.loads(body)
    except ValueError:
        return None
    if not isinstance(data, dict):
        return None
    run_id = data.get("runId", data.get("run_id"))
    if isinstance(run_id, bool) or not isinstance(run_id, (str, int)):
        return None
    return str(run_id) or None


class QueueConsumer:
    """
    Consumes QueueEnvelopes and runs them through a RunProcessor.

    Usage:
        consumer = QueueConsumer(processor, url, "runledger.runs")
        consumer.run()  # blocks until interrupted

    Attributes:
        processor: Processor each delivered run is handed to
        url: AMQP URL of the broker
        queue_name: Durable queue to consume from
        logger: Logger receiving progress and failures
    """

    def __init__(
        self,
        processor: RunProcessor,
        url: str,
        queue_name: str,
        logger: logging.Logger | None = None,
        connection_factory: ConnectionFactory | None = None,
    ) -> None:
        self.processor = processor
        self.url = url
        self.queue_name = queue_name
        self.logger = logger or logging.getLogger(__name__)
        self._connection_factory = connection_factory or self._connect

    def _connect(self) -> pika.BlockingConnection:
        return pika.BlockingConnection(pika.URLParameters(self.url))

    def handle_delivery(
        self,
        channel: Any,
        method: Any,
        properties: Any,
        body: bytes,
    ) -> ProcessResult | None:
        """
        Process one delivery and acknowledge it.

        An envelope without messages processes the run's stored transcript.
        An envelope that does not validate but still names a run marks that
        run failed.

        Returns:
            The processing result, or None if the delivery was discarded or
            processing raised
        """
        try:
            try:
                envelope = QueueEnvelope.model_validate_json(body)
            except PydanticValidationError:
                self.logger.exception("Discarding unparseable delivery %s", method.delivery_tag)
                self._fail_named_run(body)
                return None

            self.logger.info("Processing run %s", envelope.run_id)
            result = self.processor.process_or_fail(
                envelope.run_id,
                envelope.messages or None,
                tools_only=envelope.tools_only,
            )
            if result is not None:
                self.logger.info("Run %s processed: %s", envelope.run_id, result.status.value)
            return result
        finally:
            channel.basic_ack(delivery_tag=method.delivery_tag)

    def _fail_named_run(self, body: bytes | str) -> None:
        run_id = envelope_run_id(body)
        if run_id is None:
            return
        try:
            self.processor.mark_failed(run_id, FAILED_REASON)
        except Exception:
            self.logger.exception("Run %s could not be marked failed", run_id)

    def run(self) -> None:
        """Consume deliveries until interrupted."""
        connection = self._connection_factory()
        try:
            channel = connection.channel()
            channel.queue_declare(queue=self.queue_name, durable=True)
            channel.basic_qos(prefetch_count=1)
            channel.basic_consume(
                queue=self.queue_name,
                on_message_callback=self.handle_delivery,
            )
            self.logger.info("Waiting for runs on %s. To exit press CTRL+C", self.queue_name)
            try:
                channel.start_consuming()
            except KeyboardInterrupt:
                channel.stop_consuming()
        finally:
            connection.close()
