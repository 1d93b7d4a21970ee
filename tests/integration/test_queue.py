"""
Integration tests for the AMQP front end.

The broker is replaced by MagicMock channels and connections; envelopes are
processed against a real LedgerDB.

Tests cover:
- Processing and acknowledging deliveries
- Failure handling ("Processing failed")
- Discarding unparseable deliveries, failing the run they name
- Consumer and publisher wiring
"""

from typing import Any
from unittest.mock import MagicMock

import pika
import pytest

from runledger.engine import RunProcessor
from runledger.queue import FAILED_REASON, QueueConsumer, QueuePublisher, envelope_run_id
from runledger.schema import MessageCreate, QueueEnvelope, RunStatus
from runledger.store import LedgerDB
from runledger.tools import ToolRegistry


@pytest.fixture
def processor(db: LedgerDB, registry: ToolRegistry) -> RunProcessor:
    return RunProcessor(db, registry)


@pytest.fixture
def consumer(processor: RunProcessor) -> QueueConsumer:
    return QueueConsumer(processor, "amqp://localhost", "runs")


def deliver(consumer: QueueConsumer, body: bytes | str) -> tuple[MagicMock, Any]:
    channel = MagicMock()
    method = MagicMock(delivery_tag=7)
    result = consumer.handle_delivery(channel, method, MagicMock(), body)
    return channel, result


class TestHandleDelivery:
    """Tests for QueueConsumer.handle_delivery."""

    def test_processes_and_acks(
        self,
        consumer: QueueConsumer,
        db: LedgerDB,
        echo_tool: Any,
        echo_call_message: MessageCreate,
    ) -> None:
        run_id = db.create_run()
        envelope = QueueEnvelope(run_id=run_id, messages=[echo_call_message], tools_only=True)

        channel, result = deliver(consumer, envelope.model_dump_json(by_alias=True))

        assert result.success
        assert echo_tool.calls == [{"input": "hi"}]
        assert db.get_run(run_id).status == RunStatus.DONE
        channel.basic_ack.assert_called_once_with(delivery_tag=7)
        channel.basic_nack.assert_not_called()

    def test_empty_envelope_uses_stored_transcript(
        self,
        consumer: QueueConsumer,
        db: LedgerDB,
        echo_tool: Any,
        echo_call_message: MessageCreate,
    ) -> None:
        run_id = db.create_run()
        db.insert_messages(run_id, [echo_call_message])
        deliver(consumer, f'{{"runId": "{run_id}", "toolsOnly": true}}')
        assert echo_tool.calls == [{"input": "hi"}]

    def test_failed_processing_is_acked(self, consumer: QueueConsumer, db: LedgerDB) -> None:
        run_id = db.create_run()
        channel, result = deliver(consumer, f'{{"runId": "{run_id}", "messages": [{{"type": "HumanMessage", "content": "hi"}}]}}')

        # No agent configured: the processor records the failure itself
        assert result.status == RunStatus.FAILED
        assert db.get_run(run_id).status == RunStatus.FAILED
        channel.basic_ack.assert_called_once_with(delivery_tag=7)

    def test_escaping_error_marks_run_failed(self, db: LedgerDB, registry: ToolRegistry) -> None:
        run_id = db.create_run()
        processor = RunProcessor(db, registry)
        processor.process = MagicMock(side_effect=RuntimeError("store went away"))
        consumer = QueueConsumer(processor, "amqp://localhost", "runs")

        channel, result = deliver(consumer, f'{{"runId": "{run_id}"}}')

        assert result is None
        run = db.get_run(run_id)
        assert run.status == RunStatus.FAILED
        assert (run.task_status, run.reason) == ("failed", FAILED_REASON)
        channel.basic_ack.assert_called_once_with(delivery_tag=7)

    def test_unknown_run_is_acked(self, consumer: QueueConsumer) -> None:
        channel, result = deliver(consumer, '{"runId": "404", "toolsOnly": true}')
        assert result is None
        channel.basic_ack.assert_called_once_with(delivery_tag=7)

    @pytest.mark.parametrize("body", [b"not json", b'{"messages": []}', b'{"runId": ""}'])
    def test_unparseable_delivery_discarded(self, consumer: QueueConsumer, body: bytes) -> None:
        channel, result = deliver(consumer, body)
        assert result is None
        channel.basic_ack.assert_called_once_with(delivery_tag=7)

    def test_invalid_messages_mark_named_run_failed(self, consumer: QueueConsumer, db: LedgerDB) -> None:
        run_id = db.create_run()
        channel, result = deliver(consumer, f'{{"runId": "{run_id}", "messages": [{{"type": 42}}]}}')

        assert result is None
        run = db.get_run(run_id)
        assert run.status == RunStatus.FAILED
        assert (run.task_status, run.reason) == ("failed", FAILED_REASON)
        channel.basic_ack.assert_called_once_with(delivery_tag=7)

    def test_duplicate_delivery_keeps_settled_run(
        self,
        consumer: QueueConsumer,
        db: LedgerDB,
        echo_call_message: MessageCreate,
    ) -> None:
        run_id = db.create_run()
        body = QueueEnvelope(run_id=run_id, messages=[echo_call_message], tools_only=True).model_dump_json(by_alias=True)
        deliver(consumer, body)
        before = db.get_run(run_id)

        channel, result = deliver(consumer, body)

        assert not result.success
        after = db.get_run(run_id)
        assert (after.status, after.task_status, after.reason) == (before.status, before.task_status, before.reason)
        channel.basic_ack.assert_called_once_with(delivery_tag=7)


class TestEnvelopeRunId:
    """Tests for recovering the run id of an invalid envelope."""

    @pytest.mark.parametrize(
        ("body", "expected"),
        [
            (b'{"runId": "5", "messages": "nope"}', "5"),
            (b'{"runId": 5}', "5"),
            (b'{"run_id": "6"}', "6"),
            (b'{"runId": ""}', None),
            (b'{"runId": true}', None),
            (b'["5"]', None),
            (b"\xff\xfe", None),
            (b"not json", None),
        ],
    )
    def test_envelope_run_id(self, body: bytes, expected: str | None) -> None:
        assert envelope_run_id(body) == expected


class TestConsumerRun:
    """Tests for QueueConsumer.run wiring."""

    def test_declares_durable_queue_with_prefetch(self, processor: RunProcessor) -> None:
        connection = MagicMock()
        channel = connection.channel.return_value
        consumer = QueueConsumer(processor, "amqp://localhost", "runs", connection_factory=lambda: connection)

        consumer.run()

        channel.queue_declare.assert_called_once_with(queue="runs", durable=True)
        channel.basic_qos.assert_called_once_with(prefetch_count=1)
        channel.basic_consume.assert_called_once_with(
            queue="runs",
            on_message_callback=consumer.handle_delivery,
        )
        channel.start_consuming.assert_called_once()
        connection.close.assert_called_once()

    def test_interrupt_stops_consuming(self, processor: RunProcessor) -> None:
        connection = MagicMock()
        channel = connection.channel.return_value
        channel.start_consuming.side_effect = KeyboardInterrupt
        QueueConsumer(processor, "amqp://localhost", "runs", connection_factory=lambda: connection).run()
        channel.stop_consuming.assert_called_once()
        connection.close.assert_called_once()


class TestPublisher:
    """Tests for QueuePublisher."""

    def test_publishes_persistent_json(self, echo_call_message: MessageCreate) -> None:
        connection = MagicMock()
        channel = connection.channel.return_value
        publisher = QueuePublisher("amqp://localhost", "runs", connection_factory=lambda: connection)

        publisher.publish(QueueEnvelope(run_id="3", messages=[echo_call_message], tools_only=True))

        channel.queue_declare.assert_called_once_with(queue="runs", durable=True)
        kwargs = channel.basic_publish.call_args.kwargs
        assert kwargs["routing_key"] == "runs"
        assert kwargs["properties"].delivery_mode == pika.DeliveryMode.Persistent.value
        assert kwargs["properties"].content_type == "application/json"
        envelope = QueueEnvelope.model_validate_json(kwargs["body"])
        assert envelope.run_id == "3"
        assert envelope.messages == [echo_call_message]
        connection.close.assert_called_once()
