"""
Queue front end for runledger (AMQP via pika).

Runs are carried as QueueEnvelope JSON on a durable queue:
    - QueuePublisher: Sends envelopes (used by the HTTP front end in queue mode)
    - QueueConsumer: Processes envelopes one at a time, acking every delivery
"""

from runledger.engine import FAILED_REASON
from runledger.queue.consumer import QueueConsumer, envelope_run_id
from runledger.queue.publisher import QueuePublisher

__all__ = [
    "FAILED_REASON",
    "QueueConsumer",
    "QueuePublisher",
    "envelope_run_id",
]
