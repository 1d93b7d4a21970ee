"""
Replay capture.

A ReplaySink is handed to the agent for one run. Every time the agent
extends the conversation it reports the new messages, and the sink persists
them in a single transaction per report.
"""

import logging
from collections.abc import Iterable, Mapping
from typing import Any

from runledger.mapper.agent import to_storage_messages
from runledger.schema import AgentMessage
from runledger.store import LedgerDB

logger = logging.getLogger(__name__)


class ReplaySink:
    """
    Persists messages the agent produces while a run is being processed.

    Holds nothing but the store handle and the run id; messages are never
    buffered between calls.

    Attributes:
        db: Store the messages are written to
        run_id: Run the messages belong to
    """

    def __init__(self, db: LedgerDB, run_id: str) -> None:
        self.db = db
        self.run_id = run_id

    def on_run_extended(
        self,
        new_messages: Iterable[AgentMessage | Mapping[str, Any]],
    ) -> list[str]:
        """
        Persist the messages the agent just appended.

        Args:
            new_messages: Agent-native messages, in conversation order

        Returns:
            Ids of the stored messages (a split tool message yields several)
        """
        stored = to_storage_messages(new_messages)
        if not stored:
            return []
        message_ids = self.db.insert_messages(self.run_id, stored)
        logger.debug("Captured %d message(s) for run %s", len(message_ids), self.run_id)
        return message_ids

    def __repr__(self) -> str:
        return f"ReplaySink(run_id={self.run_id!r})"
