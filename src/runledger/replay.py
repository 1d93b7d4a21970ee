"""
Single-message replay.

Re-executes the tool calls of one stored message and returns their results.
The run itself is not touched: no status change, nothing persisted.
"""

from runledger.errors import NoToolCallsError
from runledger.store import LedgerDB
from runledger.tools import ToolCallResult, ToolRegistry, execute_tools


def replay_message(
    db: LedgerDB,
    registry: ToolRegistry,
    run_id: str,
    message_id: str,
) -> list[ToolCallResult]:
    """
    Replay the tool calls of one message.

    Raises:
        MessageNotFoundError: If the run has no such message
        NoToolCallsError: If the message carries no tool calls
        ToolNotFoundError: If a call names an unknown tool
    """
    message = db.get_message(run_id, message_id)
    if not message.has_tool_calls:
        raise NoToolCallsError(run_id=str(run_id), message_id=str(message_id))
    return execute_tools(message.tool_calls, registry)
