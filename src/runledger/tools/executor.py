"""
Tool execution loop.

Executes the tool calls recorded in a message, strictly in array order.
There is no parallelism and no retry: the first tool that raises stops the
loop and its exception propagates unchanged. Results are returned to the
caller and never persisted here.
"""

import logging
from collections.abc import Iterable
from dataclasses import dataclass
from typing import Any

from runledger.schema import ToolCall
from runledger.tools.registry import ToolRegistry

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ToolCallResult:
    """
    Outcome of one tool call.

    Attributes:
        tool_call_name: Name of the tool that was invoked
        result: Whatever the tool returned
    """

    tool_call_name: str
    result: Any = None

    def to_dict(self) -> dict[str, Any]:
        """Convert to the JSON shape returned by the HTTP front end."""
        return {"toolCallName": self.tool_call_name, "result": self.result}


def execute_tool(call: ToolCall, registry: ToolRegistry) -> ToolCallResult:
    """
    Resolve and invoke the tool named by one call.

    Raises:
        ToolNotFoundError: If the registry cannot resolve the name
        Exception: Whatever the tool raises, unwrapped
    """
    tool = registry.resolve(call.name)
    args = call.args.model_dump(mode="json")
    logger.debug("Invoking tool %s", call.name)
    result = tool.invoke(args, registry.context)
    return ToolCallResult(tool_call_name=call.name, result=result)


def execute_tools(calls: Iterable[ToolCall], registry: ToolRegistry) -> list[ToolCallResult]:
    """Invoke every call in order, stopping at the first failure."""
    return [execute_tool(call, registry) for call in calls]
