"""
Tools module for runledger.

Tools are the actions recorded in a run's transcript. The engine re-executes
them when a run is processed or replayed.

Architecture:
    - Tool: Abstract base class defining the tool interface
    - FunctionTool: Wraps a plain (args, context) function
    - ToolRegistry: Name -> tool lookup owning a ToolContext
    - execute_tools: Ordered execution of a message's tool calls
"""

from runledger.tools.base import FunctionTool, Tool, ToolContext
from runledger.tools.executor import ToolCallResult, execute_tool, execute_tools
from runledger.tools.registry import ToolRegistry

__all__ = [
    "FunctionTool",
    "Tool",
    "ToolCallResult",
    "ToolContext",
    "ToolRegistry",
    "execute_tool",
    "execute_tools",
]
