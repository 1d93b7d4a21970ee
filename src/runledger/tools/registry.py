"""
Tool registry for runledger.

The registry maps tool names to tools and owns the ToolContext handed to
every invocation of its tools. Each processor, server or consumer is given
its registry explicitly; there is no global registry.

Usage:
    registry = ToolRegistry()
    registry.register_function("echo", lambda args, context: args["input"])

    tool = registry.resolve("echo")
"""

from collections.abc import Iterator, Mapping
from typing import Any

from runledger.errors import ToolNotFoundError
from runledger.tools.base import FunctionTool, Tool, ToolContext, ToolFunction


class ToolRegistry:
    """
    Registry for looking up tools by name.

    A name may also be registered as unavailable: it is known (and listed
    in diagnostics) but resolving it fails like an unknown name.

    Attributes:
        context: Shared state passed to this registry's tools
    """

    def __init__(self, context: ToolContext | Mapping[str, Any] | None = None) -> None:
        """Initialize an empty registry."""
        self._tools: dict[str, Tool | None] = {}
        if isinstance(context, ToolContext):
            self.context = context
        else:
            self.context = ToolContext(context)

    def register(self, tool: Tool) -> Tool:
        """
        Register a tool, replacing any tool already registered under its name.

        Raises:
            ValueError: If tool is None or has an empty name
        """
        if tool is None:
            msg = "Cannot register None as a tool"
            raise ValueError(msg)

        name = tool.name
        if not name:
            msg = "Tool must have a non-empty name"
            raise ValueError(msg)

        self._tools[name] = tool
        return tool

    def register_function(
        self,
        name: str,
        func: ToolFunction,
        description: str | None = None,
    ) -> Tool:
        """Register a plain function taking (args, context) as a tool."""
        return self.register(FunctionTool(name, func, description))

    def register_unavailable(self, name: str) -> None:
        """Record a known tool name that has no implementation."""
        if not name:
            msg = "Tool must have a non-empty name"
            raise ValueError(msg)
        self._tools[name] = None

    def resolve(self, name: str) -> Tool:
        """
        Look up a tool by exact name.

        Raises:
            ToolNotFoundError: If the name is unknown or unavailable. The error
                lists every name known to the registry.
        """
        tool = self._tools.get(name)
        if tool is None:
            raise ToolNotFoundError(tool=name, available_tools=self.list_tools())
        return tool

    def has(self, name: str) -> bool:
        """Whether name resolves to a tool."""
        return self._tools.get(name) is not None

    def list_tools(self) -> list[str]:
        """Every known tool name, sorted, unavailable ones included."""
        return sorted(self._tools)

    def __len__(self) -> int:
        """Number of known tool names."""
        return len(self._tools)

    def __iter__(self) -> Iterator[str]:
        """Iterate over known tool names."""
        return iter(self.list_tools())

    def __contains__(self, name: str) -> bool:
        """Check if a name resolves to a tool."""
        return self.has(name)
