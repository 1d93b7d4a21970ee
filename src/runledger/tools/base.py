"""
Base classes for the tool interface.

This module defines the core abstractions for tools in runledger:
- Tool: Abstract base class that all tools must implement
- FunctionTool: Adapter turning a plain callable into a Tool
- ToolContext: Shared key/value state passed to every tool invocation

Design Principles:
    - Tools are keyed by name - the registry handles lookup
    - Tools receive the call's args as a plain dict
    - Tool errors propagate unchanged - the caller decides what they mean
    - Context is owned by one registry; there is no process-wide state
"""

import threading
from abc import ABC, abstractmethod
from collections.abc import Callable, Mapping
from typing import Any


class ToolContext:
    """
    Key/value state shared by the tools of one registry.

    Tools use it to hand data to each other across invocations (a session
    token obtained by one tool and read by the next, for example). Access
    is serialized by a lock.

    Example:
        context = ToolContext({"tenant": "acme"})
        context.set("token", "abc")
        context.get("token")  # "abc"
    """

    def __init__(self, initial: Mapping[str, Any] | None = None) -> None:
        self._values: dict[str, Any] = dict(initial or {})
        self._lock = threading.Lock()

    def get(self, key: str, default: Any = None) -> Any:
        """Return the value stored under key, or default."""
        with self._lock:
            return self._values.get(key, default)

    def set(self, key: str, value: Any) -> None:
        """Store a value under key, replacing any previous one."""
        with self._lock:
            self._values[key] = value

    def update(self, values: Mapping[str, Any]) -> None:
        """Store several values at once."""
        with self._lock:
            self._values.update(values)

    def snapshot(self) -> dict[str, Any]:
        """Return a shallow copy of the current values."""
        with self._lock:
            return dict(self._values)

    def __contains__(self, key: object) -> bool:
        with self._lock:
            return key in self._values

    def __repr__(self) -> str:
        return f"ToolContext(keys={sorted(self.snapshot())!r})"


class Tool(ABC):
    """
    Abstract base class for all runledger tools.

    Each tool:
    - Has a unique name (e.g., "echo", "search_orders")
    - Implements invoke()
    - Returns any JSON-serializable value

    Example:
        class EchoTool(Tool):
            @property
            def name(self) -> str:
                return "echo"

            def invoke(self, args: dict[str, Any], context: ToolContext) -> Any:
                return args["input"]
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """
        The unique identifier for this tool.

        Returns:
            The name tool calls use to address this tool
        """
        ...

    @property
    def description(self) -> str:
        """Human-readable description of what the tool does."""
        return f"Tool: {self.name}"

    @abstractmethod
    def invoke(self, args: dict[str, Any], context: ToolContext) -> Any:
        """
        Invoke the tool.

        Args:
            args: The call's arguments, e.g. {"input": "hi"}
            context: Shared state of the owning registry

        Returns:
            The tool's result
        """
        ...

    def __repr__(self) -> str:
        """String representation of the tool."""
        return f"<Tool: {self.name}>"


ToolFunction = Callable[[dict[str, Any], ToolContext], Any]


class FunctionTool(Tool):
    """A Tool backed by a plain function taking (args, context)."""

    def __init__(self, name: str, func: ToolFunction, description: str | None = None) -> None:
        self._name = name
        self._func = func
        self._description = description or (func.__doc__ or "").strip() or None

    @property
    def name(self) -> str:
        return self._name

    @property
    def description(self) -> str:
        return self._description or super().description

    def invoke(self, args: dict[str, Any], context: ToolContext) -> Any:
        return self._func(args, context)
