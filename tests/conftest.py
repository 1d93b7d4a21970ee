"""
Pytest configuration and fixtures for runledger tests.

This module provides shared fixtures used across unit and integration tests.
"""

import tempfile
from pathlib import Path
from typing import Any, Generator

import pytest

from runledger.errors import StorageWriteError
from runledger.schema import MessageCreate, MessageType, Run, RunStatus, ToolCall, ToolCallArgs
from runledger.store import LedgerDB
from runledger.tools import ToolContext, ToolRegistry


class RecordingTool:
    """Callable tool implementation remembering every invocation."""

    def __init__(self, result: Any = None) -> None:
        self.calls: list[dict[str, Any]] = []
        self.result = result

    def __call__(self, args: dict[str, Any], context: ToolContext) -> Any:
        self.calls.append(args)
        return self.result if self.result is not None else args.get("input")


class DoneWriteFailsDB(LedgerDB):
    """LedgerDB that cannot move a run to done."""

    def update_run_status(self, run_id: str, status: RunStatus) -> Run:
        if RunStatus(status) is RunStatus.DONE:
            raise StorageWriteError(operation="update_run_status", underlying_error="disk full")
        return super().update_run_status(run_id, status)


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for test files."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def db(temp_dir: Path) -> Generator[LedgerDB, None, None]:
    """Create a database instance."""
    database = LedgerDB(temp_dir / "runledger.db")
    yield database
    database.close()


@pytest.fixture
def echo_tool() -> RecordingTool:
    """Tool that returns its input."""
    return RecordingTool()


@pytest.fixture
def registry(echo_tool: RecordingTool) -> ToolRegistry:
    """Registry holding only the echo tool."""
    tools = ToolRegistry()
    tools.register_function("echo", echo_tool, "Return the input")
    return tools


@pytest.fixture
def echo_call_message() -> MessageCreate:
    """An AiMessage carrying one echo call."""
    return MessageCreate(
        type=MessageType.AI,
        content="",
        tool_calls=[ToolCall(id="call-1", name="echo", args=ToolCallArgs(input="hi"))],
    )


@pytest.fixture
def sample_messages(echo_call_message: MessageCreate) -> list[MessageCreate]:
    """A short transcript: question, tool call, tool answer."""
    return [
        MessageCreate(type=MessageType.HUMAN, content="Say hi"),
        echo_call_message,
        MessageCreate(type=MessageType.TOOL, content="hi", tool_call_id="call-1"),
    ]


@pytest.fixture
def sample_config_yaml() -> str:
    """Return baseline config messages as YAML."""
    return """
messages:
  - type: HumanMessage
    content: "Hello {{ name }}, please check order {{ order.id }}"
  - type: AiMessage
    content: "Checking {{ name }}"
"""


@pytest.fixture
def done_write_fails_db(temp_dir: Path) -> Generator[LedgerDB, None, None]:
    """Create a database whose done transition fails."""
    database = DoneWriteFailsDB(temp_dir / "runledger.db")
    yield database
    database.close()
