"""
Schema definitions for runledger.

This module defines the Pydantic models used throughout runledger:
- Run/RunStatus: A conversational run and its lifecycle state
- Message/MessageCreate: Transcript entries, as stored and as submitted
- ToolCall: A tool invocation embedded in a message
- Content blocks: Typed text / image parts of a message
- AgentMessage/AgentToolCall/AgentResult: Messages in the shape agents use
- QueueEnvelope: The payload carried by one queue delivery

Design Decisions:
    - Python attributes are snake_case, JSON keys are camelCase (aliases)
    - Input models ignore unknown keys so a fetched transcript can be posted back
    - Stored models forbid unknown keys
    - The message type is a closed enum; mapping from foreign discriminators
      lives in the mapper and always resolves to one of its members
"""

from datetime import UTC, datetime
from enum import Enum
from pathlib import Path
from typing import Annotated, Any, Literal

import yaml
from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel


# =============================================================================
# Enums and constants
# =============================================================================


class RunStatus(str, Enum):
    """Lifecycle status of a run."""

    SCHEDULED = "scheduled"
    RUNNING = "running"
    DONE = "done"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        """Whether no further status change is allowed."""
        return self in (RunStatus.DONE, RunStatus.FAILED)


# Allowed status changes. Re-applying the current status is always a no-op.
RUN_TRANSITIONS: dict[RunStatus, frozenset[RunStatus]] = {
    RunStatus.SCHEDULED: frozenset({RunStatus.RUNNING}),
    RunStatus.RUNNING: frozenset({RunStatus.DONE, RunStatus.FAILED}),
    RunStatus.DONE: frozenset(),
    RunStatus.FAILED: frozenset(),
}


class MessageType(str, Enum):
    """Closed set of stored message types."""

    HUMAN = "HumanMessage"
    AI = "AiMessage"
    TOOL = "ToolMessage"


class SortOrder(str, Enum):
    """Ordering of run listings by creation time."""

    ASC = "asc"
    DESC = "desc"


class TaskStatus:
    """Well-known task status values. Agents may report any other string."""

    UNKNOWN = "unknown"
    FAILED = "failed"
    SUCCESS = "success"
    FAILURE = "failure"
    NEED_HUMAN_HELP = "needHumanHelp"


DEFAULT_TASK_REASON = "Ai didn't express a reason"


class CamelModel(BaseModel):
    """Base model exposing camelCase JSON keys over snake_case attributes."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# =============================================================================
# Content blocks
# =============================================================================


class TextBlock(BaseModel):
    """A plain text content block."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    type: Literal["text"] = "text"
    text: str


class ImageUrl(BaseModel):
    """Location of an image referenced by an image block."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    url: str


class ImageBlock(BaseModel):
    """An image content block. The key stays snake_case on the wire."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    type: Literal["image_url"] = "image_url"
    image_url: ImageUrl


ContentBlock = Annotated[TextBlock | ImageBlock, Field(discriminator="type")]

MessageContent = str | list[ContentBlock] | None


# =============================================================================
# Tool calls
# =============================================================================


class ToolCallArgs(BaseModel):
    """
    Arguments of a tool call.

    The payload lives under ``input``; any extra keys are preserved as-is.
    """

    model_config = ConfigDict(extra="allow")

    input: str | dict[str, Any]


class ToolCall(CamelModel):
    """
    A tool invocation recorded in a message.

    Attributes:
        id: Optional id the agent assigned to the call
        name: Name of the tool to invoke
        args: Arguments passed to the tool
        type: Always "tool_call"
    """

    id: str | None = Field(default=None, description="Agent-assigned call id")
    name: str = Field(..., description="Tool name", min_length=1)
    args: ToolCallArgs = Field(..., description="Arguments for the tool")
    type: Literal["tool_call"] = Field(default="tool_call")


# =============================================================================
# Messages
# =============================================================================


class MessageCreate(CamelModel):
    """
    A message as submitted for insertion.

    Ids and timestamps are assigned by the store, so ``id``/``runId`` keys
    copied from a fetched transcript are ignored.
    """

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )

    type: MessageType = Field(..., description="Message type")
    content: MessageContent = Field(default=None, description="Text or content blocks")
    tool_calls: list[ToolCall] | None = Field(
        default=None,
        description="Ordered tool calls carried by this message",
    )
    tool_call_id: str | None = Field(
        default=None,
        description="Id of the call a ToolMessage answers",
    )

    @model_validator(mode="after")
    def check_tool_call_id(self) -> "MessageCreate":
        """Only ToolMessages may reference a tool call."""
        if self.tool_call_id and self.type is not MessageType.TOOL:
            msg = f"toolCallId is only allowed on {MessageType.TOOL.value}"
            raise ValueError(msg)
        return self

    @property
    def has_tool_calls(self) -> bool:
        """Whether this message carries at least one tool call."""
        return bool(self.tool_calls)


class Message(MessageCreate):
    """A persisted message."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="forbid",
    )

    id: str = Field(..., description="Store-assigned message id")
    run_id: str = Field(..., description="Owning run id")
    timestamp: datetime = Field(
        default_factory=lambda: datetime.now(UTC),
        description="Insertion time",
    )

    def to_create(self) -> MessageCreate:
        """Drop the stored identity, keeping the replayable payload."""
        return MessageCreate.model_validate(self.model_dump(by_alias=True))


# =============================================================================
# Runs
# =============================================================================


class Run(CamelModel):
    """
    A conversational run.

    Attributes:
        id: Store-assigned run id
        status: Lifecycle status
        task_status: The agent's own assessment of the task
        reason: Diagnostic text accompanying the task status
        task_status_recorded: Whether a terminal run already took its one
            task status; kept out of serialized output
        timestamp: Creation time
    """

    id: str = Field(..., description="Store-assigned run id")
    status: RunStatus = Field(default=RunStatus.SCHEDULED, description="Run status")
    task_status: str = Field(default=TaskStatus.UNKNOWN, description="Agent task status")
    reason: str | None = Field(default=None, description="Diagnostic reason")
    task_status_recorded: bool = Field(
        default=False,
        exclude=True,
        description="Task status recorded after a terminal status",
    )
    timestamp: datetime = Field(
        default_factory=lambda: datetime.now(UTC),
        description="When the run was created",
    )


class RunFilters(CamelModel):
    """Equality filters for run listings, AND-combined."""

    status: RunStatus | None = None
    task_status: str | None = None


# =============================================================================
# Agent-native messages
# =============================================================================


class AgentToolCall(BaseModel):
    """A tool call in the shape agent frameworks emit it."""

    model_config = ConfigDict(extra="ignore")

    id: str | None = None
    name: str
    args: dict[str, Any] = Field(default_factory=dict)
    type: Literal["tool_call"] = "tool_call"


class AgentMessage(BaseModel):
    """
    A message as the agent process produces and consumes it.

    ``type`` is the agent's own discriminator ("human", "ai", "tool", ...).
    Unknown discriminators are accepted here and resolved by the mapper.
    """

    model_config = ConfigDict(extra="ignore")

    type: str = Field(..., description="Agent-side message discriminator")
    content: str | list[dict[str, Any]] | None = None
    tool_calls: list[AgentToolCall] = Field(default_factory=list)
    tool_call_id: str | None = None


class AgentResult(BaseModel):
    """Optional structured reply of an agent invocation."""

    model_config = ConfigDict(extra="allow")

    messages: list[AgentMessage] = Field(default_factory=list)


# =============================================================================
# Queue payload
# =============================================================================


class QueueEnvelope(CamelModel):
    """One queue delivery: a run to process and its initial messages."""

    run_id: str = Field(..., min_length=1)
    messages: list[MessageCreate] = Field(default_factory=list)
    tools_only: bool = False


# =============================================================================
# YAML Loading Helpers
# =============================================================================


def _messages_from_yaml_data(data: Any) -> list[MessageCreate]:
    if data is None:
        return []
    if isinstance(data, dict):
        data = data.get("messages") or []
    if not isinstance(data, list):
        msg = "Config messages must be a list or a mapping with a 'messages' key"
        raise ValueError(msg)
    return [MessageCreate.model_validate(item) for item in data]


def load_config_messages(path: Path | str) -> list[MessageCreate]:
    """
    Load baseline config messages from a YAML file.

    The file holds either a list of messages or a mapping with a
    ``messages`` key.

    Raises:
        FileNotFoundError: If the file doesn't exist
        pydantic.ValidationError: If a message doesn't match the schema
    """
    path = Path(path)
    with path.open() as f:
        data = yaml.safe_load(f)

    return _messages_from_yaml_data(data)


def load_config_messages_from_string(content: str) -> list[MessageCreate]:
    """Load baseline config messages from a YAML string."""
    return _messages_from_yaml_data(yaml.safe_load(content))
