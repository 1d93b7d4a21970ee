"""
Conversion between stored messages and agent-native messages.

Both directions are total: every input message yields at least one output
message. Unknown agent discriminators map to AiMessage, and structured
content that is not a list of text/image blocks is kept as its JSON text.

Tool messages whose content mixes text and image blocks are split, because
the agent cannot receive images as tool output: each text block stays a
ToolMessage and each image block becomes a new HumanMessage holding only
that block.
"""

import json
from collections.abc import Iterable, Mapping
from typing import Any

from pydantic import TypeAdapter, ValidationError

from runledger.schema import (
    AgentMessage,
    AgentToolCall,
    ContentBlock,
    ImageBlock,
    MessageContent,
    MessageCreate,
    MessageType,
    TextBlock,
    ToolCall,
    ToolCallArgs,
)

_BLOCKS = TypeAdapter(list[ContentBlock])

_TYPE_BY_DISCRIMINATOR: dict[str, MessageType] = {
    "human": MessageType.HUMAN,
    "user": MessageType.HUMAN,
    "ai": MessageType.AI,
    "assistant": MessageType.AI,
    "tool": MessageType.TOOL,
    MessageType.HUMAN.value.lower(): MessageType.HUMAN,
    MessageType.AI.value.lower(): MessageType.AI,
    MessageType.TOOL.value.lower(): MessageType.TOOL,
}

_DISCRIMINATOR_BY_TYPE: dict[MessageType, str] = {
    MessageType.HUMAN: "human",
    MessageType.AI: "ai",
    MessageType.TOOL: "tool",
}


def message_type_for(discriminator: str | None) -> MessageType:
    """Map an agent discriminator onto the stored type. Unknown values are AI."""
    if not discriminator:
        return MessageType.AI
    return _TYPE_BY_DISCRIMINATOR.get(discriminator.lower(), MessageType.AI)


def split_tool_images(message: MessageCreate) -> list[MessageCreate]:
    """
    Split a ToolMessage whose block content contains images.

    Blocks keep their order. Text blocks become ToolMessages with plain
    string content and the original toolCallId; image blocks become
    HumanMessages whose content is a one-element block list.
    """
    content = message.content
    if message.type is not MessageType.TOOL or not isinstance(content, list):
        return [message]
    if not any(isinstance(block, ImageBlock) for block in content):
        return [message]

    parts: list[MessageCreate] = []
    for block in content:
        if isinstance(block, ImageBlock):
            parts.append(MessageCreate(type=MessageType.HUMAN, content=[block]))
        else:
            parts.append(
                MessageCreate(
                    type=MessageType.TOOL,
                    content=block.text,
                    tool_call_id=message.tool_call_id,
                )
            )
    return parts


# =============================================================================
# Agent -> storage
# =============================================================================


def _normalize_content(content: Any) -> MessageContent:
    if content is None or isinstance(content, str):
        return content
    if not content:
        return ""
    try:
        return _BLOCKS.validate_python(content)
    except ValidationError:
        return json.dumps(content, default=str)


def _to_stored_call(call: AgentToolCall) -> ToolCall:
    # args without a usable "input" are carried whole as the input
    args = call.args
    if not isinstance(args.get("input"), (str, dict)):
        args = {"input": args}
    return ToolCall(id=call.id, name=call.name, args=ToolCallArgs.model_validate(args))


def to_storage(message: AgentMessage | Mapping[str, Any]) -> list[MessageCreate]:
    """Convert one agent message into the message(s) to store."""
    if not isinstance(message, AgentMessage):
        message = AgentMessage.model_validate(message)

    message_type = message_type_for(message.type)
    stored = MessageCreate(
        type=message_type,
        content=_normalize_content(message.content),
        tool_calls=[_to_stored_call(call) for call in message.tool_calls] or None,
        tool_call_id=(message.tool_call_id or None) if message_type is MessageType.TOOL else None,
    )
    return split_tool_images(stored)


def to_storage_messages(
    messages: Iterable[AgentMessage | Mapping[str, Any]],
) -> list[MessageCreate]:
    """Convert agent messages in order, flattening any splits."""
    return [stored for message in messages for stored in to_storage(message)]


# =============================================================================
# Storage -> agent
# =============================================================================


def _external_content(content: MessageContent) -> str | list[dict[str, Any]] | None:
    if content is None or isinstance(content, str):
        return content
    return [block.model_dump(mode="json") for block in content]


def to_external(message: MessageCreate) -> list[AgentMessage]:
    """Convert one stored message into the agent message(s) it represents."""
    converted = []
    for part in split_tool_images(message):
        converted.append(
            AgentMessage(
                type=_DISCRIMINATOR_BY_TYPE[part.type],
                content=_external_content(part.content),
                tool_calls=[
                    AgentToolCall(id=call.id, name=call.name, args=call.args.model_dump())
                    for call in part.tool_calls or []
                ],
                tool_call_id=part.tool_call_id,
            )
        )
    return converted


def to_external_messages(messages: Iterable[MessageCreate]) -> list[AgentMessage]:
    """Convert stored messages in order, flattening any splits."""
    return [converted for message in messages for converted in to_external(message)]


def text_of(content: MessageContent) -> str:
    """Join the text carried by message content, ignoring images."""
    if content is None:
        return ""
    if isinstance(content, str):
        return content
    return "\n".join(block.text for block in content if isinstance(block, TextBlock))
