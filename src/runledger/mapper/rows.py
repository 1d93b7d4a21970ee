"""
Conversion between Message models and database rows.

Content is stored as TEXT: plain strings verbatim, block lists as JSON.
Reading reverses this only when the stored text is JSON describing content
blocks; every other value comes back as the opaque string it was stored as.
"""

import json
import sqlite3
from datetime import datetime
from typing import Any

from pydantic import TypeAdapter, ValidationError

from runledger.schema import (
    ContentBlock,
    Message,
    MessageContent,
    MessageCreate,
    MessageType,
    ToolCall,
)

_BLOCKS = TypeAdapter(list[ContentBlock])
_BLOCK = TypeAdapter(ContentBlock)


def encode_content(content: MessageContent) -> str | None:
    """Serialize message content for storage."""
    if content is None or isinstance(content, str):
        return content
    return json.dumps(_BLOCKS.dump_python(content, mode="json"))


def decode_content(raw: str | None) -> MessageContent:
    """Deserialize stored content, falling back to the raw string."""
    if raw is None:
        return None
    try:
        data = json.loads(raw)
    except ValueError:
        return raw

    try:
        if isinstance(data, dict):
            return [_BLOCK.validate_python(data)]
        if isinstance(data, list) and data:
            return _BLOCKS.validate_python(data)
    except ValidationError:
        return raw
    return raw


def encode_tool_calls(tool_calls: list[ToolCall] | None) -> str | None:
    """Serialize tool calls as a JSON list, or NULL when there are none."""
    if not tool_calls:
        return None
    return json.dumps([call.model_dump(mode="json") for call in tool_calls])


def decode_tool_calls(raw: str | None) -> list[ToolCall] | None:
    """Deserialize tool calls; empty or missing values read back as None."""
    if not raw:
        return None
    data = json.loads(raw)
    if not isinstance(data, list) or not data:
        return None
    return [ToolCall.model_validate(item) for item in data]


def message_to_row(message: MessageCreate) -> dict[str, Any]:
    """Build the column values for inserting a message."""
    return {
        "type": message.type.value,
        "content": encode_content(message.content),
        "tool_calls": encode_tool_calls(message.tool_calls),
        "tool_call_id": message.tool_call_id or None,
    }


def row_to_message(row: sqlite3.Row) -> Message:
    """Rebuild a stored message from its row."""
    return Message(
        id=str(row["id"]),
        run_id=str(row["run_id"]),
        type=MessageType(row["type"]),
        content=decode_content(row["content"]),
        tool_calls=decode_tool_calls(row["tool_calls"]),
        tool_call_id=row["tool_call_id"],
        timestamp=datetime.fromisoformat(row["timestamp"]),
    )
