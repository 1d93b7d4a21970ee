"""
Message mapping for runledger.

Two codecs live here:
    - rows: Message models <-> database rows (content and tool-call JSON)
    - agent: stored messages <-> agent-native messages (type discriminators,
      content normalization, splitting of tool messages that carry images)

Both are total: no message is ever silently dropped.
"""

from runledger.mapper.agent import (
    message_type_for,
    split_tool_images,
    text_of,
    to_external,
    to_external_messages,
    to_storage,
    to_storage_messages,
)
from runledger.mapper.rows import (
    decode_content,
    encode_content,
    message_to_row,
    row_to_message,
)

__all__ = [
    "decode_content",
    "encode_content",
    "message_to_row",
    "message_type_for",
    "row_to_message",
    "split_tool_images",
    "text_of",
    "to_external",
    "to_external_messages",
    "to_storage",
    "to_storage_messages",
]
