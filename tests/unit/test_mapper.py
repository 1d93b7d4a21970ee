"""
Unit tests for message mapping.

Tests cover:
- Row codec for content and tool calls
- Agent discriminator mapping
- Agent <-> storage conversion
- Splitting of tool messages carrying images
"""

import json

import pytest

from runledger.mapper import (
    decode_content,
    encode_content,
    message_to_row,
    message_type_for,
    split_tool_images,
    text_of,
    to_external,
    to_external_messages,
    to_storage,
    to_storage_messages,
)
from runledger.mapper.rows import decode_tool_calls
from runledger.schema import (
    AgentMessage,
    AgentToolCall,
    ImageBlock,
    ImageUrl,
    MessageCreate,
    MessageType,
    TextBlock,
)

IMAGE = ImageBlock(image_url=ImageUrl(url="data:image/png;base64,AAAA"))


# =============================================================================
# Row codec
# =============================================================================


class TestRowCodec:
    """Tests for Message <-> row conversion."""

    def test_string_stored_verbatim(self) -> None:
        assert encode_content("hello") == "hello"
        assert decode_content("hello") == "hello"

    def test_none(self) -> None:
        assert encode_content(None) is None
        assert decode_content(None) is None

    def test_blocks_stored_as_json(self) -> None:
        raw = encode_content([TextBlock(text="a"), IMAGE])
        assert json.loads(raw)[1]["image_url"]["url"] == IMAGE.image_url.url
        assert decode_content(raw) == [TextBlock(text="a"), IMAGE]

    def test_single_block_is_wrapped(self) -> None:
        assert decode_content('{"type": "text", "text": "x"}') == [TextBlock(text="x")]

    def test_non_block_json_is_opaque(self) -> None:
        assert decode_content("[1, 2]") == "[1, 2]"
        assert decode_content("[]") == "[]"
        assert decode_content("42") == "42"

    def test_tool_calls_column(self, echo_call_message: MessageCreate) -> None:
        row = message_to_row(echo_call_message)
        assert json.loads(row["tool_calls"])[0]["args"] == {"input": "hi"}
        assert decode_tool_calls(row["tool_calls"]) == echo_call_message.tool_calls

    @pytest.mark.parametrize("raw", [None, "", "[]"])
    def test_empty_tool_calls_read_as_none(self, raw: str | None) -> None:
        assert decode_tool_calls(raw) is None

    def test_no_tool_calls_stored_as_null(self) -> None:
        row = message_to_row(MessageCreate(type=MessageType.HUMAN, content="hi", tool_calls=[]))
        assert row["tool_calls"] is None


# =============================================================================
# Agent codec
# =============================================================================


class TestMessageTypeFor:
    """Tests for the discriminator mapping."""

    @pytest.mark.parametrize(
        ("discriminator", "expected"),
        [
            ("human", MessageType.HUMAN),
            ("user", MessageType.HUMAN),
            ("HumanMessage", MessageType.HUMAN),
            ("ai", MessageType.AI),
            ("assistant", MessageType.AI),
            ("tool", MessageType.TOOL),
            ("ToolMessage", MessageType.TOOL),
        ],
    )
    def test_known(self, discriminator: str, expected: MessageType) -> None:
        assert message_type_for(discriminator) is expected

    @pytest.mark.parametrize("discriminator", ["system", "function", "", None])
    def test_unknown_falls_back_to_ai(self, discriminator: str | None) -> None:
        assert message_type_for(discriminator) is MessageType.AI


class TestToStorage:
    """Tests for agent -> storage conversion."""

    def test_plain_message(self) -> None:
        [stored] = to_storage({"type": "human", "content": "hi"})
        assert stored == MessageCreate(type=MessageType.HUMAN, content="hi")

    def test_tool_calls(self) -> None:
        message = AgentMessage(
            type="ai",
            content="",
            tool_calls=[AgentToolCall(id="c1", name="echo", args={"input": "hi"})],
        )
        [stored] = to_storage(message)
        assert stored.tool_calls[0].name == "echo"
        assert stored.tool_calls[0].args.input == "hi"

    def test_args_without_input_are_wrapped(self) -> None:
        message = AgentMessage(
            type="ai",
            tool_calls=[AgentToolCall(name="search", args={"query": "x", "limit": 3})],
        )
        [stored] = to_storage(message)
        assert stored.tool_calls[0].args.input == {"query": "x", "limit": 3}

    def test_unknown_structured_content_kept_as_json(self) -> None:
        [stored] = to_storage({"type": "ai", "content": [{"type": "thinking", "thinking": "hmm"}]})
        assert json.loads(stored.content) == [{"type": "thinking", "thinking": "hmm"}]

    def test_tool_call_id_dropped_on_non_tool(self) -> None:
        [stored] = to_storage({"type": "ai", "content": "x", "tool_call_id": "c1"})
        assert stored.tool_call_id is None

    def test_list_keeps_order(self) -> None:
        stored = to_storage_messages([
            {"type": "human", "content": "a"},
            {"type": "ai", "content": "b"},
            {"type": "tool", "content": "c", "tool_call_id": "c1"},
        ])
        assert [m.content for m in stored] == ["a", "b", "c"]


class TestToExternal:
    """Tests for storage -> agent conversion."""

    def test_discriminators(self, sample_messages: list[MessageCreate]) -> None:
        external = to_external_messages(sample_messages)
        assert [m.type for m in external] == ["human", "ai", "tool"]
        assert external[1].tool_calls[0].args == {"input": "hi"}
        assert external[2].tool_call_id == "call-1"

    def test_round_trip(self, sample_messages: list[MessageCreate]) -> None:
        assert to_storage_messages(to_external_messages(sample_messages)) == sample_messages

    def test_blocks_become_dicts(self) -> None:
        [external] = to_external(MessageCreate(type=MessageType.HUMAN, content=[IMAGE]))
        assert external.content == [{"type": "image_url", "image_url": {"url": IMAGE.image_url.url}}]


class TestSplitToolImages:
    """Tests for splitting tool output that carries images."""

    def test_mixed_text_and_image(self) -> None:
        message = MessageCreate(
            type=MessageType.TOOL,
            content=[TextBlock(text="ok"), IMAGE],
            tool_call_id="c1",
        )
        parts = split_tool_images(message)
        assert parts == [
            MessageCreate(type=MessageType.TOOL, content="ok", tool_call_id="c1"),
            MessageCreate(type=MessageType.HUMAN, content=[IMAGE]),
        ]

    def test_block_order_preserved(self) -> None:
        message = MessageCreate(
            type=MessageType.TOOL,
            content=[IMAGE, TextBlock(text="a"), TextBlock(text="b")],
            tool_call_id="c1",
        )
        parts = split_tool_images(message)
        assert [p.type for p in parts] == [MessageType.HUMAN, MessageType.TOOL, MessageType.TOOL]
        assert [p.content for p in parts[1:]] == ["a", "b"]

    def test_text_only_tool_message_untouched(self) -> None:
        message = MessageCreate(type=MessageType.TOOL, content=[TextBlock(text="ok")], tool_call_id="c1")
        assert split_tool_images(message) == [message]

    def test_human_message_with_image_untouched(self) -> None:
        message = MessageCreate(type=MessageType.HUMAN, content=[IMAGE])
        assert split_tool_images(message) == [message]

    def test_applied_when_storing(self) -> None:
        stored = to_storage({
            "type": "tool",
            "tool_call_id": "c1",
            "content": [
                {"type": "text", "text": "ok"},
                {"type": "image_url", "image_url": {"url": IMAGE.image_url.url}},
            ],
        })
        assert [m.type for m in stored] == [MessageType.TOOL, MessageType.HUMAN]
        assert stored[1].content == [IMAGE]

    def test_applied_when_converting_for_agent(self) -> None:
        message = MessageCreate(type=MessageType.TOOL, content=[TextBlock(text="ok"), IMAGE], tool_call_id="c1")
        assert [m.type for m in to_external(message)] == ["tool", "human"]


class TestTextOf:
    def test_joins_text_blocks(self) -> None:
        assert text_of([TextBlock(text="a"), IMAGE, TextBlock(text="b")]) == "a\nb"

    def test_none(self) -> None:
        assert text_of(None) == ""
