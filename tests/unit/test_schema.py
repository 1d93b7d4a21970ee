"""
Unit tests for schema validation.

Tests cover:
- Run status lifecycle table
- Message / ToolCall parsing with camelCase keys
- Content blocks
- Queue envelope
- YAML loading helpers
"""

from pathlib import Path

import pytest
from pydantic import ValidationError

from runledger.schema import (
    RUN_TRANSITIONS,
    ImageBlock,
    Message,
    MessageCreate,
    MessageType,
    QueueEnvelope,
    Run,
    RunStatus,
    TextBlock,
    ToolCall,
    load_config_messages,
    load_config_messages_from_string,
)


# =============================================================================
# RunStatus Tests
# =============================================================================


class TestRunStatus:
    """Tests for the run lifecycle table."""

    def test_terminal_statuses(self) -> None:
        assert RunStatus.DONE.is_terminal
        assert RunStatus.FAILED.is_terminal
        assert not RunStatus.SCHEDULED.is_terminal
        assert not RunStatus.RUNNING.is_terminal

    def test_transitions(self) -> None:
        assert RUN_TRANSITIONS[RunStatus.SCHEDULED] == {RunStatus.RUNNING}
        assert RUN_TRANSITIONS[RunStatus.RUNNING] == {RunStatus.DONE, RunStatus.FAILED}
        assert not RUN_TRANSITIONS[RunStatus.DONE]
        assert not RUN_TRANSITIONS[RunStatus.FAILED]

    def test_run_defaults(self) -> None:
        run = Run(id="1")
        assert run.status == RunStatus.SCHEDULED
        assert run.task_status == "unknown"
        assert run.reason is None

    def test_run_dumps_camel_case(self) -> None:
        data = Run(id="1", task_status="success").model_dump(by_alias=True)
        assert data["taskStatus"] == "success"


# =============================================================================
# Message Tests
# =============================================================================


class TestMessageCreate:
    """Tests for MessageCreate model."""

    def test_camel_case_input(self) -> None:
        message = MessageCreate.model_validate({
            "type": "ToolMessage",
            "content": "ok",
            "toolCallId": "call-1",
        })
        assert message.type is MessageType.TOOL
        assert message.tool_call_id == "call-1"

    def test_tool_calls(self) -> None:
        message = MessageCreate.model_validate({
            "type": "AiMessage",
            "content": "",
            "toolCalls": [{"name": "echo", "args": {"input": "hi", "lang": "en"}}],
        })
        assert message.has_tool_calls
        call = message.tool_calls[0]
        assert call.args.input == "hi"
        assert call.args.model_dump()["lang"] == "en"
        assert call.type == "tool_call"

    def test_object_input(self) -> None:
        call = ToolCall.model_validate({"name": "search", "args": {"input": {"q": "x"}}})
        assert call.args.input == {"q": "x"}

    def test_unknown_type_rejected(self) -> None:
        with pytest.raises(ValidationError):
            MessageCreate.model_validate({"type": "SystemMessage", "content": "x"})

    def test_tool_call_id_only_on_tool_messages(self) -> None:
        with pytest.raises(ValidationError):
            MessageCreate(type=MessageType.AI, content="x", tool_call_id="call-1")

    def test_empty_tool_name_rejected(self) -> None:
        with pytest.raises(ValidationError):
            ToolCall.model_validate({"name": "", "args": {"input": "x"}})

    def test_fetched_ids_are_ignored(self) -> None:
        """A fetched transcript can be posted back as input."""
        message = MessageCreate.model_validate({
            "id": "5",
            "runId": "2",
            "type": "HumanMessage",
            "content": "hi",
        })
        assert not hasattr(message, "run_id")

    def test_content_blocks(self) -> None:
        message = MessageCreate.model_validate({
            "type": "HumanMessage",
            "content": [
                {"type": "text", "text": "look"},
                {"type": "image_url", "image_url": {"url": "data:x"}},
            ],
        })
        assert isinstance(message.content[0], TextBlock)
        assert isinstance(message.content[1], ImageBlock)
        assert message.content[1].image_url.url == "data:x"

    def test_stored_message_to_create(self) -> None:
        stored = Message(id="1", run_id="2", type=MessageType.HUMAN, content="hi")
        created = stored.to_create()
        assert type(created) is MessageCreate
        assert created.content == "hi"


class TestQueueEnvelope:
    """Tests for the queue payload."""

    def test_parse_json(self) -> None:
        envelope = QueueEnvelope.model_validate_json(
            '{"runId": "3", "messages": [{"type": "HumanMessage", "content": "hi"}], "toolsOnly": true}'
        )
        assert envelope.run_id == "3"
        assert envelope.tools_only is True
        assert envelope.messages[0].content == "hi"

    def test_run_id_required(self) -> None:
        with pytest.raises(ValidationError):
            QueueEnvelope.model_validate_json('{"messages": []}')


# =============================================================================
# YAML Loading Tests
# =============================================================================


class TestConfigMessages:
    """Tests for baseline config message loading."""

    def test_load_from_string(self, sample_config_yaml: str) -> None:
        messages = load_config_messages_from_string(sample_config_yaml)
        assert [m.type for m in messages] == [MessageType.HUMAN, MessageType.AI]

    def test_top_level_list(self) -> None:
        messages = load_config_messages_from_string("- type: HumanMessage\n  content: hi\n")
        assert messages[0].content == "hi"

    def test_empty_document(self) -> None:
        assert load_config_messages_from_string("") == []

    def test_invalid_shape(self) -> None:
        with pytest.raises(ValueError):
            load_config_messages_from_string("just a string")

    def test_load_from_file(self, temp_dir: Path, sample_config_yaml: str) -> None:
        path = temp_dir / "messages.yaml"
        path.write_text(sample_config_yaml)
        assert len(load_config_messages(path)) == 2

    def test_missing_file(self, temp_dir: Path) -> None:
        with pytest.raises(FileNotFoundError):
            load_config_messages(temp_dir / "missing.yaml")
