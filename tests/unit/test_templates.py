"""Unit tests for config message templating."""

import pytest

from runledger.errors import TemplateParameterError
from runledger.schema import ImageBlock, ImageUrl, MessageCreate, MessageType, TextBlock
from runledger.templates import parameterize_messages, render_template


class TestRenderTemplate:
    def test_simple(self) -> None:
        assert render_template("Hello {{ name }}", {"name": "Ada"}) == "Hello Ada"

    def test_nested(self) -> None:
        assert render_template("{{ order.id }}", {"order": {"id": 7}}) == "7"

    def test_single_braces_untouched(self) -> None:
        assert render_template('{"a": 1}', {}) == '{"a": 1}'

    def test_unknown_variable(self) -> None:
        with pytest.raises(TemplateParameterError) as exc_info:
            render_template("Hello {{ name }}", {})
        assert "name" in exc_info.value.template_error

    def test_syntax_error(self) -> None:
        with pytest.raises(TemplateParameterError):
            render_template("Hello {{ name", {"name": "x"})


class TestParameterizeMessages:
    def test_only_human_messages(self) -> None:
        messages = [
            MessageCreate(type=MessageType.HUMAN, content="Hi {{ name }}"),
            MessageCreate(type=MessageType.AI, content="Hi {{ name }}"),
        ]
        rendered = parameterize_messages(messages, {"name": "Ada"})
        assert [m.content for m in rendered] == ["Hi Ada", "Hi {{ name }}"]

    def test_text_blocks(self) -> None:
        image = ImageBlock(image_url=ImageUrl(url="data:x"))
        message = MessageCreate(
            type=MessageType.HUMAN,
            content=[TextBlock(text="Look, {{ name }}"), image],
        )
        [rendered] = parameterize_messages([message], {"name": "Ada"})
        assert rendered.content == [TextBlock(text="Look, Ada"), image]

    def test_originals_unchanged(self) -> None:
        message = MessageCreate(type=MessageType.HUMAN, content="Hi {{ name }}")
        parameterize_messages([message], {"name": "Ada"})
        assert message.content == "Hi {{ name }}"
