"""
Parameter templating for baseline config messages.

Human messages may contain Jinja2 placeholders such as ``{{ name }}`` or
``{{ customer.name }}``. Rendering is strict: an unknown variable fails the
whole request rather than producing an empty string.
"""

from collections.abc import Iterable, Mapping
from typing import Any

from jinja2 import Environment, StrictUndefined, TemplateError

from runledger.errors import TemplateParameterError
from runledger.schema import MessageCreate, MessageType, TextBlock

_env = Environment(
    undefined=StrictUndefined,
    autoescape=False,
    keep_trailing_newline=True,
)


def render_template(text: str, parameters: Mapping[str, Any] | None = None) -> str:
    """
    Render one template string.

    Args:
        text: Template text with ``{{ ... }}`` placeholders
        parameters: Values available to the template

    Returns:
        The rendered text

    Raises:
        TemplateParameterError: On an unknown variable or a syntax error
    """
    try:
        return _env.from_string(text).render(**dict(parameters or {}))
    except TemplateError as e:
        raise TemplateParameterError(template_error=str(e)) from e


def parameterize_message(
    message: MessageCreate,
    parameters: Mapping[str, Any] | None = None,
) -> MessageCreate:
    """Render the text of a HumanMessage. Other message types are returned as-is."""
    if message.type is not MessageType.HUMAN or message.content is None:
        return message
    if isinstance(message.content, str):
        content = render_template(message.content, parameters)
    else:
        content = [
            TextBlock(text=render_template(block.text, parameters))
            if isinstance(block, TextBlock)
            else block
            for block in message.content
        ]
    return message.model_copy(update={"content": content})


def parameterize_messages(
    messages: Iterable[MessageCreate],
    parameters: Mapping[str, Any] | None = None,
) -> list[MessageCreate]:
    """Render every HumanMessage in order."""
    return [parameterize_message(message, parameters) for message in messages]
