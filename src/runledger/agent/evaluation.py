"""
Task evaluation.

Agents report the outcome of a task by ending with a fenced JSON block:

    ```json
    {"taskStatus": "success", "reason": "Order refunded"}
    ```

extract_task_status reads those blocks back; evaluation_prompt produces the
instruction text asking for them.
"""

import json
import re
from collections.abc import Iterable, Mapping
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from runledger.schema import DEFAULT_TASK_REASON, TaskStatus

_FENCED_JSON = re.compile(r"```(?:json)?\s*(\{.*?\})\s*```", re.DOTALL)


class TaskAssessment(BaseModel):
    """The agent's own verdict on a task."""

    model_config = ConfigDict(populate_by_name=True)

    task_status: str = Field(..., alias="taskStatus")
    reason: str


def _texts(message: Any) -> list[str]:
    if isinstance(message, Mapping):
        content = message.get("content")
    else:
        content = getattr(message, "content", None)

    if isinstance(content, str):
        return [content]
    texts = []
    if isinstance(content, list):
        for block in content:
            if isinstance(block, Mapping):
                if block.get("type") == "text" and isinstance(block.get("text"), str):
                    texts.append(block["text"])
            elif getattr(block, "type", None) == "text":
                texts.append(block.text)
    return texts


def _assessments(text: str) -> Iterable[TaskAssessment]:
    for match in _FENCED_JSON.finditer(text):
        try:
            yield TaskAssessment.model_validate(json.loads(match.group(1)))
        except (ValueError, ValidationError):
            continue


def extract_task_status(messages: Iterable[Any]) -> tuple[str, str]:
    """
    Find the task status the agent expressed.

    Every message's text is scanned for fenced JSON blocks holding a string
    ``taskStatus`` and a string ``reason``. The last valid block wins;
    malformed blocks are skipped.

    Returns:
        (task_status, reason), or ("unknown", "Ai didn't express a reason")
    """
    found = (TaskStatus.UNKNOWN, DEFAULT_TASK_REASON)
    for message in messages:
        for text in _texts(message):
            for assessment in _assessments(text):
                found = (assessment.task_status, assessment.reason)
    return found


def evaluation_prompt(
    success_criteria: str | None = None,
    failure_criteria: str | None = None,
    need_human_help_criteria: str | None = None,
) -> str:
    """Build the instruction asking the agent to report a task status."""
    lines = ["Important:"]
    if success_criteria:
        lines.append(f"- The success criteria is {success_criteria}.")
    if failure_criteria:
        lines.append(f"- The failure criteria is {failure_criteria}.")
    if need_human_help_criteria:
        lines.append(f"- The need human help criteria is {need_human_help_criteria}.")
    lines.extend([
        "If any of these criteria are met, the task is considered done.",
        "You should output a message in the following format:",
        "",
        "```json",
        "{",
        f'"taskStatus": "{TaskStatus.SUCCESS}" | "{TaskStatus.FAILURE}" | "{TaskStatus.NEED_HUMAN_HELP}",',
        '"reason": "The issue you\'re facing"',
        "}",
        "```",
        "",
        "If the task is not successful, clearly explain the reason you're facing "
        "and what you've tried so far.",
    ])
    return "\n".join(lines) + "\n"
