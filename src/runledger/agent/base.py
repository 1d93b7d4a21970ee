"""
Agent interface.

The agent is an external collaborator: runledger hands it the run's
transcript in agent-native form plus a ReplaySink, and reads task status
from whatever messages it returns.

Agents return an AgentResult, a mapping with a "messages" entry, or None.
"""

from abc import ABC, abstractmethod
from collections.abc import Callable, Mapping
from typing import Any

from runledger.agent.sink import ReplaySink
from runledger.schema import AgentMessage, AgentResult

AgentReply = AgentResult | Mapping[str, Any] | None


class Agent(ABC):
    """
    Abstract base class for agents driven by runledger.

    Example:
        class ScriptedAgent(Agent):
            def invoke(self, messages, replay_sink):
                reply = AgentMessage(type="ai", content="done")
                replay_sink.on_run_extended([reply])
                return AgentResult(messages=[*messages, reply])
    """

    @abstractmethod
    def invoke(self, messages: list[AgentMessage], replay_sink: ReplaySink) -> AgentReply:
        """
        Continue the conversation.

        Args:
            messages: The full transcript, converted for the agent
            replay_sink: Sink to report appended messages to

        Returns:
            The final conversation, or None
        """
        ...


AgentFunction = Callable[[list[AgentMessage], ReplaySink], AgentReply]


class FunctionAgent(Agent):
    """An Agent backed by a plain function taking (messages, replay_sink)."""

    def __init__(self, func: AgentFunction) -> None:
        self._func = func

    def invoke(self, messages: list[AgentMessage], replay_sink: ReplaySink) -> AgentReply:
        return self._func(messages, replay_sink)


def reply_messages(reply: AgentReply) -> list[Any]:
    """Pull the message list out of an agent reply. Anything else yields []."""
    if isinstance(reply, AgentResult):
        return list(reply.messages)
    if isinstance(reply, Mapping):
        messages = reply.get("messages")
        if isinstance(messages, list):
            return messages
    return []
