"""
Agent integration for runledger.

Components:
    - Agent / FunctionAgent: The interface runledger drives
    - ReplaySink: Persists messages the agent appends during a run
    - extract_task_status / evaluation_prompt: The task status protocol
"""

from runledger.agent.base import Agent, AgentReply, FunctionAgent, reply_messages
from runledger.agent.evaluation import TaskAssessment, evaluation_prompt, extract_task_status
from runledger.agent.sink import ReplaySink

__all__ = [
    "Agent",
    "AgentReply",
    "FunctionAgent",
    "ReplaySink",
    "TaskAssessment",
    "evaluation_prompt",
    "extract_task_status",
    "reply_messages",
]
