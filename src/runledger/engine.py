"""
Run processor for runledger.

The RunProcessor drives one run through its lifecycle:

Execution Flow:
    1. Mark the run running
    2. Re-execute every stored tool call, in message order
    3. Unless tools-only, invoke the agent with the transcript and a ReplaySink
    4. Extract the task status from the agent's reply
    5. Mark the run done and record the task status

Any failure in steps 1-4 is logged and turns the run failed, with the
exception type and message as the reason. A failure in step 5 gets one
attempt to mark the run failed and is then raised to the caller; the final
writes are never retried. A run is never left running once process()
returns or raises, and a terminal run whose task status is recorded is
never changed again.

Front ends without a caller to report to (the HTTP background task and the
queue consumer) go through process_or_fail().
"""

import logging
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any

from runledger.agent import Agent, ReplaySink, extract_task_status, reply_messages
from runledger.mapper.agent import to_external_messages
from runledger.schema import MessageCreate, Run, RunStatus, TaskStatus
from runledger.store import LedgerDB
from runledger.tools import ToolCallResult, ToolRegistry, execute_tools

FAILED_REASON = "Processing failed"


@dataclass
class ProcessResult:
    """
    Result of processing one run.

    Attributes:
        run_id: The processed run
        status: Final run status (done or failed)
        task_status: Recorded task status
        reason: Recorded reason
        tool_results: Results of the replayed tool calls, in execution order
        error: The exception that failed the run, if any
    """

    run_id: str
    status: RunStatus
    task_status: str = TaskStatus.UNKNOWN
    reason: str | None = None
    tool_results: list[ToolCallResult] = field(default_factory=list)
    error: BaseException | None = None

    @property
    def success(self) -> bool:
        """Whether the run finished without an error."""
        return self.status is RunStatus.DONE and self.error is None


def failure_reason(error: BaseException) -> str:
    """Diagnostic text recorded for a failed run."""
    message = getattr(error, "message", None) or str(error)
    return f"{type(error).__name__}: {message}" if message else type(error).__name__


class RunProcessor:
    """
    Processes runs against a store, a tool registry and an agent.

    Usage:
        processor = RunProcessor(db, registry, agent=my_agent)
        result = processor.process(run_id)

    Attributes:
        db: Store holding runs and transcripts
        registry: Tools available to replayed calls
        agent: Agent continuing the conversation (optional in tools-only use)
        logger: Logger receiving processing failures
    """

    def __init__(
        self,
        db: LedgerDB,
        registry: ToolRegistry,
        agent: Agent | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        self.db = db
        self.registry = registry
        self.agent = agent
        self.logger = logger or logging.getLogger(__name__)

    def process(
        self,
        run_id: str,
        messages: Sequence[MessageCreate | Mapping[str, Any]] | None = None,
        tools_only: bool = False,
    ) -> ProcessResult:
        """
        Process a run.

        Args:
            run_id: Run to process
            messages: Transcript to process; the stored one when None
            tools_only: Replay the tool calls without invoking the agent

        Returns:
            ProcessResult describing the final state of the run
        """
        tool_results: list[ToolCallResult] = []
        try:
            self.db.update_run_status(run_id, RunStatus.RUNNING)

            if messages is None:
                transcript: list[MessageCreate] = list(self.db.get_all_messages(run_id))
            else:
                transcript = [MessageCreate.model_validate(message) for message in messages]

            for message in transcript:
                if message.has_tool_calls:
                    tool_results.extend(execute_tools(message.tool_calls, self.registry))

            reply = None
            if not tools_only:
                if self.agent is None:
                    msg = "No agent configured; only tools-only runs can be processed"
                    raise RuntimeError(msg)
                reply = self.agent.invoke(
                    to_external_messages(transcript),
                    ReplaySink(self.db, run_id),
                )

            task_status, reason = extract_task_status(reply_messages(reply))
        except Exception as e:
            self.logger.exception("Processing run %s failed", run_id)
            settled = self.mark_failed(run_id, failure_reason(e))
            return ProcessResult(
                run_id=run_id,
                status=settled.status,
                task_status=settled.task_status,
                reason=settled.reason,
                tool_results=tool_results,
                error=e,
            )

        try:
            self.db.update_run_status(run_id, RunStatus.DONE)
            self.db.update_run_task_status(run_id, task_status, reason)
        except Exception as e:
            self.logger.exception("Run %s could not be settled", run_id)
            try:
                self.mark_failed(run_id, failure_reason(e))
            except Exception:
                self.logger.exception("Run %s could not be marked failed", run_id)
            raise

        self.logger.info("Run %s done (task status %s)", run_id, task_status)
        return ProcessResult(
            run_id=run_id,
            status=RunStatus.DONE,
            task_status=task_status,
            reason=reason,
            tool_results=tool_results,
        )

    def process_or_fail(
        self,
        run_id: str,
        messages: Sequence[MessageCreate | Mapping[str, Any]] | None = None,
        tools_only: bool = False,
    ) -> ProcessResult | None:
        """
        Process a run on behalf of a front end that has no caller to report to.

        An exception escaping process() is logged and the run is marked
        failed with FAILED_REASON. Nothing is raised.

        Returns:
            The processing result, or None if processing raised
        """
        try:
            return self.process(run_id, messages, tools_only=tools_only)
        except Exception:
            self.logger.exception("Run %s could not be processed", run_id)
            try:
                self.mark_failed(run_id, FAILED_REASON)
            except Exception:
                self.logger.exception("Run %s could not be marked failed", run_id)
            return None

    def mark_failed(self, run_id: str, reason: str) -> Run:
        """
        Move a run to failed with task status failed.

        A scheduled run passes through running first. A terminal run that
        already recorded its task status is returned untouched.
        """
        run = self.db.get_run(run_id)
        if run.status.is_terminal and run.task_status_recorded:
            self.logger.warning("Run %s already settled as %s", run_id, run.status.value)
            return run

        if run.status is RunStatus.SCHEDULED:
            self.db.update_run_status(run_id, RunStatus.RUNNING)
        if not run.status.is_terminal:
            self.db.update_run_status(run_id, RunStatus.FAILED)
        return self.db.update_run_task_status(run_id, TaskStatus.FAILED, reason)
