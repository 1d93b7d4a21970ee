"""FastAPI front end for runledger."""

from __future__ import annotations

import logging
import math
from typing import Any

from fastapi import BackgroundTasks, FastAPI, Query, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import Field, model_validator

from runledger.config import Settings, get_settings
from runledger.engine import RunProcessor, failure_reason
from runledger.errors import NotFoundError, RunLedgerError, ToolNotFoundError, ValidationError
from runledger.queue import QueuePublisher
from runledger.replay import replay_message
from runledger.runtime import Runtime
from runledger.schema import (
    CamelModel,
    MessageCreate,
    QueueEnvelope,
    Run,
    RunFilters,
    RunStatus,
    SortOrder,
    load_config_messages,
)
from runledger.store import LedgerDB
from runledger.templates import parameterize_messages

logger = logging.getLogger(__name__)


class CreateRunRequest(CamelModel):
    parameters: dict[str, Any] = Field(default_factory=dict)
    replay_messages: list[dict[str, Any]] | None = None
    include_config_messages: bool = False
    tools_only: bool = False

    @model_validator(mode="after")
    def check_messages_source(self) -> CreateRunRequest:
        if self.replay_messages is None and not self.include_config_messages:
            msg = "Either replayMessages or includeConfigMessages must be given"
            raise ValueError(msg)
        return self


class CreateBatchRequest(CreateRunRequest):
    parameter_sets: list[dict[str, Any]] = Field(..., min_length=1)


class ReplayRequest(CamelModel):
    run_id: str = Field(..., min_length=1)
    message_id: str = Field(..., min_length=1)


def _status_code(error: RunLedgerError) -> int:
    if isinstance(error, NotFoundError):
        return 404
    if isinstance(error, (ValidationError, ToolNotFoundError)):
        return 400
    return 500


def _error_response(status_code: int, message: str, details: Any) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"error": message, "details": jsonable_encoder(details)},
    )


def _dump_run(run: Run) -> dict[str, Any]:
    return run.model_dump(mode="json", by_alias=True)


def create_app(
    *,
    db: LedgerDB | None = None,
    runtime: Runtime | None = None,
    settings_override: Settings | None = None,
    publisher: QueuePublisher | None = None,
) -> FastAPI:
    settings = settings_override or get_settings()
    runtime = runtime or Runtime()
    if not runtime.config_messages and settings.config_messages_path:
        runtime.config_messages = load_config_messages(settings.config_messages_path)

    db = db or LedgerDB(settings.database_path)
    processor = RunProcessor(db, runtime.registry, runtime.agent)
    if settings.dispatch_mode == "queue" and publisher is None:
        publisher = QueuePublisher(settings.amqp_url, settings.queue_name)

    app = FastAPI(title=settings.app_name)
    app.state.settings = settings
    app.state.db = db
    app.state.runtime = runtime
    app.state.processor = processor
    app.state.publisher = publisher

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(RunLedgerError)
    async def handle_runledger_error(request: Request, exc: RunLedgerError) -> JSONResponse:
        status_code = _status_code(exc)
        if status_code >= 500:
            logger.error("%s %s failed: %s", request.method, request.url.path, exc)
        return _error_response(status_code, exc.message, exc.to_dict())

    @app.exception_handler(RequestValidationError)
    async def handle_request_validation(request: Request, exc: RequestValidationError) -> JSONResponse:
        return _error_response(400, "Invalid request", {"errors": exc.errors()})

    @app.exception_handler(Exception)
    async def handle_unexpected(request: Request, exc: Exception) -> JSONResponse:
        logger.exception("%s %s failed", request.method, request.url.path)
        return _error_response(500, str(exc) or type(exc).__name__, {"error_type": type(exc).__name__})

    def _build_messages(payload: CreateRunRequest, parameters: dict[str, Any]) -> list[MessageCreate]:
        messages: list[MessageCreate] = []
        if payload.include_config_messages:
            messages.extend(parameterize_messages(runtime.config_messages, parameters))
        if payload.replay_messages:
            messages.extend(db.validate_messages(payload.replay_messages))
        return messages

    def _create_run(messages: list[MessageCreate]) -> Run:
        run_id = db.create_run()
        db.insert_messages(run_id, messages)
        return db.get_run(run_id)

    def _process_all(jobs: list[tuple[str, list[MessageCreate]]], tools_only: bool) -> None:
        for run_id, messages in jobs:
            processor.process_or_fail(run_id, messages, tools_only=tools_only)

    def _publish_all(jobs: list[tuple[str, list[MessageCreate]]], tools_only: bool) -> None:
        for index, (run_id, messages) in enumerate(jobs):
            try:
                publisher.publish(QueueEnvelope(run_id=run_id, messages=messages, tools_only=tools_only))
            except Exception as e:
                # Runs that never reached the queue would stay scheduled
                reason = failure_reason(e)
                for pending_id, _ in jobs[index:]:
                    processor.mark_failed(pending_id, reason)
                raise

    def _dispatch(
        jobs: list[tuple[str, list[MessageCreate]]],
        tools_only: bool,
        background_tasks: BackgroundTasks,
    ) -> None:
        if settings.dispatch_mode == "queue":
            _publish_all(jobs, tools_only)
        else:
            background_tasks.add_task(_process_all, jobs, tools_only)

    @app.get("/health-check")
    def health_check() -> dict[str, str]:
        return {"status": "ok"}

    @app.post("/runs")
    def create_run(payload: CreateRunRequest, background_tasks: BackgroundTasks) -> dict[str, Any]:
        messages = _build_messages(payload, payload.parameters)
        run = _create_run(messages)
        _dispatch([(run.id, messages)], payload.tools_only, background_tasks)
        return _dump_run(run)

    @app.post("/runs/batch")
    def create_runs(payload: CreateBatchRequest, background_tasks: BackgroundTasks) -> dict[str, Any]:
        # Every batch is rendered and validated before the first run is created.
        batches = [_build_messages(payload, parameters) for parameters in payload.parameter_sets]
        runs = [_create_run(messages) for messages in batches]
        jobs = [(run.id, messages) for run, messages in zip(runs, batches, strict=True)]
        _dispatch(jobs, payload.tools_only, background_tasks)
        return {"runs": [_dump_run(run) for run in runs]}

    @app.get("/runs")
    def list_runs(
        page: int = Query(default=1, ge=1),
        limit: int = Query(default=10, ge=1, le=1000),
        order: SortOrder = Query(default=SortOrder.DESC),
        status: RunStatus | None = Query(default=None),
        task_status: str | None = Query(default=None, alias="taskStatus"),
    ) -> dict[str, Any]:
        filters = RunFilters(status=status, task_status=task_status)
        runs = db.get_runs(limit=limit, offset=(page - 1) * limit, order=order, filters=filters)
        total_count = db.get_runs_count(filters)
        return {
            "runs": [_dump_run(run) for run in runs],
            "pagination": {
                "currentPage": page,
                "totalPages": math.ceil(total_count / limit),
                "totalCount": total_count,
                "limit": limit,
            },
        }

    @app.get("/runs/{run_id}")
    def get_run(run_id: str) -> dict[str, Any]:
        return _dump_run(db.get_run(run_id))

    @app.get("/runs/{run_id}/messages")
    def get_messages(run_id: str) -> list[dict[str, Any]]:
        return [message.model_dump(mode="json", by_alias=True) for message in db.get_all_messages(run_id)]

    @app.get("/runs/{run_id}/messages/{message_id}")
    def get_message(run_id: str, message_id: str) -> dict[str, Any]:
        return db.get_message(run_id, message_id).model_dump(mode="json", by_alias=True)

    @app.post("/replay")
    def replay(payload: ReplayRequest) -> dict[str, Any]:
        results = replay_message(db, runtime.registry, payload.run_id, payload.message_id)
        return {"results": jsonable_encoder([result.to_dict() for result in results])}

    return app
