"""
CLI entry point for runledger.

Commands:
    serve       Start the HTTP front end
    consume     Process runs published to the AMQP queue
    list-runs   List recorded runs
    show-run    Show a run and its transcript
    replay      Re-execute the tool calls of one stored message

Deployments plug their tools and agent in through a Runtime, loaded from an
import string with --runtime (e.g. ``myapp.agents:runtime``). Defaults come
from RUNLEDGER_* environment variables.
"""

import json
import traceback
from pathlib import Path
from typing import Annotated, Optional

import typer
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from runledger import __version__
from runledger.config import Settings, get_settings
from runledger.engine import RunProcessor
from runledger.errors import RunLedgerError
from runledger.log import configure_logging
from runledger.mapper.agent import text_of
from runledger.queue import QueueConsumer
from runledger.replay import replay_message
from runledger.runtime import Runtime, load_runtime
from runledger.schema import RunFilters, RunStatus, SortOrder
from runledger.store import LedgerDB

# Initialize Typer app with metadata
app = typer.Typer(
    name="runledger",
    help="Persist, replay and resume agent runs.",
    add_completion=False,
    no_args_is_help=True,
)

# Rich console for formatted output
console = Console()

STATUS_STYLES = {
    RunStatus.DONE: "green",
    RunStatus.FAILED: "red",
    RunStatus.RUNNING: "yellow",
    RunStatus.SCHEDULED: "dim",
}

RuntimeOption = Annotated[
    Optional[str],
    typer.Option(
        "--runtime",
        "-r",
        help="Runtime to load, as 'module:attribute'.",
    ),
]

DbOption = Annotated[
    Optional[Path],
    typer.Option(
        "--db",
        help="Path to the SQLite database. Defaults to RUNLEDGER_DATABASE_PATH.",
        resolve_path=True,
    ),
]


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        console.print(f"[bold]runledger[/bold] version {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: Annotated[
        Optional[bool],
        typer.Option(
            "--version",
            "-v",
            help="Show version and exit.",
            callback=version_callback,
            is_eager=True,
        ),
    ] = None,
) -> None:
    """
    runledger - Run execution and replay engine for agent conversations.

    Stores every run's transcript, re-executes recorded tool calls and
    resumes runs through an external agent.
    """
    pass


def _resolve_runtime(target: str | None, settings: Settings) -> Runtime:
    try:
        runtime = load_runtime(target) if target else Runtime()
    except (ImportError, ValueError) as e:
        console.print(f"[red]Cannot load runtime: {e}[/red]")
        raise typer.Exit(code=1) from e
    if not runtime.config_messages:
        runtime.with_config_file(settings.config_messages_path)
    return runtime


def _open_db(db: Path | None, settings: Settings, must_exist: bool = False) -> LedgerDB:
    db_path = db or Path(settings.database_path)
    if must_exist and not db_path.exists():
        console.print(f"[yellow]No database found at {db_path}[/yellow]")
        raise typer.Exit(code=1)
    return LedgerDB(db_path)


def _status_display(status: RunStatus) -> str:
    style = STATUS_STYLES.get(status, "yellow")
    return f"[{style}]{status.value}[/{style}]"


@app.command()
def serve(
    runtime: RuntimeOption = None,
    db: DbOption = None,
    host: Annotated[
        Optional[str],
        typer.Option("--host", help="Interface to bind. Defaults to RUNLEDGER_HOST."),
    ] = None,
    port: Annotated[
        Optional[int],
        typer.Option("--port", "-p", help="Port to bind. Defaults to RUNLEDGER_PORT."),
    ] = None,
) -> None:
    """
    Start the HTTP front end.

    Example:
        $ runledger serve --runtime myapp.agents:runtime --port 8080
    """
    import uvicorn

    from runledger.server import create_app

    settings = get_settings()
    configure_logging(settings.log_level)
    ledger = _open_db(db, settings)
    api = create_app(
        db=ledger,
        runtime=_resolve_runtime(runtime, settings),
        settings_override=settings,
    )
    try:
        uvicorn.run(
            api,
            host=host or settings.host,
            port=port or settings.port,
            log_config=None,
        )
    finally:
        ledger.close()


@app.command()
def consume(
    runtime: RuntimeOption = None,
    db: DbOption = None,
    queue: Annotated[
        Optional[str],
        typer.Option("--queue", "-q", help="Queue name. Defaults to RUNLEDGER_QUEUE_NAME."),
    ] = None,
) -> None:
    """
    Process runs published to the AMQP queue until interrupted.

    Example:
        $ runledger consume --runtime myapp.agents:runtime
    """
    settings = get_settings()
    configure_logging(settings.log_level)
    loaded = _resolve_runtime(runtime, settings)
    with _open_db(db, settings) as ledger:
        processor = RunProcessor(ledger, loaded.registry, loaded.agent)
        consumer = QueueConsumer(processor, settings.amqp_url, queue or settings.queue_name)
        consumer.run()


@app.command("list-runs")
def list_runs(
    db: DbOption = None,
    limit: Annotated[
        int,
        typer.Option("--limit", "-n", help="Maximum number of runs to show."),
    ] = 20,
    status: Annotated[
        Optional[RunStatus],
        typer.Option("--status", help="Only show runs with this status."),
    ] = None,
    task_status: Annotated[
        Optional[str],
        typer.Option("--task-status", help="Only show runs with this task status."),
    ] = None,
    order: Annotated[
        SortOrder,
        typer.Option("--order", help="Sort by creation time."),
    ] = SortOrder.DESC,
) -> None:
    """
    List recorded runs.

    Example:
        $ runledger list-runs --status failed
    """
    settings = get_settings()
    with _open_db(db, settings, must_exist=True) as ledger:
        filters = RunFilters(status=status, task_status=task_status)
        runs = ledger.get_runs(limit=limit, order=order, filters=filters)

        if not runs:
            console.print("[dim]No runs found.[/dim]")
            raise typer.Exit(code=0)

        table = Table(show_header=True, header_style="bold")
        table.add_column("Run ID", style="cyan", justify="right")
        table.add_column("Created")
        table.add_column("Status", width=10)
        table.add_column("Task Status")
        table.add_column("Reason")

        for run in runs:
            reason = run.reason or ""
            if len(reason) > 60:
                reason = reason[:57] + "..."
            table.add_row(
                run.id,
                run.timestamp.isoformat()[:19],
                _status_display(run.status),
                run.task_status,
                escape(reason),
            )

        console.print(table)
        total = ledger.get_runs_count(filters)
        console.print(f"[dim]Showing {len(runs)} of {total} run(s)[/dim]")


@app.command("show-run")
def show_run(
    run_id: Annotated[
        str,
        typer.Argument(help="The run ID to show."),
    ],
    db: DbOption = None,
    json_output: Annotated[
        bool,
        typer.Option("--json", help="Output the run and its messages as JSON."),
    ] = False,
) -> None:
    """
    Show a run and its transcript.

    Example:
        $ runledger show-run 42
    """
    settings = get_settings()
    with _open_db(db, settings, must_exist=True) as ledger:
        try:
            run = ledger.get_run(run_id)
            messages = ledger.get_all_messages(run_id)
        except RunLedgerError as e:
            console.print(f"[red]{e.message}[/red]")
            raise typer.Exit(code=1) from e

    if json_output:
        payload = {
            "run": run.model_dump(mode="json", by_alias=True),
            "messages": [m.model_dump(mode="json", by_alias=True) for m in messages],
        }
        console.print_json(json.dumps(payload))
        return

    console.print(f"[bold]Run {run.id}[/bold]")
    console.print(f"  Status: {_status_display(run.status)}")
    console.print(f"  Task status: {run.task_status}")
    if run.reason:
        console.print(f"  Reason: {escape(run.reason)}")
    console.print(f"  Created: {run.timestamp.isoformat()[:19]}")
    console.print()

    if not messages:
        console.print("[dim]No messages recorded.[/dim]")
        return

    table = Table(show_header=True, header_style="bold")
    table.add_column("ID", style="dim", justify="right")
    table.add_column("Type", style="cyan")
    table.add_column("Content")
    table.add_column("Tool Calls")

    for message in messages:
        content = text_of(message.content)
        if len(content) > 60:
            content = content[:57] + "..."
        content = escape(content)
        if isinstance(message.content, list) and not content:
            content = f"[dim]<{len(message.content)} block(s)>[/dim]"
        calls = ", ".join(call.name for call in message.tool_calls or [])
        table.add_row(message.id, message.type.value, content, calls)

    console.print(table)


@app.command()
def replay(
    run_id: Annotated[
        str,
        typer.Argument(help="Run holding the message."),
    ],
    message_id: Annotated[
        str,
        typer.Argument(help="Message whose tool calls are re-executed."),
    ],
    runtime: RuntimeOption = None,
    db: DbOption = None,
    debug: Annotated[
        bool,
        typer.Option("--debug", help="Show full error tracebacks."),
    ] = False,
) -> None:
    """
    Re-execute the tool calls of one stored message.

    The run is not modified. Results are printed as JSON.

    Example:
        $ runledger replay 42 7 --runtime myapp.agents:runtime
    """
    settings = get_settings()
    loaded = _resolve_runtime(runtime, settings)
    with _open_db(db, settings, must_exist=True) as ledger:
        try:
            results = replay_message(ledger, loaded.registry, run_id, message_id)
        except RunLedgerError as e:
            console.print(f"[red]{escape(str(e))}[/red]")
            raise typer.Exit(code=1) from e
        except Exception as e:
            console.print(f"[red]Replay error: {type(e).__name__}: {escape(str(e))}[/red]")
            if debug:
                console.print(f"[dim]{traceback.format_exc()}[/dim]")
            raise typer.Exit(code=1) from e

    console.print_json(json.dumps({"results": [r.to_dict() for r in results]}, default=str))


if __name__ == "__main__":
    app()
