"""Command line interface for running meop sequences and workers."""

from __future__ import annotations

import asyncio
import json
import logging
from pathlib import Path
from typing import Any, Dict, Optional

import typer
import yaml
from pydantic import ValidationError

from meop import (
    RunWorker,
    SequenceRunner,
    SequenceScheduler,
    enqueue_run,
    get_repository,
    get_transport,
    load_sequence,
)
from meop.errors import MeopError
from meop.persistence import Execution

app = typer.Typer(help="CLI for meop automation sequences")

# Command groups
sequence_app = typer.Typer(help="Commands for managing and running sequences")
execution_app = typer.Typer(help="Commands for inspecting executions")
worker_app = typer.Typer(help="Commands for background workers")
scheduler_app = typer.Typer(help="Commands for scheduled sequences")

app.add_typer(sequence_app, name="sequence")
app.add_typer(execution_app, name="execution")
app.add_typer(worker_app, name="worker")
app.add_typer(scheduler_app, name="scheduler")


@app.callback()
def main(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Log progress"),
) -> None:
    """meop CLI entry point."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def _fail(message: str) -> None:
    typer.secho(message, fg=typer.colors.RED)
    raise typer.Exit(code=1)


def _parse_input(raw: Optional[str]) -> Dict[str, Any]:
    if not raw:
        return {}
    try:
        data = json.loads(raw)
    except json.JSONDecodeError as exc:
        _fail(f"Invalid --input JSON: {exc}")
    if not isinstance(data, dict):
        _fail("--input must be a JSON object")
    return data


def _echo_execution(execution: Execution) -> None:
    typer.echo(f"Execution {execution.id}: {execution.status}")
    if execution.input_data:
        typer.echo(f"Input: {json.dumps(execution.input_data)}")
    for result in execution.step_results:
        name = result.step_label or result.step_kind
        line = f"- {name} [{result.step_kind}]: {result.status}"
        if result.duration_ms is not None:
            line += f" ({result.duration_ms}ms)"
        typer.echo(line)
        if result.error:
            typer.echo(f"    error: {result.error}")
        elif result.result:
            typer.echo(f"    {result.result}")
    if execution.error_message:
        typer.echo(f"Error: {execution.error_message}")
    if execution.final_result:
        typer.echo(f"Final result: {execution.final_result}")


@sequence_app.command("import")
def sequence_import(path: Path) -> None:
    """
    Store sequence definitions from a YAML or JSON file.

    The file holds either one sequence or a list of them. Steps may use the
    list layout or the workflow canvas ``{"nodes": [...]}`` layout.

    Example:
        meop sequence import ./sequences/morning_brief.yaml
    """
    if not path.exists():
        _fail("Specified path does not exist")

    with open(path) as f:
        data = yaml.safe_load(f)
    documents = data if isinstance(data, list) else [data]

    repo = get_repository()
    for document in documents:
        if not isinstance(document, dict):
            _fail(f"Not a sequence definition: {document!r}")
        try:
            sequence = load_sequence(document)
        except ValidationError as exc:
            _fail(f"Invalid sequence definition: {exc}")
        asyncio.run(repo.save_sequence(sequence))
        typer.echo(f"Imported {sequence.name} ({sequence.id}) with {len(sequence.steps)} step(s)")


@sequence_app.command("list")
def sequence_list() -> None:
    """List stored sequences with their id, step count and last run."""
    repo = get_repository()
    sequences = asyncio.run(repo.list_sequences())
    if not sequences:
        typer.echo("No sequences found")
        return
    for seq in sequences:
        state = "active" if seq.is_active else "inactive"
        last_run = seq.last_run_at.isoformat() if seq.last_run_at else "never"
        typer.echo(f"{seq.id}\t{seq.name}\t{len(seq.steps)} step(s)\t{state}\t{last_run}")


@sequence_app.command("run")
def sequence_run(
    sequence_id: str,
    input: Optional[str] = typer.Option(None, "--input", help="JSON object passed to the run"),
    may_block: bool = typer.Option(
        False, "--may-block", help="Really wait on delay steps"
    ),
) -> None:
    """
    Run a sequence in this process and print its execution.

    Exits with code 1 when the execution fails.

    Example:
        meop sequence run 3f2a... --input '{"query": "AI regulation news"}'
    """
    input_data = _parse_input(input)
    runner = SequenceRunner(repository=get_repository())
    try:
        execution = asyncio.run(runner.run(sequence_id, input_data, may_block=may_block))
    except MeopError as exc:
        _fail(str(exc))
    _echo_execution(execution)
    if execution.status == "failed":
        raise typer.Exit(code=1)


@sequence_app.command("enqueue")
def sequence_enqueue(
    sequence_id: str,
    input: Optional[str] = typer.Option(None, "--input", help="JSON object passed to the run"),
) -> None:
    """
    Queue a sequence run for a background worker.

    Prints the execution id the worker will record the run under.

    Example:
        meop sequence enqueue 3f2a...
        meop worker start
    """
    input_data = _parse_input(input)
    transport = get_transport()
    execution_id = asyncio.run(enqueue_run(transport, sequence_id, input_data))
    typer.echo("Run queued successfully!")
    typer.echo(f"Execution ID: {execution_id}")
    typer.echo("Process it with: meop worker start")


@execution_app.command("list")
def execution_list(
    sequence: Optional[str] = typer.Option(None, "--sequence", help="Only this sequence"),
) -> None:
    """List executions, most recent first."""
    repo = get_repository()
    executions = asyncio.run(repo.list_executions(sequence))
    if not executions:
        typer.echo("No executions found")
        return
    for ex in executions:
        typer.echo(f"{ex.id}\t{ex.sequence_id}\t{ex.status}\t{ex.started_at.isoformat()}")


@execution_app.command("show")
def execution_show(execution_id: str) -> None:
    """Show an execution with its per-step results."""
    repo = get_repository()
    execution = asyncio.run(repo.get_execution(execution_id))
    if execution is None:
        _fail("Execution not found")
    _echo_execution(execution)


@worker_app.command("start")
def worker_start(
    lifespan: Optional[float] = typer.Option(
        None, "--lifespan", help="Stop after this many seconds (default: run forever)"
    ),
) -> None:
    """Process queued sequence runs. Delay steps really wait here."""
    transport = get_transport()
    worker = RunWorker(transport, SequenceRunner(repository=get_repository()))
    typer.echo("Starting worker")
    asyncio.run(worker.start(lifespan=lifespan))
    typer.echo(f"Worker stopped after {worker.processed} run(s)")


@scheduler_app.command("tick")
def scheduler_tick() -> None:
    """Run every active scheduled sequence that is due right now."""
    repo = get_repository()
    scheduler = SequenceScheduler(repo, SequenceRunner(repository=repo))
    summary = asyncio.run(scheduler.tick())
    typer.echo(json.dumps(summary, indent=2))
    if summary["errors"]:
        raise typer.Exit(code=1)


if __name__ == "__main__":  # pragma: no cover - CLI entry point
    app()
