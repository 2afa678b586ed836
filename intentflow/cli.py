"""Command line interface for intentflow workflows."""

from __future__ import annotations

import asyncio
import json
import logging
from datetime import datetime, timezone
from typing import Optional

import typer

from intentflow import get_engine, get_repository, get_transport
from intentflow.contracts import Workflow
from intentflow.dispatch import WorkflowDispatcher
from intentflow.exceptions import IntentflowError
from intentflow.worker import WorkflowWorker

app = typer.Typer(help="CLI for intentflow workflows")

workflow_app = typer.Typer(help="Commands for inspecting stored workflows")
app.add_typer(workflow_app, name="workflow")


@app.callback()
def main(
    log_level: str = typer.Option("WARNING", help="Logging level for intentflow output"),
) -> None:
    """intentflow CLI entry point."""
    logging.basicConfig(
        level=getattr(logging, log_level.upper(), logging.WARNING),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def _echo_workflow(wf: Workflow) -> None:
    typer.echo(f"Workflow {wf.id}: {wf.status.value}")
    typer.echo(f"Session: {wf.session_id}")
    typer.echo(f"Intent: {wf.user_intent}")
    if wf.current_step is not None:
        typer.echo(f"Awaiting confirmation: step {wf.current_step}")
    for step in wf.steps:
        label = step.tool_name or step.step_type.value
        line = f"- {step.step_number}. [{label}] {step.description}: {step.status.value}"
        if step.requires_confirmation:
            line += " (confirm)"
        typer.echo(line)
        if step.error_message:
            typer.echo(f"    error: {step.error_message}")


async def _queue_command(workflow_id: str, approved: Optional[bool] = None):
    async with get_transport() as transport:
        dispatcher = WorkflowDispatcher(transport)
        if approved is None:
            return await dispatcher.dispatch_run(workflow_id)
        return await dispatcher.dispatch_confirmation(workflow_id, approved)


def _fail(message: str) -> None:
    typer.secho(message, fg=typer.colors.RED)
    raise typer.Exit(code=1)


@app.command("plan")
def plan(intent: str, session: str = typer.Option(..., help="Session identifier")) -> None:
    """
    Plan a workflow for INTENT and store it without running it.

    Example:
        intentflow plan "find developer jobs in Hamburg" --session s-1
    """
    engine = get_engine()
    try:
        wf = asyncio.run(engine.create_workflow(intent, session))
    except IntentflowError as e:
        _fail(f"Planning failed: {e}")
    _echo_workflow(wf)


@app.command("start")
def start(intent: str, session: str = typer.Option(..., help="Session identifier")) -> None:
    """
    Plan a workflow for INTENT and run it until it completes or needs confirmation.

    Example:
        intentflow start "search apartments in Berlin for 1500 EUR" --session s-1
    """
    engine = get_engine()
    try:
        wf = asyncio.run(engine.start(intent, session))
    except IntentflowError as e:
        _fail(f"Workflow failed to start: {e}")
    _echo_workflow(wf)


@app.command("run")
def run(
    workflow_id: str,
    queue: bool = typer.Option(False, help="Publish a run command for a worker instead"),
) -> None:
    """Run (or resume) a stored workflow."""
    if queue:
        command = asyncio.run(_queue_command(workflow_id))
        typer.echo(f"Queued run {command.command_id} for workflow {workflow_id}")
        return
    engine = get_engine()
    try:
        wf = asyncio.run(engine.run(workflow_id))
    except IntentflowError as e:
        _fail(str(e))
    _echo_workflow(wf)


@app.command("confirm")
def confirm(
    workflow_id: str,
    approve: bool = typer.Option(
        ..., "--approve/--reject", help="Approve or reject the paused step"
    ),
    queue: bool = typer.Option(False, help="Publish the decision for a worker instead"),
) -> None:
    """
    Approve or reject the step a workflow is waiting on.

    Example:
        intentflow confirm 3f2b... --approve
    """
    if queue:
        command = asyncio.run(_queue_command(workflow_id, approve))
        typer.echo(f"Queued confirmation {command.command_id} for workflow {workflow_id}")
        return
    engine = get_engine()
    try:
        wf = asyncio.run(engine.confirm(workflow_id, approve))
    except IntentflowError as e:
        _fail(str(e))
    _echo_workflow(wf)


@app.command("status")
def status(session_id: str) -> None:
    """Show the most recent workflow of a session."""
    repo = get_repository()
    wf = asyncio.run(repo.find_latest_by_session(session_id))
    if wf is None:
        _fail("No workflow found for session")
    typer.echo(json.dumps(wf.status_view().model_dump(mode="json"), indent=2))


@app.command("log")
def log(
    session_id: str,
    since: Optional[str] = typer.Option(None, help="Only entries after this ISO timestamp"),
) -> None:
    """Print the progress log of a session."""
    since_ts = None
    if since:
        since_ts = datetime.fromisoformat(since)
        if since_ts.tzinfo is None:
            since_ts = since_ts.replace(tzinfo=timezone.utc)
    reporter = get_engine().status_reporter
    entries = asyncio.run(reporter.latest(session_id, since=since_ts))
    if not entries:
        typer.echo("No status entries")
        return
    for entry in entries:
        typer.echo(f"{entry.timestamp.isoformat()}\t{entry.message}")


@app.command("worker")
def worker(lifespan: Optional[float] = None) -> None:
    """
    Run a worker that executes queued run and confirm commands.

    Example:
        intentflow worker --lifespan 300
    """
    async def _consume() -> None:
        async with get_transport() as transport:
            await WorkflowWorker(transport, get_engine()).start(lifespan=lifespan)

    typer.echo("Starting workflow worker")
    asyncio.run(_consume())


@workflow_app.command("list")
def workflow_list(session: Optional[str] = typer.Option(None, help="Filter by session")) -> None:
    """
    List stored workflows with their current status.

    Example:
        intentflow workflow list
        # Output: abc123-def456-789    s-1    waiting_confirmation
    """
    repo = get_repository()
    workflows = asyncio.run(repo.list_workflows(session))
    if not workflows:
        typer.echo("No workflows found")
        return
    for wf in workflows:
        typer.echo(f"{wf.id}\t{wf.session_id}\t{wf.status.value}")


@workflow_app.command("show")
def workflow_show(workflow_id: str) -> None:
    """Show a workflow and the status of each of its steps."""
    repo = get_repository()
    wf = asyncio.run(repo.get_workflow(workflow_id))
    if wf is None:
        typer.echo("Workflow not found")
        raise typer.Exit(code=1)
    _echo_workflow(wf)


@workflow_app.command("delete")
def workflow_delete(workflow_id: str) -> None:
    """Delete a workflow and its steps."""
    repo = get_repository()
    if not asyncio.run(repo.delete_workflow(workflow_id)):
        typer.echo("Workflow not found")
        raise typer.Exit(code=1)
    typer.echo(f"Deleted workflow {workflow_id}")
