import asyncio
import json

from typer.testing import CliRunner

import intentflow.engine as engine_module
import intentflow.persistence as persistence
from intentflow.cli import app
from intentflow.contracts import Step, StepStatus, StepType, Workflow, WorkflowStatus
from intentflow.persistence import InMemoryWorkflowRepository


def _setup_repo() -> InMemoryWorkflowRepository:
    repo = InMemoryWorkflowRepository()
    persistence._repository_instance = repo
    return repo


def _workflow(session_id: str = "s-1") -> Workflow:
    return Workflow(
        session_id=session_id,
        user_intent="Find developer jobs in Hamburg",
        steps=[
            Step(
                step_number=1,
                step_type=StepType.TOOL_CALL,
                description="Search jobs",
                tool_name="job_search",
            ),
            Step(
                step_number=2,
                step_type=StepType.NOTIFICATION,
                description="Tell the user",
                requires_confirmation=True,
            ),
        ],
    )


def test_workflows_command_lists_workflows():
    repo = _setup_repo()
    wf1 = _workflow("s-1")
    wf2 = _workflow("s-2")
    wf1.status = WorkflowStatus.COMPLETED
    asyncio.run(repo.create_workflow(wf1))
    asyncio.run(repo.create_workflow(wf2))

    runner = CliRunner()
    result = runner.invoke(app, ["workflow", "list"])
    assert result.exit_code == 0, f"Command failed with exit code {result.exit_code}. Output: {result.output}"
    assert f"{wf1.id}\ts-1\tcompleted" in result.output
    assert f"{wf2.id}\ts-2\tcreated" in result.output

    filtered = runner.invoke(app, ["workflow", "list", "--session", "s-2"])
    assert wf2.id in filtered.output
    assert wf1.id not in filtered.output


def test_workflows_command_with_empty_store():
    _setup_repo()
    result = CliRunner().invoke(app, ["workflow", "list"])
    assert result.exit_code == 0
    assert "No workflows found" in result.output


def test_workflow_command_shows_details_and_missing():
    repo = _setup_repo()
    wf = _workflow()
    asyncio.run(repo.create_workflow(wf))
    asyncio.run(repo.complete_step(wf.id, 1, {"jobs": []}))

    runner = CliRunner()
    result = runner.invoke(app, ["workflow", "show", wf.id])
    assert result.exit_code == 0, f"Command failed with exit code {result.exit_code}. Output: {result.output}"
    output = result.output
    assert f"Workflow {wf.id}: created" in output
    assert "- 1. [job_search] Search jobs: completed" in output
    assert "- 2. [notification] Tell the user: pending (confirm)" in output

    result_missing = runner.invoke(app, ["workflow", "show", "missing-id"])
    assert (
        result_missing.exit_code == 1
    ), f"Expected exit code 1 for missing workflow, got {result_missing.exit_code}. Output: {result_missing.output}"
    assert "Workflow not found" in result_missing.output


def test_workflow_delete_command():
    repo = _setup_repo()
    wf = _workflow()
    asyncio.run(repo.create_workflow(wf))

    runner = CliRunner()
    result = runner.invoke(app, ["workflow", "delete", wf.id])
    assert result.exit_code == 0
    assert f"Deleted workflow {wf.id}" in result.output
    assert asyncio.run(repo.get_workflow(wf.id)) is None

    again = runner.invoke(app, ["workflow", "delete", wf.id])
    assert again.exit_code == 1


def test_status_command_prints_latest_workflow_view():
    repo = _setup_repo()
    wf = _workflow("s-9")
    asyncio.run(repo.create_workflow(wf))

    runner = CliRunner()
    result = runner.invoke(app, ["status", "s-9"])
    assert result.exit_code == 0
    view = json.loads(result.output)
    assert view["workflow_id"] == wf.id
    assert view["status"] == "created"
    assert [s["status"] for s in view["steps"]] == ["pending", "pending"]

    missing = runner.invoke(app, ["status", "nobody"])
    assert missing.exit_code == 1


def test_confirm_command_resumes_paused_workflow(berlin_engine, repo):
    engine_module._engine_instance = berlin_engine
    persistence._repository_instance = repo
    wf = asyncio.run(berlin_engine.start("Find developer jobs in Berlin", "s1"))
    assert wf.status == WorkflowStatus.WAITING_CONFIRMATION

    runner = CliRunner()
    result = runner.invoke(app, ["confirm", wf.id, "--approve"])
    assert result.exit_code == 0, result.output
    assert f"Workflow {wf.id}: completed" in result.output

    stored = asyncio.run(repo.get_workflow(wf.id))
    assert all(s.status == StepStatus.COMPLETED for s in stored.steps)

    log = runner.invoke(app, ["log", "s1"])
    assert "Found Backend Developer at ACME GmbH" in log.output

    again = runner.invoke(app, ["confirm", wf.id, "--reject"])
    assert again.exit_code == 1
    assert "not waiting for confirmation" in again.output
