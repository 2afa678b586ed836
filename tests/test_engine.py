"""End-to-end engine tests with in-memory collaborators."""

import pytest

from intentflow.contracts import StepStatus, StepType, WorkflowStatus
from intentflow.exceptions import PlanParseError, WorkflowNotFoundError


async def _messages(status, session_id):
    return [entry.message for entry in await status.latest(session_id)]


@pytest.mark.asyncio
async def test_berlin_job_search_pauses_then_completes(berlin_engine, status):
    engine = berlin_engine

    workflow = await engine.start("Find developer jobs in Berlin and tell me the best one", "s1")

    assert workflow.status == WorkflowStatus.WAITING_CONFIRMATION
    assert workflow.current_step == 3
    assert [s.step_type for s in workflow.steps] == [
        StepType.TOOL_CALL,
        StepType.ANALYSIS,
        StepType.NOTIFICATION,
    ]

    view = await engine.get_status("s1")
    assert view.workflow_id == workflow.id
    assert view.status == WorkflowStatus.WAITING_CONFIRMATION
    assert view.current_step == 3
    assert [s.status for s in view.steps] == [
        StepStatus.COMPLETED,
        StepStatus.COMPLETED,
        StepStatus.PENDING_CONFIRMATION,
    ]
    assert view.steps[0].result == {
        "tool": "job_search",
        "result": "1. Backend Developer - ACME GmbH, Berlin",
    }
    assert view.steps[1].result == {
        "job_title": "Backend Developer",
        "company_name": "ACME GmbH",
    }
    assert view.steps[2].result["message"] == "Found Backend Developer at ACME GmbH"
    assert view.steps[2].result["notification_sent"] is False
    assert "Found Backend Developer at ACME GmbH" not in await _messages(status, "s1")

    done = await engine.confirm(workflow.id, approved=True)

    assert done.status == WorkflowStatus.COMPLETED
    view = await engine.get_status("s1")
    assert all(s.status == StepStatus.COMPLETED for s in view.steps)
    assert view.steps[2].result == {
        "notification_sent": True,
        "message": "Found Backend Developer at ACME GmbH",
    }
    messages = await _messages(status, "s1")
    assert messages[:3] == [
        "Planning workflow",
        "Workflow planned with 3 steps",
        "Starting workflow with 3 steps",
    ]
    assert "Found Backend Developer at ACME GmbH" in messages
    assert messages[-1] == "Workflow completed"
    assert berlin_engine.provider.responses == []


@pytest.mark.asyncio
async def test_create_workflow_does_not_run_steps(berlin_engine):
    workflow = await berlin_engine.create_workflow("Find developer jobs in Berlin", "s1")

    assert workflow.status == WorkflowStatus.CREATED
    assert len(berlin_engine.provider.calls) == 1
    stored = await berlin_engine.get_workflow(workflow.id)
    assert all(s.status == StepStatus.PENDING for s in stored.steps)

    ran = await berlin_engine.run(workflow.id)
    assert ran.status == WorkflowStatus.WAITING_CONFIRMATION


@pytest.mark.asyncio
async def test_planning_failure_is_reported(berlin_engine, status):
    berlin_engine.provider.responses = ["I'd rather not."]

    with pytest.raises(PlanParseError):
        await berlin_engine.start("anything", "s2")

    messages = await _messages(status, "s2")
    assert messages[0] == "Planning workflow"
    assert messages[-1].startswith("Planning failed:")
    assert await berlin_engine.list_workflows("s2") == []


@pytest.mark.asyncio
async def test_lookup_and_delete(berlin_engine):
    with pytest.raises(WorkflowNotFoundError):
        await berlin_engine.get_status("nobody")
    with pytest.raises(WorkflowNotFoundError):
        await berlin_engine.get_workflow("missing")

    workflow = await berlin_engine.create_workflow("Find developer jobs in Berlin", "s1")
    assert [w.id for w in await berlin_engine.list_workflows()] == [workflow.id]

    assert await berlin_engine.delete_workflow(workflow.id) is True
    assert await berlin_engine.delete_workflow(workflow.id) is False
    assert await berlin_engine.list_workflows("s1") == []
