from datetime import datetime, timedelta, timezone

import pytest

from intentflow.contracts import (
    OutputFormat,
    Step,
    StepStatus,
    StepType,
    Workflow,
    WorkflowStatus,
)
from intentflow.persistence import (
    InMemoryWorkflowRepository,
    SQLiteWorkflowRepository,
    get_repository,
    repository_from_url,
)


def _workflow(session_id="s1", created_at=None) -> Workflow:
    wf = Workflow(
        session_id=session_id,
        user_intent="Find jobs in Berlin",
        steps=[
            Step(
                step_number=1,
                step_type=StepType.TOOL_CALL,
                description="Search",
                tool_name="job_search",
                tool_parameters={"what": "developer", "where": "Berlin"},
            ),
            Step(
                step_number=2,
                step_type=StepType.ANALYSIS,
                description="Pick one",
                expected_output_format=OutputFormat(fields={"job_title": "string"}),
            ),
            Step(
                step_number=3,
                step_type=StepType.NOTIFICATION,
                description="Notify",
                requires_confirmation=True,
            ),
        ],
    )
    if created_at is not None:
        wf.created_at = created_at
    return wf


@pytest.fixture(params=["inmemory", "sqlite"])
def repository(request, tmp_path):
    if request.param == "sqlite":
        return SQLiteWorkflowRepository(tmp_path / "wf.db")
    return InMemoryWorkflowRepository()


@pytest.mark.asyncio
async def test_repository_crud(repository):
    wf = _workflow()
    await repository.create_workflow(wf)

    stored = await repository.get_workflow(wf.id)
    assert stored is not None
    assert stored.session_id == "s1"
    assert stored.status == WorkflowStatus.CREATED
    assert [s.step_number for s in stored.steps] == [1, 2, 3]
    assert stored.steps[0].tool_parameters == {"what": "developer", "where": "Berlin"}
    assert stored.steps[1].expected_output_format.fields == {"job_title": "string"}
    assert stored.steps[2].requires_confirmation is True

    stored.status = WorkflowStatus.RUNNING
    stored.current_step = 1
    await repository.update_workflow(stored)

    step = stored.steps[0]
    step.status = StepStatus.RUNNING
    await repository.update_step(wf.id, step)

    reloaded = await repository.get_workflow(wf.id)
    assert reloaded.status == WorkflowStatus.RUNNING
    assert reloaded.current_step == 1
    assert reloaded.steps[0].status == StepStatus.RUNNING
    assert reloaded.steps[1].status == StepStatus.PENDING

    assert await repository.get_workflow("missing") is None


@pytest.mark.asyncio
async def test_returned_workflows_are_detached(repository):
    wf = _workflow()
    await repository.create_workflow(wf)

    first = await repository.get_workflow(wf.id)
    first.status = WorkflowStatus.FAILED
    first.steps[0].result = {"mutated": True}

    second = await repository.get_workflow(wf.id)
    assert second.status == WorkflowStatus.CREATED
    assert second.steps[0].result is None


@pytest.mark.asyncio
async def test_complete_step_is_idempotent(repository):
    wf = _workflow()
    await repository.create_workflow(wf)

    assert await repository.complete_step(wf.id, 1, {"jobs": [{"title": "Dev"}]}) is True
    assert await repository.complete_step(wf.id, 1, {"jobs": []}) is False
    assert await repository.complete_step(wf.id, 99, {}) is False

    stored = await repository.get_workflow(wf.id)
    step = stored.steps[0]
    assert step.status == StepStatus.COMPLETED
    assert step.result == {"jobs": [{"title": "Dev"}]}
    assert step.completed_at is not None
    assert stored.build_context() == {"step_1": {"result": {"jobs": [{"title": "Dev"}]}}}


@pytest.mark.asyncio
async def test_claim_confirmation_admits_one_caller(repository):
    wf = _workflow()
    await repository.create_workflow(wf)
    assert await repository.claim_confirmation(wf.id, 3) is False

    wf.status = WorkflowStatus.WAITING_CONFIRMATION
    wf.current_step = 3
    wf.steps[2].status = StepStatus.PENDING_CONFIRMATION
    await repository.save_workflow(wf)

    assert await repository.claim_confirmation(wf.id, 2) is False
    assert await repository.claim_confirmation(wf.id, 3) is True
    assert await repository.claim_confirmation(wf.id, 3) is False

    stored = await repository.get_workflow(wf.id)
    assert stored.status == WorkflowStatus.RUNNING
    assert stored.steps[2].status == StepStatus.RUNNING
    assert await repository.claim_confirmation("missing", 3) is False


@pytest.mark.asyncio
async def test_save_workflow_persists_workflow_and_steps_together(repository):
    wf = _workflow()
    await repository.create_workflow(wf)

    wf.status = WorkflowStatus.WAITING_CONFIRMATION
    wf.current_step = 3
    wf.steps[2].status = StepStatus.PENDING_CONFIRMATION
    wf.steps[2].result = {"notification_sent": False, "message": "hi"}
    await repository.save_workflow(wf)

    stored = await repository.get_workflow(wf.id)
    assert stored.status == WorkflowStatus.WAITING_CONFIRMATION
    assert stored.current_step == 3
    assert stored.steps[2].status == StepStatus.PENDING_CONFIRMATION
    assert stored.steps[2].result == {"notification_sent": False, "message": "hi"}


@pytest.mark.asyncio
async def test_list_and_latest_are_newest_first(repository):
    now = datetime.now(timezone.utc)
    old = _workflow("s1", created_at=now - timedelta(minutes=5))
    new = _workflow("s1", created_at=now)
    other = _workflow("s2", created_at=now - timedelta(minutes=1))
    for wf in (old, new, other):
        await repository.create_workflow(wf)

    assert [w.id for w in await repository.list_workflows()] == [new.id, other.id, old.id]
    assert [w.id for w in await repository.list_workflows("s1")] == [new.id, old.id]
    assert (await repository.find_latest_by_session("s1")).id == new.id
    assert await repository.find_latest_by_session("nobody") is None


@pytest.mark.asyncio
async def test_delete_workflow(repository):
    wf = _workflow()
    await repository.create_workflow(wf)

    assert await repository.delete_workflow(wf.id) is True
    assert await repository.get_workflow(wf.id) is None
    assert await repository.delete_workflow(wf.id) is False


def test_get_repository_selects_backend(tmp_path, monkeypatch):
    monkeypatch.delenv("INTENTFLOW_DATABASE_URL", raising=False)
    monkeypatch.delenv("DATABASE_URL", raising=False)
    monkeypatch.setenv("INTENTFLOW_CONFIG", str(tmp_path / "absent.yaml"))

    repo = get_repository()
    assert isinstance(repo, InMemoryWorkflowRepository)
    assert get_repository() is repo

    sqlite_repo = get_repository(f"sqlite://{tmp_path / 'wf.db'}")
    assert isinstance(sqlite_repo, SQLiteWorkflowRepository)

    with pytest.raises(ValueError):
        get_repository("mysql://localhost/db")


def test_repository_from_url_schemes(tmp_path):
    from intentflow.persistence.postgres import PostgresWorkflowRepository

    assert isinstance(repository_from_url(None), InMemoryWorkflowRepository)

    sqlite_repo = repository_from_url(f"sqlite://{tmp_path / 'wf.db'}")
    assert sqlite_repo.db_path == str(tmp_path / "wf.db")

    pg_repo = repository_from_url("postgres://user:pw@db/workflows")
    assert isinstance(pg_repo, PostgresWorkflowRepository)
    assert pg_repo._dsn == "postgres://user:pw@db/workflows"

    with pytest.raises(ValueError):
        repository_from_url("workflows.db")
