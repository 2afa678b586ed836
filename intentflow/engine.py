"""Upward-facing surface combining planner, executor and persistence."""

from __future__ import annotations

import logging
from typing import List, Optional

from .config import IntentflowConfig, load_config
from .contracts import Workflow, WorkflowStatusView
from .exceptions import PlanningError, WorkflowNotFoundError
from .execute import WorkflowExecutor
from .persistence import WorkflowRepository, get_repository
from .planner import WorkflowPlanner
from .providers import get_provider
from .status import StatusReporter, get_status_reporter
from .tools import ToolRegistry, default_registry

logger = logging.getLogger(__name__)


class WorkflowEngine:
    """Create, run, confirm and inspect workflows."""

    def __init__(
        self,
        planner: WorkflowPlanner,
        executor: WorkflowExecutor,
        repository: WorkflowRepository,
        status_reporter: Optional[StatusReporter] = None,
    ) -> None:
        self.planner = planner
        self.executor = executor
        self.repository = repository
        self.status_reporter = status_reporter

    @classmethod
    def from_config(
        cls,
        config: Optional[IntentflowConfig] = None,
        tools: Optional[ToolRegistry] = None,
        provider=None,
        repository: Optional[WorkflowRepository] = None,
        status_reporter: Optional[StatusReporter] = None,
    ) -> "WorkflowEngine":
        """Build the full object graph from configuration.

        Any collaborator passed explicitly replaces the configured one.
        """
        config = config or load_config()
        tools = tools or default_registry()
        if repository is None:
            repository = (
                get_repository(config.database_url)
                if config.database_url
                else get_repository()
            )
        status_reporter = status_reporter or get_status_reporter(config=config)
        provider = provider or get_provider(config, status_reporter=status_reporter)
        planner = WorkflowPlanner(
            provider,
            repository,
            tools=tools,
            communication_tools=config.executor.communication_tools,
        )
        executor = WorkflowExecutor(
            repository,
            provider,
            tools=tools,
            status_reporter=status_reporter,
            config=config.executor,
        )
        return cls(planner, executor, repository, status_reporter)

    async def _report(self, session_id: str, message: str) -> None:
        if self.status_reporter is not None:
            await self.status_reporter.append(session_id, message)

    async def create_workflow(self, intent: str, session_id: str) -> Workflow:
        """Plan and persist a workflow without running it."""
        await self._report(session_id, "Planning workflow")
        try:
            workflow = await self.planner.create_workflow(intent, session_id)
        except PlanningError as e:
            logger.warning(f"Planning failed for session_id={session_id}: {e}")
            await self._report(session_id, f"Planning failed: {e}")
            raise
        await self._report(session_id, f"Workflow planned with {len(workflow.steps)} steps")
        return workflow

    async def start(self, intent: str, session_id: str) -> Workflow:
        """Plan a workflow and run it up to completion or its first gate."""
        workflow = await self.create_workflow(intent, session_id)
        return await self.executor.run(workflow.id)

    async def run(self, workflow_id: str) -> Workflow:
        return await self.executor.run(workflow_id)

    async def confirm(self, workflow_id: str, approved: bool) -> Workflow:
        return await self.executor.confirm(workflow_id, approved)

    async def get_status(self, session_id: str) -> WorkflowStatusView:
        """Status of the session's most recent workflow.

        Raises:
            WorkflowNotFoundError: The session has no workflow.
        """
        workflow = await self.repository.find_latest_by_session(session_id)
        if workflow is None:
            raise WorkflowNotFoundError(f"No workflow for session {session_id}")
        return workflow.status_view()

    async def get_workflow(self, workflow_id: str) -> Workflow:
        workflow = await self.repository.get_workflow(workflow_id)
        if workflow is None:
            raise WorkflowNotFoundError(f"Workflow {workflow_id} not found")
        return workflow

    async def list_workflows(self, session_id: Optional[str] = None) -> List[Workflow]:
        return await self.repository.list_workflows(session_id)

    async def delete_workflow(self, workflow_id: str) -> bool:
        deleted = await self.repository.delete_workflow(workflow_id)
        if deleted:
            logger.info(f"Workflow deleted workflow_id={workflow_id}")
        return deleted


_engine_instance: WorkflowEngine | None = None


def get_engine(config: Optional[IntentflowConfig] = None) -> WorkflowEngine:
    """Return the process-wide engine, building it from configuration once."""
    global _engine_instance
    if _engine_instance is None or config is not None:
        _engine_instance = WorkflowEngine.from_config(config)
    return _engine_instance
