"""In-memory implementation of the workflow repository."""

from __future__ import annotations

import asyncio
import copy
from typing import Any, Dict, List, Optional

from ..contracts import Step, StepStatus, Workflow, WorkflowStatus, utcnow
from .repository import WorkflowRepository


class InMemoryWorkflowRepository(WorkflowRepository):
    """Store workflow state in local memory.

    Useful for tests or when no database is configured. Data is not
    persisted across process restarts.
    """

    def __init__(self) -> None:
        self._workflows: Dict[str, Workflow] = {}
        self._lock = asyncio.Lock()

    # ------------------------------------------------------------------
    async def create_workflow(self, workflow: Workflow) -> None:
        async with self._lock:
            if workflow.id in self._workflows:
                raise ValueError(f"Workflow {workflow.id} already exists")
            self._workflows[workflow.id] = workflow.model_copy(deep=True)

    async def get_workflow(self, workflow_id: str) -> Optional[Workflow]:
        wf = self._workflows.get(workflow_id)
        return wf.model_copy(deep=True) if wf else None

    async def find_latest_by_session(self, session_id: str) -> Optional[Workflow]:
        workflows = await self.list_workflows(session_id)
        return workflows[0] if workflows else None

    async def list_workflows(self, session_id: Optional[str] = None) -> List[Workflow]:
        workflows = [
            wf.model_copy(deep=True)
            for wf in self._workflows.values()
            if session_id is None or wf.session_id == session_id
        ]
        return sorted(workflows, key=lambda wf: wf.created_at, reverse=True)

    async def update_workflow(self, workflow: Workflow) -> None:
        async with self._lock:
            wf = self._workflows.get(workflow.id)
            if wf:
                wf.status = workflow.status
                wf.current_step = workflow.current_step
                wf.completed_at = workflow.completed_at

    async def update_step(self, workflow_id: str, step: Step) -> None:
        async with self._lock:
            self._replace_step(workflow_id, step)

    async def save_workflow(self, workflow: Workflow) -> None:
        async with self._lock:
            if workflow.id in self._workflows:
                self._workflows[workflow.id] = workflow.model_copy(deep=True)

    async def complete_step(self, workflow_id: str, step_number: int, result: Any) -> bool:
        async with self._lock:
            wf = self._workflows.get(workflow_id)
            step = wf.step(step_number) if wf else None
            if step is None or step.status == StepStatus.COMPLETED:
                return False
            step.status = StepStatus.COMPLETED
            step.result = copy.deepcopy(result)
            step.error_message = None
            step.completed_at = utcnow()
            return True

    async def claim_confirmation(self, workflow_id: str, step_number: int) -> bool:
        async with self._lock:
            wf = self._workflows.get(workflow_id)
            step = wf.step(step_number) if wf else None
            if (
                step is None
                or wf.status != WorkflowStatus.WAITING_CONFIRMATION
                or wf.current_step != step_number
                or step.status != StepStatus.PENDING_CONFIRMATION
            ):
                return False
            step.status = StepStatus.RUNNING
            wf.status = WorkflowStatus.RUNNING
            return True

    async def delete_workflow(self, workflow_id: str) -> bool:
        async with self._lock:
            return self._workflows.pop(workflow_id, None) is not None

    def _replace_step(self, workflow_id: str, step: Step) -> None:
        wf = self._workflows.get(workflow_id)
        if not wf:
            return
        wf.steps = [
            step.model_copy(deep=True) if s.step_number == step.step_number else s
            for s in wf.steps
        ]
