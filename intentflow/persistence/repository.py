"""Repository abstraction for workflow state persistence."""

from __future__ import annotations

from typing import Any, List, Optional, Protocol

from ..contracts import Step, Workflow


class WorkflowRepository(Protocol):
    """Protocol for workflow state persistence backends.

    The repository is the single source of truth for workflow and step
    state. Every method returns detached copies; mutating a returned
    workflow has no effect until it is written back.
    """

    async def create_workflow(self, workflow: Workflow) -> None:
        """Persist a workflow and all of its steps in one transaction."""

    async def get_workflow(self, workflow_id: str) -> Optional[Workflow]:
        """Retrieve the workflow by id."""

    async def find_latest_by_session(self, session_id: str) -> Optional[Workflow]:
        """Return the most recently created workflow for a session."""

    async def list_workflows(self, session_id: Optional[str] = None) -> List[Workflow]:
        """Return persisted workflows, newest first."""

    async def update_workflow(self, workflow: Workflow) -> None:
        """Persist workflow-level fields (status, current step, timestamps)."""

    async def update_step(self, workflow_id: str, step: Step) -> None:
        """Persist a single step."""

    async def save_workflow(self, workflow: Workflow) -> None:
        """Persist the workflow and all of its steps in one transaction."""

    async def complete_step(self, workflow_id: str, step_number: int, result: Any) -> bool:
        """Atomically mark a step completed with ``result``.

        Returns ``False`` without changing anything if the step was already
        completed.
        """

    async def claim_confirmation(self, workflow_id: str, step_number: int) -> bool:
        """Move a paused step to ``running`` if it still awaits confirmation.

        The workflow leaves ``waiting_confirmation`` in the same write. Only
        one of several concurrent callers gets ``True``.
        """

    async def delete_workflow(self, workflow_id: str) -> bool:
        """Remove a workflow and its steps. Returns whether it existed."""
