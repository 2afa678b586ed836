"""Workflow dispatcher for intentflow."""

from __future__ import annotations

import logging

from .constants import WORKFLOW_TOPIC
from .contracts import WorkflowCommand
from .transports import CommandTransport

logger = logging.getLogger(__name__)


class WorkflowDispatcher:
    """Publish run and confirmation commands for workers to execute."""

    def __init__(self, transport: CommandTransport, topic: str = WORKFLOW_TOPIC) -> None:
        self._transport = transport
        self._topic = topic

    async def dispatch_run(self, workflow_id: str) -> WorkflowCommand:
        """Queue a run of ``workflow_id``.

        Returns:
            The published command, whose ``command_id`` identifies the request.
        """
        command = WorkflowCommand(workflow_id=workflow_id, action="run")
        await self._transport.publish(self._topic, command)
        logger.info(f"Dispatched run for workflow_id={workflow_id}")
        return command

    async def dispatch_confirmation(self, workflow_id: str, approved: bool) -> WorkflowCommand:
        """Queue a confirmation decision for a paused workflow."""
        command = WorkflowCommand(workflow_id=workflow_id, action="confirm", approved=approved)
        await self._transport.publish(self._topic, command)
        logger.info(
            f"Dispatched confirmation approved={approved} for workflow_id={workflow_id}"
        )
        return command
