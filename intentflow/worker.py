"""Queue consumer driving workflows from dispatched commands."""

from __future__ import annotations

import logging
from typing import Optional

from .constants import WORKFLOW_TOPIC
from .contracts import WorkflowCommand
from .engine import WorkflowEngine
from .exceptions import IntentflowError, WorkflowStateError
from .transports import CommandTransport

logger = logging.getLogger(__name__)


class WorkflowWorker:
    """Consume ``WorkflowCommand`` messages and apply them to the engine.

    Commands are handled one at a time, so a worker owns at most one
    workflow run at any moment.
    """

    def __init__(
        self,
        transport: CommandTransport,
        engine: WorkflowEngine,
        topic: str = WORKFLOW_TOPIC,
    ) -> None:
        self._transport = transport
        self._engine = engine
        self._topic = topic
        self.processed = 0

    async def start(self, lifespan: Optional[float] = None) -> None:
        """Start consuming commands until ``lifespan`` seconds have passed."""
        async for raw_message, command in self._transport.subscribe(
            self._topic, lifespan=lifespan
        ):
            try:
                await self.handle(command)
            except IntentflowError as e:
                logger.error(
                    f"Command {command.action} failed for workflow_id={command.workflow_id}: {e}"
                )
            except Exception:
                await self._transport.nack(raw_message, requeue=False)
                raise
            await self._transport.ack(raw_message)
            self.processed += 1

    async def handle(self, command: WorkflowCommand) -> None:
        logger.info(
            f"Handling {command.action} for workflow_id={command.workflow_id} "
            f"command_id={command.command_id}"
        )
        if command.action == "confirm":
            if command.approved is None:
                raise WorkflowStateError(
                    f"Confirmation command {command.command_id} has no decision"
                )
            await self._engine.confirm(command.workflow_id, command.approved)
        else:
            await self._engine.run(command.workflow_id)
