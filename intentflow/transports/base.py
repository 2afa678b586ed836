"""Command transport contract shared by the dispatcher and the worker."""

from __future__ import annotations

import abc
from typing import AsyncIterator, Generic, Optional, Tuple, TypeVar

from ..contracts import WorkflowCommand

RawMessageT = TypeVar("RawMessageT")


class CommandTransport(Generic[RawMessageT], metaclass=abc.ABCMeta):
    """Queue of ``WorkflowCommand`` messages between dispatchers and workers.

    Every command a worker takes must be settled with exactly one ``ack``
    or ``nack``. ``RawMessageT`` is whatever the backend needs to settle a
    delivery. Usable as an async context manager that opens and closes the
    backend connection.
    """

    async def connect(self) -> None:
        pass

    async def disconnect(self) -> None:
        pass

    async def __aenter__(self) -> "CommandTransport[RawMessageT]":
        await self.connect()
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.disconnect()

    @abc.abstractmethod
    async def publish(self, topic: str, message: WorkflowCommand) -> None:
        """Append ``message`` to the ``topic`` queue."""

    @abc.abstractmethod
    def subscribe(
        self, topic: str, lifespan: Optional[float] = None
    ) -> AsyncIterator[Tuple[RawMessageT, WorkflowCommand]]:
        """Yield ``(raw, command)`` deliveries from ``topic``.

        Stops once ``lifespan`` seconds have passed, or never when it is
        ``None``.
        """

    @abc.abstractmethod
    async def ack(self, raw_message: RawMessageT) -> None:
        """Settle a delivery that was handled."""

    @abc.abstractmethod
    async def nack(self, raw_message: RawMessageT, requeue: bool = True) -> None:
        """Settle a delivery that was not handled, optionally queueing it again."""
