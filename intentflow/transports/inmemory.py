"""In-memory transport for tests and single-process use."""

from __future__ import annotations

import asyncio
from collections import defaultdict, deque
from typing import AsyncIterator, Deque, Dict, Optional, Tuple

from ..contracts import WorkflowCommand
from .base import CommandTransport

RawCommand = Tuple[str, str]


class InMemoryTransport(CommandTransport[RawCommand]):
    """Simple in-process queue. Raw messages are ``(topic, json)`` pairs."""

    def __init__(self) -> None:
        self._queues: Dict[str, Deque[str]] = defaultdict(deque)
        self._lock = asyncio.Lock()

    async def publish(self, topic: str, message: WorkflowCommand) -> None:
        """Publish command to in-memory queue."""
        async with self._lock:
            self._queues[topic].append(message.to_json())

    async def subscribe(
        self, topic: str, lifespan: Optional[float] = None
    ) -> AsyncIterator[Tuple[RawCommand, WorkflowCommand]]:
        """Subscribe to commands from topic.

        Args:
            topic: The topic to subscribe to
            lifespan: Maximum time in seconds to keep consuming. If None, runs indefinitely.
        """
        loop = asyncio.get_running_loop()
        start_time = loop.time()

        while True:
            if lifespan is not None and loop.time() - start_time >= lifespan:
                break

            async with self._lock:
                payload = self._queues[topic].popleft() if self._queues[topic] else None
            if payload is not None:
                yield (topic, payload), WorkflowCommand.from_json(payload)
                continue

            await asyncio.sleep(0.05)

    async def ack(self, raw_message: RawCommand) -> None:
        """No-op acknowledgment for in-memory transport."""
        pass

    async def nack(self, raw_message: RawCommand, requeue: bool = True) -> None:
        """Put the command back at the head of its queue when ``requeue`` is set."""
        if not requeue:
            return
        topic, payload = raw_message
        async with self._lock:
            self._queues[topic].appendleft(payload)

    def pending(self, topic: str) -> int:
        return len(self._queues[topic])
