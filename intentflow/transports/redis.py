"""Redis transport for cross-process messaging."""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, AsyncIterator, Optional, Tuple

import redis.asyncio as redis
from pydantic import ValidationError

from ..contracts import WorkflowCommand
from .base import CommandTransport

logger = logging.getLogger(__name__)


class RedisTransport(CommandTransport[Tuple[str, str]]):
    """Redis list-based transport. Raw messages are ``(queue, json)`` pairs."""

    def __init__(
        self,
        host: str = "localhost",
        port: int = 6379,
        db: int = 0,
        password: Optional[str] = None,
    ) -> None:
        self.host = host
        self.port = port
        self.db = db
        self.password = password
        self._redis: Optional[Any] = None

    async def connect(self) -> None:
        """Connect to Redis."""
        self._redis = redis.Redis(
            host=self.host,
            port=self.port,
            db=self.db,
            password=self.password,
            decode_responses=True,
        )
        await self._redis.ping()

    async def disconnect(self) -> None:
        """Disconnect from Redis."""
        if self._redis:
            await self._redis.aclose()
            self._redis = None

    @staticmethod
    def _queue(topic: str) -> str:
        return f"intentflow:{topic}"

    async def publish(self, topic: str, message: WorkflowCommand) -> None:
        """Publish command to Redis list (acting as queue)."""
        if not self._redis:
            await self.connect()
        await self._redis.lpush(self._queue(topic), message.to_json())

    async def subscribe(
        self, topic: str, lifespan: Optional[float] = None
    ) -> AsyncIterator[Tuple[Tuple[str, str], WorkflowCommand]]:
        """Subscribe to commands from Redis queue."""
        if not self._redis:
            await self.connect()

        queue_name = self._queue(topic)
        loop = asyncio.get_running_loop()
        start_time = loop.time()

        while True:
            if lifespan is not None and loop.time() - start_time >= lifespan:
                break

            result = await self._redis.brpop(queue_name, timeout=1)
            if result:
                _, message_json = result
                try:
                    message = WorkflowCommand.model_validate(json.loads(message_json))
                except (json.JSONDecodeError, ValidationError) as e:
                    logger.error(f"Dropping malformed command on {queue_name}: {e}")
                    continue
                yield (queue_name, message_json), message

            await asyncio.sleep(0.01)

    async def ack(self, raw_message: Tuple[str, str]) -> None:
        """No-op acknowledgment for Redis transport (message already consumed)."""
        pass

    async def nack(self, raw_message: Tuple[str, str], requeue: bool = True) -> None:
        """Push the command back onto the consuming end of its queue."""
        if not requeue:
            return
        if not self._redis:
            await self.connect()
        queue_name, message_json = raw_message
        await self._redis.rpush(queue_name, message_json)
