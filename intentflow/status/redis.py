"""Redis-backed status reporter shared across worker processes."""

from __future__ import annotations

from datetime import datetime
from typing import Any, List, Optional

import redis.asyncio as redis

from ..constants import DEFAULT_STATUS_TTL_SECONDS
from .base import StatusEntry, StatusReporter


class RedisStatusReporter(StatusReporter):
    """Store each session's progress log in a Redis list with a TTL."""

    def __init__(
        self,
        host: str = "localhost",
        port: int = 6379,
        db: int = 0,
        password: Optional[str] = None,
        ttl_seconds: int = DEFAULT_STATUS_TTL_SECONDS,
    ) -> None:
        self.host = host
        self.port = port
        self.db = db
        self.password = password
        self.ttl_seconds = ttl_seconds
        self._redis: Optional[Any] = None

    async def connect(self) -> None:
        self._redis = redis.Redis(
            host=self.host,
            port=self.port,
            db=self.db,
            password=self.password,
            decode_responses=True,
        )

    async def disconnect(self) -> None:
        if self._redis:
            await self._redis.aclose()
            self._redis = None

    @staticmethod
    def _key(session_id: str) -> str:
        return f"intentflow:status:{session_id}"

    async def append(self, session_id: str, message: str) -> StatusEntry:
        if not self._redis:
            await self.connect()
        entry = StatusEntry(session_id=session_id, message=message)
        key = self._key(session_id)
        await self._redis.rpush(key, entry.model_dump_json())
        await self._redis.expire(key, self.ttl_seconds)
        return entry

    async def latest(
        self, session_id: str, since: Optional[datetime] = None
    ) -> List[StatusEntry]:
        if not self._redis:
            await self.connect()
        raw_entries = await self._redis.lrange(self._key(session_id), 0, -1)
        entries = [StatusEntry.model_validate_json(raw) for raw in raw_entries]
        if since is None:
            return entries
        return [e for e in entries if e.timestamp > since]

    async def clear(self, session_id: str) -> None:
        if not self._redis:
            await self.connect()
        await self._redis.delete(self._key(session_id))
