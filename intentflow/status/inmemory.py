"""In-memory status reporter."""

from __future__ import annotations

import asyncio
from collections import defaultdict
from datetime import datetime
from typing import Dict, List, Optional

from .base import StatusEntry, StatusReporter


class InMemoryStatusReporter(StatusReporter):
    """Keep progress messages in local memory.

    Useful for tests or single-process deployments. Entries are lost on
    restart.
    """

    def __init__(self) -> None:
        self._entries: Dict[str, List[StatusEntry]] = defaultdict(list)
        self._lock = asyncio.Lock()

    async def append(self, session_id: str, message: str) -> StatusEntry:
        entry = StatusEntry(session_id=session_id, message=message)
        async with self._lock:
            self._entries[session_id].append(entry)
        return entry

    async def latest(
        self, session_id: str, since: Optional[datetime] = None
    ) -> List[StatusEntry]:
        async with self._lock:
            entries = list(self._entries.get(session_id, []))
        if since is None:
            return entries
        return [e for e in entries if e.timestamp > since]

    async def clear(self, session_id: str) -> None:
        async with self._lock:
            self._entries.pop(session_id, None)
