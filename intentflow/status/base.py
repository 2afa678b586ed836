"""Status reporter abstraction: an append-only progress log per session."""

from __future__ import annotations

from datetime import datetime
from typing import List, Optional, Protocol

from pydantic import BaseModel, Field

from ..contracts import utcnow


class StatusEntry(BaseModel):
    """One human-readable progress message."""

    session_id: str
    message: str
    timestamp: datetime = Field(default_factory=utcnow)


class StatusReporter(Protocol):
    """Protocol for progress log backends."""

    async def append(self, session_id: str, message: str) -> StatusEntry:
        """Append a message to the session's log."""

    async def latest(
        self, session_id: str, since: Optional[datetime] = None
    ) -> List[StatusEntry]:
        """Return entries in time order, only those after ``since`` if given."""

    async def clear(self, session_id: str) -> None:
        """Drop every entry for the session."""
