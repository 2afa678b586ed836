from __future__ import annotations

from typing import Optional, Protocol


class CompletionProvider(Protocol):
    """Anything that turns a prompt into response text."""

    async def complete(
        self,
        prompt: str,
        *,
        system_prompt: Optional[str] = None,
        session_id: Optional[str] = None,
    ) -> str:
        """Return the provider's text response for ``prompt``."""
