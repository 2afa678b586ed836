"""Completion provider backed by a pydantic-ai ``Agent``."""

from __future__ import annotations

import logging
from typing import Dict, Optional

from pydantic_ai import Agent
from pydantic_ai.exceptions import ModelHTTPError

from ..exceptions import EmptyResponseError, ProviderError
from .base import CompletionProvider

logger = logging.getLogger(__name__)


class PydanticAIProvider(CompletionProvider):
    """Run prompts through a pydantic-ai agent for ``model``.

    Agents are created lazily, one per distinct system prompt.
    """

    def __init__(self, model: str, name: Optional[str] = None) -> None:
        self.model = model
        self.name = name or model
        self._agents: Dict[Optional[str], Agent] = {}

    def _agent(self, system_prompt: Optional[str]) -> Agent:
        agent = self._agents.get(system_prompt)
        if agent is None:
            if system_prompt:
                agent = Agent(self.model, system_prompt=system_prompt)
            else:
                agent = Agent(self.model)
            self._agents[system_prompt] = agent
        return agent

    async def complete(
        self,
        prompt: str,
        *,
        system_prompt: Optional[str] = None,
        session_id: Optional[str] = None,
    ) -> str:
        agent = self._agent(system_prompt)
        try:
            result = await agent.run(prompt)
        except ModelHTTPError as e:
            logger.warning(
                f"Provider {self.name} returned HTTP {e.status_code} "
                f"for session_id={session_id}"
            )
            raise ProviderError(
                f"{self.name} HTTP {e.status_code}: {e.body}", status_code=e.status_code
            ) from e

        output = result.output if hasattr(result, "output") else None
        if output is None or not str(output).strip():
            raise EmptyResponseError(f"{self.name}: no content returned")
        return str(output)
