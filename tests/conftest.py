"""Shared fakes and fixtures for intentflow tests."""

from __future__ import annotations

from typing import Any, Callable, List, Optional

import pytest

import intentflow.engine as engine_module
import intentflow.persistence as persistence
from intentflow.persistence import InMemoryWorkflowRepository
from intentflow.status import InMemoryStatusReporter


class ScriptedProvider:
    """Completion provider returning (or raising) scripted responses in order."""

    def __init__(self, responses: Optional[List[Any]] = None, name: str = "scripted"):
        self.responses = list(responses or [])
        self.name = name
        self.calls: List[dict] = []

    async def complete(
        self,
        prompt: str,
        *,
        system_prompt: Optional[str] = None,
        session_id: Optional[str] = None,
    ) -> str:
        self.calls.append(
            {"prompt": prompt, "system_prompt": system_prompt, "session_id": session_id}
        )
        if not self.responses:
            raise AssertionError(f"{self.name}: no scripted response left for {prompt[:60]!r}")
        response = self.responses.pop(0)
        if isinstance(response, BaseException):
            raise response
        if callable(response):
            return response(prompt)
        return response


class RecordingSleep:
    def __init__(self) -> None:
        self.delays: List[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


class FakeClock:
    def __init__(self, now: float = 1000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class HTTPStatusError(Exception):
    """Exception carrying an HTTP status code like provider client errors do."""

    def __init__(self, message: str, status_code: int):
        super().__init__(message)
        self.status_code = status_code


@pytest.fixture(autouse=True)
def reset_singletons():
    persistence._repository_instance = None
    engine_module._engine_instance = None
    yield
    persistence._repository_instance = None
    engine_module._engine_instance = None


@pytest.fixture
def repo() -> InMemoryWorkflowRepository:
    return InMemoryWorkflowRepository()


@pytest.fixture
def status() -> InMemoryStatusReporter:
    return InMemoryStatusReporter()


@pytest.fixture
def sleep() -> RecordingSleep:
    return RecordingSleep()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def provider_factory() -> Callable[..., ScriptedProvider]:
    return ScriptedProvider


@pytest.fixture
def http_error() -> Callable[[str, int], HTTPStatusError]:
    return HTTPStatusError


BERLIN_PLAN = """```json
{
  "steps": [
    {
      "type": "tool_call",
      "description": "Search developer jobs in Berlin",
      "tool": "job_search",
      "parameters": {"what": "developer", "where": "Berlin"}
    },
    {
      "type": "analysis",
      "description": "Pick the best matching job",
      "output_format": {"job_title": "string", "company_name": "string"}
    },
    {
      "type": "notification",
      "description": "Found {{step_2.result.job_title}} at {{step_2.result.company_name}}",
      "requires_confirmation": true
    }
  ]
}
```"""

BERLIN_RESPONSES = [
    BERLIN_PLAN,
    "1. Backend Developer - ACME GmbH, Berlin",
    '{"job_title": "Backend Developer", "company_name": "ACME GmbH"}',
]


@pytest.fixture
def berlin_engine(repo, status):
    """Engine wired with in-memory collaborators and a provider scripted for
    the three-step Berlin job search."""
    from intentflow.config import ExecutorConfig, IntentflowConfig
    from intentflow.engine import WorkflowEngine

    provider = ScriptedProvider(BERLIN_RESPONSES, name="berlin")
    config = IntentflowConfig(executor=ExecutorConfig(step_delay=0.0))
    engine = WorkflowEngine.from_config(
        config, provider=provider, repository=repo, status_reporter=status
    )
    engine.provider = provider
    return engine
