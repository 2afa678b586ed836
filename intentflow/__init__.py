"""intentflow: durable, resumable orchestration of planned multi-step workflows."""

from .context import ContextResolver
from .contracts import (
    OutputFormat,
    Step,
    StepStatus,
    StepType,
    Workflow,
    WorkflowCommand,
    WorkflowStatus,
)
from .dispatch import WorkflowDispatcher
from .engine import WorkflowEngine, get_engine
from .execute import WorkflowExecutor
from .parsing import parse_structured_response
from .persistence import get_repository
from .planner import WorkflowPlanner
from .resilience import CircuitBreaker, FallbackAgentSelector
from .status import get_status_reporter
from .tools import ToolRegistry, ToolSpec
from .transports import get_transport
from .worker import WorkflowWorker

__version__ = "0.1.0"
__all__ = [
    "CircuitBreaker",
    "ContextResolver",
    "FallbackAgentSelector",
    "OutputFormat",
    "Step",
    "StepStatus",
    "StepType",
    "ToolRegistry",
    "ToolSpec",
    "Workflow",
    "WorkflowCommand",
    "WorkflowDispatcher",
    "WorkflowEngine",
    "WorkflowExecutor",
    "WorkflowPlanner",
    "WorkflowStatus",
    "WorkflowWorker",
    "get_engine",
    "get_repository",
    "get_status_reporter",
    "get_transport",
    "parse_structured_response",
]
