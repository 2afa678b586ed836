"""Error taxonomy for intentflow."""

from __future__ import annotations

from typing import List, Optional


class IntentflowError(Exception):
    """Base class for all intentflow errors."""


class PlanningError(IntentflowError):
    """The planner could not turn an intent into a workflow."""


class PlanParseError(PlanningError):
    """No JSON plan could be extracted from the provider response."""


class InvalidPlanError(PlanningError):
    """A plan was extracted but failed validation."""


class StructuredResponseError(IntentflowError):
    """No JSON object could be extracted from a free-text response."""


class UnresolvedReferenceError(IntentflowError):
    """A step's parameters still contain template placeholders."""

    def __init__(self, placeholders: List[str], step_number: Optional[int] = None):
        self.placeholders = placeholders
        self.step_number = step_number
        where = f"step {step_number}" if step_number is not None else "parameters"
        super().__init__(
            f"Unresolved references in {where}: {', '.join(placeholders)}"
        )


class ProviderError(IntentflowError):
    """A completion provider call failed."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        self.status_code = status_code
        super().__init__(message)


class EmptyResponseError(ProviderError):
    """The provider answered without usable content."""

    def __init__(self, message: str = "no content returned"):
        super().__init__(message)


class CircuitOpenError(IntentflowError):
    """A call was rejected because the service circuit is open."""

    def __init__(self, service: str):
        self.service = service
        super().__init__(f"Circuit open for service '{service}'")


class ToolNotFoundError(IntentflowError):
    """The requested tool is not known to the registry."""


class ToolExecutionError(IntentflowError):
    """A tool implementation raised an error."""


class WorkflowNotFoundError(IntentflowError):
    """No workflow exists for the given identifier."""


class WorkflowStateError(IntentflowError):
    """The workflow is not in a state that allows the requested operation."""
