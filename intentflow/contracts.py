"""Core contracts for intentflow workflows."""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class StepType(str, Enum):
    TOOL_CALL = "tool_call"
    ANALYSIS = "analysis"
    DECISION = "decision"
    NOTIFICATION = "notification"


class StepStatus(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"
    PENDING_CONFIRMATION = "pending_confirmation"
    REJECTED = "rejected"


class WorkflowStatus(str, Enum):
    CREATED = "created"
    RUNNING = "running"
    WAITING_CONFIRMATION = "waiting_confirmation"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


TERMINAL_STATUSES = frozenset(
    {WorkflowStatus.COMPLETED, WorkflowStatus.FAILED, WorkflowStatus.CANCELLED}
)

STRUCTURED_STEP_TYPES = frozenset({StepType.ANALYSIS, StepType.DECISION})


class OutputFormat(BaseModel):
    """Field schema steering structured steps."""

    fields: Dict[str, str] = Field(default_factory=lambda: {"result": "string"})


class Step(BaseModel):
    """One unit of work within a workflow."""

    step_number: int
    step_type: StepType
    description: str = ""
    tool_name: Optional[str] = None
    tool_parameters: Dict[str, Any] = Field(default_factory=dict)
    requires_confirmation: bool = False
    expected_output_format: Optional[OutputFormat] = None
    status: StepStatus = StepStatus.PENDING
    result: Any = None
    error_message: Optional[str] = None
    completed_at: Optional[datetime] = None

    @property
    def context_key(self) -> str:
        """Key under which the step's result is addressable by later steps."""
        return f"step_{self.step_number}"


class Workflow(BaseModel):
    """One end-to-end execution of a decomposed user intent."""

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    session_id: str
    user_intent: str
    status: WorkflowStatus = WorkflowStatus.CREATED
    current_step: Optional[int] = None
    steps: List[Step] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=utcnow)
    completed_at: Optional[datetime] = None

    def step(self, step_number: int) -> Optional[Step]:
        for step in self.steps:
            if step.step_number == step_number:
                return step
        return None

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def next_pending_step(self) -> Optional[Step]:
        """Return the lowest-numbered step that has not completed."""
        for step in sorted(self.steps, key=lambda s: s.step_number):
            if step.status != StepStatus.COMPLETED:
                return step
        return None

    def build_context(self) -> Dict[str, Any]:
        """Rebuild the execution context from completed steps."""
        return {
            step.context_key: {"result": step.result}
            for step in sorted(self.steps, key=lambda s: s.step_number)
            if step.status == StepStatus.COMPLETED
        }

    def status_view(self) -> "WorkflowStatusView":
        return WorkflowStatusView(
            workflow_id=self.id,
            session_id=self.session_id,
            status=self.status,
            current_step=self.current_step,
            steps=[
                StepView(
                    step_number=s.step_number,
                    step_type=s.step_type,
                    description=s.description,
                    tool_name=s.tool_name,
                    status=s.status,
                    requires_confirmation=s.requires_confirmation,
                    result=s.result,
                    error_message=s.error_message,
                )
                for s in self.steps
            ],
        )


class StepView(BaseModel):
    step_number: int
    step_type: StepType
    description: str
    tool_name: Optional[str] = None
    status: StepStatus
    requires_confirmation: bool
    result: Any = None
    error_message: Optional[str] = None


class WorkflowStatusView(BaseModel):
    """Read model returned by ``get_status``."""

    workflow_id: str
    session_id: str
    status: WorkflowStatus
    current_step: Optional[int] = None
    steps: List[StepView] = Field(default_factory=list)


class WorkflowCommand(BaseModel):
    """Envelope exchanged over the bus to drive a workflow."""

    command_id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    workflow_id: str
    action: Literal["run", "confirm"] = "run"
    approved: Optional[bool] = None
    timestamp: datetime = Field(default_factory=utcnow)

    def to_json(self) -> str:
        """Serialize command to JSON."""
        return self.model_dump_json()

    @classmethod
    def from_json(cls, data: str) -> "WorkflowCommand":
        """Deserialize command from JSON."""
        return cls.model_validate_json(data)
