"""Turn free-text user intent into a validated, persisted workflow."""

from __future__ import annotations

import json
import logging
import re
from typing import Any, Dict, Iterable, List, Optional

from .contracts import (
    STRUCTURED_STEP_TYPES,
    OutputFormat,
    Step,
    StepType,
    Workflow,
)
from .exceptions import InvalidPlanError, PlanParseError, StructuredResponseError
from .parsing import parse_structured_response
from .persistence import WorkflowRepository
from .tools import ToolRegistry, default_registry, planning_prompt

logger = logging.getLogger(__name__)

STEP_TYPE_KEYS = ("type", "step_type")
TOOL_KEYS = ("tool", "tool_name")
PARAMETER_KEYS = ("parameters", "tool_parameters", "params")
FORMAT_KEYS = ("output_format", "expected_output_format")
RESERVED_DESCRIPTION_FIELDS = {"type", "description", "tool"}
DESCRIPTION_FIELD_RE = re.compile(r'(\w+):\s*"([^"]+)"')
DEFAULT_DESCRIPTION = "No description"


def _first(data: Dict[str, Any], keys: Iterable[str]) -> Any:
    for key in keys:
        if data.get(key) is not None:
            return data[key]
    return None


def _as_bool(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in {"true", "yes", "1"}
    return bool(value)


def normalize_output_format(raw: Any) -> Optional[OutputFormat]:
    """Coerce the shapes providers use for an output format into ``OutputFormat``.

    Accepts ``{"fields": {...}}``, ``{"fields": [...]}``, a bare field map,
    a JSON-schema style ``{"properties": {...}}``, a list of field names or a
    JSON string of any of these.
    """
    if raw is None:
        return None
    if isinstance(raw, str):
        try:
            raw = json.loads(raw)
        except json.JSONDecodeError:
            return OutputFormat(fields={raw.strip(): "string"}) if raw.strip() else None
    if isinstance(raw, list):
        fields = {str(name): "string" for name in raw if str(name).strip()}
        return OutputFormat(fields=fields) if fields else None
    if not isinstance(raw, dict):
        return None

    if "fields" in raw:
        fields = raw["fields"]
    elif isinstance(raw.get("properties"), dict):
        fields = raw["properties"]
    else:
        fields = {k: v for k, v in raw.items() if k != "type"}

    if isinstance(fields, list):
        fields = {str(name): "string" for name in fields}
    if not isinstance(fields, dict) or not fields:
        return None
    return OutputFormat(
        fields={
            str(name): (kind.get("type", "string") if isinstance(kind, dict) else str(kind))
            for name, kind in fields.items()
        }
    )


def infer_output_format(
    step_number: int, raw_steps: List[Dict[str, Any]], description: str = ""
) -> OutputFormat:
    """Infer the fields a structured step must produce.

    Scans later steps for ``{{step_N.result.FIELD}}`` references targeting
    ``step_number`` (including inside ``a|b`` fallback chains) and the
    description for ``field: "..."`` hints. Falls back to a single
    ``result`` field.
    """
    ref = re.compile(
        r"\{\{[^{}]*?\bstep_" + str(step_number) + r"\.result\.(\w+)[^{}]*?\}\}"
    )
    pattern = re.compile(r"(?:^|\|)\s*step_" + str(step_number) + r"\.result\.(\w+)")
    fields: Dict[str, str] = {}
    for later in raw_steps[step_number:]:
        text = json.dumps(later, ensure_ascii=False)
        for match in ref.finditer(text):
            inner = match.group(0)[2:-2]
            for field in pattern.findall(inner):
                fields[field] = "string"

    for name, _ in DESCRIPTION_FIELD_RE.findall(description or ""):
        if name not in RESERVED_DESCRIPTION_FIELDS:
            fields[name] = "string"

    return OutputFormat(fields=fields) if fields else OutputFormat()


def normalize_attachments(parameters: Dict[str, Any]) -> Dict[str, Any]:
    """Coerce ``attachments`` into a list of ``{"type", "value"}`` references."""
    if "attachments" not in parameters:
        return parameters
    attachments = parameters["attachments"]
    if attachments is None or attachments == "":
        attachments = []
    if isinstance(attachments, str):
        try:
            decoded = json.loads(attachments)
        except json.JSONDecodeError:
            decoded = None
        attachments = decoded if isinstance(decoded, list) else [attachments]
    elif not isinstance(attachments, list):
        attachments = [attachments]

    normalized = []
    for item in attachments:
        if isinstance(item, dict):
            ref = dict(item)
            ref.setdefault("type", "document_id")
            normalized.append(ref)
        elif item is not None and str(item).strip():
            normalized.append({"type": "document_id", "value": str(item)})
    return {**parameters, "attachments": normalized}


class WorkflowPlanner:
    """Plan workflows with a completion provider and persist them."""

    def __init__(
        self,
        provider: Any,
        repository: WorkflowRepository,
        tools: Optional[ToolRegistry] = None,
        communication_tools: Iterable[str] = ("send_email",),
    ) -> None:
        self._provider = provider
        self._repository = repository
        self._tools = tools or default_registry()
        self._communication_tools = set(communication_tools)

    def build_prompt(self) -> str:
        return planning_prompt(self._tools.specs())

    async def create_workflow(self, intent: str, session_id: str) -> Workflow:
        """Plan ``intent`` and persist the resulting workflow.

        Raises:
            PlanParseError: No plan JSON could be extracted.
            InvalidPlanError: The plan failed validation. Nothing is persisted.
        """
        content = await self._provider.complete(
            intent, system_prompt=self.build_prompt(), session_id=session_id
        )
        plan = self.parse_plan(content)
        workflow = self.build_workflow(intent, session_id, plan)
        await self._repository.create_workflow(workflow)
        logger.info(
            f"Workflow created workflow_id={workflow.id} session_id={session_id} "
            f"steps={len(workflow.steps)}"
        )
        return workflow

    def parse_plan(self, content: str) -> Dict[str, Any]:
        try:
            return parse_structured_response(content, required_key="steps")
        except StructuredResponseError as e:
            preview = (content or "")[:500]
            logger.error(f"Could not parse workflow plan: {e}. Content preview: {preview!r}")
            raise PlanParseError(f"Could not parse workflow plan: {e}") from e

    def validate_plan(self, plan: Dict[str, Any]) -> List[Step]:
        raw_steps = plan.get("steps")
        if not isinstance(raw_steps, list) or not raw_steps:
            raise InvalidPlanError("Invalid workflow plan: missing or empty steps array")

        errors: List[str] = []
        steps: List[Step] = []
        for index, raw in enumerate(raw_steps):
            number = index + 1
            if not isinstance(raw, dict):
                errors.append(f"step {number}: not an object")
                continue
            step = self._build_step(number, raw, raw_steps, errors)
            if step is not None:
                steps.append(step)

        if errors:
            raise InvalidPlanError("Invalid workflow plan: " + "; ".join(errors))
        return steps

    def build_workflow(self, intent: str, session_id: str, plan: Dict[str, Any]) -> Workflow:
        return Workflow(
            session_id=session_id,
            user_intent=intent,
            steps=self.validate_plan(plan),
        )

    def _build_step(
        self,
        number: int,
        raw: Dict[str, Any],
        raw_steps: List[Dict[str, Any]],
        errors: List[str],
    ) -> Optional[Step]:
        raw_type = _first(raw, STEP_TYPE_KEYS)
        try:
            step_type = StepType(str(raw_type).strip().lower())
        except ValueError:
            errors.append(f"step {number}: invalid step type {raw_type!r}")
            return None

        description = str(raw.get("description") or "").strip() or DEFAULT_DESCRIPTION
        parameters = _first(raw, PARAMETER_KEYS) or {}
        if not isinstance(parameters, dict):
            errors.append(f"step {number}: parameters must be an object")
            return None
        parameters = normalize_attachments(parameters)

        tool_name = _first(raw, TOOL_KEYS)
        tool_name = str(tool_name).strip() if tool_name else None
        requires_confirmation = _as_bool(raw.get("requires_confirmation", False))

        if step_type == StepType.TOOL_CALL:
            if not tool_name:
                errors.append(f"step {number}: tool_call without tool")
                return None
            if not self._tools.has(tool_name):
                errors.append(f"step {number}: unknown tool {tool_name!r}")
                return None
            if tool_name in self._communication_tools or self._tools.requires_confirmation(
                tool_name
            ):
                requires_confirmation = True

        output_format = None
        if step_type in STRUCTURED_STEP_TYPES:
            output_format = normalize_output_format(_first(raw, FORMAT_KEYS))
            if output_format is None:
                output_format = infer_output_format(number, raw_steps, description)
                logger.debug(
                    f"Inferred output format for step {number}: {list(output_format.fields)}"
                )

        return Step(
            step_number=number,
            step_type=step_type,
            description=description,
            tool_name=tool_name if step_type == StepType.TOOL_CALL else None,
            tool_parameters=parameters,
            requires_confirmation=requires_confirmation,
            expected_output_format=output_format,
        )
