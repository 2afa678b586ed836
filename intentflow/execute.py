"""Step execution engine for intentflow workflows."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable, Dict, Optional

from .config import ExecutorConfig
from .context import ContextResolver, find_unresolved, to_text
from .contracts import (
    OutputFormat,
    Step,
    StepStatus,
    StepType,
    Workflow,
    WorkflowStatus,
    utcnow,
)
from .exceptions import (
    EmptyResponseError,
    UnresolvedReferenceError,
    WorkflowNotFoundError,
    WorkflowStateError,
)
from .parsing import extract_structured_fields
from .persistence import WorkflowRepository
from .tools import (
    STRUCTURED_SYSTEM_PROMPT,
    ToolRegistry,
    ToolSpec,
    default_registry,
    structured_step_prompt,
    tool_call_prompt,
)
from .utils.retry import compute_backoff, is_transient_error

logger = logging.getLogger(__name__)

StepHandler = Callable[[Workflow, Step, Dict[str, Any], Dict[str, Any], bool], Awaitable[Any]]

BODY_PREVIEW_CHARS = 200


class WorkflowExecutor:
    """Drive a workflow's steps in order, pausing at confirmation gates.

    The executor keeps no state between calls. Every ``run`` and ``confirm``
    reloads the workflow from the repository and rebuilds the execution
    context from completed steps, so a workflow paused by one process can be
    resumed by another.
    """

    def __init__(
        self,
        repository: WorkflowRepository,
        provider: Any,
        tools: Optional[ToolRegistry] = None,
        status_reporter: Optional[Any] = None,
        resolver: Optional[ContextResolver] = None,
        config: Optional[ExecutorConfig] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._repository = repository
        self._provider = provider
        self._tools = tools or default_registry()
        self._status = status_reporter
        self._resolver = resolver or ContextResolver()
        self._config = config or ExecutorConfig()
        self._sleep = sleep
        self._handlers: Dict[StepType, StepHandler] = {
            StepType.TOOL_CALL: self._execute_tool_call,
            StepType.ANALYSIS: self._execute_structured,
            StepType.DECISION: self._execute_structured,
            StepType.NOTIFICATION: self._execute_notification,
        }
        missing = set(StepType) - set(self._handlers)
        if missing:
            raise RuntimeError(f"No handler for step types: {sorted(t.value for t in missing)}")

    # ------------------------------------------------------------------
    # Public API
    async def run(self, workflow: Workflow | str) -> Workflow:
        """Execute pending steps until completion, failure or a confirmation gate.

        Re-entrant: a terminal workflow is returned untouched, and a workflow
        waiting for confirmation is only re-validated.
        """
        workflow = await self._load(workflow)
        if workflow.is_terminal:
            logger.debug(f"Workflow workflow_id={workflow.id} already {workflow.status.value}")
            return workflow
        if workflow.status == WorkflowStatus.WAITING_CONFIRMATION:
            self._paused_step(workflow)
            logger.debug(f"Workflow workflow_id={workflow.id} still awaiting confirmation")
            return workflow

        if workflow.status == WorkflowStatus.CREATED:
            await self._report(workflow, f"Starting workflow with {len(workflow.steps)} steps")
        workflow.status = WorkflowStatus.RUNNING
        workflow.current_step = None
        await self._repository.update_workflow(workflow)

        context = workflow.build_context()
        for step in sorted(workflow.steps, key=lambda s: s.step_number):
            if step.status == StepStatus.COMPLETED:
                continue
            await self._sleep(self._config.step_delay)
            if not await self._run_step(workflow, step, context):
                return workflow

        workflow.status = WorkflowStatus.COMPLETED
        workflow.completed_at = utcnow()
        await self._repository.update_workflow(workflow)
        logger.info(f"Workflow completed workflow_id={workflow.id} session_id={workflow.session_id}")
        await self._report(workflow, "Workflow completed")
        return workflow

    async def confirm(self, workflow: Workflow | str, approved: bool) -> Workflow:
        """Resolve the confirmation gate of a paused workflow.

        Approval performs any deferred side effect of the paused step,
        completes it and continues the run. Rejection cancels the workflow.

        Raises:
            WorkflowStateError: The workflow is not waiting for confirmation.
        """
        workflow = await self._load(workflow)
        if workflow.status != WorkflowStatus.WAITING_CONFIRMATION:
            raise WorkflowStateError(
                f"Workflow {workflow.id} is {workflow.status.value}, not waiting for confirmation"
            )
        step = self._paused_step(workflow)
        if not await self._repository.claim_confirmation(workflow.id, step.step_number):
            logger.info(
                f"Step {step.step_number} already claimed by another confirmation "
                f"workflow_id={workflow.id}"
            )
            return await self._load(workflow.id)
        step.status = StepStatus.RUNNING
        workflow.status = WorkflowStatus.RUNNING

        if not approved:
            step.status = StepStatus.REJECTED
            workflow.status = WorkflowStatus.CANCELLED
            workflow.current_step = None
            workflow.completed_at = utcnow()
            await self._repository.save_workflow(workflow)
            logger.info(
                f"Step {step.step_number} rejected, workflow cancelled workflow_id={workflow.id}"
            )
            await self._report(workflow, f"Step {step.step_number} rejected, workflow cancelled")
            return workflow

        await self._report(workflow, f"Step {step.step_number} approved")
        context = workflow.build_context()
        try:
            result = await self._with_retry(
                workflow, step, lambda: self._perform_confirmed(workflow, step, context)
            )
        except Exception as exc:
            await self._fail(workflow, step, exc)
            return workflow

        step.status = StepStatus.COMPLETED
        step.result = result
        step.error_message = None
        step.completed_at = utcnow()
        workflow.status = WorkflowStatus.RUNNING
        workflow.current_step = None
        await self._repository.save_workflow(workflow)
        logger.info(f"Step {step.step_number} completed after approval workflow_id={workflow.id}")
        await self._report(workflow, f"Step {step.step_number} completed")
        return await self.run(workflow.id)

    # ------------------------------------------------------------------
    # Step loop
    async def _run_step(self, workflow: Workflow, step: Step, context: Dict[str, Any]) -> bool:
        total = len(workflow.steps)
        await self._report(workflow, f"Step {step.step_number}/{total}: {step.description}")
        step.status = StepStatus.RUNNING
        step.error_message = None
        await self._repository.update_step(workflow.id, step)

        try:
            parameters = self.resolve_parameters(step, context)
        except UnresolvedReferenceError as exc:
            await self._fail(workflow, step, exc)
            return False

        deferred = step.requires_confirmation
        try:
            result = await self._with_retry(
                workflow,
                step,
                lambda: self._handlers[step.step_type](
                    workflow, step, parameters, context, deferred
                ),
            )
        except Exception as exc:
            await self._fail(workflow, step, exc)
            return False

        current = await self._repository.get_workflow(workflow.id)
        if current is None or current.is_terminal:
            logger.info(
                f"Discarding result of step {step.step_number}: workflow_id={workflow.id} "
                f"is {'deleted' if current is None else current.status.value}"
            )
            return False

        if step.requires_confirmation:
            step.status = StepStatus.PENDING_CONFIRMATION
            step.result = result
            workflow.status = WorkflowStatus.WAITING_CONFIRMATION
            workflow.current_step = step.step_number
            await self._repository.save_workflow(workflow)
            logger.info(
                f"Workflow paused at step {step.step_number} for confirmation "
                f"workflow_id={workflow.id}"
            )
            await self._report(
                workflow, f"Step {step.step_number} awaiting confirmation: {step.description}"
            )
            return False

        if not await self._repository.complete_step(workflow.id, step.step_number, result):
            stored = (await self._repository.get_workflow(workflow.id)).step(step.step_number)
            result = stored.result
            logger.debug(f"Step {step.step_number} already completed workflow_id={workflow.id}")
        step.status = StepStatus.COMPLETED
        step.result = result
        step.completed_at = utcnow()
        context[step.context_key] = {"result": result}
        logger.info(f"Step {step.step_number} completed workflow_id={workflow.id}")
        await self._report(workflow, f"Step {step.step_number} completed")
        return True

    def resolve_parameters(self, step: Step, context: Dict[str, Any]) -> Dict[str, Any]:
        """Resolve ``step``'s parameters, failing on any leftover placeholder."""
        parameters = self._resolver.resolve(step.tool_parameters, context)
        unresolved = find_unresolved(parameters)
        if unresolved:
            raise UnresolvedReferenceError(unresolved, step.step_number)
        return parameters

    async def _with_retry(
        self, workflow: Workflow, step: Step, operation: Callable[[], Awaitable[Any]]
    ) -> Any:
        max_attempts = max(1, self._config.max_attempts)
        for attempt in range(1, max_attempts + 1):
            try:
                return await operation()
            except Exception as exc:
                if attempt >= max_attempts or not is_transient_error(exc):
                    raise
                delay = compute_backoff(
                    attempt, base=self._config.backoff_base, cap=self._config.backoff_cap
                )
                logger.warning(
                    f"Step {step.step_number} attempt {attempt}/{max_attempts} failed "
                    f"workflow_id={workflow.id}: {exc}. Retrying in {delay:.2f}s"
                )
                await self._report(
                    workflow,
                    f"Retry {attempt}/{max_attempts} for step {step.step_number}: "
                    f"{str(exc)[:80]}",
                )
                await self._sleep(delay)
        raise RuntimeError("unreachable")

    async def _fail(self, workflow: Workflow, step: Step, exc: Exception) -> None:
        message = str(exc) or exc.__class__.__name__
        step.status = StepStatus.FAILED
        step.error_message = message
        workflow.status = WorkflowStatus.FAILED
        workflow.current_step = None
        workflow.completed_at = utcnow()
        await self._repository.save_workflow(workflow)
        logger.error(
            f"Step {step.step_number} failed, workflow_id={workflow.id} "
            f"session_id={workflow.session_id}: {message}"
        )
        await self._report(workflow, f"Step {step.step_number} failed: {message}")

    # ------------------------------------------------------------------
    # Step handlers
    async def _execute_tool_call(
        self,
        workflow: Workflow,
        step: Step,
        parameters: Dict[str, Any],
        context: Dict[str, Any],
        prepare: bool,
    ) -> Any:
        spec = self._tools.get(step.tool_name)
        if prepare:
            return self._prepare_tool_call(spec, parameters)
        return await self._call_tool(workflow, spec, parameters)

    async def _execute_structured(
        self,
        workflow: Workflow,
        step: Step,
        parameters: Dict[str, Any],
        context: Dict[str, Any],
        prepare: bool,
    ) -> Dict[str, Any]:
        fields = (step.expected_output_format or OutputFormat()).fields
        description = to_text(self._resolver.resolve(step.description, context))
        prompt = structured_step_prompt(description, fields, context, parameters)
        content = await self._provider.complete(
            prompt, system_prompt=STRUCTURED_SYSTEM_PROMPT, session_id=workflow.session_id
        )
        if not content or not content.strip():
            raise EmptyResponseError()

        data = extract_structured_fields(content, fields)
        if list(fields) == ["result"] and "result" not in data:
            data["result"] = content.strip()
        if not data:
            raise EmptyResponseError(
                f"response does not contain the requested fields: {', '.join(fields)}"
            )
        missing = [f for f in fields if f not in data]
        if missing:
            logger.warning(
                f"Step {step.step_number} response missing fields {missing} "
                f"workflow_id={workflow.id}"
            )
        return data

    async def _execute_notification(
        self,
        workflow: Workflow,
        step: Step,
        parameters: Dict[str, Any],
        context: Dict[str, Any],
        prepare: bool,
    ) -> Dict[str, Any]:
        message = to_text(self._resolver.resolve(step.description, context))
        if prepare:
            return {"notification_sent": False, "status": "prepared", "message": message}
        await self._report(workflow, message)
        return {"notification_sent": True, "message": message}

    async def _perform_confirmed(
        self, workflow: Workflow, step: Step, context: Dict[str, Any]
    ) -> Any:
        prepared = step.result if isinstance(step.result, dict) else {}
        if step.step_type == StepType.TOOL_CALL:
            spec = self._tools.get(step.tool_name)
            parameters = prepared.get("parameters")
            if not isinstance(parameters, dict):
                parameters = self.resolve_parameters(step, context)
            return await self._call_tool(workflow, spec, parameters)
        if step.step_type == StepType.NOTIFICATION:
            message = prepared.get("message") or to_text(
                self._resolver.resolve(step.description, context)
            )
            await self._report(workflow, message)
            return {"notification_sent": True, "message": message}
        return step.result

    # ------------------------------------------------------------------
    # Tools
    def _prepare_tool_call(self, spec: ToolSpec, parameters: Dict[str, Any]) -> Dict[str, Any]:
        if not self._is_communication(spec.name):
            return {"tool": spec.name, "status": "prepared", "parameters": parameters}
        body = to_text(parameters.get("body") or "")
        attachments = parameters.get("attachments") or []
        return {
            "tool": spec.name,
            "status": "prepared",
            "recipient": parameters.get("to"),
            "subject": parameters.get("subject"),
            "body": body,
            "body_preview": body[:BODY_PREVIEW_CHARS],
            "attachments": attachments,
            "attachment_count": len(attachments),
            "parameters": parameters,
        }

    async def _call_tool(
        self, workflow: Workflow, spec: ToolSpec, parameters: Dict[str, Any]
    ) -> Any:
        if self._tools.has_implementation(spec.name):
            output = await self._tools.invoke(spec.name, parameters)
        else:
            output = await self._provider.complete(
                tool_call_prompt(spec, parameters), session_id=workflow.session_id
            )
            if not output or not str(output).strip():
                raise EmptyResponseError(f"{spec.name}: no content returned")

        if self._is_communication(spec.name):
            return {
                "tool": spec.name,
                "status": "sent",
                "recipient": parameters.get("to"),
                "sent_at": utcnow().isoformat(),
                "result": output,
            }
        if isinstance(output, dict):
            return output
        return {"tool": spec.name, "result": output}

    def _is_communication(self, tool_name: str) -> bool:
        return tool_name in self._config.communication_tools or self._tools.is_communication(
            tool_name
        )

    # ------------------------------------------------------------------
    # Helpers
    async def _load(self, workflow: Workflow | str) -> Workflow:
        workflow_id = workflow if isinstance(workflow, str) else workflow.id
        loaded = await self._repository.get_workflow(workflow_id)
        if loaded is None:
            raise WorkflowNotFoundError(f"Workflow {workflow_id} not found")
        return loaded

    @staticmethod
    def _paused_step(workflow: Workflow) -> Step:
        """Return the step awaiting confirmation, checking the pause invariant."""
        paused = [s for s in workflow.steps if s.status == StepStatus.PENDING_CONFIRMATION]
        next_step = workflow.next_pending_step()
        if (
            len(paused) != 1
            or next_step is None
            or paused[0].step_number != next_step.step_number
            or workflow.current_step != paused[0].step_number
        ):
            raise WorkflowStateError(
                f"Workflow {workflow.id} is waiting for confirmation but its steps are inconsistent"
            )
        return paused[0]

    async def _report(self, workflow: Workflow, message: str) -> None:
        if self._status is None:
            return
        try:
            await self._status.append(workflow.session_id, message)
        except Exception as exc:
            logger.warning(
                f"Status reporting failed for session_id={workflow.session_id}: {exc}"
            )
