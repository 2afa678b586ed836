from __future__ import annotations

import json
from typing import Any, Dict, Iterable, Optional

from .registry import ToolSpec


def planning_prompt(tools: Iterable[ToolSpec]) -> str:
    """Instruction prompt asking the provider for a JSON step plan."""
    tool_lines = []
    for spec in tools:
        params = ", ".join(spec.parameters) or "none"
        suffix = " (requires confirmation)" if spec.communication or spec.irreversible else ""
        tool_lines.append(f"- {spec.name}: {spec.description}{suffix} (parameters: {params})")
    tool_block = "\n".join(tool_lines) or "- (no tools available)"
    return (
        "You are a workflow planner. Turn the user's request into a short, efficient, "
        "ordered list of executable steps.\n\n"
        "Rules:\n"
        "1. Use values the user already gave directly; do not add steps to rediscover them.\n"
        "2. Skip steps that are not needed.\n"
        "3. analysis and decision steps MUST declare an output_format listing the exact "
        "field names later steps read.\n"
        "4. Set requires_confirmation to true only for steps that contact people or "
        "cannot be undone.\n"
        "5. Reference earlier results with {{step_N.result.FIELD}}. "
        "Alternatives may be chained as {{step_N.result.a|step_N.result.b}}.\n\n"
        "Step types:\n"
        "- tool_call: calls a tool (needs \"tool\" and \"parameters\")\n"
        "- analysis: analyses data (needs \"output_format\")\n"
        "- decision: makes a choice (needs \"output_format\")\n"
        "- notification: sends a message to the user\n\n"
        f"Available tools:\n{tool_block}\n\n"
        "Answer with JSON only, in this shape:\n"
        "```json\n"
        "{\n"
        '  "steps": [\n'
        '    {"type": "tool_call", "tool": "job_search", "description": "Search jobs", '
        '"parameters": {"what": "Developer", "where": "Hamburg"}},\n'
        '    {"type": "analysis", "description": "Extract job details", '
        '"output_format": {"job_title": "string", "company_name": "string"}},\n'
        '    {"type": "notification", "description": "Found {{step_2.result.job_title}} '
        'at {{step_2.result.company_name}}"}\n'
        "  ]\n"
        "}\n"
        "```"
    )


def structured_step_prompt(
    description: str,
    fields: Dict[str, str],
    context: Dict[str, Any],
    parameters: Optional[Dict[str, Any]] = None,
) -> str:
    """Prompt for an analysis or decision step returning ``fields`` as JSON."""
    template = json.dumps(
        {name: f"<{kind}>" for name, kind in fields.items()}, indent=2, ensure_ascii=False
    )
    sections = [
        f"Task: {description}",
        "Results of previous steps:\n"
        + json.dumps(context, indent=2, ensure_ascii=False, default=str),
    ]
    if parameters:
        sections.append(
            "Inputs:\n" + json.dumps(parameters, indent=2, ensure_ascii=False, default=str)
        )
    sections.append(
        "Respond with a single JSON object containing exactly these fields:\n"
        f"```json\n{template}\n```"
    )
    return "\n\n".join(sections)


def tool_call_prompt(spec: ToolSpec, parameters: Dict[str, Any]) -> str:
    """Prompt asking the provider to carry out an agent-mediated tool call."""
    return (
        f"Use the tool '{spec.name}' ({spec.description}) with these parameters:\n"
        f"{json.dumps(parameters, indent=2, ensure_ascii=False, default=str)}\n\n"
        "Return the tool's result."
    )


STRUCTURED_SYSTEM_PROMPT = (
    "You are a precise analyst inside an automated workflow. "
    "Answer only with the requested JSON object."
)
