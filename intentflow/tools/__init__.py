from .default_prompts import (
    STRUCTURED_SYSTEM_PROMPT,
    planning_prompt,
    structured_step_prompt,
    tool_call_prompt,
)
from .default_tools import DEFAULT_TOOL_SPECS, default_registry
from .registry import ToolRegistry, ToolSpec

__all__ = [
    "DEFAULT_TOOL_SPECS",
    "STRUCTURED_SYSTEM_PROMPT",
    "ToolRegistry",
    "ToolSpec",
    "default_registry",
    "planning_prompt",
    "structured_step_prompt",
    "tool_call_prompt",
]
