"""Registry of tools a workflow step may call."""

from __future__ import annotations

import asyncio
import inspect
import logging
from typing import Any, Callable, Dict, Iterable, List, Optional

from pydantic import BaseModel, Field

from ..exceptions import ToolExecutionError, ToolNotFoundError

logger = logging.getLogger(__name__)


class ToolSpec(BaseModel):
    """Describes a tool to the planner and the executor."""

    name: str
    description: str = ""
    parameters: Dict[str, str] = Field(default_factory=dict)
    communication: bool = False
    irreversible: bool = False


class ToolRegistry:
    """Map tool names to specs and optional local implementations.

    A tool registered without an implementation is agent-mediated: the
    executor asks the completion provider to carry it out.
    """

    def __init__(self, specs: Optional[Iterable[ToolSpec]] = None) -> None:
        self._specs: Dict[str, ToolSpec] = {}
        self._funcs: Dict[str, Callable[..., Any]] = {}
        for spec in specs or []:
            self.register(spec)

    def register(self, spec: ToolSpec, func: Optional[Callable[..., Any]] = None) -> None:
        self._specs[spec.name] = spec
        if func is not None:
            self._funcs[spec.name] = func
        else:
            self._funcs.pop(spec.name, None)

    def tool(
        self,
        name: Optional[str] = None,
        *,
        description: Optional[str] = None,
        parameters: Optional[Dict[str, str]] = None,
        communication: bool = False,
        irreversible: bool = False,
    ) -> Callable[[Callable[..., Any]], Callable[..., Any]]:
        """Decorator registering a function as a tool implementation."""

        def decorator(func: Callable[..., Any]) -> Callable[..., Any]:
            spec = ToolSpec(
                name=name or func.__name__,
                description=description or (inspect.getdoc(func) or "").split("\n")[0],
                parameters=parameters or {},
                communication=communication,
                irreversible=irreversible,
            )
            self.register(spec, func)
            return func

        return decorator

    def get(self, name: str) -> ToolSpec:
        try:
            return self._specs[name]
        except KeyError:
            raise ToolNotFoundError(f"Unknown tool '{name}'") from None

    def has(self, name: str) -> bool:
        return name in self._specs

    def has_implementation(self, name: str) -> bool:
        return name in self._funcs

    def specs(self) -> List[ToolSpec]:
        return list(self._specs.values())

    def is_communication(self, name: str) -> bool:
        spec = self._specs.get(name)
        return bool(spec and spec.communication)

    def requires_confirmation(self, name: str) -> bool:
        spec = self._specs.get(name)
        return bool(spec and (spec.communication or spec.irreversible))

    async def invoke(self, name: str, parameters: Dict[str, Any]) -> Any:
        """Call the local implementation of ``name`` with ``parameters``.

        Provider-style errors (anything with a ``status_code``, timeouts,
        connection errors) propagate unchanged so they can be classified for
        retry. Other exceptions are wrapped in ``ToolExecutionError``.
        """
        func = self._funcs.get(name)
        if func is None:
            raise ToolNotFoundError(f"Tool '{name}' has no local implementation")
        logger.debug(f"Invoking tool {name}")
        try:
            if inspect.iscoroutinefunction(func):
                return await func(**parameters)
            return await asyncio.to_thread(func, **parameters)
        except (TimeoutError, ConnectionError, ToolExecutionError):
            raise
        except Exception as exc:
            if getattr(exc, "status_code", None) is not None:
                raise
            raise ToolExecutionError(f"Tool '{name}' failed: {exc}") from exc
