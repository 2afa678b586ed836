"""Command transports and the factory selecting one from configuration."""

from __future__ import annotations

from typing import Optional

from ..config import IntentflowConfig, load_config
from .base import CommandTransport
from .inmemory import InMemoryTransport


def get_transport(
    backend: Optional[str] = None, config: Optional[IntentflowConfig] = None
) -> CommandTransport:
    """Build the transport named by ``backend`` or ``transport.backend``.

    The in-memory backend only reaches workers in the same process. Use
    ``redis`` when the worker runs elsewhere.
    """
    settings = (config or load_config()).transport
    name = (backend or settings.backend).lower()

    if name == "inmemory":
        return InMemoryTransport()
    if name == "redis":
        from .redis import RedisTransport

        return RedisTransport(**settings.redis.model_dump())
    raise ValueError(f"Unsupported transport backend: {name}")


__all__ = ["CommandTransport", "InMemoryTransport", "get_transport"]
