"""Status reporter factory."""

from __future__ import annotations

from typing import Optional

from ..config import IntentflowConfig, load_config
from .base import StatusEntry, StatusReporter
from .inmemory import InMemoryStatusReporter


def get_status_reporter(
    backend: Optional[str] = None, config: Optional[IntentflowConfig] = None
) -> StatusReporter:
    """Factory function to get the configured status reporter."""

    config = config or load_config()
    backend = (backend or config.status.backend).lower()

    if backend == "inmemory":
        return InMemoryStatusReporter()
    elif backend == "redis":
        from .redis import RedisStatusReporter

        redis_conf = config.status.redis
        return RedisStatusReporter(
            host=redis_conf.host,
            port=redis_conf.port,
            db=redis_conf.db,
            password=redis_conf.password,
            ttl_seconds=config.status.ttl_seconds,
        )
    else:
        raise ValueError(f"Unsupported status backend: {backend}")


__all__ = [
    "InMemoryStatusReporter",
    "StatusEntry",
    "StatusReporter",
    "get_status_reporter",
]
