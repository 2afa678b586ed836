"""Completion provider construction."""

from __future__ import annotations

from typing import Any, Optional

from ..config import IntentflowConfig, load_config
from ..resilience import BreakerGuardedProvider, CircuitBreaker, FallbackAgentSelector
from .base import CompletionProvider


def get_circuit_breaker(config: Optional[IntentflowConfig] = None) -> CircuitBreaker:
    config = config or load_config()
    cb = config.circuit_breaker
    return CircuitBreaker(
        failure_threshold=cb.failure_threshold,
        timeout=cb.timeout,
        success_threshold=cb.success_threshold,
        state_ttl=cb.state_ttl,
    )


def get_provider(
    config: Optional[IntentflowConfig] = None,
    breaker: Optional[CircuitBreaker] = None,
    status_reporter: Optional[Any] = None,
) -> FallbackAgentSelector:
    """Build the primary/secondary provider chain from configuration.

    Each provider is gated by its own circuit breaker entry, and the
    selector fails over from primary to secondary on rate limits or an
    open primary circuit.
    """
    from .pydantic_agent import PydanticAIProvider

    config = config or load_config()
    breaker = breaker or get_circuit_breaker(config)
    service = config.provider.service_name

    primary = BreakerGuardedProvider(
        PydanticAIProvider(config.provider.primary_model),
        breaker,
        f"{service}:primary",
    )
    secondary = None
    if config.provider.secondary_model:
        secondary = BreakerGuardedProvider(
            PydanticAIProvider(config.provider.secondary_model),
            breaker,
            f"{service}:secondary",
        )
    return FallbackAgentSelector(
        primary,
        secondary,
        max_primary_failures=config.fallback.max_primary_failures,
        cooldown_seconds=config.fallback.cooldown_seconds,
        status_reporter=status_reporter,
    )


__all__ = ["CompletionProvider", "get_circuit_breaker", "get_provider"]
