from __future__ import annotations

import os
from typing import List, Literal, Optional

import yaml
from pydantic import BaseModel, Field

from .constants import (
    DEFAULT_BACKOFF_BASE,
    DEFAULT_BACKOFF_CAP,
    DEFAULT_BREAKER_TIMEOUT,
    DEFAULT_COMMUNICATION_TOOLS,
    DEFAULT_COOLDOWN_SECONDS,
    DEFAULT_FAILURE_THRESHOLD,
    DEFAULT_MAX_ATTEMPTS,
    DEFAULT_MAX_PRIMARY_FAILURES,
    DEFAULT_STATUS_TTL_SECONDS,
    DEFAULT_STEP_DELAY,
    DEFAULT_SUCCESS_THRESHOLD,
)


class RedisConfig(BaseModel):
    """Connection settings shared by the Redis transport and status log."""

    host: str = "localhost"
    port: int = 6379
    db: int = 0
    password: Optional[str] = None


class TransportConfig(BaseModel):
    """Transport configuration settings."""

    backend: Literal["inmemory", "redis"] = "inmemory"
    redis: RedisConfig = RedisConfig()


class StatusConfig(BaseModel):
    """Status reporter settings."""

    backend: Literal["inmemory", "redis"] = "inmemory"
    redis: RedisConfig = RedisConfig()
    ttl_seconds: int = DEFAULT_STATUS_TTL_SECONDS


class ExecutorConfig(BaseModel):
    """Retry and throttling policy for step execution."""

    max_attempts: int = DEFAULT_MAX_ATTEMPTS
    backoff_base: float = DEFAULT_BACKOFF_BASE
    backoff_cap: float = DEFAULT_BACKOFF_CAP
    step_delay: float = DEFAULT_STEP_DELAY
    communication_tools: List[str] = Field(
        default_factory=lambda: list(DEFAULT_COMMUNICATION_TOOLS)
    )


class CircuitBreakerConfig(BaseModel):
    failure_threshold: int = DEFAULT_FAILURE_THRESHOLD
    timeout: float = DEFAULT_BREAKER_TIMEOUT
    success_threshold: int = DEFAULT_SUCCESS_THRESHOLD
    state_ttl: Optional[float] = None


class FallbackConfig(BaseModel):
    max_primary_failures: int = DEFAULT_MAX_PRIMARY_FAILURES
    cooldown_seconds: float = DEFAULT_COOLDOWN_SECONDS


class ProviderConfig(BaseModel):
    """pydantic-ai model identifiers for the primary and secondary provider."""

    primary_model: str = "openai:gpt-4o"
    secondary_model: Optional[str] = "openai:gpt-4o-mini"
    service_name: str = "completion"


class IntentflowConfig(BaseModel):
    """Top-level configuration model."""

    transport: TransportConfig = TransportConfig()
    status: StatusConfig = StatusConfig()
    executor: ExecutorConfig = ExecutorConfig()
    circuit_breaker: CircuitBreakerConfig = CircuitBreakerConfig()
    fallback: FallbackConfig = FallbackConfig()
    provider: ProviderConfig = ProviderConfig()
    database_url: Optional[str] = None


def load_config(path: Optional[str] = None) -> IntentflowConfig:
    """Load configuration from YAML file.

    Args:
        path: Optional path to config file. Falls back to INTENTFLOW_CONFIG env
            variable or 'config.yaml' in the current directory.
    """

    config_path = path or os.getenv("INTENTFLOW_CONFIG", "config.yaml")
    if os.path.exists(config_path):
        with open(config_path) as f:
            data = yaml.safe_load(f) or {}
        config = IntentflowConfig(**data)
    else:
        config = IntentflowConfig()

    env_db_url = os.getenv("INTENTFLOW_DATABASE_URL") or os.getenv("DATABASE_URL")
    if env_db_url:
        config.database_url = env_db_url
    if transport := os.getenv("INTENTFLOW_TRANSPORT"):
        config.transport.backend = transport.lower()
    if status_backend := os.getenv("INTENTFLOW_STATUS_BACKEND"):
        config.status.backend = status_backend.lower()
    if primary := os.getenv("INTENTFLOW_PRIMARY_MODEL"):
        config.provider.primary_model = primary
    if secondary := os.getenv("INTENTFLOW_SECONDARY_MODEL"):
        config.provider.secondary_model = secondary
    return config
