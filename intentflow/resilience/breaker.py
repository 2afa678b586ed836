"""Per-service circuit breaker.

States:
  CLOSED    - all calls pass, consecutive failures are counted
  OPEN      - all calls rejected until ``timeout`` seconds after the last failure
  HALF_OPEN - one probe call at a time; ``success_threshold`` consecutive
              successes close the circuit, any failure re-opens it

State is shared by every workflow in the process and keyed by service name.
Entries untouched for ``state_ttl`` seconds are dropped.
"""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Optional, TypeVar

from ..constants import (
    DEFAULT_BREAKER_TIMEOUT,
    DEFAULT_FAILURE_THRESHOLD,
    DEFAULT_SUCCESS_THRESHOLD,
)
from ..exceptions import CircuitOpenError
from ..utils.retry import is_transient_error

logger = logging.getLogger(__name__)

T = TypeVar("T")

CLOSED = "closed"
OPEN = "open"
HALF_OPEN = "half_open"


@dataclass
class _ServiceCircuit:
    state: str = CLOSED
    failure_count: int = 0
    success_count: int = 0
    last_failure_at: float = 0.0
    touched_at: float = 0.0
    probe_in_flight: bool = False


class CircuitBreaker:
    """Thread-safe circuit breaker keyed by service name."""

    def __init__(
        self,
        failure_threshold: int = DEFAULT_FAILURE_THRESHOLD,
        timeout: float = DEFAULT_BREAKER_TIMEOUT,
        success_threshold: int = DEFAULT_SUCCESS_THRESHOLD,
        state_ttl: Optional[float] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.failure_threshold = failure_threshold
        self.timeout = timeout
        self.success_threshold = success_threshold
        self.state_ttl = state_ttl if state_ttl is not None else timeout * 10
        self._clock = clock
        self._circuits: Dict[str, _ServiceCircuit] = {}
        self._lock = threading.Lock()

    # ------------------------------------------------------------------
    def _circuit(self, service: str) -> _ServiceCircuit:
        now = self._clock()
        circuit = self._circuits.get(service)
        if circuit is not None and now - circuit.touched_at > self.state_ttl:
            logger.debug(f"Expired circuit state for service={service}")
            circuit = None
        if circuit is None:
            circuit = _ServiceCircuit(touched_at=now)
            self._circuits[service] = circuit
        if circuit.state == OPEN and now - circuit.last_failure_at >= self.timeout:
            circuit.state = HALF_OPEN
            circuit.success_count = 0
            circuit.probe_in_flight = False
            logger.info(f"Circuit half-open for service={service}")
        return circuit

    def state(self, service: str) -> str:
        with self._lock:
            return self._circuit(service).state

    def is_request_allowed(self, service: str) -> bool:
        """Return whether a call to ``service`` may proceed.

        In half-open state this admits a single probe and rejects further
        calls until that probe is recorded.
        """
        with self._lock:
            circuit = self._circuit(service)
            circuit.touched_at = self._clock()
            if circuit.state == CLOSED:
                return True
            if circuit.state == OPEN:
                return False
            if circuit.probe_in_flight:
                return False
            circuit.probe_in_flight = True
            return True

    def record_success(self, service: str) -> None:
        with self._lock:
            circuit = self._circuit(service)
            circuit.touched_at = self._clock()
            circuit.probe_in_flight = False
            if circuit.state == HALF_OPEN:
                circuit.success_count += 1
                if circuit.success_count >= self.success_threshold:
                    circuit.state = CLOSED
                    circuit.failure_count = 0
                    circuit.success_count = 0
                    logger.info(f"Circuit closed for service={service}")
            else:
                circuit.failure_count = 0

    def record_failure(self, service: str) -> None:
        with self._lock:
            circuit = self._circuit(service)
            now = self._clock()
            circuit.touched_at = now
            circuit.last_failure_at = now
            circuit.probe_in_flight = False
            circuit.failure_count += 1
            if circuit.state == HALF_OPEN:
                circuit.state = OPEN
                circuit.success_count = 0
                logger.warning(f"Circuit re-opened for service={service}")
            elif (
                circuit.state == CLOSED
                and circuit.failure_count >= self.failure_threshold
            ):
                circuit.state = OPEN
                logger.error(
                    f"Circuit opened for service={service} after "
                    f"{circuit.failure_count} consecutive failures"
                )

    def get_status(self, service: str) -> Dict[str, Any]:
        with self._lock:
            circuit = self._circuit(service)
            return {
                "state": circuit.state,
                "failure_count": circuit.failure_count,
                "success_count": circuit.success_count,
                "threshold": self.failure_threshold,
                "timeout": self.timeout,
            }

    def reset(self, service: str) -> None:
        with self._lock:
            self._circuits.pop(service, None)
        logger.info(f"Circuit reset for service={service}")

    def purge_expired(self) -> int:
        """Drop circuits not touched within ``state_ttl``. Returns the count."""
        with self._lock:
            now = self._clock()
            stale = [
                name
                for name, circuit in self._circuits.items()
                if now - circuit.touched_at > self.state_ttl
            ]
            for name in stale:
                del self._circuits[name]
            return len(stale)

    # ------------------------------------------------------------------
    async def call(
        self,
        service: str,
        func: Callable[..., Awaitable[T]],
        *args: Any,
        **kwargs: Any,
    ) -> T:
        """Await ``func`` if the circuit allows it and record the outcome.

        Only transient failures count against the service. Other errors only
        release the half-open probe slot.
        """
        if not self.is_request_allowed(service):
            raise CircuitOpenError(service)
        try:
            result = await func(*args, **kwargs)
        except Exception as exc:
            if is_transient_error(exc):
                self.record_failure(service)
            else:
                self._release_probe(service)
            raise
        self.record_success(service)
        return result

    def _release_probe(self, service: str) -> None:
        with self._lock:
            circuit = self._circuits.get(service)
            if circuit is not None:
                circuit.probe_in_flight = False


class BreakerGuardedProvider:
    """Completion provider gated by a circuit breaker service entry."""

    def __init__(self, provider: Any, breaker: CircuitBreaker, service: str) -> None:
        self.provider = provider
        self.breaker = breaker
        self.service = service

    async def complete(
        self,
        prompt: str,
        *,
        system_prompt: Optional[str] = None,
        session_id: Optional[str] = None,
    ) -> str:
        return await self.breaker.call(
            self.service,
            self.provider.complete,
            prompt,
            system_prompt=system_prompt,
            session_id=session_id,
        )
