from .breaker import CLOSED, HALF_OPEN, OPEN, BreakerGuardedProvider, CircuitBreaker
from .fallback import FallbackAgentSelector

__all__ = [
    "CLOSED",
    "HALF_OPEN",
    "OPEN",
    "BreakerGuardedProvider",
    "CircuitBreaker",
    "FallbackAgentSelector",
]
