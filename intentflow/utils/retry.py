from __future__ import annotations

import asyncio
import random
import re
from typing import Awaitable, Callable, Optional

from ..constants import DEFAULT_BACKOFF_BASE, DEFAULT_BACKOFF_CAP
from ..exceptions import (
    CircuitOpenError,
    EmptyResponseError,
    ToolNotFoundError,
    UnresolvedReferenceError,
)

TRANSIENT_MARKERS = (
    "rate limit",
    "too many requests",
    "timeout",
    "timed out",
    "429",
    "500",
    "502",
    "503",
    "504",
    "temporarily unavailable",
    "overloaded",
    "no content returned",
    "response does not contain",
    "connection reset",
    "connection refused",
    "connection error",
)

FATAL_MARKERS = (
    "401",
    "403",
    "unauthorized",
    "forbidden",
    "invalid api key",
    "insufficient_quota",
)

RATE_LIMIT_MARKERS = (
    "429",
    "rate limit",
    "quota exceeded",
    "too many requests",
    "resource exhausted",
)


def _marker_pattern(markers: tuple) -> re.Pattern:
    # whole words only: "1500 EUR" is not a 500
    return re.compile(r"\b(?:" + "|".join(re.escape(m) for m in markers) + r")\b")


TRANSIENT_PATTERN = _marker_pattern(TRANSIENT_MARKERS)
FATAL_PATTERN = _marker_pattern(FATAL_MARKERS)
RATE_LIMIT_PATTERN = _marker_pattern(RATE_LIMIT_MARKERS)

NEVER_TRANSIENT = (UnresolvedReferenceError, CircuitOpenError, ToolNotFoundError)
TRANSIENT_TYPES = (TimeoutError, asyncio.TimeoutError, ConnectionError, EmptyResponseError)


def _status_code(exc: BaseException) -> Optional[int]:
    code = getattr(exc, "status_code", None)
    return code if isinstance(code, int) else None


def is_transient_error(exc: BaseException) -> bool:
    """Return ``True`` if ``exc`` is likely to succeed on retry."""
    if isinstance(exc, NEVER_TRANSIENT):
        return False
    message = str(exc).lower()
    code = _status_code(exc)
    if code in (401, 403) or FATAL_PATTERN.search(message):
        return False
    if isinstance(exc, TRANSIENT_TYPES):
        return True
    if code is not None and (code in (408, 429) or 500 <= code < 600):
        return True
    return TRANSIENT_PATTERN.search(message) is not None


def is_rate_limit_error(exc: BaseException) -> bool:
    """Return ``True`` if ``exc`` signals a rate or quota limit on the provider."""
    if isinstance(exc, CircuitOpenError):
        return True
    if _status_code(exc) == 429:
        return True
    message = str(exc).lower()
    return RATE_LIMIT_PATTERN.search(message) is not None


def compute_backoff(
    attempt: int,
    base: float = DEFAULT_BACKOFF_BASE,
    cap: float = DEFAULT_BACKOFF_CAP,
    rng: Optional[random.Random] = None,
) -> float:
    """Compute capped exponential backoff with full jitter."""
    ceiling = min(base * 2 ** max(attempt - 1, 0), cap)
    return (rng or random).uniform(0, ceiling)


async def schedule_retry(
    attempt: int,
    base: float = DEFAULT_BACKOFF_BASE,
    cap: float = DEFAULT_BACKOFF_CAP,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> float:
    """Sleep for computed backoff delay before retrying."""
    delay = compute_backoff(attempt, base=base, cap=cap)
    await sleep(delay)
    return delay
