"""Primary/secondary completion provider failover."""

from __future__ import annotations

import logging
import threading
import time
from typing import Any, Callable, Dict, Optional

from ..constants import DEFAULT_COOLDOWN_SECONDS, DEFAULT_MAX_PRIMARY_FAILURES
from ..utils.retry import is_rate_limit_error

logger = logging.getLogger(__name__)


class FallbackAgentSelector:
    """Route completions to a secondary provider while the primary is rate limited.

    Every rate-limited primary call is answered by the secondary. After
    ``max_primary_failures`` consecutive rate-limit errors the primary is
    put in cooldown for ``cooldown_seconds`` and skipped entirely. Once the
    cooldown elapses the next call probes the primary again. Errors that are
    not rate limits propagate unchanged.
    """

    def __init__(
        self,
        primary: Any,
        secondary: Optional[Any] = None,
        max_primary_failures: int = DEFAULT_MAX_PRIMARY_FAILURES,
        cooldown_seconds: float = DEFAULT_COOLDOWN_SECONDS,
        status_reporter: Optional[Any] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.primary = primary
        self.secondary = secondary
        self.max_primary_failures = max_primary_failures
        self.cooldown_seconds = cooldown_seconds
        self._status = status_reporter
        self._clock = clock
        self._lock = threading.Lock()
        self._fail_count = 0
        self._cooldown_until: Optional[float] = None

    def _should_use_primary(self) -> bool:
        with self._lock:
            if self._cooldown_until is None:
                return True
            if self._clock() >= self._cooldown_until:
                logger.info("Primary provider cooldown ended, probing primary again")
                self._cooldown_until = None
                self._fail_count = 0
                return True
            return False

    def _record_primary_success(self) -> None:
        with self._lock:
            self._fail_count = 0

    def _record_rate_limit(self) -> int:
        with self._lock:
            self._fail_count += 1
            if self._fail_count >= self.max_primary_failures:
                self._cooldown_until = self._clock() + self.cooldown_seconds
                logger.warning(
                    f"Primary provider in cooldown for {self.cooldown_seconds}s "
                    f"after {self._fail_count} rate-limit failures"
                )
            return self._fail_count

    async def _note(self, session_id: Optional[str], message: str) -> None:
        if self._status is None or not session_id:
            return
        try:
            await self._status.append(session_id, message)
        except Exception as exc:
            logger.warning(f"Status reporting failed for session_id={session_id}: {exc}")

    async def complete(
        self,
        prompt: str,
        *,
        system_prompt: Optional[str] = None,
        session_id: Optional[str] = None,
    ) -> str:
        if self.secondary is None:
            return await self.primary.complete(
                prompt, system_prompt=system_prompt, session_id=session_id
            )

        if not self._should_use_primary():
            await self._note(session_id, "Using secondary provider (primary in cooldown)")
            return await self.secondary.complete(
                prompt, system_prompt=system_prompt, session_id=session_id
            )

        try:
            result = await self.primary.complete(
                prompt, system_prompt=system_prompt, session_id=session_id
            )
        except Exception as exc:
            if not is_rate_limit_error(exc):
                raise
            fail_count = self._record_rate_limit()
            logger.warning(
                f"Primary provider rate limited (fail_count={fail_count}) "
                f"for session_id={session_id}: {exc}"
            )
            await self._note(
                session_id, "Primary provider rate limited, switching to secondary"
            )
            return await self.secondary.complete(
                prompt, system_prompt=system_prompt, session_id=session_id
            )

        self._record_primary_success()
        return result

    def get_status(self) -> Dict[str, Any]:
        with self._lock:
            using_fallback = (
                self._cooldown_until is not None and self._clock() < self._cooldown_until
            )
            return {
                "using_fallback": using_fallback,
                "primary_fail_count": self._fail_count,
                "cooldown_until": self._cooldown_until,
            }
