"""Rate-limit classification and exponential backoff.

Only throttling is retried; every other failure is surfaced immediately.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
import random
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, TypeVar

from open_relay.errors import RunCancelled

_logger = logging.getLogger(__name__)

MAX_ATTEMPTS = 5
INITIAL_BACKOFF_MS = 1000
MAX_BACKOFF_MS = 60000
JITTER_RATIO = 0.1

_RATE_LIMIT_PHRASES = ("rate limit", "429", "too many requests")

T = TypeVar("T")

# (attempt, wait_ms, reason) -> awaitable or None
WaitNotifier = Callable[[int, int, str], Any]


def _status_of(obj: Any) -> Any:
    if isinstance(obj, dict):
        return obj.get("status_code", obj.get("status", obj.get("code")))
    for attr in ("status_code", "status", "code"):
        value = getattr(obj, attr, None)
        if value is not None:
            return value
    return None


def _has_429(obj: Any, depth: int = 0) -> bool:
    """Look for a 429 status in the structured fields of *obj*."""
    if obj is None or depth > 3:
        return False
    status = _status_of(obj)
    if status == 429 or (isinstance(status, str) and status.strip() == "429"):
        return True
    if isinstance(obj, dict):
        nested = [obj.get("error"), obj.get("body")]
    else:
        nested = [
            getattr(obj, "response", None),
            getattr(obj, "error", None),
            getattr(obj, "body", None),
        ]
    return any(_has_429(n, depth + 1) for n in nested if n is not obj)


def is_rate_limit_error(err: BaseException) -> bool:
    """True when *err* signals provider throttling."""
    if _has_429(err):
        return True
    message = str(getattr(err, "message", "") or err).lower()
    return any(phrase in message for phrase in _RATE_LIMIT_PHRASES)


def base_delay(attempt: int) -> int:
    """Un-jittered delay in ms for a zero-based *attempt*."""
    return min(INITIAL_BACKOFF_MS * (2 ** attempt), MAX_BACKOFF_MS)


def compute_delay(attempt: int, rng: random.Random | None = None) -> int:
    """Backoff delay in ms with +/-10% uniform jitter."""
    delay = base_delay(attempt)
    jitter = (rng or random).uniform(-JITTER_RATIO, JITTER_RATIO)
    return round(delay * (1 + jitter))


@dataclass(frozen=True)
class BackoffDecision:
    retry: bool
    delay_ms: int = 0
    reason: str = ""


class BackoffController:
    """Decides whether a failed request is retried and runs the retry loop.

    Parameters
    ----------
    max_attempts:
        Total attempts including the first one.
    sleep:
        Awaitable sleep taking seconds; injectable for tests.
    rng:
        Random source for jitter.
    """

    def __init__(
        self,
        max_attempts: int = MAX_ATTEMPTS,
        sleep: Callable[[float], Awaitable[None]] | None = None,
        rng: random.Random | None = None,
    ) -> None:
        self.max_attempts = max_attempts
        self._sleep = sleep or asyncio.sleep
        self._rng = rng

    def decide(self, err: BaseException, attempt: int) -> BackoffDecision:
        """Classify the failure of zero-based *attempt*."""
        if isinstance(err, (RunCancelled, asyncio.CancelledError)):
            return BackoffDecision(retry=False)
        if not is_rate_limit_error(err):
            return BackoffDecision(retry=False)
        if attempt >= self.max_attempts - 1:
            return BackoffDecision(retry=False)
        return BackoffDecision(
            retry=True,
            delay_ms=compute_delay(attempt, self._rng),
            reason=f"Rate limited, retry {attempt + 1}/{self.max_attempts}",
        )

    async def call(
        self,
        fn: Callable[[], Awaitable[T]],
        on_wait: WaitNotifier | None = None,
        is_cancelled: Callable[[], bool] | None = None,
    ) -> T:
        """Await ``fn()`` until it succeeds, fails fatally, or retries run out.

        Raises ``RunCancelled`` if cancellation is observed before an attempt.
        """
        attempt = 0
        while True:
            if is_cancelled is not None and is_cancelled():
                raise RunCancelled()
            try:
                return await fn()
            except Exception as e:
                decision = self.decide(e, attempt)
                if not decision.retry:
                    raise
                _logger.warning(
                    "%s, waiting %dms (%s)", decision.reason, decision.delay_ms, e,
                )
                if on_wait is not None:
                    result = on_wait(attempt + 1, decision.delay_ms, decision.reason)
                    if inspect.isawaitable(result):
                        await result
                await self._sleep(decision.delay_ms / 1000)
                attempt += 1
