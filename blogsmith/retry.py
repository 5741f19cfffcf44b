"""
Retry policy with capped backoff and an escalating per-attempt timeout.

Each attempt receives its own timeout, so a slow network gets more room on
later attempts instead of failing the same way every time. The sleep function
is injectable so tests can record delays without waiting.

Usage:
    policy = create_post_policy()
    post = await policy.execute(lambda timeout: client.create_post(payload, timeout=timeout))
"""

from __future__ import annotations

import asyncio
import logging
import random
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, List, Optional

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

logger = logging.getLogger("blogsmith.retry")
logger.setLevel(logging.INFO)

if not logger.handlers:
    _handler = logging.StreamHandler()
    _handler.setFormatter(
        logging.Formatter(
            "%(asctime)s [%(levelname)s] %(name)s: %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )
    )
    logger.addHandler(_handler)

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

BACKOFF_EXPONENTIAL = "exponential"
BACKOFF_LINEAR = "linear"

SleepFunc = Callable[[float], Awaitable[Any]]
AttemptFunc = Callable[[float], Awaitable[Any]]


# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------


class RetryExhaustedError(Exception):
    """Raised when every attempt failed with a retryable error."""

    def __init__(self, name: str, attempts: int, last_error: Optional[BaseException]):
        self.name = name
        self.attempts = attempts
        self.last_error = last_error
        super().__init__(
            f"{name} failed after {attempts} attempt(s): {last_error}"
        )


# ---------------------------------------------------------------------------
# RetryPolicy
# ---------------------------------------------------------------------------


@dataclass
class RetryPolicy:
    """Bounded retries for one async operation.

    The wrapped callable is invoked as ``func(timeout)`` where *timeout* is the
    budget in seconds for that attempt.

    Delay after failed attempt *n* (1-based):
        exponential: ``min(base_delay * exponential_base ** (n - 1), max_delay)``
        linear:      ``min(base_delay * n, max_delay)``

    Timeout for attempt *n*: ``min(base_timeout + (n - 1) * timeout_step, max_timeout)``
    """

    name: str = "operation"
    max_attempts: int = 3
    base_delay: float = 1.0
    max_delay: float = 60.0
    exponential_base: float = 2.0
    backoff: str = BACKOFF_EXPONENTIAL
    base_timeout: float = 30.0
    timeout_step: float = 0.0
    max_timeout: float = 135.0
    jitter: bool = False
    sleep: SleepFunc = asyncio.sleep
    delays: List[float] = field(default_factory=list, repr=False)

    def timeout_for(self, attempt: int) -> float:
        return min(self.base_timeout + (attempt - 1) * self.timeout_step, self.max_timeout)

    def delay_for(self, attempt: int) -> float:
        """Delay to wait after failed attempt *attempt* (1-based)."""
        if self.backoff == BACKOFF_LINEAR:
            delay = self.base_delay * attempt
        else:
            delay = self.base_delay * (self.exponential_base ** (attempt - 1))
        delay = min(delay, self.max_delay)
        if self.jitter:
            delay *= 0.5 + random.random()
        return round(delay, 3)

    async def execute(
        self,
        func: AttemptFunc,
        *,
        is_fatal: Optional[Callable[[BaseException], bool]] = None,
        on_attempt: Optional[Callable[[int, float], None]] = None,
    ) -> Any:
        """
        Run *func* until it succeeds, a fatal error occurs, or attempts run out.

        Parameters
        ----------
        func : callable
            ``async func(timeout) -> result``.
        is_fatal : callable, optional
            Predicate; a matching exception is re-raised immediately.
        on_attempt : callable, optional
            Called with ``(attempt, timeout)`` before each attempt.

        Returns
        -------
        Whatever *func* returns on the first successful attempt.

        Raises
        ------
        RetryExhaustedError
            When all attempts failed with non-fatal errors.
        """
        self.delays = []
        last_error: Optional[BaseException] = None

        for attempt in range(1, self.max_attempts + 1):
            timeout = self.timeout_for(attempt)
            if on_attempt is not None:
                on_attempt(attempt, timeout)
            logger.debug(
                "%s attempt %d/%d (timeout %.0fs)",
                self.name, attempt, self.max_attempts, timeout,
            )
            try:
                result = await func(timeout)
            except Exception as exc:
                last_error = exc
                if is_fatal is not None and is_fatal(exc):
                    logger.warning(
                        "%s attempt %d failed fatally, not retrying: %s",
                        self.name, attempt, exc,
                    )
                    raise
                if attempt >= self.max_attempts:
                    logger.error(
                        "%s attempt %d/%d failed, giving up: %s",
                        self.name, attempt, self.max_attempts, exc,
                    )
                    break
                delay = self.delay_for(attempt)
                self.delays.append(delay)
                logger.warning(
                    "%s attempt %d/%d failed (%s), retrying in %.1fs",
                    self.name, attempt, self.max_attempts, exc, delay,
                )
                await self.sleep(delay)
                continue

            if attempt > 1:
                logger.info(
                    "%s succeeded on attempt %d/%d",
                    self.name, attempt, self.max_attempts,
                )
            return result

        raise RetryExhaustedError(self.name, self.max_attempts, last_error)


# ---------------------------------------------------------------------------
# Presets
# ---------------------------------------------------------------------------


def create_post_policy(sleep: Optional[SleepFunc] = None) -> RetryPolicy:
    """8 attempts, timeouts 30s..135s in 15s steps, delays 3s * 1.5^(n-1) capped at 60s."""
    return RetryPolicy(
        name="create_post",
        max_attempts=8,
        base_delay=3.0,
        max_delay=60.0,
        exponential_base=1.5,
        base_timeout=30.0,
        timeout_step=15.0,
        max_timeout=135.0,
        sleep=sleep or asyncio.sleep,
    )


def auth_probe_policy(sleep: Optional[SleepFunc] = None) -> RetryPolicy:
    """3 attempts at 15s each, linear delay of attempt * 1s."""
    return RetryPolicy(
        name="auth_probe",
        max_attempts=3,
        base_delay=1.0,
        max_delay=10.0,
        backoff=BACKOFF_LINEAR,
        base_timeout=15.0,
        timeout_step=0.0,
        max_timeout=15.0,
        sleep=sleep or asyncio.sleep,
    )
