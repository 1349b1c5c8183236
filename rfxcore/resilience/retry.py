#!/usr/bin/env python3
# CUI // SP-PROPIN
# Controlled by: RFX Proposal Engine
# CUI Category: PROPIN (Proprietary Business Information)
# Distribution: D
# POC: RFX Proposal Engine Administrator
"""Retry, backoff and timeout wrappers for calls to external services.

Every call that leaves the process (today: the generative extraction
service) goes through this module. Two independent wrappers compose:

    with_timeout()  races one attempt against a deadline
    retry_call()    retries transient failures with exponential backoff

    policy = RetryPolicy(max_retries=2, base_delay=2.0, timeout_seconds=30)
    result = await policy.run(lambda: provider.ainvoke(...), label="extraction")

Failures are classified as TRANSIENT (rate limit / quota, overload,
timeout / abort) or FATAL (everything else). Fatal errors surface on the
first occurrence; transient ones surface as RetriesExhaustedError once the
budget is spent. There is no fallback substitution after exhaustion.
"""

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, List, Optional

import openai

from rfxcore.errors import (
    ConfigError,
    ExtractionError,
    OperationTimeoutError,
    PricingError,
    RetriesExhaustedError,
)

logger = logging.getLogger(__name__)


class _NoFallback:
    def __repr__(self):
        return "NO_FALLBACK"


NO_FALLBACK: Any = _NoFallback()

TRANSIENT_STATUS_CODES = frozenset({408, 429, 500, 502, 503, 504})

# Substrings seen in provider error messages for quota, overload and aborts.
TRANSIENT_MARKERS = (
    "429", "quota", "resource_exhausted", "rate limit", "rate_limit",
    "503", "overloaded", "timeout", "timed out", "aborted",
)

_TRANSIENT_TYPES = (
    OperationTimeoutError,
    asyncio.TimeoutError,
    TimeoutError,
    openai.RateLimitError,
    openai.APITimeoutError,
    openai.APIConnectionError,
    openai.InternalServerError,
)

_FATAL_TYPES = (ExtractionError, PricingError, ConfigError, RetriesExhaustedError)


class ErrorClass(Enum):
    """Retry classification of a failure."""
    TRANSIENT = "transient"
    FATAL = "fatal"


def classify_error(exc: BaseException) -> ErrorClass:
    """Decide whether a failure is worth retrying."""
    if isinstance(exc, _FATAL_TYPES):
        return ErrorClass.FATAL
    if isinstance(exc, _TRANSIENT_TYPES):
        return ErrorClass.TRANSIENT
    status = getattr(exc, "status_code", None)
    if isinstance(status, int) and status in TRANSIENT_STATUS_CODES:
        return ErrorClass.TRANSIENT
    text = (str(exc) or type(exc).__name__).lower()
    if any(marker in text for marker in TRANSIENT_MARKERS):
        return ErrorClass.TRANSIENT
    return ErrorClass.FATAL


def backoff_schedule(max_retries: int, base_delay: float) -> List[float]:
    """Delays slept before each retry: base_delay * 2**attempt."""
    return [base_delay * (2 ** attempt) for attempt in range(max_retries)]


async def retry_call(
    operation: Callable[[], Awaitable[Any]],
    max_retries: int = 3,
    base_delay: float = 4.0,
    *,
    sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    on_retry: Optional[Callable[[int, float, BaseException], None]] = None,
    label: str = "operation",
) -> Any:
    """Await operation(), retrying transient failures with exponential backoff.

    Args:
        operation: Zero-argument callable returning a fresh awaitable per attempt.
        max_retries: Retries after the first attempt (0 = single attempt).
        base_delay: Seconds slept before the first retry; doubles each retry.
        sleep: Awaitable sleep function (injectable for tests).
        on_retry: Called as on_retry(attempt, delay, exc) before each sleep.
        label: Operation name used in logs and errors.

    Raises:
        The original exception for fatal failures, or RetriesExhaustedError
        (chained from the last failure) once retries are used up.
    """
    if max_retries < 0:
        raise ValueError(f"max_retries must be >= 0, got {max_retries}")
    if base_delay < 0:
        raise ValueError(f"base_delay must be >= 0, got {base_delay}")

    attempts_remaining = max_retries
    delay = base_delay
    attempt = 0
    while True:
        attempt += 1
        try:
            return await operation()
        except Exception as exc:
            if classify_error(exc) is ErrorClass.FATAL:
                logger.error("%s failed with fatal error on attempt %d: %s",
                             label, attempt, exc)
                raise
            if attempts_remaining <= 0:
                logger.error("%s: retries exhausted after %d attempts: %s",
                             label, attempt, exc)
                raise RetriesExhaustedError(label, attempt, exc) from exc

            logger.warning(
                "%s: transient failure (%s). Retrying in %.1fs (%d retries left)",
                label, exc, delay, attempts_remaining,
            )
            if on_retry is not None:
                on_retry(attempt, delay, exc)
            await sleep(delay)
            attempts_remaining -= 1
            delay *= 2


async def with_timeout(
    awaitable: Awaitable[Any],
    seconds: Optional[float],
    fallback: Any = NO_FALLBACK,
    *,
    label: str = "operation",
) -> Any:
    """Race an awaitable against a deadline.

    On expiry the awaitable is cancelled; the call then resolves to
    `fallback` when one was supplied (None is a valid fallback) or raises
    OperationTimeoutError. seconds=None waits indefinitely.
    """
    try:
        return await asyncio.wait_for(awaitable, timeout=seconds)
    except asyncio.TimeoutError:
        if fallback is not NO_FALLBACK:
            logger.warning("%s timed out after %ss, using fallback", label, seconds)
            return fallback
        raise OperationTimeoutError(label, seconds) from None


def timed(
    operation: Callable[[], Awaitable[Any]],
    seconds: Optional[float],
    fallback: Any = NO_FALLBACK,
    *,
    label: str = "operation",
) -> Callable[[], Awaitable[Any]]:
    """Wrap an operation factory so every attempt gets its own deadline."""

    async def _attempt():
        return await with_timeout(operation(), seconds, fallback, label=label)

    return _attempt


@dataclass(frozen=True)
class RetryPolicy:
    """Retry budget for one kind of external call."""
    max_retries: int = 2
    base_delay: float = 2.0
    timeout_seconds: Optional[float] = 30.0
    total_budget_seconds: Optional[float] = 90.0

    def __post_init__(self):
        if self.max_retries < 0:
            raise ValueError(f"max_retries must be >= 0, got {self.max_retries}")
        if self.base_delay < 0:
            raise ValueError(f"base_delay must be >= 0, got {self.base_delay}")
        for name in ("timeout_seconds", "total_budget_seconds"):
            value = getattr(self, name)
            if value is not None and value <= 0:
                raise ValueError(f"{name} must be positive, got {value}")

    def schedule(self) -> List[float]:
        return backoff_schedule(self.max_retries, self.base_delay)

    async def run(
        self,
        operation: Callable[[], Awaitable[Any]],
        *,
        label: str = "operation",
        on_retry: Optional[Callable[[int, float, BaseException], None]] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> Any:
        """Run operation with a per-attempt deadline inside the retry loop."""
        attempt_op = operation
        if self.timeout_seconds is not None:
            attempt_op = timed(operation, self.timeout_seconds, label=label)
        loop = retry_call(
            attempt_op, self.max_retries, self.base_delay,
            sleep=sleep, on_retry=on_retry, label=label,
        )
        if self.total_budget_seconds is None:
            return await loop
        return await with_timeout(
            loop, self.total_budget_seconds, label=f"{label} (total budget)",
        )
