"""
Bounded retry with exponential backoff and jitter.

Only failures flagged retriable are retried. A caller-owned asyncio.Event
acts as the cancellation token: once set, the in-flight attempt or backoff
sleep is abandoned and a cancelled failure is returned.
"""

import asyncio
import random
from dataclasses import dataclass
from typing import Any, Awaitable, Callable

from models.search import ErrorKind, SearchFailure
from utils.logger import get_logger

logger = get_logger(__name__)

DEFAULT_MAX_ATTEMPTS = 3
DEFAULT_BASE_DELAY_S = 0.1

_CANCELLED = object()


@dataclass(frozen=True)
class RetryPolicy:
    max_attempts: int = DEFAULT_MAX_ATTEMPTS
    base_delay: float = DEFAULT_BASE_DELAY_S

    def delay_for(self, attempt: int, rand: Callable[[float, float], float] = random.uniform) -> float:
        """Backoff before attempt + 1: base * 2^(attempt-1) plus up to one base of jitter."""
        return self.base_delay * (2 ** (attempt - 1)) + rand(0, self.base_delay)


def cancelled_failure(**details: Any) -> SearchFailure:
    return SearchFailure(
        kind=ErrorKind.CANCELLED,
        message="Search was cancelled",
        retriable=False,
        details=details,
    )


async def _race(awaitable: Awaitable[Any], cancel_event: asyncio.Event | None) -> Any:
    """
    Await `awaitable` unless `cancel_event` fires first.

    Returns the awaitable's result, or _CANCELLED when the event won. The
    losing side is cancelled and awaited before returning.
    """
    if cancel_event is None:
        return await awaitable

    work = asyncio.ensure_future(awaitable)
    waiter = asyncio.ensure_future(cancel_event.wait())
    try:
        done, _ = await asyncio.wait({work, waiter}, return_when=asyncio.FIRST_COMPLETED)
    finally:
        for task in (work, waiter):
            if not task.done():
                task.cancel()

    if work in done:
        return work.result()

    await asyncio.gather(work, return_exceptions=True)
    return _CANCELLED


async def with_retry(
    attempt_fn: Callable[[], Awaitable[Any]],
    max_attempts: int = DEFAULT_MAX_ATTEMPTS,
    base_delay: float = DEFAULT_BASE_DELAY_S,
    cancel_event: asyncio.Event | None = None,
    *,
    sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    rand: Callable[[float, float], float] = random.uniform,
    label: str = "",
):
    """
    Run `attempt_fn` until it succeeds, fails permanently or runs out of attempts.

    Args:
        attempt_fn: Zero-argument coroutine factory returning an outcome with
            `is_success` (and `retriable` on failures)
        max_attempts: Total attempts including the first, >= 1
        base_delay: Base backoff delay in seconds
        cancel_event: Set by the caller to abandon the operation
        sleep: Injectable sleep coroutine
        rand: Injectable jitter source, called as rand(0, base_delay)
        label: Name used in log lines (usually the source id)

    Returns:
        The first success, the first non-retriable failure, the last failure
        once attempts are exhausted, or a cancelled failure

    Raises:
        ValueError: If max_attempts < 1
        Exception: Whatever attempt_fn raises is propagated untouched
    """
    if max_attempts < 1:
        raise ValueError("max_attempts must be >= 1")

    policy = RetryPolicy(max_attempts=max_attempts, base_delay=base_delay)

    for attempt in range(1, max_attempts + 1):
        if cancel_event is not None and cancel_event.is_set():
            return cancelled_failure(source=label, attempt=attempt)

        outcome = await _race(attempt_fn(), cancel_event)
        if outcome is _CANCELLED:
            logger.info(
                f"Cancelled during attempt {attempt}",
                extra={"extra_fields": {"source": label, "attempt": attempt}},
            )
            return cancelled_failure(source=label, attempt=attempt)

        if outcome.is_success or not outcome.retriable or attempt == max_attempts:
            return outcome

        delay = policy.delay_for(attempt, rand)
        logger.debug(
            f"Retrying after {outcome.kind.value}",
            extra={
                "extra_fields": {
                    "source": label,
                    "attempt": attempt,
                    "max_attempts": max_attempts,
                    "delay_s": round(delay, 3),
                }
            },
        )

        if await _race(sleep(delay), cancel_event) is _CANCELLED:
            logger.info(
                "Cancelled during retry backoff",
                extra={"extra_fields": {"source": label, "attempt": attempt}},
            )
            return cancelled_failure(source=label, attempt=attempt)
