"""Bounded exponential-backoff retry around a single capability call."""

import asyncio
import logging
from typing import Awaitable, Callable, TypeVar

from cancellation import CancellationToken
from errors import FatalCallError, PipelineCancelledError

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Errors mentioning any of these are never worth another attempt
EXEMPT_MARKERS = ("quota", "cancelled", "canceled", "aborted")


def is_retry_exempt(error: Exception) -> bool:
    """Return True if the error must be re-raised without retrying."""
    if isinstance(error, (FatalCallError, PipelineCancelledError)):
        return True
    message = str(error).lower()
    return any(marker in message for marker in EXEMPT_MARKERS)


def get_delay_ms(attempt: int, base_delay_ms: int) -> int:
    """Delay before retry number `attempt` (1-based): base * 2^(attempt-1)."""
    return base_delay_ms * (2 ** (attempt - 1))


async def invoke_with_retry(
    fn: Callable[[], Awaitable[T]],
    max_retries: int = 2,
    base_delay_ms: int = 1000,
    operation: str = "call",
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    cancellation: CancellationToken | None = None,
) -> T:
    """
    Await `fn()` up to max_retries + 1 times.

    Retry-exempt errors are re-raised immediately. Once attempts run out the
    last error is re-raised unchanged.

    Args:
        fn: Zero-argument callable returning an awaitable
        max_retries: Retries after the first attempt
        base_delay_ms: Delay before the first retry, doubled for each next one
        operation: Name used in log lines
        sleep: Coroutine used for the cooling-off delay
        cancellation: Checked before every attempt and after every delay
    """
    cancellation = cancellation or CancellationToken()
    attempt = 0
    while True:
        cancellation.raise_if_cancelled(operation)
        try:
            return await fn()
        except Exception as e:
            if is_retry_exempt(e):
                logger.info(f"{operation}: not retrying ({type(e).__name__}: {e})")
                raise
            if attempt >= max_retries:
                logger.error(f"{operation}: giving up after {attempt + 1} attempts: {e}")
                raise
            cancellation.raise_if_cancelled(operation)
            attempt += 1
            delay_ms = get_delay_ms(attempt, base_delay_ms)
            logger.warning(
                f"{operation}: attempt {attempt} failed ({e}), retrying in {delay_ms}ms "
                f"({attempt}/{max_retries})"
            )
            await sleep(delay_ms / 1000)
            cancellation.raise_if_cancelled(operation)
