"""Bounded exponential backoff for outbound API calls."""

import asyncio
import logging
from typing import Awaitable, Callable, TypeVar

import httpx

logger = logging.getLogger(__name__)

T = TypeVar("T")

TRANSIENT_STATUS_CODES = {408, 425, 429, 500, 502, 503, 504}

DEFAULT_MAX_ATTEMPTS = 3
DEFAULT_INITIAL_DELAY = 1.0
DEFAULT_MAX_DELAY = 30.0
DEFAULT_FACTOR = 2.0


def is_transient_error(exc: Exception) -> tuple[bool, int | None]:
    """Detect whether an error is likely transient (rate limiting, 5xx, network)."""

    if isinstance(exc, httpx.HTTPStatusError):
        status_code = exc.response.status_code if exc.response is not None else None
        return status_code in TRANSIENT_STATUS_CODES, status_code

    if isinstance(exc, httpx.TransportError):
        return True, None

    return False, None


async def with_retry(
    operation: Callable[[], Awaitable[T]],
    operation_name: str,
    *,
    max_attempts: int = DEFAULT_MAX_ATTEMPTS,
    initial_delay: float = DEFAULT_INITIAL_DELAY,
    max_delay: float = DEFAULT_MAX_DELAY,
    factor: float = DEFAULT_FACTOR,
) -> T:
    """
    Run an async operation, retrying transient failures with exponential backoff.

    Args:
        operation: Zero-argument coroutine factory, called once per attempt
        operation_name: Name used in log messages
        max_attempts: Total attempts including the first one
        initial_delay: Seconds to wait after the first failure
        max_delay: Upper bound for a single wait
        factor: Multiplier applied to the delay after every failure

    Returns:
        The operation's result

    Raises:
        The last exception once attempts are exhausted, or immediately for
        non-transient errors
    """
    delay = initial_delay
    attempt = 0
    while True:
        attempt += 1
        try:
            return await operation()
        except Exception as exc:
            transient, status_code = is_transient_error(exc)
            if not transient or attempt >= max_attempts:
                raise
            logger.warning(
                "%s failed (attempt %s/%s, status=%s): %s. Retrying in %.1fs",
                operation_name,
                attempt,
                max_attempts,
                status_code or "transport",
                exc,
                delay,
            )
            await asyncio.sleep(delay)
            delay = min(delay * factor, max_delay)
