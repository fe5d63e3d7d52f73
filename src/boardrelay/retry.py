"""
MIT License
Copyright (c) 2026 arpan404
See LICENSE file for full license text.

Shared retry policy for pipeline stages.
"""

from __future__ import annotations

import asyncio
import logging
import socket
from collections.abc import Awaitable, Callable
from typing import TypeVar

from .cancellation import CancellationToken
from .errors import DeliveryCancelledError, DeliveryError, RetryExhaustedError

T = TypeVar("T")

SleepFn = Callable[[float], Awaitable[None]]

logger = logging.getLogger("boardrelay.retry")

NON_RETRYABLE_PHRASES = (
    "authentication failed",
    "unauthorized",
    "forbidden",
    "not found",
    "validation failed",
    "invalid",
)


def is_retryable(error: BaseException) -> bool:
    """
    Decide whether another attempt may help.

    Delivery errors carry the decision from where they were raised. Foreign
    exceptions are classified by type, then by message text.
    """
    if isinstance(error, DeliveryCancelledError):
        return False
    if isinstance(error, DeliveryError):
        return error.retryable
    if isinstance(error, (asyncio.TimeoutError, TimeoutError, socket.timeout, ConnectionError)):
        return True
    msg = str(error).lower()
    return not any(phrase in msg for phrase in NON_RETRYABLE_PHRASES)


def backoff_delay(attempt: int, base_delay_s: float) -> float:
    return base_delay_s * (2**attempt)


async def call_with_retry(
    operation: Callable[[], Awaitable[T]],
    *,
    max_retries: int,
    base_delay_s: float,
    token: CancellationToken | None = None,
    sleep: SleepFn = asyncio.sleep,
    label: str = "operation",
) -> T:
    """
    Run ``operation`` up to ``max_retries + 1`` times.

    Cancellation is checked before every attempt. Non-retryable failures are
    re-raised immediately. Retryable failures back off ``base * 2**attempt``
    seconds; once attempts run out a ``RetryExhaustedError`` is raised.
    """
    attempts = max(0, max_retries) + 1
    last: BaseException | None = None
    for attempt in range(attempts):
        if token is not None:
            token.raise_if_cancelled()
        try:
            return await operation()
        except asyncio.CancelledError:
            raise
        except Exception as error:
            last = error
            if not is_retryable(error):
                raise
            if attempt + 1 < attempts:
                delay = backoff_delay(attempt, base_delay_s)
                logger.warning(
                    "%s failed (attempt %d/%d), retrying in %.2fs: %s",
                    label,
                    attempt + 1,
                    attempts,
                    delay,
                    error,
                )
                await sleep(delay)
    raise RetryExhaustedError(attempts, last) from last
