# erp_persistence/repositories/order_numbers.py
"""
Human-readable order numbers: ``ORD-YYYYMMDD-NNNNN``.

NNNNN is the monotonic clock in nanoseconds modulo 100000, zero-padded.
Uniqueness is checked against persisted orders; a collision waits a few
milliseconds and retries, up to a bounded number of attempts. The bound
caps latency, it does not guarantee success once a day's namespace is full.
"""
from __future__ import annotations
import asyncio
import logging
import time
from datetime import date, datetime
from typing import Awaitable, Callable, Optional

from erp_persistence.errors import OrderNumberExhaustedError
from erp_persistence.settings import settings

logger = logging.getLogger(__name__)

SUFFIX_SPACE = 100_000


def format_order_number(day: date, nanos: int, prefix: Optional[str] = None) -> str:
    return f"{prefix or settings.ORDER_NUMBER_PREFIX}-{day:%Y%m%d}-{nanos % SUFFIX_SPACE:05d}"


async def generate_unique_order_number(
    exists: Callable[[str], Awaitable[bool]],
    *,
    prefix: Optional[str] = None,
    max_attempts: Optional[int] = None,
    retry_delay_ms: Optional[int] = None,
    today: Optional[date] = None,
    clock: Callable[[], int] = time.monotonic_ns,
) -> str:
    """
    Mint an order number that ``exists`` reports as unused.

    Args:
        exists: coroutine returning True when the number is already taken
        prefix / max_attempts / retry_delay_ms: override the ORDER_NUMBER_* settings
        today: date part of the number (defaults to the local date)
        clock: nanosecond source for the suffix

    Raises:
        OrderNumberExhaustedError: every attempt collided
    """
    attempts = max_attempts if max_attempts is not None else settings.ORDER_NUMBER_MAX_ATTEMPTS
    delay = (retry_delay_ms if retry_delay_ms is not None else settings.ORDER_NUMBER_RETRY_DELAY_MS) / 1000
    day = today or datetime.now().date()

    for attempt in range(1, attempts + 1):
        candidate = format_order_number(day, clock(), prefix)
        if not await exists(candidate):
            return candidate
        logger.info(f"Order number collision on {candidate} (attempt {attempt}/{attempts})")
        await asyncio.sleep(delay)

    logger.warning(f"Failed to generate unique order number after {attempts} attempts")
    raise OrderNumberExhaustedError(f"failed to generate unique order number after {attempts} attempts")
