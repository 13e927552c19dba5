"""Async retry with exponential backoff for ledger submissions."""

import asyncio
import logging
from typing import Awaitable, Callable, TypeVar

from dlmm_bot.services.errors import (
    InsufficientBalanceError,
    InvalidAmountError,
    PositionNotFoundError,
    TransactionSimulationError,
)
from dlmm_bot.utils.constants import (
    RETRY_BACKOFF_MULTIPLIER,
    RETRY_BASE_DELAY_SECONDS,
    RETRY_MAX_ATTEMPTS,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Retrying these can only repeat the same outcome
NON_RETRYABLE = (
    TransactionSimulationError,
    PositionNotFoundError,
    InsufficientBalanceError,
    InvalidAmountError,
)


async def with_retry(
    operation: Callable[[], Awaitable[T]],
    label: str,
    max_attempts: int = RETRY_MAX_ATTEMPTS,
    base_delay: float = RETRY_BASE_DELAY_SECONDS,
    backoff: float = RETRY_BACKOFF_MULTIPLIER,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> T:
    """Run `operation` up to `max_attempts` times.

    The delay before attempt n (n >= 2) is base_delay * backoff ** (n - 2).
    The last error is re-raised once attempts are exhausted.
    """
    if max_attempts < 1:
        raise ValueError("max_attempts must be >= 1")
    delay = base_delay
    for attempt in range(1, max_attempts + 1):
        try:
            return await operation()
        except NON_RETRYABLE:
            raise
        except Exception as e:
            if attempt >= max_attempts:
                logger.error(f"{label} failed after {attempt} attempts: {e}")
                raise
            logger.warning(
                f"{label} attempt {attempt}/{max_attempts} failed: {e}; retrying in {delay:.1f}s"
            )
            await sleep(delay)
            delay *= backoff
    raise AssertionError("retry loop exited without result")
