"""Backoff utilities.

`exponential_backoff` is an async generator for connection setup: it yields the
current delay for the caller to attempt an operation, then sleeps before the
next attempt.

`retry_delay_seconds` computes the redelivery delay for a message that has
already been attempted `prior_attempts` times.
"""
import asyncio
from typing import AsyncIterator

# 2 ** 64 dwarfs any sane ceiling; stop doubling well before float overflow.
_MAX_DOUBLINGS = 64


async def exponential_backoff(
    initial_delay: float,
    max_delay: float,
    multiplier: float,
    max_attempts: int,
) -> AsyncIterator[float]:
    delay = initial_delay
    for attempt in range(1, max_attempts + 1):
        yield delay
        if attempt < max_attempts:
            delay = min(delay * multiplier, max_delay)
            await asyncio.sleep(delay)


def retry_delay_seconds(prior_attempts: int, base_seconds: float, max_seconds: float) -> float:
    """base * 2**prior_attempts, capped at max_seconds. Non-decreasing in prior_attempts."""
    if prior_attempts < 0:
        raise ValueError("prior_attempts must be >= 0")
    if prior_attempts >= _MAX_DOUBLINGS:
        return float(max_seconds)
    return float(min(max_seconds, base_seconds * (2 ** prior_attempts)))
