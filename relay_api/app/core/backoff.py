"""Connection backoff for the API's broker and database clients."""
import asyncio
from typing import AsyncIterator


async def exponential_backoff(
    initial_delay: float,
    max_delay: float,
    multiplier: float,
    max_attempts: int,
) -> AsyncIterator[float]:
    """Yield the delay before each attempt; sleep between attempts, never after the last one."""
    delay = initial_delay
    attempt = 0
    while attempt < max_attempts:
        attempt += 1
        yield delay
        if attempt == max_attempts:
            return
        delay = min(delay * multiplier, max_delay)
        await asyncio.sleep(delay)
