"""
Backoff between optimistic-lock attempts.

Exponential with jitter so that competing writers on the same aggregate
do not retry in lockstep.
"""

import asyncio
import random

from venue_ledger.core.config import get_settings


async def backoff(attempt: int) -> None:
    base = get_settings().RETRY_BACKOFF_SECONDS
    if base <= 0:
        return
    await asyncio.sleep(base * (2 ** (attempt - 1)) + random.uniform(0, base))
