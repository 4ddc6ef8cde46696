"""
Retry helpers shared by the oracle, persistence, sandbox and capture calls.
"""
import asyncio
import inspect
import logging
from typing import Any, Awaitable, Callable, Iterator, Optional, Tuple, Type

from ..config import BACKOFF_BASE_SECONDS, BACKOFF_FACTOR, BACKOFF_CAP_SECONDS

logger = logging.getLogger("resilience")


def backoff_delays(base: float = BACKOFF_BASE_SECONDS,
                   factor: float = BACKOFF_FACTOR,
                   cap: float = BACKOFF_CAP_SECONDS) -> Iterator[float]:
    """Yield exponentially growing delays: base, base*factor, ... capped at cap."""
    delay = base
    while True:
        yield min(delay, cap)
        delay *= factor


async def resilient_call(fn: Callable[..., Any],
                         *args,
                         attempts: int = 3,
                         retry_on: Tuple[Type[BaseException], ...] = (Exception,),
                         base_delay: float = BACKOFF_BASE_SECONDS,
                         factor: float = BACKOFF_FACTOR,
                         max_delay: float = BACKOFF_CAP_SECONDS,
                         sleep: Optional[Callable[[float], Awaitable[None]]] = None,
                         label: str = "call",
                         **kwargs) -> Any:
    """
    Call fn with bounded retries and exponential backoff.

    fn may be a coroutine function or a plain callable; plain callables run in
    a worker thread so blocking network calls never stall the event loop.

    Args:
        fn: Function to call
        attempts: Total number of tries (at least 1)
        retry_on: Exception types that trigger another try
        base_delay: First delay between tries
        factor: Multiplier applied to the delay after each failure
        max_delay: Upper bound for a single delay
        sleep: Awaitable sleep used between tries (tests pass a no-op)
        label: Name used in log messages

    Returns:
        Whatever fn returns

    Raises:
        The last exception raised by fn once all attempts are used
    """
    sleep = sleep or asyncio.sleep
    delays = backoff_delays(base_delay, factor, max_delay)
    attempts = max(1, attempts)

    for attempt in range(1, attempts + 1):
        try:
            if inspect.iscoroutinefunction(fn):
                return await fn(*args, **kwargs)
            return await asyncio.to_thread(fn, *args, **kwargs)
        except retry_on as e:
            if attempt == attempts:
                logger.error(f"{label} failed after {attempts} attempt(s): {e}")
                raise
            delay = next(delays)
            logger.warning(f"{label} attempt {attempt}/{attempts} failed: {e}; retrying in {delay:.1f}s")
            await sleep(delay)
