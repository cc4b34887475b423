"""Bounded retry with exponential backoff for calls to external services."""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import TypeVar

from stepgraph.errors import ExternalServiceFailure, StepGraphError

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_MAX_ATTEMPTS = 3


async def retry_async(
    fn: Callable[[], Awaitable[T]],
    service: str = "llm",
    max_attempts: int = DEFAULT_MAX_ATTEMPTS,
    base_delay: float = 1.0,
    retry_on: tuple[type[BaseException], ...] = (Exception,),
) -> T:
    """
    Await ``fn()`` up to ``max_attempts`` times.

    Backoff: base_delay * 2^(attempt - 1) -> 1s, 2s, 4s... Engine errors
    (StepGraphError) are programmer errors and are never retried.

    Raises:
        ExternalServiceFailure: every attempt failed
    """
    last_error: BaseException | None = None
    for attempt in range(1, max_attempts + 1):
        try:
            return await fn()
        except StepGraphError:
            raise
        except retry_on as e:
            last_error = e
            if attempt == max_attempts:
                break
            delay = base_delay * (2 ** (attempt - 1))
            logger.warning(f"   {service} call failed ({e}); retrying in {delay}s")
            await asyncio.sleep(delay)
            logger.info(f"   ↻ Retrying {service} ({attempt + 1}/{max_attempts})...")

    raise ExternalServiceFailure(service, max_attempts, last_error) from last_error
