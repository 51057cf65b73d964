# fencequote/infra/retry.py
import asyncio
import random
from typing import Awaitable, Callable, Optional, TypeVar

from fencequote.core.logging_config import logger

T = TypeVar("T")


def _sleep_with_jitter(base: float, factor: float, attempt: int, cap: float) -> float:
    # exponential backoff with jitter
    delay = min(base * (factor ** attempt), cap)
    jitter = random.uniform(0, delay * 0.25)
    return delay + jitter


async def retry_async(
    fn: Callable[[], Awaitable[T]],
    *,
    attempts: int = 3,
    base: float = 0.2,
    factor: float = 2.0,
    cap: float = 2.0,
    is_retryable: Optional[Callable[[Exception], bool]] = None,
    on_retry: Optional[Callable[[int, Exception, float], None]] = None,
) -> T:
    last_exc: Optional[Exception] = None
    for i in range(max(1, attempts)):
        try:
            return await fn()
        except Exception as e:
            if is_retryable and not is_retryable(e):
                raise
            last_exc = e
            if i == attempts - 1:
                break
            sleep_s = _sleep_with_jitter(base, factor, i, cap)
            if on_retry:
                on_retry(i + 1, e, sleep_s)
            else:
                logger.warning("retry_scheduled", attempt=i + 1, sleep_s=round(sleep_s, 2), error=repr(e))
            await asyncio.sleep(sleep_s)
    assert last_exc is not None
    raise last_exc
