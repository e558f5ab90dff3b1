"""Time-boxed retrying of HTTP exchanges."""

from __future__ import annotations

import asyncio
import logging
import time
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from typing import Awaitable, Callable, Optional, TypeVar

from .errors import FatalError, HTTPStatusError

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_BACKOFF_STEP = 0.5


def parse_retry_after(value: Optional[str], now: Optional[datetime] = None) -> Optional[float]:
    """
    Parse a Retry-After header value into a delay in seconds.

    Args:
        value: Header value, either delta-seconds or an HTTP date
        now: Reference time for HTTP dates (defaults to the current UTC time)

    Returns:
        Delay in seconds (never negative), or None when the value is unusable
    """
    if not value:
        return None

    value = value.strip()
    if value.isdigit():
        return float(int(value))

    try:
        when = parsedate_to_datetime(value)
    except (TypeError, ValueError, IndexError):
        return None
    if when is None:
        return None
    if when.tzinfo is None:
        when = when.replace(tzinfo=timezone.utc)

    now = now or datetime.now(timezone.utc)
    return max(0.0, (when - now).total_seconds())


def _retry_delay(exc: Exception, attempt: int, backoff_step: float) -> float:
    if isinstance(exc, HTTPStatusError) and exc.status == 503:
        delay = parse_retry_after(exc.headers.get("Retry-After"))
        if delay is not None:
            return delay
    return attempt * backoff_step


async def retry(
    budget: float,
    op: Callable[[], Awaitable[T]],
    *,
    backoff_step: float = DEFAULT_BACKOFF_STEP,
    clock: Callable[[], float] = time.monotonic,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> T:
    """
    Run ``op`` until it succeeds, fails permanently or ``budget`` runs out.

    Transport errors and 5xx responses are retried, 4xx responses and
    :class:`FatalError` are raised immediately. A 503 carrying Retry-After
    waits as long as the server asks, anything else backs off linearly. No
    wait extends past the budget.

    Args:
        budget: Seconds, measured from the first attempt, to keep retrying
        op: Zero-argument coroutine function performing one attempt
        backoff_step: Linear backoff step in seconds

    Returns:
        The result of the first successful attempt

    Raises:
        The permanent error, or the last error once the budget is exhausted
    """
    started = clock()
    attempt = 0

    while True:
        attempt += 1
        try:
            return await op()
        except FatalError:
            raise
        except HTTPStatusError as exc:
            if exc.permanent:
                raise
            last_error: Exception = exc
        except Exception as exc:
            last_error = exc

        # never sleep past the budget, however long the server asks us to wait
        delay = min(
            _retry_delay(last_error, attempt, backoff_step),
            max(0.0, budget - (clock() - started)),
        )
        logger.debug("Attempt %d failed (%s), retrying in %.2fs", attempt, last_error, delay)
        await sleep(delay)

        if clock() - started >= budget:
            logger.debug("Retry budget of %.2fs exhausted after %d attempts", budget, attempt)
            raise last_error
