"""
Network Retry Layer — bounded, sequential retries with linear backoff.

Each provider adapter owns one ``RetryPolicy``. Retries block the current
turn (no background queue): attempt N waits ``backoff_base * N`` seconds
before attempt N+1, and the wait is cut short by cancellation.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Optional, Tuple, Type

from .errors import TransportError, UpstreamAPIError
from .stream_cancellation import StreamCancellationToken, StreamCancelledError

logger = logging.getLogger(__name__)


@dataclass
class RetryPolicy:
    """Configuration for retry behaviour."""
    max_attempts: int = 3
    backoff_base: float = 1.0
    retryable_exceptions: Tuple[Type[BaseException], ...] = (TransportError,)
    retry_statuses: Tuple[int, ...] = ()

    def should_retry(self, error: BaseException, attempt: int) -> bool:
        """Decide whether *error* on *attempt* is worth another attempt."""
        if attempt >= self.max_attempts:
            return False
        if isinstance(error, (StreamCancelledError, asyncio.CancelledError)):
            return False
        if isinstance(error, UpstreamAPIError):
            return error.status in self.retry_statuses
        return isinstance(error, self.retryable_exceptions)

    def delay_for(self, attempt: int) -> float:
        return self.backoff_base * attempt


SERVER_ERROR_STATUSES: Tuple[int, ...] = tuple(range(500, 600))


@dataclass
class RetryResult:
    """Outcome of a retry-wrapped execution."""
    success: bool
    result: Any = None
    attempts: int = 0
    total_delay: float = 0.0
    last_error: Optional[Exception] = None
    errors: list = field(default_factory=list)


class RetryExecutor:
    """Execute an async callable with configurable retry logic."""

    def __init__(
        self,
        policy: Optional[RetryPolicy] = None,
        cancel_token: Optional[StreamCancellationToken] = None,
    ):
        self._policy = policy or RetryPolicy()
        self._cancel_token = cancel_token

    @property
    def policy(self) -> RetryPolicy:
        return self._policy

    async def execute(self, fn: Callable, *args: Any, **kwargs: Any) -> RetryResult:
        """
        Call *fn* up to ``max_attempts`` times, backing off between failures.

        Cancellation is re-raised immediately rather than recorded.
        """
        policy = self._policy
        errors: list[Exception] = []
        total_delay = 0.0

        for attempt in range(1, policy.max_attempts + 1):
            try:
                result = await fn(*args, **kwargs)
                return RetryResult(success=True, result=result, attempts=attempt,
                                   total_delay=total_delay, errors=errors)
            except StreamCancelledError:
                raise
            except Exception as exc:
                errors.append(exc)
                if not policy.should_retry(exc, attempt):
                    return RetryResult(success=False, attempts=attempt, total_delay=total_delay,
                                       last_error=exc, errors=errors)

                delay = policy.delay_for(attempt)
                total_delay += delay
                logger.warning(
                    "Retry %d/%d after %.2fs: %s",
                    attempt, policy.max_attempts, delay, exc,
                )
                await self._sleep(delay)

        return RetryResult(success=False, attempts=policy.max_attempts, total_delay=total_delay,
                           last_error=errors[-1] if errors else None, errors=errors)

    async def _sleep(self, delay: float) -> None:
        if self._cancel_token is not None:
            await self._cancel_token.sleep(delay)
        elif delay > 0:
            await asyncio.sleep(delay)


async def retry_async(
    fn: Callable,
    *args: Any,
    policy: Optional[RetryPolicy] = None,
    cancel_token: Optional[StreamCancellationToken] = None,
    **kwargs: Any,
) -> Any:
    """
    One-shot retry wrapper.  Raises the last error on exhaustion.

    Usage::

        text = await retry_async(self._complete_once, system, user, policy=policy)
    """
    executor = RetryExecutor(policy, cancel_token=cancel_token)
    result = await executor.execute(fn, *args, **kwargs)
    if result.success:
        return result.result
    raise result.last_error  # type: ignore[misc]
