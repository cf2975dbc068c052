"""Exponential backoff for async integration calls."""
import asyncio
import logging
from typing import Any, Awaitable, Callable, TypeVar

from tenacity import AsyncRetrying, retry_if_exception, stop_after_attempt, wait_exponential

from examforge.integrations.errors import IntegrationError

logger = logging.getLogger(__name__)

T = TypeVar("T")


def _should_retry(exc: BaseException) -> bool:
    if isinstance(exc, IntegrationError):
        return exc.retryable
    return isinstance(exc, Exception)


class RetryManager:
    """Retry async operations with exponential backoff."""

    def __init__(self, sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep):
        self._sleep = sleep

    async def with_retry(
        self,
        operation: Callable[[], Awaitable[T]],
        max_attempts: int = 3,
        initial_delay: float = 1.0,
        backoff_multiplier: float = 2.0,
    ) -> T:
        """Run ``operation`` until it succeeds or ``max_attempts`` is reached.

        Non-retryable ``IntegrationError`` is raised immediately. Only the last
        error is propagated.
        """
        retrying = AsyncRetrying(
            stop=stop_after_attempt(max(1, max_attempts)),
            wait=wait_exponential(multiplier=initial_delay, exp_base=backoff_multiplier),
            retry=retry_if_exception(_should_retry),
            before_sleep=_log_retry,
            sleep=self._sleep,
            reraise=True,
        )
        async for attempt in retrying:
            with attempt:
                result = await operation()
        return result


def _log_retry(retry_state) -> None:
    exc = retry_state.outcome.exception() if retry_state.outcome else None
    logger.warning(
        "Attempt %s failed (%s), retrying in %.2fs",
        retry_state.attempt_number,
        exc,
        retry_state.next_action.sleep if retry_state.next_action else 0,
    )


retry_manager = RetryManager()
