"""Bounded exponential backoff for transient provider failures."""

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, TypeVar

from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

from core.models.errors import ProviderError

T = TypeVar("T")

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RetryPolicy:
    max_attempts: int = 3
    base_delay: float = 1.0
    max_delay: float = 16.0

    def wait(self) -> wait_exponential:
        """base_delay, 2 * base_delay, 4 * base_delay ... capped at max_delay."""
        return wait_exponential(multiplier=self.base_delay, max=self.max_delay)


def is_transient(error: BaseException) -> bool:
    return isinstance(error, ProviderError) and error.transient


def _log_retry(operation: str, policy: RetryPolicy) -> Callable[[RetryCallState], None]:
    def before_sleep(retry_state: RetryCallState) -> None:
        error = retry_state.outcome.exception()
        logger.warning(
            f"{operation} failed with transient error ({error.code or error.message}), "
            f"retrying in {retry_state.next_action.sleep:.1f}s "
            f"(attempt {retry_state.attempt_number}/{policy.max_attempts})"
        )

    return before_sleep


async def retry_transient(
    operation: str,
    func: Callable[[], Awaitable[T]],
    policy: RetryPolicy,
    sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
) -> T:
    """Run ``func`` and retry only ProviderError(transient=True).

    Every other exception propagates on the first occurrence. After the last
    attempt the transient error itself is raised.
    """
    retrying = AsyncRetrying(
        stop=stop_after_attempt(policy.max_attempts),
        wait=policy.wait(),
        retry=retry_if_exception(is_transient),
        before_sleep=_log_retry(operation, policy),
        sleep=sleep,
        reraise=True,
    )
    return await retrying(func)
