"""
RetryingApplier: bounded exponential backoff around a single write.

The write is retried on any error until the policy's elapsed-time ceiling or
attempt cap is reached. Deciding which errors are permanent belongs to the
write itself; it signals that by raising PermanentError.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional, TypeVar

from tenacity import (
    AsyncRetrying,
    RetryError,
    before_sleep_log,
    retry_if_not_exception_type,
    stop_after_attempt,
    stop_after_delay,
    wait_exponential,
)

from converge.core.errors import ApplyError, PermanentError
from converge.core.settings import Settings

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_INITIAL_INTERVAL = 3.0
DEFAULT_MAX_INTERVAL = 30.0
DEFAULT_MULTIPLIER = 1.5


@dataclass(frozen=True)
class RetryPolicy:
    """
    Backoff policy for the write step.

    Intervals grow as ``initial_interval * multiplier ** n`` up to
    ``max_interval``. ``max_retries`` of 0 means only ``timeout`` bounds the
    retries.
    """

    timeout: float
    max_retries: int = 0
    initial_interval: float = DEFAULT_INITIAL_INTERVAL
    max_interval: float = DEFAULT_MAX_INTERVAL
    multiplier: float = DEFAULT_MULTIPLIER

    @classmethod
    def from_settings(cls, settings: Settings, timeout: float) -> "RetryPolicy":
        return cls(
            timeout=timeout,
            max_retries=settings.APPLY_RETRY_COUNT,
            initial_interval=settings.APPLY_INITIAL_INTERVAL_SECONDS,
            max_interval=settings.APPLY_MAX_INTERVAL_SECONDS,
            multiplier=settings.APPLY_BACKOFF_MULTIPLIER,
        )


class RetryingApplier:
    """Runs a blocking write under a RetryPolicy."""

    def __init__(
        self,
        policy: RetryPolicy,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        self.policy = policy
        self._sleep = sleep

    def _retrying(self) -> AsyncRetrying:
        stop = stop_after_delay(self.policy.timeout)
        if self.policy.max_retries > 0:
            stop = stop | stop_after_attempt(self.policy.max_retries + 1)
        return AsyncRetrying(
            stop=stop,
            wait=wait_exponential(
                multiplier=self.policy.initial_interval,
                exp_base=self.policy.multiplier,
                max=self.policy.max_interval,
            ),
            retry=retry_if_not_exception_type(PermanentError),
            before_sleep=before_sleep_log(logger, logging.WARNING),
            sleep=self._sleep,
        )

    async def apply(self, write: Callable[[], T], description: Optional[str] = None) -> T:
        """
        Call ``write`` (in a worker thread) until it succeeds.

        Raises ApplyError with the last failure once the policy gives up, or
        the wrapped cause of a PermanentError straight away.
        """
        label = description or getattr(write, "__name__", "write")
        logger.info(f"[Apply] Applying {label}...")
        try:
            result = await self._retrying()(asyncio.to_thread, write)
        except PermanentError as e:
            logger.error(f"[Apply] {label} failed permanently: {e.cause}")
            raise e.cause from e
        except RetryError as e:
            attempt = e.last_attempt
            last_error = attempt.exception() or e
            logger.error(f"[Apply] Giving up on {label} after {attempt.attempt_number} attempt(s)")
            raise ApplyError(attempt.attempt_number, last_error) from last_error
        logger.info(f"[Apply] {label} applied.")
        return result
