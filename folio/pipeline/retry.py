"""
Retry policy shared by every translator call.

One place decides how many times to try, how long to back off, and which
failures deserve another attempt. Built on tenacity.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable

from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
    wait_random,
)

from folio.config import Settings, get_settings
from folio.core.errors import RetryableTranslationError

logger = logging.getLogger(__name__)

SleepFn = Callable[[float], Awaitable[Any]]


class RetryPolicy:
    """
    Bounded exponential backoff for classified failures.

    The n-th retry waits base_delay * 2**(n-1) seconds (2s, 4s, 8s... with
    the defaults), capped at max_delay, plus up to `jitter` seconds of
    random noise. Keep jitter below base_delay so delays stay strictly
    increasing.

    Usage:
        policy = RetryPolicy(max_attempts=3, base_delay=2.0)
        async for attempt in policy.retrying():
            with attempt:
                await call_translator()
    """

    def __init__(
        self,
        max_attempts: int = 3,
        base_delay: float = 2.0,
        max_delay: float = 60.0,
        jitter: float = 0.0,
        retry_on: tuple[type[BaseException], ...] = (RetryableTranslationError,),
        sleep: SleepFn = asyncio.sleep,
    ):
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self.max_attempts = max_attempts
        self.base_delay = base_delay
        self.max_delay = max_delay
        self.jitter = jitter
        self.retry_on = retry_on
        self.sleep = sleep

    @classmethod
    def from_settings(
        cls,
        settings: Settings | None = None,
        sleep: SleepFn = asyncio.sleep,
    ) -> RetryPolicy:
        settings = settings or get_settings()
        return cls(
            max_attempts=settings.translation_max_attempts,
            base_delay=settings.translation_retry_base_delay,
            max_delay=settings.translation_retry_max_delay,
            jitter=settings.translation_retry_jitter,
            sleep=sleep,
        )

    def wait_strategy(self):
        wait = wait_exponential(multiplier=self.base_delay, exp_base=2, max=self.max_delay)
        if self.jitter > 0:
            wait = wait + wait_random(0, self.jitter)
        return wait

    def _before_sleep(self, retry_state: RetryCallState) -> None:
        outcome = retry_state.outcome
        error = outcome.exception() if outcome else None
        delay = retry_state.next_action.sleep if retry_state.next_action else 0.0
        logger.warning(
            "Retry %d/%d after %.1fs: %s",
            retry_state.attempt_number,
            self.max_attempts - 1,
            delay,
            error,
        )

    def retrying(self) -> AsyncRetrying:
        """A fresh tenacity controller; the last error is re-raised when attempts run out."""
        return AsyncRetrying(
            stop=stop_after_attempt(self.max_attempts),
            wait=self.wait_strategy(),
            retry=retry_if_exception_type(self.retry_on),
            sleep=self.sleep,
            before_sleep=self._before_sleep,
            reraise=True,
        )
