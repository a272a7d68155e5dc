"""Retry policy for transient remote failures.

Only steps that are safe to repeat go through here: install sub-steps and
credential queries. Leader initialization and joins never do.
"""
import logging
from typing import Callable, Tuple, Type, TypeVar

from tenacity import (
    Retrying,
    before_sleep_log,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from swarmctl.errors import ExecutionError

logger = logging.getLogger("swarm.retry")

T = TypeVar('T')


class TransientError(Exception):
    """A remote answer that is expected to change shortly (e.g. leader not ready)."""


RETRYABLE: Tuple[Type[BaseException], ...] = (ExecutionError, TransientError)


class RetryPolicy:
    """Bounded exponential backoff."""

    def __init__(self, attempts: int = 3, initial_delay: float = 2.0, max_delay: float = 30.0):
        self.attempts = max(1, attempts)
        self.initial_delay = initial_delay
        self.max_delay = max_delay

    @classmethod
    def from_config(cls, config) -> 'RetryPolicy':
        return cls(
            attempts=config.retry.attempts,
            initial_delay=config.retry.initial_delay,
            max_delay=config.retry.max_delay,
        )

    def call(self, fn: Callable[[], T], retry_on: Tuple[Type[BaseException], ...] = RETRYABLE) -> T:
        """Call ``fn`` until it succeeds or attempts are exhausted.

        The last exception is re-raised unchanged once attempts run out.
        """
        retrying = Retrying(
            stop=stop_after_attempt(self.attempts),
            wait=wait_exponential(multiplier=self.initial_delay, max=self.max_delay),
            retry=retry_if_exception_type(retry_on),
            before_sleep=before_sleep_log(logger, logging.WARNING),
            reraise=True,
        )
        return retrying(fn)


NO_RETRY = RetryPolicy(attempts=1, initial_delay=0, max_delay=0)
