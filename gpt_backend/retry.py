"""
Retry with exponential backoff for outbound calls.

Each retry restarts the whole call; there is no resumption from partial
output. With the default policy the delays are 2s then 4s and the third
failure is terminal.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Callable, Iterable, Iterator, Tuple, Type, TypeVar

from tenacity import (
    RetryError,
    Retrying,
    before_sleep_log,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from gpt_backend.errors import GenerationError

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class RetryPolicy:
    max_attempts: int = 3
    base_delay: float = 2.0
    multiplier: float = 2.0
    retry_on: Tuple[Type[BaseException], ...] = (Exception,)


def _retrying(policy: RetryPolicy, sleep: Callable[[float], None]) -> Retrying:
    return Retrying(
        stop=stop_after_attempt(policy.max_attempts),
        wait=wait_exponential(multiplier=policy.base_delay, exp_base=policy.multiplier),
        retry=retry_if_exception_type(policy.retry_on),
        before_sleep=before_sleep_log(logger, logging.WARNING),
        sleep=sleep,
    )


def _terminal(err: RetryError, policy: RetryPolicy) -> GenerationError:
    last = err.last_attempt.exception()
    logger.error("Giving up after %d attempts: %s", policy.max_attempts, last)
    return GenerationError(f"Failed to process content after {policy.max_attempts} attempts. {last}")


def call_with_retry(
    func: Callable[[], T],
    policy: RetryPolicy = RetryPolicy(),
    sleep: Callable[[float], None] = time.sleep,
) -> T:
    try:
        return _retrying(policy, sleep)(func)
    except RetryError as err:
        raise _terminal(err, policy) from err.last_attempt.exception()


def iterate_with_retry(
    factory: Callable[[], Iterable[T]],
    policy: RetryPolicy = RetryPolicy(),
    sleep: Callable[[float], None] = time.sleep,
) -> Iterator[T]:
    """
    Yield from factory(), restarting it from scratch on failure.

    Items already yielded by a failed attempt stay yielded; consumers should
    treat each item as a full snapshot rather than a delta.
    """
    try:
        for attempt in _retrying(policy, sleep):
            with attempt:
                yield from factory()
    except RetryError as err:
        raise _terminal(err, policy) from err.last_attempt.exception()
