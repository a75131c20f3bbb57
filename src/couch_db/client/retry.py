"""Shared retry configuration and utilities.

Retries happen inside the transports, and only for failures to reach the
server.  Error statuses from a server which answered are never retried:
the dispatcher decides what to do with them (fail over to the next
connection, or report).
"""

import logging
from typing import Callable

import httpx
from tenacity import (
    before_sleep_log,
    retry,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
    wait_random,
)

from .exceptions import CouchTransportError

logger = logging.getLogger("couch-db")


# Shared retry configuration - used by all transports
RETRY_WAIT = wait_exponential(multiplier=0.5, max=5) + wait_random(0, 1)


def is_retryable_transport_error(exception: BaseException) -> bool:
    """Check if the exception is a failure to reach the server.

    Args:
        exception: The exception to check

    Returns:
        True for raw httpx connect/timeout errors and wrapped transport errors
    """
    if isinstance(exception, (httpx.ConnectError, httpx.TimeoutException)):
        return True
    return isinstance(exception, CouchTransportError)


def get_retry_decorator(
    max_attempts: int,
    is_retryable: Callable[[BaseException], bool] = is_retryable_transport_error,
):
    """Create a retry decorator with the shared config.

    Args:
        max_attempts: Total number of attempts, including the first one.
        is_retryable: Function that takes an exception and returns True
            if the operation should be retried.

    Returns:
        A tenacity retry decorator configured with standard settings.
        Works for plain functions as well as coroutines.
    """
    return retry(
        stop=stop_after_attempt(max_attempts),
        wait=RETRY_WAIT,
        retry=retry_if_exception(is_retryable),
        before_sleep=before_sleep_log(logger, logging.WARNING),
        reraise=True,
    )
