# core/retry.py
"""
Retry with exponential backoff for outbound HTTP integrations

Both delivery adapters go through with_retry(). Client errors (4xx) are
terminal, server errors (5xx) and transport exceptions are retried with
a delay of base_delay * 2 ** attempt before each new attempt.
"""

import logging
import time
from enum import Enum
from typing import Callable, Tuple, Type, TypeVar

import httpx

logger = logging.getLogger(__name__)

T = TypeVar('T')


class Outcome(Enum):
    """Classification of a completed (non-exceptional) attempt"""
    SUCCESS = "success"
    CLIENT_ERROR = "client_error"
    SERVER_ERROR = "server_error"


def classify_response(response: httpx.Response) -> Outcome:
    """Map an HTTP status onto a retry outcome"""
    if 400 <= response.status_code < 500:
        return Outcome.CLIENT_ERROR
    if response.status_code >= 500:
        return Outcome.SERVER_ERROR
    return Outcome.SUCCESS


def backoff_delay(attempt: int, base_delay: float) -> float:
    return base_delay * (2 ** attempt)


def with_retry(operation: Callable[[], T],
               max_attempts: int = 3,
               base_delay: float = 1.0,
               classify: Callable[[T], Outcome] = classify_response,
               retry_on: Tuple[Type[BaseException], ...] = (httpx.TransportError,),
               sleep: Callable[[float], None] = time.sleep,
               description: str = 'operation') -> T:
    """
    Run operation until it succeeds, fails terminally, or attempts run out

    Args:
        operation: Zero-argument callable performing one attempt
        max_attempts: Total attempts including the first
        base_delay: Backoff base in seconds
        classify: Maps a returned value onto an Outcome
        retry_on: Exception types treated as transient
        sleep: Delay function (injectable for tests)
        description: Label used in log messages

    Returns:
        The last returned value. A success or client-error outcome is returned
        immediately; a server-error outcome is returned once attempts run out.

    Raises:
        The last transient exception once attempts run out. Exceptions not
        listed in retry_on propagate immediately.
    """
    max_attempts = max(1, max_attempts)

    for attempt in range(1, max_attempts + 1):
        try:
            result = operation()
        except retry_on as exc:
            if attempt >= max_attempts:
                logger.error(f"{description} failed after {attempt} attempts: {exc}")
                raise
            delay = backoff_delay(attempt, base_delay)
            logger.warning(f"{description} attempt {attempt}/{max_attempts} raised {type(exc).__name__}, "
                           f"retrying in {delay:.1f}s")
        else:
            outcome = classify(result)
            if outcome is not Outcome.SERVER_ERROR:
                return result
            if attempt >= max_attempts:
                logger.error(f"{description} still failing after {attempt} attempts")
                return result
            delay = backoff_delay(attempt, base_delay)
            logger.warning(f"{description} attempt {attempt}/{max_attempts} returned a server error, "
                           f"retrying in {delay:.1f}s")

        sleep(delay)

    # Unreachable: the final attempt always returns or raises
    raise RuntimeError(f"{description} exhausted retries without a result")
