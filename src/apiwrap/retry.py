"""Retry decisions and backoff for failed requests.

The pieces here are plain functions over explicit arguments:

* :func:`should_retry` decides whether another attempt is allowed.
* :func:`retry_delay` computes how long to wait before it, honouring a
  ``Retry-After`` header when the server sends one.
* :class:`RetryController` runs the attempt loop and reports how many
  retries were made.
"""

from __future__ import annotations

import logging
import math
import threading
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from typing import Callable, Optional, Tuple

import httpx

from .errors import RetryCancelled

logger = logging.getLogger(__name__)

RETRIES_EXTENSION = "retries"

# Failures that happen before any response arrives.
RETRYABLE_ERRORS: tuple[type[Exception], ...] = (
    httpx.TimeoutException,
    httpx.NetworkError,
)


@dataclass
class RetryPolicy:
    enabled: bool = False
    max_retries: int = 5
    base_delay_ms: int = 1000
    max_delay_ms: int = 60_000
    # ceiling for server-supplied Retry-After delays
    max_retry_after_ms: int = 3_600_000


def should_retry(
    retries: int,
    max_retries: int,
    response: Optional[httpx.Response] = None,
    error: Optional[BaseException] = None,
) -> bool:
    """Return True when another attempt should follow this failed one.

    ``retries`` counts the retries already performed for this request.
    A transport error wins over a response when both are given.
    """
    if retries >= max_retries:
        return False
    if error is not None and not isinstance(error, httpx.HTTPStatusError):
        return isinstance(error, RETRYABLE_ERRORS)
    if response is None and isinstance(error, httpx.HTTPStatusError):
        response = error.response
    if response is not None:
        return response.status_code >= 500 or response.status_code == 429
    return False


def parse_retry_after(value: Optional[str], now: Optional[datetime] = None) -> Optional[float]:
    """Seconds to wait according to a ``Retry-After`` value, or None if it cannot be read."""
    if value is None:
        return None
    value = value.strip()
    if not value:
        return None
    try:
        seconds = float(value)
    except ValueError:
        pass
    else:
        if math.isfinite(seconds):
            return max(0.0, seconds)
        return None
    try:
        target = parsedate_to_datetime(value)
    except (TypeError, ValueError, IndexError):
        return None
    if target is None:
        return None
    if target.tzinfo is None:
        target = target.replace(tzinfo=timezone.utc)
    current = now or datetime.now(timezone.utc)
    return max(0.0, (target - current).total_seconds())


def backoff_delay(retries: int, policy: RetryPolicy) -> int:
    """Exponential backoff in milliseconds, doubling per retry up to the policy cap."""
    exponent = max(retries, 0)
    # past this point the doubled value exceeds any sane cap
    if exponent > 32:
        return policy.max_delay_ms
    return min(policy.base_delay_ms * (2**exponent), policy.max_delay_ms)


def retry_delay(
    retries: int,
    response: Optional[httpx.Response] = None,
    policy: Optional[RetryPolicy] = None,
    now: Optional[datetime] = None,
) -> int:
    """Milliseconds to wait before retry number ``retries + 1``.

    A ``Retry-After`` delay is capped at ``policy.max_retry_after_ms``. Does
    not sleep; the caller applies the delay.
    """
    policy = policy or RetryPolicy()
    if response is not None and "Retry-After" in response.headers:
        seconds = parse_retry_after(response.headers["Retry-After"], now=now)
        if seconds is not None:
            return int(min(seconds * 1000, policy.max_retry_after_ms))
    return backoff_delay(retries, policy)


def record_retries(request: httpx.Request, retries: int) -> None:
    request.extensions[RETRIES_EXTENSION] = retries


class RetryController:
    """Runs one request sequence, retrying per :func:`should_retry`.

    ``attempt`` performs a single try: it returns a successful response or
    raises (``httpx.HTTPStatusError`` for error statuses, transport errors as
    httpx raises them). When retries are exhausted or the failure is not
    retryable, the last error is re-raised unchanged.
    """

    def __init__(
        self,
        policy: RetryPolicy,
        sleep: Optional[Callable[[float], None]] = None,
    ) -> None:
        self._policy = policy
        self._sleep = sleep or time.sleep

    def run(
        self,
        attempt: Callable[[], httpx.Response],
        request: httpx.Request,
        cancel: Optional[threading.Event] = None,
    ) -> Tuple[httpx.Response, int]:
        retries = 0
        while True:
            try:
                response = attempt()
            except (httpx.HTTPStatusError, httpx.TransportError) as exc:
                record_retries(request, retries)
                failed_response = exc.response if isinstance(exc, httpx.HTTPStatusError) else None
                if not self._policy.enabled or not should_retry(
                    retries, self._policy.max_retries, response=failed_response, error=exc
                ):
                    raise
                delay_ms = retry_delay(retries, failed_response, self._policy)
                logger.info(
                    "Retrying %s %s (retry %s of %s) in %sms after %s",
                    request.method,
                    request.url.path,
                    retries + 1,
                    self._policy.max_retries,
                    delay_ms,
                    failed_response.status_code if failed_response is not None else type(exc).__name__,
                )
                if failed_response is not None:
                    failed_response.close()
                self._wait(delay_ms, retries, cancel, exc)
                retries += 1
                continue
            record_retries(request, retries)
            response.extensions[RETRIES_EXTENSION] = retries
            return response, retries

    def _wait(
        self,
        delay_ms: int,
        retries: int,
        cancel: Optional[threading.Event],
        last_error: BaseException,
    ) -> None:
        seconds = delay_ms / 1000
        if cancel is None:
            self._sleep(seconds)
            return
        if cancel.is_set() or cancel.wait(seconds):
            raise RetryCancelled(
                f"Retry sequence cancelled after {retries} retries", retries=retries, last_error=last_error
            ) from last_error


__all__ = [
    "RETRIES_EXTENSION",
    "RETRYABLE_ERRORS",
    "RetryController",
    "RetryPolicy",
    "backoff_delay",
    "parse_retry_after",
    "record_retries",
    "retry_delay",
    "should_retry",
]
