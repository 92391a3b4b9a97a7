# pawcart/utils/retry.py
import httpx
import requests
from tenacity import (
    AsyncRetrying,
    retry,
    stop_after_attempt,
    wait_exponential,
    wait_fixed,
    retry_if_exception_type,
)


class UpstreamUnavailable(Exception):
    """Upstream answered 5xx or not at all; worth another try."""


def http_retry():
    #sync variant, used from celery tasks
    return retry(
        reraise=True,
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=0.3, min=0.3, max=3),
        retry=retry_if_exception_type(requests.RequestException),
    )


def async_http_retrying(attempts: int = 3, multiplier: float = 0.3) -> AsyncRetrying:
    return AsyncRetrying(
        reraise=True,
        stop=stop_after_attempt(attempts),
        wait=wait_exponential(multiplier=multiplier, min=multiplier, max=3),
        retry=retry_if_exception_type((httpx.TransportError, UpstreamUnavailable)),
    )


def bounded_retrying(attempts: int, delay: float, exc_types) -> AsyncRetrying:
    """Fixed attempt count, fixed delay between attempts."""
    return AsyncRetrying(
        reraise=True,
        stop=stop_after_attempt(attempts),
        wait=wait_fixed(delay),
        retry=retry_if_exception_type(exc_types),
    )


def conflict_retry(exc_type, attempts: int = 3):
    #optimistic-lock losers re-read and try again straight away
    return retry(
        reraise=True,
        stop=stop_after_attempt(attempts),
        retry=retry_if_exception_type(exc_type),
    )
