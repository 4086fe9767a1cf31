"""Retry on HTTP 429 with exponential backoff.

Only rate limiting is retried. Transport errors propagate on the first
occurrence and 5xx responses are findings, not failures.
"""

import logging
import threading
import time
from typing import Callable, Optional

import requests
from urllib3.exceptions import MaxRetryError
from urllib3.util.retry import Retry

from qfuzz.errors import JobCancelled, RateLimitExhausted

log = logging.getLogger(__name__)

TOO_MANY_REQUESTS = 429


class RateLimitRetry(Retry):
    """Retry state for one job: ``total`` counts the retries left.

    Backoff before retry *n* (1-based) is ``(2 << n) + 1`` seconds, i.e.
    5, 9, 17, 33, ...
    """

    @classmethod
    def for_retries(cls, retries: int) -> "RateLimitRetry":
        return cls(
            total=retries,
            status_forcelist=[TOO_MANY_REQUESTS],
            allowed_methods=None,
            respect_retry_after_header=False,
            raise_on_status=True,
        )

    @property
    def attempt(self) -> int:
        return len(self.history)

    def get_backoff_time(self) -> float:
        if not self.history:
            return 0.0
        return float((2 << self.attempt) + 1)


def _default_wait(stop_event: Optional[threading.Event]) -> Callable[[float], bool]:
    if stop_event is None:
        def _sleep(seconds: float) -> bool:
            time.sleep(seconds)
            return False
        return _sleep
    return stop_event.wait


def send_with_retry(send: Callable[[], requests.Response], *,
                    url: str,
                    method: str,
                    retries: int,
                    stop_event: Optional[threading.Event] = None,
                    wait: Optional[Callable[[float], bool]] = None) -> requests.Response:
    """Call ``send()`` and repeat it while the server answers 429.

    ``wait(seconds)`` performs the backoff and returns True if the run was
    cancelled meanwhile; by default it waits on *stop_event*.

    Returns the first non-429 response. Raises RateLimitExhausted when the
    retries run out, JobCancelled if interrupted during backoff, and lets
    ``requests.RequestException`` from any attempt propagate.
    """
    if wait is None:
        wait = _default_wait(stop_event)

    response = send()
    retry = RateLimitRetry.for_retries(retries)
    while retry.is_retry(method, response.status_code):
        response.close()
        try:
            retry = retry.increment(method=method, url=url)
        except MaxRetryError:
            raise RateLimitExhausted(url, retries) from None

        delay = retry.get_backoff_time()
        log.debug("429 from %s, retry %d/%d in %.0fs", url, retry.attempt, retries, delay)
        if wait(delay):
            raise JobCancelled(url)
        response = send()
    return response
