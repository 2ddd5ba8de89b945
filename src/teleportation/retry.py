"""
Bounded retry with linear backoff for relay calls.

Works on ``RelayResponse`` results rather than exceptions: a call is
retried only while its response is a transient failure (no response,
timeout, 5xx). A 4xx is returned immediately.
"""

import logging
import time
from typing import Callable, Optional

from .relay_client import RelayResponse

logger = logging.getLogger(__name__)


def _is_transient(response: RelayResponse) -> bool:
    return response.retryable


def retry_call(
    fn: Callable[[], RelayResponse],
    retries: int = 2,
    backoff: float = 1.0,
    should_retry: Callable[[RelayResponse], bool] = _is_transient,
    sleep: Callable[[float], None] = time.sleep,
    on_retry: Optional[Callable[[int, RelayResponse], None]] = None,
) -> RelayResponse:
    """Call ``fn`` up to ``retries + 1`` times.

    The wait before retry ``n`` (1-based) is ``backoff * n`` seconds.

    Returns:
        The first successful or non-retryable response, else the last one
    """
    response = fn()
    attempt = 0
    while not response.ok and attempt < retries and should_retry(response):
        attempt += 1
        if on_retry is not None:
            on_retry(attempt, response)
        logger.debug("Retry %d/%d after: %s", attempt, retries, response.error)
        sleep(backoff * attempt)
        response = fn()
    return response
