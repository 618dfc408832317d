"""
Retry helper built on the backoff library.

Transport errors flagged as retryable are retried with exponential backoff;
anything else (auth failures, 4xx rejections, cancellation) propagates on
the first attempt. Delays between attempts are waited out on the
cancellation token, so an abort interrupts them.
"""

import logging
from typing import Callable, Optional, TypeVar

import backoff

from .cancellation import CancellationToken
from .exceptions import TransportError
from .models import RetryPolicy

logger = logging.getLogger(__name__)

T = TypeVar("T")


def cancellable_expo(cancel_token: CancellationToken, policy: RetryPolicy, description: str):
    """Wait generator for backoff.on_exception.

    Produces the backoff.expo delays for policy, but waits each one out on
    cancel_token and hands backoff zero, since backoff itself sleeps with
    time.sleep. Raises UploadCancelledError if cancelled mid-wait.
    """
    delays = backoff.expo(base=2, factor=policy.initial_delay, max_value=policy.max_delay)
    next(delays)

    error = yield
    tries = 1
    while True:
        delay = next(delays)
        logger.warning(f"{description} failed (attempt {tries}), retrying in {delay:.1f}s: {error}")
        cancel_token.wait(delay)
        tries += 1
        error = yield 0


def call_with_retry(
    func: Callable[[], T],
    policy: RetryPolicy,
    description: str,
    cancel_token: Optional[CancellationToken] = None,
    max_attempts: Optional[int] = None,
) -> T:
    """Call func, retrying retryable TransportErrors per policy"""
    token = cancel_token or CancellationToken()

    def _giveup(exc: TransportError) -> bool:
        if token.cancelled:
            return True
        return not exc.retryable

    def _on_giveup(details):
        logger.error(f"{description} gave up after {details['tries']} attempt(s): {details['exception']}")

    @backoff.on_exception(
        cancellable_expo,
        TransportError,
        max_tries=max_attempts or policy.max_attempts,
        giveup=_giveup,
        on_giveup=_on_giveup,
        jitter=None,
        logger=None,
        cancel_token=token,
        policy=policy,
        description=description
    )
    def _attempt():
        token.raise_if_cancelled()
        return func()

    return _attempt()
