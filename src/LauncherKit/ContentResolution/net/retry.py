"""Tenacity retry strategies for provider and sync HTTP calls.

Provides:
- Retryability classification for httpx exceptions and status codes
- Retry-After header aware wait strategy
- Tenacity controller builder

Callers raise inside the attempt (``response.raise_for_status()``) so that
the controller can re-raise the original exception once attempts run out.
"""

from __future__ import annotations

import email.utils
import logging
import time
from datetime import datetime
from typing import Callable, Optional

import httpx
import tenacity
from tenacity import RetryCallState, retry_if_exception

from LauncherKit.config.models import RetryPolicy

LOGGER = logging.getLogger(__name__)

RETRY_AFTER_CAP_S = 60.0


def is_retryable(exception: BaseException, cfg: RetryPolicy) -> bool:
    """Determine if a failed attempt should be retried.

    Args:
        exception: Exception raised by the attempt
        cfg: Retry policy

    Returns:
        True for transient transport errors and configured retry statuses
    """
    if isinstance(exception, httpx.HTTPStatusError):
        return exception.response.status_code in cfg.retry_statuses

    if isinstance(exception, (httpx.ConnectError, httpx.ReadError, httpx.WriteError)):
        return True
    if isinstance(exception, (httpx.TimeoutException, httpx.RemoteProtocolError)):
        return True

    return False


def _retry_after_seconds(exception: BaseException) -> Optional[float]:
    if not isinstance(exception, httpx.HTTPStatusError):
        return None
    header = exception.response.headers.get("Retry-After")
    if not header:
        return None
    try:
        return float(int(header))
    except ValueError:
        try:
            dt = email.utils.parsedate_to_datetime(header)
        except (TypeError, ValueError):
            return None
        return max(0.0, (dt - datetime.now(dt.tzinfo)).total_seconds())


class _WaitRetryAfter(tenacity.wait.wait_base):
    """Wait strategy that prefers Retry-After over exponential backoff."""

    def __init__(self, fallback: tenacity.wait.wait_base, cap_s: float) -> None:
        self.fallback = fallback
        self.cap_s = cap_s

    def __call__(self, retry_state: RetryCallState) -> float:
        outcome = retry_state.outcome
        if outcome is not None and outcome.failed:
            retry_after_s = _retry_after_seconds(outcome.exception())
            if retry_after_s is not None and retry_after_s > 0:
                wait_s = min(retry_after_s, self.cap_s)
                LOGGER.debug("Using Retry-After header: %ss (capped at %ss)", wait_s, self.cap_s)
                return wait_s
        return self.fallback(retry_state)


def build_retrying(
    cfg: RetryPolicy,
    *,
    sleep: Callable[[float], None] = time.sleep,
    before_sleep_hook: Optional[Callable[[RetryCallState], None]] = None,
) -> tenacity.Retrying:
    """Build a Tenacity Retrying controller.

    Args:
        cfg: Retry policy
        sleep: Sleep function (tests pass a no-op)
        before_sleep_hook: Optional hook to run before each sleep

    Returns:
        Configured Tenacity Retrying controller
    """
    stop_policy: tenacity.stop.stop_base = tenacity.stop_after_attempt(cfg.max_attempts)
    if cfg.max_delay_s > 0:
        stop_policy = stop_policy | tenacity.stop_after_delay(cfg.max_delay_s)

    fallback_wait = tenacity.wait_random_exponential(multiplier=0.5, max=min(cfg.max_delay_s or 8.0, 8.0))
    wait_strategy = _WaitRetryAfter(fallback=fallback_wait, cap_s=RETRY_AFTER_CAP_S)

    return tenacity.Retrying(
        retry=retry_if_exception(lambda exc: is_retryable(exc, cfg)),
        stop=stop_policy,
        wait=wait_strategy,
        sleep=sleep,
        before_sleep=before_sleep_hook or _default_before_sleep_hook,
        reraise=True,
    )


def _default_before_sleep_hook(retry_state: RetryCallState) -> None:
    """Log before sleeping between attempts."""
    next_action = retry_state.next_action
    if next_action is not None:
        LOGGER.warning(
            "retry attempt=%s wait_ms=%s elapsed_s=%.1f",
            retry_state.attempt_number,
            int(next_action.sleep * 1000),
            retry_state.seconds_since_start or 0.0,
        )
