"""
Per-route request quotas keyed by client address (slowapi, in-memory storage).

Routes opt in with ``@rate(window_minutes, max_requests)`` placed under the
router decorator; the endpoint must take a ``request: Request`` parameter.
"""
from slowapi import Limiter
from slowapi.util import get_remote_address

import config

limiter = Limiter(key_func=get_remote_address, enabled=config.RATE_LIMIT_ENABLED)


def rate(window_minutes: int, max_requests: int):
    return limiter.limit(
        f"{max_requests} per {window_minutes} minutes",
        error_message=f"Max request exceeded. Please try again after {window_minutes} minutes",
    )
