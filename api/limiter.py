"""
api/limiter.py -- Per-client-IP sliding window rate limiting.

RateLimiter wraps a `limits` MovingWindowRateLimiter over an injected storage
backend (memory:// by default, redis://... in a multi-process deployment).
One instance is built in the app lifespan and stored on app.state.limiter, so
every route shares the same counters and tests get a fresh set per app start.

Client identity comes from slowapi's get_remote_address (the socket peer
address). Behind a reverse proxy, run uvicorn with --proxy-headers so that
address is the real client.

Rules:
  login     only failed attempts count. enforce_login_limit() checks the
            window before the handler runs; the route records a hit after a
            failed login. A successful login never consumes a slot.
  register  every attempt counts.
  api       every request to bus routes, refresh and me counts.

Exceeding a window raises RateLimitError (429) carrying retry_after seconds;
api/main.py turns that into a Retry-After header.
"""

from __future__ import annotations

import logging
import math
import time

from fastapi import Request
from limits import parse
from limits.storage import storage_from_string
from limits.strategies import MovingWindowRateLimiter
from slowapi.util import get_remote_address

from core.errors import RateLimitError

logger = logging.getLogger("bustrack.api")

LOGIN = "login"
REGISTER = "register"
API = "api"

_MESSAGES = {
    LOGIN: "Too many login attempts. Please try again later.",
    REGISTER: "Too many accounts created from this IP. Please try again later.",
    API: "Too many requests. Please try again later.",
}


class RateLimiter:
    """Named sliding-window rules sharing one storage backend.

    Usage:
        limiter = RateLimiter("memory://", {"login": "5 per 15 minutes"})
        limiter.consume("login", "10.0.0.1")   # raises RateLimitError when exhausted
    """

    def __init__(self, storage_uri: str, rules: dict[str, str]) -> None:
        self._storage = storage_from_string(storage_uri)
        self._strategy = MovingWindowRateLimiter(self._storage)
        self._rules = {name: parse(limit) for name, limit in rules.items()}

    def check(self, rule: str, key: str) -> None:
        """Raise RateLimitError if the window for (rule, key) is already full. Records nothing."""
        item = self._rules[rule]
        if not self._strategy.test(item, rule, key):
            self._reject(rule, key)

    def hit(self, rule: str, key: str) -> bool:
        """Record one request. Returns False if the window was already full."""
        return self._strategy.hit(self._rules[rule], rule, key)

    def consume(self, rule: str, key: str) -> None:
        """Record one request, raising RateLimitError if it does not fit in the window."""
        if not self.hit(rule, key):
            self._reject(rule, key)

    def retry_after(self, rule: str, key: str) -> int:
        stats = self._strategy.get_window_stats(self._rules[rule], rule, key)
        return max(1, math.ceil(stats.reset_time - time.time()))

    def reset(self) -> None:
        """Clear every counter (used between tests)."""
        self._storage.reset()

    def _reject(self, rule: str, key: str) -> None:
        retry_after = self.retry_after(rule, key)
        logger.warning("Rate limit %s exceeded for %s (retry in %ds)", rule, key, retry_after)
        raise RateLimitError(_MESSAGES.get(rule, _MESSAGES[API]), retry_after=retry_after)


# ---------------------------------------------------------------------------
# FastAPI dependencies
# ---------------------------------------------------------------------------


def _limiter(request: Request) -> RateLimiter:
    return request.app.state.limiter


def enforce_login_limit(request: Request) -> None:
    _limiter(request).check(LOGIN, get_remote_address(request))


def record_failed_login(request: Request) -> None:
    _limiter(request).hit(LOGIN, get_remote_address(request))


def enforce_register_limit(request: Request) -> None:
    _limiter(request).consume(REGISTER, get_remote_address(request))


def enforce_api_limit(request: Request) -> None:
    _limiter(request).consume(API, get_remote_address(request))
