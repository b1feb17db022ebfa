"""Injectable bearer-token cache with a single-flight refresh guard."""

import logging
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass

logger = logging.getLogger(__name__)

DEFAULT_TTL_SECONDS = 60 * 60
DEFAULT_REFRESH_MARGIN_SECONDS = 5 * 60


@dataclass
class CachedToken:
    value: str
    expires_at: float  # monotonic seconds


class TokenCache:
    """Cache a provider auth token and refresh it shortly before expiry.

    ``fetch`` performs the actual login and returns either a token string
    or a ``(token, ttl_seconds)`` tuple when the provider reports a lifetime.
    Concurrent callers that find the cache stale block on one lock, so only
    the first of them logs in and the rest reuse its result.

    Args:
        fetch: Callable that logs in and returns the new token.
        ttl_seconds: Token lifetime to assume when ``fetch`` does not say.
        refresh_margin_seconds: Refresh this long before the token expires.
        clock: Monotonic time source, injectable for tests.
    """

    def __init__(
        self,
        fetch: Callable[[], str | tuple[str, float]],
        ttl_seconds: float = DEFAULT_TTL_SECONDS,
        refresh_margin_seconds: float = DEFAULT_REFRESH_MARGIN_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._fetch = fetch
        self._ttl = ttl_seconds
        self._margin = refresh_margin_seconds
        self._clock = clock
        self._lock = threading.Lock()
        self._token: CachedToken | None = None

    def _is_fresh(self, token: CachedToken | None) -> bool:
        return token is not None and self._clock() < token.expires_at - self._margin

    def get(self) -> str:
        """Return a valid token, logging in at most once per expiry."""
        token = self._token
        if self._is_fresh(token):
            return token.value

        with self._lock:
            # Another thread may have refreshed while we waited
            token = self._token
            if self._is_fresh(token):
                return token.value

            result = self._fetch()
            if isinstance(result, tuple):
                value, ttl = result
            else:
                value, ttl = result, self._ttl
            self._token = CachedToken(value=value, expires_at=self._clock() + ttl)
            logger.debug("Auth token refreshed (ttl=%ss)", ttl)
            return value

    def invalidate(self) -> None:
        """Drop the cached token so the next ``get`` logs in again."""
        with self._lock:
            self._token = None
