"""Single-flight OAuth access token cache."""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass

from ..exceptions import AuthenticationFailure
from ..metrics import greenspace_token_refresh_total

logger = logging.getLogger(__name__)

DEFAULT_REFRESH_RATIO = 0.9


@dataclass(frozen=True)
class AccessToken:
    value: str
    expires_in: float


TokenFetcher = Callable[[], Awaitable[AccessToken]]


class TokenCache:
    """Hold one access token and refresh it before it expires.

    The token is treated as stale once `refresh_ratio` of its reported
    lifetime has elapsed. Concurrent callers share a single in-flight
    refresh, and a failed refresh leaves the cached value untouched.
    """

    def __init__(
        self,
        fetch: TokenFetcher,
        *,
        clock: Callable[[], float] = time.monotonic,
        refresh_ratio: float = DEFAULT_REFRESH_RATIO,
    ) -> None:
        self._fetch = fetch
        self._clock = clock
        self._refresh_ratio = refresh_ratio
        self._value: str | None = None
        self._refresh_at = 0.0
        self._expires_at = 0.0
        self._lock: asyncio.Lock | None = None
        self._lock_loop: asyncio.AbstractEventLoop | None = None

    def _loop_lock(self) -> asyncio.Lock:
        # asyncio.Lock binds to the loop it first waits on
        loop = asyncio.get_running_loop()
        if self._lock is None or self._lock_loop is not loop:
            self._lock = asyncio.Lock()
            self._lock_loop = loop
        return self._lock

    @property
    def cached(self) -> str | None:
        return self._value

    def is_fresh(self) -> bool:
        return self._value is not None and self._clock() < self._refresh_at

    def is_usable(self) -> bool:
        return self._value is not None and self._clock() < self._expires_at

    def invalidate(self) -> None:
        self._value = None
        self._refresh_at = 0.0
        self._expires_at = 0.0

    async def get_or_refresh(self) -> str:
        if self.is_fresh():
            return self._value  # type: ignore[return-value]

        async with self._loop_lock():
            if self.is_fresh():
                return self._value  # type: ignore[return-value]
            try:
                token = await self._fetch()
                if not token.value:
                    raise AuthenticationFailure(
                        "Token response missing access_token"
                    )
            except Exception as exc:
                greenspace_token_refresh_total.labels(outcome="error").inc()
                if self.is_usable():
                    logger.warning(
                        "greenspace.token.refresh_failed using_cached=1 "
                        "err=%s",
                        exc,
                    )
                    return self._value  # type: ignore[return-value]
                if isinstance(exc, AuthenticationFailure):
                    raise
                raise AuthenticationFailure(
                    f"Access token request failed: {exc}"
                ) from exc

            now = self._clock()
            lifetime = max(float(token.expires_in), 0.0)
            self._value = token.value
            self._refresh_at = now + lifetime * self._refresh_ratio
            self._expires_at = now + lifetime
            greenspace_token_refresh_total.labels(outcome="success").inc()
            logger.info(
                "greenspace.token.refreshed expires_in=%s", token.expires_in
            )
            return token.value
