from __future__ import annotations

# ruff: noqa: S101
import asyncio

import httpx
import pytest

from greenspace.engines.tokens import AccessToken, TokenCache
from greenspace.exceptions import AuthenticationFailure
from greenspace.metrics import greenspace_token_refresh_total


class FakeClock:
    def __init__(self) -> None:
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now


class ScriptedFetcher:
    """Return the scripted tokens in order; exceptions are raised."""

    def __init__(self, *results: AccessToken | Exception) -> None:
        self.results = list(results)
        self.calls = 0

    async def __call__(self) -> AccessToken:
        self.calls += 1
        await asyncio.sleep(0)
        result = self.results.pop(0)
        if isinstance(result, Exception):
            raise result
        return result


def test_fresh_token_is_reused() -> None:
    fetch = ScriptedFetcher(AccessToken("t1", 100))
    cache = TokenCache(fetch, clock=FakeClock())

    assert asyncio.run(cache.get_or_refresh()) == "t1"
    assert asyncio.run(cache.get_or_refresh()) == "t1"
    assert fetch.calls == 1
    assert cache.cached == "t1"


def test_token_refreshes_after_ninety_percent_of_lifetime() -> None:
    clock = FakeClock()
    fetch = ScriptedFetcher(AccessToken("t1", 100), AccessToken("t2", 100))
    cache = TokenCache(fetch, clock=clock)

    asyncio.run(cache.get_or_refresh())
    clock.now += 89
    assert cache.is_fresh()
    clock.now += 2
    assert not cache.is_fresh()
    assert cache.is_usable()

    assert asyncio.run(cache.get_or_refresh()) == "t2"
    assert fetch.calls == 2


def test_failed_refresh_keeps_usable_cached_token() -> None:
    clock = FakeClock()
    fetch = ScriptedFetcher(
        AccessToken("t1", 100), httpx.ConnectError("offline")
    )
    cache = TokenCache(fetch, clock=clock)
    errors = greenspace_token_refresh_total.labels(outcome="error")
    before = errors._value.get()

    asyncio.run(cache.get_or_refresh())
    clock.now += 95

    assert asyncio.run(cache.get_or_refresh()) == "t1"
    assert cache.cached == "t1"
    assert errors._value.get() == before + 1


def test_failed_refresh_after_expiry_raises() -> None:
    clock = FakeClock()
    fetch = ScriptedFetcher(
        AccessToken("t1", 100), httpx.ConnectError("offline")
    )
    cache = TokenCache(fetch, clock=clock)

    asyncio.run(cache.get_or_refresh())
    clock.now += 150

    with pytest.raises(AuthenticationFailure, match="offline"):
        asyncio.run(cache.get_or_refresh())
    assert cache.cached == "t1"


def test_empty_token_is_an_authentication_failure() -> None:
    fetcher = ScriptedFetcher(AccessToken("", 100))
    cache = TokenCache(fetcher, clock=FakeClock())
    with pytest.raises(AuthenticationFailure, match="access_token"):
        asyncio.run(cache.get_or_refresh())
    assert cache.cached is None


def test_concurrent_callers_share_one_refresh() -> None:
    fetch = ScriptedFetcher(AccessToken("t1", 100))
    cache = TokenCache(fetch, clock=FakeClock())

    async def burst() -> list[str]:
        return list(
            await asyncio.gather(*(cache.get_or_refresh() for _ in range(5)))
        )

    assert asyncio.run(burst()) == ["t1"] * 5
    assert fetch.calls == 1


def test_invalidate_forces_refetch() -> None:
    fetch = ScriptedFetcher(AccessToken("t1", 100), AccessToken("t2", 100))
    cache = TokenCache(fetch, clock=FakeClock())

    asyncio.run(cache.get_or_refresh())
    cache.invalidate()

    assert asyncio.run(cache.get_or_refresh()) == "t2"
