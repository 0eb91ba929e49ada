from __future__ import annotations

from collections.abc import Callable, Iterator
from typing import Any

import pytest
from django.core.cache import caches

from greenspace.progress import ProgressChannel
from greenspace.services import AnalysisSessions


@pytest.fixture(autouse=True)
def _clear_cache() -> Iterator[None]:
    # Throttle history lives in the default cache.
    caches["default"].clear()
    yield
    caches["default"].clear()


@pytest.fixture
def channel() -> ProgressChannel:
    return ProgressChannel()


@pytest.fixture
def make_sessions(
    channel: ProgressChannel,
) -> Iterator[Callable[..., AnalysisSessions]]:
    created: list[AnalysisSessions] = []

    def factory(**kwargs: Any) -> AnalysisSessions:
        sessions = AnalysisSessions(channel, **kwargs)
        created.append(sessions)
        return sessions

    yield factory
    for sessions in created:
        sessions.shutdown()
