from __future__ import annotations

# ruff: noqa: S101
from collections.abc import Callable
from datetime import date

import pytest

from greenspace.analyzer import YearAnalyzer
from greenspace.engines.base import SpectralIndexProvider
from greenspace.engines.types import CityInfo, YearRange
from greenspace.metrics import greenspace_analyses_total
from greenspace.orchestrator import TrendOrchestrator
from greenspace.progress import (
    ANALYSIS_COMPLETED,
    ANALYSIS_ERROR,
    ANALYSIS_STARTED,
    ProgressChannel,
)
from greenspace.services import AnalysisSessions, SessionStatus

from .fakes import (
    FailingProvider,
    GatedProvider,
    StaticProvider,
    square_boundary,
)

CITY = CityInfo(name="Testville", latitude=0.01, longitude=0.01)
YEARS = YearRange(start_year=2022, end_year=2024)


def _factory(
    provider: SpectralIndexProvider,
) -> Callable[[], TrendOrchestrator]:
    def build() -> TrendOrchestrator:
        return TrendOrchestrator(
            YearAnalyzer(provider, cell_budget=12),
            today=lambda: date(2025, 6, 1),
        )

    return build


class FakeClock:
    def __init__(self) -> None:
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now


def test_completed_session_stores_terminal_result(
    make_sessions: Callable[..., AnalysisSessions],
) -> None:
    sessions = make_sessions(
        orchestrator_factory=_factory(StaticProvider([0.6, 0.1]))
    )
    counter = greenspace_analyses_total.labels(
        status="completed", strategy="sentinelhub"
    )
    before = counter._value.get()

    session_id = sessions.start(square_boundary(), CITY, YEARS)
    session = sessions.wait(session_id, timeout=10)

    assert session_id.startswith("analysis_")
    assert session.status is SessionStatus.COMPLETED
    assert session.done
    assert session.terminal_event.type == ANALYSIS_COMPLETED
    result = session.terminal_event.payload["result"]
    assert result["current"]["year"] == 2025
    assert result["current"]["coverage_percentage"] == pytest.approx(50.0)
    assert [y["year"] for y in result["historical_series"]] == [2022, 2024]
    assert result["city"]["name"] == "Testville"
    current = result["current"]
    overlay = current["cell_results"]
    assert len(overlay) == current["total_cells"] - current["failed_cells"]
    assert overlay[0]["vegetation_fraction"] == pytest.approx(0.5)
    assert overlay[0]["west"] < overlay[0]["longitude"] < overlay[0]["east"]
    assert overlay[0]["source"] == "sentinelhub"
    assert all(y["cell_results"] == [] for y in result["historical_series"])
    assert sessions.active_count() == 0
    assert counter._value.get() == before + 1


def test_subscriber_joining_mid_run_gets_one_terminal_event(
    make_sessions: Callable[..., AnalysisSessions],
    channel: ProgressChannel,
) -> None:
    provider = GatedProvider([0.6])
    sessions = make_sessions(orchestrator_factory=_factory(provider))

    session_id = sessions.start(square_boundary(), CITY, YEARS)
    assert provider.entered.wait(timeout=5)
    subscription = channel.subscribe(session_id)
    provider.gate.set()

    events = list(subscription)
    sessions.wait(session_id, timeout=10)

    types = [e.type for e in events]
    assert ANALYSIS_STARTED not in types
    assert "grid-progress" in types
    assert types[-1] == ANALYSIS_COMPLETED
    assert sum(1 for e in events if e.is_terminal) == 1
    assert channel.listener_count(session_id) == 0


def test_fail_closed_upstream_outage_ends_in_error_event(
    make_sessions: Callable[..., AnalysisSessions],
) -> None:
    provider = FailingProvider()
    sessions = make_sessions(orchestrator_factory=_factory(provider))

    session_id = sessions.start(square_boundary(), CITY)
    session = sessions.wait(session_id, timeout=10)

    assert session.status is SessionStatus.FAILED
    assert provider.calls == 1
    payload = session.terminal_event.payload
    assert session.terminal_event.type == ANALYSIS_ERROR
    assert payload["error_type"] == "DataUnavailable"
    assert payload["cancelled"] is False
    assert "upstream unavailable" in payload["error"]


def test_cancel_stops_running_analysis(
    make_sessions: Callable[..., AnalysisSessions],
) -> None:
    provider = GatedProvider([0.6])
    sessions = make_sessions(orchestrator_factory=_factory(provider))

    session_id = sessions.start(square_boundary(), CITY)
    assert provider.entered.wait(timeout=5)
    assert sessions.cancel(session_id) is True
    provider.gate.set()
    session = sessions.wait(session_id, timeout=10)

    assert session.status is SessionStatus.CANCELLED
    assert session.terminal_event.type == ANALYSIS_ERROR
    assert session.terminal_event.payload["cancelled"] is True
    # Only the cell already in flight reached the provider.
    assert len(provider.calls) == 1


def test_cancel_unknown_or_finished_session_returns_false(
    make_sessions: Callable[..., AnalysisSessions],
) -> None:
    sessions = make_sessions(
        orchestrator_factory=_factory(StaticProvider([0.6]))
    )
    session_id = sessions.start(square_boundary(), CITY)
    sessions.wait(session_id, timeout=10)

    assert sessions.cancel("analysis_missing") is False
    assert sessions.cancel(session_id) is False
    assert sessions.get(session_id).status is SessionStatus.COMPLETED


def test_prune_forgets_sessions_past_ttl(
    make_sessions: Callable[..., AnalysisSessions],
) -> None:
    clock = FakeClock()
    sessions = make_sessions(
        orchestrator_factory=_factory(StaticProvider([0.6])),
        ttl_seconds=60,
        clock=clock,
    )
    session_id = sessions.start(square_boundary(), CITY)
    sessions.wait(session_id, timeout=10)

    clock.now += 30
    assert sessions.prune() == 0
    assert sessions.get(session_id) is not None

    clock.now += 31
    assert sessions.prune() == 1
    assert sessions.get(session_id) is None


def test_wait_on_unknown_session_raises(
    make_sessions: Callable[..., AnalysisSessions],
) -> None:
    sessions = make_sessions()

    with pytest.raises(KeyError, match="analysis_missing"):
        sessions.wait("analysis_missing")
