from __future__ import annotations

# ruff: noqa: S101
import asyncio
from datetime import date

import pytest

from greenspace.analyzer import YearAnalyzer, progress_interval, should_report
from greenspace.engines.estimation import EstimationProvider
from greenspace.engines.types import (
    FAIL_CLOSED,
    FAIL_OPEN,
    CancellationToken,
    YearResult,
)
from greenspace.exceptions import AnalysisCancelled, DataUnavailable

from .fakes import (
    FailingProvider,
    OddCellsFailProvider,
    RecordingReporter,
    StaticProvider,
    square_boundary,
)


def _run(
    analyzer: YearAnalyzer, reporter: RecordingReporter | None = None
) -> YearResult:
    return asyncio.run(
        analyzer.analyze_year(square_boundary(), 2024, reporter)
    )


def test_progress_interval_scales_with_grid() -> None:
    assert progress_interval(49) == 5
    assert progress_interval(1000) == 20
    assert should_report(5, 49)
    assert should_report(49, 49)
    assert not should_report(6, 49)


def test_equatorial_estimate_lands_in_tropical_band() -> None:
    provider = EstimationProvider(seed=42, today=lambda: date(2025, 7, 1))
    reporter = RecordingReporter()
    boundary = square_boundary()

    result = asyncio.run(
        YearAnalyzer(provider, cell_budget=100).analyze_year(
            boundary, 2024, reporter
        )
    )

    assert result.total_cells == 49
    assert result.analyzed_cells == 49
    assert result.estimated_cells == 49
    assert result.failed_cells == 0
    assert result.confidence == 1.0
    assert 60.0 <= result.coverage_percentage <= 95.0
    assert result.total_samples == 49 * 225
    assert result.vegetated_area_km2 == pytest.approx(
        boundary.area_km2 * result.coverage_percentage / 100
    )

    assert reporter.types[0] == "grid-started"
    assert reporter.types[-1] == "year-completed"
    progress = reporter.of_type("grid-progress")
    assert [p["current_cell"] for p in progress] == [*range(5, 46, 5), 49]
    assert progress[-1]["percentage"] == 100.0


def test_fail_closed_aborts_on_first_failed_cell() -> None:
    provider = FailingProvider()
    analyzer = YearAnalyzer(provider, strictness=FAIL_CLOSED, cell_budget=100)

    with pytest.raises(DataUnavailable):
        _run(analyzer)
    assert provider.calls == 1


def test_fail_open_with_every_cell_failing_reports_zero() -> None:
    provider = FailingProvider()
    analyzer = YearAnalyzer(provider, strictness=FAIL_OPEN, cell_budget=100)

    result = _run(analyzer)

    assert provider.calls == 49
    assert result.confidence == 0.0
    assert result.coverage_percentage == 0.0
    assert result.failed_cells == 49
    assert result.analyzed_cells == 0


def test_fail_open_partial_failure_lowers_confidence() -> None:
    provider = OddCellsFailProvider([0.1, 0.9])
    analyzer = YearAnalyzer(provider, strictness=FAIL_OPEN, cell_budget=100)

    result = _run(analyzer)

    assert result.failed_cells == 24
    assert result.confidence == pytest.approx(25 / 49)
    assert result.coverage_percentage == pytest.approx(50.0)
    assert 0.0 < result.confidence < 1.0


def test_coverage_and_confidence_bounds() -> None:
    result = _run(YearAnalyzer(StaticProvider([0.9, 0.95]), cell_budget=100))
    assert result.coverage_percentage == pytest.approx(100.0)
    assert result.confidence == 1.0
    assert result.estimated_cells == 0

    result = _run(YearAnalyzer(StaticProvider([-0.5, 0.0]), cell_budget=100))
    assert result.coverage_percentage == 0.0


def test_out_of_range_samples_follow_policy() -> None:
    provider = StaticProvider([1.5, 0.5])

    with pytest.raises(DataUnavailable, match="outside"):
        _run(YearAnalyzer(provider, strictness=FAIL_CLOSED, cell_budget=100))

    analyzer = YearAnalyzer(provider, strictness=FAIL_OPEN, cell_budget=100)
    result = _run(analyzer)
    assert result.failed_cells == 0
    assert result.coverage_percentage == pytest.approx(100.0)


def test_cancellation_stops_the_cell_loop() -> None:
    provider = StaticProvider([0.5])
    token = CancellationToken()
    token.cancel()
    analyzer = YearAnalyzer(provider, strictness=FAIL_OPEN, cell_budget=100)

    with pytest.raises(AnalysisCancelled):
        asyncio.run(
            analyzer.analyze_year(square_boundary(), 2024, cancel=token)
        )
    assert provider.calls == []
