from __future__ import annotations

import logging
from collections.abc import Callable, Sequence
from dataclasses import replace
from datetime import date

from django.conf import settings
from django.utils import timezone

from .analyzer import YearAnalyzer, emit_progress
from .engines.types import (
    Boundary,
    CancellationToken,
    CityInfo,
    ProgressReporter,
    TrendResult,
    YearRange,
    YearResult,
)
from .exceptions import AnalysisCancelled, GreenspaceError, InvalidYearRange

logger = logging.getLogger(__name__)

HISTORICAL_STRIDE = int(getattr(settings, "GREENSPACE_HISTORICAL_STRIDE", 2))
HISTORICAL_SPAN_YEARS = int(
    getattr(settings, "GREENSPACE_HISTORICAL_SPAN_YEARS", 4)
)
TREND_WINDOW = 3
# Coverage changes within this many points read as stable.
STABLE_BAND = 0.5


def greenspace_score(percentage: float) -> float:
    """Map coverage percentage to a 0-100 score.

    Piecewise linear and non-decreasing; breakpoints at 5, 15, 30 and 50.
    """

    p = min(100.0, max(0.0, percentage))
    if p >= 50:
        score = min(100.0, 80 + (p - 50) * 0.8)
    elif p >= 30:
        score = 60 + (p - 30) * 1.0
    elif p >= 15:
        score = 40 + (p - 15) * 20 / 15
    elif p >= 5:
        score = 20 + (p - 5) * 2.0
    else:
        score = p * 4
    return min(100.0, max(0.0, score))


def historical_years(
    current_year: int,
    year_range: YearRange | None = None,
    *,
    stride: int = HISTORICAL_STRIDE,
    span: int = HISTORICAL_SPAN_YEARS,
) -> list[int]:
    if year_range is None:
        end = current_year - 1
        start = end - span
    else:
        start, end = year_range.start_year, year_range.end_year
    if start > end:
        raise InvalidYearRange(
            f"start_year {start} must be on or before end_year {end}"
        )
    if end > current_year:
        raise InvalidYearRange(
            f"end_year {end} is after the current year {current_year}"
        )
    return list(range(start, end + 1, max(1, stride)))


def analysis_years(current_year: int, historical: list[int]) -> list[int]:
    return sorted({current_year, *historical})


def trend_change(
    series: Sequence[YearResult], window: int = TREND_WINDOW
) -> float:
    """Mean coverage of the latest years minus that of the earliest years."""

    if len(series) < 2:
        return 0.0
    ordered = sorted(series, key=lambda r: r.year)
    recent = ordered[-window:]
    older = ordered[:window]
    recent_mean = sum(r.coverage_percentage for r in recent) / len(recent)
    older_mean = sum(r.coverage_percentage for r in older) / len(older)
    return recent_mean - older_mean


def trend_direction(change: float) -> str:
    if change > STABLE_BAND:
        return "increasing"
    if change < -STABLE_BAND:
        return "decreasing"
    return "stable"


class TrendOrchestrator:
    """Run the current year and the historical years into a trend."""

    def __init__(
        self,
        analyzer: YearAnalyzer,
        *,
        today: Callable[[], date] | None = None,
        stride: int = HISTORICAL_STRIDE,
    ) -> None:
        self.analyzer = analyzer
        self.stride = stride
        self._today = today or timezone.localdate

    async def analyze(
        self,
        boundary: Boundary,
        year_range: YearRange | None = None,
        *,
        city: CityInfo | None = None,
        progress: ProgressReporter | None = None,
        cancel: CancellationToken | None = None,
    ) -> TrendResult:
        current_year = self._today().year
        past_years = [
            y
            for y in historical_years(
                current_year, year_range, stride=self.stride
            )
            if y != current_year
        ]
        logger.info(
            "greenspace.trend.started years=%s area_km2=%.2f",
            analysis_years(current_year, past_years),
            boundary.area_km2,
        )

        emit_progress(
            progress,
            "log",
            {
                "message": (
                    f"City area calculated: {boundary.area_km2:.2f} km²"
                ),
                "status": "Calculating city boundaries...",
            },
        )
        emit_progress(
            progress,
            "log",
            {
                "message": f"Starting current year analysis ({current_year})",
                "status": "Analyzing current imagery...",
            },
        )
        # Failure here is fatal to the whole request.
        current = await self.analyzer.analyze_year(
            boundary, current_year, progress, cancel=cancel, phase="current"
        )

        series = await self._historical(boundary, past_years, progress, cancel)
        score = greenspace_score(current.coverage_percentage)
        emit_progress(
            progress,
            "log",
            {
                "message": (
                    f"Analysis complete! Score: {score:.0f}/100, "
                    f"Coverage: {current.coverage_percentage:.2f}%"
                ),
                "status": "Analysis completed successfully",
            },
        )
        return TrendResult(
            score=score,
            current=current,
            historical_series=series,
            total_area_km2=boundary.area_km2,
            city=city,
        )

    async def _historical(
        self,
        boundary: Boundary,
        years: list[int],
        progress: ProgressReporter | None,
        cancel: CancellationToken | None,
    ) -> tuple[YearResult, ...]:
        emit_progress(
            progress,
            "historical-started",
            {
                "total_years": len(years),
                "years": years,
                "message": f"Analyzing {len(years)} historical years",
            },
        )
        results: list[YearResult] = []
        for i, year in enumerate(years):
            emit_progress(
                progress,
                "historical-year-started",
                {
                    "current_year": year,
                    "year_index": i + 1,
                    "total_years": len(years),
                    "percentage": round(i / len(years) * 100, 1),
                    "message": f"Historical: {year}",
                },
            )
            try:
                result = await self.analyzer.analyze_year(
                    boundary, year, progress, cancel=cancel, phase="historical"
                )
            except AnalysisCancelled:
                raise
            except GreenspaceError as exc:
                logger.warning(
                    "greenspace.historical.dropped year=%s err=%s", year, exc
                )
                emit_progress(
                    progress,
                    "log",
                    {
                        "message": (
                            f"{year}: skipped, data unavailable ({exc})"
                        ),
                        "status": f"Historical year {year} dropped",
                    },
                )
                continue
            results.append(replace(result, cell_results=()))

        results.sort(key=lambda r: r.year)
        emit_progress(
            progress,
            "historical-completed",
            {
                "total_years": len(results),
                "year_range": (
                    f"{results[0].year}-{results[-1].year}"
                    if results
                    else "None"
                ),
                "message": f"Historical complete: {len(results)} years",
            },
        )
        return tuple(results)
