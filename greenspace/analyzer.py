from __future__ import annotations

import asyncio
import logging
from typing import Any

from django.conf import settings

from .classifier import classify
from .engines.base import SpectralIndexProvider, validate_samples
from .engines.types import (
    FAIL_CLOSED,
    Boundary,
    CancellationToken,
    CellResult,
    CellState,
    ProgressReporter,
    Strictness,
    YearResult,
)
from .exceptions import AnalysisCancelled, DataUnavailable, GreenspaceError
from .grid import DEFAULT_CELL_BUDGET, build_grid
from .metrics import greenspace_cells_total

logger = logging.getLogger(__name__)

YIELD_EVERY_CELLS = int(getattr(settings, "GREENSPACE_YIELD_EVERY_CELLS", 10))


def progress_interval(total_cells: int) -> int:
    return max(5, total_cells // 50)


def should_report(position: int, total_cells: int) -> bool:
    """Whether the 1-based `position` gets a grid-progress event."""

    if position == total_cells:
        return True
    return position % progress_interval(total_cells) == 0


def emit_progress(
    progress: ProgressReporter | None, event_type: str, payload: dict[str, Any]
) -> None:
    if progress is not None:
        progress(event_type, payload)


class YearAnalyzer:
    """Sample and classify every grid cell of a boundary for one year."""

    def __init__(
        self,
        provider: SpectralIndexProvider,
        *,
        strictness: Strictness = FAIL_CLOSED,
        cell_budget: int = DEFAULT_CELL_BUDGET,
        yield_every: int = YIELD_EVERY_CELLS,
    ) -> None:
        self.provider = provider
        self.strictness = strictness
        self.cell_budget = cell_budget
        self.yield_every = max(1, yield_every)

    async def analyze_year(
        self,
        boundary: Boundary,
        year: int,
        progress: ProgressReporter | None = None,
        *,
        cancel: CancellationToken | None = None,
        phase: str = "current",
    ) -> YearResult:
        grid = build_grid(boundary, self.cell_budget)
        total_cells = len(grid)
        if total_cells == 0:
            raise DataUnavailable(
                f"Boundary produced an empty grid for {year}"
            )

        emit_progress(
            progress,
            "grid-started",
            {
                "year": year,
                "phase": phase,
                "total_cells": total_cells,
                "edge_deg": grid.edge_deg,
                "candidate_cells": grid.candidate_count,
                "message": f"{year}: analyzing {total_cells} grid cells",
            },
        )

        total_samples = 0
        vegetated_samples = 0
        failed_cells = 0
        estimated_cells = 0
        cell_results: list[CellResult] = []

        for position, cell in enumerate(grid.cells, start=1):
            if cancel is not None:
                cancel.raise_if_cancelled()

            state = CellState.PENDING
            try:
                samples = await self.provider.get_index_samples(cell, year)
                state = CellState.SAMPLED
                samples = validate_samples(samples, self.strictness, cell=cell)
                result = classify(samples, cell)
                state = CellState.CLASSIFIED
            except AnalysisCancelled:
                raise
            except GreenspaceError as exc:
                greenspace_cells_total.labels(
                    outcome="failed", source=self.provider.name
                ).inc()
                if self.strictness == FAIL_CLOSED:
                    logger.warning(
                        "greenspace.cell.failed year=%s cell=%s state=%s "
                        "policy=fail-closed err=%s",
                        year,
                        cell.index,
                        state.value,
                        exc,
                    )
                    raise
                failed_cells += 1
                state = CellState.FAILED
                logger.warning(
                    "greenspace.cell.skipped year=%s cell=%s err=%s",
                    year,
                    cell.index,
                    exc,
                )
            else:
                total_samples += result.sample_count
                vegetated_samples += result.vegetated_count
                if result.source == "estimation":
                    estimated_cells += 1
                cell_results.append(result)
                state = CellState.AGGREGATED
                greenspace_cells_total.labels(
                    outcome="analyzed", source=result.source or "unknown"
                ).inc()

            if should_report(position, total_cells):
                percentage = position / total_cells * 100
                emit_progress(
                    progress,
                    "grid-progress",
                    {
                        "year": year,
                        "phase": phase,
                        "current_cell": position,
                        "total_cells": total_cells,
                        "failed_cells": failed_cells,
                        "percentage": round(percentage, 1),
                        "message": (
                            f"{year}: cell {position}/{total_cells} "
                            f"({percentage:.0f}%)"
                        ),
                    },
                )
            if position % self.yield_every == 0:
                await asyncio.sleep(0)

        analyzed_cells = len(cell_results)
        coverage = (
            vegetated_samples / total_samples * 100 if total_samples else 0.0
        )
        year_result = YearResult(
            year=year,
            coverage_percentage=coverage,
            vegetated_area_km2=boundary.area_km2 * coverage / 100,
            confidence=analyzed_cells / total_cells,
            analyzed_cells=analyzed_cells,
            total_cells=total_cells,
            failed_cells=failed_cells,
            estimated_cells=estimated_cells,
            total_samples=total_samples,
            vegetated_samples=vegetated_samples,
            cell_results=tuple(cell_results),
        )
        logger.info(
            "greenspace.year.completed year=%s coverage=%.2f confidence=%.2f "
            "cells=%s failed=%s",
            year,
            coverage,
            year_result.confidence,
            total_cells,
            failed_cells,
        )
        emit_progress(
            progress,
            "year-completed",
            {
                "year": year,
                "phase": phase,
                "percentage": round(coverage, 2),
                "area_km2": round(year_result.vegetated_area_km2, 2),
                "confidence": round(year_result.confidence, 2),
                "analyzed_cells": analyzed_cells,
                "total_cells": total_cells,
                "failed_cells": failed_cells,
                "message": f"{year}: {coverage:.2f}% greenspace",
            },
        )
        return year_result
