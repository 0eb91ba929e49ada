from __future__ import annotations

import logging
import math
import random
from collections.abc import Callable
from datetime import date
from typing import Final

from django.conf import settings
from django.utils import timezone

from ..regions import (
    DEFAULT_IMPERVIOUS_PROBABILITY,
    URBAN_IMPERVIOUS_PROBABILITY,
    is_dense_urban,
    resolve_baseline,
)
from .base import INDEX_MAX, INDEX_MIN, SpectralIndexProvider
from .types import Cell, SampleSet, StrategyName

logger = logging.getLogger(__name__)

SAMPLE_GRID: Final[int] = int(getattr(settings, "GREENSPACE_SAMPLE_GRID", 15))

DENSE_PATCH_PROBABILITY = 0.10
DENSE_PATCH_BOOST = 0.20
IMPERVIOUS_REDUCTION = (0.30, 0.60)


def seasonal_factor(lat: float, month: int) -> float:
    """Growing-season multiplier for a latitude and calendar month.

    Southern latitudes use the month shifted by half a year; the effect is
    halved in the subtropics and disappears inside the tropics.
    """

    if abs(lat) < 15:
        return 1.0
    if lat < 0:
        month = (month + 5) % 12 + 1
    if 4 <= month <= 9:
        factor = 1.2
    elif month in (10, 11):
        factor = 0.9
    else:
        factor = 0.3
    if abs(lat) < 30:
        return 1.0 + (factor - 1.0) * 0.5
    return factor


class EstimationProvider(SpectralIndexProvider):
    """Deterministic-when-seeded index estimates from the cell location.

    Samples follow the regional baseline scaled by season, with uniform
    noise, occasional dense-vegetation patches and a stochastic reduction
    for impervious surfaces.
    """

    name: StrategyName = "estimation"

    def __init__(
        self,
        *,
        seed: int | None = None,
        sample_grid: int = SAMPLE_GRID,
        today: Callable[[], date] | None = None,
    ) -> None:
        if seed is None:
            configured = getattr(settings, "GREENSPACE_ESTIMATION_SEED", None)
            seed = int(configured) if configured is not None else None
        self.seed = seed
        self.sample_count = sample_grid * sample_grid
        self._today = today or timezone.localdate
        self._shared_rng = random.Random()

    def _rng(self, cell: Cell, year: int) -> random.Random:
        if self.seed is None:
            return self._shared_rng
        return random.Random(
            f"{self.seed}:{year}:{cell.west:.6f}:{cell.south:.6f}"
        )

    async def get_index_samples(self, cell: Cell, year: int) -> SampleSet:
        lat, lon = cell.centroid_lat, cell.centroid_lon
        region, baseline = resolve_baseline(lat, lon)
        season = seasonal_factor(lat, self._today().month)
        impervious = (
            URBAN_IMPERVIOUS_PROBABILITY
            if is_dense_urban(lat, lon)
            else DEFAULT_IMPERVIOUS_PROBABILITY
        )
        rng = self._rng(cell, year)
        centre = baseline.mean * season

        values: list[float] = []
        for _ in range(self.sample_count):
            value = centre + (rng.random() - 0.5) * baseline.variability
            if rng.random() < DENSE_PATCH_PROBABILITY:
                value += DENSE_PATCH_BOOST
            if rng.random() < impervious:
                value -= rng.uniform(*IMPERVIOUS_REDUCTION)
            if not math.isfinite(value):
                value = 0.0
            values.append(min(INDEX_MAX, max(INDEX_MIN, value)))

        logger.debug(
            "greenspace.estimation cell=%s year=%s region=%s centre=%.3f",
            cell.index,
            year,
            region,
            centre,
        )
        return SampleSet(
            values=tuple(values),
            source="estimation",
            extras={"seasonal_factor": season, "baseline": baseline.mean},
        )
