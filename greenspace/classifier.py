from __future__ import annotations

import logging
from collections.abc import Sequence

from .engines.types import Cell, CellResult, SampleSet
from .regions import (
    DEFAULT_THRESHOLD,
    THRESHOLD_RULES,
    URBAN_RULES,
    first_match,
)

logger = logging.getLogger(__name__)


def resolve_threshold(lat: float, lon: float) -> float:
    """Vegetation threshold for a centroid.

    The first matching climate rule replaces the temperate default and a
    dense-urban match scales the result down so sparse street vegetation
    still registers.
    """

    region, threshold = first_match(
        THRESHOLD_RULES, lat, lon, DEFAULT_THRESHOLD
    )
    _, factor = first_match(URBAN_RULES, lat, lon, 1.0)
    resolved = threshold * factor
    logger.debug(
        "greenspace.threshold lat=%.3f lon=%.3f region=%s value=%.3f",
        lat,
        lon,
        region,
        resolved,
    )
    return resolved


def classify(samples: SampleSet | Sequence[float], cell: Cell) -> CellResult:
    if isinstance(samples, SampleSet):
        values, source = samples.values, samples.source
    else:
        values, source = tuple(samples), None
    threshold = resolve_threshold(cell.centroid_lat, cell.centroid_lon)

    count = len(values)
    if count == 0:
        return CellResult(
            cell=cell,
            vegetation_fraction=0.0,
            mean_index=0.0,
            sample_count=0,
            vegetated_count=0,
            threshold=threshold,
            source=source,
        )

    vegetated = sum(1 for value in values if value > threshold)
    return CellResult(
        cell=cell,
        vegetation_fraction=vegetated / count,
        mean_index=sum(values) / count,
        sample_count=count,
        vegetated_count=vegetated,
        threshold=threshold,
        source=source,
    )
