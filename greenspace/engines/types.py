from __future__ import annotations

import threading
from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Literal, NamedTuple, Protocol

from shapely.geometry.base import BaseGeometry

from ..exceptions import AnalysisCancelled

StrategyName = Literal["estimation", "sentinelhub"]
Strictness = Literal["fail-closed", "fail-open"]
SampleSource = Literal["estimation", "sentinelhub"]

FAIL_CLOSED: Strictness = "fail-closed"
FAIL_OPEN: Strictness = "fail-open"


class BoundingBox(NamedTuple):
    """Axis-aligned lon/lat box in `[west, south, east, north]` order."""

    west: float
    south: float
    east: float
    north: float

    @property
    def width(self) -> float:
        return self.east - self.west

    @property
    def height(self) -> float:
        return self.north - self.south


@dataclass(frozen=True)
class Boundary:
    """Validated analysis polygon with its derived, read-only properties."""

    geometry: BaseGeometry
    bbox: BoundingBox
    area_km2: float
    centroid_lat: float
    centroid_lon: float


@dataclass(frozen=True)
class Cell:
    index: int
    west: float
    south: float
    east: float
    north: float

    @property
    def centroid_lat(self) -> float:
        return (self.south + self.north) / 2

    @property
    def centroid_lon(self) -> float:
        return (self.west + self.east) / 2

    @property
    def bounds(self) -> BoundingBox:
        return BoundingBox(self.west, self.south, self.east, self.north)


@dataclass(frozen=True)
class Grid:
    cells: tuple[Cell, ...]
    edge_deg: float
    candidate_count: int
    intersecting_count: int

    def __len__(self) -> int:
        return len(self.cells)


@dataclass(frozen=True)
class SampleSet:
    """Per-cell, per-year spectral index samples."""

    values: tuple[float, ...]
    source: SampleSource
    index_name: str = "ndvi"
    extras: Mapping[str, float] = field(default_factory=dict)

    def __len__(self) -> int:
        return len(self.values)


@dataclass(frozen=True)
class CellResult:
    cell: Cell
    vegetation_fraction: float
    mean_index: float
    sample_count: int
    vegetated_count: int
    threshold: float
    source: SampleSource | None = None


@dataclass(frozen=True)
class YearResult:
    year: int
    coverage_percentage: float
    vegetated_area_km2: float
    confidence: float
    analyzed_cells: int
    total_cells: int
    failed_cells: int
    estimated_cells: int
    total_samples: int
    vegetated_samples: int
    cell_results: tuple[CellResult, ...] = ()


@dataclass(frozen=True)
class CityInfo:
    name: str
    country: str = ""
    region: str = ""
    latitude: float | None = None
    longitude: float | None = None


@dataclass(frozen=True)
class YearRange:
    start_year: int
    end_year: int


@dataclass(frozen=True)
class TrendResult:
    score: float
    current: YearResult
    historical_series: tuple[YearResult, ...]
    total_area_km2: float
    city: CityInfo | None = None


class CellState(str, Enum):
    PENDING = "pending"
    SAMPLED = "sampled"
    CLASSIFIED = "classified"
    AGGREGATED = "aggregated"
    FAILED = "failed"


class ProgressReporter(Protocol):
    """Callable receiving `(event_type, payload)` progress notifications."""

    def __call__(self, event_type: str, payload: dict[str, Any]) -> None:
        ...


class CancellationToken:
    """Thread-safe flag checked by the per-cell loop."""

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise AnalysisCancelled("analysis cancelled")
