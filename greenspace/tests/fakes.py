from __future__ import annotations

import asyncio
import threading
from collections.abc import Iterable, Sequence
from typing import Any

from shapely.geometry import box

from greenspace.boundary import from_geometry
from greenspace.engines.base import SpectralIndexProvider
from greenspace.engines.types import (
    Boundary,
    Cell,
    SampleSet,
    SampleSource,
    StrategyName,
)
from greenspace.exceptions import DataUnavailable


def square_boundary(
    west: float = 0.0, south: float = 0.0, size: float = 0.02
) -> Boundary:
    return from_geometry(box(west, south, west + size, south + size))


class StaticProvider(SpectralIndexProvider):
    """Return the same samples for every cell, recording each call."""

    def __init__(
        self,
        values: Sequence[float],
        *,
        source: SampleSource = "sentinelhub",
        name: StrategyName = "sentinelhub",
    ) -> None:
        self.values = tuple(values)
        self.source = source
        self.name = name
        self.calls: list[tuple[int, int]] = []

    async def get_index_samples(self, cell: Cell, year: int) -> SampleSet:
        self.calls.append((cell.index, year))
        return SampleSet(values=self.values, source=self.source)


class FailingProvider(SpectralIndexProvider):
    """Real-source stand-in whose upstream is always down."""

    name: StrategyName = "sentinelhub"

    def __init__(self) -> None:
        self.calls = 0

    async def get_index_samples(self, cell: Cell, year: int) -> SampleSet:
        self.calls += 1
        raise DataUnavailable("upstream unavailable", cell_index=cell.index)


class OddCellsFailProvider(StaticProvider):
    async def get_index_samples(self, cell: Cell, year: int) -> SampleSet:
        if cell.index % 2:
            raise DataUnavailable("cloudy", cell_index=cell.index)
        return await super().get_index_samples(cell, year)


class YearFailingProvider(StaticProvider):
    """Fail every cell for the given years, serve samples otherwise."""

    def __init__(
        self, values: Sequence[float], failing_years: Iterable[int]
    ) -> None:
        super().__init__(values)
        self.failing_years = set(failing_years)

    async def get_index_samples(self, cell: Cell, year: int) -> SampleSet:
        if year in self.failing_years:
            raise DataUnavailable(f"no imagery for {year}")
        return await super().get_index_samples(cell, year)


class GatedProvider(StaticProvider):
    """Block every cell until `gate` is set; `entered` marks the first call."""

    def __init__(self, values: Sequence[float]) -> None:
        super().__init__(values)
        self.gate = threading.Event()
        self.entered = threading.Event()

    async def get_index_samples(self, cell: Cell, year: int) -> SampleSet:
        self.entered.set()
        while not self.gate.is_set():
            await asyncio.sleep(0.005)
        return await super().get_index_samples(cell, year)


class RecordingReporter:
    def __init__(self) -> None:
        self.events: list[tuple[str, dict[str, Any]]] = []

    def __call__(self, event_type: str, payload: dict[str, Any]) -> None:
        self.events.append((event_type, payload))

    @property
    def types(self) -> list[str]:
        return [event_type for event_type, _ in self.events]

    def of_type(self, event_type: str) -> list[dict[str, Any]]:
        return [p for t, p in self.events if t == event_type]
