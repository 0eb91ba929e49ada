from __future__ import annotations

# ruff: noqa: S101
import asyncio
from datetime import date

import pytest

from greenspace.engines.estimation import EstimationProvider, seasonal_factor
from greenspace.engines.types import Cell


def _cell(lat: float, lon: float) -> Cell:
    return Cell(
        index=3,
        west=lon - 0.001,
        south=lat - 0.001,
        east=lon + 0.001,
        north=lat + 0.001,
    )


def _july() -> date:
    return date(2025, 7, 15)


def test_seasonal_factor_flat_in_tropics() -> None:
    for month in range(1, 13):
        assert seasonal_factor(5.0, month) == 1.0


def test_seasonal_factor_mirrors_hemispheres() -> None:
    assert seasonal_factor(50.0, 7) == pytest.approx(1.2)
    assert seasonal_factor(50.0, 1) == pytest.approx(0.3)
    assert seasonal_factor(50.0, 10) == pytest.approx(0.9)
    assert seasonal_factor(-50.0, 1) == pytest.approx(1.2)
    assert seasonal_factor(-50.0, 7) == pytest.approx(0.3)


def test_seasonal_factor_halved_in_subtropics() -> None:
    assert seasonal_factor(20.0, 7) == pytest.approx(1.1)
    assert seasonal_factor(20.0, 1) == pytest.approx(0.65)


def test_seeded_estimates_are_reproducible() -> None:
    cell = _cell(0.01, 0.01)
    first = EstimationProvider(seed=42, today=_july)
    second = EstimationProvider(seed=42, today=_july)

    a = asyncio.run(first.get_index_samples(cell, 2024))
    b = asyncio.run(second.get_index_samples(cell, 2024))
    c = asyncio.run(first.get_index_samples(cell, 2023))

    assert a.values == b.values
    assert a.values != c.values


def test_estimates_stay_in_index_range() -> None:
    provider = EstimationProvider(seed=7, sample_grid=10, today=_july)
    for lat, lon in [(0.0, 0.0), (-3.0, -60.0), (25.0, 10.0), (75.0, 0.0)]:
        cell = _cell(lat, lon)
        samples = asyncio.run(provider.get_index_samples(cell, 2024))
        assert len(samples) == 100
        assert all(-1.0 <= v <= 1.0 for v in samples.values)
        assert samples.source == "estimation"


def test_rainforest_estimates_greener_than_desert() -> None:
    provider = EstimationProvider(seed=1, today=_july)
    forest = asyncio.run(provider.get_index_samples(_cell(-3.0, -60.0), 2024))
    desert = asyncio.run(provider.get_index_samples(_cell(25.0, 10.0), 2024))

    def mean(values: tuple[float, ...]) -> float:
        return sum(values) / len(values)

    assert mean(forest.values) > mean(desert.values) + 0.3
    assert forest.extras["baseline"] == pytest.approx(0.78)
