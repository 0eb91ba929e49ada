"""Provider abstractions for per-cell spectral index samples."""

from __future__ import annotations

import math
from abc import ABC, abstractmethod
from dataclasses import replace

from ..exceptions import DataUnavailable
from .types import FAIL_CLOSED, Cell, SampleSet, StrategyName, Strictness

INDEX_MIN = -1.0
INDEX_MAX = 1.0


class SpectralIndexProvider(ABC):
    """Abstract base for spectral index sample providers."""

    name: StrategyName

    @abstractmethod
    async def get_index_samples(self, cell: Cell, year: int) -> SampleSet:
        """Return index samples for the cell and year.

        Raises `DataUnavailable` when nothing usable can be produced.
        """


def validate_samples(
    samples: SampleSet, strictness: Strictness, *, cell: Cell | None = None
) -> SampleSet:
    """Reject or repair empty and out-of-range samples per the policy.

    Fail-closed rejects anything non-finite or outside [-1, 1]; fail-open
    drops non-finite values and clamps the rest.
    """

    cell_index = cell.index if cell is not None else None
    if not samples.values:
        raise DataUnavailable(
            "provider returned no samples", cell_index=cell_index
        )

    bad = [
        v
        for v in samples.values
        if not math.isfinite(v) or v < INDEX_MIN or v > INDEX_MAX
    ]
    if not bad:
        return samples
    if strictness == FAIL_CLOSED:
        raise DataUnavailable(
            f"{len(bad)} samples outside [{INDEX_MIN}, {INDEX_MAX}]",
            cell_index=cell_index,
        )

    repaired = tuple(
        min(INDEX_MAX, max(INDEX_MIN, v))
        for v in samples.values
        if math.isfinite(v)
    )
    if not repaired:
        raise DataUnavailable("no finite samples", cell_index=cell_index)
    return replace(samples, values=repaired)
