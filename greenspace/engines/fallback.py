from __future__ import annotations

import logging

from ..exceptions import AuthenticationFailure, DataUnavailable
from .base import SpectralIndexProvider
from .types import Cell, SampleSet, StrategyName

logger = logging.getLogger(__name__)


class FallbackProvider(SpectralIndexProvider):
    """Substitute estimates for cells the primary provider cannot serve.

    Only used under the fail-open policy. Substituted samples keep the
    `estimation` source tag so results can report how many cells were
    estimated.
    """

    def __init__(
        self, primary: SpectralIndexProvider, fallback: SpectralIndexProvider
    ) -> None:
        self.primary = primary
        self.fallback = fallback
        self.name: StrategyName = primary.name

    async def get_index_samples(self, cell: Cell, year: int) -> SampleSet:
        try:
            samples = await self.primary.get_index_samples(cell, year)
            if samples.values:
                return samples
            reason = "empty"
        except (DataUnavailable, AuthenticationFailure) as exc:
            reason = str(exc)
        logger.warning(
            "greenspace.fallback.estimated cell=%s year=%s reason=%s",
            cell.index,
            year,
            reason,
        )
        return await self.fallback.get_index_samples(cell, year)
