from __future__ import annotations

from functools import lru_cache
from typing import cast

from django.conf import settings

from .base import SpectralIndexProvider
from .estimation import EstimationProvider
from .fallback import FallbackProvider
from .sentinelhub import SentinelHubProvider
from .types import FAIL_CLOSED, FAIL_OPEN, StrategyName, Strictness

STRATEGIES: tuple[StrategyName, ...] = ("estimation", "sentinelhub")
STRICTNESS_LEVELS: tuple[Strictness, ...] = (FAIL_CLOSED, FAIL_OPEN)


def default_strategy() -> StrategyName:
    configured = str(getattr(settings, "GREENSPACE_STRATEGY", "estimation"))
    return validate_strategy(configured)


def default_strictness() -> Strictness:
    configured = str(getattr(settings, "GREENSPACE_STRICTNESS", FAIL_CLOSED))
    return validate_strictness(configured)


def validate_strategy(name: str | None) -> StrategyName:
    strategy = (name or "estimation").lower()
    if strategy not in STRATEGIES:
        raise ValueError(f"Unsupported index strategy: {strategy}")
    return cast(StrategyName, strategy)


def validate_strictness(name: str | None) -> Strictness:
    level = (name or FAIL_CLOSED).lower().replace("_", "-")
    if level not in STRICTNESS_LEVELS:
        raise ValueError(f"Unsupported strictness: {level}")
    return cast(Strictness, level)


def build_provider(
    strategy: StrategyName,
    strictness: Strictness,
    *,
    fallback_to_estimation: bool = False,
) -> SpectralIndexProvider:
    """Instantiate the provider for a strategy and policy.

    The estimation fallback is only attached to the Sentinel Hub strategy
    under fail-open; fail-closed never substitutes data.
    """

    if strategy == "estimation":
        return EstimationProvider()
    provider: SpectralIndexProvider = SentinelHubProvider()
    if strictness == FAIL_OPEN and fallback_to_estimation:
        provider = FallbackProvider(provider, EstimationProvider())
    return provider


@lru_cache(maxsize=1)
def get_provider() -> SpectralIndexProvider:
    """Return the process-wide configured provider.

    Cached so the Sentinel Hub token cache is shared by every analysis.
    """

    return build_provider(
        default_strategy(),
        default_strictness(),
        fallback_to_estimation=bool(
            getattr(settings, "GREENSPACE_FALLBACK_TO_ESTIMATION", False)
        ),
    )
