from __future__ import annotations

import asyncio
import logging
from typing import Any

from celery import shared_task
from rest_framework.exceptions import ValidationError

from .exceptions import GreenspaceError
from .metrics import greenspace_analyses_total
from .serializers import AnalysisRequestSerializer, serialize_trend
from .services import build_orchestrator

logger = logging.getLogger(__name__)


def _count(status: str, strategy: str) -> None:
    greenspace_analyses_total.labels(status=status, strategy=strategy).inc()


@shared_task(bind=True, max_retries=2, default_retry_delay=60)
def run_trend_analysis(
    self: Any,
    boundary_geojson: dict[str, Any] | None,
    city: dict[str, Any],
    year_range: dict[str, int] | None = None,
) -> dict[str, Any]:
    """Run a full trend analysis inside the worker and return its result.

    Nothing is persisted; the serialized TrendResult is the task result.
    """

    serializer = AnalysisRequestSerializer(
        data={
            "boundary": boundary_geojson,
            "city": city,
            "year_range": year_range,
        }
    )
    try:
        serializer.is_valid(raise_exception=True)
    except ValidationError as exc:
        logger.warning("greenspace.task.invalid err=%s", exc.detail)
        return {"status": "invalid", "errors": exc.detail}
    params = serializer.validated_data
    city_name = params["city"].name

    orchestrator = build_orchestrator()
    strategy = orchestrator.analyzer.provider.name
    try:
        result = asyncio.run(
            orchestrator.analyze(
                params["boundary"], params["year_range"], city=params["city"]
            )
        )
    except GreenspaceError as exc:
        logger.warning("greenspace.task.failed city=%s err=%s", city_name, exc)
        _count("failed", strategy)
        return {"status": "failed", "error": str(exc)}
    except Exception as exc:  # noqa: BLE001
        logger.exception("greenspace.task.crashed city=%s", city_name)
        _count("failed", strategy)
        raise self.retry(exc=exc) from exc

    _count("completed", strategy)
    logger.info(
        "greenspace.task.completed city=%s score=%.1f", city_name, result.score
    )
    return {"status": "ok", "result": serialize_trend(result)}
