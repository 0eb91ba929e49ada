"""Project-level non-DRF views.

The root landing endpoint links to the API documentation; the health
endpoint reports the configured index strategy and running analyses.
"""

from __future__ import annotations

from django.http import HttpRequest, JsonResponse

from greenspace.engines.registry import default_strategy, default_strictness
from greenspace.services import sessions


def home(request: HttpRequest) -> JsonResponse:
    """Return basic service metadata and documentation links."""
    return JsonResponse(
        {
            "ok": True,
            "service": "greenspace-apis",
            "docs": "/api/docs/",
            "redoc": "/api/redoc/",
        }
    )


def health(request: HttpRequest) -> JsonResponse:
    return JsonResponse(
        {
            "ok": True,
            "strategy": default_strategy(),
            "strictness": default_strictness(),
            "active_sessions": sessions.active_count(),
        }
    )
