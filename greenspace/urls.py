from __future__ import annotations

from django.urls import path

from .views import (
    AnalysisCancelView,
    AnalysisEventsView,
    AnalysisStartView,
    AnalysisStatusView,
)

urlpatterns = [
    path(
        "greenspace/analyses/",
        AnalysisStartView.as_view(),
        name="greenspace-analysis-start",
    ),
    path(
        "greenspace/analyses/<str:session_id>/",
        AnalysisStatusView.as_view(),
        name="greenspace-analysis-status",
    ),
    path(
        "greenspace/analyses/<str:session_id>/cancel/",
        AnalysisCancelView.as_view(),
        name="greenspace-analysis-cancel",
    ),
    path(
        "greenspace/analyses/<str:session_id>/events/",
        AnalysisEventsView.as_view(),
        name="greenspace-analysis-events",
    ),
]
