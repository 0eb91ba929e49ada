"""
URL configuration for the greenspace service.

Routes:
- GET / -> home
- GET /api/health/ -> health
- /metrics -> Prometheus exposition (django_prometheus)
- /api/schema/ -> OpenAPI schema
- /api/docs/ -> Swagger UI
- /api/redoc/ -> ReDoc
- /api/v1/greenspace/ -> greenspace.urls
"""

from django.urls import include, path
from drf_spectacular.views import (
    SpectacularAPIView,
    SpectacularRedocView,
    SpectacularSwaggerView,
)

from .views import health, home

urlpatterns = [
    path("", home, name="home"),
    path("api/health/", health, name="health"),
    path("", include("django_prometheus.urls")),
    path("api/schema/", SpectacularAPIView.as_view(), name="schema"),
    path(
        "api/docs/",
        SpectacularSwaggerView.as_view(url_name="schema"),
        name="swagger-ui",
    ),
    path(
        "api/redoc/",
        SpectacularRedocView.as_view(url_name="schema"),
        name="redoc",
    ),
    path("api/v1/", include("greenspace.urls")),
]
