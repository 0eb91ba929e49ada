"""Django settings for the greenspace service.

Everything deployment-specific is read from the environment. Greenspace
engine knobs use the `GREENSPACE_` prefix and are read by the app modules
with `getattr(settings, ...)`.
"""

from __future__ import annotations

import os
from pathlib import Path

import dj_database_url


def env_bool(name: str, default: bool = False) -> bool:
    raw = os.environ.get(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


def env_list(name: str, default: str = "") -> list[str]:
    raw = os.environ.get(name, default)
    return [item.strip() for item in raw.split(",") if item.strip()]


BASE_DIR = Path(__file__).resolve().parent.parent

SECRET_KEY = os.environ.get(
    "DJANGO_SECRET_KEY", "dev-only-insecure-secret-key"
)
DEBUG = env_bool("DJANGO_DEBUG", False)
ALLOWED_HOSTS = env_list(
    "DJANGO_ALLOWED_HOSTS", "localhost,127.0.0.1,testserver"
)

INSTALLED_APPS = [
    "django.contrib.contenttypes",
    "django.contrib.auth",
    "django.contrib.staticfiles",
    "rest_framework",
    "drf_spectacular",
    "django_prometheus",
    "greenspace",
]

MIDDLEWARE = [
    "django_prometheus.middleware.PrometheusBeforeMiddleware",
    "django.middleware.security.SecurityMiddleware",
    "django.middleware.common.CommonMiddleware",
    "django_prometheus.middleware.PrometheusAfterMiddleware",
]

ROOT_URLCONF = "config.urls"
WSGI_APPLICATION = "config.wsgi.application"
ASGI_APPLICATION = "config.asgi.application"

TEMPLATES = [
    {
        "BACKEND": "django.template.backends.django.DjangoTemplates",
        "DIRS": [],
        "APP_DIRS": True,
        "OPTIONS": {"context_processors": []},
    }
]

DATABASES = {
    "default": dj_database_url.config(
        default=f"sqlite:///{BASE_DIR / 'db.sqlite3'}",
        conn_max_age=60,
    )
}

CACHES = {
    "default": {
        "BACKEND": "django.core.cache.backends.locmem.LocMemCache",
        "LOCATION": "greenspace",
    }
}

DEFAULT_AUTO_FIELD = "django.db.models.BigAutoField"

LANGUAGE_CODE = "en-us"
TIME_ZONE = os.environ.get("DJANGO_TIME_ZONE", "UTC")
USE_I18N = False
USE_TZ = True

STATIC_URL = "static/"
STATIC_ROOT = BASE_DIR / "staticfiles"

REST_FRAMEWORK = {
    "DEFAULT_AUTHENTICATION_CLASSES": [],
    "DEFAULT_PERMISSION_CLASSES": [
        "rest_framework.permissions.AllowAny",
    ],
    "UNAUTHENTICATED_USER": None,
    "DEFAULT_RENDERER_CLASSES": [
        "rest_framework.renderers.JSONRenderer",
    ],
    "DEFAULT_SCHEMA_CLASS": "drf_spectacular.openapi.AutoSchema",
    "EXCEPTION_HANDLER": "config.api.exceptions.custom_exception_handler",
    "DEFAULT_THROTTLE_CLASSES": [
        "rest_framework.throttling.ScopedRateThrottle",
    ],
    "DEFAULT_THROTTLE_RATES": {
        "greenspace-analyses": os.environ.get(
            "GREENSPACE_ANALYSES_RATE", "30/min"
        ),
    },
}

SPECTACULAR_SETTINGS = {
    "TITLE": "Greenspace API",
    "DESCRIPTION": (
        "Estimate urban vegetation coverage from spectral index samples "
        "and track it across years."
    ),
    "VERSION": "1.0.0",
    "SERVE_INCLUDE_SCHEMA": False,
}

# Celery
CELERY_BROKER_URL = os.environ.get("CELERY_BROKER_URL", "memory://")
CELERY_RESULT_BACKEND = os.environ.get(
    "CELERY_RESULT_BACKEND", "cache+memory://"
)
CELERY_TASK_ALWAYS_EAGER = env_bool("CELERY_TASK_ALWAYS_EAGER", False)
CELERY_TASK_SERIALIZER = "json"
CELERY_RESULT_SERIALIZER = "json"
CELERY_ACCEPT_CONTENT = ["json"]
CELERY_TASK_TIME_LIMIT = int(os.environ.get("CELERY_TASK_TIME_LIMIT", 1800))

# Greenspace engine
GREENSPACE_STRATEGY = os.environ.get("GREENSPACE_STRATEGY", "estimation")
GREENSPACE_STRICTNESS = os.environ.get("GREENSPACE_STRICTNESS", "fail-closed")
GREENSPACE_FALLBACK_TO_ESTIMATION = env_bool(
    "GREENSPACE_FALLBACK_TO_ESTIMATION", False
)
GREENSPACE_CELL_BUDGET = int(os.environ.get("GREENSPACE_CELL_BUDGET", 200))
GREENSPACE_GRID_MIN_EDGE_DEG = float(
    os.environ.get("GREENSPACE_GRID_MIN_EDGE_DEG", 0.003)
)
GREENSPACE_GRID_MAX_EDGE_DEG = float(
    os.environ.get("GREENSPACE_GRID_MAX_EDGE_DEG", 0.05)
)
GREENSPACE_GRID_GROWTH_FACTOR = float(
    os.environ.get("GREENSPACE_GRID_GROWTH_FACTOR", 1.5)
)
GREENSPACE_HISTORICAL_STRIDE = int(
    os.environ.get("GREENSPACE_HISTORICAL_STRIDE", 2)
)
GREENSPACE_HISTORICAL_SPAN_YEARS = int(
    os.environ.get("GREENSPACE_HISTORICAL_SPAN_YEARS", 4)
)
GREENSPACE_MAX_CLOUD = int(os.environ.get("GREENSPACE_MAX_CLOUD", 30))
GREENSPACE_SAMPLE_GRID = int(os.environ.get("GREENSPACE_SAMPLE_GRID", 15))
GREENSPACE_ESTIMATION_SEED = (
    os.environ.get("GREENSPACE_ESTIMATION_SEED") or None
)
GREENSPACE_REQUEST_TIMEOUT_SECONDS = float(
    os.environ.get("GREENSPACE_REQUEST_TIMEOUT_SECONDS", 20)
)
GREENSPACE_YIELD_EVERY_CELLS = int(
    os.environ.get("GREENSPACE_YIELD_EVERY_CELLS", 10)
)
GREENSPACE_SESSION_TTL_SECONDS = int(
    os.environ.get("GREENSPACE_SESSION_TTL_SECONDS", 3600)
)
GREENSPACE_STREAM_HEARTBEAT_SECONDS = float(
    os.environ.get("GREENSPACE_STREAM_HEARTBEAT_SECONDS", 15)
)
GREENSPACE_CENTROID_BUFFER_DEG = float(
    os.environ.get("GREENSPACE_CENTROID_BUFFER_DEG", 0.1)
)

GREENSPACE_LOG_LEVEL = os.environ.get("GREENSPACE_LOG_LEVEL", "INFO")

LOGGING = {
    "version": 1,
    "disable_existing_loggers": False,
    "formatters": {
        "plain": {
            "format": "%(asctime)s %(levelname)s %(name)s %(message)s",
        },
    },
    "handlers": {
        "console": {
            "class": "logging.StreamHandler",
            "formatter": "plain",
        },
    },
    "root": {"handlers": ["console"], "level": "WARNING"},
    "loggers": {
        "greenspace": {
            "level": GREENSPACE_LOG_LEVEL,
            "propagate": True,
        },
        "django.request": {
            "handlers": ["console"],
            "level": "WARNING",
            "propagate": False,
        },
    },
}
