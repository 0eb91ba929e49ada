"""Celery application for offline greenspace analyses.

Workers run `greenspace.tasks.run_trend_analysis`; the web process never
needs a broker since interactive analyses run on its own event loop.
"""

from __future__ import annotations

import os

from celery import Celery

os.environ.setdefault("DJANGO_SETTINGS_MODULE", "config.settings")

app = Celery("greenspace")
app.config_from_object("django.conf:settings", namespace="CELERY")
app.autodiscover_tasks(["greenspace"])
