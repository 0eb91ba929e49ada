from __future__ import annotations

from django.apps import AppConfig


class GreenspaceConfig(AppConfig):
    name = "greenspace"
    verbose_name = "Greenspace"
