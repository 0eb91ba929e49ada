"""drf-spectacular helpers for documenting the greenspace response envelopes.

Runtime responses come from `config.api.responses` and the global DRF
exception handler; these serializers only describe them in the schema.
"""

from __future__ import annotations

from drf_spectacular.utils import inline_serializer
from rest_framework import serializers
from rest_framework.serializers import Serializer


def success_envelope_serializer(
    name: str,
    *,
    data: serializers.Field,
) -> Serializer:
    """Schema for `success_response`; `data` describes the payload."""

    return inline_serializer(
        name=name,
        fields={
            "status": serializers.IntegerField(),
            "message": serializers.CharField(),
            "data": data,
            "errors": serializers.JSONField(allow_null=True),
        },
    )


def error_envelope_serializer(name: str) -> Serializer:
    """Schema for `error_response` and `custom_exception_handler` bodies."""

    return inline_serializer(
        name=name,
        fields={
            "status": serializers.IntegerField(),
            "message": serializers.CharField(),
            "errors": serializers.JSONField(allow_null=True),
        },
    )
