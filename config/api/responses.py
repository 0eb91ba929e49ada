"""JSON envelope helpers shared by every greenspace API view.

Success bodies carry `status: 0` and the payload under `data`; errors carry
`status: 1` with details under `errors`. DRF views return `Response`
objects; plain Django views (the event stream) use `json_error`.
"""

from __future__ import annotations

from typing import TypeAlias

from django.http import JsonResponse
from rest_framework import status
from rest_framework.response import Response

JSONScalar: TypeAlias = str | int | float | bool | None
JSONValue: TypeAlias = JSONScalar | list["JSONValue"] | dict[str, "JSONValue"]

STATUS_OK = 0
STATUS_ERROR = 1


def envelope(
    code: int,
    message: str,
    *,
    data: JSONValue | None = None,
    errors: JSONValue | None = None,
) -> dict[str, JSONValue]:
    return {"status": code, "message": message, "data": data, "errors": errors}


def success_response(
    data: JSONValue | None,
    message: str = "OK",
    *,
    status_code: int = status.HTTP_200_OK,
) -> Response:
    return Response(
        envelope(STATUS_OK, message, data=data), status=status_code
    )


def error_response(
    message: str,
    *,
    errors: JSONValue | None = None,
    status_code: int = status.HTTP_400_BAD_REQUEST,
) -> Response:
    return Response(
        envelope(STATUS_ERROR, message, errors=errors), status=status_code
    )


def json_error(
    message: str,
    *,
    errors: JSONValue | None = None,
    status_code: int = status.HTTP_400_BAD_REQUEST,
) -> JsonResponse:
    """Error envelope for views outside DRF content negotiation."""

    return JsonResponse(
        envelope(STATUS_ERROR, message, errors=errors), status=status_code
    )
