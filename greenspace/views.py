"""Greenspace analysis endpoints.

Authentication: none; the service is public.
JSON endpoints use `config.api.responses.success_response` with the
standard envelope:

    {"status": 0, "message": "<str>", "data": <object|null>, "errors": null}

Progress is streamed as Server-Sent Events from a plain Django view, since
DRF content negotiation has no `text/event-stream` renderer.
"""

from __future__ import annotations

import asyncio
import json
from collections.abc import AsyncIterator, Iterator
from typing import Any

from django.conf import settings
from django.core.handlers.asgi import ASGIRequest
from django.core.serializers.json import DjangoJSONEncoder
from django.http import HttpRequest, StreamingHttpResponse
from django.views import View
from drf_spectacular.utils import extend_schema, inline_serializer
from rest_framework import serializers, status
from rest_framework.exceptions import NotFound
from rest_framework.permissions import AllowAny
from rest_framework.request import Request
from rest_framework.response import Response
from rest_framework.views import APIView

from config.api.openapi import (
    error_envelope_serializer,
    success_envelope_serializer,
)
from config.api.responses import (
    error_response,
    json_error,
    success_response,
)

from .progress import ProgressEvent, Subscription
from .serializers import (
    AnalysisRequestSerializer,
    CityInfoSerializer,
    TrendResultSerializer,
    serialize_city,
)
from .services import (
    AnalysisSession,
    cancel_analysis,
    get_session,
    start_analysis,
    subscribe_progress,
)

HEARTBEAT_SECONDS = float(
    getattr(settings, "GREENSPACE_STREAM_HEARTBEAT_SECONDS", 15)
)

greenspace_error_response = error_envelope_serializer(
    "GreenspaceErrorResponse"
)

start_success_response = success_envelope_serializer(
    "GreenspaceAnalysisStarted",
    data=inline_serializer(
        name="GreenspaceAnalysisStartedData",
        fields={
            "session_id": serializers.CharField(),
            "city": CityInfoSerializer(),
            "message": serializers.CharField(),
        },
    ),
)

session_success_response = success_envelope_serializer(
    "GreenspaceAnalysisStatus",
    data=inline_serializer(
        name="GreenspaceAnalysisStatusData",
        fields={
            "session_id": serializers.CharField(),
            "status": serializers.CharField(),
            "done": serializers.BooleanField(),
            "city": CityInfoSerializer(allow_null=True),
            "result": TrendResultSerializer(allow_null=True),
            "error": serializers.JSONField(allow_null=True),
        },
    ),
)

cancel_success_response = success_envelope_serializer(
    "GreenspaceAnalysisCancel",
    data=inline_serializer(
        name="GreenspaceAnalysisCancelData",
        fields={
            "session_id": serializers.CharField(),
            "cancelled": serializers.BooleanField(),
        },
    ),
)


def _require_session(session_id: str) -> AnalysisSession:
    session = get_session(session_id)
    if session is None:
        raise NotFound(f"Unknown analysis session: {session_id}")
    return session


def session_payload(session: AnalysisSession) -> dict[str, Any]:
    result = None
    error = None
    if session.terminal_event is not None:
        data = session.terminal_event.payload
        if "result" in data:
            result = data["result"]
        else:
            error = {
                "error": data.get("error"),
                "error_type": data.get("error_type"),
                "cancelled": data.get("cancelled", False),
            }
    return {
        "session_id": session.session_id,
        "status": session.status.value,
        "done": session.done,
        "city": serialize_city(session.city),
        "result": result,
        "error": error,
    }


class AnalysisStartView(APIView):
    """Start a greenspace trend analysis for a city boundary."""

    permission_classes = [AllowAny]
    throttle_scope = "greenspace-analyses"

    @extend_schema(
        request=AnalysisRequestSerializer,
        responses={
            202: start_success_response,
            400: greenspace_error_response,
            429: greenspace_error_response,
        },
    )
    def post(self, request: Request) -> Response:
        """Validate the boundary and launch the analysis in the background.

        Returns the session id to subscribe to; the analysis itself runs
        after the response is sent.
        """

        serializer = AnalysisRequestSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        params = serializer.validated_data

        session_id = start_analysis(
            params["boundary"], params["city"], params["year_range"]
        )
        return success_response(
            {
                "session_id": session_id,
                "city": serialize_city(params["city"]),
                "message": "Analysis started. Subscribe to the events stream.",
            },
            message="Analysis started",
            status_code=status.HTTP_202_ACCEPTED,
        )


class AnalysisStatusView(APIView):
    permission_classes = [AllowAny]

    @extend_schema(
        responses={
            200: session_success_response,
            404: greenspace_error_response,
        }
    )
    def get(self, request: Request, session_id: str) -> Response:
        session = _require_session(session_id)
        return success_response(
            session_payload(session), message="Analysis status"
        )


class AnalysisCancelView(APIView):
    permission_classes = [AllowAny]

    @extend_schema(
        request=None,
        responses={
            202: cancel_success_response,
            404: greenspace_error_response,
            409: greenspace_error_response,
        },
    )
    def post(self, request: Request, session_id: str) -> Response:
        """Request cancellation; the analysis stops at the next cell."""

        session = _require_session(session_id)
        if not cancel_analysis(session.session_id):
            return error_response(
                "Analysis already finished",
                errors={"status": session.status.value},
                status_code=status.HTTP_409_CONFLICT,
            )
        return success_response(
            {"session_id": session.session_id, "cancelled": True},
            message="Cancellation requested",
            status_code=status.HTTP_202_ACCEPTED,
        )


def format_sse(message: dict[str, Any]) -> str:
    body = json.dumps(message, cls=DjangoJSONEncoder)
    return f"event: {message['type']}\ndata: {body}\n\n"


def _connected_frame(session: AnalysisSession) -> str:
    return format_sse(
        ProgressEvent(
            session.session_id,
            "connected",
            {"message": "Connected to analysis progress stream"},
        ).as_message()
    )


def event_stream(
    session: AnalysisSession,
    subscription: Subscription,
    *,
    heartbeat_seconds: float = HEARTBEAT_SECONDS,
) -> Iterator[str]:
    """Yield SSE frames until the session's terminal event."""

    try:
        yield _connected_frame(session)
        # Subscribed after the analysis finished: replay the stored outcome.
        if session.terminal_event is not None:
            yield format_sse(session.terminal_event.as_message())
            return
        while True:
            event = subscription.get(timeout=heartbeat_seconds)
            if event is None:
                yield ": keep-alive\n\n"
                continue
            yield format_sse(event.as_message())
            if event.is_terminal:
                return
    finally:
        subscription.close()


async def aevent_stream(
    session: AnalysisSession,
    subscription: Subscription,
    *,
    heartbeat_seconds: float = HEARTBEAT_SECONDS,
) -> AsyncIterator[str]:
    """Async `event_stream` for ASGI servers.

    The blocking queue wait runs in a worker thread, so the event loop
    keeps serving while each frame is flushed as soon as it is yielded.
    """

    try:
        yield _connected_frame(session)
        if session.terminal_event is not None:
            yield format_sse(session.terminal_event.as_message())
            return
        while True:
            event = await asyncio.to_thread(
                subscription.get, heartbeat_seconds
            )
            if event is None:
                yield ": keep-alive\n\n"
                continue
            yield format_sse(event.as_message())
            if event.is_terminal:
                return
    finally:
        subscription.close()


class AnalysisEventsView(View):
    """Server-Sent Events stream of an analysis session's progress.

    ASGI requests get the async stream; WSGI requests keep the sync one,
    since Django buffers async iterators fully when serving over WSGI.
    """

    heartbeat_seconds = HEARTBEAT_SECONDS

    def get(self, request: HttpRequest, session_id: str) -> Any:
        session = get_session(session_id)
        if session is None:
            return json_error(
                f"Unknown analysis session: {session_id}",
                status_code=status.HTTP_404_NOT_FOUND,
            )
        subscription = subscribe_progress(session_id)
        stream = (
            aevent_stream if isinstance(request, ASGIRequest) else event_stream
        )
        response = StreamingHttpResponse(
            stream(
                session, subscription, heartbeat_seconds=self.heartbeat_seconds
            ),
            content_type="text/event-stream",
        )
        response["Cache-Control"] = "no-cache"
        response["X-Accel-Buffering"] = "no"
        return response
