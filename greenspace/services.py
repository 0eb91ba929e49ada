"""Analysis sessions: start, observe, cancel.

`start_analysis` returns a session id immediately; the analysis runs as a
task on a background event loop thread and reports through the shared
`ProgressChannel`. Every session ends with exactly one terminal event,
kept on the session so late subscribers can still read it.
"""

from __future__ import annotations

import asyncio
import logging
import threading
import time
import uuid
from collections.abc import Callable
from concurrent.futures import Future
from dataclasses import dataclass, field
from enum import Enum

from django.conf import settings

from .analyzer import YearAnalyzer
from .engines.registry import default_strictness, get_provider
from .engines.types import Boundary, CancellationToken, CityInfo, YearRange
from .exceptions import AnalysisCancelled
from .metrics import greenspace_active_sessions, greenspace_analyses_total
from .orchestrator import TrendOrchestrator
from .progress import (
    ANALYSIS_COMPLETED,
    ANALYSIS_ERROR,
    ANALYSIS_STARTED,
    ProgressChannel,
    ProgressEvent,
    Subscription,
)
from .serializers import serialize_city, serialize_trend

logger = logging.getLogger(__name__)

SESSION_TTL_SECONDS = int(
    getattr(settings, "GREENSPACE_SESSION_TTL_SECONDS", 3600)
)
OrchestratorFactory = Callable[[], TrendOrchestrator]


class SessionStatus(str, Enum):
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


@dataclass
class AnalysisSession:
    session_id: str
    city: CityInfo | None
    started_at: float
    cancel_token: CancellationToken = field(default_factory=CancellationToken)
    status: SessionStatus = SessionStatus.RUNNING
    future: Future[None] | None = None
    terminal_event: ProgressEvent | None = None
    finished_at: float | None = None

    @property
    def done(self) -> bool:
        return self.terminal_event is not None


def build_orchestrator() -> TrendOrchestrator:
    analyzer = YearAnalyzer(get_provider(), strictness=default_strictness())
    return TrendOrchestrator(analyzer)


class AnalysisSessions:
    """Registry of running and recently finished analyses."""

    def __init__(
        self,
        channel: ProgressChannel,
        *,
        orchestrator_factory: OrchestratorFactory = build_orchestrator,
        ttl_seconds: int = SESSION_TTL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.channel = channel
        self.orchestrator_factory = orchestrator_factory
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._lock = threading.Lock()
        self._sessions: dict[str, AnalysisSession] = {}
        self._loop: asyncio.AbstractEventLoop | None = None
        self._thread: threading.Thread | None = None

    def _ensure_loop(self) -> asyncio.AbstractEventLoop:
        with self._lock:
            if self._loop is None or self._loop.is_closed():
                loop = asyncio.new_event_loop()
                thread = threading.Thread(
                    target=loop.run_forever,
                    name="greenspace-analysis-loop",
                    daemon=True,
                )
                thread.start()
                self._loop, self._thread = loop, thread
            return self._loop

    def start(
        self,
        boundary: Boundary,
        city: CityInfo | None = None,
        year_range: YearRange | None = None,
    ) -> str:
        self.prune()
        orchestrator = self.orchestrator_factory()
        session = AnalysisSession(
            session_id=f"analysis_{uuid.uuid4().hex}",
            city=city,
            started_at=self._clock(),
        )
        with self._lock:
            self._sessions[session.session_id] = session

        loop = self._ensure_loop()
        session.future = asyncio.run_coroutine_threadsafe(
            self._run(session, orchestrator, boundary, year_range), loop
        )
        logger.info(
            "greenspace.session.started session_id=%s city=%s area_km2=%.2f",
            session.session_id,
            city.name if city else None,
            boundary.area_km2,
        )
        return session.session_id

    async def _run(
        self,
        session: AnalysisSession,
        orchestrator: TrendOrchestrator,
        boundary: Boundary,
        year_range: YearRange | None,
    ) -> None:
        session_id = session.session_id
        strategy = orchestrator.analyzer.provider.name
        greenspace_active_sessions.inc()
        try:
            self.channel.publish(
                session_id,
                ANALYSIS_STARTED,
                {
                    "city": serialize_city(session.city),
                    "message": "Greenspace analysis started",
                },
            )
            try:
                result = await orchestrator.analyze(
                    boundary,
                    year_range,
                    city=session.city,
                    progress=self.channel.reporter(session_id),
                    cancel=session.cancel_token,
                )
            except AnalysisCancelled as exc:
                logger.info(
                    "greenspace.session.cancelled session_id=%s", session_id
                )
                self._finish(
                    session,
                    SessionStatus.CANCELLED,
                    ANALYSIS_ERROR,
                    {
                        "error": str(exc),
                        "error_type": type(exc).__name__,
                        "cancelled": True,
                        "message": "Analysis cancelled",
                    },
                )
            except Exception as exc:
                logger.exception(
                    "greenspace.session.failed session_id=%s", session_id
                )
                self._finish(
                    session,
                    SessionStatus.FAILED,
                    ANALYSIS_ERROR,
                    {
                        "error": str(exc),
                        "error_type": type(exc).__name__,
                        "cancelled": False,
                        "message": f"Analysis failed: {exc}",
                    },
                )
            else:
                self._finish(
                    session,
                    SessionStatus.COMPLETED,
                    ANALYSIS_COMPLETED,
                    {
                        "result": serialize_trend(result),
                        "message": "Analysis completed",
                    },
                )
        finally:
            greenspace_active_sessions.dec()
            greenspace_analyses_total.labels(
                status=session.status.value, strategy=strategy
            ).inc()

    def _finish(
        self,
        session: AnalysisSession,
        status: SessionStatus,
        event_type: str,
        payload: dict[str, object],
    ) -> None:
        # Store before publishing; subscribers check the stored event first.
        session.terminal_event = ProgressEvent(
            session.session_id, event_type, dict(payload)
        )
        session.status = status
        session.finished_at = self._clock()
        self.channel.publish(session.session_id, event_type, payload)

    def get(self, session_id: str) -> AnalysisSession | None:
        with self._lock:
            return self._sessions.get(session_id)

    def cancel(self, session_id: str) -> bool:
        session = self.get(session_id)
        if session is None or session.done:
            return False
        session.cancel_token.cancel()
        logger.info(
            "greenspace.session.cancel_requested session_id=%s", session_id
        )
        return True

    def wait(
        self, session_id: str, timeout: float | None = None
    ) -> AnalysisSession:
        session = self.get(session_id)
        if session is None:
            raise KeyError(session_id)
        if session.future is not None:
            session.future.result(timeout=timeout)
        return session

    def active_count(self) -> int:
        with self._lock:
            return sum(1 for s in self._sessions.values() if not s.done)

    def prune(self) -> int:
        """Forget finished sessions older than the TTL."""

        cutoff = self._clock() - self.ttl_seconds
        with self._lock:
            expired = [
                sid
                for sid, s in self._sessions.items()
                if s.finished_at is not None and s.finished_at < cutoff
            ]
            for sid in expired:
                del self._sessions[sid]
        if expired:
            logger.debug("greenspace.session.pruned count=%s", len(expired))
        return len(expired)

    def shutdown(self) -> None:
        with self._lock:
            loop, thread = self._loop, self._thread
            self._loop = self._thread = None
        if loop is None:
            return
        loop.call_soon_threadsafe(loop.stop)
        if thread is not None:
            thread.join(timeout=5)
        loop.close()


channel = ProgressChannel()
sessions = AnalysisSessions(channel)


def start_analysis(
    boundary: Boundary,
    city: CityInfo | None = None,
    year_range: YearRange | None = None,
) -> str:
    return sessions.start(boundary, city, year_range)


def subscribe_progress(session_id: str) -> Subscription:
    return channel.subscribe(session_id)


def get_session(session_id: str) -> AnalysisSession | None:
    return sessions.get(session_id)


def cancel_analysis(session_id: str) -> bool:
    return sessions.cancel(session_id)
