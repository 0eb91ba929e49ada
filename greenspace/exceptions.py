"""Domain errors raised by the greenspace analysis engine."""

from __future__ import annotations


class GreenspaceError(Exception):
    """Base class for greenspace analysis failures."""


class InvalidBoundary(GreenspaceError):
    """Boundary geometry is missing, degenerate or outside lon/lat range."""


class InvalidYearRange(GreenspaceError):
    """Requested historical year range cannot be analyzed."""


class DataUnavailable(GreenspaceError):
    """A provider produced no usable samples for a cell and year."""

    def __init__(self, message: str, *, cell_index: int | None = None) -> None:
        self.cell_index = cell_index
        super().__init__(message)


class AuthenticationFailure(GreenspaceError):
    """Access token acquisition against the imagery provider failed."""


class IntersectionCheckFailure(GreenspaceError):
    """Geometry evaluation failed while filtering grid cells."""


class ChannelDeliveryFailure(GreenspaceError):
    """A progress listener raised while receiving an event."""

    def __init__(self, session_id: str, event_type: str, cause: Exception):
        self.session_id = session_id
        self.event_type = event_type
        self.cause = cause
        super().__init__(
            f"listener failed session_id={session_id} type={event_type} "
            f"err={cause!r}"
        )


class AnalysisCancelled(GreenspaceError):
    """The analysis was cancelled through its cancellation token."""
