"""
Domain errors raised by the analytics engines.

Routes translate these into HTTP responses (404 / 422 / 400).
"""


class AnalyticsError(Exception):
    """Base class for all analytics errors."""


class NotFoundError(AnalyticsError):
    """Requested flight or resource does not exist in the track store."""

    def __init__(self, flight_id: str):
        super().__init__(f"Flight {flight_id} not found")
        self.flight_id = flight_id


class InsufficientDataError(AnalyticsError):
    """Not enough track points to run the requested analysis."""

    def __init__(self, flight_id: str, have: int, need: int):
        super().__init__(f"Flight {flight_id} has {have} track points, need at least {need}")
        self.flight_id = flight_id
        self.have = have
        self.need = need


class InvalidWindowError(AnalyticsError):
    """Analysis window is empty, inverted or too long."""
