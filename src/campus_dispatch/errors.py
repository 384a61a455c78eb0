"""Domain errors raised by the dispatch core."""

from __future__ import annotations

from typing import Any


class DispatchError(Exception):
    """Base class for every error surfaced to callers of the mission controller."""


class ValidationError(DispatchError):
    """Rejected request: empty, unknown, duplicate or disabled selection."""


class GeofenceViolation(DispatchError):
    def __init__(self, lng: float, lat: float) -> None:
        super().__init__(f"Point ({lng:.6f}, {lat:.6f}) is outside the operating area.")
        self.lng = lng
        self.lat = lat


class PlanningFailed(DispatchError):
    """A routing leg failed or returned no usable path."""

    def __init__(self, leg_index: int, raw: Any = None, message: str | None = None) -> None:
        super().__init__(message or f"Route planning failed on leg {leg_index}.")
        self.leg_index = leg_index
        self.raw = raw


class InvalidTransition(DispatchError):
    def __init__(self, operation: str, state: Any) -> None:
        state_name = getattr(state, "value", state)
        super().__init__(f"Operation '{operation}' is not allowed while the mission is {state_name}.")
        self.operation = operation
        self.state = state


class ServiceDegraded(DispatchError):
    def __init__(self, reason: str) -> None:
        super().__init__(f"Service is suspended: {reason}")
        self.reason = reason
