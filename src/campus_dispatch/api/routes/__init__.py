"""Route group exports."""

from . import health, history, locations, missions, waypoints

__all__ = ["health", "locations", "missions", "waypoints", "history"]
