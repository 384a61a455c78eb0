"""Mission orchestration."""

from .controller import (
    MODE_AUTO,
    MODE_CUSTOM,
    RECORD_CANCELLED_MISSIONS,
    MissionController,
    MissionSnapshot,
    generate_transport_code,
)

__all__ = [
    "MODE_AUTO",
    "MODE_CUSTOM",
    "RECORD_CANCELLED_MISSIONS",
    "MissionController",
    "MissionSnapshot",
    "generate_transport_code",
]
