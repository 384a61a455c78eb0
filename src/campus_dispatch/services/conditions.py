"""Operating conditions that can suspend new missions."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

logger = logging.getLogger(__name__)

# Rain, snow and storms suspend service; map providers report conditions in Chinese
HAZARDOUS_WEATHER_KEYWORDS: tuple[str, ...] = ("rain", "snow", "storm", "雨", "雪", "暴")


def is_hazardous_weather(condition: str) -> bool:
    text = condition.strip().lower()
    return any(keyword in text for keyword in HAZARDOUS_WEATHER_KEYWORDS)


@dataclass(slots=True)
class ServiceConditions:
    degraded: bool = False
    reason: Optional[str] = None
    weather: Optional[str] = None

    def report_weather(self, condition: str) -> bool:
        """Update from a live weather reading; returns the resulting degraded flag."""
        self.weather = condition
        if is_hazardous_weather(condition):
            self.set_degraded(True, f"hazardous weather ({condition})")
        elif self.degraded and (self.reason or "").startswith("hazardous weather"):
            self.set_degraded(False)
        return self.degraded

    def set_degraded(self, degraded: bool, reason: Optional[str] = None) -> None:
        if degraded and not self.degraded:
            logger.warning(f"Service degraded: {reason}")
        elif self.degraded and not degraded:
            logger.info("Service restored")
        self.degraded = degraded
        self.reason = (reason or "service suspended") if degraded else None
