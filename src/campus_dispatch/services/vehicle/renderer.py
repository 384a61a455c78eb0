"""Map renderer contract and a tick-driven simulated implementation."""

from __future__ import annotations

import asyncio
import logging
from typing import Callable, Protocol, Sequence

from ...models.domain import Coordinate
from ..geospatial import haversine_m

logger = logging.getLogger(__name__)

ArrivalCallback = Callable[[], None]


class MapRenderer(Protocol):
    def move_along(self, path: Sequence[Coordinate], speed_kmh: float) -> None:
        ...

    def stop_move(self) -> None:
        ...

    def get_position(self) -> Coordinate:
        ...

    def set_position(self, position: Coordinate) -> None:
        ...

    def on_arrival(self, callback: ArrivalCallback) -> None:
        ...

    def off_arrival(self, callback: ArrivalCallback) -> None:
        ...


class SimulatedRenderer:
    """Moves a virtual vehicle along a path at constant speed.

    Motion only progresses through ``advance``; ``run`` drives it from the
    event loop. Supports native pause/resume.
    """

    def __init__(self, position: Coordinate) -> None:
        self._position = position
        self._path: list[Coordinate] = []
        self._next_index = 0
        self._speed_mps = 0.0
        self._moving = False
        self._paused = False
        self._listeners: list[ArrivalCallback] = []

    @property
    def is_moving(self) -> bool:
        return self._moving and not self._paused

    def move_along(self, path: Sequence[Coordinate], speed_kmh: float) -> None:
        if not path:
            raise ValueError("Cannot move along an empty path.")
        self._path = list(path)
        self._position = self._path[0]
        self._next_index = 1
        self._speed_mps = speed_kmh / 3.6
        self._moving = True
        self._paused = False

    def pause_move(self) -> None:
        self._paused = True

    def resume_move(self) -> None:
        self._paused = False

    def stop_move(self) -> None:
        self._moving = False
        self._paused = False
        self._path = []

    def get_position(self) -> Coordinate:
        return self._position

    def set_position(self, position: Coordinate) -> None:
        self._position = position

    def on_arrival(self, callback: ArrivalCallback) -> None:
        self._listeners.append(callback)

    def off_arrival(self, callback: ArrivalCallback) -> None:
        if callback in self._listeners:
            self._listeners.remove(callback)

    def advance(self, seconds: float) -> None:
        if not self.is_moving:
            return
        budget = self._speed_mps * seconds
        while budget > 0 and self._next_index < len(self._path):
            target = self._path[self._next_index]
            gap = haversine_m(self._position, target)
            if gap <= budget:
                self._position = target
                self._next_index += 1
                budget -= gap
            else:
                fraction = budget / gap
                self._position = Coordinate(
                    self._position.lng + (target.lng - self._position.lng) * fraction,
                    self._position.lat + (target.lat - self._position.lat) * fraction,
                )
                budget = 0
        if self._next_index >= len(self._path):
            self._moving = False
            for callback in list(self._listeners):
                callback()

    async def run(self, tick_seconds: float, time_scale: float = 1.0) -> None:
        logger.info(f"Simulated renderer running (tick {tick_seconds}s, scale x{time_scale})")
        while True:
            await asyncio.sleep(tick_seconds)
            try:
                self.advance(tick_seconds * time_scale)
            except Exception:
                logger.exception("Renderer tick failed")
