"""Vehicle motion façade over the map renderer."""

from __future__ import annotations

import logging
from typing import Sequence

from ...models.domain import Coordinate
from .renderer import ArrivalCallback, MapRenderer

logger = logging.getLogger(__name__)


class MotionController:
    def __init__(self, renderer: MapRenderer) -> None:
        self.renderer = renderer
        self.moving = False
        self.paused = False
        self._listener: ArrivalCallback | None = None

    def _detach(self) -> None:
        if self._listener is not None:
            self.renderer.off_arrival(self._listener)
            self._listener = None

    def start(self, path: Sequence[Coordinate], speed_kmh: float, on_arrival: ArrivalCallback) -> None:
        """Animate along ``path``; ``on_arrival`` fires at most once for this command."""
        self._detach()
        fired = False

        def _listener() -> None:
            nonlocal fired
            if fired:
                return
            fired = True
            if self._listener is _listener:
                self._detach()
                self.moving = False
            on_arrival()

        self._listener = _listener
        self.moving = True
        self.paused = False
        self.renderer.on_arrival(_listener)
        self.renderer.move_along(list(path), speed_kmh=speed_kmh)
        logger.debug(f"Motion started along {len(path)} points at {speed_kmh} km/h")

    def pause(self) -> None:
        pause_move = getattr(self.renderer, "pause_move", None)
        if callable(pause_move):
            pause_move()
        else:
            logger.warning("Renderer cannot pause, vehicle keeps moving while marked paused")
        self.paused = True

    def resume(self) -> None:
        resume_move = getattr(self.renderer, "resume_move", None)
        if callable(resume_move):
            resume_move()
        self.paused = False

    def stop(self) -> None:
        self._detach()
        self.renderer.stop_move()
        self.moving = False
        self.paused = False

    def current_position(self) -> Coordinate:
        return self.renderer.get_position()

    def place_at(self, position: Coordinate) -> None:
        self.stop()
        self.renderer.set_position(position)
