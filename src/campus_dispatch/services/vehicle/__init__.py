"""Vehicle motion and rendering."""

from .motion import MotionController
from .renderer import MapRenderer, SimulatedRenderer

__all__ = ["MapRenderer", "MotionController", "SimulatedRenderer"]
