"""
SpillDEM: priority-flood depression filling for DEM rasters.
"""

from spilldem.flood import FloodEngine, FloodResult, fill_depressions
from spilldem.grid import Direction, Grid, build_directions
from spilldem.options import FillOptions

__version__ = "0.1.0"

__all__ = [
    "Direction",
    "FillOptions",
    "FloodEngine",
    "FloodResult",
    "Grid",
    "build_directions",
    "fill_depressions",
]
