"""
Elevation grid adapter and the 8-neighbour direction table.

Coordinates are (x, y) = (column, row); linear indices are row-major
(``y * width + x``). Neighbour offsets follow one fixed angular order
(E, SE, S, SW, W, NW, N, NE) and every per-direction fact lives on a
single ``Direction`` record indexed by that order.
"""

import math
from collections.abc import Iterator
from dataclasses import dataclass

import numpy as np

from spilldem.constants import D8_CODES, DIRECTION_NAMES, LDD_CODES

# (dx, dy) per direction, y grows downwards (row order)
_OFFSETS = ((1, 0), (1, 1), (0, 1), (-1, 1), (-1, 0), (-1, -1), (0, -1), (1, -1))


@dataclass(frozen=True)
class Direction:
    """
    One of the 8 Moore-neighbourhood directions.

    Attributes
    ----------
    index : int
        Position in the angular order (0-7)
    name : str
        Compass name (E, SE, ...)
    dx, dy : int
        Column / row offset to the neighbour
    length : float
        Physical distance to the neighbour centre
    min_increment : float
        Minimum elevation gain enforced along this direction
        (0 when slope preservation is disabled)
    d8_code, ldd_code : int
        Output codes in the D8 and LDD encodings
    """

    index: int
    name: str
    dx: int
    dy: int
    length: float
    min_increment: float
    d8_code: int
    ldd_code: int

    @property
    def opposite(self) -> int:
        """Index of the direction pointing the other way."""
        return (self.index + 4) % 8


def build_directions(
    xres: float = 1.0,
    yres: float = 1.0,
    min_slope_degrees: float = 0.0,
) -> tuple[Direction, ...]:
    """
    Build the direction table for a given pixel size.

    Parameters
    ----------
    xres, yres : float
        Horizontal and vertical pixel size
    min_slope_degrees : float
        Minimum slope angle to preserve; 0 disables the increments

    Returns
    -------
    tuple[Direction, ...]
        8 directions in angular order
    """
    tan_slope = math.tan(math.radians(min_slope_degrees))
    diagonal = math.hypot(xres, yres)

    directions = []
    for i, (dx, dy) in enumerate(_OFFSETS):
        if dx and dy:
            length = diagonal
        elif dx:
            length = xres
        else:
            length = yres
        directions.append(
            Direction(
                index=i,
                name=DIRECTION_NAMES[i],
                dx=dx,
                dy=dy,
                length=length,
                min_increment=tan_slope * length,
                d8_code=D8_CODES[i],
                ldd_code=LDD_CODES[i],
            )
        )
    return tuple(directions)


class Grid:
    """
    Read-only view of an elevation raster with bounds-checked neighbours.

    Parameters
    ----------
    data : np.ndarray
        2D elevation array (rows x cols)
    nodata : float
        NoData value, NaN allowed
    xres, yres : float
        Pixel size along x (columns) and y (rows)
    """

    def __init__(
        self,
        data: np.ndarray,
        nodata: float,
        xres: float = 1.0,
        yres: float = 1.0,
    ):
        data = np.asarray(data)
        if data.ndim != 2:
            raise ValueError(f"Elevation grid must be 2D, got {data.ndim}D")
        if data.size == 0:
            raise ValueError(f"Elevation grid has zero area: shape {data.shape}")
        if not (xres > 0 and yres > 0):
            raise ValueError(f"Pixel size must be positive, got ({xres}, {yres})")

        self.data = data
        self.height, self.width = data.shape
        self.nodata = float(nodata)
        self.xres = float(xres)
        self.yres = float(yres)
        self.directions = build_directions(self.xres, self.yres)
        self._nodata_mask = self._build_nodata_mask()
        self._edge_mask = self._build_edge_mask()

    @property
    def size(self) -> int:
        return self.width * self.height

    def _build_nodata_mask(self) -> np.ndarray:
        if not np.issubdtype(self.data.dtype, np.floating):
            return self.data == self.nodata
        # NaN never carries an elevation, whatever the declared NoData
        if math.isnan(self.nodata):
            return np.isnan(self.data)
        return (self.data == self.nodata) | np.isnan(self.data)

    def _build_edge_mask(self) -> np.ndarray:
        mask = np.zeros((self.height, self.width), dtype=bool)
        mask[0, :] = mask[-1, :] = True
        mask[:, 0] = mask[:, -1] = True
        # any 8-neighbour is NoData: OR of the shifted, padded mask
        padded = np.pad(self._nodata_mask, 1)
        for d in self.directions:
            mask |= padded[
                1 + d.dy : 1 + d.dy + self.height, 1 + d.dx : 1 + d.dx + self.width
            ]
        return mask

    def nodata_mask(self) -> np.ndarray:
        """Boolean mask, True where the input is NoData."""
        return self._nodata_mask

    def in_bounds(self, x: int, y: int) -> bool:
        return 0 <= x < self.width and 0 <= y < self.height

    def index(self, x: int, y: int) -> int:
        return y * self.width + x

    def coords(self, index: int) -> tuple[int, int]:
        y, x = divmod(index, self.width)
        return x, y

    def neighbor(self, x: int, y: int, d: int) -> tuple[int, int, bool]:
        """Neighbour of (x, y) in direction ``d`` and whether it is in bounds."""
        direction = self.directions[d]
        nx, ny = x + direction.dx, y + direction.dy
        return nx, ny, self.in_bounds(nx, ny)

    def neighbors(self, x: int, y: int) -> Iterator[tuple[Direction, int, int]]:
        """Yield (direction, nx, ny) for in-bounds neighbours, in angular order."""
        for direction in self.directions:
            nx, ny = x + direction.dx, y + direction.dy
            if 0 <= nx < self.width and 0 <= ny < self.height:
                yield direction, nx, ny

    def elevation(self, x: int, y: int) -> float:
        return float(self.data[y, x])

    def is_nodata(self, x: int, y: int) -> bool:
        return bool(self._nodata_mask[y, x])

    def edge_mask(self) -> np.ndarray:
        """Boolean mask, True on the raster boundary or next to NoData."""
        return self._edge_mask

    def is_edge(self, x: int, y: int) -> bool:
        """True on the raster boundary or next to a NoData cell."""
        return bool(self._edge_mask[y, x])
