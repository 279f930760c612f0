"""
Priority-flood depression filling (Wang & Liu 2006) with optional
minimum slope preservation and D8/LDD flow direction derivation.

The engine floods inwards from the raster boundary and from cells next to
NoData, always expanding the frontier cell with the lowest spill
elevation. Each newly discovered cell gets its spill elevation written
exactly once, so the filled surface is non-decreasing along every path
back to an outlet.

Seeding and draining run in a numba-compiled kernel over flat numpy
buffers; ``Grid`` and ``Direction`` stay the Python-side adapter that
feeds it.
"""

import heapq
import logging
import time
from dataclasses import dataclass, field
from enum import Enum, IntEnum

import numba
import numpy as np

from spilldem.constants import (
    DEFAULT_NODATA,
    FLOW_ENCODINGS,
    FLOW_FLAT,
    FLOW_NODATA,
    NO_DIRECTION,
)
from spilldem.grid import Direction, Grid, build_directions
from spilldem.options import FillOptions

logger = logging.getLogger(__name__)

# Internal flow markers (direction-index buffer, int8)
_FLOW_UNSET = NO_DIRECTION
_FLOW_OUTFLOW = -2


class CellStatus(IntEnum):
    """Per-cell traversal state. Transitions only move forward."""

    UNVISITED = 0
    QUEUED = 1
    RESOLVED = 2


class EngineState(Enum):
    NEW = "new"
    SEEDING = "seeding"
    DRAINING = "draining"
    DONE = "done"


_UNVISITED = int(CellStatus.UNVISITED)
_QUEUED = int(CellStatus.QUEUED)
_RESOLVED = int(CellStatus.RESOLVED)

# Kernel error codes (0 = ok)
_ERR_NOT_QUEUED = 1
_ERR_BELOW_RAW = 2


@numba.njit(cache=True)
def _spill(
    z: float, raw: float, min_increment: float, preserve_slope: bool
) -> tuple[float, bool]:
    if preserve_slope:
        return max(raw, z + min_increment), False
    if raw > z:
        return raw, False
    return z, True


@numba.njit(cache=True)
def _steepest(z: float, elevs: np.ndarray, lengths: np.ndarray) -> int:
    best = -1
    best_gradient = -np.inf
    for k in range(elevs.shape[0]):
        if elevs[k] > z:
            continue
        gradient = (z - elevs[k]) / lengths[k]
        # strict > keeps the first candidate on ties
        if gradient > best_gradient:
            best_gradient = gradient
            best = k
    return best


@numba.njit(cache=True)
def _flood(
    raw: np.ndarray,
    nodata: np.ndarray,
    seeds: np.ndarray,
    width: int,
    dx: np.ndarray,
    dy: np.ndarray,
    lengths: np.ndarray,
    min_increments: np.ndarray,
    preserve_slope: bool,
    compute_flow: bool,
    filled: np.ndarray,
    status: np.ndarray,
    flow_dir: np.ndarray,
    discovered_from: np.ndarray,
) -> tuple[int, int, int]:
    """
    Seed and drain the priority queue over flat (row-major) buffers.

    Buffers are updated in place. Returns (discovered, error, error_idx);
    error is one of the _ERR_* codes, 0 when the run completed.
    """
    n = raw.shape[0]
    height = n // width
    cand_elev = np.empty(8, dtype=np.float64)
    cand_len = np.empty(8, dtype=np.float64)
    cand_dir = np.empty(8, dtype=np.int64)

    # seed one entry so numba can type the heap, then empty it
    heap = [(0.0, 0, 0)]
    heap.pop()
    sequence = 0

    for idx in range(n):
        if nodata[idx]:
            status[idx] = _RESOLVED
            flow_dir[idx] = _FLOW_OUTFLOW
        elif seeds[idx]:
            filled[idx] = raw[idx]
            status[idx] = _QUEUED
            flow_dir[idx] = _FLOW_OUTFLOW
            heapq.heappush(heap, (raw[idx], sequence, idx))
            sequence += 1

    discovered = 0
    while len(heap) > 0:
        spill, _seq, idx = heapq.heappop(heap)
        if status[idx] != _QUEUED:
            return discovered, _ERR_NOT_QUEUED, idx
        if spill < raw[idx]:
            return discovered, _ERR_BELOW_RAW, idx
        status[idx] = _RESOLVED

        y = idx // width
        x = idx - y * width
        for d in range(8):
            nx = x + dx[d]
            ny = y + dy[d]
            if nx < 0 or nx >= width or ny < 0 or ny >= height:
                continue
            nidx = ny * width + nx
            if status[nidx] != _UNVISITED:
                continue
            nspill, force_flow = _spill(
                spill, raw[nidx], min_increments[d], preserve_slope
            )
            filled[nidx] = nspill
            status[nidx] = _QUEUED
            discovered_from[nidx] = d
            if force_flow and compute_flow:
                flow_dir[nidx] = (d + 4) % 8
            heapq.heappush(heap, (nspill, sequence, nidx))
            sequence += 1
            discovered += 1

        if compute_flow and flow_dir[idx] == _FLOW_UNSET:
            k = 0
            for d in range(8):
                nx = x + dx[d]
                ny = y + dy[d]
                if nx < 0 or nx >= width or ny < 0 or ny >= height:
                    continue
                nidx = ny * width + nx
                if status[nidx] != _RESOLVED or nodata[nidx]:
                    continue
                cand_elev[k] = filled[nidx]
                cand_len[k] = lengths[d]
                cand_dir[k] = d
                k += 1
            best = _steepest(spill, cand_elev[:k], cand_len[:k])
            if best >= 0:
                flow_dir[idx] = cand_dir[best]

    return discovered, 0, -1


def spill_elevation(
    z: float,
    raw: float,
    direction: Direction,
    preserve_slope: bool = False,
) -> tuple[float, bool]:
    """
    Spill elevation of a neighbour discovered from a resolved cell.

    Parameters
    ----------
    z : float
        Resolved spill elevation of the discovering cell
    raw : float
        Raw elevation of the neighbour
    direction : Direction
        Direction from the discovering cell to the neighbour
    preserve_slope : bool
        Enforce ``direction.min_increment`` instead of the no-decrease rule

    Returns
    -------
    tuple
        (spill, force_flow) where force_flow means the discovering cell
        is the neighbour's drain target
    """
    spill, force_flow = _spill(
        float(z), float(raw), float(direction.min_increment), bool(preserve_slope)
    )
    return float(spill), bool(force_flow)


def steepest_descent(
    z: float,
    candidates,
) -> int:
    """
    Pick the steepest downhill-or-level drain among resolved neighbours.

    Parameters
    ----------
    z : float
        Spill elevation of the cell being encoded
    candidates : iterable of (Direction, float)
        Resolved neighbours with their final elevations, in angular order

    Returns
    -------
    int
        Direction index, or NO_DIRECTION when nothing qualifies
    """
    candidates = list(candidates)
    if not candidates:
        return NO_DIRECTION
    elevs = np.array([elev for _d, elev in candidates], dtype=np.float64)
    lengths = np.array([d.length for d, _elev in candidates], dtype=np.float64)
    best = _steepest(float(z), elevs, lengths)
    if best < 0:
        return NO_DIRECTION
    return candidates[best][0].index
@dataclass
class FloodResult:
    """
    Output of a single flood run.

    Attributes
    ----------
    filled : np.ndarray
        Depression-filled DEM (float64), NoData where the input was NoData
    flow : np.ndarray | None
        Flow direction codes (uint8), None when flow was not requested
    discovered_from : np.ndarray
        Direction index from discovering cell to each cell (int8),
        -1 for seeds and NoData
    stats : dict
        Run statistics
    nodata : float
        NoData value of ``filled``
    raw : np.ndarray
        Read-only float64 copy of the input elevations
    """

    filled: np.ndarray
    flow: np.ndarray | None
    discovered_from: np.ndarray
    stats: dict
    nodata: float
    raw: np.ndarray = field(repr=False)

    def fill_depth(self) -> np.ndarray:
        """Amount of fill applied per cell (0 on NoData)."""
        depth = self.filled - self.raw.astype(np.float64)
        depth[(self.raw == self.nodata) | np.isnan(depth)] = 0.0
        return depth


class FloodEngine:
    """
    Single-use priority-flood traversal over one grid.

    Lifecycle: construct, ``run()`` once, use the returned ``FloodResult``.
    All buffers are owned by the engine and sized to the grid at
    construction; the compiled kernel fills them in place.

    Equal spill elevations pop in insertion order (a sequence counter is
    part of every heap entry), so runs are reproducible.
    """

    def __init__(self, grid: Grid, options: FillOptions | None = None):
        self.grid = grid
        self.options = options or FillOptions()
        self.directions = build_directions(
            grid.xres, grid.yres, self.options.min_slope_degrees
        )
        self.state = EngineState.NEW

        # Direction table as flat lookup arrays (numba has no dataclasses)
        self._dx = np.array([d.dx for d in self.directions], dtype=np.int64)
        self._dy = np.array([d.dy for d in self.directions], dtype=np.int64)
        self._lengths = np.array(
            [d.length for d in self.directions], dtype=np.float64
        )
        self._min_increments = np.array(
            [d.min_increment for d in self.directions], dtype=np.float64
        )

        n = grid.size
        self._raw = grid.data.astype(np.float64).ravel()
        self._nodata = np.ascontiguousarray(grid.nodata_mask()).ravel()
        self._filled = np.full(n, grid.nodata, dtype=np.float64)
        self._status = np.full(n, CellStatus.UNVISITED, dtype=np.int8)
        self._flow_dir = np.full(n, _FLOW_UNSET, dtype=np.int8)
        self._discovered_from = np.full(n, NO_DIRECTION, dtype=np.int8)
        self._stats = {
            "total_cells": n,
            "valid_cells": int(n - self._nodata.sum()),
            "nodata_cells": int(self._nodata.sum()),
            "seeded_cells": 0,
            "discovered_cells": 0,
        }

    def run(self) -> FloodResult:
        """
        Fill depressions (and optionally derive flow directions).

        Returns
        -------
        FloodResult
            Filled DEM, flow codes and statistics

        Raises
        ------
        RuntimeError
            If the engine was already run or a traversal invariant breaks
        """
        if self.state is not EngineState.NEW:
            raise RuntimeError(f"Flood engine already used (state: {self.state.value})")

        t0 = time.time()
        grid = self.grid
        logger.info(
            f"Flooding {grid.width}x{grid.height} grid "
            f"({self._stats['valid_cells']:,} valid cells, "
            f"min slope {self.options.min_slope_degrees}°, "
            f"flow: {self.options.compute_flow})"
        )

        self.state = EngineState.SEEDING
        seeds = np.ascontiguousarray(grid.edge_mask() & ~grid.nodata_mask()).ravel()
        self._stats["seeded_cells"] = int(seeds.sum())
        logger.info(f"  Seeding {self._stats['seeded_cells']:,} edge cells")

        self.state = EngineState.DRAINING
        discovered, error, error_idx = _flood(
            self._raw,
            self._nodata,
            seeds,
            grid.width,
            self._dx,
            self._dy,
            self._lengths,
            self._min_increments,
            self.options.preserve_slope,
            self.options.compute_flow,
            self._filled,
            self._status,
            self._flow_dir,
            self._discovered_from,
        )
        self._stats["discovered_cells"] = int(discovered)
        if error:
            self._raise_invariant(int(error), int(error_idx))
        logger.info(f"  Drained frontier, {discovered:,} cells discovered")

        self._check_all_resolved()
        self.state = EngineState.DONE
        self._stats["elapsed_s"] = time.time() - t0

        return self._build_result()

    def _raise_invariant(self, error: int, idx: int) -> None:
        x, y = self.grid.coords(idx)
        if error == _ERR_NOT_QUEUED:
            raise RuntimeError(
                f"Cell ({x}, {y}) popped in state "
                f"{CellStatus(int(self._status[idx])).name}, expected QUEUED"
            )
        raise RuntimeError(
            f"Cell ({x}, {y}) resolved below its raw elevation "
            f"({self._filled[idx]} < {self._raw[idx]})"
        )

    def _check_all_resolved(self) -> None:
        unresolved = int(np.sum(self._status != CellStatus.RESOLVED))
        if unresolved:
            raise RuntimeError(f"{unresolved} cells left unresolved after draining")

    def _encode_flow(self) -> np.ndarray:
        codes = np.asarray(FLOW_ENCODINGS[self.options.flow_encoding], dtype=np.uint8)
        flow = np.full(self.grid.size, FLOW_FLAT, dtype=np.uint8)
        resolved = self._flow_dir >= 0
        flow[resolved] = codes[self._flow_dir[resolved]]
        flow[self._flow_dir == _FLOW_OUTFLOW] = FLOW_NODATA
        return flow

    def _build_result(self) -> FloodResult:
        grid = self.grid
        shape = (grid.height, grid.width)
        valid = ~self._nodata

        depth = self._filled[valid] - self._raw[valid]
        self._stats["raised_cells"] = int(np.sum(depth > 0))
        self._stats["max_fill_depth"] = float(depth.max()) if depth.size else 0.0

        flow = None
        if self.options.compute_flow:
            flow_flat = self._encode_flow()
            self._stats["flat_cells"] = int(np.sum((flow_flat == FLOW_FLAT) & valid))
            logger.debug(f"  {self._stats['flat_cells']:,} cells without a drain")
            flow = flow_flat.reshape(shape)

        logger.info(
            f"  Raised {self._stats['raised_cells']:,} cells "
            f"(max fill depth {self._stats['max_fill_depth']:.3f})"
        )

        # engine-owned copy, so later edits to the caller's array do not
        # leak into fill_depth()
        raw = self._raw.reshape(shape)
        raw.flags.writeable = False

        return FloodResult(
            filled=self._filled.reshape(shape),
            flow=flow,
            discovered_from=self._discovered_from.reshape(shape),
            stats=dict(self._stats),
            nodata=grid.nodata,
            raw=raw,
        )


def fill_depressions(
    dem: np.ndarray,
    nodata: float = DEFAULT_NODATA,
    cellsize: float | tuple[float, float] = 1.0,
    options: FillOptions | None = None,
    **kwargs,
) -> FloodResult:
    """
    Fill depressions in a DEM array.

    Parameters
    ----------
    dem : np.ndarray
        2D elevation array
    nodata : float
        NoData value (NaN allowed)
    cellsize : float or tuple
        Pixel size, or (xres, yres)
    options : FillOptions, optional
        Run options; built from ``kwargs`` when omitted

    Returns
    -------
    FloodResult
        Filled DEM, optional flow codes and statistics
    """
    if options is None:
        options = FillOptions(**kwargs)
    elif kwargs:
        raise ValueError("Pass either options or keyword options, not both")

    if isinstance(cellsize, tuple):
        xres, yres = cellsize
    else:
        xres = yres = cellsize

    grid = Grid(dem, nodata, xres, yres)
    return FloodEngine(grid, options).run()
