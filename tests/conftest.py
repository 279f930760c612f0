"""
Shared test fixtures for pytest.

Provides sample DEM arrays and helpers used across unit tests.
"""

import numpy as np
import pytest

from spilldem.config import get_settings
from spilldem.grid import build_directions

NODATA = -9999.0


@pytest.fixture(autouse=True)
def _clear_settings_cache():
    """Settings are cached per process; reset around every test."""
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def ring_dem():
    """3x3 grid: center 1 surrounded by a ring at 5."""
    return np.array(
        [
            [5.0, 5.0, 5.0],
            [5.0, 1.0, 5.0],
            [5.0, 5.0, 5.0],
        ],
        dtype=np.float32,
    )


@pytest.fixture
def pit_dem():
    """5x5 grid: pit 0 inside a ring at 10 inside an edge at 5."""
    dem = np.full((5, 5), 5.0, dtype=np.float32)
    dem[1:4, 1:4] = 10.0
    dem[2, 2] = 0.0
    return dem


@pytest.fixture
def pyramid_dem():
    """7x7 depression-free grid rising from every edge toward the center."""
    n = 7
    rows, cols = np.indices((n, n))
    dist = np.minimum.reduce([rows, cols, n - 1 - rows, n - 1 - cols])
    return (100.0 + dist * 2.0).astype(np.float32)


@pytest.fixture
def random_dem():
    """20x20 noisy DEM with a few internal NoData cells."""
    rng = np.random.default_rng(42)
    dem = rng.uniform(0.0, 100.0, size=(20, 20)).astype(np.float32)
    dem[5, 5] = NODATA
    dem[12, 7:10] = NODATA
    dem[0, 15] = NODATA
    return dem


def _follow_flow(flow, x, y, codes=None, max_steps=10_000):
    """
    Follow D8 (or given) flow codes from (x, y) until a 255 cell.

    Returns the number of steps; raises AssertionError on flats,
    cycles or leaving the grid.
    """
    directions = build_directions()
    if codes is None:
        codes = [d.d8_code for d in directions]
    offsets = {code: (d.dx, d.dy) for code, d in zip(codes, directions, strict=True)}
    height, width = flow.shape

    for step in range(max_steps):
        code = int(flow[y, x])
        if code == 255:
            return step
        assert code in offsets, f"cell ({x}, {y}) has no drain (code {code})"
        dx, dy = offsets[code]
        x, y = x + dx, y + dy
        assert 0 <= x < width and 0 <= y < height, "flow left the grid"
    raise AssertionError(f"flow path from ({x}, {y}) does not terminate")


@pytest.fixture
def follow_flow():
    """Flow-path walker, see ``_follow_flow``."""
    return _follow_flow
