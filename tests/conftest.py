"""Pytest configuration and fixtures for map layer tests."""

import sys
from pathlib import Path

import numpy as np
import pytest
from PIL import Image

# Add src directory to path for imports
src_path = Path(__file__).parent.parent / 'src'
sys.path.insert(0, str(src_path))


class FakeClock:
    """Manually advanced monotonic clock for eviction timing."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def tile_dir(tmp_path):
    """Empty directory for tile files."""
    path = tmp_path / 'tiles'
    path.mkdir()
    return path


def _read_canvas(directory, zoom):
    """Stitch the saved tiles of one zoom into a single RGBA array."""
    from geo.quadkey import quad_key_to_tile_coords, width_at_level

    size = width_at_level(zoom)
    canvas = np.zeros((size, size, 4), dtype=np.uint8)
    for path in directory.glob('*.png'):
        if len(path.stem) != zoom:
            continue
        tx, ty, _ = quad_key_to_tile_coords(path.stem)
        with Image.open(path) as img:
            canvas[ty * 256 : (ty + 1) * 256, tx * 256 : (tx + 1) * 256] = np.array(
                img.convert('RGBA')
            )
    return canvas


@pytest.fixture
def read_canvas():
    return _read_canvas
