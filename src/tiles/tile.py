"""A single 256x256 RGBA map tile addressed by its quad key.

The pixel buffer is materialized lazily: it is loaded from (or, in
overwrite mode, its stale file removed from) the tile's PNG path the first
time pixel data is accessed.
"""

from __future__ import annotations

import logging
import re
from typing import TYPE_CHECKING

import numpy as np
from PIL import Image

from geo.quadkey import (
    latlon_to_pixel,
    latlons_to_pixels,
    quad_key_to_tile_coords,
    tile_coords_to_pixel_origin,
)
from shared.constants import (
    MAX_ZOOM,
    MIN_ZOOM,
    TILE_CHANNELS,
    TILE_FILE_SUFFIX,
    TILE_SIZE,
)
from shared.exceptions import ConfigurationError, TileIOError

if TYPE_CHECKING:
    from collections.abc import Sequence
    from pathlib import Path

    from domain.models import TileConfig

logger = logging.getLogger(__name__)

QUAD_KEY_RE = re.compile(rf'[0-3]{{{MIN_ZOOM},{MAX_ZOOM}}}')


class Tile:
    """One tile of one zoom level.

    Coordinates returned by latlon_to_pixel() are canvas coordinates of the
    tile's zoom level; subtract pixel_origin (or use to_local()) to get
    coordinates inside the tile.

    Usage:
        config = TileConfig(base_dir=Path('tiles'))
        with Tile('0213', config) as tile:
            tile.buffer[10, 10] = (0, 0, 0, 255)
            tile.mark_dirty()
        # saved on exit when config.autosave is set
    """

    width = TILE_SIZE
    height = TILE_SIZE

    def __init__(self, quad_key: str, config: TileConfig) -> None:
        if not isinstance(quad_key, str) or not QUAD_KEY_RE.fullmatch(quad_key):
            msg = (
                f'Invalid quad key {quad_key!r}: expected {MIN_ZOOM}..{MAX_ZOOM} '
                'digits in 0-3'
            )
            raise ConfigurationError('quad_key', msg)

        self.quad_key = quad_key
        self.config = config
        tx, ty, zoom = quad_key_to_tile_coords(quad_key)
        self.level = zoom
        self.tile_coords = (tx, ty)
        self.pixel_origin = tile_coords_to_pixel_origin(tx, ty)
        self.filename: Path = config.base_dir / f'{quad_key}{TILE_FILE_SUFFIX}'

        self._buffer: np.ndarray | None = None
        self._dirty = False
        self._closed = False

    def __repr__(self) -> str:
        return f'{self.__class__.__name__}({self.quad_key!r})'

    @property
    def overwrite(self) -> bool:
        return self.config.overwrite

    @property
    def autosave(self) -> bool:
        return self.config.autosave

    @property
    def is_loaded(self) -> bool:
        """True once the pixel buffer has been materialized."""
        return self._buffer is not None

    @property
    def is_dirty(self) -> bool:
        return self._dirty

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def buffer(self) -> np.ndarray:
        """Pixel buffer, uint8 array (TILE_SIZE, TILE_SIZE, 4)."""
        if self._closed:
            msg = f'Tile {self.quad_key} is closed'
            raise ValueError(msg)
        if self._buffer is None:
            self._buffer = self._materialize()
        return self._buffer

    @buffer.setter
    def buffer(self, value: np.ndarray) -> None:
        if value.shape != (self.height, self.width, TILE_CHANNELS):
            msg = f'Tile buffer must have shape {(self.height, self.width, TILE_CHANNELS)}, got {value.shape}'
            raise ValueError(msg)
        if self._closed:
            msg = f'Tile {self.quad_key} is closed'
            raise ValueError(msg)
        self._buffer = np.ascontiguousarray(value, dtype=np.uint8)
        self._dirty = True

    def _materialize(self) -> np.ndarray:
        path = self.filename
        if path.exists():
            if self.overwrite:
                try:
                    path.unlink()
                    logger.debug('Removed stale tile %s', path)
                except OSError as e:
                    logger.warning("Could not remove file '%s': %s", path, e)
            else:
                return self._load(path)
        return np.zeros((self.height, self.width, TILE_CHANNELS), dtype=np.uint8)

    def _load(self, path: Path) -> np.ndarray:
        try:
            with Image.open(path) as img:
                img.load()
                rgba = img.convert('RGBA')
        except (OSError, ValueError) as e:
            raise TileIOError(path, f'Cannot read tile file ({e})') from e

        if rgba.size != (self.width, self.height):
            msg = f'Unexpected tile size {rgba.size[0]}x{rgba.size[1]}'
            raise TileIOError(path, msg)
        logger.debug('Loaded tile %s', path)
        return np.array(rgba, dtype=np.uint8)

    def mark_dirty(self) -> None:
        """Flag the buffer as modified since it was loaded or last saved."""
        self._dirty = True

    def is_blank(self) -> bool:
        """True if no pixel has a non-zero alpha."""
        if self._buffer is None:
            return True
        return not self._buffer[..., 3].any()

    def save(self) -> bool:
        """
        Write the tile as PNG.

        Nothing is written when the buffer was never materialized, has not
        changed since it was loaded or last saved, or holds no visible pixel.

        Returns:
            True if a file was written.

        Raises:
            TileIOError: the file could not be written.

        """
        if self._buffer is None or not self._dirty:
            return False
        if self.is_blank():
            self._dirty = False
            return False

        path = self.filename
        try:
            Image.fromarray(self._buffer).save(path, format='PNG')
        except OSError as e:
            raise TileIOError(path, f'Cannot write tile file ({e})') from e
        self._dirty = False
        logger.debug('Saved tile %s', path)
        return True

    def latlon_to_pixel(self, lat_deg: float, lng_deg: float) -> tuple[int, int]:
        return latlon_to_pixel(self.level, lat_deg, lng_deg)

    def latlons_to_pixels(
        self,
        points: Sequence[Sequence[float]],
    ) -> list[tuple[int, int]]:
        return latlons_to_pixels(self.level, points)

    def to_local(
        self,
        points: Sequence[tuple[float, float]],
    ) -> list[tuple[float, float]]:
        """Translate canvas coordinates into coordinates inside this tile."""
        ox, oy = self.pixel_origin
        return [(x - ox, y - oy) for x, y in points]

    def close(self) -> None:
        """Release the buffer, saving it first when autosave is enabled."""
        if self._closed:
            return
        try:
            if self.autosave:
                self.save()
        finally:
            self._closed = True
            self._buffer = None

    def __enter__(self) -> Tile:
        """Context manager entry."""
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        """Context manager exit."""
        self.close()
