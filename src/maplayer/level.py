"""One zoom level of a map layer: a virtual canvas split into tiles."""

from __future__ import annotations

import logging
import time
from typing import TYPE_CHECKING, Any

from geo.quadkey import tiles_in_region, width_at_level
from imaging.color_utils import ColorMapper
from imaging.combine import combine
from imaging.filters import apply_filter
from maplayer.dispatch import get_operation
from shared.constants import (
    MAX_ZOOM,
    MIN_ZOOM,
    RADIAL_GRADIENT_COLOR,
    TILE_FILE_SUFFIX,
    FilterType,
)
from shared.exceptions import ConfigurationError, TileIOError
from tiles.cache import TileCache
from tiles.tile import QUAD_KEY_RE, Tile

if TYPE_CHECKING:
    from collections.abc import Callable

    import numpy as np

    from domain.models import LayerSettings
    from imaging.color_utils import ColorRamp
    from maplayer.dispatch import Primitive

logger = logging.getLogger(__name__)


class Level:
    """Canvas of (256 << zoom) pixels square backed by lazily created tiles.

    A drawing call is projected once onto the canvas, then painted on every
    tile its bounding box overlaps, each tile receiving the same geometry
    shifted by its pixel origin. Primitives crossing tile borders therefore
    join without seams.

    Usage:
        level = Level(12, settings)
        level.draw('line', points=[[51.50, -0.12], [51.52, -0.10]], fill='red')
        level.close()
    """

    def __init__(
        self,
        zoom: int,
        settings: LayerSettings,
        tile_class: type[Tile] = Tile,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if not MIN_ZOOM <= zoom <= MAX_ZOOM:
            msg = f'zoom must be in {MIN_ZOOM}..{MAX_ZOOM}, got {zoom}'
            raise ConfigurationError('level', msg)

        self.zoom = zoom
        self.settings = settings
        self.width = width_at_level(zoom)
        self.height = self.width
        self.centroid = settings.centroid
        self._cache = TileCache(
            zoom,
            settings.tile_config(),
            in_memory=settings.in_memory,
            tile_class=tile_class,
            clock=clock,
        )

    def __repr__(self) -> str:
        return f'{self.__class__.__name__}(zoom={self.zoom})'

    @property
    def cache(self) -> TileCache:
        return self._cache

    def draw(self, op_name: str, **args: Any) -> list[str]:
        """
        Draw one primitive on every tile it overlaps.

        Args:
            op_name: Operation name (see maplayer.dispatch.OPERATIONS)
            **args: Geometry (points, or x/y scalars) plus Pillow styling

        Returns:
            Quad keys of the tiles that received pixels

        Raises:
            ValueError: unknown operation or malformed arguments

        """
        operation = get_operation(op_name)
        primitive = operation.project(self.zoom, self.centroid, args)
        if primitive is None:
            logger.debug('Zoom %d: %s has nothing to draw', self.zoom, op_name)
            return []
        return self._render(primitive)

    def _render(self, primitive: Primitive) -> list[str]:
        operation = get_operation(primitive.name)
        bbox = operation.bounds(primitive)
        if bbox is None:
            return []

        drawn: list[str] = []
        with self._cache.batch():
            tiles = [
                self._cache.get_or_create_at(tx, ty)
                for tx, ty in tiles_in_region(self.zoom, *bbox)
            ]
            # Load every tile before painting so a read error leaves none half drawn
            for tile in tiles:
                tile.buffer  # noqa: B018
            for tile in tiles:
                ox, oy = tile.pixel_origin
                layer = operation.paint(tile.buffer, primitive.translated(-ox, -oy))
                if layer is not None and layer[..., 3].any():
                    tile.buffer = combine(tile.buffer, layer, self.settings.combine)
                    drawn.append(tile.quad_key)
                self._cache.touch(tile.quad_key)
        logger.debug(
            'Zoom %d: %s drawn on %d tiles', self.zoom, primitive.name, len(drawn)
        )
        return drawn

    def radial_circle(
        self,
        r: float,
        min_r: float | None = None,
        x: float | None = None,
        y: float | None = None,
        color: tuple[int, int, int] | str = RADIAL_GRADIENT_COLOR,
    ) -> list[str]:
        """
        Draw a radial gradient circle with a radius given in metres.

        The radius is converted to pixels at the centroid latitude. When it
        ends up smaller than a pixel the circle is skipped unless min_r gives
        a lower bound in pixels.
        """
        return self.draw('radial_circle', r=r, min_r=min_r, x=x, y=y, color=color)

    def tile(self, quad_key: str) -> Tile:
        """Tile of this level for quad_key, created on first access."""
        if not isinstance(quad_key, str) or len(quad_key) != self.zoom:
            msg = f'Quad key {quad_key!r} does not belong to zoom {self.zoom}'
            raise ConfigurationError('quad_key', msg)
        return self._cache.get_or_create(quad_key)

    def tiles(self) -> list[Tile]:
        """Resident tiles ordered by quad key."""
        return [self._cache.get(quad_key) for quad_key in self._cache.quad_keys()]

    def stored_quad_keys(self) -> list[str]:
        """
        Quad keys holding pixels of this layer: resident or already saved.

        Files in base_dir that this layer never touched are included only
        when the layer draws over existing tiles (overwrite disabled).
        """
        keys = set(self._cache.quad_keys()) | self._cache.claimed_keys()
        if not self.settings.overwrite and self.settings.base_dir.is_dir():
            for path in self.settings.base_dir.glob(f'*{TILE_FILE_SUFFIX}'):
                stem = path.stem
                if len(stem) == self.zoom and QUAD_KEY_RE.fullmatch(stem):
                    keys.add(stem)
        return sorted(keys)

    def _map_tiles(self, transform: Callable[[np.ndarray], np.ndarray]) -> int:
        changed = 0
        for quad_key in self.stored_quad_keys():
            with self._cache.batch():
                tile = self._cache.get_or_create(quad_key)
                buffer = tile.buffer
                if buffer[..., 3].any():
                    tile.buffer = transform(buffer)
                    changed += 1
                self._cache.touch(quad_key)
        return changed

    def colourise(self, ramp: ColorRamp | None = None) -> int:
        """
        Map greyscale intensity of every stored tile through a colour ramp.

        Returns:
            Number of tiles recoloured

        """
        mapper = ColorMapper(ramp)
        changed = self._map_tiles(mapper.colourise)
        logger.info('Zoom %d: %d tiles colourised', self.zoom, changed)
        return changed

    def filter(self, filter_type: FilterType | str, **options: float) -> int:
        """Apply an image filter to every stored tile, tile by tile."""
        apply_filter_checked = _checked_filter(filter_type, options)
        changed = self._map_tiles(apply_filter_checked)
        logger.info('Zoom %d: filter %s applied to %d tiles', self.zoom, filter_type, changed)
        return changed

    def save(self) -> int:
        """Save every resident tile, returning the number of files written."""
        return self._cache.save_all()

    def close(self) -> None:
        """Release all tiles (each autosaves per settings)."""
        try:
            self._cache.close()
        except TileIOError:
            logger.exception('Zoom %d: tiles could not be saved on close', self.zoom)
            raise

    def __enter__(self) -> Level:
        """Context manager entry."""
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        """Context manager exit."""
        self.close()


def _checked_filter(
    filter_type: FilterType | str,
    options: dict[str, float],
) -> Callable[[np.ndarray], np.ndarray]:
    """Bind filter options, rejecting an unknown filter before any tile is read."""
    try:
        FilterType(filter_type)
    except ValueError:
        known = ', '.join(f.value for f in FilterType)
        msg = f'Unknown filter type {filter_type!r} (expected one of: {known})'
        raise ValueError(msg) from None

    def run(buffer: np.ndarray) -> np.ndarray:
        return apply_filter(buffer, filter_type, **options)

    return run
