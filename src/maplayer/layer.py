"""Multi-zoom map layer rendered into Bing quad-key PNG tiles."""

from __future__ import annotations

import logging
import time
from typing import TYPE_CHECKING, Any

from domain.models import LayerSettings
from maplayer.level import Level
from shared.exceptions import ConfigurationError, TileIOError
from tiles.tile import Tile

if TYPE_CHECKING:
    from collections.abc import Callable
    from pathlib import Path

    from imaging.color_utils import ColorRamp
    from shared.constants import FilterType

logger = logging.getLogger(__name__)


class MapLayer:
    """Stack of zoom levels drawn with one set of geographic primitives.

    Every drawing method projects its WGS84 arguments separately at each
    level in min_level..max_level (narrowed per call by the min_level /
    max_level keywords), so one call produces consistent tiles at all zooms.

    Features:
    - Geometry as points=[[lat, lon], ...] or x=<lon>, y=<lat> scalars
    - Pillow styling keywords (fill, outline, width, font, ...) passed through
    - Tiles saved as <base_dir>/<quadkey>.png
    - Memory bounded by the in_memory eviction policy of each level

    Usage:
        with MapLayer(base_dir=out_dir, min_level=10, max_level=14) as layer:
            layer.line(points=[[51.50, -0.12], [51.52, -0.10]], fill='black', width=2)
            layer.radial_circle(r=250)
            layer.colourise()
    """

    def __init__(
        self,
        settings: LayerSettings | None = None,
        *,
        tile_class: type[Tile] = Tile,
        clock: Callable[[], float] = time.monotonic,
        **options: Any,
    ) -> None:
        """Initialize map layer.

        Args:
            settings: Validated settings; keyword options override its fields.
            tile_class: Tile subclass instantiated by every level.
            clock: Monotonic time source used for idle eviction.
            **options: LayerSettings fields.

        Raises:
            ConfigurationError: invalid option value.
        """
        if settings is None:
            settings = LayerSettings.create(**options)
        elif options:
            settings = LayerSettings.create(**{**settings.model_dump(), **options})
        if not (isinstance(tile_class, type) and issubclass(tile_class, Tile)):
            msg = f'{tile_class!r} must be a subclass of Tile'
            raise ConfigurationError('tile_class', msg)

        self.settings = settings
        self.tile_class = tile_class
        self._levels: dict[int, Level] = {
            zoom: Level(zoom, settings, tile_class=tile_class, clock=clock)
            for zoom in settings.zoom_levels
        }
        self._closed = False
        logger.info(
            'MapLayer: levels %d..%d, base_dir=%s, combine=%s, in_memory=%ds',
            settings.min_level,
            settings.max_level,
            settings.base_dir,
            settings.combine.value,
            settings.in_memory,
        )

    def __repr__(self) -> str:
        return (
            f'{self.__class__.__name__}(min_level={self.min_level}, '
            f'max_level={self.max_level}, base_dir={str(self.base_dir)!r})'
        )

    @property
    def base_dir(self) -> Path:
        return self.settings.base_dir

    @property
    def min_level(self) -> int:
        return self.settings.min_level

    @property
    def max_level(self) -> int:
        return self.settings.max_level

    @property
    def levels(self) -> list[Level]:
        """Levels ordered by ascending zoom."""
        return list(self._levels.values())

    @property
    def closed(self) -> bool:
        return self._closed

    def level(self, zoom: int) -> Level:
        try:
            return self._levels[zoom]
        except KeyError:
            msg = f'zoom {zoom} outside {self.min_level}..{self.max_level}'
            raise ConfigurationError('level', msg) from None

    def _select(self, min_level: int | None, max_level: int | None) -> list[Level]:
        lo = self.min_level if min_level is None else min_level
        hi = self.max_level if max_level is None else max_level
        if lo > hi:
            msg = f'min_level {lo} > max_level {hi}'
            raise ConfigurationError('min_level', msg)
        return [level for zoom, level in self._levels.items() if lo <= zoom <= hi]

    def _check_open(self) -> None:
        if self._closed:
            msg = 'MapLayer is closed'
            raise ValueError(msg)

    def draw(
        self,
        op_name: str,
        *,
        min_level: int | None = None,
        max_level: int | None = None,
        **args: Any,
    ) -> dict[int, list[str]]:
        """
        Draw one primitive at every selected level.

        Args:
            op_name: Operation name, e.g. 'line' or 'circle'
            min_level: Lowest zoom for this call (default: layer min_level)
            max_level: Highest zoom for this call (default: layer max_level)
            **args: Geometry and styling, handed unchanged to each level

        Returns:
            Mapping zoom -> quad keys of the tiles that received pixels

        """
        self._check_open()
        return {
            level.zoom: level.draw(op_name, **args)
            for level in self._select(min_level, max_level)
        }

    def setpixel(self, **args: Any) -> dict[int, list[str]]:
        return self.draw('setpixel', **args)

    def line(self, **args: Any) -> dict[int, list[str]]:
        return self.draw('line', **args)

    def box(self, **args: Any) -> dict[int, list[str]]:
        """Axis-aligned rectangle between two corner points."""
        return self.draw('box', **args)

    def polyline(self, **args: Any) -> dict[int, list[str]]:
        return self.draw('polyline', **args)

    def polygon(self, **args: Any) -> dict[int, list[str]]:
        return self.draw('polygon', **args)

    def arc(self, **args: Any) -> dict[int, list[str]]:
        """Arc or pie slice; r in pixels, start/end in degrees."""
        return self.draw('arc', **args)

    def circle(self, **args: Any) -> dict[int, list[str]]:
        """Circle around x/y; r in pixels."""
        return self.draw('circle', **args)

    def flood_fill(self, **args: Any) -> dict[int, list[str]]:
        """Fill the region around x/y; the fill stays within the seed tile."""
        return self.draw('flood_fill', **args)

    def string(self, **args: Any) -> dict[int, list[str]]:
        return self.draw('string', **args)

    def align_string(self, **args: Any) -> dict[int, list[str]]:
        return self.draw('align_string', **args)

    def radial_circle(self, **args: Any) -> dict[int, list[str]]:
        """Radial gradient circle; r in metres, optional min_r in pixels."""
        return self.draw('radial_circle', **args)

    def colourise(
        self,
        ramp: ColorRamp | None = None,
        *,
        min_level: int | None = None,
        max_level: int | None = None,
    ) -> int:
        """Colourise stored tiles of the selected levels, returning the count."""
        self._check_open()
        return sum(level.colourise(ramp) for level in self._select(min_level, max_level))

    def filter(
        self,
        type: FilterType | str,  # noqa: A002
        *,
        min_level: int | None = None,
        max_level: int | None = None,
        **options: float,
    ) -> int:
        """Apply an image filter to stored tiles of the selected levels."""
        self._check_open()
        return sum(
            level.filter(type, **options) for level in self._select(min_level, max_level)
        )

    def save(self) -> int:
        """Save resident tiles of every level, returning the files written."""
        self._check_open()
        written = sum(level.save() for level in self._levels.values())
        logger.info('MapLayer: %d tiles saved to %s', written, self.base_dir)
        return written

    def close(self) -> None:
        """Release every level; the first save failure is re-raised."""
        if self._closed:
            return
        self._closed = True
        first_error: TileIOError | None = None
        for level in self._levels.values():
            try:
                level.close()
            except TileIOError as e:
                if first_error is None:
                    first_error = e
        logger.info('MapLayer closed (%s)', self.base_dir)
        if first_error is not None:
            raise first_error

    def __enter__(self) -> MapLayer:
        """Context manager entry."""
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        """Context manager exit."""
        self.close()
