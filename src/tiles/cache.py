"""In-memory tile registry of one zoom level with save-on-evict policy.

This module provides TileCache class that keeps at most one live Tile per
quad key and decides when resident tiles are written to disk and dropped.
"""

from __future__ import annotations

import contextlib
import logging
import time
from dataclasses import dataclass
from typing import TYPE_CHECKING

from geo.quadkey import tile_coords_to_quad_key
from shared.exceptions import ConfigurationError, TileIOError
from tiles.tile import Tile

if TYPE_CHECKING:
    from collections.abc import Callable, Iterator

    from domain.models import TileConfig

logger = logging.getLogger(__name__)


@dataclass
class CacheStats:
    """Statistics about a tile cache."""

    zoom: int
    resident_tiles: int
    claimed_tiles: int
    evictions: int
    writes: int


class TileCache:
    """Registry of the tiles of one zoom level.

    Features:
    - One Tile per quad key at any time
    - in_memory == 0: every tile touched by a drawing call is saved and
      dropped when the call completes
    - in_memory > 0: a tile idle for in_memory seconds is saved and dropped
      on the next cache access (no background timer)
    - Eviction always saves first, regardless of the tile's autosave flag
    - Eviction is suspended inside batch(), so a primitive spanning several
      tiles is never half-applied on disk
    - A quad key whose buffer was materialized once is reloaded from disk
      afterwards, even in overwrite mode

    Usage:
        cache = TileCache(zoom=12, config=settings.tile_config())
        with cache.batch():
            tile = cache.get_or_create('032010110132')
            ...  # draw on tile.buffer
            cache.touch(tile.quad_key)
        cache.close()
    """

    def __init__(
        self,
        zoom: int,
        config: TileConfig,
        in_memory: int = 0,
        tile_class: type[Tile] = Tile,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """Initialize tile cache.

        Args:
            zoom: Zoom level of every tile in this cache.
            config: File options handed to each new tile.
            in_memory: Idle timeout in seconds, 0 to evict after each call.
            tile_class: Tile subclass to instantiate.
            clock: Monotonic time source in seconds.
        """
        if not (isinstance(tile_class, type) and issubclass(tile_class, Tile)):
            msg = f'{tile_class!r} must be a subclass of Tile'
            raise ConfigurationError('tile_class', msg)
        if in_memory < 0:
            msg = f'must be non-negative, got {in_memory}'
            raise ConfigurationError('in_memory', msg)

        self.zoom = zoom
        self.config = config
        self.in_memory = in_memory
        self.tile_class = tile_class
        self._clock = clock

        self._tiles: dict[str, Tile] = {}
        self._last_used: dict[str, float] = {}
        self._claimed: set[str] = set()
        self._pending: set[str] = set()
        self._batch_depth = 0
        self._evictions = 0
        self._writes = 0
        logger.debug(
            'TileCache zoom %d initialized (in_memory=%ds, base_dir=%s)',
            zoom,
            in_memory,
            config.base_dir,
        )

    def __contains__(self, quad_key: object) -> bool:
        return quad_key in self._tiles

    def __len__(self) -> int:
        return len(self._tiles)

    def __iter__(self) -> Iterator[Tile]:
        return iter(list(self._tiles.values()))

    def get(self, quad_key: str) -> Tile | None:
        """Resident tile for quad_key, without creating or refreshing it."""
        return self._tiles.get(quad_key)

    def get_or_create(self, quad_key: str) -> Tile:
        """Get the resident tile for quad_key, creating it on first access.

        Outside a batch, idle tiles are evicted first.
        """
        if not self._batch_depth:
            self.evict_expired()

        tile = self._tiles.get(quad_key)
        if tile is None:
            if len(quad_key) != self.zoom:
                msg = f'Quad key {quad_key!r} does not belong to zoom {self.zoom}'
                raise ConfigurationError('quad_key', msg)
            config = self.config.reloading() if quad_key in self._claimed else self.config
            tile = self.tile_class(quad_key, config)
            self._tiles[quad_key] = tile
            logger.debug('Tile %s registered (overwrite=%s)', quad_key, config.overwrite)
        self._last_used[quad_key] = self._clock()
        return tile

    def get_or_create_at(self, tx: int, ty: int) -> Tile:
        return self.get_or_create(tile_coords_to_quad_key(tx, ty, self.zoom))

    def touch(self, quad_key: str) -> None:
        """Record a drawing operation on a resident tile."""
        if quad_key not in self._tiles:
            return
        self._last_used[quad_key] = self._clock()
        if self.in_memory == 0:
            self._pending.add(quad_key)
            if not self._batch_depth:
                self._flush_pending()

    @contextlib.contextmanager
    def batch(self) -> Iterator[TileCache]:
        """Suspend eviction until the outermost batch completes.

        If the body raises, eviction is skipped and pending tiles stay
        resident until the next successful batch, save or close.
        """
        self._batch_depth += 1
        try:
            yield self
        except BaseException:
            self._batch_depth -= 1
            raise
        self._batch_depth -= 1
        if not self._batch_depth:
            self._flush_pending()
            self.evict_expired()

    def _flush_pending(self) -> None:
        pending, self._pending = self._pending, set()
        for quad_key in sorted(pending):
            self.evict(quad_key)

    def evict(self, quad_key: str) -> bool:
        """Save a resident tile and drop it from memory.

        Raises:
            TileIOError: the tile could not be saved; it stays resident.
        """
        tile = self._tiles.get(quad_key)
        if tile is None:
            return False
        if tile.save():
            self._writes += 1
        del self._tiles[quad_key]
        self._last_used.pop(quad_key, None)
        self._pending.discard(quad_key)
        if tile.is_loaded:
            self._claimed.add(quad_key)
        tile.close()
        self._evictions += 1
        logger.debug('Tile %s evicted', quad_key)
        return True

    def evict_expired(self) -> int:
        """Evict tiles idle for at least in_memory seconds."""
        if self.in_memory <= 0 or not self._tiles:
            return 0
        now = self._clock()
        expired = [
            quad_key
            for quad_key, last_used in self._last_used.items()
            if now - last_used >= self.in_memory
        ]
        for quad_key in sorted(expired):
            self.evict(quad_key)
        if expired:
            logger.debug('Zoom %d: %d idle tiles evicted', self.zoom, len(expired))
        return len(expired)

    def save_all(self) -> int:
        """Save every resident tile.

        Returns:
            Number of files written.
        """
        written = 0
        for tile in list(self._tiles.values()):
            if tile.save():
                written += 1
        self._writes += written
        return written

    def quad_keys(self) -> list[str]:
        """Quad keys of resident tiles."""
        return sorted(self._tiles)

    def claimed_keys(self) -> frozenset[str]:
        """Quad keys whose buffers this cache has materialized at some point."""
        claimed = set(self._claimed)
        claimed.update(k for k, t in self._tiles.items() if t.is_loaded)
        return frozenset(claimed)

    def get_stats(self) -> CacheStats:
        return CacheStats(
            zoom=self.zoom,
            resident_tiles=len(self._tiles),
            claimed_tiles=len(self.claimed_keys()),
            evictions=self._evictions,
            writes=self._writes,
        )

    def close(self) -> None:
        """Release every resident tile (each autosaves per its own flag).

        All tiles are released even if one fails to save; the first
        failure is re-raised afterwards.
        """
        first_error: TileIOError | None = None
        for quad_key in sorted(self._tiles):
            tile = self._tiles[quad_key]
            if tile.is_loaded:
                self._claimed.add(quad_key)
            try:
                tile.close()
            except TileIOError as e:
                logger.error('Autosave of tile %s failed: %s', quad_key, e)
                if first_error is None:
                    first_error = e
        self._tiles.clear()
        self._last_used.clear()
        self._pending.clear()
        if first_error is not None:
            raise first_error

    def __enter__(self) -> TileCache:
        """Context manager entry."""
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        """Context manager exit."""
        self.close()
