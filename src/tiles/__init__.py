"""Tile storage.

This module provides:
- Tile: one quad-key addressed RGBA tile with lazy load/save
- TileCache: per-level registry with save-on-evict policy
"""

from tiles.cache import CacheStats, TileCache
from tiles.tile import Tile

__all__ = [
    'CacheStats',
    'Tile',
    'TileCache',
]
