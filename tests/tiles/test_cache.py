"""Tests for TileCache."""

from __future__ import annotations

import pytest

from domain.models import TileConfig
from shared.exceptions import ConfigurationError, TileIOError
from tiles.cache import CacheStats, TileCache
from tiles.tile import Tile


def paint(tile, color=(0, 0, 0, 255)):
    buf = tile.buffer.copy()
    buf[10:20, 10:20] = color
    tile.buffer = buf


@pytest.fixture
def config(tile_dir):
    return TileConfig(base_dir=tile_dir)


class TestTileCacheRegistry:
    """Tests for tile lookup."""

    def test_single_instance_per_key(self, config):
        cache = TileCache(2, config)
        tile = cache.get_or_create('03')
        assert cache.get_or_create('03') is tile
        assert '03' in cache
        assert len(cache) == 1
        cache.close()

    def test_get_or_create_at(self, config):
        cache = TileCache(4, config)
        assert cache.get_or_create_at(3, 5).quad_key == '0213'
        cache.close()

    def test_wrong_zoom_rejected(self, config):
        cache = TileCache(3, config)
        with pytest.raises(ConfigurationError):
            cache.get_or_create('01')

    def test_tile_class_must_subclass_tile(self, config):
        with pytest.raises(ConfigurationError) as exc_info:
            TileCache(1, config, tile_class=dict)
        assert exc_info.value.field == 'tile_class'

    def test_negative_in_memory_rejected(self, config):
        with pytest.raises(ConfigurationError):
            TileCache(1, config, in_memory=-1)

    def test_custom_tile_class(self, config):
        class MarkedTile(Tile):
            pass

        cache = TileCache(1, config, tile_class=MarkedTile)
        assert isinstance(cache.get_or_create('2'), MarkedTile)
        cache.close()


class TestImmediateEviction:
    """Tests for in_memory == 0."""

    def test_touch_outside_batch_evicts(self, config, tile_dir):
        cache = TileCache(1, config)
        tile = cache.get_or_create('1')
        paint(tile)
        cache.touch('1')
        assert '1' not in cache
        assert tile.closed
        assert (tile_dir / '1.png').exists()

    def test_batch_defers_eviction(self, config, tile_dir):
        cache = TileCache(1, config)
        with cache.batch():
            for quad_key in ('0', '1'):
                paint(cache.get_or_create(quad_key))
                cache.touch(quad_key)
            assert len(cache) == 2
            assert not (tile_dir / '0.png').exists()
        assert len(cache) == 0
        assert (tile_dir / '0.png').exists()
        assert (tile_dir / '1.png').exists()

    def test_failed_batch_keeps_tiles(self, config, tile_dir):
        cache = TileCache(1, config)
        with pytest.raises(RuntimeError), cache.batch():
            paint(cache.get_or_create('0'))
            cache.touch('0')
            raise RuntimeError('boom')
        assert '0' in cache
        assert not (tile_dir / '0.png').exists()
        cache.close()
        assert (tile_dir / '0.png').exists()

    def test_eviction_saves_without_autosave(self, tile_dir):
        cache = TileCache(1, TileConfig(base_dir=tile_dir, autosave=False))
        paint(cache.get_or_create('3'))
        cache.touch('3')
        assert (tile_dir / '3.png').exists()

    def test_own_output_is_reloaded(self, config):
        cache = TileCache(1, config)
        paint(cache.get_or_create('2'), (0, 0, 0, 255))
        cache.touch('2')

        tile = cache.get_or_create('2')
        assert not tile.overwrite
        assert tuple(tile.buffer[15, 15]) == (0, 0, 0, 255)
        buf = tile.buffer.copy()
        buf[100, 100] = (0, 0, 0, 255)
        tile.buffer = buf
        cache.touch('2')

        final = cache.get_or_create('2')
        assert tuple(final.buffer[15, 15]) == (0, 0, 0, 255)
        assert tuple(final.buffer[100, 100]) == (0, 0, 0, 255)
        cache.close()

    def test_claimed_keys(self, config):
        cache = TileCache(1, config)
        paint(cache.get_or_create('0'))
        cache.touch('0')
        cache.get_or_create('1')
        assert cache.claimed_keys() == frozenset({'0'})
        assert cache.quad_keys() == ['1']
        cache.close()


class TestTimedEviction:
    """Tests for in_memory > 0 with a fake clock."""

    def test_idle_tiles_evicted_on_access(self, config, tile_dir, clock):
        cache = TileCache(1, config, in_memory=30, clock=clock)
        paint(cache.get_or_create('0'))
        cache.touch('0')
        assert '0' in cache

        clock.advance(29)
        cache.get_or_create('1')
        assert '0' in cache

        clock.advance(1)
        cache.get_or_create('1')
        assert '0' not in cache
        assert (tile_dir / '0.png').exists()
        assert '1' in cache
        cache.close()

    def test_touch_refreshes_idle_time(self, config, clock):
        cache = TileCache(1, config, in_memory=10, clock=clock)
        cache.get_or_create('0')
        clock.advance(8)
        cache.touch('0')
        clock.advance(8)
        assert cache.evict_expired() == 0
        clock.advance(2)
        assert cache.evict_expired() == 1
        cache.close()

    def test_no_eviction_inside_batch(self, config, clock):
        cache = TileCache(1, config, in_memory=5, clock=clock)
        with cache.batch():
            paint(cache.get_or_create('0'))
            clock.advance(10)
            cache.get_or_create('1')
            assert '0' in cache
        assert '0' not in cache


class TestCacheSaveAndClose:
    """Tests for save_all, stats and close."""

    def test_save_all(self, config, tile_dir):
        cache = TileCache(1, config, in_memory=60)
        paint(cache.get_or_create('0'))
        paint(cache.get_or_create('1'))
        cache.get_or_create('2')
        assert cache.save_all() == 2
        assert cache.save_all() == 0
        assert sorted(p.name for p in tile_dir.iterdir()) == ['0.png', '1.png']
        cache.close()

    def test_get_stats(self, config):
        cache = TileCache(1, config)
        paint(cache.get_or_create('0'))
        cache.touch('0')
        cache.get_or_create('1')
        stats = cache.get_stats()
        assert isinstance(stats, CacheStats)
        assert stats.zoom == 1
        assert stats.resident_tiles == 1
        assert stats.evictions == 1
        assert stats.writes == 1
        cache.close()

    def test_close_releases_all_and_reraises(self, tile_dir):
        cache = TileCache(1, TileConfig(base_dir=tile_dir / 'missing'), in_memory=60)
        paint(cache.get_or_create('0'))
        paint(cache.get_or_create('1'))
        with pytest.raises(TileIOError):
            cache.close()
        assert len(cache) == 0

    def test_context_manager(self, config, tile_dir):
        with TileCache(1, config, in_memory=60) as cache:
            paint(cache.get_or_create('3'))
        assert (tile_dir / '3.png').exists()
