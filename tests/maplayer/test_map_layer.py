"""Tests for MapLayer."""

from __future__ import annotations

import logging
import shutil

import numpy as np
import pytest
from PIL import Image

from domain.models import LayerSettings
from maplayer.layer import MapLayer
from shared.constants import CombineMode
from shared.exceptions import ConfigurationError, TileIOError
from tiles.tile import Tile

BLACK = (0, 0, 0, 255)
LONDON = {'x': 0.1, 'y': 51.5}


def saved_levels(directory):
    return sorted({len(p.stem) for p in directory.glob('*.png')})


class TestMapLayerConstruction:
    """Tests for settings handling."""

    def test_levels_ascending(self, tile_dir):
        layer = MapLayer(base_dir=tile_dir, min_level=3, max_level=6)
        assert [level.zoom for level in layer.levels] == [3, 4, 5, 6]
        assert layer.level(4).zoom == 4
        layer.close()

    def test_level_outside_range(self, tile_dir):
        layer = MapLayer(base_dir=tile_dir, min_level=3, max_level=4)
        with pytest.raises(ConfigurationError):
            layer.level(5)
        layer.close()

    def test_settings_with_overrides(self, tile_dir):
        settings = LayerSettings.create(base_dir=tile_dir, min_level=2, max_level=3)
        layer = MapLayer(settings, combine='screen')
        assert layer.settings.combine is CombineMode.SCREEN
        assert (layer.min_level, layer.max_level) == (2, 3)
        assert layer.base_dir == tile_dir
        layer.close()

    @pytest.mark.parametrize(
        ('options', 'field'),
        [
            ({'min_level': 0}, 'min_level'),
            ({'max_level': 25}, 'max_level'),
            ({'min_level': 9, 'max_level': 3}, 'min_level'),
            ({'combine': 'bogus'}, 'combine'),
            ({'in_memory': -2}, 'in_memory'),
        ],
    )
    def test_configuration_errors(self, tile_dir, options, field):
        with pytest.raises(ConfigurationError) as exc_info:
            MapLayer(base_dir=tile_dir, **options)
        assert exc_info.value.field == field

    def test_missing_base_dir(self, tmp_path):
        with pytest.raises(ConfigurationError) as exc_info:
            MapLayer(base_dir=tmp_path / 'absent', min_level=1, max_level=1)
        assert exc_info.value.field == 'base_dir'

    def test_tile_class_validated(self, tile_dir):
        with pytest.raises(ConfigurationError) as exc_info:
            MapLayer(base_dir=tile_dir, tile_class=object)
        assert exc_info.value.field == 'tile_class'

    def test_custom_tile_class_used(self, tile_dir):
        created = []

        class RecordingTile(Tile):
            def __init__(self, quad_key, config):
                super().__init__(quad_key, config)
                created.append(quad_key)

        with MapLayer(
            base_dir=tile_dir, min_level=1, max_level=1, tile_class=RecordingTile
        ) as layer:
            layer.setpixel(**LONDON, fill=BLACK)
        assert created

    def test_construction_logged(self, tile_dir, caplog):
        with caplog.at_level(logging.INFO, logger='maplayer.layer'):
            MapLayer(base_dir=tile_dir, min_level=1, max_level=2).close()
        assert 'levels 1..2' in caplog.text


class TestMapLayerDrawing:
    """Tests for fan-out of drawing calls to levels."""

    def test_circle_only_in_configured_levels(self, tile_dir):
        with MapLayer(base_dir=tile_dir, min_level=1, max_level=2) as layer:
            result = layer.circle(**LONDON, r=10, fill=BLACK)
        assert sorted(result) == [1, 2]
        assert all(result.values())
        assert saved_levels(tile_dir) == [1, 2]

    def test_per_call_range(self, tile_dir):
        with MapLayer(base_dir=tile_dir, min_level=1, max_level=4) as layer:
            result = layer.line(
                points=[[51.5, 0.0], [51.0, 1.0]], fill=BLACK, min_level=2, max_level=3
            )
        assert sorted(result) == [2, 3]
        assert saved_levels(tile_dir) == [2, 3]

    def test_per_call_range_clipped_to_layer(self, tile_dir):
        with MapLayer(base_dir=tile_dir, min_level=3, max_level=4) as layer:
            result = layer.setpixel(**LONDON, fill=BLACK, min_level=1, max_level=10)
        assert sorted(result) == [3, 4]

    def test_per_call_inverted_range(self, tile_dir):
        with MapLayer(base_dir=tile_dir, min_level=1, max_level=4) as layer:
            with pytest.raises(ConfigurationError) as exc_info:
                layer.circle(**LONDON, r=3, min_level=4, max_level=2)
        assert exc_info.value.field == 'min_level'

    def test_all_operations(self, tile_dir):
        with MapLayer(base_dir=tile_dir, min_level=5, max_level=5) as layer:
            layer.setpixel(points=[[51.5, 0.0], [51.6, 0.1]], fill=BLACK)
            layer.line(points=[[51.5, 0.0], [52.0, 1.0]], fill=BLACK, width=2)
            layer.box(points=[[52.0, -1.0], [51.0, 0.0]], outline=BLACK)
            layer.polyline(points=[[51.0, -1.0], [51.5, 0.0], [51.0, 1.0]], fill=BLACK)
            layer.polygon(points=[[50.0, 0.0], [50.5, 1.0], [50.0, 2.0]], fill=BLACK)
            layer.arc(**LONDON, r=20, start=0, end=90, fill=BLACK)
            layer.arc(**LONDON, r=30, start=90, end=180, filled=False, fill=BLACK)
            layer.circle(**LONDON, r=5, outline=BLACK)
            layer.string(**LONDON, text='London', fill=BLACK)
            layer.align_string(
                **LONDON, text='N', halign='center', valign='bottom', fill=BLACK
            )
            layer.radial_circle(**LONDON, r=5000)
            result = layer.flood_fill(x=5.0, y=40.0, fill=(0, 0, 255))
        assert result[5]
        assert saved_levels(tile_dir) == [5]

    def test_string_split_across_tiles(self, tile_dir, read_canvas):
        # text centred on the meridian lands on two tiles
        with MapLayer(base_dir=tile_dir, min_level=1, max_level=1) as layer:
            result = layer.align_string(
                x=0.0, y=60.0, text='MERIDIAN', halign='center', fill=BLACK
            )
        assert len(result[1]) == 2
        canvas = read_canvas(tile_dir, 1)
        assert canvas[:, 250:256, 3].any()
        assert canvas[:, 256:262, 3].any()

    def test_flood_fill_limited_to_seed_tile(self, tile_dir):
        with MapLayer(base_dir=tile_dir, min_level=1, max_level=1) as layer:
            result = layer.flood_fill(x=-90.0, y=40.0, fill='red')
        assert result == {1: ['0']}
        with Image.open(tile_dir / '0.png') as img:
            assert img.convert('RGBA').getpixel((0, 0)) == (255, 0, 0, 255)

    def test_unknown_operation(self, tile_dir):
        with MapLayer(base_dir=tile_dir, min_level=1, max_level=1) as layer:
            with pytest.raises(ValueError, match='Unknown drawing operation'):
                layer.draw('spline', **LONDON)

    def test_drawing_after_close(self, tile_dir):
        layer = MapLayer(base_dir=tile_dir, min_level=1, max_level=1)
        layer.close()
        assert layer.closed
        with pytest.raises(ValueError, match='closed'):
            layer.setpixel(**LONDON, fill=BLACK)


class TestMapLayerPostProcessing:
    """Tests for colourise, filter and saving."""

    def test_colourise(self, tile_dir):
        with MapLayer(base_dir=tile_dir, min_level=1, max_level=2) as layer:
            layer.radial_circle(**LONDON, r=1_000_000)
            assert layer.colourise() == 4
        for path in tile_dir.glob('*.png'):
            with Image.open(path) as img:
                rgba = np.array(img.convert('RGBA'))
            visible = rgba[..., 3] > 0
            # the heat-map ramp has no black
            assert visible.any()
            assert (rgba[visible][:, :3].max(axis=1) > 0).all()

    def test_colourise_level_range(self, tile_dir):
        with MapLayer(base_dir=tile_dir, min_level=1, max_level=2) as layer:
            layer.radial_circle(**LONDON, r=1_000_000)
            assert layer.colourise(min_level=2) == 2

    def test_filter(self, tile_dir):
        with MapLayer(base_dir=tile_dir, min_level=1, max_level=2) as layer:
            layer.circle(**LONDON, r=10, fill=BLACK)
            assert layer.filter('gaussian', stddev=1.5) >= 2
            with pytest.raises(ValueError):
                layer.filter('sepia')

    def test_save_with_resident_tiles(self, tile_dir):
        layer = MapLayer(base_dir=tile_dir, min_level=1, max_level=2, in_memory=600)
        layer.circle(**LONDON, r=10, fill=BLACK)
        assert not list(tile_dir.glob('*.png'))
        written = layer.save()
        assert written == len(list(tile_dir.glob('*.png')))
        assert written >= 2
        assert layer.save() == 0
        layer.close()

    def test_context_manager_saves_on_error(self, tile_dir):
        with pytest.raises(RuntimeError):
            with MapLayer(base_dir=tile_dir, min_level=1, max_level=1, in_memory=600) as layer:
                layer.circle(**LONDON, r=10, fill=BLACK)
                raise RuntimeError('interrupted')
        assert saved_levels(tile_dir) == [1]

    def test_no_autosave(self, tile_dir):
        with MapLayer(
            base_dir=tile_dir, min_level=1, max_level=1, in_memory=600, autosave=False
        ) as layer:
            layer.circle(**LONDON, r=10, fill=BLACK)
        assert not list(tile_dir.glob('*.png'))

    def test_close_reraises_save_failure(self, tile_dir):
        layer = MapLayer(base_dir=tile_dir, min_level=1, max_level=2, in_memory=600)
        layer.circle(**LONDON, r=10, fill=BLACK)
        shutil.rmtree(tile_dir)
        with pytest.raises(TileIOError):
            layer.close()
        assert layer.closed

    def test_close_is_idempotent(self, tile_dir):
        layer = MapLayer(base_dir=tile_dir, min_level=1, max_level=1)
        layer.close()
        layer.close()
