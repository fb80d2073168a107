"""Geo module - tile system coordinate math."""

from .quadkey import (
    latlon_to_pixel,
    latlons_to_pixels,
    meters_to_pixels,
    pixel_to_tile_coords,
    quad_key_to_tile_coords,
    tile_coords_to_pixel_origin,
    tile_coords_to_quad_key,
    tiles_in_region,
    width_at_level,
)

__all__ = [
    'latlon_to_pixel',
    'latlons_to_pixels',
    'meters_to_pixels',
    'pixel_to_tile_coords',
    'quad_key_to_tile_coords',
    'tile_coords_to_pixel_origin',
    'tile_coords_to_quad_key',
    'tiles_in_region',
    'width_at_level',
]
