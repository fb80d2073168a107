"""Bing Maps tile system math.

Conversions between WGS84 latitude/longitude, canvas pixels of a zoom level,
tile grid coordinates and quad keys. All functions are pure.
"""

from __future__ import annotations

import math
from typing import TYPE_CHECKING

from shared.constants import (
    EARTH_RADIUS_M,
    MERCATOR_MAX_LAT_DEG,
    TILE_SIZE,
    WORLD_LNG_HALF_SPAN_DEG,
    WORLD_LNG_SPAN_DEG,
)

if TYPE_CHECKING:
    from collections.abc import Iterator, Sequence

QUAD_KEY_DIGITS = '0123'


def clip(value: float, lo: float, hi: float) -> float:
    """Clamp value to [lo, hi]."""
    return min(max(value, lo), hi)


def wrap_longitude(lng_deg: float) -> float:
    """Wrap longitude into [-180, 180)."""
    return (lng_deg + WORLD_LNG_HALF_SPAN_DEG) % WORLD_LNG_SPAN_DEG - WORLD_LNG_HALF_SPAN_DEG


def width_at_level(zoom: int) -> int:
    """Canvas side length (px) at a zoom level."""
    return TILE_SIZE << zoom


def latlon_to_pixel(zoom: int, lat_deg: float, lng_deg: float) -> tuple[int, int]:
    """
    Project WGS84 (lat, lng) onto the Web Mercator canvas of a zoom level.

    Latitude is clamped to the Mercator range and longitude wrapped, so any
    input yields a pixel inside the canvas.
    """
    lat = clip(lat_deg, -MERCATOR_MAX_LAT_DEG, MERCATOR_MAX_LAT_DEG)
    lng = wrap_longitude(lng_deg)

    x = (lng + WORLD_LNG_HALF_SPAN_DEG) / WORLD_LNG_SPAN_DEG
    siny = math.sin(math.radians(lat))
    y = 0.5 - math.log((1 + siny) / (1 - siny)) / (4 * math.pi)

    size = width_at_level(zoom)
    px = int(clip(math.floor(x * size + 0.5), 0, size - 1))
    py = int(clip(math.floor(y * size + 0.5), 0, size - 1))
    return px, py


def latlons_to_pixels(
    zoom: int,
    points: Sequence[Sequence[float]],
) -> list[tuple[int, int]]:
    """Project a list of [lat, lng] pairs."""
    return [latlon_to_pixel(zoom, lat, lng) for lat, lng in points]


def pixel_to_tile_coords(x: int, y: int) -> tuple[int, int]:
    return x // TILE_SIZE, y // TILE_SIZE


def tile_coords_to_pixel_origin(tx: int, ty: int) -> tuple[int, int]:
    return tx * TILE_SIZE, ty * TILE_SIZE


def tile_coords_to_quad_key(tx: int, ty: int, zoom: int) -> str:
    """
    Encode tile coordinates as a quad key of length zoom.

    Each digit interleaves one bit of tx (weight 1) and one bit of ty
    (weight 2), most significant bit first.
    """
    digits = []
    for i in range(zoom, 0, -1):
        mask = 1 << (i - 1)
        digit = 0
        if tx & mask:
            digit += 1
        if ty & mask:
            digit += 2
        digits.append(QUAD_KEY_DIGITS[digit])
    return ''.join(digits)


def quad_key_to_tile_coords(quad_key: str) -> tuple[int, int, int]:
    """Decode a quad key into (tx, ty, zoom)."""
    tx = ty = 0
    zoom = len(quad_key)
    for i in range(zoom, 0, -1):
        mask = 1 << (i - 1)
        digit = quad_key[zoom - i]
        if digit == '0':
            continue
        if digit == '1':
            tx |= mask
        elif digit == '2':
            ty |= mask
        elif digit == '3':
            tx |= mask
            ty |= mask
        else:
            msg = f'Invalid quad key digit {digit!r} in {quad_key!r}'
            raise ValueError(msg)
    return tx, ty, zoom


def meters_per_pixel(lat_deg: float, zoom: int) -> float:
    """Ground resolution (m/px) at a latitude and zoom."""
    lat = clip(lat_deg, -MERCATOR_MAX_LAT_DEG, MERCATOR_MAX_LAT_DEG)
    return math.cos(math.radians(lat)) * 2 * math.pi * EARTH_RADIUS_M / width_at_level(zoom)


def meters_to_pixels(meters: float, lat_deg: float, zoom: int) -> float:
    return meters / meters_per_pixel(lat_deg, zoom)


def tiles_in_region(
    zoom: int,
    x0: float,
    y0: float,
    x1: float,
    y1: float,
) -> Iterator[tuple[int, int]]:
    """
    Yield grid coordinates of tiles intersecting a canvas rectangle.

    The rectangle is inclusive on both ends and clamped to the canvas; a
    rectangle entirely off the canvas yields nothing.
    """
    last = width_at_level(zoom) - 1
    if x1 < 0 or y1 < 0 or x0 > last or y0 > last:
        return
    left, top = pixel_to_tile_coords(
        int(math.floor(clip(x0, 0, last))), int(math.floor(clip(y0, 0, last)))
    )
    right, bottom = pixel_to_tile_coords(
        int(math.floor(clip(x1, 0, last))), int(math.floor(clip(y1, 0, last)))
    )
    for ty in range(top, bottom + 1):
        for tx in range(left, right + 1):
            yield tx, ty
