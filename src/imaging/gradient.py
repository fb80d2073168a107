"""Radial gradient used for heat-map circles."""

from __future__ import annotations

import numpy as np

from shared.constants import RADIAL_GRADIENT_COLOR, TILE_SIZE


def radial_gradient_layer(
    center: tuple[float, float],
    radius: float,
    color: tuple[int, int, int] = RADIAL_GRADIENT_COLOR,
    size: int = TILE_SIZE,
) -> np.ndarray:
    """
    Render a radial gradient into a transparent RGBA layer.

    Alpha falls linearly from 255 at center to 0 at radius; the colour is
    constant. Pixel values depend only on the offset from center, so the same
    circle rendered on neighbouring tiles joins without seams.

    Args:
        center: (x, y) of the centre relative to the layer origin, may lie
            outside the layer
        radius: Radius in pixels (> 0)
        color: RGB colour of the gradient
        size: Layer side in pixels

    Returns:
        uint8 array (size, size, 4)

    """
    layer = np.zeros((size, size, 4), dtype=np.uint8)
    if radius <= 0:
        return layer

    cx, cy = center
    ys, xs = np.mgrid[0:size, 0:size]
    dist = np.hypot(xs - cx, ys - cy)
    weight = np.clip(1.0 - dist / radius, 0.0, 1.0)

    alpha = np.rint(weight * 255.0).astype(np.uint8)
    inside = alpha > 0
    layer[inside, 0] = color[0]
    layer[inside, 1] = color[1]
    layer[inside, 2] = color[2]
    layer[..., 3] = alpha
    return layer
