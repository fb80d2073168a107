"""Image filters applied to a single tile buffer.

Filters only see the pixels of one tile, so blurs leave visible edges at
tile borders.
"""

from __future__ import annotations

import cv2
import numpy as np

from shared.constants import FilterType


def gaussian(buffer: np.ndarray, stddev: float = 1.0) -> np.ndarray:
    """Blur all four channels with a Gaussian kernel."""
    if stddev <= 0:
        return buffer.copy()
    return cv2.GaussianBlur(buffer, (0, 0), sigmaX=stddev, sigmaY=stddev)


def unsharpmask(buffer: np.ndarray, stddev: float = 2.0, scale: float = 1.0) -> np.ndarray:
    """Sharpen colour channels: out = img + scale * (img - blur(img))."""
    if stddev <= 0:
        return buffer.copy()
    rgb = buffer[..., :3].astype(np.float32)
    blurred = cv2.GaussianBlur(rgb, (0, 0), sigmaX=stddev, sigmaY=stddev)
    sharp = np.clip(rgb + scale * (rgb - blurred), 0, 255)
    out = buffer.copy()
    out[..., :3] = np.rint(sharp).astype(np.uint8)
    return out


def contrast(buffer: np.ndarray, intensity: float = 1.0) -> np.ndarray:
    """Scale colour channels by intensity."""
    if intensity < 0:
        msg = f'Contrast intensity must be non-negative, got {intensity}'
        raise ValueError(msg)
    out = buffer.copy()
    scaled = buffer[..., :3].astype(np.float32) * intensity
    out[..., :3] = np.rint(np.clip(scaled, 0, 255)).astype(np.uint8)
    return out


def hardinvert(buffer: np.ndarray) -> np.ndarray:
    """Invert colour channels, keep alpha."""
    out = buffer.copy()
    out[..., :3] = 255 - buffer[..., :3]
    return out


_FILTERS = {
    FilterType.GAUSSIAN: gaussian,
    FilterType.UNSHARPMASK: unsharpmask,
    FilterType.CONTRAST: contrast,
    FilterType.HARDINVERT: hardinvert,
}


def apply_filter(
    buffer: np.ndarray,
    filter_type: FilterType | str,
    **options: float,
) -> np.ndarray:
    """
    Apply a named filter to an RGBA buffer.

    Raises:
        ValueError: unknown filter type or option

    """
    try:
        kind = FilterType(filter_type)
    except ValueError:
        known = ', '.join(f.value for f in FilterType)
        msg = f'Unknown filter type {filter_type!r} (expected one of: {known})'
        raise ValueError(msg) from None
    try:
        return _FILTERS[kind](buffer, **options)
    except TypeError as e:
        msg = f'Invalid options for filter {kind.value!r}: {options}'
        raise ValueError(msg) from e
