"""Colour ramps and colourising of greyscale heat-map tiles.

Intensities are 8-bit, so the ramp LUT has 256 entries, one per grey level.
"""

from __future__ import annotations

import numpy as np

from shared.constants import COLOURISE_LUT_SIZE, HEATMAP_COLOR_RAMP

ColorRamp = list[tuple[float, tuple[int, int, int]]]


def lerp(a: float, b: float, t: float) -> float:
    """Linear interpolation between a and b."""
    return a + (b - a) * t


def build_color_lut(
    ramp: ColorRamp,
    lut_size: int = COLOURISE_LUT_SIZE,
) -> list[tuple[int, int, int]]:
    """
    Build a lookup table (LUT) from a color ramp.

    Args:
        ramp: List of (t, (R, G, B)) tuples, t ascending in [0, 1]
        lut_size: Size of the resulting LUT

    Returns:
        List of RGB tuples

    """
    if not ramp:
        msg = 'Colour ramp is empty'
        raise ValueError(msg)
    if len(ramp) == 1:
        return [ramp[0][1]] * lut_size

    lut: list[tuple[int, int, int]] = []
    for i in range(lut_size):
        t = i / (lut_size - 1) if lut_size > 1 else 0.0
        for j in range(1, len(ramp)):
            t0, c0 = ramp[j - 1]
            t1, c1 = ramp[j]
            if t <= t1 or j == len(ramp) - 1:
                local = 0.0 if t1 == t0 else min(max((t - t0) / (t1 - t0), 0.0), 1.0)
                lut.append(
                    (
                        round(lerp(c0[0], c1[0], local)),
                        round(lerp(c0[1], c1[1], local)),
                        round(lerp(c0[2], c1[2], local)),
                    )
                )
                break
    return lut


class ColorMapper:
    """Maps 8-bit intensities to colours through a LUT of 256 entries."""

    def __init__(self, ramp: ColorRamp | None = None) -> None:
        self._lut = np.array(
            build_color_lut(ramp or HEATMAP_COLOR_RAMP, COLOURISE_LUT_SIZE),
            dtype=np.uint8,
        )

    @property
    def lut(self) -> np.ndarray:
        return self._lut

    def colourise(self, buffer: np.ndarray) -> np.ndarray:
        """
        Replace colour channels of a greyscale RGBA buffer by ramp colours.

        Intensity is darkness weighted by alpha, so an opaque black pixel
        maps to the top of the ramp. Alpha is kept; fully transparent pixels
        are left untouched.
        """
        out = buffer.copy()
        mask = buffer[..., 3] > 0
        if not mask.any():
            return out
        out[mask, :3] = self._lut[intensity(buffer)[mask]]
        return out


def intensity(buffer: np.ndarray) -> np.ndarray:
    """Heat intensity 0..255 of each pixel of an RGBA buffer."""
    # 255 * 587 overflows uint16
    rgb = buffer[..., :3].astype(np.uint32)
    grey = (rgb[..., 0] * 299 + rgb[..., 1] * 587 + rgb[..., 2] * 114) // 1000
    alpha = buffer[..., 3].astype(np.uint32)
    return ((255 - grey) * alpha // 255).astype(np.uint8)
