"""Imaging package - pixel operations on tile buffers."""

from imaging.color_utils import ColorMapper, build_color_lut, intensity
from imaging.combine import combine
from imaging.filters import apply_filter
from imaging.gradient import radial_gradient_layer

__all__ = [
    'ColorMapper',
    'apply_filter',
    'build_color_lut',
    'combine',
    'intensity',
    'radial_gradient_layer',
]
