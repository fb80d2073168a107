"""Geographic drawing onto multi-zoom quad-key tile pyramids."""

from maplayer.dispatch import DRAWING_OPERATIONS, OPERATIONS, Operation, Primitive
from maplayer.layer import MapLayer
from maplayer.level import Level

__all__ = [
    'DRAWING_OPERATIONS',
    'OPERATIONS',
    'Level',
    'MapLayer',
    'Operation',
    'Primitive',
]
