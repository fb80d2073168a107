"""Shared constants and error types."""
from shared.exceptions import ConfigurationError, MapLayerError, TileIOError

__all__ = [
    'ConfigurationError',
    'MapLayerError',
    'TileIOError',
]
