"""Domain layer - settings models and profiles."""
from domain.models import GeoPoint, LayerSettings, TileConfig
from domain.profiles import load_settings, save_settings

__all__ = [
    'GeoPoint',
    'LayerSettings',
    'TileConfig',
    'load_settings',
    'save_settings',
]
