"""Error types raised by the map layer."""

from __future__ import annotations

from pathlib import Path


class MapLayerError(Exception):
    """Base class for map layer errors."""


class ConfigurationError(MapLayerError, ValueError):
    """Invalid layer, level or tile configuration.

    Attributes:
        field: Name of the offending setting, if known.
        message: Human readable reason.
    """

    def __init__(self, field: str | None, message: str) -> None:
        self.field = field
        self.message = message
        text = f'{field}: {message}' if field else message
        super().__init__(text)


class TileIOError(MapLayerError, OSError):
    """A tile file could not be read or written."""

    def __init__(self, path: str | Path, message: str) -> None:
        self.path = Path(path)
        self.message = message
        super().__init__(f"{message}: '{self.path}'")
