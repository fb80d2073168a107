from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import NamedTuple

from pydantic import BaseModel, Field, ValidationError, field_validator, model_validator

from shared.constants import (
    DEFAULT_CENTROID_LATITUDE,
    DEFAULT_CENTROID_LONGITUDE,
    MAX_ZOOM,
    MIN_ZOOM,
    CombineMode,
    default_combine_mode,
)
from shared.exceptions import ConfigurationError


class GeoPoint(NamedTuple):
    """WGS84 point in degrees."""

    latitude: float
    longitude: float


@dataclass(frozen=True)
class TileConfig:
    """File handling options shared by every tile of a level."""

    base_dir: Path
    overwrite: bool = True
    autosave: bool = True

    def reloading(self) -> TileConfig:
        """Same options, but existing files are loaded instead of replaced."""
        return TileConfig(base_dir=self.base_dir, overwrite=False, autosave=self.autosave)


class LayerSettings(BaseModel):
    """
    Options of a map layer, propagated to each of its levels.

    Validation failures are reported by create() as ConfigurationError with
    the name of the offending field.
    """

    model_config = {
        'frozen': True,
        'extra': 'forbid',
    }

    # Directory holding <quadkey>.png files
    base_dir: Path = Field(default_factory=Path.cwd)
    # Replace existing tile files instead of drawing over them
    overwrite: bool = True
    # Save resident tiles when they are released
    autosave: bool = True
    # Seconds an idle tile stays in memory (0 = save after every primitive)
    in_memory: int = Field(default=0, ge=0)
    min_level: int = Field(default=MIN_ZOOM, ge=MIN_ZOOM, le=MAX_ZOOM)
    max_level: int = Field(default=MAX_ZOOM, ge=MIN_ZOOM, le=MAX_ZOOM)
    combine: CombineMode = Field(default_factory=default_combine_mode)
    centroid_latitude: float = DEFAULT_CENTROID_LATITUDE
    centroid_longitude: float = DEFAULT_CENTROID_LONGITUDE

    @field_validator('base_dir')
    @classmethod
    def validate_base_dir(cls, v: Path) -> Path:
        if not v.is_dir():
            msg = f'Not an existing directory: {v}'
            raise ValueError(msg)
        return v

    @model_validator(mode='after')
    def validate_level_range(self) -> LayerSettings:
        if self.min_level > self.max_level:
            msg = f'min_level {self.min_level} > max_level {self.max_level}'
            raise ValueError(msg)
        return self

    @classmethod
    def create(cls, **kwargs: object) -> LayerSettings:
        """Validate keyword options, raising ConfigurationError on failure."""
        try:
            return cls.model_validate(kwargs)
        except ValidationError as e:
            raise configuration_error_from(e) from e

    @property
    def centroid(self) -> GeoPoint:
        return GeoPoint(self.centroid_latitude, self.centroid_longitude)

    @property
    def zoom_levels(self) -> range:
        return range(self.min_level, self.max_level + 1)

    def tile_config(self) -> TileConfig:
        return TileConfig(
            base_dir=self.base_dir,
            overwrite=self.overwrite,
            autosave=self.autosave,
        )


def configuration_error_from(error: ValidationError) -> ConfigurationError:
    """Convert the first pydantic error into a ConfigurationError."""
    first = error.errors()[0]
    loc = first.get('loc') or ()
    field = '.'.join(str(part) for part in loc) if loc else None
    if field is None and 'min_level' in first.get('msg', ''):
        # model-level validator: the level range is the only one
        field = 'min_level'
    return ConfigurationError(field, first.get('msg', str(error)))
