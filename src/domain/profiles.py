"""TOML profiles for LayerSettings."""

from __future__ import annotations

import logging
from pathlib import Path

import tomlkit
from pydantic import ValidationError

from domain.models import LayerSettings, configuration_error_from

logger = logging.getLogger(__name__)


def load_settings(path: str | Path) -> LayerSettings:
    """
    Load and validate a TOML profile.

    Keys are the LayerSettings field names; missing keys take their defaults.
    Raises FileNotFoundError for a missing file and ConfigurationError for an
    invalid value.
    """
    path = Path(path)
    if not path.exists():
        msg = f'Profile not found: {path}'
        raise FileNotFoundError(msg)
    data = tomlkit.parse(path.read_text(encoding='utf-8')).unwrap()
    try:
        settings = LayerSettings.model_validate(data)
    except ValidationError as e:
        raise configuration_error_from(e) from e
    logger.info(
        'Profile %s loaded: levels %d..%d, base_dir=%s',
        path,
        settings.min_level,
        settings.max_level,
        settings.base_dir,
    )
    return settings


def save_settings(path: str | Path, settings: LayerSettings) -> Path:
    """Write settings to a TOML profile (no atomic replace)."""
    path = Path(path)
    data = settings.model_dump(mode='json')
    path.write_text(tomlkit.dumps(data), encoding='utf-8')
    return path
