"""Settings loader for crtpclient.

Configuration comes from an in-memory mapping or a JSON file. Missing keys
fall back to the defaults in :mod:`crtpclient.const`. Environment variables
are not used as overrides.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from pathlib import Path
from typing import Any

import msgspec

from .model import ClientConfig
from .schema import ClientConfigSchema

logger = logging.getLogger("crtpclient.config")


def load_config(raw: Mapping[str, Any] | None = None) -> ClientConfig:
    """Validate *raw* and build a :class:`ClientConfig`.

    Raises :class:`marshmallow.ValidationError` on unknown keys or values
    outside their allowed ranges.
    """
    config: ClientConfig = ClientConfigSchema().load(dict(raw or {}))
    return config


def load_config_file(path: str | Path) -> ClientConfig:
    """Load a JSON configuration file."""
    source = Path(path)
    try:
        raw = msgspec.json.decode(source.read_bytes(), type=dict[str, Any])
    except msgspec.DecodeError as exc:
        raise ValueError(f"Invalid configuration file {source}: {exc}") from exc
    logger.debug("Loaded configuration from %s", source)
    return load_config(raw)


__all__ = ["ClientConfig", "load_config", "load_config_file"]
