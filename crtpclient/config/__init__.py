"""Configuration helpers for crtpclient."""

from .model import ClientConfig
from .settings import load_config, load_config_file
from .logging import configure_logging
from . import schema  # noqa: F401  # pyright: ignore[reportUnusedImport]

__all__ = ["ClientConfig", "configure_logging", "load_config", "load_config_file"]
