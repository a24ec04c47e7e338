"""Configuration helpers for the mcumgr client."""

from .logging import configure_logging
from .settings import ClientConfig, load_config, load_config_file
from . import logging, settings  # noqa: F401  # pyright: ignore[reportUnusedImport]

__all__ = ["ClientConfig", "configure_logging", "load_config", "load_config_file"]
