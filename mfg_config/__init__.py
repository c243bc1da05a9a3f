"""
Manufacturing configuration (``mfg_config``).

Single public entry point: ``get_active_config()``.  It loads the YAML
configuration set (``sets/default.yaml`` unless ``MFG_CONFIG_PATH`` or an
explicit path says otherwise), applies the ``DATABASE_URL`` override and
returns a frozen ``ManufacturingConfig``.
"""

from __future__ import annotations

import dataclasses
import logging
import os
from pathlib import Path

from mfg_config.loader import load_config_file
from mfg_config.schema import (
    DatabaseConfig,
    LoggingConfig,
    ManufacturingConfig,
    MRPConfig,
)

_logger = logging.getLogger("mfg_kernel.config")

_DEFAULT_CONFIG_PATH = Path(__file__).parent / "sets" / "default.yaml"

__all__ = [
    "DatabaseConfig",
    "LoggingConfig",
    "ManufacturingConfig",
    "MRPConfig",
    "get_active_config",
]


def get_active_config(config_path: Path | str | None = None) -> ManufacturingConfig:
    """
    Load the active configuration set.

    Resolution order for the file: ``config_path`` argument, then the
    ``MFG_CONFIG_PATH`` environment variable, then the packaged default.
    ``DATABASE_URL`` in the environment replaces ``database.url``.

    Raises:
        FileNotFoundError: if the resolved file does not exist.
        ValueError: if the configuration fails validation.
    """
    path = Path(config_path or os.environ.get("MFG_CONFIG_PATH") or _DEFAULT_CONFIG_PATH)
    config = load_config_file(path)

    database_url = os.environ.get("DATABASE_URL")
    if database_url:
        config = dataclasses.replace(
            config, database=dataclasses.replace(config.database, url=database_url),
        )

    _logger.info(
        "MFG_CONFIG_LOADED",
        extra={
            "config_id": config.config_id,
            "config_version": config.version,
            "checksum": config.checksum,
            "config_path": str(path),
        },
    )
    return config
