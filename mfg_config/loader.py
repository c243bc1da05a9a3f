"""
Configuration Loader (``mfg_config.loader``).

Responsibility
--------------
Reads a YAML configuration set and parses it into the frozen dataclasses
of ``mfg_config.schema``.  Runtime code goes through
``mfg_config.get_active_config()`` rather than calling this directly.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Missing required keys  -> ``KeyError`` propagates.
* Invalid values  -> ``ValueError`` from the schema's ``__post_init__``.
"""

from __future__ import annotations

import hashlib
import json
from pathlib import Path
from typing import Any

import yaml

from mfg_config.schema import (
    DatabaseConfig,
    LoggingConfig,
    ManufacturingConfig,
    MRPConfig,
)


def load_yaml_file(path: Path) -> dict[str, Any]:
    """Load one YAML file; an empty file yields an empty dict."""
    with open(path) as f:
        return yaml.safe_load(f) or {}


def compute_checksum(data: dict[str, Any]) -> str:
    """SHA-256 of the canonical JSON form of ``data``."""
    canonical = json.dumps(data, sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode()).hexdigest()


def parse_mrp(data: dict[str, Any]) -> MRPConfig:
    defaults = MRPConfig()
    return MRPConfig(
        default_horizon_days=int(data.get("default_horizon_days", defaults.default_horizon_days)),
        max_horizon_days=int(data.get("max_horizon_days", defaults.max_horizon_days)),
        open_order_statuses=tuple(
            data.get("open_order_statuses", defaults.open_order_statuses)
        ),
        run_number_prefix=data.get("run_number_prefix", defaults.run_number_prefix),
        pr_number_prefix=data.get("pr_number_prefix", defaults.pr_number_prefix),
    )


def parse_database(data: dict[str, Any]) -> DatabaseConfig:
    defaults = DatabaseConfig()
    return DatabaseConfig(
        url=data.get("url", defaults.url),
        echo=bool(data.get("echo", defaults.echo)),
        pool_size=int(data.get("pool_size", defaults.pool_size)),
    )


def parse_config(data: dict[str, Any]) -> ManufacturingConfig:
    """
    Parse a full configuration set.

    Raises:
        KeyError: if ``config_id`` or ``version`` is missing.
        ValueError: if any section fails validation.
    """
    return ManufacturingConfig(
        config_id=data["config_id"],
        version=int(data["version"]),
        database=parse_database(data.get("database") or {}),
        mrp=parse_mrp(data.get("mrp") or {}),
        logging=LoggingConfig(level=(data.get("logging") or {}).get("level", "INFO")),
        checksum=compute_checksum(data),
    )


def load_config_file(path: Path) -> ManufacturingConfig:
    return parse_config(load_yaml_file(path))
