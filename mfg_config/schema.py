"""
Manufacturing configuration schema.

Frozen dataclasses the YAML configuration set is parsed into.  Validation
happens in ``__post_init__`` so an invalid set can never be constructed.
"""

from __future__ import annotations

from dataclasses import dataclass, field

VALID_ORDER_STATUSES = frozenset(
    {"draft", "scheduled", "in_progress", "completed", "cancelled"}
)


@dataclass(frozen=True)
class DatabaseConfig:
    url: str = "sqlite+pysqlite:///:memory:"
    echo: bool = False
    pool_size: int = 10

    def __post_init__(self):
        if not self.url:
            raise ValueError("database.url is required")
        if self.pool_size < 1:
            raise ValueError(f"database.pool_size must be >= 1, got {self.pool_size}")


@dataclass(frozen=True)
class MRPConfig:
    """Planning engine settings."""

    default_horizon_days: int = 30
    max_horizon_days: int = 365
    open_order_statuses: tuple[str, ...] = ("draft", "scheduled", "in_progress")
    run_number_prefix: str = "MRP"
    pr_number_prefix: str = "PR-MRP"

    def __post_init__(self):
        if self.max_horizon_days < 1:
            raise ValueError(f"mrp.max_horizon_days must be >= 1, got {self.max_horizon_days}")
        if not 1 <= self.default_horizon_days <= self.max_horizon_days:
            raise ValueError(
                "mrp.default_horizon_days must be within 1..max_horizon_days, "
                f"got {self.default_horizon_days}"
            )
        unknown = set(self.open_order_statuses) - VALID_ORDER_STATUSES
        if unknown:
            raise ValueError(f"mrp.open_order_statuses has unknown values: {sorted(unknown)}")
        closed = set(self.open_order_statuses) & {"completed", "cancelled"}
        if closed:
            raise ValueError(f"mrp.open_order_statuses must not include {sorted(closed)}")
        if not self.open_order_statuses:
            raise ValueError("mrp.open_order_statuses must not be empty")
        if not self.run_number_prefix or not self.pr_number_prefix:
            raise ValueError("mrp number prefixes must not be empty")


@dataclass(frozen=True)
class LoggingConfig:
    level: str = "INFO"

    def __post_init__(self):
        if self.level.upper() not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"logging.level is not a logging level: {self.level}")


@dataclass(frozen=True)
class ManufacturingConfig:
    """The whole configuration set."""

    config_id: str
    version: int
    database: DatabaseConfig = field(default_factory=DatabaseConfig)
    mrp: MRPConfig = field(default_factory=MRPConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)
    checksum: str = ""
