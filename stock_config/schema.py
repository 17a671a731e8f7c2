"""
KernelConfig schema.

Frozen dataclasses for the runtime configuration of the stock kernel.  YAML
sets are parsed into these types by ``stock_config.loader``; bridges in
``stock_config.bridges`` turn them into kernel inputs.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


@dataclass(frozen=True)
class DatabaseConfig:
    """Engine settings passed to ``init_engine_from_url``."""

    url: str
    echo: bool = False
    pool_size: int = 20
    max_overflow: int = 10
    pool_pre_ping: bool = True
    pool_timeout: int = 30
    pool_recycle: int = 1800

    def __post_init__(self) -> None:
        if not self.url:
            raise ValueError("database.url must not be empty")
        for name in ("pool_size", "pool_timeout", "pool_recycle"):
            if getattr(self, name) <= 0:
                raise ValueError(f"database.{name} must be positive")
        if self.max_overflow < 0:
            raise ValueError("database.max_overflow must not be negative")


@dataclass(frozen=True)
class LoggingConfig:
    level: str = "INFO"

    def __post_init__(self) -> None:
        if self.level.upper() not in _LOG_LEVELS:
            raise ValueError(
                f"logging.level must be one of {', '.join(_LOG_LEVELS)}, got {self.level!r}"
            )

    @property
    def level_number(self) -> int:
        return logging.getLevelName(self.level.upper())


@dataclass(frozen=True)
class LedgerConfig:
    """Switches mirrored into ``stock_kernel.services.LedgerOptions``."""

    atomic_requests: bool = True
    enforce_serial_availability: bool = True


@dataclass(frozen=True)
class KernelConfig:
    """One loaded configuration set."""

    config_id: str
    version: int
    database: DatabaseConfig
    logging: LoggingConfig
    ledger: LedgerConfig
    checksum: str = ""

    def __post_init__(self) -> None:
        if not self.config_id:
            raise ValueError("config_id must not be empty")
        if self.version < 1:
            raise ValueError("version must be >= 1")
