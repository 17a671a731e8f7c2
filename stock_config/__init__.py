"""
stock_config -- single public entrypoint for stock kernel configuration.

Responsibility:
    ``get_active_config()`` is the only way runtime code obtains
    configuration.  It loads a YAML set (``sets/default.yaml`` unless told
    otherwise) into a frozen ``KernelConfig``.

Architecture position:
    Configuration sits above ``stock_kernel``.  The kernel MUST NEVER import
    from ``stock_config``; ``stock_config.bridges`` translates the loaded
    config into kernel inputs.

Failure modes:
    - ``FileNotFoundError`` -- the configuration file does not exist.
    - ``ValueError`` -- wrong types or out-of-range values.
    - ``KeyError`` -- a required key (``config_id``) is missing.

Audit relevance:
    Every successful call emits a ``STOCK_CONFIG_TRACE`` log entry with the
    config id, version and checksum.
"""

from __future__ import annotations

import logging
from pathlib import Path

from stock_config.loader import load_kernel_config
from stock_config.schema import (
    DatabaseConfig,
    KernelConfig,
    LedgerConfig,
    LoggingConfig,
)

_logger = logging.getLogger("stock_kernel.config")

DEFAULT_CONFIG_PATH = Path(__file__).parent / "sets" / "default.yaml"


def get_active_config(config_path: Path | str | None = None) -> KernelConfig:
    """
    Load and validate the active configuration.

    Not cached: callers hold the returned config for as long as they need
    it.

    Args:
        config_path: YAML file to load.  Defaults to sets/default.yaml.

    Raises:
        FileNotFoundError: The file does not exist.
        ValueError: Validation failed.
    """
    path = Path(config_path) if config_path is not None else DEFAULT_CONFIG_PATH
    if not path.is_file():
        raise FileNotFoundError(f"Configuration file not found: {path}")

    config = load_kernel_config(path)

    _logger.info(
        "STOCK_CONFIG_TRACE",
        extra={
            "trace_type": "STOCK_CONFIG_TRACE",
            "config_id": config.config_id,
            "config_version": config.version,
            "checksum": config.checksum,
            "atomic_requests": config.ledger.atomic_requests,
            "enforce_serial_availability": config.ledger.enforce_serial_availability,
        },
    )
    return config


__all__ = [
    "DEFAULT_CONFIG_PATH",
    "DatabaseConfig",
    "KernelConfig",
    "LedgerConfig",
    "LoggingConfig",
    "get_active_config",
]
