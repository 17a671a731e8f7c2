"""
Config -> Kernel Bridges.

Functions that turn a KernelConfig into kernel inputs.  They live here
because the kernel never imports stock_config.

Usage:
    from stock_config import get_active_config
    from stock_config.bridges import init_engine_from_config, ledger_options_from_config

    config = get_active_config()
    init_engine_from_config(config)
    ledger = InventoryLedger(session, options=ledger_options_from_config(config))
"""

from __future__ import annotations

from typing import Any

from sqlalchemy.engine import Engine

from stock_config.schema import KernelConfig
from stock_kernel.db.engine import init_engine_from_url
from stock_kernel.logging_config import configure_logging
from stock_kernel.services.ledger_service import LedgerOptions


def ledger_options_from_config(config: KernelConfig) -> LedgerOptions:
    return LedgerOptions(
        atomic_requests=config.ledger.atomic_requests,
        enforce_serial_availability=config.ledger.enforce_serial_availability,
    )


def init_engine_from_config(config: KernelConfig) -> Engine:
    db = config.database
    return init_engine_from_url(
        db.url,
        echo=db.echo,
        pool_size=db.pool_size,
        max_overflow=db.max_overflow,
        pool_pre_ping=db.pool_pre_ping,
        pool_timeout=db.pool_timeout,
        pool_recycle=db.pool_recycle,
    )


def configure_logging_from_config(config: KernelConfig, stream: Any = None) -> None:
    configure_logging(level=config.logging.level_number, stream=stream)
