"""
Configuration Loader (``stock_config.loader``).

Responsibility
--------------
Loads a YAML configuration set and parses it into the frozen dataclasses of
``stock_config.schema``.  The runtime entry point is
``stock_config.get_active_config()``; callers do not use this module
directly.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Missing required keys  -> ``KeyError`` propagates.
* Wrong value types or out-of-range values  -> ``ValueError``.
"""

from __future__ import annotations

import hashlib
import json
import os
from pathlib import Path
from typing import Any

import yaml

from stock_config.schema import DatabaseConfig, KernelConfig, LedgerConfig, LoggingConfig


def load_yaml_file(path: Path) -> dict[str, Any]:
    """Contents of one YAML file; an empty file gives an empty dict."""
    with open(path) as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ValueError(f"{path}: top level must be a mapping")
    return data


def compute_checksum(data: dict[str, Any]) -> str:
    """SHA-256 of the canonical JSON serialization."""
    canonical = json.dumps(data, sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode()).hexdigest()


def _section(data: dict[str, Any], name: str) -> dict[str, Any]:
    section = data.get(name) or {}
    if not isinstance(section, dict):
        raise ValueError(f"{name}: must be a mapping")
    return section


def _bool(section: dict[str, Any], key: str, default: bool, prefix: str) -> bool:
    value = section.get(key, default)
    if not isinstance(value, bool):
        raise ValueError(f"{prefix}.{key} must be true or false, got {value!r}")
    return value


def _int(section: dict[str, Any], key: str, default: int, prefix: str) -> int:
    value = section.get(key, default)
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValueError(f"{prefix}.{key} must be an integer, got {value!r}")
    return value


def parse_database(data: dict[str, Any]) -> DatabaseConfig:
    """
    ``url_env`` names an environment variable that overrides ``url`` when
    it is set.
    """
    url = data.get("url", "")
    url_env = data.get("url_env")
    if url_env:
        url = os.environ.get(url_env, url)
    return DatabaseConfig(
        url=url,
        echo=_bool(data, "echo", False, "database"),
        pool_size=_int(data, "pool_size", 20, "database"),
        max_overflow=_int(data, "max_overflow", 10, "database"),
        pool_pre_ping=_bool(data, "pool_pre_ping", True, "database"),
        pool_timeout=_int(data, "pool_timeout", 30, "database"),
        pool_recycle=_int(data, "pool_recycle", 1800, "database"),
    )


def parse_logging(data: dict[str, Any]) -> LoggingConfig:
    return LoggingConfig(level=str(data.get("level", "INFO")))


def parse_ledger(data: dict[str, Any]) -> LedgerConfig:
    return LedgerConfig(
        atomic_requests=_bool(data, "atomic_requests", True, "ledger"),
        enforce_serial_availability=_bool(
            data, "enforce_serial_availability", True, "ledger"
        ),
    )


def parse_kernel_config(data: dict[str, Any]) -> KernelConfig:
    """
    Build a KernelConfig from an already-loaded mapping.

    The checksum covers the mapping as written, before environment
    overrides are applied.
    """
    return KernelConfig(
        config_id=data["config_id"],
        version=_int(data, "version", 1, "config"),
        database=parse_database(_section(data, "database")),
        logging=parse_logging(_section(data, "logging")),
        ledger=parse_ledger(_section(data, "ledger")),
        checksum=compute_checksum(data),
    )


def load_kernel_config(path: Path) -> KernelConfig:
    return parse_kernel_config(load_yaml_file(path))
