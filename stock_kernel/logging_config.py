"""
Structured JSON logging for the stock kernel.

Every record under the ``stock_kernel`` logger becomes one JSON line:
the envelope (ts, level, logger, message), the request context held in
LogContext, the ``extra`` fields of the call and, for exceptions, the
error code plus the structured attributes of StockKernelError subclasses.

Messages are snake_case event names (``movement_recorded``,
``scope_denied``); the detail goes in ``extra``.
"""

__all__ = [
    "StructuredFormatter",
    "LogContext",
    "get_logger",
    "configure_logging",
    "reset_logging",
]

import json
import logging
import sys
import threading
from contextvars import ContextVar, Token
from datetime import UTC, date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID

# ---------------------------------------------------------------------------
# Request context
# ---------------------------------------------------------------------------

_CONTEXT_FIELDS: tuple[str, ...] = (
    "correlation_id",
    "actor_id",
    "tenant_id",
    "branch_id",
    "product_id",
    "movement_id",
)

_CONTEXT_VARS: dict[str, ContextVar[str | None]] = {
    name: ContextVar(f"stock_log_{name}", default=None) for name in _CONTEXT_FIELDS
}


class LogContext:
    """
    Request-scoped log fields, safe across threads and asyncio tasks.

    Values are stored as strings; ``bind()`` converts UUIDs and other
    values with ``str()``.
    """

    FIELDS = _CONTEXT_FIELDS

    @classmethod
    def set(
        cls,
        *,
        correlation_id: str | None = None,
        actor_id: str | None = None,
        tenant_id: str | None = None,
        branch_id: str | None = None,
        product_id: str | None = None,
        movement_id: str | None = None,
    ) -> None:
        """Set context fields. None leaves a field untouched."""
        values = {
            "correlation_id": correlation_id,
            "actor_id": actor_id,
            "tenant_id": tenant_id,
            "branch_id": branch_id,
            "product_id": product_id,
            "movement_id": movement_id,
        }
        for name, value in values.items():
            if value is not None:
                _CONTEXT_VARS[name].set(value)

    @classmethod
    def get_all(cls) -> dict[str, str]:
        """Fields that currently hold a value."""
        return {
            name: value
            for name, var in _CONTEXT_VARS.items()
            if (value := var.get()) is not None
        }

    @classmethod
    def clear(cls) -> None:
        for var in _CONTEXT_VARS.values():
            var.set(None)

    @classmethod
    def bind(cls, **fields: Any) -> "_BoundContext":
        """
        Set fields for the duration of a ``with`` block.

        Unknown names and None values are ignored, so callers can pass
        optional ids straight through.
        """
        return _BoundContext(fields)


class _BoundContext:
    def __init__(self, fields: dict[str, Any]):
        self._fields = {
            name: str(value)
            for name, value in fields.items()
            if value is not None and name in _CONTEXT_VARS
        }
        self._tokens: list[tuple[str, Token]] = []

    def __enter__(self) -> type[LogContext]:
        for name, value in self._fields.items():
            self._tokens.append((name, _CONTEXT_VARS[name].set(value)))
        return LogContext

    def __exit__(self, *exc: Any) -> None:
        while self._tokens:
            name, token = self._tokens.pop()
            _CONTEXT_VARS[name].reset(token)


# ---------------------------------------------------------------------------
# JSON Formatter
# ---------------------------------------------------------------------------

_STDLIB_KEYS: frozenset[str] = frozenset(
    vars(logging.LogRecord("", 0, "", 0, "", (), None)).keys()
) | {"message", "taskName"}


class _JSONEncoder(json.JSONEncoder):
    """UUIDs, dates, Decimals, enums and sets in log payloads."""

    def default(self, obj: Any) -> Any:
        if isinstance(obj, Enum):
            return obj.value
        if isinstance(obj, (UUID, Decimal)):
            return str(obj)
        if isinstance(obj, (datetime, date)):
            return obj.isoformat()
        if isinstance(obj, (set, frozenset)):
            return sorted(obj, key=str)
        return super().default(obj)


def _exception_fields(exc: BaseException) -> dict[str, Any]:
    fields: dict[str, Any] = {
        "exc_type": type(exc).__name__,
        "exc_message": str(exc),
    }
    code = getattr(exc, "code", None)
    if code is not None:
        fields["exc_code"] = code
    # StockKernelError subclasses keep their structured data as attributes
    for key, value in vars(exc).items():
        if not key.startswith("_") and key not in ("args", "code"):
            fields[f"exc_{key}"] = value
    return fields


class StructuredFormatter(logging.Formatter):
    """One JSON object per record."""

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        payload.update(LogContext.get_all())

        for key, value in vars(record).items():
            if key not in _STDLIB_KEYS and key not in payload:
                payload[key] = value

        if record.exc_info and record.exc_info[1] is not None:
            payload.update(_exception_fields(record.exc_info[1]))
            payload["traceback"] = self.formatException(record.exc_info)

        return json.dumps(payload, cls=_JSONEncoder, default=str)


# ---------------------------------------------------------------------------
# Logger factory and setup
# ---------------------------------------------------------------------------

_LOGGER_PREFIX = "stock_kernel"

_configured = False
_lock = threading.Lock()


def get_logger(name: str) -> logging.Logger:
    """Child of the ``stock_kernel`` logger, e.g. ``services.ledger``."""
    return logging.getLogger(f"{_LOGGER_PREFIX}.{name}")


def configure_logging(
    *,
    level: int | str = logging.INFO,
    stream: Any = None,
    handler: logging.Handler | None = None,
) -> None:
    """
    Attach one JSON handler to the ``stock_kernel`` logger.

    Idempotent: only the first call after import (or after
    ``reset_logging()``) has any effect.  Records do not propagate to the
    root logger.
    """
    global _configured
    with _lock:
        if _configured:
            return
        _configured = True

    kernel_logger = logging.getLogger(_LOGGER_PREFIX)
    kernel_logger.setLevel(level.upper() if isinstance(level, str) else level)
    kernel_logger.propagate = False

    h = handler if handler is not None else logging.StreamHandler(stream or sys.stderr)
    h.setFormatter(StructuredFormatter())
    kernel_logger.addHandler(h)


def reset_logging() -> None:
    """Undo configure_logging. FOR TESTING ONLY."""
    global _configured
    with _lock:
        _configured = False
    kernel_logger = logging.getLogger(_LOGGER_PREFIX)
    kernel_logger.handlers.clear()
    kernel_logger.setLevel(logging.WARNING)
