"""
ORM-Level Immutability Enforcement (Layer 1 of 2).

===============================================================================
WHY THIS EXISTS
===============================================================================

The stock ledger is only trustworthy if its history cannot be rewritten and
the balances it maintains cannot be edited around it.  This module is the
first layer of that protection:

  Layer 1: THIS FILE (ORM event listeners)
    - Catches modifications made through Python/SQLAlchemy unit-of-work
    - Fires BEFORE the SQL is sent to the database

  Layer 2: db/triggers.py (PostgreSQL triggers)
    - Catches raw SQL, bulk UPDATE statements, direct psql access

===============================================================================
PROTECTED ENTITIES
===============================================================================

Entity          | Rule                                       | Invariant
----------------|--------------------------------------------|--------------------------
StockMovement   | ALWAYS immutable, never deleted            | MOVEMENT_IMMUTABILITY
Product         | current_stock/version only via the ledger  | BALANCE_MATCHES_LEDGER
SerializedUnit  | status/assigned_to only via the ledger     | SERIAL_STATUS_OWNERSHIP

The ledger writes Product balances and SerializedUnit status with guarded
bulk UPDATE statements (``UPDATE ... WHERE current_stock = :read``).  Bulk
statements do not pass through mapper events, so any flush that changes those
columns came from somewhere else and is rejected.

===============================================================================
USAGE
===============================================================================

    from stock_kernel.db.immutability import register_immutability_listeners
    register_immutability_listeners()  # Called once at startup

To temporarily disable (TESTS ONLY):

    unregister_immutability_listeners()
===============================================================================
"""

from sqlalchemy import event
from sqlalchemy.orm.attributes import get_history

from stock_kernel.exceptions import ImmutabilityViolationError
from stock_kernel.logging_config import get_logger

logger = get_logger("db.immutability")

# Columns owned by InventoryLedger's guarded writes
PRODUCT_LEDGER_FIELDS = frozenset({"current_stock", "version"})
SERIAL_UNIT_LEDGER_FIELDS = frozenset({"status", "assigned_to", "assigned_at"})


def _blocked(entity_type: str, entity_id: str, operation: str, reason: str, **extra):
    logger.error(
        "immutability_violation_blocked",
        extra={
            "entity_type": entity_type,
            "entity_id": entity_id,
            "operation": operation,
            **extra,
        },
    )
    raise ImmutabilityViolationError(
        entity_type=entity_type,
        entity_id=entity_id,
        reason=reason,
    )


def _changed_fields(target, fields: frozenset[str]) -> list[str]:
    return sorted(f for f in fields if get_history(target, f).has_changes())


def _check_stock_movement_update(mapper, connection, target):
    """Prevent any updates to StockMovement records."""
    _blocked(
        "StockMovement",
        str(target.id),
        "UPDATE",
        "Stock movements are immutable and cannot be modified",
    )


def _check_stock_movement_delete(mapper, connection, target):
    """Prevent deletion of StockMovement records."""
    _blocked(
        "StockMovement",
        str(target.id),
        "DELETE",
        "Stock movements cannot be deleted",
    )


def _check_product_balance_update(mapper, connection, target):
    """Reject unit-of-work edits to a product's ledger-owned balance."""
    changed = _changed_fields(target, PRODUCT_LEDGER_FIELDS)
    if not changed:
        return
    _blocked(
        "Product",
        str(target.id),
        "UPDATE",
        f"Field(s) {changed} change only through recorded stock movements",
        fields=changed,
    )


def _check_product_delete(mapper, connection, target):
    """Products with ledger history cannot be deleted."""
    from sqlalchemy import text

    count = connection.execute(
        text("SELECT COUNT(*) FROM stock_movements WHERE product_id = :pid"),
        {"pid": str(target.id)},
    ).scalar()
    if count:
        _blocked(
            "Product",
            str(target.id),
            "DELETE",
            f"Product is referenced by {count} stock movement(s)",
        )


def _check_serial_unit_update(mapper, connection, target):
    """Reject unit-of-work edits to a unit's ledger-owned lifecycle fields."""
    changed = _changed_fields(target, SERIAL_UNIT_LEDGER_FIELDS)
    if not changed:
        return
    _blocked(
        "SerializedUnit",
        str(target.id),
        "UPDATE",
        f"Field(s) {changed} change only through saida/devolucao movements",
        fields=changed,
    )


def _listeners():
    from stock_kernel.models.product import Product, SerializedUnit
    from stock_kernel.models.stock_movement import StockMovement

    return [
        (StockMovement, "before_update", _check_stock_movement_update),
        (StockMovement, "before_delete", _check_stock_movement_delete),
        (Product, "before_update", _check_product_balance_update),
        (Product, "before_delete", _check_product_delete),
        (SerializedUnit, "before_update", _check_serial_unit_update),
    ]


def register_immutability_listeners():
    """
    Register all immutability enforcement event listeners.

    Call this after all models are imported but before any database
    operations begin.  Safe to call more than once.
    """
    for target, event_name, fn in _listeners():
        if not event.contains(target, event_name, fn):
            event.listen(target, event_name, fn)


def unregister_immutability_listeners():
    """
    Remove immutability enforcement event listeners.

    WARNING: Only use this in tests where you need to intentionally
    violate immutability rules to verify detection.
    """
    for target, event_name, fn in _listeners():
        if event.contains(target, event_name, fn):
            event.remove(target, event_name, fn)
