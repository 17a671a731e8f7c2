"""
Kernel Invariants Contract.

These invariants are structural law. They are hardcoded in the ledger
boundary, the ORM listeners and the database triggers. No configuration
value may override them.

This module exists solely to declare these invariants explicitly. The
enforcement is distributed across InventoryLedger, the movement rules in
domain/movement.py, db/immutability.py and the stock selectors.
"""

from enum import Enum, unique


@unique
class StockInvariant(str, Enum):
    """Non-configurable invariants enforced by the kernel.

    Each value names one structural guarantee that the kernel provides
    unconditionally. Configuration may influence *how* a request is
    committed (atomic or per item), but never *whether* these rules apply.
    """

    BALANCE_MATCHES_LEDGER = "balance_matches_ledger"
    """Product.current_stock equals the new_stock of the most recent
    movement. Enforced by InventoryLedger writing both in one savepoint and
    verified by LedgerSelector.verify_product."""

    NON_NEGATIVE_STOCK = "non_negative_stock"
    """current_stock never goes below zero. Enforced by compute_new_stock
    before any write and by the optimistic guard under concurrency."""

    MOVEMENT_IMMUTABILITY = "movement_immutability"
    """Stock movements are append-only. No UPDATE or DELETE. Enforced by
    ORM listeners (stock_kernel.db.immutability) and PostgreSQL triggers."""

    SERIAL_STATUS_OWNERSHIP = "serial_status_ownership"
    """SerializedUnit.status changes only through saida (em_uso) and
    devolucao (disponivel). Enforced by InventoryLedger."""

    FAIL_CLOSED_SCOPE = "fail_closed_scope"
    """Actors without a resolvable branch get the deny-all sentinel, and
    products without a branch are excluded from scoped aggregates.
    Enforced by resolve_scope and StockSelector."""


# All invariants as a frozenset for programmatic checks.
ALL_STOCK_INVARIANTS: frozenset[StockInvariant] = frozenset(StockInvariant)

# The kernel package may not import from these packages.
# This is enforced by tests/architecture/test_kernel_boundary.py.
FORBIDDEN_KERNEL_IMPORTS: tuple[str, ...] = (
    "stock_config",
)
