"""Imperative shell of the stock kernel.  Services flush; callers commit."""

from stock_kernel.services.ledger_service import InventoryLedger, LedgerOptions
from stock_kernel.services.product_service import ProductService
from stock_kernel.services.sequence_service import SequenceCounter, SequenceService

__all__ = [
    "InventoryLedger",
    "LedgerOptions",
    "ProductService",
    "SequenceCounter",
    "SequenceService",
]
