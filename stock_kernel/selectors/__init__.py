"""Read side of the stock kernel."""

from stock_kernel.selectors.actor_selector import ActorSelector
from stock_kernel.selectors.ledger_selector import LedgerSelector
from stock_kernel.selectors.stock_selector import StockSelector

__all__ = ["ActorSelector", "LedgerSelector", "StockSelector"]
