"""Domain models for the stock kernel."""

from stock_kernel.models.actor import (
    DirectorGrant,
    Employee,
    RoleAssignment,
    Team,
    Technician,
)
from stock_kernel.models.branch import Branch
from stock_kernel.models.product import Product, SerializedUnit
from stock_kernel.models.stock_movement import StockMovement

__all__ = [
    "Branch",
    "RoleAssignment",
    "DirectorGrant",
    "Employee",
    "Team",
    "Technician",
    "Product",
    "SerializedUnit",
    "StockMovement",
]
