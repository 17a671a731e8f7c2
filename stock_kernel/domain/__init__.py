"""
Pure domain core of the stock kernel: scope resolution, movement rules,
clock and DTOs.  Nothing in this package performs I/O.
"""

from stock_kernel.domain.clock import Clock, DeterministicClock, SystemClock
from stock_kernel.domain.dtos import (
    BranchStockStats,
    ProductInfo,
    ReplayResult,
    SerializedUnitInfo,
    StockMovementRecord,
    StockSummary,
    TrajectoryPoint,
)
from stock_kernel.domain.movement import (
    MovementContext,
    MovementItem,
    MovementType,
    ReferenceType,
    SerialStatus,
    compute_new_stock,
    default_reason,
    serial_transition,
    signed_delta,
    validate_items,
)
from stock_kernel.domain.scope import (
    DENY_ALL_BRANCH_ID,
    Actor,
    BranchRef,
    Capability,
    HierarchyLevel,
    Role,
    RoleAssignment,
    ScopeDecision,
    resolve_scope,
)

__all__ = [
    "Actor",
    "BranchRef",
    "BranchStockStats",
    "Capability",
    "Clock",
    "DENY_ALL_BRANCH_ID",
    "DeterministicClock",
    "HierarchyLevel",
    "MovementContext",
    "MovementItem",
    "MovementType",
    "ProductInfo",
    "ReferenceType",
    "ReplayResult",
    "Role",
    "RoleAssignment",
    "ScopeDecision",
    "SerialStatus",
    "SerializedUnitInfo",
    "StockMovementRecord",
    "StockSummary",
    "SystemClock",
    "TrajectoryPoint",
    "compute_new_stock",
    "default_reason",
    "resolve_scope",
    "serial_transition",
    "signed_delta",
    "validate_items",
]
