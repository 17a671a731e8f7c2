"""
DTOs -- immutable values returned across the kernel boundary.

Responsibility:
    Frozen dataclasses handed back by the ledger, the product service and
    the selectors so callers never hold live ORM rows.  ``from_model()``
    class methods are the ORM-to-DTO converters; they are only invoked from
    services and selectors, never from domain logic.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.  Model imports are
    type-checking only.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import TYPE_CHECKING
from uuid import UUID

from stock_kernel.domain.movement import MovementType, ReferenceType, SerialStatus

if TYPE_CHECKING:
    from stock_kernel.models.product import Product as ProductModel
    from stock_kernel.models.product import SerializedUnit as SerializedUnitModel
    from stock_kernel.models.stock_movement import StockMovement as StockMovementModel


@dataclass(frozen=True)
class StockMovementRecord:
    """A committed (flushed) stock movement."""

    id: UUID
    tenant_id: UUID
    branch_id: UUID | None
    product_id: UUID
    movement_type: MovementType
    quantity: int
    previous_stock: int
    new_stock: int
    sequence: int
    created_by: UUID
    created_at: datetime
    serial_unit_id: UUID | None = None
    reference_type: ReferenceType | None = None
    reference_id: UUID | None = None
    reason: str | None = None

    @property
    def delta(self) -> int:
        return self.new_stock - self.previous_stock

    @classmethod
    def from_model(cls, model: StockMovementModel) -> StockMovementRecord:
        return cls(
            id=model.id,
            tenant_id=model.tenant_id,
            branch_id=model.branch_id,
            product_id=model.product_id,
            movement_type=MovementType(model.movement_type),
            quantity=model.quantity,
            previous_stock=model.previous_stock,
            new_stock=model.new_stock,
            sequence=model.sequence,
            created_by=model.created_by,
            created_at=model.created_at,
            serial_unit_id=model.serial_unit_id,
            reference_type=(
                ReferenceType(model.reference_type) if model.reference_type else None
            ),
            reference_id=model.reference_id,
            reason=model.reason,
        )


@dataclass(frozen=True)
class ProductInfo:
    id: UUID
    tenant_id: UUID
    branch_id: UUID | None
    code: str
    name: str
    current_stock: int
    min_stock: int
    is_serialized: bool
    version: int

    @property
    def is_low_stock(self) -> bool:
        return self.current_stock <= self.min_stock

    @property
    def is_out_of_stock(self) -> bool:
        return self.current_stock == 0

    @classmethod
    def from_model(cls, model: ProductModel) -> ProductInfo:
        return cls(
            id=model.id,
            tenant_id=model.tenant_id,
            branch_id=model.branch_id,
            code=model.code,
            name=model.name,
            current_stock=model.current_stock,
            min_stock=model.min_stock,
            is_serialized=model.is_serialized,
            version=model.version,
        )


@dataclass(frozen=True)
class SerializedUnitInfo:
    id: UUID
    tenant_id: UUID
    product_id: UUID
    serial_number: str
    status: SerialStatus
    assigned_to: UUID | None = None
    assigned_at: datetime | None = None

    @classmethod
    def from_model(cls, model: SerializedUnitModel) -> SerializedUnitInfo:
        return cls(
            id=model.id,
            tenant_id=model.tenant_id,
            product_id=model.product_id,
            serial_number=model.serial_number,
            status=SerialStatus(model.status),
            assigned_to=model.assigned_to,
            assigned_at=model.assigned_at,
        )


@dataclass(frozen=True)
class StockSummary:
    """Scoped inventory totals.  Products without a branch never count."""

    product_count: int
    total_units: int
    low_stock_count: int
    out_of_stock_count: int


@dataclass(frozen=True)
class BranchStockStats:
    """Per-branch totals for the consolidated (matriz) view."""

    branch_id: UUID
    branch_name: str
    is_main: bool
    product_count: int
    total_units: int
    low_stock_count: int


@dataclass(frozen=True)
class TrajectoryPoint:
    """One step of a product's replayed stock history."""

    sequence: int
    movement_id: UUID
    movement_type: MovementType
    previous_stock: int
    new_stock: int
    created_at: datetime


@dataclass(frozen=True)
class ReplayResult:
    """
    Outcome of replaying a product's movements.

    ``breaks`` lists every inconsistency found, in replay order; an empty
    tuple means the ledger and the stored balance agree.
    """

    product_id: UUID
    current_stock: int
    replayed_stock: int
    movement_count: int
    trajectory: tuple[TrajectoryPoint, ...] = field(default_factory=tuple)
    breaks: tuple[str, ...] = field(default_factory=tuple)

    @property
    def is_consistent(self) -> bool:
        return not self.breaks
