"""
Module: stock_kernel.models.product
Responsibility: ORM persistence for stocked products and their individually
    tracked serialized units.
Architecture position: Kernel > Models.  May import from db/base.py only.
    MUST NOT import from services/, selectors/, domain/, or outer layers.

Invariants enforced:
    NON_NEGATIVE_STOCK -- CHECK (current_stock >= 0) as a last line behind the
          ledger's own pre-write rejection.
    BALANCE_MATCHES_LEDGER -- current_stock and version are written only by
          InventoryLedger's guarded UPDATE; unit-of-work edits are rejected by
          db/immutability.py.
    SERIAL_STATUS_OWNERSHIP -- SerializedUnit.status/assigned_to are written
          only by InventoryLedger on saida/devolucao.
    FAIL_CLOSED_SCOPE -- branch_id is nullable; products without a branch are
          excluded from every scoped count/aggregate by the selectors.

Failure modes:
    - IntegrityError on duplicate (tenant_id, branch_id, code).
    - IntegrityError on duplicate (product_id, serial_number).
"""

from datetime import datetime
from uuid import UUID

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column

from stock_kernel.db.base import Base, TenantScoped, UUIDString


class Product(TenantScoped, Base):
    """
    A stocked item held by one branch.

    Contract:
        current_stock always equals the new_stock of the product's most recent
        stock movement.  version increments on every accepted movement and is
        the optimistic-concurrency token alongside current_stock.

    Non-goals:
        - Costing, pricing and fiscal attributes live outside the kernel.
    """

    __tablename__ = "products"

    __table_args__ = (
        UniqueConstraint("tenant_id", "branch_id", "code", name="uq_product_branch_code"),
        CheckConstraint("current_stock >= 0", name="ck_product_stock_non_negative"),
        CheckConstraint("min_stock >= 0", name="ck_product_min_stock_non_negative"),
        Index("idx_product_branch", "tenant_id", "branch_id"),
    )

    # Nullable: products without a branch are invisible to scoped queries
    branch_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("branches.id"),
        nullable=True,
    )

    code: Mapped[str] = mapped_column(String(50), nullable=False)

    name: Mapped[str] = mapped_column(String(255), nullable=False)

    current_stock: Mapped[int] = mapped_column(nullable=False, default=0)

    min_stock: Mapped[int] = mapped_column(nullable=False, default=0)

    is_serialized: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=False,
    )

    version: Mapped[int] = mapped_column(nullable=False, default=0)

    @property
    def is_low_stock(self) -> bool:
        return self.current_stock <= self.min_stock

    def __repr__(self) -> str:
        return f"<Product {self.code}: stock={self.current_stock} v{self.version}>"


class SerializedUnit(TenantScoped, Base):
    """
    An individually tracked physical item of a serialized product.

    Contract:
        status is one of disponivel, em_uso, em_manutencao, descartado.  The
        ledger moves units disponivel -> em_uso on saida (setting assigned_to)
        and back to disponivel on devolucao (clearing assigned_to).
    """

    __tablename__ = "serialized_units"

    __table_args__ = (
        UniqueConstraint("product_id", "serial_number", name="uq_serial_unit_number"),
        Index("idx_serial_unit_product_status", "product_id", "status"),
        Index("idx_serial_unit_assignee", "assigned_to"),
    )

    product_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("products.id"),
        nullable=False,
    )

    serial_number: Mapped[str] = mapped_column(String(100), nullable=False)

    status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default="disponivel",
    )

    # Technician currently holding the unit
    assigned_to: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("technicians.id"),
        nullable=True,
    )

    assigned_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    def __repr__(self) -> str:
        return f"<SerializedUnit {self.serial_number}: {self.status}>"
