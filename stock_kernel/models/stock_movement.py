"""
Module: stock_kernel.models.stock_movement
Responsibility: ORM persistence for stock movements, the append-only entries of
    the inventory ledger.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    MOVEMENT_IMMUTABILITY -- rows are never updated or deleted (ORM listeners
          in db/immutability.py, PostgreSQL triggers in db/triggers.py).
    - quantity > 0, previous_stock >= 0, new_stock >= 0 (CHECK constraints).
    - sequence is unique and strictly increasing in insertion order; together
      with created_at it gives a total replay order per product.

Audit relevance:
    previous_stock/new_stock snapshot every change, so replaying a product's
    movements in (created_at, sequence) order reproduces its stock trajectory
    exactly.  LedgerSelector.verify_product relies on this.
"""

from datetime import datetime
from uuid import UUID

from sqlalchemy import (
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column

from stock_kernel.db.base import Base, TenantScoped, UUIDString


class StockMovement(TenantScoped, Base):
    """
    One immutable stock change.

    Contract:
        movement_type is one of entrada, saida, transferencia, ajuste,
        devolucao.  reference_type/reference_id form the polymorphic link to a
        service order or a technician.  created_by is the acting user.

    Non-goals:
        - Does NOT store cost or valuation data.
    """

    __tablename__ = "stock_movements"

    __table_args__ = (
        UniqueConstraint("sequence", name="uq_stock_movement_sequence"),
        CheckConstraint("quantity > 0", name="ck_movement_quantity_positive"),
        CheckConstraint("previous_stock >= 0", name="ck_movement_previous_non_negative"),
        CheckConstraint("new_stock >= 0", name="ck_movement_new_non_negative"),
        # Query: replay order for one product
        Index("idx_movement_product_order", "product_id", "created_at", "sequence"),
        # Query: branch history, newest first
        Index("idx_movement_branch_created", "tenant_id", "branch_id", "created_at"),
        Index("idx_movement_reference", "reference_type", "reference_id"),
    )

    branch_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("branches.id"),
        nullable=True,
    )

    product_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("products.id"),
        nullable=False,
    )

    movement_type: Mapped[str] = mapped_column(String(20), nullable=False)

    quantity: Mapped[int] = mapped_column(nullable=False)

    previous_stock: Mapped[int] = mapped_column(nullable=False)

    new_stock: Mapped[int] = mapped_column(nullable=False)

    serial_unit_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("serialized_units.id"),
        nullable=True,
    )

    reference_type: Mapped[str | None] = mapped_column(String(20), nullable=True)

    reference_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)

    reason: Mapped[str | None] = mapped_column(String(500), nullable=True)

    sequence: Mapped[int] = mapped_column(nullable=False)

    created_by: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
    )

    def __repr__(self) -> str:
        return (
            f"<StockMovement #{self.sequence} {self.movement_type} "
            f"{self.previous_stock}->{self.new_stock}>"
        )
