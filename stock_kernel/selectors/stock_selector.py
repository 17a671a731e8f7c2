"""
Module: stock_kernel.selectors.stock_selector
Responsibility: Scoped inventory reads -- product listings, low-stock views,
    totals, per-branch statistics, movement history and serialized units.
Architecture position: Kernel > Selectors.

Invariants enforced:
    FAIL_CLOSED_SCOPE -- every query is bounded by the scope's tenant; a
        filtered scope adds ``branch_id = :scope_branch`` (the deny-all
        sentinel matches nothing); products without a branch never appear
        in listings or aggregates, whatever the scope.
    Hierarchy narrowing -- serialized units are further restricted by
        ownership at technician and supervisor level.
"""

from __future__ import annotations

from uuid import UUID

from sqlalchemy import and_, case, false, func, select

from stock_kernel.domain.dtos import (
    BranchStockStats,
    ProductInfo,
    SerializedUnitInfo,
    StockMovementRecord,
    StockSummary,
)
from stock_kernel.domain.movement import SerialStatus
from stock_kernel.domain.scope import HierarchyLevel, ScopeDecision
from stock_kernel.exceptions import ValidationError
from stock_kernel.models.actor import Technician
from stock_kernel.models.branch import Branch
from stock_kernel.models.product import Product, SerializedUnit
from stock_kernel.models.stock_movement import StockMovement
from stock_kernel.selectors.base import BaseSelector

MAX_HISTORY_LIMIT = 1000


class StockSelector(BaseSelector):
    """Read-only, scope-bounded inventory queries."""

    def _product_filters(self, scope: ScopeDecision) -> list:
        filters = [Product.tenant_id == scope.tenant_id, Product.branch_id.is_not(None)]
        if scope.should_filter:
            filters.append(Product.branch_id == scope.branch_id)
        return filters

    def list_products(
        self,
        scope: ScopeDecision,
        low_stock_only: bool = False,
    ) -> list[ProductInfo]:
        stmt = select(Product).where(*self._product_filters(scope))
        if low_stock_only:
            stmt = stmt.where(Product.current_stock <= Product.min_stock)
        stmt = stmt.order_by(Product.name, Product.code, Product.id)
        return [ProductInfo.from_model(p) for p in self.session.execute(stmt).scalars()]

    def low_stock_products(self, scope: ScopeDecision) -> list[ProductInfo]:
        """Products at or below their minimum."""
        return self.list_products(scope, low_stock_only=True)

    def stock_summary(self, scope: ScopeDecision) -> StockSummary:
        low = case((Product.current_stock <= Product.min_stock, 1), else_=0)
        out = case((Product.current_stock == 0, 1), else_=0)
        row = self.session.execute(
            select(
                func.count(Product.id),
                func.coalesce(func.sum(Product.current_stock), 0),
                func.coalesce(func.sum(low), 0),
                func.coalesce(func.sum(out), 0),
            ).where(*self._product_filters(scope))
        ).one()
        return StockSummary(
            product_count=int(row[0]),
            total_units=int(row[1]),
            low_stock_count=int(row[2]),
            out_of_stock_count=int(row[3]),
        )

    def branch_stock_stats(self, scope: ScopeDecision) -> list[BranchStockStats]:
        """
        Per-branch totals, matriz first, then by name.

        Branches without products are included with zero counts.
        """
        low = case((Product.current_stock <= Product.min_stock, 1), else_=0)
        stmt = (
            select(
                Branch.id,
                Branch.name,
                Branch.is_main,
                func.count(Product.id),
                func.coalesce(func.sum(Product.current_stock), 0),
                func.coalesce(func.sum(low), 0),
            )
            .outerjoin(
                Product,
                and_(Product.branch_id == Branch.id, Product.tenant_id == Branch.tenant_id),
            )
            .where(Branch.tenant_id == scope.tenant_id)
            .group_by(Branch.id, Branch.name, Branch.is_main)
            .order_by(Branch.is_main.desc(), Branch.name)
        )
        if scope.should_filter:
            stmt = stmt.where(Branch.id == scope.branch_id)

        return [
            BranchStockStats(
                branch_id=row[0],
                branch_name=row[1],
                is_main=bool(row[2]),
                product_count=int(row[3]),
                total_units=int(row[4]),
                low_stock_count=int(row[5]),
            )
            for row in self.session.execute(stmt)
        ]

    def movement_history(
        self,
        scope: ScopeDecision,
        product_id: UUID | None = None,
        limit: int = 100,
    ) -> list[StockMovementRecord]:
        """Newest first."""
        if limit <= 0 or limit > MAX_HISTORY_LIMIT:
            raise ValidationError("limit", f"must be between 1 and {MAX_HISTORY_LIMIT}")

        stmt = select(StockMovement).where(StockMovement.tenant_id == scope.tenant_id)
        if scope.should_filter:
            stmt = stmt.where(StockMovement.branch_id == scope.branch_id)
        if product_id is not None:
            stmt = stmt.where(StockMovement.product_id == product_id)
        stmt = stmt.order_by(
            StockMovement.created_at.desc(), StockMovement.sequence.desc()
        ).limit(limit)
        return [
            StockMovementRecord.from_model(m) for m in self.session.execute(stmt).scalars()
        ]

    def serialized_units(
        self,
        scope: ScopeDecision,
        product_id: UUID | None = None,
        status: SerialStatus | str | None = None,
    ) -> list[SerializedUnitInfo]:
        """
        Serialized units of in-scope products.

        Technician level sees only units assigned to itself; supervisor level
        also sees units assigned to members of the teams it leads.
        """
        stmt = (
            select(SerializedUnit)
            .join(Product, Product.id == SerializedUnit.product_id)
            .where(*self._product_filters(scope))
        )
        if product_id is not None:
            stmt = stmt.where(SerializedUnit.product_id == product_id)
        if status is not None:
            stmt = stmt.where(SerializedUnit.status == SerialStatus(status).value)

        if scope.hierarchy_level == HierarchyLevel.TECHNICIAN:
            if scope.technician_id is None:
                stmt = stmt.where(false())
            else:
                stmt = stmt.where(SerializedUnit.assigned_to == scope.technician_id)
        elif scope.hierarchy_level == HierarchyLevel.SUPERVISOR:
            members = select(Technician.id).where(
                Technician.tenant_id == scope.tenant_id,
                Technician.team_id.in_(scope.led_team_ids),
            )
            owned = SerializedUnit.assigned_to.in_(members)
            if scope.technician_id is not None:
                owned = owned | (SerializedUnit.assigned_to == scope.technician_id)
            stmt = stmt.where(owned)

        stmt = stmt.order_by(SerializedUnit.serial_number)
        return [
            SerializedUnitInfo.from_model(u) for u in self.session.execute(stmt).scalars()
        ]
