"""
Module: stock_kernel.selectors.ledger_selector
Responsibility: Replays a product's movements and checks them against the
    stored balance.
Architecture position: Kernel > Selectors.

Invariants checked:
    BALANCE_MATCHES_LEDGER -- ``current_stock`` equals the newest
        ``new_stock`` and the running sum of deltas.
    NON_NEGATIVE_STOCK -- no snapshot is negative.
    Chain continuity -- each ``previous_stock`` equals the prior
        ``new_stock``, starting from zero.
    Per-type deltas -- entrada/devolucao add ``quantity``, saida removes it,
        transferencia/ajuste move it in either direction.

Scope:
    Every entry point takes the caller's ScopeDecision.  The product must
    belong to the scope's tenant and sit in a branch the scope permits;
    otherwise AuthorizationDenialError is raised before any movement is read.

Audit relevance:
    ``assert_consistent`` is the audit hook; breaks are logged at ERROR and
    raised as LedgerIntegrityError.
"""

from __future__ import annotations

from uuid import UUID

from sqlalchemy import select

from stock_kernel.domain.dtos import ReplayResult, TrajectoryPoint
from stock_kernel.domain.movement import MovementType, signed_delta
from stock_kernel.domain.scope import ScopeDecision
from stock_kernel.exceptions import (
    AuthorizationDenialError,
    LedgerIntegrityError,
    ProductNotFoundError,
)
from stock_kernel.logging_config import get_logger
from stock_kernel.models.product import Product
from stock_kernel.models.stock_movement import StockMovement
from stock_kernel.selectors.base import BaseSelector

logger = get_logger("selectors.ledger")


class LedgerSelector(BaseSelector):
    """Replay and verification of the stock ledger."""

    def _require_product(
        self, scope: ScopeDecision, product_id: UUID, operation: str
    ) -> Product:
        product = self.session.execute(
            select(Product)
            .where(Product.id == product_id)
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if product is None:
            logger.warning("product_not_found", extra={"requested_product_id": str(product_id)})
            raise ProductNotFoundError(str(product_id))

        if product.tenant_id != scope.tenant_id:
            logger.warning(
                "scope_denied",
                extra={"operation": operation, "denial": "tenant_mismatch"},
            )
            raise AuthorizationDenialError(
                actor_id=str(scope.actor_id),
                operation=operation,
                reason=f"product {product_id} belongs to another tenant",
            )

        try:
            scope.require_branch(product.branch_id, operation)
        except AuthorizationDenialError as exc:
            logger.warning(
                "scope_denied",
                extra={
                    "operation": operation,
                    "denial": exc.reason,
                    "product_branch_id": str(product.branch_id),
                    "scope_branch_id": str(scope.branch_id),
                },
            )
            raise
        return product

    def _movements(self, product_id: UUID) -> list[StockMovement]:
        return list(
            self.session.execute(
                select(StockMovement)
                .where(StockMovement.product_id == product_id)
                .order_by(StockMovement.created_at, StockMovement.sequence)
            ).scalars()
        )

    def replay_product(
        self, scope: ScopeDecision, product_id: UUID
    ) -> tuple[TrajectoryPoint, ...]:
        """Movements of one product as a trajectory, in replay order."""
        self._require_product(scope, product_id, "replay_product")
        return self._trajectory(product_id)

    def _trajectory(self, product_id: UUID) -> tuple[TrajectoryPoint, ...]:
        return tuple(
            TrajectoryPoint(
                sequence=m.sequence,
                movement_id=m.id,
                movement_type=MovementType(m.movement_type),
                previous_stock=m.previous_stock,
                new_stock=m.new_stock,
                created_at=m.created_at,
            )
            for m in self._movements(product_id)
        )

    def verify_product(self, scope: ScopeDecision, product_id: UUID) -> ReplayResult:
        product = self._require_product(scope, product_id, "verify_product")

        trajectory = self._trajectory(product_id)
        movements = {m.id: m for m in self._movements(product_id)}

        breaks: list[str] = []
        running = 0
        for point in trajectory:
            movement = movements[point.movement_id]
            label = f"#{point.sequence}"

            if point.previous_stock != running:
                breaks.append(
                    f"{label}: previous_stock={point.previous_stock}, expected {running}"
                )
            if point.previous_stock < 0 or point.new_stock < 0:
                breaks.append(f"{label}: negative stock snapshot")

            recorded = point.new_stock - point.previous_stock
            if point.movement_type.requires_delta:
                if abs(recorded) != movement.quantity:
                    breaks.append(
                        f"{label}: {point.movement_type.value} moved {recorded}, "
                        f"quantity is {movement.quantity}"
                    )
            else:
                expected = signed_delta(point.movement_type, movement.quantity)
                if recorded != expected:
                    breaks.append(
                        f"{label}: {point.movement_type.value} moved {recorded}, expected {expected}"
                    )
            running += recorded

        if product.current_stock != running:
            breaks.append(
                f"current_stock={product.current_stock} does not match replayed {running}"
            )

        return ReplayResult(
            product_id=product_id,
            current_stock=product.current_stock,
            replayed_stock=running,
            movement_count=len(trajectory),
            trajectory=trajectory,
            breaks=tuple(breaks),
        )

    def assert_consistent(self, scope: ScopeDecision, product_id: UUID) -> ReplayResult:
        """
        Raises:
            AuthorizationDenialError: Product outside the scope.
            LedgerIntegrityError: Any break found by verify_product.
        """
        result = self.verify_product(scope, product_id)
        if not result.is_consistent:
            logger.error(
                "ledger_integrity_broken",
                extra={"checked_product_id": str(product_id), "breaks": list(result.breaks)},
            )
            raise LedgerIntegrityError(str(product_id), list(result.breaks))
        return result
