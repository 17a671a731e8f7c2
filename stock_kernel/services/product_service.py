"""
ProductService -- product registration and serialized-unit receipt.

Responsibility:
    Creates products and serialized units so that the ledger invariant holds
    from the very first row: a product starts at zero and any opening
    balance is recorded as an entrada through InventoryLedger.

Architecture position:
    Kernel > Services -- imperative shell.  Delegates every balance change to
    ``InventoryLedger``.

Failure modes:
    - AuthorizationDenialError: target branch outside the scope.
    - BranchNotFoundError: branch does not exist in the tenant.
    - ValidationError: bad code/name/min_stock, duplicate code in the branch,
      duplicate serial number, serials for a non-serialized product.
"""

from __future__ import annotations

from collections.abc import Sequence
from uuid import UUID

from sqlalchemy import select

from stock_kernel.domain.clock import Clock
from stock_kernel.domain.dtos import ProductInfo, SerializedUnitInfo
from stock_kernel.domain.movement import (
    MovementContext,
    MovementItem,
    MovementType,
    SerialStatus,
)
from stock_kernel.domain.scope import ScopeDecision
from stock_kernel.exceptions import (
    AuthorizationDenialError,
    BranchNotFoundError,
    ProductNotFoundError,
    ValidationError,
)
from stock_kernel.logging_config import LogContext, get_logger
from stock_kernel.models.branch import Branch
from stock_kernel.models.product import Product, SerializedUnit
from stock_kernel.services.base import BaseService
from stock_kernel.services.ledger_service import InventoryLedger, LedgerOptions

logger = get_logger("services.product")


class ProductService(BaseService):
    """Registers products and receives serialized units.  Flush-only."""

    def __init__(
        self,
        session,
        clock: Clock | None = None,
        options: LedgerOptions | None = None,
    ):
        super().__init__(session)
        self._ledger = InventoryLedger(session, clock=clock, options=options)

    def register_product(
        self,
        scope: ScopeDecision,
        context: MovementContext,
        code: str,
        name: str,
        branch_id: UUID,
        min_stock: int = 0,
        is_serialized: bool = False,
        initial_stock: int = 0,
    ) -> ProductInfo:
        """
        Create a product in ``branch_id``.

        An ``initial_stock`` above zero is recorded as an entrada, so the
        product's first balance already has a movement behind it.  Serialized
        products must start at zero; their stock arrives with their units.
        """
        code = (code or "").strip()
        name = (name or "").strip()
        if not code:
            raise ValidationError("code", "must not be empty")
        if not name:
            raise ValidationError("name", "must not be empty")
        if min_stock < 0:
            raise ValidationError("min_stock", "must not be negative")
        if initial_stock < 0:
            raise ValidationError("initial_stock", "must not be negative")
        if is_serialized and initial_stock:
            raise ValidationError(
                "initial_stock",
                "serialized products receive stock through receive_serialized_units",
            )

        with LogContext.bind(actor_id=context.actor_id, tenant_id=scope.tenant_id):
            self._require_branch(branch_id, scope)

            duplicate = self.session.execute(
                select(Product.id).where(
                    Product.tenant_id == scope.tenant_id,
                    Product.branch_id == branch_id,
                    Product.code == code,
                )
            ).scalar_one_or_none()
            if duplicate is not None:
                raise ValidationError("code", f"product code {code!r} already exists in branch")

            product = Product(
                tenant_id=scope.tenant_id,
                branch_id=branch_id,
                code=code,
                name=name,
                current_stock=0,
                min_stock=min_stock,
                is_serialized=is_serialized,
                version=0,
            )
            self.session.add(product)
            self.session.flush()
            logger.info(
                "product_registered",
                extra={"product_id": str(product.id), "code": code, "is_serialized": is_serialized},
            )

            if initial_stock > 0:
                self._ledger.record_movement(
                    [MovementItem(product.id, initial_stock)],
                    MovementType.ENTRADA,
                    scope,
                    context,
                )
                self.session.refresh(product)

            return ProductInfo.from_model(product)

    def receive_serialized_units(
        self,
        scope: ScopeDecision,
        context: MovementContext,
        product_id: UUID,
        serial_numbers: Sequence[str],
    ) -> list[SerializedUnitInfo]:
        """
        Create one disponivel unit per serial number and record one entrada
        per unit, all inside one savepoint.
        """
        cleaned = [(s or "").strip() for s in serial_numbers]
        if not cleaned:
            raise ValidationError("serial_numbers", "at least one serial number is required")
        if any(not s for s in cleaned):
            raise ValidationError("serial_numbers", "serial numbers must not be empty")
        if len(set(cleaned)) != len(cleaned):
            raise ValidationError("serial_numbers", "serial numbers repeat within the request")

        with LogContext.bind(actor_id=context.actor_id, tenant_id=scope.tenant_id):
            product = self.session.get(Product, product_id)
            if product is None or product.tenant_id != scope.tenant_id:
                logger.warning(
                    "product_not_found", extra={"requested_product_id": str(product_id)}
                )
                raise ProductNotFoundError(str(product_id))
            self._require_scope(scope, product.branch_id, "receive_serialized_units")
            if not product.is_serialized:
                raise ValidationError("product_id", f"product {product.code!r} is not serialized")

            existing = set(
                self.session.execute(
                    select(SerializedUnit.serial_number).where(
                        SerializedUnit.product_id == product_id,
                        SerializedUnit.serial_number.in_(cleaned),
                    )
                ).scalars()
            )
            if existing:
                raise ValidationError(
                    "serial_numbers",
                    f"already registered: {', '.join(sorted(existing))}",
                )

            units: list[SerializedUnit] = []
            with self.session.begin_nested():
                for serial in cleaned:
                    unit = SerializedUnit(
                        tenant_id=product.tenant_id,
                        product_id=product.id,
                        serial_number=serial,
                        status=SerialStatus.DISPONIVEL.value,
                    )
                    self.session.add(unit)
                    units.append(unit)
                self.session.flush()

                self._ledger.record_movement(
                    [MovementItem(product.id, 1, serial_unit_id=u.id) for u in units],
                    MovementType.ENTRADA,
                    scope,
                    context,
                    atomic=True,
                )

            logger.info(
                "serialized_units_received",
                extra={"unit_count": len(units), "received_product_id": str(product_id)},
            )
            return [SerializedUnitInfo.from_model(u) for u in units]

    def _require_branch(self, branch_id: UUID, scope: ScopeDecision) -> Branch:
        if scope.is_deny_all:
            logger.warning(
                "scope_denied", extra={"operation": "register_product", "denial": "deny_all"}
            )
            raise AuthorizationDenialError(
                actor_id=str(scope.actor_id),
                operation="register_product",
                reason="actor has no resolvable branch",
            )
        branch = self.session.get(Branch, branch_id)
        if branch is None or branch.tenant_id != scope.tenant_id:
            logger.warning("branch_not_found", extra={"requested_branch_id": str(branch_id)})
            raise BranchNotFoundError(str(branch_id))
        self._require_scope(scope, branch.id, "register_product")
        return branch

    @staticmethod
    def _require_scope(scope: ScopeDecision, branch_id: UUID | None, operation: str) -> None:
        try:
            scope.require_branch(branch_id, operation)
        except AuthorizationDenialError as exc:
            logger.warning(
                "scope_denied",
                extra={
                    "operation": operation,
                    "denial": exc.reason,
                    "target_branch_id": str(branch_id),
                    "scope_branch_id": str(scope.branch_id),
                },
            )
            raise
