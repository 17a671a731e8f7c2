"""
InventoryLedger -- the only writer of stock balances and movements.

Responsibility:
    Applies movement requests item by item: loads the product, checks it
    against the caller's ScopeDecision, computes the new balance, writes it
    through an optimistic guard, appends the immutable StockMovement and
    drives the serialized-unit lifecycle.

Architecture position:
    Kernel > Services -- imperative shell.  Pure rules come from
    ``stock_kernel.domain.movement``; scope comes in as an explicit
    ``ScopeDecision`` argument and is never cached.

Invariants enforced:
    BALANCE_MATCHES_LEDGER -- balance and movement are written in the same
        savepoint; the balance write is ``UPDATE ... WHERE current_stock =
        :read`` so a concurrent writer turns into ConcurrencyConflictError
        instead of a lost update.
    NON_NEGATIVE_STOCK -- rejected before any write.
    SERIAL_STATUS_OWNERSHIP -- saida moves a unit disponivel -> em_uso,
        devolucao moves it back; nothing else touches unit status.
    FAIL_CLOSED_SCOPE -- deny-all scopes are rejected before any read;
        filtered scopes never reach products outside their branch.
    Lock order -- a request locks the sequence counter (reserving all its
        movement sequence numbers) before it writes any product row.

Failure modes:
    - ValidationError, ProductNotFoundError, InsufficientStockError,
      AuthorizationDenialError, ConcurrencyConflictError,
      SerializedUnitNotFoundError, SerializedUnitUnavailableError.
    - Atomic requests (default) leave nothing applied on failure; non-atomic
      requests keep the items applied before the failing one.

Audit relevance:
    Every accepted movement logs ``movement_recorded``; every rejection logs
    a WARNING with structured fields before raising.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from datetime import datetime
from uuid import UUID

from sqlalchemy import select, update

from stock_kernel.domain.clock import Clock, SystemClock
from stock_kernel.domain.dtos import StockMovementRecord
from stock_kernel.domain.movement import (
    MovementContext,
    MovementItem,
    MovementType,
    SerialStatus,
    compute_new_stock,
    default_reason,
    serial_transition,
    validate_items,
)
from stock_kernel.domain.scope import ScopeDecision
from stock_kernel.exceptions import (
    AuthorizationDenialError,
    ConcurrencyConflictError,
    InsufficientStockError,
    ProductNotFoundError,
    SerializedUnitNotFoundError,
    SerializedUnitUnavailableError,
    ValidationError,
)
from stock_kernel.logging_config import LogContext, get_logger
from stock_kernel.models.product import Product, SerializedUnit
from stock_kernel.models.stock_movement import StockMovement
from stock_kernel.services.base import BaseService
from stock_kernel.services.sequence_service import SequenceService

logger = get_logger("services.ledger")


@dataclass(frozen=True)
class LedgerOptions:
    """
    Runtime switches for InventoryLedger.

    atomic_requests: default for ``record_movement(atomic=None)``.
    enforce_serial_availability: reject saida of a unit that is not
        disponivel.
    """

    atomic_requests: bool = True
    enforce_serial_availability: bool = True


class InventoryLedger(BaseService):
    """
    Records stock movements under a caller-supplied scope.

    Non-goals:
        - Does NOT commit; the caller owns the outer transaction.
        - Does NOT retry on ConcurrencyConflictError.
        - Does NOT resolve scope; it only enforces the decision it is given.
    """

    def __init__(
        self,
        session,
        clock: Clock | None = None,
        options: LedgerOptions | None = None,
    ):
        super().__init__(session)
        self._clock = clock or SystemClock()
        self._options = options or LedgerOptions()
        self._sequences = SequenceService(session)

    @property
    def options(self) -> LedgerOptions:
        return self._options

    # ------------------------------------------------------------------
    # Entry points
    # ------------------------------------------------------------------

    def record_movement(
        self,
        items: Sequence[MovementItem],
        movement_type: MovementType | str,
        scope: ScopeDecision,
        context: MovementContext,
        atomic: bool | None = None,
    ) -> list[StockMovementRecord]:
        """
        Apply a movement request and return the created movements in input
        order.

        Preconditions:
            - ``items`` is non-empty; every quantity is a positive integer.
            - transferencia/ajuste items carry a signed ``delta`` with
              ``abs(delta) == quantity``.

        Postconditions:
            - Every product touched has ``current_stock`` equal to the
              ``new_stock`` of its newest movement.
            - Nothing is committed.

        Args:
            items: Ordered request lines.
            movement_type: Kind of movement applied to every line.
            scope: The caller's resolved ScopeDecision.
            context: Actor, assignee, reference and reason.
            atomic: All-or-nothing when True; per-item savepoints when False;
                ``LedgerOptions.atomic_requests`` when None.

        Raises:
            ValidationError: Malformed request (nothing written).
            AuthorizationDenialError: Deny-all scope, other tenant, or a
                branch outside the scope.
            ProductNotFoundError, InsufficientStockError,
            ConcurrencyConflictError, SerializedUnitNotFoundError,
            SerializedUnitUnavailableError: Per-item failures.
        """
        movement_type = self._parse_type(movement_type)
        items = list(items)
        if atomic is None:
            atomic = self._options.atomic_requests

        with LogContext.bind(actor_id=context.actor_id, tenant_id=scope.tenant_id):
            self._reject_deny_all(scope, "record_movement")
            try:
                validate_items(items, movement_type)
            except ValidationError as exc:
                logger.warning(
                    "movement_request_invalid",
                    extra={
                        "movement_type": movement_type.value,
                        "field": exc.field,
                        "reason": exc.reason,
                    },
                )
                raise

            records: list[StockMovementRecord] = []
            if atomic:
                with self.session.begin_nested():
                    sequences = self._reserve_sequences(len(items))
                    for item, sequence in zip(items, sequences):
                        records.append(
                            self._apply_item(item, movement_type, scope, context, sequence)
                        )
            else:
                # values of failed items are skipped, not reused
                sequences = self._reserve_sequences(len(items))
                for item, sequence in zip(items, sequences):
                    with self.session.begin_nested():
                        records.append(
                            self._apply_item(item, movement_type, scope, context, sequence)
                        )

            logger.info(
                "movement_request_completed",
                extra={
                    "movement_type": movement_type.value,
                    "item_count": len(records),
                    "atomic": atomic,
                },
            )
        return records

    def transfer(
        self,
        source_product_id: UUID,
        target_product_id: UUID,
        quantity: int,
        scope: ScopeDecision,
        context: MovementContext,
    ) -> list[StockMovementRecord]:
        """
        Move ``quantity`` between two branch rows of the same product code.

        Writes a -quantity transferencia on the source and a +quantity
        transferencia on the target inside one savepoint.

        Returns:
            [source movement, target movement]
        """
        with LogContext.bind(actor_id=context.actor_id, tenant_id=scope.tenant_id):
            self._reject_deny_all(scope, "transfer")
            if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity <= 0:
                raise ValidationError("quantity", "must be a positive integer")
            if source_product_id == target_product_id:
                raise ValidationError(
                    "target_product_id", "source and target must be different products"
                )

            with self.session.begin_nested():
                outgoing_seq, incoming_seq = self._reserve_sequences(2)
                source = self._require_product(source_product_id, scope, "transfer")
                target = self._require_product(target_product_id, scope, "transfer")
                if source.code != target.code:
                    logger.warning(
                        "transfer_code_mismatch",
                        extra={"source_code": source.code, "target_code": target.code},
                    )
                    raise ValidationError(
                        "target_product_id",
                        f"product code {target.code!r} does not match {source.code!r}",
                    )

                outgoing = self._apply_item(
                    MovementItem(source_product_id, quantity, delta=-quantity),
                    MovementType.TRANSFERENCIA,
                    scope,
                    context,
                    outgoing_seq,
                )
                incoming = self._apply_item(
                    MovementItem(target_product_id, quantity, delta=quantity),
                    MovementType.TRANSFERENCIA,
                    scope,
                    context,
                    incoming_seq,
                )

            logger.info(
                "stock_transferred",
                extra={
                    "source_product_id": str(source_product_id),
                    "target_product_id": str(target_product_id),
                    "quantity": quantity,
                },
            )
        return [outgoing, incoming]

    # ------------------------------------------------------------------
    # Per-item pipeline
    # ------------------------------------------------------------------

    def _apply_item(
        self,
        item: MovementItem,
        movement_type: MovementType,
        scope: ScopeDecision,
        context: MovementContext,
        sequence: int,
    ) -> StockMovementRecord:
        with LogContext.bind(product_id=item.product_id):
            product = self._require_product(item.product_id, scope, "record_movement")
            previous_stock = product.current_stock

            try:
                new_stock = compute_new_stock(
                    product.id,
                    previous_stock,
                    movement_type,
                    item.quantity,
                    item.delta,
                )
            except InsufficientStockError as exc:
                logger.warning(
                    "insufficient_stock_rejected",
                    extra={
                        "movement_type": movement_type.value,
                        "requested": exc.requested,
                        "available": exc.available,
                    },
                )
                raise

            unit = None
            if item.serial_unit_id is not None:
                unit = self._require_unit(item.serial_unit_id, product, movement_type)

            self._write_balance(product, previous_stock, new_stock)

            now = self._clock.now()
            reference_type, reference_id = context.reference
            movement = StockMovement(
                tenant_id=product.tenant_id,
                branch_id=product.branch_id,
                product_id=product.id,
                movement_type=movement_type.value,
                quantity=item.quantity,
                previous_stock=previous_stock,
                new_stock=new_stock,
                serial_unit_id=item.serial_unit_id,
                reference_type=reference_type.value if reference_type else None,
                reference_id=reference_id,
                reason=default_reason(movement_type, context),
                sequence=sequence,
                created_by=context.actor_id,
                created_at=now,
            )
            self.session.add(movement)
            self.session.flush()

            if unit is not None:
                self._apply_serial_transition(unit, movement_type, context, now)

            logger.info(
                "movement_recorded",
                extra={
                    "movement_id": str(movement.id),
                    "movement_type": movement_type.value,
                    "sequence": movement.sequence,
                    "previous_stock": previous_stock,
                    "new_stock": new_stock,
                },
            )
            return StockMovementRecord.from_model(movement)

    def _reserve_sequences(self, count: int) -> list[int]:
        """Counter lock before any product lock; see SequenceService.reserve."""
        return self._sequences.reserve(SequenceService.STOCK_MOVEMENT, count)

    def _load_product(self, product_id: UUID) -> Product | None:
        """Fresh read; the identity map may hold a balance from earlier."""
        return self.session.execute(
            select(Product)
            .where(Product.id == product_id)
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()

    def _require_product(
        self,
        product_id: UUID,
        scope: ScopeDecision,
        operation: str,
    ) -> Product:
        product = self._load_product(product_id)
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

    def _require_unit(
        self,
        unit_id: UUID,
        product: Product,
        movement_type: MovementType,
    ) -> SerializedUnit:
        if not product.is_serialized:
            raise ValidationError(
                "serial_unit_id", f"product {product.code!r} is not serialized"
            )

        unit = self.session.execute(
            select(SerializedUnit)
            .where(SerializedUnit.id == unit_id)
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if unit is None or unit.tenant_id != product.tenant_id:
            logger.warning("serial_unit_not_found", extra={"unit_id": str(unit_id)})
            raise SerializedUnitNotFoundError(str(unit_id))
        if unit.product_id != product.id:
            raise ValidationError(
                "serial_unit_id",
                f"unit {unit.serial_number!r} belongs to another product",
            )

        if (
            movement_type == MovementType.SAIDA
            and self._options.enforce_serial_availability
            and unit.status != SerialStatus.DISPONIVEL.value
        ):
            self._reject_unavailable(unit.id, unit.status)
        return unit

    def _write_balance(self, product: Product, previous_stock: int, new_stock: int) -> None:
        """Conditional balance write; zero rows means someone moved first."""
        result = self.session.execute(
            update(Product)
            .where(Product.id == product.id, Product.current_stock == previous_stock)
            .values(current_stock=new_stock, version=Product.version + 1)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            logger.warning(
                "stock_write_conflict",
                extra={"expected_stock": previous_stock, "attempted_stock": new_stock},
            )
            raise ConcurrencyConflictError(
                entity_type="Product",
                entity_id=str(product.id),
                expected=f"current_stock={previous_stock}",
            )
        self.session.expire(product, ["current_stock", "version"])

    def _apply_serial_transition(
        self,
        unit: SerializedUnit,
        movement_type: MovementType,
        context: MovementContext,
        now: datetime,
    ) -> None:
        target = serial_transition(movement_type)
        if target is None:
            return

        stmt = update(SerializedUnit).where(SerializedUnit.id == unit.id)
        if target == SerialStatus.EM_USO:
            if self._options.enforce_serial_availability:
                stmt = stmt.where(SerializedUnit.status == SerialStatus.DISPONIVEL.value)
            values = {
                "status": target.value,
                "assigned_to": context.technician_id,
                "assigned_at": now,
            }
        else:
            values = {"status": target.value, "assigned_to": None, "assigned_at": None}

        result = self.session.execute(
            stmt.values(**values).execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            status = self.session.execute(
                select(SerializedUnit.status).where(SerializedUnit.id == unit.id)
            ).scalar_one()
            self._reject_unavailable(unit.id, status)

        self.session.expire(unit, ["status", "assigned_to", "assigned_at"])
        logger.info(
            "serial_unit_transitioned",
            extra={
                "unit_id": str(unit.id),
                "status": target.value,
                "assigned_to": values["assigned_to"],
            },
        )

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _parse_type(movement_type: MovementType | str) -> MovementType:
        try:
            return MovementType(movement_type)
        except ValueError:
            raise ValidationError(
                "movement_type", f"unknown movement type {movement_type!r}"
            ) from None

    @staticmethod
    def _reject_deny_all(scope: ScopeDecision, operation: str) -> None:
        if scope.is_deny_all:
            logger.warning("scope_denied", extra={"operation": operation, "denial": "deny_all"})
            raise AuthorizationDenialError(
                actor_id=str(scope.actor_id),
                operation=operation,
                reason="actor has no resolvable branch",
            )

    @staticmethod
    def _reject_unavailable(unit_id: UUID, status: str) -> None:
        logger.warning(
            "serial_unit_unavailable_rejected",
            extra={"unit_id": str(unit_id), "status": status},
        )
        raise SerializedUnitUnavailableError(unit_id=str(unit_id), status=status)
