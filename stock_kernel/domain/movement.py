"""
Movement rules -- pure stock arithmetic and request validation.

Responsibility:
    Defines the movement vocabulary (MovementType, SerialStatus,
    ReferenceType), the request values (MovementItem, MovementContext), and
    the pure functions the ledger applies per item: ``validate_items``,
    ``compute_new_stock``, ``serial_transition`` and ``default_reason``.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.
    Called by ``InventoryLedger`` before any write and by
    ``LedgerSelector`` when re-checking committed movements.

Invariants enforced:
    NON_NEGATIVE_STOCK -- ``compute_new_stock`` raises before a write could
        take stock below zero.
    SERIAL_STATUS_OWNERSHIP -- ``serial_transition`` is the only place that
        maps a movement type to a unit status change.

Failure modes:
    - ValidationError: empty request, non-positive quantity, missing or
      inconsistent signed delta, duplicate serial unit in one request.
    - InsufficientStockError: the movement would take stock below zero.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from uuid import UUID

from stock_kernel.exceptions import InsufficientStockError, ValidationError


class MovementType(str, Enum):
    """Kind of stock change."""

    ENTRADA = "entrada"
    SAIDA = "saida"
    TRANSFERENCIA = "transferencia"
    AJUSTE = "ajuste"
    DEVOLUCAO = "devolucao"

    @property
    def requires_delta(self) -> bool:
        return self in (MovementType.TRANSFERENCIA, MovementType.AJUSTE)


class SerialStatus(str, Enum):
    """Lifecycle status of a serialized unit."""

    DISPONIVEL = "disponivel"
    EM_USO = "em_uso"
    EM_MANUTENCAO = "em_manutencao"
    DESCARTADO = "descartado"


class ReferenceType(str, Enum):
    """What a movement's polymorphic reference points at."""

    SERVICE_ORDER = "service_order"
    TECHNICIAN = "technician"


MOVEMENT_TYPE_LABELS = {
    MovementType.ENTRADA: "Entrada",
    MovementType.SAIDA: "Saída",
    MovementType.TRANSFERENCIA: "Transferência",
    MovementType.AJUSTE: "Ajuste",
    MovementType.DEVOLUCAO: "Devolução",
}


@dataclass(frozen=True)
class MovementItem:
    """
    One line of a movement request.

    ``delta`` is the signed stock change for transferencia/ajuste, where the
    direction cannot be derived from the type; ``abs(delta)`` must equal
    ``quantity``.  It must be left unset for the other types.
    """

    product_id: UUID
    quantity: int
    serial_unit_id: UUID | None = None
    delta: int | None = None


@dataclass(frozen=True)
class MovementContext:
    """Who is moving stock, for what, and why."""

    actor_id: UUID
    technician_id: UUID | None = None
    service_order_id: UUID | None = None
    reason: str | None = None

    @property
    def reference(self) -> tuple[ReferenceType | None, UUID | None]:
        """Service order wins over technician; neither gives (None, None)."""
        if self.service_order_id is not None:
            return ReferenceType.SERVICE_ORDER, self.service_order_id
        if self.technician_id is not None:
            return ReferenceType.TECHNICIAN, self.technician_id
        return None, None


def validate_items(
    items: list[MovementItem] | tuple[MovementItem, ...],
    movement_type: MovementType,
) -> None:
    """
    Validate a whole request before any item is applied.

    Raises:
        ValidationError: On the first invalid item.
    """
    if not items:
        raise ValidationError("items", "at least one item is required")

    seen_units: set[UUID] = set()
    for index, item in enumerate(items):
        field = f"items[{index}]"
        if isinstance(item.quantity, bool) or not isinstance(item.quantity, int):
            raise ValidationError(f"{field}.quantity", "must be an integer")
        if item.quantity <= 0:
            raise ValidationError(f"{field}.quantity", "must be greater than zero")

        if movement_type.requires_delta:
            if item.delta is None:
                raise ValidationError(
                    f"{field}.delta",
                    f"{movement_type.value} requires a signed delta",
                )
            if abs(item.delta) != item.quantity:
                raise ValidationError(
                    f"{field}.delta",
                    f"abs(delta)={abs(item.delta)} does not match quantity={item.quantity}",
                )
        elif item.delta is not None:
            raise ValidationError(
                f"{field}.delta",
                f"{movement_type.value} derives its direction from the type",
            )

        if item.serial_unit_id is not None:
            if item.serial_unit_id in seen_units:
                raise ValidationError(
                    f"{field}.serial_unit_id",
                    "serial unit appears more than once in the request",
                )
            seen_units.add(item.serial_unit_id)


def signed_delta(movement_type: MovementType, quantity: int, delta: int | None = None) -> int:
    """Signed stock change of one movement."""
    if movement_type in (MovementType.ENTRADA, MovementType.DEVOLUCAO):
        return quantity
    if movement_type == MovementType.SAIDA:
        return -quantity
    if delta is None:
        raise ValidationError("delta", f"{movement_type.value} requires a signed delta")
    return delta


def compute_new_stock(
    product_id: UUID,
    previous_stock: int,
    movement_type: MovementType,
    quantity: int,
    delta: int | None = None,
) -> int:
    """
    Stock level after applying one movement.

    Raises:
        InsufficientStockError: Result would be negative.
    """
    new_stock = previous_stock + signed_delta(movement_type, quantity, delta)
    if new_stock < 0:
        raise InsufficientStockError(
            product_id=str(product_id),
            requested=quantity,
            available=previous_stock,
        )
    return new_stock


def serial_transition(movement_type: MovementType) -> SerialStatus | None:
    """Target status for a serialized unit, or None when the type leaves it alone."""
    if movement_type == MovementType.SAIDA:
        return SerialStatus.EM_USO
    if movement_type == MovementType.DEVOLUCAO:
        return SerialStatus.DISPONIVEL
    return None


def default_reason(movement_type: MovementType, context: MovementContext) -> str:
    if context.reason:
        return context.reason
    if movement_type == MovementType.SAIDA:
        who = "Técnico" if context.technician_id is not None else "Manual"
        return f"Saída - {who}"
    if movement_type in (MovementType.ENTRADA, MovementType.DEVOLUCAO):
        return "Entrada/Devolução"
    return MOVEMENT_TYPE_LABELS[movement_type]
