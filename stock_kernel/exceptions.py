"""
Typed Exception Hierarchy for the Stock Kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Callers of the ledger (stock-entry forms, checkout flows, report builders)
must react differently to a malformed request, a business-rule rejection, a
lost optimistic race and an authorization denial. Parsing message strings to
tell these apart is fragile, so:

  1. Every error has a TYPED exception class (catch by type, not message)
  2. Every exception has a CODE attribute (machine-readable, API-safe)
  3. Exceptions carry structured DATA (not just a message string)

Example:

    try:
        ledger.record_movement(items, MovementType.SAIDA, scope, context)
    except InsufficientStockError as e:
        api_response(code=e.code, product=e.product_id,
                     requested=e.requested, available=e.available)

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    StockKernelError (base)
    |
    +-- ValidationError
    |
    +-- NotFoundError
    |   +-- ProductNotFoundError
    |   +-- SerializedUnitNotFoundError
    |   +-- BranchNotFoundError
    |
    +-- StockRuleError
    |   +-- InsufficientStockError
    |   +-- SerializedUnitUnavailableError
    |
    +-- ConcurrencyError
    |   +-- ConcurrencyConflictError
    |
    +-- AuthorizationError
    |   +-- AuthorizationDenialError
    |
    +-- ImmutabilityError
    |   +-- ImmutabilityViolationError
    |
    +-- LedgerIntegrityError

===============================================================================
HANDLING PATTERNS
===============================================================================

Category        | Code                         | Caller reaction
----------------|------------------------------|-----------------------------------
Validation      | VALIDATION_ERROR             | Surface to user, fix input
NotFound        | *_NOT_FOUND                  | Surface to user
StockRule       | INSUFFICIENT_STOCK           | Surface to user, no write happened
                | SERIALIZED_UNIT_UNAVAILABLE  | Pick another unit
Concurrency     | CONCURRENCY_CONFLICT         | Retry with a fresh read (the
                |                              | kernel never retries by itself)
Authorization   | AUTHORIZATION_DENIED         | Fatal for the request; never
                |                              | degrade to an unrestricted read
Immutability    | IMMUTABILITY_VIOLATION       | Programming error, alert
Integrity       | LEDGER_INTEGRITY_BROKEN      | Stop writes for the product,
                |                              | investigate the movement chain
===============================================================================
"""


class StockKernelError(Exception):
    """
    Base exception for all stock kernel errors.

    All subclasses must have a `code` class attribute for machine-readable
    error identification.
    """

    code: str = "STOCK_KERNEL_ERROR"


# Validation


class ValidationError(StockKernelError):
    """Malformed input, rejected before any write."""

    code: str = "VALIDATION_ERROR"

    def __init__(self, field: str, reason: str):
        self.field = field
        self.reason = reason
        super().__init__(f"Invalid {field}: {reason}")


# Not found


class NotFoundError(StockKernelError):
    """Base exception for unknown entities."""

    code: str = "NOT_FOUND"


class ProductNotFoundError(NotFoundError):
    """Product with given ID was not found."""

    code: str = "PRODUCT_NOT_FOUND"

    def __init__(self, product_id: str):
        self.product_id = product_id
        super().__init__(f"Product not found: {product_id}")


class SerializedUnitNotFoundError(NotFoundError):
    """Serialized unit with given ID was not found."""

    code: str = "SERIALIZED_UNIT_NOT_FOUND"

    def __init__(self, unit_id: str):
        self.unit_id = unit_id
        super().__init__(f"Serialized unit not found: {unit_id}")


class BranchNotFoundError(NotFoundError):
    """Branch with given ID was not found."""

    code: str = "BRANCH_NOT_FOUND"

    def __init__(self, branch_id: str):
        self.branch_id = branch_id
        super().__init__(f"Branch not found: {branch_id}")


# Business rules


class StockRuleError(StockKernelError):
    """Base exception for stock business-rule violations."""

    code: str = "STOCK_RULE_ERROR"


class InsufficientStockError(StockRuleError):
    """Movement would drive current_stock below zero."""

    code: str = "INSUFFICIENT_STOCK"

    def __init__(self, product_id: str, requested: int, available: int):
        self.product_id = product_id
        self.requested = requested
        self.available = available
        super().__init__(
            f"Insufficient stock for product {product_id}: "
            f"requested {requested}, available {available}"
        )


class SerializedUnitUnavailableError(StockRuleError):
    """
    Serialized unit cannot be checked out.

    Raised when a saida selects a unit whose status is not ``disponivel``.
    """

    code: str = "SERIALIZED_UNIT_UNAVAILABLE"

    def __init__(self, unit_id: str, status: str):
        self.unit_id = unit_id
        self.status = status
        super().__init__(
            f"Serialized unit {unit_id} is not available (status={status})"
        )


# Concurrency


class ConcurrencyError(StockKernelError):
    """Base exception for concurrency-related errors."""

    code: str = "CONCURRENCY_ERROR"


class ConcurrencyConflictError(ConcurrencyError):
    """
    Optimistic guard tripped: the row changed between read and write.

    The caller must retry with a fresh read.
    """

    code: str = "CONCURRENCY_CONFLICT"

    def __init__(self, entity_type: str, entity_id: str, expected: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.expected = expected
        super().__init__(
            f"Concurrent modification of {entity_type} {entity_id} "
            f"(expected {expected})"
        )


# Authorization


class AuthorizationError(StockKernelError):
    """Base exception for scope/authorization errors."""

    code: str = "AUTHORIZATION_ERROR"


class AuthorizationDenialError(AuthorizationError):
    """Resolved scope forbids the requested branch or operation."""

    code: str = "AUTHORIZATION_DENIED"

    def __init__(self, actor_id: str, operation: str, reason: str):
        self.actor_id = actor_id
        self.operation = operation
        self.reason = reason
        super().__init__(
            f"Actor {actor_id} denied for {operation}: {reason}"
        )


# Immutability


class ImmutabilityError(StockKernelError):
    """Base exception for immutability violations."""

    code: str = "IMMUTABILITY_ERROR"


class ImmutabilityViolationError(ImmutabilityError):
    """Attempt to modify or delete an append-only record."""

    code: str = "IMMUTABILITY_VIOLATION"

    def __init__(self, entity_type: str, entity_id: str, reason: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.reason = reason
        super().__init__(
            f"Cannot modify {entity_type} {entity_id}: {reason}"
        )


# Ledger integrity


class LedgerIntegrityError(StockKernelError):
    """Replaying a product's movements does not reproduce its stock."""

    code: str = "LEDGER_INTEGRITY_BROKEN"

    def __init__(self, product_id: str, breaks: list[str]):
        self.product_id = product_id
        self.breaks = breaks
        super().__init__(
            f"Ledger integrity broken for product {product_id}: "
            f"{len(breaks)} break(s)"
        )
