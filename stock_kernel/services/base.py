"""
BaseService -- common constructor for the kernel's write services.

Responsibility:
    Holds the caller's SQLAlchemy ``Session``.  Services persist with
    ``session.flush()`` and savepoints only; the caller owns commit and
    rollback of the outer transaction.

Architecture position:
    Kernel > Services -- imperative shell infrastructure.
"""

from abc import ABC

from sqlalchemy.orm import Session


class BaseService(ABC):
    """
    Abstract base class for kernel services.

    Non-goals:
        - Does NOT manage transaction lifecycle (commit/rollback).
        - Does NOT provide read-only listings; those live in
          ``stock_kernel/selectors/``.
    """

    def __init__(self, session: Session):
        self.session = session
