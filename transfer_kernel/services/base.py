"""
BaseService -- abstract base for all write-side components.

Responsibility:
    Provides the common constructor and session-handling contract for
    every component that mutates state.  Components receive a SQLAlchemy
    ``Session`` and use ``session.flush()`` -- never ``session.commit()``.

Architecture position:
    Kernel > Services -- imperative shell infrastructure.  The order
    store, shipment and receipt recorders and the settlement engine all
    extend this class.

Invariants enforced:
    Transaction boundaries: components flush within the caller's
    transaction and never commit or roll back themselves.  The module
    facade (``TransferService``) owns commit/rollback.

Failure modes:
    - A subclass that commits breaks the all-or-nothing guarantee of a
      multi-step operation (status update + batch + inventory movement).
"""

from abc import ABC
from typing import Generic, TypeVar

from sqlalchemy.orm import Session

from transfer_kernel.db.base import Base

ModelType = TypeVar("ModelType", bound=Base)


class BaseService(ABC, Generic[ModelType]):
    """
    Abstract base class for write-side components.

    Guarantees:
        - The component never calls ``session.commit()`` or
          ``session.rollback()``.

    Non-goals:
        - Does NOT provide read-only query methods -- those belong in
          selectors.
    """

    def __init__(self, session: Session):
        self.session = session
