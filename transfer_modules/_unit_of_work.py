"""
Transaction boundary helper for module services.

Used by ``transfer_modules/*/service.py`` so every public operation commits
on success and rolls back on any failure.  Storage exceptions leave as
``PersistenceError``; engine errors propagate unchanged.

Architecture: Modules layer. Imports only from transfer_kernel.
"""

from __future__ import annotations

from contextlib import contextmanager
from typing import Iterator

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from transfer_kernel.exceptions import PersistenceError, TransferEngineError
from transfer_kernel.logging_config import get_logger

logger = get_logger("modules.unit_of_work")


@contextmanager
def unit_of_work(session: Session, operation: str) -> Iterator[Session]:
    """Commit ``session`` when the block exits cleanly, otherwise roll back.

    Raises:
        PersistenceError: the block or the commit raised a SQLAlchemyError.
    """
    try:
        yield session
        session.commit()
    except TransferEngineError as exc:
        session.rollback()
        logger.info(
            "transaction_rolled_back",
            extra={"operation": operation, "error_code": exc.code},
        )
        raise
    except SQLAlchemyError as exc:
        session.rollback()
        logger.warning(
            "transaction_rolled_back",
            extra={"operation": operation, "error_code": PersistenceError.code},
            exc_info=True,
        )
        reason = (str(exc).splitlines() or [type(exc).__name__])[0]
        raise PersistenceError(operation, reason) from exc
    except Exception:
        session.rollback()
        logger.warning(
            "transaction_rolled_back",
            extra={"operation": operation},
            exc_info=True,
        )
        raise
