"""
Atomic execution of ledger operations with bounded retry on write conflicts
"""
from typing import Callable, TypeVar
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError
from sqlalchemy.exc import SQLAlchemyError
import logging

from stockledger.core.config import settings
from stockledger.services.errors import LedgerError, ConsistencyConflictError, InternalError

logger = logging.getLogger(__name__)

T = TypeVar("T")


def run_atomic(db: Session, operation: Callable[[], T], description: str = "ledger operation") -> T:
    """
    Run `operation` so that it either completes with every write flushed or
    leaves nothing behind.

    A concurrent writer is detected through the version counters
    (StaleDataError) or reported explicitly as ConsistencyConflictError; the
    transaction is rolled back and the operation re-run from scratch, up to
    CONFLICT_RETRY_ATTEMPTS times. Any other ledger error rolls back and
    propagates unchanged. The caller commits.
    """
    attempts = settings.CONFLICT_RETRY_ATTEMPTS
    for attempt in range(1, attempts + 1):
        try:
            result = operation()
            db.flush()
            return result
        except (StaleDataError, ConsistencyConflictError) as e:
            db.rollback()
            logger.warning(f"{description}: conflict on attempt {attempt}/{attempts}: {e}")
        except LedgerError:
            db.rollback()
            raise
        except SQLAlchemyError as e:
            db.rollback()
            logger.error(f"{description}: store failure: {e}", exc_info=True)
            raise InternalError(f"{description} failed") from e

    logger.error(f"{description}: giving up after {attempts} conflicting attempts")
    raise InternalError(f"{description} failed after {attempts} attempts")
