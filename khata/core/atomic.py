from typing import Callable, Optional, TypeVar

from sqlalchemy.exc import OperationalError, SQLAlchemyError
from sqlalchemy.orm import Session

from khata.core.config import settings
from khata.core.exceptions import LedgerError, PartialWriteError
from khata.logger_config import logger

T = TypeVar("T")


def run_atomic(
    db: Session,
    work: Callable[[], T],
    description: str,
    max_attempts: Optional[int] = None,
) -> T:
    """
    Run ``work`` as one unit of work and commit it once.

    ``work`` stages every write (entry rows, aggregate increments on both
    entity copies, stock changes) on the session without committing. A lost
    connection rolls everything back and the whole batch is replayed from the
    start; sub-writes are never resumed individually.

    Raises:
        LedgerError: whatever ``work`` raised, after rolling back; any other
            non-database error is also re-raised after rolling back
        PartialWriteError: the batch could not be committed
    """
    attempts = max_attempts or settings.BATCH_MAX_ATTEMPTS
    last_error: Optional[Exception] = None

    for attempt in range(1, attempts + 1):
        try:
            result = work()
            db.commit()
            if attempt > 1:
                logger.info(f"{description}: committed on attempt {attempt}")
            return result
        except LedgerError:
            db.rollback()
            raise
        except OperationalError as e:
            db.rollback()
            last_error = e
            logger.warning(f"{description}: attempt {attempt}/{attempts} failed: {str(e)}")
        except SQLAlchemyError as e:
            db.rollback()
            logger.error(f"{description}: batch rejected: {str(e)}")
            raise PartialWriteError(f"{description} failed, nothing was saved") from e
        except Exception:
            db.rollback()
            raise

    logger.error(f"{description}: giving up after {attempts} attempts")
    raise PartialWriteError(f"{description} failed after {attempts} attempts") from last_error
