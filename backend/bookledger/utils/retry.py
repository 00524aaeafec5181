"""
Bounded retry for units of work that must either fully apply or not at all.
"""
import logging
import time
from typing import Callable, Optional, TypeVar

from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session

from bookledger.core.config import settings
from bookledger.core.errors import TransientError

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Errors that mean "the store was unavailable", not "the request was wrong"
TRANSIENT_EXCEPTIONS = (OperationalError, TimeoutError)


def run_unit_with_retries(
    db: Session,
    unit: Callable[[], T],
    label: str,
    attempts: Optional[int] = None,
    base_delay: Optional[float] = None,
    sleep: Callable[[float], None] = time.sleep,
) -> T:
    """
    Run `unit` and commit, retrying the whole unit on transient failures.

    Every failed attempt is rolled back before the next one, so a unit that
    finally fails leaves no partial writes behind. Domain errors raised by the
    unit (NotFoundError, ConflictError, ...) roll back and propagate immediately.

    Raises:
        TransientError: when every attempt hit a transient failure
    """
    attempts = attempts or settings.TRANSIENT_RETRY_ATTEMPTS
    delay = settings.TRANSIENT_RETRY_BASE_DELAY_SECONDS if base_delay is None else base_delay

    for attempt in range(1, attempts + 1):
        try:
            result = unit()
            db.commit()
            return result
        except TRANSIENT_EXCEPTIONS as e:
            db.rollback()
            if attempt == attempts:
                logger.error(
                    "%s failed after %d attempts: %s", label, attempts, str(e),
                )
                raise TransientError(f"{label} failed: persistence layer unavailable") from e
            logger.warning(
                "%s attempt %d/%d hit a transient error, retrying in %.2fs: %s",
                label, attempt, attempts, delay, str(e),
            )
            sleep(delay)
            delay *= 2
        except Exception:
            db.rollback()
            raise
