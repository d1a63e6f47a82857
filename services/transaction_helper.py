"""
Transaction Helper Service

Commit/rollback handling for service operations:
- Commit when the wrapped operation returns
- Rollback on any exception
- Retry only on connection level failures
"""

from functools import wraps
from typing import Callable
import logging
import time
from sqlalchemy.exc import OperationalError, DisconnectionError
from app import db
from .errors import ServiceError

logger = logging.getLogger(__name__)

RETRYABLE_ERRORS = (OperationalError, DisconnectionError)


class TransactionHelper:
    """Helper class for managing database transactions safely"""

    max_retries = 3
    backoff = 0.5

    @staticmethod
    def with_transaction(func: Callable) -> Callable:
        """
        Decorator that wraps a function in a database transaction.
        Commits on return and rolls back on error. Business errors
        (ServiceError) are re-raised at once, connection errors are retried.

        Usage:
            @TransactionHelper.with_transaction
            def change_status(self, schedule_id, status, performed_by=None):
                # Your database operations here
                pass
        """
        @wraps(func)
        def wrapper(*args, **kwargs):
            max_retries = TransactionHelper.max_retries
            for attempt in range(max_retries):
                try:
                    result = func(*args, **kwargs)
                    db.session.commit()
                    return result

                except ServiceError:
                    db.session.rollback()
                    raise

                except RETRYABLE_ERRORS as e:
                    db.session.rollback()
                    if attempt < max_retries - 1:
                        sleep_time = TransactionHelper.backoff * (2 ** attempt)
                        logger.warning(f"Database connection error in {func.__name__} "
                                       f"(attempt {attempt + 1}/{max_retries}): {str(e)}. "
                                       f"Retrying in {sleep_time}s...")
                        time.sleep(sleep_time)
                        continue
                    logger.error(f"Transaction failed after {max_retries} attempts: {str(e)}")
                    raise

                except Exception as e:
                    db.session.rollback()
                    logger.error(f"Non-retryable error in {func.__name__}: {str(e)}")
                    raise
            return None
        return wrapper
