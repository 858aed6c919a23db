"""
Billing Ledger Backend — Database Error Translation
====================================================

What:  Maps driver/ORM failures raised inside a service operation onto the
       ledger exception hierarchy.
How:   Services wrap their database work in `database_errors(...)`.
       LedgerError subclasses raised inside pass through untouched;
       SQLAlchemy errors, socket errors and timeouts become PersistenceError
       with a generic message. The original error type goes to the log.
"""

import asyncio
import logging
from contextlib import contextmanager
from typing import Any, Iterator

from sqlalchemy.exc import SQLAlchemyError

from ledger.exceptions import LedgerError, PersistenceError

logger = logging.getLogger(__name__)


@contextmanager
def database_errors(action: str, **context: Any) -> Iterator[None]:
    """
    Example:
        with database_errors("list clients"):
            result = await db.execute(select(Client))
    """
    try:
        yield
    except LedgerError:
        raise
    except asyncio.TimeoutError as e:
        logger.error("Database timeout while trying to %s | Context: %s", action, context)
        raise PersistenceError(
            message=f"Timed out while trying to {action}. Please try again.",
            context={**context, "original_error": type(e).__name__},
        ) from e
    except (SQLAlchemyError, OSError) as e:
        logger.error(
            "Database error while trying to %s: %s | Context: %s",
            action,
            str(e),
            context,
            exc_info=True,
        )
        raise PersistenceError(
            message=f"Could not {action}. Please try again.",
            context={**context, "original_error": type(e).__name__},
        ) from e
