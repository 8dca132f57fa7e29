"""
Error classification for database retries.

Only connection-level failures are worth retrying: a lost asyncpg connection,
or the network errors that surface as ``OSError`` while the pool reconnects.
Query errors (bad SQL, constraint violations, cast failures) are never retried.
"""

import errno

from asyncpg.exceptions import ConnectionDoesNotExistError
from sqlalchemy.exc import DBAPIError

from recordbase.utils.logger import setup_logger

logger = setup_logger("retry_utils")

RETRYABLE_ERRNOS = (
    errno.ETIMEDOUT,
    errno.ECONNREFUSED,
    errno.EHOSTUNREACH,
    errno.ENETUNREACH,
)


def is_retryable_db_error(e: Exception) -> bool:
    """Return True when ``e`` is a transient connection failure."""
    if isinstance(e, DBAPIError):
        if isinstance(getattr(e, "orig", None), ConnectionDoesNotExistError):
            logger.info("ConnectionDoesNotExistError detected as retryable.")
            return True
        return bool(e.connection_invalidated)

    if isinstance(e, OSError) and e.errno in RETRYABLE_ERRNOS:
        logger.info(f"OSError errno {e.errno} detected as retryable.")
        return True

    return False
