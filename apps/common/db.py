"""Transaction helpers shared by every ledger service.

Service entry points are wrapped in :func:`transactional`: the outermost call
opens ``transaction.atomic()`` and is retried on transient database failures,
nested calls simply join the caller's transaction. Ledger primitives call
:func:`ensure_atomic` so they can never run outside a unit of work.
"""

import functools
import logging
import time

from django.conf import settings
from django.db import OperationalError, transaction

from apps.common.exceptions import InternalError, TransientError

logger = logging.getLogger(__name__)

# PostgreSQL "query_canceled", raised when statement_timeout fires.
STATEMENT_TIMEOUT_SQLSTATE = "57014"


def _sqlstate(exc):
    cause = exc.__cause__
    return getattr(cause, "sqlstate", None) or getattr(cause, "pgcode", None)


def ensure_atomic(operation):
    if not transaction.get_connection().in_atomic_block:
        raise InternalError(f"{operation} must run inside transaction.atomic().")


def run_with_retry(func, *, label=None, attempts=None, backoff=None):
    """Run ``func`` retrying transient ``OperationalError`` with exponential backoff.

    Statement timeouts are not retried; they surface as ``TransientError`` so
    the caller decides whether to try again.
    """
    attempts = max(1, attempts or settings.DB_RETRY_ATTEMPTS)
    backoff = settings.DB_RETRY_BACKOFF_SECONDS if backoff is None else backoff
    label = label or getattr(func, "__name__", "operation")

    for attempt in range(attempts):
        try:
            return func()
        except OperationalError as exc:
            if _sqlstate(exc) == STATEMENT_TIMEOUT_SQLSTATE:
                logger.warning("Statement timeout in %s", label)
                raise TransientError() from exc
            if attempt >= attempts - 1:
                logger.warning("Giving up on %s after %s attempts: %s", label, attempts, exc)
                raise TransientError() from exc
            logger.warning("Transient database error in %s (attempt %s/%s): %s", label, attempt + 1, attempts, exc)
            transaction.get_connection().close_if_unusable_or_obsolete()
            time.sleep(backoff * (2**attempt))


def transactional(func):
    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        def attempt():
            with transaction.atomic():
                return func(*args, **kwargs)

        if transaction.get_connection().in_atomic_block:
            return attempt()
        return run_with_retry(attempt, label=func.__qualname__)

    return wrapper
