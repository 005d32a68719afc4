"""
Retry logic for serializable transactions.

A serializable transaction may be aborted by the database when it conflicts
with a concurrent one. The whole transaction body is then re-executed from
scratch, up to a fixed number of attempts. Every other database failure is
classified as a StoreError and surfaced immediately.
"""

import asyncio
import functools
from typing import Awaitable, Callable, Optional, TypeVar

from sqlalchemy.exc import DBAPIError, SQLAlchemyError

from .exceptions import ConflictExhausted, StoreError

T = TypeVar("T")

# serialization_failure, deadlock_detected
CONFLICT_SQLSTATES = frozenset({"40001", "40P01"})


def is_serialization_conflict(exception: BaseException) -> bool:
    """
    Determine if a database exception means "conflicting concurrent
    transaction, try again".

    Args:
        exception: Exception raised while running the transaction

    Returns:
        True for PostgreSQL serialization failures and deadlocks, and for
        SQLite's lock contention error
    """
    if not isinstance(exception, DBAPIError):
        return False

    original = exception.orig
    code = getattr(original, "sqlstate", None) or getattr(original, "pgcode", None)
    if code in CONFLICT_SQLSTATES:
        return True

    return "database is locked" in str(original).lower()


def retry_on_conflict(
    max_attempts: int = 3,
    base_delay: float = 0.0,
    on_retry: Optional[Callable[[int, BaseException], None]] = None,
):
    """
    Decorator re-running a transactional coroutine on serialization conflicts.

    Args:
        max_attempts: Total number of executions, including the first one
        base_delay: Seconds to wait between attempts (0 = immediate retry)
        on_retry: Optional callback function(attempt, exception) called
            before each new attempt

    Raises:
        ConflictExhausted: The last allowed attempt still conflicted
        StoreError: Any other SQLAlchemy failure, never retried

    Example:
        @retry_on_conflict(max_attempts=3)
        async def transfer(...):
            async with db_manager.serializable_session() as session:
                ...
    """
    if max_attempts < 1:
        raise ValueError("max_attempts must be at least 1")

    def decorator(func: Callable[..., Awaitable[T]]) -> Callable[..., Awaitable[T]]:
        @functools.wraps(func)
        async def wrapper(*args, **kwargs) -> T:
            attempt = 0
            while True:
                attempt += 1
                try:
                    return await func(*args, **kwargs)
                except DBAPIError as e:
                    if not is_serialization_conflict(e):
                        raise StoreError(f"Data store failure: {e.orig}", original=e) from e

                    if attempt >= max_attempts:
                        raise ConflictExhausted(
                            f"Transaction still conflicting after {max_attempts} attempts",
                            attempts=max_attempts,
                        ) from e

                    if on_retry:
                        on_retry(attempt, e)
                    if base_delay > 0:
                        await asyncio.sleep(base_delay)
                except SQLAlchemyError as e:
                    raise StoreError(f"Data store failure: {e}", original=e) from e

        return wrapper
    return decorator
