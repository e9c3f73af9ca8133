"""Session management for database operations.

This module provides utilities for handling SQLAlchemy async sessions
with proper lifecycle management, error handling, and transaction support.
"""

from typing import AsyncContextManager, AsyncGenerator, Callable, Optional, TypeVar
import logging
import inspect
from contextlib import asynccontextmanager
from functools import wraps

from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.exc import SQLAlchemyError

from app.db.base import get_session
from app.repositories.base import STORE_ERRORS, RepositoryError

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Callable producing a session context, used for work detached from a request
SessionFactory = Callable[[], AsyncContextManager[AsyncSession]]


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """FastAPI dependency for database sessions.

    Yields:
        AsyncSession: A SQLAlchemy async session object.
    """
    async with get_session() as session:
        try:
            yield session
        except SQLAlchemyError:
            logger.exception("Database error occurred")
            await session.rollback()
            raise


def db_transaction(db_param_name: Optional[str] = None) -> Callable:
    """Decorator to wrap functions in a database transaction.

    Finds the session argument, commits on success and rolls back on error.
    Store errors raised by the commit itself surface as RepositoryError.

    Args:
        db_param_name: Name of the session parameter. When omitted, the first
            parameter annotated as AsyncSession is used.

    Raises:
        ValueError: If no database session is passed to the wrapped function
    """
    def decorator(func: Callable[..., T]) -> Callable[..., T]:
        parameters = inspect.signature(func).parameters
        db_param_pos = None
        db_param_key = None

        for i, (param_name, param) in enumerate(parameters.items()):
            is_async_session = param.annotation is AsyncSession
            if (db_param_name and param_name == db_param_name) or (
                db_param_name is None and is_async_session
            ):
                db_param_pos = i
                db_param_key = param_name
                break

        if db_param_key is None:
            logger.warning(
                f"Unable to find database session parameter in function '{func.__name__}'"
            )

        @wraps(func)
        async def wrapper(*args, **kwargs):
            db = None
            if db_param_key is not None and db_param_key in kwargs:
                db = kwargs[db_param_key]
            elif db_param_pos is not None and len(args) > db_param_pos:
                db = args[db_param_pos]
            else:
                db = next(
                    (a for a in [*args, *kwargs.values()] if isinstance(a, AsyncSession)),
                    None,
                )

            if db is None:
                raise ValueError(
                    f"Database session not found in function arguments for '{func.__name__}'"
                )

            try:
                result = await func(*args, **kwargs)
            except Exception as e:
                await db.rollback()
                logger.debug(f"Transaction rolled back in '{func.__name__}': {e}")
                raise

            try:
                await db.commit()
            except STORE_ERRORS as e:
                await db.rollback()
                logger.error(f"Commit failed in '{func.__name__}': {e}")
                raise RepositoryError(f"Database error committing transaction: {e}") from e
            return result

        return wrapper
    return decorator


class SessionManager:
    """Session manager for database work outside a request scope."""

    @staticmethod
    @asynccontextmanager
    async def transaction_context() -> AsyncGenerator[AsyncSession, None]:
        """Context manager for a database session with transaction support.

        Automatically commits on successful completion or rolls back on error.

        Yields:
            AsyncSession: SQLAlchemy async session
        """
        async with get_session() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise
