"""
Database context manager for storage operations.

This module provides a context manager and utilities for database operations,
enabling dependency injection for testing and centralizing retry logic.
"""

import asyncio
import logging
import random
from types import TracebackType
from typing import TYPE_CHECKING, Any

from sqlalchemy import TextClause
from sqlalchemy.engine import CursorResult
from sqlalchemy.exc import DBAPIError, ProgrammingError
from sqlalchemy.ext.asyncio import AsyncConnection, AsyncEngine, AsyncTransaction
from sqlalchemy.sql import Delete, Insert, Select, Update

if TYPE_CHECKING:
    from contextlib import AbstractAsyncContextManager

    from task_automation.storage.repositories import (
        AutomationsRepository,
        WorkItemsRepository,
    )

logger = logging.getLogger(__name__)


class DatabaseContext:
    """
    Context manager for database operations with retry logic.

    Each ``async with`` block is one transaction: it commits when the block
    exits normally and rolls back when it raises.
    """

    def __init__(
        self,
        engine: AsyncEngine,
        max_retries: int = 3,
        base_delay: float = 0.5,
    ) -> None:
        """
        Initialize the database context.

        Args:
            engine: SQLAlchemy AsyncEngine to open the transaction on.
            max_retries: Maximum number of retries for database operations.
            base_delay: Base delay in seconds for exponential backoff.
        """
        self.engine = engine
        self.max_retries = max_retries
        self.base_delay = base_delay
        self.conn: AsyncConnection | None = None
        self._transaction_cm: AbstractAsyncContextManager[AsyncConnection] | None = None

        # Repository instances (lazy-loaded)
        self._automations: AutomationsRepository | None = None
        self._work_items: WorkItemsRepository | None = None

    async def __aenter__(self) -> "DatabaseContext":
        """Enter the async context manager, starting a transaction."""
        if self._transaction_cm is not None:
            raise RuntimeError("DatabaseContext is not reentrant")

        self._transaction_cm = self.engine.begin()
        self.conn = await self._transaction_cm.__aenter__()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        """Exit the async context manager, committing or rolling back the transaction."""
        if self._transaction_cm is None:
            return

        try:
            await self._transaction_cm.__aexit__(exc_type, exc_val, exc_tb)
        finally:
            self.conn = None
            self._transaction_cm = None

    def savepoint(self) -> AsyncTransaction:
        """Begin a nested transaction inside the current one.

        Use as ``async with db.savepoint():``. A failure inside the block rolls
        back only the work done since the savepoint.
        """
        if self.conn is None:
            raise RuntimeError("No active database connection")
        return self.conn.begin_nested()

    async def execute_with_retry(
        self,
        query: Select | Insert | Update | Delete | TextClause,
        params: dict[str, Any] | None = None,
    ) -> CursorResult:
        """
        Execute a query with retry logic for transient database errors.

        Args:
            query: The SQLAlchemy query to execute.
            params: Optional parameters for the query.

        Returns:
            The SQLAlchemy Result object.

        Raises:
            RuntimeError: If there is no active database connection or if
                         all retry attempts fail.
        """
        if self.conn is None:
            raise RuntimeError("No active database connection")

        for attempt in range(self.max_retries):
            try:
                if params:
                    return await self.conn.execute(query, params)
                else:
                    return await self.conn.execute(query)
            except DBAPIError as e:
                # Syntax errors and undefined objects will not fix themselves
                if isinstance(e.orig, ProgrammingError) or isinstance(
                    e, ProgrammingError
                ):
                    logger.error(
                        f"Non-retryable ProgrammingError encountered: {e}",
                        exc_info=True,
                    )
                    raise

                logger.warning(
                    f"Retryable DBAPIError (attempt {attempt + 1}/{self.max_retries}): {e}."
                )
                if attempt == self.max_retries - 1:
                    logger.error(
                        "Max retries exceeded for retryable error. Raising error."
                    )
                    raise

                delay = self.base_delay * (2**attempt) + random.uniform(
                    0, self.base_delay
                )
                logger.info(f"Retrying in {delay:.2f} seconds...")
                await asyncio.sleep(delay)
            except Exception as e:
                logger.error(f"Non-retryable error: {e}", exc_info=True)
                raise

        raise RuntimeError("Database operation failed after multiple retries")

    async def fetch_all(
        self, query: Select | TextClause, params: dict[str, Any] | None = None
    ) -> list[dict[str, Any]]:
        """Execute a query and fetch all rows as dictionaries."""
        result = await self.execute_with_retry(query, params)
        return [dict(row_mapping) for row_mapping in result.mappings().all()]

    async def fetch_one(
        self, query: Select | TextClause, params: dict[str, Any] | None = None
    ) -> dict[str, Any] | None:
        """Execute a query and fetch one row as a dictionary, or None."""
        result = await self.execute_with_retry(query, params)
        row_mapping = result.mappings().one_or_none()
        return dict(row_mapping) if row_mapping else None

    @property
    def automations(self) -> "AutomationsRepository":
        """Get the automations repository instance."""
        if self._automations is None:
            from task_automation.storage.repositories import AutomationsRepository

            self._automations = AutomationsRepository(self)
        return self._automations

    @property
    def work_items(self) -> "WorkItemsRepository":
        """Get the work-items repository instance."""
        if self._work_items is None:
            from task_automation.storage.repositories import WorkItemsRepository

            self._work_items = WorkItemsRepository(self)
        return self._work_items
