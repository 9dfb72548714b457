import asyncio
import logging
import random

from sqlalchemy.exc import DBAPIError, OperationalError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine

from task_automation.storage.automations import (
    automation_templates_table,
    automations_table,
)
from task_automation.storage.base import (
    create_engine_with_sqlite_optimizations,
    metadata,
)
from task_automation.storage.context import DatabaseContext
from task_automation.storage.work_items import work_items_table

logger = logging.getLogger(__name__)


async def init_db(engine: AsyncEngine, max_retries: int = 5) -> None:
    """
    Initializes the database:
    - Creates any missing tables from the SQLAlchemy metadata.
    - Rewrites legacy quarterly/half-yearly rows to the month-set format.
    - Retries transient connection errors with exponential backoff.
    """
    base_delay = 1.0
    last_exception: Exception | None = None

    for attempt in range(max_retries):
        try:
            logger.info(f"Initializing database schema (attempt {attempt + 1})...")
            async with engine.begin() as conn:
                await conn.run_sync(metadata.create_all)

            async with DatabaseContext(engine=engine) as db:
                migrated = await db.automations.migrate_legacy_period_months()
            if migrated:
                logger.info(f"Migrated {migrated} legacy period automation(s).")

            logger.info("Database initialization successful.")
            return
        except (DBAPIError, OperationalError) as e:
            logger.warning(
                f"Database error during init_db (attempt {attempt + 1}/{max_retries}): {e!r}. Retrying..."
            )
            last_exception = e
        except SQLAlchemyError as e:
            logger.error(f"Non-retryable SQLAlchemy error during init_db: {e!r}")
            raise

        if attempt < max_retries - 1:
            delay = base_delay * (2**attempt) + random.uniform(0, base_delay)
            await asyncio.sleep(delay)

    logger.critical("Database initialization failed after all retries.")
    if last_exception is not None:
        raise last_exception
    raise RuntimeError("Database initialization failed")


__all__ = [
    "DatabaseContext",
    "automation_templates_table",
    "automations_table",
    "create_engine_with_sqlite_optimizations",
    "init_db",
    "metadata",
    "work_items_table",
]
