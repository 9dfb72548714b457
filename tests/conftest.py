import contextlib
import logging
import os
import tempfile
from collections.abc import AsyncGenerator
from datetime import datetime, timezone

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncEngine

from task_automation.scheduling.engine import AutomationEngine
from task_automation.storage import init_db
from task_automation.storage.base import create_engine_with_sqlite_optimizations
from task_automation.storage.context import DatabaseContext
from task_automation.utils.clock import MockClock

logging.basicConfig(level=logging.INFO)

logger = logging.getLogger(__name__)

# The scenario date used across the scheduling tests
DEFAULT_TEST_TIME = datetime(2024, 3, 15, 9, 30, tzinfo=timezone.utc)


@pytest_asyncio.fixture(scope="function")
async def db_engine(
    request: pytest.FixtureRequest,
) -> AsyncGenerator[AsyncEngine, None]:
    """
    Provides an engine on a temporary on-disk SQLite database.

    A file rather than ``:memory:`` lets every DatabaseContext open its own
    connection, as it does in production.
    """
    with tempfile.NamedTemporaryFile(
        prefix="ta_test_", suffix=".sqlite", delete=False
    ) as tmp_file:
        tmp_name = tmp_file.name
    engine = create_engine_with_sqlite_optimizations(f"sqlite+aiosqlite:///{tmp_name}")
    logger.info(f"--- SQLite Test DB Setup ({request.node.name}): {engine.url}")

    try:
        await init_db(engine)
        yield engine
    finally:
        await engine.dispose()
        for suffix in ("", "-wal", "-shm"):
            with contextlib.suppress(FileNotFoundError):
                os.unlink(tmp_name + suffix)


@pytest_asyncio.fixture(scope="function")
async def db_context(db_engine: AsyncEngine) -> AsyncGenerator[DatabaseContext, None]:
    """A DatabaseContext whose transaction is committed when the test ends."""
    async with DatabaseContext(engine=db_engine) as ctx:
        yield ctx


@pytest.fixture
def mock_clock() -> MockClock:
    """Provides a mock clock pinned to 2024-03-15 09:30 UTC."""
    return MockClock(DEFAULT_TEST_TIME)


@pytest.fixture
def automation_engine(db_engine: AsyncEngine, mock_clock: MockClock) -> AutomationEngine:
    """An AutomationEngine on the test database, driven by the mock clock."""
    return AutomationEngine(
        db_engine, clock=mock_clock, timezone="UTC", automation_timeout=10.0
    )
