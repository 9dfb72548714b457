import logging
from collections.abc import AsyncGenerator

from fastapi import HTTPException, Request, status

from task_automation.scheduling.engine import AutomationEngine
from task_automation.storage.context import DatabaseContext

logger = logging.getLogger(__name__)


async def get_db(request: Request) -> AsyncGenerator[DatabaseContext]:
    """FastAPI dependency to get a DatabaseContext."""
    engine = request.app.state.database_engine
    if not engine:
        raise RuntimeError("Database engine not initialized in app.state")

    async with DatabaseContext(engine=engine) as db_context:
        yield db_context


async def get_automation_engine(request: Request) -> AutomationEngine:
    """Retrieves the AutomationEngine instance from app state."""
    automation_engine = getattr(request.app.state, "automation_engine", None)
    if not automation_engine:
        logger.error("AutomationEngine not found in app state.")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Automation engine not configured or available.",
        )
    return automation_engine
