from collections.abc import AsyncGenerator

import pytest_asyncio
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncEngine

from task_automation.scheduling.engine import AutomationEngine
from task_automation.web.app_creator import app as actual_app


@pytest_asyncio.fixture(scope="function")
async def app_fixture(
    db_engine: AsyncEngine, automation_engine: AutomationEngine
) -> FastAPI:
    """
    Creates a FastAPI application instance for testing, wired to the test
    database and an engine driven by the mock clock.
    """
    # Make a copy of the actual app to avoid modifying it globally
    app = FastAPI(
        title=actual_app.title,
        docs_url=actual_app.docs_url,
        redoc_url=actual_app.redoc_url,
    )
    app.include_router(actual_app.router)  # Include actual routers

    app.state.database_engine = db_engine  # For get_db dependency
    app.state.automation_engine = automation_engine
    return app


@pytest_asyncio.fixture(scope="function")
async def api_test_client(app_fixture: FastAPI) -> AsyncGenerator[AsyncClient, None]:
    """Provides an HTTPX AsyncClient for the test FastAPI app."""
    transport = ASGITransport(app=app_fixture)
    async with AsyncClient(transport=transport, base_url="http://testserver") as client:
        yield client
