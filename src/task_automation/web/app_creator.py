import logging

from fastapi import FastAPI

from task_automation.web.routers.automations_api import automations_api_router
from task_automation.web.routers.health import health_router

logger = logging.getLogger(__name__)

app = FastAPI(
    title="Task Automation",
    description="Recurring automation scheduler and work-item generator",
    version="0.1.0",
)

# Shared objects (database_engine, automation_engine, automation_worker_task)
# are stored on app.state by AutomationService during startup.

app.include_router(health_router, tags=["Health Check"])
app.include_router(
    automations_api_router, prefix="/api/automations", tags=["Automations API"]
)
