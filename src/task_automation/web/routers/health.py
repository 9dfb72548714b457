import logging

from fastapi import APIRouter, Request, status
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)
health_router = APIRouter()


@health_router.get("/health", status_code=status.HTTP_200_OK)
async def health_check(request: Request) -> JSONResponse:
    """Checks that the scheduler is wired up and its worker is alive."""
    automation_engine = getattr(request.app.state, "automation_engine", None)
    if automation_engine is None:
        return JSONResponse(
            content={
                "status": "unhealthy",
                "reason": "Automation engine not initialized",
            },
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        )

    worker_task = getattr(request.app.state, "automation_worker_task", None)
    if worker_task is not None and worker_task.done():
        logger.warning("Health check failing because the automation worker stopped.")
        return JSONResponse(
            content={"status": "unhealthy", "reason": "Automation worker stopped"},
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        )

    return JSONResponse(
        content={
            "status": "ok",
            "scheduler": "running" if worker_task is not None else "disabled",
            "evaluation_in_progress": automation_engine.is_running,
        },
        status_code=status.HTTP_200_OK,
    )
