"""Administrative API for the automation scheduler."""

import logging
from datetime import date, datetime
from typing import Annotated

from fastapi import APIRouter, Body, Depends, HTTPException, status
from pydantic import BaseModel, Field

from task_automation.scheduling.engine import AutomationEngine
from task_automation.scheduling.status import build_status_report
from task_automation.scheduling.types import EvaluationResult
from task_automation.storage.context import DatabaseContext
from task_automation.web.dependencies import get_automation_engine, get_db

logger = logging.getLogger(__name__)

automations_api_router = APIRouter(tags=["Automations"])


class AutomationFailure(BaseModel):
    automation_id: int
    name: str
    error: str


class EvaluationResponse(BaseModel):
    """Outcome of a manual evaluation pass."""

    message: str
    processed_count: int = Field(
        ..., description="Automations that produced at least one work-item"
    )
    tasks_created: int
    failed_automations: list[AutomationFailure] = Field(default_factory=list)


class ResetRequest(BaseModel):
    automation_id: int | None = Field(
        None, description="Reset one automation; omit to reset all day-of-month ones"
    )
    include_templates: bool = Field(
        False, description="Also clear per-template period bookkeeping"
    )


class ResetResponse(BaseModel):
    message: str
    modified_count: int
    templates_reset: int


class AutomationStatusResponse(BaseModel):
    automation_id: int
    name: str
    trigger_kind: str
    status: str
    next_run_date: date | None
    last_run_date: datetime | None
    template_count: int
    approved_templates: int
    tasks_created: int


class StatusResponse(BaseModel):
    current_time: datetime
    timezone: str
    total_automations: int
    automations: list[AutomationStatusResponse]


def _evaluation_response(message: str, result: EvaluationResult) -> EvaluationResponse:
    return EvaluationResponse(
        message=message,
        processed_count=result.processed_count,
        tasks_created=result.tasks_created,
        failed_automations=[
            AutomationFailure(
                automation_id=o.automation_id, name=o.name, error=o.error
            )
            for o in result.outcomes
            if o.error
        ],
    )


@automations_api_router.post("/check-trigger", response_model=EvaluationResponse)
async def check_trigger(
    automation_engine: Annotated[AutomationEngine, Depends(get_automation_engine)],
) -> EvaluationResponse:
    """Run an evaluation pass now and wait for it to finish."""
    result = await automation_engine.run_evaluation(is_manual=True)
    if not result.success:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Automation check failed: {result.error}",
        )
    return _evaluation_response("Automation check completed", result)


@automations_api_router.post("/reset-monthly-status", response_model=ResetResponse)
async def reset_monthly_status(
    automation_engine: Annotated[AutomationEngine, Depends(get_automation_engine)],
    request: Annotated[ResetRequest | None, Body()] = None,
) -> ResetResponse:
    """Clear run markers on one automation, or on all day-of-month automations."""
    request = request or ResetRequest()
    result = await automation_engine.reset_recurrence_markers(
        automation_id=request.automation_id,
        include_templates=request.include_templates,
    )
    if not result.success:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Failed to reset automation status: {result.error}",
        )
    return ResetResponse(
        message=f"Reset {result.modified_count} automation(s)",
        modified_count=result.modified_count,
        templates_reset=result.templates_reset,
    )


@automations_api_router.get("/status", response_model=StatusResponse)
async def get_status(
    db: Annotated[DatabaseContext, Depends(get_db)],
    automation_engine: Annotated[AutomationEngine, Depends(get_automation_engine)],
) -> StatusResponse:
    """Status label and next run date for every automation, newest first."""
    automations = await db.automations.list_all()
    report = build_status_report(automations, automation_engine.current_moment())
    return StatusResponse(
        current_time=report.current_time,
        timezone=report.timezone,
        total_automations=report.total_automations,
        automations=[
            AutomationStatusResponse(
                automation_id=entry.automation_id,
                name=entry.name,
                trigger_kind=entry.trigger_kind.value,
                status=entry.status,
                next_run_date=entry.next_run_date,
                last_run_date=entry.last_run_date,
                template_count=entry.template_count,
                approved_templates=entry.approved_templates,
                tasks_created=entry.tasks_created,
            )
            for entry in report.automations
        ],
    )


@automations_api_router.post(
    "/{automation_id}/force-run", response_model=EvaluationResponse
)
async def force_run(
    automation_id: int,
    automation_engine: Annotated[AutomationEngine, Depends(get_automation_engine)],
) -> EvaluationResponse:
    """Clear one automation's bookkeeping, then run a manual pass."""
    result = await automation_engine.force_run(automation_id)
    if result is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND, detail="Automation not found"
        )
    if not result.success:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Failed to force run automation: {result.error}",
        )
    logger.info(f"Forced automation {automation_id} to run")
    return _evaluation_response(f"Forced automation {automation_id} to run", result)
