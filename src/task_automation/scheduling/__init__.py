"""Recurring automation scheduling and work-item generation."""

from task_automation.scheduling.engine import AutomationEngine
from task_automation.scheduling.types import (
    AutomationOutcome,
    EvaluationMoment,
    EvaluationResult,
    GuardDecision,
    ResetResult,
    TemplateOutcome,
)

__all__ = [
    "AutomationEngine",
    "AutomationOutcome",
    "EvaluationMoment",
    "EvaluationResult",
    "GuardDecision",
    "ResetResult",
    "TemplateOutcome",
]
