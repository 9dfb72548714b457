"""Per-template decision on whether the current period still needs work."""

import logging

from task_automation.scheduling.types import EvaluationMoment, GuardDecision
from task_automation.storage.models import (
    ApprovalStatus,
    Template,
    TriggerKind,
    missing_required_fields,
)

logger = logging.getLogger(__name__)

_MONTHLY_KINDS = {
    TriggerKind.DAY_OF_MONTH,
    TriggerKind.QUARTERLY,
    TriggerKind.HALF_YEARLY,
}


def period_satisfied(
    template: Template, kind: TriggerKind, moment: EvaluationMoment
) -> bool:
    """
    Whether ``template`` was already processed in the current period.

    Monthly kinds compare month and year, yearly compares the year, and a
    one-shot template is never considered done since its automation is
    removed once it produces work.
    """
    if kind in _MONTHLY_KINDS:
        return (
            template.last_processed_month == moment.month
            and template.last_processed_year == moment.year
        )
    if kind is TriggerKind.YEARLY:
        return template.last_processed_year == moment.year
    return False


def evaluate_template(
    template: Template, kind: TriggerKind, moment: EvaluationMoment
) -> GuardDecision:
    missing = missing_required_fields(template)
    if missing:
        logger.warning(
            f"Skipping template {template.id} of automation {template.automation_id}: "
            f"missing required fields {missing}"
        )
        return GuardDecision.INCOMPLETE

    if template.approval_status != ApprovalStatus.COMPLETED:
        return GuardDecision.NOT_APPROVED

    if period_satisfied(template, kind, moment):
        logger.debug(
            f"Template {template.id} already processed for "
            f"{template.last_processed_month}/{template.last_processed_year}"
        )
        return GuardDecision.ALREADY_PROCESSED

    return GuardDecision.DUE
