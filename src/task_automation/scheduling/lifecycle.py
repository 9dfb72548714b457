"""Bookkeeping after materialization: stamping, one-shot removal and resets."""

import logging

from task_automation.scheduling.types import (
    AutomationOutcome,
    EvaluationMoment,
    GuardDecision,
    TemplateOutcome,
)
from task_automation.storage.context import DatabaseContext
from task_automation.storage.models import Automation

logger = logging.getLogger(__name__)


async def record_template_outcome(
    db: DatabaseContext, outcome: TemplateOutcome, moment: EvaluationMoment
) -> None:
    """Stamp a template processed for the current period if it produced work.

    A template that produced nothing keeps its bookkeeping so the next pass
    retries it.
    """
    if outcome.success_count == 0:
        return
    await db.automations.stamp_template(
        outcome.template_id,
        month=moment.month,
        year=moment.year,
        processed_at=moment.instant,
        new_task_ids=outcome.created_task_ids,
    )


async def finalize_automation(
    db: DatabaseContext,
    automation: Automation,
    outcome: AutomationOutcome,
    moment: EvaluationMoment,
) -> None:
    """
    Update automation-level state once all its templates have been handled.

    Recurring automations get their run markers stamped when any approved
    template still needed work this period, whether it reached the
    materializer or was skipped as incomplete. Automations without an
    approved template, or whose approved templates were all processed
    already, are left untouched. A one-shot automation is deleted once it
    has produced at least one work-item and kept for the next pass otherwise.
    """
    created = [
        task_id for template in outcome.templates for task_id in template.created_task_ids
    ]
    await db.automations.append_generated_task_ids(automation.id, created)

    if automation.trigger_kind.is_recurring:
        approved = {template.id for template in automation.approved_templates}
        needed_work = any(
            template.template_id in approved
            and template.decision is not GuardDecision.ALREADY_PROCESSED
            for template in outcome.templates
        )
        if needed_work:
            await db.automations.stamp_run_markers(
                automation.id,
                run_at=moment.instant,
                month=moment.month,
                year=moment.year,
            )
            outcome.markers_stamped = True
        return

    if created:
        outcome.deleted = await db.automations.delete(automation.id)
        logger.info(
            f"One-shot automation {automation.id} ('{automation.name}') produced "
            f"{len(created)} work-item(s) and was removed"
        )
    else:
        logger.warning(
            f"One-shot automation {automation.id} ('{automation.name}') produced no "
            "work-items; keeping it for the next pass"
        )


async def reset_markers(
    db: DatabaseContext,
    automation_id: int | None = None,
    include_templates: bool = False,
) -> tuple[int, int]:
    """
    Clear run markers on one automation, or on every day-of-month automation.

    Per-template bookkeeping, which is what actually blocks a template from
    firing again this period, is only cleared when ``include_templates`` is set.

    Returns:
        (automations modified, templates modified)
    """
    modified = await db.automations.reset_run_markers(automation_id)
    templates_reset = 0
    if include_templates:
        templates_reset = await db.automations.reset_template_markers(automation_id)

    target = f"automation {automation_id}" if automation_id is not None else "all day-of-month automations"
    logger.info(
        f"Reset run markers on {target}: {modified} automation(s), "
        f"{templates_reset} template(s)"
    )
    return modified, templates_reset
