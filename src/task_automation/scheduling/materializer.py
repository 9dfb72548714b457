"""Turns a due template into work-items, one per valid assignee."""

import logging
from datetime import datetime, time
from zoneinfo import ZoneInfo

from task_automation.interfaces import IdentityValidator
from task_automation.scheduling.types import (
    EvaluationMoment,
    GuardDecision,
    TemplateOutcome,
)
from task_automation.storage.context import DatabaseContext
from task_automation.storage.models import Automation, Template

logger = logging.getLogger(__name__)


def normalize_assignees(raw: list[str | None] | str | None) -> list[str]:
    """Coerce an authored ``assigned_to`` into a list of non-blank strings."""
    if raw is None:
        return []
    values = raw if isinstance(raw, list) else [raw]
    return [str(value) for value in values if value and str(value).strip()]


def combine_inward_entry(
    template: Template, moment: EvaluationMoment, tz: ZoneInfo
) -> datetime:
    """
    The inward-entry instant for work-items made from ``template``.

    The template's date is combined with its "HH:MM" time in the
    organisational zone, or with the evaluation time of day when the template
    has no time.
    """
    if template.inward_entry_date is None:
        return moment.instant
    if template.inward_entry_time:
        hours, minutes = template.inward_entry_time.split(":")
        time_of_day = time(int(hours), int(minutes))
    else:
        time_of_day = moment.instant.timetz().replace(tzinfo=None)
    return datetime.combine(template.inward_entry_date, time_of_day, tzinfo=tz)


class TaskMaterializer:
    """Creates the work-items for one due template."""

    def __init__(self, identity_validator: IdentityValidator, tz: ZoneInfo) -> None:
        self.identity_validator = identity_validator
        self.tz = tz

    def partition_assignees(
        self, raw: list[str | None] | str | None
    ) -> tuple[list[str], list[str]]:
        """Split assignees into (valid, invalid), keeping order and dropping blanks."""
        valid: list[str] = []
        invalid: list[str] = []
        for assignee in normalize_assignees(raw):
            if self.identity_validator.is_valid(assignee):
                valid.append(assignee)
            else:
                invalid.append(assignee)
        return valid, invalid

    def resolve_assigned_by(
        self, template: Template, automation: Automation
    ) -> str | None:
        for candidate in (template.assigned_by, automation.created_by):
            if candidate and self.identity_validator.is_valid(candidate):
                return candidate
        return None

    async def materialize(
        self,
        db: DatabaseContext,
        automation: Automation,
        template: Template,
        moment: EvaluationMoment,
    ) -> TemplateOutcome:
        """
        Create one work-item per valid assignee of ``template``.

        Each insert runs in its own savepoint; a failing assignee is logged and
        left out of the outcome without affecting its siblings.
        """
        outcome = TemplateOutcome(template_id=template.id, decision=GuardDecision.DUE)

        valid, invalid = self.partition_assignees(template.assigned_to)
        outcome.invalid_assignees = invalid
        if invalid:
            logger.warning(
                f"Template {template.id} ('{template.title}') has {len(invalid)} "
                f"invalid assignee id(s): {invalid}"
            )
        if not valid:
            outcome.error = "No valid assignees"
            logger.error(
                f"Skipping template {template.id} ('{template.title}') of automation "
                f"{automation.id}: no valid assignees"
            )
            return outcome

        inward_entry = combine_inward_entry(template, moment, self.tz)
        assigned_by = self.resolve_assigned_by(template, automation)

        for assignee in valid:
            try:
                async with db.savepoint():
                    work_item_id = await db.work_items.create(
                        title=template.title or "",
                        description=template.description,
                        client_name=template.client_name,
                        client_group=template.client_group,
                        work_type=template.work_type,
                        assigned_to=assignee,
                        assigned_by=assigned_by,
                        priority=template.priority,
                        inward_entry_date=inward_entry,
                        due_date=template.due_date,
                        target_date=template.target_date,
                        billed=True if template.billed is None else template.billed,
                        automation_id=automation.id,
                        template_id=template.id,
                    )
            except Exception as e:
                outcome.failed_assignees.append(assignee)
                logger.error(
                    f"Failed to create work-item for {assignee} from template "
                    f"{template.id} of automation {automation.id}: {e}",
                    exc_info=True,
                )
                continue
            outcome.created_task_ids.append(work_item_id)

        logger.info(
            f"Template {template.id} ('{template.title}'): created "
            f"{outcome.success_count}/{len(valid)} work-item(s)"
        )
        return outcome
