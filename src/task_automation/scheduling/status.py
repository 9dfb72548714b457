"""Per-automation status report for monitoring."""

from dataclasses import dataclass, field
from datetime import date, datetime

from dateutil.relativedelta import relativedelta

from task_automation.scheduling.recurrence import next_occurrence
from task_automation.scheduling.types import EvaluationMoment
from task_automation.storage.models import Automation, TriggerKind

STATUS_COMPLETED = "completed_this_period"
STATUS_PENDING = "pending"
STATUS_SCHEDULED = "scheduled"
STATUS_OVERDUE = "overdue"


@dataclass
class AutomationStatus:
    automation_id: int
    name: str
    trigger_kind: TriggerKind
    status: str
    next_run_date: date | None
    last_run_date: datetime | None
    template_count: int
    approved_templates: int
    tasks_created: int


@dataclass
class StatusReport:
    current_time: datetime
    timezone: str
    automations: list[AutomationStatus] = field(default_factory=list)

    @property
    def total_automations(self) -> int:
        return len(self.automations)


def _ran_this_period(automation: Automation, moment: EvaluationMoment) -> bool:
    if automation.last_run_year != moment.year:
        return False
    if automation.trigger_kind is TriggerKind.YEARLY:
        return True
    return automation.last_run_month == moment.month


def automation_status(
    automation: Automation, moment: EvaluationMoment
) -> AutomationStatus:
    trigger = automation.trigger
    if automation.trigger_kind is TriggerKind.DATE_AND_TIME:
        # Still present after its date means it never produced work
        next_run = trigger.specific_date  # type: ignore[union-attr]
        status = STATUS_OVERDUE if next_run < moment.today else STATUS_SCHEDULED
    elif _ran_this_period(automation, moment):
        status = STATUS_COMPLETED
        if automation.trigger_kind is TriggerKind.YEARLY:
            period_end = date(moment.year + 1, 1, 1)
        else:
            period_end = moment.today.replace(day=1) + relativedelta(months=1)
        next_run = next_occurrence(trigger, period_end)
    else:
        status = STATUS_PENDING
        next_run = next_occurrence(trigger, moment.today)

    return AutomationStatus(
        automation_id=automation.id,
        name=automation.name,
        trigger_kind=automation.trigger_kind,
        status=status,
        next_run_date=next_run,
        last_run_date=automation.last_run_date,
        template_count=len(automation.templates),
        approved_templates=len(automation.approved_templates),
        tasks_created=len(automation.generated_task_ids),
    )


def build_status_report(
    automations: list[Automation], moment: EvaluationMoment
) -> StatusReport:
    newest_first = sorted(automations, key=lambda a: a.created_at, reverse=True)
    return StatusReport(
        current_time=moment.instant,
        timezone=str(moment.instant.tzinfo),
        automations=[automation_status(a, moment) for a in newest_first],
    )
