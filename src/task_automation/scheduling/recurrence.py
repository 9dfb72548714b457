"""Selection of the automations that fire at an evaluation moment."""

import logging
from dataclasses import dataclass, field
from datetime import date, datetime, time

from dateutil import rrule
from dateutil.relativedelta import relativedelta

from task_automation.scheduling.types import EvaluationMoment
from task_automation.storage.context import DatabaseContext
from task_automation.storage.models import (
    Automation,
    DateAndTimeTrigger,
    DayOfMonthTrigger,
    HalfYearlyTrigger,
    QuarterlyTrigger,
    Trigger,
    TriggerKind,
    YearlyTrigger,
)

logger = logging.getLogger(__name__)

RECURRING_KINDS = (
    TriggerKind.DAY_OF_MONTH,
    TriggerKind.QUARTERLY,
    TriggerKind.HALF_YEARLY,
    TriggerKind.YEARLY,
)

# Long enough to reach the next 29 February from any date
_OCCURRENCE_HORIZON = relativedelta(years=8)


@dataclass(frozen=True)
class Candidate:
    automation: Automation
    # True when a one-shot automation's date is already in the past
    missed: bool = False


@dataclass
class CandidateSelection:
    candidates: list[Candidate] = field(default_factory=list)
    counts: dict[TriggerKind, int] = field(default_factory=dict)
    missed_count: int = 0
    # Day-of-month automations for today, approved or not; informational
    day_of_month_total: int = 0


def trigger_matches(trigger: Trigger, moment: EvaluationMoment) -> bool:
    """Whether ``trigger`` selects its automation at ``moment``.

    Mirrors the candidate queries so the rules can be checked without a
    database.
    """
    if isinstance(trigger, DateAndTimeTrigger):
        return is_missed(trigger, moment) or (
            trigger.specific_date == moment.today
            and trigger.specific_time <= moment.time_of_day
        )
    if trigger.day_of_month != moment.day:
        return False
    if isinstance(trigger, QuarterlyTrigger | HalfYearlyTrigger):
        return moment.month in trigger.months
    if isinstance(trigger, YearlyTrigger):
        return moment.month == trigger.month_of_year
    return True


def is_missed(trigger: Trigger, moment: EvaluationMoment) -> bool:
    return (
        isinstance(trigger, DateAndTimeTrigger)
        and trigger.specific_date < moment.today
    )


async def select_candidates(
    db: DatabaseContext, moment: EvaluationMoment
) -> CandidateSelection:
    """
    Query every candidate automation for ``moment``.

    Recurring kinds match on today's day (and month where the kind has one);
    one-shot automations match when due today or already missed. Only
    automations with at least one approved template are returned, each once.
    """
    selection = CandidateSelection()
    seen: set[int] = set()

    def _add(automations: list[Automation], missed: bool = False) -> int:
        added = 0
        for automation in automations:
            if automation.id in seen:
                continue
            seen.add(automation.id)
            selection.candidates.append(Candidate(automation, missed=missed))
            added += 1
        return added

    for kind in RECURRING_KINDS:
        found = await db.automations.find_recurring_candidates(
            kind, moment.day, moment.month
        )
        selection.counts[kind] = _add(found)

    due_today = await db.automations.find_date_time_due(
        moment.today, moment.time_of_day
    )
    missed = await db.automations.find_date_time_missed(moment.today)
    selection.counts[TriggerKind.DATE_AND_TIME] = _add(due_today)
    selection.missed_count = _add(missed, missed=True)
    selection.counts[TriggerKind.DATE_AND_TIME] += selection.missed_count

    selection.day_of_month_total = await db.automations.count_day_of_month(
        moment.day
    )

    logger.info(
        f"Candidates for {moment.today} {moment.time_of_day}: "
        + ", ".join(f"{kind.value}={count}" for kind, count in selection.counts.items())
        + f" (missed one-shots: {selection.missed_count}, "
        f"day-of-month automations for day {moment.day}: {selection.day_of_month_total})"
    )
    return selection


def next_occurrence(trigger: Trigger, after: date) -> date | None:
    """
    The first date on or after ``after`` on which ``trigger`` fires.

    Days that a month lacks are skipped (day 31 never fires in April), which
    is also how the candidate queries behave.

    Returns:
        The date, or None for a one-shot date already in the past or a day
        that never occurs (such as 30 February)
    """
    if isinstance(trigger, DateAndTimeTrigger):
        return trigger.specific_date if trigger.specific_date >= after else None

    start = datetime.combine(after, time.min)
    until = start + _OCCURRENCE_HORIZON
    if isinstance(trigger, DayOfMonthTrigger):
        rule = rrule.rrule(
            rrule.MONTHLY, dtstart=start, until=until, bymonthday=trigger.day_of_month
        )
    elif isinstance(trigger, QuarterlyTrigger | HalfYearlyTrigger):
        rule = rrule.rrule(
            rrule.MONTHLY,
            dtstart=start,
            until=until,
            bymonthday=trigger.day_of_month,
            bymonth=trigger.months,
        )
    else:
        rule = rrule.rrule(
            rrule.YEARLY,
            dtstart=start,
            until=until,
            bymonthday=trigger.day_of_month,
            bymonth=trigger.month_of_year,
        )

    occurrence = rule.after(start, inc=True)
    return occurrence.date() if occurrence else None
