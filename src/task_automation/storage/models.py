"""Pydantic models for storage layer data structures."""

from datetime import date, datetime
from enum import Enum
from typing import Annotated, Literal

from pydantic import AfterValidator, BaseModel, ConfigDict, Field

DEFAULT_QUARTERLY_MONTHS = [1, 4, 7, 10]
DEFAULT_HALF_YEARLY_MONTHS = [1, 7]

# "HH:MM", 24 hour clock
TIME_OF_DAY_PATTERN = r"^([01]\d|2[0-3]):[0-5]\d$"


class TriggerKind(str, Enum):
    """The five ways an automation can be scheduled."""

    DAY_OF_MONTH = "day_of_month"
    QUARTERLY = "quarterly"
    HALF_YEARLY = "half_yearly"
    YEARLY = "yearly"
    DATE_AND_TIME = "date_and_time"

    @property
    def is_recurring(self) -> bool:
        return self is not TriggerKind.DATE_AND_TIME


class ApprovalStatus(str, Enum):
    PENDING = "pending"
    COMPLETED = "completed"


def _validate_months(months: list[int]) -> list[int]:
    if not months:
        raise ValueError("At least one month is required")
    for month in months:
        if not 1 <= month <= 12:
            raise ValueError(f"Month {month} is out of range 1-12")
    return sorted(set(months))


MonthList = Annotated[list[int], AfterValidator(_validate_months)]


class _TriggerBase(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    @property
    def trigger_kind(self) -> TriggerKind:
        return TriggerKind(self.kind)  # type: ignore[attr-defined]


class DayOfMonthTrigger(_TriggerBase):
    """Fires every month on ``day_of_month``."""

    kind: Literal["day_of_month"] = "day_of_month"
    day_of_month: int = Field(ge=1, le=31)


class QuarterlyTrigger(_TriggerBase):
    """Fires on ``day_of_month`` in each of ``months``."""

    kind: Literal["quarterly"] = "quarterly"
    day_of_month: int = Field(ge=1, le=31)
    months: MonthList = Field(default_factory=lambda: list(DEFAULT_QUARTERLY_MONTHS))


class HalfYearlyTrigger(_TriggerBase):
    """Fires on ``day_of_month`` in each of ``months``."""

    kind: Literal["half_yearly"] = "half_yearly"
    day_of_month: int = Field(ge=1, le=31)
    months: MonthList = Field(
        default_factory=lambda: list(DEFAULT_HALF_YEARLY_MONTHS)
    )


class YearlyTrigger(_TriggerBase):
    kind: Literal["yearly"] = "yearly"
    day_of_month: int = Field(ge=1, le=31)
    month_of_year: int = Field(ge=1, le=12)


class DateAndTimeTrigger(_TriggerBase):
    """One-shot trigger. The automation is deleted once it has produced work."""

    kind: Literal["date_and_time"] = "date_and_time"
    specific_date: date
    specific_time: str = Field(default="00:00", pattern=TIME_OF_DAY_PATTERN)


Trigger = Annotated[
    DayOfMonthTrigger
    | QuarterlyTrigger
    | HalfYearlyTrigger
    | YearlyTrigger
    | DateAndTimeTrigger,
    Field(discriminator="kind"),
]


class TemplateFields(BaseModel):
    """The authorable part of a template: the fields copied onto work-items."""

    model_config = ConfigDict(frozen=True)

    title: str | None = None
    description: str | None = None
    client_name: str | None = None
    client_group: str | None = None
    work_type: list[str] = Field(default_factory=list)
    # Raw as authored; may be a single id and may contain blanks
    assigned_to: list[str | None] | str | None = None
    assigned_by: str | None = None
    priority: str | None = None
    inward_entry_date: date | None = None
    inward_entry_time: str | None = Field(default=None, pattern=TIME_OF_DAY_PATTERN)
    due_date: datetime | None = None
    target_date: datetime | None = None
    billed: bool | None = None
    approval_status: ApprovalStatus = ApprovalStatus.PENDING


REQUIRED_TEMPLATE_FIELDS = (
    "title",
    "client_name",
    "client_group",
    "work_type",
    "assigned_to",
    "priority",
    "inward_entry_date",
)


def missing_required_fields(fields: TemplateFields) -> list[str]:
    """Names of required template fields that are absent, blank or empty."""
    missing = []
    for name in REQUIRED_TEMPLATE_FIELDS:
        value = getattr(fields, name)
        if value is None:
            missing.append(name)
        elif isinstance(value, str) and not value.strip():
            missing.append(name)
        elif isinstance(value, list) and not value:
            missing.append(name)
    return missing


def rotated_period_months(kind: TriggerKind, start_month: int | None) -> list[int]:
    """
    Months of a quarterly or half-yearly cycle that starts at ``start_month``.

    Only a month from the standard cycle (1/4/7/10 or 1/7) starts a rotation;
    any other value falls back to the standard cycle.
    """
    if kind is TriggerKind.QUARTERLY:
        step, count, default = 3, 4, DEFAULT_QUARTERLY_MONTHS
    elif kind is TriggerKind.HALF_YEARLY:
        step, count, default = 6, 2, DEFAULT_HALF_YEARLY_MONTHS
    else:
        raise ValueError(f"{kind.value} automations have no period months")
    if start_month not in default:
        return list(default)
    return [(start_month - 1 + step * i) % 12 + 1 for i in range(count)]


class Template(TemplateFields):
    """A stored template together with its scheduling bookkeeping."""

    id: int
    automation_id: int
    position: int = 0
    last_processed_month: int | None = None
    last_processed_year: int | None = None
    last_processed_date: datetime | None = None
    created_task_ids: list[str] = Field(default_factory=list)


class Automation(BaseModel):
    """An automation with its trigger and ordered templates."""

    model_config = ConfigDict(frozen=True)

    id: int
    name: str
    description: str | None = None
    trigger: Trigger
    created_by: str | None = None
    created_at: datetime
    templates: list[Template] = Field(default_factory=list)
    generated_task_ids: list[str] = Field(default_factory=list)
    last_run_date: datetime | None = None
    last_run_month: int | None = None
    last_run_year: int | None = None

    @property
    def trigger_kind(self) -> TriggerKind:
        return self.trigger.trigger_kind

    @property
    def approved_templates(self) -> list[Template]:
        return [
            t for t in self.templates if t.approval_status == ApprovalStatus.COMPLETED
        ]


class WorkItem(BaseModel):
    """A work-item as stored by the default work-item store."""

    model_config = ConfigDict(frozen=True)

    id: str
    title: str
    description: str | None = None
    client_name: str | None = None
    client_group: str | None = None
    work_type: list[str] = Field(default_factory=list)
    assigned_to: str
    assigned_by: str | None = None
    priority: str | None = None
    status: str
    inward_entry_date: datetime | None = None
    due_date: datetime | None = None
    target_date: datetime | None = None
    billed: bool = True
    verified_by: str | None = None
    verified_at: datetime | None = None
    verification_status: str | None = None
    automation_id: int | None = None
    template_id: int | None = None
    created_at: datetime
