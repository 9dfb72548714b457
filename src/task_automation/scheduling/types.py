"""Value types shared by the scheduling components."""

from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from zoneinfo import ZoneInfo

from task_automation.storage.models import TriggerKind
from task_automation.utils.clock import Clock, local_now


@dataclass(frozen=True)
class EvaluationMoment:
    """The instant an evaluation pass runs, in the organisational time zone.

    Every calendar decision in a pass (today, this month, this year, the time
    of day) is read from one moment so that a pass straddling midnight stays
    consistent.
    """

    instant: datetime

    @classmethod
    def from_clock(cls, clock: Clock, tz: ZoneInfo) -> "EvaluationMoment":
        return cls(instant=local_now(clock, tz))

    @property
    def today(self) -> date:
        return self.instant.date()

    @property
    def day(self) -> int:
        return self.instant.day

    @property
    def month(self) -> int:
        return self.instant.month

    @property
    def year(self) -> int:
        return self.instant.year

    @property
    def time_of_day(self) -> str:
        """Current wall-clock time as "HH:MM"."""
        return self.instant.strftime("%H:%M")


class GuardDecision(str, Enum):
    """Why a template was, or was not, materialized."""

    DUE = "due"
    INCOMPLETE = "incomplete"
    NOT_APPROVED = "not_approved"
    ALREADY_PROCESSED = "already_processed"


@dataclass
class TemplateOutcome:
    template_id: int
    decision: GuardDecision
    created_task_ids: list[str] = field(default_factory=list)
    invalid_assignees: list[str] = field(default_factory=list)
    failed_assignees: list[str] = field(default_factory=list)
    error: str | None = None

    @property
    def attempted(self) -> bool:
        return self.decision is GuardDecision.DUE

    @property
    def success_count(self) -> int:
        return len(self.created_task_ids)


@dataclass
class AutomationOutcome:
    automation_id: int
    name: str
    trigger_kind: TriggerKind
    missed: bool = False
    templates: list[TemplateOutcome] = field(default_factory=list)
    markers_stamped: bool = False
    deleted: bool = False
    error: str | None = None

    @property
    def tasks_created(self) -> int:
        return sum(t.success_count for t in self.templates)

    @property
    def attempted(self) -> bool:
        return any(t.attempted for t in self.templates)


@dataclass
class EvaluationResult:
    success: bool
    processed_count: int = 0
    tasks_created: int = 0
    outcomes: list[AutomationOutcome] = field(default_factory=list)
    skipped: bool = False
    error: str | None = None


@dataclass
class ResetResult:
    success: bool
    modified_count: int = 0
    templates_reset: int = 0
    error: str | None = None
