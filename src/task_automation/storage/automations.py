"""
Tables for recurring automations and the templates they own.
"""

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Table,
    Text,
)
from sqlalchemy import (
    Enum as SQLEnum,
)
from sqlalchemy.sql import func

from task_automation.storage.base import metadata
from task_automation.storage.models import ApprovalStatus, TriggerKind

automations_table = Table(
    "automations",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("name", String(200), nullable=False),
    Column("description", Text, nullable=True),
    Column("trigger_kind", SQLEnum(TriggerKind), nullable=False),
    # Trigger fields; only those relevant to trigger_kind are non-null
    Column("day_of_month", Integer, nullable=True),
    Column("months_mask", Integer, nullable=True),  # quarterly / half-yearly
    Column("month_of_year", Integer, nullable=True),  # yearly
    Column("specific_date", Date, nullable=True),  # date-and-time
    Column("specific_time", String(5), nullable=True),  # "HH:MM"
    Column("created_by", String(36), nullable=True),
    Column(
        "created_at",
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),  # pylint: disable=not-callable
    ),
    Column("generated_task_ids", JSON, nullable=False, default=list),
    # Coarse per-automation run markers
    Column("last_run_date", DateTime(timezone=True), nullable=True),
    Column("last_run_month", Integer, nullable=True),
    Column("last_run_year", Integer, nullable=True),
    Index("idx_automations_kind_day", "trigger_kind", "day_of_month"),
    Index("idx_automations_kind_date", "trigger_kind", "specific_date"),
)


automation_templates_table = Table(
    "automation_templates",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column(
        "automation_id",
        Integer,
        ForeignKey("automations.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    ),
    Column("position", Integer, nullable=False, server_default="0"),
    # Fields copied onto every generated work-item
    Column("title", String(255), nullable=True),
    Column("description", Text, nullable=True),
    Column("client_name", String(255), nullable=True),
    Column("client_group", String(255), nullable=True),
    Column("work_type", JSON, nullable=False, default=list),
    Column("assigned_to", JSON, nullable=True),
    Column("assigned_by", String(36), nullable=True),
    Column("priority", String(50), nullable=True),
    Column("inward_entry_date", Date, nullable=True),
    Column("inward_entry_time", String(5), nullable=True),
    Column("due_date", DateTime(timezone=True), nullable=True),
    Column("target_date", DateTime(timezone=True), nullable=True),
    Column("billed", Boolean, nullable=True),
    Column(
        "approval_status",
        SQLEnum(ApprovalStatus),
        nullable=False,
        default=ApprovalStatus.PENDING,
    ),
    # Per-template idempotency bookkeeping
    Column("last_processed_month", Integer, nullable=True),
    Column("last_processed_year", Integer, nullable=True),
    Column("last_processed_date", DateTime(timezone=True), nullable=True),
    Column("created_task_ids", JSON, nullable=False, default=list),
    Index("idx_templates_approval", "automation_id", "approval_status"),
)


def months_to_mask(months: list[int]) -> int:
    """Pack 1-indexed months into a 12 bit mask (January is bit 0)."""
    mask = 0
    for month in months:
        mask |= month_bit(month)
    return mask


def mask_to_months(mask: int | None) -> list[int]:
    if not mask:
        return []
    return [month for month in range(1, 13) if mask & month_bit(month)]


def month_bit(month: int) -> int:
    return 1 << (month - 1)
