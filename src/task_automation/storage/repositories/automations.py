"""Repository for recurring automations and their templates."""

from collections.abc import Sequence
from datetime import date, datetime, timezone
from typing import Any

from pydantic import ValidationError
from sqlalchemy import and_, delete, exists, func, insert, or_, select, update
from sqlalchemy.sql import Select

from task_automation.storage.automations import (
    automation_templates_table,
    automations_table,
    mask_to_months,
    month_bit,
    months_to_mask,
)
from task_automation.storage.base import as_utc
from task_automation.storage.models import (
    DEFAULT_HALF_YEARLY_MONTHS,
    DEFAULT_QUARTERLY_MONTHS,
    ApprovalStatus,
    Automation,
    DateAndTimeTrigger,
    DayOfMonthTrigger,
    HalfYearlyTrigger,
    QuarterlyTrigger,
    Template,
    TemplateFields,
    Trigger,
    TriggerKind,
    YearlyTrigger,
    missing_required_fields,
    rotated_period_months,
)
from task_automation.storage.repositories.base import BaseRepository

# Sentinel to distinguish "not provided" from "explicitly None"
_UNSET: Any = object()

_automations = automations_table.c
_templates = automation_templates_table.c


def trigger_to_columns(trigger: Trigger) -> dict[str, Any]:
    """Column values for a trigger.

    Every trigger column is written, so switching kind clears the fields of
    the previous kind.
    """
    columns: dict[str, Any] = {
        "trigger_kind": trigger.trigger_kind,
        "day_of_month": None,
        "months_mask": None,
        "month_of_year": None,
        "specific_date": None,
        "specific_time": None,
    }
    if isinstance(trigger, DateAndTimeTrigger):
        columns["specific_date"] = trigger.specific_date
        columns["specific_time"] = trigger.specific_time
        return columns

    columns["day_of_month"] = trigger.day_of_month
    if isinstance(trigger, QuarterlyTrigger | HalfYearlyTrigger):
        columns["months_mask"] = months_to_mask(trigger.months)
    elif isinstance(trigger, YearlyTrigger):
        columns["month_of_year"] = trigger.month_of_year
    return columns


def trigger_from_row(row: dict[str, Any]) -> Trigger:
    kind = TriggerKind(row["trigger_kind"])
    if kind is TriggerKind.DAY_OF_MONTH:
        return DayOfMonthTrigger(day_of_month=row["day_of_month"])
    if kind is TriggerKind.QUARTERLY:
        return QuarterlyTrigger(
            day_of_month=row["day_of_month"],
            months=mask_to_months(row["months_mask"]) or DEFAULT_QUARTERLY_MONTHS,
        )
    if kind is TriggerKind.HALF_YEARLY:
        return HalfYearlyTrigger(
            day_of_month=row["day_of_month"],
            months=mask_to_months(row["months_mask"]) or DEFAULT_HALF_YEARLY_MONTHS,
        )
    if kind is TriggerKind.YEARLY:
        return YearlyTrigger(
            day_of_month=row["day_of_month"], month_of_year=row["month_of_year"]
        )
    return DateAndTimeTrigger(
        specific_date=row["specific_date"],
        specific_time=row["specific_time"] or "00:00",
    )


def _template_from_row(row: dict[str, Any]) -> Template:
    data = dict(row)
    for key in ("due_date", "target_date", "last_processed_date"):
        data[key] = as_utc(data[key])
    data["work_type"] = data["work_type"] or []
    data["created_task_ids"] = data["created_task_ids"] or []
    return Template.model_validate(data)


class AutomationsRepository(BaseRepository):
    """Repository for automations, their templates and scheduling bookkeeping."""

    # --- Reads -----------------------------------------------------------

    async def get_by_id(
        self, automation_id: int, for_update: bool = False
    ) -> Automation | None:
        """
        Load one automation with its templates.

        Args:
            automation_id: Automation ID
            for_update: Lock the automation row until the transaction ends
                (ignored by SQLite, whose writers are already serialised)

        Returns:
            The automation, or None if it does not exist
        """
        stmt = select(automations_table).where(_automations.id == automation_id)
        if for_update:
            stmt = stmt.with_for_update()
        automations = await self._fetch_automations(stmt)
        return automations[0] if automations else None

    async def list_all(self) -> list[Automation]:
        stmt = select(automations_table).order_by(_automations.id)
        return await self._fetch_automations(stmt)

    async def find_recurring_candidates(
        self, kind: TriggerKind, day_of_month: int, month: int
    ) -> list[Automation]:
        """
        Find recurring automations of one kind that fire on the given day.

        Only automations owning at least one approved template are returned.

        Args:
            kind: A recurring trigger kind
            day_of_month: Today's day of the month (1-31)
            month: Today's month (1-12)
        """
        if not kind.is_recurring:
            raise ValueError(f"{kind.value} is not a recurring trigger kind")

        conditions = [
            _automations.trigger_kind == kind,
            _automations.day_of_month == day_of_month,
            self._has_approved_template(),
        ]
        if kind in {TriggerKind.QUARTERLY, TriggerKind.HALF_YEARLY}:
            conditions.append(_automations.months_mask.bitwise_and(month_bit(month)) != 0)
        elif kind is TriggerKind.YEARLY:
            conditions.append(_automations.month_of_year == month)

        stmt = select(automations_table).where(and_(*conditions))
        return await self._fetch_automations(stmt.order_by(_automations.id))

    async def find_date_time_due(
        self, today: date, time_of_day: str
    ) -> list[Automation]:
        """One-shot automations dated today whose time ("HH:MM") has passed."""
        stmt = select(automations_table).where(
            _automations.trigger_kind == TriggerKind.DATE_AND_TIME,
            _automations.specific_date == today,
            _automations.specific_time <= time_of_day,
            self._has_approved_template(),
        )
        return await self._fetch_automations(stmt.order_by(_automations.id))

    async def find_date_time_missed(self, today: date) -> list[Automation]:
        """One-shot automations dated before today that are still present."""
        stmt = select(automations_table).where(
            _automations.trigger_kind == TriggerKind.DATE_AND_TIME,
            _automations.specific_date < today,
            self._has_approved_template(),
        )
        return await self._fetch_automations(stmt.order_by(_automations.id))

    async def count_day_of_month(self, day_of_month: int) -> int:
        """Count day-of-month automations for the given day, approved or not."""
        stmt = (
            select(func.count())
            .select_from(automations_table)
            .where(
                _automations.trigger_kind == TriggerKind.DAY_OF_MONTH,
                _automations.day_of_month == day_of_month,
            )
        )
        result = await self._execute_with_logging("count_day_of_month", stmt)
        return int(result.scalar_one())

    # --- Authoring -------------------------------------------------------

    async def create(
        self,
        name: str,
        trigger: Trigger,
        created_by: str | None = None,
        description: str | None = None,
        templates: Sequence[TemplateFields] = (),
        validate_templates: bool = True,
    ) -> int:
        """
        Create an automation, optionally with its initial templates.

        Returns:
            ID of the created automation

        Raises:
            ValueError: If a template is missing required fields
        """
        stmt = (
            insert(automations_table)
            .values(
                name=name,
                description=description,
                created_by=created_by,
                created_at=datetime.now(timezone.utc),
                generated_task_ids=[],
                **trigger_to_columns(trigger),
            )
            .returning(_automations.id)
        )
        result = await self._execute_with_logging("create_automation", stmt)
        automation_id = result.scalar_one()

        for fields in templates:
            await self.add_template(automation_id, fields, validate=validate_templates)

        self._logger.info(
            f"Created {trigger.kind} automation '{name}' (ID: {automation_id}) "
            f"with {len(templates)} template(s)"
        )
        return automation_id

    async def add_template(
        self, automation_id: int, fields: TemplateFields, validate: bool = True
    ) -> int:
        """
        Append a template to an automation.

        Raises:
            ValueError: If the automation does not exist, or ``validate`` is
                set and required fields are missing
        """
        if validate:
            missing = missing_required_fields(fields)
            if missing:
                raise ValueError(
                    f"Template is missing required fields: {', '.join(missing)}"
                )

        owner = await self._db.fetch_one(
            select(_automations.id).where(_automations.id == automation_id)
        )
        if owner is None:
            raise ValueError(f"Automation {automation_id} not found")

        position_result = await self._execute_with_logging(
            "count_templates",
            select(func.count())
            .select_from(automation_templates_table)
            .where(_templates.automation_id == automation_id),
        )
        position = int(position_result.scalar_one())

        values = fields.model_dump()
        values["due_date"] = as_utc(fields.due_date)
        values["target_date"] = as_utc(fields.target_date)
        stmt = (
            insert(automation_templates_table)
            .values(
                automation_id=automation_id,
                position=position,
                created_task_ids=[],
                **values,
            )
            .returning(_templates.id)
        )
        result = await self._execute_with_logging("add_template", stmt)
        return result.scalar_one()

    async def update(
        self,
        automation_id: int,
        name: str = _UNSET,
        description: str | None = _UNSET,
        trigger: Trigger = _UNSET,
    ) -> bool:
        """
        Update an automation's descriptive fields and/or trigger.

        Returns:
            True if updated, False if not found
        """
        values: dict[str, Any] = {}
        if name is not _UNSET:
            values["name"] = name
        if description is not _UNSET:
            values["description"] = description
        if trigger is not _UNSET:
            values.update(trigger_to_columns(trigger))
        if not values:
            return await self.get_by_id(automation_id) is not None

        stmt = (
            update(automations_table)
            .where(_automations.id == automation_id)
            .values(**values)
        )
        result = await self._execute_with_logging("update_automation", stmt)
        return result.rowcount > 0  # type: ignore[attr-defined]

    async def set_template_approval(
        self, template_id: int, status: ApprovalStatus
    ) -> bool:
        stmt = (
            update(automation_templates_table)
            .where(_templates.id == template_id)
            .values(approval_status=status)
        )
        result = await self._execute_with_logging("set_template_approval", stmt)
        return result.rowcount > 0  # type: ignore[attr-defined]

    async def delete(self, automation_id: int) -> bool:
        """Delete an automation and its templates. Returns False if not found."""
        await self._execute_with_logging(
            "delete_templates",
            delete(automation_templates_table).where(
                _templates.automation_id == automation_id
            ),
        )
        result = await self._execute_with_logging(
            "delete_automation",
            delete(automations_table).where(_automations.id == automation_id),
        )
        deleted = result.rowcount > 0  # type: ignore[attr-defined]
        if deleted:
            self._logger.info(f"Deleted automation {automation_id}")
        return deleted

    # --- Bookkeeping -----------------------------------------------------

    async def stamp_template(
        self,
        template_id: int,
        month: int,
        year: int,
        processed_at: datetime,
        new_task_ids: Sequence[str],
    ) -> None:
        """Mark a template processed for a period and record its new work-items."""
        row = await self._db.fetch_one(
            select(_templates.created_task_ids).where(_templates.id == template_id)
        )
        if row is None:
            raise ValueError(f"Template {template_id} not found")

        created_task_ids = [*(row["created_task_ids"] or []), *new_task_ids]
        stmt = (
            update(automation_templates_table)
            .where(_templates.id == template_id)
            .values(
                last_processed_month=month,
                last_processed_year=year,
                last_processed_date=as_utc(processed_at),
                created_task_ids=created_task_ids,
            )
        )
        await self._execute_with_logging("stamp_template", stmt)

    async def stamp_run_markers(
        self, automation_id: int, run_at: datetime, month: int, year: int
    ) -> None:
        stmt = (
            update(automations_table)
            .where(_automations.id == automation_id)
            .values(
                last_run_date=as_utc(run_at),
                last_run_month=month,
                last_run_year=year,
            )
        )
        await self._execute_with_logging("stamp_run_markers", stmt)

    async def append_generated_task_ids(
        self, automation_id: int, task_ids: Sequence[str]
    ) -> None:
        if not task_ids:
            return
        row = await self._db.fetch_one(
            select(_automations.generated_task_ids).where(
                _automations.id == automation_id
            )
        )
        if row is None:
            raise ValueError(f"Automation {automation_id} not found")

        stmt = (
            update(automations_table)
            .where(_automations.id == automation_id)
            .values(
                generated_task_ids=[*(row["generated_task_ids"] or []), *task_ids]
            )
        )
        await self._execute_with_logging("append_generated_task_ids", stmt)

    async def reset_run_markers(self, automation_id: int | None = None) -> int:
        """
        Clear the automation-level run markers.

        Args:
            automation_id: Reset only this automation; when None, reset every
                day-of-month automation

        Returns:
            Number of automations that had markers and were cleared
        """
        has_markers = or_(
            _automations.last_run_date.is_not(None),
            _automations.last_run_month.is_not(None),
            _automations.last_run_year.is_not(None),
        )
        stmt = (
            update(automations_table)
            .where(self._reset_target(automation_id), has_markers)
            .values(last_run_date=None, last_run_month=None, last_run_year=None)
        )
        result = await self._execute_with_logging("reset_run_markers", stmt)
        return result.rowcount  # type: ignore[attr-defined]

    async def reset_template_markers(self, automation_id: int | None = None) -> int:
        """Clear per-template period bookkeeping for the same targets as
        :meth:`reset_run_markers`. Returns the number of templates cleared."""
        owners = select(_automations.id).where(self._reset_target(automation_id))
        has_markers = or_(
            _templates.last_processed_date.is_not(None),
            _templates.last_processed_month.is_not(None),
            _templates.last_processed_year.is_not(None),
        )
        stmt = (
            update(automation_templates_table)
            .where(_templates.automation_id.in_(owners), has_markers)
            .values(
                last_processed_date=None,
                last_processed_month=None,
                last_processed_year=None,
            )
        )
        result = await self._execute_with_logging("reset_template_markers", stmt)
        return result.rowcount  # type: ignore[attr-defined]

    async def migrate_legacy_period_months(self) -> int:
        """
        Convert quarterly/half-yearly rows that only carry ``month_of_year``.

        Older rows stored a single starting month; they become the standard
        cycle (1/4/7/10 or 1/7) and ``month_of_year`` is cleared. A starting
        month outside that cycle is not carried over.

        Returns:
            Number of automations migrated
        """
        rows = await self._db.fetch_all(
            select(
                _automations.id, _automations.trigger_kind, _automations.month_of_year
            ).where(
                _automations.trigger_kind.in_(
                    [TriggerKind.QUARTERLY, TriggerKind.HALF_YEARLY]
                ),
                _automations.months_mask.is_(None),
            )
        )
        for row in rows:
            months = rotated_period_months(
                TriggerKind(row["trigger_kind"]), row["month_of_year"]
            )
            await self._execute_with_logging(
                "migrate_legacy_period_months",
                update(automations_table)
                .where(_automations.id == row["id"])
                .values(months_mask=months_to_mask(months), month_of_year=None),
            )
            self._logger.info(
                f"Migrated automation {row['id']} to period months {months}"
            )
        return len(rows)

    # --- Helpers ---------------------------------------------------------

    @staticmethod
    def _has_approved_template() -> Any:  # noqa: ANN401
        return exists().where(
            _templates.automation_id == _automations.id,
            _templates.approval_status == ApprovalStatus.COMPLETED,
        )

    @staticmethod
    def _reset_target(automation_id: int | None) -> Any:  # noqa: ANN401
        if automation_id is not None:
            return _automations.id == automation_id
        return _automations.trigger_kind == TriggerKind.DAY_OF_MONTH

    async def _fetch_automations(self, stmt: Select) -> list[Automation]:
        """Build automations from rows, skipping rows that fail validation."""
        rows = await self._db.fetch_all(stmt)
        if not rows:
            return []

        templates_by_owner: dict[int, list[Template]] = {row["id"]: [] for row in rows}
        template_rows = await self._db.fetch_all(
            select(automation_templates_table)
            .where(_templates.automation_id.in_(list(templates_by_owner)))
            .order_by(_templates.automation_id, _templates.position, _templates.id)
        )
        for template_row in template_rows:
            try:
                template = _template_from_row(template_row)
            except ValidationError as e:
                self._logger.error(
                    f"Skipping malformed template {template_row['id']} of automation "
                    f"{template_row['automation_id']}: {e}"
                )
                continue
            templates_by_owner[template_row["automation_id"]].append(template)

        automations = []
        for row in rows:
            try:
                automations.append(
                    Automation(
                        id=row["id"],
                        name=row["name"],
                        description=row["description"],
                        trigger=trigger_from_row(row),
                        created_by=row["created_by"],
                        created_at=as_utc(row["created_at"]),
                        templates=templates_by_owner[row["id"]],
                        generated_task_ids=row["generated_task_ids"] or [],
                        last_run_date=as_utc(row["last_run_date"]),
                        last_run_month=row["last_run_month"],
                        last_run_year=row["last_run_year"],
                    )
                )
            except ValueError as e:
                # pydantic's ValidationError is a ValueError
                self._logger.error(f"Skipping malformed automation {row['id']}: {e}")
        return automations
