"""Repository for work-items generated by automations."""

import uuid
from collections.abc import Sequence
from datetime import datetime, timezone
from typing import Any

from sqlalchemy import insert, select

from task_automation.storage.base import as_utc
from task_automation.storage.models import WorkItem
from task_automation.storage.repositories.base import BaseRepository
from task_automation.storage.work_items import (
    WORK_ITEM_INITIAL_STATUS,
    work_items_table,
)


def _work_item_from_row(row: dict[str, Any]) -> WorkItem:
    data = dict(row)
    for key in (
        "inward_entry_date",
        "due_date",
        "target_date",
        "verified_at",
        "created_at",
    ):
        data[key] = as_utc(data[key])
    data["work_type"] = data["work_type"] or []
    return WorkItem.model_validate(data)


class WorkItemsRepository(BaseRepository):
    """Creation and lookup of work-items."""

    async def create(
        self,
        title: str,
        assigned_to: str,
        client_name: str | None = None,
        client_group: str | None = None,
        work_type: Sequence[str] = (),
        priority: str | None = None,
        inward_entry_date: datetime | None = None,
        description: str | None = None,
        assigned_by: str | None = None,
        due_date: datetime | None = None,
        target_date: datetime | None = None,
        billed: bool = True,
        automation_id: int | None = None,
        template_id: int | None = None,
    ) -> str:
        """
        Create one work-item in its initial status.

        Verification fields are never set here.

        Returns:
            ID of the created work-item
        """
        work_item_id = str(uuid.uuid4())
        values: dict[str, Any] = {
            "id": work_item_id,
            "title": title,
            "description": description,
            "client_name": client_name,
            "client_group": client_group,
            "work_type": list(work_type),
            "assigned_to": assigned_to,
            "assigned_by": assigned_by,
            "priority": priority,
            "status": WORK_ITEM_INITIAL_STATUS,
            "inward_entry_date": as_utc(inward_entry_date),
            "billed": billed,
            "automation_id": automation_id,
            "template_id": template_id,
            "created_at": datetime.now(timezone.utc),
        }
        # Optional dates are only written when present
        if due_date is not None:
            values["due_date"] = as_utc(due_date)
        if target_date is not None:
            values["target_date"] = as_utc(target_date)

        await self._execute_with_logging(
            "create_work_item", insert(work_items_table).values(**values)
        )
        self._logger.debug(f"Created work-item {work_item_id} for {assigned_to}")
        return work_item_id

    async def get_by_id(self, work_item_id: str) -> WorkItem | None:
        row = await self._db.fetch_one(
            select(work_items_table).where(work_items_table.c.id == work_item_id)
        )
        return _work_item_from_row(row) if row else None

    async def list_for_automation(self, automation_id: int) -> list[WorkItem]:
        rows = await self._db.fetch_all(
            select(work_items_table)
            .where(work_items_table.c.automation_id == automation_id)
            .order_by(work_items_table.c.created_at, work_items_table.c.id)
        )
        return [_work_item_from_row(row) for row in rows]

    async def list_for_template(self, template_id: int) -> list[WorkItem]:
        rows = await self._db.fetch_all(
            select(work_items_table)
            .where(work_items_table.c.template_id == template_id)
            .order_by(work_items_table.c.created_at, work_items_table.c.id)
        )
        return [_work_item_from_row(row) for row in rows]
