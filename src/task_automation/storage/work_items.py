"""
Table for generated work-items.

Work-items are owned by the wider work-management system; this table is the
store the scheduler writes to when it runs standalone.
"""

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    Index,
    Integer,
    String,
    Table,
    Text,
)

from task_automation.storage.base import metadata

WORK_ITEM_INITIAL_STATUS = "yet_to_start"

work_items_table = Table(
    "work_items",
    metadata,
    Column("id", String(36), primary_key=True),  # UUID
    Column("title", String(255), nullable=False),
    Column("description", Text, nullable=True),
    Column("client_name", String(255), nullable=True),
    Column("client_group", String(255), nullable=True),
    Column("work_type", JSON, nullable=False, default=list),
    Column("assigned_to", String(36), nullable=False, index=True),
    Column("assigned_by", String(36), nullable=True),
    Column("priority", String(50), nullable=True),
    Column(
        "status",
        String(30),
        nullable=False,
        server_default=WORK_ITEM_INITIAL_STATUS,
    ),
    Column("inward_entry_date", DateTime(timezone=True), nullable=True),
    Column("due_date", DateTime(timezone=True), nullable=True),
    Column("target_date", DateTime(timezone=True), nullable=True),
    Column("billed", Boolean, nullable=False, server_default="1"),
    # Verification is assigned after creation, never by the scheduler
    Column("verified_by", String(36), nullable=True),
    Column("verified_at", DateTime(timezone=True), nullable=True),
    Column("verification_status", String(30), nullable=True),
    # Provenance; no foreign key because one-shot automations are deleted
    Column("automation_id", Integer, nullable=True),
    Column("template_id", Integer, nullable=True),
    Column("created_at", DateTime(timezone=True), nullable=False),
    Index("idx_work_items_provenance", "automation_id", "template_id"),
)
