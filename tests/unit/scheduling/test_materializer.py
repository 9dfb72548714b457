"""Tests for assignee handling and inward-entry calculation in the materializer."""

from datetime import date, datetime, timezone
from zoneinfo import ZoneInfo

import pytest

from task_automation.interfaces import UUIDIdentityValidator
from task_automation.scheduling.materializer import (
    TaskMaterializer,
    combine_inward_entry,
    normalize_assignees,
)
from task_automation.scheduling.types import EvaluationMoment
from task_automation.storage.models import Automation, DayOfMonthTrigger
from tests.factories.automations import ALICE, BOB, MANAGER, make_template

UTC = ZoneInfo("UTC")
MOMENT = EvaluationMoment(datetime(2024, 3, 15, 9, 30, tzinfo=UTC))


@pytest.fixture
def materializer() -> TaskMaterializer:
    return TaskMaterializer(UUIDIdentityValidator(), UTC)


def make_automation(created_by: str | None = MANAGER) -> Automation:
    return Automation(
        id=1,
        name="Payroll",
        trigger=DayOfMonthTrigger(day_of_month=15),
        created_by=created_by,
        created_at=datetime(2024, 1, 1, tzinfo=timezone.utc),
    )


class TestNormalizeAssignees:
    def test_none(self) -> None:
        assert normalize_assignees(None) == []

    def test_single_string(self) -> None:
        assert normalize_assignees(ALICE) == [ALICE]

    def test_blanks_are_dropped(self) -> None:
        assert normalize_assignees([ALICE, None, "", "   ", BOB]) == [ALICE, BOB]


class TestPartitionAssignees:
    def test_splits_valid_and_invalid_in_order(
        self, materializer: TaskMaterializer
    ) -> None:
        valid, invalid = materializer.partition_assignees(
            [ALICE, "bob@example.com", None, BOB, "12345"]
        )
        assert valid == [ALICE, BOB]
        assert invalid == ["bob@example.com", "12345"]


class TestResolveAssignedBy:
    def test_template_assigner_wins(self, materializer: TaskMaterializer) -> None:
        template = make_template(assigned_by=BOB)
        assert materializer.resolve_assigned_by(template, make_automation()) == BOB

    def test_falls_back_to_creator(self, materializer: TaskMaterializer) -> None:
        template = make_template(assigned_by="not-an-id")
        assert materializer.resolve_assigned_by(template, make_automation()) == MANAGER

    def test_absent_when_nothing_valid(self, materializer: TaskMaterializer) -> None:
        template = make_template(assigned_by=None)
        automation = make_automation(created_by="system")
        assert materializer.resolve_assigned_by(template, automation) is None


class TestCombineInwardEntry:
    def test_date_and_time_in_org_zone(self) -> None:
        sydney = ZoneInfo("Australia/Sydney")
        template = make_template(
            inward_entry_date=date(2024, 1, 1), inward_entry_time="09:00"
        )
        result = combine_inward_entry(template, MOMENT, sydney)
        assert result == datetime(2024, 1, 1, 9, 0, tzinfo=sydney)
        assert result.astimezone(timezone.utc) == datetime(
            2023, 12, 31, 22, 0, tzinfo=timezone.utc
        )

    def test_missing_time_uses_evaluation_time_of_day(self) -> None:
        template = make_template(
            inward_entry_date=date(2024, 1, 1), inward_entry_time=None
        )
        assert combine_inward_entry(template, MOMENT, UTC) == datetime(
            2024, 1, 1, 9, 30, tzinfo=UTC
        )

    def test_missing_date_uses_evaluation_instant(self) -> None:
        template = make_template(inward_entry_date=None)
        assert combine_inward_entry(template, MOMENT, UTC) == MOMENT.instant


class TestUUIDIdentityValidator:
    def test_accepts_canonical_uuid(self) -> None:
        assert UUIDIdentityValidator().is_valid(ALICE)

    @pytest.mark.parametrize(
        "reference",
        [ALICE.replace("-", ""), "{" + ALICE + "}", "alice", "", None, 42],
    )
    def test_rejects_non_canonical_values(self, reference: object) -> None:
        assert not UUIDIdentityValidator().is_valid(reference)
