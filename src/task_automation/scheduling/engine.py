"""
The automation engine: runs evaluation passes and administrative resets.

A pass selects candidate automations for the current moment, then handles
each one in its own transaction: re-read under lock, guard every template,
materialize the due ones, stamp bookkeeping, and remove spent one-shots.
"""

import asyncio
import logging
from zoneinfo import ZoneInfo

from sqlalchemy.ext.asyncio import AsyncEngine

from task_automation.interfaces import IdentityValidator, UUIDIdentityValidator
from task_automation.scheduling.guard import evaluate_template
from task_automation.scheduling.lifecycle import (
    finalize_automation,
    record_template_outcome,
    reset_markers,
)
from task_automation.scheduling.materializer import TaskMaterializer
from task_automation.scheduling.recurrence import (
    Candidate,
    select_candidates,
    trigger_matches,
)
from task_automation.scheduling.status import StatusReport, build_status_report
from task_automation.scheduling.types import (
    AutomationOutcome,
    EvaluationMoment,
    EvaluationResult,
    GuardDecision,
    ResetResult,
    TemplateOutcome,
)
from task_automation.storage.context import DatabaseContext
from task_automation.utils.clock import Clock, SystemClock

logger = logging.getLogger(__name__)


class AutomationEngine:
    """Evaluates automations and materializes their due templates."""

    def __init__(
        self,
        database_engine: AsyncEngine,
        clock: Clock | None = None,
        timezone: str = "UTC",
        identity_validator: IdentityValidator | None = None,
        automation_timeout: float = 60.0,
    ) -> None:
        """
        Args:
            database_engine: Engine every pass opens its transactions on
            clock: Source of "now"; the system clock by default
            timezone: Organisational IANA zone all calendar decisions use
            identity_validator: Checks assignee and assigner ids
            automation_timeout: Seconds one automation may take before its
                transaction is abandoned
        """
        self.database_engine = database_engine
        self.clock = clock or SystemClock()
        self.timezone = ZoneInfo(timezone)
        self.materializer = TaskMaterializer(
            identity_validator or UUIDIdentityValidator(), self.timezone
        )
        self.automation_timeout = automation_timeout
        self._run_lock = asyncio.Lock()

    @property
    def is_running(self) -> bool:
        return self._run_lock.locked()

    def current_moment(self) -> EvaluationMoment:
        return EvaluationMoment.from_clock(self.clock, self.timezone)

    async def run_evaluation(self, is_manual: bool = False) -> EvaluationResult:
        """
        Run one evaluation pass.

        Passes never overlap. A ticked pass that finds another in progress is
        skipped, while a manual one waits for it to finish.

        Returns:
            ``success`` is False only when the pass itself could not run;
            failures of individual automations are reported in ``outcomes``
        """
        if not is_manual and self._run_lock.locked():
            logger.info("Evaluation pass already in progress; skipping this tick")
            return EvaluationResult(success=True, skipped=True)

        async with self._run_lock:
            return await self._run_pass(is_manual)

    async def _run_pass(self, is_manual: bool) -> EvaluationResult:
        moment = self.current_moment()
        label = "Manual" if is_manual else "Scheduled"
        logger.info(f"{label} automation check starting at {moment.instant.isoformat()}")

        try:
            async with DatabaseContext(engine=self.database_engine) as db:
                selection = await select_candidates(db, moment)
        except Exception as e:
            logger.error(f"{label} automation check failed: {e}", exc_info=True)
            return EvaluationResult(success=False, error=str(e))

        result = EvaluationResult(success=True)
        for candidate in selection.candidates:
            result.outcomes.append(await self._process_candidate(candidate, moment))

        result.tasks_created = sum(o.tasks_created for o in result.outcomes)
        result.processed_count = sum(1 for o in result.outcomes if o.tasks_created)
        failed = [o for o in result.outcomes if o.error]

        logger.info(
            f"{label} automation check completed: {len(selection.candidates)} candidate(s), "
            f"{result.processed_count} produced work, {result.tasks_created} work-item(s) "
            f"created, {len(failed)} failed"
        )
        return result

    async def _process_candidate(
        self, candidate: Candidate, moment: EvaluationMoment
    ) -> AutomationOutcome:
        automation = candidate.automation
        try:
            return await asyncio.wait_for(
                self._process_automation(candidate, moment),
                timeout=self.automation_timeout,
            )
        except TimeoutError:
            error = f"Timed out after {self.automation_timeout}s"
            logger.error(
                f"Automation {automation.id} ('{automation.name}'): {error}; "
                "changes rolled back"
            )
        except Exception as e:
            error = str(e) or e.__class__.__name__
            logger.error(
                f"Error processing automation {automation.id} ('{automation.name}'): {e}",
                exc_info=True,
            )
        return AutomationOutcome(
            automation_id=automation.id,
            name=automation.name,
            trigger_kind=automation.trigger_kind,
            missed=candidate.missed,
            error=error,
        )

    async def _process_automation(
        self, candidate: Candidate, moment: EvaluationMoment
    ) -> AutomationOutcome:
        selected = candidate.automation
        async with DatabaseContext(engine=self.database_engine) as db:
            # Re-read under lock; the selection may be stale by now
            automation = await db.automations.get_by_id(selected.id, for_update=True)
            outcome = AutomationOutcome(
                automation_id=selected.id,
                name=selected.name,
                trigger_kind=selected.trigger_kind,
                missed=candidate.missed,
            )
            if automation is None or not trigger_matches(automation.trigger, moment):
                logger.info(
                    f"Automation {selected.id} changed since selection; skipping"
                )
                return outcome

            if candidate.missed:
                logger.info(
                    f"Catching up missed automation {automation.id} ('{automation.name}') "
                    f"scheduled for {automation.trigger.specific_date}"  # type: ignore[union-attr]
                )

            kind = automation.trigger_kind
            for template in automation.templates:
                decision = evaluate_template(template, kind, moment)
                if decision is not GuardDecision.DUE:
                    outcome.templates.append(TemplateOutcome(template.id, decision))
                    continue

                template_outcome = await self.materializer.materialize(
                    db, automation, template, moment
                )
                await record_template_outcome(db, template_outcome, moment)
                outcome.templates.append(template_outcome)

            await finalize_automation(db, automation, outcome, moment)
            return outcome

    async def reset_recurrence_markers(
        self, automation_id: int | None = None, include_templates: bool = False
    ) -> ResetResult:
        """
        Clear recurrence markers on one automation, or on all day-of-month ones.

        Args:
            automation_id: Target automation; None means every day-of-month automation
            include_templates: Also clear per-template period bookkeeping
        """
        try:
            async with DatabaseContext(engine=self.database_engine) as db:
                modified, templates_reset = await reset_markers(
                    db, automation_id, include_templates
                )
        except Exception as e:
            logger.error(f"Failed to reset recurrence markers: {e}", exc_info=True)
            return ResetResult(success=False, error=str(e))
        return ResetResult(
            success=True, modified_count=modified, templates_reset=templates_reset
        )

    async def force_run(self, automation_id: int) -> EvaluationResult | None:
        """
        Clear all bookkeeping of one automation, then run a manual pass.

        Returns:
            The pass result, or None if the automation does not exist
        """
        async with DatabaseContext(engine=self.database_engine) as db:
            if await db.automations.get_by_id(automation_id) is None:
                return None

        reset = await self.reset_recurrence_markers(
            automation_id, include_templates=True
        )
        if not reset.success:
            return EvaluationResult(success=False, error=reset.error)
        return await self.run_evaluation(is_manual=True)

    async def status_report(self) -> StatusReport:
        moment = self.current_moment()
        async with DatabaseContext(engine=self.database_engine) as db:
            automations = await db.automations.list_all()
        return build_status_report(automations, moment)
