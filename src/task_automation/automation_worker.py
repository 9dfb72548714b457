"""Fixed-interval loop that triggers automation evaluation passes."""

import asyncio
import logging

from task_automation.scheduling.engine import AutomationEngine

logger = logging.getLogger(__name__)

DEFAULT_TICK_INTERVAL_SECONDS = 300.0


class AutomationWorker:
    """Runs a ticked evaluation pass every ``interval_seconds`` until shut down.

    Ticked passes are fire-and-forget: their results are only logged.
    """

    def __init__(
        self,
        automation_engine: AutomationEngine,
        shutdown_event: asyncio.Event,
        interval_seconds: float = DEFAULT_TICK_INTERVAL_SECONDS,
        run_on_startup: bool = True,
    ) -> None:
        self.automation_engine = automation_engine
        self.shutdown_event = shutdown_event
        self.interval_seconds = interval_seconds
        self.run_on_startup = run_on_startup
        self.ticks = 0

    async def tick(self) -> None:
        """Run one ticked pass, logging rather than raising on failure."""
        self.ticks += 1
        result = await self.automation_engine.run_evaluation(is_manual=False)
        if result.skipped:
            return
        if not result.success:
            logger.error(f"Scheduled automation check failed: {result.error}")
            return
        for outcome in result.outcomes:
            if outcome.error:
                logger.warning(
                    f"Automation {outcome.automation_id} ('{outcome.name}') failed: "
                    f"{outcome.error}"
                )

    async def _wait_for_next_tick(self) -> None:
        try:
            await asyncio.wait_for(
                self.shutdown_event.wait(), timeout=self.interval_seconds
            )
        except TimeoutError:
            pass

    async def run(self) -> None:
        logger.info(
            f"Automation worker started; checking every {self.interval_seconds:.0f}s."
        )
        if not self.run_on_startup:
            await self._wait_for_next_tick()

        while not self.shutdown_event.is_set():
            try:
                await self.tick()
                await self._wait_for_next_tick()
            except asyncio.CancelledError:
                logger.info("Automation worker received cancellation signal.")
                break
            except Exception as e:
                logger.error(
                    f"Automation worker encountered an unexpected error: {e}",
                    exc_info=True,
                )
                await self._wait_for_next_tick()

        logger.info("Automation worker stopped.")
