"""
Wires the scheduler together: database, engine, periodic worker, web server.
"""

import asyncio
import logging

import uvicorn
from sqlalchemy.ext.asyncio import AsyncEngine

from task_automation.automation_worker import AutomationWorker
from task_automation.config_models import AppConfig
from task_automation.scheduling.engine import AutomationEngine
from task_automation.storage import create_engine_with_sqlite_optimizations, init_db
from task_automation.utils.clock import Clock
from task_automation.web.app_creator import app as fastapi_app

logger = logging.getLogger(__name__)


class AutomationService:
    """Owns the long-running parts of the scheduler and their shutdown."""

    def __init__(
        self,
        config: AppConfig,
        database_engine: AsyncEngine | None = None,
        clock: Clock | None = None,
    ) -> None:
        self.config = config
        self.shutdown_event = asyncio.Event()
        self.database_engine = database_engine
        self.clock = clock
        self.automation_engine: AutomationEngine | None = None
        self.automation_worker: AutomationWorker | None = None
        self.worker_task: asyncio.Task | None = None
        self.uvicorn_server_task: asyncio.Task | None = None
        self._is_shutdown_complete = False

    async def setup_dependencies(self) -> None:
        """Create the engine, initialise the schema and publish shared state."""
        if self.database_engine is None:
            self.database_engine = create_engine_with_sqlite_optimizations(
                self.config.database_url
            )
        await init_db(self.database_engine)

        self.automation_engine = AutomationEngine(
            self.database_engine,
            clock=self.clock,
            timezone=self.config.timezone,
            automation_timeout=self.config.scheduler.automation_timeout_seconds,
        )
        fastapi_app.state.config = self.config
        fastapi_app.state.database_engine = self.database_engine
        fastapi_app.state.automation_engine = self.automation_engine
        logger.info(
            f"Automation engine ready (timezone {self.config.timezone}, "
            f"database {self.database_engine.url.drivername})"
        )

    def start_worker(self) -> None:
        if self.automation_engine is None:
            raise RuntimeError("Dependencies not set up before starting the worker.")
        scheduler_config = self.config.scheduler
        self.automation_worker = AutomationWorker(
            self.automation_engine,
            shutdown_event=self.shutdown_event,
            interval_seconds=scheduler_config.tick_interval_minutes * 60,
            run_on_startup=scheduler_config.run_on_startup,
        )
        self.worker_task = asyncio.create_task(self.automation_worker.run())
        fastapi_app.state.automation_worker_task = self.worker_task

    async def start_services(self) -> None:
        """Start the worker and web server, then wait for shutdown."""
        if self.automation_engine is None:
            raise RuntimeError("Dependencies not set up before starting services.")

        uvicorn_config = uvicorn.Config(
            fastapi_app,
            host=self.config.server_host,
            port=self.config.server_port,
            log_level=self.config.log_level.lower(),
        )
        server = uvicorn.Server(uvicorn_config)
        self.uvicorn_server_task = asyncio.create_task(server.serve())
        logger.info(
            f"Web server running on http://{self.config.server_host}:{self.config.server_port}"
        )

        if self.config.scheduler.enabled:
            self.start_worker()
        else:
            logger.warning("Automation scheduler disabled; only manual runs will occur.")

        await self.shutdown_event.wait()
        logger.info("Shutdown signal received. Stopping services...")

        if server.started and self.uvicorn_server_task:
            server.should_exit = True
            await self.uvicorn_server_task
            logger.info("Web server stopped.")

    def initiate_shutdown(self, signal_name: str) -> None:
        """Sets the shutdown event to begin graceful shutdown."""
        if not self.shutdown_event.is_set():
            logger.warning(f"Received signal {signal_name}. Initiating shutdown...")
            self.shutdown_event.set()
        else:
            logger.warning(
                f"Shutdown already in progress. Signal {signal_name} received again."
            )

    def is_shutdown_complete(self) -> bool:
        return self._is_shutdown_complete

    async def stop_services(self) -> None:
        """Gracefully stops the worker and releases the database engine."""
        if self._is_shutdown_complete:
            logger.info("stop_services already completed.")
            return

        if not self.shutdown_event.is_set():
            self.shutdown_event.set()

        if self.worker_task is not None and not self.worker_task.done():
            # The worker exits on its own once the current pass finishes
            try:
                await asyncio.wait_for(self.worker_task, timeout=30)
            except TimeoutError:
                logger.warning("Automation worker did not stop in time; cancelling.")
                self.worker_task.cancel()
                await asyncio.gather(self.worker_task, return_exceptions=True)

        if self.database_engine is not None:
            await self.database_engine.dispose()
            logger.info("Database engine disposed.")

        self._is_shutdown_complete = True
        logger.info("All services stopped.")
