import argparse
import asyncio
import json
import logging
import signal
import sys

from task_automation.config_loader import load_config, validate_timezone
from task_automation.config_models import AppConfig
from task_automation.scheduling.engine import AutomationEngine
from task_automation.service import AutomationService
from task_automation.storage import create_engine_with_sqlite_optimizations, init_db

# --- Logging Configuration ---
logging.basicConfig(
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s", level=logging.INFO
)
# Keep external libraries less verbose
logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
logger = logging.getLogger(__name__)


# --- Argument Parsing ---
parser = argparse.ArgumentParser(description="Recurring automation scheduler")
parser.add_argument(
    "--config",
    default="config.yaml",
    help="Path to the operator config YAML file",
)
parser.add_argument(
    "--database-url",
    default=None,
    help="Database URL (overrides config file and environment variable)",
)
parser.add_argument(
    "--timezone",
    default=None,
    help="Organisational IANA time zone (overrides config file and environment variable)",
)
parser.add_argument(
    "--port",
    type=int,
    default=None,
    help="Web server port (overrides config file and environment variable)",
)
subparsers = parser.add_subparsers(dest="command")
subparsers.add_parser("serve", help="Run the web server and periodic scheduler (default)")
subparsers.add_parser("check", help="Run one evaluation pass now and exit")
reset_parser = subparsers.add_parser(
    "reset", help="Clear recurrence markers and exit"
)
reset_parser.add_argument(
    "--automation-id",
    type=int,
    default=None,
    help="Reset only this automation (default: every day-of-month automation)",
)
reset_parser.add_argument(
    "--include-templates",
    action="store_true",
    help="Also clear per-template period bookkeeping",
)
subparsers.add_parser("status", help="Print the automation status report and exit")


def _apply_cli_overrides(config: AppConfig, args: argparse.Namespace) -> AppConfig:
    updates: dict[str, object] = {}
    if args.database_url is not None:
        updates["database_url"] = args.database_url
    if args.timezone is not None:
        updates["timezone"] = args.timezone
    if args.port is not None:
        updates["server_port"] = args.port
    if not updates:
        return config
    config_data = {**config.model_dump(), **updates}
    validate_timezone(config_data)
    return AppConfig.model_validate(config_data)


async def _run_once(config: AppConfig, args: argparse.Namespace) -> int:
    """Run a single administrative command against the database."""
    database_engine = create_engine_with_sqlite_optimizations(config.database_url)
    try:
        await init_db(database_engine)
        automation_engine = AutomationEngine(
            database_engine,
            timezone=config.timezone,
            automation_timeout=config.scheduler.automation_timeout_seconds,
        )

        if args.command == "check":
            result = await automation_engine.run_evaluation(is_manual=True)
            if not result.success:
                logger.error(f"Automation check failed: {result.error}")
                return 1
            print(
                json.dumps({
                    "processed_count": result.processed_count,
                    "tasks_created": result.tasks_created,
                    "failed": [
                        {"automation_id": o.automation_id, "error": o.error}
                        for o in result.outcomes
                        if o.error
                    ],
                })
            )
        elif args.command == "reset":
            reset = await automation_engine.reset_recurrence_markers(
                args.automation_id, include_templates=args.include_templates
            )
            if not reset.success:
                logger.error(f"Reset failed: {reset.error}")
                return 1
            print(
                json.dumps({
                    "modified_count": reset.modified_count,
                    "templates_reset": reset.templates_reset,
                })
            )
        elif args.command == "status":
            report = await automation_engine.status_report()
            print(
                json.dumps(
                    {
                        "current_time": report.current_time.isoformat(),
                        "timezone": report.timezone,
                        "total_automations": report.total_automations,
                        "automations": [
                            {
                                "automation_id": entry.automation_id,
                                "name": entry.name,
                                "trigger_kind": entry.trigger_kind.value,
                                "status": entry.status,
                                "next_run_date": entry.next_run_date.isoformat()
                                if entry.next_run_date
                                else None,
                                "tasks_created": entry.tasks_created,
                            }
                            for entry in report.automations
                        ],
                    },
                    indent=2,
                )
            )
        return 0
    finally:
        await database_engine.dispose()


def _serve(config: AppConfig) -> int:
    service = AutomationService(config)
    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)

    signal_map = {signal.SIGINT: "SIGINT", signal.SIGTERM: "SIGTERM"}
    for sig_num, sig_name in signal_map.items():
        loop.add_signal_handler(
            sig_num,
            lambda name=sig_name, svc=service: svc.initiate_shutdown(name),
        )

    try:
        logger.info("Starting automation service...")
        loop.run_until_complete(service.setup_dependencies())
        loop.run_until_complete(service.start_services())
        loop.run_until_complete(service.stop_services())
    except (KeyboardInterrupt, SystemExit) as ex:
        logger.warning(f"Received {type(ex).__name__}, initiating shutdown sequence.")
        if not service.is_shutdown_complete():
            service.initiate_shutdown(type(ex).__name__)
            loop.run_until_complete(service.stop_services())
    except Exception as e:
        logger.critical(f"Unhandled exception in main: {e}", exc_info=True)
        if not service.is_shutdown_complete():
            service.initiate_shutdown(f"UnhandledException: {type(e).__name__}")
            loop.run_until_complete(service.stop_services())
        return 1
    finally:
        remaining_tasks = [t for t in asyncio.all_tasks(loop=loop) if not t.done()]
        if remaining_tasks:
            logger.info(f"Cancelling {len(remaining_tasks)} remaining tasks...")
            for task in remaining_tasks:
                task.cancel()
            loop.run_until_complete(
                asyncio.gather(*remaining_tasks, return_exceptions=True)
            )
        loop.close()
        logger.info("Application finished.")

    return 0


def main(argv: list[str] | None = None) -> int:
    """Loads config, parses args and runs the requested command."""
    args = parser.parse_args(argv)
    config = _apply_cli_overrides(load_config(config_file_path=args.config), args)
    logging.getLogger().setLevel(config.log_level.upper())

    if args.command in {"check", "reset", "status"}:
        return asyncio.run(_run_once(config, args))
    return _serve(config)


if __name__ == "__main__":
    sys.exit(main())
