"""
commguard service runner
========================

Opens the moderation database, wires the moderation core from
``config/app_config.yml`` and keeps community health scores fresh until
interrupted. Content ingestion and moderator actions reach the core through
:class:`commguard.services.moderation_service.ModerationService`.
"""

import os
import sys
from pathlib import Path


def resolve_base_dir() -> Path:
    """Determine the base directory of the project.

    Resolution order:
    1. COMMGUARD_HOME environment variable, if set.
    2. If running in a frozen/compiled context (e.g., PyInstaller, Nuitka), use the executable's directory.
    3. Otherwise, assume running from source and use the grandparent of this file's directory.
    """
    if env_home := os.getenv("COMMGUARD_HOME"):
        return Path(env_home).resolve()

    if getattr(sys, "frozen", False) or getattr(sys, "compiled", False):
        return Path(sys.argv[0]).resolve().parent

    return Path(__file__).resolve().parents[2]


BASE_DIR = resolve_base_dir()
os.chdir(BASE_DIR)

import asyncio
from dotenv import load_dotenv

from commguard.configuration.app_configuration import app_config
from commguard.database.db_connection import db_connection
from commguard.database.db_schema import SchemaManager
from commguard.scheduler.health_scheduler import HealthScoreScheduler
from commguard.services.moderation_service import ModerationService, build_service
from commguard.util.logger import get_logger, handle_exception


logger = get_logger("main")


def load_environment() -> None:
    """Load secrets (the oracle API key) from ``.env`` into the environment."""
    load_dotenv(dotenv_path=BASE_DIR / ".env")


async def initialize_database() -> None:
    """Open the shared connection and make sure the schema exists."""
    await db_connection.open(app_config.database_path)
    await SchemaManager.initialize_schema(db_connection.connection)


async def run_service(service: ModerationService) -> None:
    """Run the periodic health recompute until cancelled."""
    scheduler = HealthScoreScheduler(service.health_scorer, lambda: app_config.health_recompute_interval)
    scheduler.start()
    try:
        await asyncio.Event().wait()
    except asyncio.CancelledError:
        logger.info("Service run cancelled; proceeding to shutdown")
    finally:
        await scheduler.shutdown()


async def async_main() -> int:
    """Bootstrap the database and the moderation core, returning an exit code."""
    load_environment()

    try:
        logger.info("Initializing database at %s...", app_config.database_path)
        await initialize_database()
    except Exception as exc:
        logger.critical("Failed to initialize database: %s", exc)
        return 1

    try:
        service = build_service(db_connection, app_config)
        await run_service(service)
    finally:
        await db_connection.close()
        logger.info("Shutdown complete.")

    return 0


def main() -> int:
    """Entrypoint that runs the async service and returns the process code."""
    sys.excepthook = handle_exception
    logger.info("Starting commguard moderation core…")
    try:
        return asyncio.run(async_main())
    except KeyboardInterrupt:
        logger.info("Shutdown requested by user.")
        return 0
    except Exception as exc:
        logger.critical("An unexpected error occurred while running the service: %s", exc)
        return 1


if __name__ == "__main__":
    sys.exit(main())
