"""Startup validation for buildledger.

Fail fast when the data directory or a required database is unusable, so
the process never starts serving against storage it cannot write to.
"""

from __future__ import annotations

import logging
import os

from buildledger.config import AppConfig, get_config
from buildledger.seed import verify_admin_users
from buildledger.storage.store import RecordStore

logger = logging.getLogger(__name__)


class StartupValidationError(Exception):
    """Raised when startup validation fails."""
    pass


def validate_data_dir(config: AppConfig) -> None:
    """Ensure the data directory exists (creating it) and is writable.

    Raises:
        StartupValidationError: If the directory cannot be created or written
    """
    data_dir = config.storage.data_dir
    try:
        data_dir.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        raise StartupValidationError(
            f"Data directory {data_dir} cannot be created: {e}. Check DATA_DIR."
        ) from e

    if not os.access(data_dir, os.W_OK):
        raise StartupValidationError(f"Data directory {data_dir} is not writable. Check DATA_DIR.")

    logger.info(f"✓ Data directory OK ({data_dir})")


async def validate_backend(store: RecordStore, config: AppConfig) -> None:
    """Check the backend the store is running on.

    Raises:
        StartupValidationError: If STORAGE_BACKEND=remote and the database does not answer
    """
    if config.storage.backend == "remote":
        if store.remote is None or not await store.remote.ping():
            raise StartupValidationError(
                "STORAGE_BACKEND=remote but the database is unreachable. "
                "Check DATABASE_URL and that the server is running."
            )
        logger.info("✓ Remote database reachable")
        return

    if config.db.enabled and not store.is_remote:
        logger.warning("⚠ DATABASE_URL is set but the store is running on local files")
    logger.info(f"✓ Storage backend: {store.backend.name}")


async def run_startup_validation(store: RecordStore, config: AppConfig | None = None) -> None:
    """Run all startup validations.

    Raises:
        StartupValidationError: If any critical validation fails
    """
    config = config or get_config()
    logger.info("Running startup validations...")

    validate_data_dir(config)
    await validate_backend(store, config)

    missing = await verify_admin_users(store)
    if missing:
        # Not fatal: `buildledger seed` creates them
        logger.warning(f"⚠ No admin account for: {', '.join(c.value for c in missing)}")

    logger.info("✓ All startup validations passed")
