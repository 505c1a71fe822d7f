"""First-start bootstrap: empty collections and default branch admins.

Both steps are idempotent; running them against a populated store changes
nothing.
"""

from __future__ import annotations

import logging

import bcrypt

from buildledger.config import AppConfig, SeedConfig
from buildledger.models import COUNTRIES, Country, User, UserRole
from buildledger.storage.store import RecordStore

logger = logging.getLogger(__name__)


def hash_password(password: str, rounds: int = 12) -> str:
    """bcrypt hash of a password, as text for storage."""
    return bcrypt.hashpw(password.encode(), bcrypt.gensalt(rounds=rounds)).decode()


def verify_password(password: str, password_hash: str) -> bool:
    try:
        return bcrypt.checkpw(password.encode(), password_hash.encode())
    except ValueError:
        # Not a bcrypt hash
        return False


async def initialize_collections(store: RecordStore) -> list[str]:
    """Create any missing collection on the active backend.

    Returns:
        Names of the collections (files or tables) prepared
    """
    created = await store.prepare()
    if created:
        logger.info("Initialized collections: %s", ", ".join(created))
    else:
        logger.info("All collections already exist")
    return created


async def seed_default_admins(store: RecordStore, config: AppConfig | SeedConfig | None = None) -> list[User]:
    """Create one admin per branch when the store holds no users at all.

    The same username is used for both branches; they are distinct accounts.
    """
    seed = config.seed if isinstance(config, AppConfig) else (config or SeedConfig())

    if await store.get_users():
        logger.info("Users already exist, skipping admin seed")
        return []

    password_hash = hash_password(seed.admin_password, seed.bcrypt_rounds)
    created = []
    for country in COUNTRIES:
        user = await store.create_user({
            "name": f"{country.value.capitalize()} Administrator",
            "username": seed.admin_username,
            "email": f"{seed.admin_username}.{country.value}@{seed.admin_email_domain}",
            "password": password_hash,
            "role": UserRole.ADMIN.value,
            "country": country.value,
        })
        created.append(user)

    logger.info(
        "Created default admin users for %s (username=%r)",
        ", ".join(c.value for c in COUNTRIES), seed.admin_username,
    )
    return created


async def verify_admin_users(store: RecordStore) -> list[Country]:
    """Return the branches that have no admin account."""
    missing = []
    for country in COUNTRIES:
        admins = await store.get_users(country, {"role": UserRole.ADMIN.value})
        if not admins:
            logger.warning("No admin user found for %s", country.value)
            missing.append(country)
    return missing
