"""Pytest configuration and fixtures for buildledger tests.

Provides stores on both backends, branch claims, and a helper for building
stamped entity models without going through a store.
"""

from __future__ import annotations

from collections.abc import Callable
from typing import Any

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import create_async_engine
from sqlalchemy.pool import StaticPool

from buildledger.config import reset_config
from buildledger.isolation import CountryClaim, ScopedStore
from buildledger.models import Country, Record, UserRole, new_id, utcnow
from buildledger.storage.kinds import KIND_SPECS
from buildledger.storage.local import JsonFileBackend
from buildledger.storage.remote import SqlDocumentBackend
from buildledger.storage.store import RecordStore


def memory_backend() -> SqlDocumentBackend:
    """Remote backend on a private in-memory SQLite database."""
    engine = create_async_engine("sqlite+aiosqlite:///:memory:", poolclass=StaticPool)
    return SqlDocumentBackend(engine, connect_timeout=2.0)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    """Keep tests independent of the developer's environment."""
    for name in ("DATABASE_URL", "STORAGE_BACKEND", "DATA_DIR", "LOG_LEVEL", "LOG_FORMAT"):
        monkeypatch.delenv(name, raising=False)
    reset_config()
    yield
    reset_config()


@pytest.fixture
def data_dir(tmp_path):
    return tmp_path / "data"


@pytest.fixture
def local_backend(data_dir) -> JsonFileBackend:
    return JsonFileBackend(data_dir)


@pytest_asyncio.fixture()
async def store(local_backend) -> RecordStore:
    """Record store running on JSON files."""
    store = RecordStore(local_backend, mode="local")
    await store.select_backend()
    yield store
    await store.close()


@pytest_asyncio.fixture()
async def remote_store(local_backend) -> RecordStore:
    """Record store running on in-memory SQLite."""
    remote = memory_backend()
    await remote.prepare(KIND_SPECS.values())
    store = RecordStore(local_backend, remote, mode="remote")
    await store.select_backend()
    yield store
    await store.close()


@pytest_asyncio.fixture(params=["local", "remote"])
async def any_store(request, tmp_path) -> RecordStore:
    """The same store contract on each backend."""
    local = JsonFileBackend(tmp_path / "data")
    remote = None
    if request.param == "remote":
        remote = memory_backend()
        await remote.prepare(KIND_SPECS.values())
    store = RecordStore(local, remote, mode=request.param)
    await store.select_backend()
    yield store
    await store.close()


@pytest.fixture
def egypt_admin() -> CountryClaim:
    return CountryClaim(Country.EGYPT, user_id="admin-eg", username="admin", role=UserRole.ADMIN)


@pytest.fixture
def libya_admin() -> CountryClaim:
    return CountryClaim(Country.LIBYA, user_id="admin-ly", username="admin", role=UserRole.ADMIN)


@pytest.fixture
def egypt(any_store, egypt_admin) -> ScopedStore:
    return ScopedStore(any_store, egypt_admin)


@pytest.fixture
def libya(any_store, libya_admin) -> ScopedStore:
    return ScopedStore(any_store, libya_admin)


@pytest.fixture
def make() -> Callable[..., Record]:
    """Build a validated entity with system fields filled in."""

    def _make(model: type[Record], country: str = "egypt", **fields: Any) -> Record:
        now = utcnow()
        return model.model_validate(
            {"id": new_id(), "country": country, "created_at": now, "updated_at": now, **fields}
        )

    return _make
