"""Remote document backend on an async SQLAlchemy engine.

Documents live whole in a JSON column; branch scoping is always the
`country == :country` predicate on the indexed column, never a separate
table. Read failures degrade to empty results, write failures raise.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Iterable

from sqlalchemy import delete, select, text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine

from buildledger.config import DBConfig
from buildledger.db.connection import create_engine_for, init_db, make_session_factory, session_scope
from buildledger.db.models import DOCUMENT_MODELS, DocumentMixin
from buildledger.errors import StorageError
from buildledger.storage.base import Document, Mutation, RecordBackend
from buildledger.storage.kinds import KindSpec

logger = logging.getLogger(__name__)


def _model_for(spec: KindSpec) -> type[DocumentMixin]:
    return DOCUMENT_MODELS[spec.stem]


class SqlDocumentBackend(RecordBackend):
    """One document table per entity kind."""

    name = "remote"

    def __init__(self, engine: AsyncEngine, connect_timeout: float = 5.0):
        self.engine = engine
        self.connect_timeout = connect_timeout
        self._session_factory = make_session_factory(engine)

    @classmethod
    def from_config(cls, db_config: DBConfig) -> SqlDocumentBackend:
        return cls(create_engine_for(db_config), connect_timeout=db_config.connect_timeout)

    def _scoped(self, model: type[DocumentMixin], stmt, country: str | None, record_id: str | None = None):
        if country is not None:
            stmt = stmt.where(model.country == country)
        if record_id is not None:
            stmt = stmt.where(model.id == record_id)
        return stmt

    async def load_all(self, spec: KindSpec, country: str | None) -> list[Document]:
        model = _model_for(spec)
        stmt = self._scoped(model, select(model.document), country).order_by(model.seq)
        try:
            async with session_scope(self._session_factory) as session:
                rows = (await session.execute(stmt)).scalars().all()
        except SQLAlchemyError as exc:
            logger.warning("Reading %s from the database failed, returning nothing: %s", spec.stem, exc)
            return []
        return [dict(doc) for doc in rows]

    async def find(self, spec: KindSpec, country: str | None, record_id: str) -> Document | None:
        model = _model_for(spec)
        stmt = self._scoped(model, select(model.document), country, record_id)
        try:
            async with session_scope(self._session_factory) as session:
                doc = (await session.execute(stmt)).scalar_one_or_none()
        except SQLAlchemyError as exc:
            logger.warning("Looking up %s %s failed: %s", spec.stem, record_id, exc)
            return None
        return dict(doc) if doc is not None else None

    async def insert(self, spec: KindSpec, country: str, doc: Document) -> None:
        model = _model_for(spec)
        try:
            async with session_scope(self._session_factory) as session:
                session.add(model(id=doc["id"], country=country, document=dict(doc)))
        except SQLAlchemyError as exc:
            raise StorageError(spec.kind.value, "insert", str(exc)) from exc

    async def modify(
        self, spec: KindSpec, country: str | None, record_id: str, mutate: Mutation
    ) -> Document | None:
        model = _model_for(spec)
        stmt = self._scoped(model, select(model), country, record_id).with_for_update()
        try:
            async with session_scope(self._session_factory) as session:
                row = (await session.execute(stmt)).scalar_one_or_none()
                if row is None:
                    return None
                updated = dict(mutate(dict(row.document)))
                # Reassign so the JSON column is flagged dirty
                row.document = updated
        except SQLAlchemyError as exc:
            raise StorageError(spec.kind.value, "update", str(exc)) from exc
        return dict(updated)

    async def remove(self, spec: KindSpec, country: str | None, record_id: str) -> bool:
        model = _model_for(spec)
        stmt = self._scoped(model, delete(model), country, record_id)
        try:
            async with session_scope(self._session_factory) as session:
                result = await session.execute(stmt)
        except SQLAlchemyError as exc:
            raise StorageError(spec.kind.value, "delete", str(exc)) from exc
        return (result.rowcount or 0) > 0

    async def _select_one(self) -> None:
        async with self.engine.connect() as conn:
            await conn.execute(text("SELECT 1"))

    async def ping(self) -> bool:
        try:
            await asyncio.wait_for(self._select_one(), timeout=self.connect_timeout)
        except (SQLAlchemyError, OSError, asyncio.TimeoutError) as exc:
            logger.warning("Database health check failed: %s", exc)
            return False
        return True

    async def prepare(self, specs: Iterable[KindSpec]) -> list[str]:
        await init_db(self.engine)
        return [spec.stem for spec in specs]

    async def close(self) -> None:
        await self.engine.dispose()
