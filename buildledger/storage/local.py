"""File-backed backend: one JSON array per (kind, country) partition.

Each collection is loaded once into memory and the whole file is rewritten
on every mutation. A per-file asyncio.Lock serialises writers inside the
process so concurrent requests cannot drop each other's changes; separate
processes sharing one data directory are still last-write-wins.
"""

from __future__ import annotations

import asyncio
import json
import logging
import os
from collections import defaultdict
from collections.abc import Iterable
from contextlib import AbstractAsyncContextManager, nullcontext
from pathlib import Path

import aiofiles

from buildledger.errors import StorageError
from buildledger.models import COUNTRIES
from buildledger.storage.base import Document, Mutation, RecordBackend
from buildledger.storage.kinds import KindSpec

logger = logging.getLogger(__name__)


class JsonFileBackend(RecordBackend):
    """Country-partitioned JSON collections in a data directory."""

    name = "local"

    def __init__(self, data_dir: Path | str, lock_writes: bool = True):
        self.data_dir = Path(data_dir)
        self.lock_writes = lock_writes
        self._cache: dict[str, list[Document]] = {}
        self._locks: defaultdict[str, asyncio.Lock] = defaultdict(asyncio.Lock)

    # ------------------------------------------------------------------ files

    def _ensure_data_dir(self) -> None:
        self.data_dir.mkdir(parents=True, exist_ok=True)

    def _lock_for(self, file_name: str) -> AbstractAsyncContextManager:
        if self.lock_writes:
            return self._locks[file_name]
        return nullcontext()

    async def _load_file(self, file_name: str) -> list[Document]:
        path = self.data_dir / file_name
        try:
            self._ensure_data_dir()
            if not path.exists():
                return []
            async with aiofiles.open(path, "r", encoding="utf-8") as fh:
                raw = await fh.read()
            data = json.loads(raw) if raw.strip() else []
        except (OSError, ValueError) as exc:
            logger.warning("Could not load %s, starting with an empty collection: %s", path, exc)
            return []

        if not isinstance(data, list):
            logger.warning("Ignoring %s: expected a JSON array, got %s", path, type(data).__name__)
            return []
        return [doc for doc in data if isinstance(doc, dict)]

    async def _save_file(self, label: str, file_name: str, docs: list[Document]) -> None:
        path = self.data_dir / file_name
        tmp_path = path.with_suffix(path.suffix + ".tmp")
        payload = json.dumps(docs, indent=2, ensure_ascii=False)
        try:
            self._ensure_data_dir()
            async with aiofiles.open(tmp_path, "w", encoding="utf-8") as fh:
                await fh.write(payload)
            os.replace(tmp_path, path)
        except OSError as exc:
            logger.error("Failed to write %s: %s", path, exc)
            raise StorageError(label, "write", str(exc)) from exc

    async def _read(self, file_name: str) -> list[Document]:
        if file_name not in self._cache:
            async with self._lock_for(file_name):
                if file_name not in self._cache:
                    self._cache[file_name] = await self._load_file(file_name)
        return self._cache[file_name]

    async def _loaded(self, file_name: str) -> list[Document]:
        # Caller already holds the file lock
        if file_name not in self._cache:
            self._cache[file_name] = await self._load_file(file_name)
        return self._cache[file_name]

    @staticmethod
    def _targets(spec: KindSpec, country: str | None) -> list[tuple[str, str | None]]:
        """(file name, in-file country filter) pairs covering a partition."""
        if spec.file_partitioned:
            countries = [country] if country else [c.value for c in COUNTRIES]
            return [(spec.file_name(c), None) for c in countries]
        return [(spec.file_name(None), country)]

    @staticmethod
    def _in_partition(doc: Document, country: str | None) -> bool:
        return country is None or doc.get("country") == country

    # ---------------------------------------------------------------- backend

    async def load_all(self, spec: KindSpec, country: str | None) -> list[Document]:
        results: list[Document] = []
        for file_name, in_file in self._targets(spec, country):
            docs = await self._read(file_name)
            results.extend(dict(doc) for doc in docs if self._in_partition(doc, in_file))
        return results

    async def find(self, spec: KindSpec, country: str | None, record_id: str) -> Document | None:
        for file_name, in_file in self._targets(spec, country):
            for doc in await self._read(file_name):
                if doc.get("id") == record_id and self._in_partition(doc, in_file):
                    return dict(doc)
        return None

    async def insert(self, spec: KindSpec, country: str, doc: Document) -> None:
        file_name = spec.file_name(country)
        async with self._lock_for(file_name):
            docs = await self._loaded(file_name)
            docs.append(dict(doc))
            try:
                await self._save_file(spec.kind.value, file_name, docs)
            except StorageError:
                docs.pop()
                raise

    async def modify(
        self, spec: KindSpec, country: str | None, record_id: str, mutate: Mutation
    ) -> Document | None:
        for file_name, in_file in self._targets(spec, country):
            async with self._lock_for(file_name):
                docs = await self._loaded(file_name)
                for index, doc in enumerate(docs):
                    if doc.get("id") != record_id or not self._in_partition(doc, in_file):
                        continue
                    updated = dict(mutate(dict(doc)))
                    docs[index] = updated
                    try:
                        await self._save_file(spec.kind.value, file_name, docs)
                    except StorageError:
                        docs[index] = doc
                        raise
                    return dict(updated)
        return None

    async def remove(self, spec: KindSpec, country: str | None, record_id: str) -> bool:
        for file_name, in_file in self._targets(spec, country):
            async with self._lock_for(file_name):
                docs = await self._loaded(file_name)
                for index, doc in enumerate(docs):
                    if doc.get("id") != record_id or not self._in_partition(doc, in_file):
                        continue
                    del docs[index]
                    try:
                        await self._save_file(spec.kind.value, file_name, docs)
                    except StorageError:
                        docs.insert(index, doc)
                        raise
                    return True
        return False

    async def ping(self) -> bool:
        try:
            self._ensure_data_dir()
        except OSError as exc:
            logger.warning("Data directory %s is not usable: %s", self.data_dir, exc)
            return False
        return os.access(self.data_dir, os.W_OK)

    async def prepare(self, specs: Iterable[KindSpec]) -> list[str]:
        """Create empty files for every partition that has none yet."""
        created: list[str] = []
        for spec in specs:
            for file_name, _ in self._targets(spec, None):
                async with self._lock_for(file_name):
                    if (self.data_dir / file_name).exists():
                        continue
                    docs = await self._loaded(file_name)
                    await self._save_file(spec.kind.value, file_name, docs)
                    created.append(file_name)
        return created

    async def reload(self) -> None:
        self._cache.clear()
        logger.info("Dropped cached collections for %s", self.data_dir)

    async def flush(self) -> None:
        for file_name in list(self._cache):
            async with self._lock_for(file_name):
                await self._save_file(file_name, file_name, self._cache[file_name])
