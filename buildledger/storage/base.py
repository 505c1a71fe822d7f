"""Backend interface shared by the file and database implementations.

Backends move plain documents (stored camelCase dicts) in and out of one
(kind, country) partition. Validation, stamping and derived fields are the
record store's job, not theirs.

A `country` of None on a lookup means "any partition", scanned egypt first.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Callable, Iterable
from typing import Any

from buildledger.storage.kinds import KindSpec

Document = dict[str, Any]
Mutation = Callable[[Document], Document]


class RecordBackend(ABC):
    """Abstract persistence for stored documents."""

    name: str = "backend"

    @abstractmethod
    async def load_all(self, spec: KindSpec, country: str | None) -> list[Document]:
        """Return every document in the partition; empty on failure."""

    @abstractmethod
    async def find(self, spec: KindSpec, country: str | None, record_id: str) -> Document | None:
        """Return one document by id, or None."""

    @abstractmethod
    async def insert(self, spec: KindSpec, country: str, doc: Document) -> None:
        """Persist a new document; raises StorageError when the write fails."""

    @abstractmethod
    async def modify(
        self, spec: KindSpec, country: str | None, record_id: str, mutate: Mutation
    ) -> Document | None:
        """Apply `mutate` to a stored document and persist the result.

        `mutate` runs while the partition is held, so read-merge-write is not
        interleaved with other writers of the same partition. If it raises,
        nothing is written. Returns the stored result, or None if not found.
        """

    @abstractmethod
    async def remove(self, spec: KindSpec, country: str | None, record_id: str) -> bool:
        """Hard-delete a document; False when it does not exist."""

    @abstractmethod
    async def ping(self) -> bool:
        """Health check used for backend selection."""

    async def prepare(self, specs: Iterable[KindSpec]) -> list[str]:
        """Create whatever empty containers the kinds need; returns their names."""
        return []

    async def reload(self) -> None:
        """Drop any cached state so the next read goes to the source."""

    async def flush(self) -> None:
        """Force cached state out to the source."""

    async def close(self) -> None:
        """Release connections and handles."""
