"""Dual-mode record store: JSON files per branch or a remote document database."""

from buildledger.storage.base import RecordBackend
from buildledger.storage.kinds import KIND_SPECS, EntityKind, KindSpec, kind_spec
from buildledger.storage.local import JsonFileBackend
from buildledger.storage.store import RecordStore

__all__ = [
    "EntityKind",
    "JsonFileBackend",
    "KIND_SPECS",
    "KindSpec",
    "RecordBackend",
    "RecordStore",
    "kind_spec",
]
