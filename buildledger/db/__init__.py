"""Database layer for the remote document backend (async SQLAlchemy)."""

from buildledger.db.connection import create_engine_for, init_db, session_scope
from buildledger.db.models import (
    DOCUMENT_MODELS,
    Base,
    EmployeeDocument,
    InventoryDocument,
    PaymentDocument,
    ProjectDocument,
    SectionDocument,
    SpendingDocument,
    UserDocument,
)

__all__ = [
    "Base",
    "DOCUMENT_MODELS",
    "ProjectDocument",
    "SectionDocument",
    "SpendingDocument",
    "UserDocument",
    "EmployeeDocument",
    "PaymentDocument",
    "InventoryDocument",
    "create_engine_for",
    "init_db",
    "session_scope",
]
