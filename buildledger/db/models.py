"""SQLAlchemy async models for the remote document backend.

Each entity kind gets its own table holding the full stored document in a
JSON column. `country` is lifted into an indexed column so branch scoping is
always an equality predicate in the query itself.
"""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import JSON, DateTime, Index, Integer, String
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.sql import func


class Base(DeclarativeBase):
    """Base class for all models."""

    pass


class DocumentMixin:
    """Columns shared by every document table."""

    # Insertion order; reads are returned in this natural order
    seq: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    id: Mapped[str] = mapped_column(String(64), nullable=False, unique=True, index=True)
    country: Mapped[str] = mapped_column(String(16), nullable=False, index=True)
    document: Mapped[dict] = mapped_column(JSON, nullable=False)
    stored_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    modified_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), onupdate=func.now()
    )


class ProjectDocument(DocumentMixin, Base):
    __tablename__ = "projects"


class SectionDocument(DocumentMixin, Base):
    __tablename__ = "sections"


class SpendingDocument(DocumentMixin, Base):
    __tablename__ = "spendings"


class UserDocument(DocumentMixin, Base):
    __tablename__ = "users"


class EmployeeDocument(DocumentMixin, Base):
    __tablename__ = "employees"


class PaymentDocument(DocumentMixin, Base):
    __tablename__ = "payments"

    __table_args__ = (Index("idx_payments_country_seq", "country", "seq"),)


class InventoryDocument(DocumentMixin, Base):
    __tablename__ = "inventory"


# Keyed by the storage stem used for file names, so both backends agree
DOCUMENT_MODELS: dict[str, type[DocumentMixin]] = {
    "projects": ProjectDocument,
    "sections": SectionDocument,
    "spendings": SpendingDocument,
    "users": UserDocument,
    "employees": EmployeeDocument,
    "payments": PaymentDocument,
    "inventory": InventoryDocument,
}
