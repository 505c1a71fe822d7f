"""Dual-mode record store.

CRUD over the seven entity kinds on top of either the JSON file backend or
the remote document backend. The active backend is picked explicitly by
`select_backend()` and only changes through `refresh_backend()`,
`use_local()` or `use_remote()`, each of which logs the transition.

The store stamps ids and timestamps, validates payloads against the entity
schemas (recomputing derived fields), and mirrors project-linked payments
and inventory items into the spending collection on creation.
"""

from __future__ import annotations

from typing import Any

import structlog
from pydantic import ValidationError

from buildledger.aggregation.auto_spending import spending_from_inventory, spending_from_payment
from buildledger.config import AppConfig
from buildledger.errors import BackendUnavailable, BuildLedgerError, InvalidCountry, InvalidPartition, ValidationFailure
from buildledger.models import (
    Country,
    Employee,
    InventoryItem,
    Payment,
    Project,
    Record,
    Section,
    Spending,
    User,
    new_id,
    parse_timestamp,
    utcnow,
)
from buildledger.storage.base import Document, RecordBackend
from buildledger.storage.kinds import KIND_SPECS, EntityKind, KindSpec, kind_spec
from buildledger.storage.local import JsonFileBackend

log = structlog.get_logger(__name__)

# Never taken from a caller's patch
IMMUTABLE_FIELDS = ("id", "_id", "country", "createdAt")

# Field that start/end range filters compare against, per kind
DATE_FIELDS: dict[EntityKind, str] = {
    EntityKind.PAYMENT: "paymentDate",
    EntityKind.SPENDING: "date",
    EntityKind.EMPLOYEE: "hireDate",
    EntityKind.PROJECT: "startDate",
}
START_KEYS = frozenset({"start_date", "startDate"})
END_KEYS = frozenset({"end_date", "endDate"})


def resolve_country(value: Any) -> Country | None:
    """Map a country value to its partition; None passes through.

    Raises:
        InvalidCountry: for anything that is not exactly egypt or libya
    """
    if value is None:
        return None
    if isinstance(value, Country):
        return value
    try:
        return Country(value)
    except ValueError:
        raise InvalidCountry(value) from None


def _plain(value: Any) -> Any:
    return getattr(value, "value", value)


def _stamp() -> str:
    return utcnow().isoformat().replace("+00:00", "Z")


class RecordStore:
    """Per-entity CRUD over a switchable backend."""

    def __init__(
        self,
        local: RecordBackend,
        remote: RecordBackend | None = None,
        mode: str = "auto",
    ):
        self.local = local
        self.remote = remote
        self.mode = mode
        self._active: RecordBackend = local

    @classmethod
    def from_config(cls, config: AppConfig) -> RecordStore:
        local = JsonFileBackend(config.storage.data_dir, lock_writes=config.storage.lock_writes)
        remote = None
        if config.db.enabled and config.storage.backend != "local":
            from buildledger.storage.remote import SqlDocumentBackend

            remote = SqlDocumentBackend.from_config(config.db)
        return cls(local, remote, mode=config.storage.backend)

    # --------------------------------------------------------- backend choice

    @property
    def backend(self) -> RecordBackend:
        return self._active

    @property
    def is_remote(self) -> bool:
        return self.remote is not None and self._active is self.remote

    def _switch(self, target: RecordBackend, reason: str) -> None:
        if target is self._active:
            return
        log.info("backend_transition", previous=self._active.name, current=target.name, reason=reason)
        self._active = target

    async def select_backend(self) -> RecordBackend:
        """Pick the backend once, according to the configured mode.

        Raises:
            BackendUnavailable: mode is "remote" and the database does not answer
        """
        if self.mode == "local" or self.remote is None:
            if self.mode == "remote":
                raise BackendUnavailable("Remote storage requested but no database is configured")
            self._switch(self.local, reason="configured")
        elif self.mode == "remote":
            if not await self.remote.ping():
                raise BackendUnavailable("Remote storage requested but the database is unreachable")
            self._switch(self.remote, reason="configured")
        else:
            reachable = await self.remote.ping()
            self._switch(self.remote if reachable else self.local, reason="startup health check")
        log.info("backend_selected", backend=self._active.name, mode=self.mode)
        return self._active

    async def refresh_backend(self) -> RecordBackend:
        """Re-run the health check in auto mode and switch if the answer changed."""
        if self.mode != "auto" or self.remote is None:
            return self._active
        reachable = await self.remote.ping()
        self._switch(
            self.remote if reachable else self.local,
            reason="database reachable" if reachable else "database unreachable",
        )
        return self._active

    def use_local(self) -> None:
        self._switch(self.local, reason="explicit")

    def use_remote(self) -> None:
        if self.remote is None:
            raise BackendUnavailable("No remote database is configured")
        self._switch(self.remote, reason="explicit")

    # ---------------------------------------------------------------- helpers

    @staticmethod
    def _aliased(spec: KindSpec, data: dict[str, Any]) -> dict[str, Any]:
        """Rename snake_case field names to their stored aliases."""
        fields = spec.schema.model_fields
        out: dict[str, Any] = {}
        for key, value in data.items():
            field = fields.get(key)
            out[field.alias if field is not None and field.alias else key] = value
        return out

    @staticmethod
    def _validate(spec: KindSpec, doc: dict[str, Any]) -> Record:
        try:
            return spec.schema.model_validate(doc)
        except ValidationError as exc:
            raise ValidationFailure.from_pydantic(spec.kind.value, exc) from exc

    @staticmethod
    def _from_document(spec: KindSpec, doc: Document) -> Record | None:
        try:
            return spec.schema.model_validate(doc)
        except ValidationError as exc:
            log.warning("skipping_invalid_record", kind=spec.kind.value, id=doc.get("id"), errors=exc.error_count())
            return None

    @staticmethod
    def _matches(spec: KindSpec, doc: Document, filters: dict[str, Any] | None) -> bool:
        if not filters:
            return True
        for key, expected in filters.items():
            if expected is None:
                continue
            if key in START_KEYS or key in END_KEYS:
                date_field = DATE_FIELDS.get(spec.kind)
                if date_field is None:
                    continue
                when = parse_timestamp(doc.get(date_field))
                bound = parse_timestamp(expected)
                if when is None or bound is None:
                    return False
                if key in START_KEYS and when < bound:
                    return False
                if key in END_KEYS and when > bound:
                    return False
                continue
            field = spec.schema.model_fields.get(key)
            stored_key = field.alias if field is not None and field.alias else key
            if _plain(doc.get(stored_key)) != _plain(expected):
                return False
        return True

    # ------------------------------------------------------------ generic CRUD

    async def get(
        self,
        kind: EntityKind | str,
        country: Country | str | None = None,
        filters: dict[str, Any] | None = None,
    ) -> list[Record]:
        """All records of a kind in a partition (both partitions when country is None)."""
        spec = kind_spec(kind)
        partition = resolve_country(country)
        docs = await self._active.load_all(spec, partition.value if partition else None)
        records: list[Record] = []
        for doc in docs:
            if not self._matches(spec, doc, filters):
                continue
            record = self._from_document(spec, doc)
            if record is not None:
                records.append(record)
        return records

    async def get_by_id(
        self, kind: EntityKind | str, record_id: str, country: Country | str | None = None
    ) -> Record | None:
        spec = kind_spec(kind)
        partition = resolve_country(country)
        doc = await self._active.find(spec, partition.value if partition else None, record_id)
        return self._from_document(spec, doc) if doc is not None else None

    async def create(self, kind: EntityKind | str, payload: dict[str, Any]) -> Record:
        """Stamp, validate and persist a new record.

        Raises:
            InvalidPartition: payload country is missing or not a known branch
            ValidationFailure: payload violates the entity schema
            StorageError: the write could not be persisted
        """
        spec = kind_spec(kind)
        data = self._aliased(spec, payload)
        try:
            partition = resolve_country(data.get("country"))
        except InvalidCountry:
            partition = None
        if partition is None:
            raise InvalidPartition(spec.kind.value, data.get("country"))

        now = _stamp()
        data.pop("_id", None)
        data.update(id=new_id(), country=partition.value, createdAt=now, updatedAt=now)
        record = self._validate(spec, data)
        await self._active.insert(spec, partition.value, record.to_document())
        log.debug("record_created", kind=spec.kind.value, id=record.id, country=partition.value)
        return record

    async def update(
        self,
        kind: EntityKind | str,
        record_id: str,
        patch: dict[str, Any],
        country: Country | str | None = None,
    ) -> Record | None:
        """Merge a partial patch into a stored record.

        The partition is the explicit `country`, else the patch's `country`,
        else any partition. Returns None when the record is not there.
        """
        spec = kind_spec(kind)
        changes = self._aliased(spec, patch)
        target = resolve_country(country) or resolve_country(changes.get("country"))
        for name in IMMUTABLE_FIELDS:
            changes.pop(name, None)
        now = _stamp()

        def merge(existing: Document) -> Document:
            merged = {**existing, **changes, "updatedAt": now}
            return self._validate(spec, merged).to_document()

        doc = await self._active.modify(spec, target.value if target else None, record_id, merge)
        if doc is None:
            log.debug("record_not_found", kind=spec.kind.value, id=record_id, operation="update")
            return None
        return spec.schema.model_validate(doc)

    async def delete(
        self, kind: EntityKind | str, record_id: str, country: Country | str | None = None
    ) -> bool:
        """Remove a record; employees are only deactivated."""
        spec = kind_spec(kind)
        target = resolve_country(country)
        partition = target.value if target else None

        if spec.soft_delete:
            now = _stamp()
            doc = await self._active.modify(
                spec, partition, record_id, lambda d: {**d, "active": False, "updatedAt": now}
            )
            found = doc is not None
        else:
            found = await self._active.remove(spec, partition, record_id)

        log.debug("record_deleted", kind=spec.kind.value, id=record_id, found=found, soft=spec.soft_delete)
        return found

    # --------------------------------------------------------------- projects

    async def get_projects(self, country: Country | str | None = None, filters: dict | None = None) -> list[Project]:
        return await self.get(EntityKind.PROJECT, country, filters)

    async def get_project(self, project_id: str, country: Country | str | None = None) -> Project | None:
        return await self.get_by_id(EntityKind.PROJECT, project_id, country)

    async def create_project(self, payload: dict[str, Any]) -> Project:
        return await self.create(EntityKind.PROJECT, payload)

    async def update_project(self, project_id: str, patch: dict[str, Any], country: Country | str | None = None) -> Project | None:
        return await self.update(EntityKind.PROJECT, project_id, patch, country)

    async def delete_project(self, project_id: str, country: Country | str | None = None) -> bool:
        return await self.delete(EntityKind.PROJECT, project_id, country)

    # --------------------------------------------------------------- sections

    async def get_sections(
        self,
        country: Country | str | None = None,
        project_id: str | None = None,
        filters: dict | None = None,
    ) -> list[Section]:
        return await self.get(EntityKind.SECTION, country, {**(filters or {}), "projectId": project_id})

    async def get_section(self, section_id: str, country: Country | str | None = None) -> Section | None:
        return await self.get_by_id(EntityKind.SECTION, section_id, country)

    async def create_section(self, payload: dict[str, Any]) -> Section:
        return await self.create(EntityKind.SECTION, payload)

    async def update_section(self, section_id: str, patch: dict[str, Any], country: Country | str | None = None) -> Section | None:
        return await self.update(EntityKind.SECTION, section_id, patch, country)

    async def delete_section(self, section_id: str, country: Country | str | None = None) -> bool:
        return await self.delete(EntityKind.SECTION, section_id, country)

    # -------------------------------------------------------------- spendings

    async def get_spendings(
        self,
        country: Country | str | None = None,
        project_id: str | None = None,
        section_id: str | None = None,
        filters: dict | None = None,
    ) -> list[Spending]:
        merged = {**(filters or {}), "projectId": project_id, "sectionId": section_id}
        return await self.get(EntityKind.SPENDING, country, merged)

    async def get_spending(self, spending_id: str, country: Country | str | None = None) -> Spending | None:
        return await self.get_by_id(EntityKind.SPENDING, spending_id, country)

    async def create_spending(self, payload: dict[str, Any]) -> Spending:
        return await self.create(EntityKind.SPENDING, payload)

    async def update_spending(self, spending_id: str, patch: dict[str, Any], country: Country | str | None = None) -> Spending | None:
        return await self.update(EntityKind.SPENDING, spending_id, patch, country)

    async def delete_spending(self, spending_id: str, country: Country | str | None = None) -> bool:
        return await self.delete(EntityKind.SPENDING, spending_id, country)

    # ------------------------------------------------------------------ users

    async def get_users(self, country: Country | str | None = None, filters: dict | None = None) -> list[User]:
        return await self.get(EntityKind.USER, country, filters)

    async def get_user(self, user_id: str, country: Country | str | None = None) -> User | None:
        return await self.get_by_id(EntityKind.USER, user_id, country)

    async def get_user_by_username(self, username: str, country: Country | str | None = None) -> User | None:
        users = await self.get_users(country, {"username": username})
        return users[0] if users else None

    async def get_user_by_email(self, email: str, country: Country | str | None = None) -> User | None:
        users = await self.get_users(country, {"email": email})
        return users[0] if users else None

    async def _check_username_free(self, username: Any, country: Any, exclude_id: str | None = None) -> None:
        if not isinstance(username, str) or resolve_country(country) is None:
            return
        existing = await self.get_user_by_username(username.strip(), country)
        if existing is not None and existing.id != exclude_id:
            raise ValidationFailure(
                EntityKind.USER.value,
                [{"field": "username", "message": f"username {username!r} already exists in {existing.country.value}"}],
            )

    async def create_user(self, payload: dict[str, Any]) -> User:
        data = self._aliased(KIND_SPECS[EntityKind.USER], payload)
        try:
            await self._check_username_free(data.get("username"), data.get("country"))
        except InvalidCountry:
            raise InvalidPartition(EntityKind.USER.value, data.get("country")) from None
        return await self.create(EntityKind.USER, payload)

    async def update_user(self, user_id: str, patch: dict[str, Any], country: Country | str | None = None) -> User | None:
        if "username" in patch:
            current = await self.get_user(user_id, country)
            if current is None:
                return None
            await self._check_username_free(patch["username"], current.country, exclude_id=user_id)
        return await self.update(EntityKind.USER, user_id, patch, country)

    async def delete_user(self, user_id: str, country: Country | str | None = None) -> bool:
        return await self.delete(EntityKind.USER, user_id, country)

    # -------------------------------------------------------------- employees

    async def get_employees(self, country: Country | str | None, filters: dict | None = None) -> list[Employee]:
        return await self.get(EntityKind.EMPLOYEE, country, filters)

    async def get_employee(self, employee_id: str, country: Country | str | None = None) -> Employee | None:
        return await self.get_by_id(EntityKind.EMPLOYEE, employee_id, country)

    async def get_employees_by_section(self, country: Country | str | None, section_id: str) -> list[Employee]:
        return await self.get_employees(country, {"sectionId": section_id})

    async def create_employee(self, payload: dict[str, Any]) -> Employee:
        return await self.create(EntityKind.EMPLOYEE, payload)

    async def update_employee(self, employee_id: str, patch: dict[str, Any], country: Country | str | None = None) -> Employee | None:
        return await self.update(EntityKind.EMPLOYEE, employee_id, patch, country)

    async def delete_employee(self, employee_id: str, country: Country | str | None = None) -> bool:
        return await self.delete(EntityKind.EMPLOYEE, employee_id, country)

    # --------------------------------------------------------------- payments

    async def get_payments(self, country: Country | str | None, filters: dict | None = None) -> list[Payment]:
        """Payments newest first by payment date."""
        payments = await self.get(EntityKind.PAYMENT, country, filters)
        return sorted(payments, key=lambda p: p.payment_date, reverse=True)

    async def get_payment(self, payment_id: str, country: Country | str | None = None) -> Payment | None:
        return await self.get_by_id(EntityKind.PAYMENT, payment_id, country)

    async def get_payments_by_employee(self, employee_id: str, country: Country | str | None) -> list[Payment]:
        return await self.get_payments(country, {"employeeId": employee_id})

    async def get_payments_by_project(self, country: Country | str | None, project_id: str) -> list[Payment]:
        return await self.get_payments(country, {"projectId": project_id})

    async def _derive_spending(self, spec: KindSpec, source: Payment | InventoryItem, derived: dict[str, Any] | None) -> None:
        """Persist the spending mirrored from `source`, or undo `source` if that fails."""
        if derived is None:
            return
        try:
            spending = await self.create_spending(derived)
        except BuildLedgerError as exc:
            log.error("spending_derivation_failed", source=spec.kind.value, source_id=source.id, error=str(exc))
            await self._active.remove(spec, source.country.value, source.id)
            raise
        log.info("spending_derived", source=spec.kind.value, source_id=source.id, spending_id=spending.id,
                 project_id=source.project_id, amount=spending.amount)

    async def create_payment(self, payload: dict[str, Any]) -> Payment:
        """Create a payment and mirror it into spendings when it is charged to a project.

        Raises:
            ValidationFailure: the employee is not on this branch's payroll
        """
        spec = kind_spec(EntityKind.PAYMENT)
        data = self._aliased(spec, payload)
        employee = None
        try:
            partition = resolve_country(data.get("country"))
        except InvalidCountry:
            partition = None
        if partition is not None and data.get("employeeId"):
            employee = await self.get_employee(data["employeeId"], partition)
            if employee is None:
                raise ValidationFailure(
                    spec.kind.value,
                    [{"field": "employeeId", "message": f"Employee not found: {data['employeeId']}"}],
                )

        payment = await self.create(EntityKind.PAYMENT, data)
        await self._derive_spending(spec, payment, spending_from_payment(payment, employee.name if employee else None))
        return payment

    async def update_payment(self, payment_id: str, patch: dict[str, Any], country: Country | str | None = None) -> Payment | None:
        return await self.update(EntityKind.PAYMENT, payment_id, patch, country)

    async def delete_payment(self, payment_id: str, country: Country | str | None = None) -> bool:
        return await self.delete(EntityKind.PAYMENT, payment_id, country)

    # -------------------------------------------------------------- inventory

    async def get_inventory(self, country: Country | str | None, filters: dict | None = None) -> list[InventoryItem]:
        return await self.get(EntityKind.INVENTORY_ITEM, country, filters)

    async def get_inventory_item(self, item_id: str, country: Country | str | None = None) -> InventoryItem | None:
        return await self.get_by_id(EntityKind.INVENTORY_ITEM, item_id, country)

    async def get_inventory_by_project(self, country: Country | str | None, project_id: str) -> list[InventoryItem]:
        return await self.get_inventory(country, {"projectId": project_id})

    async def create_inventory_item(self, payload: dict[str, Any]) -> InventoryItem:
        """Create a stock item and mirror its value into spendings when allocated to a project."""
        item = await self.create(EntityKind.INVENTORY_ITEM, payload)
        await self._derive_spending(kind_spec(EntityKind.INVENTORY_ITEM), item, spending_from_inventory(item))
        return item

    async def update_inventory_item(self, item_id: str, patch: dict[str, Any], country: Country | str | None = None) -> InventoryItem | None:
        return await self.update(EntityKind.INVENTORY_ITEM, item_id, patch, country)

    async def delete_inventory_item(self, item_id: str, country: Country | str | None = None) -> bool:
        return await self.delete(EntityKind.INVENTORY_ITEM, item_id, country)

    # -------------------------------------------------------------- lifecycle

    async def prepare(self) -> list[str]:
        """Create empty collections/tables on the active backend."""
        return await self._active.prepare(KIND_SPECS.values())

    async def counts(self, country: Country | str | None = None) -> dict[str, int]:
        partition = resolve_country(country)
        totals: dict[str, int] = {}
        for kind, spec in KIND_SPECS.items():
            docs = await self._active.load_all(spec, partition.value if partition else None)
            totals[kind.value] = len(docs)
        return totals

    async def reload(self) -> None:
        await self._active.reload()
        log.info("store_reloaded", backend=self._active.name, counts=await self.counts())

    async def flush(self) -> None:
        await self._active.flush()

    async def close(self) -> None:
        await self.local.close()
        if self.remote is not None:
            await self.remote.close()
