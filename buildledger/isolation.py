"""Country isolation.

A caller's branch is resolved once from the authenticated identity into a
`CountryClaim`. Every read goes through `ScopedStore`, which injects the
claim's country into the query, and every write is stamped with it. A
country supplied by the caller in filters or payloads is overwritten, never
merged.

URL-segment countries are validated separately with `validate_country`;
routes that take one must also call `ensure_path_matches` against the claim.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from buildledger.aggregation.balances import EmployeeBalance, compute_employee_balance
from buildledger.aggregation.dashboard import (
    DashboardSummary,
    PaymentStats,
    dashboard_summary,
    payment_stats,
    project_status_report,
    spending_by_category,
    spending_timeline,
)
from buildledger.aggregation.expenses import (
    ProjectDetails,
    ProjectExpenses,
    SectionCosts,
    project_details,
    project_full_expenses,
    section_full_costs,
)
from buildledger.aggregation.views import (
    EmployeeView,
    PaymentView,
    SectionView,
    employee_views,
    index_by_id,
    payment_views,
    section_views,
)
from buildledger.config import PayrollConfig
from buildledger.errors import CountryMismatch, InvalidCountry
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
    UserRole,
)
from buildledger.storage.kinds import EntityKind
from buildledger.storage.store import RecordStore

logger = logging.getLogger(__name__)

# Kinds whose writes are restricted to administrators
ADMIN_WRITE_KINDS = frozenset({EntityKind.PROJECT, EntityKind.SECTION, EntityKind.SPENDING})


def validate_country(value: Any) -> Country:
    """Validate a country value (e.g. a URL segment).

    Raises:
        InvalidCountry: unless the value is exactly egypt or libya
    """
    if isinstance(value, Country):
        return value
    try:
        return Country(value)
    except ValueError:
        raise InvalidCountry(value) from None


@dataclass(frozen=True, slots=True)
class CountryClaim:
    """The caller's branch and role, fixed for the life of a request."""

    country: Country
    user_id: str | None = None
    username: str | None = None
    role: UserRole = UserRole.USER

    def __post_init__(self) -> None:
        object.__setattr__(self, "country", validate_country(self.country))
        object.__setattr__(self, "role", UserRole(self.role))

    @classmethod
    def from_identity(cls, identity: Mapping[str, Any] | User) -> CountryClaim:
        """Build a claim from an authenticated user record or token payload."""
        if isinstance(identity, User):
            return cls(identity.country, identity.id, identity.username, identity.role)
        return cls(
            country=identity.get("country"),
            user_id=identity.get("id") or identity.get("userId") or identity.get("user_id"),
            username=identity.get("username"),
            role=identity.get("role") or UserRole.USER,
        )

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN


def require_role(claim: CountryClaim, *roles: UserRole | str) -> None:
    """Raise PermissionError unless the claim holds one of `roles`."""
    allowed = {UserRole(r) for r in roles}
    if claim.role not in allowed:
        raise PermissionError(
            f"Role {claim.role.value!r} may not perform this action; requires {sorted(r.value for r in allowed)}"
        )


def ensure_path_matches(claim: CountryClaim, path_country: Any) -> Country:
    """Validate a URL-segment country and require it to be the caller's own.

    Raises:
        InvalidCountry: the segment is not a recognised country
        CountryMismatch: the segment names another branch
    """
    country = validate_country(path_country)
    if country != claim.country:
        logger.warning(
            "Rejected cross-branch path: user=%s claim=%s path=%s",
            claim.username, claim.country.value, country.value,
        )
        raise CountryMismatch(country.value, claim.country.value)
    return country


def add_country_filter(claim: CountryClaim, filters: Mapping[str, Any] | None = None) -> dict[str, Any]:
    """Copy `filters` with `country` forced to the claim's branch."""
    scoped = dict(filters or {})
    scoped["country"] = claim.country.value
    return scoped


def ensure_country_field(payload: Mapping[str, Any], claim: CountryClaim) -> dict[str, Any]:
    """Copy a write payload with `country` stamped from the claim."""
    stamped = dict(payload)
    stamped["country"] = claim.country.value
    return stamped


def _country_of(doc: Record | Mapping[str, Any]) -> Any:
    if isinstance(doc, Record):
        return doc.country
    return doc.get("country")


def validate_document_country(doc: Record | Mapping[str, Any] | None, claim: CountryClaim) -> bool:
    if doc is None:
        return False
    country = _country_of(doc)
    return getattr(country, "value", country) == claim.country.value


def filter_by_country(docs: Iterable[Any], claim: CountryClaim) -> list[Any]:
    return [doc for doc in docs if validate_document_country(doc, claim)]


class ScopedStore:
    """Record store restricted to one caller's branch.

    Reads are scoped to the claim, writes are stamped with it, and updates
    and deletes only ever look inside the claim's partition.
    """

    def __init__(self, store: RecordStore, claim: CountryClaim, payroll: PayrollConfig | None = None):
        self.store = store
        self.claim = claim
        self.payroll = payroll or PayrollConfig()

    @property
    def country(self) -> Country:
        return self.claim.country

    def _check_write(self, kind: EntityKind) -> None:
        if kind in ADMIN_WRITE_KINDS:
            require_role(self.claim, UserRole.ADMIN)

    # ------------------------------------------------------------ generic CRUD

    async def get(self, kind: EntityKind | str, filters: Mapping[str, Any] | None = None) -> list[Record]:
        records = await self.store.get(kind, self.country, add_country_filter(self.claim, filters))
        return filter_by_country(records, self.claim)

    async def get_by_id(self, kind: EntityKind | str, record_id: str) -> Record | None:
        record = await self.store.get_by_id(kind, record_id, self.country)
        return record if validate_document_country(record, self.claim) else None

    async def create(self, kind: EntityKind | str, payload: Mapping[str, Any]) -> Record:
        kind = EntityKind(kind)
        self._check_write(kind)
        data = ensure_country_field(payload, self.claim)
        if self.claim.user_id and kind != EntityKind.USER:
            data.setdefault("createdBy", self.claim.user_id)

        if kind == EntityKind.PAYMENT:
            return await self.store.create_payment(data)
        if kind == EntityKind.INVENTORY_ITEM:
            return await self.store.create_inventory_item(data)
        if kind == EntityKind.USER:
            return await self.store.create_user(data)
        return await self.store.create(kind, data)

    async def update(self, kind: EntityKind | str, record_id: str, patch: Mapping[str, Any]) -> Record | None:
        kind = EntityKind(kind)
        self._check_write(kind)
        data = ensure_country_field(patch, self.claim)
        if kind == EntityKind.USER:
            return await self.store.update_user(record_id, data, self.country)
        return await self.store.update(kind, record_id, data, self.country)

    async def delete(self, kind: EntityKind | str, record_id: str) -> bool:
        kind = EntityKind(kind)
        self._check_write(kind)
        return await self.store.delete(kind, record_id, self.country)

    # ------------------------------------------------------------- per kind

    async def get_projects(self, filters: Mapping[str, Any] | None = None) -> list[Project]:
        return await self.get(EntityKind.PROJECT, filters)

    async def get_project(self, project_id: str) -> Project | None:
        return await self.get_by_id(EntityKind.PROJECT, project_id)

    async def get_sections(self, project_id: str | None = None) -> list[Section]:
        return await self.get(EntityKind.SECTION, {"projectId": project_id})

    async def get_section(self, section_id: str) -> Section | None:
        return await self.get_by_id(EntityKind.SECTION, section_id)

    async def get_spendings(self, project_id: str | None = None, section_id: str | None = None) -> list[Spending]:
        return await self.get(EntityKind.SPENDING, {"projectId": project_id, "sectionId": section_id})

    async def get_users(self) -> list[User]:
        return await self.get(EntityKind.USER)

    async def get_user_by_username(self, username: str) -> User | None:
        return await self.store.get_user_by_username(username, self.country)

    async def get_employees(self, filters: Mapping[str, Any] | None = None) -> list[Employee]:
        return await self.get(EntityKind.EMPLOYEE, filters)

    async def get_employee(self, employee_id: str) -> Employee | None:
        return await self.get_by_id(EntityKind.EMPLOYEE, employee_id)

    async def get_payments(self, filters: Mapping[str, Any] | None = None) -> list[Payment]:
        return await self.store.get_payments(self.country, add_country_filter(self.claim, filters))

    async def get_payment(self, payment_id: str) -> Payment | None:
        return await self.get_by_id(EntityKind.PAYMENT, payment_id)

    async def get_inventory(self, filters: Mapping[str, Any] | None = None) -> list[InventoryItem]:
        return await self.get(EntityKind.INVENTORY_ITEM, filters)

    async def get_inventory_item(self, item_id: str) -> InventoryItem | None:
        return await self.get_by_id(EntityKind.INVENTORY_ITEM, item_id)

    # ------------------------------------------------------------ aggregation

    async def project_full_expenses(self, project_id: str) -> ProjectExpenses | None:
        return await project_full_expenses(
            self.store, self.country, project_id, self.payroll.working_days_per_month
        )

    async def section_full_costs(self, section_id: str) -> SectionCosts | None:
        return await section_full_costs(
            self.store, self.country, section_id, self.payroll.working_days_per_month
        )

    async def project_details(self, project_id: str) -> ProjectDetails | None:
        return await project_details(self.store, self.country, project_id)

    async def dashboard(self) -> DashboardSummary:
        return await dashboard_summary(self.store, self.country, self.payroll.working_days_per_month)

    async def employee_balance(self, employee_id: str, as_of: datetime | None = None) -> EmployeeBalance | None:
        employee = await self.get_employee(employee_id)
        if employee is None:
            return None
        payments = await self.store.get_payments_by_employee(employee_id, self.country)
        return compute_employee_balance(employee, payments, as_of, self.payroll.days_per_month)

    async def payment_stats(
        self, start: datetime | str | None = None, end: datetime | str | None = None
    ) -> PaymentStats:
        return payment_stats(await self.get_payments(), start, end)

    async def spending_by_category(self) -> dict[str, Any]:
        return spending_by_category(await self.get_spendings())

    async def spending_timeline(self, range_: str = "month", as_of: datetime | None = None) -> list[dict[str, Any]]:
        return spending_timeline(await self.get_spendings(), range_, as_of)

    async def project_status_report(self) -> dict[str, Any]:
        return project_status_report(await self.get_projects())

    # ------------------------------------------------------------------ views

    async def payment_views(self, filters: Mapping[str, Any] | None = None) -> list[PaymentView]:
        return payment_views(
            await self.get_payments(filters),
            index_by_id(await self.get_employees()),
            index_by_id(await self.get_projects()),
            index_by_id(await self.get_sections()),
        )

    async def section_views(self, project_id: str | None = None) -> list[SectionView]:
        return section_views(await self.get_sections(project_id), index_by_id(await self.get_projects()))

    async def employee_views(self, with_balance: bool = False) -> list[EmployeeView]:
        payments = await self.get_payments() if with_balance else None
        return employee_views(
            await self.get_employees(),
            index_by_id(await self.get_sections()),
            index_by_id(await self.get_projects()),
            payments,
            self.payroll.days_per_month,
        )
