"""buildledger Pydantic models for type-safe record validation.

Field names are snake_case in Python and camelCase in stored documents.
Derived fields (section progress, payment currency legs, inventory value and
status) are recomputed on every validation pass, so whatever a caller sends
for them is overwritten.
"""

from __future__ import annotations

import math
from datetime import date, datetime, timezone
from enum import Enum
from typing import Annotated, Any
from uuid import uuid4

from pydantic import AfterValidator, BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel


class Country(str, Enum):
    """Branch partition key."""

    EGYPT = "egypt"
    LIBYA = "libya"


COUNTRIES: tuple[Country, ...] = (Country.EGYPT, Country.LIBYA)


class ProjectStatus(str, Enum):
    PLANNING = "planning"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class SectionStatus(str, Enum):
    NOT_STARTED = "not_started"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"


class SpendingCategory(str, Enum):
    MATERIALS = "materials"
    LABOR = "labor"
    EQUIPMENT = "equipment"
    OVERHEAD = "overhead"
    OTHER = "other"


class SpendingSource(str, Enum):
    """Where a spending row came from."""

    MANUAL = "manual"
    PAYMENT = "payment"
    INVENTORY = "inventory"


class EmployeeType(str, Enum):
    MONTHLY = "monthly"
    DAILY = "daily"


class PaymentType(str, Enum):
    SALARY = "salary"
    ADVANCE = "advance"
    LOAN = "loan"
    ON_ACCOUNT = "on_account"
    DAILY = "daily"


class Currency(str, Enum):
    EGP = "EGP"
    USD = "USD"
    SPLIT = "split"


class PaymentMethod(str, Enum):
    CASH = "cash"
    BANK_TRANSFER = "bank_transfer"
    CHECK = "check"
    OTHER = "other"


class InventoryStatus(str, Enum):
    IN_STOCK = "in_stock"
    LOW_STOCK = "low_stock"
    OUT_OF_STOCK = "out_of_stock"


class UserRole(str, Enum):
    ADMIN = "admin"
    MANAGER = "manager"
    USER = "user"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def new_id() -> str:
    return str(uuid4())


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def parse_timestamp(value: Any) -> datetime | None:
    """Parse an ISO-8601 string, date or datetime into an aware UTC datetime."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return _as_utc(value)
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day, tzinfo=timezone.utc)
    text = str(value).strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        return _as_utc(datetime.fromisoformat(text))
    except ValueError:
        return None


def round_half_up(value: float) -> int:
    """Round .5 away from zero for non-negative values (JS Math.round semantics)."""
    return int(math.floor(value + 0.5))


UtcDatetime = Annotated[datetime, AfterValidator(_as_utc)]


class Record(BaseModel):
    """Fields shared by every stored entity."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )

    id: str
    country: Country
    created_at: UtcDatetime
    updated_at: UtcDatetime

    def to_document(self) -> dict[str, Any]:
        """Stored (camelCase, JSON-safe) form of the record."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class Project(Record):
    """Construction project owned by one branch."""

    name: str = Field(min_length=1)
    description: str = ""
    budget: float = Field(default=0.0, ge=0)
    status: ProjectStatus = ProjectStatus.PLANNING
    start_date: UtcDatetime | None = None
    end_date: UtcDatetime | None = None
    created_by: str | None = None

    @model_validator(mode="after")
    def _check_dates(self) -> Project:
        if self.start_date and self.end_date and self.end_date < self.start_date:
            raise ValueError("endDate must not be before startDate")
        return self


class Section(Record):
    """Work package inside a project; progress is derived from quantities."""

    project_id: str = Field(min_length=1)
    name: str = Field(min_length=1)
    description: str = ""
    status: SectionStatus = SectionStatus.NOT_STARTED
    assigned_to: str | None = None
    budget: float = Field(default=0.0, ge=0)
    target_quantity: float = Field(default=0.0, ge=0)
    completed_quantity: float = Field(default=0.0, ge=0)
    progress: int = 0
    created_by: str | None = None

    @model_validator(mode="after")
    def _derive_progress(self) -> Section:
        if self.target_quantity > 0:
            raw = round_half_up(self.completed_quantity / self.target_quantity * 100)
            self.progress = max(0, min(100, raw))
        else:
            self.progress = 0
        return self


class Spending(Record):
    """Money spent on a project, entered directly or derived from another record."""

    project_id: str = Field(min_length=1)
    section_id: str | None = None
    amount: float = Field(ge=0)
    category: SpendingCategory = SpendingCategory.OTHER
    description: str = ""
    date: UtcDatetime = Field(default_factory=utcnow)
    source: SpendingSource = SpendingSource.MANUAL
    source_id: str | None = None
    created_by: str | None = None

    @field_validator("category", mode="before")
    @classmethod
    def _lower_category(cls, v: Any) -> Any:
        if isinstance(v, str):
            return v.strip().lower()
        return v


class User(Record):
    """Credential holder; (username, country) is unique."""

    name: str = ""
    username: str = Field(min_length=1)
    email: str | None = None
    password: str
    role: UserRole = UserRole.USER
    last_login: UtcDatetime | None = None

    @field_validator("username")
    @classmethod
    def _strip_username(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("username must not be blank")
        return v


class Employee(Record):
    """Branch employee paid monthly or per day."""

    name: str = Field(min_length=1)
    email: str | None = None
    phone: str | None = None
    employee_type: EmployeeType
    position: str = ""
    monthly_salary: float | None = Field(default=None, ge=0)
    daily_rate: float | None = Field(default=None, ge=0)
    currency: Currency = Currency.EGP
    active: bool = True
    hire_date: UtcDatetime = Field(default_factory=utcnow)
    notes: str | None = None
    section_id: str | None = None
    project_id: str | None = None
    created_by: str | None = None

    @model_validator(mode="before")
    @classmethod
    def _normalize_piecework(cls, data: Any) -> Any:
        # Legacy "piecework" employees are daily workers paid per unit of work
        if not isinstance(data, dict):
            return data
        type_key = "employeeType" if "employeeType" in data else "employee_type"
        if data.get(type_key) != "piecework":
            return data
        data = dict(data)
        data[type_key] = EmployeeType.DAILY.value
        rate_key = "dailyRate" if "dailyRate" in data else "daily_rate"
        piece_rate = data.pop("pieceworkRate", None) or data.pop("piecework_rate", None)
        if not data.get(rate_key) and piece_rate:
            data[rate_key] = piece_rate
        return data

    @model_validator(mode="after")
    def _check_pay_basis(self) -> Employee:
        if self.currency == Currency.SPLIT:
            raise ValueError("employee currency must be EGP or USD")
        if self.employee_type == EmployeeType.MONTHLY:
            if not self.monthly_salary or self.monthly_salary <= 0:
                raise ValueError("Monthly salary is required for monthly employees")
            self.daily_rate = None
        else:
            if not self.daily_rate or self.daily_rate <= 0:
                raise ValueError("Daily rate is required for daily employees")
            self.monthly_salary = None
        return self


class Payment(Record):
    """Money paid to one employee, optionally charged to a project."""

    employee_id: str = Field(min_length=1)
    payment_type: PaymentType
    amount: float | None = Field(default=None, ge=0)
    currency: Currency = Currency.EGP
    amount_egp: float | None = Field(default=None, ge=0, alias="amountEGP")
    amount_usd: float | None = Field(default=None, ge=0, alias="amountUSD")
    payment_method: PaymentMethod = PaymentMethod.CASH
    receipt_number: str | None = None
    description: str = ""
    payment_date: UtcDatetime = Field(default_factory=utcnow)
    project_id: str | None = None
    section_id: str | None = None
    work_quantity: float | None = Field(default=None, ge=0)
    work_unit: str | None = None
    daily_rate: float | None = Field(default=None, ge=0)
    approved_by: str | None = None
    created_by: str | None = None

    @model_validator(mode="after")
    def _derive_amounts(self) -> Payment:
        if self.payment_type == PaymentType.DAILY:
            if not self.work_quantity or self.work_quantity <= 0:
                raise ValueError("Work quantity is required for daily payments")
            if self.daily_rate:
                self.amount = self.work_quantity * self.daily_rate

        if self.currency == Currency.SPLIT:
            if not self.amount_egp or not self.amount_usd:
                raise ValueError("Both EGP and USD amounts are required for split payments")
            self.amount = self.amount_egp + self.amount_usd
        else:
            amount = self.amount or 0.0
            self.amount = amount
            if self.currency == Currency.EGP:
                self.amount_egp, self.amount_usd = amount, 0.0
            else:
                self.amount_egp, self.amount_usd = 0.0, amount
        return self

    @property
    def paid_egp(self) -> float:
        if self.amount_egp:
            return self.amount_egp
        return (self.amount or 0.0) if self.currency == Currency.EGP else 0.0

    @property
    def paid_usd(self) -> float:
        if self.amount_usd:
            return self.amount_usd
        return (self.amount or 0.0) if self.currency == Currency.USD else 0.0


class InventoryItem(Record):
    """Stock held by a branch, optionally allocated to a project."""

    name: str = Field(min_length=1)
    description: str = ""
    category: str = Field(min_length=1)
    quantity: float = Field(ge=0)
    unit: str = Field(min_length=1)
    unit_price: float = Field(ge=0)
    total_value: float = 0.0
    min_quantity: float = Field(default=0.0, ge=0)
    supplier: str = ""
    location: str = ""
    status: InventoryStatus = InventoryStatus.IN_STOCK
    project_id: str | None = None
    section_id: str | None = None

    @model_validator(mode="after")
    def _derive_stock(self) -> InventoryItem:
        self.total_value = self.quantity * self.unit_price
        self.status = inventory_status(self.quantity, self.min_quantity)
        return self


def inventory_status(quantity: float, min_quantity: float) -> InventoryStatus:
    if quantity == 0:
        return InventoryStatus.OUT_OF_STOCK
    if quantity <= min_quantity:
        return InventoryStatus.LOW_STOCK
    return InventoryStatus.IN_STOCK
