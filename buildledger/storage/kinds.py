"""Entity kinds known to the record store and how each one is laid out."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from buildledger.models import (
    Employee,
    InventoryItem,
    Payment,
    Project,
    Record,
    Section,
    Spending,
    User,
)


class EntityKind(str, Enum):
    PROJECT = "project"
    SECTION = "section"
    SPENDING = "spending"
    USER = "user"
    EMPLOYEE = "employee"
    PAYMENT = "payment"
    INVENTORY_ITEM = "inventory_item"


@dataclass(frozen=True, slots=True)
class KindSpec:
    kind: EntityKind
    stem: str
    schema: type[Record]
    # One file per country; otherwise a single shared file filtered on `country`
    file_partitioned: bool
    soft_delete: bool = False

    def file_name(self, country: str | None) -> str:
        if self.file_partitioned:
            return f"{self.stem}_{country}.json"
        return f"{self.stem}.json"


KIND_SPECS: dict[EntityKind, KindSpec] = {
    EntityKind.PROJECT: KindSpec(EntityKind.PROJECT, "projects", Project, True),
    EntityKind.SECTION: KindSpec(EntityKind.SECTION, "sections", Section, True),
    EntityKind.SPENDING: KindSpec(EntityKind.SPENDING, "spendings", Spending, False),
    EntityKind.USER: KindSpec(EntityKind.USER, "users", User, False),
    EntityKind.EMPLOYEE: KindSpec(EntityKind.EMPLOYEE, "employees", Employee, True, soft_delete=True),
    EntityKind.PAYMENT: KindSpec(EntityKind.PAYMENT, "payments", Payment, True),
    EntityKind.INVENTORY_ITEM: KindSpec(EntityKind.INVENTORY_ITEM, "inventory", InventoryItem, True),
}


def kind_spec(kind: EntityKind | str) -> KindSpec:
    """Resolve a kind (enum member or its value) to its layout spec."""
    try:
        return KIND_SPECS[EntityKind(kind)]
    except ValueError:
        raise ValueError(f"Unknown entity kind: {kind!r}") from None
