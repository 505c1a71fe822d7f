"""Enriched read views.

Each view pairs a stored record with names looked up from related records.
A reference that no longer resolves leaves the name as None.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from typing import Any

from buildledger.aggregation.balances import EmployeeBalance, compute_employee_balance
from buildledger.models import Employee, Payment, Project, Record, Section


def index_by_id(records: Iterable[Record]) -> dict[str, Record]:
    return {r.id: r for r in records}


def _name_of(lookup: Mapping[str, Any], key: str | None) -> str | None:
    if not key:
        return None
    record = lookup.get(key)
    return getattr(record, "name", None) if record is not None else None


@dataclass(frozen=True, slots=True)
class PaymentView:
    payment: Payment
    employee_name: str | None
    project_name: str | None
    section_name: str | None

    def to_dict(self) -> dict[str, Any]:
        return {
            **self.payment.to_document(),
            "employeeName": self.employee_name,
            "projectName": self.project_name,
            "sectionName": self.section_name,
        }


@dataclass(frozen=True, slots=True)
class SectionView:
    section: Section
    project_name: str | None

    def to_dict(self) -> dict[str, Any]:
        return {**self.section.to_document(), "projectName": self.project_name}


@dataclass(frozen=True, slots=True)
class EmployeeView:
    employee: Employee
    section_name: str | None
    project_name: str | None
    balance: EmployeeBalance | None = None

    def to_dict(self) -> dict[str, Any]:
        data = {
            **self.employee.to_document(),
            "sectionName": self.section_name,
            "projectName": self.project_name,
        }
        if self.balance is not None:
            data["balance"] = self.balance.to_dict()
        return data


def payment_views(
    payments: Iterable[Payment],
    employees: Mapping[str, Employee],
    projects: Mapping[str, Project],
    sections: Mapping[str, Section],
) -> list[PaymentView]:
    return [
        PaymentView(
            payment=p,
            employee_name=_name_of(employees, p.employee_id),
            project_name=_name_of(projects, p.project_id),
            section_name=_name_of(sections, p.section_id),
        )
        for p in payments
    ]


def section_views(sections: Iterable[Section], projects: Mapping[str, Project]) -> list[SectionView]:
    return [SectionView(section=s, project_name=_name_of(projects, s.project_id)) for s in sections]


def employee_views(
    employees: Iterable[Employee],
    sections: Mapping[str, Section],
    projects: Mapping[str, Project],
    payments: Iterable[Payment] | None = None,
    days_per_month: int = 30,
) -> list[EmployeeView]:
    """Employee views, with balances attached when payments are supplied.

    An employee without a direct project link inherits the project of their
    section.
    """
    payment_list = list(payments) if payments is not None else None
    views = []
    for emp in employees:
        project_id = emp.project_id
        if not project_id and emp.section_id and emp.section_id in sections:
            project_id = sections[emp.section_id].project_id
        balance = None
        if payment_list is not None:
            balance = compute_employee_balance(emp, payment_list, days_per_month=days_per_month)
        views.append(
            EmployeeView(
                employee=emp,
                section_name=_name_of(sections, emp.section_id),
                project_name=_name_of(projects, project_id),
                balance=balance,
            )
        )
    return views
