"""Project and section cost rollups.

Rollups join spendings, inventory, payments and employees for one branch.
Auto-derived spendings are not subtracted here, so a project-linked payment
is counted once as a spending and once as a payment in the full-expense
view. Budget utilisation in `project_details` uses direct spendings only.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from buildledger.models import (
    Country,
    Employee,
    EmployeeType,
    InventoryItem,
    Payment,
    Project,
    Section,
    Spending,
    round_half_up,
)

if TYPE_CHECKING:
    from buildledger.storage.store import RecordStore

logger = logging.getLogger(__name__)

WORKING_DAYS_PER_MONTH = 22


def estimate_monthly_salary_cost(
    employees: Iterable[Employee], working_days: int = WORKING_DAYS_PER_MONTH
) -> float:
    """Monthly payroll estimate over active employees."""
    total = 0.0
    for emp in employees:
        if not emp.active:
            continue
        if emp.employee_type == EmployeeType.MONTHLY and emp.monthly_salary:
            total += emp.monthly_salary
        elif emp.employee_type == EmployeeType.DAILY and emp.daily_rate:
            total += emp.daily_rate * working_days
    return total


def utilization(spent: float, budget: float) -> float:
    """Percentage of budget spent, one decimal place; 0 without a budget."""
    if budget <= 0:
        return 0.0
    return round(spent / budget * 100, 1)


@dataclass(slots=True)
class ProjectExpenses:
    """Full-expense rollup for one project."""

    project: Project
    direct_spendings: float
    inventory_costs: float
    payments_costs: float
    salary_costs: float
    spendings: list[Spending] = field(default_factory=list)
    inventory: list[InventoryItem] = field(default_factory=list)
    payments: list[Payment] = field(default_factory=list)
    employees: list[Employee] = field(default_factory=list)

    @property
    def total_expenses(self) -> float:
        return self.direct_spendings + self.inventory_costs + self.payments_costs + self.salary_costs

    @property
    def remaining_budget(self) -> float:
        return self.project.budget - self.total_expenses

    @property
    def budget_utilization(self) -> float:
        return utilization(self.total_expenses, self.project.budget)

    @property
    def breakdown(self) -> dict[str, int]:
        return {
            "spendingsCount": len(self.spendings),
            "inventoryItemsCount": len(self.inventory),
            "paymentsCount": len(self.payments),
            "employeesCount": len(self.employees),
        }

    def to_dict(self, include_details: bool = True) -> dict:
        data = {
            "project": {
                "id": self.project.id,
                "name": self.project.name,
                "budget": self.project.budget,
                "status": self.project.status.value,
            },
            "expenses": {
                "directSpendings": self.direct_spendings,
                "inventoryCosts": self.inventory_costs,
                "paymentsCosts": self.payments_costs,
                "salaryCosts": self.salary_costs,
                "totalExpenses": self.total_expenses,
                "remainingBudget": self.remaining_budget,
                "budgetUtilization": self.budget_utilization,
            },
            "breakdown": self.breakdown,
        }
        if include_details:
            data["details"] = {
                "spendings": [s.to_document() for s in self.spendings],
                "inventory": [i.to_document() for i in self.inventory],
                "payments": [p.to_document() for p in self.payments],
                "employees": [e.to_document() for e in self.employees],
            }
        return data


@dataclass(slots=True)
class SectionCosts:
    """Spendings plus estimated payroll for one section."""

    section: Section
    spendings: float
    salary_costs: float
    employees: list[Employee] = field(default_factory=list)

    @property
    def total_costs(self) -> float:
        return self.spendings + self.salary_costs

    @property
    def remaining_budget(self) -> float:
        return self.section.budget - self.total_costs

    def to_dict(self) -> dict:
        return {
            "section": {
                "id": self.section.id,
                "name": self.section.name,
                "projectId": self.section.project_id,
                "budget": self.section.budget,
                "progress": self.section.progress,
            },
            "costs": {
                "spendings": self.spendings,
                "salaryCosts": self.salary_costs,
                "totalCosts": self.total_costs,
                "remainingBudget": self.remaining_budget,
            },
            "employees": [
                {
                    "id": emp.id,
                    "name": emp.name,
                    "position": emp.position,
                    "employeeType": emp.employee_type.value,
                    "salary": emp.monthly_salary if emp.employee_type == EmployeeType.MONTHLY else emp.daily_rate,
                }
                for emp in self.employees
            ],
        }


@dataclass(slots=True)
class ProjectDetails:
    """Project detail view: direct spending against budget and section progress."""

    project: Project
    sections: list[Section]
    spendings: list[Spending]

    @property
    def total_spent(self) -> float:
        return sum(s.amount for s in self.spendings)

    @property
    def remaining_budget(self) -> float:
        return self.project.budget - self.total_spent

    @property
    def budget_utilization(self) -> float:
        return utilization(self.total_spent, self.project.budget)

    @property
    def actual_progress(self) -> int:
        if not self.sections:
            return 0
        return round_half_up(sum(s.progress for s in self.sections) / len(self.sections))

    def to_dict(self) -> dict:
        return {
            **self.project.to_document(),
            "sections": [s.to_document() for s in self.sections],
            "spendings": [s.to_document() for s in self.spendings],
            "totalSpent": self.total_spent,
            "remainingBudget": self.remaining_budget,
            "budgetUtilization": self.budget_utilization,
            "actualProgress": self.actual_progress,
            "sectionsCount": len(self.sections),
            "spendingsCount": len(self.spendings),
        }


async def project_full_expenses(
    store: RecordStore,
    country: Country | str,
    project_id: str,
    working_days: int = WORKING_DAYS_PER_MONTH,
) -> ProjectExpenses | None:
    """Roll up every cost charged to a project in one branch.

    Salary cost covers active employees assigned to any of the project's
    sections. Returns None when the project is not in this branch.
    """
    project = await store.get_project(project_id, country)
    if project is None:
        logger.info("Project %s not found in %s; no expenses to roll up", project_id, country)
        return None

    spendings = await store.get_spendings(country, project_id=project_id)
    inventory = await store.get_inventory_by_project(country, project_id)
    payments = await store.get_payments_by_project(country, project_id)

    employees: list[Employee] = []
    for section in await store.get_sections(country, project_id=project_id):
        employees.extend(await store.get_employees_by_section(country, section.id))

    return ProjectExpenses(
        project=project,
        direct_spendings=sum(s.amount for s in spendings),
        inventory_costs=sum(i.total_value for i in inventory),
        payments_costs=sum(p.amount or 0.0 for p in payments),
        salary_costs=estimate_monthly_salary_cost(employees, working_days),
        spendings=spendings,
        inventory=inventory,
        payments=payments,
        employees=employees,
    )


async def section_full_costs(
    store: RecordStore,
    country: Country | str,
    section_id: str,
    working_days: int = WORKING_DAYS_PER_MONTH,
) -> SectionCosts | None:
    """Spendings and estimated monthly payroll for one section."""
    section = await store.get_section(section_id, country)
    if section is None:
        logger.info("Section %s not found in %s; no costs to roll up", section_id, country)
        return None

    spendings = await store.get_spendings(country, section_id=section_id)
    employees = await store.get_employees_by_section(country, section_id)

    return SectionCosts(
        section=section,
        spendings=sum(s.amount for s in spendings),
        salary_costs=estimate_monthly_salary_cost(employees, working_days),
        employees=employees,
    )


async def project_details(store: RecordStore, country: Country | str, project_id: str) -> ProjectDetails | None:
    project = await store.get_project(project_id, country)
    if project is None:
        return None
    sections = await store.get_sections(country, project_id=project_id)
    spendings = await store.get_spendings(country, project_id=project_id)
    return ProjectDetails(project=project, sections=sections, spendings=spendings)
