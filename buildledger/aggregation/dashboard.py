"""Branch dashboard and report aggregates.

Everything here works on one branch's full data set loaded into memory;
there is no pagination at the aggregation step.
"""

from __future__ import annotations

from collections import Counter, defaultdict
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import datetime
from typing import TYPE_CHECKING, Any

from buildledger.aggregation.expenses import WORKING_DAYS_PER_MONTH, estimate_monthly_salary_cost, utilization
from buildledger.models import (
    Country,
    InventoryStatus,
    Payment,
    PaymentType,
    Project,
    ProjectStatus,
    Spending,
    SpendingCategory,
    parse_timestamp,
    utcnow,
)

if TYPE_CHECKING:
    from buildledger.storage.store import RecordStore

TIMELINE_RANGES = ("month", "quarter", "year")


@dataclass(slots=True)
class DashboardSummary:
    country: Country
    overview: dict[str, float]
    projects: dict[str, int]
    sections: dict[str, float]
    employees: dict[str, float]
    inventory: dict[str, float]
    payments: dict[str, float]
    expense_breakdown: dict[str, float]
    generated_at: datetime = field(default_factory=utcnow)

    def to_dict(self) -> dict[str, Any]:
        return {
            "country": self.country.value,
            "overview": self.overview,
            "projects": self.projects,
            "sections": self.sections,
            "employees": self.employees,
            "inventory": self.inventory,
            "payments": self.payments,
            "expenseBreakdown": self.expense_breakdown,
            "generatedAt": self.generated_at.isoformat(),
        }


async def dashboard_summary(
    store: RecordStore,
    country: Country | str,
    working_days: int = WORKING_DAYS_PER_MONTH,
) -> DashboardSummary:
    """Whole-branch totals for the integration dashboard.

    Total expenses are direct spendings plus inventory value plus payments;
    the monthly payroll estimate is reported alongside but not added in.
    """
    branch = Country(country)
    projects = await store.get_projects(branch)
    sections = await store.get_sections(branch)
    spendings = await store.get_spendings(branch)
    employees = await store.get_employees(branch)
    payments = await store.get_payments(branch)
    inventory = await store.get_inventory(branch)

    total_budget = sum(p.budget for p in projects)
    direct = sum(s.amount for s in spendings)
    inventory_costs = sum(i.total_value for i in inventory)
    payments_costs = sum(p.amount or 0.0 for p in payments)
    salary_costs = estimate_monthly_salary_cost(employees, working_days)
    total_expenses = direct + inventory_costs + payments_costs

    statuses = Counter(p.status for p in projects)
    avg_progress = round(sum(s.progress for s in sections) / len(sections), 1) if sections else 0.0

    return DashboardSummary(
        country=branch,
        overview={
            "totalBudget": total_budget,
            "totalExpenses": total_expenses,
            "remainingBudget": total_budget - total_expenses,
            "budgetUtilization": utilization(total_expenses, total_budget),
        },
        projects={
            "total": len(projects),
            "completed": statuses[ProjectStatus.COMPLETED],
            "inProgress": statuses[ProjectStatus.IN_PROGRESS],
            "notStarted": statuses[ProjectStatus.PLANNING],
            "cancelled": statuses[ProjectStatus.CANCELLED],
        },
        sections={"total": len(sections), "avgProgress": avg_progress},
        employees={
            "total": len(employees),
            "active": sum(1 for e in employees if e.active),
            "monthlySalaryCosts": salary_costs,
        },
        inventory={
            "totalItems": len(inventory),
            "totalValue": inventory_costs,
            "lowStock": sum(1 for i in inventory if i.status == InventoryStatus.LOW_STOCK),
            "outOfStock": sum(1 for i in inventory if i.status == InventoryStatus.OUT_OF_STOCK),
        },
        payments={"total": len(payments), "totalAmount": payments_costs},
        expense_breakdown={
            "directSpendings": direct,
            "inventoryCosts": inventory_costs,
            "paymentsCosts": payments_costs,
            "salaryCosts": salary_costs,
        },
    )


@dataclass(slots=True)
class PaymentStats:
    total_payments: int
    total_egp: float
    total_usd: float
    by_type: dict[str, int]

    def to_dict(self) -> dict[str, Any]:
        return {
            "totalPayments": self.total_payments,
            "totalAmountEGP": self.total_egp,
            "totalAmountUSD": self.total_usd,
            "paymentsByType": self.by_type,
        }


def payment_stats(
    payments: Iterable[Payment],
    start: datetime | str | None = None,
    end: datetime | str | None = None,
) -> PaymentStats:
    """Totals per currency and counts per payment type, optionally within a date range."""
    lower = parse_timestamp(start)
    upper = parse_timestamp(end)

    selected = [
        p for p in payments
        if (lower is None or p.payment_date >= lower) and (upper is None or p.payment_date <= upper)
    ]
    by_type = {t.value: 0 for t in PaymentType}
    for p in selected:
        by_type[p.payment_type.value] += 1

    return PaymentStats(
        total_payments=len(selected),
        total_egp=sum(p.paid_egp for p in selected),
        total_usd=sum(p.paid_usd for p in selected),
        by_type=by_type,
    )


def spending_by_category(spendings: Iterable[Spending]) -> dict[str, Any]:
    """Spending totals per category with the largest category called out."""
    totals = {c.value: 0.0 for c in SpendingCategory}
    for s in spendings:
        totals[s.category.value] += s.amount

    grand_total = sum(totals.values())
    highest = max(totals, key=totals.get)
    return {
        "categories": totals,
        "total": grand_total,
        "highestCategory": highest if grand_total > 0 else None,
        "highestAmount": totals[highest],
        "highestPercentage": utilization(totals[highest], grand_total),
    }


def _bucket(when: datetime, range_: str) -> str:
    if range_ == "month":
        return when.strftime("%Y-%m-%d")
    if range_ == "quarter":
        year, week, _ = when.isocalendar()
        return f"{year}-W{week:02d}"
    return when.strftime("%Y-%m")


def _in_window(when: datetime, as_of: datetime, range_: str) -> bool:
    if when.year != as_of.year:
        return False
    if range_ == "month":
        return when.month == as_of.month
    if range_ == "quarter":
        return (when.month - 1) // 3 == (as_of.month - 1) // 3
    return True


def spending_timeline(
    spendings: Iterable[Spending],
    range_: str = "month",
    as_of: datetime | None = None,
) -> list[dict[str, Any]]:
    """Spending totals over the current month (per day), quarter (per ISO week) or year (per month).

    Raises:
        ValueError: for a range other than month, quarter or year
    """
    if range_ not in TIMELINE_RANGES:
        raise ValueError(f"Unknown timeline range {range_!r}; expected one of {', '.join(TIMELINE_RANGES)}")
    as_of = parse_timestamp(as_of) or utcnow()

    buckets: dict[str, float] = defaultdict(float)
    for s in spendings:
        if _in_window(s.date, as_of, range_):
            buckets[_bucket(s.date, range_)] += s.amount

    return [{"period": period, "amount": buckets[period]} for period in sorted(buckets)]


def project_status_report(projects: Iterable[Project]) -> dict[str, Any]:
    projects = list(projects)
    statuses = Counter(p.status for p in projects)
    total = len(projects)
    completed = statuses[ProjectStatus.COMPLETED]
    return {
        "total": total,
        "completed": completed,
        "inProgress": statuses[ProjectStatus.IN_PROGRESS],
        "notStarted": statuses[ProjectStatus.PLANNING],
        "cancelled": statuses[ProjectStatus.CANCELLED],
        "completionRate": round(completed / total * 100, 2) if total else 0.0,
    }
