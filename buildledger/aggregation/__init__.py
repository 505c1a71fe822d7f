"""Derived financial views computed across entity collections."""

from buildledger.aggregation.auto_spending import spending_from_inventory, spending_from_payment
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
    estimate_monthly_salary_cost,
    project_details,
    project_full_expenses,
    section_full_costs,
)

__all__ = [
    "DashboardSummary",
    "EmployeeBalance",
    "PaymentStats",
    "ProjectDetails",
    "ProjectExpenses",
    "SectionCosts",
    "compute_employee_balance",
    "dashboard_summary",
    "estimate_monthly_salary_cost",
    "payment_stats",
    "project_details",
    "project_full_expenses",
    "project_status_report",
    "section_full_costs",
    "spending_by_category",
    "spending_from_inventory",
    "spending_from_payment",
    "spending_timeline",
]
