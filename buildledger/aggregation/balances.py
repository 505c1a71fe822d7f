"""Employee balance: what an employee has earned versus what was paid out.

Always computed from the current payment records and never stored.
"""

from __future__ import annotations

import math
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import datetime

from buildledger.models import Employee, EmployeeType, Payment, PaymentType, utcnow


@dataclass(slots=True)
class EmployeeBalance:
    """Point-in-time earnings and payments for one employee."""

    employee_id: str
    employee_type: EmployeeType
    total_earned: float
    total_paid_egp: float
    total_paid_usd: float
    payment_count: int
    # Months credited for monthly staff, summed work quantity for daily staff
    months_worked: int | None = None
    work_quantity: float | None = None
    assigned_project_ids: list[str] = field(default_factory=list)

    @property
    def total_paid(self) -> float:
        return self.total_paid_egp + self.total_paid_usd

    @property
    def balance(self) -> float:
        return self.total_earned - self.total_paid

    def to_dict(self) -> dict:
        return {
            "employeeId": self.employee_id,
            "employeeType": self.employee_type.value,
            "totalEarned": self.total_earned,
            "totalPaidEGP": self.total_paid_egp,
            "totalPaidUSD": self.total_paid_usd,
            "totalPaid": self.total_paid,
            "balance": self.balance,
            "paymentCount": self.payment_count,
            "monthsWorked": self.months_worked,
            "workQuantity": self.work_quantity,
            "assignedProjectIds": list(self.assigned_project_ids),
        }


def months_since_hire(hire_date: datetime, as_of: datetime, days_per_month: int = 30) -> int:
    """Whole months between hire and `as_of`, never less than one."""
    days = (as_of - hire_date).total_seconds() / 86400
    return max(1, math.floor(days / days_per_month))


def compute_employee_balance(
    employee: Employee,
    payments: Iterable[Payment],
    as_of: datetime | None = None,
    days_per_month: int = 30,
) -> EmployeeBalance:
    """Compute earned, paid and outstanding amounts for an employee.

    Monthly staff earn their salary for every whole month since hire (at
    least one). Daily staff earn their rate times the work quantity logged
    on their daily-type payments. Payments made to other employees are
    ignored.

    Args:
        employee: The employee record
        payments: Payments to consider, typically the branch's payments
        as_of: Reference time for months-since-hire (default: now)
        days_per_month: Length of a month for the months-since-hire count

    Returns:
        EmployeeBalance with totals per currency
    """
    own = [p for p in payments if p.employee_id == employee.id]

    paid_egp = sum(p.paid_egp for p in own)
    paid_usd = sum(p.paid_usd for p in own)

    projects: list[str] = []
    for p in own:
        if p.project_id and p.project_id not in projects:
            projects.append(p.project_id)

    result = EmployeeBalance(
        employee_id=employee.id,
        employee_type=employee.employee_type,
        total_earned=0.0,
        total_paid_egp=paid_egp,
        total_paid_usd=paid_usd,
        payment_count=len(own),
        assigned_project_ids=projects,
    )

    if employee.employee_type == EmployeeType.MONTHLY:
        months = months_since_hire(employee.hire_date, as_of or utcnow(), days_per_month)
        result.months_worked = months
        result.total_earned = (employee.monthly_salary or 0.0) * months
    else:
        quantity = sum(p.work_quantity or 0.0 for p in own if p.payment_type == PaymentType.DAILY)
        result.work_quantity = quantity
        result.total_earned = (employee.daily_rate or 0.0) * quantity

    return result
