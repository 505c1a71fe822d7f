"""Integration tests for cost rollups, the dashboard and employee balances."""

from __future__ import annotations

from datetime import datetime, timezone

import pytest
import pytest_asyncio

from buildledger.storage.kinds import EntityKind


@pytest_asyncio.fixture()
async def tower(egypt):
    """One egypt project with two sections, payroll, spendings and stock.

    - project budget 10000
    - section S: 18 of 30 done (60%), budget 5000; section T: 5 of 10 (50%)
    - spendings: 1000 on the project, 200 on section S
    - employees in S: monthly 3000 (active), daily 100 (soft-deleted)
    - salary payment of 500 and a 10 x 5 stock item, both linked to the project
    """
    project = await egypt.create(EntityKind.PROJECT, {"name": "Cairo Tower", "budget": 10000, "status": "in_progress"})
    s = await egypt.create(
        EntityKind.SECTION,
        {"projectId": project.id, "name": "S", "targetQuantity": 30, "completedQuantity": 18, "budget": 5000},
    )
    t = await egypt.create(
        EntityKind.SECTION, {"projectId": project.id, "name": "T", "targetQuantity": 10, "completedQuantity": 5}
    )
    await egypt.create(EntityKind.SPENDING, {"projectId": project.id, "amount": 1000, "category": "equipment"})
    await egypt.create(EntityKind.SPENDING, {"projectId": project.id, "sectionId": s.id, "amount": 200})

    foreman = await egypt.create(
        EntityKind.EMPLOYEE, {"name": "Hany", "employeeType": "monthly", "monthlySalary": 3000, "sectionId": s.id}
    )
    laborer = await egypt.create(
        EntityKind.EMPLOYEE, {"name": "Omar", "employeeType": "daily", "dailyRate": 100, "sectionId": s.id}
    )
    await egypt.delete(EntityKind.EMPLOYEE, laborer.id)

    await egypt.create(
        EntityKind.PAYMENT,
        {"employeeId": foreman.id, "paymentType": "salary", "amount": 500, "projectId": project.id},
    )
    await egypt.create(
        EntityKind.INVENTORY_ITEM,
        {"name": "Cement", "category": "building", "quantity": 10, "unit": "bag", "unitPrice": 5, "projectId": project.id},
    )
    return {"project": project, "s": s, "t": t, "foreman": foreman}


@pytest.mark.asyncio
async def test_project_full_expenses(egypt, tower):
    expenses = await egypt.project_full_expenses(tower["project"].id)

    # Direct spendings include the two derived ones (500 payment, 50 stock)
    assert expenses.direct_spendings == 1750
    assert expenses.inventory_costs == 50
    assert expenses.payments_costs == 500
    assert expenses.salary_costs == 3000
    assert expenses.total_expenses == 5300
    assert expenses.remaining_budget == 4700
    assert expenses.budget_utilization == 53.0

    data = expenses.to_dict()
    assert data["breakdown"] == {
        "spendingsCount": 4,
        "inventoryItemsCount": 1,
        "paymentsCount": 1,
        "employeesCount": 2,
    }
    assert "details" not in expenses.to_dict(include_details=False)


@pytest.mark.asyncio
async def test_section_full_costs(egypt, tower):
    costs = await egypt.section_full_costs(tower["s"].id)

    assert costs.spendings == 200
    assert costs.salary_costs == 3000
    assert costs.total_costs == 3200
    assert costs.remaining_budget == 1800
    assert {e["name"] for e in costs.to_dict()["employees"]} == {"Hany", "Omar"}


@pytest.mark.asyncio
async def test_project_details(egypt, tower):
    details = await egypt.project_details(tower["project"].id)

    assert details.total_spent == 1750
    assert details.remaining_budget == 8250
    assert details.budget_utilization == 17.5
    assert details.actual_progress == 55

    data = details.to_dict()
    assert data["name"] == "Cairo Tower"
    assert data["sectionsCount"] == 2
    assert data["spendingsCount"] == 4


@pytest.mark.asyncio
async def test_dashboard(egypt, tower):
    summary = await egypt.dashboard()

    assert summary.overview["totalBudget"] == 10000
    assert summary.overview["totalExpenses"] == 2300
    assert summary.overview["budgetUtilization"] == 23.0
    assert summary.projects["inProgress"] == 1
    assert summary.sections == {"total": 2, "avgProgress": 55.0}
    assert summary.employees == {"total": 2, "active": 1, "monthlySalaryCosts": 3000}
    assert summary.inventory["totalValue"] == 50
    assert summary.expense_breakdown["salaryCosts"] == 3000
    assert summary.to_dict()["country"] == "egypt"


@pytest.mark.asyncio
async def test_dashboard_is_branch_local(libya, tower):
    summary = await libya.dashboard()

    assert summary.overview["totalExpenses"] == 0
    assert summary.overview["budgetUtilization"] == 0.0
    assert summary.sections["avgProgress"] == 0.0


@pytest.mark.asyncio
async def test_missing_parents_yield_none(egypt, libya, tower):
    assert await egypt.project_full_expenses("missing") is None
    assert await egypt.section_full_costs("missing") is None
    assert await egypt.project_details("missing") is None
    assert await libya.project_full_expenses(tower["project"].id) is None


@pytest.mark.asyncio
async def test_daily_employee_balance(egypt):
    emp = await egypt.create(EntityKind.EMPLOYEE, {"name": "Omar", "employeeType": "daily", "dailyRate": 100})
    await egypt.create(EntityKind.PAYMENT, {"employeeId": emp.id, "paymentType": "daily", "workQuantity": 5})

    balance = await egypt.employee_balance(emp.id)
    assert balance.work_quantity == 5
    assert balance.total_earned == 500
    assert balance.balance == 500

    await egypt.create(EntityKind.PAYMENT, {"employeeId": emp.id, "paymentType": "advance", "amount": 200})

    balance = await egypt.employee_balance(emp.id)
    assert balance.total_paid == 200
    assert balance.balance == 300
    assert balance.payment_count == 2


@pytest.mark.asyncio
async def test_monthly_employee_balance(egypt):
    emp = await egypt.create(
        EntityKind.EMPLOYEE,
        {"name": "Hany", "employeeType": "monthly", "monthlySalary": 3000, "hireDate": "2024-01-01T00:00:00Z"},
    )
    await egypt.create(EntityKind.PAYMENT, {"employeeId": emp.id, "paymentType": "salary", "amount": 3000})

    balance = await egypt.employee_balance(emp.id, as_of=datetime(2024, 3, 1, tzinfo=timezone.utc))

    assert balance.months_worked == 2
    assert balance.total_earned == 6000
    assert balance.balance == 3000


@pytest.mark.asyncio
async def test_balance_for_other_branch_employee(egypt, libya):
    emp = await egypt.create(EntityKind.EMPLOYEE, {"name": "Omar", "employeeType": "daily", "dailyRate": 100})

    assert await libya.employee_balance(emp.id) is None


@pytest.mark.asyncio
async def test_views_resolve_names(egypt, tower):
    [payment] = await egypt.payment_views()
    assert payment.employee_name == "Hany"
    assert payment.project_name == "Cairo Tower"

    sections = await egypt.section_views(tower["project"].id)
    assert {v.project_name for v in sections} == {"Cairo Tower"}

    employees = {v.employee.name: v for v in await egypt.employee_views(with_balance=True)}
    assert employees["Hany"].section_name == "S"
    assert employees["Hany"].project_name == "Cairo Tower"
    assert employees["Hany"].balance.total_paid == 500


@pytest.mark.asyncio
async def test_reports(egypt, tower):
    assert (await egypt.payment_stats()).by_type["salary"] == 1

    by_category = await egypt.spending_by_category()
    assert by_category["total"] == 1750
    assert by_category["highestCategory"] == "equipment"

    status = await egypt.project_status_report()
    assert status["inProgress"] == 1
    assert status["completionRate"] == 0.0

    timeline = await egypt.spending_timeline("year")
    assert sum(bucket["amount"] for bucket in timeline) == 1750
