"""Unit tests for spending rows derived from payments and inventory."""

from __future__ import annotations

import pytest

from buildledger.aggregation.auto_spending import (
    payment_spending_category,
    spending_from_inventory,
    spending_from_payment,
)
from buildledger.models import InventoryItem, Payment, PaymentType, SpendingCategory, Spending


def test_salary_payment_becomes_labor_spending(make):
    payment = make(Payment, employee_id="e1", payment_type="salary", amount=500, project_id="P1")

    derived = spending_from_payment(payment, "Ahmed")

    assert derived["category"] == "labor"
    assert derived["projectId"] == "P1"
    assert derived["amount"] == 500
    assert derived["source"] == "payment"
    assert derived["sourceId"] == payment.id
    assert "Ahmed" in derived["description"]
    assert payment.id in derived["description"]


@pytest.mark.parametrize(
    "payment_type,expected",
    [
        (PaymentType.SALARY, SpendingCategory.LABOR),
        (PaymentType.DAILY, SpendingCategory.LABOR),
        (PaymentType.ADVANCE, SpendingCategory.OTHER),
        (PaymentType.LOAN, SpendingCategory.OTHER),
        (PaymentType.ON_ACCOUNT, SpendingCategory.OTHER),
    ],
)
def test_payment_categories(payment_type, expected):
    assert payment_spending_category(payment_type) == expected


def test_payment_without_project_is_not_mirrored(make):
    payment = make(Payment, employee_id="e1", payment_type="salary", amount=500)
    assert spending_from_payment(payment) is None


def test_zero_payment_is_not_mirrored(make):
    # Daily work log: quantity recorded, no money
    payment = make(Payment, employee_id="e1", payment_type="daily", work_quantity=3, project_id="P1")
    assert spending_from_payment(payment) is None


def test_split_payment_mirrors_total(make):
    payment = make(
        Payment, employee_id="e1", payment_type="on_account", currency="split",
        amount_egp=100, amount_usd=50, project_id="P1", section_id="S1",
    )

    derived = spending_from_payment(payment)

    assert derived["amount"] == 150
    assert derived["category"] == "other"
    assert derived["sectionId"] == "S1"
    assert "employee e1" in derived["description"]


def test_inventory_becomes_materials_spending(make):
    item = make(InventoryItem, name="Cement", category="building", quantity=10, unit="bag", unit_price=5, project_id="P1")

    derived = spending_from_inventory(item)

    assert derived["category"] == "materials"
    assert derived["amount"] == 50
    assert derived["source"] == "inventory"
    assert derived["description"].startswith("Inventory: Cement (10 bag)")


def test_unallocated_or_worthless_inventory_is_not_mirrored(make):
    unallocated = make(InventoryItem, name="Sand", category="building", quantity=10, unit="t", unit_price=5)
    empty = make(InventoryItem, name="Steel", category="building", quantity=0, unit="t", unit_price=5, project_id="P1")

    assert spending_from_inventory(unallocated) is None
    assert spending_from_inventory(empty) is None


def test_derived_payload_is_a_valid_spending(make):
    item = make(InventoryItem, name="Cement", category="building", quantity=2, unit="bag", unit_price=7.5, project_id="P1")

    spending = make(Spending, **spending_from_inventory(item))

    assert spending.amount == 15
    assert spending.source_id == item.id
