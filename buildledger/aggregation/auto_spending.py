"""Spending rows synthesised from payments and inventory items.

The spending collection is the single place that answers "how much money
went into this project", so money leaving through payroll or stock
allocation is mirrored there once, at creation time. Later edits to the
originating record do not touch the mirrored row.
"""

from __future__ import annotations

from typing import Any

from buildledger.models import (
    InventoryItem,
    Payment,
    PaymentType,
    SpendingCategory,
    SpendingSource,
)

LABOR_PAYMENT_TYPES = frozenset({PaymentType.SALARY, PaymentType.DAILY})


def payment_spending_category(payment_type: PaymentType) -> SpendingCategory:
    if payment_type in LABOR_PAYMENT_TYPES:
        return SpendingCategory.LABOR
    return SpendingCategory.OTHER


def spending_from_payment(payment: Payment, employee_name: str | None = None) -> dict[str, Any] | None:
    """Spending payload mirroring a project-linked payment, or None."""
    if not payment.project_id or not payment.amount or payment.amount <= 0:
        return None

    payee = employee_name or f"employee {payment.employee_id}"
    return {
        "projectId": payment.project_id,
        "sectionId": payment.section_id,
        "amount": payment.amount,
        "category": payment_spending_category(payment.payment_type).value,
        "description": f"Payment ({payment.payment_type.value}) to {payee} [{payment.id}]",
        "date": payment.payment_date.isoformat(),
        "country": payment.country.value,
        "source": SpendingSource.PAYMENT.value,
        "sourceId": payment.id,
        "createdBy": payment.created_by,
    }


def spending_from_inventory(item: InventoryItem) -> dict[str, Any] | None:
    """Spending payload for stock allocated to a project, or None."""
    if not item.project_id or item.total_value <= 0:
        return None

    quantity = f"{item.quantity:g}"
    return {
        "projectId": item.project_id,
        "sectionId": item.section_id,
        "amount": item.total_value,
        "category": SpendingCategory.MATERIALS.value,
        "description": f"Inventory: {item.name} ({quantity} {item.unit}) [{item.id}]",
        "date": item.created_at.isoformat(),
        "country": item.country.value,
        "source": SpendingSource.INVENTORY.value,
        "sourceId": item.id,
    }
