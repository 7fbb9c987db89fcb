"""Money math shared by the ledger engine, reporting and the CLI.

Every figure is a :class:`~decimal.Decimal` quantized to cents with
``ROUND_HALF_UP``. Callers must go through these helpers instead of summing
amounts themselves so totals agree to the cent across the application.
"""

from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal
from typing import Iterable, Optional

from .data_manager import InvoiceRow, LineItem, Material, Payment, ProjectRow


CENT = Decimal("0.01")
ZERO = Decimal("0.00")
HUNDRED = Decimal("100")


def quantize_money(value: Optional[Decimal]) -> Decimal:
    """Round ``value`` to cents; ``None`` counts as zero."""

    if value is None:
        return ZERO
    return Decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def invoice_subtotal(line_items: Iterable[LineItem]) -> Decimal:
    """Return ``Σ quantity × rate`` over the line items."""

    subtotal = sum((item.quantity * item.rate for item in line_items), Decimal("0"))
    return quantize_money(subtotal)


def invoice_total(line_items: Iterable[LineItem], tax_rate: Decimal, discount_amount: Decimal) -> Decimal:
    """Compute the amount due for an invoice.

    The fixed discount comes off the subtotal before tax is applied:
    ``(subtotal - discount) * (1 + tax_rate / 100)``. Negative discounts or tax
    rates are not rejected here; input validation happens in the business
    layer.

    Args:
        line_items (Iterable[LineItem]): Billable lines.
        tax_rate (Decimal): Tax percentage, e.g. ``Decimal("10")`` for 10 %.
        discount_amount (Decimal): Fixed discount in currency units.

    Returns:
        Decimal: Total rounded to cents.
    """

    net = invoice_subtotal(line_items) - (discount_amount or ZERO)
    return quantize_money(net * (Decimal("1") + (tax_rate or ZERO) / HUNDRED))


def total_paid(payments: Optional[Iterable[Payment]]) -> Decimal:
    """Sum payment amounts; a missing or empty list yields zero."""

    if not payments:
        return ZERO
    return quantize_money(sum((payment.amount for payment in payments), Decimal("0")))


def invoice_total_for(invoice: InvoiceRow) -> Decimal:
    return invoice_total(invoice.line_items, invoice.tax_rate, invoice.discount_amount)


def invoice_paid_for(invoice: InvoiceRow) -> Decimal:
    return total_paid(invoice.payments)


def invoice_balance(invoice: InvoiceRow) -> Decimal:
    """Outstanding amount; negative when the invoice is overpaid."""

    return invoice_total_for(invoice) - invoice_paid_for(invoice)


def material_cost(material: Material) -> Decimal:
    return quantize_money(material.quantity * material.unit_cost)


def project_costs(project: ProjectRow) -> tuple[Decimal, Decimal, Decimal]:
    """Return ``(materials, staff, other)`` cost totals for a project."""

    materials = sum((material_cost(m) for m in project.materials), ZERO)
    staff = sum((s.payment_amount for s in project.staff), ZERO)
    other = sum((e.amount for e in project.other_expenses), ZERO)
    return quantize_money(materials), quantize_money(staff), quantize_money(other)
