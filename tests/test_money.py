"""Unit tests for the shared money helpers."""

from __future__ import annotations

from dataclasses import replace
from decimal import Decimal

from borehole_ledger import money
from borehole_ledger.data_manager import Material, OtherExpense, StaffAssignment

from conftest import build_client, build_invoice, build_lines, build_payment, build_project


def test_invoice_total_applies_tax_after_subtotal():
    """Two lines (3 @ 100, 1 @ 50) with 10% tax should total 385.00."""

    lines = build_lines(("3", "100"), ("1", "50"))
    assert money.invoice_subtotal(lines) == Decimal("350.00")
    assert money.invoice_total(lines, Decimal("10"), Decimal("0")) == Decimal("385.00")


def test_invoice_total_takes_discount_before_tax():
    """The fixed discount should come off before tax is applied."""

    lines = build_lines(("1", "100"))
    assert money.invoice_total(lines, Decimal("10"), Decimal("10")) == Decimal("99.00")


def test_invoice_total_rounds_half_up_to_cents():
    """Fractions of a cent should round half up."""

    lines = build_lines(("1", "0.005"))
    assert money.invoice_total(lines, Decimal("0"), Decimal("0")) == Decimal("0.01")
    assert money.quantize_money(Decimal("2.675")) == Decimal("2.68")


def test_invoice_total_does_not_reject_negative_inputs():
    """Negative discounts are passed through; validation lives elsewhere."""

    lines = build_lines(("1", "100"))
    assert money.invoice_total(lines, Decimal("0"), Decimal("-20")) == Decimal("120.00")


def test_invoice_total_with_no_lines_is_zero():
    assert money.invoice_total((), Decimal("15"), Decimal("0")) == Decimal("0.00")


def test_total_paid_handles_missing_and_empty_lists():
    assert money.total_paid(None) == Decimal("0.00")
    assert money.total_paid([]) == Decimal("0.00")


def test_total_paid_sums_amounts():
    payments = [build_payment("100.10"), build_payment("0.20"), build_payment("49.70")]
    assert money.total_paid(payments) == Decimal("150.00")


def test_invoice_balance_goes_negative_when_overpaid():
    """Overpayments are kept, so the balance can drop below zero."""

    invoice = build_invoice(
        client_id=build_client("c1").client_id,
        lines=build_lines(("1", "100")),
        payments=[build_payment("120")],
    )
    assert money.invoice_balance(invoice) == Decimal("-20.00")


def test_project_costs_split_by_line_kind():
    """project_costs should report material, staff and other totals separately."""

    project = replace(
        build_project("p1"),
        materials=(Material("m1", "PVC casing", Decimal("4"), Decimal("12.50")),),
        staff=(StaffAssignment("e1", "Ama", "Driller", Decimal("500")),),
        other_expenses=(OtherExpense("x1", "Fuel", Decimal("80.25")),),
    )
    assert money.project_costs(project) == (Decimal("50.00"), Decimal("500.00"), Decimal("80.25"))
