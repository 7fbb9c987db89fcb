"""Unit tests for the read-only report builders."""

from __future__ import annotations

from dataclasses import replace
from datetime import date, datetime, timedelta
from decimal import Decimal

import pytest

from borehole_ledger import reporting
from borehole_ledger.constants import InvoiceStatus, PaymentMethod, ProjectStatus, TransactionType
from borehole_ledger.data_manager import Material, OtherExpense, Payment, StaffAssignment, TransactionRow

from conftest import TODAY, build_client, build_employee, build_invoice, build_lines, build_payment, build_project


def _tx(day: date, amount: str, kind: TransactionType, category: str, description: str = "entry") -> TransactionRow:
    return TransactionRow(
        transaction_id=f"tx-{day.isoformat()}-{amount}",
        transaction_date=day,
        description=description,
        category=category,
        transaction_type=kind,
        amount=Decimal(amount),
    )


@pytest.fixture
def june_transactions() -> list[TransactionRow]:
    return [
        _tx(date(2024, 5, 31), "999", TransactionType.INCOME, "Client Payment"),
        _tx(date(2024, 6, 1), "1500", TransactionType.INCOME, "Client Payment", "Payment for Invoice #INV-2024-001"),
        _tx(date(2024, 6, 3), "200", TransactionType.EXPENSE, "Payroll"),
        _tx(date(2024, 6, 10), "80.50", TransactionType.EXPENSE, "Fuel"),
        _tx(date(2024, 6, 30), "19.50", TransactionType.EXPENSE, "Payroll"),
        _tx(date(2024, 7, 1), "50", TransactionType.EXPENSE, "Fuel"),
    ]


# ---------------------------------------------------------------------------
# Date filtering
# ---------------------------------------------------------------------------


def test_in_date_range_is_inclusive_of_both_days():
    assert reporting.in_date_range(date(2024, 6, 1), date(2024, 6, 1), date(2024, 6, 30))
    assert reporting.in_date_range(date(2024, 6, 30), date(2024, 6, 1), date(2024, 6, 30))
    assert not reporting.in_date_range(date(2024, 7, 1), date(2024, 6, 1), date(2024, 6, 30))


def test_in_date_range_covers_the_whole_final_day():
    """A timestamp late on the end date still falls inside the range."""

    assert reporting.in_date_range(datetime(2024, 6, 30, 23, 59, 59), date(2024, 6, 1), datetime(2024, 6, 30, 0, 0))


@pytest.mark.parametrize(
    "report",
    [reporting.financial_report, reporting.profit_and_loss],
)
def test_inverted_range_is_rejected(report):
    with pytest.raises(ValueError, match="Start date"):
        report([], date(2024, 7, 1), date(2024, 6, 1))


# ---------------------------------------------------------------------------
# Financial report and profit and loss
# ---------------------------------------------------------------------------


def test_financial_report_signs_expenses_negative(june_transactions):
    report = reporting.financial_report(june_transactions, date(2024, 6, 1), date(2024, 6, 30))

    assert [row.amount for row in report.rows] == [
        Decimal("1500.00"),
        Decimal("-200.00"),
        Decimal("-80.50"),
        Decimal("-19.50"),
    ]
    assert report.rows[0].description == "Payment for Invoice #INV-2024-001"
    assert report.net == Decimal("1200.00")


def test_profit_and_loss_groups_expenses_by_category(june_transactions):
    pnl = reporting.profit_and_loss(june_transactions, date(2024, 6, 1), date(2024, 6, 30))

    assert pnl.total_income == Decimal("1500.00")
    assert pnl.expenses_by_category == {"Payroll": Decimal("219.50"), "Fuel": Decimal("80.50")}
    assert list(pnl.expenses_by_category) == ["Payroll", "Fuel"]
    assert pnl.total_expenses == Decimal("300.00")
    assert pnl.net == Decimal("1200.00")


def test_profit_and_loss_with_no_activity():
    pnl = reporting.profit_and_loss([], date(2024, 1, 1), date(2024, 1, 31))
    assert pnl.total_income == pnl.total_expenses == pnl.net == Decimal("0.00")
    assert pnl.expenses_by_category == {}


# ---------------------------------------------------------------------------
# Project profitability
# ---------------------------------------------------------------------------


def test_project_profitability_breaks_down_costs():
    project = replace(
        build_project("p1", client_id="c1"),
        client_name="Acme Farms",
        status=ProjectStatus.IN_PROGRESS,
        amount_received=Decimal("2000"),
        materials=(Material("m1", "PVC casing", Decimal("10"), Decimal("45.50")),),
        staff=(StaffAssignment("e1", "Ama Mensah", "Driller", Decimal("600")),),
        other_expenses=(OtherExpense("x1", "Rig transport", Decimal("150")),),
    )

    [row] = reporting.project_profitability([project])

    assert row.client_name == "Acme Farms"
    assert (row.material_costs, row.staff_costs, row.other_costs) == (
        Decimal("455.00"),
        Decimal("600.00"),
        Decimal("150.00"),
    )
    assert row.total_costs == Decimal("1205.00")
    assert row.net_profit == Decimal("795.00")


def test_project_without_income_shows_a_loss():
    project = replace(build_project("p2"), other_expenses=(OtherExpense("x1", "Survey", Decimal("75")),))
    [row] = reporting.project_profitability([project])
    assert row.net_profit == Decimal("-75.00")


# ---------------------------------------------------------------------------
# Invoice summary and outstanding invoices
# ---------------------------------------------------------------------------


def _issued(number: str, *, due_date, payments=(), status=InvoiceStatus.SENT):
    invoice = build_invoice(
        client_id="c1",
        invoice_id=f"inv-{number}",
        number=number,
        status=status,
        lines=build_lines(("1", "100")),
        payments=payments,
        due_date=due_date,
    )
    return replace(invoice, client_name="Acme Farms")


def test_invoice_summary_shows_overdue_at_read_time():
    late = _issued("INV-2024-001", due_date=TODAY - timedelta(days=3), payments=[build_payment("25")])
    current = _issued("INV-2024-002", due_date=TODAY + timedelta(days=10))

    rows = reporting.invoice_summary([late, current], date(2024, 6, 1), date(2024, 6, 30), today=TODAY)

    assert [row.status for row in rows] == [InvoiceStatus.OVERDUE, InvoiceStatus.SENT]
    assert (rows[0].total, rows[0].paid, rows[0].balance) == (Decimal("100.00"), Decimal("25.00"), Decimal("75.00"))
    assert late.status == InvoiceStatus.SENT


def test_invoice_summary_without_today_keeps_stored_status():
    late = _issued("INV-2024-001", due_date=TODAY - timedelta(days=3))
    [row] = reporting.invoice_summary([late], date(2024, 6, 1), date(2024, 6, 30))
    assert row.status == InvoiceStatus.SENT


def test_invoice_summary_filters_by_invoice_date():
    june = _issued("INV-2024-001", due_date=None)
    may = replace(_issued("INV-2024-002", due_date=None), invoice_date=date(2024, 5, 20))
    rows = reporting.invoice_summary([june, may], date(2024, 6, 1), date(2024, 6, 30))
    assert [row.invoice_number for row in rows] == ["INV-2024-001"]


def test_outstanding_invoices_sorted_by_due_date():
    drafts = replace(_issued("INV-2024-009", due_date=TODAY - timedelta(days=40)), status=InvoiceStatus.DRAFT)
    settled = _issued("INV-2024-004", due_date=TODAY - timedelta(days=20), payments=[build_payment("100")])
    open_late = _issued("INV-2024-001", due_date=TODAY - timedelta(days=12))
    open_later = _issued("INV-2024-002", due_date=TODAY + timedelta(days=5))
    no_due = _issued("INV-2024-003", due_date=None)

    rows = reporting.outstanding_invoices([no_due, open_later, settled, drafts, open_late], TODAY)

    assert [row.invoice_number for row in rows] == ["INV-2024-001", "INV-2024-002", "INV-2024-003"]
    assert rows[0].is_overdue and rows[0].days_overdue == 12
    assert not rows[1].is_overdue and rows[1].days_overdue == 0
    assert rows[2].balance == Decimal("100.00")


# ---------------------------------------------------------------------------
# Client statement
# ---------------------------------------------------------------------------


def test_client_statement_runs_balance_in_date_order():
    client = build_client("c1")
    first = replace(
        _issued("INV-2024-001", due_date=None),
        invoice_date=date(2024, 6, 1),
        payments=(
            Payment("pay-1", date(2024, 6, 1), Decimal("40"), PaymentMethod.CASH),
            Payment("pay-2", date(2024, 6, 20), Decimal("60"), PaymentMethod.CHECK, check_number="0042"),
        ),
    )
    second = replace(_issued("INV-2024-002", due_date=None), invoice_date=date(2024, 6, 10))
    someone_else = replace(_issued("INV-2024-003", due_date=None), client_id="c2")

    statement = reporting.client_statement(client, [second, someone_else, first])

    assert [line.description for line in statement.lines] == [
        "Invoice #INV-2024-001",
        "Payment for Invoice #INV-2024-001 (Cash)",
        "Invoice #INV-2024-002",
        "Payment for Invoice #INV-2024-001 (Check)",
    ]
    assert [line.balance for line in statement.lines] == [
        Decimal("100.00"),
        Decimal("60.00"),
        Decimal("160.00"),
        Decimal("100.00"),
    ]
    assert statement.closing_balance == Decimal("100.00")
    assert statement.client_name == "Acme Farms"


def test_client_statement_for_client_without_invoices():
    statement = reporting.client_statement(build_client("c9"), [])
    assert statement.lines == ()
    assert statement.closing_balance == Decimal("0.00")


# ---------------------------------------------------------------------------
# Employee payments and dashboard
# ---------------------------------------------------------------------------


def test_employee_payment_summary_lists_paid_assignments():
    employee = build_employee("e1")
    well = replace(
        build_project("p1", client_id="c1"),
        client_name="Acme Farms",
        staff=(
            StaffAssignment("e1", "Ama Mensah", "Driller", Decimal("300")),
            StaffAssignment("e2", "Kofi Boateng", "Helper", Decimal("120")),
        ),
    )
    school = replace(
        build_project("p2", client_id="c2", name="School Well"),
        client_name="District School",
        staff=(StaffAssignment("e1", "Ama Mensah", "Supervisor", Decimal("150.25")),),
    )
    unpaid = replace(build_project("p3"), staff=(StaffAssignment("e1", "Ama Mensah", "Driller", Decimal("0")),))

    summary = reporting.employee_payment_summary(employee, [well, school, unpaid])

    assert summary.employee_name == "Ama Mensah"
    assert [(row.project_name, row.client_name, row.project_role, row.amount) for row in summary.rows] == [
        ("Village Borehole", "Acme Farms", "Driller", Decimal("300.00")),
        ("School Well", "District School", "Supervisor", Decimal("150.25")),
    ]
    assert summary.total == Decimal("450.25")


def test_employee_without_assignments_has_empty_summary():
    summary = reporting.employee_payment_summary(build_employee("e9"), [build_project("p1")])
    assert summary.rows == ()
    assert summary.total == Decimal("0.00")


def test_dashboard_summary_counts_projects_and_buckets_months(june_transactions):
    projects = [
        build_project("p1", status=ProjectStatus.IN_PROGRESS),
        build_project("p2"),
        build_project("p3", status=ProjectStatus.IN_PROGRESS),
        build_project("p4", status=ProjectStatus.COMPLETED),
    ]

    summary = reporting.dashboard_summary(projects, june_transactions)

    assert summary.total_revenue == Decimal("2499.00")
    assert summary.projects_by_status == {
        ProjectStatus.PLANNED: 1,
        ProjectStatus.IN_PROGRESS: 2,
        ProjectStatus.COMPLETED: 1,
    }
    assert summary.project_count(ProjectStatus.ON_HOLD) == 0
    assert [(m.label, m.income, m.expense) for m in summary.monthly] == [
        ("May 2024", Decimal("999.00"), Decimal("0.00")),
        ("Jun 2024", Decimal("1500.00"), Decimal("300.00")),
        ("Jul 2024", Decimal("0.00"), Decimal("50.00")),
    ]


def test_dashboard_summary_with_no_data():
    summary = reporting.dashboard_summary([], [])
    assert summary.total_revenue == Decimal("0.00")
    assert summary.projects_by_status == {}
    assert summary.monthly == ()
