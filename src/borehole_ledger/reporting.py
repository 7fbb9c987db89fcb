"""Read-only rollups over the ledger.

Each report returns frozen dataclasses with one explicit field per column.
Date ranges are inclusive of both calendar days.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from typing import Dict, Iterable, List, Optional, Union

from . import log
from .constants import InvoiceStatus, ProjectStatus, TransactionType
from .data_manager import ClientRow, EmployeeRow, InvoiceRow, ProjectRow, TransactionRow
from .money import ZERO, invoice_balance, invoice_total_for, project_costs, quantize_money, total_paid
from .status_policy import display_status, is_overdue

DateLike = Union[date, datetime]


@dataclass(frozen=True)
class FinancialReportRow:
    transaction_date: date
    description: str
    category: str
    transaction_type: TransactionType
    amount: Decimal


@dataclass(frozen=True)
class FinancialReport:
    """Transactions in range with income positive and expenses negative."""

    start: date
    end: date
    rows: tuple[FinancialReportRow, ...]
    net: Decimal


@dataclass(frozen=True)
class ProfitAndLoss:
    start: date
    end: date
    total_income: Decimal
    expenses_by_category: Dict[str, Decimal]
    total_expenses: Decimal
    net: Decimal


@dataclass(frozen=True)
class ProjectProfitabilityRow:
    project_id: str
    project_name: str
    client_name: str
    status: ProjectStatus
    amount_received: Decimal
    material_costs: Decimal
    staff_costs: Decimal
    other_costs: Decimal
    total_costs: Decimal
    net_profit: Decimal


@dataclass(frozen=True)
class InvoiceSummaryRow:
    """One invoice with its money figures; ``status`` is the displayed status."""

    invoice_id: str
    invoice_number: str
    client_name: str
    invoice_date: date
    due_date: Optional[date]
    status: InvoiceStatus
    total: Decimal
    paid: Decimal
    balance: Decimal


@dataclass(frozen=True)
class StatementLine:
    entry_date: date
    description: str
    debit: Decimal
    credit: Decimal
    balance: Decimal


@dataclass(frozen=True)
class ClientStatement:
    client_id: str
    client_name: str
    lines: tuple[StatementLine, ...]
    closing_balance: Decimal


@dataclass(frozen=True)
class OutstandingInvoiceRow:
    invoice_id: str
    invoice_number: str
    client_name: str
    due_date: Optional[date]
    balance: Decimal
    is_overdue: bool
    days_overdue: int


@dataclass(frozen=True)
class EmployeePaymentRow:
    project_id: str
    project_name: str
    client_name: str
    project_role: str
    amount: Decimal


@dataclass(frozen=True)
class EmployeePaymentSummary:
    """What one employee has been allotted across every project."""

    employee_id: str
    employee_name: str
    rows: tuple[EmployeePaymentRow, ...]
    total: Decimal


@dataclass(frozen=True)
class MonthlyTotals:
    year: int
    month: int
    income: Decimal
    expense: Decimal

    @property
    def label(self) -> str:
        return date(self.year, self.month, 1).strftime("%b %Y")


@dataclass(frozen=True)
class DashboardSummary:
    """Headline figures: revenue, project counts and month-by-month cash flow.

    ``projects_by_status`` lists only statuses that occur, in enum order.
    ``monthly`` is sorted oldest month first.
    """

    total_revenue: Decimal
    projects_by_status: Dict[ProjectStatus, int]
    monthly: tuple[MonthlyTotals, ...]

    def project_count(self, status: ProjectStatus) -> int:
        return self.projects_by_status.get(status, 0)


def _as_date(value: DateLike) -> date:
    return value.date() if isinstance(value, datetime) else value


def _check_range(start: DateLike, end: DateLike) -> tuple[date, date]:
    start_day, end_day = _as_date(start), _as_date(end)
    if start_day > end_day:
        log.error("Report range is inverted: %s > %s", start_day, end_day)
        raise ValueError("Start date must not be after end date")
    return start_day, end_day


def in_date_range(value: DateLike, start: DateLike, end: DateLike) -> bool:
    """Return ``True`` when ``value`` falls on any day from ``start`` to ``end``.

    Timestamps are reduced to their calendar day, so anything from 00:00 on
    the first day through the last instant of the final day matches.
    """

    return _as_date(start) <= _as_date(value) <= _as_date(end)


def financial_report(transactions: Iterable[TransactionRow], start: DateLike, end: DateLike) -> FinancialReport:
    """List transactions in range, signing expenses negative."""

    start_day, end_day = _check_range(start, end)
    rows = []
    for transaction in transactions:
        if not in_date_range(transaction.transaction_date, start_day, end_day):
            continue
        amount = quantize_money(transaction.amount)
        if transaction.transaction_type == TransactionType.EXPENSE:
            amount = -amount
        rows.append(
            FinancialReportRow(
                transaction_date=transaction.transaction_date,
                description=transaction.description,
                category=transaction.category,
                transaction_type=transaction.transaction_type,
                amount=amount,
            )
        )
    net = quantize_money(sum((row.amount for row in rows), ZERO))
    return FinancialReport(start=start_day, end=end_day, rows=tuple(rows), net=net)


def profit_and_loss(transactions: Iterable[TransactionRow], start: DateLike, end: DateLike) -> ProfitAndLoss:
    """Summarise income and expenses in range.

    Expense categories keep the order in which they first appear.
    """

    start_day, end_day = _check_range(start, end)
    total_income = ZERO
    expenses: Dict[str, Decimal] = {}
    for transaction in transactions:
        if not in_date_range(transaction.transaction_date, start_day, end_day):
            continue
        if transaction.transaction_type == TransactionType.INCOME:
            total_income += transaction.amount
        else:
            expenses[transaction.category] = expenses.get(transaction.category, ZERO) + transaction.amount

    expenses = {category: quantize_money(amount) for category, amount in expenses.items()}
    total_income = quantize_money(total_income)
    total_expenses = quantize_money(sum(expenses.values(), ZERO))
    return ProfitAndLoss(
        start=start_day,
        end=end_day,
        total_income=total_income,
        expenses_by_category=expenses,
        total_expenses=total_expenses,
        net=total_income - total_expenses,
    )


def project_profitability(projects: Iterable[ProjectRow]) -> List[ProjectProfitabilityRow]:
    rows = []
    for project in projects:
        materials, staff, other = project_costs(project)
        total_costs = materials + staff + other
        received = quantize_money(project.amount_received)
        rows.append(
            ProjectProfitabilityRow(
                project_id=project.project_id,
                project_name=project.name,
                client_name=project.client_name,
                status=project.status,
                amount_received=received,
                material_costs=materials,
                staff_costs=staff,
                other_costs=other,
                total_costs=total_costs,
                net_profit=received - total_costs,
            )
        )
    return rows


def invoice_summary(
    invoices: Iterable[InvoiceRow],
    start: DateLike,
    end: DateLike,
    *,
    today: Optional[date] = None,
) -> List[InvoiceSummaryRow]:
    """Summarise invoices dated within the range.

    When ``today`` is given, unpaid invoices past their due date are shown
    as Overdue.
    """

    start_day, end_day = _check_range(start, end)
    rows = []
    for invoice in invoices:
        if not in_date_range(invoice.invoice_date, start_day, end_day):
            continue
        total = invoice_total_for(invoice)
        paid = total_paid(invoice.payments)
        rows.append(
            InvoiceSummaryRow(
                invoice_id=invoice.invoice_id,
                invoice_number=invoice.invoice_number,
                client_name=invoice.client_name,
                invoice_date=invoice.invoice_date,
                due_date=invoice.due_date,
                status=display_status(invoice, today),
                total=total,
                paid=paid,
                balance=total - paid,
            )
        )
    return rows


def client_statement(client: ClientRow, invoices: Iterable[InvoiceRow]) -> ClientStatement:
    """Merge a client's invoices (debits) and payments (credits) by date.

    On the same day an invoice is listed before the payments made against
    it. The running balance accumulates ``debit - credit`` down the list.
    """

    entries: list[tuple[date, int, int, str, Decimal, Decimal]] = []
    for position, invoice in enumerate(inv for inv in invoices if inv.client_id == client.client_id):
        entries.append((invoice.invoice_date, position, 0, f"Invoice #{invoice.invoice_number}", invoice_total_for(invoice), ZERO))
        for payment in invoice.payments:
            entries.append(
                (
                    payment.payment_date,
                    position,
                    1,
                    f"Payment for Invoice #{invoice.invoice_number} ({payment.method.value})",
                    ZERO,
                    quantize_money(payment.amount),
                )
            )
    entries.sort(key=lambda entry: (entry[0], entry[1], entry[2]))

    balance = ZERO
    lines = []
    for entry_date, _, _, description, debit, credit in entries:
        balance += debit - credit
        lines.append(StatementLine(entry_date=entry_date, description=description, debit=debit, credit=credit, balance=balance))

    return ClientStatement(client_id=client.client_id, client_name=client.name, lines=tuple(lines), closing_balance=balance)


def outstanding_invoices(invoices: Iterable[InvoiceRow], today: date) -> List[OutstandingInvoiceRow]:
    """List invoices that still owe money, oldest due date first.

    Drafts are excluded because they have not been issued.
    """

    rows = []
    for invoice in invoices:
        if invoice.status == InvoiceStatus.DRAFT:
            continue
        balance = invoice_balance(invoice)
        if balance <= ZERO:
            continue
        overdue = is_overdue(invoice, today)
        rows.append(
            OutstandingInvoiceRow(
                invoice_id=invoice.invoice_id,
                invoice_number=invoice.invoice_number,
                client_name=invoice.client_name,
                due_date=invoice.due_date,
                balance=balance,
                is_overdue=overdue,
                days_overdue=(today - invoice.due_date).days if overdue and invoice.due_date else 0,
            )
        )
    rows.sort(key=lambda row: (row.due_date is None, row.due_date or today))
    return rows


def employee_payment_summary(employee: EmployeeRow, projects: Iterable[ProjectRow]) -> EmployeePaymentSummary:
    """Collect the employee's paid staff assignments, one row per project.

    Assignments with a zero payment amount are left out.
    """

    rows = []
    for project in projects:
        for assignment in project.staff:
            if assignment.employee_id != employee.employee_id or assignment.payment_amount <= 0:
                continue
            rows.append(
                EmployeePaymentRow(
                    project_id=project.project_id,
                    project_name=project.name,
                    client_name=project.client_name,
                    project_role=assignment.project_role,
                    amount=quantize_money(assignment.payment_amount),
                )
            )
    total = quantize_money(sum((row.amount for row in rows), ZERO))
    return EmployeePaymentSummary(
        employee_id=employee.employee_id,
        employee_name=employee.name,
        rows=tuple(rows),
        total=total,
    )


def dashboard_summary(projects: Iterable[ProjectRow], transactions: Iterable[TransactionRow]) -> DashboardSummary:
    """Summarise all-time revenue, project counts and monthly income/expense."""

    counts: Dict[ProjectStatus, int] = {}
    for project in projects:
        counts[project.status] = counts.get(project.status, 0) + 1
    by_status = {status: counts[status] for status in ProjectStatus if status in counts}

    revenue = ZERO
    months: Dict[tuple[int, int], list[Decimal]] = {}
    for transaction in transactions:
        day = _as_date(transaction.transaction_date)
        bucket = months.setdefault((day.year, day.month), [ZERO, ZERO])
        if transaction.transaction_type == TransactionType.INCOME:
            revenue += transaction.amount
            bucket[0] += transaction.amount
        else:
            bucket[1] += transaction.amount

    monthly = tuple(
        MonthlyTotals(year=year, month=month, income=quantize_money(income), expense=quantize_money(expense))
        for (year, month), (income, expense) in sorted(months.items())
    )
    return DashboardSummary(total_revenue=quantize_money(revenue), projects_by_status=by_status, monthly=monthly)


__all__ = [
    "FinancialReportRow",
    "FinancialReport",
    "ProfitAndLoss",
    "ProjectProfitabilityRow",
    "InvoiceSummaryRow",
    "StatementLine",
    "ClientStatement",
    "OutstandingInvoiceRow",
    "EmployeePaymentRow",
    "EmployeePaymentSummary",
    "MonthlyTotals",
    "DashboardSummary",
    "in_date_range",
    "financial_report",
    "profit_and_loss",
    "project_profitability",
    "invoice_summary",
    "client_statement",
    "outstanding_invoices",
    "employee_payment_summary",
    "dashboard_summary",
]
