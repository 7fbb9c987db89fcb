"""Ledger consistency engine.

Every mutation that touches more than one entity is planned here. A planner
receives a :class:`LedgerSnapshot` of the current records plus the caller's
payload and returns a :class:`LedgerResult`: the primary entity and a
:class:`ChangeSet` listing every record to upsert or delete so that
invoices, payments, projects and transactions stay mutually consistent.

Planners are pure. They never read repositories or write anything, so the
application service can apply a change set as one unit and roll it back as a
whole if a write fails.

Transactions carrying a ``source_id`` are mirrors. An invoice mirror repeats
the invoice's paid total; a project mirror repeats one material, staff or
expense line. Mirrors are always regenerated from their owner, never patched.
"""

from __future__ import annotations

import uuid
from collections import defaultdict
from dataclasses import dataclass, field, replace
from datetime import UTC, date, datetime
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Optional, Sequence

from . import log
from .constants import (
    CLIENT_PAYMENT_CATEGORY,
    DEFAULT_INVOICE_PREFIX,
    PAYROLL_CATEGORY,
    PROJECT_EXPENSE_CATEGORY,
    InvoiceStatus,
    PaymentMethod,
    SheetName,
    TransactionType,
)
from .data_manager import (
    ClientRow,
    EmployeeRow,
    InvoiceRow,
    Payment,
    ProjectRow,
    StaffAssignment,
    TransactionRow,
)
from .money import ZERO, invoice_total, material_cost, quantize_money, total_paid
from .numbering import next_invoice_number
from .status_policy import advance_project_status, derive_invoice_status, normalize_incoming_status, status_after_payment


class BusinessRuleViolation(Exception):
    """Raised when a requested operation violates a domain constraint."""


class MissingReferenceError(BusinessRuleViolation):
    """Raised when a referenced client, employee, project, invoice or transaction is unknown."""


class ManagedTransactionError(BusinessRuleViolation):
    """Raised when a mirrored transaction is edited or deleted directly.

    Mirrors are managed automatically; the remedy is to change the owning
    invoice or project, not to retry.
    """


class OverpaymentConfirmationRequired(BusinessRuleViolation):
    """Raised when a payment exceeds the invoice balance without confirmation."""

    def __init__(self, invoice_id: str, amount: Decimal, balance: Decimal) -> None:
        super().__init__(
            f"Payment of {amount} exceeds the balance of {balance} on invoice '{invoice_id}'; "
            "confirm the overpayment to record it"
        )
        self.invoice_id = invoice_id
        self.amount = amount
        self.balance = balance


@dataclass(frozen=True)
class LedgerSnapshot:
    """Consistent view of every entity collection at the start of an operation."""

    clients: tuple[ClientRow, ...] = ()
    employees: tuple[EmployeeRow, ...] = ()
    projects: tuple[ProjectRow, ...] = ()
    invoices: tuple[InvoiceRow, ...] = ()
    transactions: tuple[TransactionRow, ...] = ()

    def client(self, client_id: str) -> Optional[ClientRow]:
        return next((c for c in self.clients if c.client_id == client_id), None)

    def employee(self, employee_id: str) -> Optional[EmployeeRow]:
        return next((e for e in self.employees if e.employee_id == employee_id), None)

    def project(self, project_id: str) -> Optional[ProjectRow]:
        return next((p for p in self.projects if p.project_id == project_id), None)

    def invoice(self, invoice_id: str) -> Optional[InvoiceRow]:
        return next((i for i in self.invoices if i.invoice_id == invoice_id), None)

    def transaction(self, transaction_id: str) -> Optional[TransactionRow]:
        return next((t for t in self.transactions if t.transaction_id == transaction_id), None)

    def transactions_for_sources(self, source_ids: Iterable[str]) -> List[TransactionRow]:
        wanted = set(source_ids)
        return [t for t in self.transactions if t.source_id is not None and t.source_id in wanted]


@dataclass
class ChangeSet:
    """Records to upsert and keys to delete, grouped by entity kind.

    Upserting a key cancels an earlier delete of the same key and vice versa,
    so a change set never both writes and removes one record.
    """

    upserts: Dict[SheetName, Dict[str, Any]] = field(default_factory=lambda: defaultdict(dict))
    deletes: Dict[SheetName, Dict[str, None]] = field(default_factory=lambda: defaultdict(dict))

    def upsert(self, kind: SheetName, record: Any) -> None:
        self.deletes[kind].pop(record.key, None)
        self.upserts[kind][record.key] = record

    def delete(self, kind: SheetName, key: str) -> None:
        self.upserts[kind].pop(key, None)
        self.deletes[kind][key] = None

    def saved(self, kind: SheetName) -> List[Any]:
        return list(self.upserts.get(kind, {}).values())

    def deleted(self, kind: SheetName) -> List[str]:
        return list(self.deletes.get(kind, {}).keys())

    def kinds(self) -> List[SheetName]:
        return [kind for kind in SheetName if self.upserts.get(kind) or self.deletes.get(kind)]

    @property
    def is_empty(self) -> bool:
        return not self.kinds()


@dataclass(frozen=True)
class LedgerResult:
    """Primary entity of an operation plus every write needed to keep the ledger consistent."""

    entity: Any
    changes: ChangeSet


@dataclass(frozen=True)
class MirrorLine:
    """Expense mirror derived from one project line."""

    source_id: str
    description: str
    amount: Decimal
    category: str


# ---------------------------------------------------------------------------
# Identifiers
# ---------------------------------------------------------------------------


def generate_id(prefix: str, *, when: Optional[datetime] = None) -> str:
    """Generate a sortable identifier such as ``inv-20240105101500123456-1a2b3c``.

    The timestamp keeps ids roughly chronological; the random suffix avoids
    collisions when one operation creates several records in the same
    microsecond.
    """

    when = when or datetime.now(UTC)
    return f"{prefix}-{when.strftime('%Y%m%d%H%M%S%f')}-{uuid.uuid4().hex[:6]}"


def staff_source_id(project_id: str, employee_id: str) -> str:
    """Mirror key for a staff assignment, which has no row id of its own."""

    return f"staff-{project_id}-{employee_id}"


def mirror_transaction_id(source_id: str) -> str:
    return f"mirror-{source_id}"


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------


def require_nonnegative(amount: Decimal, label: str) -> None:
    """Validate that a monetary or quantity value is not negative.

    Raises:
        ValueError: If ``amount`` is less than zero.
    """

    if amount < Decimal("0"):
        log.error("%s validation failed: %s", label, amount)
        raise ValueError(f"{label} must be zero or positive")


def validate_payment(payment: Payment) -> None:
    """Reject non-positive amounts and cheques without a number.

    Raises:
        ValueError: When the payment fails validation.
    """

    if payment.amount <= Decimal("0"):
        log.error("Payment amount validation failed: %s", payment.amount)
        raise ValueError("Payment amount must be greater than zero")
    if payment.method == PaymentMethod.CHECK and not (payment.check_number or "").strip():
        log.error("Check payment '%s' has no check number", payment.payment_id)
        raise ValueError("Check payments require a check number")


def validate_invoice(invoice: InvoiceRow) -> None:
    """Check amounts and embedded payments before anything is written.

    Raises:
        ValueError: On negative quantities, rates, tax or discount, or on an
            invalid payment.
    """

    require_nonnegative(invoice.tax_rate, "Tax rate")
    require_nonnegative(invoice.discount_amount, "Discount amount")
    for item in invoice.line_items:
        require_nonnegative(item.quantity, "Line item quantity")
        require_nonnegative(item.rate, "Line item rate")
    for payment in invoice.payments:
        validate_payment(payment)
    if len({p.payment_id for p in invoice.payments}) != len(invoice.payments):
        raise ValueError("Payment ids must be unique within an invoice")


def validate_project_lines(project: ProjectRow) -> None:
    """Check line amounts and id uniqueness for a project's detail lists.

    Raises:
        ValueError: On negative amounts or duplicate line ids.
    """

    require_nonnegative(project.total_budget, "Total budget")
    for material in project.materials:
        require_nonnegative(material.quantity, "Material quantity")
        require_nonnegative(material.unit_cost, "Material unit cost")
    for assignment in project.staff:
        require_nonnegative(assignment.payment_amount, "Staff payment amount")
    for expense in project.other_expenses:
        require_nonnegative(expense.amount, "Expense amount")

    line_ids = [m.material_id for m in project.materials] + [e.expense_id for e in project.other_expenses]
    if len(set(line_ids)) != len(line_ids):
        raise ValueError(f"Project '{project.project_id}' has duplicate material or expense ids")
    employee_ids = [s.employee_id for s in project.staff]
    if len(set(employee_ids)) != len(employee_ids):
        raise ValueError(f"Project '{project.project_id}' assigns the same employee twice")


def _require_client(snapshot: LedgerSnapshot, client_id: str) -> ClientRow:
    client = snapshot.client(client_id)
    if client is None:
        log.warning("Client lookup failed for id '%s'", client_id)
        raise MissingReferenceError(f"Unknown client id: {client_id}")
    return client


def _require_project(snapshot: LedgerSnapshot, project_id: str) -> ProjectRow:
    project = snapshot.project(project_id)
    if project is None:
        log.warning("Project lookup failed for id '%s'", project_id)
        raise MissingReferenceError(f"Unknown project id: {project_id}")
    return project


def _require_invoice(snapshot: LedgerSnapshot, invoice_id: str) -> InvoiceRow:
    invoice = snapshot.invoice(invoice_id)
    if invoice is None:
        log.warning("Invoice lookup failed for id '%s'", invoice_id)
        raise MissingReferenceError(f"Unknown invoice id: {invoice_id}")
    return invoice


def _require_employee(snapshot: LedgerSnapshot, employee_id: str) -> EmployeeRow:
    employee = snapshot.employee(employee_id)
    if employee is None:
        log.warning("Employee lookup failed for id '%s'", employee_id)
        raise MissingReferenceError(f"Unknown employee id: {employee_id}")
    return employee


# ---------------------------------------------------------------------------
# Mirrors and rollups
# ---------------------------------------------------------------------------


def project_mirror_lines(project: ProjectRow) -> List[MirrorLine]:
    """Describe the expense mirror each material, staff and expense line needs."""

    lines: List[MirrorLine] = []
    for material in project.materials:
        lines.append(
            MirrorLine(
                source_id=material.material_id,
                description=f"Material: {material.name} for project {project.name}",
                amount=material_cost(material),
                category=PROJECT_EXPENSE_CATEGORY,
            )
        )
    for assignment in project.staff:
        lines.append(
            MirrorLine(
                source_id=staff_source_id(project.project_id, assignment.employee_id),
                description=f"Staff: {assignment.employee_name} ({assignment.project_role}) for project {project.name}",
                amount=quantize_money(assignment.payment_amount),
                category=PAYROLL_CATEGORY,
            )
        )
    for expense in project.other_expenses:
        lines.append(
            MirrorLine(
                source_id=expense.expense_id,
                description=f"Expense: {expense.description} for project {project.name}",
                amount=quantize_money(expense.amount),
                category=PROJECT_EXPENSE_CATEGORY,
            )
        )
    return lines


def project_source_ids(project: ProjectRow) -> List[str]:
    return [line.source_id for line in project_mirror_lines(project)]


def build_invoice_mirror(invoice: InvoiceRow, paid: Decimal) -> TransactionRow:
    """Income mirror carrying an invoice's full paid total."""

    return TransactionRow(
        transaction_id=mirror_transaction_id(invoice.invoice_id),
        transaction_date=invoice.invoice_date,
        description=f"Payment for Invoice #{invoice.invoice_number}",
        category=CLIENT_PAYMENT_CATEGORY,
        transaction_type=TransactionType.INCOME,
        amount=paid,
        source_id=invoice.invoice_id,
        is_read_only=True,
    )


def build_expense_mirror(line: MirrorLine, *, transaction_date: date) -> TransactionRow:
    return TransactionRow(
        transaction_id=mirror_transaction_id(line.source_id),
        transaction_date=transaction_date,
        description=line.description,
        category=line.category,
        transaction_type=TransactionType.EXPENSE,
        amount=line.amount,
        source_id=line.source_id,
        is_read_only=True,
    )


def amount_received_for(invoices: Iterable[InvoiceRow], project_id: str) -> Decimal:
    """Sum the paid totals of every invoice linked to ``project_id``."""

    return quantize_money(
        sum((total_paid(inv.payments) for inv in invoices if inv.project_id == project_id), ZERO)
    )


def _rollup_project(
    changes: ChangeSet,
    project: ProjectRow,
    invoices: Sequence[InvoiceRow],
    *,
    advance_status: bool,
) -> ProjectRow:
    received = amount_received_for(invoices, project.project_id)
    status = project.status
    if advance_status:
        status = advance_project_status(status, received, project.total_budget)
    updated = replace(project, amount_received=received, status=status)
    if updated != project:
        changes.upsert(SheetName.PROJECTS, updated)
        if status != project.status:
            log.info(
                "Project '%s' advanced from '%s' to '%s' (received=%s, budget=%s)",
                project.project_id,
                project.status.value,
                status.value,
                received,
                project.total_budget,
            )
    return updated


def _delete_mirrors(changes: ChangeSet, snapshot: LedgerSnapshot, source_ids: Iterable[str]) -> None:
    for transaction in snapshot.transactions_for_sources(source_ids):
        changes.delete(SheetName.TRANSACTIONS, transaction.transaction_id)


def _sync_project_mirrors(
    changes: ChangeSet,
    snapshot: LedgerSnapshot,
    previous: Optional[ProjectRow],
    current: ProjectRow,
    *,
    today: date,
) -> None:
    lines = project_mirror_lines(current)
    current_ids = {line.source_id for line in lines}
    previous_ids = set(project_source_ids(previous)) if previous is not None else set()

    removed = previous_ids - current_ids
    _delete_mirrors(changes, snapshot, removed)

    for line in lines:
        existing = snapshot.transactions_for_sources([line.source_id])
        mirror_date = existing[0].transaction_date if existing else today
        # earlier versions keyed mirrors differently; keep exactly one per line
        for stale in existing:
            changes.delete(SheetName.TRANSACTIONS, stale.transaction_id)
        changes.upsert(SheetName.TRANSACTIONS, build_expense_mirror(line, transaction_date=mirror_date))

    log.debug(
        "Synced mirrors for project '%s': %d current, %d removed",
        current.project_id,
        len(current_ids),
        len(removed),
    )


# ---------------------------------------------------------------------------
# Invoice planners
# ---------------------------------------------------------------------------


def plan_save_invoice(
    snapshot: LedgerSnapshot,
    invoice: InvoiceRow,
    *,
    today: date,
    invoice_prefix: str = DEFAULT_INVOICE_PREFIX,
) -> LedgerResult:
    """Plan the writes for creating or editing an invoice.

    The invoice gets an id and number when it has none, its client and
    project snapshots are refreshed, and the status policy runs. The income
    mirror is rebuilt from scratch and every project whose rollup depends on
    this invoice is re-summed over all of its linked invoices.

    Args:
        snapshot (LedgerSnapshot): Current records.
        invoice (InvoiceRow): Invoice as the caller wants it stored. An empty
            ``invoice_id`` means creation.
        today (date): Date used for numbering and settlement payments.
        invoice_prefix (str): Prefix for newly assigned invoice numbers.

    Returns:
        LedgerResult: The stored invoice and the complete change set.

    Raises:
        MissingReferenceError: If the invoice, client or project is unknown.
        ValueError: When validation fails or the number is already in use.
    """

    previous: Optional[InvoiceRow] = None
    if invoice.invoice_id:
        previous = _require_invoice(snapshot, invoice.invoice_id)
    else:
        invoice = replace(invoice, invoice_id=generate_id("inv"))

    validate_invoice(invoice)

    if invoice.client_id:
        client = _require_client(snapshot, invoice.client_id)
        invoice = replace(invoice, client_name=client.name, client_address=client.address)
    if invoice.project_id:
        project = _require_project(snapshot, invoice.project_id)
        invoice = replace(invoice, project_name=project.name)
    else:
        invoice = replace(invoice, project_id=None, project_name=None)

    others = [inv for inv in snapshot.invoices if inv.invoice_id != invoice.invoice_id]
    number = invoice.invoice_number.strip()
    if not number:
        number = next_invoice_number((inv.invoice_number for inv in others), invoice_prefix, year=today.year)
    elif any(inv.invoice_number == number for inv in others):
        log.error("Invoice number '%s' is already in use", number)
        raise ValueError(f"Invoice number already in use: {number}")
    invoice = replace(invoice, invoice_number=number, status=normalize_incoming_status(invoice.status))

    total = invoice_total(invoice.line_items, invoice.tax_rate, invoice.discount_amount)
    paid = total_paid(invoice.payments)
    decision = derive_invoice_status(invoice, total, paid)
    if decision.paid > paid:
        settlement = Payment(
            payment_id=generate_id("pay"),
            payment_date=today,
            amount=decision.paid - paid,
            method=PaymentMethod.UNSPECIFIED,
            notes="Balance settled when the invoice was marked Paid.",
        )
        invoice = replace(invoice, payments=invoice.payments + (settlement,))
        log.info("Recorded settlement of %s on invoice '%s'", settlement.amount, number)
    invoice = replace(invoice, status=decision.status)
    paid = decision.paid

    changes = ChangeSet()
    changes.upsert(SheetName.INVOICES, invoice)

    _delete_mirrors(changes, snapshot, [invoice.invoice_id])
    if paid > 0:
        changes.upsert(SheetName.TRANSACTIONS, build_invoice_mirror(invoice, paid))

    current_invoices = [*others, invoice]
    affected = [pid for pid in (invoice.project_id, previous.project_id if previous else None) if pid]
    for project_id in dict.fromkeys(affected):
        project = snapshot.project(project_id)
        if project is not None:
            _rollup_project(changes, project, current_invoices, advance_status=True)

    return LedgerResult(entity=invoice, changes=changes)


def plan_receive_payment(
    snapshot: LedgerSnapshot,
    invoice_id: str,
    payment: Payment,
    *,
    today: date,
    invoice_prefix: str = DEFAULT_INVOICE_PREFIX,
) -> LedgerResult:
    """Append ``payment`` to an invoice and re-run the full save pipeline.

    The payment receives a fresh id. The status first advances according to
    :func:`status_policy.status_after_payment`; the usual save rules then
    apply on top.

    Raises:
        MissingReferenceError: If the invoice is unknown.
        ValueError: When the payment fails validation.
    """

    invoice = _require_invoice(snapshot, invoice_id)
    payment = replace(payment, payment_id=generate_id("pay"))
    validate_payment(payment)

    payments = invoice.payments + (payment,)
    total = invoice_total(invoice.line_items, invoice.tax_rate, invoice.discount_amount)
    status = status_after_payment(invoice.status, total, total_paid(payments))
    updated = replace(invoice, payments=payments, status=status)
    log.debug("Appending payment '%s' of %s to invoice '%s'", payment.payment_id, payment.amount, invoice_id)
    return plan_save_invoice(snapshot, updated, today=today, invoice_prefix=invoice_prefix)


def plan_delete_invoice(snapshot: LedgerSnapshot, invoice_id: str) -> LedgerResult:
    """Plan the removal of an invoice, its mirror and its share of the project rollup.

    The linked project's status is left as it is even when the amount drops.

    Raises:
        MissingReferenceError: If the invoice is unknown.
    """

    invoice = _require_invoice(snapshot, invoice_id)
    changes = ChangeSet()
    changes.delete(SheetName.INVOICES, invoice_id)
    # older data mirrored each payment separately
    _delete_mirrors(changes, snapshot, [invoice_id, *(p.payment_id for p in invoice.payments)])

    if invoice.project_id:
        project = snapshot.project(invoice.project_id)
        if project is not None:
            remaining = [inv for inv in snapshot.invoices if inv.invoice_id != invoice_id]
            _rollup_project(changes, project, remaining, advance_status=False)

    return LedgerResult(entity=invoice, changes=changes)


# ---------------------------------------------------------------------------
# Project planners
# ---------------------------------------------------------------------------


def _fill_staff_names(snapshot: LedgerSnapshot, staff: Sequence[StaffAssignment]) -> tuple[StaffAssignment, ...]:
    filled = []
    for assignment in staff:
        employee = _require_employee(snapshot, assignment.employee_id)
        if not assignment.employee_name:
            assignment = replace(assignment, employee_name=employee.name)
        filled.append(assignment)
    return tuple(filled)


def _apply_client_snapshot(snapshot: LedgerSnapshot, project: ProjectRow) -> ProjectRow:
    if project.client_id:
        client = _require_client(snapshot, project.client_id)
        return replace(project, client_name=client.name)
    return project


def plan_save_project_details(snapshot: LedgerSnapshot, project: ProjectRow, *, today: date) -> LedgerResult:
    """Plan the writes after a project's materials, staff or expenses changed.

    Every current line gets a freshly generated expense mirror and every line
    that disappeared since the stored version loses its mirror. Running the
    same payload twice produces the same transactions.

    Raises:
        MissingReferenceError: If the project or an assigned employee is unknown.
        ValueError: When a line fails validation.
    """

    previous = _require_project(snapshot, project.project_id)
    validate_project_lines(project)
    project = replace(
        project,
        staff=_fill_staff_names(snapshot, project.staff),
        amount_received=previous.amount_received,
    )
    project = _apply_client_snapshot(snapshot, project)

    changes = ChangeSet()
    changes.upsert(SheetName.PROJECTS, project)
    _sync_project_mirrors(changes, snapshot, previous, project, today=today)
    return LedgerResult(entity=project, changes=changes)


def plan_save_project(snapshot: LedgerSnapshot, project: ProjectRow, *, today: date) -> LedgerResult:
    """Plan a plain field edit, or the creation of a new project.

    Editing keeps the stored lines and ``amount_received``; use
    :func:`plan_save_project_details` to change lines. A new project may
    arrive with lines, which are mirrored immediately.

    Raises:
        MissingReferenceError: If the project (on edit) or the client is unknown.
        ValueError: When validation fails.
    """

    changes = ChangeSet()
    if not project.project_id:
        project = replace(project, project_id=generate_id("proj"))
        validate_project_lines(project)
        project = replace(
            project,
            staff=_fill_staff_names(snapshot, project.staff),
            amount_received=ZERO,
        )
        project = _apply_client_snapshot(snapshot, project)
        changes.upsert(SheetName.PROJECTS, project)
        _sync_project_mirrors(changes, snapshot, None, project, today=today)
        return LedgerResult(entity=project, changes=changes)

    previous = _require_project(snapshot, project.project_id)
    require_nonnegative(project.total_budget, "Total budget")
    project = replace(
        project,
        materials=previous.materials,
        staff=previous.staff,
        other_expenses=previous.other_expenses,
        amount_received=previous.amount_received,
    )
    project = _apply_client_snapshot(snapshot, project)
    changes.upsert(SheetName.PROJECTS, project)
    return LedgerResult(entity=project, changes=changes)


def plan_delete_project(snapshot: LedgerSnapshot, project_id: str) -> LedgerResult:
    """Plan the removal of a project with its mirrors; linked invoices are unlinked.

    Raises:
        MissingReferenceError: If the project is unknown.
    """

    project = _require_project(snapshot, project_id)
    changes = ChangeSet()
    _delete_mirrors(changes, snapshot, project_source_ids(project))
    changes.delete(SheetName.PROJECTS, project_id)
    for invoice in snapshot.invoices:
        if invoice.project_id == project_id:
            changes.upsert(SheetName.INVOICES, replace(invoice, project_id=None, project_name=None))
    return LedgerResult(entity=project, changes=changes)


# ---------------------------------------------------------------------------
# Employee and client planners
# ---------------------------------------------------------------------------


def plan_save_employee(snapshot: LedgerSnapshot, employee: EmployeeRow) -> LedgerResult:
    """Plan the creation or edit of an employee record.

    Existing staff assignments keep the name they were created with.

    Raises:
        MissingReferenceError: If an edited employee is unknown.
        ValueError: When the name is blank.
    """

    if not employee.name.strip():
        raise ValueError("Employee name is required")
    if employee.employee_id:
        _require_employee(snapshot, employee.employee_id)
    else:
        employee = replace(employee, employee_id=generate_id("emp"))
    changes = ChangeSet()
    changes.upsert(SheetName.EMPLOYEES, employee)
    return LedgerResult(entity=employee, changes=changes)


def plan_delete_employee(snapshot: LedgerSnapshot, employee_id: str) -> LedgerResult:
    """Plan the removal of an employee from every project, then from the roster.

    Raises:
        MissingReferenceError: If the employee is unknown.
    """

    employee = _require_employee(snapshot, employee_id)
    changes = ChangeSet()
    for project in snapshot.projects:
        remaining = tuple(s for s in project.staff if s.employee_id != employee_id)
        if len(remaining) == len(project.staff):
            continue
        changes.upsert(SheetName.PROJECTS, replace(project, staff=remaining))
        _delete_mirrors(changes, snapshot, [staff_source_id(project.project_id, employee_id)])
        log.debug("Removed employee '%s' from project '%s'", employee_id, project.project_id)
    changes.delete(SheetName.EMPLOYEES, employee_id)
    return LedgerResult(entity=employee, changes=changes)


def plan_save_client(snapshot: LedgerSnapshot, client: ClientRow) -> LedgerResult:
    """Plan the creation or edit of a client.

    Name snapshots already stored on projects and invoices are not rewritten.

    Raises:
        MissingReferenceError: If an edited client is unknown.
        ValueError: When the name is blank.
    """

    if not client.name.strip():
        raise ValueError("Client name is required")
    if client.client_id:
        _require_client(snapshot, client.client_id)
    else:
        client = replace(client, client_id=generate_id("cli"))
    changes = ChangeSet()
    changes.upsert(SheetName.CLIENTS, client)
    return LedgerResult(entity=client, changes=changes)


def plan_delete_client(snapshot: LedgerSnapshot, client_id: str) -> LedgerResult:
    """Plan the removal of a client; projects and invoices are unlinked, never deleted.

    Raises:
        MissingReferenceError: If the client is unknown.
    """

    client = _require_client(snapshot, client_id)
    changes = ChangeSet()
    for project in snapshot.projects:
        if project.client_id == client_id:
            changes.upsert(SheetName.PROJECTS, replace(project, client_id=None))
    for invoice in snapshot.invoices:
        if invoice.client_id == client_id:
            changes.upsert(SheetName.INVOICES, replace(invoice, client_id=None))
    changes.delete(SheetName.CLIENTS, client_id)
    return LedgerResult(entity=client, changes=changes)


# ---------------------------------------------------------------------------
# Manual transactions
# ---------------------------------------------------------------------------


def _reject_if_managed(transaction: TransactionRow) -> None:
    if transaction.is_read_only or transaction.source_id is not None:
        log.warning("Rejected direct change to managed transaction '%s'", transaction.transaction_id)
        raise ManagedTransactionError(
            f"Transaction '{transaction.transaction_id}' is managed automatically; "
            "edit the owning invoice or project instead"
        )


def plan_save_transaction(snapshot: LedgerSnapshot, transaction: TransactionRow) -> LedgerResult:
    """Plan the creation or edit of a manual transaction.

    Raises:
        ManagedTransactionError: If the payload or the stored record is a mirror.
        MissingReferenceError: If an edited transaction is unknown.
        ValueError: When the amount is negative or the description blank.
    """

    _reject_if_managed(transaction)
    require_nonnegative(transaction.amount, "Transaction amount")
    if not transaction.description.strip():
        raise ValueError("Transaction description is required")

    if transaction.transaction_id:
        stored = snapshot.transaction(transaction.transaction_id)
        if stored is None:
            log.warning("Transaction lookup failed for id '%s'", transaction.transaction_id)
            raise MissingReferenceError(f"Unknown transaction id: {transaction.transaction_id}")
        _reject_if_managed(stored)
    else:
        transaction = replace(transaction, transaction_id=generate_id("tx"))

    transaction = replace(transaction, amount=quantize_money(transaction.amount))
    changes = ChangeSet()
    changes.upsert(SheetName.TRANSACTIONS, transaction)
    return LedgerResult(entity=transaction, changes=changes)


def plan_delete_transaction(snapshot: LedgerSnapshot, transaction_id: str) -> LedgerResult:
    """Plan the removal of a manual transaction.

    Raises:
        MissingReferenceError: If the transaction is unknown.
        ManagedTransactionError: If the transaction is a mirror.
    """

    transaction = snapshot.transaction(transaction_id)
    if transaction is None:
        log.warning("Transaction lookup failed for id '%s'", transaction_id)
        raise MissingReferenceError(f"Unknown transaction id: {transaction_id}")
    _reject_if_managed(transaction)
    changes = ChangeSet()
    changes.delete(SheetName.TRANSACTIONS, transaction_id)
    return LedgerResult(entity=transaction, changes=changes)


__all__ = [
    "BusinessRuleViolation",
    "MissingReferenceError",
    "ManagedTransactionError",
    "OverpaymentConfirmationRequired",
    "LedgerSnapshot",
    "ChangeSet",
    "LedgerResult",
    "MirrorLine",
    "generate_id",
    "staff_source_id",
    "mirror_transaction_id",
    "project_mirror_lines",
    "project_source_ids",
    "amount_received_for",
    "plan_save_invoice",
    "plan_receive_payment",
    "plan_delete_invoice",
    "plan_save_project_details",
    "plan_save_project",
    "plan_delete_project",
    "plan_save_employee",
    "plan_delete_employee",
    "plan_save_client",
    "plan_delete_client",
    "plan_save_transaction",
    "plan_delete_transaction",
]
