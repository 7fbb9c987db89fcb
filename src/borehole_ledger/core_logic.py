"""Application service for the borehole ledger.

This module is the surface the CLI (or any other front end) talks to. It owns
the runtime context (settings, repositories and the ledger lock), turns
caller intent into ledger plans, and applies the resulting change sets as one
unit. The ledger rules themselves live in :mod:`borehole_ledger.ledger`.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from pathlib import Path
from typing import Any, Callable, Iterable, List, Optional, Tuple

from openpyxl.workbook import Workbook

from . import data_manager, ledger, log
from .constants import DEFAULT_INVOICE_PREFIX, EXPECTED_SCHEMA_VERSION, EmployeeStatus, PaymentMethod
from .data_manager import (
    ClientRow,
    EmployeeRow,
    InvoiceRow,
    Payment,
    ProjectRow,
    TransactionRow,
)
from .ledger import (
    BusinessRuleViolation,
    ChangeSet,
    LedgerResult,
    LedgerSnapshot,
    ManagedTransactionError,
    MissingReferenceError,
    OverpaymentConfirmationRequired,
)
from .money import invoice_balance, quantize_money
from .numbering import next_invoice_number


@dataclass(frozen=True)
class RuntimeContext:
    """Container for configuration, repositories and the ledger lock.

    ``workbook`` is ``None`` for in-memory contexts, which cannot be persisted.
    """

    settings: data_manager.ConfigSettings
    repositories: data_manager.Repositories
    workbook: Optional[Workbook] = None
    lock: Any = field(default_factory=threading.RLock, repr=False, compare=False)


@dataclass(frozen=True)
class PaymentCommand:
    """User intent for recording a payment against an invoice."""

    invoice_id: str
    amount: Decimal
    method: PaymentMethod
    payment_date: Optional[date] = None
    check_number: Optional[str] = None
    notes: Optional[str] = None
    confirm_overpayment: bool = False


def _resolve_today(candidate: Optional[date]) -> date:
    return candidate if candidate is not None else date.today()


# ---------------------------------------------------------------------------
# Context lifecycle
# ---------------------------------------------------------------------------


def load_runtime_context(config_path: Optional[Path] = None) -> RuntimeContext:
    """Load configuration settings and a live workbook.

    Resolves ``config.ini``, parses the settings, opens the master workbook
    and wraps each sheet in a repository.

    Args:
        config_path (Path | None): Optional override path for the configuration
            file. When omitted the data layer searches upward from the
            current working directory.

    Returns:
        RuntimeContext: Context ready for ledger operations.

    Raises:
        FileNotFoundError: If the configuration file or workbook cannot be
            located.
        KeyError: When mandatory configuration options or sheets are missing.
    """

    located_config = data_manager.find_config_file(config_path)
    resolved_config = Path(located_config).expanduser().resolve()
    parser = data_manager.read_config(resolved_config)
    settings = data_manager.parse_settings(parser, base_path=resolved_config.parent)
    workbook = data_manager.open_workbook(settings.data_file)
    repositories = data_manager.build_workbook_repositories(workbook)
    log.info("Loaded runtime context for workbook '%s'", settings.data_file)
    return RuntimeContext(settings=settings, repositories=repositories, workbook=workbook)


def create_memory_context(
    settings: Optional[data_manager.ConfigSettings] = None,
    *,
    clients: Iterable[ClientRow] = (),
    employees: Iterable[EmployeeRow] = (),
    projects: Iterable[ProjectRow] = (),
    invoices: Iterable[InvoiceRow] = (),
    transactions: Iterable[TransactionRow] = (),
) -> RuntimeContext:
    """Build a context over dictionary repositories, optionally pre-seeded."""

    if settings is None:
        settings = data_manager.ConfigSettings(
            data_file=Path("ledger_master.xlsx"),
            company_name="In-memory ledger",
            schema_version=EXPECTED_SCHEMA_VERSION,
            invoice_prefix=DEFAULT_INVOICE_PREFIX,
        )
    repositories = data_manager.build_memory_repositories(
        clients=clients,
        employees=employees,
        projects=projects,
        invoices=invoices,
        transactions=transactions,
    )
    return RuntimeContext(settings=settings, repositories=repositories)


def ensure_schema_version(context: RuntimeContext) -> None:
    """Validate workbook compatibility before mutating state.

    Raises:
        RuntimeError: If the schema version declared in the configuration does
            not match ``EXPECTED_SCHEMA_VERSION``.
    """

    if context.settings.schema_version != EXPECTED_SCHEMA_VERSION:
        log.error(
            "Workbook schema mismatch: expected %s, found %s",
            EXPECTED_SCHEMA_VERSION,
            context.settings.schema_version,
        )
        raise RuntimeError(
            "Workbook schema mismatch: expected %s, found %s"
            % (EXPECTED_SCHEMA_VERSION, context.settings.schema_version)
        )

    log.debug("Schema version '%s' validated", context.settings.schema_version)


def persist_context(context: RuntimeContext) -> None:
    """Persist in-memory workbook changes to the configured data file.

    Raises:
        RuntimeError: If the context has no workbook behind it.
    """

    if context.workbook is None:
        raise RuntimeError("In-memory contexts cannot be persisted")
    with context.lock:
        data_manager.save_workbook(context.workbook, destination=context.settings.data_file)
    log.info("Persisted workbook '%s'", context.settings.data_file)


def refresh_context(context: RuntimeContext) -> RuntimeContext:
    """Reload the workbook to discard unsaved modifications.

    Returns:
        RuntimeContext: Fresh context over a newly opened workbook. The old
            context must not be used afterwards.

    Raises:
        FileNotFoundError: If the backing workbook cannot be reloaded.
        RuntimeError: If the context has no workbook behind it.
    """

    if context.workbook is None:
        raise RuntimeError("In-memory contexts cannot be refreshed")
    workbook = data_manager.refresh_workbook(context.settings.data_file)
    repositories = data_manager.build_workbook_repositories(workbook)
    log.info("Reloaded workbook '%s'", context.settings.data_file)
    return RuntimeContext(settings=context.settings, repositories=repositories, workbook=workbook)


# ---------------------------------------------------------------------------
# Change-set application
# ---------------------------------------------------------------------------


def _snapshot(context: RuntimeContext) -> LedgerSnapshot:
    repos = context.repositories
    return LedgerSnapshot(
        clients=tuple(repos.clients.list_all()),
        employees=tuple(repos.employees.list_all()),
        projects=tuple(repos.projects.list_all()),
        invoices=tuple(repos.invoices.list_all()),
        transactions=tuple(repos.transactions.list_all()),
    )


def apply_change_set(context: RuntimeContext, changes: ChangeSet) -> None:
    """Write every record of ``changes`` or none of them.

    A before-image is captured for each key right before it is touched. If
    any repository call fails, the touched keys are restored in reverse order
    and the original exception is re-raised.
    """

    touched: List[Tuple[data_manager.Repository[Any], str, Any]] = []
    try:
        for kind in changes.kinds():
            repository = context.repositories.for_kind(kind)
            for key in changes.deleted(kind):
                touched.append((repository, key, repository.get(key)))
                repository.delete(key)
            for record in changes.saved(kind):
                touched.append((repository, record.key, repository.get(record.key)))
                repository.upsert(record)
    except Exception:
        log.exception("Applying change set failed; restoring %d records", len(touched))
        for repository, key, previous in reversed(touched):
            if previous is None:
                repository.delete(key)
            else:
                repository.upsert(previous)
        raise


def _execute(context: RuntimeContext, operation: str, plan: Callable[[LedgerSnapshot], LedgerResult]) -> LedgerResult:
    with context.lock:
        result = plan(_snapshot(context))
        apply_change_set(context, result.changes)
    log.info(
        "%s committed '%s' (%s)",
        operation,
        result.entity.key,
        ", ".join(
            f"{kind.value}: +{len(result.changes.saved(kind))}/-{len(result.changes.deleted(kind))}"
            for kind in result.changes.kinds()
        ),
    )
    return result


# ---------------------------------------------------------------------------
# Readers
# ---------------------------------------------------------------------------


def list_clients(context: RuntimeContext) -> List[ClientRow]:
    return context.repositories.clients.list_all()


def list_employees(context: RuntimeContext, *, include_inactive: bool = True) -> List[EmployeeRow]:
    """Return employees in sheet order, optionally only the active ones."""

    employees = context.repositories.employees.list_all()
    if include_inactive:
        return employees
    return [e for e in employees if e.status == EmployeeStatus.ACTIVE]


def list_projects(context: RuntimeContext) -> List[ProjectRow]:
    return context.repositories.projects.list_all()


def list_invoices(context: RuntimeContext) -> List[InvoiceRow]:
    return context.repositories.invoices.list_all()


def list_transactions(context: RuntimeContext) -> List[TransactionRow]:
    return context.repositories.transactions.list_all()


def _get(repository: data_manager.Repository[Any], label: str, key: str) -> Any:
    record = repository.get(key)
    if record is None:
        log.warning("%s lookup failed for id '%s'", label.capitalize(), key)
        raise MissingReferenceError(f"Unknown {label} id: {key}")
    return record


def get_client(context: RuntimeContext, client_id: str) -> ClientRow:
    """Resolve a client by id.

    Raises:
        MissingReferenceError: If ``client_id`` is unknown.
    """

    return _get(context.repositories.clients, "client", client_id)


def get_employee(context: RuntimeContext, employee_id: str) -> EmployeeRow:
    """Resolve an employee by id.

    Raises:
        MissingReferenceError: If ``employee_id`` is unknown.
    """

    return _get(context.repositories.employees, "employee", employee_id)


def get_project(context: RuntimeContext, project_id: str) -> ProjectRow:
    """Resolve a project by id.

    Raises:
        MissingReferenceError: If ``project_id`` is unknown.
    """

    return _get(context.repositories.projects, "project", project_id)


def get_invoice(context: RuntimeContext, invoice_id: str) -> InvoiceRow:
    """Resolve an invoice by id.

    Raises:
        MissingReferenceError: If ``invoice_id`` is unknown.
    """

    return _get(context.repositories.invoices, "invoice", invoice_id)


def get_transaction(context: RuntimeContext, transaction_id: str) -> TransactionRow:
    """Resolve a transaction by id.

    Raises:
        MissingReferenceError: If ``transaction_id`` is unknown.
    """

    return _get(context.repositories.transactions, "transaction", transaction_id)


def find_invoice_by_number(context: RuntimeContext, invoice_number: str) -> InvoiceRow:
    """Resolve an invoice by its human-facing number.

    Raises:
        MissingReferenceError: If no invoice carries ``invoice_number``.
    """

    for invoice in context.repositories.invoices.list_all():
        if invoice.invoice_number == invoice_number:
            return invoice
    log.warning("Invoice lookup failed for number '%s'", invoice_number)
    raise MissingReferenceError(f"Unknown invoice number: {invoice_number}")


def suggest_invoice_number(context: RuntimeContext, *, today: Optional[date] = None) -> str:
    """Return the number the next new invoice would receive."""

    today = _resolve_today(today)
    numbers = (invoice.invoice_number for invoice in context.repositories.invoices.list_all())
    return next_invoice_number(numbers, context.settings.invoice_prefix, year=today.year)


# ---------------------------------------------------------------------------
# Invoices
# ---------------------------------------------------------------------------


def save_invoice(context: RuntimeContext, invoice: InvoiceRow, *, today: Optional[date] = None) -> LedgerResult:
    """Create or edit an invoice together with its mirror and project rollup.

    Args:
        context (RuntimeContext): Active runtime context.
        invoice (InvoiceRow): Invoice payload. Leave ``invoice_id`` empty to
            create and ``invoice_number`` empty to have one assigned.
        today (date | None): Override for the current date.

    Returns:
        LedgerResult: Stored invoice and every record written alongside it.

    Raises:
        MissingReferenceError: If the invoice, client or project is unknown.
        ValueError: When validation fails.
    """

    today = _resolve_today(today)
    prefix = context.settings.invoice_prefix
    return _execute(
        context,
        "Save invoice",
        lambda snapshot: ledger.plan_save_invoice(snapshot, invoice, today=today, invoice_prefix=prefix),
    )


def delete_invoice(context: RuntimeContext, invoice_id: str) -> LedgerResult:
    """Delete an invoice, its mirror, and its share of the project rollup.

    Raises:
        MissingReferenceError: If ``invoice_id`` is unknown.
    """

    return _execute(context, "Delete invoice", lambda snapshot: ledger.plan_delete_invoice(snapshot, invoice_id))


def receive_payment(context: RuntimeContext, command: PaymentCommand, *, today: Optional[date] = None) -> LedgerResult:
    """Record a payment and re-run the invoice save pipeline.

    The amount must be positive and cheques need a number. A payment larger
    than the outstanding balance is only recorded when
    ``command.confirm_overpayment`` is set; it is never clamped.

    Args:
        context (RuntimeContext): Active runtime context.
        command (PaymentCommand): Structured payment request.
        today (date | None): Override for the current date, also the default
            payment date.

    Returns:
        LedgerResult: Updated invoice and every record written alongside it.

    Raises:
        MissingReferenceError: If the invoice is unknown.
        OverpaymentConfirmationRequired: If the payment exceeds the balance
            without confirmation.
        ValueError: When the payment fails validation.
    """

    today = _resolve_today(today)
    payment = Payment(
        payment_id="",
        payment_date=command.payment_date or today,
        amount=quantize_money(command.amount),
        method=command.method,
        check_number=(command.check_number or "").strip() or None,
        notes=command.notes,
    )
    ledger.validate_payment(payment)

    def plan(snapshot: LedgerSnapshot) -> LedgerResult:
        invoice = snapshot.invoice(command.invoice_id)
        if invoice is None:
            log.warning("Invoice lookup failed for id '%s'", command.invoice_id)
            raise MissingReferenceError(f"Unknown invoice id: {command.invoice_id}")
        balance = invoice_balance(invoice)
        if payment.amount > balance:
            if not command.confirm_overpayment:
                log.warning(
                    "Payment of %s exceeds balance %s on invoice '%s'; confirmation required",
                    payment.amount,
                    balance,
                    invoice.invoice_number,
                )
                raise OverpaymentConfirmationRequired(invoice.invoice_id, payment.amount, balance)
            log.info("Recording confirmed overpayment of %s on invoice '%s'", payment.amount - balance, invoice.invoice_number)
        return ledger.plan_receive_payment(
            snapshot,
            command.invoice_id,
            payment,
            today=today,
            invoice_prefix=context.settings.invoice_prefix,
        )

    return _execute(context, "Receive payment", plan)


# ---------------------------------------------------------------------------
# Projects
# ---------------------------------------------------------------------------


def save_project(context: RuntimeContext, project: ProjectRow, *, today: Optional[date] = None) -> LedgerResult:
    """Create a project, or edit its plain fields.

    Edits never touch materials, staff, expenses or ``amount_received``; use
    :func:`save_project_details` for line changes.

    Raises:
        MissingReferenceError: If the project or client is unknown.
        ValueError: When validation fails.
    """

    today = _resolve_today(today)
    return _execute(context, "Save project", lambda snapshot: ledger.plan_save_project(snapshot, project, today=today))


def save_project_details(context: RuntimeContext, project: ProjectRow, *, today: Optional[date] = None) -> LedgerResult:
    """Store a project's material, staff and expense lines and resync their mirrors.

    Raises:
        MissingReferenceError: If the project or an assigned employee is unknown.
        ValueError: When a line fails validation.
    """

    today = _resolve_today(today)
    return _execute(
        context,
        "Save project details",
        lambda snapshot: ledger.plan_save_project_details(snapshot, project, today=today),
    )


def delete_project(context: RuntimeContext, project_id: str) -> LedgerResult:
    """Delete a project with its mirrors and unlink its invoices.

    Raises:
        MissingReferenceError: If ``project_id`` is unknown.
    """

    return _execute(context, "Delete project", lambda snapshot: ledger.plan_delete_project(snapshot, project_id))


# ---------------------------------------------------------------------------
# Employees and clients
# ---------------------------------------------------------------------------


def save_employee(context: RuntimeContext, employee: EmployeeRow) -> LedgerResult:
    return _execute(context, "Save employee", lambda snapshot: ledger.plan_save_employee(snapshot, employee))


def delete_employee(context: RuntimeContext, employee_id: str) -> LedgerResult:
    """Remove an employee from every project and then from the roster.

    Raises:
        MissingReferenceError: If ``employee_id`` is unknown.
    """

    return _execute(context, "Delete employee", lambda snapshot: ledger.plan_delete_employee(snapshot, employee_id))


def save_client(context: RuntimeContext, client: ClientRow) -> LedgerResult:
    return _execute(context, "Save client", lambda snapshot: ledger.plan_save_client(snapshot, client))


def delete_client(context: RuntimeContext, client_id: str) -> LedgerResult:
    """Delete a client; its projects and invoices are unlinked, not removed.

    Raises:
        MissingReferenceError: If ``client_id`` is unknown.
    """

    return _execute(context, "Delete client", lambda snapshot: ledger.plan_delete_client(snapshot, client_id))


# ---------------------------------------------------------------------------
# Manual transactions
# ---------------------------------------------------------------------------


def save_transaction(context: RuntimeContext, transaction: TransactionRow) -> LedgerResult:
    """Create or edit a manual transaction.

    Raises:
        ManagedTransactionError: If the transaction is a mirror.
        MissingReferenceError: If an edited transaction is unknown.
        ValueError: When validation fails.
    """

    return _execute(context, "Save transaction", lambda snapshot: ledger.plan_save_transaction(snapshot, transaction))


def delete_transaction(context: RuntimeContext, transaction_id: str) -> LedgerResult:
    """Delete a manual transaction.

    Raises:
        ManagedTransactionError: If the transaction is a mirror.
        MissingReferenceError: If ``transaction_id`` is unknown.
    """

    return _execute(
        context,
        "Delete transaction",
        lambda snapshot: ledger.plan_delete_transaction(snapshot, transaction_id),
    )


__all__ = [
    "BusinessRuleViolation",
    "MissingReferenceError",
    "ManagedTransactionError",
    "OverpaymentConfirmationRequired",
    "LedgerResult",
    "RuntimeContext",
    "PaymentCommand",
    "load_runtime_context",
    "create_memory_context",
    "ensure_schema_version",
    "persist_context",
    "refresh_context",
    "apply_change_set",
    "list_clients",
    "list_employees",
    "list_projects",
    "list_invoices",
    "list_transactions",
    "get_client",
    "get_employee",
    "get_project",
    "get_invoice",
    "get_transaction",
    "find_invoice_by_number",
    "suggest_invoice_number",
    "save_invoice",
    "delete_invoice",
    "receive_payment",
    "save_project",
    "save_project_details",
    "delete_project",
    "save_employee",
    "delete_employee",
    "save_client",
    "delete_client",
    "save_transaction",
    "delete_transaction",
]
