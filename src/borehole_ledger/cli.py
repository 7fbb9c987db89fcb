"""Command-line entry points for the borehole ledger.

This module only wires argparse and translates arguments into the payloads
consumed by :mod:`borehole_ledger.core_logic`. Reports are printed as plain
text columns.
"""

from __future__ import annotations

import argparse
from dataclasses import dataclass, replace
from datetime import date
from decimal import Decimal
from pathlib import Path
from typing import Callable, Dict, Iterable, List, Mapping, MutableMapping, Optional, Sequence

from . import core_logic, ledger, log, reporting
from .constants import (
    EmployeeStatus,
    InvoiceStatus,
    InvoiceType,
    PaymentMethod,
    ProjectStatus,
    TransactionType,
)
from .data_manager import (
    ClientRow,
    EmployeeRow,
    InvoiceRow,
    LineItem,
    Material,
    OtherExpense,
    ProjectRow,
    StaffAssignment,
    TransactionRow,
)


@dataclass(frozen=True)
class CommandSpec:
    """Describe how a CLI sub-command is configured and executed.

    Workbook changes are saved only after a successful command whose
    ``writes`` flag is set.
    """

    name: str
    help_text: str
    register: Callable[[argparse._SubParsersAction[argparse.ArgumentParser]], argparse.ArgumentParser]
    execute: Callable[[core_logic.RuntimeContext, argparse.Namespace], int]
    writes: bool = True


def build_parser() -> argparse.ArgumentParser:
    """Construct the top-level CLI argument parser."""
    parser = argparse.ArgumentParser(
        prog="borehole-ledger",
        description="Command-line tools for the borehole drilling ledger workbook.",
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="Optional path to config.ini (defaults to ./config.ini).",
    )
    return parser


def configure_subcommands(parser: argparse.ArgumentParser) -> Mapping[str, CommandSpec]:
    """Wire all CLI sub-commands onto the supplied parser."""
    subparsers = parser.add_subparsers(dest="command", required=True, title="commands")
    write_specs = register_write_commands(subparsers)
    read_specs = register_read_commands(subparsers)
    return build_command_table([*write_specs.values(), *read_specs.values()])


def _simple_spec(
    name: str,
    help_text: str,
    arguments: Callable[[argparse.ArgumentParser], None],
    execute: Callable[[core_logic.RuntimeContext, argparse.Namespace], int],
    *,
    writes: bool,
) -> CommandSpec:
    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        arguments(parser)
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=execute, writes=writes)


def register_write_commands(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> Dict[str, CommandSpec]:
    """Declare mutating CLI commands."""
    specs = {
        "add-client": register_add_client_command(),
        "add-employee": register_add_employee_command(),
        "add-project": register_add_project_command(),
        "add-material": register_add_material_command(),
        "add-staff": register_add_staff_command(),
        "add-expense": register_add_expense_command(),
        "add-invoice": register_add_invoice_command(),
        "receive-payment": register_receive_payment_command(),
        "delete-invoice": register_delete_invoice_command(),
        "delete-project": register_delete_project_command(),
        "delete-employee": register_delete_employee_command(),
        "add-transaction": register_add_transaction_command(),
        "delete-transaction": register_delete_transaction_command(),
    }
    for spec in specs.values():
        spec.register(subparsers)
    return specs


def register_read_commands(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> Dict[str, CommandSpec]:
    """Declare read-only CLI commands such as reports."""
    specs = {
        "next-number": register_next_number_command(),
        "pnl": register_pnl_command(),
        "financial": register_financial_command(),
        "profitability": register_profitability_command(),
        "invoices": register_invoices_command(),
        "statement": register_statement_command(),
    }
    for spec in specs.values():
        spec.register(subparsers)
    return specs


# ---------------------------------------------------------------------------
# Write command registrations
# ---------------------------------------------------------------------------


def register_add_client_command() -> CommandSpec:
    """Describe the parser and executor for ``add-client``."""

    def arguments(parser: argparse.ArgumentParser) -> None:
        parser.add_argument("--name", required=True)
        parser.add_argument("--contact-person", default=None)
        parser.add_argument("--email", default=None)
        parser.add_argument("--phone", default=None)
        parser.add_argument("--address", default=None)

    return _simple_spec("add-client", "Register a new client.", arguments, run_add_client, writes=True)


def register_add_employee_command() -> CommandSpec:
    """Describe the parser and executor for ``add-employee``."""

    def arguments(parser: argparse.ArgumentParser) -> None:
        parser.add_argument("--name", required=True)
        parser.add_argument("--role", required=True)
        parser.add_argument("--email", default=None)
        parser.add_argument("--phone", default=None)
        parser.add_argument("--start-date", default=None, help="ISO date, e.g. 2024-01-31.")
        parser.add_argument("--inactive", action="store_true", help="Mark the employee as inactive on creation.")

    return _simple_spec("add-employee", "Register a new employee.", arguments, run_add_employee, writes=True)


def register_add_project_command() -> CommandSpec:
    """Describe the parser and executor for ``add-project``."""

    def arguments(parser: argparse.ArgumentParser) -> None:
        parser.add_argument("--name", required=True)
        parser.add_argument("--client-id", default=None)
        parser.add_argument("--location", default="")
        parser.add_argument("--budget", required=True)
        parser.add_argument("--start-date", default=None)
        parser.add_argument("--end-date", default=None)
        parser.add_argument(
            "--status",
            choices=[member.value for member in ProjectStatus],
            default=ProjectStatus.PLANNED.value,
        )

    return _simple_spec("add-project", "Create a new drilling project.", arguments, run_add_project, writes=True)


def register_add_material_command() -> CommandSpec:
    """Describe the parser and executor for ``add-material``."""

    def arguments(parser: argparse.ArgumentParser) -> None:
        parser.add_argument("--project-id", required=True)
        parser.add_argument("--name", required=True)
        parser.add_argument("--quantity", required=True)
        parser.add_argument("--unit-cost", required=True)

    return _simple_spec("add-material", "Add a material line to a project.", arguments, run_add_material, writes=True)


def register_add_staff_command() -> CommandSpec:
    """Describe the parser and executor for ``add-staff``."""

    def arguments(parser: argparse.ArgumentParser) -> None:
        parser.add_argument("--project-id", required=True)
        parser.add_argument("--employee-id", required=True)
        parser.add_argument("--role", required=True, help="Role on this project.")
        parser.add_argument("--payment", required=True)

    return _simple_spec("add-staff", "Assign an employee to a project.", arguments, run_add_staff, writes=True)


def register_add_expense_command() -> CommandSpec:
    """Describe the parser and executor for ``add-expense``."""

    def arguments(parser: argparse.ArgumentParser) -> None:
        parser.add_argument("--project-id", required=True)
        parser.add_argument("--description", required=True)
        parser.add_argument("--amount", required=True)

    return _simple_spec("add-expense", "Add an other-expense line to a project.", arguments, run_add_expense, writes=True)


def register_add_invoice_command() -> CommandSpec:
    """Describe the parser and executor for ``add-invoice``."""

    def arguments(parser: argparse.ArgumentParser) -> None:
        parser.add_argument("--client-id", required=True)
        parser.add_argument("--project-id", default=None)
        parser.add_argument("--number", default="", help="Leave empty to assign the next number.")
        parser.add_argument(
            "--type",
            dest="invoice_type",
            choices=[member.value for member in InvoiceType],
            default=InvoiceType.INVOICE.value,
        )
        parser.add_argument(
            "--status",
            choices=[member.value for member in InvoiceStatus],
            default=InvoiceStatus.DRAFT.value,
        )
        parser.add_argument("--date", dest="invoice_date", default=None)
        parser.add_argument("--due-date", default=None)
        parser.add_argument("--tax-rate", default="0")
        parser.add_argument("--discount", default="0")
        parser.add_argument(
            "--item",
            dest="items",
            action="append",
            default=[],
            help="Line item as DESCRIPTION:QUANTITY:RATE. Repeat for several lines.",
        )
        parser.add_argument("--notes", default=None)

    return _simple_spec("add-invoice", "Create an invoice or proforma invoice.", arguments, run_add_invoice, writes=True)


def register_receive_payment_command() -> CommandSpec:
    """Describe the parser and executor for ``receive-payment``."""

    def arguments(parser: argparse.ArgumentParser) -> None:
        target = parser.add_mutually_exclusive_group(required=True)
        target.add_argument("--invoice-id", default=None)
        target.add_argument("--invoice-number", default=None)
        parser.add_argument("--amount", required=True)
        parser.add_argument(
            "--method",
            choices=[member.value for member in PaymentMethod],
            default=PaymentMethod.CASH.value,
        )
        parser.add_argument("--date", dest="payment_date", default=None)
        parser.add_argument("--check-number", default=None)
        parser.add_argument("--notes", default=None)
        parser.add_argument(
            "--confirm-overpayment",
            action="store_true",
            help="Record the payment even when it exceeds the outstanding balance.",
        )

    return _simple_spec("receive-payment", "Record a payment against an invoice.", arguments, run_receive_payment, writes=True)


def register_delete_invoice_command() -> CommandSpec:
    """Describe the parser and executor for ``delete-invoice``."""

    def arguments(parser: argparse.ArgumentParser) -> None:
        parser.add_argument("--invoice-id", required=True)

    return _simple_spec("delete-invoice", "Delete an invoice and its ledger entries.", arguments, run_delete_invoice, writes=True)


def register_delete_project_command() -> CommandSpec:
    """Describe the parser and executor for ``delete-project``."""

    def arguments(parser: argparse.ArgumentParser) -> None:
        parser.add_argument("--project-id", required=True)

    return _simple_spec("delete-project", "Delete a project and its expense entries.", arguments, run_delete_project, writes=True)


def register_delete_employee_command() -> CommandSpec:
    """Describe the parser and executor for ``delete-employee``."""

    def arguments(parser: argparse.ArgumentParser) -> None:
        parser.add_argument("--employee-id", required=True)

    return _simple_spec(
        "delete-employee", "Delete an employee and their project assignments.", arguments, run_delete_employee, writes=True
    )


def register_add_transaction_command() -> CommandSpec:
    """Describe the parser and executor for ``add-transaction``."""

    def arguments(parser: argparse.ArgumentParser) -> None:
        parser.add_argument("--description", required=True)
        parser.add_argument("--category", required=True)
        parser.add_argument(
            "--type",
            dest="transaction_type",
            choices=[member.value for member in TransactionType],
            required=True,
        )
        parser.add_argument("--amount", required=True)
        parser.add_argument("--date", dest="transaction_date", default=None)

    return _simple_spec("add-transaction", "Record a manual income or expense.", arguments, run_add_transaction, writes=True)


def register_delete_transaction_command() -> CommandSpec:
    """Describe the parser and executor for ``delete-transaction``."""

    def arguments(parser: argparse.ArgumentParser) -> None:
        parser.add_argument("--transaction-id", required=True)

    return _simple_spec(
        "delete-transaction", "Delete a manual transaction.", arguments, run_delete_transaction, writes=True
    )


# ---------------------------------------------------------------------------
# Read command registrations
# ---------------------------------------------------------------------------


def _add_range_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--start", required=True, help="First day of the range (ISO date).")
    parser.add_argument("--end", required=True, help="Last day of the range (ISO date).")


def register_next_number_command() -> CommandSpec:
    """Describe the parser and executor for ``next-number``."""
    return _simple_spec(
        "next-number", "Show the next free invoice number.", lambda parser: None, run_next_number, writes=False
    )


def register_pnl_command() -> CommandSpec:
    """Describe the parser and executor for ``pnl``."""
    return _simple_spec("pnl", "Display a profit and loss statement.", _add_range_arguments, run_pnl_report, writes=False)


def register_financial_command() -> CommandSpec:
    """Describe the parser and executor for ``financial``."""
    return _simple_spec(
        "financial", "List transactions with signed amounts.", _add_range_arguments, run_financial_report, writes=False
    )


def register_profitability_command() -> CommandSpec:
    """Describe the parser and executor for ``profitability``."""
    return _simple_spec(
        "profitability", "Display costs and net profit per project.", lambda parser: None, run_profitability_report, writes=False
    )


def register_invoices_command() -> CommandSpec:
    """Describe the parser and executor for ``invoices``."""
    return _simple_spec(
        "invoices", "Summarise invoices dated within a range.", _add_range_arguments, run_invoice_summary, writes=False
    )


def register_statement_command() -> CommandSpec:
    """Describe the parser and executor for ``statement``."""

    def arguments(parser: argparse.ArgumentParser) -> None:
        parser.add_argument("--client-id", required=True)

    return _simple_spec("statement", "Display a client's account statement.", arguments, run_client_statement, writes=False)


# ---------------------------------------------------------------------------
# Dispatch
# ---------------------------------------------------------------------------


def load_runtime_context(config_path: Optional[Path] = None) -> core_logic.RuntimeContext:
    """Resolve the runtime context for CLI operations."""
    target = Path(config_path) if config_path is not None else Path.cwd() / "config.ini"
    return core_logic.load_runtime_context(target)


def dispatch_command(
    context: core_logic.RuntimeContext,
    args: argparse.Namespace,
    command_table: Mapping[str, CommandSpec],
) -> int:
    """Dispatch the parsed arguments to the configured executor."""
    if not hasattr(args, "command") or args.command is None:
        raise KeyError("No command specified")
    spec = command_table.get(args.command)
    if spec is None:
        raise KeyError(f"Unknown command: {args.command}")
    return spec.execute(context, args)


def build_command_table(specs: Iterable[CommandSpec]) -> MutableMapping[str, CommandSpec]:
    """Build an index of command specifications keyed by command name."""
    table: Dict[str, CommandSpec] = {}
    for spec in specs:
        if spec.name in table:
            raise ValueError(f"Duplicate command name: {spec.name}")
        table[spec.name] = spec
    return table


# ---------------------------------------------------------------------------
# Translation
# ---------------------------------------------------------------------------


def _parse_date(raw: Optional[str]) -> Optional[date]:
    return date.fromisoformat(raw) if raw else None


def parse_line_item(raw: str) -> LineItem:
    """Parse ``DESCRIPTION:QUANTITY:RATE``; the description may contain colons."""
    parts = raw.rsplit(":", 2)
    if len(parts) != 3 or not parts[0].strip():
        raise ValueError(f"Line item must look like DESCRIPTION:QUANTITY:RATE, got '{raw}'")
    description, quantity, rate = parts
    return LineItem(
        item_id=ledger.generate_id("item"),
        description=description.strip(),
        quantity=Decimal(quantity),
        rate=Decimal(rate),
    )


def translate_add_client(args: argparse.Namespace) -> ClientRow:
    """Translate CLI args into a new client record."""
    return ClientRow(
        client_id="",
        name=args.name,
        contact_person=args.contact_person,
        email=args.email,
        phone=args.phone,
        address=args.address,
    )


def translate_add_employee(args: argparse.Namespace) -> EmployeeRow:
    """Translate CLI args into a new employee record."""
    return EmployeeRow(
        employee_id="",
        name=args.name,
        role=args.role,
        status=EmployeeStatus.INACTIVE if getattr(args, "inactive", False) else EmployeeStatus.ACTIVE,
        email=args.email,
        phone=args.phone,
        start_date=_parse_date(args.start_date),
    )


def translate_add_project(args: argparse.Namespace) -> ProjectRow:
    """Translate CLI args into a new project record."""
    return ProjectRow(
        project_id="",
        name=args.name,
        client_id=args.client_id,
        client_name="",
        location=args.location,
        start_date=_parse_date(args.start_date),
        end_date=_parse_date(args.end_date),
        status=ProjectStatus(args.status),
        total_budget=Decimal(args.budget),
    )


def translate_add_invoice(args: argparse.Namespace, *, today: date) -> InvoiceRow:
    """Translate CLI args into a new invoice record."""
    return InvoiceRow(
        invoice_id="",
        invoice_number=args.number or "",
        invoice_type=InvoiceType(args.invoice_type),
        status=InvoiceStatus(args.status),
        client_id=args.client_id,
        client_name="",
        client_address=None,
        invoice_date=_parse_date(args.invoice_date) or today,
        due_date=_parse_date(args.due_date),
        tax_rate=Decimal(args.tax_rate),
        discount_amount=Decimal(args.discount),
        project_id=args.project_id,
        line_items=tuple(parse_line_item(raw) for raw in args.items),
        notes=args.notes,
    )


def translate_receive_payment(context: core_logic.RuntimeContext, args: argparse.Namespace) -> core_logic.PaymentCommand:
    """Translate CLI args into a payment command object."""
    invoice_id = args.invoice_id
    if invoice_id is None:
        invoice_id = core_logic.find_invoice_by_number(context, args.invoice_number).invoice_id
    return core_logic.PaymentCommand(
        invoice_id=invoice_id,
        amount=Decimal(args.amount),
        method=PaymentMethod(args.method),
        payment_date=_parse_date(args.payment_date),
        check_number=args.check_number,
        notes=args.notes,
        confirm_overpayment=bool(getattr(args, "confirm_overpayment", False)),
    )


def translate_add_transaction(args: argparse.Namespace, *, today: date) -> TransactionRow:
    """Translate CLI args into a manual transaction record."""
    return TransactionRow(
        transaction_id="",
        transaction_date=_parse_date(args.transaction_date) or today,
        description=args.description,
        category=args.category,
        transaction_type=TransactionType(args.transaction_type),
        amount=Decimal(args.amount),
    )


# ---------------------------------------------------------------------------
# Executors
# ---------------------------------------------------------------------------


def run_add_client(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    result = core_logic.save_client(context, translate_add_client(args))
    print(f"Client {result.entity.client_id} created")
    return 0


def run_add_employee(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    result = core_logic.save_employee(context, translate_add_employee(args))
    print(f"Employee {result.entity.employee_id} created")
    return 0


def run_add_project(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    result = core_logic.save_project(context, translate_add_project(args))
    print(f"Project {result.entity.project_id} created")
    return 0


def run_add_material(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    """Append a material line and resync the project's expense entries."""
    project = core_logic.get_project(context, args.project_id)
    material = Material(
        material_id=ledger.generate_id("mat"),
        name=args.name,
        quantity=Decimal(args.quantity),
        unit_cost=Decimal(args.unit_cost),
    )
    core_logic.save_project_details(context, replace(project, materials=project.materials + (material,)))
    print(f"Material {material.material_id} added to project {project.project_id}")
    return 0


def run_add_staff(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    """Assign an employee to a project and resync its payroll entries."""
    project = core_logic.get_project(context, args.project_id)
    assignment = StaffAssignment(
        employee_id=args.employee_id,
        employee_name="",
        project_role=args.role,
        payment_amount=Decimal(args.payment),
    )
    core_logic.save_project_details(context, replace(project, staff=project.staff + (assignment,)))
    print(f"Employee {args.employee_id} assigned to project {project.project_id}")
    return 0


def run_add_expense(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    project = core_logic.get_project(context, args.project_id)
    expense = OtherExpense(
        expense_id=ledger.generate_id("exp"),
        description=args.description,
        amount=Decimal(args.amount),
    )
    core_logic.save_project_details(context, replace(project, other_expenses=project.other_expenses + (expense,)))
    print(f"Expense {expense.expense_id} added to project {project.project_id}")
    return 0


def run_add_invoice(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    result = core_logic.save_invoice(context, translate_add_invoice(args, today=date.today()))
    invoice = result.entity
    print(f"Invoice {invoice.invoice_number} ({invoice.invoice_id}) saved as {invoice.status.value}")
    return 0


def run_receive_payment(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    result = core_logic.receive_payment(context, translate_receive_payment(context, args))
    invoice = result.entity
    print(f"Invoice {invoice.invoice_number} is now {invoice.status.value}")
    return 0


def run_delete_invoice(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    core_logic.delete_invoice(context, args.invoice_id)
    print(f"Invoice {args.invoice_id} deleted")
    return 0


def run_delete_project(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    core_logic.delete_project(context, args.project_id)
    print(f"Project {args.project_id} deleted")
    return 0


def run_delete_employee(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    core_logic.delete_employee(context, args.employee_id)
    print(f"Employee {args.employee_id} deleted")
    return 0


def run_add_transaction(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    result = core_logic.save_transaction(context, translate_add_transaction(args, today=date.today()))
    print(f"Transaction {result.entity.transaction_id} recorded")
    return 0


def run_delete_transaction(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    core_logic.delete_transaction(context, args.transaction_id)
    print(f"Transaction {args.transaction_id} deleted")
    return 0


def run_next_number(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    print(core_logic.suggest_invoice_number(context))
    return 0


def _print_table(headers: Sequence[str], rows: Iterable[Sequence[object]]) -> None:
    rendered: List[List[str]] = [[str(cell) if cell is not None else "" for cell in row] for row in rows]
    widths = [len(header) for header in headers]
    for row in rendered:
        widths = [max(width, len(cell)) for width, cell in zip(widths, row)]
    print("  ".join(header.ljust(width) for header, width in zip(headers, widths)))
    for row in rendered:
        print("  ".join(cell.ljust(width) for cell, width in zip(row, widths)))


def run_pnl_report(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    report = reporting.profit_and_loss(
        core_logic.list_transactions(context), date.fromisoformat(args.start), date.fromisoformat(args.end)
    )
    lines = [("Total Income", report.total_income)]
    lines.extend((f"  {category}", amount) for category, amount in report.expenses_by_category.items())
    lines.append(("Total Expenses", report.total_expenses))
    lines.append(("Net Profit / Loss", report.net))
    _print_table(["Description", "Amount"], lines)
    return 0


def run_financial_report(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    report = reporting.financial_report(
        core_logic.list_transactions(context), date.fromisoformat(args.start), date.fromisoformat(args.end)
    )
    _print_table(
        ["Date", "Description", "Category", "Type", "Amount"],
        [(r.transaction_date, r.description, r.category, r.transaction_type.value, r.amount) for r in report.rows],
    )
    print(f"Net: {report.net}")
    return 0


def run_profitability_report(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    rows = reporting.project_profitability(core_logic.list_projects(context))
    _print_table(
        ["Project", "Client", "Status", "Received", "Costs", "Net"],
        [(r.project_name, r.client_name, r.status.value, r.amount_received, r.total_costs, r.net_profit) for r in rows],
    )
    return 0


def run_invoice_summary(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    rows = reporting.invoice_summary(
        core_logic.list_invoices(context),
        date.fromisoformat(args.start),
        date.fromisoformat(args.end),
        today=date.today(),
    )
    _print_table(
        ["Number", "Client", "Date", "Due", "Status", "Total", "Paid", "Balance"],
        [
            (r.invoice_number, r.client_name, r.invoice_date, r.due_date, r.status.value, r.total, r.paid, r.balance)
            for r in rows
        ],
    )
    return 0


def run_client_statement(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    client = core_logic.get_client(context, args.client_id)
    statement = reporting.client_statement(client, core_logic.list_invoices(context))
    print(f"Account statement for {statement.client_name}")
    _print_table(
        ["Date", "Description", "Invoice", "Payment", "Balance"],
        [(line.entry_date, line.description, line.debit, line.credit, line.balance) for line in statement.lines],
    )
    return 0


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------


def handle_cli_error(error: Exception) -> int:
    """Convert raised exceptions into user-friendly exit codes."""
    if isinstance(error, core_logic.OverpaymentConfirmationRequired):
        log.error("%s (re-run with --confirm-overpayment)", error)
        return 4
    if isinstance(error, core_logic.BusinessRuleViolation):
        log.error("%s", error)
        return 2
    if isinstance(error, FileNotFoundError):
        log.error("%s", error)
        return 3
    log.error("%s", error)
    return 1


def persist_workbook(context: core_logic.RuntimeContext) -> None:
    """Persist workbook changes after successful execution."""
    try:
        core_logic.persist_context(context)
    except PermissionError as error:
        raise RuntimeError(str(error)) from error


def main(argv: Sequence[str] | None = None) -> int:
    """CLI entry point that orchestrates parsing and execution."""
    parser = build_parser()
    command_table = configure_subcommands(parser)
    args = parser.parse_args(argv)
    try:
        context = load_runtime_context(getattr(args, "config", None))
        spec = command_table[args.command]
        if spec.writes:
            core_logic.ensure_schema_version(context)
        exit_code = dispatch_command(context, args, command_table)
        if exit_code == 0 and spec.writes:
            persist_workbook(context)
        return exit_code
    except Exception as error:  # pragma: no cover - centralised error handler tested separately
        return handle_cli_error(error)
