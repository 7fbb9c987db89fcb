"""Enumerations shared across the ledger modules.

Status labels, entity kinds and the fixed transaction categories live here so
the data layer, the ledger engine, reporting and the CLI agree on a single
spelling for every persisted identifier.
"""

from __future__ import annotations

from decimal import Decimal
from enum import Enum


# Central schema version expected by all layers when validating workbooks.
EXPECTED_SCHEMA_VERSION = "1.0.0"

DEFAULT_INVOICE_PREFIX = "INV"

# Share of a proforma total that moves it to "Awaiting Final Payment".
PROFORMA_FINAL_PAYMENT_THRESHOLD = Decimal("0.75")

CLIENT_PAYMENT_CATEGORY = "Client Payment"
PAYROLL_CATEGORY = "Payroll"
PROJECT_EXPENSE_CATEGORY = "Project Expense"


class TransactionType(str, Enum):
    """Direction of a ledger transaction."""

    INCOME = "Income"
    EXPENSE = "Expense"


class EmployeeStatus(str, Enum):
    ACTIVE = "Active"
    INACTIVE = "Inactive"


class ProjectStatus(str, Enum):
    """Lifecycle of a drilling project."""

    PLANNED = "Planned"
    IN_PROGRESS = "In Progress"
    COMPLETED = "Completed"
    ON_HOLD = "On Hold"


class InvoiceStatus(str, Enum):
    """Persisted invoice statuses.

    ``OVERDUE`` is kept so legacy rows still parse, but the write path never
    stores it; overdue is derived at read time from the due date.
    """

    DRAFT = "Draft"
    SENT = "Sent"
    PARTIALLY_PAID = "Partially Paid"
    AWAITING_FINAL_PAYMENT = "Awaiting Final Payment"
    PAID = "Paid"
    OVERDUE = "Overdue"


class InvoiceType(str, Enum):
    PROFORMA = "Proforma Invoice"
    INVOICE = "Invoice"


class PaymentMethod(str, Enum):
    """Enumerate supported payment mechanisms for invoice payments."""

    CASH = "Cash"
    BANK_TRANSFER = "Bank Transfer"
    CHECK = "Check"
    UNSPECIFIED = "Unspecified"


class SheetName(str, Enum):
    """Workbook sheet names, doubling as the entity kinds of a change set."""

    CLIENTS = "Clients"
    EMPLOYEES = "Employees"
    PROJECTS = "Projects"
    INVOICES = "Invoices"
    TRANSACTIONS = "Transactions"


__all__ = [
    "EXPECTED_SCHEMA_VERSION",
    "DEFAULT_INVOICE_PREFIX",
    "PROFORMA_FINAL_PAYMENT_THRESHOLD",
    "CLIENT_PAYMENT_CATEGORY",
    "PAYROLL_CATEGORY",
    "PROJECT_EXPENSE_CATEGORY",
    "TransactionType",
    "EmployeeStatus",
    "ProjectStatus",
    "InvoiceStatus",
    "InvoiceType",
    "PaymentMethod",
    "SheetName",
]
