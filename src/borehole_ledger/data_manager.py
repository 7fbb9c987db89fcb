"""Data access layer for the borehole ledger.

This module provides the low-level helpers that read from and write to the
master workbook. Business rules belong elsewhere.

The public API is organised around four responsibilities:

1. Configuration handling: finding and parsing ``config.ini``.
2. Workbook lifecycle: opening, persisting and reloading the Excel file.
3. Row mapping: typed dataclasses for every entity and their conversion to
   and from worksheet rows.
4. Repositories: per-entity ``list_all``/``get``/``upsert``/``delete`` access,
   backed either by a workbook sheet or by a plain dictionary.
"""


from __future__ import annotations

import configparser
import json
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from pathlib import Path
from typing import Any, Callable, Dict, Generic, Iterable, Iterator, List, Mapping, Optional, Protocol, Sequence, TypeVar

from openpyxl.workbook import Workbook
import openpyxl

from . import log
from .constants import (
    DEFAULT_INVOICE_PREFIX,
    EmployeeStatus,
    InvoiceStatus,
    InvoiceType,
    PaymentMethod,
    ProjectStatus,
    SheetName,
    TransactionType,
)


CONFIG_FILE_NAME = "config.ini"

SHEET_COLUMNS: Mapping[SheetName, Sequence[str]] = {
    SheetName.CLIENTS: [
        "ClientID",
        "Name",
        "ContactPerson",
        "Email",
        "Phone",
        "Address",
    ],
    SheetName.EMPLOYEES: [
        "EmployeeID",
        "Name",
        "Role",
        "Status",
        "Email",
        "Phone",
        "StartDate",
    ],
    SheetName.PROJECTS: [
        "ProjectID",
        "Name",
        "ClientID",
        "ClientName",
        "Location",
        "StartDate",
        "EndDate",
        "Status",
        "TotalBudget",
        "AmountReceived",
        "Materials",
        "Staff",
        "OtherExpenses",
    ],
    SheetName.INVOICES: [
        "InvoiceID",
        "InvoiceNumber",
        "InvoiceType",
        "Status",
        "ClientID",
        "ClientName",
        "ClientAddress",
        "Date",
        "DueDate",
        "TaxRate",
        "DiscountAmount",
        "ProjectID",
        "ProjectName",
        "LineItems",
        "Payments",
        "Notes",
    ],
    SheetName.TRANSACTIONS: [
        "TransactionID",
        "Date",
        "Description",
        "Category",
        "TransactionType",
        "Amount",
        "SourceID",
        "IsReadOnly",
    ],
}


@dataclass(frozen=True)
class ConfigSettings:
    """Typed representation of the ``config.ini`` settings we care about."""

    data_file: Path
    company_name: str
    schema_version: str
    invoice_prefix: str = DEFAULT_INVOICE_PREFIX


# ---------------------------------------------------------------------------
# Row dataclasses
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class LineItem:
    """Single billable line on an invoice."""

    item_id: str
    description: str
    quantity: Decimal
    rate: Decimal


@dataclass(frozen=True)
class Payment:
    """Payment recorded against an invoice."""

    payment_id: str
    payment_date: date
    amount: Decimal
    method: PaymentMethod
    check_number: Optional[str] = None
    notes: Optional[str] = None


@dataclass(frozen=True)
class Material:
    material_id: str
    name: str
    quantity: Decimal
    unit_cost: Decimal


@dataclass(frozen=True)
class StaffAssignment:
    """Employee assigned to a project; the name is a snapshot taken on assignment."""

    employee_id: str
    employee_name: str
    project_role: str
    payment_amount: Decimal


@dataclass(frozen=True)
class OtherExpense:
    expense_id: str
    description: str
    amount: Decimal


@dataclass(frozen=True)
class ClientRow:
    """In-memory view of a row from the ``Clients`` sheet."""

    client_id: str
    name: str
    contact_person: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    address: Optional[str] = None

    @property
    def key(self) -> str:
        return self.client_id


@dataclass(frozen=True)
class EmployeeRow:
    """In-memory view of a row from the ``Employees`` sheet."""

    employee_id: str
    name: str
    role: str
    status: EmployeeStatus = EmployeeStatus.ACTIVE
    email: Optional[str] = None
    phone: Optional[str] = None
    start_date: Optional[date] = None

    @property
    def key(self) -> str:
        return self.employee_id


@dataclass(frozen=True)
class ProjectRow:
    """In-memory view of a row from the ``Projects`` sheet.

    ``client_name`` is a snapshot written when the project is saved; it is not
    refreshed when the client record changes later. ``amount_received`` is
    owned by the ledger engine and never taken from user input.
    """

    project_id: str
    name: str
    client_id: Optional[str]
    client_name: str
    location: str
    start_date: Optional[date]
    end_date: Optional[date]
    status: ProjectStatus
    total_budget: Decimal
    amount_received: Decimal = Decimal("0.00")
    materials: tuple[Material, ...] = ()
    staff: tuple[StaffAssignment, ...] = ()
    other_expenses: tuple[OtherExpense, ...] = ()

    @property
    def key(self) -> str:
        return self.project_id


@dataclass(frozen=True)
class InvoiceRow:
    """In-memory view of a row from the ``Invoices`` sheet.

    Client and project names are snapshots refreshed only when the invoice
    itself is saved.
    """

    invoice_id: str
    invoice_number: str
    invoice_type: InvoiceType
    status: InvoiceStatus
    client_id: Optional[str]
    client_name: str
    client_address: Optional[str]
    invoice_date: date
    due_date: Optional[date]
    tax_rate: Decimal
    discount_amount: Decimal
    project_id: Optional[str] = None
    project_name: Optional[str] = None
    line_items: tuple[LineItem, ...] = ()
    payments: tuple[Payment, ...] = ()
    notes: Optional[str] = None

    @property
    def key(self) -> str:
        return self.invoice_id


@dataclass(frozen=True)
class TransactionRow:
    """In-memory view of a row from the ``Transactions`` sheet.

    Rows carrying a ``source_id`` are mirrors maintained by the ledger engine;
    rows without one are manual entries.
    """

    transaction_id: str
    transaction_date: date
    description: str
    category: str
    transaction_type: TransactionType
    amount: Decimal
    source_id: Optional[str] = None
    is_read_only: bool = False

    @property
    def key(self) -> str:
        return self.transaction_id


RowT = TypeVar("RowT", ClientRow, EmployeeRow, ProjectRow, InvoiceRow, TransactionRow)


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------


def find_config_file(explicit_path: Optional[Path] = None) -> Path:
    """Locate the configuration file that controls how the data layer behaves.

    An explicit path is returned as-is so callers can target a non-standard
    location. Otherwise the search walks up from the current working
    directory toward the filesystem root and returns the first
    ``CONFIG_FILE_NAME`` it finds.

    Args:
        explicit_path (Path | None): Optional path to use instead of searching.

    Returns:
        Path: The explicit path or the discovered configuration file.

    Raises:
        FileNotFoundError: If no parent directory holds ``CONFIG_FILE_NAME``.
    """

    if explicit_path:
        return explicit_path

    current = Path.cwd()
    for p in (current, *current.parents):
        candidate = p / CONFIG_FILE_NAME
        if candidate.exists():
            return candidate

    raise FileNotFoundError(
        f"Configuration file not found: {CONFIG_FILE_NAME}")


def read_config(config_path: Path) -> configparser.ConfigParser:
    """Load ``config.ini`` and return a populated ``ConfigParser`` instance.

    Args:
        config_path (Path): Path to the configuration file, relative or
            absolute. ``~`` is expanded.

    Returns:
        configparser.ConfigParser: Parser holding the raw configuration. The
            presence of individual options is checked by
            :func:`parse_settings`.

    Raises:
        FileNotFoundError: If ``config_path`` does not exist.
    """

    config_path = config_path.expanduser().resolve()
    if not config_path.exists():
        raise FileNotFoundError(f"Configuration file not found: {config_path}")

    parser = configparser.ConfigParser()
    parser.read(config_path)
    return parser


def parse_settings(parser: configparser.ConfigParser, *, base_path: Optional[Path] = None) -> ConfigSettings:
    """Convert a ``ConfigParser`` into strongly typed :class:`ConfigSettings`.

    ``[System]`` must provide ``DataFile``, ``CompanyName`` and
    ``SchemaVersion``. ``[Defaults] InvoicePrefix`` is optional. A relative
    ``DataFile`` is anchored at ``base_path`` (or the working directory) and
    resolved.

    Args:
        parser (configparser.ConfigParser): Parsed configuration data.
        base_path (Path | None): Anchor for relative ``DataFile`` entries.

    Returns:
        ConfigSettings: Immutable settings container.

    Raises:
        KeyError: If a required section or option is missing.
    """

    try:
        data_file_raw = parser.get("System", "DataFile")
        company_name = parser.get("System", "CompanyName")
        schema_version = parser.get("System", "SchemaVersion")
    except (configparser.NoSectionError, configparser.NoOptionError) as exc:
        raise KeyError(f"Missing required configuration entry: {exc}") from exc

    invoice_prefix = parser.get("Defaults", "InvoicePrefix", fallback=DEFAULT_INVOICE_PREFIX).strip()

    data_file_path = Path(data_file_raw)
    if not data_file_path.is_absolute():
        if base_path is None:
            base_path = Path.cwd()
        data_file_path = (base_path / data_file_path).resolve()

    return ConfigSettings(
        data_file=data_file_path,
        company_name=company_name,
        schema_version=schema_version,
        invoice_prefix=invoice_prefix or DEFAULT_INVOICE_PREFIX,
    )


# ---------------------------------------------------------------------------
# Workbook lifecycle
# ---------------------------------------------------------------------------


def open_workbook(data_file: Path) -> Workbook:
    """Open the master workbook and return a live ``openpyxl`` workbook.

    Raises:
        FileNotFoundError: If ``data_file`` does not exist after expansion and
            resolution.
    """

    data_file = Path(data_file).expanduser().resolve()
    if not data_file.exists():
        raise FileNotFoundError(f"Workbook not found: {data_file}")

    return openpyxl.load_workbook(data_file)


def save_workbook(workbook: Workbook, destination: Path) -> None:
    """Persist the workbook at ``destination``, creating parent folders."""

    dest = Path(destination).expanduser().resolve()
    dest.parent.mkdir(parents=True, exist_ok=True)
    workbook.save(dest)


def refresh_workbook(data_file: Path) -> Workbook:
    """Reload the workbook from disk, discarding unsaved in-memory changes."""

    return open_workbook(data_file)


def iter_rows(workbook: Workbook, sheet_name: SheetName, deserializer: Callable[[Sequence[object]], RowT]) -> Iterator[RowT]:
    """Yield typed records from ``sheet_name``, skipping the header and blank rows."""

    sheet = workbook[sheet_name.value]
    width = len(SHEET_COLUMNS[sheet_name])
    for raw in sheet.iter_rows(min_row=2, values_only=True):
        if any(cell is not None for cell in raw):
            padded = tuple(raw[:width]) + (None,) * max(0, width - len(raw))
            yield deserializer(padded)


def locate_row(workbook: Workbook, sheet_name: str, key_column: str, key_value: str) -> Optional[int]:
    """Find the 1-based row index whose ``key_column`` equals ``key_value``.

    Raises:
        KeyError: If ``key_column`` is not present in the header row.
    """

    sheet = workbook[sheet_name]
    header_cells = list(sheet[1])
    header_map = {cell.value: idx + 1 for idx, cell in enumerate(header_cells)}
    if key_column not in header_map:
        raise KeyError(f"Unknown column: {key_column}")

    key_col_index = header_map[key_column]

    for row_idx, row in enumerate(sheet.iter_rows(min_row=2, values_only=True), start=2):
        cell_value = row[key_col_index - 1] if len(row) >= key_col_index else None
        # ids typed into Excel by hand may come back as numbers
        if cell_value is not None and str(cell_value) == key_value:
            return row_idx

    return None


# ---------------------------------------------------------------------------
# Cell conversion helpers
# ---------------------------------------------------------------------------


def _to_decimal(raw: object, default: str = "0.00") -> Decimal:
    if raw is None or raw == "":
        return Decimal(default)
    return Decimal(str(raw))


def _to_date(raw: object) -> Optional[date]:
    if raw is None or raw == "":
        return None
    if isinstance(raw, datetime):
        return raw.date()
    if isinstance(raw, date):
        return raw
    return date.fromisoformat(str(raw)[:10])


def _optional_str(raw: object) -> Optional[str]:
    if raw is None:
        return None
    text = str(raw)
    return text if text else None


def _iso(value: Optional[date]) -> Optional[str]:
    return value.isoformat() if value is not None else None


def _load_json_list(raw: object) -> List[Dict[str, Any]]:
    if raw is None or raw == "":
        return []
    loaded = json.loads(str(raw))
    if not isinstance(loaded, list):
        raise ValueError(f"Expected a JSON list, found: {type(loaded).__name__}")
    return loaded


def _dump_json_list(items: Iterable[Dict[str, Any]]) -> str:
    return json.dumps(list(items), ensure_ascii=False)


# ---------------------------------------------------------------------------
# Nested line encoding
# ---------------------------------------------------------------------------


def encode_line_item(item: LineItem) -> Dict[str, Any]:
    return {"id": item.item_id, "description": item.description, "quantity": str(item.quantity), "rate": str(item.rate)}


def decode_line_item(raw: Mapping[str, Any]) -> LineItem:
    return LineItem(
        item_id=str(raw["id"]),
        description=str(raw.get("description", "")),
        quantity=_to_decimal(raw.get("quantity"), "0"),
        rate=_to_decimal(raw.get("rate")),
    )


def encode_payment(payment: Payment) -> Dict[str, Any]:
    return {
        "id": payment.payment_id,
        "date": payment.payment_date.isoformat(),
        "amount": str(payment.amount),
        "method": payment.method.value,
        "check_number": payment.check_number,
        "notes": payment.notes,
    }


def decode_payment(raw: Mapping[str, Any]) -> Payment:
    payment_date = _to_date(raw.get("date"))
    if payment_date is None:
        raise ValueError(f"Payment '{raw.get('id')}' has no date")
    return Payment(
        payment_id=str(raw["id"]),
        payment_date=payment_date,
        amount=_to_decimal(raw.get("amount")),
        method=PaymentMethod(raw.get("method") or PaymentMethod.UNSPECIFIED.value),
        check_number=_optional_str(raw.get("check_number")),
        notes=_optional_str(raw.get("notes")),
    )


def encode_material(material: Material) -> Dict[str, Any]:
    return {
        "id": material.material_id,
        "name": material.name,
        "quantity": str(material.quantity),
        "unit_cost": str(material.unit_cost),
    }


def decode_material(raw: Mapping[str, Any]) -> Material:
    return Material(
        material_id=str(raw["id"]),
        name=str(raw.get("name", "")),
        quantity=_to_decimal(raw.get("quantity"), "0"),
        unit_cost=_to_decimal(raw.get("unit_cost")),
    )


def encode_staff(assignment: StaffAssignment) -> Dict[str, Any]:
    return {
        "employee_id": assignment.employee_id,
        "employee_name": assignment.employee_name,
        "project_role": assignment.project_role,
        "payment_amount": str(assignment.payment_amount),
    }


def decode_staff(raw: Mapping[str, Any]) -> StaffAssignment:
    return StaffAssignment(
        employee_id=str(raw["employee_id"]),
        employee_name=str(raw.get("employee_name", "")),
        project_role=str(raw.get("project_role", "")),
        payment_amount=_to_decimal(raw.get("payment_amount")),
    )


def encode_expense(expense: OtherExpense) -> Dict[str, Any]:
    return {"id": expense.expense_id, "description": expense.description, "amount": str(expense.amount)}


def decode_expense(raw: Mapping[str, Any]) -> OtherExpense:
    return OtherExpense(
        expense_id=str(raw["id"]),
        description=str(raw.get("description", "")),
        amount=_to_decimal(raw.get("amount")),
    )


# ---------------------------------------------------------------------------
# Row serialization
# ---------------------------------------------------------------------------


def serialize_client(record: ClientRow) -> list[object]:
    """Arrange a client in the ``Clients`` column order."""

    return [record.client_id, record.name, record.contact_person, record.email, record.phone, record.address]


def deserialize_client(raw_row: Sequence[object]) -> ClientRow:
    client_id, name, contact_person, email, phone, address = raw_row
    return ClientRow(
        client_id=str(client_id),
        name=str(name) if name is not None else "",
        contact_person=_optional_str(contact_person),
        email=_optional_str(email),
        phone=_optional_str(phone),
        address=_optional_str(address),
    )


def serialize_employee(record: EmployeeRow) -> list[object]:
    """Arrange an employee in the ``Employees`` column order."""

    return [
        record.employee_id,
        record.name,
        record.role,
        record.status.value,
        record.email,
        record.phone,
        _iso(record.start_date),
    ]


def deserialize_employee(raw_row: Sequence[object]) -> EmployeeRow:
    employee_id, name, role, status, email, phone, start_date = raw_row
    return EmployeeRow(
        employee_id=str(employee_id),
        name=str(name) if name is not None else "",
        role=str(role) if role is not None else "",
        status=EmployeeStatus(status) if status else EmployeeStatus.ACTIVE,
        email=_optional_str(email),
        phone=_optional_str(phone),
        start_date=_to_date(start_date),
    )


def serialize_project(record: ProjectRow) -> list[object]:
    """Arrange a project in the ``Projects`` column order.

    Material, staff and expense lines are stored as JSON text so a project
    stays a single worksheet row.
    """

    return [
        record.project_id,
        record.name,
        record.client_id,
        record.client_name,
        record.location,
        _iso(record.start_date),
        _iso(record.end_date),
        record.status.value,
        record.total_budget,
        record.amount_received,
        _dump_json_list(encode_material(m) for m in record.materials),
        _dump_json_list(encode_staff(s) for s in record.staff),
        _dump_json_list(encode_expense(e) for e in record.other_expenses),
    ]


def deserialize_project(raw_row: Sequence[object]) -> ProjectRow:
    (
        project_id,
        name,
        client_id,
        client_name,
        location,
        start_date,
        end_date,
        status,
        total_budget,
        amount_received,
        materials,
        staff,
        other_expenses,
    ) = raw_row
    return ProjectRow(
        project_id=str(project_id),
        name=str(name) if name is not None else "",
        client_id=_optional_str(client_id),
        client_name=str(client_name) if client_name is not None else "",
        location=str(location) if location is not None else "",
        start_date=_to_date(start_date),
        end_date=_to_date(end_date),
        status=ProjectStatus(status) if status else ProjectStatus.PLANNED,
        total_budget=_to_decimal(total_budget),
        amount_received=_to_decimal(amount_received),
        materials=tuple(decode_material(m) for m in _load_json_list(materials)),
        staff=tuple(decode_staff(s) for s in _load_json_list(staff)),
        other_expenses=tuple(decode_expense(e) for e in _load_json_list(other_expenses)),
    )


def serialize_invoice(record: InvoiceRow) -> list[object]:
    """Arrange an invoice in the ``Invoices`` column order."""

    return [
        record.invoice_id,
        record.invoice_number,
        record.invoice_type.value,
        record.status.value,
        record.client_id,
        record.client_name,
        record.client_address,
        record.invoice_date.isoformat(),
        _iso(record.due_date),
        record.tax_rate,
        record.discount_amount,
        record.project_id,
        record.project_name,
        _dump_json_list(encode_line_item(item) for item in record.line_items),
        _dump_json_list(encode_payment(p) for p in record.payments),
        record.notes,
    ]


def deserialize_invoice(raw_row: Sequence[object]) -> InvoiceRow:
    (
        invoice_id,
        invoice_number,
        invoice_type,
        status,
        client_id,
        client_name,
        client_address,
        invoice_date,
        due_date,
        tax_rate,
        discount_amount,
        project_id,
        project_name,
        line_items,
        payments,
        notes,
    ) = raw_row
    parsed_date = _to_date(invoice_date)
    if parsed_date is None:
        raise ValueError(f"Invoice '{invoice_id}' has no date")
    return InvoiceRow(
        invoice_id=str(invoice_id),
        invoice_number=str(invoice_number) if invoice_number is not None else "",
        invoice_type=InvoiceType(invoice_type) if invoice_type else InvoiceType.INVOICE,
        status=InvoiceStatus(status) if status else InvoiceStatus.DRAFT,
        client_id=_optional_str(client_id),
        client_name=str(client_name) if client_name is not None else "",
        client_address=_optional_str(client_address),
        invoice_date=parsed_date,
        due_date=_to_date(due_date),
        tax_rate=_to_decimal(tax_rate, "0"),
        discount_amount=_to_decimal(discount_amount),
        project_id=_optional_str(project_id),
        project_name=_optional_str(project_name),
        line_items=tuple(decode_line_item(item) for item in _load_json_list(line_items)),
        payments=tuple(decode_payment(p) for p in _load_json_list(payments)),
        notes=_optional_str(notes),
    )


def serialize_transaction(record: TransactionRow) -> list[object]:
    """Arrange a transaction in the ``Transactions`` column order."""

    return [
        record.transaction_id,
        record.transaction_date.isoformat(),
        record.description,
        record.category,
        record.transaction_type.value,
        record.amount,
        record.source_id,
        record.is_read_only,
    ]


def deserialize_transaction(raw_row: Sequence[object]) -> TransactionRow:
    (
        transaction_id,
        transaction_date,
        description,
        category,
        transaction_type,
        amount,
        source_id,
        is_read_only,
    ) = raw_row
    parsed_date = _to_date(transaction_date)
    if parsed_date is None:
        raise ValueError(f"Transaction '{transaction_id}' has no date")
    return TransactionRow(
        transaction_id=str(transaction_id),
        transaction_date=parsed_date,
        description=str(description) if description is not None else "",
        category=str(category) if category is not None else "",
        transaction_type=TransactionType(transaction_type),
        amount=_to_decimal(amount),
        source_id=_optional_str(source_id),
        is_read_only=bool(is_read_only),
    )


SERIALIZERS: Mapping[SheetName, tuple[Callable[[Any], list[object]], Callable[[Sequence[object]], Any]]] = {
    SheetName.CLIENTS: (serialize_client, deserialize_client),
    SheetName.EMPLOYEES: (serialize_employee, deserialize_employee),
    SheetName.PROJECTS: (serialize_project, deserialize_project),
    SheetName.INVOICES: (serialize_invoice, deserialize_invoice),
    SheetName.TRANSACTIONS: (serialize_transaction, deserialize_transaction),
}


# ---------------------------------------------------------------------------
# Repositories
# ---------------------------------------------------------------------------


class Repository(Protocol[RowT]):
    """Per-entity persistence contract consumed by the ledger service."""

    def list_all(self) -> List[RowT]:
        ...

    def get(self, key: str) -> Optional[RowT]:
        ...

    def upsert(self, record: RowT) -> None:
        ...

    def delete(self, key: str) -> bool:
        ...


class MemoryRepository(Generic[RowT]):
    """Dictionary-backed repository preserving insertion order."""

    def __init__(self, records: Iterable[RowT] = ()) -> None:
        self._records: Dict[str, RowT] = {record.key: record for record in records}

    def list_all(self) -> List[RowT]:
        return list(self._records.values())

    def get(self, key: str) -> Optional[RowT]:
        return self._records.get(key)

    def upsert(self, record: RowT) -> None:
        self._records[record.key] = record

    def delete(self, key: str) -> bool:
        return self._records.pop(key, None) is not None


class WorkbookRepository(Generic[RowT]):
    """Repository over one worksheet of the master workbook.

    Rows are read once into a cache keyed by the first column. Writes go
    straight to the worksheet and the cache; nothing reaches the disk until
    the workbook is saved.
    """

    def __init__(self, workbook: Workbook, sheet_name: SheetName) -> None:
        self._workbook = workbook
        self._sheet_name = sheet_name
        self._key_column = SHEET_COLUMNS[sheet_name][0]
        self._serialize, self._deserialize = SERIALIZERS[sheet_name]
        self._cache: Optional[Dict[str, RowT]] = None

    def _ensure_cache(self) -> Dict[str, RowT]:
        if self._cache is None:
            rows = list(iter_rows(self._workbook, self._sheet_name, self._deserialize))
            self._cache = {row.key: row for row in rows}
            log.debug("Loaded %d rows from sheet '%s'", len(rows), self._sheet_name.value)
        return self._cache

    def list_all(self) -> List[RowT]:
        return list(self._ensure_cache().values())

    def get(self, key: str) -> Optional[RowT]:
        return self._ensure_cache().get(key)

    def upsert(self, record: RowT) -> None:
        cache = self._ensure_cache()
        sheet = self._workbook[self._sheet_name.value]
        values = self._serialize(record)
        row_index = locate_row(self._workbook, self._sheet_name.value, self._key_column, record.key)
        if row_index is None:
            sheet.append(values)
        else:
            for column, value in enumerate(values, start=1):
                sheet.cell(row=row_index, column=column, value=value)
        cache[record.key] = record

    def delete(self, key: str) -> bool:
        cache = self._ensure_cache()
        row_index = locate_row(self._workbook, self._sheet_name.value, self._key_column, key)
        if row_index is None:
            return False
        self._workbook[self._sheet_name.value].delete_rows(row_index)
        cache.pop(key, None)
        return True


@dataclass
class Repositories:
    """One repository per entity kind."""

    clients: Repository[ClientRow]
    employees: Repository[EmployeeRow]
    projects: Repository[ProjectRow]
    invoices: Repository[InvoiceRow]
    transactions: Repository[TransactionRow]
    _by_kind: Dict[SheetName, Repository[Any]] = field(init=False, repr=False)

    def __post_init__(self) -> None:
        self._by_kind = {
            SheetName.CLIENTS: self.clients,
            SheetName.EMPLOYEES: self.employees,
            SheetName.PROJECTS: self.projects,
            SheetName.INVOICES: self.invoices,
            SheetName.TRANSACTIONS: self.transactions,
        }

    def for_kind(self, kind: SheetName) -> Repository[Any]:
        return self._by_kind[kind]


def build_workbook_repositories(workbook: Workbook) -> Repositories:
    """Create sheet-backed repositories for every entity in ``workbook``.

    Raises:
        KeyError: If the workbook lacks one of the expected sheets.
    """

    missing = [kind.value for kind in SheetName if kind.value not in workbook.sheetnames]
    if missing:
        raise KeyError(f"Workbook is missing sheets: {', '.join(missing)}")
    return Repositories(
        clients=WorkbookRepository(workbook, SheetName.CLIENTS),
        employees=WorkbookRepository(workbook, SheetName.EMPLOYEES),
        projects=WorkbookRepository(workbook, SheetName.PROJECTS),
        invoices=WorkbookRepository(workbook, SheetName.INVOICES),
        transactions=WorkbookRepository(workbook, SheetName.TRANSACTIONS),
    )


def build_memory_repositories(
    *,
    clients: Iterable[ClientRow] = (),
    employees: Iterable[EmployeeRow] = (),
    projects: Iterable[ProjectRow] = (),
    invoices: Iterable[InvoiceRow] = (),
    transactions: Iterable[TransactionRow] = (),
) -> Repositories:
    """Create dictionary-backed repositories, optionally pre-seeded."""

    return Repositories(
        clients=MemoryRepository(clients),
        employees=MemoryRepository(employees),
        projects=MemoryRepository(projects),
        invoices=MemoryRepository(invoices),
        transactions=MemoryRepository(transactions),
    )
