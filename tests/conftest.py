"""Shared pytest fixtures and utilities for borehole ledger tests."""

from __future__ import annotations

import argparse
import sys
import uuid
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from pathlib import Path
from typing import Callable, Iterator, Sequence

import pytest

# Ensure source packages are importable without installation.
PROJECT_ROOT = Path(__file__).resolve().parents[1]
SRC_DIR = PROJECT_ROOT / "src"

if str(SRC_DIR) not in sys.path:
    sys.path.insert(0, str(SRC_DIR))

from borehole_ledger import cli, constants, core_logic, data_manager  # noqa: E402
from borehole_ledger.constants import (  # noqa: E402
    InvoiceStatus,
    InvoiceType,
    PaymentMethod,
    ProjectStatus,
)
from borehole_ledger.data_manager import (  # noqa: E402
    ClientRow,
    EmployeeRow,
    InvoiceRow,
    LineItem,
    Payment,
    ProjectRow,
)
from borehole_ledger.setup_excel import create_master_workbook  # noqa: E402

DEFAULT_SCHEMA_VERSION = constants.EXPECTED_SCHEMA_VERSION
TODAY = date(2024, 6, 15)
_CONFIG_TEMPLATE = (
    "[System]\n"
    "DataFile = {data_file}\n"
    "CompanyName = {company_name}\n"
    "SchemaVersion = {schema_version}\n\n"
    "[Defaults]\n"
    "InvoicePrefix = {invoice_prefix}\n"
)


@dataclass(frozen=True)
class ConfigBundle:
    """Container bundling together config metadata for tests."""

    directory: Path
    config_path: Path
    workbook_path: Path
    schema_version: str
    company_name: str
    invoice_prefix: str


@pytest.fixture(scope="session", autouse=True)
def _restore_sys_path() -> Iterator[None]:
    """Ensure sys.path modifications are undone after the test session."""

    original = sys.path.copy()
    try:
        yield
    finally:
        sys.path[:] = original


@pytest.fixture
def today() -> date:
    return TODAY


@pytest.fixture
def workbook_factory(tmp_path: Path) -> Callable[..., Path]:
    """Factory that creates an initialized master workbook in a temp folder."""

    def _create_workbook(*, subdir: str | None = None, filename: str = "ledger_master.xlsx") -> Path:
        base_dir = tmp_path if subdir is None else tmp_path / subdir
        base_dir.mkdir(parents=True, exist_ok=True)
        workbook_path = base_dir / filename
        create_master_workbook(workbook_path, overwrite=True)
        return workbook_path

    return _create_workbook


@pytest.fixture
def master_workbook_path(workbook_factory: Callable[..., Path]) -> Path:
    """Return a fresh master workbook ready for use in a test."""

    return workbook_factory(subdir=f"workbook_{uuid.uuid4().hex}")


@pytest.fixture
def config_factory(tmp_path: Path, workbook_factory: Callable[..., Path]) -> Callable[..., ConfigBundle]:
    """Provide a callable that creates config/workbook bundles on demand."""

    def _create_config(
        *,
        make_relative: bool = False,
        company_name: str = "Test Drilling Co",
        schema_version: str = DEFAULT_SCHEMA_VERSION,
        invoice_prefix: str = "INV",
    ) -> ConfigBundle:
        bundle_dir_name = f"bundle_{uuid.uuid4().hex}"
        workbook_path = workbook_factory(subdir=bundle_dir_name)
        bundle_dir = workbook_path.parent
        data_file_entry = workbook_path.name if make_relative else str(workbook_path)
        config_path = bundle_dir / "config.ini"
        config_path.write_text(
            _CONFIG_TEMPLATE.format(
                data_file=data_file_entry,
                company_name=company_name,
                schema_version=schema_version,
                invoice_prefix=invoice_prefix,
            )
        )
        return ConfigBundle(
            directory=bundle_dir,
            config_path=config_path,
            workbook_path=workbook_path,
            schema_version=schema_version,
            company_name=company_name,
            invoice_prefix=invoice_prefix,
        )

    return _create_config


@pytest.fixture
def config_file(config_factory: Callable[..., ConfigBundle]) -> Path:
    """Convenience fixture returning only the config path."""

    return config_factory().config_path


@pytest.fixture
def runtime_context(config_file: Path) -> core_logic.RuntimeContext:
    """Load a workbook-backed runtime context through the public API."""

    context = core_logic.load_runtime_context(config_file)
    core_logic.ensure_schema_version(context)
    return context


@pytest.fixture
def memory_context() -> core_logic.RuntimeContext:
    """Runtime context over empty in-memory repositories."""

    return core_logic.create_memory_context()


# ---------------------------------------------------------------------------
# Entity builders
# ---------------------------------------------------------------------------


def build_client(client_id: str = "", name: str = "Acme Farms", address: str | None = "12 Well Road") -> ClientRow:
    return ClientRow(client_id=client_id, name=name, contact_person="Sam Okoro", address=address)


def build_employee(employee_id: str = "", name: str = "Ama Mensah", role: str = "Driller") -> EmployeeRow:
    return EmployeeRow(employee_id=employee_id, name=name, role=role)


def build_project(
    project_id: str = "",
    *,
    client_id: str | None = None,
    name: str = "Village Borehole",
    budget: str = "1000",
    status: ProjectStatus = ProjectStatus.PLANNED,
) -> ProjectRow:
    return ProjectRow(
        project_id=project_id,
        name=name,
        client_id=client_id,
        client_name="",
        location="Tamale",
        start_date=TODAY,
        end_date=None,
        status=status,
        total_budget=Decimal(budget),
    )


def build_lines(*pairs: tuple[str, str]) -> tuple[LineItem, ...]:
    """Turn ``(quantity, rate)`` pairs into line items."""

    return tuple(
        LineItem(item_id=f"item-{index}", description=f"Line {index}", quantity=Decimal(q), rate=Decimal(r))
        for index, (q, r) in enumerate(pairs, start=1)
    )


def build_payment(amount: str, payment_id: str = "", method: PaymentMethod = PaymentMethod.CASH) -> Payment:
    return Payment(
        payment_id=payment_id or f"pay-{uuid.uuid4().hex[:8]}",
        payment_date=TODAY,
        amount=Decimal(amount),
        method=method,
        check_number="000123" if method == PaymentMethod.CHECK else None,
    )


def build_invoice(
    *,
    client_id: str | None,
    project_id: str | None = None,
    invoice_id: str = "",
    number: str = "",
    invoice_type: InvoiceType = InvoiceType.INVOICE,
    status: InvoiceStatus = InvoiceStatus.SENT,
    lines: Sequence[LineItem] = (),
    tax_rate: str = "0",
    discount: str = "0",
    payments: Sequence[Payment] = (),
    due_date: date | None = None,
) -> InvoiceRow:
    return InvoiceRow(
        invoice_id=invoice_id,
        invoice_number=number,
        invoice_type=invoice_type,
        status=status,
        client_id=client_id,
        client_name="",
        client_address=None,
        invoice_date=TODAY,
        due_date=due_date,
        tax_rate=Decimal(tax_rate),
        discount_amount=Decimal(discount),
        project_id=project_id,
        line_items=tuple(lines),
        payments=tuple(payments),
    )


@pytest.fixture
def seeded_client(memory_context: core_logic.RuntimeContext) -> ClientRow:
    return core_logic.save_client(memory_context, build_client()).entity


@pytest.fixture
def seeded_project(memory_context: core_logic.RuntimeContext, seeded_client: ClientRow) -> ProjectRow:
    return core_logic.save_project(memory_context, build_project(client_id=seeded_client.client_id), today=TODAY).entity


# ---------------------------------------------------------------------------
# CLI layer fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def cli_parser() -> argparse.ArgumentParser:
    """Return a fresh CLI parser instance for tests."""

    return argparse.ArgumentParser(prog="borehole-ledger", description="Borehole ledger CLI")


@pytest.fixture
def subparsers_action(
    cli_parser: argparse.ArgumentParser,
) -> argparse._SubParsersAction[argparse.ArgumentParser]:
    """Return the subparser action used to register commands."""

    return cli_parser.add_subparsers(dest="command")


@pytest.fixture
def command_table_entry() -> tuple[str, cli.CommandSpec]:
    """Provide a placeholder command table entry for dispatch tests."""

    def execute(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
        execute.__dict__["called"] = True
        return 0

    def register(
        subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
    ) -> argparse.ArgumentParser:
        return subparsers.add_parser("ledger-test")

    spec = cli.CommandSpec(
        name="ledger-test",
        help_text="help",
        register=register,
        execute=execute,
    )
    return "ledger-test", spec


@pytest.fixture
def command_spec_iterable() -> list[cli.CommandSpec]:
    """Provide a list of command specs for indexing tests."""

    def _make_spec(name: str) -> cli.CommandSpec:
        return cli.CommandSpec(
            name,
            f"{name} help",
            lambda subparsers: subparsers.add_parser(name),
            lambda *_: 0,
        )

    return [_make_spec("alpha"), _make_spec("beta"), _make_spec("gamma")]


@pytest.fixture
def settings(tmp_path: Path) -> data_manager.ConfigSettings:
    """Provide default configuration settings for runtime context tests."""

    return data_manager.ConfigSettings(
        data_file=tmp_path / "ledger_master.xlsx",
        company_name="Test Drilling Co",
        schema_version=constants.EXPECTED_SCHEMA_VERSION,
    )
