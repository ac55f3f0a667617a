"""Shared pytest fixtures and utilities for bizledger tests."""

from __future__ import annotations

import argparse
import itertools
import sys
import uuid
from dataclasses import dataclass
from decimal import Decimal
from pathlib import Path
from typing import Callable, Iterable, Iterator, List, Optional, Sequence

import pytest

# Ensure source packages are importable without installation.
PROJECT_ROOT = Path(__file__).resolve().parents[1]
SRC_DIR = PROJECT_ROOT / "src"

if str(SRC_DIR) not in sys.path:
    sys.path.insert(0, str(SRC_DIR))

from bizledger import constants, core_logic, data_manager  # noqa: E402
from bizledger.setup_excel import create_master_workbook  # noqa: E402

DEFAULT_SCHEMA_VERSION = constants.EXPECTED_SCHEMA_VERSION
DEFAULT_OWNER_ID = "owner-1"
_CONFIG_TEMPLATE = (
    "[System]\n"
    "DataFile = {data_file}\n"
    "BusinessName = {business_name}\n"
    "SchemaVersion = {schema_version}\n\n"
    "[Defaults]\n"
    "DefaultOwner = {default_owner_id}\n"
)


@dataclass(frozen=True)
class ConfigBundle:
    """Container bundling together config metadata for tests."""

    directory: Path
    config_path: Path
    workbook_path: Path
    default_owner_id: str
    schema_version: str
    business_name: str


class InMemoryStore:
    """Fixture data source honouring the ``ReportDataSource`` contract.

    ``fail_on`` names a method that raises ``ConnectionError`` to simulate an
    unreachable data store. With ``leak_foreign_rows`` the owner filter is
    skipped so tests can check that the engine scopes rows itself.
    """

    def __init__(
        self,
        *,
        revenues: Sequence[data_manager.RevenueRow] = (),
        expenses: Sequence[data_manager.ExpenseRow] = (),
        clients: Sequence[data_manager.ClientRow] = (),
        products: Sequence[data_manager.ProductRow] = (),
        items: Sequence[data_manager.RevenueItemRow] = (),
        fail_on: Optional[str] = None,
        leak_foreign_rows: bool = False,
    ) -> None:
        self.revenues = list(revenues)
        self.expenses = list(expenses)
        self.clients = list(clients)
        self.products = list(products)
        self.items = list(items)
        self.fail_on = fail_on
        self.leak_foreign_rows = leak_foreign_rows
        self.calls: List[str] = []

    def _enter(self, name: str) -> None:
        self.calls.append(name)
        if self.fail_on == name:
            raise ConnectionError(f"{name} unavailable")

    def _scoped(self, rows, owner_id):
        if self.leak_foreign_rows:
            return list(rows)
        return [row for row in rows if row.owner_id == owner_id]

    def fetch_revenues(self, owner_id):
        self._enter("fetch_revenues")
        return self._scoped(self.revenues, owner_id)

    def fetch_expenses(self, owner_id):
        self._enter("fetch_expenses")
        return self._scoped(self.expenses, owner_id)

    def fetch_clients(self, client_ids):
        self._enter("fetch_clients")
        wanted = set(client_ids)
        return [row for row in self.clients if row.client_id in wanted]

    def fetch_owner_clients(self, owner_id):
        self._enter("fetch_owner_clients")
        return self._scoped(self.clients, owner_id)

    def count_clients(self, owner_id):
        self._enter("count_clients")
        return len([row for row in self.clients if row.owner_id == owner_id])

    def fetch_products(self, product_ids):
        self._enter("fetch_products")
        wanted = set(product_ids)
        return [row for row in self.products if row.product_id in wanted]

    def fetch_active_products(self, owner_id):
        self._enter("fetch_active_products")
        rows = self._scoped(self.products, owner_id)
        if self.leak_foreign_rows:
            return rows
        return [row for row in rows if row.is_active]

    def fetch_line_items(self, revenue_ids):
        self._enter("fetch_line_items")
        if self.leak_foreign_rows:
            return list(self.items)
        wanted = set(revenue_ids)
        return [row for row in self.items if row.revenue_id in wanted]


class RowFactory:
    """Build data_manager rows with sequential ids and sensible defaults."""

    def __init__(self, owner_id: str = DEFAULT_OWNER_ID) -> None:
        self.owner_id = owner_id
        self._ids = itertools.count(1)

    def _next(self, prefix: str) -> str:
        return f"{prefix}{next(self._ids)}"

    def revenue(
        self,
        amount: str | int,
        *,
        category: Optional[str] = None,
        attachment: Optional[str] = None,
        client_id: Optional[str] = None,
        owner_id: Optional[str] = None,
        revenue_id: Optional[str] = None,
    ) -> data_manager.RevenueRow:
        return data_manager.RevenueRow(
            revenue_id=revenue_id or self._next("R"),
            owner_id=owner_id or self.owner_id,
            description="sale",
            amount=Decimal(str(amount)),
            category=category,
            attachment=attachment,
            date_iso="2025-01-15",
            client_id=client_id,
        )

    def expense(
        self,
        amount: str | int,
        *,
        category: Optional[str] = None,
        attachment: Optional[str] = None,
        owner_id: Optional[str] = None,
    ) -> data_manager.ExpenseRow:
        return data_manager.ExpenseRow(
            expense_id=self._next("E"),
            owner_id=owner_id or self.owner_id,
            description="expense",
            amount=Decimal(str(amount)),
            category=category,
            attachment=attachment,
            created_at_iso="2025-01-15T10:00:00",
        )

    def client(self, name: str, *, client_id: Optional[str] = None, owner_id: Optional[str] = None) -> data_manager.ClientRow:
        return data_manager.ClientRow(
            client_id=client_id or self._next("C"),
            owner_id=owner_id or self.owner_id,
            client_name=name,
        )

    def product(
        self,
        name: str,
        stock: str | int,
        *,
        unit: Optional[str] = constants.BaseUnit.UNIT.value,
        category: Optional[str] = None,
        is_active: bool = True,
        product_id: Optional[str] = None,
        owner_id: Optional[str] = None,
    ) -> data_manager.ProductRow:
        return data_manager.ProductRow(
            product_id=product_id or self._next("P"),
            owner_id=owner_id or self.owner_id,
            product_name=name,
            base_unit=unit,
            stock_base=Decimal(str(stock)),
            category=category,
            is_active=is_active,
        )

    def item(self, revenue_id: str, product_id: str, quantity: str | int, subtotal: str | int = "0") -> data_manager.RevenueItemRow:
        return data_manager.RevenueItemRow(
            item_id=self._next("I"),
            revenue_id=revenue_id,
            product_id=product_id,
            quantity_base=Decimal(str(quantity)),
            subtotal=Decimal(str(subtotal)),
        )


@pytest.fixture(scope="session", autouse=True)
def _restore_sys_path() -> Iterator[None]:
    """Ensure sys.path modifications are undone after the test session."""

    original = sys.path.copy()
    try:
        yield
    finally:
        sys.path[:] = original


@pytest.fixture
def rows() -> RowFactory:
    """Return a row factory scoped to ``DEFAULT_OWNER_ID``."""

    return RowFactory()


@pytest.fixture
def store_factory() -> Callable[..., InMemoryStore]:
    """Return the in-memory store class so tests can seed it per scenario."""

    return InMemoryStore


@pytest.fixture
def settings(tmp_path: Path) -> data_manager.ConfigSettings:
    """Provide default configuration settings for runtime context tests."""

    return data_manager.ConfigSettings(
        data_file=tmp_path / "master_workbook.xlsx",
        business_name="Test Shop",
        schema_version=constants.EXPECTED_SCHEMA_VERSION,
        default_owner_id=DEFAULT_OWNER_ID,
    )


@pytest.fixture
def context_factory(settings: data_manager.ConfigSettings) -> Callable[[object], core_logic.RuntimeContext]:
    """Wrap any data source into a runtime context with default settings."""

    def _create(store: object) -> core_logic.RuntimeContext:
        return core_logic.RuntimeContext(settings=settings, store=store)

    return _create


@pytest.fixture
def workbook_factory(tmp_path: Path) -> Callable[..., Path]:
    """Factory that creates an initialized master workbook in a temp folder."""

    def _create_workbook(*, subdir: str | None = None, filename: str = "master_workbook.xlsx") -> Path:
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
        business_name: str = "Test Shop",
        schema_version: str = DEFAULT_SCHEMA_VERSION,
        default_owner_id: str = DEFAULT_OWNER_ID,
    ) -> ConfigBundle:
        bundle_dir_name = f"bundle_{uuid.uuid4().hex}"
        bundle_dir = tmp_path / bundle_dir_name
        workbook_path = workbook_factory(subdir=bundle_dir_name)
        data_file_entry = workbook_path.name if make_relative else str(workbook_path)
        config_path = bundle_dir / "config.ini"
        config_path.write_text(
            _CONFIG_TEMPLATE.format(
                data_file=data_file_entry,
                business_name=business_name,
                schema_version=schema_version,
                default_owner_id=default_owner_id,
            )
        )
        return ConfigBundle(
            directory=bundle_dir,
            config_path=config_path,
            workbook_path=workbook_path,
            default_owner_id=default_owner_id,
            schema_version=schema_version,
            business_name=business_name,
        )

    return _create_config


@pytest.fixture
def config_file(config_factory: Callable[..., ConfigBundle]) -> Path:
    """Convenience fixture returning only the config path."""

    return config_factory().config_path


@pytest.fixture
def seed_workbook() -> Callable[..., None]:
    """Append rows to a workbook file on disk and save it."""

    def _seed(path: Path, records: Iterable[object]) -> None:
        workbook = data_manager.open_workbook(path)
        appenders = {
            data_manager.ClientRow: data_manager.append_client,
            data_manager.ProductRow: data_manager.append_product,
            data_manager.RevenueRow: data_manager.append_revenue,
            data_manager.ExpenseRow: data_manager.append_expense,
            data_manager.RevenueItemRow: data_manager.append_revenue_item,
        }
        for record in records:
            appenders[type(record)](workbook, record)
        data_manager.save_workbook(workbook, path)

    return _seed


# ---------------------------------------------------------------------------
# CLI layer fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def cli_parser() -> argparse.ArgumentParser:
    """Return a fresh CLI parser instance for tests."""

    return argparse.ArgumentParser(prog="bizledger-cli", description="bizledger CLI")


@pytest.fixture
def subparsers_action(
    cli_parser: argparse.ArgumentParser,
) -> argparse._SubParsersAction[argparse.ArgumentParser]:
    """Return the subparser action used to register commands."""

    return cli_parser.add_subparsers(dest="command")
