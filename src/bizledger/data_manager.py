"""Data access layer for bizledger.

This module provides low-level helpers that read from and write to the
``master_workbook.xlsx`` workbook. Aggregation belongs elsewhere.

The public API is designed around four responsibilities:

1. Configuration handling: finding and parsing ``config.ini``.
2. Workbook lifecycle: opening, validating, and persisting the Excel file.
3. Sheet operations: loading structured records and appending rows.
4. :class:`WorkbookStore`, the owner-scoped read interface consumed by the
   reporting engine.
"""


from __future__ import annotations

import configparser
from dataclasses import dataclass
from decimal import Decimal
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence

from openpyxl.workbook import Workbook
import openpyxl

from . import log
from .constants import SheetName


CONFIG_FILE_NAME = "config.ini"
CLIENTS_SHEET = SheetName.CLIENTS.value
PRODUCTS_SHEET = SheetName.PRODUCTS.value
REVENUES_SHEET = SheetName.REVENUES.value
EXPENSES_SHEET = SheetName.EXPENSES.value
REVENUE_ITEMS_SHEET = SheetName.REVENUE_ITEMS.value


@dataclass(frozen=True)
class ConfigSettings:
    """Typed representation of the ``config.ini`` settings we care about."""

    data_file: Path
    business_name: str
    schema_version: str
    default_owner_id: str


@dataclass(frozen=True)
class ClientRow:
    """In-memory view of a row from the ``Clients`` sheet."""

    client_id: str
    owner_id: str
    client_name: str


@dataclass(frozen=True)
class ProductRow:
    """In-memory view of a row from the ``Products`` sheet."""

    product_id: str
    owner_id: str
    product_name: str
    base_unit: Optional[str]
    stock_base: Decimal
    category: Optional[str]
    is_active: bool


@dataclass(frozen=True)
class RevenueRow:
    """In-memory view of a row from the ``Revenues`` sheet."""

    revenue_id: str
    owner_id: str
    description: str
    amount: Decimal
    category: Optional[str]
    attachment: Optional[str]
    date_iso: str
    client_id: Optional[str]


@dataclass(frozen=True)
class ExpenseRow:
    """In-memory view of a row from the ``Expenses`` sheet."""

    expense_id: str
    owner_id: str
    description: str
    amount: Decimal
    category: Optional[str]
    attachment: Optional[str]
    created_at_iso: str


@dataclass(frozen=True)
class RevenueItemRow:
    """In-memory view of a row from the ``RevenueItems`` sheet."""

    item_id: str
    revenue_id: str
    product_id: str
    quantity_base: Decimal
    subtotal: Decimal


def find_config_file(explicit_path: Optional[Path] = None) -> Path:
    """Locate the configuration file that controls how the data layer behaves.

    If the caller provides ``explicit_path`` the value is returned immediately
    without any verification. Otherwise the function walks up from the current
    working directory toward the filesystem root looking for a file named
    ``CONFIG_FILE_NAME``. The first match that exists on disk wins.

    Args:
        explicit_path (Path | None): Optional path to use instead of performing
            the upward search.

    Returns:
        Path: The path provided by the caller or the discovered configuration
            file.

    Raises:
        FileNotFoundError: If the search exhausts all parent directories without
            finding ``CONFIG_FILE_NAME``.
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
            absolute.

    Returns:
        configparser.ConfigParser: Initialized parser containing the raw
            configuration data.

    Raises:
        FileNotFoundError: If ``config_path`` does not exist after expansion and
            resolution.
    """

    config_path = config_path.expanduser().resolve()
    if not config_path.exists():
        raise FileNotFoundError(f"Configuration file not found: {config_path}")

    parser = configparser.ConfigParser()
    parser.read(config_path)
    return parser


def parse_settings(parser: configparser.ConfigParser, *, base_path: Optional[Path] = None) -> ConfigSettings:
    """Convert a ``ConfigParser`` into strongly typed :class:`ConfigSettings`.

    Relative ``DataFile`` entries are expanded against ``base_path`` when
    provided, or against the current working directory as a fallback.

    Args:
        parser (configparser.ConfigParser): Parsed configuration data.
        base_path (Path | None): Directory to use as the anchor for relative
            ``DataFile`` entries.

    Returns:
        ConfigSettings: Immutable settings container with resolved data file
            path, business name, schema version, and default owner id.

    Raises:
        KeyError: If one of the required sections or options is missing from the
            configuration.
    """

    try:
        data_file_raw = parser.get("System", "DataFile")
        business_name = parser.get("System", "BusinessName")
        schema_version = parser.get("System", "SchemaVersion")
        default_owner = parser.get("Defaults", "DefaultOwner")
    except (configparser.NoSectionError, configparser.NoOptionError) as exc:
        raise KeyError(f"Missing required configuration entry: {exc}") from exc

    data_file_path = Path(data_file_raw)
    if not data_file_path.is_absolute():
        if base_path is None:
            base_path = Path.cwd()
        data_file_path = (base_path / data_file_path).resolve()

    return ConfigSettings(
        data_file=data_file_path,
        business_name=business_name,
        schema_version=schema_version,
        default_owner_id=default_owner,
    )


def open_workbook(data_file: Path) -> Workbook:
    """Open the master Excel workbook and return a live ``openpyxl`` workbook.

    Args:
        data_file (Path): Filesystem path to the ``master_workbook.xlsx`` file.

    Returns:
        Workbook: ``openpyxl`` workbook instance backed by the provided file.

    Raises:
        FileNotFoundError: If ``data_file`` does not exist after expansion and
            resolution.
    """

    data_file = Path(data_file).expanduser().resolve()
    if not data_file.exists():
        raise FileNotFoundError(f"Workbook not found: {data_file}")

    wb = openpyxl.load_workbook(data_file)
    return wb


def save_workbook(workbook: Workbook, destination: Path) -> None:
    """Persist the workbook to disk, creating parent directories on demand."""

    dest = Path(destination).expanduser().resolve()
    dest.parent.mkdir(parents=True, exist_ok=True)
    workbook.save(dest)


def _iter_sheet(workbook: Workbook, sheet_name: str, deserialize: Callable[[Sequence[object]], Any]) -> Iterable[Any]:
    sheet = workbook[sheet_name]
    for raw in sheet.iter_rows(min_row=2, values_only=True):
        # skip fully empty rows
        if any(cell is not None for cell in raw):
            yield deserialize(raw)


def iter_clients(workbook: Workbook) -> Iterable[ClientRow]:
    """Iterate over the ``Clients`` worksheet and yield typed records."""

    return _iter_sheet(workbook, CLIENTS_SHEET, deserialize_client)


def iter_products(workbook: Workbook) -> Iterable[ProductRow]:
    """Iterate over product records stored on the ``Products`` worksheet.

    The iterator skips the header row and any fully empty rows. Each remaining
    row is converted into a :class:`ProductRow` via
    :func:`deserialize_product`.

    Args:
        workbook (Workbook): Workbook containing the ``Products`` sheet.

    Yields:
        ProductRow: One structured row for each meaningful record in the sheet.
    """

    return _iter_sheet(workbook, PRODUCTS_SHEET, deserialize_product)


def iter_revenues(workbook: Workbook) -> Iterable[RevenueRow]:
    """Stream revenue entries from the ``Revenues`` worksheet."""

    return _iter_sheet(workbook, REVENUES_SHEET, deserialize_revenue)


def iter_expenses(workbook: Workbook) -> Iterable[ExpenseRow]:
    """Stream expense entries from the ``Expenses`` worksheet."""

    return _iter_sheet(workbook, EXPENSES_SHEET, deserialize_expense)


def iter_revenue_items(workbook: Workbook) -> Iterable[RevenueItemRow]:
    """Stream line items from the ``RevenueItems`` worksheet."""

    return _iter_sheet(workbook, REVENUE_ITEMS_SHEET, deserialize_revenue_item)


def append_client(workbook: Workbook, record: ClientRow) -> None:
    """Append a client record to the ``Clients`` worksheet."""

    workbook[CLIENTS_SHEET].append(serialize_client(record))


def append_product(workbook: Workbook, record: ProductRow) -> None:
    """Append a product record to the ``Products`` worksheet.

    The dataclass is serialized into the exact column ordering expected by the
    sheet before being appended.

    Args:
        workbook (Workbook): Workbook whose products sheet should be modified.
        record (ProductRow): Structured product data ready for persistence.
    """

    workbook[PRODUCTS_SHEET].append(serialize_product(record))


def append_revenue(workbook: Workbook, record: RevenueRow) -> None:
    """Append a revenue entry to the ``Revenues`` worksheet."""

    workbook[REVENUES_SHEET].append(serialize_revenue(record))


def append_expense(workbook: Workbook, record: ExpenseRow) -> None:
    """Append an expense entry to the ``Expenses`` worksheet."""

    workbook[EXPENSES_SHEET].append(serialize_expense(record))


def append_revenue_item(workbook: Workbook, record: RevenueItemRow) -> None:
    """Append a line item to the ``RevenueItems`` worksheet.

    Numerical fields remain :class:`~decimal.Decimal` instances after
    serialization, allowing Excel to preserve precision when the workbook is
    saved.
    """

    workbook[REVENUE_ITEMS_SHEET].append(serialize_revenue_item(record))


def serialize_client(record: ClientRow) -> list[object]:
    return [record.client_id, record.owner_id, record.client_name]


def serialize_product(record: ProductRow) -> list[object]:
    """Convert a product dataclass into the worksheet column ordering.

    Returns:
        list[object]: Values arranged as ``[ProductID, OwnerID, ProductName,
        BaseUnit, StockBase, Category, IsActive]``.
    """

    return [
        record.product_id,
        record.owner_id,
        record.product_name,
        record.base_unit,
        record.stock_base,
        record.category,
        record.is_active,
    ]


def serialize_revenue(record: RevenueRow) -> list[object]:
    return [
        record.revenue_id,
        record.owner_id,
        record.description,
        record.amount,
        record.category,
        record.attachment,
        record.date_iso,
        record.client_id,
    ]


def serialize_expense(record: ExpenseRow) -> list[object]:
    return [
        record.expense_id,
        record.owner_id,
        record.description,
        record.amount,
        record.category,
        record.attachment,
        record.created_at_iso,
    ]


def serialize_revenue_item(record: RevenueItemRow) -> list[object]:
    return [
        record.item_id,
        record.revenue_id,
        record.product_id,
        record.quantity_base,
        record.subtotal,
    ]


def _to_decimal(raw: object, default: str = "0") -> Decimal:
    return Decimal(str(raw)) if raw is not None else Decimal(default)


def _to_optional_str(raw: object) -> Optional[str]:
    return str(raw) if raw is not None else None


def deserialize_client(raw_row: Sequence[object]) -> ClientRow:
    """Convert a raw worksheet row into a strongly typed client record.

    Identifiers are coerced to ``str`` so numeric ids typed into Excel still
    compare equal to the references stored on revenue rows.
    """

    client_id, owner_id, client_name = raw_row[:3]
    return ClientRow(client_id=str(client_id), owner_id=str(owner_id), client_name=str(client_name))


def deserialize_product(raw_row: Sequence[object]) -> ProductRow:
    """Convert a raw worksheet row into a strongly typed product record.

    The converter normalizes the stock quantity into a
    :class:`~decimal.Decimal`, keeps blank unit and category cells as
    ``None``, and uses ``bool`` coercion for the active flag.

    Args:
        raw_row (Sequence[object]): Raw cell values from the worksheet row.

    Returns:
        ProductRow: Dataclass containing consistent Python representations of
            the row contents.
    """

    (
        product_id,
        owner_id,
        product_name,
        base_unit,
        stock_base_raw,
        category,
        is_active,
    ) = raw_row[:7]

    return ProductRow(
        product_id=str(product_id),
        owner_id=str(owner_id),
        product_name=str(product_name) if product_name is not None else "",
        base_unit=_to_optional_str(base_unit),
        stock_base=_to_decimal(stock_base_raw),
        category=_to_optional_str(category),
        is_active=bool(is_active),
    )


def deserialize_revenue(raw_row: Sequence[object]) -> RevenueRow:
    """Convert a raw worksheet row into a strongly typed revenue record.

    Optional columns (category, attachment, client) remain ``None`` when the
    sheet leaves them blank; the amount becomes a :class:`~decimal.Decimal`.
    """

    (
        revenue_id,
        owner_id,
        description,
        amount_raw,
        category,
        attachment,
        date_iso,
        client_id,
    ) = raw_row[:8]

    return RevenueRow(
        revenue_id=str(revenue_id),
        owner_id=str(owner_id),
        description=str(description) if description is not None else "",
        amount=_to_decimal(amount_raw, "0.00"),
        category=_to_optional_str(category),
        attachment=_to_optional_str(attachment),
        date_iso=str(date_iso) if date_iso is not None else "",
        client_id=_to_optional_str(client_id),
    )


def deserialize_expense(raw_row: Sequence[object]) -> ExpenseRow:
    (
        expense_id,
        owner_id,
        description,
        amount_raw,
        category,
        attachment,
        created_at_iso,
    ) = raw_row[:7]

    return ExpenseRow(
        expense_id=str(expense_id),
        owner_id=str(owner_id),
        description=str(description) if description is not None else "",
        amount=_to_decimal(amount_raw, "0.00"),
        category=_to_optional_str(category),
        attachment=_to_optional_str(attachment),
        created_at_iso=str(created_at_iso) if created_at_iso is not None else "",
    )


def deserialize_revenue_item(raw_row: Sequence[object]) -> RevenueItemRow:
    item_id, revenue_id, product_id, quantity_raw, subtotal_raw = raw_row[:5]
    return RevenueItemRow(
        item_id=str(item_id),
        revenue_id=str(revenue_id),
        product_id=str(product_id),
        quantity_base=_to_decimal(quantity_raw),
        subtotal=_to_decimal(subtotal_raw, "0.00"),
    )


class WorkbookStore:
    """Owner-scoped read access to the master workbook.

    Each sheet is scanned at most once per store instance; later queries are
    answered from the memoized rows. A store is meant to live as long as one
    :class:`~bizledger.core_logic.RuntimeContext`, so every report computed
    through it sees the same snapshot of the workbook.
    """

    def __init__(self, workbook: Workbook) -> None:
        self.workbook = workbook
        self._cache: Dict[str, List[Any]] = {}

    def _rows(self, sheet_name: str, loader: Callable[[Workbook], Iterable[Any]]) -> List[Any]:
        rows = self._cache.get(sheet_name)
        if rows is None:
            rows = list(loader(self.workbook))
            self._cache[sheet_name] = rows
            log.debug("Loaded %d rows from sheet '%s'", len(rows), sheet_name)
        return rows

    def fetch_revenues(self, owner_id: str) -> List[RevenueRow]:
        return [row for row in self._rows(REVENUES_SHEET, iter_revenues) if row.owner_id == owner_id]

    def fetch_expenses(self, owner_id: str) -> List[ExpenseRow]:
        return [row for row in self._rows(EXPENSES_SHEET, iter_expenses) if row.owner_id == owner_id]

    def fetch_clients(self, client_ids: Iterable[str]) -> List[ClientRow]:
        wanted = set(client_ids)
        return [row for row in self._rows(CLIENTS_SHEET, iter_clients) if row.client_id in wanted]

    def fetch_owner_clients(self, owner_id: str) -> List[ClientRow]:
        return [row for row in self._rows(CLIENTS_SHEET, iter_clients) if row.owner_id == owner_id]

    def count_clients(self, owner_id: str) -> int:
        return len(self.fetch_owner_clients(owner_id))

    def fetch_products(self, product_ids: Iterable[str]) -> List[ProductRow]:
        wanted = set(product_ids)
        return [row for row in self._rows(PRODUCTS_SHEET, iter_products) if row.product_id in wanted]

    def fetch_active_products(self, owner_id: str) -> List[ProductRow]:
        return [
            row
            for row in self._rows(PRODUCTS_SHEET, iter_products)
            if row.owner_id == owner_id and row.is_active
        ]

    def fetch_line_items(self, revenue_ids: Iterable[str]) -> List[RevenueItemRow]:
        wanted = set(revenue_ids)
        return [row for row in self._rows(REVENUE_ITEMS_SHEET, iter_revenue_items) if row.revenue_id in wanted]
