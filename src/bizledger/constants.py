"""Enumerations and fixed values shared across bizledger modules.

The data access layer, the reporting engine, and the CLI all read their
identifiers from here so sheet names, unit tags, and ranking sizes never
drift apart.
"""

from __future__ import annotations

from enum import Enum


# Central schema version expected by all layers when validating workbooks.
EXPECTED_SCHEMA_VERSION = "1.0.0"

# Expense entries without a category are reported under this label.
UNCATEGORIZED = "Uncategorized"

# Placeholder used when a revenue entry points at a client that no longer exists.
UNKNOWN_CLIENT_TEMPLATE = "Client ID {client_id}"

# Ranking sizes for each report section.
TOP_CATEGORIES = 3
TOP_PRODUCTS = 3
TOP_CLIENTS_BY_SPEND = 5
TOP_CLIENTS_BY_PURCHASES = 3
TOP_STOCK_CATEGORIES = 3
TOP_STOCK_PER_UNIT = 3
TOP_CLIENTS_BY_ITEMS = 10


class BaseUnit(str, Enum):
    """Enumerate the units a product stock quantity is stored in."""

    UNIT = "UN"
    GRAM = "G"
    MILLILITER = "ML"


class DisplayUnit(str, Enum):
    """Enumerate the labels used when presenting normalized quantities."""

    UNIT = "un"
    KILOGRAM = "kg"
    LITER = "L"


class SheetName(str, Enum):
    """Enumerate the workbook sheet names managed by the DAL."""

    CLIENTS = "Clients"
    PRODUCTS = "Products"
    REVENUES = "Revenues"
    EXPENSES = "Expenses"
    REVENUE_ITEMS = "RevenueItems"


__all__ = [
    "EXPECTED_SCHEMA_VERSION",
    "UNCATEGORIZED",
    "UNKNOWN_CLIENT_TEMPLATE",
    "TOP_CATEGORIES",
    "TOP_PRODUCTS",
    "TOP_CLIENTS_BY_SPEND",
    "TOP_CLIENTS_BY_PURCHASES",
    "TOP_STOCK_CATEGORIES",
    "TOP_STOCK_PER_UNIT",
    "TOP_CLIENTS_BY_ITEMS",
    "BaseUnit",
    "DisplayUnit",
    "SheetName",
]
