"""Unit tests documenting the expected behavior of the data access layer."""

from __future__ import annotations

import configparser
from decimal import Decimal
from pathlib import Path
from unittest.mock import Mock

import openpyxl
from openpyxl.workbook import Workbook as OpenpyxlWorkbook
import pytest

from bizledger import constants, data_manager


def test_find_config_file_respects_explicit_path(config_file: Path):
    """Supplying an explicit path should be treated as the winning answer."""

    assert data_manager.find_config_file(config_file) == config_file


def test_find_config_file_discovers_in_parent_dirs(tmp_path, monkeypatch):
    """Auto-discovery should walk up from the working directory."""

    config_file = tmp_path / "config.ini"
    config_file.write_text("[System]\nDataFile=master_workbook.xlsx")
    nested = tmp_path / "a" / "b"
    nested.mkdir(parents=True)
    monkeypatch.chdir(nested)

    assert data_manager.find_config_file() == config_file


def test_find_config_file_raises_when_missing(tmp_path, monkeypatch):
    """Absent configuration should surface a clear FileNotFoundError."""

    monkeypatch.chdir(tmp_path)
    with pytest.raises(FileNotFoundError):
        data_manager.find_config_file()


def test_read_config_loads_sections(config_file: Path):
    parser = data_manager.read_config(config_file)

    assert parser.get("System", "BusinessName") == "Test Shop"
    assert parser.get("Defaults", "DefaultOwner") == "owner-1"


def test_read_config_missing_file_raises(tmp_path):
    with pytest.raises(FileNotFoundError):
        data_manager.read_config(tmp_path / "not_there.ini")


def test_parse_settings_resolves_relative_paths(config_factory):
    """Relative DataFile entries should be anchored to the config location."""

    bundle = config_factory(make_relative=True)
    parser = configparser.ConfigParser()
    parser.read(bundle.config_path)

    settings = data_manager.parse_settings(parser, base_path=bundle.config_path.parent)

    assert settings.data_file == (bundle.config_path.parent / bundle.workbook_path.name).resolve()
    assert settings.default_owner_id == "owner-1"
    assert settings.schema_version == constants.EXPECTED_SCHEMA_VERSION


def test_parse_settings_requires_expected_sections(tmp_path):
    parser = configparser.ConfigParser()
    parser.read_string("[Other]\nvalue=1")

    with pytest.raises(KeyError):
        data_manager.parse_settings(parser, base_path=tmp_path)


def test_open_workbook_returns_openpyxl_instance(master_workbook_path):
    workbook = data_manager.open_workbook(master_workbook_path)

    assert isinstance(workbook, OpenpyxlWorkbook)
    assert set(workbook.sheetnames) == {sheet.value for sheet in constants.SheetName}


def test_open_workbook_missing_file_raises(tmp_path):
    with pytest.raises(FileNotFoundError):
        data_manager.open_workbook(tmp_path / "missing.xlsx")


def test_save_workbook_creates_parent_directories(tmp_path):
    destination = tmp_path / "nested" / "out.xlsx"

    data_manager.save_workbook(openpyxl.Workbook(), destination)

    assert destination.exists()


def test_iterators_skip_header_and_blank_rows(master_workbook_path, rows):
    workbook = data_manager.open_workbook(master_workbook_path)
    data_manager.append_revenue(workbook, rows.revenue("12.50", category="food", revenue_id="R-1"))
    workbook[data_manager.REVENUES_SHEET].append([None] * 8)
    data_manager.append_revenue(workbook, rows.revenue("3", revenue_id="R-2"))

    revenues = list(data_manager.iter_revenues(workbook))

    assert [row.revenue_id for row in revenues] == ["R-1", "R-2"]
    assert revenues[0].amount == Decimal("12.50")
    assert revenues[0].category == "food"
    assert revenues[1].category is None


def test_rows_survive_save_and_reload(master_workbook_path, rows):
    """Appended rows read back as equal dataclasses after a disk round trip."""

    records = {
        "client": rows.client("Ana"),
        "product": rows.product("Flour", "2500", unit="G", category="baking"),
        "revenue": rows.revenue("40", attachment="https://x.example/r.png", client_id="C1"),
        "expense": rows.expense("9.90", category="rent"),
        "item": rows.item("R1", "P1", "250", subtotal="4.75"),
    }
    workbook = data_manager.open_workbook(master_workbook_path)
    data_manager.append_client(workbook, records["client"])
    data_manager.append_product(workbook, records["product"])
    data_manager.append_revenue(workbook, records["revenue"])
    data_manager.append_expense(workbook, records["expense"])
    data_manager.append_revenue_item(workbook, records["item"])
    data_manager.save_workbook(workbook, master_workbook_path)

    reloaded = data_manager.open_workbook(master_workbook_path)

    assert list(data_manager.iter_clients(reloaded)) == [records["client"]]
    assert list(data_manager.iter_products(reloaded)) == [records["product"]]
    assert list(data_manager.iter_revenues(reloaded)) == [records["revenue"]]
    assert list(data_manager.iter_expenses(reloaded)) == [records["expense"]]
    assert list(data_manager.iter_revenue_items(reloaded)) == [records["item"]]


def test_deserialize_product_normalizes_types():
    """Numeric ids become strings and blank cells stay ``None``."""

    product = data_manager.deserialize_product([101, 7, "Milk", None, 1500, None, 1])

    assert product == data_manager.ProductRow(
        product_id="101",
        owner_id="7",
        product_name="Milk",
        base_unit=None,
        stock_base=Decimal("1500"),
        category=None,
        is_active=True,
    )


def test_deserialize_revenue_defaults_missing_amount():
    revenue = data_manager.deserialize_revenue(["R9", "owner-1", None, None, None, None, None, 3])

    assert revenue.amount == Decimal("0.00")
    assert revenue.description == ""
    assert revenue.client_id == "3"


def test_serialize_product_orders_columns(rows):
    product = rows.product("Rice", "10", unit="G", category="grains", product_id="P-1")

    assert data_manager.serialize_product(product) == [
        "P-1",
        rows.owner_id,
        "Rice",
        "G",
        Decimal("10"),
        "grains",
        True,
    ]


# ---------------------------------------------------------------------------
# WorkbookStore
# ---------------------------------------------------------------------------


@pytest.fixture
def populated_store(master_workbook_path, rows):
    workbook = data_manager.open_workbook(master_workbook_path)
    data_manager.append_client(workbook, rows.client("Ana", client_id="C1"))
    data_manager.append_client(workbook, rows.client("Zed", client_id="C2", owner_id="other"))
    data_manager.append_product(workbook, rows.product("Bread", "4", product_id="P1"))
    data_manager.append_product(workbook, rows.product("Old", "9", product_id="P2", is_active=False))
    data_manager.append_product(workbook, rows.product("Theirs", "9", product_id="P3", owner_id="other"))
    data_manager.append_revenue(workbook, rows.revenue("10", revenue_id="R1", client_id="C1"))
    data_manager.append_revenue(workbook, rows.revenue("99", revenue_id="R2", owner_id="other"))
    data_manager.append_expense(workbook, rows.expense("3"))
    data_manager.append_expense(workbook, rows.expense("300", owner_id="other"))
    data_manager.append_revenue_item(workbook, rows.item("R1", "P1", "2"))
    data_manager.append_revenue_item(workbook, rows.item("R2", "P3", "1"))
    return data_manager.WorkbookStore(workbook)


def test_workbook_store_scopes_by_owner(populated_store, rows):
    owner = rows.owner_id

    assert [row.revenue_id for row in populated_store.fetch_revenues(owner)] == ["R1"]
    assert [row.amount for row in populated_store.fetch_expenses(owner)] == [Decimal("3")]
    assert populated_store.count_clients(owner) == 1
    assert [row.client_name for row in populated_store.fetch_owner_clients(owner)] == ["Ana"]
    assert [row.product_id for row in populated_store.fetch_active_products(owner)] == ["P1"]


def test_workbook_store_fetches_by_identity(populated_store):
    assert [row.client_name for row in populated_store.fetch_clients(["C1", "missing"])] == ["Ana"]
    assert [row.product_id for row in populated_store.fetch_products(["P2", "P3"])] == ["P2", "P3"]
    assert [row.product_id for row in populated_store.fetch_line_items(["R1"])] == ["P1"]
    assert populated_store.fetch_line_items([]) == []


def test_workbook_store_scans_each_sheet_once(monkeypatch, rows):
    iter_mock = Mock(return_value=[rows.revenue("1")])
    monkeypatch.setattr(data_manager, "iter_revenues", iter_mock)
    store = data_manager.WorkbookStore(Mock(name="workbook"))

    store.fetch_revenues(rows.owner_id)
    store.fetch_revenues("someone-else")

    iter_mock.assert_called_once_with(store.workbook)
