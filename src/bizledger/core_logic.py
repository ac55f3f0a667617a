"""Business logic layer for bizledger.

This module exposes the read-only operations of the package. Each operation
receives a :class:`RuntimeContext` that carries the parsed settings and the
data-access collaborator, so tests can hand in fixture data instead of a
workbook on disk. Aggregation itself lives in :mod:`bizledger.reporting`.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional

from . import data_manager, log
from .constants import EXPECTED_SCHEMA_VERSION, TOP_CLIENTS_BY_ITEMS
from .reporting import (
    ClientItemSpend,
    ClientSummary,
    Report,
    ReportDataSource,
    ReportGenerationError,
    TotalsSummary,
    assemble_report,
    build_client_summaries,
    calculate_totals,
    rank_clients_by_item_subtotal,
)


@dataclass(frozen=True)
class RuntimeContext:
    """Container for configuration and the data source used by the BLL."""

    settings: data_manager.ConfigSettings
    store: ReportDataSource


def load_runtime_context(config_path: Optional[Path] = None) -> RuntimeContext:
    """Load configuration settings and a workbook-backed store.

    The helper resolves ``config.ini``, parses settings, opens the Excel
    workbook, and wraps it in a :class:`~bizledger.data_manager.WorkbookStore`.

    Args:
        config_path (Path | None): Optional override path for the configuration
            file. When omitted the data layer performs its upward search from
            the current working directory.

    Returns:
        RuntimeContext: Fully populated context ready for reporting calls.

    Raises:
        FileNotFoundError: If the configuration file or workbook cannot be
            located.
        KeyError: When mandatory configuration options are missing.
    """
    located_config = data_manager.find_config_file(config_path)
    resolved_config = Path(located_config).expanduser().resolve()
    parser = data_manager.read_config(resolved_config)
    settings = data_manager.parse_settings(parser, base_path=resolved_config.parent)
    workbook = data_manager.open_workbook(settings.data_file)
    log.info("Loaded runtime context for workbook '%s'", settings.data_file)
    return RuntimeContext(settings=settings, store=data_manager.WorkbookStore(workbook))


def ensure_schema_version(context: RuntimeContext) -> None:
    """Validate workbook compatibility before reading from it.

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


def resolve_owner(context: RuntimeContext, owner_id: Optional[str]) -> str:
    """Return ``owner_id`` or the configured default owner when it is empty."""
    return owner_id or context.settings.default_owner_id


def build_report(context: RuntimeContext, owner_id: str) -> Report:
    """Produce the full analytical report for one owner.

    Args:
        context (RuntimeContext): Runtime context providing the data source.
        owner_id (str): Owner whose records are aggregated.

    Returns:
        Report: Totals, revenue/expense/client breakdowns, sold products, and
            the stock summary.

    Raises:
        ReportGenerationError: If any part of the report cannot be produced.
    """
    return assemble_report(context.store, owner_id)


def calculate_dashboard(context: RuntimeContext, owner_id: str) -> TotalsSummary:
    """Return revenue, expense, and net profit totals for one owner.

    Raises:
        ReportGenerationError: If the entries cannot be retrieved.
    """
    try:
        revenues = [row for row in context.store.fetch_revenues(owner_id) if row.owner_id == owner_id]
        expenses = [row for row in context.store.fetch_expenses(owner_id) if row.owner_id == owner_id]
    except Exception as exc:
        log.exception("Dashboard generation failed for owner '%s'", owner_id)
        raise ReportGenerationError("Dashboard generation failed") from exc

    summary = calculate_totals(revenues, expenses)
    log.debug(
        "Calculated dashboard: revenue=%s expense=%s profit=%s",
        summary.total_revenue,
        summary.total_expense,
        summary.net_profit,
    )
    return summary


def summarize_clients(context: RuntimeContext, owner_id: str) -> List[ClientSummary]:
    """List every client of an owner with lifetime spend and purchase count.

    Spend here is the sum of raw revenue amounts.

    Raises:
        ReportGenerationError: If clients or entries cannot be retrieved.
    """
    try:
        clients = [row for row in context.store.fetch_owner_clients(owner_id) if row.owner_id == owner_id]
        revenues = [row for row in context.store.fetch_revenues(owner_id) if row.owner_id == owner_id]
    except Exception as exc:
        log.exception("Client listing failed for owner '%s'", owner_id)
        raise ReportGenerationError("Client listing failed") from exc

    return build_client_summaries(clients, revenues)


def rank_clients_by_items(
    context: RuntimeContext,
    owner_id: str,
    *,
    limit: int = TOP_CLIENTS_BY_ITEMS,
) -> List[ClientItemSpend]:
    """Rank an owner's clients by the summed subtotals of their line items.

    Raises:
        ReportGenerationError: If clients, entries, or line items cannot be
            retrieved.
    """
    try:
        clients = [row for row in context.store.fetch_owner_clients(owner_id) if row.owner_id == owner_id]
        revenues = [row for row in context.store.fetch_revenues(owner_id) if row.owner_id == owner_id]
        items = context.store.fetch_line_items([row.revenue_id for row in revenues])
    except Exception as exc:
        log.exception("Client ranking failed for owner '%s'", owner_id)
        raise ReportGenerationError("Client ranking failed") from exc

    return rank_clients_by_item_subtotal(clients, revenues, items, limit=limit)


def refresh_context(context: RuntimeContext) -> RuntimeContext:
    """Reload the workbook so later reports see changes made on disk.

    Returns:
        RuntimeContext: Fresh context with a newly opened workbook and an
            empty row cache.

    Raises:
        FileNotFoundError: If the backing workbook cannot be reloaded.
    """
    workbook = data_manager.open_workbook(context.settings.data_file)
    log.info("Reloaded workbook '%s'", context.settings.data_file)
    return RuntimeContext(settings=context.settings, store=data_manager.WorkbookStore(workbook))
