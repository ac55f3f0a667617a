"""Reporting engine for bizledger.

The engine turns one owner's raw records into a structured :class:`Report`.
It works in two strictly separated phases:

1. :func:`load_snapshot` pulls every record the report needs through a
   :class:`ReportDataSource` and drops anything that does not belong to the
   requested owner.
2. :func:`compose_report` runs the section builders over that snapshot in a
   fixed order: totals, revenue breakdown, expense breakdown, client
   breakdown, products and stock.

No section is computed until the snapshot is complete, and the builders never
mutate the rows they receive. :func:`assemble_report` ties both phases
together and turns any failure into a :class:`ReportGenerationError` so
callers never see a partially built report.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Optional, Protocol, Sequence, Tuple, TypeVar

from . import log
from .constants import (
    TOP_CATEGORIES,
    TOP_CLIENTS_BY_ITEMS,
    TOP_CLIENTS_BY_PURCHASES,
    TOP_CLIENTS_BY_SPEND,
    TOP_PRODUCTS,
    TOP_STOCK_CATEGORIES,
    TOP_STOCK_PER_UNIT,
    UNCATEGORIZED,
    UNKNOWN_CLIENT_TEMPLATE,
    DisplayUnit,
)
from .data_manager import ClientRow, ExpenseRow, ProductRow, RevenueItemRow, RevenueRow
from .ranking import Aggregate, by_count, by_total, group_by, top_n
from .units import DisplayQuantity, normalize_product, round_for_unit, round_places


class ReportGenerationError(Exception):
    """Raised when a report cannot be produced; details are only logged."""


class ReportDataSource(Protocol):
    """Read-only collaborator the engine fetches records through."""

    def fetch_revenues(self, owner_id: str) -> Sequence[RevenueRow]: ...

    def fetch_expenses(self, owner_id: str) -> Sequence[ExpenseRow]: ...

    def fetch_clients(self, client_ids: Iterable[str]) -> Sequence[ClientRow]: ...

    def fetch_owner_clients(self, owner_id: str) -> Sequence[ClientRow]: ...

    def count_clients(self, owner_id: str) -> int: ...

    def fetch_products(self, product_ids: Iterable[str]) -> Sequence[ProductRow]: ...

    def fetch_active_products(self, owner_id: str) -> Sequence[ProductRow]: ...

    def fetch_line_items(self, revenue_ids: Iterable[str]) -> Sequence[RevenueItemRow]: ...


# ---------------------------------------------------------------------------
# Section value types
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class TotalsSummary:
    """Revenue, expense, and net profit for one owner."""

    total_revenue: Decimal
    total_expense: Decimal
    net_profit: Decimal

    def as_payload(self) -> Dict[str, Any]:
        return {
            "totalReceitas": self.total_revenue,
            "totalDespesas": self.total_expense,
            "lucroLiquido": self.net_profit,
        }


@dataclass(frozen=True)
class CategoryCount:
    category: str
    count: int

    def as_payload(self) -> Dict[str, Any]:
        return {"categoria": self.category, "contagem": self.count}


@dataclass(frozen=True)
class CategoryAmount:
    category: str
    amount: Decimal

    def as_payload(self) -> Dict[str, Any]:
        return {"categoria": self.category, "valor": self.amount}


@dataclass(frozen=True)
class RevenueBreakdown:
    top_categories: Tuple[CategoryCount, ...]
    total_entries: int
    entries_without_attachment: int


@dataclass(frozen=True)
class ExpenseBreakdown:
    top_categories_by_count: Tuple[CategoryCount, ...]
    top_categories_by_amount: Tuple[CategoryAmount, ...]
    entries_without_attachment: int

    def as_payload(self) -> Dict[str, Any]:
        return {
            "categoriasMaisDespesas": [item.as_payload() for item in self.top_categories_by_count],
            "valorGastoCategorias": [item.as_payload() for item in self.top_categories_by_amount],
            "despesasSemAnexo": self.entries_without_attachment,
        }


@dataclass(frozen=True)
class ClientRanking:
    """Spend and purchase count of one client, as ranked in the report."""

    name: str
    total_spent: Decimal
    purchase_count: int

    def as_payload(self) -> Dict[str, Any]:
        return {"nome": self.name, "totalGasto": self.total_spent, "contagem": self.purchase_count}


@dataclass(frozen=True)
class ClientBreakdown:
    top_by_spend: Tuple[ClientRanking, ...]
    top_by_purchases: Tuple[ClientRanking, ...]
    registered_clients: int

    def as_payload(self) -> Dict[str, Any]:
        return {
            "clientesQueMaisGastaram": [item.as_payload() for item in self.top_by_spend],
            "clientesComMaisCompras": [item.as_payload() for item in self.top_by_purchases],
            "totalClientesRegistrados": self.registered_clients,
        }


@dataclass(frozen=True)
class SoldProduct:
    name: str
    quantity: Decimal
    unit: DisplayUnit

    def as_payload(self) -> Dict[str, Any]:
        return {"nome": self.name, "quantidade": self.quantity, "unidade": self.unit.value}


@dataclass(frozen=True)
class ProductBreakdown:
    top_sold: Tuple[SoldProduct, ...]
    entries_without_items: int


@dataclass(frozen=True)
class CategoryStock:
    category: str
    quantity: Decimal

    def as_payload(self) -> Dict[str, Any]:
        return {"categoria": self.category, "quantidade": self.quantity}


@dataclass(frozen=True)
class StockLevel:
    product: str
    quantity: Decimal
    unit: DisplayUnit

    def as_payload(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"produto": self.product, "quantidade": self.quantity}
        # Count-based rows carry no unit label in the wire format.
        if self.unit is DisplayUnit.KILOGRAM:
            payload["unidade"] = "Kg"
        elif self.unit is DisplayUnit.LITER:
            payload["unidade"] = "L"
        return payload


@dataclass(frozen=True)
class StockSummary:
    top_categories: Tuple[CategoryStock, ...]
    top_units: Tuple[StockLevel, ...]
    top_kilograms: Tuple[StockLevel, ...]
    top_liters: Tuple[StockLevel, ...]

    def as_payload(self) -> Dict[str, Any]:
        return {
            "categoriasEstoque": [item.as_payload() for item in self.top_categories],
            "maiorQtdUnidade": [item.as_payload() for item in self.top_units],
            "maiorQtdKg": [item.as_payload() for item in self.top_kilograms],
            "maiorQtdMl": [item.as_payload() for item in self.top_liters],
        }


@dataclass(frozen=True)
class Report:
    """The complete analytical report for one owner."""

    owner_id: str
    totals: TotalsSummary
    revenues: RevenueBreakdown
    expenses: ExpenseBreakdown
    clients: ClientBreakdown
    products: ProductBreakdown
    stock: StockSummary

    def as_payload(self) -> Dict[str, Any]:
        """Render the report in the transport-facing JSON shape."""

        return {
            "totais": self.totals.as_payload(),
            "receitas": {
                "categoriasMaisVendidas": [item.as_payload() for item in self.revenues.top_categories],
                "produtosMaisVendidos": [item.as_payload() for item in self.products.top_sold],
                "totalVendas": self.revenues.total_entries,
                "valorTotalVendas": self.totals.total_revenue,
                "vendasSemItens": self.products.entries_without_items,
                "vendasSemAnexo": self.revenues.entries_without_attachment,
            },
            "despesas": self.expenses.as_payload(),
            "clientes": self.clients.as_payload(),
            "estoque": self.stock.as_payload(),
        }


@dataclass(frozen=True)
class ClientSummary:
    """A registered client with its lifetime totals."""

    client_id: str
    name: str
    total_spent: Decimal
    purchase_count: int

    def as_payload(self) -> Dict[str, Any]:
        return {
            "id": self.client_id,
            "nome": self.name,
            "totalGasto": self.total_spent,
            "totalCompras": self.purchase_count,
        }


@dataclass(frozen=True)
class ClientItemSpend:
    """A client ranked by the summed subtotals of its line items."""

    client_id: str
    name: str
    total_spent: Decimal

    def as_payload(self) -> Dict[str, Any]:
        return {"id": self.client_id, "nome": self.name, "totalGasto": self.total_spent}


@dataclass(frozen=True)
class ReportSnapshot:
    """Every record one report reads, already scoped to a single owner."""

    owner_id: str
    revenues: Tuple[RevenueRow, ...]
    expenses: Tuple[ExpenseRow, ...]
    clients: Tuple[ClientRow, ...]
    registered_clients: int
    line_items: Tuple[RevenueItemRow, ...]
    sold_products: Tuple[ProductRow, ...]
    active_products: Tuple[ProductRow, ...]


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


R = TypeVar("R", RevenueRow, ExpenseRow, ClientRow, ProductRow)


def _owned(rows: Iterable[R], owner_id: str) -> Tuple[R, ...]:
    return tuple(row for row in rows if row.owner_id == owner_id)


def _unique(values: Iterable[Optional[str]]) -> List[str]:
    return list(dict.fromkeys(value for value in values if value is not None))


def _is_blank(value: Optional[str]) -> bool:
    return value is None or value.strip() == ""


def _client_name(client_id: str, names: Dict[str, str]) -> str:
    return names.get(client_id, UNKNOWN_CLIENT_TEMPLATE.format(client_id=client_id))


# ---------------------------------------------------------------------------
# Section builders
# ---------------------------------------------------------------------------


def calculate_totals(revenues: Iterable[RevenueRow], expenses: Iterable[ExpenseRow]) -> TotalsSummary:
    """Sum revenue and expense amounts and derive the net profit.

    No rounding is applied here; presentation layers round if they need to.
    """

    total_revenue = sum((row.amount for row in revenues), Decimal("0"))
    total_expense = sum((row.amount for row in expenses), Decimal("0"))
    return TotalsSummary(
        total_revenue=total_revenue,
        total_expense=total_expense,
        net_profit=total_revenue - total_expense,
    )


def build_revenue_breakdown(revenues: Sequence[RevenueRow]) -> RevenueBreakdown:
    """Count entries, entries missing proof of sale, and the busiest categories.

    Entries with an empty or missing category do not take part in the
    category ranking at all.
    """

    groups = group_by(revenues, key=lambda row: row.category or None)
    return RevenueBreakdown(
        top_categories=tuple(
            CategoryCount(category=category, count=aggregate.count)
            for category, aggregate in top_n(groups, TOP_CATEGORIES, by_count)
        ),
        total_entries=len(revenues),
        entries_without_attachment=sum(1 for row in revenues if _is_blank(row.attachment)),
    )


def build_expense_breakdown(expenses: Sequence[ExpenseRow]) -> ExpenseBreakdown:
    """Rank expense categories by occurrence and by summed amount.

    Blank or missing categories are folded into a single ``UNCATEGORIZED``
    bucket instead of being skipped.
    """

    groups = group_by(
        expenses,
        key=lambda row: UNCATEGORIZED if _is_blank(row.category) else row.category,
        value=lambda row: row.amount,
    )
    return ExpenseBreakdown(
        top_categories_by_count=tuple(
            CategoryCount(category=category, count=aggregate.count)
            for category, aggregate in top_n(groups, TOP_CATEGORIES, by_count)
        ),
        top_categories_by_amount=tuple(
            CategoryAmount(category=category, amount=aggregate.total)
            for category, aggregate in top_n(groups, TOP_CATEGORIES, by_total)
        ),
        entries_without_attachment=sum(1 for row in expenses if _is_blank(row.attachment)),
    )


def build_client_breakdown(
    revenues: Sequence[RevenueRow],
    clients: Iterable[ClientRow],
    registered_clients: int,
) -> ClientBreakdown:
    """Rank the clients behind revenue entries by spend and by purchase count.

    Spend is the raw amount of each entry. Entries without a client are
    ignored here. A client id that cannot be resolved is reported under a
    synthesized ``"Client ID {id}"`` name.

    Args:
        revenues (Sequence[RevenueRow]): The owner's revenue entries.
        clients (Iterable[ClientRow]): Client rows resolved for the ids
            referenced by ``revenues``; may be incomplete.
        registered_clients (int): Number of clients registered for the owner,
            whether or not they bought anything.

    Returns:
        ClientBreakdown: Top clients by spend and by purchases plus the
            registered client count.
    """

    names = {client.client_id: client.client_name for client in clients}
    groups = group_by(revenues, key=lambda row: row.client_id, value=lambda row: row.amount)

    def _ranking(client_id: str, aggregate: Aggregate) -> ClientRanking:
        return ClientRanking(
            name=_client_name(client_id, names),
            total_spent=aggregate.total,
            purchase_count=aggregate.count,
        )

    return ClientBreakdown(
        top_by_spend=tuple(_ranking(*pair) for pair in top_n(groups, TOP_CLIENTS_BY_SPEND, by_total)),
        top_by_purchases=tuple(_ranking(*pair) for pair in top_n(groups, TOP_CLIENTS_BY_PURCHASES, by_count)),
        registered_clients=registered_clients,
    )


def build_sold_products(items: Iterable[RevenueItemRow], products: Iterable[ProductRow]) -> Tuple[SoldProduct, ...]:
    """Rank products by the summed base quantity sold across line items.

    Line items whose product cannot be resolved are left out before ranking.
    Each ranked product is normalized for display.
    """

    by_id = {product.product_id: product for product in products}
    groups = group_by(
        items,
        key=lambda item: item.product_id if item.product_id in by_id else None,
        value=lambda item: item.quantity_base,
    )
    ranked: List[SoldProduct] = []
    for product_id, aggregate in top_n(groups, TOP_PRODUCTS, by_total):
        product = by_id[product_id]
        display = normalize_product(product, aggregate.total)
        ranked.append(SoldProduct(name=product.product_name, quantity=display.quantity, unit=display.unit))
    return tuple(ranked)


def count_entries_without_items(revenues: Iterable[RevenueRow], items: Iterable[RevenueItemRow]) -> int:
    """Count revenue entries that have no line item attached."""

    with_items = {item.revenue_id for item in items}
    return sum(1 for row in revenues if row.revenue_id not in with_items)


def build_stock_summary(products: Iterable[ProductRow]) -> StockSummary:
    """Summarize on-hand stock of active products.

    Quantities are normalized first. Category totals add display quantities
    of every active product with a category and keep two decimals. The per
    unit rankings are independent: counts are whole numbers, kilograms and
    liters keep two decimals.
    """

    displayed: List[Tuple[ProductRow, DisplayQuantity]] = [
        (product, normalize_product(product)) for product in products if product.is_active
    ]

    category_groups = group_by(
        displayed,
        key=lambda pair: pair[0].category or None,
        value=lambda pair: pair[1].quantity,
    )
    top_categories = tuple(
        CategoryStock(category=category, quantity=round_places(aggregate.total, 2))
        for category, aggregate in top_n(category_groups, TOP_STOCK_CATEGORIES, by_total)
    )

    def _top_for(unit: DisplayUnit) -> Tuple[StockLevel, ...]:
        candidates = [
            (product.product_name, display) for product, display in displayed if display.unit is unit
        ]
        return tuple(
            StockLevel(product=name, quantity=round_for_unit(display.quantity, unit), unit=unit)
            for name, display in top_n(candidates, TOP_STOCK_PER_UNIT, lambda display: display.quantity)
        )

    return StockSummary(
        top_categories=top_categories,
        top_units=_top_for(DisplayUnit.UNIT),
        top_kilograms=_top_for(DisplayUnit.KILOGRAM),
        top_liters=_top_for(DisplayUnit.LITER),
    )


def build_client_summaries(clients: Iterable[ClientRow], revenues: Iterable[RevenueRow]) -> List[ClientSummary]:
    """Attach lifetime spend and purchase count to every registered client.

    Spend is the sum of raw revenue amounts. Clients without purchases are
    included with zero totals. Rows carry no modification timestamp, so the
    listing follows sheet (registration) order rather than most recently
    updated first.
    """

    groups = group_by(revenues, key=lambda row: row.client_id, value=lambda row: row.amount)
    summaries: List[ClientSummary] = []
    for client in clients:
        aggregate = groups.get(client.client_id, Aggregate())
        summaries.append(
            ClientSummary(
                client_id=client.client_id,
                name=client.client_name,
                total_spent=aggregate.total,
                purchase_count=aggregate.count,
            )
        )
    return summaries


def rank_clients_by_item_subtotal(
    clients: Iterable[ClientRow],
    revenues: Iterable[RevenueRow],
    items: Iterable[RevenueItemRow],
    limit: int = TOP_CLIENTS_BY_ITEMS,
) -> List[ClientItemSpend]:
    """Rank registered clients by the summed subtotals of their line items.

    This is a different notion of spend than :func:`build_client_breakdown`,
    which uses raw entry amounts. Entries without line items contribute
    nothing here.
    """

    client_of = {row.revenue_id: row.client_id for row in revenues}
    groups = group_by(items, key=lambda item: client_of.get(item.revenue_id), value=lambda item: item.subtotal)
    pairs = [(client, groups.get(client.client_id, Aggregate()).total) for client in clients]
    return [
        ClientItemSpend(client_id=client.client_id, name=client.client_name, total_spent=total)
        for client, total in top_n(pairs, limit, lambda total: total)
    ]


# ---------------------------------------------------------------------------
# Assembly
# ---------------------------------------------------------------------------


def load_snapshot(source: ReportDataSource, owner_id: str) -> ReportSnapshot:
    """Fetch every record one report needs for ``owner_id``.

    Rows the collaborator returns for other owners are discarded, and line
    items are kept only when they belong to one of the owner's revenue
    entries.
    """

    revenues = _owned(source.fetch_revenues(owner_id), owner_id)
    expenses = _owned(source.fetch_expenses(owner_id), owner_id)

    clients = _owned(source.fetch_clients(_unique(row.client_id for row in revenues)), owner_id)
    registered_clients = source.count_clients(owner_id)

    revenue_ids = [row.revenue_id for row in revenues]
    owned_ids = set(revenue_ids)
    line_items = tuple(item for item in source.fetch_line_items(revenue_ids) if item.revenue_id in owned_ids)
    sold_products = _owned(source.fetch_products(_unique(item.product_id for item in line_items)), owner_id)
    active_products = tuple(
        product for product in _owned(source.fetch_active_products(owner_id), owner_id) if product.is_active
    )

    log.debug(
        "Snapshot for owner '%s': %d revenues, %d expenses, %d line items, %d active products",
        owner_id,
        len(revenues),
        len(expenses),
        len(line_items),
        len(active_products),
    )
    return ReportSnapshot(
        owner_id=owner_id,
        revenues=revenues,
        expenses=expenses,
        clients=clients,
        registered_clients=registered_clients,
        line_items=line_items,
        sold_products=sold_products,
        active_products=active_products,
    )


def compose_report(snapshot: ReportSnapshot) -> Report:
    """Run every section builder over a complete snapshot."""

    totals = calculate_totals(snapshot.revenues, snapshot.expenses)
    revenues = build_revenue_breakdown(snapshot.revenues)
    expenses = build_expense_breakdown(snapshot.expenses)
    clients = build_client_breakdown(snapshot.revenues, snapshot.clients, snapshot.registered_clients)
    products = ProductBreakdown(
        top_sold=build_sold_products(snapshot.line_items, snapshot.sold_products),
        entries_without_items=count_entries_without_items(snapshot.revenues, snapshot.line_items),
    )
    stock = build_stock_summary(snapshot.active_products)
    return Report(
        owner_id=snapshot.owner_id,
        totals=totals,
        revenues=revenues,
        expenses=expenses,
        clients=clients,
        products=products,
        stock=stock,
    )


def assemble_report(source: ReportDataSource, owner_id: str) -> Report:
    """Build the full report for ``owner_id`` or fail as a whole.

    Raises:
        ReportGenerationError: If fetching or aggregating fails for any
            reason. The original exception is logged and chained, never
            exposed in the message.
    """

    try:
        snapshot = load_snapshot(source, owner_id)
        report = compose_report(snapshot)
    except Exception as exc:
        log.exception("Report generation failed for owner '%s'", owner_id)
        raise ReportGenerationError("Report generation failed") from exc

    log.info("Built report for owner '%s'", owner_id)
    return report
