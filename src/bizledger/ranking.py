"""Group-by and top-N helpers shared by every report section.

Categories, clients, and products are all ranked the same way: records are
grouped by a key, each group keeps a count and a summed value, and the groups
are sorted descending on one of those aggregates before being cut to a fixed
size. Groups keep the order in which their key was first seen, and sorting is
stable, so ties always come out in input order.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Callable, Dict, Hashable, Iterable, List, Mapping, Optional, Tuple, TypeVar


T = TypeVar("T")
K = TypeVar("K", bound=Hashable)


@dataclass(frozen=True)
class Aggregate:
    """Running count and total for one group."""

    count: int = 0
    total: Decimal = Decimal("0")

    def add(self, value: Decimal) -> "Aggregate":
        return Aggregate(count=self.count + 1, total=self.total + value)


def by_count(aggregate: Aggregate) -> Decimal:
    return Decimal(aggregate.count)


def by_total(aggregate: Aggregate) -> Decimal:
    return aggregate.total


def group_by(
    records: Iterable[T],
    key: Callable[[T], Optional[K]],
    value: Optional[Callable[[T], Decimal]] = None,
) -> Dict[K, Aggregate]:
    """Group ``records`` by ``key`` and aggregate each group.

    Args:
        records (Iterable[T]): Source records, consumed once.
        key (Callable[[T], K | None]): Extracts the group key. Records whose
            key is ``None`` are left out of every group.
        value (Callable[[T], Decimal] | None): Extracts the amount summed into
            :attr:`Aggregate.total`. When omitted only counts are kept.

    Returns:
        dict[K, Aggregate]: Groups in first-encounter order of their key.
    """

    groups: Dict[K, Aggregate] = {}
    for record in records:
        group_key = key(record)
        if group_key is None:
            continue
        amount = value(record) if value is not None else Decimal("0")
        groups[group_key] = groups.get(group_key, Aggregate()).add(amount)
    return groups


def top_n(
    groups: Mapping[K, T] | Iterable[Tuple[K, T]],
    limit: int,
    score: Callable[[T], Decimal],
) -> List[Tuple[K, T]]:
    """Return the ``limit`` highest scoring ``(key, value)`` pairs.

    ``sorted`` is stable even with ``reverse=True``, so pairs with equal
    scores keep their input order.
    """

    pairs = list(groups.items()) if isinstance(groups, Mapping) else list(groups)
    if limit <= 0:
        return []
    ranked = sorted(pairs, key=lambda pair: score(pair[1]), reverse=True)
    return ranked[:limit]
