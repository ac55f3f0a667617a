"""Conversion of base-unit stock quantities into display quantities.

Products store their stock in the smallest unit that makes sense for them
(count, grams, or milliliters). Reports present mass and volume in the next
larger unit instead, so 2500 grams reads as 2.5 kg.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from typing import Optional

from .constants import BaseUnit, DisplayUnit
from .data_manager import ProductRow


_THOUSAND = Decimal("1000")

_SCALED_UNITS = {
    BaseUnit.GRAM.value: DisplayUnit.KILOGRAM,
    BaseUnit.MILLILITER.value: DisplayUnit.LITER,
}

_DECIMAL_PLACES = {
    DisplayUnit.UNIT: 0,
    DisplayUnit.KILOGRAM: 2,
    DisplayUnit.LITER: 2,
}


@dataclass(frozen=True)
class DisplayQuantity:
    """A quantity paired with the label it should be presented with."""

    quantity: Decimal
    unit: DisplayUnit


def normalize_quantity(quantity: Optional[Decimal], base_unit: Optional[str]) -> DisplayQuantity:
    """Convert ``quantity`` expressed in ``base_unit`` into a display quantity.

    Grams become kilograms and milliliters become liters. Count-based
    quantities pass through unchanged, and so do unknown or missing unit tags.

    Args:
        quantity (Decimal | None): Stock or sold quantity in the base unit.
            ``None`` is treated as zero.
        base_unit (str | None): Unit tag stored on the product.

    Returns:
        DisplayQuantity: Converted quantity and its display label.
    """

    amount = Decimal(quantity) if quantity is not None else Decimal("0")
    display_unit = _SCALED_UNITS.get(base_unit)
    if display_unit is None:
        return DisplayQuantity(quantity=amount, unit=DisplayUnit.UNIT)
    return DisplayQuantity(quantity=amount / _THOUSAND, unit=display_unit)


def normalize_product(product: ProductRow, quantity: Optional[Decimal] = None) -> DisplayQuantity:
    """Return the display view of a product's stock, or of ``quantity`` if given."""

    source = product.stock_base if quantity is None else quantity
    return normalize_quantity(source, product.base_unit)


def round_places(quantity: Decimal, places: int) -> Decimal:
    """Round half-up to a fixed number of decimal places."""

    return quantity.quantize(Decimal(1).scaleb(-places), rounding=ROUND_HALF_UP)


def round_for_unit(quantity: Decimal, unit: DisplayUnit) -> Decimal:
    """Round a display quantity the way its unit class is reported.

    Counts are whole numbers; kilograms and liters keep two decimals.
    """

    return round_places(quantity, _DECIMAL_PLACES[unit])
