"""Minor-unit conversion for fiscal amounts.

The fiscal API takes integer minor units (kopiyky). Conversion uses
ROUND_HALF_UP everywhere so the same amount always maps to the same integer.
"""

from decimal import Decimal, ROUND_HALF_UP
from typing import Union

MINOR_UNITS_PER_MAJOR = 100
TWO_PLACES = Decimal("0.01")

# Quantity of one piece in the fiscal API's scaling (thousandths)
ONE_UNIT_QUANTITY = 1000


def to_minor_units(amount: Union[Decimal, int, str]) -> int:
    """Convert a major-unit amount to integer minor units.

    >>> to_minor_units(Decimal("1500.00"))
    150000
    """
    value = amount if isinstance(amount, Decimal) else Decimal(str(amount))
    minor = (value * MINOR_UNITS_PER_MAJOR).quantize(Decimal("1"), rounding=ROUND_HALF_UP)
    return int(minor)


def from_minor_units(minor: int) -> Decimal:
    """Convert integer minor units back to a 2-place Decimal."""
    return (Decimal(minor) / MINOR_UNITS_PER_MAJOR).quantize(TWO_PLACES)
