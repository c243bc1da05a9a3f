"""
Module: mfg_kernel.db.types
Responsibility: Annotated column aliases and the single sanctioned rounding
    helper for inventory quantities.
Architecture position: Kernel > DB.  Importable from models/, domain/,
    services/ and selectors/.

Invariants enforced:
    - Every quantity column is Numeric(38, 9).
    - round_quantity() is the only rounding function used for quantities;
      component demand is rounded to the component's UOM precision with it.
"""

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Annotated

from sqlalchemy import BigInteger, Numeric, String

# Stock quantity, 9 decimal places of headroom below any UOM precision
Quantity = Annotated[Decimal, Numeric(38, 9)]

# Unit cost of an item
UnitCost = Annotated[Decimal, Numeric(38, 9)]

# Monotonic sequence number for ordering
Sequence = Annotated[int, BigInteger]

# SHA-256 hash as hex string
PayloadHash = Annotated[str, String(64)]

# Short identifier strings (codes, document numbers, statuses)
ShortCode = Annotated[str, String(50)]

# Free text
LongText = Annotated[str, String(4000)]


QUANTITY_DECIMAL_PLACES = 9
MAX_UOM_PRECISION = 9
DEFAULT_ROUNDING = ROUND_HALF_UP

ZERO = Decimal("0")


def round_quantity(
    value: Decimal,
    decimal_places: int = QUANTITY_DECIMAL_PLACES,
    rounding: str = DEFAULT_ROUNDING,
) -> Decimal:
    """
    Round a quantity to ``decimal_places`` using ROUND_HALF_UP.

    Raises:
        ValueError: if decimal_places is outside 0..MAX_UOM_PRECISION.
    """
    if not 0 <= decimal_places <= MAX_UOM_PRECISION:
        raise ValueError(f"decimal_places out of range: {decimal_places}")
    exponent = Decimal(1).scaleb(-decimal_places)
    return value.quantize(exponent, rounding=rounding)


def to_quantity(value: Decimal | int | str) -> Decimal:
    """
    Coerce an int/str/Decimal into a finite Decimal quantity.

    Floats are refused: they cannot represent stock quantities exactly.

    Raises:
        ValueError: if the value is a float, not numeric, or not finite.
    """
    if isinstance(value, float):
        raise ValueError(f"Quantities must not be floats: {value!r}")
    try:
        result = value if isinstance(value, Decimal) else Decimal(str(value))
    except InvalidOperation as exc:
        raise ValueError(f"Not a numeric quantity: {value!r}") from exc
    if not result.is_finite():
        raise ValueError(f"Quantity must be finite: {value!r}")
    return result
