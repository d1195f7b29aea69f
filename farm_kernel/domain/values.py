"""
Decimal helpers shared by costing, posting rules and the ledger writer.

All money and quantity arithmetic in the kernel is Decimal.  Values arriving
as int, str or float are converted through ``str`` so that 0.1 becomes
Decimal("0.1") rather than its binary approximation.  Rounding is always
ROUND_HALF_UP.
"""

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation

from farm_kernel.exceptions import AmountOutOfRangeError

ZERO = Decimal("0")

# Accepted input numbers.  Columns are Numeric(38, 9); inputs stay small
# enough that quantity x unit cost still quantizes in the default context.
MAX_INTEGER_DIGITS = 12
MAX_DECIMAL_PLACES = 9
_INPUT_LIMIT = Decimal(10) ** MAX_INTEGER_DIGITS


def to_decimal(value) -> Decimal:
    """Convert a number-like value to Decimal.

    Raises:
        TypeError: for booleans and non-numeric types.
        ValueError: for unparsable strings, NaN and infinities.
    """
    if isinstance(value, bool):
        raise TypeError("Booleans are not numbers")
    if isinstance(value, Decimal):
        result = value
    elif isinstance(value, (int, float, str)):
        try:
            result = Decimal(str(value).strip())
        except InvalidOperation:
            raise ValueError(f"Not a number: {value!r}") from None
    else:
        raise TypeError(f"Cannot convert {type(value).__name__} to Decimal")
    if not result.is_finite():
        raise ValueError(f"Not a finite number: {value!r}")
    return result


def range_problem(value: Decimal) -> str | None:
    """Describe why ``value`` is not an acceptable input number, or None."""
    if abs(value) >= _INPUT_LIMIT:
        return f"must be smaller than 1e{MAX_INTEGER_DIGITS} in magnitude"
    if value != ZERO and value.normalize().as_tuple().exponent < -MAX_DECIMAL_PLACES:
        return f"must have at most {MAX_DECIMAL_PLACES} decimal places"
    return None


def quantize(value: Decimal, places: int) -> Decimal:
    """Round ``value`` to ``places`` decimal places, half up.

    Raises:
        AmountOutOfRangeError: the result needs more digits than the
            decimal context allows.
    """
    try:
        return value.quantize(Decimal(1).scaleb(-places), rounding=ROUND_HALF_UP)
    except InvalidOperation:
        raise AmountOutOfRangeError(str(value), places) from None


def normalize(value: Decimal) -> Decimal:
    """Strip the storage scale (Numeric(38, 9) reads back as 120.000000000)."""
    if value == ZERO:
        return ZERO
    return value.normalize()
