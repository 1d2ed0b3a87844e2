"""
Module: capital_kernel.db.types
Responsibility: Decimal coercion and rounding helpers for monetary values.
    Centralizes rounding so that every service uses identical definitions.
Architecture position: Kernel > DB.  May be imported by models/, domain/,
    services/, and selectors/.  MUST NOT import from any of those layers.

Invariants enforced:
    - round_money() is the ONLY sanctioned rounding function for monetary
      values (payout amounts, CSV export).
    - No floats anywhere in the kernel.  All monetary amounts use Decimal.
"""

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation

MONEY_DECIMAL_PLACES = 2
DEFAULT_ROUNDING = ROUND_HALF_UP

ZERO = Decimal("0")


def round_money(
    value: Decimal,
    decimal_places: int = MONEY_DECIMAL_PLACES,
    rounding: str = DEFAULT_ROUNDING,
) -> Decimal:
    """
    Round a monetary value to the given number of decimal places.

    Preconditions: value is a Decimal.
    Postconditions: Returns value quantized using half-up rounding unless
        another mode is requested.
    """
    quantize_str = "0." + "0" * decimal_places if decimal_places else "1"
    return value.quantize(Decimal(quantize_str), rounding=rounding)


def to_decimal(value: object) -> Decimal:
    """
    Coerce an int, str or Decimal into a Decimal.

    Floats are converted through ``str`` so that 0.1 becomes Decimal("0.1")
    and not its binary expansion.

    Raises:
        ValueError: If the value is not numeric.
    """
    if isinstance(value, Decimal):
        return value
    if isinstance(value, float):
        value = str(value)
    try:
        return Decimal(value)  # type: ignore[arg-type]
    except (InvalidOperation, TypeError) as exc:
        raise ValueError(f"Not a decimal value: {value!r}") from exc
