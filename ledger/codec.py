"""
Fixed-point conversion between echo and integer minor-units.

1 echo = 1,000,000 minor-units ("ue"). Every stored amount and every
balance computation uses the integer form.
"""

from decimal import ROUND_HALF_UP, Decimal, DecimalException, InvalidOperation, localcontext
from typing import Union

from .errors import AmountTooSmallError, InvalidAmountError

SCALE = 1_000_000
_SCALE = Decimal(SCALE)

Amount = Union[Decimal, int, float, str]


def _as_decimal(amount: Amount) -> Decimal:
    if isinstance(amount, bool):
        raise InvalidAmountError(f"Invalid amount: {amount!r}")
    if isinstance(amount, float):
        # str() keeps the shortest repr, so 0.1 becomes Decimal("0.1")
        amount = str(amount)
    try:
        value = Decimal(amount)
    except (InvalidOperation, TypeError, ValueError):
        raise InvalidAmountError(f"Invalid amount: {amount!r}") from None
    if not value.is_finite():
        raise InvalidAmountError(f"Amount must be finite, got {amount!r}")
    return value


def quantize_minor_units(amount: Amount) -> int:
    """Round ``amount`` echo to whole minor-units, half away from zero.

    A result of ``0`` is left for the caller to interpret.

    Raises:
        InvalidAmountError: amount is not a finite number, or its magnitude
            is beyond what the decimal context can represent.
    """
    value = _as_decimal(amount)
    with localcontext() as ctx:
        # wide enough for the exact product, so only quantize() rounds
        _, digits, exponent = value.as_tuple()
        ctx.prec = max(ctx.prec, len(digits) + max(exponent, 0) + len(str(SCALE)))
        try:
            return int((value * _SCALE).quantize(Decimal(1), rounding=ROUND_HALF_UP))
        except DecimalException:
            raise InvalidAmountError(f"Amount out of range: {amount!r}") from None


def to_minor_units(amount: Amount) -> int:
    """Convert a non-zero echo amount to minor-units.

    Raises:
        InvalidAmountError: amount is zero, non-finite or not a number.
        AmountTooSmallError: amount is non-zero but rounds to 0 minor-units.
    """
    value = _as_decimal(amount)
    if value == 0:
        raise InvalidAmountError("Amount must be non-zero")
    minor = quantize_minor_units(value)
    if minor == 0:
        raise AmountTooSmallError(
            f"Amount {value} is below the minor-unit resolution (1/{SCALE} echo)"
        )
    return minor


def to_major_units(minor: int) -> Decimal:
    """Minor-units to echo, for display only."""
    with localcontext() as ctx:
        ctx.prec = max(ctx.prec, len(str(abs(minor))) + 1)
        return Decimal(minor) / _SCALE
