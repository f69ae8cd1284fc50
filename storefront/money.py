"""Currency helpers.

Prices arrive in decimal major units (``29.99`` dollars) and are carried in
integer minor units (``2999`` cents) for every computation. Values are
routed through ``Decimal(str(value))`` so binary float noise never leaks
into a rounded amount. There is no magnitude heuristic: ``1800`` means
$1800.00, and callers still sending cents must convert before calling.
"""
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP

CENT = Decimal("0.01")


def to_decimal(value) -> Decimal:
    if isinstance(value, bool):
        raise TypeError("boolean is not a price")
    if isinstance(value, Decimal):
        result = value
    elif isinstance(value, (int, float, str)):
        try:
            result = Decimal(str(value).strip())
        except InvalidOperation:
            raise ValueError(f"not a number: {value!r}") from None
    else:
        raise TypeError(f"unsupported price type: {type(value).__name__}")
    if not result.is_finite():
        raise ValueError(f"not a finite number: {value!r}")
    return result


def to_minor_units(price) -> int:
    return int((to_decimal(price) * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def from_minor_units(amount) -> Decimal:
    return (Decimal(int(amount or 0)) / 100).quantize(CENT)


def percent_of(amount: int, percent) -> int:
    return int((Decimal(amount) * to_decimal(percent) / 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def clamp_percent(percent) -> int:
    return int(min(max(int(percent), 1), 100))


def as_float(value):
    if value is None:
        return None
    return float(Decimal(str(value)).quantize(CENT, rounding=ROUND_HALF_UP))
