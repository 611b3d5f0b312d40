from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Union

Amount = Union[Decimal, int, str, float]

_CENT = Decimal("1")
_HUNDRED = Decimal(100)


def _to_decimal(amount: Amount) -> Decimal:
    if isinstance(amount, Decimal):
        value = amount
    elif isinstance(amount, float):
        # str() gives the shortest repr, so 0.1 becomes Decimal("0.1")
        value = Decimal(str(amount))
    else:
        try:
            value = Decimal(amount)
        except InvalidOperation as exc:
            raise ValueError(f"Invalid amount: {amount!r}") from exc
    if not value.is_finite():
        raise ValueError(f"Amount must be finite: {amount!r}")
    return value


def encode(amount: Amount) -> int:
    """Convert a currency amount to integer cents.

    Rounds half away from zero, so 0.005 becomes 1 and -0.005 becomes -1.
    """
    value = _to_decimal(amount)
    return int((value * _HUNDRED).quantize(_CENT, rounding=ROUND_HALF_UP))


def decode(cents: int) -> Decimal:
    return Decimal(int(cents)).scaleb(-2)


def parse_amount(value: str) -> Decimal:
    clean = value.strip().replace("€", "").replace("$", "").replace(" ", "")
    clean = clean.replace(",", ".")
    if clean.count(".") > 1:
        parts = clean.split(".")
        clean = "".join(parts[:-1]) + "." + parts[-1]
    if not clean:
        raise ValueError("Invalid amount")
    try:
        amount = Decimal(clean)
    except InvalidOperation as exc:
        raise ValueError("Invalid amount") from exc
    if not amount.is_finite():
        raise ValueError("Invalid amount")
    return amount


def format_amount(value: Amount) -> str:
    return f"{decode(encode(value)):.2f}"
