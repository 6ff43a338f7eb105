from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Iterable, Optional

CENT = Decimal("0.01")
ZERO = Decimal("0.00")


def to_decimal(val, default: Optional[Decimal] = None) -> Optional[Decimal]:
    """Безопасный парсинг десятичного числа с поддержкой запятой."""
    if val is None or val == "":
        return default
    if isinstance(val, Decimal):
        return val
    if isinstance(val, float):
        val = repr(val)
    try:
        return Decimal(str(val).replace(",", ".").strip())
    except (InvalidOperation, ValueError):
        return default


def round2(val) -> Decimal:
    """Округление до копеек, половина вверх."""
    return (to_decimal(val, ZERO)).quantize(CENT, rounding=ROUND_HALF_UP)


def sum2(values: Iterable) -> Decimal:
    return round2(sum((to_decimal(v, ZERO) for v in values), ZERO))


def as_float(val) -> float:
    """Decimal -> float для JSON-ответов."""
    if val is None:
        return 0.0
    return float(round2(val))
