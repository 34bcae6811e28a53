"""Fixed-precision money helpers and the single remainder-distribution routine."""
from decimal import Decimal, ROUND_DOWN, ROUND_HALF_UP
from typing import Union

CENT = Decimal("0.01")
ZERO = Decimal("0.00")

MoneyInput = Union[Decimal, int, str, float]


def to_decimal(value: MoneyInput) -> Decimal:
    """Coerce to Decimal without passing through binary floating point."""
    if isinstance(value, Decimal):
        return value
    if isinstance(value, float):
        return Decimal(str(value))
    return Decimal(value)


def quantize(value: MoneyInput) -> Decimal:
    """Round half-up to whole cents."""
    return to_decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def truncate(value: MoneyInput) -> Decimal:
    """Truncate toward zero to whole cents."""
    return to_decimal(value).quantize(CENT, rounding=ROUND_DOWN)


def clamp(value: Decimal, lower: Decimal, upper: Decimal) -> Decimal:
    if value < lower:
        return lower
    if value > upper:
        return upper
    return value


def money_sum(values) -> Decimal:
    total = ZERO
    for v in values:
        total += to_decimal(v)
    return total


def distribute_remainder(total: MoneyInput, n: int) -> list[Decimal]:
    """
    Split `total` into `n` shares that sum exactly to `total`.

    The first n-1 shares are total/n truncated to cents; the last share takes
    whatever is left. E.g. 1000.00 over 3 -> [333.33, 333.33, 333.34].
    """
    if n < 1:
        raise ValueError(f"share count must be >= 1, got {n}")
    amount = quantize(total)
    if amount < 0:
        raise ValueError(f"cannot distribute a negative total: {amount}")
    base = truncate(amount / n)
    shares = [base] * (n - 1)
    shares.append(amount - base * (n - 1))
    return shares
