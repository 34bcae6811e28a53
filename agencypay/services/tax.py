"""GST on commission under tax-inclusive and tax-exclusive conventions."""
from decimal import Decimal

from agencypay.errors import InvalidRateError
from agencypay.services.money import ZERO, MoneyInput, quantize, to_decimal

ONE = Decimal("1")


def validate_tax_rate(rate: MoneyInput) -> Decimal:
    """Rates are fractions (0.10 for 10%). Called where rates enter the system, not per calculation."""
    if rate is None:
        raise InvalidRateError("gst_rate", rate)
    value = to_decimal(rate)
    if not value.is_finite() or value < 0:
        raise InvalidRateError("gst_rate", rate)
    return value


def calculate_tax(commission_amount: MoneyInput, rate: MoneyInput, inclusive: bool) -> Decimal:
    """
    Tax component of a commission figure.

    inclusive: the amount already contains tax, extract amount / (1 + rate) * rate.
    exclusive: tax is added on top, amount * rate.

    Total over its inputs: a rate that is not a positive finite number
    yields no tax. Reject such rates with validate_tax_rate where they enter.
    """
    amount = to_decimal(commission_amount)
    rate = to_decimal(rate)
    if not rate.is_finite() or rate <= 0 or amount == 0:
        return ZERO
    if inclusive:
        return quantize(amount * rate / (ONE + rate))
    return quantize(amount * rate)


def calculate_total_with_tax(commission_amount: MoneyInput, rate: MoneyInput, inclusive: bool) -> Decimal:
    amount = quantize(commission_amount)
    if inclusive:
        return amount
    return amount + calculate_tax(amount, rate, inclusive=False)


def calculate_amount_excluding_tax(commission_amount: MoneyInput, rate: MoneyInput, inclusive: bool) -> Decimal:
    amount = quantize(commission_amount)
    if not inclusive:
        return amount
    return amount - calculate_tax(amount, rate, inclusive=True)
