"""Expected and earned commission for payment plans."""
from decimal import Decimal
from typing import Iterable, Protocol, Sequence

from pydantic import BaseModel

from agencypay.errors import InvalidRateError
from agencypay.enums import InstallmentStatus
from agencypay.services.money import ZERO, MoneyInput, clamp, money_sum, quantize, to_decimal

HUNDRED = Decimal("100")


class PaidSlice(Protocol):
    status: str
    paid_amount: Decimal | None
    generates_commission: bool


class CommissionSnapshot(BaseModel):
    commissionable_base: Decimal
    expected_commission: Decimal
    earned_commission: Decimal
    outstanding_commission: Decimal
    paid_eligible: Decimal


def validate_commission_rate(rate_percent: MoneyInput) -> Decimal:
    if rate_percent is None:
        raise InvalidRateError("commission_rate_percent", rate_percent)
    rate = to_decimal(rate_percent)
    if not rate.is_finite() or rate < 0 or rate > HUNDRED:
        raise InvalidRateError("commission_rate_percent", rate_percent)
    return rate


def commissionable_base(total_amount: MoneyInput, fees: MoneyInput) -> Decimal:
    """Plan total minus non-commissionable fees, floored at zero."""
    base = to_decimal(total_amount) - to_decimal(fees)
    return base if base > 0 else ZERO


def compute_expected_commission(
    total_amount: MoneyInput, fees: MoneyInput, rate_percent: MoneyInput
) -> Decimal:
    """(total - fees) * rate / 100, rounded to cents. Zero for an all-fee plan."""
    rate = validate_commission_rate(rate_percent)
    base = commissionable_base(total_amount, fees)
    if base <= 0:
        return ZERO
    return quantize(base * rate / HUNDRED)


def paid_eligible_amount(installments: Iterable[PaidSlice]) -> Decimal:
    """Actual paid amounts on paid, commission-generating installments."""
    return money_sum(
        inst.paid_amount or ZERO
        for inst in installments
        if inst.status == InstallmentStatus.PAID and inst.generates_commission
    )


def compute_earned_commission(
    installments: Sequence[PaidSlice],
    total_amount: MoneyInput,
    fees: MoneyInput,
    expected_commission: MoneyInput,
) -> Decimal:
    """
    Attribute expected commission in proportion to what has actually been paid.

    earned = paid_eligible / commissionable_base * expected, clamped to
    [0, expected]. Partial payments count at their paid_amount, not the
    nominal installment amount. Pure: the same installment state always
    gives the same figure, so it can be rerun after every payment.
    """
    expected = to_decimal(expected_commission)
    base = commissionable_base(total_amount, fees)
    if base <= 0 or expected <= 0:
        return ZERO
    paid = paid_eligible_amount(installments)
    earned = quantize(paid * expected / base)
    return clamp(earned, ZERO, quantize(expected))


def outstanding_commission(expected_commission: MoneyInput, earned_commission: MoneyInput) -> Decimal:
    return quantize(to_decimal(expected_commission) - to_decimal(earned_commission))


def installment_commission_share(
    paid_amount: MoneyInput, base: MoneyInput, expected_commission: MoneyInput
) -> Decimal:
    """One payment's slice of the plan's expected commission (unrounded)."""
    base = to_decimal(base)
    if base <= 0:
        return ZERO
    return to_decimal(paid_amount) * to_decimal(expected_commission) / base


def recompute_plan_commission(plan, installments: Sequence[PaidSlice]) -> CommissionSnapshot:
    """
    Rebuild a plan's commission figures from installment state alone.

    Never reads the cached plan.earned_commission, so reconciliation jobs can
    diff the result against the cache.
    """
    fees = plan.non_commissionable_fees
    base = commissionable_base(plan.total_amount, fees)
    expected = quantize(plan.expected_commission)
    earned = compute_earned_commission(installments, plan.total_amount, fees, expected)
    return CommissionSnapshot(
        commissionable_base=quantize(base),
        expected_commission=expected,
        earned_commission=earned,
        outstanding_commission=outstanding_commission(expected, earned),
        paid_eligible=quantize(paid_eligible_amount(installments)),
    )


def is_plan_complete(installments: Sequence[PaidSlice]) -> bool:
    """
    True once every commission-generating installment is paid.

    Cancelled slices are ignored. A plan with only fee installments is
    complete once those are all paid.
    """
    live = [i for i in installments if i.status != InstallmentStatus.CANCELLED]
    if not live:
        return False
    tracked = [i for i in live if i.generates_commission] or live
    return all(i.status == InstallmentStatus.PAID for i in tracked)
