"""Draft installment schedules: amounts via distribute_remainder, dates by cadence."""
from datetime import date, timedelta
from decimal import Decimal
from typing import Iterable, Optional, Sequence

from dateutil.relativedelta import relativedelta
from pydantic import BaseModel

from agencypay.enums import PaymentFrequency
from agencypay.errors import ScheduleInvariantError
from agencypay.services.money import ZERO, distribute_remainder, money_sum, quantize

FREQUENCY_MONTHS = {
    PaymentFrequency.MONTHLY: 1,
    PaymentFrequency.QUARTERLY: 3,
}


class ScheduleRequest(BaseModel):
    total_amount: Decimal
    installment_count: int
    frequency: PaymentFrequency
    start_date: date
    institution_lead_time_days: int = 0
    # Optional up-front payment, becomes installment 1 and is excluded from the split
    initial_payment_amount: Decimal = ZERO
    initial_payment_due_date: Optional[date] = None
    initial_payment_paid: bool = False


class DraftInstallment(BaseModel):
    installment_number: int
    amount: Decimal
    student_due_date: Optional[date] = None
    institution_due_date: Optional[date] = None
    is_initial_payment: bool = False
    generates_commission: bool = True
    already_paid: bool = False


def institution_due_date(student_due_date: Optional[date], lead_time_days: int) -> Optional[date]:
    if student_due_date is None:
        return None
    return student_due_date + timedelta(days=lead_time_days)


def student_due_dates(
    start_date: date, count: int, frequency: PaymentFrequency
) -> list[Optional[date]]:
    """Due dates offset from start_date, not chained, so month-end starts don't drift."""
    if frequency == PaymentFrequency.CUSTOM:
        return [start_date] + [None] * (count - 1)
    step = FREQUENCY_MONTHS[frequency]
    return [start_date + relativedelta(months=i * step) for i in range(count)]


def generate_schedule(request: ScheduleRequest) -> list[DraftInstallment]:
    """
    Build the draft schedule for a plan.

    Regenerating always starts from the request, so this doubles as the
    "reset to computed" path after manual edits.
    """
    total = quantize(request.total_amount)
    initial = quantize(request.initial_payment_amount)
    if request.installment_count < 1:
        raise ScheduleInvariantError(
            f"installment_count must be at least 1, got {request.installment_count}"
        )
    if total <= 0:
        raise ScheduleInvariantError(f"total_amount must be positive, got {total}")
    if request.institution_lead_time_days < 0:
        raise ScheduleInvariantError(
            f"institution lead time cannot be negative, got {request.institution_lead_time_days}"
        )
    if initial < 0:
        raise ScheduleInvariantError(f"initial payment cannot be negative, got {initial}")
    if initial >= total:
        raise ScheduleInvariantError(
            "initial payment must leave an amount for the regular installments",
            expected=total,
            actual=initial,
        )

    lead = request.institution_lead_time_days
    drafts: list[DraftInstallment] = []
    if initial > 0:
        initial_due = request.initial_payment_due_date or request.start_date
        drafts.append(
            DraftInstallment(
                installment_number=1,
                amount=initial,
                student_due_date=initial_due,
                institution_due_date=institution_due_date(initial_due, lead),
                is_initial_payment=True,
                already_paid=request.initial_payment_paid,
            )
        )

    amounts = distribute_remainder(total - initial, request.installment_count)
    dates = student_due_dates(request.start_date, request.installment_count, request.frequency)
    offset = len(drafts)
    for i, (amount, due) in enumerate(zip(amounts, dates)):
        drafts.append(
            DraftInstallment(
                installment_number=offset + i + 1,
                amount=amount,
                student_due_date=due,
                institution_due_date=institution_due_date(due, lead),
            )
        )
    return drafts


def validate_schedule(
    total_amount: Decimal,
    installments: Sequence,
    require_dates: bool = False,
) -> None:
    """
    Check a (possibly hand-edited) schedule against its plan total.

    Exact decimal equality, no tolerance. Raises ScheduleInvariantError and
    never adjusts the amounts it was given.
    """
    if not installments:
        raise ScheduleInvariantError("schedule must contain at least one installment")
    numbers = sorted(inst.installment_number for inst in installments)
    if numbers != list(range(1, len(numbers) + 1)):
        raise ScheduleInvariantError(
            f"installment numbers must run 1..{len(numbers)} without gaps, got {numbers}"
        )
    for inst in installments:
        if inst.amount <= 0:
            raise ScheduleInvariantError(
                f"installment {inst.installment_number} amount must be positive, got {inst.amount}"
            )
        if inst.amount != quantize(inst.amount):
            raise ScheduleInvariantError(
                f"installment {inst.installment_number} amount has more than two decimal places: {inst.amount}"
            )
        if require_dates and inst.student_due_date is None:
            raise ScheduleInvariantError(
                f"installment {inst.installment_number} has no student due date"
            )
    expected = quantize(total_amount)
    actual = money_sum(inst.amount for inst in installments)
    if actual != expected:
        raise ScheduleInvariantError(
            f"installments sum to {actual}, plan total is {expected}",
            expected=expected,
            actual=actual,
        )


def fill_institution_dates(installments: Iterable, lead_time_days: int) -> None:
    """Derive missing institution due dates in place from student due dates."""
    for inst in installments:
        if inst.institution_due_date is None and inst.student_due_date is not None:
            inst.institution_due_date = institution_due_date(inst.student_due_date, lead_time_days)
