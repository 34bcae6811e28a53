"""Payment recording and the earned-commission write-back.

Each plan has a single writer at a time: an in-process lock per plan id, and
revision-checked plan saves so writers in other processes cannot interleave
a stale figure. Different plans never wait on each other.
"""
import asyncio
import logging
from contextlib import asynccontextmanager
from datetime import date, datetime
from decimal import Decimal
from typing import Optional
from weakref import WeakValueDictionary

from beanie import PydanticObjectId
from beanie.exceptions import RevisionIdWasChanged

from agencypay.config import settings
from agencypay.enums import PAYABLE_STATUSES, InstallmentStatus, PlanStatus
from agencypay.errors import ConcurrentUpdateError, PaymentValidationError
from agencypay.models.installment import Installment, RecordPaymentBody
from agencypay.models.payment_plan import PaymentPlan
from agencypay.services.commission import CommissionSnapshot, is_plan_complete, recompute_plan_commission
from agencypay.services.money import quantize, to_decimal

logger = logging.getLogger(__name__)

MAX_NOTES_LENGTH = 500


class PlanLockRegistry:
    """One asyncio.Lock per plan id, dropped once nobody holds or waits on it."""

    def __init__(self):
        self._locks: WeakValueDictionary = WeakValueDictionary()

    def lock_for(self, plan_id: str) -> asyncio.Lock:
        lock = self._locks.get(plan_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[plan_id] = lock
        return lock

    @asynccontextmanager
    async def hold(self, plan_id: str):
        lock = self.lock_for(plan_id)
        async with lock:
            yield

    def __len__(self) -> int:
        return len(self._locks)


plan_locks = PlanLockRegistry()


def max_payable(amount: Decimal, tolerance_percent: Decimal) -> Decimal:
    return quantize(to_decimal(amount) * (Decimal("100") + to_decimal(tolerance_percent)) / Decimal("100"))


def validate_payment(
    installment,
    paid_amount: Decimal,
    paid_date: date,
    today: date,
    tolerance_percent: Decimal,
    notes: Optional[str] = None,
) -> Decimal:
    """Reject payments that cannot be recorded; returns the amount rounded to cents."""
    if installment.status not in PAYABLE_STATUSES:
        raise PaymentValidationError(
            f"Installment #{installment.installment_number} is {installment.status.value} and cannot take a payment",
            field="status",
        )
    amount = to_decimal(paid_amount)
    if amount != quantize(amount):
        raise PaymentValidationError("Payment amount can have at most 2 decimal places", field="paid_amount")
    if amount <= 0:
        raise PaymentValidationError("Payment amount must be positive", field="paid_amount")
    ceiling = max_payable(installment.amount, tolerance_percent)
    if amount > ceiling:
        raise PaymentValidationError(
            f"Payment amount cannot exceed {ceiling} ({Decimal('100') + to_decimal(tolerance_percent)}% of installment amount)",
            field="paid_amount",
        )
    if paid_date > today:
        raise PaymentValidationError("Payment date cannot be in the future", field="paid_date")
    if notes is not None and len(notes) > MAX_NOTES_LENGTH:
        raise PaymentValidationError(f"Notes cannot exceed {MAX_NOTES_LENGTH} characters", field="notes")
    return quantize(amount)


def apply_payment(installment, paid_amount: Decimal, paid_date: date, notes: Optional[str] = None) -> None:
    """A short payment still closes the installment; its actual paid_amount drives attribution."""
    installment.status = InstallmentStatus.PAID
    installment.paid_amount = paid_amount
    installment.paid_date = paid_date
    installment.payment_notes = notes or None
    installment.updated_at = datetime.utcnow()


def payment_state(installment) -> dict:
    return {
        "status": installment.status,
        "paid_amount": installment.paid_amount,
        "paid_date": installment.paid_date,
        "payment_notes": installment.payment_notes,
    }


def restore_payment_state(installment, state: dict) -> None:
    for field, value in state.items():
        setattr(installment, field, value)
    installment.updated_at = datetime.utcnow()


def apply_commission_snapshot(plan, snapshot: CommissionSnapshot, installments) -> bool:
    """Write recomputed figures onto the plan; True when this completes the plan."""
    plan.earned_commission = snapshot.earned_commission
    plan.updated_at = datetime.utcnow()
    if plan.status == PlanStatus.ACTIVE and is_plan_complete(installments):
        plan.status = PlanStatus.COMPLETED
        return True
    return False


async def plan_installments(plan_id: str) -> list[Installment]:
    return await Installment.find(Installment.payment_plan_id == plan_id).sort("installment_number").to_list()


async def refresh_earned_commission(plan_id: str) -> PaymentPlan:
    """
    Recompute earned commission from installment state and store it on the plan.

    Read installments, compute, write: retried from the top whenever the plan
    revision moved underneath us.
    """
    retries = settings.payment_recalc_max_retries
    for attempt in range(1, retries + 1):
        plan = await PaymentPlan.get(PydanticObjectId(plan_id))
        if plan is None:
            raise LookupError(f"Payment plan {plan_id} not found")
        installments = await plan_installments(plan_id)
        snapshot = recompute_plan_commission(plan, installments)
        completed = apply_commission_snapshot(plan, snapshot, installments)
        try:
            await plan.save()
        except RevisionIdWasChanged:
            logger.warning("Plan %s changed during commission write-back (attempt %s/%s)", plan_id, attempt, retries)
            continue
        if completed:
            logger.info("Plan %s completed", plan_id)
        return plan
    raise ConcurrentUpdateError(f"Could not store earned commission for plan {plan_id} after {retries} attempts")


async def record_payment(
    installment: Installment,
    body: RecordPaymentBody,
    today: date,
) -> tuple[Installment, PaymentPlan]:
    """Mark an installment paid and recalculate its plan's earned commission once.

    If the commission write-back gives up, the installment is put back as it
    was before re-raising, so the client can simply retry.
    """
    plan_id = installment.payment_plan_id
    async with plan_locks.hold(plan_id):
        # re-read under the lock so two postings for the same installment can't both pass validation
        current = await Installment.get(installment.id)
        if current is None:
            raise LookupError(f"Installment {installment.id} not found")
        amount = validate_payment(
            current,
            body.paid_amount,
            body.paid_date,
            today,
            settings.overpayment_tolerance_percent,
            body.notes,
        )
        previous = payment_state(current)
        apply_payment(current, amount, body.paid_date, body.notes)
        await current.save()
        try:
            plan = await refresh_earned_commission(plan_id)
        except ConcurrentUpdateError:
            # the payment and the cached figure go together or not at all
            restore_payment_state(current, previous)
            await current.save()
            logger.warning("Rolled back payment on plan %s installment #%s", plan_id, current.installment_number)
            raise

    logger.info(
        "Recorded payment of %s on plan %s installment #%s; earned commission now %s",
        amount,
        plan_id,
        current.installment_number,
        plan.earned_commission,
    )
    return current, plan


async def audit_plan_commission(plan_id: str) -> tuple[PaymentPlan, CommissionSnapshot]:
    """Recompute without touching the cache, for reconciliation against plan.earned_commission."""
    plan = await PaymentPlan.get(PydanticObjectId(plan_id))
    if plan is None:
        raise LookupError(f"Payment plan {plan_id} not found")
    installments = await plan_installments(plan_id)
    return plan, recompute_plan_commission(plan, installments)
