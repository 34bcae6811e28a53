"""Plan lifecycle: draft schedule, hand edits, approval, administrative recalculation."""
import logging
from datetime import date, datetime
from decimal import Decimal
from typing import Optional, Sequence

from pydantic import BaseModel

from agencypay.config import settings
from agencypay.enums import InstallmentStatus, PlanStatus
from agencypay.errors import ScheduleInvariantError
from agencypay.models.college import Branch
from agencypay.models.enrollment import Enrollment
from agencypay.models.installment import Installment, InstallmentEdit, InstallmentOut
from agencypay.models.payment_plan import PaymentPlan, PaymentPlanCreate, PaymentPlanOut
from agencypay.services.agencies import AgencyConfig
from agencypay.services.commission import (
    commissionable_base,
    compute_earned_commission,
    compute_expected_commission,
    outstanding_commission,
    validate_commission_rate,
)
from agencypay.services.money import ZERO, MoneyInput, quantize
from agencypay.services.payments import plan_installments, plan_locks, refresh_earned_commission
from agencypay.services.scheduler import (
    DraftInstallment,
    ScheduleRequest,
    fill_institution_dates,
    generate_schedule,
    validate_schedule,
)

logger = logging.getLogger(__name__)


class ScheduleSummary(BaseModel):
    total_amount: Decimal
    commissionable_base: Decimal
    expected_commission: Decimal
    initial_payment: Decimal
    installment_count: int
    amount_per_installment: Decimal


class SchedulePreview(BaseModel):
    installments: list[DraftInstallment]
    summary: ScheduleSummary


def schedule_request(data, lead_time_days: int) -> ScheduleRequest:
    """Works for both a PaymentPlanCreate body and a stored PaymentPlan."""
    if data.installment_count > settings.max_installments:
        raise ScheduleInvariantError(
            f"installment_count cannot exceed {settings.max_installments}, got {data.installment_count}"
        )
    return ScheduleRequest(
        total_amount=data.total_amount,
        installment_count=data.installment_count,
        frequency=data.frequency,
        start_date=data.start_date,
        institution_lead_time_days=lead_time_days,
        initial_payment_amount=data.initial_payment_amount,
        initial_payment_due_date=data.initial_payment_due_date,
        initial_payment_paid=data.initial_payment_paid,
    )


def validate_plan_fees(total_amount: MoneyInput, fees: MoneyInput) -> Decimal:
    """Fees must leave a commissionable base. Returns the fee total rounded to cents."""
    total = quantize(total_amount)
    fee_total = quantize(fees)
    if fee_total < 0:
        raise ScheduleInvariantError(f"fees cannot be negative, got {fee_total}")
    if fee_total >= total:
        raise ScheduleInvariantError(
            "total fees cannot equal or exceed the total course value",
            expected=total,
            actual=fee_total,
        )
    return fee_total


def lead_time_for(data: PaymentPlanCreate, config: AgencyConfig) -> int:
    if data.institution_lead_time_days is None:
        return config.institution_lead_time_days
    return data.institution_lead_time_days


def build_preview(request: ScheduleRequest, fees: Decimal, rate_percent: Decimal) -> SchedulePreview:
    fees = validate_plan_fees(request.total_amount, fees)
    drafts = generate_schedule(request)
    regular = [d for d in drafts if not d.is_initial_payment]
    return SchedulePreview(
        installments=drafts,
        summary=ScheduleSummary(
            total_amount=quantize(request.total_amount),
            commissionable_base=quantize(commissionable_base(request.total_amount, fees)),
            expected_commission=compute_expected_commission(request.total_amount, fees, rate_percent),
            initial_payment=quantize(request.initial_payment_amount),
            installment_count=len(drafts),
            amount_per_installment=regular[0].amount if regular else ZERO,
        ),
    )


def draft_documents(plan: PaymentPlan, drafts: Sequence) -> list[Installment]:
    """Fresh draft Installment documents for a plan from scheduler output or hand edits."""
    return [
        Installment(
            payment_plan_id=str(plan.id),
            agency_id=plan.agency_id,
            installment_number=d.installment_number,
            amount=quantize(d.amount),
            student_due_date=d.student_due_date,
            institution_due_date=d.institution_due_date,
            generates_commission=d.generates_commission,
            is_initial_payment=getattr(d, "is_initial_payment", False),
        )
        for d in drafts
    ]


def activate_installments(plan: PaymentPlan, installments: Sequence[Installment], today: date) -> None:
    """Move an approved draft schedule to pending; an initial payment taken up front is already paid.

    The up-front payment is dated no later than today, even when its due date is in the future.
    """
    now = datetime.utcnow()
    for inst in installments:
        if inst.is_initial_payment and plan.initial_payment_paid:
            inst.status = InstallmentStatus.PAID
            inst.paid_amount = inst.amount
            inst.paid_date = min(inst.student_due_date or today, today)
        else:
            inst.status = InstallmentStatus.PENDING
        inst.updated_at = now


def plan_out(plan: PaymentPlan, installments: Sequence[Installment] = ()) -> PaymentPlanOut:
    return PaymentPlanOut(
        id=str(plan.id),
        enrollment_id=plan.enrollment_id,
        college_id=plan.college_id,
        branch_id=plan.branch_id,
        total_amount=plan.total_amount,
        currency=plan.currency,
        non_commissionable_fees=plan.non_commissionable_fees,
        commission_rate_percent=plan.commission_rate_percent,
        expected_commission=plan.expected_commission,
        earned_commission=plan.earned_commission,
        outstanding_commission=outstanding_commission(plan.expected_commission, plan.earned_commission),
        tax_inclusive=plan.tax_inclusive,
        status=plan.status,
        installments=[installment_out(i) for i in installments],
    )


def installment_out(inst: Installment) -> InstallmentOut:
    return InstallmentOut(
        id=str(inst.id),
        payment_plan_id=inst.payment_plan_id,
        installment_number=inst.installment_number,
        amount=inst.amount,
        student_due_date=inst.student_due_date,
        institution_due_date=inst.institution_due_date,
        status=inst.status,
        paid_amount=inst.paid_amount,
        paid_date=inst.paid_date,
        generates_commission=inst.generates_commission,
        is_initial_payment=inst.is_initial_payment,
        payment_notes=inst.payment_notes,
    )


def _require_draft(plan: PaymentPlan) -> None:
    if plan.status != PlanStatus.DRAFT:
        raise ScheduleInvariantError(
            f"Plan is {plan.status.value}; installment amounts can only change while the plan is a draft"
        )


async def _replace_installments(plan: PaymentPlan, documents: list[Installment]) -> list[Installment]:
    await Installment.find(Installment.payment_plan_id == str(plan.id)).delete()
    if documents:
        await Installment.insert_many(documents)
    return await plan_installments(str(plan.id))


async def create_plan(
    data: PaymentPlanCreate,
    enrollment: Enrollment,
    branch: Branch,
    config: AgencyConfig,
) -> tuple[PaymentPlan, list[Installment]]:
    """Persist a draft plan with the computed schedule. Commission terms are copied from the branch."""
    rate = validate_commission_rate(branch.commission_rate_percent)
    fees = validate_plan_fees(data.total_amount, data.materials_cost + data.admin_fees + data.other_fees)
    lead_time = lead_time_for(data, config)
    drafts = generate_schedule(schedule_request(data, lead_time))

    plan = PaymentPlan(
        agency_id=enrollment.agency_id,
        enrollment_id=str(enrollment.id),
        college_id=enrollment.college_id,
        branch_id=enrollment.branch_id,
        total_amount=quantize(data.total_amount),
        currency=data.currency or config.currency,
        materials_cost=quantize(data.materials_cost),
        admin_fees=quantize(data.admin_fees),
        other_fees=quantize(data.other_fees),
        commission_rate_percent=rate,
        expected_commission=compute_expected_commission(data.total_amount, fees, rate),
        tax_inclusive=data.tax_inclusive,
        installment_count=data.installment_count,
        frequency=data.frequency,
        start_date=data.start_date,
        institution_lead_time_days=lead_time,
        initial_payment_amount=quantize(data.initial_payment_amount),
        initial_payment_due_date=data.initial_payment_due_date,
        initial_payment_paid=data.initial_payment_paid,
    )
    await plan.insert()
    installments = await _replace_installments(plan, draft_documents(plan, drafts))
    logger.info("Created draft plan %s with %s installments", plan.id, len(installments))
    return plan, installments


async def update_draft_installments(plan: PaymentPlan, edits: list[InstallmentEdit]) -> list[Installment]:
    """Replace the draft schedule with hand-edited rows. Amounts are checked, never adjusted."""
    _require_draft(plan)
    fill_institution_dates(edits, plan.institution_lead_time_days)
    validate_schedule(plan.total_amount, edits)
    documents = draft_documents(plan, edits)
    if plan.initial_payment_amount > 0:
        for doc in documents:
            doc.is_initial_payment = doc.installment_number == 1
    return await _replace_installments(plan, documents)


async def reset_schedule(plan: PaymentPlan) -> list[Installment]:
    """Throw away hand edits and regenerate from the plan's stored scheduler inputs."""
    _require_draft(plan)
    drafts = generate_schedule(schedule_request(plan, plan.institution_lead_time_days))
    return await _replace_installments(plan, draft_documents(plan, drafts))


async def approve_plan(plan: PaymentPlan, today: date) -> tuple[PaymentPlan, list[Installment]]:
    """Freeze the schedule and the expected commission, then compute the opening earned figure."""
    _require_draft(plan)
    installments = await plan_installments(str(plan.id))
    fill_institution_dates(installments, plan.institution_lead_time_days)
    validate_schedule(plan.total_amount, installments, require_dates=True)

    fees = plan.non_commissionable_fees
    plan.expected_commission = compute_expected_commission(plan.total_amount, fees, plan.commission_rate_percent)
    activate_installments(plan, installments, today)
    for inst in installments:
        await inst.save()

    plan.earned_commission = compute_earned_commission(
        installments, plan.total_amount, fees, plan.expected_commission
    )
    plan.status = PlanStatus.ACTIVE
    plan.updated_at = datetime.utcnow()
    await plan.save()
    logger.info("Approved plan %s; expected commission %s", plan.id, plan.expected_commission)
    return plan, installments


async def recalculate_expected_commission(
    plan: PaymentPlan, rate_percent: Optional[Decimal] = None
) -> PaymentPlan:
    """Administrative edit: re-derive the frozen expected commission, then the earned figure."""
    plan_id = str(plan.id)
    async with plan_locks.hold(plan_id):
        plan = await PaymentPlan.get(plan.id)
        if rate_percent is not None:
            plan.commission_rate_percent = validate_commission_rate(rate_percent)
        plan.expected_commission = compute_expected_commission(
            plan.total_amount, plan.non_commissionable_fees, plan.commission_rate_percent
        )
        plan.updated_at = datetime.utcnow()
        await plan.save()
        plan = await refresh_earned_commission(plan_id)
    logger.info("Recalculated expected commission on plan %s: %s", plan_id, plan.expected_commission)
    return plan


async def cancel_plan(plan: PaymentPlan) -> tuple[PaymentPlan, list[Installment]]:
    plan_id = str(plan.id)
    async with plan_locks.hold(plan_id):
        plan = await PaymentPlan.get(plan.id)
        installments = await plan_installments(plan_id)
        for inst in installments:
            if inst.status != InstallmentStatus.PAID:
                inst.status = InstallmentStatus.CANCELLED
                inst.updated_at = datetime.utcnow()
                await inst.save()
        plan.status = PlanStatus.CANCELLED
        plan.updated_at = datetime.utcnow()
        await plan.save()
    logger.info("Cancelled plan %s", plan_id)
    return plan, installments
