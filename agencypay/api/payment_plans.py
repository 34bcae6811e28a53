"""Payment plan creation, draft schedule editing and approval."""
from decimal import Decimal
from typing import Optional

from beanie import PydanticObjectId
from bson.errors import InvalidId
from fastapi import APIRouter, HTTPException
from pydantic import BaseModel

from agencypay.api.deps import CurrentUser
from agencypay.models.college import Branch
from agencypay.models.enrollment import Enrollment
from agencypay.models.installment import InstallmentEdit
from agencypay.models.payment_plan import PaymentPlan, PaymentPlanCreate, PaymentPlanOut
from agencypay.services.agencies import agency_today, load_agency_config
from agencypay.services.payments import plan_installments
from agencypay.services.plans import (
    SchedulePreview,
    approve_plan,
    build_preview,
    cancel_plan,
    create_plan,
    lead_time_for,
    plan_out,
    recalculate_expected_commission,
    reset_schedule,
    schedule_request,
    update_draft_installments,
)

router = APIRouter()


class RecalculateBody(BaseModel):
    commission_rate_percent: Optional[Decimal] = None


async def _get_plan(plan_id: str, agency_id: str) -> PaymentPlan:
    try:
        plan = await PaymentPlan.get(PydanticObjectId(plan_id))
    except InvalidId:
        plan = None
    if not plan or plan.agency_id != agency_id:
        raise HTTPException(status_code=404, detail="Payment plan not found")
    return plan


async def _enrollment_and_branch(enrollment_id: str, agency_id: str) -> tuple[Enrollment, Branch]:
    try:
        enrollment = await Enrollment.get(PydanticObjectId(enrollment_id))
    except InvalidId:
        enrollment = None
    if not enrollment or enrollment.agency_id != agency_id:
        raise HTTPException(status_code=404, detail="Enrollment not found")
    branch = await Branch.get(PydanticObjectId(enrollment.branch_id))
    if not branch:
        raise HTTPException(status_code=404, detail="Branch not found")
    return enrollment, branch


@router.post("/preview", response_model=SchedulePreview)
async def preview(data: PaymentPlanCreate, user: CurrentUser):
    """Draft schedule and commission summary without saving anything."""
    _, branch = await _enrollment_and_branch(data.enrollment_id, user.agency_id)
    config = await load_agency_config(user.agency_id)
    request = schedule_request(data, lead_time_for(data, config))
    fees = data.materials_cost + data.admin_fees + data.other_fees
    return build_preview(request, fees, branch.commission_rate_percent)


@router.post("/", status_code=201, response_model=PaymentPlanOut)
async def create(data: PaymentPlanCreate, user: CurrentUser):
    enrollment, branch = await _enrollment_and_branch(data.enrollment_id, user.agency_id)
    config = await load_agency_config(user.agency_id)
    plan, installments = await create_plan(data, enrollment, branch, config)
    return plan_out(plan, installments)


@router.get("/{plan_id}", response_model=PaymentPlanOut)
async def get_plan(plan_id: str, user: CurrentUser):
    plan = await _get_plan(plan_id, user.agency_id)
    return plan_out(plan, await plan_installments(plan_id))


@router.put("/{plan_id}/installments", response_model=PaymentPlanOut)
async def edit_installments(plan_id: str, edits: list[InstallmentEdit], user: CurrentUser):
    plan = await _get_plan(plan_id, user.agency_id)
    installments = await update_draft_installments(plan, edits)
    return plan_out(plan, installments)


@router.post("/{plan_id}/reset-schedule", response_model=PaymentPlanOut)
async def reset(plan_id: str, user: CurrentUser):
    plan = await _get_plan(plan_id, user.agency_id)
    installments = await reset_schedule(plan)
    return plan_out(plan, installments)


@router.post("/{plan_id}/approve", response_model=PaymentPlanOut)
async def approve(plan_id: str, user: CurrentUser):
    plan = await _get_plan(plan_id, user.agency_id)
    config = await load_agency_config(user.agency_id)
    plan, installments = await approve_plan(plan, agency_today(config))
    return plan_out(plan, installments)


@router.post("/{plan_id}/recalculate", response_model=PaymentPlanOut)
async def recalculate(plan_id: str, body: RecalculateBody, user: CurrentUser):
    plan = await _get_plan(plan_id, user.agency_id)
    plan = await recalculate_expected_commission(plan, body.commission_rate_percent)
    return plan_out(plan, await plan_installments(plan_id))


@router.post("/{plan_id}/cancel", response_model=PaymentPlanOut)
async def cancel(plan_id: str, user: CurrentUser):
    plan = await _get_plan(plan_id, user.agency_id)
    plan, installments = await cancel_plan(plan)
    return plan_out(plan, installments)
