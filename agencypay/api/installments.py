"""Manual payment recording against a single installment."""
from beanie import PydanticObjectId
from bson.errors import InvalidId
from fastapi import APIRouter, HTTPException

from agencypay.api.deps import CurrentUser
from agencypay.models.installment import Installment, RecordPaymentBody
from agencypay.services.agencies import agency_today, load_agency_config
from agencypay.services.payments import record_payment
from agencypay.services.plans import installment_out

router = APIRouter()


@router.post("/{installment_id}/record-payment")
async def record(installment_id: str, body: RecordPaymentBody, user: CurrentUser):
    """Mark paid, recalculate the plan's earned commission, complete the plan when fully paid."""
    try:
        installment = await Installment.get(PydanticObjectId(installment_id))
    except InvalidId:
        installment = None
    if not installment or installment.agency_id != user.agency_id:
        raise HTTPException(status_code=404, detail="Installment not found")
    config = await load_agency_config(user.agency_id)
    installment, plan = await record_payment(installment, body, agency_today(config))
    return {
        "installment": installment_out(installment),
        "payment_plan": {
            "id": str(plan.id),
            "status": plan.status.value,
            "earned_commission": str(plan.earned_commission),
            "expected_commission": str(plan.expected_commission),
        },
    }
