"""Payment plans: the funding agreement for one enrollment, with frozen commission terms."""
from datetime import date, datetime
from decimal import Decimal
from typing import Optional

from beanie import DecimalAnnotation, Document, Indexed
from pydantic import BaseModel, Field

from agencypay.enums import PaymentFrequency, PlanStatus
from agencypay.models.installment import InstallmentOut


class PaymentPlan(Document):
    """
    Commission terms are copied from the branch when the plan is created and
    are not live-linked. earned_commission is a cache rewritten after every
    payment; see services.payments for the write discipline.
    """

    agency_id: Indexed(str)
    enrollment_id: Indexed(str)
    college_id: Indexed(str)
    branch_id: Indexed(str)
    total_amount: DecimalAnnotation
    currency: str = "AUD"
    materials_cost: DecimalAnnotation = Decimal("0")
    admin_fees: DecimalAnnotation = Decimal("0")
    other_fees: DecimalAnnotation = Decimal("0")
    commission_rate_percent: DecimalAnnotation
    expected_commission: DecimalAnnotation = Decimal("0")
    earned_commission: DecimalAnnotation = Decimal("0")
    tax_inclusive: bool = True
    status: PlanStatus = PlanStatus.DRAFT

    # Scheduler inputs, kept so the draft can be reset to the computed schedule
    installment_count: int
    frequency: PaymentFrequency
    start_date: date
    institution_lead_time_days: int = 0
    initial_payment_amount: DecimalAnnotation = Decimal("0")
    initial_payment_due_date: Optional[date] = None
    initial_payment_paid: bool = False

    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)

    class Settings:
        name = "payment_plans"
        use_state_management = True
        use_revision = True

    @property
    def non_commissionable_fees(self) -> Decimal:
        return self.materials_cost + self.admin_fees + self.other_fees


class PaymentPlanCreate(BaseModel):
    enrollment_id: str
    total_amount: Decimal
    currency: Optional[str] = None
    materials_cost: Decimal = Field(default=Decimal("0"), ge=0)
    admin_fees: Decimal = Field(default=Decimal("0"), ge=0)
    other_fees: Decimal = Field(default=Decimal("0"), ge=0)
    tax_inclusive: bool = True
    installment_count: int
    frequency: PaymentFrequency
    start_date: date
    institution_lead_time_days: Optional[int] = None  # agency default when omitted
    initial_payment_amount: Decimal = Decimal("0")
    initial_payment_due_date: Optional[date] = None
    initial_payment_paid: bool = False


class PaymentPlanOut(BaseModel):
    id: str
    enrollment_id: str
    college_id: str
    branch_id: str
    total_amount: Decimal
    currency: str
    non_commissionable_fees: Decimal
    commission_rate_percent: Decimal
    expected_commission: Decimal
    earned_commission: Decimal
    outstanding_commission: Decimal
    tax_inclusive: bool
    status: PlanStatus
    installments: list[InstallmentOut] = Field(default_factory=list)
