"""Installments: one scheduled slice of a payment plan."""
from datetime import date, datetime
from decimal import Decimal
from typing import Optional

from beanie import DecimalAnnotation, Document, Indexed
from pydantic import BaseModel, Field
from pymongo import ASCENDING, IndexModel

from agencypay.enums import PAYABLE_STATUSES, InstallmentStatus  # noqa: F401


class Installment(Document):
    """Amounts are editable only while draft; afterwards only payment fields change."""

    payment_plan_id: Indexed(str)
    agency_id: Indexed(str)
    installment_number: int
    amount: DecimalAnnotation
    student_due_date: Optional[date] = None
    institution_due_date: Optional[date] = None
    status: InstallmentStatus = InstallmentStatus.DRAFT
    paid_amount: Optional[DecimalAnnotation] = None
    paid_date: Optional[date] = None
    generates_commission: bool = True  # False for fee-only slices
    is_initial_payment: bool = False
    payment_notes: Optional[str] = None
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)

    class Settings:
        name = "installments"
        use_state_management = True
        indexes = [
            IndexModel([("payment_plan_id", ASCENDING), ("installment_number", ASCENDING)], unique=True),
        ]


class InstallmentEdit(BaseModel):
    """One row of a hand-edited draft schedule."""
    installment_number: int
    amount: Decimal
    student_due_date: Optional[date] = None
    institution_due_date: Optional[date] = None
    generates_commission: bool = True


class RecordPaymentBody(BaseModel):
    paid_date: date
    paid_amount: Decimal
    notes: Optional[str] = None


class InstallmentOut(BaseModel):
    id: str
    payment_plan_id: str
    installment_number: int
    amount: Decimal
    student_due_date: Optional[date] = None
    institution_due_date: Optional[date] = None
    status: InstallmentStatus
    paid_amount: Optional[Decimal] = None
    paid_date: Optional[date] = None
    generates_commission: bool
    is_initial_payment: bool
    payment_notes: Optional[str] = None
