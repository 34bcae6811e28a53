"""Beanie document models and Pydantic schemas."""
from agencypay.models.agency import Agency
from agencypay.models.college import College, Branch
from agencypay.models.enrollment import Enrollment
from agencypay.models.installment import (
    Installment,
    InstallmentStatus,
    InstallmentEdit,
    InstallmentOut,
    RecordPaymentBody,
    PAYABLE_STATUSES,
)
from agencypay.models.payment_plan import PaymentPlan, PaymentPlanCreate, PaymentPlanOut, PlanStatus

__all__ = [
    "Agency",
    "College",
    "Branch",
    "Enrollment",
    "Installment",
    "InstallmentStatus",
    "InstallmentEdit",
    "InstallmentOut",
    "RecordPaymentBody",
    "PAYABLE_STATUSES",
    "PaymentPlan",
    "PaymentPlanCreate",
    "PaymentPlanOut",
    "PlanStatus",
]
