"""Status and cadence vocabularies shared by the engine and the documents."""
from enum import Enum


class InstallmentStatus(str, Enum):
    DRAFT = "draft"
    PENDING = "pending"
    PAID = "paid"
    OVERDUE = "overdue"
    CANCELLED = "cancelled"


PAYABLE_STATUSES = (InstallmentStatus.PENDING, InstallmentStatus.OVERDUE)


class PlanStatus(str, Enum):
    DRAFT = "draft"  # schedule not yet approved
    ACTIVE = "active"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class PaymentFrequency(str, Enum):
    MONTHLY = "monthly"
    QUARTERLY = "quarterly"
    CUSTOM = "custom"  # only the first regular slot gets dates; the rest are entered by hand
