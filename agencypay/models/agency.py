"""Agency-level configuration passed into every calculation call."""
from decimal import Decimal

from beanie import DecimalAnnotation, Document
from pydantic import field_validator

from agencypay.services.tax import validate_tax_rate


class Agency(Document):
    name: str
    currency: str = "AUD"
    timezone: str = "UTC"
    gst_rate: DecimalAnnotation = Decimal("0.10")  # fraction, 0.10 == 10%
    institution_lead_time_days: int = 0

    class Settings:
        name = "agencies"
        use_state_management = True

    @field_validator("gst_rate")
    @classmethod
    def _check_gst_rate(cls, v):
        return validate_tax_rate(v)

    @field_validator("institution_lead_time_days")
    @classmethod
    def _check_lead_time(cls, v: int) -> int:
        if v < 0:
            raise ValueError("institution_lead_time_days cannot be negative")
        return v
