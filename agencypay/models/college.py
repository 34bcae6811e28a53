"""Partner institutions and their branches."""
from typing import Optional

from beanie import DecimalAnnotation, Document, Indexed
from pydantic import field_validator

from agencypay.services.commission import validate_commission_rate


class College(Document):
    agency_id: Indexed(str)
    name: Indexed(str)
    country: Optional[str] = None

    class Settings:
        name = "colleges"
        use_state_management = True


class Branch(Document):
    """Branch/campus of a college; its rate is copied onto plans at creation."""

    agency_id: Indexed(str)
    college_id: Indexed(str)
    name: str
    city: Optional[str] = None
    commission_rate_percent: DecimalAnnotation

    class Settings:
        name = "branches"
        use_state_management = True

    @field_validator("commission_rate_percent")
    @classmethod
    def _check_rate(cls, v):
        return validate_commission_rate(v)
