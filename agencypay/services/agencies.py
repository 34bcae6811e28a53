"""Per-agency calculation inputs, falling back to application defaults."""
from datetime import date, datetime
from decimal import Decimal
from zoneinfo import ZoneInfo

from beanie import PydanticObjectId
from bson.errors import InvalidId
from pydantic import BaseModel

from agencypay.config import settings
from agencypay.models.agency import Agency


class AgencyConfig(BaseModel):
    gst_rate: Decimal
    institution_lead_time_days: int
    currency: str
    timezone: str = "UTC"


def default_agency_config() -> AgencyConfig:
    return AgencyConfig(
        gst_rate=settings.default_gst_rate,
        institution_lead_time_days=settings.default_institution_lead_time_days,
        currency=settings.default_currency,
    )


async def load_agency_config(agency_id: str) -> AgencyConfig:
    try:
        agency = await Agency.get(PydanticObjectId(agency_id))
    except InvalidId:
        agency = None
    if not agency:
        return default_agency_config()
    return AgencyConfig(
        gst_rate=agency.gst_rate,
        institution_lead_time_days=agency.institution_lead_time_days,
        currency=agency.currency,
        timezone=agency.timezone,
    )


def agency_today(config: AgencyConfig) -> date:
    """Calendar date in the agency's own timezone; due dates and paid dates are compared against it."""
    return datetime.now(ZoneInfo(config.timezone)).date()
