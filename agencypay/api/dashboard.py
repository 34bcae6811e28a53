from datetime import date, timedelta

from dateutil.relativedelta import relativedelta
from fastapi import APIRouter, HTTPException, Query

from agencypay.api.deps import CurrentUser
from agencypay.services.agencies import agency_today, load_agency_config
from agencypay.services.aggregation import (
    CASH_FLOW_GROUPINGS,
    COUNTRY_PERIODS,
    cash_flow_projection,
    commission_by_country,
    commission_periods,
    monthly_earned_commission,
)
from agencypay.services.reports import load_paid_installments, load_projection_installments

router = APIRouter()

EPOCH = date(1970, 1, 1)


@router.get("/seasonal-commission")
async def seasonal_commission(user: CurrentUser):
    """Earned commission per month for the last 12 months, with last year's figures alongside."""
    config = await load_agency_config(user.agency_id)
    today = agency_today(config)
    # 24 months back so every month shown has its previous-year comparison
    since = today.replace(day=1) - relativedelta(months=23)
    payments = await load_paid_installments(user.agency_id, since, today)
    return monthly_earned_commission(payments, today)


@router.get("/commission-by-country")
async def country_commission(user: CurrentUser, period: str = "all", limit: int = Query(5, ge=1, le=50)):
    if period not in COUNTRY_PERIODS:
        raise HTTPException(status_code=400, detail=f"period must be one of: {', '.join(COUNTRY_PERIODS)}")
    config = await load_agency_config(user.agency_id)
    today = agency_today(config)
    current, previous = commission_periods(period, today)
    # "all" has an open start
    since = min(current[0] or EPOCH, previous[0])
    payments = await load_paid_installments(user.agency_id, since, today)
    return commission_by_country(payments, current, previous, limit=limit)


@router.get("/cash-flow-projection")
async def cash_flow(
    user: CurrentUser,
    days: int = Query(90, ge=1, le=365),
    group_by: str = "week",
):
    """Money due over the next `days` days, paid vs still expected."""
    if group_by not in CASH_FLOW_GROUPINGS:
        raise HTTPException(status_code=400, detail=f"group_by must be one of: {', '.join(CASH_FLOW_GROUPINGS)}")
    config = await load_agency_config(user.agency_id)
    today = agency_today(config)
    installments = await load_projection_installments(user.agency_id, today, today + timedelta(days=days))
    return cash_flow_projection(installments, group_by)
