"""Commission reports grouped by college and branch."""
from datetime import date
from typing import Optional

from fastapi import APIRouter, HTTPException, Query

from agencypay.api.deps import CurrentUser
from agencypay.services.agencies import load_agency_config
from agencypay.services.aggregation import (
    SORTABLE_METRICS,
    build_commission_breakdown,
    rollup_by_college,
    summarize_totals,
)
from agencypay.services.reports import load_report_plans

router = APIRouter()


@router.get("/commissions")
async def commission_report(
    user: CurrentUser,
    date_from: date = Query(...),
    date_to: date = Query(...),
    college_id: Optional[str] = None,
    branch_id: Optional[str] = None,
    city: Optional[str] = None,
    sort_by: str = "earned",
):
    """Date window applies to installment student due dates."""
    if date_from > date_to:
        raise HTTPException(status_code=400, detail="date_from must not be after date_to")
    if sort_by not in SORTABLE_METRICS:
        raise HTTPException(status_code=400, detail=f"sort_by must be one of: {', '.join(SORTABLE_METRICS)}")
    config = await load_agency_config(user.agency_id)
    plans = await load_report_plans(user.agency_id, date_from, date_to, college_id, branch_id, city)
    rows = build_commission_breakdown(plans, config.gst_rate, sort_by=sort_by)
    return {
        "currency": config.currency,
        "gst_rate": str(config.gst_rate),
        "rows": rows,
        "colleges": rollup_by_college(rows, sort_by=sort_by),
        "totals": summarize_totals(rows),
    }
