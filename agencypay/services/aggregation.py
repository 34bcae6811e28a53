"""Commission roll-ups for reports and dashboards.

Callers pass plans that are already filtered (tenant, time window,
institution). Nothing here touches the database.
"""
from datetime import date, timedelta
from decimal import Decimal
from typing import Iterable, Iterator, Optional, Sequence

from dateutil.relativedelta import relativedelta
from pydantic import BaseModel, Field

from agencypay.enums import InstallmentStatus
from agencypay.services.commission import commissionable_base, installment_commission_share
from agencypay.services.money import ZERO, quantize
from agencypay.services.tax import calculate_tax, validate_tax_rate

SORTABLE_METRICS = ("earned", "expected", "outstanding", "plan_count")
COUNTRY_PERIODS = ("all", "year", "quarter", "month")
CASH_FLOW_GROUPINGS = ("day", "week", "month")
UNKNOWN_COUNTRY = "Unknown"


class PlanCommissionFacts(BaseModel):
    """The slice of a persisted plan the aggregation engine needs."""
    plan_id: str
    college_id: str
    college_name: str
    branch_id: str
    branch_name: str
    branch_city: Optional[str] = None
    expected_commission: Decimal
    earned_commission: Decimal
    tax_inclusive: bool = True
    commission_rate_percent: Optional[Decimal] = None
    total_amount: Decimal = ZERO
    total_paid: Decimal = ZERO
    student_id: Optional[str] = None
    student_name: str = ""


class PlanDrilldown(BaseModel):
    plan_id: str
    student_id: Optional[str] = None
    student_name: str = ""
    total_amount: Decimal
    paid_amount: Decimal
    expected_commission: Decimal
    earned_commission: Decimal


class CommissionBreakdownRow(BaseModel):
    college_id: str
    college_name: str
    branch_id: str
    branch_name: str
    branch_city: Optional[str] = None
    commission_rate_percent: Optional[Decimal] = None
    expected: Decimal = ZERO
    earned: Decimal = ZERO
    outstanding: Decimal = ZERO
    gst_amount: Decimal = ZERO
    total_with_gst: Decimal = ZERO
    total_paid: Decimal = ZERO
    plan_count: int = 0
    total_students: int = 0
    plans: list[PlanDrilldown] = Field(default_factory=list)


class CollegeCommissionRow(BaseModel):
    college_id: str
    college_name: str
    expected: Decimal = ZERO
    earned: Decimal = ZERO
    outstanding: Decimal = ZERO
    gst_amount: Decimal = ZERO
    total_with_gst: Decimal = ZERO
    total_paid: Decimal = ZERO
    plan_count: int = 0
    branch_count: int = 0


class CommissionTotals(BaseModel):
    expected: Decimal = ZERO
    earned: Decimal = ZERO
    outstanding: Decimal = ZERO
    gst_amount: Decimal = ZERO
    total_with_gst: Decimal = ZERO
    total_paid: Decimal = ZERO
    plan_count: int = 0


class PaidInstallmentFacts(BaseModel):
    """A paid installment together with the plan figures needed to attribute its commission."""
    plan_id: str
    installment_number: int = 0
    paid_date: date
    paid_amount: Decimal
    generates_commission: bool
    plan_total_amount: Decimal
    plan_fees: Decimal = ZERO
    plan_expected_commission: Decimal
    country: Optional[str] = None


class MonthlyCommission(BaseModel):
    month: str  # "YYYY-MM"
    commission: Decimal
    previous_year_commission: Optional[Decimal] = None
    year_over_year_change: Optional[Decimal] = None  # percent, one decimal
    is_peak: bool = False
    is_quiet: bool = False


class CountryCommission(BaseModel):
    country: str
    commission: Decimal
    percentage_share: Decimal  # 0-100, one decimal
    trend: str  # up / down / neutral


class ProjectedInstallment(BaseModel):
    student_name: str = ""
    college_name: Optional[str] = None
    amount: Decimal
    status: InstallmentStatus
    student_due_date: date


class CashFlowBucket(BaseModel):
    date_bucket: date
    paid_amount: Decimal = ZERO
    expected_amount: Decimal = ZERO
    installment_count: int = 0
    installments: list[ProjectedInstallment] = Field(default_factory=list)


def _ranking_key(metric: str):
    if metric not in SORTABLE_METRICS:
        raise ValueError(f"Unsupported sort metric: {metric}. Use one of {', '.join(SORTABLE_METRICS)}")

    def key(row):
        branch_name = getattr(row, "branch_name", "")
        branch_id = getattr(row, "branch_id", "")
        return (
            -getattr(row, metric),
            row.college_name.casefold(),
            branch_name.casefold(),
            row.college_id,
            branch_id,
        )

    return key


def rank_rows(rows: Iterable, sort_by: str = "earned") -> list:
    """Descending by metric, then college name, then branch name (both ascending)."""
    return sorted(rows, key=_ranking_key(sort_by))


def build_commission_breakdown(
    plans: Iterable[PlanCommissionFacts],
    gst_rate: Decimal,
    sort_by: str = "earned",
) -> list[CommissionBreakdownRow]:
    """
    One row per (college, branch), each with a drill-down list of its plans.

    GST is worked out per plan, because each plan carries its own inclusion
    convention, and only then summed.
    """
    rate = validate_tax_rate(gst_rate)
    groups: dict[tuple[str, str], CommissionBreakdownRow] = {}
    students: dict[tuple[str, str], set[str]] = {}
    for plan in plans:
        key = (plan.college_id, plan.branch_id)
        row = groups.get(key)
        if row is None:
            row = CommissionBreakdownRow(
                college_id=plan.college_id,
                college_name=plan.college_name,
                branch_id=plan.branch_id,
                branch_name=plan.branch_name,
                branch_city=plan.branch_city,
                commission_rate_percent=plan.commission_rate_percent,
            )
            groups[key] = row
            students[key] = set()
        earned = quantize(plan.earned_commission)
        row.expected += quantize(plan.expected_commission)
        row.earned += earned
        row.gst_amount += calculate_tax(earned, rate, plan.tax_inclusive)
        row.total_paid += quantize(plan.total_paid)
        row.plan_count += 1
        students[key].add(plan.student_id or plan.plan_id)
        row.plans.append(
            PlanDrilldown(
                plan_id=plan.plan_id,
                student_id=plan.student_id,
                student_name=plan.student_name,
                total_amount=quantize(plan.total_amount),
                paid_amount=quantize(plan.total_paid),
                expected_commission=quantize(plan.expected_commission),
                earned_commission=earned,
            )
        )

    for key, row in groups.items():
        row.outstanding = row.expected - row.earned
        row.total_with_gst = row.earned + row.gst_amount
        row.total_students = len(students[key])
        row.plans.sort(key=lambda p: (p.student_name.casefold(), p.plan_id))
    return rank_rows(groups.values(), sort_by)


def rollup_by_college(
    rows: Sequence[CommissionBreakdownRow], sort_by: str = "earned"
) -> list[CollegeCommissionRow]:
    colleges: dict[str, CollegeCommissionRow] = {}
    for row in rows:
        college = colleges.get(row.college_id)
        if college is None:
            college = CollegeCommissionRow(college_id=row.college_id, college_name=row.college_name)
            colleges[row.college_id] = college
        college.expected += row.expected
        college.earned += row.earned
        college.outstanding += row.outstanding
        college.gst_amount += row.gst_amount
        college.total_with_gst += row.total_with_gst
        college.total_paid += row.total_paid
        college.plan_count += row.plan_count
        college.branch_count += 1
    return rank_rows(colleges.values(), sort_by)


def summarize_totals(rows: Iterable) -> CommissionTotals:
    totals = CommissionTotals()
    for row in rows:
        totals.expected += row.expected
        totals.earned += row.earned
        totals.outstanding += row.outstanding
        totals.gst_amount += row.gst_amount
        totals.total_with_gst += row.total_with_gst
        totals.total_paid += row.total_paid
        totals.plan_count += row.plan_count
    return totals


def attribute_payments(
    payments: Iterable[PaidInstallmentFacts],
) -> Iterator[tuple[PaidInstallmentFacts, Decimal]]:
    """
    Each commission-generating payment with its slice of the plan's expected commission.

    Payments are taken in the order they were made and a plan's running
    total never exceeds its expected commission, so fee-carrying or
    overpaid plans stop attributing once the commission is fully earned.
    Shares are unrounded.
    """
    ordered = sorted(
        (p for p in payments if p.generates_commission),
        key=lambda p: (p.paid_date, p.plan_id, p.installment_number),
    )
    attributed: dict[str, Decimal] = {}
    for p in ordered:
        base = commissionable_base(p.plan_total_amount, p.plan_fees)
        share = installment_commission_share(p.paid_amount, base, p.plan_expected_commission)
        so_far = attributed.get(p.plan_id, ZERO)
        room = max(p.plan_expected_commission - so_far, ZERO)
        share = min(max(share, ZERO), room)
        attributed[p.plan_id] = so_far + share
        yield p, share


def _year_over_year(current: Decimal, previous: Optional[Decimal]) -> Optional[Decimal]:
    if previous is None:
        return None
    if previous > 0:
        return ((current - previous) / previous * 100).quantize(Decimal("0.1"))
    return Decimal("100.0") if current > 0 else Decimal("0.0")


def monthly_earned_commission(
    payments: Iterable[PaidInstallmentFacts],
    today: date,
    months: int = 12,
    highlight: int = 3,
) -> list[MonthlyCommission]:
    """
    Earned commission bucketed by the month it was paid, oldest month first.

    Covers the `months` months ending with today's month. A month with data
    from a year earlier also gets its previous-year figure and percentage
    change; the `highlight` highest and lowest months are flagged. Pass a
    plan's earlier payments too, even outside the window, so the per-plan
    cap in attribute_payments sees them.
    """
    buckets: dict[str, Decimal] = {}
    for p, share in attribute_payments(payments):
        key = p.paid_date.strftime("%Y-%m")
        buckets[key] = buckets.get(key, ZERO) + share

    current_month = today.replace(day=1)
    result: list[MonthlyCommission] = []
    for i in range(months - 1, -1, -1):
        month = current_month - relativedelta(months=i)
        key = month.strftime("%Y-%m")
        previous_key = (month - relativedelta(years=1)).strftime("%Y-%m")
        commission = quantize(buckets.get(key, ZERO))
        previous = buckets.get(previous_key)
        previous = quantize(previous) if previous is not None else None
        result.append(
            MonthlyCommission(
                month=key,
                commission=commission,
                previous_year_commission=previous,
                year_over_year_change=_year_over_year(commission, previous),
            )
        )

    by_commission = sorted(result, key=lambda m: (-m.commission, m.month))
    peaks = {m.month for m in by_commission[:highlight]}
    quiet = {m.month for m in by_commission[-highlight:]} if highlight else set()
    for m in result:
        m.is_peak = m.month in peaks
        m.is_quiet = m.month in quiet
    return result


DateWindow = tuple[Optional[date], date]


def commission_periods(period: str, today: date) -> tuple[DateWindow, DateWindow]:
    """
    (current, previous) inclusive windows for the country breakdown.

    "all" counts every payment as current and compares against the month
    before last.
    """
    if period not in COUNTRY_PERIODS:
        raise ValueError(f"Unsupported period: {period}. Use one of {', '.join(COUNTRY_PERIODS)}")
    if period == "all":
        return (None, today), (today - relativedelta(months=2), today - relativedelta(months=1))
    if period == "year":
        start = date(today.year, 1, 1)
        step = relativedelta(years=1)
    elif period == "quarter":
        start = date(today.year, 3 * ((today.month - 1) // 3) + 1, 1)
        step = relativedelta(months=3)
    else:
        start = today.replace(day=1)
        step = relativedelta(months=1)
    current = (start, start + step - timedelta(days=1))
    previous = (start - step, start - timedelta(days=1))
    return current, previous


def _in_window(day: date, window: DateWindow) -> bool:
    start, end = window
    return (start is None or day >= start) and day <= end


def _trend(current: Decimal, previous: Decimal) -> str:
    if current > previous:
        return "up"
    if current < previous:
        return "down"
    return "neutral"


def commission_by_country(
    payments: Iterable[PaidInstallmentFacts],
    current: DateWindow,
    previous: DateWindow,
    limit: int = 5,
) -> list[CountryCommission]:
    """Top countries by earned commission in the current window, with share and trend."""
    now: dict[str, Decimal] = {}
    before: dict[str, Decimal] = {}
    for p, share in attribute_payments(payments):
        country = p.country or UNKNOWN_COUNTRY
        if _in_window(p.paid_date, current):
            now[country] = now.get(country, ZERO) + share
        if _in_window(p.paid_date, previous):
            before[country] = before.get(country, ZERO) + share

    total = sum(now.values(), ZERO)
    countries = sorted(set(now) | set(before), key=lambda c: (-now.get(c, ZERO), c.casefold()))
    result = []
    for country in countries[:limit]:
        commission = now.get(country, ZERO)
        share = (commission / total * 100).quantize(Decimal("0.1")) if total > 0 else Decimal("0.0")
        result.append(
            CountryCommission(
                country=country,
                commission=quantize(commission),
                percentage_share=share,
                trend=_trend(quantize(commission), quantize(before.get(country, ZERO))),
            )
        )
    return result


def _bucket_start(day: date, group_by: str) -> date:
    if group_by == "day":
        return day
    if group_by == "week":
        return day - timedelta(days=day.weekday())
    return day.replace(day=1)


def cash_flow_projection(
    installments: Iterable[ProjectedInstallment], group_by: str = "week"
) -> list[CashFlowBucket]:
    """
    Installment money by due-date bucket, oldest first.

    Paid installments count toward paid_amount and pending ones toward
    expected_amount. Weeks start on Monday.
    """
    if group_by not in CASH_FLOW_GROUPINGS:
        raise ValueError(f"Unsupported grouping: {group_by}. Use one of {', '.join(CASH_FLOW_GROUPINGS)}")
    buckets: dict[date, CashFlowBucket] = {}
    for inst in sorted(installments, key=lambda i: i.student_due_date):
        start = _bucket_start(inst.student_due_date, group_by)
        bucket = buckets.get(start)
        if bucket is None:
            bucket = buckets[start] = CashFlowBucket(date_bucket=start)
        amount = quantize(inst.amount)
        if inst.status == InstallmentStatus.PAID:
            bucket.paid_amount += amount
        elif inst.status == InstallmentStatus.PENDING:
            bucket.expected_amount += amount
        bucket.installment_count += 1
        bucket.installments.append(inst)
    return [buckets[k] for k in sorted(buckets)]
