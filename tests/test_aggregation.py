from datetime import date
from decimal import Decimal

import pytest

from agencypay.enums import InstallmentStatus
from agencypay.errors import InvalidRateError
from agencypay.services.aggregation import (
    PaidInstallmentFacts,
    PlanCommissionFacts,
    ProjectedInstallment,
    attribute_payments,
    build_commission_breakdown,
    cash_flow_projection,
    commission_by_country,
    commission_periods,
    monthly_earned_commission,
    rank_rows,
    rollup_by_college,
    summarize_totals,
)
from agencypay.services.money import money_sum

GST = Decimal("0.10")


def plan(plan_id, college, branch, expected, earned, inclusive=True, college_id=None, branch_id=None):
    return PlanCommissionFacts(
        plan_id=plan_id,
        college_id=college_id or college.lower().replace(" ", "-"),
        college_name=college,
        branch_id=branch_id or f"{college}-{branch}".lower().replace(" ", "-"),
        branch_name=branch,
        expected_commission=Decimal(expected),
        earned_commission=Decimal(earned),
        tax_inclusive=inclusive,
    )


@pytest.fixture
def plans():
    return [
        plan("p1", "Sydney Institute", "CBD", "1350.00", "675.00"),
        plan("p2", "Sydney Institute", "CBD", "900.00", "300.00", inclusive=False),
        plan("p3", "Sydney Institute", "Parramatta", "500.00", "500.00"),
        plan("p4", "Brisbane College", "Main", "2000.00", "1100.00"),
        plan("p5", "Adelaide Academy", "North", "800.00", "500.00", inclusive=False),
    ]


class TestBreakdown:
    def test_one_row_per_college_branch(self, plans):
        rows = build_commission_breakdown(plans, GST)
        assert len(rows) == 4
        cbd = next(r for r in rows if r.branch_name == "CBD")
        assert cbd.plan_count == 2
        assert cbd.expected == Decimal("2250.00")
        assert cbd.earned == Decimal("975.00")
        assert cbd.outstanding == Decimal("1275.00")

    def test_tax_is_per_plan_then_summed(self, plans):
        rows = build_commission_breakdown(plans, GST)
        cbd = next(r for r in rows if r.branch_name == "CBD")
        # inclusive 675 -> 61.36, exclusive 300 -> 30.00
        assert cbd.gst_amount == Decimal("91.36")
        assert cbd.total_with_gst == Decimal("1066.36")

    def test_earned_sums_to_plan_set(self, plans):
        rows = build_commission_breakdown(plans, GST)
        assert money_sum(r.earned for r in rows) == money_sum(p.earned_commission for p in plans)
        assert sum(r.plan_count for r in rows) == len(plans)

    def test_sorted_by_earned_descending(self, plans):
        rows = build_commission_breakdown(plans, GST)
        assert [r.earned for r in rows] == sorted((r.earned for r in rows), reverse=True)
        assert rows[0].college_name == "Brisbane College"

    def test_ties_break_by_college_then_branch_name(self):
        rows = build_commission_breakdown(
            [
                plan("a", "Zeta University", "Main", "800", "500.00"),
                plan("b", "Alpha College", "West", "700", "500.00"),
                plan("c", "Alpha College", "East", "600", "500.00"),
            ],
            GST,
        )
        assert [(r.college_name, r.branch_name) for r in rows] == [
            ("Alpha College", "East"),
            ("Alpha College", "West"),
            ("Zeta University", "Main"),
        ]

    def test_order_is_stable_across_input_order(self, plans):
        forward = build_commission_breakdown(plans, GST)
        backward = build_commission_breakdown(list(reversed(plans)), GST)
        assert [(r.college_id, r.branch_id) for r in forward] == [(r.college_id, r.branch_id) for r in backward]

    def test_sort_by_outstanding(self, plans):
        rows = build_commission_breakdown(plans, GST, sort_by="outstanding")
        assert rows[0].branch_name == "CBD"

    def test_unknown_sort_metric(self, plans):
        with pytest.raises(ValueError):
            build_commission_breakdown(plans, GST, sort_by="college_id")

    def test_negative_tax_rate_rejected(self, plans):
        with pytest.raises(InvalidRateError):
            build_commission_breakdown(plans, Decimal("-0.1"))

    def test_zero_tax_rate(self, plans):
        rows = build_commission_breakdown(plans, Decimal("0"))
        assert all(r.gst_amount == 0 and r.total_with_gst == r.earned for r in rows)

    def test_empty_input(self):
        assert build_commission_breakdown([], GST) == []


def test_college_rollup_and_totals(plans):
    rows = build_commission_breakdown(plans, GST)
    colleges = rollup_by_college(rows)
    sydney = next(c for c in colleges if c.college_name == "Sydney Institute")
    assert sydney.branch_count == 2
    assert sydney.plan_count == 3
    assert sydney.earned == Decimal("1475.00")
    assert colleges[0].college_name == "Sydney Institute"

    totals = summarize_totals(rows)
    assert totals.earned == Decimal("3075.00")
    assert totals.expected == Decimal("5550.00")
    assert totals.outstanding == totals.expected - totals.earned
    assert totals.plan_count == 5
    assert summarize_totals(colleges).gst_amount == totals.gst_amount


def test_rank_rows_on_plan_count(plans):
    rows = rank_rows(build_commission_breakdown(plans, GST), "plan_count")
    assert rows[0].plan_count == 2


class TestMonthlyEarned:
    def payment(self, paid_on, amount, generates=True, plan_id="p1"):
        return PaidInstallmentFacts(
            plan_id=plan_id,
            paid_date=paid_on,
            paid_amount=Decimal(amount),
            generates_commission=generates,
            plan_total_amount=Decimal("10000"),
            plan_fees=Decimal("1000"),
            plan_expected_commission=Decimal("1350"),
        )

    def test_buckets_by_paid_month(self):
        months = monthly_earned_commission(
            [
                self.payment(date(2025, 3, 2), "4500"),
                self.payment(date(2025, 3, 20), "900"),
                self.payment(date(2025, 5, 1), "1000", generates=False),
            ],
            today=date(2025, 6, 15),
        )
        assert len(months) == 12
        assert months[-1].month == "2025-06"
        assert months[0].month == "2024-07"
        march = next(m for m in months if m.month == "2025-03")
        assert march.commission == Decimal("810.00")
        may = next(m for m in months if m.month == "2025-05")
        assert may.commission == 0

    def test_year_over_year_change(self):
        months = monthly_earned_commission(
            [self.payment(date(2024, 3, 1), "900"), self.payment(date(2025, 3, 1), "1800")],
            today=date(2025, 6, 15),
        )
        march = next(m for m in months if m.month == "2025-03")
        assert march.previous_year_commission == Decimal("135.00")
        assert march.year_over_year_change == Decimal("100.0")
        june = months[-1]
        assert june.previous_year_commission is None
        assert june.year_over_year_change is None

    def test_peak_months_flagged(self):
        months = monthly_earned_commission(
            [
                self.payment(date(2025, 1, 5), "900"),
                self.payment(date(2025, 2, 5), "1800"),
                self.payment(date(2025, 3, 5), "2700"),
                self.payment(date(2025, 4, 5), "450"),
            ],
            today=date(2025, 6, 1),
        )
        assert {m.month for m in months if m.is_peak} == {"2025-01", "2025-02", "2025-03"}
        assert sum(1 for m in months if m.is_quiet) == 3

    def test_plan_with_fees_never_exceeds_expected(self):
        # 10000 total, 1000 fees, all four installments commission-generating
        payments = [self.payment(date(2025, m, 10), "2500") for m in (2, 3, 4, 5)]
        months = monthly_earned_commission(payments, today=date(2025, 6, 15))
        assert money_sum(m.commission for m in months) == Decimal("1350.00")
        may = next(m for m in months if m.month == "2025-05")
        assert may.commission == Decimal("225.00")

    def test_cap_is_per_plan(self):
        payments = [self.payment(date(2025, 3, 1), "10000", plan_id=pid) for pid in ("p1", "p2")]
        months = monthly_earned_commission(payments, today=date(2025, 6, 15))
        march = next(m for m in months if m.month == "2025-03")
        assert march.commission == Decimal("2700.00")

    def test_earlier_payments_count_toward_cap(self):
        payments = [
            self.payment(date(2023, 1, 10), "9000"),
            self.payment(date(2025, 3, 10), "1000"),
        ]
        months = monthly_earned_commission(payments, today=date(2025, 6, 15))
        assert all(m.commission == 0 for m in months)


def test_attribution_follows_payment_order():
    def pay(day, amount):
        return PaidInstallmentFacts(
            plan_id="p1",
            paid_date=day,
            paid_amount=Decimal(amount),
            generates_commission=True,
            plan_total_amount=Decimal("1000"),
            plan_expected_commission=Decimal("100"),
        )

    shares = [share for _, share in attribute_payments([pay(date(2025, 2, 1), "800"), pay(date(2025, 1, 1), "800")])]
    assert shares == [Decimal("80"), Decimal("20")]


class TestBreakdownDrilldown:
    def plans(self):
        base = dict(
            college_id="syd",
            college_name="Sydney Institute",
            branch_id="syd-cbd",
            branch_name="CBD",
            commission_rate_percent=Decimal("15"),
        )
        return [
            PlanCommissionFacts(
                plan_id="p1", student_id="s1", student_name="Zoe", total_amount=Decimal("10000"),
                total_paid=Decimal("4500"), expected_commission=Decimal("1350"), earned_commission=Decimal("675"),
                **base,
            ),
            PlanCommissionFacts(
                plan_id="p2", student_id="s1", student_name="Zoe", total_amount=Decimal("2000"),
                total_paid=Decimal("0"), expected_commission=Decimal("300"), earned_commission=Decimal("0"),
                **base,
            ),
            PlanCommissionFacts(
                plan_id="p3", student_id="s2", student_name="adam", total_amount=Decimal("5000"),
                total_paid=Decimal("5000"), expected_commission=Decimal("750"), earned_commission=Decimal("750"),
                **base,
            ),
        ]

    def test_row_carries_paid_students_and_rate(self):
        [row] = build_commission_breakdown(self.plans(), GST)
        assert row.total_paid == Decimal("9500.00")
        assert row.total_students == 2
        assert row.plan_count == 3
        assert row.commission_rate_percent == Decimal("15")

    def test_plans_listed_by_student_name(self):
        [row] = build_commission_breakdown(self.plans(), GST)
        assert [p.plan_id for p in row.plans] == ["p3", "p1", "p2"]
        assert row.plans[1].paid_amount == Decimal("4500.00")
        assert row.plans[1].earned_commission == Decimal("675.00")

    def test_total_paid_rolls_up(self):
        rows = build_commission_breakdown(self.plans(), GST)
        assert rollup_by_college(rows)[0].total_paid == Decimal("9500.00")
        assert summarize_totals(rows).total_paid == Decimal("9500.00")


class TestCommissionPeriods:
    today = date(2025, 8, 20)

    def test_month(self):
        assert commission_periods("month", self.today) == (
            (date(2025, 8, 1), date(2025, 8, 31)),
            (date(2025, 7, 1), date(2025, 7, 31)),
        )

    def test_quarter(self):
        assert commission_periods("quarter", self.today) == (
            (date(2025, 7, 1), date(2025, 9, 30)),
            (date(2025, 4, 1), date(2025, 6, 30)),
        )

    def test_year(self):
        assert commission_periods("year", self.today) == (
            (date(2025, 1, 1), date(2025, 12, 31)),
            (date(2024, 1, 1), date(2024, 12, 31)),
        )

    def test_all_has_open_start(self):
        current, previous = commission_periods("all", self.today)
        assert current == (None, self.today)
        assert previous == (date(2025, 6, 20), date(2025, 7, 20))

    def test_unknown_period(self):
        with pytest.raises(ValueError):
            commission_periods("week", self.today)


class TestCommissionByCountry:
    current = (date(2025, 8, 1), date(2025, 8, 31))
    previous = (date(2025, 7, 1), date(2025, 7, 31))

    def payment(self, plan_id, paid_on, amount, country):
        return PaidInstallmentFacts(
            plan_id=plan_id,
            paid_date=paid_on,
            paid_amount=Decimal(amount),
            generates_commission=True,
            plan_total_amount=Decimal("10000"),
            plan_expected_commission=Decimal("1000"),
            country=country,
        )

    def test_share_and_trend(self):
        rows = commission_by_country(
            [
                self.payment("p1", date(2025, 8, 5), "3000", "India"),
                self.payment("p2", date(2025, 8, 6), "1000", "Brazil"),
                self.payment("p3", date(2025, 7, 6), "2000", "Brazil"),
                self.payment("p4", date(2025, 7, 6), "1000", "India"),
            ],
            self.current,
            self.previous,
        )
        assert [r.country for r in rows] == ["India", "Brazil"]
        assert rows[0].commission == Decimal("300.00")
        assert rows[0].percentage_share == Decimal("75.0")
        assert rows[0].trend == "up"
        assert rows[1].percentage_share == Decimal("25.0")
        assert rows[1].trend == "down"

    def test_missing_country_is_unknown(self):
        rows = commission_by_country(
            [self.payment("p1", date(2025, 8, 5), "1000", None)], self.current, self.previous
        )
        assert rows[0].country == "Unknown"
        assert rows[0].percentage_share == Decimal("100.0")

    def test_limit(self):
        payments = [
            self.payment(f"p{i}", date(2025, 8, 5), str(1000 + i), f"Country {i}") for i in range(7)
        ]
        rows = commission_by_country(payments, self.current, self.previous, limit=5)
        assert len(rows) == 5
        assert rows[0].country == "Country 6"

    def test_no_current_commission(self):
        rows = commission_by_country(
            [self.payment("p1", date(2025, 7, 5), "1000", "Nepal")], self.current, self.previous
        )
        assert rows[0].commission == 0
        assert rows[0].percentage_share == Decimal("0.0")
        assert rows[0].trend == "down"


class TestCashFlowProjection:
    def due(self, day, amount, status=InstallmentStatus.PENDING):
        return ProjectedInstallment(
            student_name="Zoe", amount=Decimal(amount), status=status, student_due_date=day
        )

    def installments(self):
        return [
            self.due(date(2025, 9, 3), "500"),  # Wednesday
            self.due(date(2025, 9, 1), "250", InstallmentStatus.PAID),  # Monday
            self.due(date(2025, 9, 8), "100"),
            self.due(date(2025, 10, 2), "400"),
        ]

    def test_weeks_start_on_monday(self):
        buckets = cash_flow_projection(self.installments(), "week")
        assert [b.date_bucket for b in buckets] == [date(2025, 9, 1), date(2025, 9, 8), date(2025, 9, 29)]
        first = buckets[0]
        assert first.paid_amount == Decimal("250.00")
        assert first.expected_amount == Decimal("500.00")
        assert first.installment_count == 2

    def test_month_grouping(self):
        buckets = cash_flow_projection(self.installments(), "month")
        assert [b.date_bucket for b in buckets] == [date(2025, 9, 1), date(2025, 10, 1)]
        assert buckets[0].expected_amount == Decimal("600.00")

    def test_day_grouping(self):
        assert len(cash_flow_projection(self.installments(), "day")) == 4

    def test_money_is_conserved(self):
        buckets = cash_flow_projection(self.installments(), "week")
        assert money_sum(b.paid_amount + b.expected_amount for b in buckets) == Decimal("1250.00")

    def test_unknown_grouping(self):
        with pytest.raises(ValueError):
            cash_flow_projection([], "year")
