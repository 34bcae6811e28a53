"""Load persisted plans into aggregation inputs for commission reports and dashboards."""
from datetime import date
from decimal import Decimal
from typing import Optional

from beanie import PydanticObjectId

from agencypay.enums import InstallmentStatus, PlanStatus
from agencypay.models.college import Branch, College
from agencypay.models.enrollment import Enrollment
from agencypay.models.installment import Installment
from agencypay.models.payment_plan import PaymentPlan
from agencypay.services.aggregation import PaidInstallmentFacts, PlanCommissionFacts, ProjectedInstallment
from agencypay.services.money import ZERO


def plan_facts(
    plans: list[PaymentPlan],
    colleges: dict[str, College],
    branches: dict[str, Branch],
    enrollments: Optional[dict[str, Enrollment]] = None,
    paid_totals: Optional[dict[str, Decimal]] = None,
) -> list[PlanCommissionFacts]:
    enrollments = enrollments or {}
    paid_totals = paid_totals or {}
    facts = []
    for plan in plans:
        college = colleges.get(plan.college_id)
        branch = branches.get(plan.branch_id)
        enrollment = enrollments.get(plan.enrollment_id)
        facts.append(
            PlanCommissionFacts(
                plan_id=str(plan.id),
                college_id=plan.college_id,
                college_name=college.name if college else "",
                branch_id=plan.branch_id,
                branch_name=branch.name if branch else "",
                branch_city=branch.city if branch else None,
                expected_commission=plan.expected_commission,
                earned_commission=plan.earned_commission,
                tax_inclusive=plan.tax_inclusive,
                commission_rate_percent=plan.commission_rate_percent,
                total_amount=plan.total_amount,
                total_paid=paid_totals.get(str(plan.id), ZERO),
                student_id=enrollment.student_id if enrollment else None,
                student_name=enrollment.student_name if enrollment else "",
            )
        )
    return facts


async def _institutions(agency_id: str) -> tuple[dict[str, College], dict[str, Branch]]:
    colleges = await College.find(College.agency_id == agency_id).to_list()
    branches = await Branch.find(Branch.agency_id == agency_id).to_list()
    return {str(c.id): c for c in colleges}, {str(b.id): b for b in branches}


async def _enrollments(enrollment_ids) -> dict[str, Enrollment]:
    ids = [PydanticObjectId(eid) for eid in set(enrollment_ids) if PydanticObjectId.is_valid(eid)]
    if not ids:
        return {}
    found = await Enrollment.find({"_id": {"$in": ids}}).to_list()
    return {str(e.id): e for e in found}


async def _paid_totals(plan_ids) -> dict[str, Decimal]:
    paid = await Installment.find(
        {"payment_plan_id": {"$in": list(plan_ids)}, "status": InstallmentStatus.PAID.value}
    ).to_list()
    totals: dict[str, Decimal] = {}
    for inst in paid:
        totals[inst.payment_plan_id] = totals.get(inst.payment_plan_id, ZERO) + (inst.paid_amount or ZERO)
    return totals


async def load_report_plans(
    agency_id: str,
    date_from: date,
    date_to: date,
    college_id: Optional[str] = None,
    branch_id: Optional[str] = None,
    city: Optional[str] = None,
) -> list[PlanCommissionFacts]:
    """
    Plans with at least one installment due (student date) inside the window,
    scoped to the agency and the optional institution filters. Draft plans
    have no frozen commission and are left out.
    """
    window = await Installment.find(
        Installment.agency_id == agency_id,
        Installment.student_due_date >= date_from,
        Installment.student_due_date <= date_to,
        Installment.status != InstallmentStatus.DRAFT,
    ).to_list()
    plan_ids = {i.payment_plan_id for i in window}
    if not plan_ids:
        return []

    query = {
        "_id": {"$in": [PydanticObjectId(pid) for pid in plan_ids]},
        "agency_id": agency_id,
        "status": {"$ne": PlanStatus.DRAFT.value},
    }
    if college_id:
        query["college_id"] = college_id
    if branch_id:
        query["branch_id"] = branch_id
    plans = await PaymentPlan.find(query).to_list()

    colleges, branches = await _institutions(agency_id)
    if city:
        wanted = city.strip().casefold()
        plans = [
            p for p in plans
            if p.branch_id in branches and (branches[p.branch_id].city or "").casefold() == wanted
        ]
    if not plans:
        return []
    enrollments = await _enrollments(p.enrollment_id for p in plans)
    paid_totals = await _paid_totals(str(p.id) for p in plans)
    return plan_facts(plans, colleges, branches, enrollments, paid_totals)


async def load_paid_installments(agency_id: str, since: date, until: date) -> list[PaidInstallmentFacts]:
    """
    Paid installments of every plan that took a payment between since and until.

    Those plans' earlier payments come along too, so per-plan attribution
    can be capped at the plan's expected commission.
    """
    in_window = await Installment.find(
        Installment.agency_id == agency_id,
        Installment.status == InstallmentStatus.PAID,
        Installment.paid_date >= since,
        Installment.paid_date <= until,
    ).to_list()
    plan_ids = {i.payment_plan_id for i in in_window}
    if not plan_ids:
        return []
    paid = await Installment.find(
        {
            "agency_id": agency_id,
            "payment_plan_id": {"$in": list(plan_ids)},
            "status": InstallmentStatus.PAID.value,
        },
        Installment.paid_date <= until,
    ).to_list()
    plans = await PaymentPlan.find(
        {"_id": {"$in": [PydanticObjectId(pid) for pid in plan_ids]}, "agency_id": agency_id}
    ).to_list()
    by_id = {str(p.id): p for p in plans}
    enrollments = await _enrollments(p.enrollment_id for p in plans)
    colleges, _ = await _institutions(agency_id)

    facts = []
    for inst in paid:
        plan = by_id.get(inst.payment_plan_id)
        if plan is None or inst.paid_date is None:
            continue
        enrollment = enrollments.get(plan.enrollment_id)
        college = colleges.get(plan.college_id)
        country = (enrollment.student_nationality if enrollment else None) or (college.country if college else None)
        facts.append(
            PaidInstallmentFacts(
                plan_id=inst.payment_plan_id,
                installment_number=inst.installment_number,
                paid_date=inst.paid_date,
                paid_amount=inst.paid_amount or 0,
                generates_commission=inst.generates_commission,
                plan_total_amount=plan.total_amount,
                plan_fees=plan.non_commissionable_fees,
                plan_expected_commission=plan.expected_commission,
                country=country,
            )
        )
    return facts


async def load_projection_installments(agency_id: str, start: date, end: date) -> list[ProjectedInstallment]:
    """Pending and paid installments due between start and end, labelled with student and college."""
    due = await Installment.find(
        Installment.agency_id == agency_id,
        Installment.student_due_date >= start,
        Installment.student_due_date <= end,
        {"status": {"$in": [InstallmentStatus.PENDING.value, InstallmentStatus.PAID.value]}},
    ).to_list()
    if not due:
        return []
    plan_ids = {i.payment_plan_id for i in due}
    plans = await PaymentPlan.find(
        {"_id": {"$in": [PydanticObjectId(pid) for pid in plan_ids]}, "agency_id": agency_id}
    ).to_list()
    by_id = {str(p.id): p for p in plans}
    enrollments = await _enrollments(p.enrollment_id for p in plans)
    colleges, _ = await _institutions(agency_id)

    projected = []
    for inst in due:
        plan = by_id.get(inst.payment_plan_id)
        if plan is None:
            continue
        enrollment = enrollments.get(plan.enrollment_id)
        college = colleges.get(plan.college_id)
        projected.append(
            ProjectedInstallment(
                student_name=enrollment.student_name if enrollment else "",
                college_name=college.name if college else None,
                amount=inst.amount,
                status=inst.status,
                student_due_date=inst.student_due_date,
            )
        )
    return projected
