"""Scheduled jobs: overdue sweep and earned-commission reconciliation.

Run with `python -m agencypay.jobs overdue` or `python -m agencypay.jobs reconcile`.
"""
import argparse
import asyncio
import logging
from datetime import date

from agencypay.db import db_shutdown, db_startup
from agencypay.enums import PlanStatus
from agencypay.models.payment_plan import PaymentPlan
from agencypay.services.installment_status import mark_overdue_installments
from agencypay.services.payments import audit_plan_commission, plan_locks, refresh_earned_commission

logger = logging.getLogger(__name__)


async def reconcile_earned_commission() -> int:
    """Rewrite the cache on plans whose stored earned commission disagrees with a fresh recompute."""
    fixed = 0
    plans = await PaymentPlan.find({"status": {"$in": [PlanStatus.ACTIVE.value, PlanStatus.COMPLETED.value]}}).to_list()
    for plan in plans:
        plan_id = str(plan.id)
        plan, snapshot = await audit_plan_commission(plan_id)
        if plan.earned_commission == snapshot.earned_commission:
            continue
        logger.warning(
            "Plan %s cached earned commission %s, recomputed %s",
            plan_id,
            plan.earned_commission,
            snapshot.earned_commission,
        )
        async with plan_locks.hold(plan_id):
            await refresh_earned_commission(plan_id)
        fixed += 1
    logger.info("Reconciled %s of %s plans", fixed, len(plans))
    return fixed


async def run(job: str) -> None:
    await db_startup()
    try:
        if job == "overdue":
            await mark_overdue_installments(date.today())
        elif job == "reconcile":
            await reconcile_earned_commission()
    finally:
        await db_shutdown()


def main() -> None:
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[0])
    parser.add_argument("job", choices=["overdue", "reconcile"])
    args = parser.parse_args()
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    asyncio.run(run(args.job))


if __name__ == "__main__":
    main()
