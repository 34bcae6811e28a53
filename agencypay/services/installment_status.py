"""Nightly status sweep: pending installments past their student due date become overdue."""
import logging
from collections import Counter
from datetime import date, datetime

from agencypay.enums import InstallmentStatus
from agencypay.models.installment import Installment

logger = logging.getLogger(__name__)


def resolve_status(installment, today: date) -> InstallmentStatus:
    if (
        installment.status == InstallmentStatus.PENDING
        and installment.student_due_date is not None
        and installment.student_due_date < today
    ):
        return InstallmentStatus.OVERDUE
    return installment.status


async def mark_overdue_installments(today: date) -> dict[str, int]:
    """Returns pending->overdue transition counts per agency."""
    candidates = await Installment.find(
        Installment.status == InstallmentStatus.PENDING,
        Installment.student_due_date < today,
    ).to_list()
    transitions: Counter = Counter()
    for inst in candidates:
        new_status = resolve_status(inst, today)
        if new_status == inst.status:
            continue
        inst.status = new_status
        inst.updated_at = datetime.utcnow()
        await inst.save()
        transitions[inst.agency_id] += 1
    logger.info("Marked %s installments overdue across %s agencies", sum(transitions.values()), len(transitions))
    return dict(transitions)
