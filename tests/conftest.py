import os
from datetime import date
from decimal import Decimal
from types import SimpleNamespace

import pytest

# Settings() refuses the placeholder secret unless DEBUG is on; set env before any agencypay import.
os.environ.setdefault("DEBUG", "true")
os.environ.setdefault("JWT_SECRET_KEY", "test-secret")

from agencypay.enums import InstallmentStatus  # noqa: E402


def make_installment(
    number=1,
    amount="1000.00",
    status=InstallmentStatus.PENDING,
    paid_amount=None,
    paid_date=None,
    generates_commission=True,
    student_due_date=None,
    institution_due_date=None,
    is_initial_payment=False,
):
    """Stand-in for an Installment document; the engine only reads attributes."""
    return SimpleNamespace(
        installment_number=number,
        amount=Decimal(amount),
        status=status,
        paid_amount=Decimal(paid_amount) if paid_amount is not None else None,
        paid_date=paid_date,
        generates_commission=generates_commission,
        student_due_date=student_due_date,
        institution_due_date=institution_due_date,
        is_initial_payment=is_initial_payment,
        payment_notes=None,
        updated_at=None,
    )


def paid(number, amount, paid_amount=None, generates_commission=True):
    return make_installment(
        number=number,
        amount=amount,
        status=InstallmentStatus.PAID,
        paid_amount=paid_amount if paid_amount is not None else amount,
        paid_date=date(2025, 3, 1),
        generates_commission=generates_commission,
    )


@pytest.fixture
def installment_factory():
    return make_installment
