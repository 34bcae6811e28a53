"""Engine exceptions. Everything else in the engine is total and clamps instead of raising."""
from decimal import Decimal
from typing import Optional


class CommissionEngineError(Exception):
    """Base class for calculation and workflow errors surfaced to callers."""


class ScheduleInvariantError(CommissionEngineError, ValueError):
    """An installment schedule cannot be built or does not reconcile to its plan total."""

    def __init__(
        self,
        message: str,
        expected: Optional[Decimal] = None,
        actual: Optional[Decimal] = None,
    ):
        super().__init__(message)
        self.expected = expected
        self.actual = actual


class InvalidRateError(CommissionEngineError, ValueError):
    """A commission or tax rate is outside its valid domain. Never clamped."""

    def __init__(self, name: str, rate):
        super().__init__(f"{name} out of range: {rate}")
        self.name = name
        self.rate = rate


class PaymentValidationError(CommissionEngineError, ValueError):
    """A payment cannot be recorded against an installment."""

    def __init__(self, message: str, field: Optional[str] = None):
        super().__init__(message)
        self.field = field


class ConcurrentUpdateError(CommissionEngineError):
    """The plan kept changing underneath a commission write-back."""
