"""
Refund Calculator

Linear proration of a paid amount over a fixed refund window.
"""

from datetime import datetime
from decimal import Decimal
from typing import Callable

from ..models import Payment, PaymentStatus, RefundCalculation, to_minor_units, utcnow


class RefundCalculator:
    """Computes refund eligibility and the prorated refund amount."""

    def __init__(self, window_days: int = 30, clock: Callable[[], datetime] = utcnow):
        self.window_days = window_days
        self.clock = clock

    def calculate_refund(self, payment: Payment) -> RefundCalculation:
        """
        Eligibility:
        - Payment must be PAID
        - No more than window_days whole days since creation (floored)

        Amount = round(total_amount × (window − elapsed_days) / window)
        """
        if payment.status != PaymentStatus.PAID:
            return RefundCalculation(
                eligible_for_refund=False,
                refund_amount=0,
                reason='Payment is not in paid status',
            )

        elapsed_days = self.elapsed_days(payment)
        if elapsed_days > self.window_days:
            return RefundCalculation(
                eligible_for_refund=False,
                refund_amount=0,
                reason=f"Payment is outside the {self.window_days}-day refund window",
                elapsed_days=elapsed_days,
            )

        remaining_days = self.window_days - elapsed_days
        refund = Decimal(payment.total_amount) * Decimal(remaining_days) / Decimal(self.window_days)

        return RefundCalculation(
            eligible_for_refund=True,
            refund_amount=to_minor_units(refund),
            elapsed_days=elapsed_days,
        )

    def elapsed_days(self, payment: Payment) -> int:
        """Whole days since creation; a creation time in the future counts as 0."""
        return max(0, (self.clock() - payment.created_at).days)
