"""
Unit Tests for Refund Calculator

Tests verify eligibility rules and linear proration over the refund window.
"""

import pytest
from datetime import timedelta
from billing_engine.calculators.refund import RefundCalculator
from billing_engine.models import PaymentStatus


class TestRefundEligibility:
    """Test which payments may be refunded."""

    @pytest.fixture
    def calculator(self, clock):
        return RefundCalculator(window_days=30, clock=clock)

    def test_only_paid_payments_are_eligible(self, calculator, make_payment):
        """A PENDING payment is not refundable."""
        result = calculator.calculate_refund(make_payment(status=PaymentStatus.PENDING))

        assert result.eligible_for_refund is False
        assert result.refund_amount == 0
        assert result.reason == 'Payment is not in paid status'

    def test_refunded_payment_is_not_eligible(self, calculator, make_payment):
        """A second refund is rejected by status."""
        result = calculator.calculate_refund(make_payment(status=PaymentStatus.REFUNDED))

        assert result.eligible_for_refund is False

    def test_outside_window(self, calculator, clock, make_payment):
        """31 elapsed days is outside the 30-day window."""
        payment = make_payment(created_at=clock() - timedelta(days=31))
        result = calculator.calculate_refund(payment)

        assert result.eligible_for_refund is False
        assert result.reason == 'Payment is outside the 30-day refund window'


class TestRefundProration:
    """Test the prorated refund amount."""

    @pytest.fixture
    def calculator(self, clock):
        return RefundCalculator(window_days=30, clock=clock)

    def test_full_refund_on_day_zero(self, calculator, make_payment):
        """Nothing elapsed: refund the full total."""
        result = calculator.calculate_refund(make_payment(total_amount=3000))

        assert result.eligible_for_refund is True
        assert result.refund_amount == 3000

    def test_ten_days_elapsed(self, calculator, clock, make_payment):
        """3000 × 20 / 30 = 2000."""
        payment = make_payment(total_amount=3000, created_at=clock() - timedelta(days=10))

        assert calculator.calculate_refund(payment).refund_amount == 2000

    def test_partial_days_are_floored(self, calculator, clock, make_payment):
        """10 days and 23 hours counts as 10 days."""
        payment = make_payment(total_amount=3000, created_at=clock() - timedelta(days=10, hours=23))
        result = calculator.calculate_refund(payment)

        assert result.elapsed_days == 10
        assert result.refund_amount == 2000

    def test_last_day_of_window(self, calculator, clock, make_payment):
        """Day 30 is still eligible with a zero remaining share."""
        payment = make_payment(total_amount=3000, created_at=clock() - timedelta(days=30))
        result = calculator.calculate_refund(payment)

        assert result.eligible_for_refund is True
        assert result.refund_amount == 0

    def test_amount_never_increases_with_time(self, calculator, clock, make_payment):
        """Refund amount is non-increasing in elapsed days."""
        amounts = [
            calculator.calculate_refund(
                make_payment(total_amount=9999, created_at=clock() - timedelta(days=d))
            ).refund_amount
            for d in range(0, 31)
        ]

        assert amounts == sorted(amounts, reverse=True)

    def test_future_creation_counts_as_day_zero(self, calculator, clock, make_payment):
        """Clock skew never produces a refund above the total."""
        payment = make_payment(total_amount=3000, created_at=clock() + timedelta(days=2))
        result = calculator.calculate_refund(payment)

        assert result.elapsed_days == 0
        assert result.refund_amount == 3000
