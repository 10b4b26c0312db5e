"""
Unit Tests for Domain Models

Tests verify the payment transition table and request parsing.
"""

import pytest
from decimal import Decimal
from billing_engine.errors import ValidationFailedError
from billing_engine.models import (
    PartnerRequest, PaymentRequest, PaymentStatus, to_minor_units,
)


class TestPaymentTransitions:
    """Test the allowed payment status transitions."""

    @pytest.mark.parametrize('target', [PaymentStatus.PAID, PaymentStatus.FAILED, PaymentStatus.CANCELLED])
    def test_pending_exits(self, make_payment, target):
        payment = make_payment(status=PaymentStatus.PENDING)
        payment.transition_to(target)

        assert payment.status == target

    def test_paid_can_be_refunded(self, make_payment):
        payment = make_payment(status=PaymentStatus.PAID)
        payment.transition_to(PaymentStatus.REFUNDED)

        assert payment.status == PaymentStatus.REFUNDED

    @pytest.mark.parametrize('terminal', [PaymentStatus.FAILED, PaymentStatus.CANCELLED, PaymentStatus.REFUNDED])
    def test_terminal_states(self, make_payment, terminal):
        payment = make_payment(status=terminal)

        for target in PaymentStatus:
            assert payment.can_transition_to(target) is False
        with pytest.raises(ValidationFailedError) as exc_info:
            payment.transition_to(PaymentStatus.PAID)
        assert exc_info.value.code == 'INVALID_PAYMENT_TRANSITION'

    def test_paid_cannot_be_cancelled(self, make_payment):
        assert make_payment(status=PaymentStatus.PAID).can_transition_to(PaymentStatus.CANCELLED) is False

    def test_mark_failed_records_reason(self, make_payment):
        payment = make_payment(status=PaymentStatus.PAID)
        payment.mark_failed('provisioning error')

        assert payment.status == PaymentStatus.FAILED
        assert payment.failure_reason == 'provisioning error'

    def test_mark_failed_rejected_from_terminal(self, make_payment):
        with pytest.raises(ValidationFailedError):
            make_payment(status=PaymentStatus.REFUNDED).mark_failed('late')


class TestSerialization:
    """Test dict conversion used by the store."""

    def test_payment_round_trip_keeps_status_and_times(self, make_payment):
        payment = make_payment(status=PaymentStatus.PAID, payment_intent_id='pi_1')
        restored = type(payment).from_dict(payment.to_dict())

        assert restored == payment

    def test_to_minor_units_rounds_half_up(self):
        assert to_minor_units(Decimal('2.5')) == 3
        assert to_minor_units(Decimal('2.4999')) == 2


class TestRequestModels:
    """Test request parsing defaults."""

    def test_payment_request_defaults(self):
        request = PaymentRequest.from_dict({
            'tier': 'L1', 'org_id': 'org-1', 'user_email': 'a@b.com', 'amount': 100, 'referral_code': '',
        })

        assert request.payment_method == 'CARD'
        assert request.referral_code is None

    def test_payment_request_missing_field(self):
        with pytest.raises(KeyError):
            PaymentRequest.from_dict({'tier': 'L1'})

    def test_partner_request_rate_is_decimal(self):
        request = PartnerRequest.from_dict({
            'company_name': 'X', 'contact_email': 'x@y.com', 'business_type': 'AFFILIATE', 'commission_rate': 12.5,
        })

        assert request.commission_rate == Decimal('12.5')
        assert request.status == 'PENDING'

    def test_partner_request_unparseable_rate(self):
        with pytest.raises(ValidationFailedError) as exc_info:
            PartnerRequest.from_dict({
                'company_name': 'X', 'contact_email': 'x@y.com', 'business_type': 'AFFILIATE', 'commission_rate': 'abc',
            })

        assert exc_info.value.code == 'INVALID_COMMISSION_RATE'
