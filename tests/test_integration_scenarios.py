"""
Integration Test Scenarios for the Billing Engine

These tests drive the dict-in/dict-out BillingEngine facade end to end,
the same way the Flask app and the Lambda handler do.

Run with: python -m pytest tests/test_integration_scenarios.py -v

IMPORTANT: This file has a companion business summary document:
    docs/test_scenarios_business_summary.md

When adding or modifying tests, please update the business summary document
to keep them in sync. The summary provides plain-English explanations of
each test scenario for business stakeholders.
"""

from datetime import timedelta

import pytest

from billing_engine import NotFoundError, ProcessingFailedError, ValidationFailedError
from billing_engine.models import UserRole


class TestNewLawEnforcementSubscription:
    """First LE payment for an organization without a subscription."""

    def test_le_payment_creates_subscription_and_elevates_role(self, engine, users):
        """10000 at LE with no subscription → NEW LE subscription and role update."""
        payment = engine.create_payment({
            "tier": "LE",
            "org_id": "agency-1",
            "user_email": "analyst@agency.gov",
            "amount": 10000,
            "payment_method": "BANK_ACCOUNT"
        })

        assert payment["status"] == "PENDING"
        assert payment["tax_amount"] == 1000
        assert payment["total_amount"] == 11000

        result = engine.process_payment(payment["payment_id"], "pi_le_001")

        assert result["success"] is True
        assert result["subscription_type"] == "NEW"
        assert result["requires_role_update"] is True

        subscription = engine.get_subscription("agency-1")
        assert subscription["tier"] == "LE"
        assert subscription["payment_status"] == "PAID"
        assert users.find_by_email("analyst@agency.gov").role == UserRole.LE_ADMIN

        access = engine.validate_feature_access("agency-1", "Evidence management")
        assert access["allowed"] is True

    def test_le_payment_for_existing_admin_needs_no_role_update(self, engine, users):
        """Role already LE_ADMIN → no role update required."""
        users.update_role("analyst@agency.gov", UserRole.LE_ADMIN)
        payment = engine.create_payment({
            "tier": "LE",
            "org_id": "agency-1",
            "user_email": "analyst@agency.gov",
            "amount": 10000
        })

        result = engine.process_payment(payment["payment_id"], "pi_le_002")

        assert result["requires_role_update"] is False


class TestTierUpgradeJourney:
    """Organization grows from L1 to L3."""

    def test_upgrade_validated_then_applied_on_payment(self, engine):
        """Upgrade path check does not change the tier; the paid payment does."""
        first = engine.create_payment({"tier": "L1", "org_id": "org-1", "user_email": "admin@acme.com", "amount": 9900})
        engine.process_payment(first["payment_id"], "pi_1")

        upgrade = engine.upgrade_subscription("org-1", "L3")
        assert upgrade["requires_payment"] is True
        assert engine.get_subscription("org-1")["tier"] == "L1"

        second = engine.create_payment({"tier": "L3", "org_id": "org-1", "user_email": "admin@acme.com", "amount": 49900})
        result = engine.process_payment(second["payment_id"], "pi_2")

        assert result["subscription_type"] == "UPGRADE"
        subscription = engine.get_subscription("org-1")
        assert subscription["tier"] == "L3"
        assert subscription["subscription_type"] == "UPGRADE"

    def test_downgrade_rejected(self, engine):
        """L3 → L2 is not an upgrade."""
        payment = engine.create_payment({"tier": "L3", "org_id": "org-1", "user_email": "admin@acme.com", "amount": 49900})
        engine.process_payment(payment["payment_id"], "pi_1")

        with pytest.raises(ValidationFailedError) as exc_info:
            engine.upgrade_subscription("org-1", "L2")
        assert "Cannot downgrade or move to same tier" in exc_info.value.message


class TestRefundProration:
    """Refunds shrink linearly over the 30-day window."""

    def test_refund_after_ten_days(self, engine, clock):
        """PAID, 10 days old, total 3000 → refund 2000."""
        # 2727 + 10% tax (272.7 → 273) = 3000
        payment = engine.create_payment({"tier": "L1", "org_id": "org-1", "user_email": "admin@acme.com", "amount": 2727})
        assert payment["total_amount"] == 3000
        engine.process_payment(payment["payment_id"], "pi_1")
        clock.advance(days=10)

        preview = engine.calculate_refund(payment["payment_id"])
        assert preview["eligible_for_refund"] is True
        assert preview["refund_amount"] == 2000

        result = engine.process_refund(payment["payment_id"], "Not needed anymore")
        assert result["refund_amount"] == 2000
        assert engine.get_payment(payment["payment_id"])["status"] == "REFUNDED"

    def test_refund_after_window_rejected(self, engine, clock):
        """31 days after payment the refund is refused."""
        payment = engine.create_payment({"tier": "L1", "org_id": "org-1", "user_email": "admin@acme.com", "amount": 9900})
        engine.process_payment(payment["payment_id"], "pi_1")
        clock.advance(days=31)

        preview = engine.calculate_refund(payment["payment_id"])
        assert preview["eligible_for_refund"] is False

        with pytest.raises(ValidationFailedError):
            engine.process_refund(payment["payment_id"], "Too late")


class TestPartnerReferralJourney:
    """Partner refers a buyer who then pays."""

    @pytest.fixture
    def partner(self, engine):
        return engine.create_partner({
            "company_name": "Blue Line Consulting",
            "contact_email": "partners@blueline.com",
            "business_type": "LAW_ENFORCEMENT",
            "commission_rate": 10,
            "status": "ACTIVE"
        })

    def test_referral_to_commission_payout(self, engine, partner):
        """Attribution → LE payment → 1.5× commission → payout."""
        code = partner["codes"][0]["code"]
        assert engine.validate_partner_code(code)["is_valid"] is True

        engine.process_referral_attribution(code, "analyst@agency.gov")
        payment = engine.create_payment({
            "tier": "LE",
            "org_id": "agency-1",
            "user_email": "analyst@agency.gov",
            "amount": 10000,
            "referral_code": code
        })
        engine.process_payment(payment["payment_id"], "pi_1")

        conversion = engine.process_referral_conversion(payment["payment_id"])
        # 11000 × 10% × 1.5
        assert conversion["converted"] is True
        assert conversion["commission"]["commission_amount"] == 1650
        assert conversion["commission"]["modifier"] == 1.5

        payout = engine.process_commission_payment(partner["partner_id"], {
            "amount": 1650,
            "payment_method": "BANK_TRANSFER",
            "idempotency_key": "payout-2025-06"
        })
        assert payout["success"] is True

        summary = engine.get_commission_summary(partner["partner_id"])
        assert summary["total_conversions"] == 1
        assert summary["outstanding_commission"] == 0

    def test_exhausted_code_is_invalid(self, engine, partner):
        """max_uses 5 and current_uses 5 → invalid."""
        code = engine.create_partner_code(partner["partner_id"], {"max_uses": 5})["code"]
        for i in range(5):
            engine.process_referral_attribution(code, f"user{i}@agency.gov")

        assert engine.validate_partner_code(code)["is_valid"] is False
        with pytest.raises(NotFoundError):
            engine.process_referral_attribution(code, "user5@agency.gov")

    def test_expired_code_is_invalid(self, engine, partner, clock):
        """A code past its expiry date cannot be used."""
        expires = (clock() + timedelta(days=1)).isoformat()
        code = engine.create_partner_code(partner["partner_id"], {"expires_at": expires})["code"]
        assert engine.validate_partner_code(code)["is_valid"] is True

        clock.advance(days=2)
        assert engine.validate_partner_code(code)["is_valid"] is False


class TestProcessingFailureRecovery:
    """Payment processing that fails part-way leaves no partial state."""

    def test_second_process_attempt_rejected(self, engine):
        """A processed payment cannot be processed again."""
        payment = engine.create_payment({"tier": "L2", "org_id": "org-1", "user_email": "admin@acme.com", "amount": 19900})
        engine.process_payment(payment["payment_id"], "pi_1")

        with pytest.raises(ValidationFailedError):
            engine.process_payment(payment["payment_id"], "pi_1")

    def test_failure_rolls_back_subscription(self, engine, monkeypatch):
        """Error after the subscription is created → no subscription, payment FAILED."""
        def fail(*args, **kwargs):
            raise RuntimeError("subscription store timeout")

        monkeypatch.setattr(engine.subscriptions, "update_payment_status", fail)
        payment = engine.create_payment({"tier": "L2", "org_id": "org-1", "user_email": "admin@acme.com", "amount": 19900})

        with pytest.raises(ProcessingFailedError):
            engine.process_payment(payment["payment_id"], "pi_1")

        assert engine.subscriptions.get_subscription("org-1") is None
        stored = engine.get_payment(payment["payment_id"])
        assert stored["status"] == "FAILED"
        assert stored["failure_reason"] == "subscription store timeout"
