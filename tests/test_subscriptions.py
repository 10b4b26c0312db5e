"""
Tests for the Subscription Lifecycle Manager.
"""

import pytest
from billing_engine.errors import NotFoundError, ValidationFailedError
from billing_engine.models import PaymentStatus, SubscriptionType, Tier


class TestTierCatalog:
    """Test the read-only tier catalog."""

    @pytest.fixture
    def manager(self, engine):
        return engine.subscriptions

    def test_tiers_ascend_in_rank_and_price(self, manager):
        tiers = manager.get_available_tiers()

        assert [t.tier for t in tiers] == [Tier.L1, Tier.L2, Tier.L3, Tier.LE]
        prices = [t.price_monthly for t in tiers]
        assert prices == sorted(prices)

    def test_only_le_caps_organizations(self, manager):
        """LE is the only tier with a member-organization limit."""
        assert manager.get_tier_config('LE').limits.max_organizations == 10
        assert manager.get_tier_config('L3').limits.max_organizations is None

    def test_unknown_tier(self, manager):
        assert manager.get_tier_config('L9') is None
        with pytest.raises(ValidationFailedError) as exc_info:
            manager.require_tier('L9')
        assert exc_info.value.code == 'INVALID_TIER'


class TestCreateSubscription:
    """Test subscription creation."""

    @pytest.fixture
    def manager(self, engine):
        return engine.subscriptions

    def test_initial_state(self, manager):
        """New subscriptions start at run 0, 'created', payment PENDING, version 1."""
        subscription = manager.create_subscription('org-1', 'L2', referral_code='ABCD1234')

        assert subscription.tier == Tier.L2
        assert subscription.subscription_type == SubscriptionType.NEW
        assert subscription.run_number == 0
        assert subscription.progress == 'created'
        assert subscription.payment_status == PaymentStatus.PENDING
        assert subscription.referral_code == 'ABCD1234'
        assert subscription.version == 1

    def test_invalid_tier_rejected(self, manager):
        with pytest.raises(ValidationFailedError):
            manager.create_subscription('org-1', 'GOLD')
        assert manager.get_subscription('org-1') is None

    def test_one_subscription_per_org(self, manager):
        manager.create_subscription('org-1', 'L1')

        with pytest.raises(ValidationFailedError) as exc_info:
            manager.create_subscription('org-1', 'L2')
        assert exc_info.value.code == 'SUBSCRIPTION_EXISTS'


class TestUpgradeSubscription:
    """Test upgrade-path validation."""

    @pytest.fixture
    def manager(self, engine):
        manager = engine.subscriptions
        manager.create_subscription('org-1', 'L2')
        return manager

    def test_upgrade_to_higher_tier(self, manager):
        result = manager.upgrade_subscription('org-1', 'L3')

        assert result.success is True
        assert result.requires_payment is True

    def test_upgrade_does_not_mutate(self, manager):
        """The tier only changes once the payment is PAID."""
        manager.upgrade_subscription('org-1', 'L3')
        subscription = manager.get_subscription('org-1')

        assert subscription.tier == Tier.L2
        assert subscription.version == 1

    def test_upgrade_to_le_mentions_role(self, manager):
        result = manager.upgrade_subscription('org-1', 'LE')

        assert 'LE_ADMIN' in result.message

    @pytest.mark.parametrize('target', ['L1', 'L2'])
    def test_downgrade_or_same_rejected(self, manager, target):
        with pytest.raises(ValidationFailedError) as exc_info:
            manager.upgrade_subscription('org-1', target)
        assert exc_info.value.code == 'INVALID_UPGRADE_PATH'

    def test_missing_subscription(self, manager):
        with pytest.raises(NotFoundError):
            manager.upgrade_subscription('org-unknown', 'L3')


class TestFeatureAccess:
    """Test entitlement checks."""

    @pytest.fixture
    def manager(self, engine):
        return engine.subscriptions

    def test_no_subscription(self, manager):
        access = manager.validate_feature_access('org-1', 'Email alerts')

        assert access.allowed is False
        assert access.reason == 'No active subscription found'

    def test_unpaid_subscription(self, manager):
        manager.create_subscription('org-1', 'L1')
        access = manager.validate_feature_access('org-1', 'Email alerts')

        assert access.allowed is False
        assert access.reason == 'Subscription payment is not completed'

    def test_feature_in_tier(self, manager):
        manager.create_subscription('org-1', 'L1')
        manager.update_payment_status('org-1', PaymentStatus.PAID)

        assert manager.validate_feature_access('org-1', 'Email alerts').allowed is True

    def test_feature_not_in_tier(self, manager):
        manager.create_subscription('org-1', 'L1')
        manager.update_payment_status('org-1', PaymentStatus.PAID)
        access = manager.validate_feature_access('org-1', 'Evidence management')

        assert access.allowed is False
        assert 'L1' in access.reason


class TestProgressTracking:
    """Test run counter and progress updates."""

    @pytest.fixture
    def manager(self, engine):
        return engine.subscriptions

    def test_increment_run_number(self, manager):
        manager.create_subscription('org-1', 'L1')
        manager.increment_run_number('org-1')
        subscription = manager.increment_run_number('org-1')

        assert subscription.run_number == 2
        assert subscription.version == 3

    def test_update_progress(self, manager):
        manager.create_subscription('org-1', 'L1')

        assert manager.update_progress('org-1', 'assessment_running').progress == 'assessment_running'

    def test_missing_org(self, manager):
        with pytest.raises(NotFoundError):
            manager.increment_run_number('org-unknown')
        with pytest.raises(NotFoundError):
            manager.update_progress('org-unknown', 'x')
