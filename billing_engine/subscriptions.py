"""
Subscription Lifecycle Manager

Creates and upgrades organization subscriptions and tracks their usage and
progress. One subscription per organization; the store key is the org id.
"""

import logging
from dataclasses import replace

from .errors import NotFoundError, ValidationFailedError
from .models import FeatureAccess, PaymentStatus, Subscription, SubscriptionType, Tier, UpgradeResult
from .repositories import SubscriptionRepository
from .tiers import TIER_CATALOG, TierConfig, resolve_tier

logger = logging.getLogger(__name__)


class SubscriptionLifecycleManager:
    """Business logic for subscriptions on the L1/L2/L3/LE tiers."""

    def __init__(self, subscriptions: SubscriptionRepository):
        self.subscriptions = subscriptions

    # -------------------------------------------------------------------------
    # Tier catalog
    # -------------------------------------------------------------------------

    def get_available_tiers(self) -> list[TierConfig]:
        return sorted(TIER_CATALOG.values(), key=lambda config: config.rank)

    def get_tier_config(self, tier) -> TierConfig | None:
        return resolve_tier(tier)

    def require_tier(self, tier) -> TierConfig:
        config = resolve_tier(tier)
        if config is None:
            raise ValidationFailedError(
                f"Invalid subscription tier: {tier}",
                code='INVALID_TIER',
                details={'tier': str(tier), 'available': [t.value for t in Tier]},
            )
        return config

    # -------------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------------

    def get_subscription(self, org_id: str) -> Subscription | None:
        return self.subscriptions.find_by_org(org_id)

    def require_subscription(self, org_id: str) -> Subscription:
        subscription = self.subscriptions.find_by_org(org_id)
        if subscription is None:
            raise NotFoundError(
                f"Subscription for organization '{org_id}' not found",
                code='SUBSCRIPTION_NOT_FOUND',
                details={'org_id': org_id},
            )
        return subscription

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    def create_subscription(
        self,
        org_id: str,
        tier,
        subscription_type: SubscriptionType = SubscriptionType.NEW,
        referral_code: str | None = None,
    ) -> Subscription:
        """Persist a new subscription: run counter 0, progress 'created', payment PENDING."""
        config = self.require_tier(tier)

        if self.subscriptions.find_by_org(org_id) is not None:
            raise ValidationFailedError(
                f"Organization '{org_id}' already has a subscription",
                code='SUBSCRIPTION_EXISTS',
                details={'org_id': org_id},
            )

        subscription = Subscription(
            org_id=org_id,
            tier=config.tier,
            subscription_type=subscription_type,
            run_number=0,
            progress='created',
            payment_status=PaymentStatus.PENDING,
            referral_code=referral_code,
        )
        self.subscriptions.create(subscription)
        logger.info(f"Created {subscription_type.value} subscription for {org_id} at {config.tier.value}")
        return subscription

    def upgrade_subscription(self, org_id: str, target_tier) -> UpgradeResult:
        """
        Validate an upgrade path. Nothing changes here: the tier is replaced
        once a payment for the target tier reaches PAID.
        """
        current = self.require_subscription(org_id)
        target = self.require_tier(target_tier)
        current_config = TIER_CATALOG[current.tier]

        if target.rank <= current_config.rank:
            raise ValidationFailedError(
                f"Cannot downgrade or move to same tier ({current.tier.value} -> {target.tier.value})",
                code='INVALID_UPGRADE_PATH',
                details={'current_tier': current.tier.value, 'target_tier': target.tier.value},
            )

        if target.elevated_role is not None:
            message = (
                f"Upgrade to {target.tier.value} tier initiated. Payment required and role "
                f"will be updated to {target.elevated_role.value}."
            )
        else:
            message = f"Upgrade from {current.tier.value} to {target.tier.value} initiated."

        return UpgradeResult(success=True, message=message, requires_payment=True)

    def apply_paid_upgrade(self, org_id: str, tier) -> Subscription:
        """Replace the tier of an existing subscription after its payment succeeded."""
        config = self.require_tier(tier)
        subscription = self.require_subscription(org_id)
        subscription.tier = config.tier
        subscription.subscription_type = SubscriptionType.UPGRADE
        subscription.payment_status = PaymentStatus.PAID
        return self.subscriptions.save(subscription)

    def update_payment_status(self, org_id: str, payment_status: PaymentStatus) -> Subscription:
        subscription = self.require_subscription(org_id)
        subscription.payment_status = payment_status
        return self.subscriptions.save(subscription)

    def update_progress(self, org_id: str, progress: str) -> Subscription:
        subscription = self.require_subscription(org_id)
        subscription.progress = progress
        return self.subscriptions.save(subscription)

    def increment_run_number(self, org_id: str) -> Subscription:
        subscription = self.require_subscription(org_id)
        subscription.run_number += 1
        return self.subscriptions.save(subscription)

    # -------------------------------------------------------------------------
    # Compensation helpers
    # -------------------------------------------------------------------------

    def restore(self, snapshot: Subscription) -> Subscription:
        """Write a previously captured state back over the current record."""
        current = self.require_subscription(snapshot.org_id)
        restored = replace(snapshot, version=current.version, created_at=current.created_at)
        return self.subscriptions.save(restored)

    def remove(self, org_id: str) -> None:
        self.subscriptions.delete(org_id)

    # -------------------------------------------------------------------------
    # Entitlements
    # -------------------------------------------------------------------------

    def validate_feature_access(self, org_id: str, feature: str) -> FeatureAccess:
        subscription = self.subscriptions.find_by_org(org_id)

        if subscription is None:
            return FeatureAccess(allowed=False, reason='No active subscription found')

        if subscription.payment_status != PaymentStatus.PAID:
            return FeatureAccess(allowed=False, reason='Subscription payment is not completed')

        config = TIER_CATALOG.get(subscription.tier)
        if config is None:
            return FeatureAccess(allowed=False, reason='Invalid subscription tier')

        if feature not in config.features:
            return FeatureAccess(
                allowed=False,
                reason=f"Feature '{feature}' not available for {subscription.tier.value} tier",
            )

        return FeatureAccess(allowed=True)
