"""
Billing Engine - Main Orchestrator

Wires every component to one entity store and user directory and exposes
the dict-in/dict-out operations used by the Flask app and the Lambda handler.
"""

import logging
from datetime import datetime
from typing import Any, Callable, Dict

from .attribution import AttributionLookup, StoreAttributionLookup
from .calculators import CommissionEngine, PartnerCodeValidator, RefundCalculator, TaxCalculator
from .config import BillingSettings
from .errors import NotFoundError
from .models import PartnerRequest, PaymentRequest, utcnow
from .output import OutputBuilder
from .partners import PartnerService
from .payments import PaymentProcessor
from .repositories import (
    AttributionRepository, PartnerCodeRepository, PartnerRepository,
    PaymentRepository, PayoutRepository, SubscriptionRepository,
)
from .store import EntityStore, InMemoryEntityStore, InMemoryUserDirectory, UserDirectory
from .subscriptions import SubscriptionLifecycleManager
from .validators import InputValidator

logger = logging.getLogger(__name__)


class BillingEngine:
    """
    Facade over the billing components.

    Components (leaves first):
    1. PartnerCodeValidator
    2. CommissionEngine
    3. RefundCalculator
    4. PaymentProcessor
    5. SubscriptionLifecycleManager
    plus PartnerService for the referral program.
    """

    def __init__(
        self,
        store: EntityStore | None = None,
        users: UserDirectory | None = None,
        settings: BillingSettings | None = None,
        attributions: AttributionLookup | None = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.settings = settings or BillingSettings.from_env()
        self.store = store or InMemoryEntityStore()
        self.users = users or InMemoryUserDirectory()
        self.clock = clock
        self.validator = InputValidator()
        self.output = OutputBuilder(self.settings.currency)

        payment_repo = PaymentRepository(self.store)
        partner_repo = PartnerRepository(self.store)
        code_repo = PartnerCodeRepository(self.store)

        self.code_validator = PartnerCodeValidator(code_repo, partner_repo, clock=clock)
        self.commission_engine = CommissionEngine()
        self.refund_calculator = RefundCalculator(self.settings.refund_window_days, clock=clock)
        self.tax_calculator = TaxCalculator(self.settings.tax_rate)

        self.subscriptions = SubscriptionLifecycleManager(SubscriptionRepository(self.store))
        self.payments = PaymentProcessor(
            payment_repo,
            self.subscriptions,
            self.users,
            self.tax_calculator,
            self.refund_calculator,
            validator=self.validator,
            clock=clock,
        )
        self.partners = PartnerService(
            partner_repo,
            code_repo,
            PayoutRepository(self.store),
            self.code_validator,
            self.commission_engine,
            attributions or StoreAttributionLookup(AttributionRepository(self.store)),
            default_commission_rate=self.settings.default_commission_rate,
            validator=self.validator,
            clock=clock,
        )

        logger.info(
            f"Billing engine ready: environment={self.settings.environment} "
            f"tax_rate={self.settings.tax_rate} refund_window={self.settings.refund_window_days}d"
        )

    # =========================================================================
    # Payments
    # =========================================================================

    def create_payment(self, data: Dict[str, Any]) -> Dict[str, Any]:
        self.validator.require_fields(data, 'tier', 'org_id', 'user_email', 'amount')
        payment = self.payments.create_payment(PaymentRequest.from_dict(data))
        return self.output.payment(payment)

    def get_payment(self, payment_id: str) -> Dict[str, Any]:
        return self.output.payment(self.payments.require_payment(payment_id))

    def list_payments_for_org(self, org_id: str) -> Dict[str, Any]:
        return self.output.payments(self.payments.list_payments_for_org(org_id))

    def process_payment(self, payment_id: str, payment_intent_id: str) -> Dict[str, Any]:
        result = self.payments.process_payment(payment_id, payment_intent_id)
        return self.output.processing_result(result)

    def cancel_payment(self, payment_id: str) -> Dict[str, Any]:
        return self.output.payment(self.payments.cancel_payment(payment_id))

    def calculate_refund(self, payment_id: str) -> Dict[str, Any]:
        calculation = self.payments.calculate_refund(payment_id)
        return self.output.refund_calculation(calculation, self.refund_calculator.window_days)

    def process_refund(self, payment_id: str, reason: str) -> Dict[str, Any]:
        return self.output.refund_result(self.payments.process_refund(payment_id, reason))

    def process_referral_conversion(self, payment_id: str) -> Dict[str, Any]:
        payment = self.payments.require_payment(payment_id)
        calculation = self.partners.process_referral_conversion(payment)
        if calculation is None:
            return {'converted': False, 'commission': None}
        return {'converted': True, 'commission': self.output.commission(calculation)}

    # =========================================================================
    # Partners and commission
    # =========================================================================

    def create_partner(self, data: Dict[str, Any]) -> Dict[str, Any]:
        self.validator.require_fields(data, 'company_name', 'contact_email', 'business_type')
        partner = self.partners.create_partner(PartnerRequest.from_dict(data))
        return self.output.partner(partner, codes=self.partners.list_partner_codes(partner.partner_id))

    def get_partner(self, partner_id: str) -> Dict[str, Any]:
        partner = self.partners.require_partner(partner_id)
        return self.output.partner(partner, codes=self.partners.list_partner_codes(partner_id))

    def create_partner_code(self, partner_id: str, data: Dict[str, Any]) -> Dict[str, Any]:
        self.validator.require_fields(data)
        partner_code = self.partners.create_partner_code(
            partner_id,
            max_uses=data.get('max_uses'),
            expires_at=self.validator.parse_timestamp(data.get('expires_at'), 'expires_at'),
        )
        return self.output.partner_code(partner_code)

    def validate_partner_code(self, code: str) -> Dict[str, Any]:
        return self.output.code_validation(self.partners.validate_partner_code(code))

    def process_referral_attribution(self, code: str, user_email: str) -> Dict[str, Any]:
        return self.output.attribution(self.partners.process_referral_attribution(code, user_email))

    def calculate_commission(self, partner_id: str, payment_id: str) -> Dict[str, Any]:
        partner = self.partners.require_partner(partner_id)
        payment = self.payments.require_payment(payment_id)
        return self.output.commission(self.partners.calculate_commission(partner, payment))

    def process_commission_payment(self, partner_id: str, data: Dict[str, Any]) -> Dict[str, Any]:
        self.validator.require_fields(data, 'amount', 'payment_method')
        result = self.partners.process_commission_payment(
            partner_id,
            data['amount'],
            data['payment_method'],
            notes=data.get('notes'),
            idempotency_key=data.get('idempotency_key'),
        )
        return self.output.payout(result)

    def get_commission_summary(self, partner_id: str) -> Dict[str, Any]:
        return self.output.commission_summary(self.partners.get_commission_summary(partner_id))

    # =========================================================================
    # Subscriptions
    # =========================================================================

    def get_available_tiers(self) -> Dict[str, Any]:
        return self.output.tiers(self.subscriptions.get_available_tiers())

    def get_tier_config(self, tier: str) -> Dict[str, Any]:
        config = self.subscriptions.get_tier_config(tier)
        if config is None:
            raise NotFoundError(f"Tier '{tier}' not found", code='TIER_NOT_FOUND', details={'tier': tier})
        return config.to_dict()

    def get_subscription(self, org_id: str) -> Dict[str, Any]:
        return self.output.subscription(self.subscriptions.require_subscription(org_id))

    def upgrade_subscription(self, org_id: str, target_tier: str) -> Dict[str, Any]:
        return self.output.upgrade(self.subscriptions.upgrade_subscription(org_id, target_tier))

    def validate_feature_access(self, org_id: str, feature: str) -> Dict[str, Any]:
        access = self.subscriptions.validate_feature_access(org_id, feature)
        return self.output.feature_access(org_id, feature, access)

    def update_progress(self, org_id: str, progress: str) -> Dict[str, Any]:
        return self.output.subscription(self.subscriptions.update_progress(org_id, progress))

    def increment_run_number(self, org_id: str) -> Dict[str, Any]:
        return self.output.subscription(self.subscriptions.increment_run_number(org_id))
