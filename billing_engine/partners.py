"""
Partner Service

Partner and partner-code administration, referral attribution and
conversion, and commission payouts to partners.
"""

import logging
import secrets
import string
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal
from typing import Callable
from uuid import uuid4

from .attribution import AttributionLookup
from .calculators import CommissionEngine, PartnerCodeValidator
from .errors import ConcurrencyConflictError, NotFoundError, ValidationFailedError
from .models import (
    AttributionStatus, CommissionCalculation, CommissionPayout, CommissionSummary,
    Partner, PartnerCode, PartnerCodeValidation, PartnerRequest, PartnerStatus,
    PartnerType, Payment, PaymentStatus, PayoutMethod, PayoutResult,
    ReferralAttribution, to_minor_units, utcnow,
)
from .repositories import PartnerCodeRepository, PartnerRepository, PayoutRepository
from .saga import Saga
from .validators import InputValidator

logger = logging.getLogger(__name__)

CODE_ALPHABET = string.ascii_uppercase + string.digits
CODE_LENGTH = 8


def generate_code() -> str:
    return ''.join(secrets.choice(CODE_ALPHABET) for _ in range(CODE_LENGTH))


class PartnerService:
    """Referral program operations."""

    MAX_CODE_ATTEMPTS = 5

    def __init__(
        self,
        partners: PartnerRepository,
        codes: PartnerCodeRepository,
        payouts: PayoutRepository,
        code_validator: PartnerCodeValidator,
        commission_engine: CommissionEngine,
        attributions: AttributionLookup,
        default_commission_rate: Decimal = Decimal('15.0'),
        validator: InputValidator | None = None,
        code_factory: Callable[[], str] = generate_code,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.partners = partners
        self.codes = codes
        self.payouts = payouts
        self.code_validator = code_validator
        self.commission_engine = commission_engine
        self.attributions = attributions
        self.default_commission_rate = default_commission_rate
        self.validator = validator or InputValidator()
        self.code_factory = code_factory
        self.clock = clock

    # =========================================================================
    # Partners
    # =========================================================================

    def create_partner(self, request: PartnerRequest) -> Partner:
        """Register a partner and give it a default referral code."""
        self.validator.validate_partner_request(request)

        if self.partners.find_by_email(request.contact_email) is not None:
            raise ValidationFailedError(
                'Partner email already registered',
                code='PARTNER_EMAIL_EXISTS',
                details={'contact_email': request.contact_email},
            )

        rate = request.commission_rate
        if rate is None:
            rate = self.default_commission_rate

        partner = Partner(
            partner_id=str(uuid4()),
            company_name=request.company_name,
            contact_email=request.contact_email,
            business_type=PartnerType(request.business_type),
            commission_rate=rate,
            status=PartnerStatus(request.status),
        )
        self.partners.create(partner)
        self.create_partner_code(partner.partner_id)

        logger.info(f"Registered partner {partner.partner_id} ({partner.company_name})")
        return partner

    def get_partner(self, partner_id: str) -> Partner | None:
        return self.partners.find_by_id(partner_id)

    def require_partner(self, partner_id: str) -> Partner:
        partner = self.partners.find_by_id(partner_id)
        if partner is None:
            raise NotFoundError(
                f"Partner with ID '{partner_id}' not found",
                code='PARTNER_NOT_FOUND',
                details={'partner_id': partner_id},
            )
        return partner

    def update_partner_status(self, partner_id: str, status: str) -> Partner:
        partner = self.require_partner(partner_id)
        try:
            partner.status = PartnerStatus(status)
        except ValueError:
            raise ValidationFailedError(f"Invalid partner status: {status}", code='INVALID_STATUS')
        return self.partners.save(partner)

    def delete_partner(self, partner_id: str) -> None:
        """Deactivate every code of the partner, then remove the partner."""
        self.require_partner(partner_id)
        for partner_code in self.codes.find_by_partner(partner_id):
            if partner_code.is_active:
                self.deactivate_code(partner_code.code)
        self.partners.delete(partner_id)
        logger.info(f"Deleted partner {partner_id}")

    # =========================================================================
    # Partner codes
    # =========================================================================

    def create_partner_code(
        self,
        partner_id: str,
        max_uses: int | None = None,
        expires_at: datetime | None = None,
    ) -> PartnerCode:
        self.require_partner(partner_id)
        self.validator.validate_max_uses(max_uses)

        for _ in range(self.MAX_CODE_ATTEMPTS):
            partner_code = PartnerCode(
                code=self.code_factory(),
                partner_id=partner_id,
                max_uses=max_uses,
                expires_at=expires_at,
            )
            try:
                return self.codes.create(partner_code)
            except ConcurrencyConflictError:
                logger.warning(f"Generated partner code {partner_code.code} already exists, regenerating")

        raise ValidationFailedError(
            'Could not generate a unique partner code',
            code='PARTNER_CODE_GENERATION_FAILED',
            details={'partner_id': partner_id},
        )

    def list_partner_codes(self, partner_id: str) -> list[PartnerCode]:
        self.require_partner(partner_id)
        return self.codes.find_by_partner(partner_id)

    def require_code(self, code: str) -> PartnerCode:
        partner_code = self.codes.find_by_code(code)
        if partner_code is None:
            raise NotFoundError(
                f"Partner code '{code}' not found",
                code='PARTNER_CODE_NOT_FOUND',
                details={'code': code},
            )
        return partner_code

    def validate_partner_code(self, code: str) -> PartnerCodeValidation:
        """Public check of a referral code, with the details a signup form shows."""
        validation = self.code_validator.validate(code)
        if not validation.is_valid:
            return PartnerCodeValidation(code=code, is_valid=False)

        partner_code = self.codes.find_by_code(code)
        partner = self.partners.find_by_id(validation.partner_id)
        return PartnerCodeValidation(
            code=code,
            is_valid=True,
            partner_id=validation.partner_id,
            commission_rate=partner.commission_rate if partner else None,
            max_uses=partner_code.max_uses if partner_code else None,
            current_uses=partner_code.current_uses if partner_code else None,
        )

    def increment_code_usage(self, code: str) -> PartnerCode:
        partner_code = self.require_code(code)
        if partner_code.is_exhausted:
            raise ValidationFailedError(
                f"Partner code '{code}' has reached its usage limit",
                code='PARTNER_CODE_EXHAUSTED',
                details={'code': code, 'max_uses': partner_code.max_uses},
            )
        partner_code.current_uses += 1
        return self.codes.save(partner_code)

    def deactivate_code(self, code: str) -> PartnerCode:
        """Deactivation is permanent; there is no reactivation."""
        partner_code = self.require_code(code)
        partner_code.is_active = False
        return self.codes.save(partner_code)

    # =========================================================================
    # Referrals and commission
    # =========================================================================

    def process_referral_attribution(self, code: str, user_email: str) -> ReferralAttribution:
        """Attribute a signup to the partner owning `code`."""
        logger.info(f"Processing referral attribution: code={code} user={user_email}")

        validation = self.code_validator.validate(code)
        if not validation.is_valid:
            raise NotFoundError('Invalid or expired partner code', code='PARTNER_CODE_INVALID', details={'code': code})

        if self.attributions.find_by_email(user_email) is not None:
            raise ValidationFailedError(
                f"User '{user_email}' is already attributed to a partner",
                code='ALREADY_ATTRIBUTED',
                details={'user_email': user_email},
            )

        attribution = ReferralAttribution(
            partner_code=code,
            partner_id=validation.partner_id,
            user_email=user_email,
            attributed_at=self.clock(),
            status=AttributionStatus.ATTRIBUTED,
        )

        saga = Saga(f"referral_attribution:{code}")
        try:
            try:
                self.attributions.record(attribution)
            except ConcurrencyConflictError:
                raise ValidationFailedError(
                    f"User '{user_email}' is already attributed to a partner",
                    code='ALREADY_ATTRIBUTED',
                    details={'user_email': user_email},
                )
            saga.record('record_attribution', lambda: self.attributions.remove(user_email))
            self.increment_code_usage(code)
            saga.record('increment_usage', lambda: self._adjust_code(code, current_uses=-1))
            self._adjust_partner(validation.partner_id, total_referrals=1)
        except Exception:
            saga.compensate()
            raise

        logger.info(f"Referral attributed: code={code} partner={validation.partner_id} user={user_email}")
        return attribution

    def calculate_commission(self, partner: Partner, payment: Payment) -> CommissionCalculation:
        return self.commission_engine.calculate_commission(partner, payment)

    def process_referral_conversion(self, payment: Payment) -> CommissionCalculation | None:
        """
        Convert the paying user's attribution and credit the earned commission.

        Returns None when no attribution exists for the user, or when the
        referring partner no longer exists.
        """
        attribution = self.attributions.find_by_email(payment.user_email)
        if attribution is None:
            logger.debug(f"No referral attribution found for {payment.user_email}")
            return None

        if payment.status != PaymentStatus.PAID:
            raise ValidationFailedError(
                f"Payment '{payment.payment_id}' is not paid",
                code='PAYMENT_NOT_PAID',
                details={'payment_id': payment.payment_id, 'status': payment.status.value},
            )

        if attribution.status != AttributionStatus.ATTRIBUTED:
            raise ValidationFailedError(
                f"Referral for '{payment.user_email}' was already converted",
                code='ALREADY_CONVERTED',
                details={'user_email': payment.user_email, 'payment_id': attribution.payment_id},
            )

        partner = self.partners.find_by_id(attribution.partner_id)
        if partner is None:
            logger.error(f"Partner {attribution.partner_id} not found for conversion of {payment.user_email}")
            return None

        calculation = self.commission_engine.calculate_commission(partner, payment)
        amount = calculation.commission_amount

        attribution.status = AttributionStatus.CONVERTED
        attribution.conversion_date = self.clock()
        attribution.payment_id = payment.payment_id
        attribution.commission_amount = amount

        saga = Saga(f"referral_conversion:{payment.payment_id}")
        try:
            # The conditional write on the attribution admits one conversion only.
            self.attributions.update(attribution)
            saga.record('convert_attribution', lambda: self._revert_attribution(payment.user_email))
            self._adjust_partner(partner.partner_id, successful_conversions=1, total_commission_earned=amount)
            saga.record(
                'partner_stats',
                lambda: self._adjust_partner(
                    partner.partner_id, successful_conversions=-1, total_commission_earned=-amount
                ),
            )
            if self.codes.find_by_code(attribution.partner_code) is not None:
                self._adjust_code(attribution.partner_code, conversions=1, total_value=payment.total_amount)
        except Exception:
            saga.compensate()
            raise

        logger.info(
            f"Referral converted: user={payment.user_email} partner={partner.partner_id} commission={amount}"
        )
        return calculation

    def process_commission_payment(
        self,
        partner_id: str,
        amount: int,
        payment_method: str,
        notes: str | None = None,
        idempotency_key: str | None = None,
    ) -> PayoutResult:
        """
        Credit a commission payout to a partner.

        Without an idempotency key this is an unconditional credit: it does
        not check for a prior calculated commission. With a key, a repeated
        call returns the first result and credits nothing.
        """
        self.require_partner(partner_id)
        self.validator.validate_payout(amount, payment_method)

        if idempotency_key:
            previous = self.payouts.find_by_idempotency_key(partner_id, idempotency_key)
            if previous is not None:
                logger.info(f"Replaying commission payout {previous.payout_id} for key {idempotency_key}")
                return self._payout_result(previous)

        now = self.clock()
        payout = CommissionPayout(
            payout_id=f"comm_{int(now.timestamp() * 1000)}_{partner_id[:8]}",
            partner_id=partner_id,
            amount=amount,
            payment_method=PayoutMethod(payment_method),
            notes=notes,
            idempotency_key=idempotency_key,
            created_at=now,
        )

        try:
            self.payouts.create(payout)
        except ConcurrencyConflictError:
            if idempotency_key:
                previous = self.payouts.find_by_idempotency_key(partner_id, idempotency_key)
                if previous is not None:
                    return self._payout_result(previous)
            raise

        logger.info(f"Processing commission payment {payout.payout_id}: partner={partner_id} amount={amount}")
        try:
            self._adjust_partner(partner_id, total_commission_paid=amount)
        except Exception:
            self.payouts.remove(payout)
            raise

        return self._payout_result(payout)

    def get_commission_summary(self, partner_id: str) -> CommissionSummary:
        partner = self.require_partner(partner_id)
        referrals = partner.total_referrals
        conversions = partner.successful_conversions
        earned = partner.total_commission_earned

        if referrals > 0:
            rate = (Decimal(conversions) / Decimal(referrals) * Decimal('100')).quantize(
                Decimal('0.01'), rounding=ROUND_HALF_UP
            )
        else:
            rate = Decimal('0.00')

        average = to_minor_units(Decimal(earned) / Decimal(conversions)) if conversions > 0 else 0

        return CommissionSummary(
            partner_id=partner_id,
            total_referrals=referrals,
            total_conversions=conversions,
            conversion_rate=rate,
            total_commission_earned=earned,
            total_commission_paid=partner.total_commission_paid,
            outstanding_commission=earned - partner.total_commission_paid,
            average_commission_per_conversion=average,
        )

    # =========================================================================
    # Helpers
    # =========================================================================

    def _adjust_partner(self, partner_id: str, **deltas: int) -> Partner:
        """Apply counter deltas to a partner with a conditional write."""
        partner = self.require_partner(partner_id)
        for name, delta in deltas.items():
            setattr(partner, name, getattr(partner, name) + delta)
        if partner.successful_conversions > partner.total_referrals:
            raise ValidationFailedError(
                f"Partner '{partner_id}' cannot have more conversions than referrals",
                code='CONVERSIONS_EXCEED_REFERRALS',
                details={'partner_id': partner_id},
            )
        return self.partners.save(partner)

    def _adjust_code(self, code: str, **deltas: int) -> PartnerCode:
        partner_code = self.require_code(code)
        for name, delta in deltas.items():
            setattr(partner_code, name, getattr(partner_code, name) + delta)
        return self.codes.save(partner_code)

    def _revert_attribution(self, user_email: str) -> None:
        attribution = self.attributions.find_by_email(user_email)
        if attribution is None:
            return
        attribution.status = AttributionStatus.ATTRIBUTED
        attribution.conversion_date = None
        attribution.payment_id = None
        attribution.commission_amount = None
        self.attributions.update(attribution)

    def _payout_result(self, payout: CommissionPayout) -> PayoutResult:
        formatted = f"{Decimal(payout.amount) / Decimal('100'):,.2f}"
        return PayoutResult(
            success=True,
            payment_id=payout.payout_id,
            message=(
                f"Commission payment of {formatted} processed successfully "
                f"via {payout.payment_method.value}"
            ),
        )
