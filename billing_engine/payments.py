"""
Payment Processor - Payment State Machine

Drives a payment from PENDING to PAID or FAILED and provisions the
subscription it pays for.

Processing pipeline:
1. Load the payment and guard on PENDING
2. Record PAID with the external confirmation token
3. Create a NEW subscription, or apply the paid upgrade to the existing one
4. Elevate the paying user's role when the tier requires it
5. On failure: compensate steps 3-4 in reverse, force FAILED, raise
"""

import logging
from datetime import datetime
from typing import Callable
from uuid import uuid4

from .calculators import RefundCalculator, TaxCalculator
from .errors import BillingError, ConcurrencyConflictError, NotFoundError, ProcessingFailedError, ValidationFailedError
from .models import (
    Payment, PaymentMethod, PaymentRequest, PaymentStatus, ProcessingResult,
    RefundCalculation, RefundResult, SubscriptionType, utcnow,
)
from .repositories import PaymentRepository
from .saga import Saga
from .store import UserDirectory
from .subscriptions import SubscriptionLifecycleManager
from .tiers import TIER_CATALOG
from .validators import InputValidator

logger = logging.getLogger(__name__)


def new_payment_id() -> str:
    return f"pay_{uuid4().hex}"


class PaymentProcessor:
    """Payment creation, processing, cancellation and refunds."""

    def __init__(
        self,
        payments: PaymentRepository,
        subscriptions: SubscriptionLifecycleManager,
        users: UserDirectory,
        tax_calculator: TaxCalculator,
        refund_calculator: RefundCalculator,
        validator: InputValidator | None = None,
        id_factory: Callable[[], str] = new_payment_id,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.payments = payments
        self.subscriptions = subscriptions
        self.users = users
        self.tax_calculator = tax_calculator
        self.refund_calculator = refund_calculator
        self.validator = validator or InputValidator()
        self.id_factory = id_factory
        self.clock = clock

    # -------------------------------------------------------------------------
    # Creation and lookup
    # -------------------------------------------------------------------------

    def create_payment(self, request: PaymentRequest) -> Payment:
        """Validate the request, compute tax once and persist a PENDING payment."""
        tier_config = self.subscriptions.require_tier(request.tier)
        self.validator.validate_payment_request(request)

        tax_amount, total_amount = self.tax_calculator.totals(request.amount)
        now = self.clock()

        payment = Payment(
            payment_id=self.id_factory(),
            tier=tier_config.tier,
            org_id=request.org_id,
            user_email=request.user_email,
            amount=request.amount,
            tax_amount=tax_amount,
            total_amount=total_amount,
            payment_method=PaymentMethod(request.payment_method),
            status=PaymentStatus.PENDING,
            referral_code=request.referral_code,
            created_at=now,
            updated_at=now,
        )
        self.payments.create(payment)

        logger.info(
            f"Created payment {payment.payment_id} for {payment.org_id}: "
            f"{payment.tier.value} total={payment.total_amount}"
        )
        return payment

    def get_payment(self, payment_id: str) -> Payment | None:
        return self.payments.find_by_id(payment_id)

    def require_payment(self, payment_id: str) -> Payment:
        payment = self.payments.find_by_id(payment_id)
        if payment is None:
            raise NotFoundError(
                f"Payment with ID '{payment_id}' not found",
                code='PAYMENT_NOT_FOUND',
                details={'payment_id': payment_id},
            )
        return payment

    def list_payments_for_org(self, org_id: str) -> list[Payment]:
        return self.payments.find_by_org(org_id)

    # -------------------------------------------------------------------------
    # Processing
    # -------------------------------------------------------------------------

    def process_payment(self, payment_id: str, payment_intent_id: str) -> ProcessingResult:
        """
        Confirm a PENDING payment and provision its subscription.

        Raises:
            NotFoundError: unknown payment
            ValidationFailedError: payment is not PENDING (nothing is mutated)
            ConcurrencyConflictError: another request moved the payment first
            ProcessingFailedError: a later step failed; completed steps were
                compensated and the payment is FAILED
        """
        payment = self.require_payment(payment_id)

        if payment.status != PaymentStatus.PENDING:
            raise ValidationFailedError(
                'Payment already processed',
                code='PAYMENT_ALREADY_PROCESSED',
                details={'payment_id': payment_id, 'status': payment.status.value},
            )

        # Losing this write means a concurrent request owns the payment; leave it alone.
        payment.transition_to(PaymentStatus.PAID)
        payment.payment_intent_id = payment_intent_id
        try:
            self.payments.save(payment)
        except ConcurrencyConflictError:
            logger.warning(f"Payment {payment_id} was processed concurrently")
            raise

        saga = Saga(f"process_payment:{payment_id}")
        try:
            result = self._provision(payment, saga)
        except Exception as e:
            reason = e.message if isinstance(e, BillingError) else str(e)
            logger.error(f"Processing payment {payment_id} failed: {reason}", exc_info=True)
            failed_compensations = saga.compensate()
            error = ProcessingFailedError(payment_id, reason)
            try:
                self._force_failed(payment_id, reason)
            except BillingError as mark_error:
                logger.error(f"Could not mark payment {payment_id} FAILED: {mark_error.message}")
                failed_compensations.append('mark_payment_failed')
            if failed_compensations:
                error.details['failed_compensations'] = failed_compensations
            raise error from e

        logger.info(f"Payment {payment_id} processed: {result.message}")
        return result

    def _provision(self, payment: Payment, saga: Saga) -> ProcessingResult:
        org_id = payment.org_id
        tier = payment.tier.value
        existing = self.subscriptions.get_subscription(org_id)

        if existing is not None:
            self.subscriptions.apply_paid_upgrade(org_id, payment.tier)
            saga.record('upgrade_subscription', lambda: self.subscriptions.restore(existing))
            subscription_type = SubscriptionType.UPGRADE
        else:
            self.subscriptions.create_subscription(
                org_id,
                payment.tier,
                subscription_type=SubscriptionType.NEW,
                referral_code=payment.referral_code,
            )
            saga.record('create_subscription', lambda: self.subscriptions.remove(org_id))
            self.subscriptions.update_payment_status(org_id, PaymentStatus.PAID)
            subscription_type = SubscriptionType.NEW

        elevated_role = self._escalate_role(payment, saga)

        if subscription_type == SubscriptionType.UPGRADE:
            message = f"Payment processed successfully. Subscription upgraded to {tier} tier"
        else:
            message = f"Payment processed successfully. New {tier} subscription created"
        if elevated_role:
            message += f" and user role updated to {elevated_role}."
        else:
            message += '.'

        return ProcessingResult(
            success=True,
            message=message,
            requires_role_update=elevated_role is not None,
            subscription_type=subscription_type,
        )

    def _escalate_role(self, payment: Payment, saga: Saga) -> str | None:
        """Grant the tier's elevated role; returns the role name when it changed."""
        elevated_role = TIER_CATALOG[payment.tier].elevated_role
        if elevated_role is None:
            return None

        user = self.users.find_by_email(payment.user_email)
        if user is None or user.role == elevated_role:
            return None

        previous_role = user.role
        self.users.update_role(payment.user_email, elevated_role)
        saga.record('update_role', lambda: self.users.update_role(payment.user_email, previous_role))
        return elevated_role.value

    def _force_failed(self, payment_id: str, reason: str) -> None:
        current = self.payments.find_by_id(payment_id)
        if current is None:
            logger.error(f"Payment {payment_id} disappeared before it could be marked FAILED")
            return
        current.mark_failed(reason)
        self.payments.save(current)

    def cancel_payment(self, payment_id: str) -> Payment:
        payment = self.require_payment(payment_id)
        payment.transition_to(PaymentStatus.CANCELLED)
        self.payments.save(payment)
        logger.info(f"Cancelled payment {payment_id}")
        return payment

    # -------------------------------------------------------------------------
    # Refunds
    # -------------------------------------------------------------------------

    def calculate_refund(self, payment_id: str) -> RefundCalculation:
        payment = self.require_payment(payment_id)
        return self.refund_calculator.calculate_refund(payment)

    def process_refund(self, payment_id: str, reason: str) -> RefundResult:
        """Refund the prorated amount and move the payment to REFUNDED."""
        payment = self.require_payment(payment_id)
        calculation = self.refund_calculator.calculate_refund(payment)

        if not calculation.eligible_for_refund:
            raise ValidationFailedError(
                f"Refund not eligible: {calculation.reason}",
                code='REFUND_NOT_ELIGIBLE',
                details={'payment_id': payment_id, 'reason': calculation.reason},
            )

        payment.transition_to(PaymentStatus.REFUNDED)
        payment.refund_amount = calculation.refund_amount
        payment.refund_reason = reason
        self.payments.save(payment)

        logger.info(f"Refunded payment {payment_id}: {calculation.refund_amount} ({reason})")
        return RefundResult(
            success=True,
            message='Refund processed successfully',
            refund_amount=calculation.refund_amount,
        )
