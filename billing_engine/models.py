"""
Domain Models for the Billing Engine

These dataclasses provide type-safe representations of all billing entities.
All monetary values are integer minor currency units (cents); intermediate
arithmetic uses Decimal.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from enum import Enum
from uuid import uuid4

from .errors import ValidationFailedError


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def to_minor_units(value: Decimal) -> int:
    """Round a Decimal amount to whole minor units, half-up."""
    return int(value.quantize(Decimal('1'), rounding=ROUND_HALF_UP))


def parse_datetime(value) -> datetime | None:
    if value is None or isinstance(value, datetime):
        return value
    parsed = datetime.fromisoformat(value.replace('Z', '+00:00'))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def format_datetime(value: datetime | None) -> str | None:
    return value.isoformat() if value is not None else None


# =============================================================================
# ENUMERATIONS
# =============================================================================


class PaymentStatus(str, Enum):
    """Shared by payments and the payment_status of subscriptions."""

    PENDING = 'PENDING'
    PAID = 'PAID'
    FAILED = 'FAILED'
    CANCELLED = 'CANCELLED'
    REFUNDED = 'REFUNDED'
    PARTIALLY_REFUNDED = 'PARTIALLY_REFUNDED'  # reserved, no operation produces it


# Allowed payment transitions. Anything absent here is terminal.
PAYMENT_TRANSITIONS: dict[PaymentStatus, frozenset[PaymentStatus]] = {
    PaymentStatus.PENDING: frozenset({
        PaymentStatus.PAID, PaymentStatus.FAILED, PaymentStatus.CANCELLED,
    }),
    PaymentStatus.PAID: frozenset({
        PaymentStatus.REFUNDED, PaymentStatus.PARTIALLY_REFUNDED,
    }),
}


class PaymentMethod(str, Enum):
    CARD = 'CARD'
    BANK_ACCOUNT = 'BANK_ACCOUNT'
    PAYPAL = 'PAYPAL'
    STRIPE = 'STRIPE'


class Tier(str, Enum):
    L1 = 'L1'
    L2 = 'L2'
    L3 = 'L3'
    LE = 'LE'


class SubscriptionType(str, Enum):
    NEW = 'NEW'
    UPGRADE = 'UPGRADE'


class UserRole(str, Enum):
    USER = 'USER'
    ORG_ADMIN = 'ORG_ADMIN'
    PARTNER = 'PARTNER'
    LE_ADMIN = 'LE_ADMIN'
    PLATFORM_ADMIN = 'PLATFORM_ADMIN'


class PartnerType(str, Enum):
    RESELLER = 'RESELLER'
    CONSULTANT = 'CONSULTANT'
    INTEGRATOR = 'INTEGRATOR'
    AFFILIATE = 'AFFILIATE'
    LAW_ENFORCEMENT = 'LAW_ENFORCEMENT'


class PartnerStatus(str, Enum):
    PENDING = 'PENDING'
    ACTIVE = 'ACTIVE'
    SUSPENDED = 'SUSPENDED'
    TERMINATED = 'TERMINATED'


class CommissionStatus(str, Enum):
    PENDING = 'PENDING'
    CALCULATED = 'CALCULATED'
    PAID = 'PAID'


class AttributionStatus(str, Enum):
    ATTRIBUTED = 'ATTRIBUTED'
    CONVERTED = 'CONVERTED'
    COMMISSION_PAID = 'COMMISSION_PAID'


class PayoutMethod(str, Enum):
    BANK_TRANSFER = 'BANK_TRANSFER'
    PAYPAL = 'PAYPAL'
    CHECK = 'CHECK'


# =============================================================================
# ENTITIES
# =============================================================================


@dataclass
class Payment:
    """One monetary transaction for a subscription tier."""

    payment_id: str
    tier: Tier
    org_id: str
    user_email: str
    amount: int
    tax_amount: int
    total_amount: int
    payment_method: PaymentMethod
    status: PaymentStatus = PaymentStatus.PENDING
    referral_code: str | None = None
    payment_intent_id: str | None = None
    refund_amount: int | None = None
    refund_reason: str | None = None
    failure_reason: str | None = None
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)
    version: int = 0

    def can_transition_to(self, status: PaymentStatus) -> bool:
        return status in PAYMENT_TRANSITIONS.get(self.status, frozenset())

    def transition_to(self, status: PaymentStatus) -> None:
        """Move to a new status, rejecting transitions out of terminal states."""
        if not self.can_transition_to(status):
            raise ValidationFailedError(
                f"Payment '{self.payment_id}' cannot move from {self.status.value} to {status.value}",
                code='INVALID_PAYMENT_TRANSITION',
                details={'payment_id': self.payment_id, 'from': self.status.value, 'to': status.value},
            )
        self.status = status

    def mark_failed(self, reason: str) -> None:
        """
        Force the payment to FAILED.

        Also accepted from PAID, because a processing attempt that already
        recorded PAID is rolled back to FAILED when a later step raises.
        """
        if self.status not in (PaymentStatus.PENDING, PaymentStatus.PAID):
            raise ValidationFailedError(
                f"Payment '{self.payment_id}' cannot fail from {self.status.value}",
                code='INVALID_PAYMENT_TRANSITION',
                details={'payment_id': self.payment_id, 'from': self.status.value},
            )
        self.status = PaymentStatus.FAILED
        self.failure_reason = reason

    @classmethod
    def from_dict(cls, data: dict) -> "Payment":
        return cls(
            payment_id=data['payment_id'],
            tier=Tier(data['tier']),
            org_id=data['org_id'],
            user_email=data['user_email'],
            amount=int(data['amount']),
            tax_amount=int(data['tax_amount']),
            total_amount=int(data['total_amount']),
            payment_method=PaymentMethod(data['payment_method']),
            status=PaymentStatus(data.get('status', PaymentStatus.PENDING.value)),
            referral_code=data.get('referral_code'),
            payment_intent_id=data.get('payment_intent_id'),
            refund_amount=data.get('refund_amount'),
            refund_reason=data.get('refund_reason'),
            failure_reason=data.get('failure_reason'),
            created_at=parse_datetime(data.get('created_at')) or utcnow(),
            updated_at=parse_datetime(data.get('updated_at')) or utcnow(),
            version=data.get('version', 0),
        )

    def to_dict(self) -> dict:
        return {
            'payment_id': self.payment_id,
            'tier': self.tier.value,
            'org_id': self.org_id,
            'user_email': self.user_email,
            'amount': self.amount,
            'tax_amount': self.tax_amount,
            'total_amount': self.total_amount,
            'payment_method': self.payment_method.value,
            'status': self.status.value,
            'referral_code': self.referral_code,
            'payment_intent_id': self.payment_intent_id,
            'refund_amount': self.refund_amount,
            'refund_reason': self.refund_reason,
            'failure_reason': self.failure_reason,
            'created_at': format_datetime(self.created_at),
            'updated_at': format_datetime(self.updated_at),
            'version': self.version,
        }


@dataclass
class Subscription:
    """The single entitlement record of an organization."""

    org_id: str
    tier: Tier
    subscription_type: SubscriptionType
    run_number: int = 0
    progress: str = 'created'
    payment_status: PaymentStatus = PaymentStatus.PENDING
    referral_code: str | None = None
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)
    version: int = 0

    @classmethod
    def from_dict(cls, data: dict) -> "Subscription":
        return cls(
            org_id=data['org_id'],
            tier=Tier(data['tier']),
            subscription_type=SubscriptionType(data['subscription_type']),
            run_number=data.get('run_number', 0),
            progress=data.get('progress', 'created'),
            payment_status=PaymentStatus(data.get('payment_status', PaymentStatus.PENDING.value)),
            referral_code=data.get('referral_code'),
            created_at=parse_datetime(data.get('created_at')) or utcnow(),
            updated_at=parse_datetime(data.get('updated_at')) or utcnow(),
            version=data.get('version', 0),
        )

    def to_dict(self) -> dict:
        return {
            'org_id': self.org_id,
            'tier': self.tier.value,
            'subscription_type': self.subscription_type.value,
            'run_number': self.run_number,
            'progress': self.progress,
            'payment_status': self.payment_status.value,
            'referral_code': self.referral_code,
            'created_at': format_datetime(self.created_at),
            'updated_at': format_datetime(self.updated_at),
            'version': self.version,
        }


@dataclass
class Partner:
    """A referral-program participant."""

    partner_id: str
    company_name: str
    contact_email: str
    business_type: PartnerType
    commission_rate: Decimal  # percentage, e.g. 15.0 for 15%
    status: PartnerStatus = PartnerStatus.PENDING
    total_referrals: int = 0
    successful_conversions: int = 0
    total_commission_earned: int = 0
    total_commission_paid: int = 0
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)
    version: int = 0

    @property
    def is_active(self) -> bool:
        return self.status == PartnerStatus.ACTIVE

    @classmethod
    def from_dict(cls, data: dict) -> "Partner":
        return cls(
            partner_id=data['partner_id'],
            company_name=data['company_name'],
            contact_email=data['contact_email'],
            business_type=PartnerType(data['business_type']),
            commission_rate=Decimal(str(data['commission_rate'])),
            status=PartnerStatus(data.get('status', PartnerStatus.PENDING.value)),
            total_referrals=data.get('total_referrals', 0),
            successful_conversions=data.get('successful_conversions', 0),
            total_commission_earned=data.get('total_commission_earned', 0),
            total_commission_paid=data.get('total_commission_paid', 0),
            created_at=parse_datetime(data.get('created_at')) or utcnow(),
            updated_at=parse_datetime(data.get('updated_at')) or utcnow(),
            version=data.get('version', 0),
        )

    def to_dict(self) -> dict:
        return {
            'partner_id': self.partner_id,
            'company_name': self.company_name,
            'contact_email': self.contact_email,
            'business_type': self.business_type.value,
            'commission_rate': str(self.commission_rate),
            'status': self.status.value,
            'total_referrals': self.total_referrals,
            'successful_conversions': self.successful_conversions,
            'total_commission_earned': self.total_commission_earned,
            'total_commission_paid': self.total_commission_paid,
            'created_at': format_datetime(self.created_at),
            'updated_at': format_datetime(self.updated_at),
            'version': self.version,
        }


@dataclass
class PartnerCode:
    """A referral code owned by one partner."""

    code: str
    partner_id: str
    max_uses: int | None = None
    current_uses: int = 0
    is_active: bool = True
    expires_at: datetime | None = None
    conversions: int = 0
    total_value: int = 0
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)
    version: int = 0

    @property
    def is_exhausted(self) -> bool:
        return self.max_uses is not None and self.current_uses >= self.max_uses

    @classmethod
    def from_dict(cls, data: dict) -> "PartnerCode":
        return cls(
            code=data['code'],
            partner_id=data['partner_id'],
            max_uses=data.get('max_uses'),
            current_uses=data.get('current_uses', 0),
            is_active=data.get('is_active', True),
            expires_at=parse_datetime(data.get('expires_at')),
            conversions=data.get('conversions', 0),
            total_value=data.get('total_value', 0),
            created_at=parse_datetime(data.get('created_at')) or utcnow(),
            updated_at=parse_datetime(data.get('updated_at')) or utcnow(),
            version=data.get('version', 0),
        )

    def to_dict(self) -> dict:
        return {
            'code': self.code,
            'partner_id': self.partner_id,
            'max_uses': self.max_uses,
            'current_uses': self.current_uses,
            'is_active': self.is_active,
            'expires_at': format_datetime(self.expires_at),
            'conversions': self.conversions,
            'total_value': self.total_value,
            'created_at': format_datetime(self.created_at),
            'updated_at': format_datetime(self.updated_at),
            'version': self.version,
        }


@dataclass
class User:
    """Directory entry as seen by the billing core."""

    email: str
    role: UserRole = UserRole.USER


@dataclass
class ReferralAttribution:
    """Links a partner code to the signup of one user."""

    partner_code: str
    partner_id: str
    user_email: str
    attributed_at: datetime = field(default_factory=utcnow)
    conversion_date: datetime | None = None
    payment_id: str | None = None
    commission_amount: int | None = None
    status: AttributionStatus = AttributionStatus.ATTRIBUTED
    version: int = 0

    @classmethod
    def from_dict(cls, data: dict) -> "ReferralAttribution":
        return cls(
            partner_code=data['partner_code'],
            partner_id=data['partner_id'],
            user_email=data['user_email'],
            attributed_at=parse_datetime(data.get('attributed_at')) or utcnow(),
            conversion_date=parse_datetime(data.get('conversion_date')),
            payment_id=data.get('payment_id'),
            commission_amount=data.get('commission_amount'),
            status=AttributionStatus(data.get('status', AttributionStatus.ATTRIBUTED.value)),
            version=data.get('version', 0),
        )

    def to_dict(self) -> dict:
        return {
            'partner_code': self.partner_code,
            'partner_id': self.partner_id,
            'user_email': self.user_email,
            'attributed_at': format_datetime(self.attributed_at),
            'conversion_date': format_datetime(self.conversion_date),
            'payment_id': self.payment_id,
            'commission_amount': self.commission_amount,
            'status': self.status.value,
            'version': self.version,
        }


@dataclass
class CommissionPayout:
    """A commission credit paid out to a partner."""

    payout_id: str
    partner_id: str
    amount: int
    payment_method: PayoutMethod
    notes: str | None = None
    idempotency_key: str | None = None
    created_at: datetime = field(default_factory=utcnow)
    # Storage identity; payout_id is a display reference and may repeat.
    record_id: str = field(default_factory=lambda: uuid4().hex)
    version: int = 0

    @classmethod
    def from_dict(cls, data: dict) -> "CommissionPayout":
        return cls(
            payout_id=data['payout_id'],
            partner_id=data['partner_id'],
            amount=int(data['amount']),
            payment_method=PayoutMethod(data['payment_method']),
            notes=data.get('notes'),
            idempotency_key=data.get('idempotency_key'),
            created_at=parse_datetime(data.get('created_at')) or utcnow(),
            record_id=data.get('record_id') or uuid4().hex,
            version=data.get('version', 0),
        )

    def to_dict(self) -> dict:
        return {
            'payout_id': self.payout_id,
            'partner_id': self.partner_id,
            'amount': self.amount,
            'payment_method': self.payment_method.value,
            'notes': self.notes,
            'idempotency_key': self.idempotency_key,
            'created_at': format_datetime(self.created_at),
            'record_id': self.record_id,
            'version': self.version,
        }


# =============================================================================
# REQUEST MODELS
# =============================================================================


@dataclass
class PaymentRequest:
    """Input for creating a payment."""

    tier: str
    org_id: str
    user_email: str
    amount: int
    payment_method: str
    referral_code: str | None = None

    @classmethod
    def from_dict(cls, data: dict) -> "PaymentRequest":
        return cls(
            tier=data['tier'],
            org_id=data['org_id'],
            user_email=data['user_email'],
            amount=data['amount'],
            payment_method=data.get('payment_method', PaymentMethod.CARD.value),
            referral_code=data.get('referral_code') or None,
        )


@dataclass
class PartnerRequest:
    """Input for registering a partner."""

    company_name: str
    contact_email: str
    business_type: str
    commission_rate: Decimal | None = None
    status: str = PartnerStatus.PENDING.value

    @classmethod
    def from_dict(cls, data: dict) -> "PartnerRequest":
        rate = data.get('commission_rate')
        if rate is not None:
            try:
                rate = Decimal(str(rate))
            except InvalidOperation:
                raise ValidationFailedError(
                    f"commission_rate must be a number, got: {rate!r}",
                    code='INVALID_COMMISSION_RATE',
                ) from None
        return cls(
            company_name=data['company_name'],
            contact_email=data['contact_email'],
            business_type=data['business_type'],
            commission_rate=rate,
            status=data.get('status', PartnerStatus.PENDING.value),
        )


# =============================================================================
# OUTPUT / RESULT MODELS
# =============================================================================


@dataclass
class CommissionCalculation:
    """Commission owed to a partner for one payment."""

    partner_id: str
    payment_id: str
    base_amount: int
    commission_rate: Decimal
    modifier: Decimal
    commission_amount: int
    status: CommissionStatus = CommissionStatus.CALCULATED
    created_at: datetime = field(default_factory=utcnow)


@dataclass
class CodeValidation:
    """Outcome of the four partner-code rules."""

    is_valid: bool
    partner_id: str | None = None
    expiration_date: datetime | None = None


@dataclass
class PartnerCodeValidation:
    """Public view of a partner-code check."""

    code: str
    is_valid: bool
    partner_id: str | None = None
    commission_rate: Decimal | None = None
    max_uses: int | None = None
    current_uses: int | None = None


@dataclass
class RefundCalculation:
    eligible_for_refund: bool
    refund_amount: int = 0
    reason: str | None = None
    elapsed_days: int | None = None


@dataclass
class RefundResult:
    success: bool
    message: str
    refund_amount: int


@dataclass
class ProcessingResult:
    """Result of driving a payment through process_payment."""

    success: bool
    message: str
    requires_role_update: bool = False
    subscription_type: SubscriptionType | None = None


@dataclass
class UpgradeResult:
    success: bool
    message: str
    requires_payment: bool


@dataclass
class FeatureAccess:
    allowed: bool
    reason: str | None = None


@dataclass
class PayoutResult:
    success: bool
    payment_id: str
    message: str


@dataclass
class CommissionSummary:
    partner_id: str
    total_referrals: int
    total_conversions: int
    conversion_rate: Decimal
    total_commission_earned: int
    total_commission_paid: int
    outstanding_commission: int
    average_commission_per_conversion: int
