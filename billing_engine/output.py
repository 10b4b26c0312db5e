"""
Output Builder

Turns engine entities and results into JSON-ready dictionaries.
Amounts stay in integer minor units; descriptions show them as currency.
"""

from decimal import Decimal

from .models import (
    CommissionCalculation, CommissionSummary, FeatureAccess, Partner, PartnerCode,
    PartnerCodeValidation, Payment, PayoutResult, ProcessingResult, ReferralAttribution,
    RefundCalculation, RefundResult, Subscription, UpgradeResult,
)
from .tiers import TierConfig


def to_money(minor_units: int) -> float:
    """Convert minor units to a float with 2 decimal places."""
    return round(float(Decimal(minor_units) / Decimal('100')), 2)


def _fmt(minor_units: int) -> str:
    """Format minor units as a currency string for descriptions."""
    return f"${to_money(minor_units):,.2f}"


class OutputBuilder:
    """Builds API response bodies."""

    def __init__(self, currency: str = 'USD'):
        self.currency = currency

    def payment(self, payment: Payment) -> dict:
        data = payment.to_dict()
        data['currency'] = self.currency
        data['description'] = (
            f"amount ({_fmt(payment.amount)}) + tax ({_fmt(payment.tax_amount)}) "
            f"= {_fmt(payment.total_amount)}"
        )
        return data

    def payments(self, payments: list[Payment]) -> dict:
        return {'payments': [self.payment(p) for p in payments], 'count': len(payments)}

    def processing_result(self, result: ProcessingResult) -> dict:
        return {
            'success': result.success,
            'message': result.message,
            'requires_role_update': result.requires_role_update,
            'subscription_type': result.subscription_type.value if result.subscription_type else None,
        }

    def refund_calculation(self, calculation: RefundCalculation, window_days: int) -> dict:
        if calculation.eligible_for_refund:
            description = (
                f"{window_days - calculation.elapsed_days} of {window_days} days remaining "
                f"→ refund {_fmt(calculation.refund_amount)}"
            )
        else:
            description = calculation.reason
        return {
            'eligible_for_refund': calculation.eligible_for_refund,
            'refund_amount': calculation.refund_amount,
            'reason': calculation.reason,
            'elapsed_days': calculation.elapsed_days,
            'description': description,
        }

    def refund_result(self, result: RefundResult) -> dict:
        return {
            'success': result.success,
            'message': result.message,
            'refund_amount': result.refund_amount,
        }

    def commission(self, calculation: CommissionCalculation) -> dict:
        return {
            'partner_id': calculation.partner_id,
            'payment_id': calculation.payment_id,
            'base_amount': calculation.base_amount,
            'commission_rate': float(calculation.commission_rate),
            'modifier': float(calculation.modifier),
            'commission_amount': calculation.commission_amount,
            'status': calculation.status.value,
            'created_at': calculation.created_at.isoformat(),
            'description': (
                f"{calculation.commission_rate}% × {_fmt(calculation.base_amount)} × "
                f"{calculation.modifier} = {_fmt(calculation.commission_amount)}"
            ),
        }

    def code_validation(self, validation: PartnerCodeValidation) -> dict:
        return {
            'code': validation.code,
            'is_valid': validation.is_valid,
            'partner_id': validation.partner_id,
            'commission_rate': float(validation.commission_rate) if validation.commission_rate is not None else None,
            'max_uses': validation.max_uses,
            'current_uses': validation.current_uses,
        }

    def partner(self, partner: Partner, codes: list[PartnerCode] | None = None) -> dict:
        data = partner.to_dict()
        data['commission_rate'] = float(partner.commission_rate)
        if codes is not None:
            data['codes'] = [self.partner_code(c) for c in codes]
        return data

    def partner_code(self, partner_code: PartnerCode) -> dict:
        return partner_code.to_dict()

    def attribution(self, attribution: ReferralAttribution) -> dict:
        return attribution.to_dict()

    def payout(self, result: PayoutResult) -> dict:
        return {
            'success': result.success,
            'payment_id': result.payment_id,
            'message': result.message,
        }

    def commission_summary(self, summary: CommissionSummary) -> dict:
        return {
            'partner_id': summary.partner_id,
            'total_referrals': summary.total_referrals,
            'total_conversions': summary.total_conversions,
            'conversion_rate': float(summary.conversion_rate),
            'total_commission_earned': summary.total_commission_earned,
            'total_commission_paid': summary.total_commission_paid,
            'outstanding_commission': summary.outstanding_commission,
            'average_commission_per_conversion': summary.average_commission_per_conversion,
            'description': (
                f"earned ({_fmt(summary.total_commission_earned)}) - paid "
                f"({_fmt(summary.total_commission_paid)}) = {_fmt(summary.outstanding_commission)} outstanding"
            ),
        }

    def subscription(self, subscription: Subscription) -> dict:
        return subscription.to_dict()

    def tiers(self, configs: list[TierConfig]) -> dict:
        return {'tiers': [config.to_dict() for config in configs]}

    def upgrade(self, result: UpgradeResult) -> dict:
        return {
            'success': result.success,
            'message': result.message,
            'requires_payment': result.requires_payment,
        }

    def feature_access(self, org_id: str, feature: str, access: FeatureAccess) -> dict:
        return {
            'org_id': org_id,
            'feature': feature,
            'allowed': access.allowed,
            'reason': access.reason,
        }
