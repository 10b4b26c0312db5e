"""
Commission Engine

Computes partner commission for a payment with tier-dependent modifiers.
"""

from decimal import Decimal

from ..models import CommissionCalculation, CommissionStatus, Partner, Payment, to_minor_units
from ..tiers import TIER_CATALOG


class CommissionEngine:
    """Calculates referral commissions."""

    HUNDRED = Decimal('100')

    def calculate_commission(self, partner: Partner, payment: Payment) -> CommissionCalculation:
        """
        commission = round(total_amount × rate / 100 × modifier)

        The modifier comes from the tier catalog for the payment's tier and
        may be overridden per partner business type (e.g. law-enforcement
        partners selling the LE tier). Rounding happens once, on the final
        value.
        """
        modifier = self.modifier_for(partner, payment)
        raw = Decimal(payment.total_amount) * partner.commission_rate / self.HUNDRED * modifier

        return CommissionCalculation(
            partner_id=partner.partner_id,
            payment_id=payment.payment_id,
            base_amount=payment.total_amount,
            commission_rate=partner.commission_rate,
            modifier=modifier,
            commission_amount=to_minor_units(raw),
            status=CommissionStatus.CALCULATED,
        )

    def modifier_for(self, partner: Partner, payment: Payment) -> Decimal:
        config = TIER_CATALOG.get(payment.tier)
        if config is None:
            return Decimal('1.0')
        return config.modifier_for(partner.business_type)
