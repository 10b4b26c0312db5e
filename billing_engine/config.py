"""
Runtime configuration for the Billing Engine.

Values come from environment variables so the same code runs under Flask,
AWS Lambda and the test-suite.
"""

import os
from dataclasses import dataclass
from decimal import Decimal


@dataclass(frozen=True)
class BillingSettings:
    environment: str = 'dev'
    # Single canonical tax rate applied to every payment.
    tax_rate: Decimal = Decimal('0.10')
    refund_window_days: int = 30
    currency: str = 'USD'
    default_commission_rate: Decimal = Decimal('15.0')

    @classmethod
    def from_env(cls) -> "BillingSettings":
        return cls(
            environment=os.environ.get('ENVIRONMENT', 'dev'),
            tax_rate=Decimal(os.environ.get('BILLING_TAX_RATE', '0.10')),
            refund_window_days=int(os.environ.get('BILLING_REFUND_WINDOW_DAYS', 30)),
            currency=os.environ.get('BILLING_CURRENCY', 'USD'),
            default_commission_rate=Decimal(os.environ.get('DEFAULT_COMMISSION_RATE', '15.0')),
        )
