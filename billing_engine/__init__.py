"""
BILLING-TO-ENTITLEMENT ENGINE
Payments, subscriptions and partner commissions
"""

from .errors import BillingError, ConcurrencyConflictError, NotFoundError, ProcessingFailedError, ValidationFailedError
from .processor import BillingEngine

__all__ = [
    'BillingEngine',
    'BillingError',
    'NotFoundError',
    'ValidationFailedError',
    'ProcessingFailedError',
    'ConcurrencyConflictError',
]
