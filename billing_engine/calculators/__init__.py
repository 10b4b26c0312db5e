"""
Calculators Package

Provides the pure decision components of the billing engine.
"""

from .commission import CommissionEngine
from .partner_code import PartnerCodeValidator
from .refund import RefundCalculator
from .tax import TaxCalculator

__all__ = [
    "TaxCalculator",
    "PartnerCodeValidator",
    "CommissionEngine",
    "RefundCalculator",
]
