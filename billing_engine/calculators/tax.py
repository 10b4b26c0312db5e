"""
Tax Calculator

One canonical tax formula used wherever a payment is constructed.
"""

from decimal import Decimal

from ..models import to_minor_units


class TaxCalculator:
    """Computes tax and totals in minor currency units."""

    def __init__(self, tax_rate: Decimal = Decimal('0.10')):
        self.tax_rate = tax_rate

    def tax_for(self, amount: int) -> int:
        return to_minor_units(Decimal(amount) * self.tax_rate)

    def totals(self, amount: int) -> tuple[int, int]:
        """Return (tax_amount, total_amount) so that total == amount + tax."""
        tax = self.tax_for(amount)
        return tax, amount + tax
